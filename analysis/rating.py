"""
Elo rating updates with an experience-dependent K-factor.

A player is provisional for their first RATED_AFTER_GAMES games; until then a
countdown is shown instead of a rank.
"""

import math
from dataclasses import dataclass, replace

DEFAULT_RATING = 1200
# Rating assumed for the built-in opponent.
AI_OPPONENT_RATING = 1200

K_FACTOR_NEW = 32
K_FACTOR_ESTABLISHED = 24
NEW_PLAYER_GAMES = 30
RATED_AFTER_GAMES = 10

RESULT_SCORES: dict[str, float] = {"win": 1.0, "draw": 0.5, "loss": 0.0}


def k_factor(games_played: int) -> int:
    return K_FACTOR_NEW if games_played < NEW_PLAYER_GAMES else K_FACTOR_ESTABLISHED


def expected_score(rating: float, opponent_rating: float) -> float:
    """Probability-like expected score of ``rating`` against ``opponent_rating``."""
    return 1 / (1 + 10 ** ((opponent_rating - rating) / 400))


def update_rating(current_rating: int, opponent_rating: int, result: str, games_played: int) -> int:
    """
    New rating after one game.

    Args:
        current_rating:  Rating before the game.
        opponent_rating: Opponent's rating.
        result:          "win", "draw" or "loss".
        games_played:    Games completed before this one; selects K.

    Returns:
        ``round(current + K * (actual - expected))``, rounding halves up.

    Raises:
        ValueError: Unknown result string.
    """
    try:
        actual = RESULT_SCORES[result]
    except KeyError:
        raise ValueError(f"result must be one of {sorted(RESULT_SCORES)}, got {result!r}") from None

    delta = k_factor(games_played) * (actual - expected_score(current_rating, opponent_rating))
    return math.floor(current_rating + delta + 0.5)


@dataclass(frozen=True)
class RatingChange:
    """One rating-history entry."""

    rating_before: int
    rating_after: int

    @property
    def change(self) -> int:
        return self.rating_after - self.rating_before


@dataclass(frozen=True)
class PlayerRatingState:
    """Long-lived rating record of one player."""

    rating: int = DEFAULT_RATING
    games_played: int = 0

    @property
    def is_rated(self) -> bool:
        return self.games_played >= RATED_AFTER_GAMES

    @property
    def games_until_rated(self) -> int:
        return max(0, RATED_AFTER_GAMES - self.games_played)

    def apply_result(self, opponent_rating: int, result: str) -> tuple["PlayerRatingState", RatingChange]:
        """
        Record one completed game.

        Returns:
            The next state (one more game played) and the history entry.
        """
        new_rating = update_rating(self.rating, opponent_rating, result, self.games_played)
        next_state = replace(self, rating=new_rating, games_played=self.games_played + 1)
        return next_state, RatingChange(self.rating, new_rating)
