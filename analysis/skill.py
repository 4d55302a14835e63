"""
Player-level aggregates and the skill breakdown shown on the dashboard.

All functions here are pure: the caller passes in finished-game records and
per-game summaries and gets the derived metrics back. Nothing is stored.
"""

import logging
from dataclasses import asdict, dataclass, replace

from analysis.analyzer import GameAnalyticsSummary, round_half_up
from analysis.rating import RATED_AFTER_GAMES

_log = logging.getLogger(__name__)

# Neutral score used where a player has no data for a metric yet.
NEUTRAL_SCORE = 50

RESULTS = ("win", "draw", "loss")


@dataclass(frozen=True)
class GameRecord:
    """The parts of a finished game the aggregate needs."""

    result: str
    total_moves: int
    duration_seconds: int | None = None


@dataclass(frozen=True)
class PlayerAnalytics:
    total_games: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0
    win_rate: float = 0.0
    avg_accuracy: float = 0.0
    total_mistakes: int = 0
    total_blunders: int = 0
    total_brilliant_moves: int = 0
    avg_game_duration_seconds: int = 0
    avg_time_per_move_ms: int = 0
    pressure_rating: int = 0
    conversion_rate: float = 0.0
    clutch_factor: int = 0
    opening_survival_rate: float = 0.0
    msi_value: float = 0.0
    is_rated: bool = False
    games_until_rated: int = RATED_AFTER_GAMES

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class SkillBreakdown:
    difficulty: int = 0
    speed: int = 0
    pressure: int = 0
    accuracy: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def _js_round(value: float) -> int:
    return int(round_half_up(value, 0))


def calculate_msi(analytics: PlayerAnalytics) -> float:
    """
    Move Strength Index.

    ``0.4 * accuracy + 0.3 * conversion + 0.2 * clutch + 0.1 * opening``,
    where average accuracy also stands in for opening accuracy. Two decimals.
    """
    accuracy = analytics.avg_accuracy or 0
    opening_accuracy = analytics.avg_accuracy or 0
    msi = (
        accuracy * 0.4
        + (analytics.conversion_rate or 0) * 0.3
        + (analytics.clutch_factor or 0) * 0.2
        + opening_accuracy * 0.1
    )
    return round_half_up(msi, 2)


def aggregate_player(games: list[GameRecord], summaries: list[GameAnalyticsSummary]) -> PlayerAnalytics:
    """
    Roll a player's finished games up into PlayerAnalytics.

    Args:
        games:     Every finished game of the player.
        summaries: Per-game analysis summaries; may be fewer than ``games``
                   when some games were never analysed.

    Returns:
        A fresh PlayerAnalytics; all zeros (and unrated) for no games.

    Raises:
        ValueError: A game carries an unknown result.
    """
    for game in games:
        if game.result not in RESULTS:
            raise ValueError(f"unknown game result {game.result!r}")

    total = len(games)
    if total == 0:
        return PlayerAnalytics()

    wins = sum(1 for g in games if g.result == "win")
    losses = sum(1 for g in games if g.result == "loss")
    draws = sum(1 for g in games if g.result == "draw")
    win_rate = wins / total * 100

    timed = [g for g in games if g.duration_seconds is not None]
    total_duration = sum(g.duration_seconds for g in timed)
    avg_duration = total_duration // len(timed) if timed else 0

    total_moves = sum(g.total_moves for g in games)
    avg_time_per_move_ms = total_duration * 1000 / total_moves if total_moves else 0

    avg_accuracy = sum(s.accuracy for s in summaries) / len(summaries) if summaries else 0.0
    conversion_rate = wins / total * 100 if wins else 0.0
    survived = sum(1 for s in summaries if s.survived_opening)
    opening_survival_rate = survived / len(summaries) * 100 if summaries else 0.0

    pressure_moves = sum(s.moves_under_10s for s in summaries)
    pressure_mistakes = sum(s.time_pressure_mistakes for s in summaries)
    pressure_rating = NEUTRAL_SCORE
    if pressure_moves:
        pressure_rating = _js_round((pressure_moves - pressure_mistakes) / pressure_moves * 100)

    clutch_factor = _js_round((win_rate + conversion_rate) / 2)

    analytics = PlayerAnalytics(
        total_games=total,
        wins=wins,
        losses=losses,
        draws=draws,
        win_rate=round_half_up(win_rate, 2),
        avg_accuracy=round_half_up(avg_accuracy, 2),
        total_mistakes=sum(s.mistakes for s in summaries),
        total_blunders=sum(s.blunders for s in summaries),
        total_brilliant_moves=sum(s.brilliant_moves for s in summaries),
        avg_game_duration_seconds=avg_duration,
        avg_time_per_move_ms=_js_round(avg_time_per_move_ms),
        pressure_rating=pressure_rating,
        conversion_rate=round_half_up(conversion_rate, 2),
        clutch_factor=clutch_factor,
        opening_survival_rate=round_half_up(opening_survival_rate, 2),
        is_rated=total >= RATED_AFTER_GAMES,
        games_until_rated=max(0, RATED_AFTER_GAMES - total),
    )

    # MSI is computed from the unrounded accuracy, and only once there is some.
    msi = 0.0
    if avg_accuracy > 0:
        msi = calculate_msi(
            PlayerAnalytics(
                avg_accuracy=avg_accuracy,
                conversion_rate=conversion_rate,
                clutch_factor=clutch_factor,
                pressure_rating=pressure_rating,
            )
        )
    _log.debug("aggregated %d games: win rate %.1f, msi %.2f", total, win_rate, msi)
    return replace(analytics, msi_value=msi)


def speed_score(avg_seconds_per_move: float) -> int:
    """
    Time-management score for an average think time.

    3-15 s scores 100. Faster play ramps linearly from 50 at 0 s; slower play
    loses 2 points a second up to 20 s and 5 points a second beyond that.
    """
    t = avg_seconds_per_move
    if t < 3:
        score = 50 + t / 3 * 50
    elif t > 20:
        score = max(0, 100 - (t - 20) * 5)
    elif t <= 15:
        score = 100
    else:
        score = 100 - (t - 15) * 2
    return max(0, min(100, _js_round(score)))


def get_skill_breakdown(analytics: PlayerAnalytics | None) -> SkillBreakdown:
    """
    Dashboard skill breakdown: difficulty, speed, pressure and a composite.

    The composite ``accuracy`` weighs difficulty 0.5, speed 0.3 and pressure
    0.2. None yields all zeros.
    """
    if analytics is None:
        return SkillBreakdown()

    games = max(1, analytics.total_games)
    brilliant_bonus = min(10, analytics.total_brilliant_moves / games * 2)
    mistake_penalty = min(20, (analytics.total_mistakes + analytics.total_blunders * 2) / games * 2)
    difficulty = max(0, min(100, (analytics.avg_accuracy or 0) + brilliant_bonus - mistake_penalty))

    speed = speed_score(analytics.avg_time_per_move_ms / 1000)

    clutch = analytics.clutch_factor or NEUTRAL_SCORE
    pressure_rating = analytics.pressure_rating or NEUTRAL_SCORE
    pressure = _js_round((clutch + pressure_rating) / 2)

    composite = _js_round(difficulty * 0.5 + speed * 0.3 + pressure * 0.2)
    return SkillBreakdown(
        difficulty=_js_round(difficulty),
        speed=speed,
        pressure=pressure,
        accuracy=composite,
    )
