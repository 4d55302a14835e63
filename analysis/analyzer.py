"""
Move-quality analysis: centipawn loss, classification and accuracy.

Every played move costs two evaluator round-trips, one for the position before
the move and one for the position after it. Both scores are brought into the
mover's perspective before they are compared:

    before = eval(fen_before).score       # mover is to move
    after  = -eval(fen_after).score       # opponent is to move
    centipawn_loss = max(0, before - after)
    improvement    = after - before

Round-trips are issued strictly one after another. The gateway serialises
requests anyway, and a batch analysis must never fan out against it.
"""

import enum
import logging
import math
from dataclasses import asdict, dataclass
from typing import Callable, Iterable, Protocol

import chess

from engine.constants import CHECKMATE_SCORE, MATE_THRESHOLD
from engine.search import search_position
from interface.gateway import EngineError
from interface.protocol import MATE_SCORE_CP, EngineEvaluation

_log = logging.getLogger(__name__)

BATCH_DEPTH = 15
LIVE_DEPTH = 12
TIME_LIMIT_MS = 2_000

OPENING_PLIES = 20
MIDDLEGAME_END_PLY = 50


class Classification(str, enum.Enum):
    """Move quality, declared from best to worst."""

    BRILLIANT = "brilliant"
    GREAT = "great"
    GOOD = "good"
    INACCURACY = "inaccuracy"
    MISTAKE = "mistake"
    BLUNDER = "blunder"

    @property
    def severity(self) -> int:
        return list(Classification).index(self)


# (inclusive upper bound on centipawn loss, classification)
_CLASSIFICATION_BANDS = [
    (10, Classification.GREAT),
    (25, Classification.GOOD),
    (100, Classification.INACCURACY),
    (300, Classification.MISTAKE),
]


def classify_move(centipawn_loss: int, eval_before: int, eval_after: int) -> Classification:
    """
    Classify a move from its centipawn loss.

    Args:
        centipawn_loss: Non-negative loss in the mover's perspective.
        eval_before:    Mover-perspective score before the move.
        eval_after:     Mover-perspective score after the move.

    Returns:
        BRILLIANT when nothing was lost and the position improved by more than
        100 cp, otherwise the first band whose upper bound covers the loss.
    """
    improvement = eval_after - eval_before
    if centipawn_loss <= 0 and improvement > 100:
        return Classification.BRILLIANT
    for threshold, label in _CLASSIFICATION_BANDS:
        if centipawn_loss <= threshold:
            return label
    return Classification.BLUNDER


@dataclass(frozen=True)
class MoveAnalysis:
    """
    Grade of one played half-move.

    ``eval_before``/``eval_after`` are stored from White's perspective so a
    game's evaluation graph reads the same way for both colours.
    ``improvement`` is in the mover's perspective.
    """

    move: str
    move_uci: str
    move_number: int
    ply: int
    fen_before: str
    fen_after: str
    eval_before: int
    eval_after: int
    centipawn_loss: int
    improvement: int
    best_move: str | None
    classification: Classification

    @property
    def color(self) -> str:
        """"white" or "black": the side that played the move."""
        return "white" if self.fen_before.split()[1] == "w" else "black"

    @property
    def is_brilliant(self) -> bool:
        return self.classification is Classification.BRILLIANT

    @property
    def is_mistake(self) -> bool:
        return self.classification is Classification.MISTAKE

    @property
    def is_blunder(self) -> bool:
        return self.classification is Classification.BLUNDER

    def to_dict(self) -> dict:
        data = asdict(self)
        data["classification"] = self.classification.value
        data["color"] = self.color
        data["is_brilliant"] = self.is_brilliant
        data["is_mistake"] = self.is_mistake
        data["is_blunder"] = self.is_blunder
        return data


class Evaluator(Protocol):
    """Anything that can score a FEN: the engine gateway or LocalEvaluator."""

    def evaluate(self, fen: str, depth: int = ..., time_limit_ms: int = ...) -> EngineEvaluation: ...


class LocalEvaluator:
    """
    Evaluator backed by the in-process minimax search.

    Depth is capped at ``max_depth`` because the pure-Python search cannot
    reach the depths a native engine is asked for.
    """

    def __init__(self, max_depth: int = 2) -> None:
        self.max_depth = max_depth

    def evaluate(self, fen: str, depth: int = BATCH_DEPTH, time_limit_ms: int = 0) -> EngineEvaluation:
        board = chess.Board(fen)
        depth = max(1, min(depth, self.max_depth))
        result, _ = search_position(board, depth)

        score = result.score if board.turn == chess.WHITE else -result.score
        mate = None
        if abs(score) >= MATE_THRESHOLD:
            plies = CHECKMATE_SCORE - abs(score)
            moves = (plies + 1) // 2
            mate = moves if score > 0 else -moves
            score = MATE_SCORE_CP if score > 0 else -MATE_SCORE_CP

        best = result.move.uci() if result.move else None
        return EngineEvaluation(
            score=score,
            mate=mate,
            best_move=best,
            depth=depth,
            pv=(best,) if best else (),
        )


def parse_move(board: chess.Board, token: str) -> chess.Move:
    """
    Parse a SAN token, falling back to UCI notation.

    Raises:
        ValueError: The token is malformed or illegal in this position.
    """
    try:
        return board.parse_san(token)
    except ValueError:
        move = chess.Move.from_uci(token)
        if move not in board.legal_moves:
            raise chess.IllegalMoveError(f"illegal move {token!r} in {board.fen()}")
        return move


class MoveAnalyzer:
    """
    Grades moves through an evaluator.

    Args:
        evaluator:     The engine gateway or a LocalEvaluator.
        batch_depth:   Depth for post-game analysis.
        live_depth:    Lower depth for per-move feedback during play.
        time_limit_ms: Search time allowed for each evaluation.
    """

    def __init__(
        self,
        evaluator: Evaluator,
        batch_depth: int = BATCH_DEPTH,
        live_depth: int = LIVE_DEPTH,
        time_limit_ms: int = TIME_LIMIT_MS,
    ) -> None:
        self.evaluator = evaluator
        self.batch_depth = batch_depth
        self.live_depth = live_depth
        self.time_limit_ms = time_limit_ms

    def _grade(self, board: chess.Board, move: chess.Move, ply: int, move_number: int, depth: int) -> MoveAnalysis:
        """Evaluate around ``move`` and push it onto ``board``."""
        fen_before = board.fen()
        mover = board.turn
        san = board.san(move)

        before = self.evaluator.evaluate(fen_before, depth=depth, time_limit_ms=self.time_limit_ms)
        board.push(move)
        fen_after = board.fen()
        after = self.evaluator.evaluate(fen_after, depth=depth, time_limit_ms=self.time_limit_ms)

        score_before = before.score
        score_after = -after.score
        centipawn_loss = max(0, score_before - score_after)
        classification = classify_move(centipawn_loss, score_before, score_after)

        sign = 1 if mover == chess.WHITE else -1
        return MoveAnalysis(
            move=san,
            move_uci=move.uci(),
            move_number=move_number,
            ply=ply,
            fen_before=fen_before,
            fen_after=fen_after,
            eval_before=sign * score_before,
            eval_after=sign * score_after,
            centipawn_loss=centipawn_loss,
            improvement=score_after - score_before,
            best_move=before.best_move,
            classification=classification,
        )

    def analyze_game(
        self,
        moves: Iterable[str],
        starting_fen: str | None = None,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> list[MoveAnalysis]:
        """
        Grade every move of a finished game.

        Args:
            moves:        Moves in SAN (UCI accepted as a fallback).
            starting_fen: Initial position; the standard start when None.
            on_progress:  Called with (moves processed, total) after each move.

        Returns:
            One MoveAnalysis per gradable move. A malformed or illegal token is
            logged and skipped, and the game continues from the last legal
            position. A ply whose evaluation fails is logged and skipped, but
            its move is still played.
        """
        moves = list(moves)
        board = chess.Board(starting_fen) if starting_fen else chess.Board()
        analyses: list[MoveAnalysis] = []

        _log.info("analysing %d moves", len(moves))
        for i, token in enumerate(moves):
            try:
                move = parse_move(board, token)
            except ValueError:
                _log.warning("skipping invalid move %r at ply %d", token, i + 1)
            else:
                played = len(board.move_stack)
                try:
                    analyses.append(self._grade(board, move, i, i // 2 + 1, self.batch_depth))
                except EngineError as exc:
                    _log.warning("evaluation failed at ply %d (%s): %s", i + 1, token, exc)
                    if len(board.move_stack) == played:
                        board.push(move)

            if on_progress is not None:
                on_progress(i + 1, len(moves))

        _log.info("analysis complete: %d of %d moves graded", len(analyses), len(moves))
        return analyses

    def analyze_single_move(self, move: str, fen_before: str) -> MoveAnalysis | None:
        """
        Grade one move during play at ``live_depth``.

        Returns:
            The analysis, or None if the move is invalid or the evaluator
            failed. Live feedback never interrupts the game.
        """
        try:
            board = chess.Board(fen_before)
            parsed = parse_move(board, move)
            return self._grade(board, parsed, 0, board.fullmove_number, self.live_depth)
        except (ValueError, EngineError) as exc:
            _log.warning("live analysis failed for %r: %s", move, exc)
            return None


def round_half_up(value: float, digits: int = 1) -> float:
    """Round to ``digits`` decimals with halves going up, not to even."""
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def calculate_accuracy(analyses: list[MoveAnalysis]) -> float:
    """
    Accuracy percentage: ``100 - average_centipawn_loss / 10``.

    Rounded to one decimal and clamped to [0, 100]. An empty list scores 0.
    """
    if not analyses:
        return 0.0
    average_loss = sum(a.centipawn_loss for a in analyses) / len(analyses)
    accuracy = round_half_up(100 - average_loss / 10)
    return max(0.0, min(100.0, accuracy))


def phase_slice(analyses: list[MoveAnalysis], phase: str) -> list[MoveAnalysis]:
    """
    Half-moves belonging to a game phase.

    opening: the first 20 half-moves; middlegame: half-moves 20-49;
    endgame: half-move 50 onwards. Positions are list positions.
    """
    if phase == "opening":
        return analyses[:OPENING_PLIES]
    if phase == "middlegame":
        return analyses[OPENING_PLIES:MIDDLEGAME_END_PLY]
    if phase == "endgame":
        return analyses[MIDDLEGAME_END_PLY:]
    raise ValueError(f"unknown game phase: {phase!r}")


def calculate_phase_accuracy(analyses: list[MoveAnalysis], phase: str) -> float:
    return calculate_accuracy(phase_slice(analyses, phase))


@dataclass(frozen=True)
class GameAnalyticsSummary:
    """Per-game roll-up of a list of MoveAnalysis."""

    total_moves: int
    brilliant_moves: int
    great_moves: int
    good_moves: int
    inaccuracies: int
    mistakes: int
    blunders: int
    avg_centipawn_loss: float
    accuracy: float
    opening_accuracy: float
    middlegame_accuracy: float
    endgame_accuracy: float
    max_advantage_gained: int
    max_advantage_lost: int
    opening_mistakes: int
    moves_under_5s: int
    moves_under_10s: int
    time_pressure_mistakes: int
    survived_opening: bool

    def to_dict(self) -> dict:
        return asdict(self)


def player_moves(analyses: list[MoveAnalysis], color: str) -> list[MoveAnalysis]:
    """Analyses of the moves played by ``color`` ("white" or "black")."""
    if color not in ("white", "black"):
        raise ValueError(f"unknown colour: {color!r}")
    return [a for a in analyses if a.color == color]


# Thresholds on the clock remaining after a move, in milliseconds.
SHORT_CLOCK_MS = 5_000
TIME_PRESSURE_MS = 10_000
SURVIVED_OPENING_MOVES = 10


def get_analysis_stats(
    analyses: list[MoveAnalysis],
    times_remaining_ms: list[int] | None = None,
) -> GameAnalyticsSummary:
    """
    Summarise one game's analyses.

    Args:
        analyses:           The graded moves of one player (see player_moves).
        times_remaining_ms: Mover's clock remaining after every half-move of the
                            game, indexed by ply. Each analysis is matched by
                            its ``ply``, so skipped plies never shift the
                            clock readings. Time-pressure counters stay 0
                            without it.
    """
    def count(label: Classification) -> int:
        return sum(1 for a in analyses if a.classification is label)

    under_5s = under_10s = pressure_mistakes = 0
    clock = times_remaining_ms or []
    for analysis in analyses:
        if analysis.ply >= len(clock):
            continue
        remaining = clock[analysis.ply]
        if remaining < SHORT_CLOCK_MS:
            under_5s += 1
        if remaining < TIME_PRESSURE_MS:
            under_10s += 1
            if analysis.is_mistake or analysis.is_blunder:
                pressure_mistakes += 1

    total_loss = sum(a.centipawn_loss for a in analyses)
    return GameAnalyticsSummary(
        total_moves=len(analyses),
        brilliant_moves=count(Classification.BRILLIANT),
        great_moves=count(Classification.GREAT),
        good_moves=count(Classification.GOOD),
        inaccuracies=count(Classification.INACCURACY),
        mistakes=count(Classification.MISTAKE),
        blunders=count(Classification.BLUNDER),
        avg_centipawn_loss=total_loss / len(analyses) if analyses else 0.0,
        accuracy=calculate_accuracy(analyses),
        opening_accuracy=calculate_phase_accuracy(analyses, "opening"),
        middlegame_accuracy=calculate_phase_accuracy(analyses, "middlegame"),
        endgame_accuracy=calculate_phase_accuracy(analyses, "endgame"),
        max_advantage_gained=max(0, max((a.improvement for a in analyses), default=0)),
        max_advantage_lost=max((a.centipawn_loss for a in analyses), default=0),
        opening_mistakes=sum(
            1 for a in phase_slice(analyses, "opening") if a.is_mistake or a.is_blunder
        ),
        moves_under_5s=under_5s,
        moves_under_10s=under_10s,
        time_pressure_mistakes=pressure_mistakes,
        survived_opening=len(analyses) >= SURVIVED_OPENING_MOVES,
    )
