"""
Search entry point: minimax with alpha-beta pruning and capture-first ordering.

White is always the maximizing side because engine.evaluate scores positions
from White's perspective. The root starts maximizing when White is to move and
minimizing otherwise; every recursive call flips the flag.

Public interface:
    select_move()     : best move at a fixed depth, or None if the game is over
    search_position() : instrumented search returning (SearchResult, nodes)
    choose_move()     : select_move() with a random-legal-move fallback, used by
                        the live opponent so it always has a move to play

Board ownership:
    The search never touches the caller's board. It copies the position once at
    the root and explores the copy with push/pop, so sibling branches never see
    each other's intermediate moves.
"""

import logging
import random
import threading
from dataclasses import dataclass, field
from typing import Iterable

import chess

from engine.constants import CHECKMATE_SCORE, DEFAULT_DEPTH, DRAW_SCORE
from engine.evaluate import evaluate

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchResult:
    """
    Outcome of one minimax call.

    Attributes:
        score: Centipawns from White's perspective. Forced mates are reported
               as ``±(CHECKMATE_SCORE - ply)``.
        move:  Best move at this node. Only the root's move is meaningful;
               leaves and terminal nodes carry None.
    """

    score: int
    move: chess.Move | None = None


@dataclass
class SearchState:
    """
    Per-search bookkeeping.

    Attributes:
        prune:      When False, alpha-beta cutoffs are disabled and the search
                    is full width. Used to check that pruning only changes the
                    amount of work, never the result.
        stop_event: Optional event set by the UCI "stop" command. Once set,
                    every remaining node below the root returns its static
                    evaluation, so the root still picks a move.
        node_count: Number of nodes visited.
    """

    prune: bool = True
    stop_event: threading.Event = field(default_factory=threading.Event)
    node_count: int = 0


def order_moves(board: chess.Board, moves: Iterable[chess.Move]) -> list[chess.Move]:
    """
    Captures first, then quiet moves.

    A plain two-way partition; the relative order inside each group is the
    generation order (sorted() is stable). Searching captures first raises
    alpha early and lets the remaining siblings prune.
    """
    return sorted(moves, key=lambda move: not board.is_capture(move))


def _terminal_score(board: chess.Board, maximizing: bool, ply: int) -> int:
    if board.is_checkmate():
        mate = CHECKMATE_SCORE - ply
        # The side to move is mated: worst possible score for it.
        return -mate if maximizing else mate
    return DRAW_SCORE


def minimax(
    board: chess.Board,
    depth: int,
    alpha: int,
    beta: int,
    maximizing: bool,
    ply: int,
    state: SearchState,
) -> SearchResult:
    """
    Depth-limited minimax with alpha-beta pruning.

    Args:
        board:      Private working copy, restored to its original state on
                    return.
        depth:      Remaining depth in plies.
        alpha:      Best score the maximizer can already guarantee.
        beta:       Best score the minimizer can already guarantee.
        maximizing: True when the side to move is White.
        ply:        Distance from the root, used to prefer faster mates.
        state:      Search bookkeeping.

    Returns:
        SearchResult with the node's score and, for internal nodes, the move
        that produced it.
    """
    state.node_count += 1

    # Draws by rule (insufficient material, 75 moves, fivefold) still leave
    # legal moves, and the root must return one of them.
    terminal = board.is_game_over() if ply > 0 else not any(board.legal_moves)
    if terminal:
        return SearchResult(_terminal_score(board, maximizing, ply))

    if depth == 0 or (ply > 0 and state.stop_event.is_set()):
        return SearchResult(evaluate(board))

    best_move: chess.Move | None = None
    best_score = 0

    for move in order_moves(board, board.legal_moves):
        board.push(move)
        score = minimax(board, depth - 1, alpha, beta, not maximizing, ply + 1, state).score
        board.pop()

        # Ties keep the earlier move, which is what makes the pruned and
        # full-width searches agree on the chosen move.
        if maximizing:
            if best_move is None or score > best_score:
                best_score, best_move = score, move
            alpha = max(alpha, score)
        else:
            if best_move is None or score < best_score:
                best_score, best_move = score, move
            beta = min(beta, score)

        if state.prune and beta <= alpha:
            break

    return SearchResult(best_score, best_move)


def search_position(
    board: chess.Board,
    depth: int = DEFAULT_DEPTH,
    prune: bool = True,
    stop_event: threading.Event | None = None,
) -> tuple[SearchResult, int]:
    """
    Run a fixed-depth search and report the node count.

    Args:
        board:      Position to search. Not modified.
        depth:      Search depth in plies (>= 1).
        prune:      Enable alpha-beta cutoffs.
        stop_event: Optional cancellation event.

    Returns:
        Tuple of (SearchResult, nodes visited). The result's move is None when
        the position has no legal move.
    """
    if depth < 1:
        raise ValueError(f"search depth must be >= 1, got {depth}")

    state = SearchState(prune=prune)
    if stop_event is not None:
        state.stop_event = stop_event

    work = board.copy()
    result = minimax(
        work,
        depth,
        -CHECKMATE_SCORE - 1,
        CHECKMATE_SCORE + 1,
        work.turn == chess.WHITE,
        0,
        state,
    )
    return result, state.node_count


def select_move(board: chess.Board, depth: int = DEFAULT_DEPTH) -> chess.Move | None:
    """
    Return the best move for the side to move, or None if there is none.

    None is a terminal-state signal (checkmate or stalemate), not an error.
    """
    if not any(board.legal_moves):
        return None
    result, nodes = search_position(board, depth)
    _log.debug(
        "search depth=%d nodes=%d score=%d move=%s",
        depth,
        nodes,
        result.score,
        result.move.uci() if result.move else None,
    )
    return result.move


def choose_move(
    board: chess.Board,
    depth: int = DEFAULT_DEPTH,
    rng: random.Random | None = None,
) -> chess.Move | None:
    """
    Pick the opponent's move, falling back to a random legal move.

    The live opponent must always move. Any exception escaping the search, or
    a missing move in a position that still has legal moves, is logged and
    replaced by a uniformly random legal move.

    Returns:
        A legal move, or None when the game is already over.
    """
    legal_moves = list(board.legal_moves)
    if not legal_moves:
        return None

    try:
        move = select_move(board, depth)
    except Exception:
        _log.exception("search failed for fen=%s; playing a random move", board.fen())
        move = None

    if move is None or move not in legal_moves:
        move = (rng or random).choice(legal_moves)
    return move
