"""
UCI line grammar shared by the gateway: outbound commands and inbound parsing.

Everything here is pure. The gateway owns one SearchAccumulator per in-flight
request and folds every line the engine prints into it with parse_line().
Nothing in this module knows about threads, queues or processes.

Recognised inbound tokens:
    uciok                 handshake acknowledgement
    readyok               reply to "isready"
    ... score cp <int>    running centipawn score
    ... score mate <int>  forced mate; score becomes ±MATE_SCORE_CP
    ... depth <int>       depth reached (whole word, so "seldepth" is skipped)
    ... pv <moves>        principal variation (whole word, so "multipv" is skipped)
    bestmove <move> ...   terminal line for a search request

Any other line is ignored.
"""

import re
from dataclasses import dataclass, field, replace

HANDSHAKE_COMMAND = "uci"
HANDSHAKE_ACK = "uciok"
READY_COMMAND = "isready"
READY_ACK = "readyok"
STOP_COMMAND = "stop"
QUIT_COMMAND = "quit"
BESTMOVE_TOKEN = "bestmove"
NO_MOVE_TOKEN = "(none)"

# Centipawn stand-in for "mate in N", signed by the side that mates.
MATE_SCORE_CP = 10_000

_SCORE_CP_RE = re.compile(r"\bscore cp (-?\d+)")
_SCORE_MATE_RE = re.compile(r"\bscore mate (-?\d+)")
_DEPTH_RE = re.compile(r"\bdepth (\d+)")
_PV_RE = re.compile(r"\bpv (.+)$")
_BESTMOVE_RE = re.compile(r"^bestmove (\S+)")


@dataclass(frozen=True)
class EngineEvaluation:
    """
    Result of one completed evaluation request.

    Attributes:
        score:     Centipawns from the perspective of the side to move in the
                   evaluated position (the UCI convention).
        mate:      Mate distance in moves, positive when the side to move
                   mates, or None.
        best_move: Best move in UCI notation, or None if the engine reported
                   "(none)".
        depth:     Deepest depth reported.
        pv:        Principal variation as UCI moves.
    """

    score: int = 0
    mate: int | None = None
    best_move: str | None = None
    depth: int = 0
    pv: tuple[str, ...] = field(default_factory=tuple)


# The running accumulator has the same shape as the finished evaluation.
SearchAccumulator = EngineEvaluation


def position_command(fen: str) -> str:
    return f"position fen {fen}"


def go_command(depth: int, movetime_ms: int | None = None) -> str:
    """Search to ``depth``, giving up after ``movetime_ms`` when it is set."""
    if movetime_ms:
        return f"go depth {depth} movetime {movetime_ms}"
    return f"go depth {depth}"


def parse_line(acc: SearchAccumulator, line: str) -> tuple[SearchAccumulator, bool]:
    """
    Fold one engine output line into the accumulator.

    Args:
        acc:  Accumulator for the current request.
        line: One line of engine output, without the trailing newline.

    Returns:
        Tuple of (new accumulator, finished). ``finished`` is True only for a
        "bestmove" line.
    """
    line = line.strip()

    bestmove = _BESTMOVE_RE.match(line)
    if bestmove:
        token = bestmove.group(1)
        return replace(acc, best_move=None if token == NO_MOVE_TOKEN else token), True

    changes: dict = {}

    cp = _SCORE_CP_RE.search(line)
    if cp:
        changes["score"] = int(cp.group(1))
        changes["mate"] = None

    mate = _SCORE_MATE_RE.search(line)
    if mate:
        distance = int(mate.group(1))
        changes["mate"] = distance
        changes["score"] = MATE_SCORE_CP if distance > 0 else -MATE_SCORE_CP

    depth = _DEPTH_RE.search(line)
    if depth:
        changes["depth"] = int(depth.group(1))

    pv = _PV_RE.search(line)
    if pv:
        changes["pv"] = tuple(pv.group(1).split())

    if not changes:
        return acc, False
    return replace(acc, **changes), False
