"""
UCI front-end for the built-in search engine.

Lets the minimax engine run as an out-of-process evaluator behind
interface.gateway.EngineGateway, which is what the analysis pipeline falls back
to when no Stockfish binary is installed. Run it from the repository root:

    python -m interface.uci

Supported commands: uci, isready, ucinewgame, position, go, stop, quit.
Replies: id, uciok, readyok, one "info" line per completed depth, bestmove.
"go" understands "depth N" and "movetime T"; other limits search at the
default depth.

Scores are reported from the side to move's perspective, as UCI requires; the
search itself scores from White's perspective, so Black's scores are negated
on the way out.

stdout carries protocol lines only. Diagnostics go through logging, which
writes to stderr.
"""

import logging
import sys
import threading
import time
from typing import Callable, TextIO

import chess

from engine.constants import CHECKMATE_SCORE, DEFAULT_DEPTH, MATE_THRESHOLD, MAX_DEPTH
from engine.search import search_position

_log = logging.getLogger(__name__)

ENGINE_NAME = "Ruthless"
ENGINE_AUTHOR = "Ruthless Chess"


def format_score(score: int, turn: bool) -> str:
    """
    Render a White-perspective search score as a UCI score token.

    Mate scores are ``CHECKMATE_SCORE - ply``; the ply distance becomes a
    move count, positive when the side to move delivers the mate.
    """
    relative = score if turn == chess.WHITE else -score
    if abs(relative) >= MATE_THRESHOLD:
        plies = CHECKMATE_SCORE - abs(relative)
        moves = (plies + 1) // 2
        return f"mate {moves if relative > 0 else -moves}"
    return f"cp {relative}"


def parse_go_depth(tokens: list[str]) -> int:
    """
    Depth requested by a "go" command, clamped to [1, MAX_DEPTH].

    ``go depth N`` is honoured; anything else (movetime, clock times,
    infinite) searches at DEFAULT_DEPTH, since the search is depth bounded.
    """
    try:
        requested = int(tokens[tokens.index("depth") + 1])
    except ValueError:
        if "depth" in tokens:
            _log.warning("uci: bad depth in go command: %s", tokens)
        return DEFAULT_DEPTH
    except IndexError:
        _log.warning("uci: go depth without a value")
        return DEFAULT_DEPTH
    return max(1, min(MAX_DEPTH, requested))


def parse_go_movetime(tokens: list[str]) -> int | None:
    """Milliseconds from ``go ... movetime T``, or None when absent or malformed."""
    if "movetime" not in tokens:
        return None
    try:
        movetime = int(tokens[tokens.index("movetime") + 1])
    except (IndexError, ValueError):
        _log.warning("uci: bad movetime in go command: %s", tokens)
        return None
    return movetime if movetime > 0 else None


def parse_position(tokens: list[str]) -> chess.Board:
    """
    Build the board described by the arguments of a "position" command.

        startpos [moves m1 m2 ...]
        fen <six FEN fields> [moves m1 m2 ...]

    Replay stops at the first malformed or illegal move; the moves before it
    are kept.

    Raises:
        ValueError: Unknown position kind or an invalid FEN.
    """
    if "moves" in tokens:
        split = tokens.index("moves")
        head, moves = tokens[:split], tokens[split + 1:]
    else:
        head, moves = tokens, []

    if head[:1] == ["startpos"]:
        board = chess.Board()
    elif head[:1] == ["fen"]:
        board = chess.Board(" ".join(head[1:]))
    else:
        raise ValueError(f"unknown position kind: {head[:1]}")

    for token in moves:
        try:
            board.push_uci(token)
        except ValueError:
            _log.warning("uci: stopping replay at bad move %r", token)
            break
    return board


class UciSession:
    """
    One UCI conversation over a pair of text streams.

    Attributes:
        board:  Position set by the last "position" command.
        out:    Stream protocol lines are written to.
    """

    def __init__(self, out: TextIO | None = None) -> None:
        self.board = chess.Board()
        self.out = out or sys.stdout
        self._out_lock = threading.Lock()
        self._worker: threading.Thread | None = None
        self._stop = threading.Event()
        self._commands: dict[str, Callable[[list[str]], None]] = {
            "uci": self.on_uci,
            "isready": self.on_isready,
            "ucinewgame": self.on_ucinewgame,
            "position": self.on_position,
            "go": self.on_go,
            "stop": self.on_stop,
            "quit": self.on_quit,
        }

    def reply(self, line: str) -> None:
        """Write one protocol line and flush it immediately."""
        with self._out_lock:
            self.out.write(line + "\n")
            self.out.flush()

    def dispatch(self, line: str) -> None:
        tokens = line.split()
        if not tokens:
            return
        handler = self._commands.get(tokens[0])
        if handler is None:
            _log.debug("uci: ignoring unknown command %r", tokens[0])
            return
        handler(tokens[1:])

    # Commands

    def on_uci(self, args: list[str]) -> None:
        self.reply(f"id name {ENGINE_NAME}")
        self.reply(f"id author {ENGINE_AUTHOR}")
        self.reply("uciok")

    def on_isready(self, args: list[str]) -> None:
        self.reply("readyok")

    def on_ucinewgame(self, args: list[str]) -> None:
        self.halt()
        self.board = chess.Board()

    def on_position(self, args: list[str]) -> None:
        try:
            self.board = parse_position(args)
        except ValueError as exc:
            _log.warning("uci: bad position command: %s", exc)

    def on_go(self, args: list[str]) -> None:
        """
        Search the current position in a worker thread.

        Reading continues meanwhile so "stop" is honoured. The worker gets its
        own board copy, so a following "position" cannot race with it. With
        ``movetime`` and no ``depth`` the search deepens up to MAX_DEPTH until
        the time runs out.
        """
        self.halt()
        movetime_ms = parse_go_movetime(args)
        if movetime_ms is not None and "depth" not in args:
            depth = MAX_DEPTH
        else:
            depth = parse_go_depth(args)
        self._stop = threading.Event()
        self._worker = threading.Thread(
            target=self._search,
            args=(self.board.copy(), depth, self._stop, movetime_ms),
            daemon=True,
        )
        self._worker.start()

    def on_stop(self, args: list[str]) -> None:
        self.halt()

    def on_quit(self, args: list[str]) -> None:
        self.halt()
        raise SystemExit(0)

    def halt(self) -> None:
        """Signal the running search and wait until it has sent "bestmove"."""
        self._stop.set()
        worker, self._worker = self._worker, None
        if worker is not None:
            worker.join(timeout=2.0)

    def wait(self) -> None:
        """Let the running search finish on its own."""
        worker, self._worker = self._worker, None
        if worker is not None:
            worker.join()

    def _search(
        self,
        board: chess.Board,
        depth: int,
        stop: threading.Event,
        movetime_ms: int | None = None,
    ) -> None:
        """
        Deepen one ply at a time up to ``depth``, reporting each completed ply.

        ``movetime_ms`` arms a timer that sets ``stop``. An iteration cut
        short by ``stop`` is discarded and the last completed one is played.
        Depth 1 always completes, so a move is found whenever one exists.
        """
        best = "(none)"
        deadline = None
        if movetime_ms is not None:
            deadline = threading.Timer(movetime_ms / 1000, stop.set)
            deadline.daemon = True
            deadline.start()
        started = time.monotonic()
        nodes = 0
        try:
            for current in range(1, depth + 1):
                result, searched = search_position(board, current, stop_event=stop)
                nodes += searched
                if current > 1 and stop.is_set():
                    break
                score = format_score(result.score, board.turn)
                if result.move is None:
                    self.reply(f"info depth 0 score {score}")
                    break
                best = result.move.uci()
                elapsed_ms = max(1, int((time.monotonic() - started) * 1000))
                self.reply(f"info depth {current} score {score} nodes {nodes} time {elapsed_ms} pv {best}")
                if stop.is_set():
                    break
        except Exception:
            _log.exception("uci: search failed for %s", board.fen())
        finally:
            if deadline is not None:
                deadline.cancel()
            self.reply(f"bestmove {best}")


def run_uci_loop(stream: TextIO | None = None, out: TextIO | None = None) -> None:
    """
    Read commands until "quit" or end of input.

    At end of input a running search is allowed to finish and report.

    A failing command is logged and the loop continues; "quit" raises
    SystemExit after the running search has finished.
    """
    session = UciSession(out)
    for raw_line in stream or sys.stdin:
        try:
            session.dispatch(raw_line.strip())
        except Exception:
            _log.exception("uci: command failed: %r", raw_line.strip())
    session.wait()


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING, stream=sys.stderr)
    run_uci_loop()
