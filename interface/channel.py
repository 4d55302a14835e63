"""
Line channel to an out-of-process UCI engine.

A channel owns one child process. Outbound commands are written to its stdin
one per line and flushed immediately; a daemon reader thread delivers every
stdout line (stripped) to the ``on_line`` callback. The gateway is the only
caller and serialises all writes itself.
"""

import logging
import os
import shutil
import subprocess
import sys
import threading
from pathlib import Path
from typing import Callable, Protocol

_log = logging.getLogger(__name__)

_REPO_ROOT = Path(__file__).resolve().parent.parent

# Install locations checked before falling back to PATH lookup.
_ENGINE_PATHS = [
    "/opt/homebrew/bin/stockfish",
    "/usr/local/bin/stockfish",
    "/usr/bin/stockfish",
    "/usr/games/stockfish",
]

LineCallback = Callable[[str], None]


class LineChannel(Protocol):
    """What the gateway needs from a channel."""

    def open(self) -> None: ...

    def send(self, line: str) -> None: ...

    def close(self) -> None: ...


def builtin_engine_command() -> list[str]:
    """Command that runs this repository's own search engine over UCI."""
    return [sys.executable, "-m", "interface.uci"]


def find_engine_command(engine_path: str | None = None) -> list[str]:
    """
    Resolve the evaluator command.

    Order: an explicit path, known install paths, ``stockfish`` on PATH, and
    finally the built-in engine.

    Raises:
        FileNotFoundError: If an explicit path was given and does not exist.
    """
    if engine_path:
        if not Path(engine_path).is_file():
            raise FileNotFoundError(f"Engine executable not found at {engine_path}")
        return [engine_path]

    for path_str in _ENGINE_PATHS:
        if Path(path_str).is_file():
            return [path_str]

    which_result = shutil.which("stockfish")
    if which_result is not None:
        return [which_result]

    _log.warning("no external engine found; using the built-in search engine")
    return builtin_engine_command()


class SubprocessChannel:
    """
    Channel backed by a child process speaking UCI on stdin/stdout.

    Attributes:
        command: argv of the engine process.
        on_line: Callback invoked from the reader thread for every line.
    """

    def __init__(self, command: list[str], on_line: LineCallback, cwd: Path | None = None) -> None:
        self.command = command
        self.on_line = on_line
        self.cwd = cwd or _REPO_ROOT
        self._proc: subprocess.Popen | None = None
        self._reader: threading.Thread | None = None
        self._write_lock = threading.Lock()

    def open(self) -> None:
        """Start the process and the reader thread. Raises OSError on failure."""
        env = {**os.environ, "PYTHONPATH": str(_REPO_ROOT)}
        self._proc = subprocess.Popen(
            self.command,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            bufsize=1,
            cwd=self.cwd,
            env=env,
        )
        self._reader = threading.Thread(target=self._read_loop, daemon=True)
        self._reader.start()
        _log.debug("engine process started: %s (pid %d)", self.command, self._proc.pid)

    def _read_loop(self) -> None:
        proc = self._proc
        if proc is None or proc.stdout is None:
            return
        for raw_line in proc.stdout:
            line = raw_line.strip()
            if line:
                self.on_line(line)
        _log.debug("engine stdout closed")

    def send(self, line: str) -> None:
        """Write one command line. Raises OSError if the process has gone away."""
        proc = self._proc
        if proc is None or proc.stdin is None:
            raise OSError("engine channel is not open")
        with self._write_lock:
            proc.stdin.write(line + "\n")
            proc.stdin.flush()

    def close(self) -> None:
        """Ask the engine to quit, then make sure the process is gone."""
        proc = self._proc
        if proc is None:
            return
        self._proc = None
        try:
            if proc.stdin is not None and not proc.stdin.closed:
                proc.stdin.write("quit\n")
                proc.stdin.flush()
                proc.stdin.close()
        except OSError:
            pass  # Process already exited; nothing left to tell it.
        try:
            proc.wait(timeout=2.0)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait(timeout=2.0)
        if self._reader is not None and self._reader is not threading.current_thread():
            self._reader.join(timeout=2.0)
        self._reader = None
