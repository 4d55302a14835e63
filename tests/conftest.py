"""Shared test fixtures.

Usage:
    pytest tests/            # Fast, in-memory engine channel only
    pytest tests/ --e2e      # Also run the gateway against a real engine process

Fixtures:
    fake_engine   - Scripted UCI responder; tests tweak its behaviour per fen.
    make_gateway  - Builds EngineGateways wired to ScriptedChannels driven by
                    fake_engine, and terminates them after the test.
"""

import threading
import time

import pytest

from interface.gateway import EngineGateway

# ---------------------------------------------------------------------------
# CLI option and marker registration
# ---------------------------------------------------------------------------


def pytest_addoption(parser):
    """Register --e2e CLI flag for tests that spawn an engine process."""
    parser.addoption(
        "--e2e",
        action="store_true",
        default=False,
        help="Run tests that talk to a real engine subprocess.",
    )


def pytest_configure(config):
    """Register the e2e marker."""
    config.addinivalue_line(
        "markers", "e2e: mark test as end-to-end (spawns an engine subprocess)"
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--e2e"):
        return
    skip_e2e = pytest.mark.skip(reason="needs --e2e")
    for item in items:
        if "e2e" in item.keywords:
            item.add_marker(skip_e2e)


# ---------------------------------------------------------------------------
# Scripted engine
# ---------------------------------------------------------------------------


class FakeEngine:
    """
    Replies to UCI commands the way a trivial engine would.

    Attributes:
        evaluations:  fen -> (score, best_move) reported for that position.
        silent_fens:  Positions whose "go" gets no reply until "stop".
        ignore_stop:  When True, "stop" is ignored too, so a timed-out search
                      never drains.
        answer_uci:   When False, the handshake is never acknowledged.
    """

    def __init__(self):
        self.evaluations: dict[str, tuple[int, str]] = {}
        self.silent_fens: set[str] = set()
        self.ignore_stop = False
        self.answer_uci = True

    def reply(self, channel: "ScriptedChannel", command: str) -> list[str]:
        if command == "uci":
            return ["id name Fake", "uciok"] if self.answer_uci else ["id name Fake"]
        if command == "isready":
            return ["readyok"]
        if command.startswith("position fen "):
            channel.fen = command[len("position fen "):]
            return []
        if command.startswith("go depth "):
            depth = int(command.split()[2])
            channel.searching = True
            if channel.fen in self.silent_fens:
                return []
            return self._finish(channel, depth)
        if command == "stop":
            if channel.searching and not self.ignore_stop:
                return self._finish(channel, 1)
            return []
        return []

    def _finish(self, channel: "ScriptedChannel", depth: int) -> list[str]:
        channel.searching = False
        score, best = self.evaluations.get(channel.fen, (0, "e2e4"))
        return [
            f"info depth {depth} seldepth {depth + 4} multipv 1 score cp {score} nodes 42 pv {best}",
            f"bestmove {best}",
        ]


class ScriptedChannel:
    """In-memory LineChannel: replies are delivered synchronously from send()."""

    def __init__(self, on_line, engine: FakeEngine):
        self.on_line = on_line
        self.engine = engine
        self.sent: list[str] = []
        self.opened = False
        self.closed = False
        self.fen = ""
        self.searching = False

    def open(self):
        self.opened = True

    def send(self, line: str):
        if self.closed:
            raise OSError("channel closed")
        self.sent.append(line)
        for reply in self.engine.reply(self, line):
            self.on_line(reply)

    def close(self):
        self.closed = True


@pytest.fixture()
def fake_engine():
    return FakeEngine()


@pytest.fixture()
def make_gateway(fake_engine):
    """Factory for gateways on scripted channels; ``.channels`` lists every channel opened."""
    gateways = []

    def _make(**kwargs):
        channels: list[ScriptedChannel] = []

        def factory(on_line):
            channel = ScriptedChannel(on_line, fake_engine)
            channels.append(channel)
            return channel

        kwargs.setdefault("init_timeout", 0.5)
        kwargs.setdefault("timeout_margin", 0.5)
        kwargs.setdefault("drain_timeout", 0.5)
        gateway = EngineGateway(channel_factory=factory, **kwargs)
        gateway.channels = channels
        gateways.append(gateway)
        return gateway

    yield _make

    for gateway in gateways:
        gateway.terminate()


def wait_until(predicate, timeout: float = 2.0) -> bool:
    """Poll ``predicate`` until it is true or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


@pytest.fixture()
def run_in_threads():
    """Run callables concurrently and return their results in call order."""

    def _run(*calls):
        results = [None] * len(calls)
        errors: list[BaseException] = []

        def worker(i, call):
            try:
                results[i] = call()
            except BaseException as exc:
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(i, c)) for i, c in enumerate(calls)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)
        if errors:
            raise errors[0]
        return results

    return _run
