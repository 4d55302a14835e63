"""Tests for the single-flight engine gateway.

Uses the in-memory ScriptedChannel from conftest; the end-to-end classes at the
bottom talk to the built-in UCI engine over a real subprocess (--e2e).
"""

from unittest.mock import patch

import chess
import pytest

from analysis.analyzer import MoveAnalyzer
from conftest import wait_until
from interface.channel import builtin_engine_command, find_engine_command
from interface.gateway import (
    EngineGateway,
    EngineInitError,
    EngineTerminatedError,
    EngineTimeoutError,
    EvaluateRequest,
    GatewayState,
    SyncRequest,
)

FEN_A = chess.STARTING_FEN
FEN_B = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"
FEN_C = "r1bqkbnr/pppp1ppp/2n5/4p3/2B1P3/5N2/PPPP1PPP/RNBQK2R b KQkq - 3 3"


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:

    def test_starts_uninitialized_and_spawns_nothing(self, make_gateway):
        gateway = make_gateway()
        assert gateway.state is GatewayState.UNINITIALIZED
        assert gateway.channels == []

    def test_initialize_performs_handshake(self, make_gateway):
        gateway = make_gateway()
        gateway.initialize()
        assert gateway.state is GatewayState.READY
        assert gateway.channels[0].sent == ["uci"]

    def test_initialize_is_idempotent(self, make_gateway):
        gateway = make_gateway()
        gateway.initialize()
        gateway.initialize()
        assert len(gateway.channels) == 1

    def test_first_request_initializes_lazily(self, make_gateway):
        gateway = make_gateway()
        gateway.evaluate(FEN_A, depth=5)
        assert gateway.state is GatewayState.READY
        assert len(gateway.channels) == 1

    def test_handshake_timeout_returns_to_uninitialized(self, make_gateway, fake_engine):
        fake_engine.answer_uci = False
        gateway = make_gateway(init_timeout=0.05)
        with pytest.raises(EngineInitError, match="uciok"):
            gateway.initialize()
        assert gateway.state is GatewayState.UNINITIALIZED
        assert gateway.channels[0].closed

    def test_retry_after_failed_handshake(self, make_gateway, fake_engine):
        fake_engine.answer_uci = False
        gateway = make_gateway(init_timeout=0.05)
        with pytest.raises(EngineInitError):
            gateway.evaluate(FEN_A)
        fake_engine.answer_uci = True
        result = gateway.evaluate(FEN_A)
        assert result.best_move == "e2e4"
        assert len(gateway.channels) == 2

    def test_process_start_failure_is_init_error(self):
        def factory(on_line):
            raise FileNotFoundError("no such engine")

        gateway = EngineGateway(channel_factory=factory)
        with pytest.raises(EngineInitError, match="could not start"):
            gateway.initialize()
        assert gateway.state is GatewayState.UNINITIALIZED

    def test_context_manager_terminates(self, make_gateway):
        gateway = make_gateway()
        with gateway:
            assert gateway.state is GatewayState.READY
        assert gateway.state is GatewayState.TERMINATED
        assert gateway.channels[0].closed


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class TestRequests:

    def test_evaluate_returns_accumulated_result(self, make_gateway, fake_engine):
        fake_engine.evaluations[FEN_B] = (-35, "c7c5")
        gateway = make_gateway()
        result = gateway.evaluate(FEN_B, depth=9)
        assert result.score == -35
        assert result.best_move == "c7c5"
        assert result.depth == 9
        assert result.pv == ("c7c5",)

    def test_evaluate_sends_position_then_go(self, make_gateway):
        gateway = make_gateway()
        gateway.evaluate(FEN_B, depth=7)
        assert gateway.channels[0].sent[1:] == [f"position fen {FEN_B}", "go depth 7 movetime 2000"]

    def test_ping_round_trips_isready(self, make_gateway):
        gateway = make_gateway()
        assert gateway.ping() is None
        assert gateway.channels[0].sent[-1] == "isready"

    def test_requests_are_dispatched_in_fifo_order(self, make_gateway, fake_engine):
        fake_engine.silent_fens.add(FEN_A)
        gateway = make_gateway(timeout_margin=5.0)
        first = gateway.submit(EvaluateRequest(FEN_A, depth=1, time_limit_ms=1))
        assert wait_until(lambda: gateway.state is GatewayState.BUSY)

        second = gateway.submit(EvaluateRequest(FEN_B, depth=2))
        third = gateway.submit(SyncRequest())
        fourth = gateway.submit(EvaluateRequest(FEN_C, depth=3))

        # Nothing else is written while the first request is in flight.
        channel = gateway.channels[0]
        assert wait_until(lambda: channel.sent[-1:] == ["go depth 1 movetime 1"])

        fake_engine.silent_fens.clear()
        channel.on_line("info depth 1 score cp 5 pv e2e4")
        channel.on_line("bestmove e2e4")

        assert first.result(timeout=2).best_move == "e2e4"
        assert second.result(timeout=2).depth == 2
        assert third.result(timeout=2) is None
        assert fourth.result(timeout=2).depth == 3
        assert channel.sent[1:] == [
            f"position fen {FEN_A}", "go depth 1 movetime 1",
            f"position fen {FEN_B}", "go depth 2 movetime 2000",
            "isready",
            f"position fen {FEN_C}", "go depth 3 movetime 2000",
        ]

    def test_concurrent_callers_get_their_own_results(self, make_gateway, fake_engine, run_in_threads):
        fake_engine.evaluations = {
            FEN_A: (20, "e2e4"),
            FEN_B: (-30, "e7e5"),
            FEN_C: (45, "g8f6"),
        }
        gateway = make_gateway()
        fens = [FEN_A, FEN_B, FEN_C] * 4
        results = run_in_threads(*[lambda fen=fen: gateway.evaluate(fen) for fen in fens])
        for fen, result in zip(fens, results):
            assert (result.score, result.best_move) == fake_engine.evaluations[fen]

    def test_lines_without_a_request_are_dropped(self, make_gateway, fake_engine):
        fake_engine.evaluations[FEN_B] = (12, "d7d5")
        gateway = make_gateway()
        gateway.initialize()
        channel = gateway.channels[0]
        channel.on_line("info depth 30 score mate 1")
        channel.on_line("bestmove a2a3")
        result = gateway.evaluate(FEN_B, depth=4)
        assert (result.score, result.best_move, result.mate) == (12, "d7d5", None)


# ---------------------------------------------------------------------------
# Timeouts
# ---------------------------------------------------------------------------


class TestTimeouts:

    def test_timeout_sends_stop_and_drains(self, make_gateway, fake_engine):
        fake_engine.silent_fens.add(FEN_A)
        gateway = make_gateway(timeout_margin=0.05)
        with pytest.raises(EngineTimeoutError):
            gateway.evaluate(FEN_A, time_limit_ms=10)
        channel = gateway.channels[0]
        assert wait_until(lambda: "stop" in channel.sent)

        # The drained "bestmove" did not leak into the next request.
        fake_engine.evaluations[FEN_B] = (77, "g8f6")
        result = gateway.evaluate(FEN_B, depth=3)
        assert (result.score, result.best_move) == (77, "g8f6")
        assert len(gateway.channels) == 1

    def test_queue_continues_after_timeout(self, make_gateway, fake_engine):
        fake_engine.silent_fens.add(FEN_A)
        gateway = make_gateway(timeout_margin=0.05)
        stuck = gateway.submit(EvaluateRequest(FEN_A, time_limit_ms=10))
        after = gateway.submit(EvaluateRequest(FEN_C, depth=2))
        with pytest.raises(EngineTimeoutError):
            stuck.result(timeout=2)
        assert after.result(timeout=2).depth == 2

    def test_undrained_engine_is_restarted(self, make_gateway, fake_engine):
        fake_engine.silent_fens.add(FEN_A)
        fake_engine.ignore_stop = True
        gateway = make_gateway(timeout_margin=0.05, drain_timeout=0.05)
        with pytest.raises(EngineTimeoutError):
            gateway.evaluate(FEN_A, time_limit_ms=10)
        assert wait_until(lambda: gateway.state is GatewayState.UNINITIALIZED)
        assert gateway.channels[0].closed

        result = gateway.evaluate(FEN_B, depth=6)
        assert result.depth == 6
        assert len(gateway.channels) == 2

    def test_late_lines_from_old_channel_are_ignored(self, make_gateway, fake_engine):
        fake_engine.silent_fens.add(FEN_A)
        fake_engine.ignore_stop = True
        gateway = make_gateway(timeout_margin=0.05, drain_timeout=0.05)
        with pytest.raises(EngineTimeoutError):
            gateway.evaluate(FEN_A, time_limit_ms=10)
        old = gateway.channels[0]

        fake_engine.silent_fens.add(FEN_B)
        pending = gateway.submit(EvaluateRequest(FEN_B, depth=4, time_limit_ms=2000))
        assert wait_until(lambda: gateway.state is GatewayState.BUSY)

        old.on_line("info depth 40 score cp 9999")
        old.on_line("bestmove h2h4")
        assert not pending.done()

        new = gateway.channels[1]
        new.on_line("info depth 4 score cp 15 pv b8c6")
        new.on_line("bestmove b8c6")
        result = pending.result(timeout=2)
        assert (result.score, result.best_move) == (15, "b8c6")


# ---------------------------------------------------------------------------
# Termination
# ---------------------------------------------------------------------------


class TestTerminate:

    def test_rejects_current_and_queued_requests(self, make_gateway, fake_engine):
        fake_engine.silent_fens.add(FEN_A)
        gateway = make_gateway(timeout_margin=30.0)
        current = gateway.submit(EvaluateRequest(FEN_A))
        assert wait_until(lambda: gateway.state is GatewayState.BUSY)
        queued = [gateway.submit(EvaluateRequest(FEN_B)), gateway.submit(SyncRequest())]

        gateway.terminate()

        for future in [current, *queued]:
            with pytest.raises(EngineTerminatedError):
                future.result(timeout=2)
        assert gateway.state is GatewayState.TERMINATED
        assert gateway.channels[0].closed

    def test_reinitializes_after_terminate(self, make_gateway):
        gateway = make_gateway()
        gateway.evaluate(FEN_A)
        gateway.terminate()
        result = gateway.evaluate(FEN_B)
        assert result.best_move == "e2e4"
        assert len(gateway.channels) == 2

    def test_terminate_without_initialize(self, make_gateway):
        gateway = make_gateway()
        gateway.terminate()
        assert gateway.state is GatewayState.TERMINATED


# ---------------------------------------------------------------------------
# Engine discovery
# ---------------------------------------------------------------------------


class TestFindEngineCommand:

    def test_explicit_path_must_exist(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="not found"):
            find_engine_command(str(tmp_path / "missing"))

    def test_explicit_path_is_used(self, tmp_path):
        binary = tmp_path / "stockfish"
        binary.write_text("")
        assert find_engine_command(str(binary)) == [str(binary)]

    def test_found_on_path(self):
        with patch("interface.channel.Path.is_file", return_value=False), \
             patch("interface.channel.shutil.which", return_value="/somewhere/stockfish"):
            assert find_engine_command() == ["/somewhere/stockfish"]

    def test_falls_back_to_builtin_engine(self):
        with patch("interface.channel.Path.is_file", return_value=False), \
             patch("interface.channel.shutil.which", return_value=None):
            assert find_engine_command() == builtin_engine_command()


# ---------------------------------------------------------------------------
# End to end against the built-in UCI engine
# ---------------------------------------------------------------------------


@pytest.mark.e2e
class TestBuiltinEngineProcess:

    @pytest.fixture()
    def gateway(self):
        gw = EngineGateway(command=builtin_engine_command(), init_timeout=15.0, timeout_margin=30.0)
        yield gw
        gw.terminate()

    def test_evaluates_start_position(self, gateway):
        result = gateway.evaluate(chess.STARTING_FEN, depth=2)
        board = chess.Board()
        assert chess.Move.from_uci(result.best_move) in board.legal_moves
        assert result.depth == 2

    def test_reports_mate_from_side_to_move(self, gateway):
        result = gateway.evaluate("6k1/5ppp/8/8/8/8/8/R5K1 w - - 0 1", depth=2)
        assert result.best_move == "a1a8"
        assert result.mate == 1

    def test_sequential_requests_share_one_process(self, gateway):
        fens = [chess.STARTING_FEN, FEN_B, FEN_C]
        results = [gateway.evaluate(fen, depth=1) for fen in fens]
        for fen, result in zip(fens, results):
            assert chess.Move.from_uci(result.best_move) in chess.Board(fen).legal_moves
        gateway.ping()

    def test_checkmated_position_has_no_best_move(self, gateway):
        fen = "rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 1 3"
        result = gateway.evaluate(fen, depth=2)
        assert result.best_move is None
        assert result.mate == 0


@pytest.mark.e2e
class TestBuiltinEngineDefaultLimits:
    """Default depth, time limit and timeouts, as the web service runs them."""

    @pytest.fixture()
    def gateway(self):
        gw = EngineGateway(command=builtin_engine_command())
        yield gw
        gw.terminate()

    def test_deep_request_answers_within_its_time_limit(self, gateway):
        result = gateway.evaluate(FEN_C)
        assert chess.Move.from_uci(result.best_move) in chess.Board(FEN_C).legal_moves
        assert result.depth >= 1

    def test_game_analysis_grades_every_ply(self, gateway):
        analyses = MoveAnalyzer(gateway).analyze_game(["e4", "e5"])
        assert [a.move for a in analyses] == ["e4", "e5"]
