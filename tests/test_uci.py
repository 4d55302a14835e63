"""Tests for the built-in engine's UCI front-end."""

import io
import time

import chess
import pytest

from engine.constants import CHECKMATE_SCORE, DEFAULT_DEPTH, MAX_DEPTH
from interface.uci import (
    UciSession,
    format_score,
    parse_go_depth,
    parse_go_movetime,
    parse_position,
    run_uci_loop,
)


def _run(commands: str, capsys) -> list[str]:
    run_uci_loop(io.StringIO(commands))
    return capsys.readouterr().out.splitlines()


class TestFormatScore:

    def test_white_to_move_keeps_sign(self):
        assert format_score(35, chess.WHITE) == "cp 35"

    def test_black_to_move_negates(self):
        assert format_score(35, chess.BLACK) == "cp -35"

    def test_mate_for_side_to_move(self):
        assert format_score(CHECKMATE_SCORE - 1, chess.WHITE) == "mate 1"
        assert format_score(-(CHECKMATE_SCORE - 3), chess.BLACK) == "mate 2"

    def test_mated_side_to_move(self):
        assert format_score(CHECKMATE_SCORE - 2, chess.BLACK) == "mate -1"


class TestParseGoDepth:

    def test_explicit_depth(self):
        assert parse_go_depth(["depth", "2"]) == 2

    def test_depth_is_clamped(self):
        assert parse_go_depth(["depth", "99"]) == MAX_DEPTH
        assert parse_go_depth(["depth", "0"]) == 1

    @pytest.mark.parametrize("tokens", [[], ["movetime", "1000"], ["infinite"], ["depth"], ["depth", "x"]])
    def test_default_depth(self, tokens):
        assert parse_go_depth(tokens) == DEFAULT_DEPTH


class TestParseGoMovetime:

    def test_movetime(self):
        assert parse_go_movetime(["depth", "15", "movetime", "2000"]) == 2000

    @pytest.mark.parametrize("tokens", [[], ["depth", "3"], ["movetime"], ["movetime", "soon"], ["movetime", "0"]])
    def test_absent_or_unusable(self, tokens):
        assert parse_go_movetime(tokens) is None


class TestParsePosition:

    def test_startpos(self):
        assert parse_position(["startpos"]) == chess.Board()

    def test_unknown_kind(self):
        with pytest.raises(ValueError, match="unknown position"):
            parse_position(["somewhere"])

    def test_bad_fen(self):
        with pytest.raises(ValueError):
            parse_position(["fen", "8/8/8", "w"])

    def test_malformed_move_keeps_prefix(self):
        board = parse_position(["startpos", "moves", "g1f3", "zz99"])
        assert board.move_stack == [chess.Move.from_uci("g1f3")]


class TestPosition:

    def test_startpos_with_moves(self):
        session = UciSession()
        session.on_position(["startpos", "moves", "e2e4", "e7e5"])
        expected = chess.Board()
        expected.push_uci("e2e4")
        expected.push_uci("e7e5")
        assert session.board == expected

    def test_fen_with_moves(self):
        session = UciSession()
        fen = "6k1/5ppp/8/8/8/8/8/R5K1 w - - 0 1"
        session.on_position(["fen", *fen.split(), "moves", "a1a8"])
        assert session.board.is_checkmate()

    def test_illegal_move_stops_replay(self):
        session = UciSession()
        session.on_position(["startpos", "moves", "e2e4", "e2e4", "d7d5"])
        assert len(session.board.move_stack) == 1

    def test_bad_fen_keeps_previous_board(self):
        session = UciSession()
        session.on_position(["startpos", "moves", "d2d4"])
        session.on_position(["fen", "not", "a", "fen"])
        assert session.board.move_stack == [chess.Move.from_uci("d2d4")]


class TestUciLoop:

    def test_handshake(self, capsys):
        out = _run("uci\nisready\n", capsys)
        assert out[0] == "id name Ruthless"
        assert out[-2:] == ["uciok", "readyok"]

    def test_go_reports_info_then_bestmove(self, capsys):
        out = _run("position startpos moves e2e4\ngo depth 1\n", capsys)
        info = [line for line in out if line.startswith("info depth 1 ")]
        assert info and " score cp " in info[0] and " pv " in info[0]
        assert out[-1].startswith("bestmove ")
        board = chess.Board()
        board.push_uci("e2e4")
        assert chess.Move.from_uci(out[-1].split()[1]) in board.legal_moves

    def test_mate_is_reported_as_mate(self, capsys):
        out = _run("position fen 6k1/5ppp/8/8/8/8/8/R5K1 w - - 0 1\ngo depth 2\n", capsys)
        assert any("score mate 1" in line for line in out)
        assert out[-1] == "bestmove a1a8"

    def test_no_legal_move(self, capsys):
        out = _run("position fen 7k/5Q2/6K1/8/8/8/8/8 b - - 0 1\ngo depth 2\n", capsys)
        assert out[-1] == "bestmove (none)"

    def test_unknown_command_is_ignored(self, capsys):
        out = _run("xyzzy\nisready\n", capsys)
        assert out == ["readyok"]

    def test_explicit_output_stream(self):
        out = io.StringIO()
        run_uci_loop(io.StringIO("isready\nucinewgame\nisready\n"), out)
        assert out.getvalue().splitlines() == ["readyok", "readyok"]

    def test_quit_exits(self, capsys):
        with pytest.raises(SystemExit):
            _run("isready\nquit\nisready\n", capsys)
        assert capsys.readouterr().out.splitlines() == ["readyok"]

    def test_every_completed_depth_is_reported(self, capsys):
        out = _run("position startpos\ngo depth 3\n", capsys)
        depths = [int(line.split()[2]) for line in out if line.startswith("info depth ")]
        assert depths == [1, 2, 3]

    def test_movetime_cuts_a_deep_search_short(self, capsys):
        fen = "r1bqkb1r/pppp1ppp/2n2n2/4p3/2B1P3/5N2/PPPP1PPP/RNBQK2R w KQkq - 4 4"
        started = time.monotonic()
        out = _run(f"position fen {fen}\ngo depth {MAX_DEPTH} movetime 300\n", capsys)
        assert time.monotonic() - started < 5.0
        assert chess.Move.from_uci(out[-1].split()[1]) in chess.Board(fen).legal_moves

    def test_movetime_alone_still_moves(self, capsys):
        out = _run("position startpos\ngo movetime 200\n", capsys)
        assert out[0].startswith("info depth 1 ")
        assert chess.Move.from_uci(out[-1].split()[1]) in chess.Board().legal_moves

    def test_draw_by_rule_still_has_a_bestmove(self, capsys):
        out = _run("position fen 8/8/8/4k3/8/8/8/4K3 w - - 0 1\ngo depth 2\n", capsys)
        assert out[-1] != "bestmove (none)"
        assert chess.Move.from_uci(out[-1].split()[1]) in chess.Board("8/8/8/4k3/8/8/8/4K3 w - - 0 1").legal_moves
