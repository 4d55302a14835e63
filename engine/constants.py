"""
Engine constants: piece values, piece-square tables and search parameters.

All numeric constants used by the search and the static evaluation live here
so that tuning never needs to touch the algorithms themselves.

Piece values follow the standard centipawn convention (1 pawn = 100 cp).
Piece-square tables are written as 8x8 grids from White's point of view:
row 0 is rank 8 (the top of a diagram), row 7 is rank 1. Black's tables are
the same grids with the rows reversed, which reflects the rank symmetry of the
board. Files are never mirrored.
"""

import chess

# ---------------------------------------------------------------------------
# Piece values (centipawns)
# ---------------------------------------------------------------------------

PAWN_VALUE: int = 100
KNIGHT_VALUE: int = 320
BISHOP_VALUE: int = 330
ROOK_VALUE: int = 500
QUEEN_VALUE: int = 900
KING_VALUE: int = 20_000  # Both kings are always on the board, so this cancels out

PIECE_VALUES: dict[int, int] = {
    chess.PAWN:   PAWN_VALUE,
    chess.KNIGHT: KNIGHT_VALUE,
    chess.BISHOP: BISHOP_VALUE,
    chess.ROOK:   ROOK_VALUE,
    chess.QUEEN:  QUEEN_VALUE,
    chess.KING:   KING_VALUE,
}

# ---------------------------------------------------------------------------
# Piece-square tables (White's perspective, row 0 = rank 8)
# ---------------------------------------------------------------------------

PAWN_TABLE: list[list[int]] = [
    [0, 0, 0, 0, 0, 0, 0, 0],
    [50, 50, 50, 50, 50, 50, 50, 50],
    [10, 10, 20, 30, 30, 20, 10, 10],
    [5, 5, 10, 25, 25, 10, 5, 5],
    [0, 0, 0, 20, 20, 0, 0, 0],
    [5, -5, -10, 0, 0, -10, -5, 5],
    [5, 10, 10, -20, -20, 10, 10, 5],
    [0, 0, 0, 0, 0, 0, 0, 0],
]

KNIGHT_TABLE: list[list[int]] = [
    [-50, -40, -30, -30, -30, -30, -40, -50],
    [-40, -20, 0, 0, 0, 0, -20, -40],
    [-30, 0, 10, 15, 15, 10, 0, -30],
    [-30, 5, 15, 20, 20, 15, 5, -30],
    [-30, 0, 15, 20, 20, 15, 0, -30],
    [-30, 5, 10, 15, 15, 10, 5, -30],
    [-40, -20, 0, 5, 5, 0, -20, -40],
    [-50, -40, -30, -30, -30, -30, -40, -50],
]

BISHOP_TABLE: list[list[int]] = [
    [-20, -10, -10, -10, -10, -10, -10, -20],
    [-10, 0, 0, 0, 0, 0, 0, -10],
    [-10, 0, 5, 10, 10, 5, 0, -10],
    [-10, 5, 5, 10, 10, 5, 5, -10],
    [-10, 0, 10, 10, 10, 10, 0, -10],
    [-10, 10, 10, 10, 10, 10, 10, -10],
    [-10, 5, 0, 0, 0, 0, 5, -10],
    [-20, -10, -10, -10, -10, -10, -10, -20],
]

ROOK_TABLE: list[list[int]] = [
    [0, 0, 0, 0, 0, 0, 0, 0],
    [5, 10, 10, 10, 10, 10, 10, 5],
    [-5, 0, 0, 0, 0, 0, 0, -5],
    [-5, 0, 0, 0, 0, 0, 0, -5],
    [-5, 0, 0, 0, 0, 0, 0, -5],
    [-5, 0, 0, 0, 0, 0, 0, -5],
    [-5, 0, 0, 0, 0, 0, 0, -5],
    [0, 0, 0, 5, 5, 0, 0, 0],
]

QUEEN_TABLE: list[list[int]] = [
    [-20, -10, -10, -5, -5, -10, -10, -20],
    [-10, 0, 0, 0, 0, 0, 0, -10],
    [-10, 0, 5, 5, 5, 5, 0, -10],
    [-5, 0, 5, 5, 5, 5, 0, -5],
    [0, 0, 5, 5, 5, 5, 0, -5],
    [-10, 5, 5, 5, 5, 5, 0, -10],
    [-10, 0, 5, 0, 0, 0, 0, -10],
    [-20, -10, -10, -5, -5, -10, -10, -20],
]

# Middlegame table only: the king is rewarded for staying behind its pawns.
KING_TABLE: list[list[int]] = [
    [-30, -40, -40, -50, -50, -40, -40, -30],
    [-30, -40, -40, -50, -50, -40, -40, -30],
    [-30, -40, -40, -50, -50, -40, -40, -30],
    [-30, -40, -40, -50, -50, -40, -40, -30],
    [-20, -30, -30, -40, -40, -30, -30, -20],
    [-10, -20, -20, -20, -20, -20, -20, -10],
    [20, 20, 0, 0, 0, 0, 20, 20],
    [20, 30, 10, 0, 0, 10, 30, 20],
]


def mirror_table(table: list[list[int]]) -> list[list[int]]:
    """Return the other side's table: rows reversed, each row left untouched."""
    return [list(row) for row in reversed(table)]


WHITE_PST: dict[int, list[list[int]]] = {
    chess.PAWN:   PAWN_TABLE,
    chess.KNIGHT: KNIGHT_TABLE,
    chess.BISHOP: BISHOP_TABLE,
    chess.ROOK:   ROOK_TABLE,
    chess.QUEEN:  QUEEN_TABLE,
    chess.KING:   KING_TABLE,
}

# Built once at import time; evaluation never mirrors on the fly.
BLACK_PST: dict[int, list[list[int]]] = {
    pt: mirror_table(table) for pt, table in WHITE_PST.items()
}

# ---------------------------------------------------------------------------
# Special scores
# ---------------------------------------------------------------------------
# The checkmate sentinel sits far above any reachable static evaluation
# (both kings cancel, leaving at most a few thousand centipawns). The search
# subtracts the ply distance so a mate in 1 outranks a mate in 3.

CHECKMATE_SCORE: int = 99_999
DRAW_SCORE: int = 0

# Mate scores within this many plies of CHECKMATE_SCORE are reported as
# "score mate N" by the UCI front-end.
MATE_THRESHOLD: int = CHECKMATE_SCORE - 1_000

# ---------------------------------------------------------------------------
# Search parameters
# ---------------------------------------------------------------------------

# Depth used for the live opponent. Depth 3 keeps a pure-Python minimax well
# under a second in typical middlegames.
DEFAULT_DEPTH: int = 3

# Hard ceiling for callers that pass a depth through (UCI "go depth", HTTP).
MAX_DEPTH: int = 6
