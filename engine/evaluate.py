"""
Static evaluation: material plus piece-square bonuses.

The score is always returned from White's perspective: positive means White is
ahead. The minimax search treats White as the maximizing side, so the sign
never has to be flipped inside the search itself.

Square indexing:
    python-chess numbers squares a1=0 .. h8=63, so rank 0 is the bottom of the
    board. The piece-square grids are written top-down (row 0 = rank 8), which
    makes the row for a square ``7 - rank`` for both colours. Black reads from
    the row-reversed grid built in engine.constants.
"""

import chess

from engine.constants import BLACK_PST, PIECE_VALUES, WHITE_PST


def piece_square_bonus(piece_type: int, square: int, color: bool) -> int:
    """
    Positional bonus for a piece of the given colour standing on ``square``.

    Args:
        piece_type: python-chess piece type constant.
        square:     Square index (a1=0).
        color:      chess.WHITE or chess.BLACK.

    Returns:
        Bonus in centipawns from the owning side's point of view.
    """
    table = WHITE_PST[piece_type] if color == chess.WHITE else BLACK_PST[piece_type]
    row = 7 - chess.square_rank(square)
    col = chess.square_file(square)
    return table[row][col]


def evaluate(board: chess.Board) -> int:
    """
    Centipawn evaluation of ``board`` from White's perspective.

    Sums ``material + piece-square bonus`` for every piece, adding White's
    pieces and subtracting Black's. The board is not modified.

    Example:
        >>> import chess
        >>> evaluate(chess.Board())
        0
    """
    total = 0
    for square, piece in board.piece_map().items():
        value = PIECE_VALUES[piece.piece_type]
        value += piece_square_bonus(piece.piece_type, square, piece.color)
        total += value if piece.color == chess.WHITE else -value
    return total
