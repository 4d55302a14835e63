"""
Opening detection by longest-prefix match against a static catalogue.

The catalogue order is significant: when two entries share the longest prefix
with the game, the one listed first wins. Entries are grouped by family and a
longer line is listed before its shorter parent where both exist.
"""

from dataclasses import dataclass

# A match must cover at least one full move pair.
MIN_MATCH_PLIES = 2


@dataclass(frozen=True)
class Opening:
    """One catalogue entry. ``moves`` are SAN half-moves from the start."""

    eco: str
    name: str
    variation: str
    moves: tuple[str, ...]


OPENINGS: list[Opening] = [
    # King's pawn openings (C00-C99)
    Opening("C50", "Italian Game", "Giuoco Piano", ("e4", "e5", "Nf3", "Nc6", "Bc4", "Bc5")),
    Opening("C50", "Italian Game", "Main Line", ("e4", "e5", "Nf3", "Nc6", "Bc4")),
    Opening("C55", "Two Knights Defense", "Main Line", ("e4", "e5", "Nf3", "Nc6", "Bc4", "Nf6")),
    Opening("C42", "Russian Game", "Main Line", ("e4", "e5", "Nf3", "Nf6")),
    Opening("C44", "Scotch Game", "Main Line", ("e4", "e5", "Nf3", "Nc6", "d4")),
    Opening("C65", "Ruy Lopez", "Berlin Defense", ("e4", "e5", "Nf3", "Nc6", "Bb5", "Nf6")),
    Opening("C60", "Ruy Lopez", "Main Line", ("e4", "e5", "Nf3", "Nc6", "Bb5")),
    Opening("C84", "Ruy Lopez", "Closed",
            ("e4", "e5", "Nf3", "Nc6", "Bb5", "a6", "Ba4", "Nf6", "O-O", "Be7")),

    # Sicilian Defense (B20-B99)
    Opening("B20", "Sicilian Defense", "Main Line", ("e4", "c5")),
    Opening("B50", "Sicilian Defense", "Main Line", ("e4", "c5", "Nf3", "d6")),
    Opening("B90", "Sicilian Defense", "Najdorf",
            ("e4", "c5", "Nf3", "d6", "d4", "cxd4", "Nxd4", "Nf6", "Nc3", "a6")),
    Opening("B70", "Sicilian Defense", "Dragon",
            ("e4", "c5", "Nf3", "d6", "d4", "cxd4", "Nxd4", "Nf6", "Nc3", "g6")),
    Opening("B40", "Sicilian Defense", "Accelerated Dragon",
            ("e4", "c5", "Nf3", "Nc6", "d4", "cxd4", "Nxd4", "g6")),

    # French Defense (C00-C19)
    Opening("C00", "French Defense", "Main Line", ("e4", "e6")),
    Opening("C10", "French Defense", "Main Line", ("e4", "e6", "d4", "d5")),
    Opening("C11", "French Defense", "Winawer", ("e4", "e6", "d4", "d5", "Nc3", "Bb4")),

    # Caro-Kann Defense (B10-B19)
    Opening("B10", "Caro-Kann Defense", "Main Line", ("e4", "c6")),
    Opening("B12", "Caro-Kann Defense", "Advance", ("e4", "c6", "d4", "d5", "e5")),
    Opening("B18", "Caro-Kann Defense", "Classical",
            ("e4", "c6", "d4", "d5", "Nc3", "dxe4", "Nxe4", "Bf5")),

    # Queen's pawn openings (D00-D99)
    Opening("D06", "Queen's Gambit", "Main Line", ("d4", "d5", "c4")),
    Opening("D30", "Queen's Gambit Declined", "Main Line", ("d4", "d5", "c4", "e6")),
    Opening("D37", "Queen's Gambit Declined", "Orthodox",
            ("d4", "d5", "c4", "e6", "Nf3", "Nf6", "Nc3", "Be7")),
    Opening("D20", "Queen's Gambit Accepted", "Main Line", ("d4", "d5", "c4", "dxc4")),
    Opening("D85", "Grünfeld Defense", "Main Line", ("d4", "Nf6", "c4", "g6", "Nc3", "d5")),

    # Indian defenses (E00-E99)
    Opening("E60", "King's Indian Defense", "Main Line", ("d4", "Nf6", "c4", "g6")),
    Opening("E90", "King's Indian Defense", "Classical",
            ("d4", "Nf6", "c4", "g6", "Nc3", "Bg7", "e4", "d6")),
    Opening("E20", "Nimzo-Indian Defense", "Main Line", ("d4", "Nf6", "c4", "e6", "Nc3", "Bb4")),
    Opening("E40", "Nimzo-Indian Defense", "Rubinstein",
            ("d4", "Nf6", "c4", "e6", "Nc3", "Bb4", "e3")),

    # English Opening (A10-A39)
    Opening("A10", "English Opening", "Main Line", ("c4",)),
    Opening("A20", "English Opening", "Symmetrical", ("c4", "e5")),
    Opening("A30", "English Opening", "Symmetrical", ("c4", "c5")),

    # Réti Opening (A04-A09)
    Opening("A04", "Réti Opening", "Main Line", ("Nf3",)),
    Opening("A09", "Réti Opening", "Accepted", ("Nf3", "d5", "c4")),

    # Other popular openings
    Opening("A00", "Van't Kruijs Opening", "Main Line", ("e3",)),
    Opening("A40", "Modern Defense", "Main Line", ("d4", "g6")),
    Opening("B00", "Nimzowitsch Defense", "Main Line", ("e4", "Nc6")),
    Opening("B01", "Scandinavian Defense", "Main Line", ("e4", "d5")),
    Opening("C20", "King's Pawn Game", "Main Line", ("e4", "e5")),
    Opening("D00", "Queen's Pawn Game", "Main Line", ("d4", "d5")),
    Opening("A45", "Indian Defense", "Main Line", ("d4", "Nf6")),
    Opening("C30", "King's Gambit", "Main Line", ("e4", "e5", "f4")),
    Opening("C33", "King's Gambit Accepted", "Main Line", ("e4", "e5", "f4", "exf4")),
]


def common_prefix_length(game_moves: list[str], opening_moves: tuple[str, ...]) -> int:
    """Number of leading half-moves the two sequences share."""
    length = 0
    for played, book in zip(game_moves, opening_moves):
        if played != book:
            break
        length += 1
    return length


def detect_opening(moves: list[str], catalogue: list[Opening] | None = None) -> Opening | None:
    """
    Return the catalogue entry sharing the longest prefix with ``moves``.

    Args:
        moves:     Game moves in SAN, from the standard starting position.
        catalogue: Entries to match against; defaults to OPENINGS.

    Returns:
        The best entry, or None when no entry shares at least
        MIN_MATCH_PLIES half-moves. Ties go to the entry listed first.
    """
    if not moves:
        return None

    best: Opening | None = None
    best_length = 0
    for opening in OPENINGS if catalogue is None else catalogue:
        length = common_prefix_length(moves, opening.moves)
        if length >= MIN_MATCH_PLIES and length > best_length:
            best, best_length = opening, length
    return best


def format_opening(opening: Opening) -> str:
    """"Name: Variation (ECO)", dropping the variation when it is "Main Line"."""
    if opening.variation and opening.variation != "Main Line":
        return f"{opening.name}: {opening.variation} ({opening.eco})"
    return f"{opening.name} ({opening.eco})"
