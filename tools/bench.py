#!/usr/bin/env python3
"""
Benchmark: nodes searched with and without alpha-beta pruning.

Both searches run at the same depth on the same fixed positions and must pick
the same move; the node ratio shows how much the pruning and the
captures-first ordering save. A mismatch in the chosen move is reported.

Usage: python3 tools/bench.py [depth]
"""
import os
import sys
import time

REPO = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if REPO not in sys.path:
    sys.path.insert(0, REPO)

import chess

from engine.constants import DEFAULT_DEPTH
from engine.search import search_position

# Fixed positions spanning opening, middlegame, and endgame.
POSITIONS = [
    ("Start",        chess.STARTING_FEN),
    ("After 1.e4",   "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"),
    ("Sicilian",     "rnbqkbnr/pp1ppppp/8/2p5/4P3/8/PPPP1PPP/RNBQKBNR w KQkq - 0 2"),
    ("Italian",      "r1bqkbnr/pppp1ppp/2n5/4p3/2B1P3/5N2/PPPP1PPP/RNBQK2R b KQkq - 3 3"),
    ("Mid-open",     "r1bqkb1r/pppp1ppp/2n2n2/4p3/2B1P3/5N2/PPPP1PPP/RNBQK2R w KQkq - 4 4"),
    ("Complex mid",  "r2q1rk1/ppp2ppp/2np1n2/2b1p1B1/2B1P1b1/2NP1N2/PPP2PPP/R2Q1RK1 w - - 0 8"),
    ("Queen ending", "6k1/ppp2ppp/8/3p4/3P4/8/PPP2PPP/6K1 w - - 0 1"),
    ("Rook ending",  "8/5pk1/6p1/7p/7P/6P1/5PK1/8 w - - 0 1"),
    ("Pawn race",    "8/1p4k1/p7/P1K5/8/8/8/8 w - - 0 1"),
]


def run_position(label: str, fen: str, depth: int) -> dict:
    """Search one position twice and return the metrics of both runs.

    Returns:
        Dict with keys: label, move, same_move, pruned_nodes, full_nodes,
        pruned_ms, full_ms.
    """
    board = chess.Board(fen)

    start = time.perf_counter()
    pruned, pruned_nodes = search_position(board, depth, prune=True)
    pruned_ms = int((time.perf_counter() - start) * 1000)

    start = time.perf_counter()
    full, full_nodes = search_position(board, depth, prune=False)
    full_ms = int((time.perf_counter() - start) * 1000)

    return {
        "label": label,
        "move": pruned.move.uci() if pruned.move else "(none)",
        "same_move": pruned.move == full.move and pruned.score == full.score,
        "pruned_nodes": pruned_nodes,
        "full_nodes": full_nodes,
        "pruned_ms": pruned_ms,
        "full_ms": full_ms,
    }


def main() -> None:
    """Run all benchmark positions and print a summary table."""
    depth = int(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_DEPTH
    print(f"Search benchmark at depth {depth} ({sys.executable})")
    print()
    print(
        f"{'Position':<14} {'Move':<7} {'Pruned':>9} {'Full':>10} "
        f"{'Ratio':>6} {'ms':>7} {'ms(full)':>9}"
    )
    print("-" * 68)

    results = []
    for label, fen in POSITIONS:
        r = run_position(label, fen, depth)
        results.append(r)
        ratio = r["full_nodes"] / r["pruned_nodes"] if r["pruned_nodes"] else 0.0
        flag = "" if r["same_move"] else "  MISMATCH"
        print(
            f"{r['label']:<14} {r['move']:<7} {r['pruned_nodes']:>9,} {r['full_nodes']:>10,} "
            f"{ratio:>6.1f} {r['pruned_ms']:>7,} {r['full_ms']:>9,}{flag}"
        )

    pruned_total = sum(r["pruned_nodes"] for r in results)
    full_total = sum(r["full_nodes"] for r in results)
    print("-" * 68)
    print(
        f"{'TOTAL':<14} {'':<7} {pruned_total:>9,} {full_total:>10,} "
        f"{full_total / max(1, pruned_total):>6.1f}"
    )
    mismatches = [r["label"] for r in results if not r["same_move"]]
    if mismatches:
        print(f"\nPruned and full-width searches disagree on: {', '.join(mismatches)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
