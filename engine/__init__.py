"""
Chess search engine package.

This package implements the live opponent: a depth-limited minimax search with
alpha-beta pruning over a material + piece-square evaluation.

Modules:
    constants: Piece values, piece-square tables, search parameters
    evaluate : Static position evaluation from White's perspective
    search   : Minimax with alpha-beta pruning, capture-first move ordering
"""
