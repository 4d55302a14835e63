"""
Analysis package: grading played moves and rolling grades up per player.

Modules:
    analyzer: Centipawn loss, move classification, accuracy and game summaries
    openings: Longest-prefix opening detection over a static catalogue
    rating  : Elo updates and provisional-rating bookkeeping
    skill   : Player aggregates, MSI and the skill breakdown
"""
