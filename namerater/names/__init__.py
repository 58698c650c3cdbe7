"""
Baby name rating package.

Responsibilities:
- Load the canonical name catalog and hold couples, ratings and short-lists.
- Pick the next name to show a user (sample-then-rank engine).
- Maintain the rating ledger and the couple's short-list on every rating.
"""
