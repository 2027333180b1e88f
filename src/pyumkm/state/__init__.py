"""State/store layer.

This package is the single source of truth for how optimistic cart
mutations, their settlement, and refreshed server state are merged into a
deterministic cart snapshot.
"""
