"""State/store layer.

This package is the single source of truth for per-trip tracking state:
latest samples, routes, freshness and the active alert set.
"""
