"""
playlist-curator: candidate scoring and constrained playlist selection.

Public entry points:
- curator.scoring: weight functions, strategies and the strategy registry
- curator.playlist: candidate pool builders and the selector
- curator.runner: end-to-end playlist generation per time window
"""

__version__ = "0.3.0"
