"""
CRS Status.

Polls a Claude Relay Service instance for cost and token usage and turns
the figures into a compact status line with a detailed tooltip.
"""

__version__ = "0.1.0"
