"""
Formatting helpers for status text and tooltips.

Output formats are fixed; the host UI and existing users rely on them.
"""

from datetime import datetime
from typing import Optional

from crs_status.storage.models import CostWindow

PROGRESS_BAR_WIDTH = 25
BAR_FILLED = "█"
BAR_EMPTY = "░"


def format_currency(amount: float) -> str:
    """Format an amount as dollars with two decimals."""
    return f"${amount:.2f}"


def format_tokens(tokens: int) -> str:
    """Format a token count: 2.50M, 1.50K or the plain integer."""
    if tokens >= 1_000_000:
        return f"{tokens / 1_000_000:.2f}M"
    if tokens >= 1_000:
        return f"{tokens / 1_000:.2f}K"
    return str(tokens)


def format_time(moment: datetime) -> str:
    """Format a timestamp as 24-hour HH:MM:SS."""
    return moment.strftime("%H:%M:%S")


def format_percentage(ratio: float) -> str:
    """Format a ratio as a percentage with one decimal."""
    return f"{ratio * 100:.1f}%"


def progress_bar(cost: CostWindow, width: int = PROGRESS_BAR_WIDTH) -> Optional[str]:
    """Render a fixed-width bar for a cost window.

    The filled share is clamped to a full bar when usage exceeds the
    limit; the percentage text is not clamped.

    Args:
        cost: Cost window to render
        width: Number of cells in the bar

    Returns:
        Bar followed by the percentage, or None for an unlimited window
    """
    ratio = cost.ratio
    if ratio is None:
        return None

    proportion = min(ratio, 1.0)
    filled = int(round(proportion * width))
    bar = BAR_FILLED * filled + BAR_EMPTY * (width - filled)
    return f"{bar} {format_percentage(ratio)}"
