"""
Display resolution for the status affordance.

Maps a fetch outcome to a presentation state: compact status text,
emphasis, click action and a structured tooltip. Everything here is pure;
applying the state is up to the presentation sink.

Compact text rules:
1. A percentage is shown for the most constrained limit only
2. Amounts are appended as ($used/$total) of that same period
3. Without any configured limit the status is icon-only
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from .errors import ConfigError
from .formatting import (
    format_currency,
    format_percentage,
    format_time,
    format_tokens,
    progress_bar,
)
from .result import Err, Ok, OkWithWarning, UsageResult
from crs_status.storage.models import Period, UsageSnapshot

# Host UI codicon tokens
ICON_READY = "$(pulse)"
ICON_LOADING = "$(sync~spin)"
ICON_ERROR = "$(error)"
ICON_UNCONFIGURED = "$(gear)"

USAGE_TITLE = "CRS Usage"
ERROR_TITLE = "CRS Status Error"
STATUS_TITLE = "CRS Status"
CONFIGURE_MESSAGE = "Click to configure API settings"
LOADING_MESSAGE = "Loading CRS usage data..."
REFRESH_HINT = "Click to refresh"
UNLIMITED = "Unlimited"

PERIOD_ORDER = (Period.DAILY, Period.MONTHLY, Period.TOTAL)
PERIOD_LABELS = {
    Period.DAILY: "Today",
    Period.MONTHLY: "This Month",
    Period.TOTAL: "Total",
}


class DisplayState(Enum):
    """Mutually exclusive display states."""
    UNCONFIGURED = "unconfigured"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class Emphasis(Enum):
    """Background emphasis for the status affordance."""
    NONE = "none"
    ERROR = "error"


class ClickAction(Enum):
    """Command run when the status affordance is clicked."""
    REFRESH = "refresh"
    OPEN_SETTINGS = "openSettings"


@dataclass(frozen=True)
class TooltipRow:
    """Tooltip line for one accounting period."""
    period: Period
    label: str
    bar: Optional[str]
    cost_text: str
    token_text: str

    @property
    def progress_text(self) -> str:
        """Progress bar, or Unlimited when no limit is configured."""
        return self.bar if self.bar is not None else UNLIMITED


@dataclass(frozen=True)
class TooltipModel:
    """Structured tooltip content."""
    title: str
    rows: Tuple[TooltipRow, ...] = ()
    message: Optional[str] = None
    last_updated: Optional[str] = None
    soft_error: Optional[str] = None
    hint: Optional[str] = None


@dataclass(frozen=True)
class PresentationState:
    """Everything the presentation sink needs to render the status."""
    state: DisplayState
    text: str
    tooltip: TooltipModel
    emphasis: Emphasis = Emphasis.NONE
    click_action: ClickAction = ClickAction.REFRESH
    snapshot: Optional[UsageSnapshot] = field(default=None, compare=False)


def select_most_constrained(snapshot: UsageSnapshot) -> Optional[Period]:
    """Pick the period with the least absolute budget left.

    Only periods with a configured limit take part. Ties go to the first
    period in Daily, Monthly, Total order.

    Args:
        snapshot: Usage snapshot to inspect

    Returns:
        The most constrained period, or None if no limit is configured
    """
    selected: Optional[Period] = None
    smallest: Optional[float] = None
    for period in PERIOD_ORDER:
        remaining = snapshot.period(period).cost.remaining
        if remaining is None:
            continue
        if smallest is None or remaining < smallest:
            selected = period
            smallest = remaining
    return selected


def compact_text(
    snapshot: UsageSnapshot,
    show_percentage: bool = True,
    show_amounts: bool = True
) -> str:
    """Build the compact status line for a snapshot.

    Returns:
        e.g. "75.0% ($7.50/$10.00)", or the ready icon alone
    """
    period = select_most_constrained(snapshot)
    if period is None:
        return ICON_READY

    cost = snapshot.period(period).cost
    amounts = f"{format_currency(cost.used)}/{format_currency(cost.total)}"
    if show_percentage and show_amounts:
        return f"{format_percentage(cost.ratio)} ({amounts})"
    if show_percentage:
        return format_percentage(cost.ratio)
    if show_amounts:
        return amounts
    return ICON_READY


def build_tooltip_rows(snapshot: UsageSnapshot) -> List[TooltipRow]:
    """Build one tooltip row per accounting period."""
    rows = []
    for period in PERIOD_ORDER:
        usage = snapshot.period(period)
        if usage.cost.is_unlimited:
            cost_text = format_currency(usage.cost.used)
        else:
            cost_text = f"{format_currency(usage.cost.used)} / {format_currency(usage.cost.total)}"
        rows.append(TooltipRow(
            period=period,
            label=PERIOD_LABELS[period],
            bar=progress_bar(usage.cost),
            cost_text=cost_text,
            token_text=f"{format_tokens(usage.tokens)} tokens",
        ))
    return rows


def build_tooltip(snapshot: UsageSnapshot) -> TooltipModel:
    """Build the detailed tooltip for a snapshot."""
    return TooltipModel(
        title=USAGE_TITLE,
        rows=tuple(build_tooltip_rows(snapshot)),
        last_updated=format_time(snapshot.last_update),
        soft_error=snapshot.soft_error,
        hint=REFRESH_HINT,
    )


def resolve_unconfigured() -> PresentationState:
    return PresentationState(
        state=DisplayState.UNCONFIGURED,
        text=ICON_UNCONFIGURED,
        tooltip=TooltipModel(title=STATUS_TITLE, message=CONFIGURE_MESSAGE),
        click_action=ClickAction.OPEN_SETTINGS,
    )


def resolve_loading() -> PresentationState:
    return PresentationState(
        state=DisplayState.LOADING,
        text=ICON_LOADING,
        tooltip=TooltipModel(title=STATUS_TITLE, message=LOADING_MESSAGE),
    )


def resolve_error(message: str) -> PresentationState:
    return PresentationState(
        state=DisplayState.ERROR,
        text=ICON_ERROR,
        tooltip=TooltipModel(title=ERROR_TITLE, message=message, hint=REFRESH_HINT),
        emphasis=Emphasis.ERROR,
    )


def resolve_ready(
    snapshot: UsageSnapshot,
    show_percentage: bool = True,
    show_amounts: bool = True
) -> PresentationState:
    return PresentationState(
        state=DisplayState.READY,
        text=compact_text(snapshot, show_percentage, show_amounts),
        tooltip=build_tooltip(snapshot),
        snapshot=snapshot,
    )


def resolve_result(
    result: UsageResult,
    show_percentage: bool = True,
    show_amounts: bool = True
) -> PresentationState:
    """Convert a fetch outcome into a presentation state.

    A stale fallback stays Ready, with the refresh failure carried as a
    tooltip annotation. A configuration error means Unconfigured.

    Raises:
        TypeError: If result is not a known outcome
    """
    if isinstance(result, (Ok, OkWithWarning)):
        return resolve_ready(result.snapshot, show_percentage, show_amounts)
    if isinstance(result, Err):
        if isinstance(result.error, ConfigError):
            return resolve_unconfigured()
        return resolve_error(str(result.error))
    raise TypeError(f"Unknown usage result: {result!r}")


def render_tooltip_markdown(tooltip: TooltipModel) -> str:
    """Render a tooltip model as markdown for rich-text tooltips."""
    parts = [f"**{tooltip.title}**"]

    if tooltip.message:
        parts.append(tooltip.message)

    if tooltip.rows:
        parts.append("---")
        for row in tooltip.rows:
            parts.append(
                f"**{row.label}** | {row.progress_text} | {row.cost_text} | {row.token_text}"
            )
        parts.append("---")

    if tooltip.soft_error:
        parts.append(f"*Error: {tooltip.soft_error}*")

    footer = [text for text in (tooltip.hint, _last_update(tooltip)) if text]
    if footer:
        parts.append(f"*{' | '.join(footer)}*")

    return "\n\n".join(parts)


def _last_update(tooltip: TooltipModel) -> Optional[str]:
    if tooltip.last_updated is None:
        return None
    return f"Last update: {tooltip.last_updated}"
