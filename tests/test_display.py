"""
Unit tests for display resolution.

Tests most-constrained-limit selection, compact text and tooltip models.
"""

from datetime import datetime

import pytest

from crs_status.core.display import (
    CONFIGURE_MESSAGE,
    ICON_ERROR,
    ICON_LOADING,
    ICON_READY,
    ICON_UNCONFIGURED,
    LOADING_MESSAGE,
    ClickAction,
    DisplayState,
    Emphasis,
    build_tooltip,
    compact_text,
    render_tooltip_markdown,
    resolve_error,
    resolve_loading,
    resolve_result,
    resolve_unconfigured,
    select_most_constrained,
)
from crs_status.core.errors import ConfigError, ProtocolError
from crs_status.core.result import Err, Ok, OkWithWarning
from crs_status.storage.models import CostWindow, Period, PeriodUsage, UsageSnapshot


def _snapshot(daily=(0.0, 0.0), monthly=(0.0, 0.0), total=(0.0, 0.0), tokens=(0, 0, 0), soft_error=None):
    def usage(cost, count):
        return PeriodUsage(cost=CostWindow(used=cost[0], total=cost[1]), tokens=count)

    return UsageSnapshot(
        daily=usage(daily, tokens[0]),
        monthly=usage(monthly, tokens[1]),
        total=usage(total, tokens[2]),
        last_update=datetime(2026, 10, 18, 16, 20, 5),
        soft_error=soft_error,
    )


class TestMostConstrained:
    """Test selection of the most constrained limit."""

    def test_smallest_absolute_remaining_wins(self):
        """Test remaining 20 beats remaining 50."""
        snapshot = _snapshot(daily=(80, 100), monthly=(0, 0), total=(450, 500))

        assert select_most_constrained(snapshot) == Period.DAILY

    def test_absolute_not_percentage(self):
        """Test absolute remaining budget decides, not percentage."""
        # Daily: 50% used but only $5 left; total: 90% used with $100 left
        snapshot = _snapshot(daily=(5, 10), total=(900, 1000))

        assert select_most_constrained(snapshot) == Period.DAILY

        # Daily: 10% used with $90 left; total: 50% used with $50 left
        snapshot = _snapshot(daily=(10, 100), total=(50, 100))

        assert select_most_constrained(snapshot) == Period.TOTAL

    def test_no_limits_no_selection(self):
        """Test all-unlimited snapshots have no selection."""
        snapshot = _snapshot(daily=(5, 0), monthly=(3, 0), total=(50, 0))

        assert select_most_constrained(snapshot) is None

    def test_tie_goes_to_first_period(self):
        """Test ties resolve in Daily, Monthly, Total order."""
        snapshot = _snapshot(daily=(80, 100), total=(480, 500))

        assert select_most_constrained(snapshot) == Period.DAILY

    def test_overspent_is_most_constrained(self):
        """Test negative remaining budget beats any positive one."""
        snapshot = _snapshot(daily=(1, 2), total=(120, 100))

        assert select_most_constrained(snapshot) == Period.TOTAL

    def test_monthly_limit_participates(self):
        """Test a monthly limit is considered when present."""
        snapshot = _snapshot(daily=(1, 10), monthly=(99, 100), total=(10, 100))

        assert select_most_constrained(snapshot) == Period.MONTHLY


class TestCompactText:
    """Test compact status line text."""

    def test_percentage_and_amounts(self):
        """Test the combined percentage and amount display."""
        snapshot = _snapshot(daily=(7.5, 10), monthly=(3.2, 0), total=(42, 0))

        assert compact_text(snapshot, show_percentage=True, show_amounts=True) == "75.0% ($7.50/$10.00)"

    def test_percentage_only(self):
        """Test percentage without amounts."""
        snapshot = _snapshot(daily=(7.5, 10))

        assert compact_text(snapshot, show_percentage=True, show_amounts=False) == "75.0%"

    def test_amounts_only(self):
        """Test amounts without percentage."""
        snapshot = _snapshot(daily=(7.5, 10))

        assert compact_text(snapshot, show_percentage=False, show_amounts=True) == "$7.50/$10.00"

    def test_nothing_requested(self):
        """Test icon-only when neither figure is requested."""
        snapshot = _snapshot(daily=(7.5, 10))

        assert compact_text(snapshot, show_percentage=False, show_amounts=False) == ICON_READY

    def test_no_limit_is_icon_only(self):
        """Test icon-only display without any configured limit."""
        snapshot = _snapshot(daily=(7.5, 0), total=(42, 0))

        assert compact_text(snapshot) == ICON_READY

    def test_uses_most_constrained_period(self):
        """Test figures come from the selected period."""
        snapshot = _snapshot(daily=(1, 100), total=(450, 500))

        assert compact_text(snapshot) == "90.0% ($450.00/$500.00)"


class TestTooltip:
    """Test tooltip model construction."""

    def test_rows_in_period_order(self):
        """Test one row per period with labels."""
        tooltip = build_tooltip(_snapshot())

        assert [row.period for row in tooltip.rows] == [Period.DAILY, Period.MONTHLY, Period.TOTAL]
        assert [row.label for row in tooltip.rows] == ["Today", "This Month", "Total"]

    def test_limited_row(self):
        """Test a limited period shows a bar and spent/limit."""
        tooltip = build_tooltip(_snapshot(daily=(7.5, 10), tokens=(1500, 0, 0)))
        row = tooltip.rows[0]

        assert row.bar is not None
        assert row.progress_text.endswith("75.0%")
        assert row.cost_text == "$7.50 / $10.00"
        assert row.token_text == "1.50K tokens"

    def test_unlimited_row(self):
        """Test an unlimited period shows no bar, whatever was spent."""
        tooltip = build_tooltip(_snapshot(monthly=(3.2, 0), tokens=(0, 2500000, 0)))
        row = tooltip.rows[1]

        assert row.bar is None
        assert row.progress_text == "Unlimited"
        assert row.cost_text == "$3.20"
        assert row.token_text == "2.50M tokens"

    def test_last_updated_and_soft_error(self):
        """Test timestamp and soft error annotation."""
        tooltip = build_tooltip(_snapshot(soft_error="Failed to get user stats: 502"))

        assert tooltip.last_updated == "16:20:05"
        assert tooltip.soft_error == "Failed to get user stats: 502"

    def test_markdown_rendering(self):
        """Test markdown tooltip content."""
        tooltip = build_tooltip(_snapshot(daily=(7.5, 10), soft_error="timeout"))

        markdown = render_tooltip_markdown(tooltip)

        assert markdown.startswith("**CRS Usage**")
        assert "**Today** |" in markdown
        assert "**This Month** | Unlimited | $0.00 | 0 tokens" in markdown
        assert "*Error: timeout*" in markdown
        assert "*Click to refresh | Last update: 16:20:05*" in markdown

    def test_markdown_without_soft_error(self):
        """Test no error annotation on a clean snapshot."""
        markdown = render_tooltip_markdown(build_tooltip(_snapshot()))

        assert "Error" not in markdown


class TestResolve:
    """Test presentation state resolution."""

    def test_unconfigured(self):
        """Test unconfigured state opens settings on click."""
        state = resolve_unconfigured()

        assert state.state == DisplayState.UNCONFIGURED
        assert state.text == ICON_UNCONFIGURED
        assert state.click_action == ClickAction.OPEN_SETTINGS
        assert state.tooltip.message == CONFIGURE_MESSAGE

    def test_loading(self):
        """Test loading state."""
        state = resolve_loading()

        assert state.state == DisplayState.LOADING
        assert state.text == ICON_LOADING
        assert state.tooltip.message == LOADING_MESSAGE
        assert state.click_action == ClickAction.REFRESH

    def test_ok_is_ready(self):
        """Test a fresh snapshot resolves to Ready."""
        snapshot = _snapshot(daily=(7.5, 10))

        state = resolve_result(Ok(snapshot))

        assert state.state == DisplayState.READY
        assert state.text == "75.0% ($7.50/$10.00)"
        assert state.emphasis == Emphasis.NONE
        assert state.tooltip.soft_error is None
        assert state.snapshot is snapshot

    def test_warning_stays_ready(self):
        """Test a stale fallback stays Ready with an annotation."""
        snapshot = _snapshot(daily=(7.5, 10), soft_error="Network error")

        state = resolve_result(OkWithWarning(snapshot, "Network error"))

        assert state.state == DisplayState.READY
        assert state.emphasis == Emphasis.NONE
        assert state.tooltip.soft_error == "Network error"

    def test_protocol_error(self):
        """Test a hard failure resolves to Error with emphasis."""
        state = resolve_result(Err(ProtocolError("Failed to get API ID: 401")))

        assert state.state == DisplayState.ERROR
        assert state.text == ICON_ERROR
        assert state.emphasis == Emphasis.ERROR
        assert state.tooltip.title == "CRS Status Error"
        assert state.tooltip.message == "Failed to get API ID: 401"
        assert state.click_action == ClickAction.REFRESH

    def test_config_error(self):
        """Test a configuration error resolves to Unconfigured."""
        state = resolve_result(Err(ConfigError("Not configured")))

        assert state.state == DisplayState.UNCONFIGURED

    def test_display_flags_pass_through(self):
        """Test show flags reach the compact text."""
        state = resolve_result(Ok(_snapshot(daily=(7.5, 10))), show_percentage=True, show_amounts=False)

        assert state.text == "75.0%"

    def test_unknown_result(self):
        """Test unknown outcomes are rejected."""
        with pytest.raises(TypeError, match="Unknown usage result"):
            resolve_result("nope")

    def test_error_markdown(self):
        """Test hard error tooltip differs from the soft annotation."""
        markdown = render_tooltip_markdown(resolve_error("boom").tooltip)

        assert markdown.startswith("**CRS Status Error**\n\nboom")
        assert "*Error:" not in markdown
