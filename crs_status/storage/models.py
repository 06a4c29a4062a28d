"""
Data models for the usage cache.

Defines the normalized usage snapshot shared by the client and the display layer.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional


class Period(Enum):
    """Accounting periods, in fixed evaluation order."""
    DAILY = "daily"
    MONTHLY = "monthly"
    TOTAL = "total"


@dataclass(frozen=True)
class CostWindow:
    """Spent amount against a limit.
    
    A total of 0 means no limit is configured (unlimited), which is
    distinct from a configured limit with nothing spent yet.
    """
    used: float
    total: float

    def __post_init__(self):
        """Validate amounts are non-negative."""
        if self.used < 0:
            raise ValueError("used must be >= 0")
        if self.total < 0:
            raise ValueError("total must be >= 0")

    @property
    def is_unlimited(self) -> bool:
        return self.total == 0

    @property
    def remaining(self) -> Optional[float]:
        """Absolute budget left, or None when unlimited."""
        if self.is_unlimited:
            return None
        return self.total - self.used

    @property
    def ratio(self) -> Optional[float]:
        """Fraction of the limit spent (may exceed 1), or None when unlimited."""
        if self.is_unlimited:
            return None
        return self.used / self.total


@dataclass(frozen=True)
class PeriodUsage:
    """Cost and token consumption for one accounting period."""
    cost: CostWindow
    tokens: int

    def __post_init__(self):
        if self.tokens < 0:
            raise ValueError("tokens must be >= 0")


@dataclass(frozen=True)
class UsageSnapshot:
    """Immutable aggregate of usage across the three accounting periods.
    
    Created only by a successful remote aggregation. ``soft_error`` is set
    only on copies handed out as a stale fallback after a failed refresh.
    """
    daily: PeriodUsage
    monthly: PeriodUsage
    total: PeriodUsage
    last_update: datetime
    soft_error: Optional[str] = None

    def period(self, period: Period) -> PeriodUsage:
        """Get usage for a specific accounting period."""
        return {
            Period.DAILY: self.daily,
            Period.MONTHLY: self.monthly,
            Period.TOTAL: self.total,
        }[period]

    def as_fallback(self, error: str, checked_at: datetime) -> "UsageSnapshot":
        """Return a stale copy annotated with the refresh failure.
        
        Args:
            error: Message of the failed refresh
            checked_at: Time of the failed check, shown as the last update
            
        Returns:
            Copy with identical figures, ``soft_error`` set and a fresh timestamp
        """
        return replace(self, soft_error=error, last_update=checked_at)

    def to_dict(self) -> dict:
        """Serialize to the camelCase shape used on the wire."""
        def _period(usage: PeriodUsage) -> dict:
            return {
                "cost": {"used": usage.cost.used, "total": usage.cost.total},
                "tokens": usage.tokens,
            }

        data = {
            "daily": _period(self.daily),
            "monthly": _period(self.monthly),
            "total": _period(self.total),
            "lastUpdate": self.last_update.isoformat(),
        }
        if self.soft_error is not None:
            data["error"] = self.soft_error
        return data
