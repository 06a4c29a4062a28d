"""
Claude Relay Service usage client.

Resolves an API key to an account id, fetches account limits and the
per-model monthly breakdown, and keeps the aggregate in a short-lived cache.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import httpx

from ..core.errors import ConfigError, CrsStatusError, ProtocolError
from ..core.result import Err, Ok, OkWithWarning, UsageResult
from ..storage.cache import UsageCache
from ..storage.models import CostWindow, PeriodUsage, UsageSnapshot

logger = logging.getLogger(__name__)

KEY_ID_PATH = "/apiStats/api/get-key-id"
USER_STATS_PATH = "/apiStats/api/user-stats"
MODEL_STATS_PATH = "/apiStats/api/user-model-stats"

MODEL_STATS_PERIODS = ("daily", "monthly")


@dataclass(frozen=True)
class AccountStats:
    """Account-level counters from the user-stats endpoint."""
    all_tokens: int
    current_daily_cost: float
    daily_cost_limit: float
    current_total_cost: float
    total_cost_limit: float


@dataclass(frozen=True)
class ModelUsage:
    """One entry of the per-model breakdown."""
    all_tokens: int
    cost: float


def _number(value: Any, field: str) -> float:
    """Coerce an optional numeric field; absent or null counts as 0."""
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ProtocolError(f"Invalid numeric value for '{field}': {value!r}")
    return max(0.0, float(value))


def _mapping(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def aggregate_model_usage(models: List[ModelUsage]) -> ModelUsage:
    """Sum tokens and cost across all models; empty input yields zeros."""
    return ModelUsage(
        all_tokens=sum(m.all_tokens for m in models),
        cost=sum(m.cost for m in models),
    )


def build_snapshot(
    stats: AccountStats,
    monthly: ModelUsage,
    last_update: datetime
) -> UsageSnapshot:
    """Assemble the normalized snapshot from the remote figures.

    The service has no monthly limit, so the monthly window is always
    unlimited. Lifetime tokens reuse the account's all-time counter, the
    same figure shown for the day.
    """
    return UsageSnapshot(
        daily=PeriodUsage(
            cost=CostWindow(used=stats.current_daily_cost, total=stats.daily_cost_limit),
            tokens=stats.all_tokens,
        ),
        monthly=PeriodUsage(
            cost=CostWindow(used=monthly.cost, total=0.0),
            tokens=monthly.all_tokens,
        ),
        total=PeriodUsage(
            cost=CostWindow(used=stats.current_total_cost, total=stats.total_cost_limit),
            tokens=stats.all_tokens,
        ),
        last_update=last_update,
    )


class UsageClient:
    """Usage client with a TTL cache and stale-on-error fallback.

    The cache belongs to this client instance. A refresh failure is masked
    by the last good snapshot when one exists; otherwise it propagates.
    """

    def __init__(
        self,
        cache: Optional[UsageCache] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = datetime.now
    ):
        """Initialize the client.

        Args:
            cache: Cache to use (a fresh one on ``clock`` by default)
            timeout: Timeout for each remote call, in seconds
            transport: HTTP transport override, mainly for tests
            clock: Monotonic time source for the default cache
            now: Wall-clock source for snapshot timestamps
        """
        if timeout <= 0:
            raise ValueError("timeout must be > 0")
        self.cache = cache if cache is not None else UsageCache(clock=clock)
        self.timeout = timeout
        self._transport = transport
        self._now = now
        self._lock = asyncio.Lock()

    def clear_cache(self) -> None:
        """Invalidate the cache unconditionally.

        A failure right after clearing has nothing to fall back to.
        """
        logger.debug("Cache cleared")
        self.cache.clear()

    async def get_usage_info(self, base_url: str, api_key: str) -> UsageSnapshot:
        """Get usage information, served from cache while fresh.

        Args:
            base_url: Relay service base URL
            api_key: Relay service API key

        Returns:
            Fresh snapshot, or the cached one annotated with ``soft_error``
            when the refresh failed

        Raises:
            ConfigError: If base_url or api_key is empty
            ProtocolError: If the refresh failed and nothing is cached
        """
        return await self._get_usage_info(base_url, api_key, force=False)

    async def _get_usage_info(self, base_url: str, api_key: str, force: bool) -> UsageSnapshot:
        if not base_url or not api_key:
            raise ConfigError("Not configured")

        # Check-then-refresh runs under the lock so concurrent callers
        # share a single round-trip. A forced call clears under the lock
        # so it never reuses a fetch that started before it.
        async with self._lock:
            if force:
                self.clear_cache()
            else:
                cached = self.cache.get_fresh()
                if cached is not None:
                    return cached

            try:
                snapshot = await self._fetch_usage_data(base_url.rstrip("/"), api_key)
            except ProtocolError as e:
                previous = self.cache.snapshot
                if previous is None:
                    raise
                logger.warning("Usage refresh failed, serving cached data: %s", e)
                return previous.as_fallback(str(e), self._now())

            self.cache.store(snapshot)
            return snapshot

    async def fetch(self, base_url: str, api_key: str, force_refresh: bool = False) -> UsageResult:
        """Fetch usage as a tagged result instead of raising.

        Args:
            base_url: Relay service base URL
            api_key: Relay service API key
            force_refresh: Clear the cache and hit the network even when a
                refresh is already in flight

        Returns:
            Ok, OkWithWarning for a stale fallback, or Err
        """
        try:
            snapshot = await self._get_usage_info(base_url, api_key, force=force_refresh)
        except CrsStatusError as e:
            return Err(e)
        if snapshot.soft_error is not None:
            return OkWithWarning(snapshot, snapshot.soft_error)
        return Ok(snapshot)

    async def _fetch_usage_data(self, base_url: str, api_key: str) -> UsageSnapshot:
        """Run the three-call protocol and aggregate the results."""
        try:
            async with httpx.AsyncClient(
                base_url=base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                api_id = await self.resolve_credential(client, api_key)
                tasks = [
                    asyncio.ensure_future(self.fetch_account_stats(client, api_id)),
                    asyncio.ensure_future(self.fetch_model_breakdown(client, api_id, "monthly")),
                ]
                try:
                    stats, monthly_models = await asyncio.gather(*tasks)
                except BaseException:
                    # No partial aggregation: drop the sibling call
                    for task in tasks:
                        task.cancel()
                    raise
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            # InvalidURL (malformed base URL) is not an HTTPError
            raise ProtocolError(f"Network error: {e}") from e

        return build_snapshot(stats, aggregate_model_usage(monthly_models), self._now())

    async def _post(
        self,
        client: httpx.AsyncClient,
        path: str,
        body: Dict[str, Any],
        failure: str,
        endpoint: str
    ) -> Any:
        """POST a JSON body and unwrap the ``{success, data}`` envelope."""
        logger.debug("POST %s", path)
        response = await client.post(path, json=body)
        if not response.is_success:
            raise ProtocolError(f"{failure}: {response.status_code}", status_code=response.status_code)

        try:
            envelope = response.json()
        except ValueError as e:
            raise ProtocolError(f"Invalid response from {endpoint} API") from e

        if not isinstance(envelope, dict) or not envelope.get("success") or envelope.get("data") is None:
            raise ProtocolError(f"Invalid response from {endpoint} API")
        return envelope["data"]

    async def resolve_credential(self, client: httpx.AsyncClient, api_key: str) -> str:
        """Exchange the API key for the account id.

        Raises:
            ProtocolError: If the call fails or no id is returned
        """
        data = await self._post(
            client, KEY_ID_PATH, {"apiKey": api_key},
            "Failed to get API ID", "get-key-id"
        )
        api_id = _mapping(data).get("id")
        if not api_id:
            raise ProtocolError("Invalid response from get-key-id API")
        return str(api_id)

    async def fetch_account_stats(self, client: httpx.AsyncClient, api_id: str) -> AccountStats:
        """Fetch account-level token counter and cost limits."""
        data = await self._post(
            client, USER_STATS_PATH, {"apiId": api_id},
            "Failed to get user stats", "user-stats"
        )
        data = _mapping(data)
        total_usage = _mapping(_mapping(data.get("usage")).get("total"))
        limits = _mapping(data.get("limits"))

        return AccountStats(
            all_tokens=int(_number(total_usage.get("allTokens"), "usage.total.allTokens")),
            current_daily_cost=_number(limits.get("currentDailyCost"), "limits.currentDailyCost"),
            daily_cost_limit=_number(limits.get("dailyCostLimit"), "limits.dailyCostLimit"),
            current_total_cost=_number(limits.get("currentTotalCost"), "limits.currentTotalCost"),
            total_cost_limit=_number(limits.get("totalCostLimit"), "limits.totalCostLimit"),
        )

    async def fetch_model_breakdown(
        self,
        client: httpx.AsyncClient,
        api_id: str,
        period: str = "monthly"
    ) -> List[ModelUsage]:
        """Fetch per-model token and cost figures for a period.

        Raises:
            ValueError: If period is not daily or monthly
            ProtocolError: If the call fails or the payload is not a list
        """
        if period not in MODEL_STATS_PERIODS:
            raise ValueError(f"period must be one of: {list(MODEL_STATS_PERIODS)}")

        data = await self._post(
            client, MODEL_STATS_PATH, {"apiId": api_id, "period": period},
            "Failed to get user model stats", "user-model-stats"
        )
        if not isinstance(data, list):
            raise ProtocolError("Invalid response from user-model-stats API")

        models = []
        for entry in data:
            entry = _mapping(entry)
            models.append(ModelUsage(
                all_tokens=int(_number(entry.get("allTokens"), "allTokens")),
                cost=_number(_mapping(entry.get("costs")).get("total"), "costs.total"),
            ))
        return models
