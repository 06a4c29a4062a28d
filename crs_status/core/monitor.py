"""
Refresh orchestration.

Wires configuration, the usage client and a presentation sink together,
and owns the periodic refresh timer.

State transitions:
1. Unconfigured -> Loading when configuration becomes valid
2. Loading -> Ready on a fetch (including a stale fallback)
3. Loading -> Error when the fetch fails with nothing cached
4. Ready/Error -> Loading on any refresh
5. Any state -> Unconfigured when configuration becomes invalid
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Protocol

from .display import (
    ClickAction,
    DisplayState,
    PresentationState,
    resolve_loading,
    resolve_result,
    resolve_unconfigured,
)
from crs_status.config.loader import ConfigSource, StatusConfig
from crs_status.sdk.relay_client import UsageClient

logger = logging.getLogger(__name__)


class PresentationSink(Protocol):
    """Anything that can show a presentation state."""

    def apply(self, state: PresentationState) -> None:
        ...


class RefreshTimer:
    """Cancellable periodic task.

    Runs ``callback`` every ``interval`` seconds on the current event loop
    until cancelled. A failing callback does not stop the timer.
    """

    def __init__(self, interval: float, callback: Callable[[], Awaitable[None]]):
        if interval < 1:
            raise ValueError("interval must be >= 1 second")
        self.interval = interval
        self._callback = callback
        self._task: Optional[asyncio.Task] = asyncio.ensure_future(self._run())

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self._callback()
            except Exception:
                logger.exception("Scheduled refresh failed")

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None


class StatusMonitor:
    """Keeps a presentation sink in sync with relay service usage.

    All failures end up as presentation updates; nothing here raises to
    the caller for a failed fetch.
    """

    def __init__(
        self,
        config_source: ConfigSource,
        sink: PresentationSink,
        client: Optional[UsageClient] = None,
        open_settings: Optional[Callable[[], None]] = None
    ):
        """Initialize the monitor.

        Args:
            config_source: Configuration with change notifications
            sink: Presentation sink receiving every state change
            client: Usage client (built from the config timeout by default)
            open_settings: Called for the openSettings command
        """
        self.config_source = config_source
        self.sink = sink
        self.client = client or UsageClient(
            timeout=config_source.config.request_timeout_seconds
        )
        self.open_settings = open_settings
        self.state: Optional[PresentationState] = None
        self._timer: Optional[RefreshTimer] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._pending: set = set()

    @property
    def config(self) -> StatusConfig:
        return self.config_source.config

    @property
    def timer(self) -> Optional[RefreshTimer]:
        return self._timer

    def _show(self, state: PresentationState) -> None:
        self.state = state
        self.sink.apply(state)

    async def start(self) -> None:
        """Subscribe to configuration changes and show the initial state."""
        if self._unsubscribe is None:
            self._unsubscribe = self.config_source.subscribe(self._on_config_changed)

        if self.config.is_configured:
            self._install_timer()
            await self.refresh(force=False)
        else:
            self._show(resolve_unconfigured())

    def stop(self) -> None:
        """Cancel the timer and stop listening for configuration changes."""
        self._cancel_timer()
        for task in list(self._pending):
            task.cancel()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def refresh(self, force: bool = False) -> PresentationState:
        """Fetch usage and push the resulting state to the sink.

        Args:
            force: Bypass the cache TTL

        Returns:
            The state that was applied last
        """
        config = self.config
        if not config.is_configured:
            self._show(resolve_unconfigured())
            return self.state

        self._show(resolve_loading())
        result = await self.client.fetch(config.base_url, config.api_key, force_refresh=force)
        state = resolve_result(result, config.show_percentage, config.show_amounts)
        if state.state == DisplayState.ERROR:
            logger.warning("Usage refresh failed: %s", state.tooltip.message)
        self._show(state)
        return state

    async def handle_command(self, action: ClickAction) -> None:
        """Run the command bound to a click on the status affordance."""
        if action == ClickAction.REFRESH:
            await self.refresh(force=True)
        elif action == ClickAction.OPEN_SETTINGS:
            if self.open_settings is not None:
                self.open_settings()
        else:
            raise ValueError(f"Unknown command: {action}")

    def _install_timer(self) -> None:
        self._cancel_timer()
        interval = self.config.refresh_interval_seconds
        self._timer = RefreshTimer(interval, self._scheduled_refresh)
        logger.debug("Refresh timer installed (%ss)", interval)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            logger.debug("Refresh timer cancelled")

    async def _scheduled_refresh(self) -> None:
        await self.refresh(force=False)

    def _on_config_changed(self, old: StatusConfig, new: StatusConfig) -> None:
        """Reinstall the timer and refresh with the new configuration."""
        if old.request_timeout_seconds != new.request_timeout_seconds:
            self.client.timeout = new.request_timeout_seconds

        if new.is_configured:
            self._install_timer()
        else:
            self._cancel_timer()

        task = asyncio.ensure_future(self.refresh(force=True))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
