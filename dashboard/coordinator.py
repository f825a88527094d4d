"""
REFRESH COORDINATOR - Fetch, then commit, one cycle at a time

Every refresh is a numbered cycle:

    refresh() --> cycle += 1 --> load_all() --> newest cycle? --> commit
                                                     |
                                                     +--> no: discard

- A refresh requested while a cycle is in flight is suppressed.
- A market switch invalidates the in-flight cycle and forces a new one.
- A commit swaps the whole dataset and publishes the new view-model.
- A failed cycle leaves the committed state untouched.

Presenters subscribe to the coordinator's EventBus.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from loguru import logger

from analytics.metrics import AggregateOrdering, MetricsEngine
from analytics.transforms import TimeRange, ValueMode
from config.loader import ConfigResolver
from core.errors import ArenaError, ConfigurationError
from core.events import EventBus, EventType, RefreshEvent
from core.retry import FETCH_RETRY_CONFIG, RetryConfig
from dashboard.loader import AgentDataLoader, AgentDataSet
from dashboard.state import DashboardState, has_data_changed
from dashboard.view_model import DashboardViewModel, build_view_model


@dataclass
class RefreshConfig:
    """Runtime knobs of the refresh loop."""
    interval_seconds: float = 30.0
    fetch_timeout: float = 30.0  # per HTTP request
    cycle_timeout: float = 120.0  # whole load
    retry_config: RetryConfig = field(default_factory=lambda: FETCH_RETRY_CONFIG)
    time_range: TimeRange = field(default_factory=TimeRange)
    value_mode: ValueMode = ValueMode.DOLLAR
    ordering: AggregateOrdering = AggregateOrdering.CURRENT_VALUE


class RefreshCoordinator:
    """
    Drives load -> commit cycles for one dashboard.

    Usage:
        coordinator = RefreshCoordinator(resolver, FileArtifactSource("./data"))
        coordinator.events.subscribe(EventType.REFRESH_COMMITTED, render)
        await coordinator.refresh()
    """

    def __init__(
        self,
        resolver: ConfigResolver,
        source,
        market: Optional[str] = None,
        refresh_config: Optional[RefreshConfig] = None,
        event_bus: Optional[EventBus] = None,
        engine: Optional[MetricsEngine] = None
    ):
        self.resolver = resolver
        self.source = source
        self.refresh_config = refresh_config or RefreshConfig()
        self.events = event_bus or EventBus()
        self.engine = engine or MetricsEngine()

        market = market or resolver.default_market()
        resolver.market(market)
        self.state = DashboardState(market)

        self._cycle = 0
        self._in_flight = 0
        self._running = False
        self._task: Optional[asyncio.Task] = None

        if resolver.used_fallback:
            self.events.publish(RefreshEvent(
                event_type=EventType.CONFIG_FALLBACK,
                source="coordinator",
                market=market,
                payload={"reason": resolver.fallback_reason},
            ))

    # ===== Properties =====

    @property
    def market(self) -> str:
        return self.state.market

    @property
    def cycle(self) -> int:
        """Number of the latest cycle started."""
        return self._cycle

    @property
    def is_refreshing(self) -> bool:
        return self._in_flight > 0

    @property
    def view_model(self) -> Optional[DashboardViewModel]:
        return self.state.view_model

    def _event(self, event_type: EventType, cycle: int, market: str, **payload) -> RefreshEvent:
        return RefreshEvent(
            event_type=event_type,
            source="coordinator",
            cycle=cycle,
            market=market,
            payload=payload,
        )

    # ===== Cycle =====

    async def refresh(self, force: bool = False) -> Optional[DashboardViewModel]:
        """
        Run one refresh cycle.

        Args:
            force: Start even if another cycle is in flight (that one will be discarded)

        Returns:
            The committed view-model, or None if suppressed, discarded or failed
        """
        if self.is_refreshing and not force:
            logger.info(f"Refresh already in progress (cycle {self._cycle}), skipping")
            self.events.publish(self._event(EventType.REFRESH_SUPPRESSED, self._cycle, self.market))
            return None

        self._cycle += 1
        cycle = self._cycle
        market = self.market
        self._in_flight += 1

        logger.info(f"Refresh cycle {cycle} started for market '{market}'")
        await self.events.publish_async(self._event(EventType.REFRESH_STARTED, cycle, market))

        try:
            loader = AgentDataLoader(self.resolver.config, self.source, market)
            dataset = await asyncio.wait_for(loader.load_all(), timeout=self.refresh_config.cycle_timeout)
        except ConfigurationError:
            raise
        except (ArenaError, asyncio.TimeoutError) as e:
            logger.error(f"Refresh cycle {cycle} failed: {e}")
            await self.events.publish_async(
                self._event(EventType.REFRESH_FAILED, cycle, market, error=str(e))
            )
            return None
        finally:
            self._in_flight -= 1

        if cycle != self._cycle or market != self.market:
            logger.info(f"Discarding stale refresh cycle {cycle} (latest is {self._cycle})")
            self.events.publish(self._event(EventType.REFRESH_DISCARDED, cycle, market, latest=self._cycle))
            return None

        return await self._commit(dataset, cycle)

    async def _commit(self, dataset: AgentDataSet, cycle: int) -> DashboardViewModel:
        for path in dataset.missing_artifacts:
            self.events.publish(self._event(EventType.ARTIFACT_MISSING, cycle, dataset.market, path=path))

        changed = has_data_changed(self.state.dataset, dataset)
        view_model = self._build(dataset)
        self.state.replace(dataset, cycle, view_model)

        logger.info(
            f"Refresh cycle {cycle} committed: market={dataset.market} "
            f"agents={len(dataset.agents)} changed={changed}"
        )
        await self.events.publish_async(self._event(
            EventType.REFRESH_COMMITTED, cycle, dataset.market,
            view_model=view_model, changed=changed,
        ))
        return view_model

    def _build(self, dataset: AgentDataSet) -> DashboardViewModel:
        return build_view_model(
            dataset,
            self.resolver,
            market=dataset.market,
            time_range=self.refresh_config.time_range,
            value_mode=self.refresh_config.value_mode,
            ordering=self.refresh_config.ordering,
            engine=self.engine,
        )

    # ===== User actions =====

    async def switch_market(self, market: str) -> Optional[DashboardViewModel]:
        """
        Show another market.

        Raises:
            ConfigurationError: if the market is not configured
        """
        self.resolver.market(market)
        if market == self.market and self.state.has_data:
            return self.state.view_model

        previous = self.market
        self.state.reset(market)
        logger.info(f"Switched market: {previous} -> {market}")
        self.events.publish(self._event(EventType.MARKET_SWITCHED, self._cycle, market, previous=previous))
        return await self.refresh(force=True)

    def set_view(
        self,
        time_range: Optional[TimeRange] = None,
        value_mode: Optional[ValueMode] = None,
        ordering: Optional[AggregateOrdering] = None
    ) -> Optional[DashboardViewModel]:
        """Change chart settings and rebuild the view-model from committed data."""
        if time_range is not None:
            self.refresh_config.time_range = time_range
        if value_mode is not None:
            self.refresh_config.value_mode = ValueMode(value_mode)
        if ordering is not None:
            self.refresh_config.ordering = AggregateOrdering(ordering)

        if self.state.dataset is None:
            return None
        view_model = self._build(self.state.dataset)
        self.state.view_model = view_model
        return view_model

    # ===== Auto refresh =====

    async def run_auto_refresh(self, interval: Optional[float] = None) -> None:
        """Refresh every `interval` seconds until stop() is called."""
        interval = interval or self.refresh_config.interval_seconds
        self._running = True
        logger.info(f"Auto-refresh started: every {interval:.0f}s")

        while self._running:
            try:
                await self.refresh()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in auto-refresh loop: {e}")
            await asyncio.sleep(interval)

    def start_auto_refresh(self, interval: Optional[float] = None) -> asyncio.Task:
        """Schedule run_auto_refresh() on the running loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_auto_refresh(interval))
        return self._task

    async def stop(self) -> None:
        """Stop the auto-refresh loop."""
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("Auto-refresh stopped")
