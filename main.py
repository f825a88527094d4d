#!/usr/bin/env python3
"""
AGENT ARENA - Trading agent performance dashboard
Main Entry Point
"""

import sys
import json
import signal
import asyncio
import argparse
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from loguru import logger

# Setup logging
Path("logs").mkdir(exist_ok=True)
logger.remove()
logger.add(
    sys.stderr,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
    level="INFO"
)
logger.add(
    "logs/system_{time:YYYY-MM-DD}.log",
    rotation="00:00",
    retention="30 days",
    level="DEBUG"
)


class ArenaDashboard:
    """Main dashboard controller."""

    def __init__(self, resolver, data_location: str, market: str = None, export_path: str = None):
        self.resolver = resolver
        self.data_location = data_location
        self.market = market
        self.export_path = export_path
        self.source = None
        self.coordinator = None
        self._shutdown_event = asyncio.Event()

        logger.info(f"Initializing Agent Arena with data from {data_location}")

    async def initialize(self) -> bool:
        """Load configuration and build the refresh coordinator."""
        from core.errors import ConfigurationError
        from core.events import EventType
        from dashboard import RefreshCoordinator, RefreshConfig, HttpArtifactSource, source_for

        refresh_config = RefreshConfig()
        self.source = source_for(self.data_location)
        if isinstance(self.source, HttpArtifactSource):
            self.source = HttpArtifactSource(
                self.data_location,
                timeout=refresh_config.fetch_timeout,
                retry_config=refresh_config.retry_config,
            )

        # No local config file: use the one published next to the data
        if self.resolver.used_fallback:
            await self.resolver.load(self.source)

        try:
            self.coordinator = RefreshCoordinator(
                self.resolver,
                self.source,
                market=self.market,
                refresh_config=refresh_config,
            )
        except ConfigurationError as e:
            logger.error(f"Initialization failed: {e}")
            return False

        self.coordinator.events.subscribe(EventType.REFRESH_COMMITTED, self._on_committed)
        self.coordinator.events.subscribe(EventType.REFRESH_FAILED, self._on_failed)
        logger.info(f"Dashboard initialized: market={self.coordinator.market}")
        return True

    def _on_committed(self, event):
        view_model = event.payload["view_model"]
        if not event.payload.get("changed"):
            logger.info("No data changes detected")
            return

        logger.info(f"=== {view_model.market_name} ({view_model.currency}) ===")
        for row in view_model.leaderboard:
            if row.has_data:
                logger.info(
                    f"#{row.rank} {row.display_name:<22} {row.current_value:>12,.2f} "
                    f"{row.total_return_pct:+7.2f}%"
                )
            else:
                logger.info(f"#{row.rank} {row.display_name:<22} {view_model.notices.get(row.agent_id, '')}")

        aggregate = view_model.aggregate
        logger.info(
            f"Best: {aggregate.best_agent} | Worst: {aggregate.worst_agent} | "
            f"Mean return: {aggregate.mean_return_pct:+.2f}% | Trades: {aggregate.total_trades}"
        )

        if self.export_path:
            self.export_csv(self.export_path)

    def _on_failed(self, event):
        logger.warning(f"Refresh cycle {event.cycle} failed: {event.payload.get('error')}")

    def export_csv(self, path: str) -> None:
        """Write the aligned comparison of the committed dataset as CSV."""
        from export import write_csv
        from series.aligner import align

        dataset = self.coordinator.state.dataset
        if dataset is None or not dataset.agents:
            logger.warning("Nothing to export")
            return

        names = {
            agent_id: self.resolver.label(agent_id, dataset.market)
            for agent_id in dataset.agents
        }
        write_csv(path, align(dataset.series_by_agent()), names)

    async def run_once(self, as_json: bool = False) -> bool:
        """One refresh cycle, optionally printing the view-model as JSON."""
        try:
            view_model = await self.coordinator.refresh()
        finally:
            await self.shutdown()

        if view_model is None:
            return False
        if as_json:
            print(json.dumps(view_model.to_dict(), indent=2, ensure_ascii=False))
        return True

    async def run(self):
        """Auto-refresh until interrupted."""
        loop = asyncio.get_event_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._handle_shutdown)

        logger.info("Starting auto-refresh loop...")

        try:
            self.coordinator.start_auto_refresh()
            await self._shutdown_event.wait()
            await self.coordinator.stop()
        finally:
            await self.shutdown()

    def _handle_shutdown(self):
        """Handle shutdown signal."""
        logger.info("Shutdown signal received")
        self._shutdown_event.set()

    async def shutdown(self):
        """Graceful shutdown."""
        logger.info("Shutting down...")
        close = getattr(self.source, "aclose", None)
        if close is not None:
            await close()
        logger.info("Shutdown complete")


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Agent Arena - trading agent performance dashboard")
    parser.add_argument(
        "--data",
        default=None,
        help="Data directory or base URL (default: data.base_path of the config)"
    )
    parser.add_argument(
        "--config",
        default="config.yaml",
        help="Local config.yaml (default: ./config.yaml, else the one under the data location)"
    )
    parser.add_argument(
        "--market",
        default=None,
        help="Market to show (default: ARENA_MARKET, else 'us')"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single refresh cycle and exit"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="With --once, print the view-model as JSON"
    )
    parser.add_argument(
        "--export",
        default=None,
        metavar="PATH",
        help="Write the asset evolution CSV after every committed refresh"
    )

    args = parser.parse_args()

    from config.loader import ConfigResolver

    resolver = ConfigResolver()
    if Path(args.config).is_file():
        resolver.load_file(args.config)
    data_location = args.data or resolver.config.data.base_path

    app = ArenaDashboard(resolver, data_location, market=args.market, export_path=args.export)

    if not await app.initialize():
        logger.error("Dashboard initialization failed")
        sys.exit(1)

    if args.once:
        if not await app.run_once(as_json=args.json):
            sys.exit(1)
        return

    await app.run()


if __name__ == "__main__":
    asyncio.run(main())
