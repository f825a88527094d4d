"""
AGENT DATA LOADER - One full fetch of a market's artifacts

Per market and per load:
1. position.jsonl of every enabled agent (concurrently)
2. asset_history.json when an agent publishes one (bypasses valuation)
3. the price files needed to value the rest (once per load, never cached)
4. the benchmark price file, rescaled to the initial account value

A missing or broken artifact only empties the agent it belongs to.
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from loguru import logger

from config.loader import AgentConfig, DashboardConfig, MarketConfig
from core.errors import ConfigurationError, MissingArtifact
from series.records import (
    AgentRecord,
    PriceBook,
    TradeRecord,
    benchmark_records,
    parse_asset_history,
    parse_position_lines,
    value_snapshots,
)
from series.store import Series, build_series


MERGED_PRICE_FILE = "A_stock/merged.jsonl"


@dataclass(frozen=True)
class AgentData:
    """Everything loaded for one agent."""
    agent_id: str
    record: AgentRecord
    series: Series
    trades: Tuple[TradeRecord, ...] = ()
    holdings: Dict[str, float] = field(default_factory=dict)
    cash: float = 0.0
    prices: Dict[str, float] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def has_data(self) -> bool:
        return not self.series.is_empty

    @classmethod
    def empty(cls, agent_id: str, error: Optional[str] = None) -> "AgentData":
        return cls(
            agent_id=agent_id,
            record=AgentRecord(agent_id=agent_id),
            series=Series(agent_id=agent_id),
            error=error,
        )


@dataclass(frozen=True)
class AgentDataSet:
    """Immutable result of one load, agents in configuration order."""
    market: str
    agents: Dict[str, AgentData] = field(default_factory=dict)
    benchmark: Optional[Series] = None
    missing_artifacts: Tuple[str, ...] = ()
    loaded_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_empty(self) -> bool:
        return not any(a.has_data for a in self.agents.values())

    def series_by_agent(self) -> Dict[str, Series]:
        return {agent_id: data.series for agent_id, data in self.agents.items()}

    def trades_by_agent(self) -> Dict[str, Tuple[TradeRecord, ...]]:
        return {agent_id: data.trades for agent_id, data in self.agents.items()}


class AgentDataLoader:
    """
    Loads one market's agents through an ArtifactSource.

    Usage:
        loader = AgentDataLoader(config, FileArtifactSource("./data"), "us")
        dataset = await loader.load_all()
    """

    def __init__(self, config: DashboardConfig, source, market: str):
        market_config = config.markets.get(market)
        if market_config is None:
            raise ConfigurationError(f"Unknown market '{market}'")

        self.config = config
        self.source = source
        self.market = market
        self.market_config: MarketConfig = market_config
        self._missing: List[str] = []

    # ===== Paths =====

    def position_path(self, agent_id: str) -> str:
        return f"{self.market_config.data_dir}/{agent_id}/position/position.jsonl"

    def asset_history_path(self, agent_id: str) -> str:
        return f"{self.market_config.data_dir}/{agent_id}/asset_history.json"

    def price_path(self, symbol: str) -> str:
        return f"{self.config.data.price_file_prefix}{symbol}.json"

    def benchmark_path(self) -> str:
        return self.market_config.benchmark_file or self.config.data.benchmark_file

    # ===== Fetching =====

    async def _fetch_optional(self, path: str, track: bool = True) -> Optional[str]:
        """Text of an artifact, None when it is missing."""
        try:
            return await self.source.fetch_text(path)
        except MissingArtifact as e:
            logger.debug(f"{e}")
            if track:
                self._missing.append(path)
            return None

    async def _fetch_record(self, agent_id: str) -> AgentRecord:
        text = await self.source.fetch_text(self.position_path(agent_id))
        return parse_position_lines(agent_id, text)

    async def load_prices(self, symbols: Iterable[str]) -> PriceBook:
        """Fetch the prices needed to value `symbols`."""
        price_book = PriceBook()
        symbols = sorted(set(symbols))
        if not symbols:
            return price_book

        if self.market_config.price_data_type == "merged":
            text = await self._fetch_optional(MERGED_PRICE_FILE)
            if text is not None:
                added = price_book.add_merged_lines(text)
                logger.debug(f"Loaded {added} symbols from {MERGED_PRICE_FILE}")
            return price_book

        texts = await asyncio.gather(*(self._fetch_optional(self.price_path(s)) for s in symbols))
        for symbol, text in zip(symbols, texts):
            if text is None:
                continue
            try:
                price_book.add_alpha_vantage(json.loads(text), symbol=symbol)
            except ValueError as e:
                logger.warning(f"Unreadable price file for {symbol}: {e}")
        return price_book

    async def load_benchmark(self) -> Optional[Series]:
        """Benchmark line scaled to the initial value, None when unavailable."""
        if not self.config.benchmark.enabled:
            return None
        path = self.benchmark_path()
        if not path:
            return None

        text = await self._fetch_optional(path)
        if text is None:
            return None

        name = self.market_config.benchmark_name or self.config.benchmark.folder
        price_book = PriceBook()
        try:
            symbol = price_book.add_alpha_vantage(json.loads(text), symbol=name)
        except ValueError as e:
            logger.warning(f"Unreadable benchmark file {path}: {e}")
            return None
        if symbol is None:
            logger.warning(f"Benchmark file {path} has no time series")
            return None

        records = benchmark_records(price_book, symbol, self.config.ui.initial_value)
        return build_series(symbol, records)

    # ===== Assembly =====

    async def _history_series(self, agent_id: str) -> Optional[Series]:
        text = await self._fetch_optional(self.asset_history_path(agent_id), track=False)
        if text is None:
            return None
        try:
            return build_series(agent_id, parse_asset_history(agent_id, text))
        except ValueError as e:
            logger.warning(f"Ignoring asset history of {agent_id}: {e}")
            return None

    def _assemble(self, record: AgentRecord, series: Series, price_book: PriceBook) -> AgentData:
        holdings = record.current_holdings()
        prices = {}
        if not series.is_empty:
            # Holdings are priced as of the last valued point
            for symbol in holdings:
                price = price_book.price_on_or_before(symbol, series.last.date)
                if price is not None:
                    prices[symbol] = price
        return AgentData(
            agent_id=record.agent_id,
            record=record,
            series=series,
            trades=tuple(record.trades()),
            holdings=holdings,
            cash=record.current_cash(),
            prices=prices,
        )

    async def _fetch_agent(self, agent_id: str) -> Tuple[Optional[AgentRecord], Optional[Series], Optional[str]]:
        """(record, pre-computed series, error) of one agent."""
        history = await self._history_series(agent_id)
        try:
            record = await self._fetch_record(agent_id)
        except MissingArtifact as e:
            if history is None:
                logger.warning(f"No position data for {agent_id}: {e.reason}")
                self._missing.append(e.path)
                return None, None, str(e)
            record = AgentRecord(agent_id=agent_id)
        return record, history, None

    def _finish(
        self,
        agent_id: str,
        record: Optional[AgentRecord],
        history: Optional[Series],
        error: Optional[str],
        price_book: PriceBook
    ) -> AgentData:
        if record is None:
            return AgentData.empty(agent_id, error=error)

        series = history
        if series is None:
            raw_records, _ = value_snapshots(record, price_book)
            series = build_series(agent_id, raw_records)

        logger.debug(f"Loaded {agent_id}: {len(series)} observations, {len(record.trades())} trades")
        return self._assemble(record, series, price_book)

    @staticmethod
    def _symbols_to_price(record: Optional[AgentRecord], history: Optional[Series]) -> List[str]:
        """Every symbol ever held when valuing, only the current holdings otherwise."""
        if record is None:
            return []
        if history is None:
            return record.symbols()
        return list(record.current_holdings())

    async def load_agent(self, agent: AgentConfig) -> AgentData:
        """
        Load a single agent.

        Never raises for missing or malformed artifacts: the agent comes back
        empty with the reason in `error`.
        """
        record, history, error = await self._fetch_agent(agent.folder)
        price_book = await self.load_prices(self._symbols_to_price(record, history))
        return self._finish(agent.folder, record, history, error, price_book)

    async def load_all(self) -> AgentDataSet:
        """Load every enabled agent of the market plus its benchmark."""
        self._missing = []
        agents = [a for a in self.market_config.agents if a.enabled]
        logger.info(f"Loading {len(agents)} agents for market '{self.market}'")

        fetched = await asyncio.gather(*(self._fetch_agent(a.folder) for a in agents))

        # Prices are fetched once per load for every agent
        symbols = [
            symbol
            for record, history, _ in fetched
            for symbol in self._symbols_to_price(record, history)
        ]
        price_book = await self.load_prices(symbols)

        results = {
            agent.folder: self._finish(agent.folder, record, history, error, price_book)
            for agent, (record, history, error) in zip(agents, fetched)
        }
        benchmark = await self.load_benchmark()

        dataset = AgentDataSet(
            market=self.market,
            agents=results,
            benchmark=benchmark,
            missing_artifacts=tuple(self._missing),
        )
        loaded = sum(1 for a in dataset.agents.values() if a.has_data)
        logger.info(f"Market '{self.market}': {loaded}/{len(agents)} agents with data")
        return dataset
