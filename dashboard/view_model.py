"""
VIEW-MODEL - Everything a presenter needs, computed in one pass

Data flows one way: AgentDataSet -> build_view_model() -> DashboardViewModel
-> presenter. A presenter never reaches back into the loader or the state;
switching time range or value mode builds a new view-model from the same
committed dataset.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from analytics.metrics import AggregateMetrics, AggregateOrdering, MetricSet, MetricsEngine
from analytics.transforms import TimeRange, ValueMode, filter_series_map, to_value_mode, y_axis_range
from config.loader import ConfigResolver
from dashboard.loader import AgentData, AgentDataSet
from series.aligner import Alignment, align
from series.records import CASH_KEY
from series.store import Series, format_date


NO_DATA_NOTICE = "No data available"


@dataclass(frozen=True)
class LeaderboardRow:
    rank: int
    agent_id: str
    display_name: str
    icon: str
    color: str
    current_value: float
    total_return_pct: float
    has_data: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rank": self.rank,
            "agent_id": self.agent_id,
            "display_name": self.display_name,
            "icon": self.icon,
            "color": self.color,
            "current_value": self.current_value,
            "total_return_pct": self.total_return_pct,
            "has_data": self.has_data,
        }


@dataclass(frozen=True)
class ChartDataset:
    """One line of the comparison chart."""
    agent_id: str
    label: str
    color: str
    icon: str
    values: Tuple[Optional[float], ...] = ()
    is_benchmark: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "label": self.label,
            "color": self.color,
            "icon": self.icon,
            "values": list(self.values),
            "is_benchmark": self.is_benchmark,
        }


@dataclass(frozen=True)
class ChartView:
    labels: Tuple[str, ...] = ()
    datasets: Tuple[ChartDataset, ...] = ()
    value_mode: ValueMode = ValueMode.DOLLAR
    time_range: TimeRange = field(default_factory=TimeRange)
    y_range: Tuple[float, float] = (0.0, 100.0)
    time_granularity: str = "daily"
    date_format: str = ""
    style: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "labels": list(self.labels),
            "datasets": [d.to_dict() for d in self.datasets],
            "value_mode": self.value_mode.value,
            "time_range": str(self.time_range),
            "y_range": list(self.y_range),
            "time_granularity": self.time_granularity,
            "date_format": self.date_format,
            "style": dict(self.style),
        }


@dataclass(frozen=True)
class PositionRow:
    """One holding of an agent; the CASH row has no shares nor price."""
    agent_id: str
    display_name: str
    symbol: str
    shares: Optional[float]
    price: Optional[float]
    market_value: float
    weight_pct: float

    @property
    def is_cash(self) -> bool:
        return self.symbol == CASH_KEY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "display_name": self.display_name,
            "symbol": self.symbol,
            "shares": self.shares,
            "price": self.price,
            "market_value": self.market_value,
            "weight_pct": self.weight_pct,
        }


@dataclass(frozen=True)
class TradeRow:
    agent_id: str
    display_name: str
    date: datetime
    action: str
    symbol: str
    amount: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "display_name": self.display_name,
            "date": format_date(self.date),
            "action": self.action,
            "symbol": self.symbol,
            "amount": self.amount,
        }


@dataclass(frozen=True)
class DashboardViewModel:
    """Immutable, JSON-serialisable snapshot of the dashboard."""
    market: str
    market_name: str
    currency: str
    leaderboard: Tuple[LeaderboardRow, ...]
    metrics: Dict[str, MetricSet]
    aggregate: AggregateMetrics
    chart: ChartView
    positions: Tuple[PositionRow, ...] = ()
    recent_trades: Tuple[TradeRow, ...] = ()
    ticker_symbols: Tuple[str, ...] = ()
    trading_period: Optional[Tuple[datetime, datetime]] = None
    notices: Dict[str, str] = field(default_factory=dict)
    benchmark: Optional[MetricSet] = None
    loaded_at: Optional[datetime] = None
    market_subtitle: str = ""
    market_icon: str = ""

    def to_dict(self) -> Dict[str, Any]:
        period = None
        if self.trading_period is not None:
            period = {"start": format_date(self.trading_period[0]), "end": format_date(self.trading_period[1])}
        return {
            "market": self.market,
            "market_name": self.market_name,
            "market_subtitle": self.market_subtitle,
            "market_icon": self.market_icon,
            "currency": self.currency,
            "leaderboard": [r.to_dict() for r in self.leaderboard],
            "metrics": {agent_id: m.to_dict() for agent_id, m in self.metrics.items()},
            "aggregate": self.aggregate.to_dict(),
            "chart": self.chart.to_dict(),
            "positions": [p.to_dict() for p in self.positions],
            "recent_trades": [t.to_dict() for t in self.recent_trades],
            "ticker_symbols": list(self.ticker_symbols),
            "trading_period": period,
            "notices": dict(self.notices),
            "benchmark": self.benchmark.to_dict() if self.benchmark else None,
            "loaded_at": self.loaded_at.isoformat() if self.loaded_at else None,
        }


def _trading_period(series_list: List[Series]) -> Optional[Tuple[datetime, datetime]]:
    non_empty = [s for s in series_list if not s.is_empty]
    if not non_empty:
        return None
    return min(s.first.date for s in non_empty), max(s.last.date for s in non_empty)


def _positions(
    data: AgentData,
    current_value: float,
    display_name: str
) -> List[PositionRow]:
    """Holdings by descending market value, then the cash row."""

    def weight(value: float) -> float:
        return value / current_value * 100 if current_value > 0 else 0.0

    rows = []
    for symbol, shares in data.holdings.items():
        price = data.prices.get(symbol)
        market_value = shares * price if price is not None else 0.0
        rows.append(PositionRow(
            data.agent_id, display_name, symbol, shares, price, market_value, weight(market_value)
        ))
    rows.sort(key=lambda r: r.market_value, reverse=True)

    if data.cash > 0:
        rows.append(PositionRow(
            data.agent_id, display_name, CASH_KEY, None, None, data.cash, weight(data.cash)
        ))
    return rows


def _leaderboard(
    dataset: AgentDataSet,
    metrics: Dict[str, MetricSet],
    resolver: ConfigResolver,
    market: str
) -> Tuple[LeaderboardRow, ...]:
    # Stable sort: agents without data keep configuration order at the bottom
    ordered = sorted(
        dataset.agents,
        key=lambda agent_id: (not metrics[agent_id].is_active, -metrics[agent_id].current_value),
    )
    return tuple(
        LeaderboardRow(
            rank=rank,
            agent_id=agent_id,
            display_name=resolver.label(agent_id, market),
            icon=resolver.icon(agent_id, market) or "",
            color=resolver.color(agent_id, market) or "",
            current_value=metrics[agent_id].current_value,
            total_return_pct=metrics[agent_id].total_return_pct,
            has_data=metrics[agent_id].is_active,
        )
        for rank, agent_id in enumerate(ordered, start=1)
    )


def _chart(
    dataset: AgentDataSet,
    resolver: ConfigResolver,
    market: str,
    time_range: TimeRange,
    value_mode: ValueMode
) -> ChartView:
    series_map = dataset.series_by_agent()
    benchmark_id = None
    if dataset.benchmark is not None and not dataset.benchmark.is_empty:
        benchmark_id = dataset.benchmark.agent_id
        series_map[benchmark_id] = dataset.benchmark

    market_config = resolver.market(market)
    granularity = market_config.time_granularity
    presentation = dict(
        time_granularity=granularity,
        date_format=resolver.config.ui.date_formats.get(granularity, ""),
        style=asdict(resolver.config.chart),
    )
    if not series_map:
        return ChartView(value_mode=value_mode, time_range=time_range, **presentation)

    # Percent is measured from the start of history, before windowing
    series_map = {agent_id: to_value_mode(s, value_mode) for agent_id, s in series_map.items()}
    alignment: Alignment = align(filter_series_map(series_map, time_range))

    benchmark_config = resolver.config.benchmark
    datasets = []
    for agent_id in alignment.agents:
        if agent_id == benchmark_id:
            datasets.append(ChartDataset(
                agent_id=agent_id,
                label=market_config.benchmark_display_name or benchmark_config.display_name,
                color=benchmark_config.color,
                icon=benchmark_config.icon,
                values=tuple(alignment.values(agent_id)),
                is_benchmark=True,
            ))
        else:
            datasets.append(ChartDataset(
                agent_id=agent_id,
                label=resolver.label(agent_id, market),
                color=resolver.color(agent_id, market) or "",
                icon=resolver.icon(agent_id, market) or "",
                values=tuple(alignment.values(agent_id)),
            ))

    all_values = [v for d in datasets for v in d.values]
    return ChartView(
        labels=tuple(alignment.labels),
        datasets=tuple(datasets),
        value_mode=value_mode,
        time_range=time_range,
        y_range=y_axis_range(all_values),
        **presentation,
    )


def build_view_model(
    dataset: AgentDataSet,
    resolver: ConfigResolver,
    market: Optional[str] = None,
    time_range: TimeRange = TimeRange(),
    value_mode: ValueMode = ValueMode.DOLLAR,
    ordering: AggregateOrdering = AggregateOrdering.CURRENT_VALUE,
    engine: Optional[MetricsEngine] = None
) -> DashboardViewModel:
    """
    Build the dashboard view-model from a committed dataset.

    Metrics are computed on each agent's native Series; only the chart is
    windowed by `time_range` and transformed by `value_mode`.
    """
    market = market or dataset.market
    engine = engine or MetricsEngine()
    market_config = resolver.market(market)

    metrics = engine.compute_all(dataset.series_by_agent(), dataset.trades_by_agent())
    aggregate = engine.compute_aggregate(metrics, ordering)

    positions = tuple(
        row
        for agent_id, data in dataset.agents.items()
        for row in _positions(data, metrics[agent_id].current_value, resolver.label(agent_id, market))
    )

    trades = [
        TradeRow(agent_id, resolver.label(agent_id, market), t.date, t.action, t.symbol, t.amount)
        for agent_id, data in dataset.agents.items()
        for t in data.trades
    ]
    trades.sort(key=lambda t: t.date, reverse=True)
    recent_trades = tuple(trades[:resolver.config.ui.max_recent_trades])

    notices = {
        agent_id: f"{NO_DATA_NOTICE}: {data.error}" if data.error else NO_DATA_NOTICE
        for agent_id, data in dataset.agents.items()
        if not data.has_data
    }

    benchmark = None
    if dataset.benchmark is not None and not dataset.benchmark.is_empty:
        benchmark = engine.compute_metrics(dataset.benchmark)

    view_model = DashboardViewModel(
        market=market,
        market_name=market_config.name,
        currency=market_config.currency,
        market_subtitle=market_config.subtitle,
        market_icon=market_config.icon,
        leaderboard=_leaderboard(dataset, metrics, resolver, market),
        metrics=metrics,
        aggregate=aggregate,
        chart=_chart(dataset, resolver, market, time_range, value_mode),
        positions=positions,
        recent_trades=recent_trades,
        ticker_symbols=tuple(sorted({p.symbol for p in positions if not p.is_cash})),
        trading_period=_trading_period(list(dataset.series_by_agent().values())),
        notices=notices,
        benchmark=benchmark,
        loaded_at=dataset.loaded_at,
    )
    logger.debug(
        f"View-model built: market={market} agents={len(metrics)} "
        f"points={len(view_model.chart.labels)} best={aggregate.best_agent}"
    )
    return view_model
