"""
METRICS - Performance metrics of each agent and of the whole arena

Per agent (computed on the agent's native Series, never on the aligned one,
so no synthetic points leak into return calculations):
- Total return and cumulative return curve
- Maximum drawdown
- Annualized volatility
- Win rate (simplified: every sell counts as a win)
- Average holding period (FIFO lot pairing)

Across agents:
- Best/worst agent by total return or by current value
- Mean return, total trades, pooled equity and account statistics

Degenerate input never raises: 0 or 1 observation yields zero metrics.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from loguru import logger

from series.store import Series, format_date
from series.records import TradeRecord
from analytics.holding import average_holding_days


TRADING_DAYS_PER_YEAR = 252


class AggregateOrdering(str, Enum):
    """Which figure ranks agents as best/worst."""
    TOTAL_RETURN = "total_return"
    CURRENT_VALUE = "current_value"


@dataclass
class MetricSet:
    """Derived statistics of one agent."""

    agent_id: str
    total_return_pct: float = 0.0
    cumulative_return_curve: List[Tuple[datetime, float]] = field(default_factory=list)
    max_drawdown_pct: float = 0.0
    annualized_volatility_pct: float = 0.0
    win_rate_pct: float = 0.0

    initial_value: float = 0.0
    current_value: float = 0.0
    observation_count: int = 0
    trade_count: int = 0
    avg_holding_days: Optional[float] = None

    @property
    def is_active(self) -> bool:
        return self.observation_count > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "total_return_pct": self.total_return_pct,
            "cumulative_return_curve": [
                {"date": format_date(d), "pct": pct} for d, pct in self.cumulative_return_curve
            ],
            "max_drawdown_pct": self.max_drawdown_pct,
            "annualized_volatility_pct": self.annualized_volatility_pct,
            "win_rate_pct": self.win_rate_pct,
            "initial_value": self.initial_value,
            "current_value": self.current_value,
            "observation_count": self.observation_count,
            "trade_count": self.trade_count,
            "avg_holding_days": self.avg_holding_days,
        }


@dataclass
class AggregateMetrics:
    """Cross-agent summary."""

    ordering: AggregateOrdering
    best_agent: Optional[str] = None
    worst_agent: Optional[str] = None
    mean_return_pct: float = 0.0
    total_trades: int = 0

    agent_count: int = 0
    active_agents: int = 0
    total_equity: float = 0.0
    total_initial: float = 0.0
    total_return_pct: float = 0.0
    total_profit_loss: float = 0.0

    avg_value: float = 0.0
    max_value: float = 0.0
    min_value: float = 0.0
    value_std: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ordering": self.ordering.value,
            "best_agent": self.best_agent,
            "worst_agent": self.worst_agent,
            "mean_return_pct": self.mean_return_pct,
            "total_trades": self.total_trades,
            "agent_count": self.agent_count,
            "active_agents": self.active_agents,
            "total_equity": self.total_equity,
            "total_initial": self.total_initial,
            "total_return_pct": self.total_return_pct,
            "total_profit_loss": self.total_profit_loss,
            "avg_value": self.avg_value,
            "max_value": self.max_value,
            "min_value": self.min_value,
            "value_std": self.value_std,
        }


class MetricsEngine:
    """
    Computes MetricSets and cross-agent aggregates.

    Stateless: every call takes its inputs and returns new outputs.
    """

    def __init__(self, periods_per_year: int = TRADING_DAYS_PER_YEAR):
        self.periods_per_year = periods_per_year

    # ===== Return Metrics =====

    def total_return_pct(self, equity_curve: pd.Series) -> float:
        """Return from first to last value, in percent."""
        if len(equity_curve) < 2:
            return 0.0
        first = equity_curve.iloc[0]
        return float((equity_curve.iloc[-1] - first) / first * 100)

    def cumulative_return_curve(self, equity_curve: pd.Series) -> List[Tuple[datetime, float]]:
        """Return of every point relative to the first one, in percent."""
        if equity_curve.empty:
            return []
        first = equity_curve.iloc[0]
        pct = (equity_curve - first) / first * 100
        return [(ts.to_pydatetime(), float(v)) for ts, v in pct.items()]

    # ===== Risk Metrics =====

    def max_drawdown_pct(self, equity_curve: pd.Series) -> float:
        """
        Largest peak-to-trough decline, as a positive percentage.

        The running peak includes the current point, so a value equal to the
        peak is a new peak and contributes no drawdown.
        """
        if len(equity_curve) < 2:
            return 0.0

        rolling_max = equity_curve.expanding().max()
        drawdowns = (rolling_max - equity_curve) / rolling_max * 100
        return max(float(drawdowns.max()), 0.0)

    def drawdown_series(self, equity_curve: pd.Series) -> pd.Series:
        """Drawdown of every point from its running peak, in percent."""
        rolling_max = equity_curve.expanding().max()
        return (rolling_max - equity_curve) / rolling_max * 100

    def annualized_volatility_pct(self, equity_curve: pd.Series) -> float:
        """Population std of period returns, annualized with sqrt(252), in percent."""
        if len(equity_curve) < 2:
            return 0.0

        returns = equity_curve.pct_change().dropna().to_numpy()
        if returns.size == 0:
            return 0.0

        vol = np.std(returns, ddof=0) * np.sqrt(self.periods_per_year)
        return float(vol * 100)

    # ===== Trade Statistics =====

    def win_rate_pct(self, trades: Sequence[TradeRecord]) -> float:
        """Share of sell actions among all trades, in percent."""
        if not trades:
            return 0.0
        sells = sum(1 for t in trades if t.action == "sell")
        return sells / len(trades) * 100

    # ===== Comprehensive Metrics =====

    def compute_metrics(
        self,
        series: Series,
        trades: Sequence[TradeRecord] = ()
    ) -> MetricSet:
        """
        Compute the MetricSet of one agent.

        Args:
            series: The agent's native Series (may be empty)
            trades: The agent's trade records

        Returns:
            MetricSet; all-zero for empty or single-point series
        """
        trades = list(trades)
        metrics = MetricSet(
            agent_id=series.agent_id,
            win_rate_pct=self.win_rate_pct(trades),
            trade_count=len(trades),
            avg_holding_days=average_holding_days(trades),
            observation_count=len(series),
        )

        if series.is_empty:
            return metrics

        equity_curve = series.to_pandas()

        metrics.initial_value = series.first.value
        metrics.current_value = series.last.value
        metrics.total_return_pct = self.total_return_pct(equity_curve)
        metrics.cumulative_return_curve = self.cumulative_return_curve(equity_curve)
        metrics.max_drawdown_pct = self.max_drawdown_pct(equity_curve)
        metrics.annualized_volatility_pct = self.annualized_volatility_pct(equity_curve)

        logger.debug(
            f"Metrics {series.agent_id}: return={metrics.total_return_pct:.2f}% "
            f"mdd={metrics.max_drawdown_pct:.2f}% vol={metrics.annualized_volatility_pct:.2f}%"
        )
        return metrics

    def compute_all(
        self,
        series_by_agent: Mapping[str, Series],
        trades_by_agent: Optional[Mapping[str, Sequence[TradeRecord]]] = None
    ) -> Dict[str, MetricSet]:
        """MetricSet of every agent, keyed like the input."""
        trades_by_agent = trades_by_agent or {}
        return {
            agent_id: self.compute_metrics(series, trades_by_agent.get(agent_id, ()))
            for agent_id, series in series_by_agent.items()
        }

    def compute_aggregate(
        self,
        metric_sets: Mapping[str, MetricSet],
        ordering: AggregateOrdering
    ) -> AggregateMetrics:
        """
        Summarise several agents.

        Args:
            metric_sets: Agent id -> MetricSet
            ordering: Figure used to pick the best and worst agent

        Returns:
            AggregateMetrics; ties keep the first agent in input order.
            Agents without observations are counted in agent_count but
            never ranked nor included in the means and value statistics.
        """
        ordering = AggregateOrdering(ordering)
        aggregate = AggregateMetrics(ordering=ordering, agent_count=len(metric_sets))
        active = {agent_id: m for agent_id, m in metric_sets.items() if m.is_active}
        aggregate.total_trades = sum(m.trade_count for m in metric_sets.values())
        if not active:
            return aggregate

        def key(m: MetricSet) -> float:
            if ordering == AggregateOrdering.TOTAL_RETURN:
                return m.total_return_pct
            return m.current_value

        best = worst = None
        for agent_id, m in active.items():
            if best is None or key(m) > key(active[best]):
                best = agent_id
            if worst is None or key(m) < key(active[worst]):
                worst = agent_id

        sets = list(active.values())
        values = np.array([m.current_value for m in sets], dtype=float)

        aggregate.best_agent = best
        aggregate.worst_agent = worst
        aggregate.mean_return_pct = float(np.mean([m.total_return_pct for m in sets]))

        aggregate.active_agents = len(sets)
        aggregate.total_equity = float(values.sum())
        aggregate.total_initial = float(sum(m.initial_value for m in sets))
        aggregate.total_profit_loss = aggregate.total_equity - aggregate.total_initial
        if aggregate.total_initial > 0:
            aggregate.total_return_pct = aggregate.total_profit_loss / aggregate.total_initial * 100

        aggregate.avg_value = float(values.mean())
        aggregate.max_value = float(values.max())
        aggregate.min_value = float(values.min())
        aggregate.value_std = float(values.std(ddof=0))

        return aggregate
