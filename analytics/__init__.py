"""
ANALYTICS - Risk/return statistics and chart transforms

The Analytics module turns Series into the numbers the dashboard shows:

1. Metrics    - total return, drawdown, volatility, win rate per agent
2. Aggregates - best/worst agent, mean return, pooled equity
3. Holding    - FIFO holding periods from trade records
4. Transforms - dollar/percent modes, trailing windows, axis ranges

Components:
- MetricsEngine: computes MetricSet and AggregateMetrics
- AggregateOrdering: rank agents by total return or current value
- ValueMode / TimeRange: chart toolbar state

Usage:
    from analytics import MetricsEngine, AggregateOrdering

    engine = MetricsEngine()
    metrics = engine.compute_all(series_by_agent, trades_by_agent)
    summary = engine.compute_aggregate(metrics, AggregateOrdering.TOTAL_RETURN)
"""

from analytics.metrics import (
    MetricsEngine,
    MetricSet,
    AggregateMetrics,
    AggregateOrdering,
    TRADING_DAYS_PER_YEAR,
)

from analytics.holding import (
    match_lots,
    average_holding_days,
)

from analytics.transforms import (
    ValueMode,
    TimeRange,
    filter_series,
    filter_series_map,
    to_value_mode,
    latest_date,
    y_axis_range,
)


__all__ = [
    # Metrics
    'MetricsEngine',
    'MetricSet',
    'AggregateMetrics',
    'AggregateOrdering',
    'TRADING_DAYS_PER_YEAR',

    # Holding
    'match_lots',
    'average_holding_days',

    # Transforms
    'ValueMode',
    'TimeRange',
    'filter_series',
    'filter_series_map',
    'to_value_mode',
    'latest_date',
    'y_axis_range',
]
