"""
SERIES - From raw agent artifacts to aligned portfolio value series

The Series module turns what agents leave behind into chart-ready data:

1. Records   - parse position snapshots, derive trades and holdings, value
               snapshots against price files
2. Store     - canonical chronological Series per agent
3. Aligner   - shared date axis across agents, explicit gaps

Components:
- build_series: raw {date, value} records -> Series
- SeriesStore: the Series of one data load
- align: Series per agent -> Alignment (axis + AlignedPoints)
- PriceBook / value_snapshots: valuation of position snapshots

Usage:
    from series import build_series, align

    a = build_series("gpt-5", [{"date": "2025-10-01", "value": 10000}])
    b = build_series("qwen3-max", [{"date": "2025-10-02", "value": 10150}])

    alignment = align({"gpt-5": a, "qwen3-max": b})
    alignment.values("gpt-5")   # [10000.0, None]
"""

from series.store import (
    Observation,
    Series,
    SeriesStore,
    build_series,
    parse_date,
    format_date,
)

from series.aligner import (
    AlignedPoint,
    Alignment,
    align,
    build_axis,
)

from series.records import (
    AgentRecord,
    PositionSnapshot,
    TradeRecord,
    PriceBook,
    parse_position_lines,
    parse_asset_history,
    value_snapshots,
    benchmark_records,
)


__all__ = [
    # Store
    'Observation',
    'Series',
    'SeriesStore',
    'build_series',
    'parse_date',
    'format_date',

    # Aligner
    'AlignedPoint',
    'Alignment',
    'align',
    'build_axis',

    # Records
    'AgentRecord',
    'PositionSnapshot',
    'TradeRecord',
    'PriceBook',
    'parse_position_lines',
    'parse_asset_history',
    'value_snapshots',
    'benchmark_records',
]
