"""
ALIGNER - Projects agent Series onto one shared date axis

Agents are sampled on their own schedules (hourly for one, daily for
another, gaps on holidays). For comparison charts and exports they need a
common axis: the sorted union of every Observation date.

For each agent and axis date the aligned value is the exact-date
Observation, or None ("absent"). Nothing is forward-filled or interpolated.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd
from loguru import logger

from series.store import Series, format_date


@dataclass(frozen=True)
class AlignedPoint:
    """A Series value on the unified axis; value is None where absent."""
    date: datetime
    value: Optional[float] = None

    @property
    def is_absent(self) -> bool:
        return self.value is None

    @property
    def label(self) -> str:
        return format_date(self.date)


@dataclass(frozen=True)
class Alignment:
    """The unified axis and each agent's points on it."""
    axis: Tuple[datetime, ...] = ()
    per_agent: Dict[str, Tuple[AlignedPoint, ...]] = field(default_factory=dict)

    @property
    def agents(self) -> List[str]:
        return list(self.per_agent)

    @property
    def labels(self) -> List[str]:
        return [format_date(d) for d in self.axis]

    def values(self, agent_id: str) -> List[Optional[float]]:
        return [p.value for p in self.per_agent.get(agent_id, ())]

    def coverage(self, agent_id: str) -> int:
        """Number of axis dates where the agent has an Observation."""
        return sum(1 for p in self.per_agent.get(agent_id, ()) if not p.is_absent)

    def to_frame(self) -> pd.DataFrame:
        """One column per agent on the axis index, NaN where absent."""
        index = pd.DatetimeIndex(list(self.axis), name="date")
        columns = {
            agent_id: [np.nan if p.value is None else p.value for p in points]
            for agent_id, points in self.per_agent.items()
        }
        return pd.DataFrame(columns, index=index, columns=list(self.per_agent), dtype=float)


def build_axis(series_by_agent: Mapping[str, Series]) -> Tuple[datetime, ...]:
    """Sorted union of all Observation dates."""
    dates = set()
    for series in series_by_agent.values():
        dates.update(series.dates)
    return tuple(sorted(dates))


def align(series_by_agent: Mapping[str, Series]) -> Alignment:
    """
    Align agent Series onto their unified date axis.

    Args:
        series_by_agent: Agent id -> Series (empty Series allowed)

    Returns:
        Alignment; an empty axis when every Series is empty

    Raises:
        ValueError: if no agent is given
    """
    if not series_by_agent:
        raise ValueError("align() needs at least one agent")

    axis = build_axis(series_by_agent)
    per_agent: Dict[str, Tuple[AlignedPoint, ...]] = {}

    for agent_id, series in series_by_agent.items():
        if not axis:
            per_agent[agent_id] = ()
            continue
        lookup = {o.date: o.value for o in series.observations}
        per_agent[agent_id] = tuple(AlignedPoint(d, lookup.get(d)) for d in axis)

    logger.debug(f"Aligned {len(per_agent)} agents on {len(axis)} dates")
    return Alignment(axis=axis, per_agent=per_agent)
