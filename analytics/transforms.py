"""
CHART TRANSFORMS - Value modes, time windows and axis ranges

What the chart toolbar used to do in place on the chart object, done here
as pure functions on Series and value lists.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Mapping, Optional, Tuple

from series.store import Observation, Series


class ValueMode(str, Enum):
    """How values are plotted."""
    DOLLAR = "dollar"
    PERCENT = "percent"


@dataclass(frozen=True)
class TimeRange:
    """'all' or a trailing window of N hours."""
    hours: Optional[int] = None

    @classmethod
    def parse(cls, text: str) -> "TimeRange":
        """
        Parse 'all' or '<N>h' (e.g. '72h').

        Raises:
            ValueError: on any other spelling
        """
        text = (text or "all").strip().lower()
        if text == "all":
            return cls()
        if not text.endswith("h"):
            raise ValueError(f"Invalid time range: {text!r}")
        hours = int(text[:-1])
        if hours <= 0:
            raise ValueError(f"Invalid time range: {text!r}")
        return cls(hours=hours)

    @property
    def is_all(self) -> bool:
        return self.hours is None

    def cutoff(self, reference: datetime) -> Optional[datetime]:
        if self.hours is None:
            return None
        return reference - timedelta(hours=self.hours)

    def __str__(self) -> str:
        return "all" if self.hours is None else f"{self.hours}h"


def latest_date(series_list: Iterable[Series]) -> Optional[datetime]:
    """Latest Observation date across several Series."""
    last = [s.last.date for s in series_list if not s.is_empty]
    return max(last) if last else None


def filter_series(series: Series, time_range: TimeRange, reference: Optional[datetime] = None) -> Series:
    """Keep the Observations inside the window ending at `reference`."""
    if time_range.is_all or series.is_empty:
        return series
    reference = reference or series.last.date
    cutoff = time_range.cutoff(reference)
    kept = tuple(o for o in series.observations if o.date >= cutoff)
    return Series(agent_id=series.agent_id, observations=kept, warnings=series.warnings)


def filter_series_map(
    series_by_agent: Mapping[str, Series],
    time_range: TimeRange,
    reference: Optional[datetime] = None
) -> dict:
    """Window every Series against one shared reference (default: latest date overall)."""
    reference = reference or latest_date(series_by_agent.values())
    return {
        agent_id: filter_series(series, time_range, reference)
        for agent_id, series in series_by_agent.items()
    }


def to_value_mode(series: Series, mode: ValueMode) -> Series:
    """
    Dollar values unchanged, or percent change from the first Observation.

    Percent-mode values can be zero or negative, so the result is for
    plotting only and must not be fed back into build_series.
    """
    mode = ValueMode(mode)
    if mode == ValueMode.DOLLAR or series.is_empty:
        return series
    base = series.first.value
    observations = tuple(
        Observation(o.date, (o.value - base) / base * 100) for o in series.observations
    )
    return Series(agent_id=series.agent_id, observations=observations, warnings=series.warnings)


def y_axis_range(values: Iterable[Optional[float]], padding: float = 0.1) -> Tuple[float, float]:
    """Min/max of the present values, widened by `padding` of the span."""
    present = [v for v in values if v is not None]
    if not present:
        return 0.0, 100.0

    low, high = min(present), max(present)
    span = high - low
    if span == 0:
        span = abs(high) or 1.0
    return low - span * padding, high + span * padding
