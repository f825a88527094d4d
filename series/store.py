"""
SERIES STORE - Canonical per-agent portfolio value histories

Turns raw {date, value} records (any order, duplicates, junk) into a Series:
- strictly increasing by date, one Observation per date
- duplicate dates resolved last-write-wins by ingestion order
- non-positive, non-finite or undatable records dropped as data-quality
  warnings (logged, attached to the Series, never raised)

A Series may be empty. Every downstream consumer accepts empty input.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, date as date_cls
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import pandas as pd
from loguru import logger

from core.errors import DataQualityWarning


DateLike = Union[str, datetime, date_cls]


def parse_date(value: DateLike) -> datetime:
    """
    Parse an ISO-8601 date or datetime into a timezone-naive datetime.

    Raises:
        ValueError: if the value is not a recognisable date
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date_cls):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("empty date")
        parsed = datetime.fromisoformat(text.replace("T", " ").replace("Z", ""))
    else:
        raise ValueError(f"unsupported date type {type(value).__name__}")

    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None)
    return parsed


def format_date(value: datetime) -> str:
    """ISO date for midnight timestamps, ISO datetime otherwise."""
    if value.hour == 0 and value.minute == 0 and value.second == 0 and value.microsecond == 0:
        return value.date().isoformat()
    return value.isoformat(sep=" ")


@dataclass(frozen=True)
class Observation:
    """An agent's total portfolio value at a point in time."""
    date: datetime
    value: float

    @property
    def label(self) -> str:
        return format_date(self.date)

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.label, "value": self.value}


@dataclass(frozen=True)
class Series:
    """Chronological Observations of one agent."""
    agent_id: str
    observations: Tuple[Observation, ...] = ()
    warnings: Tuple[DataQualityWarning, ...] = field(default=(), compare=False)

    def __len__(self) -> int:
        return len(self.observations)

    def __iter__(self):
        return iter(self.observations)

    @property
    def is_empty(self) -> bool:
        return not self.observations

    @property
    def first(self) -> Optional[Observation]:
        return self.observations[0] if self.observations else None

    @property
    def last(self) -> Optional[Observation]:
        return self.observations[-1] if self.observations else None

    @property
    def dates(self) -> List[datetime]:
        return [o.date for o in self.observations]

    @property
    def values(self) -> List[float]:
        return [o.value for o in self.observations]

    def value_at(self, when: datetime) -> Optional[float]:
        """Exact-date lookup; None when there is no Observation at that date."""
        for observation in self.observations:
            if observation.date == when:
                return observation.value
        return None

    def to_raw_records(self) -> List[Dict[str, Any]]:
        return [o.to_dict() for o in self.observations]

    def to_pandas(self) -> pd.Series:
        """Values as a float pandas Series on a DatetimeIndex."""
        return pd.Series(
            self.values,
            index=pd.DatetimeIndex(self.dates),
            dtype=float,
            name=self.agent_id,
        )


def _extract(record: Any) -> Tuple[Any, Any]:
    if isinstance(record, Observation):
        return record.date, record.value
    if isinstance(record, Mapping):
        return record.get("date"), record.get("value")
    raise TypeError(f"unsupported record type {type(record).__name__}")


def build_series(agent_id: str, raw_records: Iterable[Any]) -> Series:
    """
    Build a canonical Series from raw {date, value} records.

    Args:
        agent_id: Agent identifier
        raw_records: Mappings with 'date' and 'value' keys (or Observations)

    Returns:
        Series sorted ascending by date, possibly empty
    """
    latest: Dict[datetime, Tuple[Any, Any]] = {}
    warnings: List[DataQualityWarning] = []

    for record in raw_records or ():
        try:
            raw_date, raw_value = _extract(record)
        except TypeError as e:
            warnings.append(DataQualityWarning(agent_id, None, record, str(e)))
            continue

        try:
            when = parse_date(raw_date)
        except (ValueError, TypeError) as e:
            warnings.append(DataQualityWarning(agent_id, raw_date, raw_value, f"unparsable date: {e}"))
            continue

        # Last write wins, before the value is validated
        latest[when] = (raw_date, raw_value)

    by_date: Dict[datetime, float] = {}
    for when, (raw_date, raw_value) in latest.items():
        try:
            value = float(raw_value)
        except (ValueError, TypeError):
            warnings.append(DataQualityWarning(agent_id, raw_date, raw_value, "non-numeric value"))
            continue

        if not math.isfinite(value):
            warnings.append(DataQualityWarning(agent_id, raw_date, raw_value, "non-finite value"))
            continue
        if value <= 0:
            warnings.append(DataQualityWarning(agent_id, raw_date, raw_value, "non-positive value"))
            continue

        by_date[when] = value

    for warning in warnings:
        logger.warning(f"Data quality: {warning}")

    observations = tuple(Observation(d, by_date[d]) for d in sorted(by_date))
    logger.debug(f"Built series for {agent_id}: {len(observations)} observations, {len(warnings)} dropped")
    return Series(agent_id=agent_id, observations=observations, warnings=tuple(warnings))


class SeriesStore:
    """
    Holds the Series of one data load.

    An explicit state object: the refresh cycle replaces its content
    wholesale, readers never mutate it.
    """

    def __init__(self, series: Optional[Mapping[str, Series]] = None):
        self._series: Dict[str, Series] = dict(series or {})

    def put(self, series: Series) -> None:
        self._series[series.agent_id] = series

    def ingest(self, agent_id: str, raw_records: Iterable[Any]) -> Series:
        """Build a Series from raw records and store it."""
        series = build_series(agent_id, raw_records)
        self.put(series)
        return series

    def get(self, agent_id: str) -> Series:
        """The agent's Series, empty when unknown."""
        series = self._series.get(agent_id)
        return series if series is not None else Series(agent_id=agent_id)

    @property
    def agents(self) -> List[str]:
        return list(self._series)

    def as_dict(self) -> Dict[str, Series]:
        return dict(self._series)

    def replace(self, series: Mapping[str, Series]) -> None:
        self._series = dict(series)

    def reset(self) -> None:
        self._series = {}

    def __contains__(self, agent_id: str) -> bool:
        return agent_id in self._series

    def __len__(self) -> int:
        return len(self._series)
