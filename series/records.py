"""
AGENT RECORDS - Position snapshots, trades, prices and valuation

An agent's raw artifact is a JSON-lines file, one snapshot per decision:

    {"date": "2025-10-02 10:00:00", "id": 3,
     "this_action": {"action": "buy", "symbol": "NVDA", "amount": 10},
     "positions": {"CASH": 8576.5, "NVDA": 10, "AAPL": 0}}

From it we derive:
- the trade history (buy/sell actions in chronological order)
- the current holdings (latest non-cash positions with shares > 0)
- raw {date, value} records, valuing each snapshot with a PriceBook

Price files follow the Alpha Vantage layout ("Meta Data" + "Time Series
(...)"), either one file per symbol or one JSON document per line for the
merged A-share file.
"""

import json
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd
from loguru import logger

from core.errors import DataQualityWarning
from series.store import format_date, parse_date


CASH_KEY = "CASH"
TRADE_ACTIONS = ("buy", "sell")

# Preferred price fields, first match wins
PRICE_FIELDS = ("4. close", "4. sell price", "close", "1. open", "1. buy price", "open")


@dataclass(frozen=True)
class TradeRecord:
    """A single buy or sell decision."""
    date: datetime
    action: str  # "buy" or "sell"
    symbol: str
    amount: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": format_date(self.date),
            "action": self.action,
            "symbol": self.symbol,
            "amount": self.amount,
        }


@dataclass(frozen=True)
class PositionSnapshot:
    """Cash and share counts after one decision."""
    date: datetime
    snapshot_id: int
    cash: float
    positions: Dict[str, float] = field(default_factory=dict)
    action: Optional[TradeRecord] = None

    @property
    def held_symbols(self) -> List[str]:
        return [s for s, shares in self.positions.items() if shares > 0]


@dataclass(frozen=True)
class AgentRecord:
    """All snapshots of one agent, sorted by (date, id)."""
    agent_id: str
    snapshots: Tuple[PositionSnapshot, ...] = ()
    warnings: Tuple[DataQualityWarning, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.snapshots

    def trades(self) -> List[TradeRecord]:
        """Buy/sell actions, oldest first."""
        return [s.action for s in self.snapshots if s.action is not None]

    def current_holdings(self) -> Dict[str, float]:
        """Latest non-cash positions with a positive share count."""
        if not self.snapshots:
            return {}
        latest = self.snapshots[-1]
        return {s: shares for s, shares in latest.positions.items() if shares > 0}

    def current_cash(self) -> float:
        return self.snapshots[-1].cash if self.snapshots else 0.0

    def symbols(self) -> List[str]:
        """Every symbol ever held, sorted."""
        seen = set()
        for snapshot in self.snapshots:
            seen.update(snapshot.held_symbols)
        return sorted(seen)


def _parse_action(raw: Any, when: datetime) -> Optional[TradeRecord]:
    if not isinstance(raw, dict):
        return None
    action = str(raw.get("action", "")).lower()
    if action not in TRADE_ACTIONS:
        return None
    try:
        amount = float(raw.get("amount", 0) or 0)
    except (TypeError, ValueError):
        amount = 0.0
    return TradeRecord(date=when, action=action, symbol=str(raw.get("symbol", "")), amount=amount)


def parse_position_lines(agent_id: str, text: str) -> AgentRecord:
    """
    Parse a position.jsonl document.

    Bad lines are recorded as data-quality warnings and skipped.
    """
    snapshots: List[PositionSnapshot] = []
    warnings: List[DataQualityWarning] = []

    for line_no, line in enumerate(text.splitlines()):
        line = line.strip()
        if not line:
            continue
        try:
            entry = json.loads(line)
            when = parse_date(entry["date"])
            raw_positions = entry.get("positions") or {}
            positions = {
                str(symbol): float(shares or 0)
                for symbol, shares in raw_positions.items()
                if symbol != CASH_KEY
            }
            cash = float(raw_positions.get(CASH_KEY, 0) or 0)
            snapshot_id = int(entry.get("id", line_no))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            warnings.append(DataQualityWarning(agent_id, None, line[:80], f"bad position line {line_no + 1}: {e}"))
            continue

        snapshots.append(PositionSnapshot(
            date=when,
            snapshot_id=snapshot_id,
            cash=cash,
            positions=positions,
            action=_parse_action(entry.get("this_action"), when),
        ))

    for warning in warnings:
        logger.warning(f"Data quality: {warning}")

    snapshots.sort(key=lambda s: (s.date, s.snapshot_id))
    return AgentRecord(agent_id=agent_id, snapshots=tuple(snapshots), warnings=tuple(warnings))


def parse_asset_history(agent_id: str, text: str) -> List[Dict[str, Any]]:
    """
    Parse a pre-computed asset history (a list of {date, value}).

    Accepts a bare JSON list or an object with an "asset_history" list.

    Raises:
        ValueError: if the document has neither shape
    """
    document = json.loads(text)
    if isinstance(document, dict):
        document = document.get("asset_history")
    if not isinstance(document, list):
        raise ValueError(f"asset history of {agent_id} is not a list")
    return [r for r in document if isinstance(r, dict)]


# ===== Prices =====

def _pick_price(bar: Any) -> Optional[float]:
    if isinstance(bar, (int, float)):
        return float(bar)
    if not isinstance(bar, dict):
        return None
    for key in PRICE_FIELDS:
        if key in bar:
            try:
                price = float(bar[key])
            except (TypeError, ValueError):
                return None
            return price if math.isfinite(price) and price > 0 else None
    return None


class PriceBook:
    """Symbol -> price history as a pandas Series, with as-of lookups."""

    def __init__(self):
        self._prices: Dict[str, pd.Series] = {}

    @property
    def symbols(self) -> List[str]:
        return sorted(self._prices)

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._prices

    def add_history(self, symbol: str, points: Iterable[Tuple[datetime, float]]) -> None:
        points = list(points)
        new = pd.Series(
            [price for _, price in points],
            index=pd.DatetimeIndex([d for d, _ in points]),
            dtype=float,
        )
        if symbol in self._prices:
            new = pd.concat([self._prices[symbol], new])
        new = new[~new.index.duplicated(keep="last")]
        self._prices[symbol] = new.sort_index()

    def add_alpha_vantage(self, document: Any, symbol: Optional[str] = None) -> Optional[str]:
        """
        Add one Alpha-Vantage-style document.

        Returns:
            The symbol the prices were stored under, None if nothing usable
        """
        if not isinstance(document, dict):
            return None
        meta = document.get("Meta Data") or {}
        if not isinstance(meta, dict):
            return None
        symbol = symbol or meta.get("2. Symbol") or meta.get("symbol")
        series_key = next((k for k in document if str(k).startswith("Time Series")), None)
        if not symbol or series_key is None:
            return None
        bars = document.get(series_key) or {}
        if not isinstance(bars, dict):
            return None

        points = []
        for raw_date, bar in bars.items():
            price = _pick_price(bar)
            if price is None:
                continue
            try:
                points.append((parse_date(raw_date), price))
            except ValueError:
                continue

        self.add_history(str(symbol), points)
        return str(symbol)

    def add_merged_lines(self, text: str) -> int:
        """Add a JSON-lines file of Alpha-Vantage documents. Returns symbols added."""
        added = 0
        for line_no, line in enumerate(text.splitlines(), start=1):
            line = line.strip()
            if not line:
                continue
            try:
                document = json.loads(line)
            except ValueError:
                logger.warning(f"Skipping unparsable merged price line {line_no}")
                continue
            if self.add_alpha_vantage(document):
                added += 1
            else:
                logger.warning(f"Skipping merged price line {line_no}: no usable time series")
        return added

    def price_on_or_before(self, symbol: str, when: datetime) -> Optional[float]:
        """Latest known price at or before `when`."""
        prices = self._prices.get(symbol)
        if prices is None or prices.empty:
            return None
        price = prices.asof(pd.Timestamp(when))
        return None if pd.isna(price) else float(price)

    def latest_price(self, symbol: str) -> Optional[float]:
        prices = self._prices.get(symbol)
        if prices is None or prices.empty:
            return None
        return float(prices.iloc[-1])

    def history(self, symbol: str) -> List[Tuple[datetime, float]]:
        prices = self._prices.get(symbol)
        if prices is None:
            return []
        return [(ts.to_pydatetime(), float(price)) for ts, price in prices.items()]


# ===== Valuation =====

def value_snapshots(
    record: AgentRecord,
    price_book: PriceBook
) -> Tuple[List[Dict[str, Any]], List[DataQualityWarning]]:
    """
    Value every snapshot as cash plus shares times the as-of price.

    A snapshot holding a symbol without a known price is skipped.

    Returns:
        (raw {date, value} records in snapshot order, warnings)
    """
    records: List[Dict[str, Any]] = []
    warnings: List[DataQualityWarning] = []

    for snapshot in record.snapshots:
        total = snapshot.cash
        missing = []
        for symbol, shares in snapshot.positions.items():
            if shares == 0:
                continue
            price = price_book.price_on_or_before(symbol, snapshot.date)
            if price is None:
                missing.append(symbol)
                continue
            total += shares * price

        if missing:
            warnings.append(DataQualityWarning(
                record.agent_id,
                format_date(snapshot.date),
                None,
                f"no price for {', '.join(sorted(missing))}",
            ))
            continue

        records.append({"date": snapshot.date, "value": total})

    for warning in warnings:
        logger.warning(f"Data quality: {warning}")

    return records, warnings


def benchmark_records(
    price_book: PriceBook,
    symbol: str,
    initial_value: float
) -> List[Dict[str, Any]]:
    """Benchmark prices rescaled so the first point equals initial_value."""
    history = price_book.history(symbol)
    if not history:
        return []
    base = history[0][1]
    return [{"date": d, "value": price / base * initial_value} for d, price in history]
