"""
HOLDING PERIODS - FIFO pairing of buys and sells

Each sell consumes the oldest open buy lots of the same symbol. Every
matched quantity contributes (sell date - buy date) in days, weighted by
the matched shares. Sells without an open lot are ignored.
"""

from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional, Sequence, Tuple

from loguru import logger

from series.records import TradeRecord


SECONDS_PER_DAY = 86400


def match_lots(trades: Sequence[TradeRecord]) -> List[Tuple[float, float]]:
    """
    Pair sells with earlier buys, first in first out.

    Returns:
        List of (matched shares, holding days)
    """
    open_lots: Dict[str, Deque[List]] = defaultdict(deque)
    matches: List[Tuple[float, float]] = []

    for trade in sorted(trades, key=lambda t: t.date):
        if trade.amount <= 0:
            continue

        if trade.action == "buy":
            open_lots[trade.symbol].append([trade.date, trade.amount])
            continue

        remaining = trade.amount
        lots = open_lots[trade.symbol]
        while remaining > 0 and lots:
            lot = lots[0]
            matched = min(remaining, lot[1])
            days = (trade.date - lot[0]).total_seconds() / SECONDS_PER_DAY
            matches.append((matched, days))
            lot[1] -= matched
            remaining -= matched
            if lot[1] <= 0:
                lots.popleft()

        if remaining > 0:
            logger.debug(f"Unmatched sell of {remaining} {trade.symbol} on {trade.date}")

    return matches


def average_holding_days(trades: Sequence[TradeRecord]) -> Optional[float]:
    """Share-weighted mean holding period in days; None without any closed lot."""
    matches = match_lots(trades)
    total_shares = sum(shares for shares, _ in matches)
    if total_shares <= 0:
        return None
    return sum(shares * days for shares, days in matches) / total_shares
