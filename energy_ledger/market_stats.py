"""
market_stats.py - Read-only market analytics

Summaries of the open book and the trade history for display:
- supply_curve() / demand_curve(): cumulative quantity available at each price
- crossing_volume(): energy the next match could clear if every buyer can pay
- trade_summary(): count, volume, VWAP and price range of settled trades

All functions take a LedgerView and never modify state. Quantities are
summed as Python ints before conversion so u64 values do not overflow;
prices and cumulative quantities are returned as float64 arrays.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

import numpy as np

from .core import LedgerView, Trade


@dataclass(frozen=True, slots=True)
class Curve:
    """
    Step curve of one side of the book.

    Attributes:
        prices: Distinct price levels in priority order
            (ascending for supply, descending for demand)
        cumulative: Total quantity available at that level or better
    """
    prices: np.ndarray
    cumulative: np.ndarray

    @property
    def depth(self) -> float:
        return float(self.cumulative[-1]) if len(self.cumulative) else 0.0


@dataclass(frozen=True, slots=True)
class TradeSummary:
    count: int
    volume: int
    notional: int
    vwap: Optional[float]
    min_price: Optional[int]
    max_price: Optional[int]


def _curve(levels: Iterable[Tuple[int, int]]) -> Curve:
    """Collapse (price, quantity) pairs, already in priority order, into a step curve."""
    prices = []
    quantities = []
    for price, quantity in levels:
        if prices and prices[-1] == price:
            quantities[-1] += quantity
        else:
            prices.append(price)
            quantities.append(quantity)
    cumulative = np.cumsum(np.array(quantities, dtype=np.float64))
    return Curve(prices=np.array(prices, dtype=np.float64), cumulative=cumulative)


def supply_curve(view: LedgerView) -> Curve:
    """Cumulative open production by ascending unit price."""
    return _curve((r.unit_price, r.remaining_energy) for r in view.open_reports())


def demand_curve(view: LedgerView) -> Curve:
    """Cumulative open demand by descending price limit."""
    return _curve((d.price_limit, d.remaining_energy) for d in view.open_demands())


def crossing_volume(view: LedgerView) -> int:
    """
    Energy the open book would clear under price priority alone.

    Ignores buyer balances, so it is an upper bound on what the next
    MatchTransactions settles with seller's-ask pricing.
    """
    asks = view.open_reports()
    bids = view.open_demands()
    ask_left = [r.remaining_energy for r in asks]
    bid_left = [d.remaining_energy for d in bids]
    i = j = 0
    volume = 0
    while i < len(asks) and j < len(bids) and asks[i].unit_price <= bids[j].price_limit:
        quantity = min(ask_left[i], bid_left[j])
        volume += quantity
        ask_left[i] -= quantity
        bid_left[j] -= quantity
        if ask_left[i] == 0:
            i += 1
        if bid_left[j] == 0:
            j += 1
    return volume


def trade_summary(trades: Iterable[Trade]) -> TradeSummary:
    """Aggregate statistics for a sequence of trades."""
    trades = list(trades)
    if not trades:
        return TradeSummary(0, 0, 0, None, None, None)
    prices = np.array([t.settled_price for t in trades], dtype=np.float64)
    quantities = np.array([t.quantity for t in trades], dtype=np.float64)
    return TradeSummary(
        count=len(trades),
        volume=sum(t.quantity for t in trades),
        notional=sum(t.cost for t in trades),
        vwap=float(np.average(prices, weights=quantities)),
        min_price=min(t.settled_price for t in trades),
        max_price=max(t.settled_price for t in trades),
    )
