"""
matching.py - Matching Engine

Pairs open production against open demand in a deterministic greedy
double-auction pass and settles every pair it fills.

Priority:
    Sell side: unit_price ascending, then report id ascending
    Buy side:  price_limit descending, then demand id ascending

Pass:
    Two cursors walk the sorted sides while the current ask <= current bid.
    Each crossing pair trades min(remaining on both sides) at the settlement
    price. The buyer pays quantity * price to the seller. If the buyer cannot
    cover that (or the seller's balance would overflow) the pair is skipped:
    the demand cursor advances and the post stays open. Exhausted records
    advance their cursor. The pass ends when the best remaining ask exceeds
    the best remaining bid or either side runs out.

Passes repeat until one produces no trade. A post skipped for lack of funds
is therefore retried once an earlier settlement in the same call has paid its
owner, and calling match_transactions() again on an unchanged book always
yields zero trades.
"""

from __future__ import annotations
from dataclasses import replace
from typing import List, Tuple

from .core import (
    LedgerState, ProductionReport, DemandPost, Trade,
    SettlementPricing, DEFAULT_SETTLEMENT_PRICING, I64_MIN, I64_MAX,
    InsufficientBalance, InvalidAmount,
)
from .offers import fill_report, fill_demand, store
from .registry import lookup, replace_participant
from .wallet import transfer


def settlement_price(
    report: ProductionReport,
    demand: DemandPost,
    pricing: SettlementPricing = DEFAULT_SETTLEMENT_PRICING,
) -> int:
    """
    Price per unit for a crossing pair.

    Always lies in [report.unit_price, demand.price_limit].
    """
    if pricing is SettlementPricing.MIDPOINT:
        return (report.unit_price + demand.price_limit) // 2
    return report.unit_price


def _record_energy(state: LedgerState, seller: str, buyer: str, quantity: int) -> LedgerState:
    """Move quantity of net energy from seller to buyer."""
    sold = lookup(state, seller)
    if sold.energy_balance - quantity < I64_MIN:
        raise InvalidAmount(f"{seller}: energy balance would underflow i64")
    state = replace_participant(state, replace(sold, energy_balance=sold.energy_balance - quantity))
    bought = lookup(state, buyer)
    if bought.energy_balance + quantity > I64_MAX:
        raise InvalidAmount(f"{buyer}: energy balance would overflow i64")
    return replace_participant(state, replace(bought, energy_balance=bought.energy_balance + quantity))


def _settle(
    state: LedgerState,
    report: ProductionReport,
    demand: DemandPost,
    pricing: SettlementPricing,
) -> Tuple[LedgerState, Trade]:
    """
    Settle one crossing pair.

    Raises InsufficientBalance or InvalidAmount if the pair cannot settle;
    the input state is untouched in that case.
    """
    quantity = min(report.remaining_energy, demand.remaining_energy)
    price = settlement_price(report, demand, pricing)

    state = transfer(state, demand.owner, report.owner, quantity * price)
    state = _record_energy(state, report.owner, demand.owner, quantity)
    state = store(state, fill_report(report, quantity))
    state = store(state, fill_demand(demand, quantity))

    trade = Trade(
        production_id=report.id,
        demand_id=demand.id,
        quantity=quantity,
        settled_price=price,
        seller=report.owner,
        buyer=demand.owner,
    )
    return state, trade


def _match_pass(state: LedgerState, pricing: SettlementPricing) -> Tuple[LedgerState, List[Trade]]:
    asks = state.open_reports()
    bids = state.open_demands()
    trades: List[Trade] = []
    i = j = 0

    while i < len(asks) and j < len(bids):
        report = state.reports[asks[i].id]
        demand = state.demands[bids[j].id]
        if report.unit_price > demand.price_limit:
            break

        try:
            state, trade = _settle(state, report, demand, pricing)
        except (InsufficientBalance, InvalidAmount):
            j += 1
            continue

        trades.append(trade)
        if not state.reports[report.id].is_open:
            i += 1
        if not state.demands[demand.id].is_open:
            j += 1

    return state, trades


def match_transactions(
    state: LedgerState,
    pricing: SettlementPricing = DEFAULT_SETTLEMENT_PRICING,
) -> Tuple[LedgerState, List[Trade]]:
    """
    Match the open book and settle every filled pair.

    Args:
        state: Current ledger state
        pricing: Settlement price rule (seller's ask by default)

    Returns:
        (new_state, trades) where trades lists the trades emitted by this call
        in settlement order. new_state.trades has them appended.
    """
    emitted: List[Trade] = []
    while True:
        state, trades = _match_pass(state, pricing)
        if not trades:
            break
        emitted.extend(trades)
    return replace(state, trades=state.trades + tuple(emitted)), emitted
