"""
offers.py - Offer Book

Open production reports (sell side) and demand posts (buy side):
1. report_production() - producers and prosumers offer energy at a unit price
2. post_demand() - consumers and prosumers request energy up to a price limit
3. fill_report() / fill_demand() - partial consumption used by matching

Records are never deleted. A record whose remaining energy reaches zero is
flipped to EXHAUSTED, which removes it from the open book
(LedgerState.open_reports / open_demands) while keeping it as history.
"""

from __future__ import annotations
from dataclasses import replace
from typing import TypeVar, Union

from .core import (
    LedgerState, ProductionReport, DemandPost, OfferStatus, InstructionTag,
    InvalidAmount, InvariantViolation, UnauthorizedRole,
    require_positive_amount, require_u64,
)
from .registry import lookup


def report_production(
    state: LedgerState,
    identity: str,
    energy_amount: int,
    unit_price: int,
) -> LedgerState:
    """
    Add an open production report to the book.

    Args:
        state: Current ledger state
        identity: Reporting participant (Producer or Prosumer)
        energy_amount: Energy available, must be > 0
        unit_price: Ask price per unit (zero is allowed)

    Returns:
        New state with the report stored under next_report_id

    Raises:
        NotRegistered: If identity has no participant record
        UnauthorizedRole: If the participant is a Consumer
        InvalidAmount: If energy_amount is zero or a value is out of u64 range
    """
    participant = lookup(state, identity)
    if not participant.can(InstructionTag.REPORT_PRODUCTION):
        raise UnauthorizedRole(f"{identity} ({participant.role.name}) cannot report production")
    require_positive_amount(energy_amount, "energy_amount")
    require_u64(unit_price, "unit_price")

    report = ProductionReport(
        id=state.next_report_id,
        owner=identity,
        energy_amount=energy_amount,
        remaining_energy=energy_amount,
        unit_price=unit_price,
    )
    return replace(
        state,
        reports={**state.reports, report.id: report},
        next_report_id=state.next_report_id + 1,
    )


def post_demand(
    state: LedgerState,
    identity: str,
    energy_amount: int,
    price_limit: int,
) -> LedgerState:
    """
    Add an open demand post to the book.

    Raises:
        NotRegistered: If identity has no participant record
        UnauthorizedRole: If the participant is a Producer
        InvalidAmount: If energy_amount is zero or a value is out of u64 range
    """
    participant = lookup(state, identity)
    if not participant.can(InstructionTag.POST_DEMAND):
        raise UnauthorizedRole(f"{identity} ({participant.role.name}) cannot post demand")
    require_positive_amount(energy_amount, "energy_amount")
    require_u64(price_limit, "price_limit")

    demand = DemandPost(
        id=state.next_demand_id,
        owner=identity,
        energy_amount=energy_amount,
        remaining_energy=energy_amount,
        price_limit=price_limit,
    )
    return replace(
        state,
        demands={**state.demands, demand.id: demand},
        next_demand_id=state.next_demand_id + 1,
    )


Offer = TypeVar("Offer", ProductionReport, DemandPost)


def _consume(offer: Offer, quantity: int) -> Offer:
    if not offer.is_open:
        raise InvariantViolation(f"{type(offer).__name__} {offer.id} is already exhausted")
    if quantity <= 0:
        raise InvalidAmount(f"fill quantity must be positive, got {quantity}")
    if quantity > offer.remaining_energy:
        raise InvariantViolation(
            f"{type(offer).__name__} {offer.id}: fill {quantity} > remaining {offer.remaining_energy}"
        )
    remaining = offer.remaining_energy - quantity
    status = OfferStatus.EXHAUSTED if remaining == 0 else OfferStatus.OPEN
    return replace(offer, remaining_energy=remaining, status=status)


def fill_report(report: ProductionReport, quantity: int) -> ProductionReport:
    """Return the report with quantity allocated out of it."""
    return _consume(report, quantity)


def fill_demand(demand: DemandPost, quantity: int) -> DemandPost:
    """Return the demand post with quantity filled."""
    return _consume(demand, quantity)


def store(state: LedgerState, offer: Union[ProductionReport, DemandPost]) -> LedgerState:
    """Return a new state with an updated report or post written back to its book."""
    if isinstance(offer, ProductionReport):
        return replace(state, reports={**state.reports, offer.id: offer})
    return replace(state, demands={**state.demands, offer.id: offer})
