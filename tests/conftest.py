"""
conftest.py - Shared pytest fixtures for energy ledger tests

Provides common fixtures used across unit, conformance and functional tests:
- Pure states (uninitialized, initialized, with participants)
- Stateful hosts (empty, market-ready)
- Helpers to apply instruction sequences to a pure state
"""

import pytest
from typing import Iterable, Tuple

from energy_ledger import (
    LedgerState, EnergyLedger, Role,
    Initialize, RegisterParticipant, Deposit,
    Instruction, apply,
)


OPERATOR = "operator"


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def run(state: LedgerState, steps: Iterable[Tuple[str, Instruction]]) -> LedgerState:
    """Apply (caller, instruction) pairs in order and return the final state."""
    for caller, instruction in steps:
        state = apply(state, instruction, caller).state
    return state


def with_participants(state: LedgerState, **roles: Role) -> LedgerState:
    """Register each keyword as an identity with the given role."""
    return run(state, [(identity, RegisterParticipant(role)) for identity, role in roles.items()])


def funded(state: LedgerState, **amounts: int) -> LedgerState:
    """Deposit the given amount for each keyword identity."""
    return run(state, [(identity, Deposit(amount)) for identity, amount in amounts.items()])


# =============================================================================
# PURE STATE FIXTURES
# =============================================================================

@pytest.fixture
def blank_state():
    """State of a ledger account before Initialize."""
    return LedgerState()


@pytest.fixture
def initialized_state(blank_state):
    """Initialized ledger with nobody registered."""
    return apply(blank_state, Initialize(), OPERATOR).state


@pytest.fixture
def market_state(initialized_state):
    """
    Producer, consumer and prosumer registered.

    Balances: producer 0, consumer 100000, prosumer 50000.
    """
    state = with_participants(
        initialized_state,
        producer=Role.PRODUCER,
        consumer=Role.CONSUMER,
        prosumer=Role.PROSUMER,
    )
    return funded(state, consumer=100_000, prosumer=50_000)


# =============================================================================
# HOST FIXTURES
# =============================================================================

@pytest.fixture
def empty_ledger():
    """Fresh host with an uninitialized state."""
    return EnergyLedger("test", verbose=False)


@pytest.fixture
def market_ledger():
    """Host with the same participants and balances as market_state."""
    ledger = EnergyLedger("market", verbose=False)
    ledger.initialize(OPERATOR)
    ledger.register("producer", Role.PRODUCER)
    ledger.register("consumer", Role.CONSUMER)
    ledger.register("prosumer", Role.PROSUMER)
    ledger.deposit("consumer", 100_000)
    ledger.deposit("prosumer", 50_000)
    return ledger
