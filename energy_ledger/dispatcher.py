"""
dispatcher.py - Instruction Dispatcher

Single entry point of the state-transition engine:

    apply(state, instruction, caller) -> ApplyResult(state, trades)

Processing order for one instruction:
1. Reject anything but Initialize on an uninitialized ledger (NotInitialized)
2. Resolve the handler for the instruction tag (UnknownInstruction)
3. Check the caller against the role capability table (NotRegistered,
   UnauthorizedRole); Initialize and RegisterParticipant need no record
4. Run the handler, which builds a new immutable state or raises
5. Check the invariants the step touched (InvariantViolation); records
   and trades the handler left alone were already checked

The input state is never modified. On any error the caller still holds the
state it passed in, so an instruction either applies fully or not at all.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Callable, Dict, Tuple

from .core import (
    LedgerState, Trade, InstructionTag, SettlementPricing,
    DEFAULT_SETTLEMENT_PRICING,
    AlreadyInitialized, NotInitialized, UnauthorizedRole, UnknownInstruction,
    check_transition,
)
from .instructions import (
    Instruction, Initialize, RegisterParticipant, ReportProduction, PostDemand,
    MatchTransactions, Deposit, Withdraw,
    INSTRUCTION_TYPES, decode_instruction,
)
from .matching import match_transactions
from .offers import report_production, post_demand
from .registry import lookup, register
from .wallet import deposit, withdraw


@dataclass(frozen=True, slots=True)
class ApplyResult:
    """
    Outcome of a successfully applied instruction.

    Attributes:
        state: The new ledger state
        trades: Trades emitted by this instruction (only MatchTransactions emits any)
    """
    state: LedgerState
    trades: Tuple[Trade, ...] = ()


Handler = Callable[[LedgerState, Instruction, str, SettlementPricing], ApplyResult]


def _initialize(state: LedgerState, instruction: Initialize, caller: str,
                pricing: SettlementPricing) -> ApplyResult:
    if state.initialized:
        raise AlreadyInitialized("Ledger already initialized")
    return ApplyResult(replace(state, initialized=True))


def _register(state: LedgerState, instruction: RegisterParticipant, caller: str,
              pricing: SettlementPricing) -> ApplyResult:
    return ApplyResult(register(state, caller, instruction.role))


def _report(state: LedgerState, instruction: ReportProduction, caller: str,
            pricing: SettlementPricing) -> ApplyResult:
    return ApplyResult(report_production(
        state, caller, instruction.energy_amount, instruction.unit_price
    ))


def _demand(state: LedgerState, instruction: PostDemand, caller: str,
            pricing: SettlementPricing) -> ApplyResult:
    return ApplyResult(post_demand(
        state, caller, instruction.energy_amount, instruction.price_limit
    ))


def _match(state: LedgerState, instruction: MatchTransactions, caller: str,
           pricing: SettlementPricing) -> ApplyResult:
    new_state, trades = match_transactions(state, pricing)
    return ApplyResult(new_state, tuple(trades))


def _deposit(state: LedgerState, instruction: Deposit, caller: str,
             pricing: SettlementPricing) -> ApplyResult:
    return ApplyResult(deposit(state, caller, instruction.amount))


def _withdraw(state: LedgerState, instruction: Withdraw, caller: str,
              pricing: SettlementPricing) -> ApplyResult:
    return ApplyResult(withdraw(state, caller, instruction.amount))


HANDLERS: Dict[InstructionTag, Handler] = {
    InstructionTag.INITIALIZE: _initialize,
    InstructionTag.REGISTER_PARTICIPANT: _register,
    InstructionTag.REPORT_PRODUCTION: _report,
    InstructionTag.POST_DEMAND: _demand,
    InstructionTag.MATCH_TRANSACTIONS: _match,
    InstructionTag.DEPOSIT: _deposit,
    InstructionTag.WITHDRAW: _withdraw,
}

# Instructions a caller may issue without a participant record.
_UNGATED = frozenset({InstructionTag.INITIALIZE, InstructionTag.REGISTER_PARTICIPANT})


def _resolve_tag(instruction: Instruction) -> InstructionTag:
    tag = getattr(instruction, "tag", None)
    if tag not in HANDLERS or not isinstance(instruction, INSTRUCTION_TYPES[tag]):
        raise UnknownInstruction(f"unknown instruction {type(instruction).__name__}")
    return tag


def authorize(state: LedgerState, tag: InstructionTag, caller: str) -> None:
    """
    Check that caller may issue an instruction with this tag.

    Raises:
        NotRegistered: If a gated instruction comes from an unknown identity
        UnauthorizedRole: If the caller's role lacks the capability
    """
    if tag in _UNGATED:
        return
    participant = lookup(state, caller)
    if not participant.can(tag):
        raise UnauthorizedRole(f"{caller} ({participant.role.name}) may not issue {tag.name}")


def apply(
    state: LedgerState,
    instruction: Instruction,
    caller: str,
    pricing: SettlementPricing = DEFAULT_SETTLEMENT_PRICING,
) -> ApplyResult:
    """
    Apply one instruction on behalf of caller.

    Args:
        state: Current ledger state (not modified)
        instruction: Decoded instruction
        caller: Identity supplied by the invoking environment
        pricing: Settlement price rule used by MatchTransactions

    Returns:
        ApplyResult with the new state and any trades emitted

    Raises:
        LedgerError: A subclass naming the rejection reason. InvariantViolation
            means a handler produced a corrupt state and is fatal.
    """
    if not state.initialized and not isinstance(instruction, Initialize):
        raise NotInitialized("Ledger not initialized")
    tag = _resolve_tag(instruction)
    authorize(state, tag, caller)
    result = HANDLERS[tag](state, instruction, caller, pricing)
    check_transition(state, result.state)
    return result


def apply_bytes(
    state: LedgerState,
    data: bytes,
    caller: str,
    pricing: SettlementPricing = DEFAULT_SETTLEMENT_PRICING,
) -> ApplyResult:
    """Decode an instruction from its wire form and apply it."""
    return apply(state, decode_instruction(data), caller, pricing)
