"""
wallet.py - Wallet Ledger

Token balance operations for participants:
1. deposit() / withdraw() - the only entry points that change a balance
   independently of trading
2. debit() / credit() - record-level primitives shared with trade settlement
3. transfer() - buyer-to-seller payment used by the matching engine

Balances are u64: debits never take a balance below zero and credits never
take it above U64_MAX. Zero-amount deposits and withdrawals are rejected.
"""

from __future__ import annotations
from dataclasses import replace

from .core import (
    LedgerState, Participant, U64_MAX,
    InsufficientBalance, InvalidAmount,
    require_positive_amount, require_u64,
)
from .registry import lookup, replace_participant


def debit(participant: Participant, amount: int) -> Participant:
    """
    Return the participant with amount removed from its balance.

    Raises:
        InsufficientBalance: If the balance is smaller than amount
    """
    require_u64(amount, "debit amount")
    if participant.balance < amount:
        raise InsufficientBalance(
            f"{participant.identity}: balance {participant.balance} < {amount}"
        )
    return replace(participant, balance=participant.balance - amount)


def credit(participant: Participant, amount: int) -> Participant:
    """
    Return the participant with amount added to its balance.

    Raises:
        InvalidAmount: If the resulting balance would not fit in a u64
    """
    require_u64(amount, "credit amount")
    if participant.balance + amount > U64_MAX:
        raise InvalidAmount(f"{participant.identity}: balance would overflow u64")
    return replace(participant, balance=participant.balance + amount)


def deposit(state: LedgerState, identity: str, amount: int) -> LedgerState:
    """Add tokens to a registered participant's balance."""
    require_positive_amount(amount, "deposit amount")
    return replace_participant(state, credit(lookup(state, identity), amount))


def withdraw(state: LedgerState, identity: str, amount: int) -> LedgerState:
    """Remove tokens from a registered participant's balance."""
    require_positive_amount(amount, "withdraw amount")
    return replace_participant(state, debit(lookup(state, identity), amount))


def transfer(state: LedgerState, payer: str, payee: str, amount: int) -> LedgerState:
    """
    Move tokens from payer to payee.

    The payer is debited first; if the payee cannot be credited the debit is
    discarded along with the intermediate state. payer and payee may be the
    same identity, in which case the balance must still cover the amount.
    """
    debited = replace_participant(state, debit(lookup(state, payer), amount))
    return replace_participant(debited, credit(lookup(debited, payee), amount))
