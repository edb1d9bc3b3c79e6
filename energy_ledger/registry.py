"""
registry.py - Participant Registry

Maps external identities to participant records:
1. register() - create a participant with a fixed role and zero balance
2. lookup() - fetch a participant, raising NotRegistered if absent
3. replace_participant() - copy-on-write update used by the wallet and matching

Roles are immutable once registered. No function here ever changes a role.
"""

from __future__ import annotations
from dataclasses import replace

from .core import (
    LedgerState, Participant, Role,
    AlreadyRegistered, InvariantViolation, MalformedInstruction, NotRegistered,
)


def register(state: LedgerState, identity: str, role: Role) -> LedgerState:
    """
    Register a new participant.

    Args:
        state: Current ledger state
        identity: Caller identity supplied by the invoking environment
        role: Producer, Consumer or Prosumer

    Returns:
        New state containing the participant with balance 0

    Raises:
        MalformedInstruction: If the identity is empty or not a string, or the
            role is neither a Role nor its wire byte
        AlreadyRegistered: If the identity already has a record
    """
    if not isinstance(identity, str) or not identity.strip():
        raise MalformedInstruction(f"invalid caller identity {identity!r}")
    try:
        role = Role(role)
    except ValueError:
        raise MalformedInstruction(f"invalid role {role!r}") from None
    if identity in state.participants:
        raise AlreadyRegistered(f"Identity {identity} already registered")
    participant = Participant(
        identity=identity,
        participant_id=state.next_participant_id,
        role=role,
    )
    return replace(
        state,
        participants={**state.participants, identity: participant},
        next_participant_id=state.next_participant_id + 1,
    )


def lookup(state: LedgerState, identity: str) -> Participant:
    """Return the participant for an identity. Raises NotRegistered if absent."""
    participant = state.participants.get(identity)
    if participant is None:
        raise NotRegistered(f"Identity {identity} not registered")
    return participant


def replace_participant(state: LedgerState, participant: Participant) -> LedgerState:
    """
    Return a new state with an existing participant record swapped out.

    Raises InvariantViolation if the new record carries a different role.
    """
    current = lookup(state, participant.identity)
    if participant.role is not current.role:
        raise InvariantViolation(
            f"role of {participant.identity} cannot change from {current.role.name}"
        )
    return replace(state, participants={**state.participants, participant.identity: participant})
