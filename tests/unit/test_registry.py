"""
Tests for registry.py - Participant Registry

Tests:
- register: new participants start at balance 0 with the requested role
- register: second registration fails with AlreadyRegistered
- lookup: NotRegistered for unknown identities
- replace_participant: roles can never change
"""

import pytest
from dataclasses import replace

from energy_ledger import (
    Role, register, lookup,
    AlreadyRegistered, NotRegistered, InvariantViolation, MalformedInstruction,
)
from energy_ledger.registry import replace_participant


class TestRegister:

    def test_register_creates_participant(self, initialized_state):
        state = register(initialized_state, "alice", Role.PRODUCER)
        alice = lookup(state, "alice")
        assert alice.role is Role.PRODUCER
        assert alice.balance == 0
        assert alice.participant_id == 0
        assert state.next_participant_id == 1

    def test_ids_follow_registration_order(self, initialized_state):
        state = register(initialized_state, "alice", Role.PRODUCER)
        state = register(state, "bob", Role.CONSUMER)
        assert lookup(state, "bob").participant_id == 1
        assert state.list_participants() == ["alice", "bob"]

    def test_register_does_not_touch_input_state(self, initialized_state):
        register(initialized_state, "alice", Role.PRODUCER)
        assert "alice" not in initialized_state.participants

    @pytest.mark.parametrize("second_role", list(Role))
    def test_double_registration_fails_and_role_kept(self, initialized_state, second_role):
        state = register(initialized_state, "alice", Role.CONSUMER)
        with pytest.raises(AlreadyRegistered):
            register(state, "alice", second_role)
        assert lookup(state, "alice").role is Role.CONSUMER

    @pytest.mark.parametrize("byte,role", [(0, Role.PRODUCER), (1, Role.CONSUMER), (2, Role.PROSUMER)])
    def test_role_given_as_wire_byte(self, initialized_state, byte, role):
        state = register(initialized_state, "alice", byte)
        assert lookup(state, "alice").role is role

    @pytest.mark.parametrize("role", [3, -1, "producer", None])
    def test_invalid_role_rejected(self, initialized_state, role):
        with pytest.raises(MalformedInstruction, match="invalid role"):
            register(initialized_state, "alice", role)
        assert initialized_state.next_participant_id == 0

    @pytest.mark.parametrize("identity", ["", "   ", 5, None])
    def test_invalid_identity_rejected(self, initialized_state, identity):
        with pytest.raises(MalformedInstruction, match="identity"):
            register(initialized_state, identity, Role.CONSUMER)


class TestLookup:

    def test_lookup_unknown(self, initialized_state):
        with pytest.raises(NotRegistered, match="mallory"):
            lookup(initialized_state, "mallory")


class TestReplaceParticipant:

    def test_replace_updates_balance(self, initialized_state):
        state = register(initialized_state, "alice", Role.PRODUCER)
        updated = replace(lookup(state, "alice"), balance=42)
        state = replace_participant(state, updated)
        assert lookup(state, "alice").balance == 42

    def test_role_change_is_an_invariant_violation(self, initialized_state):
        state = register(initialized_state, "alice", Role.PRODUCER)
        hijacked = replace(lookup(state, "alice"), role=Role.PROSUMER)
        with pytest.raises(InvariantViolation, match="cannot change"):
            replace_participant(state, hijacked)

    def test_replace_unknown_raises(self, initialized_state):
        state = register(initialized_state, "alice", Role.PRODUCER)
        ghost = replace(lookup(state, "alice"), identity="ghost")
        with pytest.raises(NotRegistered):
            replace_participant(state, ghost)
