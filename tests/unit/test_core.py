"""
test_core.py - Unit tests for core data structures

Tests:
- Participant: creation, validation, immutability, capabilities
- Role capability table
- ProductionReport / DemandPost / Trade records
- LedgerState read-only queries
- check_invariants on hand-built corrupt states
- check_transition on single steps
- Amount validation helpers
"""

import pytest
from dataclasses import replace

from energy_ledger import (
    LedgerState, Participant, ProductionReport, DemandPost, Trade,
    Role, OfferStatus, InstructionTag, ROLE_CAPABILITIES, role_allows,
    check_invariants, check_transition, U64_MAX,
    InvalidAmount, InvariantViolation, NotRegistered,
    LedgerError, NotInitialized, AlreadyInitialized, AlreadyRegistered,
    UnauthorizedRole, InsufficientBalance, UnknownInstruction,
    MalformedInstruction, StateDecodeError,
)
from energy_ledger.core import require_u64, require_positive_amount


def _state(**kwargs) -> LedgerState:
    """Hand-built initialized state with alice (producer) and bob (consumer)."""
    defaults = dict(
        initialized=True,
        next_participant_id=2,
        participants={
            "alice": Participant("alice", 0, Role.PRODUCER, balance=0),
            "bob": Participant("bob", 1, Role.CONSUMER, balance=1000),
        },
    )
    defaults.update(kwargs)
    return LedgerState(**defaults)


class TestParticipant:
    """Tests for Participant dataclass."""

    def test_create_participant(self):
        p = Participant("alice", 0, Role.PRODUCER)
        assert p.identity == "alice"
        assert p.balance == 0
        assert p.energy_balance == 0
        assert p.role is Role.PRODUCER

    def test_empty_identity_raises(self):
        with pytest.raises(ValueError, match="identity cannot be empty"):
            Participant("  ", 0, Role.PRODUCER)

    def test_role_must_be_enum(self):
        with pytest.raises(ValueError, match="role must be Role"):
            Participant("alice", 0, 0)

    def test_participant_is_frozen(self):
        p = Participant("alice", 0, Role.PRODUCER)
        with pytest.raises(AttributeError):
            p.role = Role.CONSUMER

    def test_can_uses_capability_table(self):
        producer = Participant("p", 0, Role.PRODUCER)
        consumer = Participant("c", 1, Role.CONSUMER)
        assert producer.can(InstructionTag.REPORT_PRODUCTION)
        assert not producer.can(InstructionTag.POST_DEMAND)
        assert consumer.can(InstructionTag.POST_DEMAND)
        assert not consumer.can(InstructionTag.REPORT_PRODUCTION)


class TestRoleCapabilities:
    """Tests for the role -> instruction capability table."""

    def test_every_role_has_an_entry(self):
        assert set(ROLE_CAPABILITIES) == set(Role)

    def test_prosumer_may_do_both(self):
        assert role_allows(Role.PROSUMER, InstructionTag.REPORT_PRODUCTION)
        assert role_allows(Role.PROSUMER, InstructionTag.POST_DEMAND)

    @pytest.mark.parametrize("role", list(Role))
    @pytest.mark.parametrize("tag", [
        InstructionTag.DEPOSIT, InstructionTag.WITHDRAW, InstructionTag.MATCH_TRANSACTIONS,
    ])
    def test_common_instructions_allowed_for_all_roles(self, role, tag):
        assert role_allows(role, tag)

    @pytest.mark.parametrize("role", list(Role))
    def test_lifecycle_instructions_not_role_gated(self, role):
        assert not role_allows(role, InstructionTag.INITIALIZE)
        assert not role_allows(role, InstructionTag.REGISTER_PARTICIPANT)


class TestErrors:
    """Error kinds carry distinct codes; only InvariantViolation is fatal."""

    KINDS = [
        NotInitialized, AlreadyInitialized, NotRegistered, AlreadyRegistered,
        UnauthorizedRole, InvalidAmount, InsufficientBalance, UnknownInstruction,
        MalformedInstruction, InvariantViolation, StateDecodeError,
    ]

    def test_codes_are_unique(self):
        codes = [kind.code for kind in self.KINDS]
        assert len(codes) == len(set(codes))

    def test_all_are_ledger_errors(self):
        for kind in self.KINDS:
            assert issubclass(kind, LedgerError)

    def test_only_invariant_violation_is_fatal(self):
        assert [k for k in self.KINDS if k.fatal] == [InvariantViolation]


class TestRecords:
    """Tests for offer and trade records."""

    def test_report_defaults_to_open(self):
        r = ProductionReport(0, "alice", 100, 100, 50)
        assert r.status is OfferStatus.OPEN
        assert r.is_open

    def test_exhausted_demand_is_not_open(self):
        d = DemandPost(0, "bob", 100, 0, 60, OfferStatus.EXHAUSTED)
        assert not d.is_open

    def test_trade_cost(self):
        t = Trade(0, 0, 500, 50, "alice", "bob")
        assert t.cost == 25_000

    def test_trade_repr(self):
        t = Trade(3, 7, 10, 5, "alice", "bob")
        text = repr(t)
        assert "alice" in text and "bob" in text
        assert "P3" in text and "D7" in text


class TestLedgerStateQueries:
    """Tests for the LedgerView methods on LedgerState."""

    def test_get_balance(self):
        assert _state().get_balance("bob") == 1000

    def test_get_balance_unknown_raises(self):
        with pytest.raises(NotRegistered):
            _state().get_balance("mallory")

    def test_list_participants_in_registration_order(self):
        assert _state().list_participants() == ["alice", "bob"]

    def test_open_reports_sorted_by_price_then_id(self):
        reports = {
            0: ProductionReport(0, "alice", 10, 10, 60),
            1: ProductionReport(1, "alice", 10, 10, 50),
            2: ProductionReport(2, "alice", 10, 10, 50),
            3: ProductionReport(3, "alice", 10, 0, 10, OfferStatus.EXHAUSTED),
        }
        state = _state(reports=reports, next_report_id=4)
        assert [r.id for r in state.open_reports()] == [1, 2, 0]

    def test_open_demands_sorted_by_limit_desc_then_id(self):
        demands = {
            0: DemandPost(0, "bob", 10, 10, 50),
            1: DemandPost(1, "bob", 10, 10, 70),
            2: DemandPost(2, "bob", 10, 10, 50),
        }
        state = _state(demands=demands, next_demand_id=3)
        assert [d.id for d in state.open_demands()] == [1, 0, 2]

    def test_total_balance(self):
        assert _state().total_balance() == 1000


class TestCheckInvariants:
    """check_invariants catches every class of corruption."""

    def test_valid_state_passes(self):
        check_invariants(_state())
        check_invariants(LedgerState())

    def test_negative_balance(self):
        state = _state()
        bad = replace(state.participants["bob"], balance=-1)
        with pytest.raises(InvariantViolation, match="negative"):
            check_invariants(replace(state, participants={**state.participants, "bob": bad}))

    def test_balance_above_u64(self):
        state = _state()
        bad = replace(state.participants["bob"], balance=U64_MAX + 1)
        with pytest.raises(InvariantViolation, match="exceeds u64"):
            check_invariants(replace(state, participants={**state.participants, "bob": bad}))

    def test_exhausted_with_remaining_energy(self):
        report = ProductionReport(0, "alice", 10, 10, 5, OfferStatus.EXHAUSTED)
        with pytest.raises(InvariantViolation, match="status"):
            check_invariants(_state(reports={0: report}, next_report_id=1))

    def test_open_with_zero_remaining(self):
        demand = DemandPost(0, "bob", 10, 0, 5)
        with pytest.raises(InvariantViolation):
            check_invariants(_state(demands={0: demand}, next_demand_id=1))

    def test_remaining_above_original(self):
        report = ProductionReport(0, "alice", 10, 11, 5)
        with pytest.raises(InvariantViolation, match="outside"):
            check_invariants(_state(reports={0: report}, next_report_id=1))

    def test_energy_missing_without_trades(self):
        report = ProductionReport(0, "alice", 10, 4, 5)
        with pytest.raises(InvariantViolation, match="allocated"):
            check_invariants(_state(reports={0: report}, next_report_id=1))

    def test_trade_settled_above_limit(self):
        report = ProductionReport(0, "alice", 10, 0, 5, OfferStatus.EXHAUSTED)
        demand = DemandPost(0, "bob", 10, 0, 8, OfferStatus.EXHAUSTED)
        trade = Trade(0, 0, 10, 9, "alice", "bob")
        state = _state(reports={0: report}, demands={0: demand}, trades=(trade,),
                       next_report_id=1, next_demand_id=1)
        with pytest.raises(InvariantViolation, match="settled outside"):
            check_invariants(state)

    def test_offer_owned_by_unregistered(self):
        report = ProductionReport(0, "mallory", 10, 10, 5)
        with pytest.raises(InvariantViolation, match="unregistered"):
            check_invariants(_state(reports={0: report}, next_report_id=1))

    def test_id_not_below_counter(self):
        report = ProductionReport(0, "alice", 10, 10, 5)
        with pytest.raises(InvariantViolation, match="inconsistent id"):
            check_invariants(_state(reports={0: report}, next_report_id=0))


class TestCheckTransition:
    """check_transition validates only what one step changed."""

    def _traded(self):
        before = _state(
            reports={0: ProductionReport(0, "alice", 10, 10, 5)},
            demands={0: DemandPost(0, "bob", 10, 10, 8)},
            next_report_id=1, next_demand_id=1,
        )
        after = replace(
            before,
            reports={0: ProductionReport(0, "alice", 10, 4, 5)},
            demands={0: DemandPost(0, "bob", 10, 4, 8)},
            trades=(Trade(0, 0, 6, 5, "alice", "bob"),),
        )
        return before, after

    def test_valid_step_passes(self):
        before, after = self._traded()
        check_transition(before, after)
        check_transition(after, after)

    def test_untouched_history_not_rechecked(self):
        # A corrupt record from before the step is not revisited
        before = _state(reports={0: ProductionReport(0, "alice", 10, 4, 5)}, next_report_id=1)
        bob = replace(before.participants["bob"], balance=999)
        after = replace(before, participants={**before.participants, "bob": bob})
        check_transition(before, after)
        with pytest.raises(InvariantViolation):
            check_invariants(after)

    def test_changed_participant_checked(self):
        before = _state()
        bad = replace(before.participants["bob"], balance=-1)
        with pytest.raises(InvariantViolation, match="negative"):
            check_transition(before, replace(before, participants={**before.participants, "bob": bad}))

    def test_removed_participant(self):
        before = _state()
        with pytest.raises(InvariantViolation, match="removed"):
            check_transition(before, replace(before, participants={"alice": before.participants["alice"]}))

    def test_energy_missing_without_trades(self):
        before, _ = self._traded()
        after = replace(before, reports={0: ProductionReport(0, "alice", 10, 4, 5)})
        with pytest.raises(InvariantViolation, match="gave up 6 but trades moved 0"):
            check_transition(before, after)

    def test_trade_without_fill(self):
        before, after = self._traded()
        with pytest.raises(InvariantViolation, match="gave up"):
            check_transition(before, replace(after, reports=before.reports))

    def test_new_trade_settled_above_limit(self):
        before, after = self._traded()
        trade = Trade(0, 0, 6, 9, "alice", "bob")
        with pytest.raises(InvariantViolation, match="settled outside"):
            check_transition(before, replace(after, trades=(trade,)))

    def test_new_offer_checked(self):
        before = _state()
        after = replace(before, reports={0: ProductionReport(0, "mallory", 10, 10, 5)}, next_report_id=1)
        with pytest.raises(InvariantViolation, match="unregistered"):
            check_transition(before, after)

    def test_counter_backwards(self):
        before = _state(next_report_id=3)
        with pytest.raises(InvariantViolation, match="counter"):
            check_transition(before, replace(before, next_report_id=2))

    def test_history_shrinks(self):
        before, after = self._traded()
        with pytest.raises(InvariantViolation, match="shrank"):
            check_transition(after, replace(after, trades=()))

    def test_uninitialize(self):
        before = _state()
        with pytest.raises(InvariantViolation, match="uninitialized"):
            check_transition(before, replace(before, initialized=False))


class TestAmountHelpers:

    def test_require_u64_bounds(self):
        assert require_u64(0, "x") == 0
        assert require_u64(U64_MAX, "x") == U64_MAX
        with pytest.raises(InvalidAmount):
            require_u64(U64_MAX + 1, "x")
        with pytest.raises(InvalidAmount):
            require_u64(-1, "x")

    def test_require_u64_rejects_non_int(self):
        with pytest.raises(InvalidAmount):
            require_u64(1.5, "x")
        with pytest.raises(InvalidAmount):
            require_u64(True, "x")

    def test_require_positive_amount_rejects_zero(self):
        with pytest.raises(InvalidAmount, match="greater than zero"):
            require_positive_amount(0, "amount")
