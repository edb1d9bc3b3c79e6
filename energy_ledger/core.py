"""
Core types and pure functions for the energy trading ledger.

This module provides the foundational data structures and protocols for the ledger:
1. Constants: integer bounds, persisted-state format markers, capability table
2. Enums: Role, OfferStatus, InstructionTag, SettlementPricing, ExecuteResult
3. Exceptions: LedgerError and the error kinds reported to callers
4. Immutable records: Participant, ProductionReport, DemandPost, Trade, LedgerState
5. Protocols: LedgerView for read-only ledger access
6. Invariant checks: check_invariants() over a whole state, check_transition() over one step

All functions in this module are pure and operate on immutable values.
No function can mutate ledger state in place; transitions return new values.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import (
    Dict, FrozenSet, List, Mapping, Protocol, Tuple, runtime_checkable
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Token balances, energy quantities and prices are unsigned 64-bit on the wire.
U64_MAX = 2 ** 64 - 1

# Net energy per participant is signed (sellers go negative).
I64_MIN = -(2 ** 63)
I64_MAX = 2 ** 63 - 1

# Persisted state envelope: magic bytes followed by a little-endian u16 version.
STATE_MAGIC = b"NRGL"
STATE_FORMAT_VERSION = 2


# ============================================================================
# ENUMS
# ============================================================================

class Role(Enum):
    """
    Participant role, fixed at registration.

    The value is the byte used by the RegisterParticipant instruction.
    """
    PRODUCER = 0
    CONSUMER = 1
    PROSUMER = 2


class OfferStatus(Enum):
    """Lifecycle of a production report or demand post. Never goes back to OPEN."""
    OPEN = "open"
    EXHAUSTED = "exhausted"


class InstructionTag(IntEnum):
    """Leading byte of every encoded instruction."""
    INITIALIZE = 0
    REGISTER_PARTICIPANT = 1
    REPORT_PRODUCTION = 2
    POST_DEMAND = 3
    MATCH_TRANSACTIONS = 4
    DEPOSIT = 5
    WITHDRAW = 6


class SettlementPricing(Enum):
    """
    How the price of a crossing pair is settled.

    SELLER_ASK: the production report's unit_price (reference behavior).
    MIDPOINT: floor of (unit_price + price_limit) / 2.
    """
    SELLER_ASK = "seller_ask"
    MIDPOINT = "midpoint"


DEFAULT_SETTLEMENT_PRICING = SettlementPricing.SELLER_ASK


class ExecuteResult(Enum):
    """
    Outcome of submitting one instruction to a stateful ledger host.

    APPLIED: Instruction validated and its effects committed.
    REJECTED: Instruction failed validation; state is unchanged.
    """
    APPLIED = "applied"
    REJECTED = "rejected"


# ============================================================================
# ROLE CAPABILITIES
# ============================================================================
#
# The single place that decides which registered roles may issue which
# instructions. INITIALIZE and REGISTER_PARTICIPANT are not listed: they are
# issued by callers that have no participant record yet.

_ANY_ROLE = frozenset({
    InstructionTag.MATCH_TRANSACTIONS,
    InstructionTag.DEPOSIT,
    InstructionTag.WITHDRAW,
})

ROLE_CAPABILITIES: Mapping[Role, FrozenSet[InstructionTag]] = {
    Role.PRODUCER: _ANY_ROLE | {InstructionTag.REPORT_PRODUCTION},
    Role.CONSUMER: _ANY_ROLE | {InstructionTag.POST_DEMAND},
    Role.PROSUMER: _ANY_ROLE | {InstructionTag.REPORT_PRODUCTION, InstructionTag.POST_DEMAND},
}


def role_allows(role: Role, tag: InstructionTag) -> bool:
    """Return True if a participant with this role may issue the instruction."""
    return tag in ROLE_CAPABILITIES.get(role, frozenset())


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """
    Base exception for all ledger-related errors.

    Every subclass carries a stable numeric code so a remote caller can be
    told why its instruction was rejected.
    """
    code = 0
    fatal = False


class NotInitialized(LedgerError):
    """Raised when any instruction other than Initialize reaches an uninitialized ledger."""
    code = 1


class AlreadyInitialized(LedgerError):
    """Raised when Initialize is issued against a ledger that is already initialized."""
    code = 2


class NotRegistered(LedgerError):
    """Raised when acting on behalf of an identity with no participant record."""
    code = 3


class AlreadyRegistered(LedgerError):
    """Raised when an identity tries to register a second time."""
    code = 4


class UnauthorizedRole(LedgerError):
    """Raised when the caller's role does not permit the attempted instruction."""
    code = 5


class InvalidAmount(LedgerError):
    """Raised for zero, negative or out-of-range quantities and for balance overflow."""
    code = 6


class InsufficientBalance(LedgerError):
    """Raised when a debit would take a participant's token balance below zero."""
    code = 7


class UnknownInstruction(LedgerError):
    """Raised when an instruction tag is not recognized."""
    code = 8


class MalformedInstruction(LedgerError):
    """Raised when an instruction payload has the wrong length or an invalid field value."""
    code = 9


class InvariantViolation(LedgerError):
    """
    Raised when a ledger invariant does not hold.

    This indicates state corruption or a defect in a handler. It is the only
    fatal error kind: hosts must not treat it as an ordinary rejection.
    """
    code = 100
    fatal = True


class StateDecodeError(LedgerError):
    """Raised when persisted state bytes cannot be decoded."""
    code = 101


# ============================================================================
# RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Participant:
    """
    A registered identity.

    Attributes:
        identity: Opaque external key supplied by the invoking environment.
        participant_id: Registration sequence number.
        role: Producer, Consumer or Prosumer. Never changes.
        balance: Token balance (u64, never negative).
        energy_balance: Net energy traded; sales decrease it, purchases increase it.
    """
    identity: str
    participant_id: int
    role: Role
    balance: int = 0
    energy_balance: int = 0

    def __post_init__(self):
        if not self.identity or not self.identity.strip():
            raise ValueError("Participant identity cannot be empty")
        if not isinstance(self.role, Role):
            raise ValueError(f"Participant role must be Role, got {type(self.role)}")

    def can(self, tag: InstructionTag) -> bool:
        return role_allows(self.role, tag)


@dataclass(frozen=True, slots=True)
class ProductionReport:
    """
    Energy a producer has made available at a fixed unit price.

    Attributes:
        id: Report id, assigned from LedgerState.next_report_id.
        owner: Identity of the reporting participant.
        energy_amount: Quantity originally reported.
        remaining_energy: Quantity not yet allocated to trades.
        unit_price: Ask price per unit of energy.
        status: OPEN while remaining_energy > 0, EXHAUSTED afterwards.
    """
    id: int
    owner: str
    energy_amount: int
    remaining_energy: int
    unit_price: int
    status: OfferStatus = OfferStatus.OPEN

    @property
    def is_open(self) -> bool:
        return self.status is OfferStatus.OPEN


@dataclass(frozen=True, slots=True)
class DemandPost:
    """
    Energy a consumer wants to buy at or below a price limit.

    Attributes:
        id: Post id, assigned from LedgerState.next_demand_id.
        owner: Identity of the posting participant.
        energy_amount: Quantity originally requested.
        remaining_energy: Quantity not yet filled.
        price_limit: Highest unit price the owner accepts.
        status: OPEN while remaining_energy > 0, EXHAUSTED afterwards.
    """
    id: int
    owner: str
    energy_amount: int
    remaining_energy: int
    price_limit: int
    status: OfferStatus = OfferStatus.OPEN

    @property
    def is_open(self) -> bool:
        return self.status is OfferStatus.OPEN


@dataclass(frozen=True, slots=True)
class Trade:
    """
    Settlement record emitted by matching. Historical fact, never mutated.

    Attributes:
        production_id: Report the energy was allocated from.
        demand_id: Post the energy was allocated to.
        quantity: Energy transferred.
        settled_price: Price per unit paid by the buyer to the seller.
        seller: Owner of the production report.
        buyer: Owner of the demand post.
    """
    production_id: int
    demand_id: int
    quantity: int
    settled_price: int
    seller: str
    buyer: str

    @property
    def cost(self) -> int:
        """Total tokens moved from buyer to seller."""
        return self.quantity * self.settled_price

    def __repr__(self) -> str:
        return (f"Trade({self.quantity} @ {self.settled_price}: "
                f"{self.seller}[P{self.production_id}]→{self.buyer}[D{self.demand_id}])")


def ask_priority(report: ProductionReport) -> Tuple[int, int]:
    """Sort key for the sell side: cheapest first, earlier report wins ties."""
    return (report.unit_price, report.id)


def bid_priority(demand: DemandPost) -> Tuple[int, int]:
    """Sort key for the buy side: highest limit first, earlier post wins ties."""
    return (-demand.price_limit, demand.id)


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    This is the query surface consumed by remote clients for display and by
    the analytics in market_stats. LedgerState and EnergyLedger both
    implement it; tests use FakeView.
    """

    def get_balance(self, identity: str) -> int:
        """Return the token balance of a registered identity."""
        ...

    def get_participant(self, identity: str) -> Participant:
        """Return the participant record. Raises NotRegistered if absent."""
        ...

    def list_participants(self) -> List[str]:
        """Return registered identities in registration order."""
        ...

    def open_reports(self) -> List[ProductionReport]:
        """Return open production reports in ask priority order."""
        ...

    def open_demands(self) -> List[DemandPost]:
        """Return open demand posts in bid priority order."""
        ...

    def get_trades(self) -> Tuple[Trade, ...]:
        """Return every trade settled so far, oldest first."""
        ...


# ============================================================================
# LEDGER STATE
# ============================================================================

@dataclass(frozen=True, slots=True)
class LedgerState:
    """
    Root of all ledger state. Exactly one exists per ledger.

    The value is treated as immutable: mappings held here are never modified
    after construction, and every transition builds a new LedgerState with
    dataclasses.replace(). This lets a handler fail at any point without
    leaving partial effects behind.

    Attributes:
        initialized: Set by the Initialize instruction.
        next_participant_id: Id given to the next registration.
        next_report_id: Id given to the next production report.
        next_demand_id: Id given to the next demand post.
        participants: identity -> Participant, in registration order.
        reports: report id -> ProductionReport (exhausted reports are kept).
        demands: demand id -> DemandPost (exhausted posts are kept).
        trades: Every trade settled so far, oldest first.
    """
    initialized: bool = False
    next_participant_id: int = 0
    next_report_id: int = 0
    next_demand_id: int = 0
    participants: Mapping[str, Participant] = field(default_factory=dict)
    reports: Mapping[int, ProductionReport] = field(default_factory=dict)
    demands: Mapping[int, DemandPost] = field(default_factory=dict)
    trades: Tuple[Trade, ...] = ()

    # LedgerView implementation

    def get_participant(self, identity: str) -> Participant:
        participant = self.participants.get(identity)
        if participant is None:
            raise NotRegistered(f"Identity {identity} not registered")
        return participant

    def get_balance(self, identity: str) -> int:
        return self.get_participant(identity).balance

    def list_participants(self) -> List[str]:
        return list(self.participants.keys())

    def is_registered(self, identity: str) -> bool:
        return identity in self.participants

    def open_reports(self) -> List[ProductionReport]:
        return sorted((r for r in self.reports.values() if r.is_open), key=ask_priority)

    def open_demands(self) -> List[DemandPost]:
        return sorted((d for d in self.demands.values() if d.is_open), key=bid_priority)

    def get_trades(self) -> Tuple[Trade, ...]:
        return self.trades

    def total_balance(self) -> int:
        """Sum of token balances across all participants."""
        return sum(p.balance for p in self.participants.values())


# ============================================================================
# VALIDATION HELPERS
# ============================================================================

def require_u64(value: int, what: str) -> int:
    """Return value if it is an int in [0, U64_MAX], else raise InvalidAmount."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{what} must be an integer, got {type(value).__name__}")
    if value < 0 or value > U64_MAX:
        raise InvalidAmount(f"{what} out of u64 range: {value}")
    return value


def require_positive_amount(value: int, what: str) -> int:
    """Like require_u64 but zero is rejected too."""
    require_u64(value, what)
    if value == 0:
        raise InvalidAmount(f"{what} must be greater than zero")
    return value


def _check_participant(state: LedgerState, identity: str, p: Participant) -> None:
    if p.identity != identity:
        raise InvariantViolation(f"participant keyed as {identity} has identity {p.identity}")
    if p.balance < 0:
        raise InvariantViolation(f"{identity} balance is negative: {p.balance}")
    if p.balance > U64_MAX:
        raise InvariantViolation(f"{identity} balance exceeds u64: {p.balance}")
    if not I64_MIN <= p.energy_balance <= I64_MAX:
        raise InvariantViolation(f"{identity} energy balance out of i64 range")
    if p.participant_id >= state.next_participant_id:
        raise InvariantViolation(f"{identity} id {p.participant_id} not below counter")


def _check_offer(state: LedgerState, kind: str, key: int, offer, counter: int) -> None:
    if offer.id != key or offer.id >= counter:
        raise InvariantViolation(f"{kind} {key} has inconsistent id {offer.id}")
    if not 0 <= offer.remaining_energy <= offer.energy_amount:
        raise InvariantViolation(
            f"{kind} {key} remaining {offer.remaining_energy} outside [0, {offer.energy_amount}]"
        )
    exhausted = offer.status is OfferStatus.EXHAUSTED
    if exhausted != (offer.remaining_energy == 0):
        raise InvariantViolation(f"{kind} {key} status {offer.status.value} "
                                 f"with remaining {offer.remaining_energy}")
    if offer.owner not in state.participants:
        raise InvariantViolation(f"{kind} {key} owned by unregistered {offer.owner}")


def _check_trades(
    state: LedgerState, trades: Tuple[Trade, ...]
) -> Tuple[Dict[int, int], Dict[int, int]]:
    """Check each trade on its own; return energy allocated per report and per post."""
    allocated_out: Dict[int, int] = {}
    allocated_in: Dict[int, int] = {}
    for trade in trades:
        report = state.reports.get(trade.production_id)
        demand = state.demands.get(trade.demand_id)
        if report is None or demand is None:
            raise InvariantViolation(f"{trade!r} references an unknown report or post")
        if trade.quantity <= 0:
            raise InvariantViolation(f"{trade!r} has non-positive quantity")
        if not report.unit_price <= trade.settled_price <= demand.price_limit:
            raise InvariantViolation(
                f"{trade!r} settled outside [{report.unit_price}, {demand.price_limit}]"
            )
        allocated_out[report.id] = allocated_out.get(report.id, 0) + trade.quantity
        allocated_in[demand.id] = allocated_in.get(demand.id, 0) + trade.quantity
    return allocated_out, allocated_in


def _allocated(offer) -> int:
    return offer.energy_amount - offer.remaining_energy


def check_invariants(state: LedgerState) -> None:
    """
    Verify every ledger invariant, raising InvariantViolation on the first failure.

    Checks performed:
    1. Balances lie in [0, U64_MAX]; net energy lies in the i64 range
    2. Every participant is keyed by its own identity and ids are below the counters
    3. Reports and posts: 0 <= remaining <= original, EXHAUSTED iff remaining == 0,
       owners are registered, ids are below the counters
    4. Trades: positive quantity, settled price inside [ask, limit], and the
       total allocated out of any report or post equals what it has given up

    The whole state is walked, trade history included. Use it on states of
    unknown origin; check_transition() covers a single step.
    """
    for identity, p in state.participants.items():
        _check_participant(state, identity, p)
    for key, report in state.reports.items():
        _check_offer(state, "report", key, report, state.next_report_id)
    for key, demand in state.demands.items():
        _check_offer(state, "demand", key, demand, state.next_demand_id)

    allocated_out, allocated_in = _check_trades(state, state.trades)

    # Energy leaves a report or post only through trades.
    for report_id, report in state.reports.items():
        total = allocated_out.get(report_id, 0)
        if total != _allocated(report):
            raise InvariantViolation(f"report {report_id} allocated {total} of {report.energy_amount}")
    for demand_id, demand in state.demands.items():
        total = allocated_in.get(demand_id, 0)
        if total != _allocated(demand):
            raise InvariantViolation(f"demand {demand_id} filled {total} of {demand.energy_amount}")


def _changed(before: Mapping, after: Mapping, kind: str) -> List:
    """Keys whose record in after is not the record in before. Records are never removed."""
    if after is before:
        return []
    if len(after) < len(before) or not before.keys() <= after.keys():
        raise InvariantViolation(f"a {kind} record was removed")
    return [key for key, value in after.items() if before.get(key) is not value]


def check_transition(before: LedgerState, after: LedgerState) -> None:
    """
    Verify the invariants touched by one step from before to after.

    before is assumed to satisfy check_invariants(). Only records that were
    replaced or added, and trades appended since before, are validated, so
    the cost follows the size of the step rather than the trade history.
    Mappings a handler left alone are shared between the two states and
    skipped outright.

    Raises:
        InvariantViolation: On the first failure
    """
    if before.initialized and not after.initialized:
        raise InvariantViolation("ledger went back to uninitialized")
    if (after.next_participant_id < before.next_participant_id
            or after.next_report_id < before.next_report_id
            or after.next_demand_id < before.next_demand_id):
        raise InvariantViolation("an id counter went backwards")
    if len(after.trades) < len(before.trades):
        raise InvariantViolation("trade history shrank")

    for identity in _changed(before.participants, after.participants, "participant"):
        _check_participant(after, identity, after.participants[identity])

    new_trades = after.trades[len(before.trades):]
    allocated_out, allocated_in = _check_trades(after, new_trades)

    for book, old_book, counter, kind, allocated in (
        (after.reports, before.reports, after.next_report_id, "report", allocated_out),
        (after.demands, before.demands, after.next_demand_id, "demand", allocated_in),
    ):
        for key in set(_changed(old_book, book, kind)) | allocated.keys():
            offer = book[key]
            _check_offer(after, kind, key, offer, counter)
            previous = old_book.get(key)
            given_up = _allocated(offer) - (_allocated(previous) if previous is not None else 0)
            if given_up != allocated.get(key, 0):
                raise InvariantViolation(
                    f"{kind} {key} gave up {given_up} but trades moved {allocated.get(key, 0)}"
                )



def empty_state() -> LedgerState:
    """Return the state of a ledger account before Initialize runs."""
    return LedgerState()
