"""
ledger.py - Stateful ledger host

EnergyLedger plays the part of the hosting runtime for the pure
state-transition engine: it holds the current LedgerState, submits one
instruction at a time to dispatcher.apply(), keeps the result, and records
every applied instruction in an audit log.

Key responsibilities:
    - Implements LedgerView protocol for safe read-only access by pure functions
    - Applies instructions atomically (the state is only replaced on success)
    - Converts non-fatal LedgerErrors into ExecuteResult.REJECTED
    - Always logs - clone(), replay() and verify_conservation() work off the log

Cost per instruction:
    The dispatcher validates only what a step changed (check_transition), but
    two costs still grow with the state: every InstructionRecord carries a
    state_digest, which re-encodes the whole state, and each settled trade
    copies the participant, report and demand mappings it touches. The
    digest covers the trade history, so its cost follows the log length;
    it is what lets replay() pinpoint the first divergent record.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union
import hashlib

from .core import (
    LedgerState, Participant, ProductionReport, DemandPost, Trade,
    Role, ExecuteResult, SettlementPricing, DEFAULT_SETTLEMENT_PRICING,
    LedgerError,
)
from .dispatcher import apply
from .instructions import (
    Instruction, Initialize, RegisterParticipant, ReportProduction, PostDemand,
    MatchTransactions, Deposit, Withdraw, decode_instruction,
)
from .state_codec import encode_state, decode_state


def state_digest(state: LedgerState) -> str:
    """Short content hash of a ledger state, stable across processes."""
    return hashlib.sha256(encode_state(state)).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class InstructionRecord:
    """
    An applied instruction - represents FACT.

    Attributes:
        sequence_number: Monotonic position in the ledger's log
        exec_id: Unique execution identifier (ledger name + sequence)
        caller: Identity the instruction was applied for
        instruction: The decoded instruction
        trades: Trades the instruction emitted
        state_digest: Digest of the state after the instruction
    """
    sequence_number: int
    exec_id: str
    caller: str
    instruction: Instruction
    trades: Tuple[Trade, ...]
    state_digest: str

    def __repr__(self) -> str:
        w = 80
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Instruction: ' + self.exec_id)}│",
            f"├{bar}┤",
            f"│{pad('   caller       : ' + self.caller)}│",
            f"│{pad('   instruction  : ' + repr(self.instruction))}│",
            f"│{pad('   state_digest : ' + self.state_digest)}│",
        ]
        if self.trades:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' Trades (' + str(len(self.trades)) + '):')}│")
            for i, trade in enumerate(self.trades):
                lines.append(f"│{pad(f'   [{i}] {trade!r}')}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


class EnergyLedger:
    """
    Energy trading ledger with full validation and audit trail.

    Implements the LedgerView protocol, allowing the ledger to be passed to
    pure functions that only read state.

    Design Principles:
        - Always validates: every instruction goes through the dispatcher,
          including role gating and the post-instruction invariant check.
        - Always logs: every applied instruction is recorded, enabling
          replay() and verify_conservation().

    Thread Safety:
        Not thread-safe. The engine assumes one writer; hosts that accept
        concurrent submissions must serialize them before calling execute().

    Example:
        ledger = EnergyLedger("grid")
        ledger.initialize("operator")
        ledger.register("solar_farm", Role.PRODUCER)
        ledger.register("household", Role.CONSUMER)
        ledger.deposit("household", 100_000)
        ledger.report_production("solar_farm", 1000, 50)
        ledger.post_demand("household", 500, 60)
        ledger.match("household")
    """

    def __init__(
        self,
        name: str,
        verbose: bool = True,
        pricing: SettlementPricing = DEFAULT_SETTLEMENT_PRICING,
        state: Optional[LedgerState] = None,
    ):
        """
        Create a ledger host.

        Args:
            name: Ledger identifier used in exec ids
            verbose: Print one line per applied or rejected instruction (default: True)
            pricing: Settlement price rule for MatchTransactions
            state: Starting state (default: an uninitialized ledger)
        """
        self.name = name
        self.verbose = verbose
        self.pricing = pricing
        self.state: LedgerState = state if state is not None else LedgerState()
        self._genesis: LedgerState = self.state
        self.transaction_log: List[InstructionRecord] = []
        self.last_error: Optional[LedgerError] = None
        self._next_sequence: int = 0

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    def get_balance(self, identity: str) -> int:
        return self.state.get_balance(identity)

    def get_participant(self, identity: str) -> Participant:
        return self.state.get_participant(identity)

    def list_participants(self) -> List[str]:
        return self.state.list_participants()

    def open_reports(self) -> List[ProductionReport]:
        return self.state.open_reports()

    def open_demands(self) -> List[DemandPost]:
        return self.state.open_demands()

    def get_trades(self) -> Tuple[Trade, ...]:
        return self.state.get_trades()

    @property
    def initialized(self) -> bool:
        return self.state.initialized

    def is_registered(self, identity: str) -> bool:
        return self.state.is_registered(identity)

    def get_report(self, report_id: int) -> ProductionReport:
        return self.state.reports[report_id]

    def get_demand(self, demand_id: int) -> DemandPost:
        return self.state.demands[demand_id]

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Verify that tokens are conserved.

        Trades only move tokens between participants, so the sum of all
        balances must equal everything deposited minus everything withdrawn
        since the ledger's starting state.

        Returns:
            Dict with keys:
            - 'valid': bool - True if the totals agree
            - 'total_balance': int - Current sum of balances
            - 'expected': int - Starting total + deposits - withdrawals
            - 'difference': int - total_balance - expected
        """
        expected = self._genesis.total_balance()
        for record in self.transaction_log:
            if isinstance(record.instruction, Deposit):
                expected += record.instruction.amount
            elif isinstance(record.instruction, Withdraw):
                expected -= record.instruction.amount
        total = self.state.total_balance()
        return {
            'valid': total == expected,
            'total_balance': total,
            'expected': expected,
            'difference': total - expected,
        }

    # ========================================================================
    # EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        return f"exec:{self.name}:{sequence:012d}"

    def execute(self, caller: str, instruction: Union[Instruction, bytes]) -> ExecuteResult:
        """
        Apply one instruction for caller.

        Args:
            caller: Identity supplied by the invoking environment
            instruction: Decoded instruction or its wire form

        Returns:
            ExecuteResult.APPLIED if the state was replaced
            ExecuteResult.REJECTED if validation failed (see last_error)

        Raises:
            InvariantViolation: If the engine produced a corrupt state. The
                current state is left as it was before the instruction.
        """
        self.last_error = None
        try:
            if isinstance(instruction, (bytes, bytearray, memoryview)):
                instruction = decode_instruction(bytes(instruction))
            result = apply(self.state, instruction, caller, self.pricing)
        except LedgerError as e:
            if e.fatal:
                raise
            self.last_error = e
            if self.verbose:
                print(f"✗ REJECTED [{type(e).__name__}]: {caller}: {e}")
            return ExecuteResult.REJECTED

        self.state = result.state
        sequence = self._next_sequence
        self._next_sequence += 1
        record = InstructionRecord(
            sequence_number=sequence,
            exec_id=self._generate_exec_id(sequence),
            caller=caller,
            instruction=instruction,
            trades=result.trades,
            state_digest=state_digest(result.state),
        )
        self.transaction_log.append(record)

        if self.verbose:
            print(f"✓ APPLIED {record.exec_id}: {caller}: {instruction!r}")
            for trade in result.trades:
                print(f"    {trade!r}")
        return ExecuteResult.APPLIED

    # Convenience wrappers, one per instruction

    def initialize(self, caller: str) -> ExecuteResult:
        return self.execute(caller, Initialize())

    def register(self, caller: str, role: Role) -> ExecuteResult:
        return self.execute(caller, RegisterParticipant(role))

    def report_production(self, caller: str, energy_amount: int, unit_price: int) -> ExecuteResult:
        return self.execute(caller, ReportProduction(energy_amount, unit_price))

    def post_demand(self, caller: str, energy_amount: int, price_limit: int) -> ExecuteResult:
        return self.execute(caller, PostDemand(energy_amount, price_limit))

    def match(self, caller: str) -> ExecuteResult:
        return self.execute(caller, MatchTransactions())

    def deposit(self, caller: str, amount: int) -> ExecuteResult:
        return self.execute(caller, Deposit(amount))

    def withdraw(self, caller: str, amount: int) -> ExecuteResult:
        return self.execute(caller, Withdraw(amount))

    # ========================================================================
    # PERSISTENCE AND HISTORY
    # ========================================================================

    def to_bytes(self) -> bytes:
        """Encode the current state for persistence."""
        return encode_state(self.state)

    @classmethod
    def from_bytes(cls, name: str, data: bytes, **kwargs) -> EnergyLedger:
        """Create a host whose starting state is decoded from data."""
        return cls(name, state=decode_state(data), **kwargs)

    def clone(self) -> EnergyLedger:
        """
        Create an independent copy of this ledger.

        States are immutable, so the copy shares them; the log and
        counters are copied so further execution on either side does not
        affect the other.
        """
        cloned = EnergyLedger.__new__(EnergyLedger)
        cloned.name = self.name
        cloned.verbose = self.verbose
        cloned.pricing = self.pricing
        cloned.state = self.state
        cloned._genesis = self._genesis
        cloned.transaction_log = list(self.transaction_log)
        cloned.last_error = self.last_error
        cloned._next_sequence = self._next_sequence
        return cloned

    def replay(self, upto: Optional[int] = None) -> EnergyLedger:
        """
        Create a new ledger by re-applying the log to the starting state.

        Args:
            upto: Replay only the first `upto` records (default: all)

        Returns:
            New EnergyLedger; with upto=None its state equals this ledger's

        Raises:
            LedgerError: If a logged instruction is rejected on replay or the
                replayed state digest differs from the logged one
        """
        replayed = EnergyLedger(
            name=f"{self.name}_replayed",
            verbose=self.verbose,
            pricing=self.pricing,
            state=self._genesis,
        )
        for record in self.transaction_log[:upto]:
            if replayed.execute(record.caller, record.instruction) != ExecuteResult.APPLIED:
                raise LedgerError(f"Replay failed at {record.exec_id}: {replayed.last_error}")
            if replayed.transaction_log[-1].state_digest != record.state_digest:
                raise LedgerError(f"Replay diverged at {record.exec_id}")
        return replayed
