"""
energy_ledger - Peer-to-peer energy trading ledger

A deterministic state-transition engine for an account-based energy market:
participants register as producers, consumers or prosumers, report
production, post demand, and the ledger pairs crossing offers into settled
trades while tracking a token balance per participant.

Usage:
    from energy_ledger import EnergyLedger, Role

    ledger = EnergyLedger("grid")
    ledger.initialize("operator")
    ledger.register("solar_farm", Role.PRODUCER)
    ledger.register("household", Role.CONSUMER)
    ledger.deposit("household", 100_000)

    ledger.report_production("solar_farm", 1000, 50)
    ledger.post_demand("household", 500, 60)
    ledger.match("household")

    ledger.get_balance("solar_farm")   # 25000

Pure engine (no host):
    from energy_ledger import LedgerState, apply, Initialize

    result = apply(LedgerState(), Initialize(), "operator")
    state = result.state
"""

# Core types
from .core import (
    LedgerView,
    LedgerState,
    Participant,
    ProductionReport,
    DemandPost,
    Trade,
    Role,
    OfferStatus,
    InstructionTag,
    SettlementPricing,
    ExecuteResult,
    ROLE_CAPABILITIES,
    role_allows,
    check_invariants,
    check_transition,
    empty_state,
    LedgerError,
    NotInitialized,
    AlreadyInitialized,
    NotRegistered,
    AlreadyRegistered,
    UnauthorizedRole,
    InvalidAmount,
    InsufficientBalance,
    UnknownInstruction,
    MalformedInstruction,
    InvariantViolation,
    StateDecodeError,
    U64_MAX,
    STATE_MAGIC,
    STATE_FORMAT_VERSION,
    DEFAULT_SETTLEMENT_PRICING,
)

# Components
from .registry import register, lookup
from .wallet import deposit, withdraw, debit, credit, transfer
from .offers import report_production, post_demand
from .matching import match_transactions, settlement_price

# Instructions and dispatch
from .instructions import (
    Instruction,
    Initialize,
    RegisterParticipant,
    ReportProduction,
    PostDemand,
    MatchTransactions,
    Deposit,
    Withdraw,
    decode_instruction,
    encode_instruction,
    instruction_size,
)
from .dispatcher import ApplyResult, apply, apply_bytes, authorize

# Persistence
from .state_codec import encode_state, decode_state

# Host
from .ledger import EnergyLedger, InstructionRecord, state_digest

# Analytics
from .market_stats import (
    Curve,
    TradeSummary,
    supply_curve,
    demand_curve,
    crossing_volume,
    trade_summary,
)

__all__ = [
    # Core
    'LedgerView', 'LedgerState', 'Participant', 'ProductionReport', 'DemandPost', 'Trade',
    'Role', 'OfferStatus', 'InstructionTag', 'SettlementPricing', 'ExecuteResult',
    'ROLE_CAPABILITIES', 'role_allows', 'check_invariants', 'check_transition', 'empty_state',
    'LedgerError', 'NotInitialized', 'AlreadyInitialized', 'NotRegistered',
    'AlreadyRegistered', 'UnauthorizedRole', 'InvalidAmount', 'InsufficientBalance',
    'UnknownInstruction', 'MalformedInstruction', 'InvariantViolation', 'StateDecodeError',
    'U64_MAX', 'STATE_MAGIC', 'STATE_FORMAT_VERSION', 'DEFAULT_SETTLEMENT_PRICING',
    # Components
    'register', 'lookup', 'deposit', 'withdraw', 'debit', 'credit', 'transfer',
    'report_production', 'post_demand', 'match_transactions', 'settlement_price',
    # Instructions
    'Instruction', 'Initialize', 'RegisterParticipant', 'ReportProduction', 'PostDemand',
    'MatchTransactions', 'Deposit', 'Withdraw',
    'decode_instruction', 'encode_instruction', 'instruction_size',
    'ApplyResult', 'apply', 'apply_bytes', 'authorize',
    # Persistence
    'encode_state', 'decode_state',
    # Host
    'EnergyLedger', 'InstructionRecord', 'state_digest',
    # Analytics
    'Curve', 'TradeSummary', 'supply_curve', 'demand_curve', 'crossing_volume',
    'trade_summary',
]

__version__ = '1.0.0'
