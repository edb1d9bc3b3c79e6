"""
state_codec.py - Versioned binary encoding of LedgerState

Layout:
    bytes 0-3   magic b"NRGL"
    bytes 4-5   format version, u16 little-endian
    bytes 6-    msgpack body

Body (version 2):
    {
        "initialized": bool,
        "next_participant_id": int, "next_report_id": int, "next_demand_id": int,
        "participants": [[identity, participant_id, role, balance, energy_balance], ...],
        "reports": [[id, owner, energy_amount, remaining_energy, unit_price, status], ...],
        "demands": [[id, owner, energy_amount, remaining_energy, price_limit, status], ...],
        "trades": [[production_id, demand_id, quantity, settled_price, seller, buyer], ...],
    }

Roles are encoded by their wire byte, statuses as 0 (open) / 1 (exhausted).
Participants keep registration order; reports, posts and trades are written
in id / settlement order.

Version 1 bodies (no net energy per participant, no original amount on
reports and posts) are upgraded on read. Versions newer than
STATE_FORMAT_VERSION are refused.
"""

from __future__ import annotations
from typing import Any, Callable, Dict
import struct

import msgpack

from .core import (
    LedgerState, Participant, ProductionReport, DemandPost, Trade,
    Role, OfferStatus, STATE_MAGIC, STATE_FORMAT_VERSION,
    StateDecodeError, check_invariants,
)


_HEADER = struct.Struct("<4sH")

_STATUS_CODES = {OfferStatus.OPEN: 0, OfferStatus.EXHAUSTED: 1}
_STATUS_BY_CODE = {code: status for status, code in _STATUS_CODES.items()}


def _to_body(state: LedgerState) -> Dict[str, Any]:
    return {
        "initialized": state.initialized,
        "next_participant_id": state.next_participant_id,
        "next_report_id": state.next_report_id,
        "next_demand_id": state.next_demand_id,
        "participants": [
            [p.identity, p.participant_id, p.role.value, p.balance, p.energy_balance]
            for p in state.participants.values()
        ],
        "reports": [
            [r.id, r.owner, r.energy_amount, r.remaining_energy, r.unit_price, _STATUS_CODES[r.status]]
            for r in sorted(state.reports.values(), key=lambda r: r.id)
        ],
        "demands": [
            [d.id, d.owner, d.energy_amount, d.remaining_energy, d.price_limit, _STATUS_CODES[d.status]]
            for d in sorted(state.demands.values(), key=lambda d: d.id)
        ],
        "trades": [
            [t.production_id, t.demand_id, t.quantity, t.settled_price, t.seller, t.buyer]
            for t in state.trades
        ],
    }


def _int(value: Any, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{what} must be an integer, got {type(value).__name__}")
    return value


def _str(value: Any, what: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{what} must be a string, got {type(value).__name__}")
    return value


def _from_body(body: Dict[str, Any]) -> LedgerState:
    """
    Build a LedgerState from a current-version body.

    Field types are checked here so that check_invariants() only ever sees
    ints and strings; a body of the right shape but wrong types raises
    TypeError.
    """
    participants = {}
    for identity, participant_id, role, balance, energy_balance in body["participants"]:
        participants[_str(identity, "participant identity")] = Participant(
            identity=identity,
            participant_id=_int(participant_id, "participant id"),
            role=Role(role),
            balance=_int(balance, "balance"),
            energy_balance=_int(energy_balance, "energy balance"),
        )
    reports = {}
    for report_id, owner, energy_amount, remaining, unit_price, status in body["reports"]:
        reports[_int(report_id, "report id")] = ProductionReport(
            id=report_id,
            owner=_str(owner, "report owner"),
            energy_amount=_int(energy_amount, "report energy"),
            remaining_energy=_int(remaining, "report remaining energy"),
            unit_price=_int(unit_price, "unit price"),
            status=_STATUS_BY_CODE[status],
        )
    demands = {}
    for demand_id, owner, energy_amount, remaining, price_limit, status in body["demands"]:
        demands[_int(demand_id, "demand id")] = DemandPost(
            id=demand_id,
            owner=_str(owner, "demand owner"),
            energy_amount=_int(energy_amount, "demand energy"),
            remaining_energy=_int(remaining, "demand remaining energy"),
            price_limit=_int(price_limit, "price limit"),
            status=_STATUS_BY_CODE[status],
        )
    trades = []
    for production_id, demand_id, quantity, settled_price, seller, buyer in body["trades"]:
        trades.append(Trade(
            production_id=_int(production_id, "trade report id"),
            demand_id=_int(demand_id, "trade demand id"),
            quantity=_int(quantity, "trade quantity"),
            settled_price=_int(settled_price, "settled price"),
            seller=_str(seller, "seller"),
            buyer=_str(buyer, "buyer"),
        ))
    if not isinstance(body["initialized"], bool):
        raise TypeError("initialized must be a boolean")
    return LedgerState(
        initialized=body["initialized"],
        next_participant_id=_int(body["next_participant_id"], "next_participant_id"),
        next_report_id=_int(body["next_report_id"], "next_report_id"),
        next_demand_id=_int(body["next_demand_id"], "next_demand_id"),
        participants=participants,
        reports=reports,
        demands=demands,
        trades=tuple(trades),
    )


def _upgrade_v1(body: Dict[str, Any]) -> Dict[str, Any]:
    """
    Version 1 -> 2.

    Net energy is rebuilt from the trade history and the original amount of
    every report and post is its remaining energy plus what trades took out.
    """
    net_energy: Dict[str, int] = {}
    allocated_out: Dict[int, int] = {}
    allocated_in: Dict[int, int] = {}
    for production_id, demand_id, quantity, _price, seller, buyer in body["trades"]:
        net_energy[seller] = net_energy.get(seller, 0) - quantity
        net_energy[buyer] = net_energy.get(buyer, 0) + quantity
        allocated_out[production_id] = allocated_out.get(production_id, 0) + quantity
        allocated_in[demand_id] = allocated_in.get(demand_id, 0) + quantity

    return {
        **body,
        "participants": [
            [identity, pid, role, balance, net_energy.get(identity, 0)]
            for identity, pid, role, balance in body["participants"]
        ],
        "reports": [
            [rid, owner, remaining + allocated_out.get(rid, 0), remaining, price, status]
            for rid, owner, remaining, price, status in body["reports"]
        ],
        "demands": [
            [did, owner, remaining + allocated_in.get(did, 0), remaining, limit, status]
            for did, owner, remaining, limit, status in body["demands"]
        ],
    }


# from_version -> function producing a body of from_version + 1
MIGRATIONS: Dict[int, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    1: _upgrade_v1,
}


def encode_state(state: LedgerState) -> bytes:
    """Serialize a ledger state with the current format version."""
    header = _HEADER.pack(STATE_MAGIC, STATE_FORMAT_VERSION)
    return header + msgpack.packb(_to_body(state), use_bin_type=True)


def decode_state(data: bytes, verify: bool = True) -> LedgerState:
    """
    Deserialize a ledger state written by this or an earlier format version.

    Args:
        data: Encoded state
        verify: Run check_invariants() on the decoded state (default: True)

    Raises:
        StateDecodeError: Bad magic, unsupported version or malformed body
        InvariantViolation: If verify is set and the decoded state is corrupt
    """
    if len(data) < _HEADER.size:
        raise StateDecodeError(f"state too short: {len(data)} bytes")
    magic, version = _HEADER.unpack_from(data)
    if magic != STATE_MAGIC:
        raise StateDecodeError(f"bad magic {magic!r}")
    if version > STATE_FORMAT_VERSION or (version < STATE_FORMAT_VERSION and version not in MIGRATIONS):
        raise StateDecodeError(f"unsupported state format version {version}")

    try:
        body = msgpack.unpackb(data[_HEADER.size:], raw=False)
        while version < STATE_FORMAT_VERSION:
            body = MIGRATIONS[version](body)
            version += 1
        state = _from_body(body)
    except (ValueError, TypeError, KeyError, IndexError, AttributeError) as e:
        raise StateDecodeError(f"malformed state body: {e}") from e

    if verify:
        check_invariants(state)
    return state
