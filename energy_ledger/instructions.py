"""
instructions.py - Instruction types and wire codec

Each instruction is a frozen dataclass with a class-level tag. The wire form is
a fixed-layout record: one tag byte followed by the payload fields, all
unsigned little-endian.

    Tag  Name                 Payload                              Bytes
    0    Initialize           -                                    1
    1    RegisterParticipant  role: u8 (0 Producer, 1 Consumer,    2
                              2 Prosumer)
    2    ReportProduction     energy_amount: u64, unit_price: u64  17
    3    PostDemand           energy_amount: u64, price_limit: u64 17
    4    MatchTransactions    -                                    1
    5    Deposit              amount: u64                          9
    6    Withdraw             amount: u64                          9

The caller identity is not part of the payload; the invoking environment
supplies it alongside the bytes.
"""

from __future__ import annotations
from dataclasses import astuple, dataclass
from typing import ClassVar, Dict, Type, Union
import struct

from .core import (
    InstructionTag, Role,
    InvalidAmount, MalformedInstruction, UnknownInstruction,
)


@dataclass(frozen=True, slots=True)
class Initialize:
    tag: ClassVar[InstructionTag] = InstructionTag.INITIALIZE


@dataclass(frozen=True, slots=True)
class RegisterParticipant:
    role: Role
    tag: ClassVar[InstructionTag] = InstructionTag.REGISTER_PARTICIPANT


@dataclass(frozen=True, slots=True)
class ReportProduction:
    energy_amount: int
    unit_price: int
    tag: ClassVar[InstructionTag] = InstructionTag.REPORT_PRODUCTION


@dataclass(frozen=True, slots=True)
class PostDemand:
    energy_amount: int
    price_limit: int
    tag: ClassVar[InstructionTag] = InstructionTag.POST_DEMAND


@dataclass(frozen=True, slots=True)
class MatchTransactions:
    tag: ClassVar[InstructionTag] = InstructionTag.MATCH_TRANSACTIONS


@dataclass(frozen=True, slots=True)
class Deposit:
    amount: int
    tag: ClassVar[InstructionTag] = InstructionTag.DEPOSIT


@dataclass(frozen=True, slots=True)
class Withdraw:
    amount: int
    tag: ClassVar[InstructionTag] = InstructionTag.WITHDRAW


Instruction = Union[
    Initialize, RegisterParticipant, ReportProduction, PostDemand,
    MatchTransactions, Deposit, Withdraw,
]

INSTRUCTION_TYPES: Dict[InstructionTag, Type] = {
    cls.tag: cls for cls in (
        Initialize, RegisterParticipant, ReportProduction, PostDemand,
        MatchTransactions, Deposit, Withdraw,
    )
}

# Payload layouts, tag byte excluded.
_PAYLOADS: Dict[InstructionTag, struct.Struct] = {
    InstructionTag.INITIALIZE: struct.Struct("<"),
    InstructionTag.REGISTER_PARTICIPANT: struct.Struct("<B"),
    InstructionTag.REPORT_PRODUCTION: struct.Struct("<QQ"),
    InstructionTag.POST_DEMAND: struct.Struct("<QQ"),
    InstructionTag.MATCH_TRANSACTIONS: struct.Struct("<"),
    InstructionTag.DEPOSIT: struct.Struct("<Q"),
    InstructionTag.WITHDRAW: struct.Struct("<Q"),
}


def instruction_size(tag: InstructionTag) -> int:
    """Total encoded size of an instruction, tag byte included."""
    return 1 + _PAYLOADS[tag].size


def decode_instruction(data: bytes) -> Instruction:
    """
    Decode one instruction from its wire form.

    Raises:
        UnknownInstruction: If data is empty or the tag byte is not recognized
        MalformedInstruction: If the payload length does not match the tag's
            layout, or the role byte is not 0, 1 or 2
    """
    if not data:
        raise UnknownInstruction("empty instruction data")
    try:
        tag = InstructionTag(data[0])
    except ValueError:
        raise UnknownInstruction(f"unknown instruction tag {data[0]}") from None

    layout = _PAYLOADS[tag]
    payload = bytes(data[1:])
    if len(payload) != layout.size:
        raise MalformedInstruction(
            f"{tag.name}: expected {layout.size} payload bytes, got {len(payload)}"
        )
    fields = layout.unpack(payload)

    if tag is InstructionTag.REGISTER_PARTICIPANT:
        try:
            return RegisterParticipant(Role(fields[0]))
        except ValueError:
            raise MalformedInstruction(f"invalid role byte {fields[0]}") from None
    return INSTRUCTION_TYPES[tag](*fields)


def encode_instruction(instruction: Instruction) -> bytes:
    """
    Encode an instruction to its wire form.

    Raises:
        UnknownInstruction: If the object is not one of the instruction types
        InvalidAmount: If a numeric field does not fit its u64 slot
        MalformedInstruction: If a RegisterParticipant role is not a valid role
    """
    tag = getattr(instruction, "tag", None)
    if tag not in _PAYLOADS or not isinstance(instruction, INSTRUCTION_TYPES[tag]):
        raise UnknownInstruction(f"cannot encode {type(instruction).__name__}")

    fields = astuple(instruction)
    if tag is InstructionTag.REGISTER_PARTICIPANT:
        try:
            fields = (Role(instruction.role).value,)
        except ValueError:
            raise MalformedInstruction(f"invalid role {instruction.role!r}") from None
    try:
        payload = _PAYLOADS[tag].pack(*fields)
    except struct.error as e:
        raise InvalidAmount(f"{tag.name}: {e}") from None
    return bytes([tag]) + payload
