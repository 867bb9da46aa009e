"""
Amount and transaction value types.

Transactions are immutable: every funding or signing step produces a new
Transaction value. Serialization follows the standard Bitcoin encoding, using
the BIP144 extended form when any input carries witness data.
"""

from __future__ import annotations

import binascii
import hashlib
import struct
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from chanfund.errors import DecodeError, OutputNotFoundError

SATS_PER_BTC = 100_000_000

SEQUENCE_FINAL = 0xFFFFFFFF

_SATOSHI = Decimal("0.00000001")


def btc_to_sats(value: Decimal | str | int | float) -> int:
    """
    Convert a whole-coin amount as reported by the node to satoshis.

    Floats go through str() first so that 0.1 stays 0.1 rather than its binary
    approximation. Rounds half-up to the nearest satoshi.
    """
    if isinstance(value, bool):
        raise DecodeError(f"Invalid amount: {value!r}")
    try:
        amount = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise DecodeError(f"Invalid amount: {value!r}") from e
    if not amount.is_finite():
        raise DecodeError(f"Invalid amount: {value!r}")
    return int((amount * SATS_PER_BTC).to_integral_value(rounding=ROUND_HALF_UP))


def sats_to_btc(sats: int) -> Decimal:
    return (Decimal(sats) / SATS_PER_BTC).quantize(_SATOSHI)


def hash256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def encode_varint(value: int) -> bytes:
    if value < 0xFD:
        return bytes([value])
    if value <= 0xFFFF:
        return b"\xfd" + value.to_bytes(2, "little")
    if value <= 0xFFFFFFFF:
        return b"\xfe" + value.to_bytes(4, "little")
    return b"\xff" + value.to_bytes(8, "little")


class _Reader:
    """Bounds-checked cursor over a serialized transaction."""

    def __init__(self, data: bytes, offset: int = 0):
        self.data = data
        self.offset = offset

    def read(self, n: int) -> bytes:
        end = self.offset + n
        if end > len(self.data):
            raise DecodeError(
                f"Unexpected end of data at offset {self.offset} (wanted {n} bytes)"
            )
        chunk = self.data[self.offset : end]
        self.offset = end
        return chunk

    def read_uint32(self) -> int:
        return struct.unpack("<I", self.read(4))[0]

    def read_varint(self) -> int:
        first = self.read(1)[0]
        if first < 0xFD:
            return first
        if first == 0xFD:
            return int.from_bytes(self.read(2), "little")
        if first == 0xFE:
            return int.from_bytes(self.read(4), "little")
        return int.from_bytes(self.read(8), "little")

    def read_bytes(self) -> bytes:
        return self.read(self.read_varint())

    def at_end(self) -> bool:
        return self.offset == len(self.data)


@dataclass(frozen=True)
class OutPoint:
    """Reference to output `vout` of transaction `txid` (RPC byte order)."""

    txid: str
    vout: int

    def serialize(self) -> bytes:
        return bytes.fromhex(self.txid)[::-1] + struct.pack("<I", self.vout)

    def __str__(self) -> str:
        return f"{self.txid}:{self.vout}"


@dataclass(frozen=True)
class TxIn:
    outpoint: OutPoint
    script_sig: bytes = b""
    sequence: int = SEQUENCE_FINAL
    witness: tuple[bytes, ...] = ()

    def serialize(self) -> bytes:
        return (
            self.outpoint.serialize()
            + encode_varint(len(self.script_sig))
            + self.script_sig
            + struct.pack("<I", self.sequence)
        )


@dataclass(frozen=True)
class TxOut:
    amount: int
    script: bytes

    def serialize(self) -> bytes:
        return struct.pack("<q", self.amount) + encode_varint(len(self.script)) + self.script


@dataclass(frozen=True)
class Transaction:
    version: int
    inputs: tuple[TxIn, ...]
    outputs: tuple[TxOut, ...]
    locktime: int

    @property
    def has_witness(self) -> bool:
        return any(inp.witness for inp in self.inputs)

    def serialize(self, include_witness: bool = True) -> bytes:
        extended = include_witness and self.has_witness
        result = struct.pack("<I", self.version)
        if extended:
            result += b"\x00\x01"
        result += encode_varint(len(self.inputs))
        result += b"".join(inp.serialize() for inp in self.inputs)
        result += encode_varint(len(self.outputs))
        result += b"".join(out.serialize() for out in self.outputs)
        if extended:
            for inp in self.inputs:
                result += encode_varint(len(inp.witness))
                result += b"".join(encode_varint(len(item)) + item for item in inp.witness)
        result += struct.pack("<I", self.locktime)
        return result

    def to_hex(self) -> str:
        return self.serialize().hex()

    @property
    def txid(self) -> str:
        """Identity is the hash of the non-witness serialization."""
        return hash256(self.serialize(include_witness=False))[::-1].hex()

    def spent_outpoints(self) -> list[OutPoint]:
        """Outpoints consumed by this transaction, in input order, without duplicates."""
        return list(dict.fromkeys(inp.outpoint for inp in self.inputs))

    @classmethod
    def from_hex(cls, tx_hex: str) -> Transaction:
        try:
            tx_bytes = bytes.fromhex(tx_hex)
        except (binascii.Error, TypeError, ValueError) as e:
            raise DecodeError(f"Transaction is not valid hex: {e}") from e
        return cls.deserialize(tx_bytes)

    @classmethod
    def deserialize(cls, tx_bytes: bytes) -> Transaction:
        # A transaction without inputs starts with the same 0x00 0x01 bytes as
        # the segwit marker and flag, so the legacy form is the fallback.
        if len(tx_bytes) > 6 and tx_bytes[4] == 0x00 and tx_bytes[5] == 0x01:
            try:
                return cls._deserialize(tx_bytes, extended=True)
            except DecodeError:
                pass
        return cls._deserialize(tx_bytes, extended=False)

    @classmethod
    def _deserialize(cls, tx_bytes: bytes, extended: bool) -> Transaction:
        reader = _Reader(tx_bytes)
        version = reader.read_uint32()
        if extended:
            reader.read(2)

        inputs: list[tuple[OutPoint, bytes, int]] = []
        for _ in range(reader.read_varint()):
            txid = reader.read(32)[::-1].hex()
            vout = reader.read_uint32()
            script_sig = reader.read_bytes()
            sequence = reader.read_uint32()
            inputs.append((OutPoint(txid, vout), script_sig, sequence))

        outputs: list[TxOut] = []
        for _ in range(reader.read_varint()):
            amount = struct.unpack("<q", reader.read(8))[0]
            outputs.append(TxOut(amount, reader.read_bytes()))

        witnesses: list[tuple[bytes, ...]] = [() for _ in inputs]
        if extended:
            if not inputs:
                raise DecodeError("Extended serialization without inputs")
            for i in range(len(inputs)):
                witnesses[i] = tuple(reader.read_bytes() for _ in range(reader.read_varint()))
            if not any(witnesses):
                raise DecodeError("Extended serialization with empty witness data")

        locktime = reader.read_uint32()
        if not reader.at_end():
            raise DecodeError(f"{len(tx_bytes) - reader.offset} trailing bytes after locktime")

        return cls(
            version=version,
            inputs=tuple(
                TxIn(outpoint, script_sig, sequence, witness)
                for (outpoint, script_sig, sequence), witness in zip(inputs, witnesses)
            ),
            outputs=tuple(outputs),
            locktime=locktime,
        )


def find_script_index(tx: Transaction, script: bytes) -> int:
    """
    Index of the first output paying `script`.

    Funding and signing may reorder outputs or insert change anywhere, so the
    caller's output is located by content. If the script appears more than
    once the first one wins.
    """
    # Only the script is compared: the wallet never alters the amount of an
    # output it did not add. Paying the same script twice (e.g. an address of
    # our own wallet) is ambiguous and resolved by output order.
    for index, output in enumerate(tx.outputs):
        if output.script == script:
            return index
    raise OutputNotFoundError(script, tx)


@dataclass(frozen=True)
class FundingResult:
    """Result of fundrawtransaction. change_position is None without change."""

    tx: Transaction
    change_position: int | None
    fee: int


@dataclass(frozen=True)
class SigningResult:
    tx: Transaction
    complete: bool


@dataclass(frozen=True)
class MakeFundingTxResult:
    tx: Transaction
    output_index: int
