"""Bitcoin consensus data structures and their wire encoding."""

from __future__ import annotations

import enum
import hashlib
import struct
from dataclasses import dataclass, field

COIN_VALUE = 100_000_000
MAX_SEQUENCE = 0xFFFFFFFF
ZERO_HASH = bytes(32)


def _sha256d(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


class Network(enum.Enum):
    """The chains the mock node can pretend to serve."""

    BITCOIN = "bitcoin"
    TESTNET = "testnet"
    SIGNET = "signet"
    REGTEST = "regtest"

    @property
    def hrp(self) -> str:
        """Human-readable part of segwit addresses on this network."""
        return _NETWORK_NAMES[self][0]

    @property
    def chain(self) -> str:
        """Chain name as reported by ``getblockchaininfo``."""
        return _NETWORK_NAMES[self][1]

    def __str__(self) -> str:
        return self.value


_NETWORK_NAMES = {
    Network.BITCOIN: ("bc", "main"),
    Network.TESTNET: ("tb", "test"),
    Network.SIGNET: ("tb", "signet"),
    Network.REGTEST: ("bcrt", "regtest"),
}

_SIZE_FORMATS = {0xFD: "<H", 0xFE: "<I", 0xFF: "<Q"}


def _compact_size(n: int) -> bytes:
    if n < 0xFD:
        return bytes([n])
    for marker, fmt in _SIZE_FORMATS.items():
        if n < 1 << (8 * struct.calcsize(fmt)):
            return bytes([marker]) + struct.pack(fmt, n)
    raise ValueError("size too large")


def _var_bytes(data: bytes) -> bytes:
    return _compact_size(len(data)) + data


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._pos = 0

    def take(self, n: int) -> bytes:
        if self._pos + n > len(self._data):
            raise ValueError("unexpected end of data")
        self._pos += n
        return self._data[self._pos - n:self._pos]

    def unpack(self, fmt: str) -> int:
        return struct.unpack(fmt, self.take(struct.calcsize(fmt)))[0]

    def compact_size(self) -> int:
        first = self.take(1)[0]
        fmt = _SIZE_FORMATS.get(first)
        return self.unpack(fmt) if fmt else first

    def var_bytes(self) -> bytes:
        return self.take(self.compact_size())

    def at_end(self) -> bool:
        return self._pos == len(self._data)


@dataclass(frozen=True, order=True)
class OutPoint:
    """Reference to a transaction output; ``txid`` is in internal byte order."""

    txid: bytes
    vout: int

    def __post_init__(self) -> None:
        if len(self.txid) != 32 or not 0 <= self.vout <= 0xFFFFFFFF:
            raise ValueError("invalid outpoint")

    @classmethod
    def null(cls) -> OutPoint:
        """The outpoint spent by coinbase inputs."""
        return cls(ZERO_HASH, 0xFFFFFFFF)

    def is_null(self) -> bool:
        return self == OutPoint.null()

    def __str__(self) -> str:
        return f"{self.txid[::-1].hex()}:{self.vout}"


@dataclass
class TxIn:
    previous_output: OutPoint
    script_sig: bytes = b""
    sequence: int = MAX_SEQUENCE
    witness: tuple[bytes, ...] = ()

    def _encode(self) -> bytes:
        outpoint = self.previous_output
        return (
            outpoint.txid
            + struct.pack("<I", outpoint.vout)
            + _var_bytes(self.script_sig)
            + struct.pack("<I", self.sequence)
        )

    @classmethod
    def _read(cls, reader: _Reader) -> TxIn:
        outpoint = OutPoint(reader.take(32), reader.unpack("<I"))
        return cls(outpoint, reader.var_bytes(), reader.unpack("<I"))


@dataclass
class TxOut:
    value: int
    script_pubkey: bytes = b""

    def _encode(self) -> bytes:
        return struct.pack("<Q", self.value) + _var_bytes(self.script_pubkey)

    @classmethod
    def _read(cls, reader: _Reader) -> TxOut:
        return cls(reader.unpack("<Q"), reader.var_bytes())


@dataclass
class Transaction:
    version: int
    lock_time: int
    inputs: list[TxIn] = field(default_factory=list)
    outputs: list[TxOut] = field(default_factory=list)

    def _encode(self, with_witness: bool) -> bytes:
        segwit = with_witness and (not self.inputs or any(i.witness for i in self.inputs))
        parts = [struct.pack("<i", self.version), b"\x00\x01" if segwit else b""]
        parts.append(_compact_size(len(self.inputs)))
        parts.extend(txin._encode() for txin in self.inputs)
        parts.append(_compact_size(len(self.outputs)))
        parts.extend(txout._encode() for txout in self.outputs)
        if segwit:
            for txin in self.inputs:
                parts.append(_compact_size(len(txin.witness)))
                parts.extend(_var_bytes(item) for item in txin.witness)
        parts.append(struct.pack("<I", self.lock_time))
        return b"".join(parts)

    def serialize(self) -> bytes:
        """Consensus encoding, including witness data where present."""
        return self._encode(with_witness=True)

    @classmethod
    def deserialize(cls, data: bytes) -> Transaction:
        """Decode a consensus-encoded transaction, rejecting trailing bytes."""
        reader = _Reader(data)
        version = reader.unpack("<i")
        inputs = [TxIn._read(reader) for _ in range(reader.compact_size())]
        segwit = not inputs
        if segwit:
            if reader.take(1) != b"\x01":
                raise ValueError("unsupported segwit flag")
            inputs = [TxIn._read(reader) for _ in range(reader.compact_size())]
        outputs = [TxOut._read(reader) for _ in range(reader.compact_size())]
        if segwit:
            for txin in inputs:
                txin.witness = tuple(reader.var_bytes() for _ in range(reader.compact_size()))
        tx = cls(version, reader.unpack("<I"), inputs, outputs)
        if not reader.at_end():
            raise ValueError("trailing data after transaction")
        return tx

    def txid(self) -> bytes:
        """Hash of the witness-stripped encoding, in internal byte order."""
        return _sha256d(self._encode(with_witness=False))


@dataclass
class BlockHeader:
    version: int
    prev_blockhash: bytes
    merkle_root: bytes
    time: int
    bits: int
    nonce: int

    def serialize(self) -> bytes:
        return (
            struct.pack("<i", self.version)
            + self.prev_blockhash
            + self.merkle_root
            + struct.pack("<III", self.time, self.bits, self.nonce)
        )

    def block_hash(self) -> bytes:
        return _sha256d(self.serialize())


@dataclass
class Block:
    header: BlockHeader
    txdata: list[Transaction] = field(default_factory=list)

    def serialize(self) -> bytes:
        txs = b"".join(tx.serialize() for tx in self.txdata)
        return self.header.serialize() + _compact_size(len(self.txdata)) + txs

    def block_hash(self) -> bytes:
        return self.header.block_hash()


_GENESIS_HEADLINE = b"The Times 03/Jan/2009 Chancellor on brink of second bailout for banks"
_GENESIS_PUBKEY = bytes.fromhex(
    "04678afdb0fe5548271967f1a67130b7105cd6a828e03909a67962e0ea1f61de"
    "b649f6bc3f4cef38c4f35504e51ec112de5c384df7ba0b8d578a4c702b6bf11d5f"
)
_GENESIS_PARAMS = {
    Network.BITCOIN: (1231006505, 0x1D00FFFF, 2083236893),
    Network.TESTNET: (1296688602, 0x1D00FFFF, 414098458),
    Network.SIGNET: (1598918400, 0x1E0377AE, 52613770),
    Network.REGTEST: (1296688602, 0x207FFFFF, 2),
}


def genesis_block(network: Network) -> Block:
    """The hard-coded first block of ``network``."""
    script_sig = b"\x04\xff\xff\x00\x1d\x01\x04" + _var_bytes(_GENESIS_HEADLINE)
    script_pubkey = _var_bytes(_GENESIS_PUBKEY) + b"\xac"
    coinbase = Transaction(
        1, 0, [TxIn(OutPoint.null(), script_sig)], [TxOut(50 * COIN_VALUE, script_pubkey)]
    )
    time, bits, nonce = _GENESIS_PARAMS[network]
    return Block(BlockHeader(1, ZERO_HASH, coinbase.txid(), time, bits, nonce), [coinbase])


def script_push_int(n: int) -> bytes:
    """Script that pushes the integer ``n`` using the shortest opcode."""
    if n == -1 or 1 <= n <= 16:
        return bytes([0x50 + n])
    if n == 0:
        return b"\x00"
    magnitude = abs(n)
    data = bytearray(magnitude.to_bytes((magnitude.bit_length() + 7) // 8, "little"))
    if data[-1] & 0x80:
        data.append(0x80 if n < 0 else 0x00)
    elif n < 0:
        data[-1] |= 0x80
    size = len(data)
    if size < 0x4C:
        prefix = bytes([size])
    elif size <= 0xFF:
        prefix = b"\x4c" + bytes([size])
    elif size <= 0xFFFF:
        prefix = b"\x4d" + struct.pack("<H", size)
    else:
        prefix = b"\x4e" + struct.pack("<I", size)
    return prefix + bytes(data)