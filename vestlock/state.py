"""Fixed-layout codec for vesting account state.

Every persisted record is described once as an ordered list of ``(name, kind)``
fields. A :class:`Layout` turns that list into a compiled little-endian
``struct`` format plus a table of byte offsets, so widths and offsets have a
single source of truth and are never re-derived per call.

Kinds:

``bool``            1 byte, must be 0 or 1
``u8``/``u32``/``u64``  little-endian unsigned integers
``pubkey``          32 raw bytes, decoded to :class:`solders.pubkey.Pubkey`
``coption_pubkey``  u32 tag (0/1) + 32 bytes, decoded to ``Pubkey | None``
``coption_u64``     u32 tag (0/1) + u64, decoded to ``int | None``
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Sequence, Tuple

from solders.pubkey import Pubkey

from .constants import PUBKEY_LEN
from .errors import DecodeError, InvalidEnumerant, Truncated
from .util import ensure_unsigned

_KINDS: Dict[str, Tuple[str, int]] = {
    "bool": ("B", 1),
    "u8": ("B", 1),
    "u32": ("I", 1),
    "u64": ("Q", 1),
    "pubkey": ("32s", 1),
    "coption_pubkey": ("I32s", 2),
    "coption_u64": ("IQ", 2),
}

_BITS = {"u8": 8, "u32": 32, "u64": 64}


def _key_bytes(value: Any, name: str) -> bytes:
    raw = bytes(value)
    if len(raw) != PUBKEY_LEN:
        raise ValueError(f"{name} must be {PUBKEY_LEN} bytes, got {len(raw)}")
    return raw


def _option_tag(raw: int, name: str) -> bool:
    if raw not in (0, 1):
        raise InvalidEnumerant(f"{name}: option tag must be 0 or 1, got {raw}")
    return raw == 1


class Layout:
    """Compiled fixed-width record layout."""

    def __init__(self, name: str, fields: Sequence[Tuple[str, str]]) -> None:
        self.name = name
        self.fields = tuple(fields)
        fmt = "<"
        offsets: Dict[str, int] = {}
        cursor = 0
        for field_name, kind in self.fields:
            if kind not in _KINDS:
                raise ValueError(f"{name}.{field_name}: unknown field kind {kind!r}")
            part, _ = _KINDS[kind]
            offsets[field_name] = cursor
            cursor += struct.calcsize("<" + part)
            fmt += part
        self._struct = struct.Struct(fmt)
        self.offsets = offsets
        self.size = self._struct.size

    def pack(self, values: Dict[str, Any]) -> bytes:
        buf = bytearray(self.size)
        self.pack_into(buf, 0, values)
        return bytes(buf)

    def pack_into(self, buf: bytearray, offset: int, values: Dict[str, Any]) -> None:
        if offset < 0 or offset + self.size > len(buf):
            raise ValueError(f"{self.name} does not fit at offset {offset}")
        items: List[Any] = []
        for field_name, kind in self.fields:
            value = values[field_name]
            label = f"{self.name}.{field_name}"
            if kind == "bool":
                if not isinstance(value, bool):
                    raise ValueError(f"{label} must be a bool")
                items.append(1 if value else 0)
            elif kind in _BITS:
                items.append(ensure_unsigned(value, label, _BITS[kind]))
            elif kind == "pubkey":
                items.append(_key_bytes(value, label))
            elif kind == "coption_pubkey":
                items.extend((0, bytes(32)) if value is None else (1, _key_bytes(value, label)))
            else:
                items.extend((0, 0) if value is None else (1, ensure_unsigned(value, label, 64)))
        self._struct.pack_into(buf, offset, *items)

    def unpack(self, data: bytes, offset: int = 0) -> Dict[str, Any]:
        available = len(data) - offset
        if offset < 0 or available < self.size:
            raise Truncated(f"{self.name} needs {self.size} bytes, got {max(available, 0)}")
        raw = self._struct.unpack_from(data, offset)
        out: Dict[str, Any] = {}
        idx = 0
        for field_name, kind in self.fields:
            label = f"{self.name}.{field_name}"
            if kind == "bool":
                if raw[idx] not in (0, 1):
                    raise InvalidEnumerant(f"{label} must be 0 or 1, got {raw[idx]}")
                out[field_name] = raw[idx] == 1
            elif kind == "pubkey":
                out[field_name] = Pubkey.from_bytes(raw[idx])
            elif kind == "coption_pubkey":
                present = _option_tag(raw[idx], label)
                out[field_name] = Pubkey.from_bytes(raw[idx + 1]) if present else None
            elif kind == "coption_u64":
                present = _option_tag(raw[idx], label)
                out[field_name] = raw[idx + 1] if present else None
            else:
                out[field_name] = raw[idx]
            idx += _KINDS[kind][1]
        return out


VESTING_HEADER_LAYOUT = Layout(
    "VestingHeader",
    [
        ("is_initialized", "bool"),
        ("authority", "pubkey"),
        ("beneficiary", "pubkey"),
        ("vault", "pubkey"),
        ("mint", "pubkey"),
        ("grantor", "pubkey"),
        ("metadata", "pubkey"),
        ("outstanding", "u64"),
        ("start_balance", "u64"),
        ("created_ts", "u64"),
        ("start_ts", "u64"),
        ("end_ts", "u64"),
        ("period_count", "u64"),
        ("nonce", "u8"),
    ],
)

RELEASE_LAYOUT = Layout("Release", [("timestamp", "u32"), ("quantity", "u64")])


@dataclass
class VestingHeader:
    is_initialized: bool = False
    authority: Pubkey = field(default_factory=Pubkey.default)
    beneficiary: Pubkey = field(default_factory=Pubkey.default)
    vault: Pubkey = field(default_factory=Pubkey.default)
    mint: Pubkey = field(default_factory=Pubkey.default)
    grantor: Pubkey = field(default_factory=Pubkey.default)
    metadata: Pubkey = field(default_factory=Pubkey.default)
    outstanding: int = 0
    start_balance: int = 0
    created_ts: int = 0
    start_ts: int = 0
    end_ts: int = 0
    period_count: int = 0
    nonce: int = 0

    LEN = VESTING_HEADER_LAYOUT.size

    def pack(self) -> bytes:
        return VESTING_HEADER_LAYOUT.pack(self.__dict__)

    @classmethod
    def unpack(cls, data: bytes, offset: int = 0) -> "VestingHeader":
        return cls(**VESTING_HEADER_LAYOUT.unpack(data, offset))


@dataclass(frozen=True)
class Release:
    timestamp: int
    quantity: int

    LEN = RELEASE_LAYOUT.size

    def pack(self) -> bytes:
        return RELEASE_LAYOUT.pack({"timestamp": self.timestamp, "quantity": self.quantity})

    @classmethod
    def unpack(cls, data: bytes, offset: int = 0) -> "Release":
        return cls(**RELEASE_LAYOUT.unpack(data, offset))

    def consumed(self) -> "Release":
        return replace(self, quantity=0)


def pack_releases(releases: Sequence[Release]) -> bytes:
    return b"".join(release.pack() for release in releases)


def unpack_releases(data: bytes) -> List[Release]:
    if len(data) % Release.LEN:
        raise DecodeError(f"release array length {len(data)} is not a multiple of {Release.LEN}")
    return [Release.unpack(data, offset) for offset in range(0, len(data), Release.LEN)]


def vesting_account_size(period_count: int) -> int:
    return VestingHeader.LEN + period_count * Release.LEN


@dataclass
class VestingAccount:
    """Decoded vesting account: header followed by its fixed release slots."""

    header: VestingHeader
    releases: List[Release]

    @property
    def slot_count(self) -> int:
        return len(self.releases)

    def size(self) -> int:
        return vesting_account_size(self.slot_count)

    def pack(self) -> bytes:
        return self.header.pack() + pack_releases(self.releases)

    def pack_into(self, buf: bytearray) -> None:
        if len(buf) != self.size():
            raise ValueError(f"account holds {len(buf)} bytes, state needs {self.size()}")
        buf[:] = self.pack()

    @classmethod
    def unpack(cls, data: bytes) -> "VestingAccount":
        header = VestingHeader.unpack(data)
        return cls(header=header, releases=unpack_releases(bytes(data[VestingHeader.LEN :])))

    def due(self, now: int) -> List[int]:
        """Indexes of releases whose time has come and that still hold tokens."""
        return [
            idx
            for idx, release in enumerate(self.releases)
            if release.timestamp <= now and release.quantity > 0
        ]

    def remaining(self) -> int:
        return sum(release.quantity for release in self.releases)
