"""Vesting program instructions: wire codec and account-meta builders.

Every instruction is a one-byte tag followed by a fixed little-endian payload.
Create carries a variable tail of ``period_count`` release records.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Callable, Dict, Sequence, Tuple, Union

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from .authority import TOKEN_PROGRAM, seed_bytes
from .constants import (
    IX_CREATE,
    IX_INIT,
    IX_SET_BENEFICIARY,
    IX_UNLOCK,
    SYSTEM_PROGRAM_ID,
    U64_MAX,
)
from .errors import InvalidArgument, InvalidInstruction, InvalidSchedule, InvalidSeeds, Overflow
from .state import Release, pack_releases
from .util import ensure_unsigned

SYSTEM_PROGRAM = Pubkey.from_string(SYSTEM_PROGRAM_ID)

_INIT = struct.Struct("<32sQ")
_CREATE = struct.Struct("<32sQQQBQ32s32s")
_UNLOCK = struct.Struct("<Q32s")
_SET_BENEFICIARY = struct.Struct("<32s32s")


@dataclass(frozen=True)
class Init:
    seed: bytes
    period_count: int

    TAG = IX_INIT

    def pack(self) -> bytes:
        body = _INIT.pack(seed_bytes(self.seed), ensure_unsigned(self.period_count, "period_count", 64))
        return bytes([self.TAG]) + body


@dataclass(frozen=True)
class Create:
    beneficiary: Pubkey
    start_ts: int
    end_ts: int
    period_count: int
    nonce: int
    amount: int
    seed: bytes
    mint: Pubkey
    releases: Tuple[Release, ...]

    TAG = IX_CREATE

    @classmethod
    def from_releases(
        cls,
        seed: bytes,
        mint: Pubkey,
        beneficiary: Pubkey,
        releases: Sequence[Release],
    ) -> "Create":
        """Build a Create whose summary fields agree with ``releases``."""
        if not releases:
            raise ValueError("releases must not be empty")
        seed = seed_bytes(seed)
        return cls(
            beneficiary=beneficiary,
            start_ts=releases[0].timestamp,
            end_ts=releases[-1].timestamp,
            period_count=len(releases),
            nonce=seed[-1],
            amount=sum(release.quantity for release in releases),
            seed=seed,
            mint=mint,
            releases=tuple(releases),
        )

    def pack(self) -> bytes:
        body = _CREATE.pack(
            bytes(self.beneficiary),
            ensure_unsigned(self.start_ts, "start_ts", 64),
            ensure_unsigned(self.end_ts, "end_ts", 64),
            ensure_unsigned(self.period_count, "period_count", 64),
            ensure_unsigned(self.nonce, "nonce", 8),
            ensure_unsigned(self.amount, "amount", 64),
            seed_bytes(self.seed),
            bytes(self.mint),
        )
        return bytes([self.TAG]) + body + pack_releases(self.releases)

    def total(self) -> int:
        """Sum of release quantities; raises Overflow past u64."""
        total = 0
        for release in self.releases:
            total += release.quantity
            if total > U64_MAX:
                raise Overflow("release quantities overflow u64")
        return total

    def validate(self) -> None:
        """Check the summary fields against the release list."""
        if self.period_count != len(self.releases):
            raise InvalidSchedule(
                f"period_count {self.period_count} does not match {len(self.releases)} releases"
            )
        if not self.releases:
            raise InvalidSchedule("schedule has no releases")
        if self.start_ts != self.releases[0].timestamp or self.end_ts != self.releases[-1].timestamp:
            raise InvalidSchedule("start_ts/end_ts do not match the first and last release")
        if self.amount != self.total():
            raise InvalidSchedule("amount does not match the sum of release quantities")
        if self.nonce != self.seed[-1]:
            raise InvalidSeeds(f"nonce {self.nonce} does not match seed bump {self.seed[-1]}")


@dataclass(frozen=True)
class Unlock:
    seed: bytes
    amount: int = 0

    TAG = IX_UNLOCK

    def pack(self) -> bytes:
        body = _UNLOCK.pack(ensure_unsigned(self.amount, "amount", 64), seed_bytes(self.seed))
        return bytes([self.TAG]) + body


@dataclass(frozen=True)
class SetBeneficiary:
    seed: bytes
    new_beneficiary: Pubkey

    TAG = IX_SET_BENEFICIARY

    def pack(self) -> bytes:
        body = _SET_BENEFICIARY.pack(bytes(self.new_beneficiary), seed_bytes(self.seed))
        return bytes([self.TAG]) + body


VestingInstruction = Union[Init, Create, Unlock, SetBeneficiary]


def _exact_body(name: str, body: bytes, expected: int) -> None:
    if len(body) != expected:
        raise InvalidInstruction(f"{name} payload must be {expected} bytes, got {len(body)}")


def _unpack_init(body: bytes) -> Init:
    _exact_body("Init", body, _INIT.size)
    seed, period_count = _INIT.unpack(body)
    return Init(seed=seed, period_count=period_count)


def _unpack_create(body: bytes) -> Create:
    if len(body) < _CREATE.size:
        raise InvalidInstruction(f"Create payload needs at least {_CREATE.size} bytes, got {len(body)}")
    beneficiary, start_ts, end_ts, period_count, nonce, amount, seed, mint = _CREATE.unpack_from(body)
    _exact_body("Create", body, _CREATE.size + period_count * Release.LEN)
    releases = tuple(
        Release.unpack(body, offset)
        for offset in range(_CREATE.size, len(body), Release.LEN)
    )
    return Create(
        beneficiary=Pubkey.from_bytes(beneficiary),
        start_ts=start_ts,
        end_ts=end_ts,
        period_count=period_count,
        nonce=nonce,
        amount=amount,
        seed=seed,
        mint=Pubkey.from_bytes(mint),
        releases=releases,
    )


def _unpack_unlock(body: bytes) -> Unlock:
    _exact_body("Unlock", body, _UNLOCK.size)
    amount, seed = _UNLOCK.unpack(body)
    return Unlock(seed=seed, amount=amount)


def _unpack_set_beneficiary(body: bytes) -> SetBeneficiary:
    _exact_body("SetBeneficiary", body, _SET_BENEFICIARY.size)
    new_beneficiary, seed = _SET_BENEFICIARY.unpack(body)
    return SetBeneficiary(seed=seed, new_beneficiary=Pubkey.from_bytes(new_beneficiary))


_DECODERS: Dict[int, Callable[[bytes], VestingInstruction]] = {
    IX_INIT: _unpack_init,
    IX_CREATE: _unpack_create,
    IX_UNLOCK: _unpack_unlock,
    IX_SET_BENEFICIARY: _unpack_set_beneficiary,
}


def unpack(data: bytes) -> VestingInstruction:
    if not data:
        raise InvalidInstruction("instruction data is empty")
    decoder = _DECODERS.get(data[0])
    if decoder is None:
        raise InvalidArgument(f"unknown instruction tag {data[0]}")
    return decoder(bytes(data[1:]))


def init(program_id: Pubkey, payer: Pubkey, vesting: Pubkey, seed: bytes, period_count: int) -> Instruction:
    metas = [
        AccountMeta(payer, True, True),
        AccountMeta(vesting, False, True),
        AccountMeta(SYSTEM_PROGRAM, False, False),
    ]
    return Instruction(program_id, Init(seed=seed, period_count=period_count).pack(), metas)


def create(
    program_id: Pubkey,
    authority: Pubkey,
    funding: Pubkey,
    vesting: Pubkey,
    vault: Pubkey,
    seed: bytes,
    mint: Pubkey,
    beneficiary: Pubkey,
    releases: Sequence[Release],
    token_program: Pubkey = TOKEN_PROGRAM,
) -> Instruction:
    metas = [
        AccountMeta(authority, True, False),
        AccountMeta(funding, False, True),
        AccountMeta(vesting, False, True),
        AccountMeta(vault, False, True),
        AccountMeta(token_program, False, False),
    ]
    data = Create.from_releases(seed, mint, beneficiary, releases).pack()
    return Instruction(program_id, data, metas)


def unlock(
    program_id: Pubkey,
    vesting: Pubkey,
    vault: Pubkey,
    beneficiary: Pubkey,
    beneficiary_token: Pubkey,
    seed: bytes,
    amount: int = 0,
    token_program: Pubkey = TOKEN_PROGRAM,
) -> Instruction:
    metas = [
        AccountMeta(vesting, False, True),
        AccountMeta(vault, False, True),
        AccountMeta(beneficiary, False, False),
        AccountMeta(beneficiary_token, False, True),
        AccountMeta(token_program, False, False),
    ]
    return Instruction(program_id, Unlock(seed=seed, amount=amount).pack(), metas)


def set_beneficiary(
    program_id: Pubkey,
    authority: Pubkey,
    vesting: Pubkey,
    seed: bytes,
    new_beneficiary: Pubkey,
) -> Instruction:
    metas = [
        AccountMeta(authority, True, False),
        AccountMeta(vesting, False, True),
    ]
    return Instruction(program_id, SetBeneficiary(seed=seed, new_beneficiary=new_beneficiary).pack(), metas)
