"""Derived-address helpers for vesting accounts and their vaults."""

from __future__ import annotations

import hashlib
import secrets
from typing import Callable, Optional, Sequence, Tuple

from solders.pubkey import Pubkey

from .constants import ASSOCIATED_TOKEN_PROGRAM_ID, SEED_LEN, SEED_MATERIAL_LEN, TOKEN_PROGRAM_ID
from .errors import InvalidSeeds

ATA_PROGRAM = Pubkey.from_string(ASSOCIATED_TOKEN_PROGRAM_ID)
TOKEN_PROGRAM = Pubkey.from_string(TOKEN_PROGRAM_ID)

PDA_MARKER = b"ProgramDerivedAddress"
MAX_SEEDS = 16
MAX_SEED_LEN = 32


def seed_bytes(seed: bytes | str) -> bytes:
    if isinstance(seed, str):
        text = seed.strip()
        if text.lower().startswith("0x"):
            text = text[2:]
        try:
            seed = bytes.fromhex(text)
        except ValueError as exc:
            raise ValueError(f"seed must be hex: {exc}") from exc
    if len(seed) != SEED_LEN:
        raise ValueError(f"seed must be {SEED_LEN} bytes, got {len(seed)}")
    return bytes(seed)


def derive(seed_material: bytes, program_id: Pubkey) -> Tuple[Pubkey, int]:
    """Highest-bump off-curve address for ``seed_material`` under ``program_id``."""
    if len(seed_material) != SEED_MATERIAL_LEN:
        raise ValueError(f"seed material must be {SEED_MATERIAL_LEN} bytes, got {len(seed_material)}")
    return Pubkey.find_program_address([bytes(seed_material)], program_id)


def vesting_seed(seed_material: bytes, program_id: Pubkey) -> Tuple[bytes, Pubkey]:
    """Full 32-byte seed (material plus bump) and the address it signs for."""
    address, bump = derive(seed_material, program_id)
    return bytes(seed_material) + bytes([bump]), address


def new_vesting_seed(
    program_id: Pubkey,
    exists: Optional[Callable[[Pubkey], bool]] = None,
) -> Tuple[bytes, Pubkey]:
    while True:
        seed, address = vesting_seed(secrets.token_bytes(SEED_MATERIAL_LEN), program_id)
        if exists is None or not exists(address):
            return seed, address


def program_address(seeds: Sequence[bytes], program_id: Pubkey) -> Pubkey:
    """Address signed for by ``seeds``; raises InvalidSeeds when it lands on the curve.

    Use this rather than ``Pubkey.create_program_address``, which aborts the
    interpreter on an on-curve result instead of raising.
    """
    if len(seeds) > MAX_SEEDS or any(len(seed) > MAX_SEED_LEN for seed in seeds):
        raise InvalidSeeds("too many seeds or a seed longer than 32 bytes")
    digest = hashlib.sha256(b"".join(bytes(seed) for seed in seeds) + bytes(program_id) + PDA_MARKER).digest()
    address = Pubkey.from_bytes(digest)
    if address.is_on_curve():
        raise InvalidSeeds(f"seeds derive an on-curve address under {program_id}")
    return address


def canonical_address(seed: bytes | str, program_id: Pubkey) -> Pubkey:
    return program_address([seed_bytes(seed)], program_id)


def verify(candidate: Pubkey, seed: bytes | str, program_id: Pubkey) -> bool:
    try:
        return canonical_address(seed, program_id) == candidate
    except InvalidSeeds:
        return False


def require_canonical(candidate: Pubkey, seed: bytes | str, program_id: Pubkey) -> Pubkey:
    address = canonical_address(seed, program_id)
    if address != candidate:
        raise InvalidSeeds(f"vesting account {candidate} does not match derived address {address}")
    return address


def vault_address(owner: Pubkey, mint: Pubkey) -> Pubkey:
    """Associated token account of ``owner`` for ``mint``."""
    address, _ = Pubkey.find_program_address([bytes(owner), bytes(TOKEN_PROGRAM), bytes(mint)], ATA_PROGRAM)
    return address
