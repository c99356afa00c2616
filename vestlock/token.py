"""SPL token mint and account layouts, plus the transfer rule the ledger applies."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from solders.pubkey import Pubkey

from .constants import U64_MAX
from .errors import InsufficientFunds, InvalidArgument, InvalidEnumerant, Overflow, Unauthorized
from .state import Layout
from .util import ensure_unsigned

TOKEN_ACCOUNT_LAYOUT = Layout(
    "TokenAccount",
    [
        ("mint", "pubkey"),
        ("owner", "pubkey"),
        ("amount", "u64"),
        ("delegate", "coption_pubkey"),
        ("state", "u8"),
        ("is_native", "coption_u64"),
        ("delegated_amount", "u64"),
        ("close_authority", "coption_pubkey"),
    ],
)

MINT_LAYOUT = Layout(
    "Mint",
    [
        ("mint_authority", "coption_pubkey"),
        ("supply", "u64"),
        ("decimals", "u8"),
        ("is_initialized", "bool"),
        ("freeze_authority", "coption_pubkey"),
    ],
)


class AccountState(IntEnum):
    UNINITIALIZED = 0
    INITIALIZED = 1
    FROZEN = 2


@dataclass
class TokenAccount:
    mint: Pubkey
    owner: Pubkey
    amount: int = 0
    delegate: Optional[Pubkey] = None
    state: AccountState = AccountState.INITIALIZED
    is_native: Optional[int] = None
    delegated_amount: int = 0
    close_authority: Optional[Pubkey] = None

    LEN = TOKEN_ACCOUNT_LAYOUT.size

    def pack(self) -> bytes:
        return TOKEN_ACCOUNT_LAYOUT.pack(self.__dict__)

    @classmethod
    def unpack(cls, data: bytes) -> "TokenAccount":
        values = TOKEN_ACCOUNT_LAYOUT.unpack(data)
        try:
            values["state"] = AccountState(values["state"])
        except ValueError as exc:
            raise InvalidEnumerant(f"TokenAccount.state out of range: {values['state']}") from exc
        return cls(**values)


@dataclass
class Mint:
    mint_authority: Optional[Pubkey]
    supply: int = 0
    decimals: int = 0
    is_initialized: bool = True
    freeze_authority: Optional[Pubkey] = None

    LEN = MINT_LAYOUT.size

    def pack(self) -> bytes:
        return MINT_LAYOUT.pack(self.__dict__)

    @classmethod
    def unpack(cls, data: bytes) -> "Mint":
        return cls(**MINT_LAYOUT.unpack(data))


def apply_transfer(source: TokenAccount, destination: TokenAccount, authority: Pubkey, amount: int) -> None:
    """Move ``amount`` from ``source`` to ``destination`` in place.

    ``authority`` must be the source owner, or its delegate within the delegated
    allowance. Both accounts must be initialized, unfrozen and of the same mint.
    Passing the same object twice is a balance-checked no-op.
    """
    amount = ensure_unsigned(amount, "amount", 64)
    for label, account in (("source", source), ("destination", destination)):
        if account.state is AccountState.UNINITIALIZED:
            raise InvalidArgument(f"{label} token account is not initialized")
        if account.state is AccountState.FROZEN:
            raise InvalidArgument(f"{label} token account is frozen")
    if source.mint != destination.mint:
        raise InvalidArgument("token accounts belong to different mints")

    by_delegate = authority != source.owner
    if by_delegate:
        if source.delegate != authority:
            raise Unauthorized(f"{authority} may not move tokens owned by {source.owner}")
        if source.delegated_amount < amount:
            raise InsufficientFunds("delegated allowance is too small")
    if source.amount < amount:
        raise InsufficientFunds(f"token account holds {source.amount}, transfer needs {amount}")

    if source is destination:
        return
    if destination.amount + amount > U64_MAX:
        raise Overflow("destination balance overflows u64")
    source.amount -= amount
    destination.amount += amount
    if by_delegate:
        source.delegated_amount -= amount
        if source.delegated_amount == 0:
            source.delegate = None
