"""In-memory account ledger that runs vesting transactions atomically.

The ledger stands in for a cluster: it owns every account, executes registered
program entrypoints, and offers the native services a program needs (token
transfer, account allocation, clock, program log) through :class:`InvokeContext`.
A transaction either applies every instruction or leaves all accounts as they
were.
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .authority import TOKEN_PROGRAM, program_address, vault_address
from .constants import (
    ACCOUNT_STORAGE_OVERHEAD,
    BPF_LOADER_ID,
    DEFAULT_DECIMALS,
    MAX_ACCOUNT_DATA_LEN,
    NATIVE_LOADER_ID,
    RENT_EXEMPTION_YEARS,
    RENT_LAMPORTS_PER_BYTE_YEAR,
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    U64_MAX,
)
from .errors import (
    AccountAlreadyInUse,
    IllegalOwner,
    IncorrectProgramId,
    InsufficientFunds,
    InvalidArgument,
    MissingRequiredSignature,
    Overflow,
)
from .token import Mint, TokenAccount, apply_transfer
from .util import ensure_int, ensure_unsigned

SYSTEM_PROGRAM = Pubkey.from_string(SYSTEM_PROGRAM_ID)
BPF_LOADER = Pubkey.from_string(BPF_LOADER_ID)
NATIVE_LOADER = Pubkey.from_string(NATIVE_LOADER_ID)


def rent_exempt_minimum(size: int) -> int:
    return (ACCOUNT_STORAGE_OVERHEAD + size) * RENT_LAMPORTS_PER_BYTE_YEAR * RENT_EXEMPTION_YEARS


@dataclass
class Account:
    lamports: int = 0
    owner: Pubkey = SYSTEM_PROGRAM
    data: bytearray = field(default_factory=bytearray)
    executable: bool = False

    def copy(self) -> "Account":
        return Account(self.lamports, self.owner, bytearray(self.data), self.executable)

    def is_empty(self) -> bool:
        return self.lamports == 0 and not self.data and not self.executable


@dataclass
class AccountInfo:
    """An account as one instruction sees it."""

    key: Pubkey
    is_signer: bool
    is_writable: bool
    account: Account

    @property
    def owner(self) -> Pubkey:
        return self.account.owner

    @property
    def lamports(self) -> int:
        return self.account.lamports

    @property
    def data(self) -> bytearray:
        return self.account.data


Entrypoint = Callable[[Pubkey, List[AccountInfo], bytes, "InvokeContext"], None]


class InvokeContext:
    """Native services available to a running program."""

    def __init__(self, ledger: "Ledger", program_id: Pubkey, signers: Set[Pubkey], logs: List[str]) -> None:
        self.ledger = ledger
        self.program_id = program_id
        self.signers = signers
        self.logs = logs
        # Post-call images of accounts changed by native services.
        self.native_writes: Dict[Pubkey, Account] = {}

    def clock(self) -> int:
        return self.ledger.unix_timestamp

    def log(self, message: str) -> None:
        self.logs.append(f"Program log: {message}")

    def _has_signed(self, key: Pubkey, signer_seeds: Optional[Sequence[bytes]]) -> bool:
        if key in self.signers:
            return True
        if not signer_seeds:
            return False
        return program_address(signer_seeds, self.program_id) == key

    def _record(self, *infos: AccountInfo) -> None:
        for info in infos:
            self.native_writes[info.key] = info.account.copy()

    def transfer(
        self,
        source: AccountInfo,
        destination: AccountInfo,
        authority: Pubkey,
        amount: int,
        signer_seeds: Optional[Sequence[bytes]] = None,
    ) -> None:
        """Token transfer, signed by a transaction signer or by the program's derived address."""
        self.logs.append(f"Program {TOKEN_PROGRAM_ID} invoke [2]")
        for info in (source, destination):
            if info.owner != TOKEN_PROGRAM:
                raise IllegalOwner(f"{info.key} is not a token account")
            if not info.is_writable:
                raise InvalidArgument(f"{info.key} must be writable for a transfer")
        if not self._has_signed(authority, signer_seeds):
            raise MissingRequiredSignature(f"transfer authority {authority} did not sign")

        src = TokenAccount.unpack(source.data)
        dst = src if destination.key == source.key else TokenAccount.unpack(destination.data)
        apply_transfer(src, dst, authority, amount)
        source.data[:] = src.pack()
        destination.data[:] = dst.pack()
        self._record(source, destination)
        self.logs.append("Program log: Instruction: Transfer")
        self.logs.append(f"Program {TOKEN_PROGRAM_ID} success")

    def allocate(
        self,
        payer: AccountInfo,
        new_account: AccountInfo,
        size: int,
        owner: Pubkey,
        signer_seeds: Optional[Sequence[bytes]] = None,
    ) -> None:
        """Create a rent-exempt account of ``size`` bytes funded by ``payer``."""
        self.logs.append(f"Program {SYSTEM_PROGRAM_ID} invoke [2]")
        size = ensure_int(size, "size")
        if size < 0 or size > MAX_ACCOUNT_DATA_LEN:
            raise InvalidArgument(f"account size {size} is outside 0..{MAX_ACCOUNT_DATA_LEN}")
        if not new_account.account.is_empty() or new_account.owner != SYSTEM_PROGRAM:
            raise AccountAlreadyInUse(f"{new_account.key} already exists")
        for info in (payer, new_account):
            if not info.is_writable:
                raise InvalidArgument(f"{info.key} must be writable to allocate")
        if payer.owner != SYSTEM_PROGRAM:
            raise IllegalOwner(f"payer {payer.key} is not a system account")
        if not self._has_signed(payer.key, None):
            raise MissingRequiredSignature(f"payer {payer.key} did not sign")
        if not self._has_signed(new_account.key, signer_seeds):
            raise MissingRequiredSignature(f"new account {new_account.key} did not sign")

        lamports = rent_exempt_minimum(size)
        if payer.lamports < lamports:
            raise InsufficientFunds(f"payer holds {payer.lamports} lamports, rent needs {lamports}")
        payer.account.lamports -= lamports
        new_account.account.lamports += lamports
        new_account.account.data = bytearray(size)
        new_account.account.owner = owner
        self._record(payer, new_account)
        self.logs.append(f"Program {SYSTEM_PROGRAM_ID} success")


class Ledger:
    def __init__(self, unix_timestamp: int = 0) -> None:
        self.accounts: Dict[Pubkey, Account] = {}
        self.programs: Dict[Pubkey, Entrypoint] = {}
        self.unix_timestamp = unix_timestamp
        self.logs: List[str] = []
        for native in (SYSTEM_PROGRAM, TOKEN_PROGRAM):
            self.accounts[native] = Account(lamports=1, owner=NATIVE_LOADER, executable=True)

    def register_program(self, program_id: Pubkey, entrypoint: Entrypoint) -> None:
        self.programs[program_id] = entrypoint
        account = self.accounts.get(program_id)
        if account is None or not account.executable:
            self.accounts[program_id] = Account(lamports=1, owner=BPF_LOADER, executable=True)

    def get_account(self, pubkey: Pubkey) -> Optional[Account]:
        return self.accounts.get(pubkey)

    def process_transaction(
        self,
        instructions: Iterable[Instruction],
        signers: Iterable[Keypair | Pubkey],
    ) -> List[str]:
        """Run ``instructions`` in order; on any error restore every account and re-raise."""
        signer_keys = {signer.pubkey() if isinstance(signer, Keypair) else signer for signer in signers}
        snapshot = {key: account.copy() for key, account in self.accounts.items()}
        logs: List[str] = []
        self.logs = logs
        try:
            for instruction in instructions:
                self._execute(instruction, signer_keys, logs)
        except Exception:
            self.accounts = snapshot
            raise
        for key in [key for key, account in self.accounts.items() if account.is_empty()]:
            del self.accounts[key]
        return logs

    def _execute(self, instruction: Instruction, signers: Set[Pubkey], logs: List[str]) -> None:
        program_id = instruction.program_id
        entrypoint = self.programs.get(program_id)
        if entrypoint is None:
            raise IncorrectProgramId(f"program {program_id} is not deployed")

        infos: List[AccountInfo] = []
        for meta in instruction.accounts:
            if meta.is_signer and meta.pubkey not in signers:
                raise MissingRequiredSignature(f"{meta.pubkey} did not sign the transaction")
            account = self.accounts.setdefault(meta.pubkey, Account())
            infos.append(AccountInfo(meta.pubkey, meta.is_signer, meta.is_writable, account))
        before = {info.key: info.account.copy() for info in infos}

        logs.append(f"Program {program_id} invoke [1]")
        ctx = InvokeContext(self, program_id, {info.key for info in infos if info.is_signer}, logs)
        try:
            entrypoint(program_id, infos, bytes(instruction.data), ctx)
            self._check_writes(program_id, infos, before, ctx.native_writes)
        except Exception as exc:
            logs.append(f"Program {program_id} failed: {exc}")
            raise
        logs.append(f"Program {program_id} success")

    @staticmethod
    def _check_writes(
        program_id: Pubkey,
        infos: Sequence[AccountInfo],
        before: Dict[Pubkey, Account],
        native_writes: Dict[Pubkey, Account],
    ) -> None:
        for info in infos:
            expected = native_writes.get(info.key, before[info.key])
            if info.account == expected:
                continue
            if not info.is_writable:
                raise InvalidArgument(f"instruction modified read-only account {info.key}")
            if expected.owner != program_id or expected.executable:
                raise IllegalOwner(f"program {program_id} modified account {info.key} it does not own")

    def warp(self, unix_timestamp: int) -> None:
        unix_timestamp = ensure_int(unix_timestamp, "unix_timestamp")
        if unix_timestamp < self.unix_timestamp:
            raise ValueError("clock cannot move backwards")
        self.unix_timestamp = unix_timestamp

    def airdrop(self, pubkey: Pubkey, lamports: int) -> None:
        lamports = ensure_unsigned(lamports, "lamports", 64)
        account = self.accounts.setdefault(pubkey, Account())
        if account.lamports + lamports > U64_MAX:
            raise Overflow("lamport balance overflows u64")
        account.lamports += lamports

    def _create_token_program_account(self, address: Pubkey, data: bytes) -> None:
        existing = self.accounts.get(address)
        if existing is not None and not existing.is_empty():
            raise AccountAlreadyInUse(f"{address} already exists")
        self.accounts[address] = Account(
            lamports=rent_exempt_minimum(len(data)),
            owner=TOKEN_PROGRAM,
            data=bytearray(data),
        )

    def _token_program_data(self, address: Pubkey) -> bytearray:
        account = self.accounts.get(address)
        if account is None:
            raise InvalidArgument(f"account {address} does not exist")
        if account.owner != TOKEN_PROGRAM:
            raise IllegalOwner(f"{address} is not owned by the token program")
        return account.data

    def create_mint(
        self,
        mint: Pubkey,
        authority: Pubkey,
        decimals: int = DEFAULT_DECIMALS,
        freeze_authority: Optional[Pubkey] = None,
    ) -> Pubkey:
        state = Mint(mint_authority=authority, decimals=decimals, freeze_authority=freeze_authority)
        self._create_token_program_account(mint, state.pack())
        return mint

    def create_token_account(
        self,
        address: Pubkey,
        mint: Pubkey,
        owner: Pubkey,
        delegate: Optional[Pubkey] = None,
        delegated_amount: int = 0,
        close_authority: Optional[Pubkey] = None,
    ) -> Pubkey:
        self.mint_info(mint)
        state = TokenAccount(
            mint=mint,
            owner=owner,
            delegate=delegate,
            delegated_amount=delegated_amount,
            close_authority=close_authority,
        )
        self._create_token_program_account(address, state.pack())
        return address

    def create_associated_token_account(self, owner: Pubkey, mint: Pubkey) -> Pubkey:
        return self.create_token_account(vault_address(owner, mint), mint, owner)

    def mint_to(self, mint: Pubkey, destination: Pubkey, amount: int) -> None:
        amount = ensure_unsigned(amount, "amount", 64)
        mint_state = self.mint_info(mint)
        account = self.token_account(destination)
        if account.mint != mint:
            raise InvalidArgument(f"{destination} does not hold mint {mint}")
        if mint_state.supply + amount > U64_MAX or account.amount + amount > U64_MAX:
            raise Overflow("mint supply overflows u64")
        mint_state.supply += amount
        account.amount += amount
        self._token_program_data(mint)[:] = mint_state.pack()
        self._token_program_data(destination)[:] = account.pack()

    def mint_info(self, address: Pubkey) -> Mint:
        return Mint.unpack(self._token_program_data(address))

    def token_account(self, address: Pubkey) -> TokenAccount:
        return TokenAccount.unpack(self._token_program_data(address))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "unix_timestamp": self.unix_timestamp,
            "accounts": {
                str(key): {
                    "lamports": account.lamports,
                    "owner": str(account.owner),
                    "data": base64.b64encode(bytes(account.data)).decode("ascii"),
                    "executable": account.executable,
                }
                for key, account in sorted(self.accounts.items(), key=lambda item: str(item[0]))
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Ledger":
        ledger = cls(unix_timestamp=int(data.get("unix_timestamp", 0)))
        accounts = data.get("accounts")
        if not isinstance(accounts, dict):
            raise ValueError("ledger file is missing an accounts table")
        for key, entry in accounts.items():
            ledger.accounts[Pubkey.from_string(key)] = Account(
                lamports=int(entry["lamports"]),
                owner=Pubkey.from_string(entry["owner"]),
                data=bytearray(base64.b64decode(entry.get("data", ""))),
                executable=bool(entry.get("executable", False)),
            )
        return ledger

    def save(self, path: str | Path) -> None:
        Path(path).write_text(json.dumps(self.to_dict(), indent=2) + "\n")

    @classmethod
    def load(cls, path: str | Path) -> "Ledger":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Ledger file not found: {path}")
        return cls.from_dict(json.loads(path.read_text()))
