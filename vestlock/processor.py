"""Vesting program entrypoint and instruction handlers.

Handlers that touch an existing vesting account receive it decoded as a
:class:`~vestlock.state.VestingAccount`, return the updated state, and the
entrypoint writes it back through the codec. Any raised error aborts the
transaction.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Sequence, Tuple

from solders.pubkey import Pubkey

from .authority import TOKEN_PROGRAM, require_canonical, vault_address
from .errors import (
    AccountAlreadyInitialized,
    IllegalOwner,
    IncorrectProgramId,
    InsufficientFunds,
    InvalidArgument,
    InvalidDepositAmount,
    InvalidPeriod,
    InvalidSchedule,
    InvalidSeeds,
    InvalidVaultAmount,
    InvalidVaultOwner,
    MissingRequiredSignature,
    NoEligibleRelease,
    NotEnoughAccountKeys,
    UninitializedAccount,
    Unauthorized,
)
from .instruction import SYSTEM_PROGRAM, Create, Init, SetBeneficiary, Unlock, VestingInstruction, unpack
from .ledger import AccountInfo, InvokeContext
from .state import VestingAccount, VestingHeader, vesting_account_size
from .token import TokenAccount


def _take(accounts: Sequence[AccountInfo], count: int) -> List[AccountInfo]:
    if len(accounts) < count:
        raise NotEnoughAccountKeys(f"expected {count} accounts, got {len(accounts)}")
    return list(accounts[:count])


def _require_token_program(token_program: AccountInfo) -> None:
    if token_program.key != TOKEN_PROGRAM:
        raise IncorrectProgramId(f"expected token program, got {token_program.key}")


def _token_account(info: AccountInfo, label: str) -> TokenAccount:
    if info.owner != TOKEN_PROGRAM:
        raise IllegalOwner(f"{label} {info.key} is not owned by the token program")
    return TokenAccount.unpack(info.data)


def _load_vesting(program_id: Pubkey, vesting: AccountInfo, seed: bytes) -> VestingAccount:
    require_canonical(vesting.key, seed, program_id)
    if vesting.owner != program_id:
        raise IllegalOwner("vesting program must own the vesting account")
    return VestingAccount.unpack(vesting.data)


def _process_init(program_id: Pubkey, accounts: Sequence[AccountInfo], ix: Init, ctx: InvokeContext) -> None:
    ctx.log("Instruction: Initialize Accounts")
    payer, vesting, system_program = _take(accounts, 3)
    if not payer.is_signer:
        raise MissingRequiredSignature("payer must sign")
    if system_program.key != SYSTEM_PROGRAM:
        raise IncorrectProgramId(f"expected system program, got {system_program.key}")
    require_canonical(vesting.key, ix.seed, program_id)
    if ix.period_count < 1:
        raise InvalidPeriod()

    size = vesting_account_size(ix.period_count)
    ctx.allocate(payer, vesting, size, program_id, signer_seeds=[ix.seed])
    ctx.log(f"Allocated {size} bytes for {ix.period_count} releases")


def _process_create(
    program_id: Pubkey,
    accounts: Sequence[AccountInfo],
    ix: Create,
    state: VestingAccount,
    ctx: InvokeContext,
) -> VestingAccount:
    ctx.log("Instruction: Create Vesting Contract")
    authority, funding, vesting, vault, token_program = _take(accounts, 5)
    if not authority.is_signer:
        raise MissingRequiredSignature("authority must sign")
    _require_token_program(token_program)
    if state.header.is_initialized:
        raise AccountAlreadyInitialized()
    ix.validate()
    if state.slot_count != ix.period_count:
        raise InvalidSchedule(f"account holds {state.slot_count} release slots, schedule has {ix.period_count}")

    vault_state = _token_account(vault, "vault")
    if vault_state.owner != vesting.key:
        raise InvalidVaultOwner("vault is not owned by the vesting account")
    if vault.key != vault_address(vesting.key, ix.mint):
        raise InvalidSeeds("vault is not the vesting account's associated token account")
    if vault_state.delegate is not None:
        raise InvalidVaultAmount("vault must not have a delegate")
    if vault_state.close_authority is not None:
        raise InvalidVaultAmount("vault must not have a close authority")
    if vault_state.amount != 0:
        raise InvalidVaultAmount("vault balance must be zero")
    if vault_state.mint != ix.mint:
        raise InvalidArgument("vault mint does not match the schedule mint")

    funding_state = _token_account(funding, "funding account")
    if funding_state.mint != ix.mint:
        raise InvalidArgument("funding account mint does not match the schedule mint")
    total = ix.total()
    if total == 0:
        raise InvalidDepositAmount()
    if funding_state.amount < total:
        raise InsufficientFunds("funding account has insufficient funds")

    state.header = VestingHeader(
        is_initialized=True,
        authority=authority.key,
        beneficiary=ix.beneficiary,
        vault=vault.key,
        mint=ix.mint,
        grantor=funding_state.owner,
        outstanding=total,
        start_balance=total,
        created_ts=ctx.clock(),
        start_ts=ix.start_ts,
        end_ts=ix.end_ts,
        period_count=ix.period_count,
        nonce=ix.nonce,
    )
    state.releases = list(ix.releases)
    ctx.transfer(funding, vault, authority.key, total)
    ctx.log(f"Locked {total} base units in {ix.period_count} releases")
    return state


def _process_unlock(
    program_id: Pubkey,
    accounts: Sequence[AccountInfo],
    ix: Unlock,
    state: VestingAccount,
    ctx: InvokeContext,
) -> VestingAccount:
    ctx.log("Instruction: Unlock Tokens")
    vesting, vault, beneficiary, beneficiary_token, token_program = _take(accounts, 5)
    _require_token_program(token_program)
    header = state.header
    if not header.is_initialized:
        raise UninitializedAccount()
    if header.beneficiary != beneficiary.key:
        raise InvalidArgument("beneficiary does not match the vesting account")
    if header.vault != vault.key:
        raise InvalidArgument("vault does not match the vesting account")
    if _token_account(vault, "vault").owner != vesting.key:
        raise InvalidVaultOwner("vault is not owned by the vesting account")
    destination = _token_account(beneficiary_token, "beneficiary token account")
    if destination.owner != header.beneficiary or destination.mint != header.mint:
        raise InvalidArgument("destination is not a beneficiary token account for the vesting mint")

    due = state.due(ctx.clock())
    if not due:
        raise NoEligibleRelease()
    unlocked = 0
    for idx in due:
        quantity = state.releases[idx].quantity
        if ix.amount and unlocked + quantity > ix.amount:
            break
        unlocked += quantity
        state.releases[idx] = state.releases[idx].consumed()
    if unlocked == 0:
        raise NoEligibleRelease(f"no due release fits within {ix.amount} base units")

    ctx.transfer(vault, beneficiary_token, vesting.key, unlocked, signer_seeds=[ix.seed])
    header.outstanding -= unlocked
    ctx.log(f"Unlocked {unlocked} base units, {header.outstanding} outstanding")
    return state


def _process_set_beneficiary(
    program_id: Pubkey,
    accounts: Sequence[AccountInfo],
    ix: SetBeneficiary,
    state: VestingAccount,
    ctx: InvokeContext,
) -> VestingAccount:
    ctx.log("Instruction: Set Beneficiary")
    authority, _vesting = _take(accounts, 2)
    if not state.header.is_initialized:
        raise UninitializedAccount()
    if not authority.is_signer:
        raise MissingRequiredSignature("authority must sign")
    if authority.key != state.header.authority:
        raise Unauthorized()
    state.header.beneficiary = ix.new_beneficiary
    ctx.log(f"Beneficiary set to {ix.new_beneficiary}")
    return state


StateHandler = Callable[
    [Pubkey, Sequence[AccountInfo], VestingInstruction, VestingAccount, InvokeContext],
    VestingAccount,
]

# Position of the vesting account in each handler's account list.
_STATE_HANDLERS: Dict[type, Tuple[StateHandler, int]] = {
    Create: (_process_create, 2),
    Unlock: (_process_unlock, 0),
    SetBeneficiary: (_process_set_beneficiary, 1),
}


def process_instruction(
    program_id: Pubkey,
    accounts: Sequence[AccountInfo],
    data: bytes,
    ctx: InvokeContext,
) -> None:
    ctx.log("Entrypoint: Vesting")
    instruction = unpack(data)
    if isinstance(instruction, Init):
        _process_init(program_id, accounts, instruction, ctx)
        return

    handler, position = _STATE_HANDLERS[type(instruction)]
    vesting = _take(accounts, position + 1)[position]
    state = _load_vesting(program_id, vesting, instruction.seed)
    state = handler(program_id, accounts, instruction, state, ctx)
    state.pack_into(vesting.data)
