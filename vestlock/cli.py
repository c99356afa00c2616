"""CLI entrypoint for vestlock."""

from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from solana.rpc.api import Client
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .authority import canonical_address, new_vesting_seed, seed_bytes, vault_address
from .config import (
    TIER_NAMES,
    VestingConfig,
    load_config,
    parse_timestamp,
    save_config,
    tier_name,
)
from .constants import DEFAULT_CONFIG_NAME, LAMPORTS_PER_SOL
from .errors import VestingError
from .instruction import create, init, set_beneficiary, unlock
from .ledger import Ledger
from .processor import process_instruction
from .schedule import releases_for_tier
from .state import Release, VestingAccount
from .util import format_amount, ui_amount_to_amount

LOCALNET_AIRDROP_SOL = 100
DEFAULT_SUPPLY = 1_000_000_000


def _format_timestamp(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def _load_keypair(path: Path) -> Keypair:
    if not path.exists():
        raise FileNotFoundError(f"Keypair file not found: {path}")
    raw = json.loads(path.read_text())
    return Keypair.from_bytes(bytes(raw))


def _write_keypair(path: Path, keypair: Keypair) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(list(bytes(keypair))))


def _load(args: argparse.Namespace) -> VestingConfig:
    return load_config(args.config)


def _program_id(config: VestingConfig) -> Pubkey:
    return Pubkey.from_string(config.program_id)


def _open_ledger(config: VestingConfig) -> Ledger:
    ledger = Ledger.load(config.ledger_path())
    ledger.register_program(_program_id(config), process_instruction)
    return ledger


def _require_mint(config: VestingConfig) -> Pubkey:
    if not config.mint:
        raise ValueError("token.mint is not set; run `vestlock localnet init` or edit the config")
    return Pubkey.from_string(config.mint)


def _print_logs(args: argparse.Namespace, logs: List[str]) -> None:
    if getattr(args, "verbose", False):
        for line in logs:
            print(f"  {line}")


def _run(args: argparse.Namespace, ledger: Ledger, instructions, signers) -> List[str]:
    try:
        logs = ledger.process_transaction(instructions, signers)
    except VestingError:
        _print_logs(args, ledger.logs)
        raise
    _print_logs(args, logs)
    return logs


def _print_releases(releases: List[Release], decimals: int, now: Optional[int] = None) -> None:
    print(f"  {'#':>3}  {'release date':<23}  {'quantity':>24}")
    for idx, release in enumerate(releases):
        line = f"  {idx:>3}  {_format_timestamp(release.timestamp):<23}  {format_amount(release.quantity, decimals):>24}"
        if now is not None:
            if release.quantity == 0:
                line += "  unlocked"
            elif release.timestamp <= now:
                line += "  due"
        print(line)


def _cmd_config_init(args: argparse.Namespace) -> int:
    out_path = Path(args.out) if args.out else Path(args.config)
    if out_path.exists() and not args.force:
        raise ValueError(f"Config file already exists: {out_path} (use --force to overwrite)")
    config = VestingConfig()
    if args.program_id:
        config.program_id = args.program_id
    if args.mint:
        config.mint = args.mint
    save_config(config, out_path)
    print(f"Wrote config file: {out_path}")
    return 0


def _cmd_config_show(args: argparse.Namespace) -> int:
    config = _load(args)
    print(f"Config: {config.path}")
    print(f"Program: {config.program_id}")
    print(f"Payer: {config.payer_path()}")
    print(f"Ledger: {config.ledger_path()}")
    print(f"RPC: {config.rpc_url}")
    print(f"Mint: {config.mint or '<unset>'} (decimals {config.decimals})")
    print(f"Execution date: {config.execution_date}")
    print(f"Team vesting period: {config.team_vesting_period} years")
    for name, tier in config.tiers.items():
        print(f"Tier {name}: {tier.vesting_period} years at {tier.price} USD")
    return 0


def _cmd_schedule(args: argparse.Namespace) -> int:
    config = _load(args)
    start = parse_timestamp(args.start) if args.start else config.execution_timestamp()
    tier = config.tier_info(args.tier, args.amount)
    releases = releases_for_tier(tier, start, config.decimals)
    total = sum(release.quantity for release in releases)
    print(f"Tier: {tier_name(args.tier)} ({tier.group.value})")
    print(f"Releases: {len(releases)}")
    print(f"Total: {format_amount(total, config.decimals)}")
    _print_releases(releases, config.decimals)
    return 0


def _cmd_localnet_init(args: argparse.Namespace) -> int:
    config = _load(args)
    ledger_path = config.ledger_path()
    if ledger_path.exists() and not args.force:
        raise ValueError(f"Ledger file already exists: {ledger_path} (use --force to overwrite)")

    payer_path = config.payer_path()
    if payer_path.exists():
        payer = _load_keypair(payer_path)
    else:
        payer = Keypair()
        _write_keypair(payer_path, payer)
        print(f"Wrote payer keypair: {payer_path}")

    ledger = Ledger(unix_timestamp=config.execution_timestamp())
    ledger.register_program(_program_id(config), process_instruction)
    ledger.airdrop(payer.pubkey(), LOCALNET_AIRDROP_SOL * LAMPORTS_PER_SOL)

    mint = Pubkey.from_string(config.mint) if config.mint else Keypair().pubkey()
    ledger.create_mint(mint, payer.pubkey(), config.decimals)
    funding = ledger.create_associated_token_account(payer.pubkey(), mint)
    ledger.mint_to(mint, funding, ui_amount_to_amount(args.supply, config.decimals))
    ledger.save(ledger_path)

    if config.mint != str(mint):
        config.mint = str(mint)
        save_config(config, config.path)
    print(f"Wrote ledger file: {ledger_path}")
    print(f"Payer: {payer.pubkey()}")
    print(f"Mint: {mint}")
    print(f"Payer token account: {funding} ({format_amount(ledger.token_account(funding).amount, config.decimals)})")
    print(f"Clock: {_format_timestamp(ledger.unix_timestamp)}")
    return 0


def _cmd_localnet_warp(args: argparse.Namespace) -> int:
    config = _load(args)
    ledger = _open_ledger(config)
    ledger.warp(parse_timestamp(args.date))
    ledger.save(config.ledger_path())
    print(f"Clock: {_format_timestamp(ledger.unix_timestamp)}")
    return 0


def _cmd_create(args: argparse.Namespace) -> int:
    config = _load(args)
    ledger = _open_ledger(config)
    payer = _load_keypair(config.payer_path())
    program_id = _program_id(config)
    mint = _require_mint(config)
    beneficiary = Pubkey.from_string(args.beneficiary)

    start = parse_timestamp(args.start) if args.start else config.execution_timestamp()
    tier = config.tier_info(args.tier, args.amount)
    releases = releases_for_tier(tier, start, config.decimals)

    seed, vesting = new_vesting_seed(program_id, exists=lambda key: ledger.get_account(key) is not None)
    # Created outside the transaction; the ledger is only saved if the transaction succeeds.
    vault = ledger.create_associated_token_account(vesting, mint)
    funding = vault_address(payer.pubkey(), mint)
    _run(
        args,
        ledger,
        [
            init(program_id, payer.pubkey(), vesting, seed, len(releases)),
            create(program_id, payer.pubkey(), funding, vesting, vault, seed, mint, beneficiary, releases),
        ],
        [payer],
    )
    ledger.save(config.ledger_path())

    total = sum(release.quantity for release in releases)
    print(f"Seed: {seed.hex()}")
    print(f"Vesting account: {vesting}")
    print(f"Vault: {vault}")
    print(f"Tokens vested: {format_amount(total, config.decimals)}")
    print(f"Beneficiary: {beneficiary}")
    return 0


def _read_vesting(ledger: Ledger, vesting: Pubkey, program_id: Pubkey) -> VestingAccount:
    account = ledger.get_account(vesting)
    if account is None:
        raise ValueError(f"Vesting account not found: {vesting}")
    if account.owner != program_id:
        raise ValueError(f"{vesting} is not owned by the vesting program")
    return VestingAccount.unpack(bytes(account.data))


def _cmd_unlock(args: argparse.Namespace) -> int:
    config = _load(args)
    ledger = _open_ledger(config)
    payer = _load_keypair(config.payer_path())
    program_id = _program_id(config)
    seed = seed_bytes(args.seed)
    vesting = canonical_address(seed, program_id)
    header = _read_vesting(ledger, vesting, program_id).header

    destination = vault_address(header.beneficiary, header.mint)
    # Same as in create: a failed unlock leaves the saved ledger untouched.
    if ledger.get_account(destination) is None:
        ledger.create_associated_token_account(header.beneficiary, header.mint)
    before = ledger.token_account(destination).amount
    amount = ui_amount_to_amount(args.amount, config.decimals) if args.amount else 0
    _run(
        args,
        ledger,
        [unlock(program_id, vesting, header.vault, header.beneficiary, destination, seed, amount)],
        [payer],
    )
    ledger.save(config.ledger_path())
    unlocked = ledger.token_account(destination).amount - before
    print(f"Unlocked: {format_amount(unlocked, config.decimals)}")
    print(f"Beneficiary token account: {destination}")
    return 0


def _cmd_set_beneficiary(args: argparse.Namespace) -> int:
    config = _load(args)
    ledger = _open_ledger(config)
    payer = _load_keypair(config.payer_path())
    program_id = _program_id(config)
    seed = seed_bytes(args.seed)
    vesting = canonical_address(seed, program_id)
    new_beneficiary = Pubkey.from_string(args.beneficiary)
    _run(args, ledger, [set_beneficiary(program_id, payer.pubkey(), vesting, seed, new_beneficiary)], [payer])
    ledger.save(config.ledger_path())
    print(f"Beneficiary: {new_beneficiary}")
    return 0


def _cmd_info(args: argparse.Namespace) -> int:
    config = _load(args)
    program_id = _program_id(config)
    seed = seed_bytes(args.seed)
    vesting = canonical_address(seed, program_id)
    if args.rpc_url:
        value = Client(args.rpc_url).get_account_info(vesting).value
        if value is None:
            raise ValueError(f"Vesting account not found: {vesting}")
        if value.owner != program_id:
            raise ValueError(f"{vesting} is not owned by the vesting program")
        state = VestingAccount.unpack(bytes(value.data))
        now = None
    else:
        ledger = _open_ledger(config)
        state = _read_vesting(ledger, vesting, program_id)
        now = ledger.unix_timestamp

    header = state.header
    decimals = config.decimals
    print(f"Vesting account: {vesting}")
    print(f"Seed: {seed.hex()}")
    print(f"Initialized: {'yes' if header.is_initialized else 'no'}")
    if header.is_initialized:
        print(f"Authority: {header.authority}")
        print(f"Beneficiary: {header.beneficiary}")
        print(f"Vault: {header.vault}")
        print(f"Mint: {header.mint}")
        print(f"Grantor: {header.grantor}")
        print(f"Outstanding: {format_amount(header.outstanding, decimals)}")
        print(f"Start balance: {format_amount(header.start_balance, decimals)}")
        print(f"Created: {_format_timestamp(header.created_ts)}")
        print(f"Start: {_format_timestamp(header.start_ts)}")
        print(f"End: {_format_timestamp(header.end_ts)}")
    print(f"Releases: {state.slot_count}")
    if header.is_initialized:
        _print_releases(state.releases, decimals, now)
    return 0


def _cmd_derive(args: argparse.Namespace) -> int:
    config = _load(args)
    vesting = canonical_address(args.seed, _program_id(config))
    print(f"Vesting account: {vesting}")
    if config.mint:
        print(f"Vault: {vault_address(vesting, Pubkey.from_string(config.mint))}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog=os.path.basename(sys.argv[0]))
    parser.add_argument("--config", default=DEFAULT_CONFIG_NAME, help="Path to vesting-config.toml")
    parser.add_argument("--verbose", action="store_true", help="Print program logs")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_config = sub.add_parser("config", help="Manage the vesting config")
    p_config_sub = p_config.add_subparsers(dest="config_cmd", required=True)
    p_config_init = p_config_sub.add_parser("init", help="Write a default vesting-config.toml")
    p_config_init.add_argument("--out", help="Output path (defaults to --config)")
    p_config_init.add_argument("--program-id", help="Vesting program ID")
    p_config_init.add_argument("--mint", help="Token mint address")
    p_config_init.add_argument("--force", action="store_true", help="Overwrite an existing file")
    p_config_init.set_defaults(func=_cmd_config_init)
    p_config_show = p_config_sub.add_parser("show", help="Print the resolved config")
    p_config_show.set_defaults(func=_cmd_config_show)

    p_schedule = sub.add_parser("schedule", help="Print the release schedule for a tier")
    p_schedule.add_argument("tier", help=f"Investor tier ({', '.join(TIER_NAMES)} or 0-4)")
    p_schedule.add_argument("amount", help="Token amount (team) or USD amount (private tiers)")
    p_schedule.add_argument("--start", help="Start date (ISO, UTC); defaults to vesting.execution_date")
    p_schedule.set_defaults(func=_cmd_schedule)

    p_localnet = sub.add_parser("localnet", help="Manage the local ledger")
    p_localnet_sub = p_localnet.add_subparsers(dest="localnet_cmd", required=True)
    p_localnet_init = p_localnet_sub.add_parser("init", help="Create a ledger with a mint and funded payer")
    p_localnet_init.add_argument("--supply", default=str(DEFAULT_SUPPLY), help="Tokens minted to the payer")
    p_localnet_init.add_argument("--force", action="store_true", help="Overwrite an existing ledger")
    p_localnet_init.set_defaults(func=_cmd_localnet_init)
    p_localnet_warp = p_localnet_sub.add_parser("warp", help="Move the ledger clock forward")
    p_localnet_warp.add_argument("date", help="New clock time (ISO, UTC)")
    p_localnet_warp.set_defaults(func=_cmd_localnet_warp)

    p_create = sub.add_parser("create", help="Create and fund a vesting account")
    p_create.add_argument("beneficiary", help="Beneficiary wallet address")
    p_create.add_argument("tier", help=f"Investor tier ({', '.join(TIER_NAMES)} or 0-4)")
    p_create.add_argument("amount", help="Token amount (team) or USD amount (private tiers)")
    p_create.add_argument("--start", help="Start date (ISO, UTC); defaults to vesting.execution_date")
    p_create.set_defaults(func=_cmd_create)

    p_unlock = sub.add_parser("unlock", help="Release every due installment to the beneficiary")
    p_unlock.add_argument("seed", help="Vesting seed (hex)")
    p_unlock.add_argument("--amount", help="Unlock at most this many tokens")
    p_unlock.set_defaults(func=_cmd_unlock)

    p_set_beneficiary = sub.add_parser("set-beneficiary", help="Point a vesting account at a new beneficiary")
    p_set_beneficiary.add_argument("seed", help="Vesting seed (hex)")
    p_set_beneficiary.add_argument("beneficiary", help="New beneficiary wallet address")
    p_set_beneficiary.set_defaults(func=_cmd_set_beneficiary)

    p_info = sub.add_parser("info", help="Decode and print a vesting account")
    p_info.add_argument("seed", help="Vesting seed (hex)")
    p_info.add_argument("--rpc-url", help="Read from a cluster instead of the local ledger")
    p_info.set_defaults(func=_cmd_info)

    p_derive = sub.add_parser("derive", help="Print the vesting and vault addresses for a seed")
    p_derive.add_argument("seed", help="Vesting seed (hex)")
    p_derive.set_defaults(func=_cmd_derive)

    args = parser.parse_args(argv)
    try:
        return args.func(args)
    except FileNotFoundError as exc:
        print(str(exc))
        return 1
    except (VestingError, ValueError) as exc:
        print(str(exc))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
