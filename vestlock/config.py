"""Operator configuration (``vesting-config.toml``)."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import tomllib
except ImportError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]
import tomli_w

from .constants import (
    DEFAULT_DECIMALS,
    DEFAULT_EXECUTION_DATE,
    DEFAULT_LEDGER_NAME,
    DEFAULT_PAYER_PATH,
    DEFAULT_PROGRAM_ID,
    DEFAULT_RPC_URL,
    MONTHS_PER_YEAR,
)
from .schedule import Group, TierInfo
from .util import exact

TEAM_TIER = "team"
PRIVATE_TIERS = ("preseed", "seed", "private1", "private2")
TIER_NAMES = (TEAM_TIER,) + PRIVATE_TIERS

_DEFAULT_TIERS = {
    "preseed": (2.0, 0.02),
    "seed": (1.75, 0.04),
    "private1": (1.5, 0.06),
    "private2": (1.5, 0.08),
}


@dataclass
class TierConfig:
    vesting_period: float
    price: float


@dataclass
class VestingConfig:
    program_id: str = DEFAULT_PROGRAM_ID
    payer: str = DEFAULT_PAYER_PATH
    ledger: str = DEFAULT_LEDGER_NAME
    rpc_url: str = DEFAULT_RPC_URL
    mint: Optional[str] = None
    decimals: int = DEFAULT_DECIMALS
    execution_date: str = DEFAULT_EXECUTION_DATE
    team_vesting_period: float = 3.0
    tiers: Dict[str, TierConfig] = field(
        default_factory=lambda: {name: TierConfig(*values) for name, values in _DEFAULT_TIERS.items()}
    )
    path: Optional[Path] = None

    def resolve_path(self, value: str) -> Path:
        expanded = Path(value).expanduser()
        if expanded.is_absolute() or self.path is None:
            return expanded
        return (self.path.parent / expanded).resolve()

    def payer_path(self) -> Path:
        return self.resolve_path(self.payer)

    def ledger_path(self) -> Path:
        return self.resolve_path(self.ledger)

    def execution_timestamp(self) -> int:
        return parse_timestamp(self.execution_date)

    def tier_info(self, tier: str | int, amount: float | int | str) -> TierInfo:
        """Investor class, period count and token amount for ``tier``.

        ``amount`` is a token amount for the team tier and a USD amount for the
        private tiers, which is converted at the tier's price.
        """
        name = tier_name(tier)
        if name == TEAM_TIER:
            release_periods = self.team_vesting_period * MONTHS_PER_YEAR - MONTHS_PER_YEAR
            return TierInfo(group=Group.TEAM, release_periods=release_periods, amount=exact(amount))
        entry = self.tiers[name]
        return TierInfo(
            group=Group.PRIVATE,
            release_periods=entry.vesting_period * MONTHS_PER_YEAR,
            amount=exact(amount) / exact(entry.price),
        )

    def to_dict(self) -> Dict[str, Any]:
        token: Dict[str, Any] = {"decimals": self.decimals}
        if self.mint:
            token["mint"] = self.mint
        return {
            "cluster": {
                "program_id": self.program_id,
                "payer": self.payer,
                "ledger": self.ledger,
                "rpc_url": self.rpc_url,
            },
            "token": token,
            "vesting": {
                "execution_date": self.execution_date,
                "team_vesting_period": self.team_vesting_period,
            },
            "tiers": {
                name: {"vesting_period": entry.vesting_period, "price": entry.price}
                for name, entry in self.tiers.items()
            },
        }


def tier_name(tier: str | int) -> str:
    if isinstance(tier, int) and not isinstance(tier, bool):
        if 0 <= tier < len(TIER_NAMES):
            return TIER_NAMES[tier]
        raise ValueError(f"tier index must be 0..{len(TIER_NAMES) - 1}")
    value = str(tier).strip().lower()
    if value.isdigit():
        return tier_name(int(value))
    if value not in TIER_NAMES:
        raise ValueError(f"tier must be one of {', '.join(TIER_NAMES)}")
    return value


def parse_timestamp(value: str) -> int:
    """Unix seconds for an ISO date; naive values are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError as exc:
        raise ValueError(f"invalid date {value!r}: expected ISO format") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def _table(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name, {})
    if not isinstance(value, dict):
        raise ValueError(f"[{name}] must be a table")
    return value


def _number(table: Dict[str, Any], key: str, label: str, default: float) -> float:
    value = table.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{label}.{key} must be a number")
    if value <= 0:
        raise ValueError(f"{label}.{key} must be > 0")
    return float(value)


def _string(table: Dict[str, Any], key: str, label: str, default: Optional[str]) -> Optional[str]:
    value = table.get(key, default)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"{label}.{key} must be a string")
    return value


def config_from_dict(data: Dict[str, Any], path: Optional[Path] = None) -> VestingConfig:
    cluster = _table(data, "cluster")
    token = _table(data, "token")
    vesting = _table(data, "vesting")
    tiers_raw = _table(data, "tiers")

    decimals = token.get("decimals", DEFAULT_DECIMALS)
    if isinstance(decimals, bool) or not isinstance(decimals, int) or not 0 <= decimals <= 255:
        raise ValueError("token.decimals must be an integer in 0..255")

    tiers: Dict[str, TierConfig] = {}
    for name in PRIVATE_TIERS:
        entry = tiers_raw.get(name, {})
        if not isinstance(entry, dict):
            raise ValueError(f"[tiers.{name}] must be a table")
        default_period, default_price = _DEFAULT_TIERS[name]
        label = f"tiers.{name}"
        tiers[name] = TierConfig(
            vesting_period=_number(entry, "vesting_period", label, default_period),
            price=_number(entry, "price", label, default_price),
        )
    unknown = sorted(set(tiers_raw) - set(PRIVATE_TIERS))
    if unknown:
        raise ValueError(f"unknown tiers: {', '.join(unknown)}")

    config = VestingConfig(
        program_id=_string(cluster, "program_id", "cluster", DEFAULT_PROGRAM_ID),
        payer=_string(cluster, "payer", "cluster", DEFAULT_PAYER_PATH),
        ledger=_string(cluster, "ledger", "cluster", DEFAULT_LEDGER_NAME),
        rpc_url=_string(cluster, "rpc_url", "cluster", DEFAULT_RPC_URL),
        mint=_string(token, "mint", "token", None),
        decimals=decimals,
        execution_date=_string(vesting, "execution_date", "vesting", DEFAULT_EXECUTION_DATE),
        team_vesting_period=_number(vesting, "team_vesting_period", "vesting", 3.0),
        tiers=tiers,
        path=path,
    )
    config.execution_timestamp()
    return config


def load_config(path: str | Path) -> VestingConfig:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    return config_from_dict(tomllib.loads(config_path.read_text()), path=config_path)


def save_config(config: VestingConfig, path: str | Path) -> None:
    Path(path).write_bytes(tomli_w.dumps(config.to_dict()).encode())
