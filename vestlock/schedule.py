"""Vesting schedule generation.

Quantities are rounded down in display units on every period except the last,
which absorbs the accumulated remainder so the schedule sums to the deposit
exactly. All arithmetic is rational; no binary float rounding leaks into the
base-unit amounts.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from fractions import Fraction
from math import floor
from typing import List

from .constants import DEFAULT_DECIMALS, SECONDS_PER_DAY, SECONDS_PER_YEAR, U32_MAX, U64_MAX
from .state import Release
from .util import ensure_int, exact

PRIVATE_CLIFF_FRACTION = Fraction(1, 10)

_LONG_MONTHS = {1, 3, 5, 7, 8, 10, 12}


class Group(Enum):
    TEAM = "team"
    PRIVATE = "private"


@dataclass
class TierInfo:
    """Investor class plus the amount it vests."""

    group: Group
    release_periods: float
    amount: Fraction | float

    @property
    def period_count(self) -> int:
        return int(self.release_periods)


def is_leap(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def days_in_month(year: int, month: int) -> int:
    if month in _LONG_MONTHS:
        return 31
    if month == 2:
        return 29 if is_leap(year) else 28
    if month in (4, 6, 9, 11):
        return 30
    raise ValueError(f"month must be 1..12, got {month}")


def month_increment(timestamp: int) -> int:
    """Seconds from ``timestamp`` to the same time of day one calendar month on."""
    date = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return SECONDS_PER_DAY * days_in_month(date.year, date.month)


def release_timestamps(period_count: int, group: Group, start_time: int) -> List[int]:
    timestamps: List[int] = []
    timestamp = start_time
    increment = SECONDS_PER_YEAR if group is Group.TEAM else 0
    for _ in range(period_count):
        timestamp += increment
        increment = month_increment(timestamp)
        timestamps.append(timestamp)
    return timestamps


def release_quantities(
    amount: float | int | str,
    period_count: int,
    group: Group,
    decimals: int = DEFAULT_DECIMALS,
) -> List[int]:
    total = exact(amount)
    scale = 10**decimals
    target = floor(total * scale)

    quantities: List[int] = []
    if group is Group.PRIVATE and period_count > 1:
        quantities.append(floor(total * PRIVATE_CLIFF_FRACTION * scale))
        share = total * (1 - PRIVATE_CLIFF_FRACTION)
        effective = period_count - 1
    else:
        share = total
        effective = period_count

    per_period = share / effective
    while len(quantities) < period_count - 1:
        quantities.append(floor(per_period) * scale)

    last = per_period + (per_period - floor(per_period)) * (effective - 1)
    quantities.append(floor(last * scale))
    # Truncating earlier releases to base units can leave sub-unit dust; it lands here too.
    quantities[-1] += target - sum(quantities)
    return quantities


def generate_releases(
    amount: float | int | str,
    period_count: int,
    group: Group,
    start_time: int,
    decimals: int = DEFAULT_DECIMALS,
) -> List[Release]:
    period_count = ensure_int(period_count, "period_count")
    start_time = ensure_int(start_time, "start_time")
    if period_count < 1:
        raise ValueError("period_count must be >= 1")
    if exact(amount) <= 0:
        raise ValueError("amount must be > 0")
    if start_time < 0:
        raise ValueError("start_time must be >= 0")

    quantities = release_quantities(amount, period_count, group, decimals)
    if sum(quantities) > U64_MAX:
        raise ValueError("schedule total exceeds u64 base units")
    timestamps = release_timestamps(period_count, group, start_time)
    if timestamps[-1] > U32_MAX:
        raise ValueError("release timestamps must fit in u32")
    return [Release(timestamp=ts, quantity=qty) for ts, qty in zip(timestamps, quantities)]


def releases_for_tier(tier: TierInfo, start_time: int, decimals: int = DEFAULT_DECIMALS) -> List[Release]:
    return generate_releases(tier.amount, tier.period_count, tier.group, start_time, decimals)
