"""
Price oracle record: a timestamped scalar store.

The functional core decides freshness deterministically; the imperative shell
is responsible for supplying prices and timestamps.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from .errors import InvalidArgument, Unauthorized
from .fixed_point import I64, U64, U8, require_width


@dataclass(frozen=True)
class OracleRecord:
    price_feed: str
    oracle_authority: str
    update_frequency_seconds: int
    last_update_timestamp: int = 0
    current_price: int = 0
    bump: int = 0

    def __post_init__(self) -> None:
        require_width(self.update_frequency_seconds, I64, name="update_frequency_seconds")
        require_width(self.last_update_timestamp, I64, name="last_update_timestamp")
        require_width(self.current_price, U64, name="current_price")
        require_width(self.bump, U8, name="bump")
        if self.update_frequency_seconds <= 0:
            raise ValueError(
                f"update_frequency_seconds must be positive: {self.update_frequency_seconds}"
            )


def init_oracle(
    *,
    price_feed: str,
    oracle_authority: str,
    update_frequency_seconds: int,
    price: int,
    now: int,
    bump: int = 0,
) -> OracleRecord:
    """Create an oracle record holding ``price`` as of ``now``."""
    if update_frequency_seconds <= 0:
        raise InvalidArgument(f"update_frequency_seconds must be positive: {update_frequency_seconds}")
    return OracleRecord(
        price_feed=price_feed,
        oracle_authority=oracle_authority,
        update_frequency_seconds=update_frequency_seconds,
        last_update_timestamp=now,
        current_price=price,
        bump=bump,
    )


def update_price(record: OracleRecord, *, signer: str, price: int, now: int) -> OracleRecord:
    """Record a new price; only the oracle authority may write."""
    if signer != record.oracle_authority:
        raise Unauthorized("signer is not the oracle authority")
    if price <= 0:
        raise InvalidArgument(f"price must be positive: {price}")
    return replace(record, current_price=price, last_update_timestamp=max(now, record.last_update_timestamp))


def is_fresh(record: OracleRecord, now: int) -> bool:
    """Return True if the price is within one update interval of ``now``."""
    if record.last_update_timestamp > now:
        return False
    return (now - record.last_update_timestamp) <= record.update_frequency_seconds
