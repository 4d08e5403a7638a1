"""
Deterministic record addresses.

``derive_address(seeds, program_id)`` hashes the domain prefix, every seed
(length-prefixed), a one-byte nonce and the program id. Nonces are tried from
255 downwards and the first candidate whose leading byte is non-zero wins, so
the returned ``(address, nonce)`` pair is unique for a given seed list.

Callers supply record addresses by reference; ``verify_address`` re-derives the
expected address and rejects any mismatch before the record is trusted.
"""

from __future__ import annotations

import hashlib
from typing import Sequence, Tuple, Union

from ..core.errors import AddressMismatch, InvalidArgument
from .canonical import bytes_to_hex, domain_sep_bytes, hex_to_bytes

DEFAULT_PROGRAM_ID = "0x" + "5a" * 32

MAX_SEEDS = 16
MAX_SEED_LEN = 64

Seed = Union[bytes, str]  # raw bytes, or hex key/address


def _seed_bytes(seed: Seed) -> bytes:
    if isinstance(seed, (bytes, bytearray)):
        raw = bytes(seed)
    elif isinstance(seed, str):
        raw = hex_to_bytes(seed, name="seed")
    else:
        raise TypeError(f"seed must be bytes or hex str, got {type(seed).__name__}")
    if len(raw) > MAX_SEED_LEN:
        raise InvalidArgument(f"seed too long: {len(raw)} > {MAX_SEED_LEN}")
    return raw


def derive_address(seeds: Sequence[Seed], program_id: str = DEFAULT_PROGRAM_ID) -> Tuple[str, int]:
    """Return ``(address_hex, nonce)`` for ``seeds`` under ``program_id``."""
    if len(seeds) > MAX_SEEDS:
        raise InvalidArgument(f"too many seeds: {len(seeds)} > {MAX_SEEDS}")
    prefix = bytearray(domain_sep_bytes("address"))
    for seed in seeds:
        raw = _seed_bytes(seed)
        prefix += bytes([len(raw)]) + raw
    program = hex_to_bytes(program_id, name="program_id")
    for nonce in range(255, -1, -1):
        digest = hashlib.sha256(bytes(prefix) + bytes([nonce]) + program).digest()
        if digest[0] != 0:
            return bytes_to_hex(digest), nonce
    raise InvalidArgument("no valid address for seeds")  # pragma: no cover


def verify_address(expected: str, seeds: Sequence[Seed], program_id: str = DEFAULT_PROGRAM_ID) -> int:
    """Return the nonce if ``expected`` is the derived address for ``seeds``.

    Raises:
        AddressMismatch: ``expected`` is not the derived address.
    """
    derived, nonce = derive_address(seeds, program_id)
    if not isinstance(expected, str) or expected.lower() != derived:
        raise AddressMismatch(f"address mismatch: supplied {expected}, derived {derived}")
    return nonce


def _u64_le(value: int) -> bytes:
    return int(value).to_bytes(8, "little")


# -- Per-record seed lists ---------------------------------------------------

def global_config_seeds(authority: str) -> list:
    return [b"global_config_account", authority]


def treasury_seeds(authority: str) -> list:
    return [b"treasury_account", authority]


def staking_pool_seeds(creator: str, pool_id: int) -> list:
    return [b"staking_pool", creator, _u64_le(pool_id)]


def stake_vault_seeds(stake_asset: str, global_config: str) -> list:
    return [b"stake_token_vault", stake_asset, global_config]


def reward_vault_seeds(reward_asset: str, global_config: str) -> list:
    return [b"reward_token_vault", reward_asset, global_config]


def lst_asset_seeds(creator: str, pool_id: int) -> list:
    return [b"liquid_stake_mint", creator, _u64_le(pool_id)]


def user_ledger_seeds(user: str, global_config: str) -> list:
    return [b"user_stake_account", user, global_config]


def oracle_seeds(oracle_authority: str) -> list:
    return [b"oracle_config_account", oracle_authority]
