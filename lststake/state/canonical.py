"""
Deterministic byte-level primitives shared by address derivation, record
layout and instruction signing.
"""

from __future__ import annotations

import re
from typing import Optional


PUBKEY_NBYTES = 48  # BLS12-381 G1 public key
ADDRESS_NBYTES = 32
SIGNATURE_NBYTES = 96

_HEX_CHARS_RE = re.compile(r"^[0-9a-fA-F]*$")


def domain_sep_bytes(label: str, version: int = 1) -> bytes:
    """Prefix ``b"lststake:<label>:v<version>\\x00"`` for hashed preimages.

    ``label`` names the hash's purpose: ``"address"`` for derived record
    addresses, ``"lststake_ix_sig:<chain_id>"`` for instruction signatures.
    Distinct labels keep an address preimage from ever hashing like a signed
    instruction.
    """
    if not isinstance(label, str) or not label:
        raise TypeError("label must be a non-empty str")
    if "\x00" in label:
        raise ValueError("label must not contain NUL")
    try:
        label_bytes = label.encode("ascii")
    except UnicodeEncodeError as exc:
        raise ValueError("label must be ASCII") from exc
    if not isinstance(version, int) or isinstance(version, bool) or version <= 0:
        raise ValueError("version must be a positive int")
    return b"lststake:" + label_bytes + b":v" + str(version).encode("ascii") + b"\x00"


def hex_to_bytes(hex_str: str, *, name: str, expected_nbytes: Optional[int] = None) -> bytes:
    """Decode a ``0x``-prefixed (or bare) hex string, fail-closed on malformed input."""
    if not isinstance(hex_str, str):
        raise TypeError(f"{name} must be a string")
    s = hex_str[2:] if hex_str.startswith(("0x", "0X")) else hex_str
    if len(s) % 2 != 0 or not _HEX_CHARS_RE.match(s):
        raise ValueError(f"{name} must be hex")
    raw = bytes.fromhex(s)
    if expected_nbytes is not None and len(raw) != expected_nbytes:
        raise ValueError(f"{name} must be {expected_nbytes} bytes, got {len(raw)}")
    return raw


def bytes_to_hex(raw: bytes) -> str:
    return "0x" + raw.hex()


def is_pubkey_hex(value: object) -> bool:
    if not isinstance(value, str):
        return False
    try:
        hex_to_bytes(value, name="pubkey", expected_nbytes=PUBKEY_NBYTES)
    except ValueError:
        return False
    return True
