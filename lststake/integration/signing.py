"""
BLS12-381 instruction signatures (py_ecc ``G2Basic``).

The signer signs ``SHA256(domain_sep("lststake_ix_sig:<chain_id>", v1) || instruction_bytes)``.
Signatures from one chain id do not verify on another.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Optional, Tuple

from py_ecc.bls import G2Basic

from ..state.canonical import PUBKEY_NBYTES, SIGNATURE_NBYTES, domain_sep_bytes, hex_to_bytes

logger = logging.getLogger(__name__)


def instruction_message_hash(instruction_bytes: bytes, *, chain_id: str) -> bytes:
    msg = domain_sep_bytes(f"lststake_ix_sig:{chain_id}", version=1) + bytes(instruction_bytes)
    return hashlib.sha256(msg).digest()


def sign_instruction(secret_key: int, instruction_bytes: bytes, *, chain_id: str) -> str:
    """Return the ``0x``-hex signature of ``instruction_bytes`` under ``secret_key``."""
    if not isinstance(secret_key, int) or isinstance(secret_key, bool) or secret_key <= 0:
        raise ValueError("secret_key must be a positive int")
    sig = G2Basic.Sign(secret_key, instruction_message_hash(instruction_bytes, chain_id=chain_id))
    return "0x" + sig.hex()


def pubkey_hex_from_secret(secret_key: int) -> str:
    return "0x" + G2Basic.SkToPk(secret_key).hex()


def verify_instruction_signature(
    *, signer_pubkey_hex: str, signature_hex: str, instruction_bytes: bytes, chain_id: str
) -> Tuple[bool, Optional[str]]:
    """Return ``(ok, error)``; malformed keys or signatures verify as False."""
    try:
        pubkey_bytes = hex_to_bytes(signer_pubkey_hex, name="signer_pubkey", expected_nbytes=PUBKEY_NBYTES)
        sig_bytes = hex_to_bytes(signature_hex, name="signature", expected_nbytes=SIGNATURE_NBYTES)
    except (TypeError, ValueError) as exc:
        return False, f"malformed signature input: {exc}"

    msg_hash = instruction_message_hash(instruction_bytes, chain_id=chain_id)
    try:
        ok = bool(G2Basic.Verify(pubkey_bytes, msg_hash, sig_bytes))
    except Exception as exc:  # py_ecc raises assorted errors on invalid curve points
        logger.warning("signature verification error for %s: %s", signer_pubkey_hex, exc)
        return False, f"signature verification error: {exc}"
    if not ok:
        return False, "invalid instruction signature"
    return True, None
