# anchor/core/fingerprint.py
import re

from anchor.core.errors import ValidationError

PREFIX = "0x"
HEX_DIGITS = 64
CANONICAL_LENGTH = len(PREFIX) + HEX_DIGITS  # 66

_BYTES32_RE = re.compile(r"^0[xX][0-9a-fA-F]{64}$")


def _normalize_bytes32(value, what: str) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"Invalid {what}: expected a string")
    candidate = value.strip()
    if not _BYTES32_RE.match(candidate):
        raise ValidationError(
            f"Invalid {what}. Expected bytes32 hex ({PREFIX} + {HEX_DIGITS} hex characters)."
        )
    return PREFIX + candidate[2:].lower()


def normalize_fingerprint(value) -> str:
    """
    Trim, validate and canonicalize a caller-supplied digest.
    Returns '0x' + 64 lowercase hex digits; anything else raises ValidationError.
    """
    return _normalize_bytes32(value, "fingerprint")


def normalize_tx_ref(value) -> str:
    """Same rules as fingerprints: a transaction reference is a 32-byte hash."""
    return _normalize_bytes32(value, "submission reference")


def fingerprint_bytes(fingerprint: str) -> bytes:
    """Raw 32 bytes for an already-normalized fingerprint (ledger call argument)."""
    return bytes.fromhex(fingerprint[len(PREFIX):])
