# anchor/core/errors.py
import re
from typing import Iterable, Union

DEFAULT_DETAIL_LIMIT = 400


class AnchorError(Exception):
    """Base class for every error raised by the anchoring client."""


class ValidationError(AnchorError):
    """Malformed caller input (fingerprint, submission reference). Never retried."""


class ConfigurationError(AnchorError):
    """Missing/invalid configuration or a network identity mismatch. Fatal, never retried."""


class TransientNetworkError(AnchorError):
    """Timeout, connection failure or RPC error. Safe for the caller to retry."""


class WriteRejectedError(AnchorError):
    """The ledger refused the write while simulating it (e.g. a reverting register)."""


def sanitize_error(
    err: Union[BaseException, str],
    secrets: Iterable[str] = (),
    limit: int = DEFAULT_DETAIL_LIMIT,
) -> str:
    """
    Caller-safe, single-line error text: secrets replaced, whitespace collapsed,
    length capped at `limit` characters.
    """
    if isinstance(err, BaseException):
        text = getattr(err, "message", None) or str(err) or err.__class__.__name__
    else:
        text = err
    text = str(text)

    for secret in secrets:
        if secret:
            text = text.replace(secret, "[redacted]")
            # keys are often echoed without their 0x prefix
            if secret.startswith("0x") and len(secret) > 2:
                text = text.replace(secret[2:], "[redacted]")

    text = re.sub(r"\s+", " ", text).strip()
    if len(text) > limit:
        text = text[: max(limit - 1, 0)] + "…"
    return text
