# anchor/config.py
"""
Runtime configuration, resolved in this order:
1. explicit overrides (CLI flags)
2. ANCHOR_* environment variables
3. defaults
"""

import os
import re
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from typing import Mapping, Optional, Tuple

from anchor.core.errors import ConfigurationError
from anchor.core.units import gwei_to_wei

DEFAULT_CHAIN_ID = 80002            # Polygon Amoy
DEFAULT_MAX_FEE_GWEI = "600"
DEFAULT_MAX_PRIORITY_FEE_GWEI = "20"
DEFAULT_MIN_PRIORITY_FEE_GWEI = "1"
DEFAULT_RPC_TIMEOUT_MS = 20_000
MAX_RPC_TIMEOUT_MS = 60_000
DEFAULT_RECEIPT_TIMEOUT_S = 60.0
DEFAULT_POLL_ATTEMPTS = 3
DEFAULT_POLL_DELAY_MS = 800
DEFAULT_RATE_LIMIT_MAX = 40
DEFAULT_RATE_LIMIT_WINDOW_S = 60.0

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


@dataclass(frozen=True)
class FeeConfig:
    """Fee bounds as decimal gwei strings; converted to wei without floats."""
    cap_gwei: str = DEFAULT_MAX_FEE_GWEI
    tip_cap_gwei: str = DEFAULT_MAX_PRIORITY_FEE_GWEI
    min_tip_gwei: str = DEFAULT_MIN_PRIORITY_FEE_GWEI

    @property
    def cap_wei(self) -> int:
        return gwei_to_wei(self.cap_gwei)

    @property
    def tip_cap_wei(self) -> int:
        return gwei_to_wei(self.tip_cap_gwei)

    @property
    def min_tip_wei(self) -> int:
        return gwei_to_wei(self.min_tip_gwei)

    def validate(self) -> None:
        for name in ("cap_gwei", "tip_cap_gwei", "min_tip_gwei"):
            raw = getattr(self, name)
            try:
                wei = gwei_to_wei(raw)
            except ValueError:
                raise ConfigurationError(f"Fee bound {name} is not a decimal amount: {raw!r}")
            if wei <= 0:
                raise ConfigurationError(f"Fee bound {name} must be positive (got {raw!r})")


@dataclass(frozen=True)
class AnchorConfig:
    rpc_url: str = ""
    contract_address: str = ""
    private_key: str = field(default="", repr=False)
    chain_id: int = DEFAULT_CHAIN_ID
    contract_shape: str = "flagged"
    read_function: Optional[str] = None
    write_function: Optional[str] = None
    fees: FeeConfig = field(default_factory=FeeConfig)
    rpc_timeout_ms: int = DEFAULT_RPC_TIMEOUT_MS
    receipt_timeout_s: float = DEFAULT_RECEIPT_TIMEOUT_S
    poll_attempts: int = DEFAULT_POLL_ATTEMPTS
    poll_delay_ms: int = DEFAULT_POLL_DELAY_MS
    allowed_origins: Tuple[str, ...] = ()
    rate_limit_uri: str = "memory:"
    rate_limit_max: int = DEFAULT_RATE_LIMIT_MAX
    rate_limit_window_s: float = DEFAULT_RATE_LIMIT_WINDOW_S
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "AnchorConfig":
        env = os.environ if environ is None else environ

        def get(name: str, default: str = "") -> str:
            return str(env.get(name, default) or default).strip()

        origins = tuple(o.strip() for o in get("ANCHOR_ALLOWED_ORIGINS").split(",") if o.strip())

        config = cls(
            rpc_url=get("ANCHOR_RPC_URL"),
            contract_address=get("ANCHOR_CONTRACT_ADDRESS"),
            private_key=get("ANCHOR_PRIVATE_KEY"),
            chain_id=_parse_int("ANCHOR_CHAIN_ID", get("ANCHOR_CHAIN_ID"), DEFAULT_CHAIN_ID),
            contract_shape=get("ANCHOR_CONTRACT_SHAPE", "flagged").lower(),
            read_function=get("ANCHOR_READ_FUNCTION") or None,
            write_function=get("ANCHOR_WRITE_FUNCTION") or None,
            fees=FeeConfig(
                cap_gwei=get("ANCHOR_MAX_FEE_GWEI", DEFAULT_MAX_FEE_GWEI),
                tip_cap_gwei=get("ANCHOR_MAX_PRIORITY_FEE_GWEI", DEFAULT_MAX_PRIORITY_FEE_GWEI),
                min_tip_gwei=get("ANCHOR_MIN_PRIORITY_FEE_GWEI", DEFAULT_MIN_PRIORITY_FEE_GWEI),
            ),
            rpc_timeout_ms=parse_timeout_ms(get("ANCHOR_RPC_TIMEOUT_MS")),
            receipt_timeout_s=_parse_float(
                "ANCHOR_RECEIPT_TIMEOUT_S", get("ANCHOR_RECEIPT_TIMEOUT_S"), DEFAULT_RECEIPT_TIMEOUT_S
            ),
            poll_attempts=_parse_int("ANCHOR_POLL_ATTEMPTS", get("ANCHOR_POLL_ATTEMPTS"), DEFAULT_POLL_ATTEMPTS),
            poll_delay_ms=_parse_int("ANCHOR_POLL_DELAY_MS", get("ANCHOR_POLL_DELAY_MS"), DEFAULT_POLL_DELAY_MS),
            allowed_origins=origins,
            rate_limit_uri=get("ANCHOR_RATE_LIMIT_URI", "memory:"),
            rate_limit_max=_parse_int("ANCHOR_RATE_LIMIT_MAX", get("ANCHOR_RATE_LIMIT_MAX"), DEFAULT_RATE_LIMIT_MAX),
            rate_limit_window_s=_parse_float(
                "ANCHOR_RATE_LIMIT_WINDOW_S", get("ANCHOR_RATE_LIMIT_WINDOW_S"), DEFAULT_RATE_LIMIT_WINDOW_S
            ),
            log_level=get("ANCHOR_LOG_LEVEL", "INFO"),
        )
        overrides = {k: v for k, v in overrides.items() if v is not None}
        return replace(config, **overrides) if overrides else config

    @property
    def rpc_timeout_s(self) -> float:
        return self.rpc_timeout_ms / 1000.0

    @property
    def poll_delay_s(self) -> float:
        return self.poll_delay_ms / 1000.0

    @property
    def secrets(self) -> Tuple[str, ...]:
        """Values that must never reach a caller or a log line."""
        return tuple(s for s in (self.private_key, self.rpc_url) if s)

    def validate_for_reads(self) -> None:
        """Everything a read needs. Raises before any connection is opened."""
        from anchor.chain.shapes import resolve_shape

        if not self.rpc_url:
            raise ConfigurationError("Missing ANCHOR_RPC_URL")
        if not self.rpc_url.startswith(("http://", "https://")):
            raise ConfigurationError("ANCHOR_RPC_URL must be an http(s) URL")
        if not self.contract_address:
            raise ConfigurationError("Missing ANCHOR_CONTRACT_ADDRESS")
        if not _ADDRESS_RE.match(self.contract_address):
            raise ConfigurationError("Bad contract address (expected 0x + 40 hex)")
        if self.chain_id <= 0:
            raise ConfigurationError(f"Invalid chain id: {self.chain_id}")
        if self.poll_attempts < 1:
            raise ConfigurationError("ANCHOR_POLL_ATTEMPTS must be at least 1")
        if self.poll_delay_ms < 0 or self.receipt_timeout_s <= 0:
            raise ConfigurationError("Poll delay and receipt timeout must be non-negative")
        resolve_shape(self.contract_shape, self.read_function, self.write_function)
        self.fees.validate()

    def validate_for_writes(self) -> None:
        from anchor.chain.signer import SigningIdentity

        self.validate_for_reads()
        if not self.private_key:
            raise ConfigurationError("Missing ANCHOR_PRIVATE_KEY")
        SigningIdentity.from_hex(self.private_key)


def parse_timeout_ms(raw: str) -> int:
    """Out-of-range or unparsable timeouts fall back to the default."""
    if not raw:
        return DEFAULT_RPC_TIMEOUT_MS
    try:
        value = float(raw)
    except ValueError:
        return DEFAULT_RPC_TIMEOUT_MS
    if 0 < value <= MAX_RPC_TIMEOUT_MS:
        return int(value)
    return DEFAULT_RPC_TIMEOUT_MS


def _parse_int(name: str, raw: str, default: int) -> int:
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer (got {raw!r})")


def _parse_float(name: str, raw: str, default: float) -> float:
    if not raw:
        return default
    try:
        return float(Decimal(raw))
    except (InvalidOperation, ValueError):
        raise ConfigurationError(f"{name} must be a number (got {raw!r})")
