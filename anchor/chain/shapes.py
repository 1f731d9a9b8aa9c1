# anchor/chain/shapes.py
"""
Contract shapes the client can talk to.

Each shape names exactly one read and one write operation and owns the
existence predicate for what the read returns. Nothing probes for names.
"""

import re
from dataclasses import dataclass, replace
from typing import Any, Optional, Tuple

from anchor.core.errors import ConfigurationError

ZERO_ADDRESS = "0x" + "0" * 40

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class ContractShape:
    name: str
    read_function: str
    write_function: str
    read_outputs: Tuple[Tuple[str, str], ...]
    write_outputs: Tuple[Tuple[str, str], ...] = ()
    revert_means_missing: bool = False

    def abi(self) -> list:
        def io(pairs):
            return [{"name": n, "type": t} for n, t in pairs]

        return [
            {
                "type": "function",
                "name": self.read_function,
                "stateMutability": "view",
                "inputs": [{"name": "refId", "type": "bytes32"}],
                "outputs": io(self.read_outputs),
            },
            {
                "type": "function",
                "name": self.write_function,
                "stateMutability": "nonpayable",
                "inputs": [{"name": "refId", "type": "bytes32"}],
                "outputs": io(self.write_outputs),
            },
        ]

    def interpret(self, raw: Any) -> Tuple[bool, Optional[int], Optional[str]]:
        """Map a decoded read result to (exists, confirmed_at_unix, submitter)."""
        values = list(raw) if isinstance(raw, (list, tuple)) else [raw]
        if len(values) != len(self.read_outputs):
            raise ConfigurationError(
                f"{self.read_function}() returned {len(values)} values, "
                f"shape '{self.name}' expects {len(self.read_outputs)}"
            )
        if self.name == "flagged":
            ok, ts = bool(values[0]), int(values[1] or 0)
            exists = ok and ts != 0
            return exists, (ts if exists else None), None

        ts, submitter = int(values[0] or 0), values[1]
        exists = ts > 0 and bool(submitter) and str(submitter).lower() != ZERO_ADDRESS
        return exists, (ts if exists else None), (str(submitter) if exists else None)


FLAGGED = ContractShape(
    name="flagged",
    read_function="get",
    write_function="registerIfMissing",
    read_outputs=(("ok", "bool"), ("ts", "uint64")),
    write_outputs=(("created", "bool"), ("ts", "uint64")),
)

SUBMITTER = ContractShape(
    name="submitter",
    read_function="getProof",
    write_function="register",
    read_outputs=(("timestamp", "uint256"), ("submitter", "address")),
    revert_means_missing=True,
)

SHAPES = {s.name: s for s in (FLAGGED, SUBMITTER)}


def resolve_shape(
    name: str,
    read_function: Optional[str] = None,
    write_function: Optional[str] = None,
) -> ContractShape:
    """Look up a shape and apply explicitly configured operation names."""
    shape = SHAPES.get((name or "").strip().lower())
    if shape is None:
        raise ConfigurationError(
            f"Unknown contract shape '{name}' (expected one of: {', '.join(sorted(SHAPES))})"
        )
    for label, fn in (("read", read_function), ("write", write_function)):
        if fn is not None and not _IDENTIFIER_RE.match(fn):
            raise ConfigurationError(f"Invalid {label} function name: {fn!r}")
    return replace(
        shape,
        read_function=read_function or shape.read_function,
        write_function=write_function or shape.write_function,
    )
