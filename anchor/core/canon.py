# anchor/core/canon.py
from enum import Enum
from typing import Any

try:
    import jcs
except ImportError:
    raise ImportError("Please install jcs: pip install jcs")


def _plain(obj: Any) -> Any:
    # jcs only knows JSON primitives
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {str(k): _plain(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_plain(v) for v in obj]
    if hasattr(obj, "to_dict"):
        return _plain(obj.to_dict())
    return obj


def canonical_json(obj: Any) -> bytes:
    """
    Deterministic UTF-8 bytes per RFC 8785 (JSON Canonicalization Scheme).
    Accepts results/quotes with a to_dict() and enum members directly.
    """
    return jcs.canonicalize(_plain(obj))


def canonical_json_str(obj: Any) -> str:
    return canonical_json(obj).decode("utf-8")
