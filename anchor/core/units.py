# anchor/core/units.py
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

GWEI_DECIMALS = 9
WEI_PER_GWEI = 10 ** GWEI_DECIMALS


def gwei_to_wei(gwei: Union[str, int, float, Decimal]) -> int:
    """
    Convert a decimal gwei amount to integer wei without floating point.
    Splits into integer and fractional parts and pads the fraction to 9 digits;
    digits beyond the 9th are truncated.
    """
    if isinstance(gwei, float):
        # repr gives the shortest string that round-trips, avoids binary noise
        text = repr(gwei)
    else:
        text = str(gwei)
    text = text.strip()
    if not text:
        return 0
    if "e" in text.lower():
        try:
            text = format(Decimal(text), "f")
        except InvalidOperation:
            raise ValueError(f"Not a decimal amount: {gwei!r}")

    negative = text.startswith("-")
    if negative or text.startswith("+"):
        text = text[1:]

    whole, _, frac = text.partition(".")
    if not (whole or frac) or not (whole or "0").isdigit() or (frac and not frac.isdigit()):
        raise ValueError(f"Not a decimal amount: {gwei!r}")

    wei = int(whole or "0") * WEI_PER_GWEI + int((frac + "0" * GWEI_DECIMALS)[:GWEI_DECIMALS])
    return -wei if negative else wei


def wei_to_gwei(wei: Optional[int]) -> Optional[float]:
    """Display only. Never feed the result back into fee arithmetic."""
    if wei is None:
        return None
    return wei / WEI_PER_GWEI
