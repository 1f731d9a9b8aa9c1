# anchor/chain/fees.py
import logging
from typing import Optional

from anchor.config import FeeConfig
from anchor.core.types import FeeEstimate, FeeQuote
from anchor.core.units import wei_to_gwei

logger = logging.getLogger("anchor.chain.fees")


def select_fee(estimate: Optional[FeeEstimate], config: FeeConfig) -> FeeQuote:
    """
    Bounded EIP-1559 fee pair from a live estimate, with configured fallbacks.

    1. positive suggested max fee, else cap
    2. positive suggested priority fee, else min tip
    3. max fee <= cap
    4. min tip <= priority <= tip cap
    5. priority <= max fee

    All arithmetic is integer wei. Never raises on a failed estimate.
    """
    estimate = estimate or FeeEstimate.failed("no estimate")
    cap = config.cap_wei
    tip_cap = config.tip_cap_wei
    min_tip = config.min_tip_wei

    suggested_max = estimate.max_fee_per_gas
    suggested_tip = estimate.max_priority_fee_per_gas

    max_fee = suggested_max if suggested_max and suggested_max > 0 else cap
    priority = suggested_tip if suggested_tip and suggested_tip > 0 else min_tip

    if max_fee > cap:
        max_fee = cap
    if priority > tip_cap:
        priority = tip_cap
    if priority < min_tip:
        priority = min_tip
    if priority > max_fee:
        priority = max_fee

    if estimate.error:
        logger.info("fee estimate failed (%s); using configured fallbacks", estimate.error)

    return FeeQuote(
        max_fee_per_gas=max_fee,
        max_priority_fee_per_gas=priority,
        cap=cap,
        tip_cap=tip_cap,
        min_tip=min_tip,
        estimate=estimate,
    )


def describe_quote(quote: FeeQuote) -> dict:
    """Gwei view of a quote for diagnostics. Display only."""
    return {
        "picked": {
            "maxFeePerGas": wei_to_gwei(quote.max_fee_per_gas),
            "maxPriorityFeePerGas": wei_to_gwei(quote.max_priority_fee_per_gas),
            "capGwei": wei_to_gwei(quote.cap),
            "tipCapGwei": wei_to_gwei(quote.tip_cap),
            "minTipGwei": wei_to_gwei(quote.min_tip),
        },
        "estimate": {
            "maxFeePerGas": wei_to_gwei(quote.estimate.max_fee_per_gas),
            "maxPriorityFeePerGas": wei_to_gwei(quote.estimate.max_priority_fee_per_gas),
            "error": quote.estimate.error,
        },
        "raw": {
            "maxFeePerGas": quote.max_fee_per_gas,
            "maxPriorityFeePerGas": quote.max_priority_fee_per_gas,
        },
    }
