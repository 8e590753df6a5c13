"""Fee calculation."""

from challengehub.calculators.fees import (
    BUYOUT_FEE_AMOUNT,
    FEE_EPSILON,
    FEE_RATE,
    MAX_AMOUNT,
    MIN_FEE,
    FeeBreakdown,
    compute_fees,
    fee_breakdown_text,
    fees_match,
    format_currency,
    quantize_amount,
    to_minor_units,
    validate_minimum_reward,
)

__all__ = [
    "BUYOUT_FEE_AMOUNT",
    "FEE_EPSILON",
    "FEE_RATE",
    "MAX_AMOUNT",
    "MIN_FEE",
    "FeeBreakdown",
    "compute_fees",
    "fee_breakdown_text",
    "fees_match",
    "format_currency",
    "quantize_amount",
    "to_minor_units",
    "validate_minimum_reward",
]
