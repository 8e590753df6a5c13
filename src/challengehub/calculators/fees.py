"""Platform fee policy.

Every call site (creation validation, charge initiation, webhook-driven
payment rows, CLI preview) goes through ``compute_fees`` so the numbers are
identical everywhere.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, ROUND_HALF_UP, Decimal

from challengehub.models.enums import PaymentType

FEE_RATE = Decimal("0.10")
MIN_FEE = Decimal("2.00")
BUYOUT_FEE_AMOUNT = Decimal("15.00")
FEE_EPSILON = Decimal("0.01")

# Largest amount a Numeric(12, 2) column holds
MAX_AMOUNT = Decimal("9999999999.99")

CENTS = Decimal("0.01")


def quantize_amount(amount: Decimal | int | float | str) -> Decimal:
    """Round a currency amount to cents (half up)."""
    return Decimal(str(amount)).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class FeeBreakdown:
    """Fee computation result for a reward."""

    reward_amount: Decimal
    platform_fee: Decimal
    net_payout: Decimal
    total_cost: Decimal
    buyout_fee_paid: bool

    @property
    def fee_payment_type(self) -> PaymentType:
        """Type of the fee row that accompanies the funding row."""
        return PaymentType.BUYOUT_FEE if self.buyout_fee_paid else PaymentType.PLATFORM_FEE

    @property
    def fee_payment_amount(self) -> Decimal:
        """Amount of the fee row that accompanies the funding row."""
        return BUYOUT_FEE_AMOUNT if self.buyout_fee_paid else self.platform_fee


def compute_fees(
    reward_amount: Decimal | int | float | str,
    buyout_fee_paid: bool = False,
) -> FeeBreakdown:
    """Compute platform fee, net payout and total cost for a reward.

    The participant always receives the full reward; the creator pays the
    reward plus either the percentage fee (with a floor) or the flat buyout.

    Raises:
        ValueError: If the reward amount is negative.
    """
    reward = quantize_amount(reward_amount)
    if reward < 0:
        raise ValueError(f"Reward amount cannot be negative: {reward}")

    if buyout_fee_paid:
        return FeeBreakdown(
            reward_amount=reward,
            platform_fee=Decimal("0.00"),
            net_payout=reward,
            total_cost=reward + BUYOUT_FEE_AMOUNT,
            buyout_fee_paid=True,
        )

    platform_fee = max(quantize_amount(reward * FEE_RATE), MIN_FEE)
    return FeeBreakdown(
        reward_amount=reward,
        platform_fee=platform_fee,
        net_payout=reward,
        total_cost=reward + platform_fee,
        buyout_fee_paid=False,
    )


def validate_minimum_reward(
    reward_amount: Decimal | int | float | str,
    buyout_fee_paid: bool = False,
) -> str | None:
    """Return an error message if the reward is too small, else None."""
    reward = quantize_amount(reward_amount)
    if buyout_fee_paid:
        if reward <= 0:
            return "Reward amount must be greater than zero"
        return None
    if reward < MIN_FEE:
        return f"Minimum reward amount is {format_currency(MIN_FEE)} to cover platform fees"
    return None


def fees_match(
    client_platform_fee: Decimal | int | float | str,
    client_net_payout: Decimal | int | float | str,
    server: FeeBreakdown,
    epsilon: Decimal = FEE_EPSILON,
) -> bool:
    """Check a client-submitted breakdown against the server recomputation."""
    fee_delta = abs(Decimal(str(client_platform_fee)) - server.platform_fee)
    payout_delta = abs(Decimal(str(client_net_payout)) - server.net_payout)
    return fee_delta <= epsilon and payout_delta <= epsilon


def to_minor_units(amount: Decimal | int | float | str) -> int:
    """Convert a currency amount to integer cents (round half to even)."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_EVEN))


def format_currency(amount: Decimal | int | float | str, currency: str = "USD") -> str:
    """Format an amount for display, e.g. ``$1,234.50``."""
    value = quantize_amount(amount)
    if currency.upper() == "USD":
        return f"${value:,.2f}"
    return f"{value:,.2f} {currency.upper()}"


def fee_breakdown_text(breakdown: FeeBreakdown) -> str:
    """Human-readable summary of what the creator pays."""
    if breakdown.buyout_fee_paid:
        return (
            f"Reward: {format_currency(breakdown.reward_amount)}"
            f" + Buyout Fee: {format_currency(BUYOUT_FEE_AMOUNT)}"
            f" = Total: {format_currency(breakdown.total_cost)}"
        )
    return (
        f"Reward: {format_currency(breakdown.reward_amount)}"
        f" + Platform Fee: {format_currency(breakdown.platform_fee)}"
        f" = Total: {format_currency(breakdown.total_cost)}"
        f" (Net Payout: {format_currency(breakdown.net_payout)})"
    )
