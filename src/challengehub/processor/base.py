"""Base protocol and types for the external payment processor.

All processor adapters must implement the PaymentProcessor protocol. Services
receive an adapter at construction time; nothing reaches for a module-level
client.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol


class ChargeStatus(str, Enum):
    """Processor-reported state of a charge."""

    SUCCEEDED = "succeeded"
    REQUIRES_CONFIRMATION = "requires_confirmation"
    FAILED = "failed"
    CANCELED = "canceled"


class ProcessorError(Exception):
    """Raised when the processor rejects a request or cannot be reached."""

    def __init__(
        self,
        message: str,
        code: str = "PROCESSOR_ERROR",
        status_code: int | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)

    @property
    def is_rejection(self) -> bool:
        """True when the processor answered and refused the request.

        Network failures, timeouts and 5xx answers leave the outcome unknown:
        the processor may still have accepted the request.
        """
        return self.status_code is not None and 400 <= self.status_code < 500


@dataclass(frozen=True)
class ProcessorConfig:
    """Processor adapter configuration."""

    mode: str = "stub"
    base_url: str = ""
    api_key: str = ""
    timeout_seconds: float = 10.0
    company_id: str = ""

    VALID_MODES = ("stub", "http")

    def __post_init__(self) -> None:
        if self.mode not in self.VALID_MODES:
            raise ValueError(f"Unknown processor mode '{self.mode}', expected one of {self.VALID_MODES}")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if self.mode == "http":
            if not self.api_key:
                raise ValueError("http processor mode requires an API key")
            if not self.base_url:
                raise ValueError("http processor mode requires a base URL")


@dataclass(frozen=True)
class ChargeRequest:
    """A charge the processor should collect from a user."""

    user_id: str
    amount_minor: int
    currency: str
    description: str
    idempotency_key: str
    metadata: dict[str, Any] = field(default_factory=dict)
    return_url: str | None = None
    cancel_url: str | None = None


@dataclass(frozen=True)
class ChargeResponse:
    """Processor view of a charge."""

    processor_payment_id: str
    status: ChargeStatus
    amount_minor: int | None = None
    currency: str | None = None
    checkout_url: str | None = None
    client_secret: str | None = None
    failure_reason: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PayoutRequest:
    """Money transfer from the platform account to a participant."""

    destination_id: str
    amount: Decimal
    currency: str  # "usd" or "usdc"
    idempotency_key: str
    company_id: str
    notes: str = ""
    reason: str = "bounty_payout"


@dataclass(frozen=True)
class MembershipGrant:
    """Grant of a subscription plan to a participant."""

    user_id: str
    plan_id: str
    idempotency_key: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PayoutResponse:
    """Result of a payout or membership grant."""

    transaction_id: str
    status: str = "completed"


class PaymentProcessor(Protocol):
    """Protocol for payment processor adapters."""

    provider_name: str

    async def create_charge(self, request: ChargeRequest) -> ChargeResponse:
        """Create a charge.

        Must be idempotent on ``request.idempotency_key``. Returns the
        processor's correlation id and whether the charge already settled
        or needs a client-side confirmation step.

        Raises:
            ProcessorError: On validation or network failure.
        """
        ...

    async def get_charge(self, processor_payment_id: str) -> ChargeResponse:
        """Fetch the processor's current view of a charge."""
        ...

    async def pay_user(self, request: PayoutRequest) -> PayoutResponse:
        """Transfer funds to a user. Idempotent on ``request.idempotency_key``."""
        ...

    async def grant_membership(self, grant: MembershipGrant) -> PayoutResponse:
        """Grant a subscription plan to a user."""
        ...

    async def check_access(self, user_id: str, company_id: str) -> bool:
        """Whether a user may assign this company's subscription passes."""
        ...
