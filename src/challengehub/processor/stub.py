"""In-memory processor for local development and testing."""

from __future__ import annotations

import uuid
from typing import Any

from challengehub.processor.base import (
    ChargeRequest,
    ChargeResponse,
    ChargeStatus,
    MembershipGrant,
    PayoutRequest,
    PayoutResponse,
    ProcessorError,
)


class StubProcessor:
    """Stub processor for development.

    Charges stay in ``requires_confirmation`` until a test settles them,
    unless ``auto_settle`` is set. Requests are idempotent on their keys,
    like the real processor.
    """

    provider_name = "stub"

    def __init__(self, auto_settle: bool = False, grant_access: bool = True):
        """Initialize stub processor.

        Args:
            auto_settle: If True, charges report as succeeded immediately.
            grant_access: Result returned by check_access.
        """
        self.auto_settle = auto_settle
        self.grant_access = grant_access

        self.charges: dict[str, dict[str, Any]] = {}
        self.payouts: dict[str, PayoutRequest] = {}
        self.grants: dict[str, MembershipGrant] = {}
        self.charge_requests: list[ChargeRequest] = []
        self.payout_requests: list[PayoutRequest] = []

        self._charges_by_key: dict[str, str] = {}
        self._payout_results: dict[str, PayoutResponse] = {}
        self._fail_next: dict[str, ProcessorError] = {}
        self._lose_next_charge = False

    def fail_next(
        self,
        operation: str,
        message: str = "Processor unavailable",
        code: str = "PROCESSOR_ERROR",
        status_code: int | None = 502,
    ) -> None:
        """Make the next call to ``operation`` raise ProcessorError.

        ``operation`` is one of create_charge, get_charge, pay_user,
        grant_membership, check_access. A 4xx ``status_code`` is a definite
        rejection; 5xx or None leaves the outcome unknown to the caller.
        """
        self._fail_next[operation] = ProcessorError(message, code=code, status_code=status_code)

    def lose_next_charge_response(self) -> None:
        """Accept the next charge, then fail as if the connection dropped."""
        self._lose_next_charge = True

    def _maybe_fail(self, operation: str) -> None:
        error = self._fail_next.pop(operation, None)
        if error is not None:
            raise error

    async def create_charge(self, request: ChargeRequest) -> ChargeResponse:
        """Create a charge (stub implementation)."""
        self._maybe_fail("create_charge")
        self.charge_requests.append(request)

        existing = self._charges_by_key.get(request.idempotency_key)
        if existing is not None:
            return self._response(existing)

        processor_payment_id = f"pay_stub_{uuid.uuid4().hex[:16]}"
        self._charges_by_key[request.idempotency_key] = processor_payment_id
        self.charges[processor_payment_id] = {
            "request": request,
            "status": ChargeStatus.SUCCEEDED if self.auto_settle else ChargeStatus.REQUIRES_CONFIRMATION,
            "failure_reason": None,
        }
        if self._lose_next_charge:
            self._lose_next_charge = False
            raise ProcessorError("Connection reset by processor", code="PROCESSOR_UNREACHABLE")
        return self._response(processor_payment_id)

    async def get_charge(self, processor_payment_id: str) -> ChargeResponse:
        """Get current state of a charge."""
        self._maybe_fail("get_charge")
        if processor_payment_id not in self.charges:
            raise ProcessorError(
                f"Payment {processor_payment_id} not found",
                code="PAYMENT_NOT_FOUND",
                status_code=404,
            )
        return self._response(processor_payment_id)

    async def pay_user(self, request: PayoutRequest) -> PayoutResponse:
        """Record a transfer (stub implementation)."""
        self._maybe_fail("pay_user")
        self.payout_requests.append(request)
        if request.idempotency_key in self._payout_results:
            return self._payout_results[request.idempotency_key]

        result = PayoutResponse(transaction_id=f"tr_stub_{uuid.uuid4().hex[:16]}")
        self.payouts[result.transaction_id] = request
        self._payout_results[request.idempotency_key] = result
        return result

    async def grant_membership(self, grant: MembershipGrant) -> PayoutResponse:
        """Record a membership grant (stub implementation)."""
        self._maybe_fail("grant_membership")
        if grant.idempotency_key in self._payout_results:
            return self._payout_results[grant.idempotency_key]

        result = PayoutResponse(transaction_id=f"mem_stub_{uuid.uuid4().hex[:16]}")
        self.grants[result.transaction_id] = grant
        self._payout_results[grant.idempotency_key] = result
        return result

    async def check_access(self, user_id: str, company_id: str) -> bool:
        """Return the configured access decision."""
        self._maybe_fail("check_access")
        return self.grant_access

    def _response(self, processor_payment_id: str) -> ChargeResponse:
        record = self.charges[processor_payment_id]
        request: ChargeRequest = record["request"]
        status: ChargeStatus = record["status"]
        needs_confirmation = status == ChargeStatus.REQUIRES_CONFIRMATION
        return ChargeResponse(
            processor_payment_id=processor_payment_id,
            status=status,
            amount_minor=request.amount_minor,
            currency=request.currency,
            checkout_url=(
                f"https://checkout.stub.local/{processor_payment_id}" if needs_confirmation else None
            ),
            client_secret=f"{processor_payment_id}_secret" if needs_confirmation else None,
            failure_reason=record["failure_reason"],
            metadata=dict(request.metadata),
        )

    def simulate_success(self, processor_payment_id: str) -> None:
        """Simulate the user completing checkout (for testing)."""
        if processor_payment_id in self.charges:
            self.charges[processor_payment_id]["status"] = ChargeStatus.SUCCEEDED

    def simulate_failure(
        self,
        processor_payment_id: str,
        reason: str = "card_declined",
        canceled: bool = False,
    ) -> None:
        """Simulate a declined or abandoned charge (for testing)."""
        if processor_payment_id in self.charges:
            record = self.charges[processor_payment_id]
            record["status"] = ChargeStatus.CANCELED if canceled else ChargeStatus.FAILED
            record["failure_reason"] = reason
