"""REST adapter for the hosted payment processor."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

import httpx

from challengehub.processor.base import (
    ChargeRequest,
    ChargeResponse,
    ChargeStatus,
    MembershipGrant,
    PayoutRequest,
    PayoutResponse,
    ProcessorConfig,
    ProcessorError,
)

logger = logging.getLogger(__name__)

# Processor status strings -> ChargeStatus
_CHARGE_STATUS_MAP: dict[str, ChargeStatus] = {
    "succeeded": ChargeStatus.SUCCEEDED,
    "completed": ChargeStatus.SUCCEEDED,
    "paid": ChargeStatus.SUCCEEDED,
    "requires_confirmation": ChargeStatus.REQUIRES_CONFIRMATION,
    "requires_action": ChargeStatus.REQUIRES_CONFIRMATION,
    "pending": ChargeStatus.REQUIRES_CONFIRMATION,
    "open": ChargeStatus.REQUIRES_CONFIRMATION,
    "failed": ChargeStatus.FAILED,
    "declined": ChargeStatus.FAILED,
    "canceled": ChargeStatus.CANCELED,
    "cancelled": ChargeStatus.CANCELED,
    "expired": ChargeStatus.CANCELED,
}


class HttpProcessorClient:
    """Processor adapter speaking the processor's JSON REST API.

    A single ``httpx.AsyncClient`` is reused for the adapter's lifetime;
    pass ``transport`` to route requests elsewhere (tests use
    ``httpx.MockTransport``).
    """

    provider_name = "http"

    def __init__(
        self,
        config: ProcessorConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            transport=transport,
            headers={
                "Authorization": f"Bearer {config.api_key}",
                "Content-Type": "application/json",
            },
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        try:
            response = await self._client.request(
                method, path, json=json, params=params, headers=headers
            )
        except httpx.HTTPError as e:
            logger.warning("Processor request %s %s failed: %s", method, path, e)
            raise ProcessorError(
                f"Network error calling processor: {e}", code="PROCESSOR_UNREACHABLE"
            ) from e

        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {}

        if response.status_code >= 400:
            if not isinstance(body, dict):
                body = {}
            error = body.get("error")
            if isinstance(error, dict):
                message = error.get("message") or response.text[:200]
                code = error.get("code") or f"HTTP_{response.status_code}"
            else:
                message = str(error or body.get("message") or response.text[:200])
                code = f"HTTP_{response.status_code}"
            raise ProcessorError(message, code=code, status_code=response.status_code)

        if not isinstance(body, dict):
            raise ProcessorError("Unexpected processor response", code="INVALID_RESPONSE")
        return body

    async def create_charge(self, request: ChargeRequest) -> ChargeResponse:
        payload: dict[str, Any] = {
            "user_id": request.user_id,
            "amount": request.amount_minor,
            "currency": request.currency,
            "description": request.description,
            "metadata": request.metadata,
        }
        if request.return_url:
            payload["return_url"] = request.return_url
        if request.cancel_url:
            payload["cancel_url"] = request.cancel_url

        body = await self._request(
            "POST", "/payments", json=payload, idempotency_key=request.idempotency_key
        )
        return self._parse_charge(body)

    async def get_charge(self, processor_payment_id: str) -> ChargeResponse:
        body = await self._request("GET", f"/payments/{processor_payment_id}")
        return self._parse_charge(body)

    async def pay_user(self, request: PayoutRequest) -> PayoutResponse:
        body = await self._request(
            "POST",
            "/transfers",
            json={
                "company_id": request.company_id,
                "destination_id": request.destination_id,
                "amount": str(request.amount),
                "currency": request.currency,
                "reason": request.reason,
                "notes": request.notes,
            },
            idempotency_key=request.idempotency_key,
        )
        return PayoutResponse(
            transaction_id=str(body.get("id") or "unknown"),
            status=str(body.get("status") or "completed"),
        )

    async def grant_membership(self, grant: MembershipGrant) -> PayoutResponse:
        body = await self._request(
            "POST",
            "/memberships",
            json={
                "user_id": grant.user_id,
                "plan_id": grant.plan_id,
                "metadata": grant.metadata,
            },
            idempotency_key=grant.idempotency_key,
        )
        return PayoutResponse(
            transaction_id=str(body.get("id") or "unknown"),
            status=str(body.get("status") or "completed"),
        )

    async def check_access(self, user_id: str, company_id: str) -> bool:
        body = await self._request(
            "GET", f"/users/{user_id}/access", params={"company_id": company_id}
        )
        return bool(body.get("has_access", False))

    def _parse_charge(self, body: dict[str, Any]) -> ChargeResponse:
        processor_payment_id = body.get("id")
        if not processor_payment_id:
            raise ProcessorError("Processor response missing payment id", code="INVALID_RESPONSE")

        raw_status = str(body.get("status", "")).lower()
        status = _CHARGE_STATUS_MAP.get(raw_status)
        if status is None:
            logger.warning(
                "Unknown processor charge status %r for %s; treating as requires_confirmation",
                raw_status,
                processor_payment_id,
            )
            status = ChargeStatus.REQUIRES_CONFIRMATION

        amount = body.get("amount")
        return ChargeResponse(
            processor_payment_id=str(processor_payment_id),
            status=status,
            amount_minor=int(Decimal(str(amount))) if amount is not None else None,
            currency=body.get("currency"),
            checkout_url=body.get("checkout_url") or body.get("url"),
            client_secret=body.get("client_secret"),
            failure_reason=body.get("failure_reason") or body.get("failure_message"),
            metadata=body.get("metadata") or {},
        )
