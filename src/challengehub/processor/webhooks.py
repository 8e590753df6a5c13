"""Inbound processor webhook verification and normalization.

Processor generations differ in signature scheme, discriminator field name
and event-type spelling. Everything here reduces a raw delivery to a
``ProcessorEvent`` whose ``outcome`` is one of three logical results, so the
reconciler never matches on raw strings.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

SIGNATURE_HEADERS = ("x-webhook-signature", "whop-signature", "x-whop-signature")
DEFAULT_TOLERANCE_SECONDS = 300


class WebhookSignatureError(Exception):
    """Webhook delivery failed authentication."""

    code = "INVALID_SIGNATURE"
    status_code = 401


class MalformedEventError(Exception):
    """Webhook body is not a well-formed event."""

    code = "MALFORMED_EVENT"
    status_code = 400


class PaymentOutcome(str, Enum):
    """Logical outcome of a processor payment event."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


# Every observed spelling of the three outcomes.
EVENT_TYPE_OUTCOMES: dict[str, PaymentOutcome] = {
    "payment_succeeded": PaymentOutcome.SUCCEEDED,
    "payment_success": PaymentOutcome.SUCCEEDED,
    "payment.succeeded": PaymentOutcome.SUCCEEDED,
    "payment_completed": PaymentOutcome.SUCCEEDED,
    "payment.completed": PaymentOutcome.SUCCEEDED,
    "payment_intent.succeeded": PaymentOutcome.SUCCEEDED,
    "charge.succeeded": PaymentOutcome.SUCCEEDED,
    "payment_failed": PaymentOutcome.FAILED,
    "payment.failed": PaymentOutcome.FAILED,
    "payment_intent.payment_failed": PaymentOutcome.FAILED,
    "charge.failed": PaymentOutcome.FAILED,
    "payment_canceled": PaymentOutcome.CANCELED,
    "payment_cancelled": PaymentOutcome.CANCELED,
    "payment.canceled": PaymentOutcome.CANCELED,
    "payment.cancelled": PaymentOutcome.CANCELED,
    "payment_intent.canceled": PaymentOutcome.CANCELED,
    "checkout.session.expired": PaymentOutcome.CANCELED,
}


@dataclass(frozen=True)
class ProcessorEvent:
    """A parsed, normalized webhook event."""

    event_type: str
    outcome: PaymentOutcome | None
    event_id: str | None = None
    processor_payment_id: str | None = None
    amount: Decimal | None = None
    currency: str | None = None
    status: str | None = None
    failure_reason: str | None = None
    challenge_id: str | None = None
    user_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    data: dict[str, Any] = field(default_factory=dict)


def _sign(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def _matches(expected: str, provided: str) -> bool:
    # compare_digest raises TypeError on non-ASCII str
    return hmac.compare_digest(expected.encode("ascii"), provided.encode("utf-8", "replace"))


def get_signature_header(headers: Mapping[str, str]) -> str | None:
    """Return the first signature header present, matched case-insensitively."""
    lowered = {k.lower(): v for k, v in headers.items()}
    for name in SIGNATURE_HEADERS:
        value = lowered.get(name)
        if value:
            return value
    return None


def verify_signature(
    body: bytes,
    signature_header: str | None,
    secret: str,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    now: float | None = None,
) -> None:
    """Verify a webhook signature over the raw body.

    Accepts either ``sha256=<hex>`` / ``<hex>`` (HMAC-SHA256 of the body) or
    ``t=<timestamp>,v1=<hex>[,v1=<hex>...]`` (HMAC-SHA256 of
    ``"{timestamp}.{body}"``). With the timestamped scheme, a positive
    ``tolerance_seconds`` rejects deliveries older or newer than the window.

    Raises:
        WebhookSignatureError: If the signature is missing, malformed, stale
            or does not match.
    """
    if not secret:
        raise WebhookSignatureError("Webhook secret is not configured")
    if not signature_header:
        raise WebhookSignatureError("Missing webhook signature")

    header = signature_header.strip()

    if "t=" in header and "v1=" in header:
        timestamp: str | None = None
        candidates: list[str] = []
        for part in header.split(","):
            key, sep, value = part.strip().partition("=")
            if not sep:
                continue
            if key == "t":
                timestamp = value
            elif key == "v1":
                candidates.append(value)

        if timestamp is None or not candidates:
            raise WebhookSignatureError("Malformed timestamped signature header")

        try:
            ts = int(timestamp)
        except ValueError as e:
            raise WebhookSignatureError("Invalid signature timestamp") from e

        if tolerance_seconds > 0:
            current = time.time() if now is None else now
            if abs(current - ts) > tolerance_seconds:
                raise WebhookSignatureError("Signature timestamp outside tolerance")

        expected = _sign(secret, timestamp.encode("utf-8") + b"." + body)
        if not any(_matches(expected, c) for c in candidates):
            raise WebhookSignatureError("Signature mismatch")
        return

    provided = header[len("sha256="):] if header.startswith("sha256=") else header
    if not _matches(_sign(secret, body), provided):
        raise WebhookSignatureError("Signature mismatch")


def _first(mapping: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = mapping.get(key)
        if value not in (None, ""):
            return value
    return None


def normalize_event_type(event_type: str) -> PaymentOutcome | None:
    """Map an event-type spelling onto a logical outcome, or None if unhandled."""
    return EVENT_TYPE_OUTCOMES.get(event_type.strip().lower())


def parse_event(body: bytes | str) -> ProcessorEvent:
    """Parse a raw webhook body into a ProcessorEvent.

    Raises:
        MalformedEventError: If the body is not a JSON object with an event
            type (``type`` or ``action``) and a ``data`` object.
    """
    try:
        payload = json.loads(body)
    except (ValueError, UnicodeDecodeError) as e:
        raise MalformedEventError(f"Invalid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise MalformedEventError("Event must be a JSON object")

    event_type = _first(payload, "type", "action")
    if not isinstance(event_type, str):
        raise MalformedEventError("Event is missing 'type' or 'action'")

    data = payload.get("data")
    if not isinstance(data, dict):
        raise MalformedEventError("Event is missing a 'data' object")

    metadata = data.get("metadata")
    if not isinstance(metadata, dict):
        metadata = {}

    amount: Decimal | None = None
    raw_amount = data.get("amount")
    if raw_amount is not None:
        try:
            amount = Decimal(str(raw_amount))
        except InvalidOperation as e:
            raise MalformedEventError(f"Invalid amount: {raw_amount!r}") from e

    payment_id = _first(data, "id", "payment_id", "receipt_id")
    challenge_id = _first(metadata, "challenge_id", "challengeId")
    user_id = _first(metadata, "user_id", "userId")
    event_id = _first(payload, "id", "event_id")
    failure_reason = _first(data, "failure_reason", "failure_message", "error_message")

    return ProcessorEvent(
        event_type=event_type,
        outcome=normalize_event_type(event_type),
        event_id=str(event_id) if event_id is not None else None,
        processor_payment_id=str(payment_id) if payment_id is not None else None,
        amount=amount,
        currency=data.get("currency"),
        status=data.get("status"),
        failure_reason=str(failure_reason) if failure_reason is not None else None,
        challenge_id=str(challenge_id) if challenge_id is not None else None,
        user_id=str(user_id) if user_id is not None else None,
        metadata=metadata,
        data=data,
    )
