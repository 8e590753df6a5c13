"""Funding reconciliation - applies processor outcomes to local funding groups.

Processor events arrive at least once and in any order. Every transition is
decided from the locked, re-read row status inside the transaction, so a
redelivered or late event for a settled payment is a no-op.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from challengehub.models import ChallengeStatus, PaymentStatus
from challengehub.processor.webhooks import (
    DEFAULT_TOLERANCE_SECONDS,
    PaymentOutcome,
    ProcessorEvent,
    get_signature_header,
    parse_event,
    verify_signature,
)
from challengehub.services.payment_store import PaymentStore
from challengehub.services.state_machine import ChallengeStateMachine, PaymentStateMachine

logger = logging.getLogger(__name__)

_OUTCOME_STATUS: dict[PaymentOutcome, PaymentStatus] = {
    PaymentOutcome.SUCCEEDED: PaymentStatus.COMPLETED,
    PaymentOutcome.FAILED: PaymentStatus.FAILED,
    PaymentOutcome.CANCELED: PaymentStatus.CANCELLED,
}


class ReconcileStatus(str, Enum):
    """What reconciling an outcome did."""

    APPLIED = "applied"  # Funding group transitioned
    DUPLICATE = "duplicate"  # Payment already settled, nothing changed
    UNMATCHED = "unmatched"  # No local funding row for this event
    IGNORED = "ignored"  # Event type this system does not act on


@dataclass(frozen=True)
class ReconcileResult:
    """Result of reconciling one processor outcome."""

    status: ReconcileStatus
    payment_id: UUID | None = None
    challenge_id: UUID | None = None
    previous_status: str | None = None
    new_status: str | None = None
    challenge_funded: bool = False
    message: str = ""


def _parse_uuid(value: str | None) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


class ReconciliationService:
    """Applies payment outcomes to funding groups.

    A funding group is a FUNDING row plus the PLATFORM_FEE or BUYOUT_FEE row
    created with it. On success the whole group is COMPLETED and the
    challenge becomes funded and ACTIVE in one transaction; on failure or
    cancellation the group is FAILED or CANCELLED and the challenge is left
    alone.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.store = PaymentStore(session)

    async def reconcile_event(self, event: ProcessorEvent) -> ReconcileResult:
        """Correlate a webhook event with local state and apply it."""
        if event.outcome is None:
            logger.info("Ignoring processor event type %r", event.event_type)
            return ReconcileResult(
                status=ReconcileStatus.IGNORED,
                message=f"Unhandled event type '{event.event_type}'",
            )

        challenge_id = _parse_uuid(event.challenge_id)

        async with self.store.transaction():
            funding = await self.store.find_funding_payment(
                challenge_id, event.processor_payment_id
            )
            if funding is None:
                logger.info(
                    "No funding payment matches event %s (challenge=%s, payment=%s)",
                    event.event_type,
                    event.challenge_id,
                    event.processor_payment_id,
                )
                return ReconcileResult(
                    status=ReconcileStatus.UNMATCHED,
                    challenge_id=challenge_id,
                    message="No matching funding payment",
                )

            return await self._apply(
                funding.payment_id,
                funding.challenge_id,
                event.outcome,
                processor_payment_id=event.processor_payment_id,
                failure_reason=event.failure_reason,
            )

    async def apply_outcome(
        self,
        payment_id: UUID,
        outcome: PaymentOutcome,
        processor_payment_id: str | None = None,
        failure_reason: str | None = None,
    ) -> ReconcileResult:
        """Apply an outcome to a known FUNDING row in its own transaction."""
        async with self.store.transaction():
            funding = await self.store.get_payment(payment_id)
            if funding is None:
                return ReconcileResult(
                    status=ReconcileStatus.UNMATCHED,
                    payment_id=payment_id,
                    message="Funding payment not found",
                )
            return await self._apply(
                payment_id,
                funding.challenge_id,
                outcome,
                processor_payment_id=processor_payment_id,
                failure_reason=failure_reason,
            )

    async def _apply(
        self,
        payment_id: UUID,
        challenge_id: UUID,
        outcome: PaymentOutcome,
        processor_payment_id: str | None,
        failure_reason: str | None,
    ) -> ReconcileResult:
        # Lock order: challenge, then payments
        challenge = await self.store.get_challenge(challenge_id, for_update=True)
        funding = await self.store.get_payment(payment_id, for_update=True)
        if challenge is None or funding is None:
            return ReconcileResult(
                status=ReconcileStatus.UNMATCHED,
                payment_id=payment_id,
                challenge_id=challenge_id,
                message="Funding payment not found",
            )

        previous_status = funding.status
        if PaymentStateMachine.is_settled(previous_status):
            logger.info(
                "Funding payment %s already %s; ignoring %s",
                payment_id,
                previous_status,
                outcome.value,
            )
            return ReconcileResult(
                status=ReconcileStatus.DUPLICATE,
                payment_id=payment_id,
                challenge_id=challenge_id,
                previous_status=previous_status,
                new_status=previous_status,
                challenge_funded=challenge.is_funded,
                message=f"Payment already {previous_status}",
            )

        if processor_payment_id and funding.processor_payment_id is None:
            funding.processor_payment_id = processor_payment_id

        new_status = _OUTCOME_STATUS[outcome]
        reason = failure_reason if outcome != PaymentOutcome.SUCCEEDED else None
        if reason is None and outcome == PaymentOutcome.CANCELED:
            reason = "Payment canceled"

        siblings = await self.store.pending_siblings(funding)
        self.store.set_payment_status(funding, new_status, reason)
        for sibling in siblings:
            self.store.set_payment_status(sibling, new_status, reason)

        message = f"Funding group {new_status.value}"
        if outcome == PaymentOutcome.SUCCEEDED:
            if challenge.is_funded or not ChallengeStateMachine.can_transition(
                challenge.status, ChallengeStatus.ACTIVE
            ):
                # A second attempt settled after the challenge was funded or closed
                logger.warning(
                    "Challenge %s is %s (funded=%s); payment %s completed and needs manual refund",
                    challenge_id,
                    challenge.status,
                    challenge.is_funded,
                    payment_id,
                )
                message = "Challenge not fundable; payment recorded for refund"
            else:
                self.store.mark_challenge_funded(challenge)

        await self.session.flush()

        logger.info(
            "Applied %s to funding payment %s (challenge %s, %d sibling(s))",
            outcome.value,
            payment_id,
            challenge_id,
            len(siblings),
        )
        return ReconcileResult(
            status=ReconcileStatus.APPLIED,
            payment_id=payment_id,
            challenge_id=challenge_id,
            previous_status=previous_status,
            new_status=new_status.value,
            challenge_funded=challenge.is_funded,
            message=message,
        )


class WebhookReconciler:
    """Authenticates, parses and reconciles one webhook delivery."""

    def __init__(
        self,
        session: AsyncSession,
        secret: str,
        tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    ):
        self.secret = secret
        self.tolerance_seconds = tolerance_seconds
        self.service = ReconciliationService(session)

    async def handle(
        self,
        body: bytes,
        headers: Mapping[str, str],
        now: float | None = None,
    ) -> ReconcileResult:
        """Handle a raw delivery.

        Raises:
            WebhookSignatureError: Authentication failed; nothing was read or written.
            MalformedEventError: The body is not a well-formed event.
        """
        verify_signature(
            body,
            get_signature_header(headers),
            self.secret,
            tolerance_seconds=self.tolerance_seconds,
            now=now,
        )
        event = parse_event(body)
        result = await self.service.reconcile_event(event)
        logger.info(
            "Webhook %s (%s) -> %s",
            event.event_type,
            event.event_id or event.processor_payment_id,
            result.status.value,
        )
        return result
