"""Processor webhook endpoint."""

from fastapi import APIRouter, Request, status

from challengehub.api.dependencies import AppSettings, DbSession
from challengehub.api.schemas import ErrorResponse, WebhookAck
from challengehub.services.reconciliation import WebhookReconciler

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post(
    "/processor",
    response_model=WebhookAck,
    status_code=status.HTTP_200_OK,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
async def processor_webhook(
    request: Request,
    db: DbSession,
    settings: AppSettings,
) -> WebhookAck:
    """Receive a payment event from the processor.

    Authentic, well-formed events are acknowledged even when they match no
    local payment or were already applied. Signature failures return 401,
    malformed bodies 400, and unexpected errors 500 so the processor retries.
    """
    body = await request.body()
    reconciler = WebhookReconciler(
        db,
        secret=settings.webhook_secret,
        tolerance_seconds=settings.webhook_tolerance_seconds,
    )
    result = await reconciler.handle(body, request.headers)
    return WebhookAck(received=True, status=result.status.value)
