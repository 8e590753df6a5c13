"""Payment processor adapters and webhook handling."""

from __future__ import annotations

from challengehub.config import Settings
from challengehub.processor.base import (
    ChargeRequest,
    ChargeResponse,
    ChargeStatus,
    MembershipGrant,
    PaymentProcessor,
    PayoutRequest,
    PayoutResponse,
    ProcessorConfig,
    ProcessorError,
)
from challengehub.processor.http_client import HttpProcessorClient
from challengehub.processor.stub import StubProcessor


def processor_config_from_settings(settings: Settings) -> ProcessorConfig:
    """Build processor configuration from application settings."""
    return ProcessorConfig(
        mode=settings.processor_mode,
        base_url=settings.processor_base_url,
        api_key=settings.processor_api_key,
        timeout_seconds=settings.processor_timeout_seconds,
        company_id=settings.company_id,
    )


def build_processor(config: ProcessorConfig) -> PaymentProcessor:
    """Build the processor adapter selected by ``config.mode``."""
    if config.mode == "http":
        return HttpProcessorClient(config)
    return StubProcessor()


__all__ = [
    "ChargeRequest",
    "ChargeResponse",
    "ChargeStatus",
    "HttpProcessorClient",
    "MembershipGrant",
    "PaymentProcessor",
    "PayoutRequest",
    "PayoutResponse",
    "ProcessorConfig",
    "ProcessorError",
    "StubProcessor",
    "build_processor",
    "processor_config_from_settings",
]
