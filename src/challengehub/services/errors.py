"""Domain exceptions.

Each carries a stable ``code`` and the HTTP ``status_code`` the API renders
it with.
"""

from __future__ import annotations

from typing import Any


class ChallengeHubError(Exception):
    """Base class for domain errors."""

    code = "ERROR"
    status_code = 400

    def __init__(self, message: str, *, code: str | None = None, context: dict[str, Any] | None = None):
        self.message = message
        if code is not None:
            self.code = code
        self.context = context or {}
        super().__init__(message)


class ValidationError(ChallengeHubError):
    code = "VALIDATION_ERROR"
    status_code = 400


class FeeMismatchError(ValidationError):
    """Client-submitted fee breakdown disagrees with the server recomputation."""

    code = "FEE_MISMATCH"


class AuthenticationRequiredError(ChallengeHubError):
    code = "UNAUTHORIZED"
    status_code = 401


class PermissionDeniedError(ChallengeHubError):
    code = "INSUFFICIENT_PERMISSIONS"
    status_code = 403


class NotFoundError(ChallengeHubError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(ChallengeHubError):
    code = "CONFLICT"
    status_code = 409


class ChargeFailedError(ChallengeHubError):
    """The processor rejected or could not create a funding charge."""

    code = "PAYMENT_CREATION_FAILED"
    status_code = 502


class PayoutFailedError(ChallengeHubError):
    """The processor rejected a payout; the submission stays APPROVED."""

    code = "PAYOUT_FAILED"
    status_code = 502
