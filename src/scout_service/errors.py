"""Error taxonomy shared by the engine, clients, and HTTP surfaces."""

from __future__ import annotations

from typing import Any


class ScoutServiceError(Exception):
    """Base error carrying the envelope code and HTTP status it maps to."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, *, details: Any | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(ScoutServiceError):
    code = "VALIDATION_ERROR"
    status_code = 400


class AuthenticationError(ScoutServiceError):
    code = "UNAUTHORIZED"
    status_code = 401


class NotFoundError(ScoutServiceError):
    code = "RESOURCE_NOT_FOUND"
    status_code = 404


class UpstreamError(ScoutServiceError):
    """A provider, store, or transport call failed irrecoverably."""


class UpstreamTimeoutError(UpstreamError):
    """The call was sent but no answer arrived in time; its effect is unknown."""


class ConfigurationError(UpstreamError):
    """Required configuration (API key, vault secret) is missing or malformed."""


class PaymentError(UpstreamError):
    """Payment settlement failed; the wrapped call must not be treated as paid."""


class ResultProcessingError(ScoutServiceError):
    """The LLM post-processing step failed; callers fall back to raw output."""
