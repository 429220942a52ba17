"""Custom exception hierarchy for the gateway.

Every error carries a stable ``kind`` string and an HTTP status so the API
layer can report it to the caller without inspecting the concrete class.
"""

from __future__ import annotations

from typing import Any


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    kind: str = "gateway_error"
    status_code: int = 500

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, **self.context}


# ── Authentication ───────────────────────────────────────────────

class UnauthenticatedError(GatewayError):
    """Missing or invalid tenant credential or admin secret."""

    kind = "unauthenticated"
    status_code = 401


class DeactivatedError(GatewayError):
    """Valid credential, but the tenant is inactive."""

    kind = "deactivated"
    status_code = 403


# ── Entitlement ──────────────────────────────────────────────────

class ModelNotEntitledError(GatewayError):
    """Requested model is not in the tenant's allow-list."""

    kind = "model_not_entitled"
    status_code = 403


class QuotaExceededError(GatewayError):
    """Period spend has reached the tenant's monthly cap."""

    kind = "quota_exceeded"
    status_code = 429

    def __init__(self, message: str, limit_usd: float, used_usd: float) -> None:
        super().__init__(message, context={"limit_usd": limit_usd, "used_usd": used_usd})
        self.limit_usd = limit_usd
        self.used_usd = used_usd


# ── Upstream Provider ────────────────────────────────────────────

class UpstreamError(GatewayError):
    """Provider returned an error envelope or a malformed payload."""

    kind = "upstream_error"
    status_code = 502


class UpstreamEmptyResponseError(UpstreamError):
    """Provider answered successfully but without usable content."""

    kind = "upstream_empty_response"


class UpstreamUnreachableError(GatewayError):
    """Network failure or timeout talking to the provider. Retryable."""

    kind = "upstream_unreachable"
    status_code = 503


# ── Administration & Storage ─────────────────────────────────────

class NotFoundError(GatewayError):
    """Unknown tenant identity."""

    kind = "not_found"
    status_code = 404


class ValidationFailedError(GatewayError):
    """Missing or malformed input fields."""

    kind = "validation_error"
    status_code = 400


class ConflictError(GatewayError):
    """Derived tenant identity already exists."""

    kind = "conflict"
    status_code = 409


class StorageError(GatewayError):
    """Persistence medium failed after retries."""

    kind = "storage_error"
    status_code = 500
