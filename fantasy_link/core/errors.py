# fantasy_link/core/errors.py
"""
Error taxonomy for the Yahoo link.

The class (``kind``) decides what callers do; ``provider_status`` / ``provider_body``
only carry the upstream diagnostic for logs.
"""
from __future__ import annotations

from typing import Optional


class FantasyLinkError(Exception):
    kind = "internal_error"
    status_code = 500
    message = "Unexpected error"

    def __init__(
        self,
        details: str = "",
        *,
        provider_status: Optional[int] = None,
        provider_body: Optional[str] = None,
    ):
        super().__init__(details or self.message)
        self.details = details
        self.provider_status = provider_status
        self.provider_body = provider_body

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message, "details": self.details}


# ---- configuration ----
class ConfigurationError(FantasyLinkError):
    kind = "configuration_error"
    status_code = 500
    message = "Yahoo integration is not configured"


# ---- service lifecycle ----
class ServiceUnavailable(FantasyLinkError):
    kind = "service_unavailable"
    status_code = 503
    message = "Service is starting up; retry shortly"


# ---- client-fixable authorization flow errors ----
class MissingParams(FantasyLinkError):
    kind = "missing_params"
    status_code = 400
    message = "Required parameters are missing"


class InvalidState(FantasyLinkError):
    kind = "invalid_state"
    status_code = 400
    message = "Authorization state is invalid or expired"


class TokenExchangeFailed(FantasyLinkError):
    """Code exchange rejected by Yahoo; the provider status is propagated as-is."""

    kind = "token_exchange_failed"
    message = "Yahoo rejected the authorization code"

    def __init__(self, details: str = "", *, provider_status: Optional[int] = None, provider_body: Optional[str] = None):
        super().__init__(details, provider_status=provider_status, provider_body=provider_body)
        self.status_code = provider_status if provider_status and provider_status >= 400 else 502


# ---- user must reconnect ----
class NoTokenError(FantasyLinkError):
    kind = "not_connected"
    status_code = 401
    message = "You are not connected to Yahoo Fantasy. Please connect your account."


class ReauthorizationRequired(FantasyLinkError):
    kind = "reauthorization_required"
    status_code = 401
    message = "Your Yahoo connection has expired. Please reconnect your account."


# ---- transient, retryable by the caller ----
class RefreshFailed(FantasyLinkError):
    kind = "refresh_failed"
    status_code = 503
    message = "Failed to refresh Yahoo tokens"


class RateLimited(FantasyLinkError):
    kind = "rate_limited"
    status_code = 429
    message = "Yahoo is throttling requests; retry later"

    def __init__(self, details: str = "", *, retry_after: Optional[str] = None, **kwargs):
        super().__init__(details, **kwargs)
        self.retry_after = retry_after


class UpstreamError(FantasyLinkError):
    kind = "upstream_error"
    status_code = 502
    message = "Yahoo Fantasy request failed"


# ---- not retried ----
class NotFound(FantasyLinkError):
    kind = "not_found"
    status_code = 404
    message = "Resource not found on Yahoo Fantasy"


class AmbiguousLookup(NotFound):
    """Yahoo answered 400/404; could be a bad key or missing permission."""


class PermissionDenied(FantasyLinkError):
    kind = "permission_denied"
    status_code = 403
    message = "You do not have permission to access this Yahoo resource"


class NotConnected(NotFound):
    """Token status lookup for a user with no stored pair."""

    kind = "not_connected"
    message = "No Yahoo tokens found for user"
