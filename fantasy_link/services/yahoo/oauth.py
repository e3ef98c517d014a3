# fantasy_link/services/yahoo/oauth.py
from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

import requests
from oauthlib.common import UNICODE_ASCII_CHARACTER_SET, generate_token
from requests_oauthlib import OAuth2Session

from fantasy_link.core.config import MIN_STATE_LENGTH, Settings
from fantasy_link.core.errors import ConfigurationError

log = logging.getLogger(__name__)


# ---- State tokens ----
def generate_state(length: int = MIN_STATE_LENGTH) -> str:
    """Unguessable alphanumeric anti-forgery token (SystemRandom-backed)."""
    if length < MIN_STATE_LENGTH:
        raise ValueError(f"state tokens must be at least {MIN_STATE_LENGTH} characters")
    return generate_token(length=length, chars=UNICODE_ASCII_CHARACTER_SET)


# ---- Redirect URI / authorize URL ----
def secure_redirect_uri(uri: Optional[str]) -> str:
    """Force the callback URI onto TLS; anything that is not http(s) is a config bug."""
    raw = (uri or "").strip()
    if not raw:
        raise ConfigurationError("YAHOO_REDIRECT_URI is not configured")
    parts = urlsplit(raw)
    scheme = parts.scheme.lower()
    if scheme == "http":
        parts = parts._replace(scheme="https")
    elif scheme != "https":
        raise ConfigurationError(f"YAHOO_REDIRECT_URI must be an http(s) URL, got scheme {parts.scheme!r}")
    if not parts.netloc:
        raise ConfigurationError("YAHOO_REDIRECT_URI has no host")
    return urlunsplit(parts)


def require_client_id(settings: Settings) -> str:
    if not settings.YAHOO_CLIENT_ID:
        raise ConfigurationError("YAHOO_CLIENT_ID is not configured")
    return settings.YAHOO_CLIENT_ID


def require_client_credentials(settings: Settings) -> tuple[str, str]:
    client_id = require_client_id(settings)
    if not settings.YAHOO_CLIENT_SECRET:
        raise ConfigurationError("YAHOO_CLIENT_SECRET is not configured")
    return client_id, settings.YAHOO_CLIENT_SECRET


def get_authorization_url(settings: Settings, state: str) -> str:
    """Yahoo request_auth URL. No network call."""
    client_id = require_client_id(settings)
    redirect_uri = secure_redirect_uri(settings.YAHOO_REDIRECT_URI)
    oauth = OAuth2Session(
        client_id=client_id,
        redirect_uri=redirect_uri,
        scope=[settings.YAHOO_SCOPE],
    )
    authorize_url, _ = oauth.authorization_url(
        settings.YAHOO_AUTH_URL,
        state=state,
        language=settings.YAHOO_LANGUAGE,
    )
    return authorize_url


# ---- Token endpoint ----
class ProviderTokenError(Exception):
    """Non-2xx (or unreachable) token endpoint. status is None for network failures."""

    def __init__(self, status: Optional[int], error: Optional[str], description: str, body: str = ""):
        super().__init__(f"Yahoo token endpoint {status}: {error or ''} {description}".strip())
        self.status = status
        self.error = error
        self.description = description
        self.body = body

    @property
    def is_invalid_grant(self) -> bool:
        return (self.error or "").lower() == "invalid_grant"


class YahooTokenEndpoint:
    """POSTs to Yahoo's get_token with Basic client authentication. Never retried."""

    def __init__(self, settings: Settings, session: requests.Session):
        self._settings = settings
        self._session = session

    def exchange_code(self, code: str) -> dict:
        return self._post({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": secure_redirect_uri(self._settings.YAHOO_REDIRECT_URI),
        })

    def refresh(self, refresh_token: str) -> dict:
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        if self._settings.YAHOO_REDIRECT_URI:
            data["redirect_uri"] = secure_redirect_uri(self._settings.YAHOO_REDIRECT_URI)
        return self._post(data)

    def _post(self, data: dict) -> dict:
        auth = require_client_credentials(self._settings)
        grant = data["grant_type"]
        try:
            r = self._session.post(
                self._settings.YAHOO_TOKEN_URL,
                data=data,
                auth=auth,  # HTTP Basic client_id:client_secret
                headers={"Accept": "application/json"},
                timeout=self._settings.YAHOO_HTTP_TIMEOUT,
            )
        except requests.RequestException as exc:
            log.warning("Yahoo token endpoint unreachable (grant=%s): %s", grant, exc)
            raise ProviderTokenError(None, None, str(exc)) from exc

        body = r.text[:2000] if r.text else ""
        if not 200 <= r.status_code < 300:  # Yahoo throttles with 999, which requests treats as ok
            error, description = _token_error_fields(r)
            log.warning("Yahoo token endpoint rejected grant=%s: %s %s %s", grant, r.status_code, error, description)
            raise ProviderTokenError(r.status_code, error, description, body)

        try:
            payload = r.json()
        except ValueError as exc:
            raise ProviderTokenError(r.status_code, "invalid_response", "token response was not JSON", body) from exc
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise ProviderTokenError(r.status_code, "invalid_response", "token response missing access_token", body)
        return payload


def _token_error_fields(r: requests.Response) -> tuple[Optional[str], str]:
    try:
        payload = r.json()
    except ValueError:
        return None, (r.text or "")[:300]
    if not isinstance(payload, dict):
        return None, str(payload)[:300]
    error = payload.get("error")
    if isinstance(error, dict):  # some Yahoo errors nest {"error": {"description": ...}}
        return error.get("error"), str(error.get("description") or "")
    return error, str(payload.get("error_description") or "")
