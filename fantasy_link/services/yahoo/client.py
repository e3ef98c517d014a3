# fantasy_link/services/yahoo/client.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from urllib.parse import parse_qsl

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from fantasy_link.core.config import Settings
from fantasy_link.core.errors import (
    AmbiguousLookup,
    FantasyLinkError,
    NoTokenError,
    PermissionDenied,
    RateLimited,
    ReauthorizationRequired,
    UpstreamError,
)
from fantasy_link.services.tokens import TokenStore
from fantasy_link.services.yahoo.refresher import TokenRefresher

log = logging.getLogger(__name__)

RATE_LIMIT_STATUSES = {429, 999}  # Yahoo answers 999 when throttling


def build_http_session(settings: Settings) -> requests.Session:
    """Pooled session for Yahoo. Only idempotent GETs are retried."""
    s = requests.Session()
    s.headers.update({"User-Agent": f"{settings.APP_NAME}/1.0", "Accept": "application/json"})
    s.mount(
        "https://",
        HTTPAdapter(
            pool_connections=8,
            pool_maxsize=16,
            max_retries=Retry(
                total=2,
                backoff_factor=0.2,
                status_forcelist=[500, 502, 503, 504],
                allowed_methods=["GET"],
                raise_on_status=False,
            ),
        ),
    )
    s.verify = settings.tls_verify
    if not s.verify:
        log.warning("TLS certificate verification is DISABLED for Yahoo calls (local only)")
    return s


def _auth_headers(access_token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {access_token}"}


def _yahoo_description(resp: requests.Response) -> str:
    # Yahoo error bodies: {"error": {"description": ...}} or XML
    try:
        body = resp.json()
    except ValueError:
        return (resp.text or "")[:300]
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict):
            return str(err.get("description") or err)
        if err:
            return str(body.get("error_description") or err)
    return str(body)[:300]


def classify_response(resp: requests.Response) -> FantasyLinkError:
    """Map a non-2xx, non-401 Yahoo response onto the error taxonomy."""
    status = resp.status_code
    body = (resp.text or "")[:2000]
    desc = f"Yahoo error {status} on {resp.url} :: {_yahoo_description(resp)}"
    if status in RATE_LIMIT_STATUSES:
        return RateLimited(desc, retry_after=resp.headers.get("Retry-After"), provider_status=status, provider_body=body)
    if status in (400, 404):
        return AmbiguousLookup(desc, provider_status=status, provider_body=body)
    if status == 403:
        return PermissionDenied(desc, provider_status=status, provider_body=body)
    return UpstreamError(desc, provider_status=status, provider_body=body)


class YahooClient:
    """
    Authenticated Yahoo Fantasy GETs.

    Refreshes up front when the stored token is expired, and once more reactively
    if Yahoo still answers 401; a second 401 ends the call.
    """

    def __init__(
        self,
        settings: Settings,
        token_store: TokenStore,
        refresher: TokenRefresher,
        session: requests.Session,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._settings = settings
        self._tokens = token_store
        self._refresher = refresher
        self._session = session
        self._now = now

    def get(self, user_id: str, path: str, params: Optional[dict] = None) -> dict:
        uid = (user_id or "").strip()
        pair = self._tokens.get(uid)
        if pair is None:
            raise NoTokenError(f"No Yahoo tokens found for user_id={uid!r}. Connect Yahoo first.")

        if pair.is_expired(self._now(), self._settings.YAHOO_REFRESH_LEEWAY_SECONDS):
            log.debug("Yahoo token for user=%s expired; refreshing before %s", uid, path)
            pair = self._refresher.refresh(uid, stale_access_token=pair.access_token)

        resp = self._send(path, params, pair.access_token)
        if resp.status_code == 401:
            log.info("Yahoo returned 401 for user=%s on %s; refreshing once", uid, path)
            pair = self._refresher.refresh(uid, stale_access_token=pair.access_token)
            resp = self._send(path, params, pair.access_token)
            if resp.status_code == 401:
                raise ReauthorizationRequired(
                    f"Yahoo rejected a freshly refreshed token on {path} :: {_yahoo_description(resp)}",
                    provider_status=401,
                    provider_body=(resp.text or "")[:2000],
                )

        if not 200 <= resp.status_code < 300:
            exc = classify_response(resp)
            log.warning("Yahoo %s for user=%s: %s", exc.kind, uid, exc.details)
            raise exc

        try:
            payload = resp.json()
        except ValueError:
            raise UpstreamError(
                f"Yahoo returned non-JSON on {resp.url} (content-type={resp.headers.get('content-type')!r})",
                provider_status=resp.status_code,
                provider_body=(resp.text or "")[:300],
            )
        if not isinstance(payload, dict) or "fantasy_content" not in payload:
            raise UpstreamError(f"Unexpected Yahoo payload shape on {resp.url}", provider_status=resp.status_code)
        return payload

    def _send(self, path: str, params: Optional[dict], access_token: str) -> requests.Response:
        base = self._settings.YAHOO_API_BASE.rstrip("/")
        rel = path.lstrip("/")
        q: Dict[str, Any] = {}
        if "?" in rel:
            rel, embedded_qs = rel.split("?", 1)
            q.update(dict(parse_qsl(embedded_qs, keep_blank_values=True)))
        q.update(params or {})
        q.setdefault("format", "json")
        try:
            return self._session.get(
                f"{base}/{rel}",
                headers=_auth_headers(access_token),
                params=q,
                timeout=self._settings.YAHOO_HTTP_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise UpstreamError(f"Yahoo request to /{rel} failed: {exc}") from exc
