# fantasy_link/services/yahoo/auth_flow.py
"""
Yahoo connect flow: authorization redirect, callback validation and code exchange.

    AWAITING_CALLBACK -> CODE_RECEIVED -> EXCHANGING -> COMPLETE | FAILED

The callback only parks the code (write-once slot, short TTL); the exchange runs on
the next authenticated request for the same user.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from fantasy_link.core.config import Settings
from fantasy_link.core.crypto import mask
from fantasy_link.core.errors import (
    InvalidState,
    MissingParams,
    TokenExchangeFailed,
)
from fantasy_link.schemas.tokens import TokenPair
from fantasy_link.services.tokens import TokenStore
from fantasy_link.services.ttl_store import TTLStore
from fantasy_link.services.yahoo.oauth import (
    ProviderTokenError,
    YahooTokenEndpoint,
    generate_state,
    get_authorization_url,
    require_client_credentials,
)

log = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 3600


class FlowState(str, enum.Enum):
    AWAITING_CALLBACK = "awaiting_callback"
    CODE_RECEIVED = "code_received"
    EXCHANGING = "exchanging"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class AuthorizationState:
    state: str
    user_id: str
    created_at: datetime


@dataclass(frozen=True)
class PendingCode:
    code: str
    user_id: str
    received_at: datetime


@dataclass(frozen=True)
class AuthorizationRequest:
    authorization_url: str
    state: str


@dataclass
class CallbackResult:
    status: FlowState
    user_id: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is FlowState.CODE_RECEIVED


def token_pair_from_response(payload: dict, now: datetime, previous_refresh: Optional[str] = None) -> TokenPair:
    """expiresAt is always now + expires_in from Yahoo, never taken from a client."""
    try:
        expires_in = int(payload.get("expires_in") or DEFAULT_EXPIRES_IN)
    except (TypeError, ValueError):
        expires_in = DEFAULT_EXPIRES_IN
    return TokenPair(
        access_token=payload["access_token"],
        refresh_token=payload.get("refresh_token") or previous_refresh,
        expires_at=now + timedelta(seconds=expires_in),
        updated_at=now,
        connected=True,
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthorizationFlow:
    def __init__(
        self,
        settings: Settings,
        states: TTLStore,
        codes: TTLStore,
        token_store: TokenStore,
        endpoint: YahooTokenEndpoint,
        now: Callable[[], datetime] = _utcnow,
    ):
        self._settings = settings
        self._states = states
        self._codes = codes
        self._tokens = token_store
        self._endpoint = endpoint
        self._now = now

    @property
    def state_ttl(self) -> timedelta:
        return timedelta(seconds=self._settings.OAUTH_STATE_TTL_SECONDS)

    # ---------- redirect builder ----------

    def initiate(self, user_id: str) -> AuthorizationRequest:
        uid = (user_id or "").strip()
        if not uid:
            raise MissingParams("User ID is required")

        state = generate_state(self._settings.OAUTH_STATE_LENGTH)
        url = get_authorization_url(self._settings, state)  # raises ConfigurationError first

        self._states.put(
            state,
            AuthorizationState(state=state, user_id=uid, created_at=self._now()),
            ttl_seconds=self._settings.OAUTH_STATE_TTL_SECONDS,
        )
        log.info("Initiating Yahoo auth for user=%s state=%s", uid, mask(state, 5))
        return AuthorizationRequest(authorization_url=url, state=state)

    # ---------- callback ----------

    def handle_callback(
        self,
        *,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> CallbackResult:
        # state is single use whatever happens next
        record: Optional[AuthorizationState] = self._states.take_once(state) if state else None

        if error:
            log.warning("Yahoo returned an authorization error: %s (%s)", error, error_description)
            return CallbackResult(
                FlowState.FAILED,
                user_id=record.user_id if record else None,
                error=error,
                error_description=error_description,
            )

        if not code or not state:
            missing = "code" if not code else "state"
            log.warning("Yahoo callback missing %s", missing)
            return CallbackResult(
                FlowState.FAILED,
                error=MissingParams.kind,
                error_description=f"Missing {missing} in callback",
            )

        if record is None or self._now() - record.created_at > self.state_ttl:
            log.warning("Rejected Yahoo callback with unknown or expired state=%s", mask(state, 5))
            return CallbackResult(
                FlowState.FAILED,
                error=InvalidState.kind,
                error_description="State mismatch or expired authorization request",
            )

        self._codes.put(
            record.user_id,
            PendingCode(code=code, user_id=record.user_id, received_at=self._now()),
            ttl_seconds=self._settings.OAUTH_CODE_TTL_SECONDS,
        )
        log.info("Received Yahoo authorization code for user=%s", record.user_id)
        return CallbackResult(FlowState.CODE_RECEIVED, user_id=record.user_id)

    # ---------- exchange ----------

    def exchange_code(self, user_id: str) -> TokenPair:
        uid = (user_id or "").strip()
        if not uid:
            raise MissingParams("User ID is required")
        require_client_credentials(self._settings)

        pending: Optional[PendingCode] = self._codes.take_once(uid)
        if pending is None:
            raise MissingParams("No authorization code found; restart the Yahoo connect flow")

        log.info("Exchanging Yahoo authorization code for user=%s (%s)", uid, FlowState.EXCHANGING.value)
        try:
            payload = self._endpoint.exchange_code(pending.code)
        except ProviderTokenError as exc:
            raise TokenExchangeFailed(
                f"Token exchange failed: {exc.status} {exc.error or ''} {exc.description}".strip(),
                provider_status=exc.status,
                provider_body=exc.body,
            ) from exc

        pair = token_pair_from_response(payload, self._now())
        with self._tokens.locked(uid):
            self._tokens.put(uid, pair)
        log.info("Yahoo connect flow %s for user=%s", FlowState.COMPLETE.value, uid)
        return pair

    def disconnect(self, user_id: str) -> bool:
        """Returns whether the user had tokens before; always succeeds."""
        uid = (user_id or "").strip()
        if not uid:
            raise MissingParams("User ID is required")
        # an in-flight refresh sees the cleared row at commit time and discards its result
        with self._tokens.locked(uid):
            had_tokens = self._tokens.get(uid) is not None
            self._tokens.clear(uid)
        return had_tokens
