# fantasy_link/services/yahoo/refresher.py
from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from fantasy_link.core.errors import NoTokenError, ReauthorizationRequired, RefreshFailed
from fantasy_link.schemas.tokens import TokenPair
from fantasy_link.services.tokens import TokenStore
from fantasy_link.services.yahoo.auth_flow import token_pair_from_response
from fantasy_link.services.yahoo.oauth import ProviderTokenError, YahooTokenEndpoint

log = logging.getLogger(__name__)


class _Flight:
    """One in-progress refresh; followers wait on `done` and share the outcome."""

    def __init__(self) -> None:
        self.done = threading.Event()
        self.waiters = 0
        self.result: Optional[TokenPair] = None
        self.error: Optional[BaseException] = None


class TokenRefresher:
    """
    Exchanges refresh tokens with Yahoo, at most one exchange in flight per user.

    The leader runs the exchange on the worker thread of the request that
    triggered it. Sync handlers are never cancelled, so the exchange runs to
    completion and commits even if that client has gone away.

    The commit happens only if the stored row still holds the refresh token that
    was exchanged; a disconnect or reconnect in the meantime wins.
    """

    def __init__(
        self,
        token_store: TokenStore,
        endpoint: YahooTokenEndpoint,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._store = token_store
        self._endpoint = endpoint
        self._now = now
        self._guard = threading.Lock()
        self._flights: Dict[str, _Flight] = {}

    def refresh(self, user_id: str, *, stale_access_token: Optional[str] = None) -> TokenPair:
        """
        Refresh the user's pair. Pass the access token Yahoo just rejected as
        `stale_access_token`: if someone already replaced it, the stored pair is
        returned without another exchange.
        """
        with self._guard:
            flight = self._flights.get(user_id)
            leader = flight is None
            if leader:
                flight = _Flight()
                self._flights[user_id] = flight
            else:
                flight.waiters += 1

        if not leader:
            log.debug("Joining in-flight Yahoo refresh for user=%s", user_id)
            flight.done.wait()
            if flight.error is not None:
                raise flight.error
            return flight.result

        try:
            flight.result = self._refresh_now(user_id, stale_access_token)
            return flight.result
        except BaseException as exc:
            flight.error = exc
            raise
        finally:
            with self._guard:
                self._flights.pop(user_id, None)
            flight.done.set()

    def pending(self, user_id: str) -> int:
        """Callers currently waiting on this user's in-flight refresh."""
        with self._guard:
            flight = self._flights.get(user_id)
            return flight.waiters if flight else 0

    def _refresh_now(self, user_id: str, stale_access_token: Optional[str]) -> TokenPair:
        current = self._store.get(user_id)
        if current is None or not current.refresh_token:
            raise NoTokenError(f"No Yahoo tokens found for user {user_id}")

        now = self._now()
        if (
            stale_access_token
            and current.access_token != stale_access_token
            and not current.is_expired(now)
        ):
            log.debug("Yahoo tokens for user=%s already refreshed elsewhere", user_id)
            return current

        log.info("Refreshing Yahoo tokens for user=%s", user_id)
        try:
            payload = self._endpoint.refresh(current.refresh_token)
        except ProviderTokenError as exc:
            if exc.is_invalid_grant:
                log.warning("Yahoo refresh token rejected (invalid_grant) for user=%s; clearing", user_id)
                with self._store.locked(user_id):
                    if self._holds(user_id, current.refresh_token):
                        self._store.clear(user_id)
                raise ReauthorizationRequired(
                    f"Yahoo rejected the refresh token: {exc.description or exc.error}",
                    provider_status=exc.status,
                    provider_body=exc.body,
                ) from exc
            raise RefreshFailed(
                f"Failed to refresh Yahoo tokens: {exc.status or 'network'} {exc.error or ''} {exc.description}".strip(),
                provider_status=exc.status,
                provider_body=exc.body,
            ) from exc

        # Yahoo does not always rotate the refresh token
        pair = token_pair_from_response(payload, self._now(), previous_refresh=current.refresh_token)
        with self._store.locked(user_id):
            stored = self._store.get(user_id)
            if stored is None or not stored.refresh_token:
                log.warning("Yahoo was disconnected for user=%s mid-refresh; discarding new tokens", user_id)
                raise NoTokenError(f"No Yahoo tokens found for user {user_id}")
            if stored.refresh_token != current.refresh_token:
                log.info("Yahoo tokens for user=%s replaced mid-refresh; keeping stored pair", user_id)
                return stored
            self._store.put(user_id, pair)
        log.info("Yahoo tokens refreshed for user=%s", user_id)
        return pair

    def _holds(self, user_id: str, refresh_token: str) -> bool:
        stored = self._store.get(user_id)
        return stored is not None and stored.refresh_token == refresh_token
