# fantasy_link/core/runtime.py
"""
Process-wide resources, created once and handed to components explicitly.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Optional

import requests

from fantasy_link.core.config import Settings
from fantasy_link.core.crypto import TokenCipher
from fantasy_link.db.engine import build_engine, build_session_factory
from fantasy_link.db.models import Base
from fantasy_link.services.tokens import TokenStore
from fantasy_link.services.ttl_store import TTLStore
from fantasy_link.services.yahoo import (
    AuthorizationFlow,
    TokenRefresher,
    YahooClient,
    YahooTokenEndpoint,
    build_http_session,
)

log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Runtime:
    """
    Owns the engine, HTTP session and the token/flow services.

    `init()` is idempotent and thread-safe; `close()` releases what `init()` built.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        http_session: Optional[requests.Session] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.settings = settings
        self._http_override = http_session
        self._now = now
        self._lock = threading.Lock()
        self._initialized = False

        self.engine = None
        self.http: Optional[requests.Session] = None
        self.token_store: Optional[TokenStore] = None
        self.states: Optional[TTLStore] = None
        self.codes: Optional[TTLStore] = None
        self.endpoint: Optional[YahooTokenEndpoint] = None
        self.flow: Optional[AuthorizationFlow] = None
        self.refresher: Optional[TokenRefresher] = None
        self.client: Optional[YahooClient] = None

    @property
    def initialized(self) -> bool:
        return self._initialized

    def now(self) -> datetime:
        return self._now()

    def init(self) -> "Runtime":
        with self._lock:
            if self._initialized:
                return self
            s = self.settings
            self.engine = build_engine(s.database_url)
            Base.metadata.create_all(self.engine)
            sessions = build_session_factory(self.engine)

            clock = lambda: self._now().timestamp()
            self.http = self._http_override or build_http_session(s)
            self.token_store = TokenStore(self.engine, sessions, TokenCipher(s.ENCRYPTION_KEY))
            self.states = TTLStore(clock=clock)
            self.codes = TTLStore(clock=clock)
            self.endpoint = YahooTokenEndpoint(s, self.http)
            self.flow = AuthorizationFlow(s, self.states, self.codes, self.token_store, self.endpoint, now=self._now)
            self.refresher = TokenRefresher(self.token_store, self.endpoint, now=self._now)
            self.client = YahooClient(s, self.token_store, self.refresher, self.http, now=self._now)

            self._initialized = True
            log.info("Runtime initialized (env=%s, db=%s)", s.APP_ENV, self.engine.url.get_backend_name())
            return self

    def close(self) -> None:
        with self._lock:
            if not self._initialized:
                return
            if self.http is not None and self._http_override is None:
                self.http.close()
            if self.engine is not None:
                self.engine.dispose()
            self._initialized = False
            log.info("Runtime closed")
