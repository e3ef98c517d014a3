"""Shared fixtures: settings, a controllable clock, a fake Yahoo and a live runtime."""
import json
import threading
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, unquote, urlsplit

import pytest
import requests
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict

from fantasy_link.core.config import Settings
from fantasy_link.core.runtime import Runtime
from fantasy_link.main import create_app
from fantasy_link.schemas.tokens import TokenPair

TOKEN_URL = "https://api.login.yahoo.com/oauth2/get_token"


class FakeClock:
    def __init__(self, start: datetime):
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> None:
        with self._lock:
            self._now = self._now + timedelta(seconds=seconds)


class FakeYahoo(BaseAdapter):
    """
    requests transport standing in for Yahoo. Routes match on method + a fragment
    of the unquoted URL; the most recently registered route wins.
    """

    def __init__(self):
        super().__init__()
        self._routes = []
        self._lock = threading.Lock()
        self.calls = []

    def on(self, method, fragment, responder):
        """responder: (status, body[, headers]) or callable(request) returning that."""
        self._routes.append((method.upper(), fragment, responder))

    def calls_to(self, fragment, method=None):
        return [
            r for r in self.calls
            if fragment in unquote(r.url) and (method is None or r.method == method.upper())
        ]

    def token_calls(self, grant_type=None):
        out = []
        for r in self.calls_to(TOKEN_URL, "POST"):
            if grant_type is None or form(r).get("grant_type") == grant_type:
                out.append(r)
        return out

    def send(self, request, **kwargs):
        with self._lock:
            self.calls.append(request)
        url = unquote(request.url)
        for method, fragment, responder in reversed(self._routes):
            if method == request.method and fragment in url:
                result = responder(request) if callable(responder) else responder
                return self._build(request, *result)
        return self._build(request, 404, {"error": {"description": "no fake route for " + url}})

    def _build(self, request, status, body, headers=None):
        resp = requests.Response()
        resp.status_code = status
        if isinstance(body, (dict, list)):
            resp._content = json.dumps(body).encode()
            resp.headers = CaseInsensitiveDict({"Content-Type": "application/json", **(headers or {})})
        else:
            resp._content = (body or "").encode()
            resp.headers = CaseInsensitiveDict({"Content-Type": "text/html", **(headers or {})})
        resp.encoding = "utf-8"
        resp.url = request.url
        resp.request = request
        return resp

    def close(self):
        pass


def form(request) -> dict:
    body = request.body or ""
    if isinstance(body, bytes):
        body = body.decode()
    return {k: v[0] for k, v in parse_qs(body).items()}


def query(request) -> dict:
    return {k: v[0] for k, v in parse_qs(urlsplit(request.url).query).items()}


def token_response(access="access-1", refresh="refresh-1", expires_in=3600):
    body = {"access_token": access, "token_type": "bearer", "expires_in": expires_in}
    if refresh is not None:
        body["refresh_token"] = refresh
    return 200, body


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 10, 6, 17, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        ENCRYPTION_KEY=Fernet.generate_key().decode(),
        DATABASE_URL="sqlite:///:memory:",
        FRONTEND_URL="https://app.example.com",
        YAHOO_CLIENT_ID="client-abc",
        YAHOO_CLIENT_SECRET="secret-xyz",
        YAHOO_REDIRECT_URI="https://api.example.com/auth/yahoo/callback",
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def yahoo():
    return FakeYahoo()


@pytest.fixture
def http_session(yahoo):
    s = requests.Session()
    s.mount("https://", yahoo)
    return s


@pytest.fixture
def runtime(settings, http_session, clock):
    rt = Runtime(settings, http_session=http_session, now=clock.now).init()
    yield rt
    rt.close()


@pytest.fixture
def connect(runtime, clock):
    """Store a token pair for a user; expires_in may be negative for an expired pair."""
    def _connect(user_id="user-1", access="access-0", refresh="refresh-0", expires_in=3600):
        pair = TokenPair(
            access_token=access,
            refresh_token=refresh,
            expires_at=clock.now() + timedelta(seconds=expires_in),
            updated_at=clock.now(),
        )
        runtime.token_store.put(user_id, pair)
        return pair
    return _connect


@pytest.fixture
def client(runtime):
    app = create_app(runtime=runtime)
    with TestClient(app) as c:
        yield c
