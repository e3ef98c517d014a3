import logging
from urllib.parse import parse_qs, urlsplit

from fastapi.testclient import TestClient

from conftest import TOKEN_URL, token_response
from fantasy_link.core.runtime import Runtime
from fantasy_link.main import create_app
from payloads import league_settings, league_teams, team_details, user_leagues


def _qs(url):
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


def _connect_via_api(client, yahoo, user_id="user-1"):
    yahoo.on("POST", TOKEN_URL, token_response("access-1", "refresh-1"))
    auth_url = client.post("/auth/yahoo/authorize", json={"userId": user_id}).json()["authUrl"]
    state = _qs(auth_url)["state"]
    client.get("/auth/yahoo/callback", params={"code": "code-1", "state": state}, follow_redirects=False)
    return client.post("/auth/yahoo/token", params={"user_id": user_id})


def test_health(client):
    assert client.get("/health").json() == {"ok": True, "env": "local"}


def test_authorize_returns_url(client, settings):
    r = client.post("/auth/yahoo/authorize", json={"userId": "user-1"})

    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["authUrl"].startswith(settings.YAHOO_AUTH_URL)
    assert len(_qs(body["authUrl"])["state"]) >= 32


def test_authorize_requires_user(client):
    r = client.post("/auth/yahoo/authorize", json={})

    assert r.status_code == 400
    assert r.json()["error"] == "missing_params"


def test_login_redirects_to_yahoo(client, settings):
    r = client.get("/auth/yahoo/login", params={"user_id": "user-1"}, follow_redirects=False)

    assert r.status_code == 302
    assert r.headers["location"].startswith(settings.YAHOO_AUTH_URL)


def test_login_debug_returns_json(client):
    r = client.get("/auth/yahoo/login", params={"user_id": "user-1", "debug": "true"})

    assert r.json()["user_id"] == "user-1"
    assert "state=" in r.json()["authorize_url"]


def test_user_id_from_header(client):
    r = client.get("/auth/yahoo/login", params={"debug": "true"}, headers={"X-User-Id": "user-9"})

    assert r.json()["user_id"] == "user-9"


def test_login_without_user(client):
    r = client.get("/auth/yahoo/login")

    assert r.status_code == 400
    assert r.json()["error"] == "missing_params"


def test_full_connect_flow(client, yahoo):
    r = _connect_via_api(client, yahoo)

    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["connected"] is True
    assert body["hasRefreshToken"] is True

    status = client.get("/auth/yahoo/tokens", params={"user_id": "user-1"})
    assert status.status_code == 200
    assert status.json()["isExpired"] is False
    assert "access-1" not in status.text
    assert "refresh-1" not in status.text


def test_callback_success_redirects_to_frontend(client):
    auth_url = client.post("/auth/yahoo/authorize", json={"userId": "user-1"}).json()["authUrl"]

    r = client.get(
        "/auth/yahoo/callback",
        params={"code": "code-1", "state": _qs(auth_url)["state"]},
        follow_redirects=False,
    )

    assert r.status_code == 302
    assert r.headers["location"] == "https://app.example.com/auth/yahoo-callback?status=code_received"


def test_callback_provider_error_redirects_with_error(client):
    r = client.get(
        "/auth/yahoo/callback",
        params={"error": "access_denied", "error_description": "User said no"},
        follow_redirects=False,
    )

    location = r.headers["location"]
    assert location.startswith("https://app.example.com/auth/yahoo-error?")
    assert _qs(location) == {"error": "access_denied", "error_description": "User said no"}


def test_callback_bad_state(client, yahoo):
    r = client.get("/auth/yahoo/callback", params={"code": "c", "state": "z" * 32}, follow_redirects=False)

    assert _qs(r.headers["location"])["error"] == "invalid_state"
    assert yahoo.token_calls() == []


def test_exchange_failure_status_is_propagated(client, yahoo):
    auth_url = client.post("/auth/yahoo/authorize", json={"userId": "user-1"}).json()["authUrl"]
    client.get("/auth/yahoo/callback", params={"code": "c", "state": _qs(auth_url)["state"]}, follow_redirects=False)
    yahoo.on("POST", TOKEN_URL, (401, {"error": "invalid_client"}))

    r = client.post("/auth/yahoo/token", params={"user_id": "user-1"})

    assert r.status_code == 401
    assert r.json()["error"] == "token_exchange_failed"


def test_tokens_when_not_connected(client):
    r = client.get("/auth/yahoo/tokens", params={"user_id": "user-1"})

    assert r.status_code == 404
    assert r.json() == {
        "error": "not_connected",
        "message": "No Yahoo tokens found for user",
        "details": "No Yahoo tokens found for user user-1",
    }


def test_refresh_route(client, yahoo, connect):
    connect("user-1", refresh="refresh-0")
    yahoo.on("POST", TOKEN_URL, token_response("access-2", "refresh-2"))

    r = client.post("/auth/yahoo/refresh", params={"user_id": "user-1"})

    assert r.status_code == 200
    assert r.json()["connected"] is True
    assert len(yahoo.token_calls("refresh_token")) == 1


def test_refresh_route_not_connected(client):
    r = client.post("/auth/yahoo/refresh", params={"user_id": "user-1"})

    assert r.status_code == 401
    assert r.json() == {
        "error": "not_connected",
        "message": "You are not connected to Yahoo Fantasy. Please connect your account.",
        "details": "No Yahoo tokens found for user user-1",
    }


def test_disconnect_is_idempotent(client, connect):
    connect("user-1")

    first = client.post("/auth/yahoo/disconnect", params={"user_id": "user-1"})
    second = client.post("/auth/yahoo/disconnect", params={"user_id": "user-1"})

    assert first.json() == {"success": True, "message": "Yahoo account disconnected successfully"}
    assert second.json() == {"success": True, "message": "User was not connected to Yahoo"}
    assert client.get("/auth/yahoo/tokens", params={"user_id": "user-1"}).status_code == 404


def test_league_route(client, yahoo, connect):
    connect("user-1")
    yahoo.on("GET", "/league/449.l.1234/settings", (200, league_settings()))
    yahoo.on("GET", "/league/449.l.1234/teams", (200, league_teams()))

    r = client.get("/yahoo/leagues/449.l.1234", headers={"X-User-Id": "user-1"})

    assert r.status_code == 200
    body = r.json()
    assert body["id"] == "yahoo-449-l-1234"
    assert body["commissioner"]["name"] == "Sam"


def test_league_teams_route(client, yahoo, connect):
    connect("user-1")
    yahoo.on("GET", "/league/449.l.1234/teams", (200, league_teams()))

    r = client.get("/yahoo/leagues/449.l.1234/teams", params={"user_id": "user-1"})

    assert [t["id"] for t in r.json()] == ["yahoo-449-l-1234-t-1", "yahoo-449-l-1234-t-2"]


def test_user_leagues_route(client, yahoo, connect):
    connect("user-1")
    yahoo.on("GET", "/users;use_login=1/games", (200, user_leagues()))

    r = client.get("/yahoo/leagues", params={"user_id": "user-1", "game_keys": "449, 423"})

    assert r.status_code == 200
    assert len(r.json()) == 2
    assert yahoo.calls_to("game_keys=449,423")


def test_team_route(client, yahoo, connect):
    connect("user-1")
    yahoo.on("GET", "/team/449.l.1234.t.1;out=", (200, team_details()))

    r = client.get("/yahoo/teams/449.l.1234.t.1", params={"user_id": "user-1"})

    assert r.status_code == 200
    assert {p["name"] for p in r.json()["roster"]} == {"Patrick Mahomes", "Travis Kelce"}


def test_data_route_without_connection(client):
    r = client.get("/yahoo/leagues/449.l.1234", params={"user_id": "user-1"})

    assert r.status_code == 401
    assert r.json()["error"] == "not_connected"


def test_rate_limit_sets_retry_after(client, yahoo, connect):
    connect("user-1")
    yahoo.on("GET", "/league/449.l.1234/settings", (999, "Request denied", {"Retry-After": "60"}))

    r = client.get("/yahoo/leagues/449.l.1234", params={"user_id": "user-1"})

    assert r.status_code == 429
    assert r.headers["retry-after"] == "60"
    assert r.json()["error"] == "rate_limited"


def test_malformed_key_route(client, connect):
    connect("user-1")

    r = client.get("/yahoo/leagues/not-a-key", params={"user_id": "user-1"})

    assert r.status_code == 404
    assert r.json()["error"] == "not_found"


def test_routes_unavailable_before_startup(settings):
    app = create_app(runtime=Runtime(settings))
    client = TestClient(app)  # no lifespan

    r = client.get("/auth/yahoo/tokens", params={"user_id": "user-1"})

    assert r.status_code == 503
    assert r.json()["error"] == "service_unavailable"
    assert set(r.json()) == {"error", "message", "details"}


def test_access_log_omits_query_string(client, caplog):
    with caplog.at_level(logging.INFO, logger="fantasy_link.access"):
        client.get(
            "/auth/yahoo/callback",
            params={"code": "secret-code", "state": "s" * 32},
            follow_redirects=False,
        )

    assert any("GET /auth/yahoo/callback -> 302" in m for m in caplog.messages)
    assert all("secret-code" not in m for m in caplog.messages)
