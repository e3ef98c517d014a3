from datetime import timedelta

import pytest
import requests

from conftest import TOKEN_URL, form, token_response
from fantasy_link.core.errors import MissingParams, TokenExchangeFailed
from fantasy_link.services.yahoo import FlowState


@pytest.fixture
def started(runtime):
    return runtime.flow.initiate("user-1")


def test_valid_callback_parks_code_without_exchanging(runtime, yahoo, started):
    result = runtime.flow.handle_callback(code="code-123", state=started.state)

    assert result.ok
    assert result.status is FlowState.CODE_RECEIVED
    assert result.user_id == "user-1"
    assert yahoo.token_calls() == []
    assert len(runtime.codes) == 1


def test_unknown_state_rejected_without_exchange(runtime, yahoo, started):
    result = runtime.flow.handle_callback(code="code-123", state="x" * 32)

    assert not result.ok
    assert result.error == "invalid_state"
    assert yahoo.token_calls() == []
    assert len(runtime.codes) == 0


def test_expired_state_rejected(runtime, clock, started):
    clock.advance(runtime.settings.OAUTH_STATE_TTL_SECONDS + 1)

    result = runtime.flow.handle_callback(code="code-123", state=started.state)

    assert result.error == "invalid_state"


def test_state_is_single_use(runtime, started):
    first = runtime.flow.handle_callback(code="code-1", state=started.state)
    second = runtime.flow.handle_callback(code="code-2", state=started.state)

    assert first.ok
    assert second.error == "invalid_state"


def test_provider_error_passed_through_and_state_consumed(runtime, started):
    result = runtime.flow.handle_callback(
        code=None, state=started.state, error="access_denied", error_description="User declined"
    )

    assert result.status is FlowState.FAILED
    assert result.error == "access_denied"
    assert result.error_description == "User declined"
    # the state cannot be replayed after an error
    assert runtime.flow.handle_callback(code="c", state=started.state).error == "invalid_state"


@pytest.mark.parametrize("code, state", [(None, "s" * 32), ("code", None), ("", "")])
def test_missing_callback_params(runtime, code, state):
    result = runtime.flow.handle_callback(code=code, state=state)

    assert result.error == "missing_params"


def test_exchange_stores_pair(runtime, yahoo, clock, started):
    yahoo.on("POST", TOKEN_URL, token_response("access-1", "refresh-1", expires_in=3600))
    runtime.flow.handle_callback(code="code-123", state=started.state)

    pair = runtime.flow.exchange_code("user-1")

    assert pair.access_token == "access-1"
    assert pair.expires_at == clock.now() + timedelta(seconds=3600)
    stored = runtime.token_store.get("user-1")
    assert stored.access_token == "access-1"
    assert stored.refresh_token == "refresh-1"

    (call,) = yahoo.token_calls("authorization_code")
    body = form(call)
    assert body["code"] == "code-123"
    assert body["redirect_uri"] == "https://api.example.com/auth/yahoo/callback"
    assert call.headers["Authorization"].startswith("Basic ")
    assert "client_secret" not in body


def test_exchange_defaults_expiry_when_missing(runtime, yahoo, clock, started):
    yahoo.on("POST", TOKEN_URL, (200, {"access_token": "a", "refresh_token": "r"}))
    runtime.flow.handle_callback(code="code-123", state=started.state)

    pair = runtime.flow.exchange_code("user-1")

    assert pair.expires_at == clock.now() + timedelta(seconds=3600)


def test_code_exchanged_at_most_once(runtime, yahoo, started):
    yahoo.on("POST", TOKEN_URL, token_response())
    runtime.flow.handle_callback(code="code-123", state=started.state)
    runtime.flow.exchange_code("user-1")

    with pytest.raises(MissingParams):
        runtime.flow.exchange_code("user-1")
    assert len(yahoo.token_calls()) == 1


def test_exchange_without_callback(runtime, yahoo):
    with pytest.raises(MissingParams):
        runtime.flow.exchange_code("user-1")
    assert yahoo.token_calls() == []


def test_expired_code_not_exchanged(runtime, yahoo, clock, started):
    runtime.flow.handle_callback(code="code-123", state=started.state)
    clock.advance(runtime.settings.OAUTH_CODE_TTL_SECONDS + 1)

    with pytest.raises(MissingParams):
        runtime.flow.exchange_code("user-1")
    assert yahoo.token_calls() == []


def test_exchange_failure_propagates_provider_status(runtime, yahoo, started):
    yahoo.on("POST", TOKEN_URL, (400, {"error": "invalid_grant", "error_description": "code expired"}))
    runtime.flow.handle_callback(code="code-123", state=started.state)

    with pytest.raises(TokenExchangeFailed) as exc_info:
        runtime.flow.exchange_code("user-1")

    assert exc_info.value.status_code == 400
    assert exc_info.value.provider_status == 400
    assert runtime.token_store.get("user-1") is None
    # the code slot was consumed by the failed attempt
    with pytest.raises(MissingParams):
        runtime.flow.exchange_code("user-1")


def test_network_failure_on_exchange_is_bad_gateway(runtime, yahoo, started):
    def boom(request):
        raise requests.ConnectionError("connection refused")

    yahoo.on("POST", TOKEN_URL, boom)
    runtime.flow.handle_callback(code="code-123", state=started.state)

    with pytest.raises(TokenExchangeFailed) as exc_info:
        runtime.flow.exchange_code("user-1")
    assert exc_info.value.status_code == 502


def test_disconnect_reports_previous_connection(runtime, connect):
    connect("user-1")

    assert runtime.flow.disconnect("user-1") is True
    assert runtime.token_store.get("user-1") is None
    assert runtime.flow.disconnect("user-1") is False
