"""
Yahoo Fantasy provider package: OAuth flow, token refresh and the authenticated data client.
"""

from .oauth import (
    ProviderTokenError,
    YahooTokenEndpoint,
    generate_state,
    get_authorization_url,
    secure_redirect_uri,
)
from .auth_flow import (
    AuthorizationFlow,
    AuthorizationRequest,
    AuthorizationState,
    CallbackResult,
    FlowState,
)
from .refresher import TokenRefresher
from .client import YahooClient, build_http_session, classify_response
from .leagues import fetch_league, fetch_league_teams, fetch_user_leagues
from .teams import fetch_team

__all__ = [
    "AuthorizationFlow",
    "AuthorizationRequest",
    "AuthorizationState",
    "CallbackResult",
    "FlowState",
    "ProviderTokenError",
    "TokenRefresher",
    "YahooClient",
    "YahooTokenEndpoint",
    "build_http_session",
    "classify_response",
    "fetch_league",
    "fetch_league_teams",
    "fetch_team",
    "fetch_user_leagues",
    "generate_state",
    "get_authorization_url",
    "secure_redirect_uri",
]
