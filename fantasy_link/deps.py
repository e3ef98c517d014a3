from fastapi import Header, Query, Request

from fantasy_link.core.errors import MissingParams, ServiceUnavailable
from fantasy_link.core.runtime import Runtime
from fantasy_link.services.yahoo import AuthorizationFlow, YahooClient


def get_user_id(
    user_id: str | None = Query(None, description="Application user id"),
    x_user_id: str | None = Header(None, alias="X-User-Id"),
) -> str:
    uid = (user_id or x_user_id or "").strip()
    if not uid:
        raise MissingParams("user_id is required (use ?user_id=<id> or header X-User-Id: <id>).")
    return uid


def get_runtime(request: Request) -> Runtime:
    runtime: Runtime | None = getattr(request.app.state, "runtime", None)
    if runtime is None or not runtime.initialized:
        raise ServiceUnavailable("Runtime is not initialized")
    return runtime


def get_auth_flow(request: Request) -> AuthorizationFlow:
    return get_runtime(request).flow


def get_yahoo_client(request: Request) -> YahooClient:
    return get_runtime(request).client
