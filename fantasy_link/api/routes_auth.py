# fantasy_link/api/routes_auth.py
import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse, JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from fantasy_link.deps import get_auth_flow, get_runtime, get_user_id
from fantasy_link.core.errors import NotConnected
from fantasy_link.core.runtime import Runtime
from fantasy_link.schemas.tokens import TokenStatus
from fantasy_link.services.yahoo import AuthorizationFlow

log = logging.getLogger(__name__)

router = APIRouter(prefix="/auth/yahoo", tags=["auth"])


class AuthorizeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(default="", alias="userId")


# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------
def _frontend_redirect(runtime: Runtime, path: str, **params) -> RedirectResponse:
    query = urlencode({k: v for k, v in params.items() if v is not None})
    url = f"{runtime.settings.frontend_url}{path}"
    return RedirectResponse(f"{url}?{query}" if query else url, status_code=302)


def _status(runtime: Runtime, user_id: str) -> dict:
    return TokenStatus.from_pair(user_id, runtime.token_store.get(user_id), now=runtime.now()).model_dump(
        by_alias=True, mode="json"
    )


# -------------------------------------------------------------------
# Connect flow
# -------------------------------------------------------------------
@router.post("/authorize")
def authorize(body: AuthorizeRequest, flow: AuthorizationFlow = Depends(get_auth_flow)):
    """Start the connect flow; the caller redirects the browser to `authUrl`."""
    req = flow.initiate(body.user_id)
    return {"success": True, "authUrl": req.authorization_url}


@router.get("/login")
def login(
    user_id: str = Depends(get_user_id),
    debug: bool = False,
    flow: AuthorizationFlow = Depends(get_auth_flow),
):
    req = flow.initiate(user_id)
    if debug:
        return JSONResponse({"authorize_url": req.authorization_url, "user_id": user_id})
    return RedirectResponse(req.authorization_url, status_code=302)


@router.get("/callback")
def callback(
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
    error_description: str | None = Query(default=None),
    runtime: Runtime = Depends(get_runtime),
):
    result = runtime.flow.handle_callback(
        code=code, state=state, error=error, error_description=error_description
    )
    if not result.ok:
        return _frontend_redirect(
            runtime,
            "/auth/yahoo-error",
            error=result.error,
            error_description=result.error_description,
        )
    return _frontend_redirect(runtime, "/auth/yahoo-callback", status=result.status.value)


@router.post("/token")
def exchange_token(
    user_id: str = Depends(get_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    """Second half of the connect flow: trade the parked code for tokens."""
    runtime.flow.exchange_code(user_id)
    return {"success": True, **_status(runtime, user_id)}


# -------------------------------------------------------------------
# Token lifecycle
# -------------------------------------------------------------------
@router.get("/tokens")
def get_tokens(
    user_id: str = Depends(get_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    status = _status(runtime, user_id)
    if not status["connected"]:
        raise NotConnected(f"No Yahoo tokens found for user {user_id}")
    return status


@router.post("/refresh")
def refresh_tokens(
    user_id: str = Depends(get_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    runtime.refresher.refresh(user_id)
    return {"success": True, **_status(runtime, user_id)}


@router.post("/disconnect")
def disconnect(
    user_id: str = Depends(get_user_id),
    flow: AuthorizationFlow = Depends(get_auth_flow),
):
    was_connected = flow.disconnect(user_id)
    log.info("Disconnect requested for user=%s (was_connected=%s)", user_id, was_connected)
    return {
        "success": True,
        "message": "Yahoo account disconnected successfully" if was_connected else "User was not connected to Yahoo",
    }
