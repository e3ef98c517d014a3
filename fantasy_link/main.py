# fantasy_link/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fantasy_link.api import routes_auth, routes_league
from fantasy_link.core.config import Settings, get_settings
from fantasy_link.core.errors import FantasyLinkError, RateLimited
from fantasy_link.core.logging import configure_logging
from fantasy_link.core.runtime import Runtime
from fantasy_link.middleware.request_log import RequestLogMiddleware

log = logging.getLogger(__name__)


async def _fantasy_link_error_handler(request: Request, exc: FantasyLinkError) -> JSONResponse:
    # provider diagnostics go to the log; the classified kind goes to the caller
    log.warning(
        "%s on %s %s: %s (provider_status=%s body=%r)",
        exc.kind, request.method, request.url.path, exc.details, exc.provider_status,
        (exc.provider_body or "")[:300],
    )
    headers = {}
    if isinstance(exc, RateLimited) and exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code, headers=headers)


def create_app(settings: Optional[Settings] = None, runtime: Optional[Runtime] = None) -> FastAPI:
    settings = settings or (runtime.settings if runtime else get_settings())
    configure_logging(settings.LOG_LEVEL)
    settings.validate_at_startup()
    runtime = runtime or Runtime(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.runtime = runtime.init()
        try:
            yield
        finally:
            runtime.close()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,
    )
    app.add_exception_handler(FantasyLinkError, _fantasy_link_error_handler)

    # Routers
    app.include_router(routes_auth.router)
    app.include_router(routes_league.router)

    @app.get("/health")
    def health():
        return {"ok": True, "env": settings.APP_ENV}

    log.info("CORS allow_origins = %s", settings.CORS_ORIGINS)
    return app
