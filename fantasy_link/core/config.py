# fantasy_link/core/config.py
from __future__ import annotations

import json
from functools import lru_cache
from typing import List, Literal, Optional

from cryptography.fernet import Fernet
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


EnvType = Literal["local", "dev", "staging", "prod"]

MIN_STATE_LENGTH = 32

_REQUIRED_OUTSIDE_LOCAL = ("YAHOO_CLIENT_ID", "YAHOO_CLIENT_SECRET", "YAHOO_REDIRECT_URI")


def _split_origins(raw) -> List[str]:
    """JSON list or comma-separated origins."""
    if isinstance(raw, (list, tuple)):
        return [str(o).strip() for o in raw if str(o).strip()]
    text = str(raw or "").strip()
    if text.startswith("["):
        try:
            return _split_origins(json.loads(text))
        except json.JSONDecodeError:
            pass
    return [o.strip() for o in text.split(",") if o.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # App
    APP_NAME: str = "FantasyLink"
    APP_ENV: EnvType = "local"
    LOG_LEVEL: str = "INFO"
    ENCRYPTION_KEY: str  # Fernet key for tokens at rest

    CORS_ORIGINS: str | List[str] = Field(
        default='["http://localhost:3000","http://127.0.0.1:3000"]',
        description="JSON list or comma-separated origins",
    )

    # User store; SQLite file when unset
    DATABASE_URL: Optional[str] = None

    # Post-auth redirects land here
    FRONTEND_URL: str = "http://localhost:3000"

    # Yahoo OAuth
    YAHOO_CLIENT_ID: Optional[str] = None
    YAHOO_CLIENT_SECRET: Optional[str] = None
    YAHOO_REDIRECT_URI: Optional[str] = None
    YAHOO_SCOPE: str = "fspt-r"
    YAHOO_LANGUAGE: str = "en-us"
    YAHOO_AUTH_URL: str = "https://api.login.yahoo.com/oauth2/request_auth"
    YAHOO_TOKEN_URL: str = "https://api.login.yahoo.com/oauth2/get_token"
    YAHOO_API_BASE: str = "https://fantasysports.yahooapis.com/fantasy/v2"

    # Outbound HTTP
    YAHOO_INSECURE_TLS: bool = False  # honoured only when APP_ENV=local
    YAHOO_HTTP_TIMEOUT: float = 15.0
    YAHOO_REFRESH_LEEWAY_SECONDS: int = 0

    # Connect flow
    OAUTH_STATE_TTL_SECONDS: int = 10 * 60
    OAUTH_CODE_TTL_SECONDS: int = 5 * 60
    OAUTH_STATE_LENGTH: int = MIN_STATE_LENGTH

    @property
    def IS_LOCAL(self) -> bool:
        return self.APP_ENV == "local"

    @property
    def database_url(self) -> str:
        return self.DATABASE_URL or "sqlite:///./fantasy_link.db"

    @property
    def frontend_url(self) -> str:
        return self.FRONTEND_URL.rstrip("/")

    @property
    def tls_verify(self) -> bool:
        return not (self.IS_LOCAL and self.YAHOO_INSECURE_TLS)

    # ---------- Validators ----------

    @field_validator("ENCRYPTION_KEY")
    @classmethod
    def _check_fernet_key(cls, v: str) -> str:
        key = v.strip().strip("'\"")  # .env values are often quoted
        try:
            Fernet(key)
        except (ValueError, TypeError):
            raise ValueError(
                "ENCRYPTION_KEY is not a Fernet key; create one with "
                "`python -c 'from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())'`"
            )
        return key

    @field_validator("CORS_ORIGINS")
    @classmethod
    def _parse_cors(cls, v):
        return _split_origins(v)

    @field_validator("OAUTH_STATE_LENGTH")
    @classmethod
    def _check_state_length(cls, v: int) -> int:
        if v < MIN_STATE_LENGTH:
            raise ValueError(f"OAUTH_STATE_LENGTH must be at least {MIN_STATE_LENGTH}")
        return v

    # ---------- Startup ----------

    def validate_at_startup(self) -> None:
        """Raise RuntimeError listing every problem with a non-local configuration."""
        if self.IS_LOCAL:
            return
        problems = [
            f"{name} is required when APP_ENV={self.APP_ENV}."
            for name in _REQUIRED_OUTSIDE_LOCAL
            if not getattr(self, name)
        ]
        if self.YAHOO_INSECURE_TLS:
            problems.append("YAHOO_INSECURE_TLS may only be enabled when APP_ENV=local.")
        if not self.CORS_ORIGINS:
            problems.append("CORS_ORIGINS needs at least one origin.")
        if problems:
            raise RuntimeError("Config validation failed: " + " ".join(problems))


@lru_cache
def get_settings() -> Settings:
    return Settings()
