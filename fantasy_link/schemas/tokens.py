from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class TokenPair(BaseModel):
    """
    Canonical Yahoo credential shape. The camelCase aliases are the only
    serialized field names (store records, API payloads).
    """
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="accessToken")
    refresh_token: str | None = Field(default=None, alias="refreshToken")
    expires_at: datetime = Field(alias="expiresAt")
    updated_at: datetime = Field(alias="updatedAt")
    connected: bool = True

    def is_expired(self, now: datetime, leeway_seconds: int = 0) -> bool:
        return self.expires_at.timestamp() - leeway_seconds <= now.timestamp()


class TokenStatus(BaseModel):
    """Non-secret view of a user's Yahoo connection."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    connected: bool
    expires_at: datetime | None = Field(default=None, alias="expiresAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")
    is_expired: bool = Field(default=True, alias="isExpired")
    has_refresh_token: bool = Field(default=False, alias="hasRefreshToken")

    @classmethod
    def from_pair(cls, user_id: str, pair: TokenPair | None, now: datetime | None = None) -> "TokenStatus":
        if pair is None:
            return cls(user_id=user_id, connected=False)
        now = now or datetime.now(timezone.utc)
        return cls(
            user_id=user_id,
            connected=pair.connected,
            expires_at=pair.expires_at,
            updated_at=pair.updated_at,
            is_expired=pair.is_expired(now),
            has_refresh_token=bool(pair.refresh_token),
        )
