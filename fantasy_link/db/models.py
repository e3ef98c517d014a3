from datetime import datetime

from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import Boolean, String, Text, DateTime, func


class Base(DeclarativeBase):
    pass


class UserRecord(Base):
    """
    One document per application user. The Yahoo columns are owned by the token store;
    everything else belongs to other parts of the app and must survive token writes.
    """
    __tablename__ = "users"
    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Fernet ciphertext
    yahoo_access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    yahoo_refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    yahoo_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    yahoo_tokens_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    yahoo_connected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
