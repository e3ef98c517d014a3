# fantasy_link/services/tokens.py
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterator, Optional

from sqlalchemy import update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from fantasy_link.core.crypto import TokenCipher
from fantasy_link.db.models import UserRecord
from fantasy_link.db.session import session_scope
from fantasy_link.schemas.tokens import TokenPair, TokenStatus

log = logging.getLogger(__name__)

_TOKEN_COLUMNS = (
    "yahoo_access_token",
    "yahoo_refresh_token",
    "yahoo_expires_at",
    "yahoo_tokens_updated_at",
    "yahoo_connected",
)

_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def _aware(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored as UTC
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class TokenStore:
    """
    Single source of truth for each user's Yahoo TokenPair.

    Writes touch only the Yahoo columns of the user's row, in one statement,
    so readers see either the previous pair or the new one.

    Read-then-write sequences for one user (refresh commit, disconnect, code
    exchange) hold `locked(user_id)` so they never interleave in this process.
    """

    def __init__(self, engine: Engine, session_factory: sessionmaker, cipher: TokenCipher):
        self._engine = engine
        self._sessions = session_factory
        self._cipher = cipher
        self._guard = threading.Lock()
        self._user_locks: Dict[str, threading.Lock] = {}

    @contextmanager
    def locked(self, user_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._user_locks.setdefault(user_id, threading.Lock())
        with lock:
            yield

    # ---------- serialization boundary ----------

    def _to_columns(self, pair: TokenPair) -> dict:
        return {
            "yahoo_access_token": self._cipher.encrypt_value(pair.access_token),
            "yahoo_refresh_token": self._cipher.encrypt_value(pair.refresh_token),
            "yahoo_expires_at": _aware(pair.expires_at),
            "yahoo_tokens_updated_at": _aware(pair.updated_at),
            "yahoo_connected": pair.connected,
        }

    def _from_row(self, row: UserRecord) -> Optional[TokenPair]:
        if not row.yahoo_access_token or row.yahoo_expires_at is None:
            return None
        return TokenPair(
            access_token=self._cipher.decrypt_value(row.yahoo_access_token),
            refresh_token=self._cipher.decrypt_value(row.yahoo_refresh_token),
            expires_at=_aware(row.yahoo_expires_at),
            updated_at=_aware(row.yahoo_tokens_updated_at) or _aware(row.yahoo_expires_at),
            connected=bool(row.yahoo_connected),
        )

    # ---------- contract ----------

    def get(self, user_id: str) -> Optional[TokenPair]:
        with session_scope(self._sessions, self._engine) as db:
            row = db.get(UserRecord, user_id)
            return self._from_row(row) if row is not None else None

    def put(self, user_id: str, pair: TokenPair) -> None:
        """Atomic upsert of the token columns; other user fields are left alone."""
        values = self._to_columns(pair)
        insert_fn = _UPSERT_DIALECTS.get(self._engine.dialect.name)
        with session_scope(self._sessions, self._engine) as db:
            if insert_fn is not None:
                stmt = insert_fn(UserRecord).values(user_id=user_id, **values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[UserRecord.user_id],
                    set_={col: stmt.excluded[col] for col in _TOKEN_COLUMNS},
                )
                db.execute(stmt)
            else:
                row = db.get(UserRecord, user_id, with_for_update=True)
                if row is None:
                    db.add(UserRecord(user_id=user_id, **values))
                else:
                    for col, val in values.items():
                        setattr(row, col, val)
        log.info("Stored Yahoo tokens for user=%s (expires_at=%s)", user_id, pair.expires_at.isoformat())

    def clear(self, user_id: str) -> None:
        """Null the token fields and mark disconnected. Safe to repeat."""
        with session_scope(self._sessions, self._engine) as db:
            db.execute(
                update(UserRecord)
                .where(UserRecord.user_id == user_id)
                .values(
                    yahoo_access_token=None,
                    yahoo_refresh_token=None,
                    yahoo_expires_at=None,
                    yahoo_tokens_updated_at=None,
                    yahoo_connected=False,
                )
            )
        log.info("Cleared Yahoo tokens for user=%s", user_id)

    def status(self, user_id: str, now: Optional[datetime] = None) -> TokenStatus:
        return TokenStatus.from_pair(user_id, self.get(user_id), now=now)
