"""
auth/session_store.py -- SQLAlchemy Core persistence for server-side sessions.

Pattern: Repository + Data Mapper (same as auth/store.py).

Session ids:
  secrets.token_urlsafe(32) gives 256 bits of entropy. regenerate_id()
  rewrites the primary key in a single UPDATE inside one transaction, so no
  reader can ever observe the old id and the new id as two live sessions:
  once the transaction commits, a lookup by the old id returns None.

Expiry:
  Evaluated lazily. get_session() deletes and hides an expired row;
  purge_expired() is available for operators to trim the table. No
  background sweeper runs. A remembered session expires at expires_at. A
  session with expires_at NULL (anonymous, browser-only, or logged out)
  expires once it has gone idle_timeout minutes without use; get_session()
  refreshes last_used on every hit.

Session variables are stored as one JSON object in the data column.

Layer rule: no imports from anything but auth.models, auth.store and
third-party libraries.
"""

from __future__ import annotations

import json
import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text
from sqlalchemy.engine import Engine

from auth.models import Session
from auth.store import _DEFAULT_DB_URL, make_engine

DEFAULT_IDLE_TIMEOUT = 120  # minutes

_metadata = MetaData()

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", String(128), primary_key=True),
    Column("user_id", Integer),  # NULL until the session is authenticated
    Column("data", Text, nullable=False, server_default="{}"),  # JSON object of session variables
    Column("remember", Integer, nullable=False, server_default="0"),
    Column("expires_at", String(32)),  # NULL = browser session
    Column("created_at", String(32), nullable=False),
    Column("last_used", String(32), nullable=False),
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_session_id() -> str:
    return secrets.token_urlsafe(32)


def is_expired(session: Session, now: datetime | None = None, idle_timeout: int = 0) -> bool:
    """Return True if the session's expiry has passed, or it has sat idle too long.

    idle_timeout is in minutes and only applies to sessions without an
    explicit expiry. 0 disables the idle check.
    """
    now = now or _now()
    if session.expires_at:
        return datetime.fromisoformat(session.expires_at) <= now
    if idle_timeout and session.last_used:
        return datetime.fromisoformat(session.last_used) + timedelta(minutes=idle_timeout) <= now
    return False


class SessionStore:
    """Repository for Session records.

    Usage:
        store = SessionStore()
        session = store.create_session()
        store.regenerate_id(session)       # session.id now holds the new id
        store.update_session(session)
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL, idle_timeout: int = DEFAULT_IDLE_TIMEOUT) -> None:
        self.engine: Engine = make_engine(db_url, _metadata)
        self.idle_timeout = idle_timeout

    def create_session(self) -> Session:
        """Start a new anonymous session and persist it."""
        now = _now().isoformat()
        session = Session(id=_new_session_id(), created_at=now, last_used=now)
        with self.engine.begin() as conn:
            conn.execute(_sessions.insert().values(**_session_values(session)))
        return session

    def get_session(self, session_id: str) -> Session | None:
        """Return the live session with this id, or None.

        An expired row is deleted on the way out and reported as missing. A
        live row has its last_used stamp refreshed.
        """
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.id == session_id)).fetchone()
        if row is None:
            return None
        session = _row_to_session(row)
        if is_expired(session, idle_timeout=self.idle_timeout):
            self.delete_session(session_id)
            return None
        session.last_used = _now().isoformat()
        with self.engine.begin() as conn:
            conn.execute(_sessions.update().where(_sessions.c.id == session_id).values(last_used=session.last_used))
        return session

    def regenerate_id(self, session: Session) -> str:
        """Give session a fresh id, invalidating the old one atomically.

        If the old row is already gone (expired, deleted) the session is
        written under the new id instead. Returns the new id; session.id is
        updated in place.
        """
        new_id = _new_session_id()
        with self.engine.begin() as conn:
            result = conn.execute(
                _sessions.update().where(_sessions.c.id == session.id).values(id=new_id, last_used=_now().isoformat())
            )
            if result.rowcount == 0:
                conn.execute(_sessions.insert().values(**_session_values(session, session_id=new_id)))
        session.id = new_id
        return new_id

    def update_session(self, session: Session) -> bool:
        """Persist variables, owner, remember flag and expiry.

        Returns True if a row was updated, False if the id was not found.
        """
        session.last_used = _now().isoformat()
        with self.engine.begin() as conn:
            result = conn.execute(
                _sessions.update()
                .where(_sessions.c.id == session.id)
                .values(
                    user_id=session.user_id,
                    data=json.dumps(session.data),
                    remember=1 if session.remember else 0,
                    expires_at=session.expires_at,
                    last_used=session.last_used,
                )
            )
        return result.rowcount > 0

    def delete_session(self, session_id: str) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.id == session_id))
        return result.rowcount > 0

    def purge_expired(self) -> int:
        """Delete every expired or idle session. Returns rows removed.

        ISO 8601 UTC strings sort chronologically, so a string comparison is
        enough here.
        """
        now = _now()
        condition = _sessions.c.expires_at.is_not(None) & (_sessions.c.expires_at <= now.isoformat())
        if self.idle_timeout:
            idle_cutoff = (now - timedelta(minutes=self.idle_timeout)).isoformat()
            condition = condition | (_sessions.c.expires_at.is_(None) & (_sessions.c.last_used <= idle_cutoff))
        with self.engine.begin() as conn:
            result = conn.execute(_sessions.delete().where(condition))
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapping (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _session_values(session: Session, session_id: str | None = None) -> dict:
    now = _now().isoformat()
    return {
        "id": session_id or session.id,
        "user_id": session.user_id,
        "data": json.dumps(session.data),
        "remember": 1 if session.remember else 0,
        "expires_at": session.expires_at,
        "created_at": session.created_at or now,
        "last_used": session.last_used or now,
    }


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        data=json.loads(row.data) if row.data else {},
        remember=bool(row.remember),
        expires_at=row.expires_at,
        created_at=row.created_at,
        last_used=row.last_used,
    )
