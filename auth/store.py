"""
auth/store.py -- SQLAlchemy Core persistence layer for identity entities.

Pattern: Repository + Data Mapper. UserStore, RoleStore and UserGroupStore
are three independent repositories behind narrow interfaces; the
_row_to_* functions are the mappers. No repository reaches into another's
tables -- auth/administration.py composes their results instead.

Security:
  All queries use bound parameters. No f-strings in SQL.

Transactions:
  Every mutation runs inside engine.begin(), so each single-record update is
  committed atomically before the method returns (or rolled back on error).

DB path: tenantguard.db at the project root unless a db_url is given.

Layer rule: no imports from anything but auth.models and third-party libraries.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import Role, User, UserGroup

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'tenantguard.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("password", Text, nullable=False, server_default=""),  # credential digest
    Column("email", String(255), nullable=False, unique=True),
    Column("auth_source_id", Integer),  # NULL = local password login
    Column("disabled", Integer, nullable=False, server_default="0"),
    Column("disabled_reason", Text),
    Column("date_last_login", String(32)),
    Column("date_registered", String(32), nullable=False),
)

_roles = Table(
    "roles",
    _metadata,
    Column("context_id", Integer, nullable=False),
    Column("user_id", Integer, nullable=False),
    Column("role_id", Integer, nullable=False),
    UniqueConstraint("context_id", "user_id", "role_id", name="uq_role_assignment"),
)

_user_groups = Table(
    "user_groups",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("context_id", Integer, nullable=False),
    Column("role_id", Integer, nullable=False),
    Column("name", String(255), nullable=False),
)

_user_user_groups = Table(
    "user_user_groups",
    _metadata,
    Column("user_group_id", Integer, nullable=False),
    Column("user_id", Integer, nullable=False),
    UniqueConstraint("user_group_id", "user_id", name="uq_user_group_member"),
)


# ---------------------------------------------------------------------------
# Engine setup
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str, metadata: MetaData) -> Engine:
    """Create an engine for db_url and make sure metadata's tables exist."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    metadata.create_all(engine)
    return engine


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore()
        uid = store.create_user(User(username="jdoe", email="jdoe@example.org", password=digest))
        user = store.get_by_username("jdoe")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        self.engine: Engine = make_engine(db_url, _metadata)

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the username or email is taken.
        """
        date_registered = user.date_registered or _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    password=user.password,
                    email=user.email,
                    auth_source_id=user.auth_source_id,
                    disabled=1 if user.disabled else 0,
                    disabled_reason=user.disabled_reason,
                    date_last_login=user.date_last_login,
                    date_registered=date_registered,
                )
            )
        user.id = result.inserted_primary_key[0]
        user.date_registered = date_registered
        return user.id

    def get_by_username(self, username: str, include_disabled: bool = False) -> User | None:
        """Look up a user by exact username (case-sensitive).

        Disabled accounts are only returned when include_disabled is True;
        the login flow needs them so it can report the disabled reason.
        """
        query = _users.select().where(_users.c.username == username)
        if not include_disabled:
            query = query.where(_users.c.disabled == 0)
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key, disabled or not."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def user_exists_by_username(self, username: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(_users.c.id).where(_users.c.username == username)).fetchone()
        return row is not None

    def user_exists_by_email(self, email: str, exclude_user_id: int | None = None) -> bool:
        """Return True if some user other than exclude_user_id holds email."""
        query = select(_users.c.id).where(_users.c.email == email)
        if exclude_user_id is not None:
            query = query.where(_users.c.id != exclude_user_id)
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        return row is not None

    def update_user(self, user: User) -> bool:
        """Write every mutable field of user back to its row.

        Returns True if a row was updated, False if user.id was not found.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user.id)
                .values(
                    username=user.username,
                    password=user.password,
                    email=user.email,
                    auth_source_id=user.auth_source_id,
                    disabled=1 if user.disabled else 0,
                    disabled_reason=user.disabled_reason,
                    date_last_login=user.date_last_login,
                )
            )
        return result.rowcount > 0

    def list_users(self) -> list[User]:
        """Return all users ordered by username."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.username)).fetchall()
        return [_row_to_user(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class RoleStore:
    """Repository for (context_id, user_id, role_id) role assignments."""

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        self.engine: Engine = make_engine(db_url, _metadata)

    def user_has_role(self, context_id: int, user_id: int, role_id: int) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_roles.c.role_id).where(
                    (_roles.c.context_id == context_id) & (_roles.c.user_id == user_id) & (_roles.c.role_id == role_id)
                )
            ).fetchone()
        return row is not None

    def get_by_user_id(self, user_id: int, context_id: int | None = None) -> list[Role]:
        """Return every role the user holds, optionally limited to one context."""
        query = _roles.select().where(_roles.c.user_id == user_id)
        if context_id is not None:
            query = query.where(_roles.c.context_id == context_id)
        with self.engine.connect() as conn:
            rows = conn.execute(query.order_by(_roles.c.context_id, _roles.c.role_id)).fetchall()
        return [_row_to_role(r) for r in rows]

    def grant_role(self, context_id: int, user_id: int, role_id: int) -> bool:
        """Grant a role. Returns False if the user already held it."""
        try:
            with self.engine.begin() as conn:
                conn.execute(_roles.insert().values(context_id=context_id, user_id=user_id, role_id=role_id))
        except IntegrityError:
            return False
        return True

    def revoke_role(self, context_id: int, user_id: int, role_id: int) -> bool:
        """Revoke a role. Returns False if the user did not hold it."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _roles.delete().where(
                    (_roles.c.context_id == context_id) & (_roles.c.user_id == user_id) & (_roles.c.role_id == role_id)
                )
            )
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# User groups
# ---------------------------------------------------------------------------


class UserGroupStore:
    """Repository for context-scoped user groups and their memberships."""

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        self.engine: Engine = make_engine(db_url, _metadata)

    def create_group(self, group: UserGroup) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(
                _user_groups.insert().values(context_id=group.context_id, role_id=group.role_id, name=group.name)
            )
        group.id = result.inserted_primary_key[0]
        return group.id

    def get_by_id(self, group_id: int) -> UserGroup | None:
        with self.engine.connect() as conn:
            row = conn.execute(_user_groups.select().where(_user_groups.c.id == group_id)).fetchone()
        return _row_to_user_group(row) if row is not None else None

    def assign_user(self, group_id: int, user_id: int) -> bool:
        """Add a user to a group. Returns False if already a member."""
        try:
            with self.engine.begin() as conn:
                conn.execute(_user_user_groups.insert().values(user_group_id=group_id, user_id=user_id))
        except IntegrityError:
            return False
        return True

    def remove_user(self, group_id: int, user_id: int) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(
                _user_user_groups.delete().where(
                    (_user_user_groups.c.user_group_id == group_id) & (_user_user_groups.c.user_id == user_id)
                )
            )
        return result.rowcount > 0

    def get_by_user_id(self, user_id: int, context_id: int | None = None) -> list[UserGroup]:
        """Return the groups a user belongs to, optionally within one context."""
        query = (
            select(_user_groups)
            .select_from(_user_groups.join(_user_user_groups, _user_user_groups.c.user_group_id == _user_groups.c.id))
            .where(_user_user_groups.c.user_id == user_id)
        )
        if context_id is not None:
            query = query.where(_user_groups.c.context_id == context_id)
        with self.engine.connect() as conn:
            rows = conn.execute(query.order_by(_user_groups.c.id)).fetchall()
        return [_row_to_user_group(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        password=row.password,
        email=row.email,
        auth_source_id=row.auth_source_id,
        disabled=bool(row.disabled),
        disabled_reason=row.disabled_reason,
        date_last_login=row.date_last_login,
        date_registered=row.date_registered,
    )


def _row_to_role(row) -> Role:
    return Role(context_id=row.context_id, user_id=row.user_id, role_id=row.role_id)


def _row_to_user_group(row) -> UserGroup:
    return UserGroup(id=row.id, context_id=row.context_id, role_id=row.role_id, name=row.name)
