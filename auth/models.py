"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the
validation/session/authorization modules do the work.

Also defines the discriminated result types returned (never raised) by the
login flow. The caller decides user-facing messaging from the result type.

Layer rule: stdlib only.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Contexts and roles
# ---------------------------------------------------------------------------

CONTEXT_SITE = 0  # site-global scope, distinct from every tenant context
CONTEXT_FROM_REQUEST = -1  # sentinel: resolve from the active request context

ROLE_ID_SITE_ADMIN = 0x00000001
ROLE_ID_MANAGER = 0x00000010
ROLE_ID_SUB_EDITOR = 0x00000011
ROLE_ID_REVIEWER = 0x00001000
ROLE_ID_ASSISTANT = 0x00001001
ROLE_ID_AUTHOR = 0x00010000
ROLE_ID_READER = 0x00100000

# Session variable names
SESSION_VAR_USER_ID = "userId"
SESSION_VAR_USERNAME = "username"
SESSION_VAR_SIGNED_IN_AS = "signedInAs"


@dataclass
class User:
    """An account that can log in.

    password holds the credential digest (see auth/hashing.py), never the
    plaintext. When auth_source_id names a registered external authenticator,
    that authenticator decides login validity and password is not consulted.

    disabled_reason is free text shown to the user on a refused login; None
    means no reason was recorded.
    """

    username: str
    email: str
    password: str = ""
    id: int | None = None
    auth_source_id: int | None = None
    disabled: bool = False
    disabled_reason: str | None = None
    date_last_login: str | None = None  # ISO 8601 UTC
    date_registered: str | None = None  # ISO 8601 UTC, set by store on insert


@dataclass
class Session:
    """A server-side session.

    id is regenerated on every successful login. user_id stays None until
    the session is authenticated. expires_at None means the session lasts
    for the browser session only; a timestamp means remember-me extended it.
    """

    id: str
    user_id: int | None = None
    data: dict = field(default_factory=dict)
    remember: bool = False
    expires_at: str | None = None  # ISO 8601 UTC
    created_at: str | None = None
    last_used: str | None = None


@dataclass(frozen=True)
class Role:
    """A role held by a user within a context. Set semantics per triple."""

    context_id: int
    user_id: int
    role_id: int


@dataclass
class UserGroup:
    """A context-scoped group. Membership is stored separately."""

    context_id: int
    role_id: int
    name: str
    id: int | None = None


# ---------------------------------------------------------------------------
# Login results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InvalidCredentials:
    """Wrong password, unknown username, or external authenticator rejection.

    Deliberately carries no detail so callers cannot leak which of the three
    happened.
    """


@dataclass(frozen=True)
class SessionRejected:
    """Session registration was refused."""

    code: str
    reason: str = ""


@dataclass(frozen=True)
class AccountDisabled(SessionRejected):
    """Valid credentials, but the account is administratively disabled.

    reason is the recorded disabled_reason, or "" when none was recorded.
    """

    code: str = "account_disabled"
