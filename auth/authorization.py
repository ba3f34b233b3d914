"""
auth/authorization.py -- Role checks for the current session.

Every check takes the session explicitly; there is no ambient "current
session". All checks are pure predicates and fail closed: an anonymous
session is never authorized for anything.

Layer rule: imports from auth/ only.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from auth.models import (
    CONTEXT_FROM_REQUEST,
    CONTEXT_SITE,
    ROLE_ID_SITE_ADMIN,
    SESSION_VAR_SIGNED_IN_AS,
    Session,
)

if TYPE_CHECKING:
    from auth.store import RoleStore


def is_logged_in(session: Session) -> bool:
    """True iff the session carries a non-empty owning user id."""
    return bool(session.user_id)


def is_logged_in_as(session: Session) -> bool:
    """True iff an administrator has signed in as another user on this session."""
    return bool(session.data.get(SESSION_VAR_SIGNED_IN_AS))


def resolve_context_id(context_id: int, active_context_id: int | None = None) -> int:
    """Resolve CONTEXT_FROM_REQUEST to the active context, or the site context if none."""
    if context_id == CONTEXT_FROM_REQUEST:
        return active_context_id if active_context_id is not None else CONTEXT_SITE
    return context_id


class AuthorizationChecker:
    """Answers "does this session hold role R in context C"."""

    def __init__(self, role_store: RoleStore) -> None:
        self.role_store = role_store

    def is_authorized(
        self,
        session: Session,
        role_id: int,
        context_id: int = CONTEXT_SITE,
        active_context_id: int | None = None,
    ) -> bool:
        """Check the session's user holds role_id in context_id.

        Args:
            session:           The request's session.
            role_id:           One of the ROLE_ID_* constants.
            context_id:        Context to check, CONTEXT_SITE by default.
                               CONTEXT_FROM_REQUEST uses active_context_id.
            active_context_id: The request's active context, or None when the
                               request is not scoped to a context.
        """
        if not is_logged_in(session):
            return False
        context_id = resolve_context_id(context_id, active_context_id)
        return self.role_store.user_has_role(context_id, session.user_id, role_id)

    def is_site_admin(self, session: Session) -> bool:
        return self.is_authorized(session, ROLE_ID_SITE_ADMIN, CONTEXT_SITE)

    is_logged_in = staticmethod(is_logged_in)
    is_logged_in_as = staticmethod(is_logged_in_as)
