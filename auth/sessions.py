"""
auth/sessions.py -- Establish and tear down authenticated sessions.

Security design decisions:
  Session fixation: register_user_session() regenerates the session id
       before marking the session authenticated. An id that was known to
       anyone while the session was anonymous never becomes authenticated.
       Regeneration happens exactly once per successful registration and never
       on a refused one.

  Disabled accounts: checked here rather than during credential validation,
       so the caller can show the recorded disabled reason. Nothing about the
       session changes when registration is refused.

  Remember-me: a remembered session gets an explicit expiry of
       now + Settings.session_lifetime days. Otherwise the session keeps its
       browser-session lifetime (expires_at None).

  Impersonation: sign_in_as() lets an administrator act as a user they may
       administer (see auth/administration.py). The administrator's id is kept
       in the signedInAs session variable until sign_out_as() restores it.

Layer rule: imports from auth/ and core/ only.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from auth.authorization import is_logged_in, is_logged_in_as
from auth.models import (
    SESSION_VAR_SIGNED_IN_AS,
    SESSION_VAR_USER_ID,
    SESSION_VAR_USERNAME,
    AccountDisabled,
    Session,
    SessionRejected,
    User,
)
from core.config import Settings, get_settings

if TYPE_CHECKING:
    from auth.administration import AdministrationPermissionEvaluator
    from auth.session_store import SessionStore
    from auth.store import UserStore

logger = logging.getLogger("tenantguard.auth.sessions")


class SessionRegistrar:
    def __init__(
        self,
        session_store: SessionStore,
        user_store: UserStore,
        settings: Settings | None = None,
        administration: AdministrationPermissionEvaluator | None = None,
    ) -> None:
        self.session_store = session_store
        self.user_store = user_store
        self.settings = settings or get_settings()
        self.administration = administration

    def register_user_session(self, session: Session, user: User | None, remember: bool = False) -> Session | SessionRejected:
        """Mark session as logged in for user.

        Returns the authenticated session (its id has changed), or a
        SessionRejected: AccountDisabled for a disabled account, code
        "no_user" when there is no user to register.

        Raises:
            TypeError: If user is neither None nor a User.
        """
        if user is None:
            return SessionRejected(code="no_user")
        if not isinstance(user, User):
            raise TypeError(f"register_user_session() expects a User, got {type(user).__name__}")
        if user.id is None:
            return SessionRejected(code="no_user")

        if user.disabled:
            logger.info("Login refused for %r: account disabled", user.username)
            return AccountDisabled(reason=user.disabled_reason if user.disabled_reason is not None else "")

        self.session_store.regenerate_id(session)

        session.data[SESSION_VAR_USER_ID] = user.id
        session.user_id = user.id
        session.data[SESSION_VAR_USERNAME] = user.username
        session.remember = remember

        now = datetime.now(timezone.utc)
        if remember and self.settings.session_lifetime > 0:
            session.expires_at = (now + timedelta(days=self.settings.session_lifetime)).isoformat()
        self.session_store.update_session(session)

        user.date_last_login = now.isoformat()
        self.user_store.update_user(user)

        logger.info("User %r logged in (remember=%s)", user.username, remember)
        return session

    def logout(self, session: Session) -> bool:
        """Mark session as logged out. Always returns True, even if it already was."""
        user_id = session.user_id
        session.data.pop(SESSION_VAR_USER_ID, None)
        session.data.pop(SESSION_VAR_SIGNED_IN_AS, None)
        session.user_id = None

        if session.remember:
            session.remember = False
            session.expires_at = None

        self.session_store.update_session(session)
        if user_id:
            logger.info("User %d logged out", user_id)
        return True

    def sign_in_as(self, session: Session, target_user_id: int) -> Session | SessionRejected:
        """Let the session's user act as target_user_id.

        The acting administrator is the user recorded in signedInAs when the
        session is already impersonating someone, otherwise the session's user.

        Raises:
            RuntimeError: If no AdministrationPermissionEvaluator was supplied.
        """
        if self.administration is None:
            raise RuntimeError("sign_in_as() requires an AdministrationPermissionEvaluator")
        if not is_logged_in(session):
            return SessionRejected(code="not_permitted")

        acting_user_id = session.data.get(SESSION_VAR_SIGNED_IN_AS) or session.user_id
        target = self.user_store.get_by_id(target_user_id)
        if target is None or not self.administration.can_administer(target.id, acting_user_id):
            logger.warning("User %d was refused sign-in as user %d", acting_user_id, target_user_id)
            return SessionRejected(code="not_permitted")

        session.data[SESSION_VAR_SIGNED_IN_AS] = acting_user_id
        session.data[SESSION_VAR_USER_ID] = target.id
        session.user_id = target.id
        session.data[SESSION_VAR_USERNAME] = target.username
        self.session_store.update_session(session)

        logger.info("User %d signed in as %r", acting_user_id, target.username)
        return session

    def sign_out_as(self, session: Session) -> Session:
        """Return the session to the administrator who signed in as another user.

        A session that is not impersonating anyone is returned unchanged. If
        the administrator's account no longer exists the session is logged
        out rather than left authenticated as the impersonated user.
        """
        if not is_logged_in_as(session):
            return session

        acting_user_id = session.data.pop(SESSION_VAR_SIGNED_IN_AS)
        admin = self.user_store.get_by_id(acting_user_id)
        if admin is None:
            logger.warning("Administrator %d no longer exists; logging the session out", acting_user_id)
            self.logout(session)
            return session

        session.data[SESSION_VAR_USER_ID] = admin.id
        session.user_id = admin.id
        session.data[SESSION_VAR_USERNAME] = admin.username
        self.session_store.update_session(session)

        logger.info("User %d signed out as another user", acting_user_id)
        return session
