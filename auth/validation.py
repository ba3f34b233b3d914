"""
auth/validation.py -- Decide whether a set of credentials is valid.

validate() is the first half of the login flow (auth/service.py calls it, then
auth/sessions.py registers the session). It deliberately ignores the disabled
flag: a disabled account with the right password still validates, so the
registration step can refuse it with its disabled reason rather than a
generic "invalid credentials".

Unknown username, wrong password and a rejection from an external
authenticator all return the same InvalidCredentials() value, and an unknown
username still pays for one digest comparison, so neither the result nor the
response time reveals which usernames exist.

Layer rule: imports from auth/ and core/ only.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from auth.authorization import is_logged_in
from auth.hashing import equalize_timing, verify_credentials
from auth.models import InvalidCredentials, Session, User
from auth.sources import AuthSourceRegistry
from core.config import Settings, get_settings

if TYPE_CHECKING:
    from auth.sources import Authenticator, ImplicitAuthenticator
    from auth.store import UserStore

logger = logging.getLogger("tenantguard.auth.validation")


class CredentialValidator:
    """Validates username/password pairs against local digests or external authorities."""

    def __init__(
        self,
        user_store: UserStore,
        auth_sources: AuthSourceRegistry | None = None,
        settings: Settings | None = None,
        implicit_authenticator: ImplicitAuthenticator | None = None,
    ) -> None:
        self.user_store = user_store
        self.auth_sources = auth_sources if auth_sources is not None else AuthSourceRegistry()
        self.settings = settings or get_settings()
        self.implicit_authenticator = implicit_authenticator

    def validate(self, username: str, password: str, session: Session | None = None) -> User | InvalidCredentials:
        """Return the User these credentials belong to, or InvalidCredentials().

        In implicit-auth mode the username and password are ignored and the
        configured ImplicitAuthenticator asserts the identity instead. If the
        session is already logged in, implicit auth does nothing and the
        result is InvalidCredentials() so no second session is registered.

        When an external authenticator accepts the credentials, it may refresh
        the user's profile. A refreshed email that already belongs to another
        account is discarded and the old email kept. The user is persisted
        before returning.
        """
        if self.settings.implicit_auth:
            return self._validate_implicit(session)

        user = self.user_store.get_by_username(username, include_disabled=True)
        if user is None:
            equalize_timing(password, self.settings)
            logger.info("Login failed for %r: invalid credentials", username)
            return InvalidCredentials()

        auth = self._resolve_authenticator(user)
        if auth is not None:
            valid = auth.authenticate(username, password)
            if valid:
                self._refresh_profile(auth, user)
        else:
            valid = verify_credentials(username, password, user.password, self.settings)

        if not valid:
            logger.info("Login failed for %r: invalid credentials", username)
            return InvalidCredentials()
        return user

    def check_credentials(self, username: str, password: str) -> bool:
        """Pure credential check for an enabled account.

        Used to re-confirm a password (e.g. before changing it). Disabled
        accounts are not found and therefore fail. No profile refresh and no
        writes happen here.
        """
        user = self.user_store.get_by_username(username, include_disabled=False)
        if user is None:
            equalize_timing(password, self.settings)
            return False
        auth = self._resolve_authenticator(user)
        if auth is not None:
            return auth.authenticate(username, password)
        return verify_credentials(username, password, user.password, self.settings)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate_implicit(self, session: Session | None) -> User | InvalidCredentials:
        if session is not None and is_logged_in(session):
            logger.debug("Implicit auth skipped: session is already logged in")
            return InvalidCredentials()
        if self.implicit_authenticator is None:
            logger.error("IMPLICIT_AUTH is enabled but no implicit authenticator is configured")
            return InvalidCredentials()
        user = self.implicit_authenticator.implicit_auth(self.user_store)
        if user is None:
            logger.info("Implicit auth asserted no identity")
            return InvalidCredentials()
        return user

    def _resolve_authenticator(self, user: User) -> Authenticator | None:
        if user.auth_source_id is None:
            return None
        auth = self.auth_sources.get(user.auth_source_id)
        if auth is None:
            logger.warning(
                "User %r references auth source %d, which is not registered; using the local credential digest",
                user.username,
                user.auth_source_id,
            )
        return auth

    def _refresh_profile(self, auth: Authenticator, user: User) -> None:
        old_email = user.email
        auth.refresh_profile(user)
        if user.email != old_email and self.user_store.user_exists_by_email(user.email, exclude_user_id=user.id):
            logger.warning(
                "Remote profile for %r carries an email held by another account; keeping the old email",
                user.username,
            )
            user.email = old_email
        self.user_store.update_user(user)
