"""
auth/sources.py -- External authentication authorities.

A user whose auth_source_id is set is validated by the authenticator
registered under that id rather than by the local credential digest. How
an authenticator talks to its authority (LDAP bind, a remote API, ...) is its
own business; this module only defines the capability and the lookup.

  Authenticator         -- authenticate(username, password) and
                           refresh_profile(user), which copies remote profile
                           fields (notably email) onto the User in place.
  ImplicitAuthenticator -- used when Settings.implicit_auth is on: identity
                           was established before the engine ran (e.g. by a
                           fronting proxy) and is asserted as a User, or None.
  AuthSourceRegistry    -- maps auth_source_id -> Authenticator. Resolved once
                           per validation call; callers never hold on to the
                           returned authenticator beyond that call.

Layer rule: imports from auth/ only, and only for type hints.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("tenantguard.auth.sources")


class Authenticator(Protocol):
    def authenticate(self, username: str, password: str) -> bool: ...

    def refresh_profile(self, user: User) -> None: ...


class ImplicitAuthenticator(Protocol):
    def implicit_auth(self, user_store: UserStore) -> User | None: ...


class AuthSourceRegistry:
    """Registry of external authenticators keyed by auth source id.

    Usage:
        registry = AuthSourceRegistry()
        registry.register(1, LdapAuthenticator(...))
        auth = registry.get(user.auth_source_id)
    """

    def __init__(self) -> None:
        self._sources: dict[int, Authenticator] = {}

    def register(self, source_id: int, authenticator: Authenticator) -> None:
        """Register (or replace) the authenticator for source_id."""
        if source_id in self._sources:
            logger.info("Replacing authenticator for auth source %d", source_id)
        self._sources[source_id] = authenticator
        logger.info("Auth source %d registered (%s)", source_id, type(authenticator).__name__)

    def unregister(self, source_id: int) -> bool:
        return self._sources.pop(source_id, None) is not None

    def get(self, source_id: int | None) -> Authenticator | None:
        if source_id is None:
            return None
        return self._sources.get(source_id)

    def source_ids(self) -> list[int]:
        return sorted(self._sources)
