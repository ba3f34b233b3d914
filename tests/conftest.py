"""
tests/conftest.py -- Shared test fixtures for the tenantguard test suite.

This module provides:
  - settings:      explicit Settings (no .env, no process environment reliance)
  - registry:      an empty AuthSourceRegistry tests can register authenticators on
  - service:       AuthService over four isolated in-memory SQLite stores
  - add_user:      factory that inserts a user with a real credential digest
  - add_group:     factory that creates a context-scoped group and adds members
  - StubAuthenticator: a scriptable external authenticator

Design: plain "sqlite:///:memory:" is enough here because every test runs in
one thread. The FastAPI tests (test_dependencies.py) use named shared-memory
URIs instead, since TestClient runs handlers in a thread pool.
"""

from __future__ import annotations

from collections.abc import Callable, Generator

import pytest

from auth.models import User, UserGroup
from auth.service import AuthService
from auth.session_store import SessionStore
from auth.sources import AuthSourceRegistry
from auth.store import RoleStore, UserGroupStore, UserStore
from core.config import Settings

MEMORY_DB = "sqlite:///:memory:"


class StubAuthenticator:
    """External authenticator that accepts or rejects every attempt.

    When email is set, refresh_profile() copies it onto the user, standing in
    for a remote directory returning a changed address.
    """

    def __init__(self, accept: bool = True, email: str | None = None) -> None:
        self.accept = accept
        self.email = email
        self.calls: list[tuple[str, str]] = []
        self.refreshed: list[str] = []

    def authenticate(self, username: str, password: str) -> bool:
        self.calls.append((username, password))
        return self.accept

    def refresh_profile(self, user: User) -> None:
        self.refreshed.append(user.username)
        if self.email is not None:
            user.email = self.email


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, encryption="sha1", implicit_auth=False, session_lifetime=30)


@pytest.fixture
def registry() -> AuthSourceRegistry:
    return AuthSourceRegistry()


@pytest.fixture
def service(settings: Settings, registry: AuthSourceRegistry) -> Generator[AuthService, None, None]:
    svc = AuthService(
        UserStore(MEMORY_DB),
        SessionStore(MEMORY_DB),
        RoleStore(MEMORY_DB),
        UserGroupStore(MEMORY_DB),
        settings=settings,
        auth_sources=registry,
    )
    yield svc
    svc.close()


@pytest.fixture
def add_user(service: AuthService) -> Callable[..., User]:
    """Return a factory: add_user("jdoe", password="secret", disabled=True, ...)."""

    def _add(username: str, password: str | None = "secret", email: str | None = None, **fields) -> User:
        user = User(
            username=username,
            email=email or f"{username}@example.org",
            password=service.encrypt_credentials(username, password) if password else "",
            **fields,
        )
        service.user_store.create_user(user)
        return user

    return _add


@pytest.fixture
def add_group(service: AuthService) -> Callable[..., UserGroup]:
    """Return a factory: add_group(context_id, role_id, *member_ids)."""

    def _add(context_id: int, role_id: int, *member_ids: int) -> UserGroup:
        group = UserGroup(context_id=context_id, role_id=role_id, name=f"group-{context_id}-{role_id}")
        service.user_group_store.create_group(group)
        for user_id in member_ids:
            service.user_group_store.assign_user(group.id, user_id)
        return group

    return _add


@pytest.fixture
def make_authenticator() -> type[StubAuthenticator]:
    return StubAuthenticator
