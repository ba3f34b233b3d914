"""Unit tests for auth/authorization.py -- session role checks.

Covers:
- Anonymous sessions are never authorized
- Role checks are per context; site context is the default
- CONTEXT_FROM_REQUEST resolves to the active context, or the site context
- is_site_admin() and the logged-in predicates
"""

from __future__ import annotations

from auth.authorization import AuthorizationChecker, is_logged_in, is_logged_in_as, resolve_context_id
from auth.models import (
    CONTEXT_FROM_REQUEST,
    CONTEXT_SITE,
    ROLE_ID_AUTHOR,
    ROLE_ID_MANAGER,
    ROLE_ID_SITE_ADMIN,
    SESSION_VAR_SIGNED_IN_AS,
    Session,
)
from auth.service import AuthService


def _logged_in(service: AuthService, user) -> Session:
    session = service.new_session()
    service.register_user_session(session, user)
    return session


class TestPredicates:
    def test_is_logged_in(self) -> None:
        assert is_logged_in(Session(id="a")) is False
        assert is_logged_in(Session(id="a", user_id=0)) is False
        assert is_logged_in(Session(id="a", user_id=3)) is True

    def test_is_logged_in_as(self) -> None:
        assert is_logged_in_as(Session(id="a", user_id=3)) is False
        assert is_logged_in_as(Session(id="a", user_id=3, data={SESSION_VAR_SIGNED_IN_AS: 1})) is True

    def test_checker_exposes_predicates(self) -> None:
        assert AuthorizationChecker.is_logged_in(Session(id="a", user_id=3)) is True

    def test_resolve_context_id(self) -> None:
        assert resolve_context_id(7) == 7
        assert resolve_context_id(CONTEXT_FROM_REQUEST, 7) == 7
        assert resolve_context_id(CONTEXT_FROM_REQUEST) == CONTEXT_SITE
        assert resolve_context_id(CONTEXT_SITE, 7) == CONTEXT_SITE


class TestIsAuthorized:
    def test_anonymous_session_is_never_authorized(self, service: AuthService) -> None:
        session = service.new_session()
        assert service.is_authorized(session, ROLE_ID_SITE_ADMIN) is False
        assert service.is_authorized(session, ROLE_ID_MANAGER, 3) is False

    def test_role_is_checked_in_the_given_context(self, service: AuthService, add_user) -> None:
        user = add_user("manager")
        service.role_store.grant_role(3, user.id, ROLE_ID_MANAGER)
        session = _logged_in(service, user)

        assert service.is_authorized(session, ROLE_ID_MANAGER, 3) is True
        assert service.is_authorized(session, ROLE_ID_MANAGER, 4) is False
        assert service.is_authorized(session, ROLE_ID_AUTHOR, 3) is False
        # Site context is the default
        assert service.is_authorized(session, ROLE_ID_MANAGER) is False

    def test_context_from_request_uses_active_context(self, service: AuthService, add_user) -> None:
        user = add_user("manager")
        service.role_store.grant_role(3, user.id, ROLE_ID_MANAGER)
        session = _logged_in(service, user)

        assert service.is_authorized(session, ROLE_ID_MANAGER, CONTEXT_FROM_REQUEST, active_context_id=3) is True
        assert service.is_authorized(session, ROLE_ID_MANAGER, CONTEXT_FROM_REQUEST, active_context_id=4) is False

    def test_context_from_request_without_active_context_checks_site(self, service: AuthService, add_user) -> None:
        user = add_user("admin")
        service.role_store.grant_role(CONTEXT_SITE, user.id, ROLE_ID_SITE_ADMIN)
        session = _logged_in(service, user)
        assert service.is_authorized(session, ROLE_ID_SITE_ADMIN, CONTEXT_FROM_REQUEST) is True

    def test_logout_revokes_authorization(self, service: AuthService, add_user) -> None:
        user = add_user("admin")
        service.role_store.grant_role(CONTEXT_SITE, user.id, ROLE_ID_SITE_ADMIN)
        session = _logged_in(service, user)
        assert service.is_site_admin(session) is True

        service.logout(session)
        assert service.is_site_admin(session) is False


class TestIsSiteAdmin:
    def test_site_admin(self, service: AuthService, add_user) -> None:
        admin = add_user("admin")
        service.role_store.grant_role(CONTEXT_SITE, admin.id, ROLE_ID_SITE_ADMIN)
        assert service.is_site_admin(_logged_in(service, admin)) is True

    def test_site_admin_role_in_tenant_context_does_not_count(self, service: AuthService, add_user) -> None:
        user = add_user("notadmin")
        service.role_store.grant_role(3, user.id, ROLE_ID_SITE_ADMIN)
        assert service.is_site_admin(_logged_in(service, user)) is False

    def test_manager_is_not_site_admin(self, service: AuthService, add_user) -> None:
        user = add_user("manager")
        service.role_store.grant_role(3, user.id, ROLE_ID_MANAGER)
        assert service.is_site_admin(_logged_in(service, user)) is False
