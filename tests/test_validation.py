"""Unit tests for auth/validation.py -- CredentialValidator.

Covers:
- Local digest validation; unknown user and wrong password are indistinguishable
- Disabled accounts still validate (refusal happens at session registration)
- Delegation to an external authenticator by auth_source_id
- Remote email refresh, and discarding a refreshed email that collides
- Unregistered auth source falls back to the local digest
- Implicit-auth mode
- check_credentials(): enabled accounts only, no profile refresh
"""

from __future__ import annotations

from unittest.mock import MagicMock

from auth.models import InvalidCredentials, Session, User
from auth.service import AuthService
from auth.store import UserStore
from auth.validation import CredentialValidator
from core.config import Settings


class TestLocalValidation:
    def test_correct_password_returns_user(self, service: AuthService, add_user) -> None:
        user = add_user("jdoe", password="secret")
        result = service.validate("jdoe", "secret")
        assert isinstance(result, User)
        assert result.id == user.id

    def test_wrong_password_is_invalid(self, service: AuthService, add_user) -> None:
        add_user("jdoe", password="secret")
        assert service.validate("jdoe", "wrong") == InvalidCredentials()

    def test_unknown_user_looks_like_wrong_password(self, service: AuthService, add_user) -> None:
        """No username enumeration: both failures return the same value."""
        add_user("jdoe", password="secret")
        assert service.validate("nobody", "secret") == service.validate("jdoe", "wrong")

    def test_username_is_case_sensitive(self, service: AuthService, add_user) -> None:
        add_user("jdoe", password="secret")
        assert isinstance(service.validate("JDOE", "secret"), InvalidCredentials)

    def test_disabled_user_still_validates(self, service: AuthService, add_user) -> None:
        add_user("gone", password="secret", disabled=True, disabled_reason="Left")
        result = service.validate("gone", "secret")
        assert isinstance(result, User)
        assert result.disabled is True


class TestExternalAuthority:
    def test_delegates_and_ignores_local_digest(self, service, registry, add_user, make_authenticator) -> None:
        auth = make_authenticator(accept=True)
        registry.register(1, auth)
        add_user("ldapuser", password=None, auth_source_id=1)

        result = service.validate("ldapuser", "remote-pass")

        assert isinstance(result, User)
        assert auth.calls == [("ldapuser", "remote-pass")]
        assert auth.refreshed == ["ldapuser"]

    def test_external_rejection_is_invalid(self, service, registry, add_user, make_authenticator) -> None:
        auth = make_authenticator(accept=False)
        registry.register(1, auth)
        # The local digest matches, but the authority decides
        add_user("ldapuser", password="secret", auth_source_id=1)

        assert service.validate("ldapuser", "secret") == InvalidCredentials()
        assert auth.refreshed == []

    def test_refreshed_email_is_persisted(self, service, registry, add_user, make_authenticator) -> None:
        registry.register(1, make_authenticator(email="fresh@example.org"))
        user = add_user("ldapuser", password=None, auth_source_id=1)

        result = service.validate("ldapuser", "pw")

        assert result.email == "fresh@example.org"
        assert service.user_store.get_by_id(user.id).email == "fresh@example.org"

    def test_colliding_refreshed_email_is_discarded(self, service, registry, add_user, make_authenticator) -> None:
        add_user("other", email="taken@example.org")
        registry.register(1, make_authenticator(email="taken@example.org"))
        user = add_user("ldapuser", password=None, email="mine@example.org", auth_source_id=1)

        result = service.validate("ldapuser", "pw")

        assert isinstance(result, User)
        assert result.email == "mine@example.org"
        assert service.user_store.get_by_id(user.id).email == "mine@example.org"

    def test_unregistered_source_falls_back_to_local_digest(self, service, add_user, caplog) -> None:
        add_user("orphan", password="secret", auth_source_id=42)
        assert isinstance(service.validate("orphan", "secret"), User)
        assert isinstance(service.validate("orphan", "wrong"), InvalidCredentials)
        assert any("not registered" in r.getMessage() for r in caplog.records)


class TestImplicitAuth:
    def _validator(self, user_store: UserStore, implicit=None) -> CredentialValidator:
        return CredentialValidator(
            user_store,
            settings=Settings(_env_file=None, implicit_auth=True),
            implicit_authenticator=implicit,
        )

    def test_asserted_identity_is_returned(self, service: AuthService, add_user) -> None:
        user = add_user("proxyuser", password=None)
        implicit = MagicMock()
        implicit.implicit_auth.return_value = user
        validator = self._validator(service.user_store, implicit)

        assert validator.validate("ignored", "ignored", Session(id="s")) is user
        implicit.implicit_auth.assert_called_once_with(service.user_store)

    def test_already_logged_in_is_a_noop(self, service: AuthService) -> None:
        implicit = MagicMock()
        validator = self._validator(service.user_store, implicit)

        result = validator.validate("", "", Session(id="s", user_id=5))

        assert result == InvalidCredentials()
        implicit.implicit_auth.assert_not_called()

    def test_no_asserted_identity_is_invalid(self, service: AuthService) -> None:
        implicit = MagicMock()
        implicit.implicit_auth.return_value = None
        assert self._validator(service.user_store, implicit).validate("", "") == InvalidCredentials()

    def test_missing_implicit_authenticator_is_invalid(self, service: AuthService) -> None:
        assert self._validator(service.user_store).validate("", "") == InvalidCredentials()

    def test_local_password_is_not_consulted(self, service: AuthService, add_user) -> None:
        add_user("jdoe", password="secret")
        implicit = MagicMock()
        implicit.implicit_auth.return_value = None
        assert isinstance(self._validator(service.user_store, implicit).validate("jdoe", "secret"), InvalidCredentials)


class TestCheckCredentials:
    def test_valid_and_invalid(self, service: AuthService, add_user) -> None:
        add_user("jdoe", password="secret")
        assert service.check_credentials("jdoe", "secret") is True
        assert service.check_credentials("jdoe", "wrong") is False
        assert service.check_credentials("nobody", "secret") is False

    def test_disabled_account_fails(self, service: AuthService, add_user) -> None:
        add_user("gone", password="secret", disabled=True)
        assert service.check_credentials("gone", "secret") is False

    def test_external_check_does_not_refresh_profile(self, service, registry, add_user, make_authenticator) -> None:
        auth = make_authenticator(accept=True, email="fresh@example.org")
        registry.register(1, auth)
        user = add_user("ldapuser", password=None, auth_source_id=1)

        assert service.check_credentials("ldapuser", "pw") is True
        assert auth.refreshed == []
        assert service.user_store.get_by_id(user.id).email == "ldapuser@example.org"
