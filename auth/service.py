"""
auth/service.py -- One object exposing the whole authentication engine.

AuthService wires the stores, the credential validator, the session
registrar, the authorization checker and the administration evaluator
together with a single Settings instance. The request layer
(auth/dependencies.py) and the CLI (main.py) only talk to this class.

Login is two steps on purpose:
  validate()               -- are the credentials right? (ignores disabled)
  register_user_session()  -- may this user have a session? (refuses disabled)
login() runs both and returns whichever result ends the flow.

Usage:
    service = AuthService.from_settings()
    session = service.new_session()
    result = service.login(session, "jdoe", "secret", remember=True)
    if isinstance(result, Session):
        ...
    service.close()
"""

from __future__ import annotations

import logging

from auth import utils
from auth.administration import AdministrationPermissionEvaluator
from auth.authorization import AuthorizationChecker, is_logged_in, is_logged_in_as
from auth.hashing import encrypt_credentials
from auth.models import CONTEXT_SITE, InvalidCredentials, Session, SessionRejected, User
from auth.session_store import SessionStore
from auth.sessions import SessionRegistrar
from auth.sources import AuthSourceRegistry, ImplicitAuthenticator
from auth.store import RoleStore, UserGroupStore, UserStore
from auth.validation import CredentialValidator
from core.config import Settings, get_settings

logger = logging.getLogger("tenantguard.auth")


class AuthService:
    def __init__(
        self,
        user_store: UserStore,
        session_store: SessionStore,
        role_store: RoleStore,
        user_group_store: UserGroupStore,
        settings: Settings | None = None,
        auth_sources: AuthSourceRegistry | None = None,
        implicit_authenticator: ImplicitAuthenticator | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.user_store = user_store
        self.session_store = session_store
        self.role_store = role_store
        self.user_group_store = user_group_store
        self.auth_sources = auth_sources if auth_sources is not None else AuthSourceRegistry()

        self.validator = CredentialValidator(user_store, self.auth_sources, self.settings, implicit_authenticator)
        self.authorization = AuthorizationChecker(role_store)
        self.administration = AdministrationPermissionEvaluator(role_store, user_group_store)
        self.registrar = SessionRegistrar(session_store, user_store, self.settings, self.administration)

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **kwargs) -> AuthService:
        """Build a service whose four stores share Settings.database_url."""
        settings = settings or get_settings()
        db_url = settings.database_url
        return cls(
            UserStore(db_url),
            SessionStore(db_url, idle_timeout=settings.session_idle_timeout),
            RoleStore(db_url),
            UserGroupStore(db_url),
            settings=settings,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def new_session(self) -> Session:
        return self.session_store.create_session()

    def load_session(self, session_id: str | None) -> Session:
        """Return the live session with this id, or a new anonymous one."""
        if session_id:
            session = self.session_store.get_session(session_id)
            if session is not None:
                return session
        return self.session_store.create_session()

    # ------------------------------------------------------------------
    # Login / logout
    # ------------------------------------------------------------------

    def validate(self, username: str, password: str, session: Session | None = None) -> User | InvalidCredentials:
        return self.validator.validate(username, password, session)

    def check_credentials(self, username: str, password: str) -> bool:
        return self.validator.check_credentials(username, password)

    def register_user_session(self, session: Session, user: User | None, remember: bool = False) -> Session | SessionRejected:
        return self.registrar.register_user_session(session, user, remember)

    def login(
        self, session: Session, username: str, password: str, remember: bool = False
    ) -> Session | InvalidCredentials | SessionRejected:
        """Validate credentials and, if valid, register them on session."""
        result = self.validator.validate(username, password, session)
        if isinstance(result, InvalidCredentials):
            return result
        return self.registrar.register_user_session(session, result, remember)

    def logout(self, session: Session) -> bool:
        return self.registrar.logout(session)

    def sign_in_as(self, session: Session, target_user_id: int) -> Session | SessionRejected:
        return self.registrar.sign_in_as(session, target_user_id)

    def sign_out_as(self, session: Session) -> Session:
        return self.registrar.sign_out_as(session)

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def is_authorized(
        self,
        session: Session,
        role_id: int,
        context_id: int = CONTEXT_SITE,
        active_context_id: int | None = None,
    ) -> bool:
        return self.authorization.is_authorized(session, role_id, context_id, active_context_id)

    def is_site_admin(self, session: Session) -> bool:
        return self.authorization.is_site_admin(session)

    def is_logged_in(self, session: Session) -> bool:
        return is_logged_in(session)

    def is_logged_in_as(self, session: Session) -> bool:
        return is_logged_in_as(session)

    def can_administer(self, administered_user_id: int, administrator_user_id: int) -> bool:
        return self.administration.can_administer(administered_user_id, administrator_user_id)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def encrypt_credentials(self, username: str, password: str, encryption: str | None = None) -> str:
        return encrypt_credentials(username, password, encryption=encryption, settings=self.settings)

    def create_user(
        self,
        username: str,
        email: str,
        password: str | None = None,
        auth_source_id: int | None = None,
    ) -> User:
        """Create an account. A user with no password gets no usable local digest.

        Raises sqlalchemy.exc.IntegrityError if the username or email is taken.
        """
        digest = self.encrypt_credentials(username, password) if password else ""
        user = User(username=username, email=email, password=digest, auth_source_id=auth_source_id)
        self.user_store.create_user(user)
        logger.info("User %r created (id=%d)", username, user.id)
        return user

    def change_password(self, user_id: int, password: str) -> bool:
        """Store a new digest for user_id. Invalidates outstanding reset hashes."""
        user = self.user_store.get_by_id(user_id)
        if user is None:
            return False
        user.password = self.encrypt_credentials(user.username, password)
        return self.user_store.update_user(user)

    def generate_password(self, length: int = 8) -> str:
        return utils.generate_password(length)

    def generate_password_reset_hash(self, user_id: int) -> str | None:
        return utils.generate_password_reset_hash(self.user_store, user_id)

    def check_password_reset_hash(self, user_id: int, reset_hash: str) -> bool:
        return utils.check_password_reset_hash(self.user_store, user_id, reset_hash)

    def suggest_username(self, first_name: str, last_name: str) -> str:
        return utils.suggest_username(self.user_store, first_name, last_name)

    def close(self) -> None:
        self.user_store.close()
        self.session_store.close()
        self.role_store.close()
        self.user_group_store.close()
