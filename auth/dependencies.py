"""
auth/dependencies.py -- FastAPI Depends() helpers binding the engine to a request.

The host application puts an AuthService on app.state.auth_service. From
there:

  get_session()           -- the request's Session, loaded from the session
                             cookie or freshly created when the cookie is
                             missing, unknown or expired. Never raises.
  try_get_current_user()  -- soft variant: the logged-in User or None.
  get_current_user()      -- raises HTTP 401 if the session is anonymous or
                             its account has been disabled.
  require_role()          -- dependency factory: 401 as above, 403 if the
                             user lacks the role in the requested context.
  require_site_admin()    -- require_role(ROLE_ID_SITE_ADMIN, CONTEXT_SITE).

The active context of a request is the integer `context_id` path parameter
when the route declares one, otherwise request.state.context_id if a
middleware set it, otherwise none (checks then fall back to the site context).

After login the session id changes, so handlers must call
set_session_cookie() on their response.

Layer rule: auth/dependencies.py may import from fastapi because it is part
of the FastAPI dependency injection system. Nothing else in auth/ does.
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import Depends, HTTPException, Request, Response

from auth.authorization import is_logged_in
from auth.models import CONTEXT_FROM_REQUEST, CONTEXT_SITE, ROLE_ID_SITE_ADMIN, Session, User
from auth.service import AuthService


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_session(request: Request) -> Session:
    """Return the session named by the request's cookie, or a new anonymous one."""
    service = get_auth_service(request)
    session = service.load_session(request.cookies.get(service.settings.session_cookie_name))
    request.state.session = session
    return session


def active_context_id(request: Request) -> int | None:
    """Return the request's active context id, or None if it has none."""
    raw = request.path_params.get("context_id")
    if raw is not None:
        try:
            return int(raw)
        except ValueError:
            raise HTTPException(
                status_code=404,
                detail={"code": "unknown_context", "message": "Unknown context."},
            ) from None
    return getattr(request.state, "context_id", None)


def try_get_current_user(request: Request, session: Session = Depends(get_session)) -> User | None:
    """Return the logged-in User, or None. Never raises.

    An account disabled after its session was established resolves to None,
    so it loses access on its next request.
    """
    if not is_logged_in(session):
        return None
    user = get_auth_service(request).user_store.get_by_id(session.user_id)
    if user is None or user.disabled:
        return None
    return user


def get_current_user(user: User | None = Depends(try_get_current_user)) -> User:
    """Require authentication. Raises HTTP 401 if the session is anonymous.

    Use as a FastAPI dependency:
        @router.get("/profile")
        async def route(user: User = Depends(get_current_user)): ...
    """
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user


def require_role(role_id: int, context_id: int = CONTEXT_FROM_REQUEST):
    """Build a dependency that requires role_id in context_id.

    The default CONTEXT_FROM_REQUEST checks the role in the request's active
    context (see active_context_id()).

    Use as a FastAPI dependency:
        @router.get("/contexts/{context_id}/settings")
        async def route(session: Session = Depends(require_role(ROLE_ID_MANAGER))): ...
    """

    def dependency(
        request: Request,
        session: Session = Depends(get_session),
        user: User | None = Depends(try_get_current_user),
    ) -> Session:
        if user is None:
            raise HTTPException(
                status_code=401,
                detail={"code": "unauthorized", "message": "Authentication required."},
            )
        service = get_auth_service(request)
        if not service.is_authorized(session, role_id, context_id, active_context_id(request)):
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": "Insufficient role for this context."},
            )
        return session

    return dependency


require_site_admin = require_role(ROLE_ID_SITE_ADMIN, CONTEXT_SITE)


def set_session_cookie(response: Response, session: Session, service: AuthService) -> None:
    """Write the session id as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST (CSRF mitigation for most cases).
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    max_age: set only for remembered sessions, matching their expiry;
        otherwise the cookie is a browser-session cookie.
    """
    max_age = None
    if session.expires_at:
        remaining = datetime.fromisoformat(session.expires_at) - datetime.now(timezone.utc)
        max_age = max(int(remaining.total_seconds()), 0)
    response.set_cookie(
        service.settings.session_cookie_name,
        value=session.id,
        httponly=True,
        samesite="lax",
        secure=service.settings.secure_cookies,
        max_age=max_age,
    )
