"""
auth/dependencies.py -- FastAPI Depends() helpers for session authentication
and role gating.

get_session() reads the session cookie, verifies it, and attaches the claims
to request.state.identity:
  - cookie absent            -> Unauthenticated (401)
  - cookie fails to verify   -> InvalidCredential (403)

require_role(*allowed) composes after get_session() and raises Forbidden when
the claim role is not one of the allowed roles. Routes declare their gate
once, at the decorator or router level, instead of comparing role strings in
handler bodies:

    router = APIRouter(dependencies=[Depends(require_staff)])

    @router.post("/suppliers/{profile_id}/approve", dependencies=[Depends(require_admin)])

Layer rule: no imports from api/, suppliers/, or notifications/.
  auth/dependencies.py may import from fastapi because this module is part of
  the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from auth.models import Role, SessionClaims
from auth.tokens import SESSION_COOKIE, decode_session_token
from core.errors import Forbidden, Unauthenticated


def get_session(request: Request) -> SessionClaims:
    """Require a valid session cookie and return its claims.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(session: SessionClaims = Depends(get_session)): ...
    """
    token = request.cookies.get(SESSION_COOKIE)
    if not token:
        raise Unauthenticated()
    claims = decode_session_token(token)
    request.state.identity = claims
    return claims


def require_role(*allowed: Role) -> Callable[..., SessionClaims]:
    """Build a dependency that admits only sessions whose role is in allowed."""
    allowed_set = frozenset(allowed)

    def _gate(session: SessionClaims = Depends(get_session)) -> SessionClaims:
        if session.role not in allowed_set:
            raise Forbidden()
        return session

    return _gate


require_admin = require_role(Role.ADMIN)
require_staff = require_role(Role.ADMIN, Role.REVIEWER)
