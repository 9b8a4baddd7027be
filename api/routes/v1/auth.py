"""
api/routes/v1/auth.py -- Registration, login and session endpoints.

Routes:
  POST /api/v1/auth/register   -- create a REGULAR identity; sets session cookie
  POST /api/v1/auth/login      -- password login; sets session cookie
  POST /api/v1/auth/logout     -- clears the session cookie (requires session)
  GET  /api/v1/auth/me         -- current identity, re-read from the store
  PUT  /api/v1/auth/me         -- change email and/or password; re-issues the session cookie
  DELETE /api/v1/auth/me       -- delete the account with its supplier profile and files

Security:
  register, login and account updates are rate-limited per client IP (AUTH_LIMIT).
  A password change requires the current password.
  authenticate() provides timing equalization -- use it, never inline.
  Unknown email and wrong password produce the same 401 bad_credentials.
  Cache-Control: no-store on every response that sets the session cookie.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import AUTH_LIMIT, limiter
from api.models import AccountUpdate, Credentials, MeResponse, MessageResponse, SessionResponse
from auth.dependencies import get_session
from auth.models import Identity, SessionClaims
from auth.store import IdentityStore
from auth.tokens import (
    authenticate,
    clear_session_cookie,
    create_session_token,
    hash_password,
    set_session_cookie,
    verify_password,
)
from core.config import get_settings
from core.errors import BadCredentials, Conflict, NotFound
from suppliers.lifecycle import SupplierLifecycle

logger = logging.getLogger("suppliergate.api")

router = APIRouter()


def _session_response(identity: Identity, status_code: int) -> JSONResponse:
    token = create_session_token(identity)
    resp = JSONResponse(
        status_code=status_code,
        content=SessionResponse(
            user_id=identity.id,
            email=identity.email,
            role=identity.role,
            expires_in=get_settings().session_expire_seconds,
        ).model_dump(mode="json"),
    )
    set_session_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(AUTH_LIMIT)
@router.post("/auth/register", response_model=SessionResponse, status_code=201)
def register(request: Request, body: Credentials) -> JSONResponse:
    """Create a REGULAR identity and start a session for it.

    Registration can never create ADMIN, REVIEWER or SUPPLIER identities.
    """
    store: IdentityStore = request.app.state.identities
    identity = Identity(email=body.email, hashed_password=hash_password(body.password))
    try:
        identity.id = store.create_identity(identity)
    except IntegrityError as exc:
        raise Conflict("Email already exists.") from exc
    logger.info("New user registered: %d", identity.id)
    return _session_response(identity, status_code=201)


@limiter.limit(AUTH_LIMIT)
@router.post("/auth/login", response_model=SessionResponse)
def login(request: Request, body: Credentials) -> JSONResponse:
    """Authenticate with email and password; set the session cookie."""
    store: IdentityStore = request.app.state.identities
    identity = authenticate(store, body.email, body.password)
    if identity is None:
        raise BadCredentials()
    store.update_last_login(identity.id)
    logger.info("User logged in: %d", identity.id)
    return _session_response(identity, status_code=200)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
async def logout(session: SessionClaims = Depends(get_session)) -> JSONResponse:
    """Clear the session cookie. The token itself stays valid until it expires."""
    resp = JSONResponse(content=MessageResponse(message="Logged out.").model_dump())
    clear_session_cookie(resp)
    return resp


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, session: SessionClaims = Depends(get_session)) -> MeResponse:
    """Return the current identity as stored now, not as it was at login."""
    store: IdentityStore = request.app.state.identities
    identity = store.get_by_id(session.user_id)
    if identity is None:
        raise NotFound("User not found.")
    return MeResponse.from_identity(identity, session)


@limiter.limit(AUTH_LIMIT)
@router.put("/auth/me", response_model=SessionResponse)
def update_account(
    request: Request,
    body: AccountUpdate,
    session: SessionClaims = Depends(get_session),
) -> JSONResponse:
    """Change the caller's email and/or password.

    The session cookie is re-issued so its email claim matches the store.
    """
    store: IdentityStore = request.app.state.identities
    identity = store.get_by_id(session.user_id)
    if identity is None:
        raise NotFound("User not found.")

    new_hash = None
    if body.password is not None:
        if not verify_password(body.old_password, identity.hashed_password):
            raise BadCredentials("Incorrect current password.")
        new_hash = hash_password(body.password)

    try:
        updated = store.update_account(identity.id, email=body.email, hashed_password=new_hash)
    except IntegrityError as exc:
        raise Conflict("Email already exists.") from exc
    identity = store.get_by_id(identity.id) if updated else None
    if identity is None:
        raise NotFound("User not found.")
    logger.info("User account updated: %d", identity.id)
    return _session_response(identity, status_code=200)


@router.delete("/auth/me", response_model=MessageResponse)
def delete_account(request: Request, session: SessionClaims = Depends(get_session)) -> JSONResponse:
    """Delete the caller's account, supplier profile and stored documents; clear the cookie."""
    lifecycle: SupplierLifecycle = request.app.state.lifecycle
    lifecycle.delete_account(session.user_id)
    resp = JSONResponse(content=MessageResponse(message="Account deleted.").model_dump())
    clear_session_cookie(resp)
    return resp
