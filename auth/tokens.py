"""
auth/tokens.py -- Session credential issuance/verification, password hashing,
and the session cookie helper.

Security design decisions:
  JWT: python-jose with HS256. Session tokens are signed with SECRET_KEY and
       carry user_id, email (as sub), role, iat and exp. A "typ" claim of
       "session" keeps them from being replayed as document access tokens,
       which share the signing key (see suppliers/access.py).
       Verification raises InvalidCredential on ANY failure -- bad signature,
       malformed payload, expiry, unknown role -- with one message, so the
       caller cannot tell which check rejected the token.

  Passwords: bcrypt, used directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate() so response time does not reveal whether
       an email is registered.

  Cookie: httpOnly + samesite=strict; secure when SECURE_COOKIES=true.

Layer rule: no imports from api/, suppliers/, or notifications/. Import from
core/ is allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import Identity, Role, SessionClaims
from core.config import get_settings
from core.errors import InvalidCredential, ValidationError

if TYPE_CHECKING:
    from auth.store import IdentityStore

logger = logging.getLogger("suppliergate.auth")

_settings = get_settings()

ALGORITHM = "HS256"
SESSION_COOKIE = "access_token"
_SESSION_TYPE = "session"
MAX_PASSWORD_BYTES = 72


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt accepts at most MAX_PASSWORD_BYTES of input. The API models reject
    longer passwords with a 422; this check covers every other caller.
    """
    encoded = plain.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes as UTF-8.")
    return bcrypt.hashpw(encoded, bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("suppliergate_timing_dummy")


def authenticate(store: IdentityStore, email: str, password: str) -> Identity | None:
    """Check an email/password pair with timing equalization.

    Always runs bcrypt whether or not the email exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the Identity on success, None on any failure.
    """
    identity = store.get_by_email(email)
    if identity is None:
        # Do NOT return before running bcrypt
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, identity.hashed_password):
        return None
    return identity


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


def create_session_token(identity: Identity, now: datetime | None = None) -> str:
    """Sign a session token for identity with the fixed session lifetime.

    now is injectable so tests can mint tokens that are already expired.
    """
    issued = now or datetime.now(timezone.utc)
    expire = issued + timedelta(seconds=_settings.session_expire_seconds)
    payload = {
        "sub": identity.email,
        "user_id": identity.id,
        "role": Role(identity.role).value,
        "typ": _SESSION_TYPE,
        "iat": int(issued.timestamp()),
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=ALGORITHM)


def decode_session_token(token: str) -> SessionClaims:
    """Verify a session token and return its claims.

    Raises InvalidCredential for every kind of failure.
    """
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise InvalidCredential() from exc
    if payload.get("typ") != _SESSION_TYPE:
        raise InvalidCredential()
    try:
        return SessionClaims(
            user_id=int(payload["user_id"]),
            email=str(payload["sub"]),
            role=Role(payload["role"]),
            issued_at=int(payload["iat"]),
            expires_at=int(payload["exp"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidCredential() from exc


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str) -> None:
    """Write the session token as an httpOnly, same-site-strict cookie.

    max_age matches the token lifetime so cookie and token expire together.
    """
    response.set_cookie(
        SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="strict",
        secure=_settings.secure_cookies,
        max_age=_settings.session_expire_seconds,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE, httponly=True, samesite="strict", secure=_settings.secure_cookies)
