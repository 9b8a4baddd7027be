"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work; these only own the domain shape.

Layer rule: no imports from api/, suppliers/, or notifications/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    REGULAR = "REGULAR"
    SUPPLIER = "SUPPLIER"
    ADMIN = "ADMIN"
    REVIEWER = "REVIEWER"


@dataclass
class Identity:
    """An authenticated principal.

    role and is_supplier_applicant are written only by the supplier lifecycle
    (suppliers/lifecycle.py). Registration always creates REGULAR identities;
    ADMIN and REVIEWER accounts are bootstrapped from the CLI.
    """

    email: str
    hashed_password: str
    role: Role = Role.REGULAR
    is_supplier_applicant: bool = False
    id: int | None = None
    created_at: str | None = None
    last_login: str | None = None


@dataclass(frozen=True)
class SessionClaims:
    """Verified contents of a session token.

    For the duration of one request the role here is the source of truth for
    role gating; handlers re-read the store only when they need fresh data.
    """

    user_id: int
    email: str
    role: Role
    issued_at: int
    expires_at: int
