"""
api/routes/v1/admin.py -- Review queue and user directory for staff.

Routes:
  GET  /api/v1/admin/suppliers[?status=]        -- list applications (ADMIN, REVIEWER)
  GET  /api/v1/admin/suppliers/{profile_id}     -- one application (ADMIN, REVIEWER)
  POST /api/v1/admin/suppliers/{profile_id}/approve  -- PENDING -> APPROVED (ADMIN)
  POST /api/v1/admin/suppliers/{profile_id}/reject   -- PENDING -> REJECTED (ADMIN)
  GET  /api/v1/admin/users[?role=&email=&status=]     -- user directory (ADMIN, REVIEWER)
  GET  /api/v1/admin/users/{user_id}                  -- one user with their profile

REVIEWER can read the queue and open documents (view links) but cannot
decide applications. In the user directory a REVIEWER sees REGULAR and
SUPPLIER accounts only.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import ProfileResponse, RejectRequest, UserResponse
from auth.dependencies import require_admin, require_staff
from auth.models import Role, SessionClaims
from suppliers.lifecycle import SupplierLifecycle
from suppliers.models import SupplierStatus

# Every route below needs ADMIN or REVIEWER; decisions narrow that to ADMIN.
router = APIRouter(dependencies=[Depends(require_staff)])


@router.get("/admin/suppliers", response_model=list[ProfileResponse])
def list_applications(request: Request, status: Optional[SupplierStatus] = None) -> list[ProfileResponse]:
    lifecycle: SupplierLifecycle = request.app.state.lifecycle
    return [ProfileResponse.from_profile(p) for p in lifecycle.list_applications(status)]


@router.get("/admin/suppliers/{profile_id}", response_model=ProfileResponse)
def get_application(request: Request, profile_id: int) -> ProfileResponse:
    lifecycle: SupplierLifecycle = request.app.state.lifecycle
    return ProfileResponse.from_profile(lifecycle.get_application(profile_id))


@router.post(
    "/admin/suppliers/{profile_id}/approve",
    response_model=ProfileResponse,
    dependencies=[Depends(require_admin)],
)
def approve(request: Request, profile_id: int) -> ProfileResponse:
    """Approve a PENDING application and promote its owner to SUPPLIER."""
    lifecycle: SupplierLifecycle = request.app.state.lifecycle
    return ProfileResponse.from_profile(lifecycle.approve(profile_id))


@router.post(
    "/admin/suppliers/{profile_id}/reject",
    response_model=ProfileResponse,
    dependencies=[Depends(require_admin)],
)
def reject(request: Request, profile_id: int, body: RejectRequest) -> ProfileResponse:
    """Reject a PENDING application. A non-blank reason is required."""
    lifecycle: SupplierLifecycle = request.app.state.lifecycle
    return ProfileResponse.from_profile(lifecycle.reject(profile_id, body.reason))


# ---------------------------------------------------------------------------
# User directory
# ---------------------------------------------------------------------------


@router.get("/admin/users", response_model=list[UserResponse])
def list_users(
    request: Request,
    role: Optional[Role] = None,
    email: Optional[str] = Query(default=None, max_length=255),
    status: Optional[SupplierStatus] = None,
    session: SessionClaims = Depends(require_staff),
) -> list[UserResponse]:
    """Search users by role, email substring (case-insensitive) and supplier status."""
    lifecycle: SupplierLifecycle = request.app.state.lifecycle
    accounts = lifecycle.list_accounts(session.role, role=role, email=email, status=status)
    return [UserResponse.from_account(identity, profile) for identity, profile in accounts]


@router.get("/admin/users/{user_id}", response_model=UserResponse)
def get_user(
    request: Request,
    user_id: int,
    session: SessionClaims = Depends(require_staff),
) -> UserResponse:
    lifecycle: SupplierLifecycle = request.app.state.lifecycle
    identity, profile = lifecycle.get_account(session.role, user_id)
    return UserResponse.from_account(identity, profile)
