"""
suppliers/lifecycle.py -- The supplier application state machine.

States and transitions:

    NONE ----apply_as_supplier----> PENDING
    PENDING --approve-------------> APPROVED   (owner role := SUPPLIER)
    PENDING --reject(reason)------> REJECTED   (role unchanged)
    any ------delete_profile------> NONE       (role unchanged)
    any ------delete_account------> user, profile and documents gone
    APPROVED --update_profile-----> APPROVED   (business fields only)

SupplierLifecycle is the only writer of Identity.role,
Identity.is_supplier_applicant and SupplierProfile.status. Each transition
is one SupplierStore call, i.e. one transaction; see suppliers/store.py for
how the preconditions are enforced atomically.

Approval and rejection enqueue a notification AFTER the transaction commits.
The dispatcher never raises into this module, so a notification failure can
not undo a committed transition.

Role gating (who may approve/reject) is declared on the routes with
auth.dependencies.require_role; this module trusts its caller on that point.
Which accounts a REVIEWER may look up is data scoping, not gating, and is
applied here.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from auth.models import Identity, Role
from auth.store import IdentityStore
from core.errors import Conflict, Forbidden, InvalidTransition, NotFound, ValidationError
from notifications.dispatcher import NotificationDispatcher
from notifications.templates import SUPPLIER_APPROVED, SUPPLIER_REJECTED
from suppliers.models import DocumentUpload, SupplierDocument, SupplierProfile, SupplierStatus
from suppliers.store import SupplierStore

logger = logging.getLogger("suppliergate.lifecycle")

# REVIEWER sees ordinary accounts only; ADMIN sees every account.
REVIEWER_VISIBLE_ROLES = frozenset({Role.REGULAR, Role.SUPPLIER})


class SupplierLifecycle:
    def __init__(
        self,
        identities: IdentityStore,
        suppliers: SupplierStore,
        dispatcher: NotificationDispatcher,
    ) -> None:
        self.identities = identities
        self.suppliers = suppliers
        self.dispatcher = dispatcher

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def apply_as_supplier(self, identity_id: int, uploads: list[DocumentUpload]) -> SupplierProfile:
        """NONE -> PENDING.

        The applicant flag is claimed inside the same transaction that creates
        the profile and documents, so of two concurrent applications for the
        same identity exactly one succeeds and the other raises Conflict.
        """
        if not uploads:
            raise ValidationError("At least one document is required to apply.")
        profile_id = self.suppliers.create_application(identity_id, uploads)
        if profile_id is None:
            if self.identities.get_by_id(identity_id) is None:
                raise NotFound("User not found.")
            raise Conflict("User is already a supplier or has an application in progress.")
        logger.info(
            "Supplier application %d submitted by user %d with %d document(s)",
            profile_id,
            identity_id,
            len(uploads),
        )
        return self._require_profile(profile_id)

    def approve(self, profile_id: int) -> SupplierProfile:
        """PENDING -> APPROVED and promote the owner to SUPPLIER."""
        moved = self.suppliers.transition(
            profile_id,
            SupplierStatus.PENDING,
            SupplierStatus.APPROVED,
            promote_owner=True,
        )
        if not moved:
            self._raise_not_pending(profile_id, "approved")
        profile = self._require_profile(profile_id)
        logger.info("Supplier application %d approved for user %d", profile.id, profile.user_id)
        self._notify(SUPPLIER_APPROVED, profile)
        return profile

    def reject(self, profile_id: int, reason: Optional[str]) -> SupplierProfile:
        """PENDING -> REJECTED with a mandatory, non-blank reason.

        The owner's role is left as it is.
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A rejection reason is required.")
        moved = self.suppliers.transition(
            profile_id,
            SupplierStatus.PENDING,
            SupplierStatus.REJECTED,
            rejection_reason=reason,
        )
        if not moved:
            self._raise_not_pending(profile_id, "rejected")
        profile = self._require_profile(profile_id)
        logger.info("Supplier application %d rejected for user %d", profile.id, profile.user_id)
        self._notify(SUPPLIER_REJECTED, profile, reason=reason)
        return profile

    def delete_profile(self, identity_id: int) -> list[SupplierDocument]:
        """Any state -> NONE. Removes the profile, its documents and their files.

        Returns the removed document records.
        """
        removed = self.suppliers.delete_for_user(identity_id)
        if removed is None:
            raise NotFound("Supplier profile not found.")
        logger.info("Supplier profile deleted for user %d (%d document(s))", identity_id, len(removed))
        discard_files([d.file_path for d in removed])
        return removed

    def delete_account(self, identity_id: int) -> list[SupplierDocument]:
        """Remove the identity, its profile in any state, its documents and their files."""
        removed = self.suppliers.delete_account(identity_id)
        if removed is None:
            raise NotFound("User not found.")
        logger.info("User %d deleted (%d document(s))", identity_id, len(removed))
        discard_files([d.file_path for d in removed])
        return removed

    def update_profile(self, identity_id: int, **fields) -> SupplierProfile:
        """Edit business fields. Allowed only while the profile is APPROVED."""
        if not self.suppliers.update_approved(identity_id, **fields):
            raise Forbidden("Only approved suppliers can update their profile.")
        profile = self.suppliers.get_profile_for_user(identity_id)
        if profile is None:
            # Deleted between the update and the re-read
            raise NotFound("Supplier profile not found.")
        return profile

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_profile(self, identity_id: int) -> SupplierProfile:
        profile = self.suppliers.get_profile_for_user(identity_id)
        if profile is None:
            raise NotFound("Supplier profile not found.")
        return profile

    def get_application(self, profile_id: int) -> SupplierProfile:
        return self._require_profile(profile_id)

    def list_applications(self, status: Optional[SupplierStatus] = None) -> list[SupplierProfile]:
        return self.suppliers.list_profiles(status)

    def list_accounts(
        self,
        viewer: Role,
        role: Optional[Role] = None,
        email: Optional[str] = None,
        status: Optional[SupplierStatus] = None,
    ) -> list[tuple[Identity, Optional[SupplierProfile]]]:
        """Staff directory search. A REVIEWER never sees ADMIN or REVIEWER rows."""
        visible = None if viewer is Role.ADMIN else REVIEWER_VISIBLE_ROLES
        if role is not None:
            if visible is not None and role not in visible:
                return []
            visible = {role}
        return self.suppliers.list_accounts(visible, email, status)

    def get_account(self, viewer: Role, identity_id: int) -> tuple[Identity, Optional[SupplierProfile]]:
        visible = None if viewer is Role.ADMIN else REVIEWER_VISIBLE_ROLES
        found = self.suppliers.get_account(identity_id, visible)
        if found is None:
            raise NotFound("User not found.")
        return found

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_profile(self, profile_id: int) -> SupplierProfile:
        profile = self.suppliers.get_profile(profile_id)
        if profile is None:
            raise NotFound("Supplier application not found.")
        return profile

    def _raise_not_pending(self, profile_id: int, verb: str) -> None:
        current = self.suppliers.get_profile(profile_id)
        if current is None:
            raise NotFound("Supplier application not found.")
        raise InvalidTransition(
            f"Supplier application cannot be {verb}: it is {current.status.value}.",
        )

    def _notify(self, kind: str, profile: SupplierProfile, **extra) -> None:
        # Runs after commit; a failure here must not turn into an error response
        try:
            owner = self.identities.get_by_id(profile.user_id)
        except SQLAlchemyError:
            logger.exception("Owner lookup failed for supplier profile %d; %s notification skipped", profile.id, kind)
            return
        if owner is None:
            logger.warning("No owner found for supplier profile %d; %s notification skipped", profile.id, kind)
            return
        self.dispatcher.enqueue(kind, {"user_id": owner.id, "email": owner.email, **extra})


def discard_files(paths: list[str]) -> None:
    """Remove stored upload files. A file that cannot be removed is logged."""
    for path in paths:
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove stored document %s: %s", path, e)
