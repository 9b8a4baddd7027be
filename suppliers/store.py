"""
suppliers/store.py -- SQLAlchemy Core persistence for supplier profiles and
their documents.

Pattern: Repository + Data Mapper, sharing the engine and MetaData owned by
auth/store.py so a transition can touch users, supplier_profiles and
supplier_documents in one transaction.

Transactional transitions:
  Every multi-record write below runs on one connection and commits once at
  the end. Returning before conn.commit() leaves the `with` block without a
  commit, which rolls the whole unit back.

  Each transition opens with a conditional UPDATE (compare-and-set) rather
  than a SELECT. The WHERE clause carries the precondition, so the check and
  the write are one statement: of two concurrent callers only one sees
  rowcount == 1, the other sees 0 and backs out. Starting with the write also
  makes SQLite take its write lock up front; a read-first transaction in WAL
  mode could be refused the upgrade after a competing commit.

Methods return plain values (ids, bools, None) rather than raising; the
lifecycle layer decides which error a failed precondition means.
"""

from __future__ import annotations

from collections.abc import Collection
from typing import Optional

from sqlalchemy import Column, ForeignKey, Integer, String, Table, Text, func, select

from auth.models import Identity, Role
from auth.store import IdentityStore, metadata, now_iso, row_to_identity, users
from suppliers.models import PROFILE_FIELDS, DocumentUpload, SupplierDocument, SupplierProfile, SupplierStatus

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

profiles = Table(
    "supplier_profiles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
    Column("status", String(20), nullable=False, server_default=SupplierStatus.PENDING.value),
    Column("rejection_reason", Text),
    Column("business_name", String(255)),
    Column("address", String(255)),
    Column("city", String(100)),
    Column("state", String(100)),
    Column("zip_code", String(20)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

documents = Table(
    "supplier_documents",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("profile_id", Integer, ForeignKey("supplier_profiles.id", ondelete="CASCADE"), nullable=False),
    Column("file_name", String(255), nullable=False),
    Column("file_path", Text, nullable=False),
    Column("mime_type", String(100), nullable=False),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SupplierStore:
    """Repository for SupplierProfile and SupplierDocument records.

    Usage:
        identities = IdentityStore(db_url)
        suppliers = SupplierStore(identities)
    """

    def __init__(self, identity_store: IdentityStore) -> None:
        self.engine = identity_store.engine
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def create_application(self, user_id: int, uploads: list[DocumentUpload]) -> Optional[int]:
        """Claim the applicant flag, create a PENDING profile and its documents.

        Returns the new profile id, or None when the flag was not claimable
        (already an applicant, or no such user). Nothing is written in the
        None case.
        """
        now = now_iso()
        with self.engine.connect() as conn:
            claimed = conn.execute(
                users.update()
                .where((users.c.id == user_id) & (users.c.is_supplier_applicant == 0))
                .values(is_supplier_applicant=1)
            )
            if claimed.rowcount != 1:
                return None
            result = conn.execute(
                profiles.insert().values(
                    user_id=user_id,
                    status=SupplierStatus.PENDING.value,
                    created_at=now,
                    updated_at=now,
                )
            )
            profile_id = result.inserted_primary_key[0]
            conn.execute(
                documents.insert(),
                [
                    {
                        "profile_id": profile_id,
                        "file_name": u.file_name,
                        "file_path": u.file_path,
                        "mime_type": u.mime_type,
                        "created_at": now,
                    }
                    for u in uploads
                ],
            )
            conn.commit()
            return profile_id

    def transition(
        self,
        profile_id: int,
        from_status: SupplierStatus,
        to_status: SupplierStatus,
        rejection_reason: Optional[str] = None,
        promote_owner: bool = False,
    ) -> bool:
        """Move a profile from from_status to to_status atomically.

        promote_owner=True also sets the owning user's role to SUPPLIER in the
        same transaction. Returns False (and writes nothing) if the profile is
        missing or not currently in from_status.
        """
        with self.engine.connect() as conn:
            moved = conn.execute(
                profiles.update()
                .where((profiles.c.id == profile_id) & (profiles.c.status == from_status.value))
                .values(status=to_status.value, rejection_reason=rejection_reason, updated_at=now_iso())
            )
            if moved.rowcount != 1:
                return False
            if promote_owner:
                owner_id = conn.execute(select(profiles.c.user_id).where(profiles.c.id == profile_id)).scalar_one()
                conn.execute(users.update().where(users.c.id == owner_id).values(role=Role.SUPPLIER.value))
            conn.commit()
        return True

    def delete_for_user(self, user_id: int) -> Optional[list[SupplierDocument]]:
        """Delete a user's profile and documents and clear the applicant flag.

        Returns the deleted documents (so the caller can remove the files), or
        None if the user had no profile, in which case nothing changes.
        """
        with self.engine.connect() as conn:
            conn.execute(users.update().where(users.c.id == user_id).values(is_supplier_applicant=0))
            profile_id = conn.execute(select(profiles.c.id).where(profiles.c.user_id == user_id)).scalar()
            if profile_id is None:
                return None
            rows = conn.execute(documents.select().where(documents.c.profile_id == profile_id)).fetchall()
            # Explicit delete: not every backend enforces the FK cascade
            conn.execute(documents.delete().where(documents.c.profile_id == profile_id))
            conn.execute(profiles.delete().where(profiles.c.id == profile_id))
            conn.commit()
        return [_row_to_document(r) for r in rows]

    def delete_account(self, user_id: int) -> Optional[list[SupplierDocument]]:
        """Delete a user together with their profile and documents.

        Returns the deleted documents (possibly empty), or None if there is no
        such user, in which case nothing changes.
        """
        with self.engine.connect() as conn:
            # Existence check that also takes the write lock
            found = conn.execute(users.update().where(users.c.id == user_id).values(is_supplier_applicant=0))
            if found.rowcount != 1:
                return None
            owned = select(profiles.c.id).where(profiles.c.user_id == user_id)
            rows = conn.execute(documents.select().where(documents.c.profile_id.in_(owned))).fetchall()
            conn.execute(documents.delete().where(documents.c.profile_id.in_(owned)))
            conn.execute(profiles.delete().where(profiles.c.user_id == user_id))
            conn.execute(users.delete().where(users.c.id == user_id))
            conn.commit()
        return [_row_to_document(r) for r in rows]

    def update_approved(self, user_id: int, **fields) -> bool:
        """Update business fields on a user's profile, only if it is APPROVED.

        Only PROFILE_FIELDS are accepted; unknown keys raise ValueError.
        Returns False if there is no APPROVED profile for user_id.
        """
        unknown = set(fields) - set(PROFILE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown profile fields: {unknown!r}")
        with self.engine.connect() as conn:
            result = conn.execute(
                profiles.update()
                .where((profiles.c.user_id == user_id) & (profiles.c.status == SupplierStatus.APPROVED.value))
                .values(updated_at=now_iso(), **fields)
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_profile(self, profile_id: int) -> Optional[SupplierProfile]:
        """Fetch a profile by id, documents included. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(profiles.select().where(profiles.c.id == profile_id)).fetchone()
            if row is None:
                return None
            docs = conn.execute(
                documents.select().where(documents.c.profile_id == row.id).order_by(documents.c.id)
            ).fetchall()
        return _row_to_profile(row, docs)

    def get_profile_for_user(self, user_id: int) -> Optional[SupplierProfile]:
        """Fetch a user's profile, documents included. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(profiles.select().where(profiles.c.user_id == user_id)).fetchone()
            if row is None:
                return None
            docs = conn.execute(
                documents.select().where(documents.c.profile_id == row.id).order_by(documents.c.id)
            ).fetchall()
        return _row_to_profile(row, docs)

    def list_profiles(self, status: Optional[SupplierStatus] = None) -> list[SupplierProfile]:
        """Return profiles (without documents), oldest first, optionally filtered by status."""
        query = profiles.select().order_by(profiles.c.created_at, profiles.c.id)
        if status is not None:
            query = query.where(profiles.c.status == status.value)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_profile(r, []) for r in rows]

    def list_accounts(
        self,
        roles: Optional[Collection[Role]] = None,
        email_contains: Optional[str] = None,
        status: Optional[SupplierStatus] = None,
    ) -> list[tuple[Identity, Optional[SupplierProfile]]]:
        """Return users with their supplier profile (documents included), by id.

        roles limits the rows to those roles; email_contains is a
        case-insensitive substring match; status keeps only users whose
        profile is in that status.
        """
        query = users.select().order_by(users.c.id)
        if roles is not None:
            query = query.where(users.c.role.in_([Role(r).value for r in roles]))
        if email_contains:
            query = query.where(func.lower(users.c.email).contains(email_contains.lower(), autoescape=True))
        if status is not None:
            query = query.where(users.c.id.in_(select(profiles.c.user_id).where(profiles.c.status == status.value)))
        return self._accounts(query)

    def get_account(
        self, user_id: int, roles: Optional[Collection[Role]] = None
    ) -> Optional[tuple[Identity, Optional[SupplierProfile]]]:
        """Return one user and their profile, or None if absent or outside roles."""
        query = users.select().where(users.c.id == user_id)
        if roles is not None:
            query = query.where(users.c.role.in_([Role(r).value for r in roles]))
        found = self._accounts(query)
        return found[0] if found else None

    def _accounts(self, user_query) -> list[tuple[Identity, Optional[SupplierProfile]]]:
        with self.engine.connect() as conn:
            user_rows = conn.execute(user_query).fetchall()
            if not user_rows:
                return []
            profile_rows = conn.execute(
                profiles.select().where(profiles.c.user_id.in_([r.id for r in user_rows]))
            ).fetchall()
            doc_rows = []
            if profile_rows:
                doc_rows = conn.execute(
                    documents.select()
                    .where(documents.c.profile_id.in_([p.id for p in profile_rows]))
                    .order_by(documents.c.id)
                ).fetchall()
        docs_by_profile: dict[int, list] = {}
        for d in doc_rows:
            docs_by_profile.setdefault(d.profile_id, []).append(d)
        profile_by_user = {p.user_id: _row_to_profile(p, docs_by_profile.get(p.id, [])) for p in profile_rows}
        return [(row_to_identity(r), profile_by_user.get(r.id)) for r in user_rows]

    def get_document(self, document_id: int) -> Optional[SupplierDocument]:
        with self.engine.connect() as conn:
            row = conn.execute(documents.select().where(documents.c.id == document_id)).fetchone()
        return _row_to_document(row) if row is not None else None

    def get_document_owner(self, document_id: int) -> Optional[tuple[SupplierDocument, int]]:
        """Return (document, owning user id), or None if the document is gone."""
        query = (
            select(documents, profiles.c.user_id.label("owner_id"))
            .join_from(documents, profiles, documents.c.profile_id == profiles.c.id)
            .where(documents.c.id == document_id)
        )
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        if row is None:
            return None
        return _row_to_document(row), row.owner_id


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_document(row) -> SupplierDocument:
    return SupplierDocument(
        id=row.id,
        profile_id=row.profile_id,
        file_name=row.file_name,
        file_path=row.file_path,
        mime_type=row.mime_type,
        created_at=row.created_at,
    )


def _row_to_profile(row, doc_rows) -> SupplierProfile:
    return SupplierProfile(
        id=row.id,
        user_id=row.user_id,
        status=SupplierStatus(row.status),
        rejection_reason=row.rejection_reason,
        business_name=row.business_name,
        address=row.address,
        city=row.city,
        state=row.state,
        zip_code=row.zip_code,
        created_at=row.created_at,
        updated_at=row.updated_at,
        documents=[_row_to_document(d) for d in doc_rows],
    )
