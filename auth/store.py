"""
auth/store.py -- SQLAlchemy Core persistence layer for identities.

Pattern: Repository + Data Mapper. IdentityStore is the repository;
row_to_identity is the mapper. Route and dependency code never touches SQL
directly.

The engine and MetaData created here are shared with suppliers/store.py:
supplier profiles reference users, and lifecycle transitions must update a
user row and its profile rows inside ONE transaction, which requires one
database. IdentityStore therefore owns the engine; SupplierStore borrows it.

Writes to role and is_supplier_applicant are deliberately absent from this
repository. Those columns change only inside SupplierStore's transactional
transitions, driven by suppliers/lifecycle.py.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/, suppliers/, or notifications/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.models import Identity, Role

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(20), nullable=False, server_default=Role.REGULAR.value),
    Column("is_supplier_applicant", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("last_login", String(32)),
)


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _configure_sqlite(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. foreign_keys=ON makes the ON DELETE CASCADE
    from supplier_profiles to users effective.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class IdentityStore:
    """Repository for Identity records.

    Usage:
        store = IdentityStore("sqlite:///suppliergate.db")
        uid = store.create_identity(Identity(email="a@example.com", hashed_password=hash_password("pw")))
        identity = store.get_by_email("a@example.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # FastAPI runs sync handlers in a thread pool; the pool may hand a
            # connection to a different thread than the one that opened it.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _configure_sqlite)
        metadata.create_all(self.engine)

    def create_identity(self, identity: Identity) -> int:
        """Insert a new identity and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Callers translate that into a Conflict.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                users.insert().values(
                    email=identity.email,
                    hashed_password=identity.hashed_password,
                    role=Role(identity.role).value,
                    is_supplier_applicant=0,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> Identity | None:
        """Look up an identity by exact email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.email == email)).fetchone()
        return row_to_identity(row) if row is not None else None

    def get_by_id(self, user_id: int) -> Identity | None:
        """Look up an identity by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.id == user_id)).fetchone()
        return row_to_identity(row) if row is not None else None

    def update_last_login(self, user_id: int) -> None:
        with self.engine.connect() as conn:
            conn.execute(users.update().where(users.c.id == user_id).values(last_login=now_iso()))
            conn.commit()

    def update_account(self, user_id: int, email: str | None = None, hashed_password: str | None = None) -> bool:
        """Change an identity's email and/or password hash.

        Returns False if no such identity. Raises IntegrityError if the new
        email belongs to someone else.
        """
        values: dict = {}
        if email is not None:
            values["email"] = email
        if hashed_password is not None:
            values["hashed_password"] = hashed_password
        if not values:
            return self.get_by_id(user_id) is not None
        with self.engine.connect() as conn:
            result = conn.execute(users.update().where(users.c.id == user_id).values(**values))
            conn.commit()
        return result.rowcount == 1

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                return conn.execute(text("SELECT 1")).scalar() == 1
        except SQLAlchemyError:
            return False

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def row_to_identity(row) -> Identity:
    return Identity(
        id=row.id,
        email=row.email,
        hashed_password=row.hashed_password,
        role=Role(row.role),
        is_supplier_applicant=bool(row.is_supplier_applicant),
        created_at=row.created_at,
        last_login=row.last_login,
    )
