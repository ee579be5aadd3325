"""
auth/store.py -- SQLAlchemy Core repository for User records.

Pattern: Repository + Data Mapper (same as access/store.py).
UserStore is the repository; _row_to_user is the mapper.
Route, CLI and Authenticator code never touch SQL directly.

The store does not own its engine: store/database.make_engine() builds one
Engine per process and every repository shares it, so a user and the cards
created with it can be written in one transaction (create_user_with_card).

Security:
  All queries use bound parameters. No f-strings in SQL.
  Email uniqueness is a UNIQUE constraint; duplicate inserts raise
  sqlalchemy.exc.IntegrityError which callers translate into ConflictError.

Layer rule: no imports from api/ or access/.
"""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from auth.models import User, UserSummary
from store.database import access_logs, now_iso, rfid_cards, users

# Columns an update may touch. Anything else is a programming error.
_UPDATABLE_FIELDS = {"name", "email", "password_hash", "role", "status"}


def normalize_email(email: str) -> str:
    """Canonical stored form of an email: trimmed and lowercased.

    Every read and write below goes through this, so "Ada@Example.com" and
    "ada@example.com" are the same account whichever entry point created it.
    """
    return email.strip().lower()


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore(engine)
        uid = store.create_user(User(name="Ada", email="ada@example.com", password_hash=hash_password("s3cret!!")))
        user = store.get_by_email("ada@example.com")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        """Return True if at least one user record exists."""
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(users)).scalar()
        return (result or 0) > 0

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email, ignoring case. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def email_taken(self, email: str, exclude_user_id: int | None = None) -> bool:
        """Return True if another user already uses this email."""
        query = select(users.c.id).where(users.c.email == normalize_email(email))
        if exclude_user_id is not None:
            query = query.where(users.c.id != exclude_user_id)
        with self.engine.connect() as conn:
            return conn.execute(query).first() is not None

    def list_users(self) -> list[UserSummary]:
        """Return all users ordered by name, with card count and most recent access time.

        Both aggregates are correlated subqueries so users with no cards and no
        log entries still appear (count 0, last_access None).
        """
        card_count = (
            select(func.count(rfid_cards.c.id))
            .where(rfid_cards.c.user_id == users.c.id)
            .scalar_subquery()
            .label("card_count")
        )
        last_access = (
            select(func.max(access_logs.c.access_time))
            .where(access_logs.c.user_id == users.c.id)
            .scalar_subquery()
            .label("last_access")
        )
        with self.engine.connect() as conn:
            rows = conn.execute(select(users, card_count, last_access).order_by(users.c.name)).fetchall()
        return [
            UserSummary(user=_row_to_user(r), card_count=r.card_count or 0, last_access=r.last_access) for r in rows
        ]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        with self.engine.begin() as conn:
            return _insert_user(conn, user)

    def create_user_with_card(self, user: User, card_uid: str) -> int:
        """Insert a user and an active card for it in one transaction.

        Either both rows are written or neither is. Raises IntegrityError on a
        duplicate email or card UID; the transaction is rolled back.
        """
        with self.engine.begin() as conn:
            user_id = _insert_user(conn, user)
            conn.execute(
                rfid_cards.insert().values(
                    user_id=user_id,
                    card_uid=card_uid,
                    is_active=True,
                    registered_at=now_iso(),
                    notes="",
                )
            )
        return user_id

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user and stamp updated_at.

        Accepted fields: name, email, password_hash, role, status.
        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if "email" in fields:
            fields["email"] = normalize_email(fields["email"])
        with self.engine.begin() as conn:
            result = conn.execute(users.update().where(users.c.id == user_id).values(**fields, updated_at=now_iso()))
        return result.rowcount > 0

    def set_password_hash(self, email: str, password_hash: str) -> bool:
        """Replace the password hash for the user with this email. Returns False if no such user."""
        with self.engine.begin() as conn:
            result = conn.execute(
                users.update()
                .where(users.c.email == normalize_email(email))
                .values(password_hash=password_hash, updated_at=now_iso())
            )
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found.

        The user's cards are removed by ON DELETE CASCADE; their access log rows
        survive with user_id set to NULL.
        """
        with self.engine.begin() as conn:
            result = conn.execute(users.delete().where(users.c.id == user_id))
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _insert_user(conn, user: User) -> int:
    now = now_iso()
    result = conn.execute(
        users.insert().values(
            name=user.name,
            email=normalize_email(user.email),
            password_hash=user.password_hash,
            role=user.role,
            status=user.status,
            created_at=now,
            updated_at=now,
        )
    )
    return result.inserted_primary_key[0]


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        password_hash=row.password_hash,
        role=row.role,
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
