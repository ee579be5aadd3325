"""
access/store.py -- SQLAlchemy Core repository for RFID cards and the access log.

Pattern: Repository + Data Mapper + Unit of Work.
AccessStore is the repository (card CRUD, log queries). AccessTransaction is
the unit of work the decision engine runs inside: every method on it shares
one Connection opened by engine.begin(), so the log insert and the card
timestamp update commit together or roll back together.

    with store.transaction() as tx:
        owner = tx.find_card_with_owner(uid)
        tx.insert_access_log(...)
        tx.touch_card_last_used(uid, when)
    # commit here; any exception inside the block rolls everything back

Security: all queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or auth/.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.engine import Connection, Engine

from access.models import AccessLogEntry, Card, CardOwner, LogPage
from store.database import access_logs, now_iso, rfid_cards, users

_UPDATABLE_CARD_FIELDS = {"card_uid", "is_active", "notes"}


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------


class AccessTransaction:
    """Store operations bound to a single open transaction.

    Never commits or rolls back on its own -- the owning transaction() block
    decides. Not thread-safe; one instance per decision.
    """

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    def find_card_with_owner(self, card_uid: str) -> Optional[CardOwner]:
        """Return the card joined with its owning user, or None if the UID is unknown."""
        row = self._conn.execute(
            select(
                rfid_cards.c.id.label("card_id"),
                rfid_cards.c.is_active.label("card_active"),
                users.c.id.label("user_id"),
                users.c.name,
                users.c.role,
                users.c.status,
            )
            .select_from(rfid_cards.join(users, rfid_cards.c.user_id == users.c.id))
            .where(rfid_cards.c.card_uid == card_uid)
        ).fetchone()
        if row is None:
            return None
        return CardOwner(
            card_id=row.card_id,
            card_active=bool(row.card_active),
            user_id=row.user_id,
            name=row.name,
            role=row.role,
            status=row.status,
        )

    def insert_access_log(
        self,
        user_id: Optional[int],
        card_uid: str,
        granted: bool,
        reason: Optional[str],
        access_time: str,
    ) -> int:
        """Append one access log row and return its id."""
        result = self._conn.execute(
            access_logs.insert().values(
                user_id=user_id,
                card_uid=card_uid,
                access_granted=granted,
                failure_reason=reason,
                access_time=access_time,
            )
        )
        return result.inserted_primary_key[0]

    def touch_card_last_used(self, card_uid: str, when: str) -> bool:
        """Stamp last_used_at on the card. Returns False if no card has this UID."""
        result = self._conn.execute(
            rfid_cards.update().where(rfid_cards.c.card_uid == card_uid).values(last_used_at=when)
        )
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccessStore:
    """Repository for Card and AccessLogEntry entities."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @contextmanager
    def transaction(self) -> Iterator[AccessTransaction]:
        """Open a transaction and yield a unit of work bound to it.

        Commits when the block exits normally; rolls back and re-raises on any
        exception.
        """
        with self.engine.begin() as conn:
            yield AccessTransaction(conn)

    # ------------------------------------------------------------------
    # Cards
    # ------------------------------------------------------------------

    def get_card_by_uid(self, card_uid: str) -> Optional[Card]:
        """Look up a card by its UID. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(rfid_cards.select().where(rfid_cards.c.card_uid == card_uid)).fetchone()
        return _row_to_card(row) if row is not None else None

    def get_user_card(self, user_id: int, card_id: int) -> Optional[Card]:
        """Fetch a card only if it belongs to user_id. Returns None otherwise."""
        with self.engine.connect() as conn:
            row = conn.execute(
                rfid_cards.select().where((rfid_cards.c.id == card_id) & (rfid_cards.c.user_id == user_id))
            ).fetchone()
        return _row_to_card(row) if row is not None else None

    def list_user_cards(self, user_id: int) -> list[Card]:
        """Return all cards owned by a user, most recently registered first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                rfid_cards.select()
                .where(rfid_cards.c.user_id == user_id)
                .order_by(rfid_cards.c.registered_at.desc(), rfid_cards.c.id.desc())
            ).fetchall()
        return [_row_to_card(r) for r in rows]

    def card_uid_taken(self, card_uid: str, exclude_card_id: Optional[int] = None) -> bool:
        """Return True if another card is already registered under card_uid."""
        query = select(rfid_cards.c.id).where(rfid_cards.c.card_uid == card_uid)
        if exclude_card_id is not None:
            query = query.where(rfid_cards.c.id != exclude_card_id)
        with self.engine.connect() as conn:
            return conn.execute(query).first() is not None

    def add_card(self, card: Card) -> int:
        """Register a card and return its id.

        Raises sqlalchemy.exc.IntegrityError if the UID is already registered or
        the owning user does not exist.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                rfid_cards.insert().values(
                    user_id=card.user_id,
                    card_uid=card.card_uid,
                    is_active=card.is_active,
                    notes=card.notes,
                    registered_at=now_iso(),
                )
            )
        return result.inserted_primary_key[0]

    def update_card(self, card_id: int, **fields) -> bool:
        """Update card_uid, is_active and/or notes. Returns False if card_id was not found."""
        unknown = set(fields) - _UPDATABLE_CARD_FIELDS
        if unknown:
            raise ValueError(f"Unknown card fields: {unknown!r}")
        with self.engine.begin() as conn:
            result = conn.execute(rfid_cards.update().where(rfid_cards.c.id == card_id).values(**fields))
        return result.rowcount > 0

    def delete_card(self, user_id: int, card_id: int) -> bool:
        """Delete a card. user_id must match the owner, so a mistyped path cannot remove another user's card."""
        with self.engine.begin() as conn:
            result = conn.execute(
                rfid_cards.delete().where((rfid_cards.c.id == card_id) & (rfid_cards.c.user_id == user_id))
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Access log (read side -- writes happen only inside transaction())
    # ------------------------------------------------------------------

    def list_access_logs(
        self,
        page: int = 1,
        limit: int = 20,
        user_id: Optional[int] = None,
        card_uid: Optional[str] = None,
        access_granted: Optional[bool] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> LogPage:
        """Return one page of log entries, newest first, with the owning user's name and email.

        end_date is inclusive: every entry on that calendar day (UTC) matches.
        """
        conditions = []
        if user_id is not None:
            conditions.append(access_logs.c.user_id == user_id)
        if card_uid:
            conditions.append(access_logs.c.card_uid == card_uid)
        if access_granted is not None:
            conditions.append(access_logs.c.access_granted == access_granted)
        if start_date is not None:
            conditions.append(access_logs.c.access_time >= start_date.isoformat())
        if end_date is not None:
            conditions.append(access_logs.c.access_time < (end_date + timedelta(days=1)).isoformat())

        count_query = select(func.count()).select_from(access_logs)
        page_query = (
            select(
                access_logs,
                users.c.name.label("user_name"),
                users.c.email.label("user_email"),
            )
            .select_from(access_logs.outerjoin(users, access_logs.c.user_id == users.c.id))
            .order_by(access_logs.c.access_time.desc(), access_logs.c.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        if conditions:
            count_query = count_query.where(*conditions)
            page_query = page_query.where(*conditions)
        with self.engine.connect() as conn:
            total = conn.execute(count_query).scalar() or 0
            rows = conn.execute(page_query).fetchall()
        return LogPage(entries=[_row_to_log(r) for r in rows], total=total, page=page, limit=limit)

    def count_access_logs(self, card_uid: Optional[str] = None) -> int:
        """Return the number of log rows, optionally for one card UID."""
        query = select(func.count()).select_from(access_logs)
        if card_uid is not None:
            query = query.where(access_logs.c.card_uid == card_uid)
        with self.engine.connect() as conn:
            return conn.execute(query).scalar() or 0


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_card(row) -> Card:
    return Card(
        id=row.id,
        user_id=row.user_id,
        card_uid=row.card_uid,
        is_active=bool(row.is_active),
        notes=row.notes or "",
        registered_at=row.registered_at,
        last_used_at=row.last_used_at,
    )


def _row_to_log(row) -> AccessLogEntry:
    return AccessLogEntry(
        id=row.id,
        user_id=row.user_id,
        card_uid=row.card_uid,
        access_granted=bool(row.access_granted),
        failure_reason=row.failure_reason,
        access_time=row.access_time,
        user_name=getattr(row, "user_name", None),
        user_email=getattr(row, "user_email", None),
    )
