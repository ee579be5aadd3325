"""
access/models.py -- Domain dataclasses for cards, the access log and decisions.

These are pure data containers with zero logic. The decision rules live in
access/engine.py; persistence lives in access/store.py.

Separation of concerns: these dataclasses are the access domain's truth, just
as auth/models.py is the authentication domain's truth. The User they refer to
is referenced by id only -- cards and log entries never own a User.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Card:
    """An RFID card registered to a user.

    card_uid is the opaque identifier the reader sends; it is unique across
    all users. last_used_at is stamped only by a GRANTED decision.

    id is None before the record is written to the database.
    """

    user_id: int
    card_uid: str
    is_active: bool = True
    notes: str = ""
    registered_at: str = ""  # ISO 8601, set by store on insert
    last_used_at: Optional[str] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class CardOwner:
    """A card joined with its owning user -- the only input the decision rules need."""

    card_id: int
    card_active: bool
    user_id: int
    name: str
    role: str
    status: str


@dataclass
class AccessLogEntry:
    """Immutable audit record of one card presentation.

    user_id is None when the presented card was not registered (or its owner
    was later deleted). failure_reason is None if and only if access was
    granted. Records are never updated or deleted -- only inserted.

    user_name / user_email are filled by joined list queries only.
    """

    card_uid: str
    access_granted: bool
    access_time: str  # ISO 8601
    user_id: Optional[int] = None
    failure_reason: Optional[str] = None
    id: Optional[int] = None
    user_name: Optional[str] = None
    user_email: Optional[str] = None


@dataclass(frozen=True)
class DecisionUser:
    """The subset of the owning user returned to the door device on a grant."""

    id: int
    name: str
    role: str


@dataclass(frozen=True)
class AccessDecision:
    """Outcome of one verification: grant/deny, who (on grant), why, and when."""

    access_granted: bool
    reason: str
    timestamp: str  # ISO 8601, the decision time also written to the log
    user: Optional[DecisionUser] = None


@dataclass
class LogPage:
    """One page of access log entries plus the total matching count."""

    entries: list[AccessLogEntry]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit) if self.limit else 0
