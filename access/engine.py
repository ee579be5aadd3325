"""
access/engine.py -- Access Decision Engine: card UID -> grant/deny, durably logged.

Decision rules, first match wins (the order fixes the reported reason):

    1. no card with this UID        -> deny  "Card not registered"
    2. card.is_active is false      -> deny  "Card is inactive"
    3. owner.status != "active"     -> deny  "User account is {status}"
    4. otherwise                    -> grant "Access granted"

There is no schedule or time-of-day rule: once ownership and status checks
pass, access is unconditional.

Atomicity: the lookup, the log insert and (on grant only) the last_used_at
update all run inside one AccessStore.transaction(). Any SQLAlchemy failure
rolls the whole unit back and surfaces as StoreError -- there is never a log
row without its timestamp update or the reverse. Failures are not retried
here; retry policy belongs to the caller.

Every call that passes input validation writes exactly one log row. Two scans
of the same card produce two rows; there is no debouncing.

Layer rule: no imports from api/ or auth/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from access.models import AccessDecision, CardOwner, DecisionUser
from access.store import AccessStore
from core.errors import StoreError, ValidationError

logger = logging.getLogger("accessgate.access")

REASON_GRANTED = "Access granted"
REASON_NOT_REGISTERED = "Card not registered"
REASON_CARD_INACTIVE = "Card is inactive"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def evaluate(owner: CardOwner | None) -> tuple[bool, str]:
    """Apply the decision rules to a lookup result. Returns (granted, reason)."""
    if owner is None:
        return False, REASON_NOT_REGISTERED
    if not owner.card_active:
        return False, REASON_CARD_INACTIVE
    if owner.status != "active":
        return False, f"User account is {owner.status}"
    return True, REASON_GRANTED


class AccessDecisionEngine:
    """Decides and records card presentations.

    Args:
        store:  AccessStore whose transaction() provides the unit of work.
        clock:  Returns the current aware datetime. Injected for tests.
    """

    def __init__(self, store: AccessStore, clock: Callable[[], datetime] = _utcnow) -> None:
        self._store = store
        self._clock = clock

    def verify(self, card_uid: str) -> AccessDecision:
        """Decide whether card_uid opens the door and record the decision.

        Raises:
            ValidationError: card_uid is empty (nothing is logged).
            StoreError:      the transaction failed and was rolled back.
        """
        if card_uid is None or not str(card_uid).strip():
            raise ValidationError("Card UID is required")
        card_uid = str(card_uid).strip()

        timestamp = self._clock().isoformat()
        try:
            with self._store.transaction() as tx:
                owner = tx.find_card_with_owner(card_uid)
                granted, reason = evaluate(owner)
                tx.insert_access_log(
                    user_id=owner.user_id if owner is not None else None,
                    card_uid=card_uid,
                    granted=granted,
                    reason=None if granted else reason,
                    access_time=timestamp,
                )
                if granted:
                    tx.touch_card_last_used(card_uid, timestamp)
        except SQLAlchemyError as exc:
            logger.exception("Access verification failed for card %s", card_uid)
            raise StoreError("Failed to verify access") from exc

        if granted:
            logger.info("Access granted: card=%s user_id=%d", card_uid, owner.user_id)
            return AccessDecision(
                access_granted=True,
                reason=reason,
                timestamp=timestamp,
                user=DecisionUser(id=owner.user_id, name=owner.name, role=owner.role),
            )
        logger.info("Access denied: card=%s reason=%s", card_uid, reason)
        return AccessDecision(access_granted=False, reason=reason, timestamp=timestamp)
