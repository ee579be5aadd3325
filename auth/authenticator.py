"""
auth/authenticator.py -- Credential verification, token issuance and validation.

Request state machine:

    Unauthenticated --login()/validate()--> Authenticating --+--> Authenticated
                                                             +--> Rejected

Every rejection -- unknown email, wrong password, malformed token, bad
signature, expired token -- raises the same AuthenticationError class with a
generic message. Role mismatch is the only distinct outcome
(AuthorizationError), and only after authentication succeeded.

validate() is stateless: it never touches the store. A user suspended after a
token was issued keeps a valid session until the token's natural expiry (at
most TOKEN_TTL_SECONDS). There is no revocation list.

Layer rule: no imports from api/ or access/.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from auth.models import Principal, SessionClaims, SessionResult, UserProfile
from auth.store import UserStore
from auth.tokens import DUMMY_HASH, TokenCodec, verify_password
from core.config import TOKEN_TTL_SECONDS
from core.errors import AuthenticationError, AuthorizationError

logger = logging.getLogger("accessgate.auth")

INVALID_CREDENTIALS = "Invalid email or password"
INVALID_TOKEN = "Invalid or expired token"


class Authenticator:
    """Issues and validates session tokens for users in a UserStore.

    Args:
        store:  Repository used by login() to look users up by email.
        codec:  TokenCodec holding the process-wide signing secret.
        clock:  Returns the current Unix time in seconds. Injected so tests can
                move time forward without sleeping.
    """

    def __init__(self, store: UserStore, codec: TokenCodec, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._codec = codec
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    def login(self, email: str, password: str) -> SessionResult:
        """Verify email/password and issue a session token.

        Always runs bcrypt whether or not the email exists, so response time
        does not reveal which emails are registered:
          - unknown email: bcrypt runs against DUMMY_HASH (same cost as a real check)
          - wrong password: bcrypt runs against the real hash

        Raises AuthenticationError (identical message for both cases) on failure.
        """
        user = self._store.get_by_email(email)
        if user is None:
            verify_password(password, DUMMY_HASH)
            logger.info("Login rejected")
            raise AuthenticationError(INVALID_CREDENTIALS)
        if not verify_password(password, user.password_hash):
            logger.info("Login rejected")
            raise AuthenticationError(INVALID_CREDENTIALS)

        issued_at = self._now()
        claims = SessionClaims(
            user_id=user.id,
            email=user.email,
            role=user.role,
            issued_at=issued_at,
            expires_at=issued_at + TOKEN_TTL_SECONDS,
        )
        token = self._codec.encode(claims)
        logger.info("Login succeeded for user_id=%d", user.id)
        return SessionResult(
            token=token,
            user=UserProfile(id=user.id, name=user.name, email=user.email, role=user.role),
            expires_at=claims.expires_at,
        )

    def validate(self, token: str) -> Principal:
        """Return the Principal for a valid, unexpired token.

        Idempotent and side-effect free: the same token yields the same
        Principal until it expires. Raises AuthenticationError otherwise.
        """
        claims = self._codec.decode_and_verify(token)
        if claims is None:
            raise AuthenticationError(INVALID_TOKEN)
        if claims.expires_at < self._now():
            raise AuthenticationError(INVALID_TOKEN)
        return Principal.from_claims(claims)


def require_role(principal: Principal, role: str) -> Principal:
    """Return the principal unchanged if it holds role; raise AuthorizationError otherwise."""
    if principal.role != role:
        raise AuthorizationError(f"{role.capitalize()} access required")
    return principal
