"""
auth/models.py -- Domain types for authentication.

Pattern: Data class (pure data container, zero logic) for the stored User and
the derived Principal. SessionClaims is the one pydantic model here: it is the
parsed form of untrusted token bytes, so it needs strict validation at the
edge rather than a permissive dict.

Layer rule: no imports from api/ or access/.
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict


@dataclass
class User:
    """A person who can log in and/or own RFID cards.

    password_hash is a bcrypt hash. It is read by the Authenticator and the
    admin routes' self-check only; it never appears in any response model.

    id is None before the record is written to the database.
    """

    name: str
    email: str
    password_hash: str
    role: str = "student"  # "admin" | "student" | ...
    status: str = "active"  # "active" | "suspended" | ...
    id: int | None = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""


@dataclass
class UserSummary:
    """A User row decorated with aggregate activity data for the admin list view."""

    user: User
    card_count: int = 0
    last_access: str | None = None


@dataclass(frozen=True)
class UserProfile:
    """Public view of a user returned from a successful login.

    Deliberately has no password_hash field so the hash cannot leak through a
    careless serializer.
    """

    id: int
    name: str
    email: str
    role: str


class SessionClaims(BaseModel):
    """Claims carried inside a session token.

    strict=True: a token whose user_id is the string "5" instead of the integer
    5 is rejected, not coerced. extra="forbid": unknown claims mean the token
    was not produced by this codec.
    """

    model_config = ConfigDict(strict=True, extra="forbid", frozen=True)

    user_id: int
    email: str
    role: str
    issued_at: int  # Unix seconds
    expires_at: int  # Unix seconds, issued_at + TOKEN_TTL_SECONDS


@dataclass(frozen=True)
class Principal:
    """The authenticated identity derived from a valid token. Never persisted."""

    user_id: int
    email: str
    role: str
    issued_at: int
    expires_at: int

    @classmethod
    def from_claims(cls, claims: SessionClaims) -> Principal:
        return cls(
            user_id=claims.user_id,
            email=claims.email,
            role=claims.role,
            issued_at=claims.issued_at,
            expires_at=claims.expires_at,
        )


@dataclass(frozen=True)
class SessionResult:
    """Outcome of a successful login: the bearer token plus the public user view."""

    token: str
    user: UserProfile
    expires_at: int
