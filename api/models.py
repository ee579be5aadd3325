"""
API request and response models for AccessGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
access/models.py, which own the internal domain representation. Route
handlers map between the two via the from_* factory methods below.

Separation of concerns: auth/ and access/ models = domain truth; api/ models = API contract.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from access.models import AccessDecision, AccessLogEntry, Card, LogPage
from auth.models import Principal, SessionResult, UserSummary
from auth.models import User as DomainUser

# bcrypt truncates at 72 bytes; keep inputs comfortably below it.
_PASSWORD_MIN = 8
_PASSWORD_MAX = 72


def _strip(value):
    """Trim surrounding whitespace from identifying text fields. Never applied to passwords."""
    return value.strip() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Uniform error envelope for every non-2xx response."""

    error: ErrorDetail


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    email is a plain string rather than EmailStr: a malformed address must get
    the same 401 as an unknown one, not a 422 that reveals validation rules.

    password is taken byte-for-byte: whitespace is part of the secret.
    """

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, value):
        return _strip(value)


class ProfileResponse(BaseModel):
    id: int
    name: str
    email: str
    role: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: int
    user: ProfileResponse

    @classmethod
    def from_session(cls, session: SessionResult) -> "LoginResponse":
        return cls(
            access_token=session.token,
            expires_at=session.expires_at,
            user=ProfileResponse(
                id=session.user.id,
                name=session.user.name,
                email=session.user.email,
                role=session.user.role,
            ),
        )


class PrincipalResponse(BaseModel):
    user_id: int
    email: str
    role: str
    issued_at: int
    expires_at: int

    @classmethod
    def from_principal(cls, principal: Principal) -> "PrincipalResponse":
        return cls(
            user_id=principal.user_id,
            email=principal.email,
            role=principal.role,
            issued_at=principal.issued_at,
            expires_at=principal.expires_at,
        )


# ---------------------------------------------------------------------------
# Access verification
# ---------------------------------------------------------------------------


class VerifyAccessRequest(BaseModel):
    """Request body for POST /api/v1/access/verify, sent by the door reader.

    card_uid is optional at the schema level so an empty or missing UID
    reaches the engine and is rejected there with the engine's own 400,
    keeping the validation rule in one place.
    """

    card_uid: Optional[str] = Field(default=None, max_length=64)


class DecisionUserResponse(BaseModel):
    id: int
    name: str
    role: str


class AccessDecisionResponse(BaseModel):
    access_granted: bool
    user: Optional[DecisionUserResponse] = None
    reason: str
    timestamp: str

    @classmethod
    def from_decision(cls, decision: AccessDecision) -> "AccessDecisionResponse":
        user = None
        if decision.user is not None:
            user = DecisionUserResponse(id=decision.user.id, name=decision.user.name, role=decision.user.role)
        return cls(
            access_granted=decision.access_granted,
            user=user,
            reason=decision.reason,
            timestamp=decision.timestamp,
        )


class AccessLogResponse(BaseModel):
    id: int
    access_time: str
    access_granted: bool
    failure_reason: Optional[str] = None
    card_uid: str
    user_id: Optional[int] = None
    user_name: Optional[str] = None
    user_email: Optional[str] = None

    @classmethod
    def from_entry(cls, entry: AccessLogEntry) -> "AccessLogResponse":
        return cls(
            id=entry.id,
            access_time=entry.access_time,
            access_granted=entry.access_granted,
            failure_reason=entry.failure_reason,
            card_uid=entry.card_uid,
            user_id=entry.user_id,
            user_name=entry.user_name,
            user_email=entry.user_email,
        )


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class AccessLogPage(BaseModel):
    data: list[AccessLogResponse]
    pagination: Pagination

    @classmethod
    def from_page(cls, page: LogPage) -> "AccessLogPage":
        return cls(
            data=[AccessLogResponse.from_entry(e) for e in page.entries],
            pagination=Pagination(
                total=page.total,
                page=page.page,
                limit=page.limit,
                total_pages=page.total_pages,
            ),
        )


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users. card_uid optionally registers a first card."""

    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(min_length=_PASSWORD_MIN, max_length=_PASSWORD_MAX)
    role: str = Field(default="student", min_length=1, max_length=30)
    status: str = Field(default="active", min_length=1, max_length=30)
    card_uid: Optional[str] = Field(default=None, max_length=64)

    @field_validator("name", "email", "role", "status", "card_uid", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)


class UserPatch(BaseModel):
    """Request body for PATCH /api/v1/users/{id}. role and status are honoured for admins only."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(default=None, min_length=_PASSWORD_MIN, max_length=_PASSWORD_MAX)
    role: Optional[str] = Field(default=None, min_length=1, max_length=30)
    status: Optional[str] = Field(default=None, min_length=1, max_length=30)

    @field_validator("name", "email", "role", "status", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    role: str
    status: str
    created_at: str
    updated_at: str
    card_count: Optional[int] = None
    last_access: Optional[str] = None

    @classmethod
    def from_user(cls, user: DomainUser) -> "UserResponse":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            status=user.status,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )

    @classmethod
    def from_summary(cls, summary: UserSummary) -> "UserResponse":
        resp = cls.from_user(summary.user)
        resp.card_count = summary.card_count
        resp.last_access = summary.last_access
        return resp


# ---------------------------------------------------------------------------
# Cards
# ---------------------------------------------------------------------------


class CardCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    card_uid: str = Field(min_length=1, max_length=64)
    is_active: bool = True
    notes: str = Field(default="", max_length=1000)


class CardPatch(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    card_uid: Optional[str] = Field(default=None, min_length=1, max_length=64)
    is_active: Optional[bool] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class CardResponse(BaseModel):
    id: int
    card_uid: str
    is_active: bool
    registered_at: str
    last_used_at: Optional[str] = None
    notes: str = ""

    @classmethod
    def from_card(cls, card: Card) -> "CardResponse":
        return cls(
            id=card.id,
            card_uid=card.card_uid,
            is_active=card.is_active,
            registered_at=card.registered_at,
            last_used_at=card.last_used_at,
            notes=card.notes,
        )
