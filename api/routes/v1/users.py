"""
api/routes/v1/users.py -- User and RFID card administration endpoints.

Routes:
  GET    /api/v1/users                          -- list users with card count and last access (admin)
  POST   /api/v1/users                          -- create user, optionally with a first card (admin)
  PATCH  /api/v1/users/{id}                     -- update user (admin, or the user themself)
  DELETE /api/v1/users/{id}                     -- delete user and its cards (admin, not self)
  GET    /api/v1/users/{id}/cards               -- list a user's cards (admin)
  POST   /api/v1/users/{id}/cards               -- register a card (admin)
  PATCH  /api/v1/users/{id}/cards/{card_id}     -- update a card (admin)
  DELETE /api/v1/users/{id}/cards/{card_id}     -- delete a card (admin)

Rules:
  - Only admins may change role or status; a user editing their own profile
    may change name, email and password only. role/status from a non-admin
    are ignored, not rejected.
  - Email and card UID uniqueness are checked up front for a clean 409, and
    the UNIQUE constraints catch the race between two concurrent writers
    (IntegrityError -> 409).
  - An admin cannot delete their own account.
  - Card routes require the card to belong to the user in the path (IDOR guard).
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.exc import IntegrityError

from access.models import Card
from access.store import AccessStore
from api.models import CardCreate, CardPatch, CardResponse, UserCreate, UserPatch, UserResponse
from auth.dependencies import get_current_principal, require_admin
from auth.models import Principal, User
from auth.store import UserStore
from auth.tokens import hash_password
from core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError

logger = logging.getLogger("accessgate.api.users")

# Auth policy:
# - PATCH /api/v1/users/{id}: get_current_principal + admin-or-self check below
# - everything else:          require_admin
router = APIRouter()


def _user_store(request: Request) -> UserStore:
    return request.app.state.user_store


def _access_store(request: Request) -> AccessStore:
    return request.app.state.access_store


def _require_user(store: UserStore, user_id: int) -> User:
    user = store.get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request, principal: Principal = Depends(require_admin)) -> list[UserResponse]:
    """List all users ordered by name. Admin only."""
    return [UserResponse.from_summary(s) for s in _user_store(request).list_users()]


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(request: Request, body: UserCreate, principal: Principal = Depends(require_admin)) -> UserResponse:
    """Create a user account and, when card_uid is given, its first active card in the same transaction."""
    users = _user_store(request)
    cards = _access_store(request)

    if users.email_taken(body.email):
        raise ConflictError("Email already in use")
    if body.card_uid and cards.card_uid_taken(body.card_uid):
        raise ConflictError("RFID card already registered")

    new_user = User(
        name=body.name,
        email=body.email,
        password_hash=hash_password(body.password),
        role=body.role,
        status=body.status,
    )
    try:
        if body.card_uid:
            user_id = users.create_user_with_card(new_user, body.card_uid)
        else:
            user_id = users.create_user(new_user)
    except IntegrityError as exc:
        raise ConflictError("Email or card UID already in use") from exc

    logger.info("User %d created by admin %d", user_id, principal.user_id)
    return UserResponse.from_user(_require_user(users, user_id))


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: int,
    body: UserPatch,
    principal: Principal = Depends(get_current_principal),
) -> UserResponse:
    """Update a user. Admins may edit anyone; other users only themselves, and never role/status."""
    is_admin = principal.role == "admin"
    if not is_admin and principal.user_id != user_id:
        raise AuthorizationError("You may only update your own account")

    users = _user_store(request)
    existing = _require_user(users, user_id)

    updates: dict = {}
    if body.name:
        updates["name"] = body.name
    if body.email and body.email != existing.email:
        if users.email_taken(body.email, exclude_user_id=user_id):
            raise ConflictError("Email already in use")
        updates["email"] = body.email
    if body.password:
        updates["password_hash"] = hash_password(body.password)
    if is_admin:
        if body.role is not None:
            updates["role"] = body.role
        if body.status is not None:
            updates["status"] = body.status

    if not updates:
        raise ValidationError("No updates provided")

    try:
        users.update_user(user_id, **updates)
    except IntegrityError as exc:
        raise ConflictError("Email already in use") from exc
    return UserResponse.from_user(_require_user(users, user_id))


@router.delete("/users/{user_id}", status_code=204)
def delete_user(request: Request, user_id: int, principal: Principal = Depends(require_admin)) -> Response:
    """Delete a user; their cards go with them, their log entries stay (user_id set to NULL)."""
    if principal.user_id == user_id:
        raise ValidationError("Cannot delete your own account")
    if not _user_store(request).delete_user(user_id):
        raise NotFoundError("User not found")
    logger.info("User %d deleted by admin %d", user_id, principal.user_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Cards
# ---------------------------------------------------------------------------


@router.get("/users/{user_id}/cards", response_model=list[CardResponse])
def list_user_cards(request: Request, user_id: int, principal: Principal = Depends(require_admin)) -> list[CardResponse]:
    """List a user's cards, most recently registered first."""
    _require_user(_user_store(request), user_id)
    return [CardResponse.from_card(c) for c in _access_store(request).list_user_cards(user_id)]


@router.post("/users/{user_id}/cards", response_model=CardResponse, status_code=201)
def add_user_card(
    request: Request,
    user_id: int,
    body: CardCreate,
    principal: Principal = Depends(require_admin),
) -> CardResponse:
    """Register a new card for a user."""
    _require_user(_user_store(request), user_id)
    cards = _access_store(request)
    if cards.card_uid_taken(body.card_uid):
        raise ConflictError("Card UID already registered")
    try:
        card_id = cards.add_card(Card(user_id=user_id, card_uid=body.card_uid, is_active=body.is_active, notes=body.notes))
    except IntegrityError as exc:
        raise ConflictError("Card UID already registered") from exc
    return CardResponse.from_card(cards.get_user_card(user_id, card_id))


@router.patch("/users/{user_id}/cards/{card_id}", response_model=CardResponse)
def update_user_card(
    request: Request,
    user_id: int,
    card_id: int,
    body: CardPatch,
    principal: Principal = Depends(require_admin),
) -> CardResponse:
    """Change a card's UID, active flag or notes."""
    cards = _access_store(request)
    existing = cards.get_user_card(user_id, card_id)
    if existing is None:
        raise NotFoundError("Card not found")

    updates: dict = {}
    if body.card_uid and body.card_uid != existing.card_uid:
        if cards.card_uid_taken(body.card_uid, exclude_card_id=card_id):
            raise ConflictError("Card UID already registered")
        updates["card_uid"] = body.card_uid
    if body.is_active is not None:
        updates["is_active"] = body.is_active
    if body.notes is not None:
        updates["notes"] = body.notes

    if not updates:
        raise ValidationError("No updates provided")

    try:
        cards.update_card(card_id, **updates)
    except IntegrityError as exc:
        raise ConflictError("Card UID already registered") from exc
    return CardResponse.from_card(cards.get_user_card(user_id, card_id))


@router.delete("/users/{user_id}/cards/{card_id}", status_code=204)
def delete_user_card(
    request: Request,
    user_id: int,
    card_id: int,
    principal: Principal = Depends(require_admin),
) -> Response:
    """Delete a card. Its past log entries keep the card UID."""
    if not _access_store(request).delete_card(user_id, card_id):
        raise NotFoundError("Card not found")
    return Response(status_code=204)
