"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

One auth method: the Authorization: Bearer <token> header carrying a session
token issued by POST /api/v1/auth/login. Every failure mode -- header missing,
wrong scheme, malformed token, bad signature, expired -- raises the same
AuthenticationError, which api/main.py maps to HTTP 401.

get_current_principal() resolves the header to a Principal.
require_admin() wraps it and raises AuthorizationError (HTTP 403) if the
principal is not an admin.

The Authenticator itself is built once in the FastAPI lifespan and stored on
app.state; these helpers only fetch it from there.

Layer rule: no imports from access/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import re

from fastapi import Request

from auth.authenticator import INVALID_TOKEN, Authenticator, require_role
from auth.models import Principal
from core.errors import AuthenticationError

_BEARER_RE = re.compile(r"^Bearer\s+(\S+)\s*$", re.IGNORECASE)


def get_authenticator(request: Request) -> Authenticator:
    return request.app.state.authenticator


def bearer_token(request: Request) -> str:
    """Extract the raw token from the Authorization header or raise AuthenticationError."""
    match = _BEARER_RE.match(request.headers.get("Authorization", ""))
    if match is None:
        raise AuthenticationError(INVALID_TOKEN)
    return match.group(1)


def get_current_principal(request: Request) -> Principal:
    """Require authentication. Raises AuthenticationError (401) if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal: Principal = Depends(get_current_principal)): ...
    """
    return get_authenticator(request).validate(bearer_token(request))


def require_admin(request: Request) -> Principal:
    """Require admin role. Raises 401 if unauthenticated, 403 if not admin."""
    return require_role(get_current_principal(request), "admin")
