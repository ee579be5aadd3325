"""
api/routes/v1/auth.py -- Session login and identity endpoints.

Routes:
  POST /api/v1/auth/login   -- email/password login; returns a bearer token
  GET  /api/v1/auth/me      -- the principal behind the presented token (requires auth)

Security:
  Authenticator.login() provides timing equalization -- use it, never inline
  get_by_email() + verify_password().
  Unknown email and wrong password return the same 401 body.
  Cache-Control: no-store on every login response, success or failure.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse, LoginRequest, LoginResponse, PrincipalResponse
from auth.dependencies import get_authenticator, get_current_principal
from auth.models import Principal
from core.errors import AuthenticationError

# Auth policy:
# - POST /api/v1/auth/login: public -- login endpoint must be unauthenticated
# - GET  /api/v1/auth/me:    requires auth (get_current_principal)
router = APIRouter()


@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a 24h session token.

    Sync handler on purpose: bcrypt is CPU-bound and FastAPI runs sync
    handlers in its thread pool, keeping the event loop free.
    """
    authenticator = get_authenticator(request)
    try:
        session = authenticator.login(body.email, body.password)
    except AuthenticationError as exc:
        resp = JSONResponse(
            status_code=401,
            content=ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message)).model_dump(
                exclude_none=True
            ),
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    resp = JSONResponse(status_code=200, content=LoginResponse.from_session(session).model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/auth/me", response_model=PrincipalResponse)
def me(principal: Principal = Depends(get_current_principal)) -> PrincipalResponse:
    """Return identity information carried by the current token."""
    return PrincipalResponse.from_principal(principal)
