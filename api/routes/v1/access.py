"""
api/routes/v1/access.py -- Door verification and access log endpoints.

Routes:
  POST /api/v1/access/verify  -- decide one card presentation (door reader, public)
  GET  /api/v1/access/logs    -- paginated, filtered audit log (admin only)

The verify endpoint is called by the reader hardware and carries no session
token. Every call that passes input validation writes one log row, whatever
the outcome. An engine StoreError becomes an opaque 500; the detail stays in
the server log.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from access.engine import AccessDecisionEngine
from access.store import AccessStore
from api.models import AccessDecisionResponse, AccessLogPage, VerifyAccessRequest
from auth.dependencies import require_admin
from auth.models import Principal
from core.errors import ValidationError

# Auth policy:
# - POST /api/v1/access/verify: public -- device-originated
# - GET  /api/v1/access/logs:   requires admin (require_admin)
router = APIRouter()


@router.post("/access/verify", response_model=AccessDecisionResponse)
def verify_access(request: Request, body: VerifyAccessRequest) -> AccessDecisionResponse:
    """Grant or deny a card presentation and record the decision."""
    engine: AccessDecisionEngine = request.app.state.access_engine
    decision = engine.verify(body.card_uid or "")
    return AccessDecisionResponse.from_decision(decision)


@router.get("/access/logs", response_model=AccessLogPage)
def list_access_logs(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    user_id: Optional[int] = Query(default=None, ge=1),
    card_uid: Optional[str] = Query(default=None, max_length=64),
    access_granted: Optional[bool] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    principal: Principal = Depends(require_admin),
) -> AccessLogPage:
    """Return access log entries newest first. end_date includes the whole day."""
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must not be after end_date")
    store: AccessStore = request.app.state.access_store
    log_page = store.list_access_logs(
        page=page,
        limit=limit,
        user_id=user_id,
        card_uid=card_uid,
        access_granted=access_granted,
        start_date=start_date,
        end_date=end_date,
    )
    return AccessLogPage.from_page(log_page)
