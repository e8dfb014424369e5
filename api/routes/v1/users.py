"""
api/routes/v1/users.py -- Staff administration endpoints.

Routes:
  GET  /auth/users                  -- list active identities (AdminGuard)
  GET  /auth/users/{id}/activity    -- idle-tracker state (AdminOrLeadGuard)
  POST /auth/users/{id}/logout      -- force idle logout (AdminGuard)

Guards are attached per route with require_access(); each one re-reads the
caller's functions from the store on every request.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import ActivityResponse, IdentitySummary, OkResponse
from auth.activity import ActivityTracker
from auth.dependencies import get_identity_service, require_access
from auth.guards import AdminGuard, AdminOrLeadGuard
from auth.service import IdentityService

router = APIRouter()

_admin = require_access(AdminGuard())
_admin_or_lead = require_access(AdminOrLeadGuard())


def _tracker(request: Request) -> ActivityTracker:
    return request.app.state.activity


@router.get("/auth/users", response_model=list[IdentitySummary], dependencies=[Depends(_admin)])
def list_users(service: IdentityService = Depends(get_identity_service)) -> list[IdentitySummary]:
    return [IdentitySummary.from_identity(i) for i in service.list_identities()]


@router.get("/auth/users/{identity_id}/activity", response_model=ActivityResponse, dependencies=[Depends(_admin_or_lead)])
def user_activity(
    identity_id: int,
    request: Request,
    service: IdentityService = Depends(get_identity_service),
) -> ActivityResponse:
    service.me(identity_id)
    tracker = _tracker(request)
    return ActivityResponse(
        identity_id=identity_id,
        active=tracker.is_active(identity_id),
        last_activity_at=tracker.last_activity(identity_id),
    )


@router.post("/auth/users/{identity_id}/logout", response_model=OkResponse, dependencies=[Depends(_admin)])
def force_logout(identity_id: int, request: Request) -> OkResponse:
    """Drop the identity from the idle tracker.

    Session tokens are stateless, so this ends tracked activity only; an
    unexpired token remains valid until it expires.
    """
    if _tracker(request).force_logout(identity_id):
        return OkResponse(message="User logged out.")
    return OkResponse(message="User was not active.")
