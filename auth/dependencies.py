"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and guards.

Only the Authorization: Bearer <token> header is accepted. The token is
verified locally (signature + expiry); no store call is needed for that.

get_current_claim() raises UnauthenticatedError on a missing or invalid token.
get_current_identity() additionally re-reads the identity (plain Guard).
require_access(guard) builds a dependency that runs the given guard and
yields the current Identity, e.g.:

    @router.get("/reports", dependencies=[Depends(require_access(AdminOrLeadGuard()))])

    finance_only = require_access(RolesGuard(RouteAccess.of(sectors=[Sector.FINANCEIRO])))

Layer rule: may import from fastapi (Request) because this module is part of
the dependency injection system. No imports from api/ or mail/.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Request

from auth.errors import UnauthenticatedError
from auth.guards import Guard
from auth.models import Identity, SessionClaim
from auth.service import IdentityService
from auth.tokens import bearer_token, decode_session_token


def try_get_claim(request: Request) -> SessionClaim | None:
    """Return the verified SessionClaim from the Bearer header, or None. Never raises."""
    token = bearer_token(request.headers.get("Authorization"))
    if not token:
        return None
    return decode_session_token(token)


def get_current_claim(request: Request) -> SessionClaim:
    claim = try_get_claim(request)
    if claim is None:
        raise UnauthenticatedError()
    return claim


def get_identity_service(request: Request) -> IdentityService:
    return request.app.state.identity_service


def require_access(guard: Guard) -> Callable[[Request], Identity]:
    """Return a dependency that authorizes the request with guard."""

    def dependency(request: Request) -> Identity:
        service = get_identity_service(request)
        return guard.authorize(service.store, try_get_claim(request))

    return dependency


get_current_identity = require_access(Guard())
