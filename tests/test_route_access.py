"""
Tests for require_access(RolesGuard(...)) mounted on real routes.

A small FastAPI app carries one route per allow-list shape and the same
AuthError handler the service app uses, so each function/sector decision is
checked through the HTTP layer: bearer header, guard, error envelope.
"""

import uuid

import pytest
from fastapi import APIRouter, Depends, FastAPI
from fastapi.testclient import TestClient

from api.main import auth_error_handler
from auth.dependencies import require_access
from auth.errors import AuthError
from auth.guards import RolesGuard, RouteAccess
from auth.models import Function, Identity, Sector
from auth.service import IdentityService
from auth.store import IdentityStore
from conftest import STRONG_PASSWORD, FakeMail, bearer

ROUTES = {
    "/both-match": RouteAccess.of(functions=[Function.COLABORADOR], sectors=[Sector.FINANCEIRO]),
    "/both-sector-differs": RouteAccess.of(functions=[Function.COLABORADOR], sectors=[Sector.MARKETING]),
    "/functions-match": RouteAccess.of(functions=[Function.DJ, Function.COLABORADOR]),
    "/functions-differ": RouteAccess.of(functions=[Function.DJ]),
    "/sectors-match": RouteAccess.of(sectors=[Sector.GH, Sector.FINANCEIRO]),
    "/sectors-differ": RouteAccess.of(sectors=[Sector.MARKETING]),
    "/open": RouteAccess.of(),
}


def _build_app(service: IdentityService) -> FastAPI:
    router = APIRouter()

    def _add(path: str, access: RouteAccess) -> None:
        @router.get(path)
        def guarded(identity: Identity = Depends(require_access(RolesGuard(access)))) -> dict:
            return {"id": identity.id}

    for path, access in ROUTES.items():
        _add(path, access)

    app = FastAPI()
    app.state.identity_service = service
    app.add_exception_handler(AuthError, auth_error_handler)
    app.include_router(router)
    return app


@pytest.fixture(scope="module")
def guarded_client():
    """Yield (client, service) on a shared-memory database the threadpool can see."""
    store = IdentityStore(db_url=f"sqlite:///file:test_routes_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")
    service = IdentityService(store, FakeMail(), frontend_url="https://app.example.com")
    with TestClient(_build_app(service)) as client:
        yield client, service
    store.close()


def _token(service: IdentityService, functions, sector) -> str:
    email = f"route-{uuid.uuid4().hex[:10]}@example.com"
    return service.register("Route", "User", email, STRONG_PASSWORD, sector=sector, functions=functions).token


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/both-match", 200),
        ("/both-sector-differs", 403),
        ("/functions-match", 200),
        ("/functions-differ", 403),
        ("/sectors-match", 200),
        ("/sectors-differ", 403),
        ("/open", 200),
    ],
)
def test_finance_collaborator(guarded_client, path, expected):
    client, service = guarded_client
    token = _token(service, [Function.COLABORADOR], Sector.FINANCEIRO)
    resp = client.get(path, headers=bearer(token))
    assert resp.status_code == expected
    if expected == 403:
        assert resp.json()["error"]["code"] == "forbidden"


@pytest.mark.parametrize("path", ["/both-sector-differs", "/functions-differ", "/sectors-differ"])
def test_administrator_passes_every_route(guarded_client, path):
    client, service = guarded_client
    token = _token(service, [Function.ADMINISTRADOR], Sector.CD)
    assert client.get(path, headers=bearer(token)).status_code == 200


@pytest.mark.parametrize("path", list(ROUTES))
def test_missing_token_is_401(guarded_client, path):
    client, _ = guarded_client
    resp = client.get(path)
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthenticated"


def test_role_change_applies_to_existing_token(guarded_client):
    client, service = guarded_client
    token = _token(service, [Function.COLABORADOR], Sector.FINANCEIRO)
    assert client.get("/sectors-match", headers=bearer(token)).status_code == 200
    claim_id = client.get("/open", headers=bearer(token)).json()["id"]
    service.update_profile(claim_id, sector=Sector.MARKETING)
    assert client.get("/sectors-match", headers=bearer(token)).status_code == 403
