"""
api/routes/v1/auth.py -- Authentication and profile REST endpoints.

Routes:
  POST /auth/register          -- create identity; plain or encrypted body
  POST /auth/login             -- credential or provider login; plain or encrypted body
  GET  /auth/google            -- start Google sign-in (redirect)
  GET  /auth/google/callback   -- finish Google sign-in; redirect to frontend with token
  GET  /auth/me                -- current identity (requires bearer token)
  POST /auth/forgot            -- request a recovery link (never reveals account existence)
  POST /auth/reset             -- redeem a recovery token
  GET  /auth/setores           -- sector enum values (public)
  GET  /auth/funcoes           -- function enum values (public)
  PUT  /auth/profile           -- update own profile (requires bearer token)

Security:
  POST /login is rate-limited per client IP (LOGIN_RATE_LIMIT).
  Cache-Control: no-store on every response that carries a session token.
  PUT /profile always targets the token's subject; an id in the body is ignored.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from authlib.integrations.base_client import OAuthError
from fastapi import APIRouter, Body, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool

from api.limiter import limiter
from api.models import (
    AuthResponse,
    EncryptedPayload,
    ForgotPasswordRequest,
    IdentitySummary,
    LoginRequest,
    OkResponse,
    ProfileResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    ResetPasswordRequest,
)
from auth.cipher import get_cipher
from auth.dependencies import get_current_identity, get_identity_service
from auth.errors import AuthError, DecryptionError, ServiceUnavailableError
from auth.models import Function, Identity, Sector
from auth.oauth import google_profile
from auth.service import AuthResult, IdentityService
from core.config import get_settings

logger = logging.getLogger("staffauth.api.auth")

_settings = get_settings()

router = APIRouter()

_Model = TypeVar("_Model", bound=BaseModel)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _resolve_body(raw: Any, model: type[_Model]) -> _Model:
    """Decode a Plain(model) | Encrypted(str) body into the structured model.

    Both branches end in the same model_validate() call, so a plain body and
    its encrypted equivalent produce identical outcomes, including 422s.
    """
    if not isinstance(raw, dict):
        raise DecryptionError()
    if "encryptedData" in raw or "encrypted_data" in raw:
        try:
            envelope = EncryptedPayload.model_validate(raw)
        except PydanticValidationError as exc:
            raise RequestValidationError(exc.errors()) from exc
        raw = get_cipher().decrypt_object(envelope.encrypted_data)
        if not isinstance(raw, dict):
            raise DecryptionError()
    try:
        return model.model_validate(raw)
    except PydanticValidationError as exc:
        raise RequestValidationError(exc.errors()) from exc


def _auth_response(result: AuthResult) -> JSONResponse:
    resp = JSONResponse(
        content=AuthResponse(
            token=result.token,
            expires_in=_settings.token_expire_seconds,
            user=IdentitySummary.from_identity(result.identity),
        ).model_dump(mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _google_client(request: Request):
    client = request.app.state.oauth.create_client("google") if _settings.google_enabled else None
    if client is None:
        raise ServiceUnavailableError("Google sign-in is not configured.")
    return client


# ---------------------------------------------------------------------------
# Registration and login
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=AuthResponse, status_code=200)
def register(
    raw: dict = Body(...),
    service: IdentityService = Depends(get_identity_service),
) -> JSONResponse:
    """Register a new identity and return a session token."""
    body = _resolve_body(raw, RegisterRequest)
    result = service.register(
        body.given_name,
        body.family_name,
        body.email,
        body.password,
        phone=body.phone,
        sector=body.sector,
        functions=body.functions,
        provider=body.provider,
        provider_id=body.provider_id,
        photo_url=body.photo_url,
    )
    return _auth_response(result)


@limiter.limit(_settings.login_rate_limit)
@router.post("/auth/login", response_model=AuthResponse)
def login(
    request: Request,
    raw: dict = Body(...),
    service: IdentityService = Depends(get_identity_service),
) -> JSONResponse:
    """Authenticate and return a session token.

    Unknown email and wrong secret produce the same invalid_credentials error.
    """
    body = _resolve_body(raw, LoginRequest)
    result = service.login(body.email, body.password, provider=body.provider, provider_id=body.provider_id)
    return _auth_response(result)


# ---------------------------------------------------------------------------
# Google sign-in
# ---------------------------------------------------------------------------


@router.get("/auth/google")
async def google_login(request: Request):
    """Redirect the browser to Google's consent screen."""
    client = _google_client(request)
    return await client.authorize_redirect(request, _settings.google_callback_url)


@router.get("/auth/google/callback")
async def google_callback(request: Request, service: IdentityService = Depends(get_identity_service)):
    """Exchange the code, sign the user in, and hand the token to the frontend."""
    client = _google_client(request)
    frontend = _settings.frontend_url.rstrip("/")
    try:
        token = await client.authorize_access_token(request)
        profile = google_profile(token)
        result = await run_in_threadpool(
            service.federated_auth,
            profile.given_name,
            profile.family_name,
            profile.email,
            profile.provider_id,
            profile.photo_url,
        )
    except (OAuthError, ValueError, AuthError):
        logger.exception("Google sign-in failed")
        return RedirectResponse(f"{frontend}/signin?error=google_auth_failed", status_code=302)

    resp = RedirectResponse(f"{frontend}/auth/google/callback?token={result.token}", status_code=302)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=IdentitySummary)
def me(current: Identity = Depends(get_current_identity)) -> IdentitySummary:
    """Return the profile of the authenticated identity."""
    return IdentitySummary.from_identity(current)


@router.put("/auth/profile", response_model=ProfileResponse)
def update_profile(
    body: ProfileUpdateRequest,
    current: Identity = Depends(get_current_identity),
    service: IdentityService = Depends(get_identity_service),
) -> ProfileResponse:
    """Update the authenticated identity's own profile."""
    updated = service.update_profile(
        current.id,
        given_name=body.given_name,
        family_name=body.family_name,
        email=body.email,
        phone=body.phone,
        sector=body.sector,
        functions=body.functions,
    )
    return ProfileResponse(user=IdentitySummary.from_identity(updated))


# ---------------------------------------------------------------------------
# Password recovery
# ---------------------------------------------------------------------------


@router.post("/auth/forgot", response_model=OkResponse)
def forgot_password(
    body: ForgotPasswordRequest,
    service: IdentityService = Depends(get_identity_service),
) -> OkResponse:
    """Send a recovery link if the email belongs to an identity. Always answers ok."""
    service.request_password_reset(body.email)
    return OkResponse(message="If the email is registered, a recovery link has been sent.")


@router.post("/auth/reset", response_model=OkResponse)
def reset_password(
    body: ResetPasswordRequest,
    service: IdentityService = Depends(get_identity_service),
) -> OkResponse:
    """Redeem a recovery token and set a new password."""
    service.reset_password(body.token, body.password)
    return OkResponse(message="Password updated.")


# ---------------------------------------------------------------------------
# Enumerations (public)
# ---------------------------------------------------------------------------


@router.get("/auth/setores", response_model=list[Sector])
def list_sectors() -> list[Sector]:
    return list(Sector)


@router.get("/auth/funcoes", response_model=list[Function])
def list_functions() -> list[Function]:
    return list(Function)
