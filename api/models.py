"""
API request and response models for the staff auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Field names are snake_case English; the Portuguese names the existing
frontend sends (primeiro_nome, senha, setor, funcao, ...) are accepted as
aliases so both plain and encrypted bodies from that client keep working.

Encrypted bodies:
  Register and login accept either the structured model or
  {"encryptedData": "<ciphertext>"}. EncryptedPayload forbids extra keys so a
  plain body never matches it; the route resolves the union to the
  structured model before calling the service (see api/routes/v1/auth.py).
"""

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from auth.models import Function, Identity, Provider, Sector
from auth.tokens import MAX_SECRET_BYTES

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
PHONE_PATTERN = r"^$|^\(\d{2}\)\s\d{4,5}-\d{4}$"


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


def _strip(value):
    return value.strip() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class EncryptedPayload(BaseModel):
    """{"encryptedData": "..."} -- a request body encrypted with the shared passphrase."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    encrypted_data: str = Field(
        min_length=1,
        validation_alias=_alias("encryptedData", "encrypted_data"),
    )


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register.

    The password is not pattern-checked here: auth.password_policy reports the
    first violated rule with a specific message, and Google registrations do
    not carry a user-chosen password at all.

    Secrets are taken verbatim: only the descriptive text fields are stripped.
    """

    model_config = ConfigDict(populate_by_name=True)

    given_name: str = Field(min_length=2, max_length=50, validation_alias=_alias("given_name", "primeiro_nome"))
    family_name: str = Field(min_length=2, max_length=50, validation_alias=_alias("family_name", "sobrenome"))
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: Optional[str] = Field(
        default=None, max_length=MAX_SECRET_BYTES, validation_alias=_alias("password", "senha")
    )
    phone: str = Field(default="", pattern=PHONE_PATTERN, validation_alias=_alias("phone", "telefone"))
    sector: Sector = Field(default=Sector.CUIDADO_DE_ALUNOS, validation_alias=_alias("sector", "setor"))
    functions: Optional[list[Function]] = Field(default=None, validation_alias=_alias("functions", "funcao"))
    provider: Provider = Provider.CREDENTIALS
    provider_id: Optional[str] = Field(
        default=None, max_length=MAX_SECRET_BYTES, validation_alias=_alias("provider_id", "providerId")
    )
    photo_url: Optional[str] = Field(default=None, max_length=2048, validation_alias=_alias("photo_url", "picture"))

    @field_validator("given_name", "family_name", "email", "phone", "photo_url", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)

    @field_validator("functions", mode="before")
    @classmethod
    def wrap_single_function(cls, value):
        """Accept a single function value as a one-element list."""
        if isinstance(value, str):
            return [value]
        return value


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: Optional[str] = Field(
        default=None, max_length=MAX_SECRET_BYTES, validation_alias=_alias("password", "senha")
    )
    provider: Provider = Provider.CREDENTIALS
    provider_id: Optional[str] = Field(
        default=None, max_length=MAX_SECRET_BYTES, validation_alias=_alias("provider_id", "providerId")
    )

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, value):
        return _strip(value)


class ForgotPasswordRequest(BaseModel):
    """Request body for POST /auth/forgot."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /auth/reset."""

    model_config = ConfigDict(populate_by_name=True)

    token: str = Field(max_length=255)
    password: str = Field(max_length=255, validation_alias=_alias("password", "senha"))


class ProfileUpdateRequest(BaseModel):
    """Request body for PUT /auth/profile. Omitted fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    given_name: Optional[str] = Field(
        default=None, min_length=2, max_length=50, validation_alias=_alias("given_name", "primeiro_nome")
    )
    family_name: Optional[str] = Field(
        default=None, min_length=2, max_length=50, validation_alias=_alias("family_name", "sobrenome")
    )
    email: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN, validation_alias=_alias("phone", "telefone"))
    sector: Optional[Sector] = Field(default=None, validation_alias=_alias("sector", "setor"))
    functions: Optional[list[Function]] = Field(default=None, validation_alias=_alias("functions", "funcao"))

    @field_validator("functions", mode="before")
    @classmethod
    def wrap_single_function(cls, value):
        if isinstance(value, str):
            return [value]
        return value


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class IdentitySummary(BaseModel):
    """Public projection of an Identity. Never includes the secret hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    display_name: str
    given_name: str
    family_name: str
    email: str
    phone: str
    sector: Sector
    functions: list[Function]
    photo_url: Optional[str] = None

    @classmethod
    def from_identity(cls, identity: Identity) -> "IdentitySummary":
        return cls(
            id=identity.id,
            display_name=identity.display_name,
            given_name=identity.given_name,
            family_name=identity.family_name,
            email=identity.email,
            phone=identity.phone,
            sector=identity.sector,
            functions=list(identity.functions),
            photo_url=identity.photo_url,
        )


class AuthResponse(BaseModel):
    """Response for register and login: a bearer session token plus the identity."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    token: str
    token_type: str = "bearer"
    expires_in: int
    user: IdentitySummary


class OkResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    message: Optional[str] = None


class ProfileResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    message: str = "Profile updated."
    user: IdentitySummary


class ActivityResponse(BaseModel):
    """Idle-tracker state for one identity."""

    model_config = ConfigDict(frozen=True)

    identity_id: int
    active: bool
    last_activity_at: Optional[float] = None


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
