"""
auth/service.py -- Identity and session service.

Owns every credential decision: registration, login for both providers,
Google sign-in upsert-or-login, profile updates, and the password recovery
token lifecycle. Route handlers decode the request, call one method here,
and serialize the AuthResult or let the AuthError propagate.

Effective secret:
  credentials -> the user's password (must pass auth.password_policy)
  google      -> the provider subject id, falling back to the password field

Recovery token lifecycle:
  CREATED --redeem--> REDEEMED (row deleted, terminal)
  CREATED --ttl-----> EXPIRED  (row left in place, inert)

Security notes:
  login() raises the same InvalidCredentialsError for unknown email, missing
  secret, and wrong secret, and runs bcrypt on every path.

  request_password_reset() returns normally whether or not the email
  exists. Mail delivery failures are not swallowed: they surface as
  InternalError after the unused token is removed.

  federated_auth() rotates the stored hash when the provider id no longer
  matches. The redirect callback is treated as authoritative for the
  account; that trust decision is recorded in DESIGN.md as open.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

from auth import password_policy
from auth.errors import (
    DuplicateEmailError,
    ExpiredTokenError,
    InternalError,
    InvalidCredentialsError,
    InvalidIdentityError,
    InvalidTokenError,
    MissingSecretError,
    NotFoundError,
    ServiceUnavailableError,
    ValidationError,
)
from auth.models import (
    DEFAULT_SECTOR,
    Function,
    Identity,
    Provider,
    RecoveryToken,
    Sector,
    display_name,
    normalize_email,
)
from auth.store import IdentityStore
from auth.tokens import (
    MAX_SECRET_BYTES,
    create_session_token,
    generate_recovery_token,
    hash_secret,
    verify_or_dummy,
    verify_secret,
)

logger = logging.getLogger("staffauth.auth.service")


class MailDispatcher(Protocol):
    enabled: bool

    def send_password_recovery(self, email: str, reset_link: str) -> None: ...


@dataclass(frozen=True)
class AuthResult:
    token: str
    identity: Identity


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _effective_secret(provider: Provider, secret: str | None, provider_id: str | None) -> str | None:
    if Provider(provider) is Provider.GOOGLE:
        return provider_id or secret
    return secret


def _check_secret_length(plain: str, field: str) -> None:
    if len(plain.encode("utf-8")) > MAX_SECRET_BYTES:
        raise ValidationError(f"Secret must be at most {MAX_SECRET_BYTES} bytes.", field=field)


class IdentityService:
    """Registration, login, profile and recovery operations over an IdentityStore."""

    def __init__(
        self,
        store: IdentityStore,
        mail: MailDispatcher,
        frontend_url: str,
        recovery_ttl_seconds: int = 30 * 60,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.mail = mail
        self.frontend_url = frontend_url.rstrip("/")
        self.recovery_ttl = timedelta(seconds=recovery_ttl_seconds)
        self._clock = clock

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    def register(
        self,
        given_name: str,
        family_name: str,
        email: str,
        secret: str | None,
        phone: str = "",
        sector: Sector = DEFAULT_SECTOR,
        functions: Iterable[Function] | None = None,
        provider: Provider = Provider.CREDENTIALS,
        provider_id: str | None = None,
        photo_url: str | None = None,
    ) -> AuthResult:
        email = normalize_email(email)
        if not email:
            raise ValidationError("Email is required.", field="email")
        if self.store.email_taken(email):
            raise DuplicateEmailError()

        provider = Provider(provider)
        if provider is Provider.CREDENTIALS:
            password_policy.validate(secret)

        plain = _effective_secret(provider, secret, provider_id)
        if not plain:
            raise MissingSecretError("Password or provider token is required.", field="password")
        _check_secret_length(plain, "provider_id" if provider is Provider.GOOGLE and provider_id else "password")

        identity = Identity(
            given_name=given_name,
            family_name=family_name,
            email=email,
            secret_hash=hash_secret(plain),
            phone=phone or "",
            sector=Sector(sector),
            functions=list(functions or []),
            photo_url=photo_url,
        )
        identity.id = self.store.create_identity(identity)
        logger.info("Registered identity %s (%s, provider=%s)", identity.id, email, provider.value)
        return self._issue(identity)

    def login(
        self,
        email: str,
        secret: str | None,
        provider: Provider = Provider.CREDENTIALS,
        provider_id: str | None = None,
    ) -> AuthResult:
        identity = self.store.get_by_email(email)
        plain = _effective_secret(provider, secret, provider_id)
        if not verify_or_dummy(plain, identity.secret_hash if identity else None):
            logger.info("Failed login for %s", normalize_email(email))
            raise InvalidCredentialsError()
        return self._issue(identity)

    def federated_auth(
        self,
        given_name: str,
        family_name: str,
        email: str,
        provider_id: str,
        photo_url: str | None = None,
    ) -> AuthResult:
        """Log in an existing Google user or register a new one.

        An existing identity whose stored hash does not match provider_id gets
        the hash rotated to the new id instead of being rejected.
        """
        if not provider_id:
            raise MissingSecretError("Provider token is required.", field="provider_id")
        _check_secret_length(provider_id, "provider_id")

        identity = self.store.get_by_email(email)
        if identity is None:
            return self.register(
                given_name,
                family_name,
                email,
                secret=None,
                phone="",
                sector=DEFAULT_SECTOR,
                functions=None,
                provider=Provider.GOOGLE,
                provider_id=provider_id,
                photo_url=photo_url,
            )

        if not verify_secret(provider_id, identity.secret_hash):
            logger.warning("Rotating stored provider secret for identity %s", identity.id)
            identity.secret_hash = hash_secret(provider_id)
            self.store.set_secret_hash(identity.id, identity.secret_hash)
        return self._issue(identity)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def me(self, identity_id: int) -> Identity:
        identity = self.store.get_by_id(identity_id)
        if identity is None:
            raise NotFoundError()
        return identity

    def list_identities(self) -> list[Identity]:
        return self.store.list_identities()

    def update_profile(
        self,
        identity_id: int,
        given_name: str | None = None,
        family_name: str | None = None,
        email: str | None = None,
        phone: str | None = None,
        sector: Sector | None = None,
        functions: Iterable[Function] | None = None,
    ) -> Identity:
        """Persist the supplied fields only and regenerate the display name.

        Email uniqueness is re-checked only when the normalized address really
        changed, so resubmitting one's own email in a different case is a no-op.
        """
        current = self.me(identity_id)
        fields: dict = {}

        if email is not None:
            new_email = normalize_email(email)
            if not new_email:
                raise ValidationError("Email is required.", field="email")
            if new_email != normalize_email(current.email):
                if self.store.email_taken(new_email, exclude_id=identity_id):
                    raise DuplicateEmailError("Email is already in use by another user.")
                fields["email"] = new_email

        if given_name is not None:
            fields["given_name"] = given_name
        if family_name is not None:
            fields["family_name"] = family_name
        if phone is not None:
            fields["phone"] = phone
        if sector is not None:
            fields["sector"] = Sector(sector)
        if functions is not None:
            values = list(functions)
            if not values:
                raise ValidationError("At least one function is required.", field="functions")
            fields["functions"] = values

        fields["display_name"] = display_name(
            fields.get("given_name", current.given_name),
            fields.get("family_name", current.family_name),
        )

        self.store.update_identity(identity_id, **fields)
        logger.info("Updated profile of identity %s (%s)", identity_id, ", ".join(sorted(fields)))
        return self.me(identity_id)

    # ------------------------------------------------------------------
    # Password recovery
    # ------------------------------------------------------------------

    def request_password_reset(self, email: str) -> None:
        if not self.mail.enabled:
            raise ServiceUnavailableError("Password recovery is not available.")

        identity = self.store.get_by_email(email)
        if identity is None:
            return

        now = self._clock()
        record = RecoveryToken(
            identity_id=identity.id,
            token=generate_recovery_token(),
            created_at=now,
            expires_at=now + self.recovery_ttl,
        )
        record.id = self.store.create_recovery_token(record)

        reset_link = f"{self.frontend_url}/auth/reset?token={record.token}"
        try:
            self.mail.send_password_recovery(identity.email, reset_link)
        except Exception as exc:
            self.store.delete_recovery_token(record.id)
            raise InternalError("Could not send the recovery email.") from exc
        logger.info("Issued recovery token for identity %s", identity.id)

    def reset_password(self, token: str | None, new_secret: str | None) -> None:
        password_policy.validate(new_secret)
        if not token:
            raise InvalidTokenError()

        record = self.store.get_recovery_token(token)
        if record is None:
            raise InvalidTokenError()
        if record.expires_at < self._clock():
            raise ExpiredTokenError()
        if self.store.get_by_id(record.identity_id) is None:
            raise InvalidIdentityError()

        if not self.store.redeem_recovery_token(record.id, record.identity_id, hash_secret(new_secret)):
            raise InvalidTokenError()
        logger.info("Password reset for identity %s", record.identity_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _issue(self, identity: Identity) -> AuthResult:
        token = create_session_token(identity.id, identity.email, identity.display_name)
        return AuthResult(token=token, identity=identity)
