"""
auth/tokens.py -- Session JWTs, secret hashing, and recovery token utilities.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       the identity id (sub), email, display name, issue time and expiry.
       There is no server-side session store and no revocation list: a token
       is valid while its signature checks out and exp is in the future.
       Verification returns None on any failure -- the dependency layer
       turns that into UnauthenticatedError.

  Secrets: bcrypt, used directly (no passlib wrapper). The same hash covers
       both credential passwords and Google subject ids. _DUMMY_HASH enables
       timing equalization in verify_or_dummy() so response time does not
       reveal whether an email exists.

  Recovery tokens: secrets.token_urlsafe(32) -- 256 bits, unguessable.

Layer rule: no imports from api/ or mail/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from auth.models import SessionClaim
from core.config import get_settings

logger = logging.getLogger("staffauth.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

# bcrypt refuses longer input outright (bcrypt >= 5) or silently truncates it.
MAX_SECRET_BYTES = 72

# ---------------------------------------------------------------------------
# Secret hashing (bcrypt)
# ---------------------------------------------------------------------------


def hash_secret(plain: str) -> str:
    """Return a salted bcrypt hash of the given secret.

    Callers must keep plain within MAX_SECRET_BYTES; the identity service
    rejects longer secrets with a ValidationError before reaching here.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_secret(plain: str, hashed: str) -> bool:
    """Return True if the plaintext secret matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_secret("staffauth_timing_dummy")


def verify_or_dummy(plain: str | None, hashed: str | None) -> bool:
    """Check plain against hashed, running bcrypt even when either is missing.

    Unknown email and missing secret both burn one bcrypt comparison against
    _DUMMY_HASH so all failure paths cost the same.
    """
    if not plain or not hashed:
        verify_secret(plain or "", _DUMMY_HASH)
        return False
    return verify_secret(plain, hashed)


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_session_token(identity_id: int, email: str, display_name: str, expire_seconds: int = 0) -> str:
    """Encode a signed session JWT.

    Args:
        identity_id:    Identity primary key, stored as the sub claim.
        email:          Normalized email at issue time.
        display_name:   Display name at issue time (informational only;
                        guards always re-read the identity).
        expire_seconds: Lifetime in seconds. 0 uses Settings.token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(identity_id),
        "email": email,
        "name": display_name,
        "iat": now,
        "exp": now + timedelta(seconds=duration),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_session_token(token: str) -> SessionClaim | None:
    """Verify signature and expiry. Returns a SessionClaim, or None on any failure."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
        return SessionClaim(
            subject_id=int(payload["sub"]),
            email=payload.get("email", ""),
            display_name=payload.get("name", ""),
            issued_at=datetime.fromtimestamp(payload.get("iat", 0), tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
    except (JWTError, KeyError, TypeError, ValueError) as exc:
        logger.debug("Session token rejected: %s", type(exc).__name__)
        return None


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an 'Authorization: Bearer <token>' header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


# ---------------------------------------------------------------------------
# Recovery tokens
# ---------------------------------------------------------------------------


def generate_recovery_token() -> str:
    return secrets.token_urlsafe(32)
