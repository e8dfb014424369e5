"""
auth/oauth.py -- Authlib registration of the Google sign-in flow.

Google is registered only when both GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET
are configured. Without them the /auth/google routes answer 503 and the rest
of the service runs normally.

Security notes:
  Email verification is mandatory. google_profile() raises ValueError if the
  id_token does not confirm email_verified; the callback turns that into a
  redirect to the frontend error page.

  The OAuth state parameter (CSRF protection) is handled by authlib via
  Starlette SessionMiddleware.

Layer rule: no imports from api/ or mail/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from authlib.integrations.starlette_client import OAuth

from core.config import get_settings

logger = logging.getLogger("staffauth.auth.oauth")

oauth = OAuth()

_cfg = get_settings()

if _cfg.google_enabled:
    oauth.register(
        name="google",
        client_id=_cfg.google_client_id,
        client_secret=_cfg.google_client_secret,
        server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
        client_kwargs={"scope": "openid email profile"},
    )
    logger.info("Google sign-in registered")


@dataclass(frozen=True)
class GoogleProfile:
    given_name: str
    family_name: str
    email: str
    provider_id: str
    photo_url: str | None = None


def google_profile(token: dict) -> GoogleProfile:
    """Extract the identity fields from a Google token response.

    Missing name parts fall back to placeholders so a profile without a
    family name can still register.

    Raises:
        ValueError: If userinfo is missing, the email is unverified, or the
            email/sub claims are absent.
    """
    userinfo = token.get("userinfo")
    if not userinfo:
        raise ValueError("google OAuth: no userinfo in token response")
    if not userinfo.get("email_verified", False):
        raise ValueError("google OAuth: email is not verified")

    email = userinfo.get("email")
    subject_id = userinfo.get("sub")
    if not email or not subject_id:
        raise ValueError("google OAuth: missing email or sub claim in userinfo")

    return GoogleProfile(
        given_name=userinfo.get("given_name") or "Usuário",
        family_name=userinfo.get("family_name") or "Google",
        email=email,
        provider_id=str(subject_id),
        photo_url=userinfo.get("picture") or None,
    )
