"""
auth/password_policy.py -- Password strength rules for credential users.

Rules are checked in a fixed priority order and the first violation is
reported, so the client always sees one actionable message:

  1. present (MissingSecretError)
  2. length 8..16 inclusive
  3. at least one lowercase letter
  4. at least one uppercase letter
  5. at least one digit
  6. at least one symbol from SYMBOLS

Google sign-in skips this module entirely: its secret is an opaque provider
id, not something the user chose.
"""

from __future__ import annotations

import re

from auth.errors import MissingSecretError, WeakSecretError

MIN_LENGTH = 8
MAX_LENGTH = 16

SYMBOLS = "!@#$%^&*()_+-=[]{};':\"\\|,.<>/?"

_RULES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter."),
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter."),
    (re.compile(r"\d"), "Password must contain at least one number."),
    (re.compile("[" + re.escape(SYMBOLS) + "]"), "Password must contain at least one special character."),
]


def validate(secret: str | None) -> None:
    """Raise the first policy violation for secret, or return None if it passes."""
    if not secret:
        raise MissingSecretError(field="password")
    if len(secret) < MIN_LENGTH:
        raise WeakSecretError(f"Password must be at least {MIN_LENGTH} characters.", field="password")
    if len(secret) > MAX_LENGTH:
        raise WeakSecretError(f"Password must be at most {MAX_LENGTH} characters.", field="password")
    for pattern, message in _RULES:
        if not pattern.search(secret):
            raise WeakSecretError(message, field="password")
