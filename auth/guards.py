"""
auth/guards.py -- Role and sector authorization policies.

Every guard runs after the session token has been verified. It re-reads the
identity from the store (never trusting the claim's copy of anything but the
subject id) and either returns the current Identity or raises:

  UnauthenticatedError -- the subject no longer resolves to an active identity
  ForbiddenError       -- the identity lacks the required function/sector

Policies:
  AdminGuard        ADMINISTRADOR in functions.
  AdminOrLeadGuard  ADMINISTRADOR or any LEAD_FUNCTIONS member.
  RolesGuard        driven by a RouteAccess declared at route registration:
                      - ADMINISTRADOR always passes
                      - both lists non-empty -> function AND sector required
                      - one list non-empty   -> function OR sector suffices
                      - both lists empty     -> allow
                    An empty list means "unrestricted" for that dimension, so
                    with only one list set the OR reduces to that one check.

Layer rule: no imports from api/ or mail/.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from auth.errors import ForbiddenError, UnauthenticatedError
from auth.models import LEAD_FUNCTIONS, Function, Identity, Sector, SessionClaim
from auth.store import IdentityStore


@dataclass(frozen=True)
class RouteAccess:
    """Per-route allow-lists for RolesGuard. Empty means unrestricted."""

    allowed_functions: frozenset[Function] = field(default_factory=frozenset)
    allowed_sectors: frozenset[Sector] = field(default_factory=frozenset)

    @classmethod
    def of(cls, functions: Iterable[Function] = (), sectors: Iterable[Sector] = ()) -> "RouteAccess":
        return cls(frozenset(Function(f) for f in functions), frozenset(Sector(s) for s in sectors))


def roles_allow(functions: Iterable[Function], sector: Sector, access: RouteAccess) -> bool:
    """Pure RolesGuard decision for a caller's functions and sector."""
    held = set(functions)
    if Function.ADMINISTRADOR in held:
        return True

    has_function = not access.allowed_functions or bool(held & access.allowed_functions)
    has_sector = not access.allowed_sectors or sector in access.allowed_sectors

    if access.allowed_functions and access.allowed_sectors:
        return has_function and has_sector
    if access.allowed_functions or access.allowed_sectors:
        return has_function or has_sector
    return True


class Guard:
    """Base guard: resolve the claim's subject, then apply allows()."""

    denial = "Access denied."

    def authorize(self, store: IdentityStore, claim: SessionClaim | None) -> Identity:
        if claim is None:
            raise UnauthenticatedError()
        identity = store.get_by_id(claim.subject_id)
        if identity is None:
            raise UnauthenticatedError("User not found.")
        if not self.allows(identity):
            raise ForbiddenError(self.denial)
        return identity

    def allows(self, identity: Identity) -> bool:
        return True


class AdminGuard(Guard):
    denial = "Access denied. Only administrators can access this route."

    def allows(self, identity: Identity) -> bool:
        return Function.ADMINISTRADOR in identity.functions


class AdminOrLeadGuard(Guard):
    denial = "Access denied. Only administrators or leads can access this route."

    def allows(self, identity: Identity) -> bool:
        held = set(identity.functions)
        return Function.ADMINISTRADOR in held or bool(held & LEAD_FUNCTIONS)


class RolesGuard(Guard):
    def __init__(self, access: RouteAccess | None = None) -> None:
        self.access = access or RouteAccess()

    def allows(self, identity: Identity) -> bool:
        return roles_allow(identity.functions, identity.sector, self.access)
