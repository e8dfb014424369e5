"""
auth/store.py -- SQLAlchemy Core persistence layer for identities and recovery tokens.

Pattern: Repository + Data Mapper.
IdentityStore is the repository; _row_to_identity / _row_to_token are the
mappers. Service and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Email uniqueness is a partial unique index over active rows
  (deleted_at IS NULL), so a soft-deleted identity never blocks a new
  registration with the same address. Emails are normalized (trimmed,
  lower-cased) before every write and lookup.

Error policy:
  SQLAlchemy failures are logged with full context and re-raised as
  InternalError so schema and constraint names never reach clients. The one
  exception is a unique violation on email, which becomes
  DuplicateEmailError (two concurrent registrations or profile updates can
  both pass the pre-check; the index is the final arbiter).

Layer rule: no imports from api/ or mail/.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import DuplicateEmailError, InternalError
from auth.models import DEFAULT_FUNCTIONS, Function, Identity, RecoveryToken, Sector, normalize_email

logger = logging.getLogger("staffauth.auth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_identities = Table(
    "identities",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("given_name", String(100), nullable=False),
    Column("family_name", String(100), nullable=False),
    Column("display_name", String(201), nullable=False),
    Column("email", String(255), nullable=False),
    Column("secret_hash", Text, nullable=False),
    Column("phone", String(32), nullable=False, server_default=""),
    Column("sector", String(40), nullable=False, server_default=Sector.CUIDADO_DE_ALUNOS.value),
    Column("functions", Text, nullable=False),  # JSON array of Function values
    Column("photo_url", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("deleted_at", String(32)),  # NULL while active
)

Index(
    "uq_identities_email_active",
    _identities.c.email,
    unique=True,
    sqlite_where=_identities.c.deleted_at.is_(None),
    postgresql_where=_identities.c.deleted_at.is_(None),
)

_recovery_tokens = Table(
    "recovery_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("identity_id", Integer, ForeignKey("identities.id"), nullable=False),
    Column("token", String(128), nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False),
)

# Columns update_identity() accepts. Anything else is a programming error.
_MUTABLE_FIELDS = frozenset(
    {"given_name", "family_name", "display_name", "email", "phone", "sector", "functions", "photo_url"}
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block during writes."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _dump_functions(functions) -> str:
    values = [Function(f).value for f in (functions or DEFAULT_FUNCTIONS)]
    return json.dumps(values)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class IdentityStore:
    """Repository for Identity and RecoveryToken entities.

    Usage:
        store = IdentityStore("sqlite:///staffauth.db")
        identity_id = store.create_identity(Identity(...))
        identity = store.get_by_email("ana@example.com")
        store.close()
    """

    def __init__(self, db_url: str = "sqlite:///staffauth.db") -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Transactions and error translation
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Yield a connection inside one transaction; commit on success, roll back on error."""
        with self._translate_errors("transaction"):
            with self.engine.begin() as conn:
                yield conn

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except IntegrityError as exc:
            if "email" in str(exc.orig).lower():
                raise DuplicateEmailError() from exc
            logger.exception("Integrity error during %s", operation)
            raise InternalError() from exc
        except SQLAlchemyError as exc:
            logger.exception("Database error during %s", operation)
            raise InternalError() from exc

    # ------------------------------------------------------------------
    # Identity queries
    # ------------------------------------------------------------------

    def create_identity(self, identity: Identity) -> int:
        """Insert a new identity and return its assigned id.

        Raises DuplicateEmailError if an active identity already uses the email.
        """
        now = _iso(_now())
        with self.transaction() as conn:
            result = conn.execute(
                _identities.insert().values(
                    given_name=identity.given_name,
                    family_name=identity.family_name,
                    display_name=identity.display_name,
                    email=normalize_email(identity.email),
                    secret_hash=identity.secret_hash,
                    phone=identity.phone or "",
                    sector=Sector(identity.sector).value,
                    functions=_dump_functions(identity.functions),
                    photo_url=identity.photo_url,
                    created_at=now,
                    updated_at=now,
                )
            )
            return result.inserted_primary_key[0]

    def get_by_id(self, identity_id: int) -> Identity | None:
        """Look up an active identity by primary key. Returns None if absent or deleted."""
        with self._translate_errors("get_by_id"), self.engine.connect() as conn:
            row = conn.execute(
                _identities.select().where((_identities.c.id == identity_id) & _identities.c.deleted_at.is_(None))
            ).fetchone()
        return _row_to_identity(row) if row is not None else None

    def get_by_email(self, email: str) -> Identity | None:
        """Look up an active identity by normalized email. Returns None if not found."""
        normalized = normalize_email(email)
        if not normalized:
            return None
        with self._translate_errors("get_by_email"), self.engine.connect() as conn:
            row = conn.execute(
                _identities.select().where(
                    (func.lower(func.trim(_identities.c.email)) == normalized) & _identities.c.deleted_at.is_(None)
                )
            ).fetchone()
        return _row_to_identity(row) if row is not None else None

    def email_taken(self, email: str, exclude_id: int | None = None) -> bool:
        """Return True if another active identity uses this (normalized) email."""
        query = _identities.select().where(
            (func.lower(func.trim(_identities.c.email)) == normalize_email(email)) & _identities.c.deleted_at.is_(None)
        )
        if exclude_id is not None:
            query = query.where(_identities.c.id != exclude_id)
        with self._translate_errors("email_taken"), self.engine.connect() as conn:
            row = conn.execute(query.limit(1)).fetchone()
        return row is not None

    def list_identities(self) -> list[Identity]:
        """Return all active identities ordered by display name."""
        with self._translate_errors("list_identities"), self.engine.connect() as conn:
            rows = conn.execute(
                _identities.select().where(_identities.c.deleted_at.is_(None)).order_by(_identities.c.display_name)
            ).fetchall()
        return [_row_to_identity(r) for r in rows]

    def update_identity(self, identity_id: int, **fields) -> bool:
        """Update mutable profile fields on an active identity.

        Accepted fields: given_name, family_name, display_name, email, phone,
        sector, functions, photo_url. Returns True if a row was updated.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown identity fields: {unknown!r}")
        if "email" in fields:
            fields["email"] = normalize_email(fields["email"])
        if "sector" in fields:
            fields["sector"] = Sector(fields["sector"]).value
        if "functions" in fields:
            fields["functions"] = _dump_functions(fields["functions"])
        fields["updated_at"] = _iso(_now())
        with self.transaction() as conn:
            result = conn.execute(
                _identities.update()
                .where((_identities.c.id == identity_id) & _identities.c.deleted_at.is_(None))
                .values(**fields)
            )
        return result.rowcount > 0

    def set_secret_hash(self, identity_id: int, secret_hash: str) -> None:
        with self.transaction() as conn:
            conn.execute(
                _identities.update()
                .where(_identities.c.id == identity_id)
                .values(secret_hash=secret_hash, updated_at=_iso(_now()))
            )

    def soft_delete(self, identity_id: int) -> bool:
        """Stamp deleted_at. The row stays for audit but disappears from every lookup."""
        with self.transaction() as conn:
            result = conn.execute(
                _identities.update()
                .where((_identities.c.id == identity_id) & _identities.c.deleted_at.is_(None))
                .values(deleted_at=_iso(_now()))
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Recovery tokens
    # ------------------------------------------------------------------

    def create_recovery_token(self, token: RecoveryToken) -> int:
        with self.transaction() as conn:
            result = conn.execute(
                _recovery_tokens.insert().values(
                    identity_id=token.identity_id,
                    token=token.token,
                    created_at=_iso(token.created_at or _now()),
                    expires_at=_iso(token.expires_at),
                )
            )
            return result.inserted_primary_key[0]

    def get_recovery_token(self, token: str) -> RecoveryToken | None:
        with self._translate_errors("get_recovery_token"), self.engine.connect() as conn:
            row = conn.execute(_recovery_tokens.select().where(_recovery_tokens.c.token == token)).fetchone()
        return _row_to_token(row) if row is not None else None

    def delete_recovery_token(self, token_id: int) -> bool:
        with self.transaction() as conn:
            result = conn.execute(_recovery_tokens.delete().where(_recovery_tokens.c.id == token_id))
        return result.rowcount > 0

    def redeem_recovery_token(self, token_id: int, identity_id: int, secret_hash: str) -> bool:
        """Set the new secret hash and delete the token in one transaction.

        Returns False (and changes nothing) if the token row was already gone,
        which means a concurrent request redeemed it first.
        """
        with self.transaction() as conn:
            deleted = conn.execute(_recovery_tokens.delete().where(_recovery_tokens.c.id == token_id))
            if deleted.rowcount == 0:
                return False
            conn.execute(
                _identities.update()
                .where(_identities.c.id == identity_id)
                .values(secret_hash=secret_hash, updated_at=_iso(_now()))
            )
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_identity(row) -> Identity:
    return Identity(
        id=row.id,
        given_name=row.given_name,
        family_name=row.family_name,
        display_name=row.display_name,
        email=row.email,
        secret_hash=row.secret_hash,
        phone=row.phone or "",
        sector=Sector(row.sector),
        functions=[Function(v) for v in json.loads(row.functions or "[]")],
        photo_url=row.photo_url,
        created_at=_parse(row.created_at),
        updated_at=_parse(row.updated_at),
        deleted_at=_parse(row.deleted_at),
    )


def _row_to_token(row) -> RecoveryToken:
    return RecoveryToken(
        id=row.id,
        identity_id=row.identity_id,
        token=row.token,
        created_at=_parse(row.created_at),
        expires_at=_parse(row.expires_at),
    )
