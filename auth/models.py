"""
auth/models.py -- Domain enums and dataclasses for identity entities.

Pattern: Data class (pure data container, minimal logic). Stores and the
identity service do the work; these types only own domain shape.

Enum values are the wire values the frontend already uses, so they stay in
the original upper-case Portuguese form.

Layer rule: no imports from api/ or mail/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Sector(str, Enum):
    """Organizational department an identity belongs to (exactly one)."""

    ADMINISTRADOR = "ADMINISTRADOR"
    CD = "CD"
    COMERCIAL = "COMERCIAL"
    CUIDADO_DE_ALUNOS = "CUIDADO_DE_ALUNOS"
    EVENTOS = "EVENTOS"
    EXPANSAO = "EXPANSAO"
    EXPANSAO_NEGOCIOS = "EXPANSAO_NEGOCIOS"
    FINANCEIRO = "FINANCEIRO"
    GH = "GH"
    IAM_STORE = "IAM_STORE"
    JURIDICO = "JURIDICO"
    MANUTENCAO = "MANUTENCAO"
    MARKETING = "MARKETING"
    P7 = "P7"
    TECNOLOGIA = "TECNOLOGIA"


class Function(str, Enum):
    """Role capability an identity holds (one or more per identity)."""

    ADMINISTRADOR = "ADMINISTRADOR"
    ADVOGADO = "ADVOGADO"
    CLIPADOR = "CLIPADOR"
    COLABORADOR = "COLABORADOR"
    COPYWRITER = "COPYWRITER"
    DESENVOLVEDOR = "DESENVOLVEDOR"
    DESIGNER_GRAFICO = "DESIGNER_GRAFICO"
    DJ = "DJ"
    EDICAO_DE_VIDEO = "EDICAO_DE_VIDEO"
    ESTAGIARIO = "ESTAGIARIO"
    FOTOGRAFO = "FOTOGRAFO"
    INSIDE_SALES = "INSIDE_SALES"
    LIDER = "LIDER"
    LIDER_DE_CONFRONTO = "LIDER_DE_CONFRONTO"
    LIDER_DE_MASTERCLASS = "LIDER_DE_MASTERCLASS"
    LIDER_DE_EVENTOS = "LIDER_DE_EVENTOS"
    LOGISTICA = "LOGISTICA"
    PALESTRANTE = "PALESTRANTE"
    RELACIONAMENTO_COM_CLIENTES = "RELACIONAMENTO_COM_CLIENTES"
    SOCIAL_MEDIA = "SOCIAL_MEDIA"
    SOCIAL_SELLING = "SOCIAL_SELLING"
    STAFF = "STAFF"
    TRAFEGO_DIGITAL = "TRAFEGO_DIGITAL"
    TUTOR_MISSAO = "TUTOR_MISSAO"
    VENDEDOR = "VENDEDOR"
    WEB_DESIGNER = "WEB_DESIGNER"


class Provider(str, Enum):
    CREDENTIALS = "credentials"
    GOOGLE = "google"


DEFAULT_SECTOR = Sector.CUIDADO_DE_ALUNOS
DEFAULT_FUNCTIONS: tuple[Function, ...] = (Function.COLABORADOR,)

LEAD_FUNCTIONS: frozenset[Function] = frozenset(
    {
        Function.LIDER,
        Function.LIDER_DE_EVENTOS,
        Function.LIDER_DE_MASTERCLASS,
        Function.LIDER_DE_CONFRONTO,
    }
)


def normalize_email(email: str | None) -> str:
    """Trim and lower-case an email address for storage and comparison."""
    return (email or "").strip().lower()


def display_name(given_name: str, family_name: str) -> str:
    return f"{given_name} {family_name}".strip()


@dataclass
class Identity:
    """A registered staff member.

    secret_hash is a bcrypt hash of the effective secret: the chosen password
    for credential users, the provider subject id for Google users.

    functions is never empty. The store and service both fall back to
    DEFAULT_FUNCTIONS when a caller supplies none.

    deleted_at marks a soft-deleted record; such rows are invisible to every
    lookup and to the email uniqueness check.
    """

    given_name: str
    family_name: str
    email: str
    secret_hash: str
    phone: str = ""
    sector: Sector = DEFAULT_SECTOR
    functions: list[Function] = field(default_factory=lambda: list(DEFAULT_FUNCTIONS))
    photo_url: str | None = None
    id: int | None = None
    display_name: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.display_name:
            self.display_name = display_name(self.given_name, self.family_name)
        if not self.functions:
            self.functions = list(DEFAULT_FUNCTIONS)

    @property
    def is_admin(self) -> bool:
        return Function.ADMINISTRADOR in self.functions


@dataclass
class RecoveryToken:
    """Single-use, time-limited grant to reset a secret without the old one.

    Rows are never updated: they are deleted on redemption or left to expire.
    Several live tokens may coexist for one identity.
    """

    identity_id: int
    token: str
    expires_at: datetime
    id: int | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class SessionClaim:
    """Decoded payload of a signed session token."""

    subject_id: int
    email: str
    display_name: str
    issued_at: datetime
    expires_at: datetime
