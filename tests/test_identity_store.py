"""
Tests for auth/store.py -- SQLAlchemy persistence for identities and recovery tokens.
"""

from datetime import datetime, timedelta, timezone

import pytest

from auth.errors import DuplicateEmailError
from auth.models import Function, Identity, RecoveryToken, Sector
from auth.store import IdentityStore


def _identity(email: str = "ana@example.com", **overrides) -> Identity:
    fields = dict(
        given_name="Ana",
        family_name="Souza",
        email=email,
        secret_hash="$2b$12$placeholderplaceholderplaceholderplaceholderplacehol",
    )
    fields.update(overrides)
    return Identity(**fields)


def _token(identity_id: int, token: str = "tok-1", minutes: int = 30) -> RecoveryToken:
    now = datetime.now(timezone.utc)
    return RecoveryToken(identity_id=identity_id, token=token, created_at=now, expires_at=now + timedelta(minutes=minutes))


class TestIdentityCrud:
    def test_create_and_get_by_id(self, store: IdentityStore):
        new_id = store.create_identity(_identity(functions=[Function.LIDER, Function.DJ], sector=Sector.EVENTOS))
        got = store.get_by_id(new_id)
        assert got is not None
        assert got.id == new_id
        assert got.display_name == "Ana Souza"
        assert got.functions == [Function.LIDER, Function.DJ]
        assert got.sector is Sector.EVENTOS
        assert got.created_at is not None
        assert got.deleted_at is None

    def test_defaults_applied(self, store: IdentityStore):
        got = store.get_by_id(store.create_identity(_identity()))
        assert got.sector is Sector.CUIDADO_DE_ALUNOS
        assert got.functions == [Function.COLABORADOR]
        assert got.phone == ""

    def test_email_normalized_on_write(self, store: IdentityStore):
        got = store.get_by_id(store.create_identity(_identity(email="  Ana@Example.COM ")))
        assert got.email == "ana@example.com"

    def test_get_by_email_is_case_and_space_insensitive(self, store: IdentityStore):
        new_id = store.create_identity(_identity())
        assert store.get_by_email(" ANA@example.com ").id == new_id

    def test_get_missing(self, store: IdentityStore):
        assert store.get_by_id(999) is None
        assert store.get_by_email("nobody@example.com") is None
        assert store.get_by_email("") is None

    def test_list_ordered_by_display_name(self, store: IdentityStore):
        store.create_identity(_identity("z@example.com", given_name="Zeca"))
        store.create_identity(_identity("b@example.com", given_name="Bia"))
        names = [i.given_name for i in store.list_identities()]
        assert names == ["Bia", "Zeca"]


class TestEmailUniqueness:
    def test_duplicate_email_raises(self, store: IdentityStore):
        store.create_identity(_identity())
        with pytest.raises(DuplicateEmailError):
            store.create_identity(_identity(email="ANA@example.com"))

    def test_email_taken(self, store: IdentityStore):
        new_id = store.create_identity(_identity())
        assert store.email_taken("Ana@Example.com")
        assert not store.email_taken("ana@example.com", exclude_id=new_id)
        assert not store.email_taken("other@example.com")

    def test_soft_deleted_email_can_be_reused(self, store: IdentityStore):
        old_id = store.create_identity(_identity())
        assert store.soft_delete(old_id)
        assert store.get_by_id(old_id) is None
        assert not store.email_taken("ana@example.com")
        new_id = store.create_identity(_identity())
        assert new_id != old_id
        assert store.get_by_email("ana@example.com").id == new_id

    def test_soft_delete_twice(self, store: IdentityStore):
        new_id = store.create_identity(_identity())
        assert store.soft_delete(new_id)
        assert not store.soft_delete(new_id)

    def test_update_to_taken_email_raises(self, store: IdentityStore):
        store.create_identity(_identity("a@example.com"))
        other = store.create_identity(_identity("b@example.com"))
        with pytest.raises(DuplicateEmailError):
            store.update_identity(other, email="A@example.com")


class TestUpdates:
    def test_update_fields(self, store: IdentityStore):
        new_id = store.create_identity(_identity())
        assert store.update_identity(
            new_id, given_name="Bia", sector=Sector.FINANCEIRO, functions=[Function.ADVOGADO]
        )
        got = store.get_by_id(new_id)
        assert got.given_name == "Bia"
        assert got.sector is Sector.FINANCEIRO
        assert got.functions == [Function.ADVOGADO]

    def test_unknown_field_rejected(self, store: IdentityStore):
        new_id = store.create_identity(_identity())
        with pytest.raises(ValueError):
            store.update_identity(new_id, secret_hash="nope")

    def test_update_missing_returns_false(self, store: IdentityStore):
        assert store.update_identity(404, given_name="X") is False

    def test_set_secret_hash(self, store: IdentityStore):
        new_id = store.create_identity(_identity())
        store.set_secret_hash(new_id, "new-hash")
        assert store.get_by_id(new_id).secret_hash == "new-hash"


class TestRecoveryTokens:
    def test_create_and_get(self, store: IdentityStore):
        identity_id = store.create_identity(_identity())
        token_id = store.create_recovery_token(_token(identity_id))
        got = store.get_recovery_token("tok-1")
        assert got.id == token_id
        assert got.identity_id == identity_id
        assert got.expires_at > got.created_at

    def test_get_unknown(self, store: IdentityStore):
        assert store.get_recovery_token("nope") is None

    def test_delete(self, store: IdentityStore):
        identity_id = store.create_identity(_identity())
        token_id = store.create_recovery_token(_token(identity_id))
        assert store.delete_recovery_token(token_id)
        assert store.get_recovery_token("tok-1") is None
        assert not store.delete_recovery_token(token_id)

    def test_redeem_sets_hash_and_consumes(self, store: IdentityStore):
        identity_id = store.create_identity(_identity())
        token_id = store.create_recovery_token(_token(identity_id))
        assert store.redeem_recovery_token(token_id, identity_id, "fresh-hash")
        assert store.get_by_id(identity_id).secret_hash == "fresh-hash"
        assert store.get_recovery_token("tok-1") is None

    def test_second_redeem_changes_nothing(self, store: IdentityStore):
        identity_id = store.create_identity(_identity())
        token_id = store.create_recovery_token(_token(identity_id))
        store.redeem_recovery_token(token_id, identity_id, "first")
        assert not store.redeem_recovery_token(token_id, identity_id, "second")
        assert store.get_by_id(identity_id).secret_hash == "first"

    def test_several_live_tokens_per_identity(self, store: IdentityStore):
        identity_id = store.create_identity(_identity())
        store.create_recovery_token(_token(identity_id, "a"))
        store.create_recovery_token(_token(identity_id, "b"))
        assert store.get_recovery_token("a") is not None
        assert store.get_recovery_token("b") is not None
