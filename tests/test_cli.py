"""
Tests for the operator CLI in main.py.
"""

import json

import pytest

import main as cli
from auth.cipher import get_cipher
from auth.models import Function, Sector
from auth.store import IdentityStore
from core.config import get_settings


@pytest.fixture
def cli_db(tmp_path, monkeypatch) -> str:
    db_url = f"sqlite:///{tmp_path / 'cli.db'}"
    settings = get_settings().model_copy(update={"database_url": db_url, "smtp_host": ""})
    monkeypatch.setattr(cli, "get_settings", lambda: settings)
    return db_url


class TestCreateAdmin:
    def test_creates_administrator(self, cli_db, capsys):
        rc = cli.main(
            [
                "create-admin",
                "--email",
                "Root@Example.com",
                "--password",
                "S3nha!forte",
                "--given-name",
                "Root",
                "--family-name",
                "Admin",
            ]
        )
        assert rc == 0
        assert "Administrator created" in capsys.readouterr().out

        store = IdentityStore(cli_db)
        try:
            admin = store.get_by_email("root@example.com")
            assert admin.functions == [Function.ADMINISTRADOR]
            assert admin.sector is Sector.ADMINISTRADOR
        finally:
            store.close()

    def test_weak_password_fails(self, cli_db, capsys):
        rc = cli.main(
            ["create-admin", "--email", "a@example.com", "--password", "weak", "--given-name", "A", "--family-name", "B"]
        )
        assert rc == 1
        assert "[!]" in capsys.readouterr().out


class TestCipherCommands:
    def test_encrypt_output_decrypts(self, capsys):
        assert cli.main(["encrypt", '{"email": "ana@example.com"}']) == 0
        blob = capsys.readouterr().out.strip()
        assert get_cipher().decrypt_object(blob) == {"email": "ana@example.com"}

    def test_decrypt(self, capsys):
        blob = get_cipher().encrypt_object({"senha": "S3nha!forte"})
        assert cli.main(["decrypt", blob]) == 0
        assert json.loads(capsys.readouterr().out) == {"senha": "S3nha!forte"}

    def test_encrypt_rejects_bad_json(self, capsys):
        assert cli.main(["encrypt", "{not json"]) == 1

    def test_decrypt_rejects_garbage(self, capsys):
        assert cli.main(["decrypt", "garbage"]) == 1


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 0
    assert "create-admin" in capsys.readouterr().out
