"""
Tests for auth/password_policy.py -- ordered password strength rules.
"""

import pytest

from auth.errors import MissingSecretError, ValidationError, WeakSecretError
from auth.password_policy import SYMBOLS, validate


class TestAcceptedPasswords:
    @pytest.mark.parametrize(
        "password",
        [
            "Abcdef1!",  # exactly 8
            "Abcdefghijklm1!x",  # exactly 16
            "S3nha!forte",
        ],
    )
    def test_valid_password_passes(self, password):
        assert validate(password) is None

    @pytest.mark.parametrize("symbol", list(SYMBOLS))
    def test_every_listed_symbol_counts(self, symbol):
        validate(f"Abcdef1{symbol}")


class TestRejectedPasswords:
    @pytest.mark.parametrize("password", [None, ""])
    def test_missing_password(self, password):
        with pytest.raises(MissingSecretError) as exc_info:
            validate(password)
        assert exc_info.value.field == "password"

    def test_missing_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            validate(None)

    def test_too_short(self):
        with pytest.raises(WeakSecretError, match="at least 8"):
            validate("Ab1!xyz")

    def test_too_long(self):
        with pytest.raises(WeakSecretError, match="at most 16"):
            validate("Abcdefghijklmn1!x")

    def test_missing_lowercase(self):
        with pytest.raises(WeakSecretError, match="lowercase"):
            validate("ABCDEFG1!")

    def test_missing_uppercase(self):
        with pytest.raises(WeakSecretError, match="uppercase"):
            validate("abcdefg1!")

    def test_missing_digit(self):
        with pytest.raises(WeakSecretError, match="number"):
            validate("Abcdefgh!")

    def test_missing_symbol(self):
        with pytest.raises(WeakSecretError, match="special character"):
            validate("Abcdefgh1")

    def test_first_violation_wins(self):
        """A short all-lowercase password reports length before character classes."""
        with pytest.raises(WeakSecretError, match="at least 8"):
            validate("abc")

    def test_weak_secret_maps_to_400(self):
        with pytest.raises(WeakSecretError) as exc_info:
            validate("abcdefgh")
        assert exc_info.value.status_code == 400
        assert exc_info.value.code == "validation_error"
