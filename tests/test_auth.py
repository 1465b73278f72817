"""
Tests for import authorization, the user boundary and configuration.
"""

from datetime import timezone
from unittest.mock import patch

import pytest

from task_activity.auth import (
    CurrentUser,
    ImportAuthError,
    ImportConfigError,
    get_current_user,
    verify_import_token,
)
from task_activity.config import get_reference_timezone, validate_import_config
from task_activity.hashing import hash_name


class TestConfig:
    """Tests for configuration validation."""

    def test_validate_import_config_missing_secret(self):
        """Should raise error when the secret is missing."""
        with patch("task_activity.config.IMPORT_API_SECRET", ""):
            with pytest.raises(ValueError, match="IMPORT_API_SECRET"):
                validate_import_config()

    def test_validate_import_config_placeholder(self):
        """Should reject the placeholder value from .env.example."""
        with patch("task_activity.config.IMPORT_API_SECRET", "your_secret_here"):
            with pytest.raises(ValueError):
                validate_import_config()

    def test_validate_import_config_ok(self):
        """A real secret passes."""
        with patch("task_activity.config.IMPORT_API_SECRET", "s3cret"):
            validate_import_config()

    def test_utc_timezone(self):
        assert get_reference_timezone("UTC") is timezone.utc
        assert get_reference_timezone("") is timezone.utc

    def test_default_timezone_from_config(self):
        with patch("task_activity.config.DASHBOARD_TIMEZONE", "UTC"):
            assert get_reference_timezone() is timezone.utc

    def test_unknown_timezone(self):
        with pytest.raises(ValueError, match="Unknown timezone"):
            get_reference_timezone("Mars/Olympus_Mons")


class TestVerifyImportToken:
    """Tests for bearer token checks."""

    def test_valid_token(self):
        verify_import_token("Bearer s3cret", "s3cret")

    def test_scheme_is_case_insensitive(self):
        verify_import_token("bearer s3cret", "s3cret")

    def test_no_secret_fails_closed(self):
        """Without a configured secret, even a request with a token is refused."""
        with pytest.raises(ImportConfigError):
            verify_import_token("Bearer anything", None)
        with pytest.raises(ImportConfigError):
            verify_import_token(None, "")

    def test_missing_header(self):
        with pytest.raises(ImportAuthError, match="Missing"):
            verify_import_token(None, "s3cret")

    def test_wrong_scheme(self):
        with pytest.raises(ImportAuthError, match="bearer"):
            verify_import_token("Basic czNjcmV0", "s3cret")

    def test_empty_token(self):
        with pytest.raises(ImportAuthError):
            verify_import_token("Bearer ", "s3cret")

    def test_wrong_token(self):
        with pytest.raises(ImportAuthError, match="Invalid"):
            verify_import_token("Bearer guess", "s3cret")


class TestCurrentUser:
    """Tests for reading the signed-in user from proxy headers."""

    def test_no_identity_headers(self):
        assert get_current_user({}) is None

    def test_full_identity(self):
        user = get_current_user({
            "x-forwarded-user": "12345",
            "x-forwarded-email": "ada@example.com",
            "x-forwarded-preferred-username": "Ada",
            "x-forwarded-avatar": "https://example.com/ada.png",
        })

        assert user == CurrentUser(
            name="Ada",
            email="ada@example.com",
            image="https://example.com/ada.png",
        )

    def test_name_falls_back_to_email(self):
        user = get_current_user({"x-forwarded-email": "ada@example.com"})

        assert user.name == "ada@example.com"
        assert user.image is None

    def test_to_dict(self):
        user = CurrentUser(name="Ada", email="ada@example.com", image=None)
        assert user.to_dict() == {"name": "Ada", "email": "ada@example.com", "image": None}


class TestHashName:
    """Tests for name pseudonymization."""

    def test_known_digest(self):
        assert hash_name("abc") == (
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )

    def test_deterministic(self):
        assert hash_name("Buy milk") == hash_name("Buy milk")

    def test_invalid_input_returns_none(self):
        assert hash_name("") is None
        assert hash_name(None) is None
        assert hash_name(42) is None

    def test_unencodable_string_returns_none(self):
        assert hash_name("\ud800") is None
