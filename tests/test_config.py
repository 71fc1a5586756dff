"""Tests for environment-driven settings."""

import pytest

from authcore.config import AuthSettings
from authcore.errors import FatalError

SECRET = "s" * 32


def test_defaults():
    settings = AuthSettings.from_env({"AUTH_HMAC_SECRET": SECRET})

    assert settings.session_ttl_seconds == 86400
    assert settings.token_ttl_seconds == 86400
    assert settings.reset_token_ttl_seconds == 86400
    assert settings.hash_scheme == "pbkdf2_sha512"
    assert settings.hash_iterations == 10000
    assert settings.hash_digest_length == 64
    assert settings.cookie_name == "session-id"
    assert settings.cookie_secure_mode is False


def test_overrides():
    settings = AuthSettings.from_env(
        {
            "AUTH_HMAC_SECRET": SECRET,
            "AUTH_SESSION_TTL_SECONDS": "3600",
            "AUTH_TOKEN_TTL_SECONDS": "7200",
            "AUTH_HASH_SCHEME": "ARGON2ID",
            "AUTH_HASH_ITERATIONS": "3",
            "APP_ENV": "Production",
            "DATABASE_URL": "postgresql://db/auth",
        }
    )

    assert settings.session_ttl_seconds == 3600
    assert settings.reset_token_ttl_seconds == 7200
    assert settings.hash_scheme == "argon2id"
    assert settings.hash_iterations == 3
    assert settings.cookie_secure_mode is True
    assert settings.database_url == "postgresql://db/auth"


@pytest.mark.parametrize("secret", [None, "", "short"])
def test_missing_or_short_secret_is_fatal(secret):
    env = {} if secret is None else {"AUTH_HMAC_SECRET": secret}
    with pytest.raises(FatalError):
        AuthSettings.from_env(env)


def test_malformed_integer_is_fatal():
    with pytest.raises(FatalError):
        AuthSettings.from_env({"AUTH_HMAC_SECRET": SECRET, "AUTH_HASH_ITERATIONS": "many"})


def test_non_positive_ttl_is_fatal():
    with pytest.raises(FatalError):
        AuthSettings.from_env({"AUTH_HMAC_SECRET": SECRET, "AUTH_SESSION_TTL_SECONDS": "0"})


def test_settings_are_immutable():
    settings = AuthSettings.from_env({"AUTH_HMAC_SECRET": SECRET})
    with pytest.raises(AttributeError):
        settings.hmac_secret = "other"
