"""
Unit tests for mediahub.config: Settings validation and derived properties.
"""
import logging

import pytest
from pydantic import ValidationError

from mediahub.config import Settings


def _make_settings(**overrides):
    """Create a Settings instance with required fields filled in.

    Uses _env_file=None to prevent pydantic-settings from reading the
    real .env file, ensuring test isolation.
    """
    defaults = {
        "SUPABASE_URL": "https://fake.supabase.co",
        "SUPABASE_SERVICE_ROLE_KEY": "fake-key",
        "DATABASE_URL": "postgresql://localhost/test",
        "TELEGRAM_BOT_TOKEN": "123:abc",
        "TELEGRAM_WEBHOOK_SECRET": "s3cret-s3cret-s3cret",
        "_env_file": None,
    }
    defaults.update(overrides)
    return Settings(**defaults)


# ------------------------------------------------------------------
# ENVIRONMENT normalisation
# ------------------------------------------------------------------

class TestEnvironmentNormalisation:
    def test_lowercase_passthrough(self):
        s = _make_settings(ENVIRONMENT="production")
        assert s.ENVIRONMENT == "production"

    def test_uppercase_normalised(self):
        s = _make_settings(ENVIRONMENT="PRODUCTION")
        assert s.ENVIRONMENT == "production"

    def test_whitespace_stripped(self):
        s = _make_settings(ENVIRONMENT="  Staging  ")
        assert s.ENVIRONMENT == "staging"

    def test_default_is_development(self, monkeypatch):
        monkeypatch.delenv("ENVIRONMENT", raising=False)
        s = _make_settings()
        assert s.ENVIRONMENT == "development"


# ------------------------------------------------------------------
# Required fields and defaults
# ------------------------------------------------------------------

class TestRequiredAndDefaults:
    def test_missing_bot_token_rejected(self, monkeypatch):
        monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
        with pytest.raises(ValidationError):
            Settings(
                SUPABASE_URL="https://fake.supabase.co",
                SUPABASE_SERVICE_ROLE_KEY="k",
                DATABASE_URL="postgresql://localhost/test",
                TELEGRAM_WEBHOOK_SECRET="s3cret-s3cret-s3cret",
                _env_file=None,
            )

    def test_retry_defaults(self):
        s = _make_settings()
        assert s.RETRY_MAX_ATTEMPTS == 3
        assert s.RETRY_INITIAL_DELAY == 1.0
        assert s.RETRY_MAX_DELAY == 5.0

    def test_queue_and_storage_defaults(self):
        s = _make_settings()
        assert s.QUEUE_BATCH_SIZE == 10
        assert s.STORAGE_BUCKET == "media"
        assert s.GLIDE_API_TOKEN == ""

    def test_short_secret_logs_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="mediahub.config"):
            _make_settings(TELEGRAM_WEBHOOK_SECRET="short")
        assert any("TELEGRAM_WEBHOOK_SECRET" in r.message for r in caplog.records)


# ------------------------------------------------------------------
# CORS origins parsing
# ------------------------------------------------------------------

class TestCorsOrigins:
    def test_default_origin(self):
        s = _make_settings()
        assert s.cors_origins_list == ["http://localhost:3000"]

    def test_custom_multiple_origins(self):
        s = _make_settings(CORS_ORIGINS="https://a.com, https://b.com, https://c.com")
        assert s.cors_origins_list == ["https://a.com", "https://b.com", "https://c.com"]

    def test_empty_entries_dropped(self):
        s = _make_settings(CORS_ORIGINS="https://a.com,, ,https://b.com")
        assert s.cors_origins_list == ["https://a.com", "https://b.com"]


# ------------------------------------------------------------------
# Webhook helpers
# ------------------------------------------------------------------

class TestWebhookHelpers:
    def test_verify_matching_secret(self):
        s = _make_settings()
        assert s.verify_webhook_secret("s3cret-s3cret-s3cret") is True

    def test_verify_wrong_secret(self):
        s = _make_settings()
        assert s.verify_webhook_secret("nope") is False

    def test_verify_missing_secret(self):
        s = _make_settings()
        assert s.verify_webhook_secret(None) is False
        assert s.verify_webhook_secret("") is False

    def test_webhook_url_requires_base(self):
        assert _make_settings().webhook_url is None

    def test_webhook_url_strips_trailing_slash(self):
        s = _make_settings(PUBLIC_BASE_URL="https://hub.example.com/")
        assert s.webhook_url == "https://hub.example.com/api/telegram/webhook"
