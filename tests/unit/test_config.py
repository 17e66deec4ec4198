"""Tests for environment-driven settings."""

from decimal import Decimal

from marketplace.config import Settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ("DATABASE_URL", "PANEL_AUTH_SECRET", "PANEL_URL", "SMTP_HOST"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        assert settings.database_url == "sqlite:///./marketplace.db"
        assert settings.invitation_ttl_days == 7
        assert settings.invitation_share_percentage == Decimal("50.00")
        assert settings.credit_grant_min == Decimal("0.01")
        assert settings.credit_grant_max == Decimal("10000")
        assert settings.page_size == 50
        assert settings.statistics_window_days == 30
        assert settings.locale == "en_US"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("INVITATION_TTL_DAYS", "14")
        monkeypatch.setenv("CREDIT_GRANT_MAX", "500")
        monkeypatch.setenv("SMTP_PORT", "2525")

        settings = Settings(_env_file=None)

        assert settings.invitation_ttl_days == 14
        assert settings.credit_grant_max == Decimal("500")
        assert settings.smtp_port == 2525
