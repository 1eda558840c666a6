"""Tests for application configuration."""
import pytest
from pydantic import ValidationError

from core.config import SecurityOptions, Settings, get_connection_string
from services.exceptions import ConfigurationError


class TestConnectionStrings:
    """Tests for per-context connection string lookup."""

    @pytest.fixture(autouse=True)
    def _clear_context_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Nested env values are merged into db_contexts, so drop the test defaults."""
        monkeypatch.delenv("DB_CONTEXTS__HITSCONTEXT", raising=False)
        monkeypatch.delenv("DB_CONTEXTS__APPUSERROLESCONTEXT", raising=False)

    def test__get_connection_string__matches_case_insensitively(self) -> None:
        settings = Settings(
            _env_file=None,
            db_contexts={"HitsContext": "sqlite+aiosqlite:///hits.db"},
        )
        assert get_connection_string(settings, "hitscontext") == "sqlite+aiosqlite:///hits.db"
        assert get_connection_string(settings, "HITSCONTEXT") == "sqlite+aiosqlite:///hits.db"

    def test__get_connection_string__missing_raises(self) -> None:
        settings = Settings(_env_file=None, db_contexts={})
        with pytest.raises(ConfigurationError, match="HitsContext not defined"):
            get_connection_string(settings, "HitsContext")

    def test__get_connection_string__empty_value_raises(self) -> None:
        settings = Settings(_env_file=None, db_contexts={"HitsContext": ""})
        with pytest.raises(ConfigurationError):
            get_connection_string(settings, "HitsContext")

    def test__db_contexts__loaded_from_nested_environment(
        self, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("DB_CONTEXTS__REPORTSCONTEXT", "postgresql+asyncpg://localhost/reports")
        settings = Settings(_env_file=None)
        assert get_connection_string(settings, "ReportsContext") == (
            "postgresql+asyncpg://localhost/reports"
        )


class TestSecurityOptions:
    """Tests for the nested security options."""

    def test__defaults(self) -> None:
        options = SecurityOptions()
        assert options.idp_user_name_claim == "preferred_username"
        assert options.table_prefix == ""
        assert options.refresh_interval == 3_600_000

    def test__loaded_from_nested_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SECURITY__IDP_USER_NAME_CLAIM", "upn")
        monkeypatch.setenv("SECURITY__REFRESH_INTERVAL", "5000")
        settings = Settings(_env_file=None)
        assert settings.security.idp_user_name_claim == "upn"
        assert settings.security.refresh_interval == 5000

    def test__refresh_interval_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            SecurityOptions(refresh_interval=0)


class TestFakeUserValidation:
    """FAKE_USER is only allowed against local databases."""

    def test__fake_user_with_local_databases_is_allowed(self) -> None:
        settings = Settings(
            _env_file=None,
            db_contexts={
                "HitsContext": "sqlite+aiosqlite:///:memory:",
                "AppUserRolesContext": "postgresql+asyncpg://user:pw@localhost:5432/roles",
            },
            FAKE_USER="Maria",
        )
        assert settings.fake_user == "Maria"

    def test__fake_user_with_remote_database_is_rejected(self) -> None:
        with pytest.raises(ValidationError, match="FAKE_USER cannot be enabled"):
            Settings(
                _env_file=None,
                db_contexts={"HitsContext": "postgresql+asyncpg://user:pw@db.example.com/hits"},
                FAKE_USER="Maria",
            )

    def test__remote_database_without_fake_user_is_allowed(self) -> None:
        settings = Settings(
            _env_file=None,
            db_contexts={"HitsContext": "postgresql+asyncpg://user:pw@db.example.com/hits"},
        )
        assert settings.fake_user is None


class TestCorsOriginsParsing:
    """Tests for CORS origins parsing from environment variables."""

    def test_parse_multiple_origins_comma_separated(self) -> None:
        """Multiple comma-separated origins are parsed correctly."""
        settings = Settings(
            _env_file=None,
            CORS_ORIGINS="  http://localhost:5173 , https://example.com,",
        )
        assert settings.cors_origins == [
            "http://localhost:5173",
            "https://example.com",
        ]

    def test_parse_empty_string(self) -> None:
        """Empty string results in empty list."""
        settings = Settings(_env_file=None, CORS_ORIGINS="")
        assert settings.cors_origins == []


def test__idp_urls_derived_from_domain() -> None:
    settings = Settings(_env_file=None, idp_domain="login.example.com")
    assert settings.idp_issuer == "https://login.example.com/"
    assert settings.idp_jwks_url == "https://login.example.com/.well-known/jwks.json"
