"""Settings — environment loading and defaults.

Tests cover:
    - defaults: production, port 5001, localhost:3000 CORS origin, 30s shutdown bound
    - NODE_ENV / PORT / DATABASE_URL / CORS_ORIGINS read from the environment
    - is_development only for exactly "development"
"""

from app.config import Settings


def test_defaults(monkeypatch):
    for name in ("NODE_ENV", "PORT", "DATABASE_URL", "CORS_ORIGINS"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings(_env_file=None)
    assert settings.node_env == "production"
    assert settings.port == 5001
    assert settings.database_url is None
    assert settings.cors_origins == ["http://localhost:3000"]
    assert settings.shutdown_timeout_seconds == 30.0
    assert settings.is_development is False


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("NODE_ENV", "development")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("DATABASE_URL", "postgresql://db/app")
    monkeypatch.setenv("CORS_ORIGINS", '["https://app.example"]')
    settings = Settings(_env_file=None)
    assert settings.is_development is True
    assert settings.port == 8080
    assert settings.database_url == "postgresql://db/app"
    assert settings.cors_origins == ["https://app.example"]


def test_development_match_is_exact():
    assert Settings(_env_file=None, node_env="Development").is_development is False
