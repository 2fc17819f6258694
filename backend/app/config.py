"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - Every tunable comes from environment variables or .env (never hardcoded at call sites)
    - get_settings() is cached (lru_cache): single instance per process
    - Stack traces are exposed only when NODE_ENV is exactly "development"

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - NODE_ENV defaults to "production": development mode must be opted into explicitly
    - DATABASE_URL is optional and only presence-checked (no persistence layer yet)
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

DEVELOPMENT = "development"


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Runtime
    node_env: str = "production"
    host: str = "0.0.0.0"
    port: int = 5001

    # Database (presence-checked only)
    database_url: str | None = None

    # API
    cors_origins: list[str] = ["http://localhost:3000"]
    json_body_limit_bytes: int = 102_400

    # Lifecycle
    shutdown_timeout_seconds: float = 30.0

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def is_development(self) -> bool:
        return self.node_env == DEVELOPMENT


@lru_cache
def get_settings() -> Settings:
    return Settings()
