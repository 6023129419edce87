"""Application configuration loaded from the environment."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """withy settings.

    Every field can be set with a ``WITHY_`` prefixed environment variable
    (``WITHY_OUTPUT_FORMAT=mermaid``) or in a ``.env`` file.
    """

    model_config = SettingsConfigDict(env_prefix="WITHY_", env_file=".env", extra="ignore")

    # CLI
    output_format: str = "json"
    log_level: str = "WARNING"

    # API server
    api_host: str = "127.0.0.1"
    api_port: int = 8000
    cors_origins: str = "*"

    @property
    def cors_origin_list(self) -> list[str]:
        """CORS origins as a list (the env value is comma-separated)."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
