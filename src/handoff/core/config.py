"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Handoff application settings."""

    # App
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"
    log_format: str = "text"  # "text" or "json"

    # Storage
    storage_backend: str = "file"  # "memory", "file" or "redis"
    storage_path: str = "data/handoff.json"
    storage_key: str = "fulfillments"

    # Redis (storage_backend="redis")
    redis_url: str = "redis://localhost:6379/0"

    # Checkpoint attempts (drop-off + collect) per client per minute
    rate_limit_checkpoint: int = 20
    # Collection attempts per fulfillment per minute, across all clients
    rate_limit_collect_per_fulfillment: int = 5
    # Key clients on X-Forwarded-For; only behind a proxy that overwrites it
    trust_proxy_headers: bool = False

    # Administrative override for the drop-off / collect shortcut buttons
    allow_unchecked_advance: bool = True

    # CORS
    cors_origins: str = "*"  # Comma-separated origins; "*" for dev only

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_testing(self) -> bool:
        return self.app_env == "testing"

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


def get_settings() -> Settings:
    """Return a settings instance built from the current environment."""
    return Settings()
