"""Application configuration — reads from environment variables and Docker Swarm secrets."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


def _read_secret(name: str) -> str | None:
    """Read a Docker Swarm secret from /run/secrets/."""
    secret_path = Path(f"/run/secrets/{name}")
    if secret_path.exists():
        return secret_path.read_text().strip()
    return None


class Settings(BaseSettings):
    """Application settings with env var and secret support.

    A single instance is built at process start and handed to every service,
    so tests can construct their own with fakes and zero delays.
    """

    supabase_url: str = ""
    supabase_key: str = ""  # service role
    supabase_anon_key: str = ""
    storage_bucket: str = "generated-images"

    ai_gateway_url: str = "https://ai.gateway.lovable.dev"
    ai_gateway_key: str = ""
    gateway_timeout_seconds: float = 120.0

    text_model: str = "google/gemini-2.5-flash"
    analysis_model: str = "google/gemini-2.5-pro"
    image_model_cheap: str = "google/gemini-2.5-flash-image"
    image_model_high: str = "google/gemini-3-pro-image-preview"

    enable_bg_overlay: bool = True
    variation_delay_seconds: float = 0.5
    rate_limit_backoff_seconds: float = 2.0

    port: int = 8400
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Override with Docker Swarm secrets if available
        if secret := _read_secret("supabase_url"):
            self.supabase_url = secret
        if secret := _read_secret("supabase_key"):
            self.supabase_key = secret
        if secret := _read_secret("supabase_anon_key"):
            self.supabase_anon_key = secret
        if secret := _read_secret("ai_gateway_key"):
            self.ai_gateway_key = secret


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
