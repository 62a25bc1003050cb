from __future__ import annotations

import functools
import os

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    api_key: str = ""

    anthropic_api_key: str = ""
    model_name: str = "claude-sonnet-4-5"
    max_tokens: int = 3000
    langsmith_api_key: str = ""
    langsmith_tracing: bool = True
    langsmith_project: str = "career-guidance-verifier"

    cors_origins: str = "http://localhost:3000"

    # Guarded invocation of the external generator. The timeout must stay
    # below the caller's own end-to-end deadline.
    guarded_timeout_seconds: float = Field(default=10.0, gt=0)
    cancel_on_timeout: bool = False

    processing_target_ms: int = 2000

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@functools.lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance. Reads .env from the repo root if present."""
    env_file = os.path.join(os.path.dirname(__file__), "..", ".env")
    if os.path.isfile(env_file):
        return Settings(_env_file=env_file)
    return Settings()
