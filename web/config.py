"""
Web service configuration.

Loaded from RUTHLESS_-prefixed environment variables (or a .env file) with
pydantic validation. Only the web layer reads settings; the engine, gateway
and analyzer take explicit constructor arguments.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # External engine binary; auto-discovered when unset.
    engine_path: Optional[str] = None

    # Analysis depths
    batch_depth: int = 15
    live_depth: int = 12

    # Built-in opponent
    search_depth: int = 3

    # Gateway timing
    time_limit_ms: int = 2000
    init_timeout: float = 10.0
    timeout_margin: float = 2.0
    drain_timeout: float = 2.0

    log_level: str = "INFO"

    model_config = {"env_prefix": "RUTHLESS_", "env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache()
def get_settings() -> Settings:
    return Settings()
