"""
Dial-by-Name Directory - Configuration Management

Centralized configuration using Pydantic Settings.
All secrets and environment-specific values are loaded from environment variables.
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Hierarchy (highest to lowest priority):
    1. Environment variables
    2. .env file
    3. Default values

    Settings are frozen once constructed and passed explicitly to every
    component that needs them.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # --- Application ---
    app_env: str = "development"
    app_debug: bool = True
    app_log_level: str = "INFO"
    log_json_format: bool = False

    # --- Server ---
    backend_host: str = "0.0.0.0"
    backend_port: int = 8000
    backend_workers: int = 1

    # --- Directory API (NetSapiens ns-api v2) ---
    ns_api_host: str = "api.netsapiens.com"
    ns_api_key: str = ""
    api_page_limit: int = 1000     # API maximum is 1000 per request
    api_max_pages: int = 100       # Safety ceiling: 100 pages * 1000 = 100,000 users
    api_timeout_seconds: float = 30.0

    # --- Result Cache ---
    cache_enabled: bool = True
    cache_dir: str = "/tmp/dial_by_name_cache"
    cache_ttl_seconds: int = 300
    cache_purge_chance: int = 100  # 1 in N chance to purge expired files; 0 disables

    # --- Voice / Prompt Defaults ---
    default_language: str = "en-US"
    default_voice: str = "female"
    default_max_digits: int = 4
    default_max_results: int = 8
    default_mode: str = "lastname"  # lastname, firstname, both

    # --- Exit / Operator Behaviour ---
    operator_extension: str = ""   # Pressing 0 at the main prompt transfers here
    exit_url: str = ""             # Forward here when * is pressed at the main prompt
    exit_action: str = "forward"   # forward, hangup, restart

    # --- Call Sessions ---
    # "memory" = in-process store (single worker, tests)
    # "redis" = shared store for multi-worker deployments
    session_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    session_ttl_seconds: int = 3600
    max_sessions: int = 1000

    @field_validator("api_page_limit")
    @classmethod
    def _cap_page_limit(cls, value: int) -> int:
        return max(1, min(value, 1000))

    @field_validator("max_sessions")
    @classmethod
    def _min_one_session(cls, value: int) -> int:
        return max(1, value)

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance.

    Built once per process and handed to create_app(); components receive
    it through their constructors rather than importing it.
    """
    return Settings()
