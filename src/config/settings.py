"""
Street Legacy - Client Settings

Loads configuration from environment variables using Pydantic Settings.
Every tunable of the connection manager and the offline queue lives here
so a session can be built from the environment alone.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Client settings loaded from environment variables."""

    # Game API
    api_url: str = "http://localhost:3001"
    request_timeout: float = 15.0

    # Supabase (optional auth collaborator)
    supabase_url: str | None = None
    supabase_anon_key: str | None = None

    # Application
    debug: bool = False
    log_level: str = "INFO"

    # Heartbeat
    heartbeat_interval: float = Field(default=25.0, gt=0)
    heartbeat_timeout: float = Field(default=5.0, gt=0)

    # Reconnection
    reconnect_initial_delay: float = Field(default=1.0, gt=0)
    reconnect_max_delay: float = Field(default=30.0, gt=0)
    reconnect_multiplier: float = Field(default=1.5, ge=1.0)
    reconnect_max_attempts: int = Field(default=10, ge=0)

    # Offline queue
    queue_max_age: float = Field(default=24 * 60 * 60, gt=0)
    sync_max_attempts: int = Field(default=3, ge=1)
    cleanup_delay: float = Field(default=5.0, ge=0)

    # Local persistence; None keeps everything in memory
    storage_path: str | None = None

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def ws_url(self) -> str:
        """WebSocket endpoint derived from the HTTP origin."""
        if self.api_url.startswith("http"):
            return "ws" + self.api_url[len("http"):]
        return self.api_url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached singleton settings instance."""
    return Settings()
