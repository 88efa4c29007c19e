"""
Process-wide server settings, read from CATCH5_* environment variables or .env.
"""

import logging
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CATCH5_", env_file=".env", extra="ignore")

    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    reload: bool = False
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    # Stats persistence, e.g. sqlite+aiosqlite:///catch5.db (in memory when unset)
    database_url: Optional[str] = None

    # Turn scheduling (seconds)
    turn_timeout: float = 20.0
    turn_timeout_buffer: float = 1.5
    cpu_delay: float = 1.2
    cpu_jitter: float = 0.3
    trick_pause: float = 2.5

    # Room and connection lifetimes (seconds)
    lobby_grace_period: float = 30.0
    disconnect_grace_period: float = 30.0
    room_idle_expiry: float = 3600.0
    connection_idle_timeout: float = 90.0
    ws_ping_interval: float = 20.0
    ws_ping_timeout: float = 20.0

    chat_history_limit: int = 50
    chat_max_length: int = 200

    auto_claim: bool = False

    def log_status(self) -> None:
        logger.info(
            f"Settings: host={self.host} port={self.port} log_level={self.log_level} "
            f"stats={'sql' if self.database_url else 'memory'} turn_timeout={self.turn_timeout}s "
            f"auto_claim={self.auto_claim}"
        )


@lru_cache()
def get_settings() -> Settings:
    settings = Settings()
    settings.log_status()
    return settings
