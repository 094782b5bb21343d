"""
Application Configuration using Pydantic Settings

Loads configuration from environment variables with sensible defaults.
Command-line flags (see mysql_benchmark.cli) take precedence over these values.
"""

import os
import tempfile
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # ========================================================================
    # MySQL Connection Settings
    # ========================================================================
    MYSQL_HOST: Optional[str] = None
    MYSQL_PORT: Optional[int] = None
    MYSQL_SCHEMA: Optional[str] = None
    MYSQL_USER: Optional[str] = None
    MYSQL_PASSWORD: Optional[str] = None
    # Client option file; only handed to the driver when it exists.
    MYSQL_DEFAULTS_FILE: str = os.path.join(os.path.expanduser("~"), ".my.cnf")
    MYSQL_CONNECT_TIMEOUT: int = 10

    # ========================================================================
    # Run Settings
    # ========================================================================
    BENCHMARK_WORKERS: int = 1
    BENCHMARK_RUNTIME_SECONDS: float = 60.0
    FLUSH_INTERVAL_SECONDS: float = 60.0

    # Upper bound used when replicating weighted queries into a schedule.
    MAX_SCHEDULE_SIZE: int = 100
    SHUFFLE_SCHEDULE: bool = True
    SCHEDULE_SEED: Optional[int] = None

    # ========================================================================
    # Statistics Channel Settings
    # ========================================================================
    STATS_SOCKET_DIR: str = tempfile.gettempdir()
    STATS_MAX_PAYLOAD_BYTES: int = 4096
    STATS_SEND_TIMEOUT_SECONDS: float = 5.0
    STATS_SEND_RETRY_LIMIT: int = 5
    STATS_SEND_RETRY_BACKOFF_SECONDS: float = 1.0

    # ========================================================================
    # Supervisor / Worker Settings
    # ========================================================================
    # Longest time the controller blocks on the channel before re-checking
    # runtime and stop requests.
    SUPERVISOR_TICK_SECONDS: float = 0.5
    # How long an aborted start waits for already-spawned workers to exit.
    WORKER_ABORT_WAIT_SECONDS: float = 10.0
    RECONNECT_DELAY_SECONDS: float = 1.0

    # ========================================================================
    # Logging Settings
    # ========================================================================
    LOG_LEVEL: str = "WARNING"
    LOG_FORMAT: str = (
        "%(asctime)s %(levelname)s %(name)s[%(process)d/%(worker_id)s]: "
        "(%(funcName)s:%(lineno)d) %(message)s"
    )

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _normalize_log_level(cls, v):
        return str(v or "WARNING").strip().upper()


# Create global settings instance
settings = Settings()
