"""Controller configuration — env-driven.

Centralized config using pydantic-settings. Reads from a .env file and
HELMSOURCE_* environment variables. Per-object settings (URL, interval,
timeout) live on the HelmRepository spec, not here.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ControllerConfig(BaseSettings):
    """Process configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export HELMSOURCE_STORAGE_PATH=/data
        export HELMSOURCE_STORAGE_ADV_ADDR=source-controller.flux-system.svc
        export HELMSOURCE_INDEX_CACHE_MAX_SIZE=10

    Or via .env file::

        HELMSOURCE_LOG_LEVEL=DEBUG
        HELMSOURCE_REQUEUE_JITTER=0.05
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="HELMSOURCE_",
        env_file_encoding="utf-8",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False
    controller_name: str = "helmsource-controller"

    # Artifact storage
    storage_path: Path = Path(".helmsource/artifacts")
    storage_adv_addr: str = "localhost:9090"
    artifact_retention_ttl: float = 60.0        # seconds
    artifact_retention_records: int = 2
    gc_timeout_seconds: float = 5.0
    lock_timeout_seconds: float = 30.0

    # Index cache (0 disables caching)
    index_cache_max_size: int = 0
    index_cache_ttl_seconds: float = 900.0

    # Remote index
    max_index_size: int = 50 * 1024 * 1024

    # Scheduling
    requeue_jitter: float = Field(0.0, ge=0, lt=1)  # fraction of the interval, e.g. 0.05

    @property
    def cache_enabled(self) -> bool:
        return self.index_cache_max_size > 0


# Module-level singleton — import as `from helmsource.config import config`
config = ControllerConfig()
