"""Runtime configuration — env-driven via pydantic-settings.

Reads from a .env file and EKAMDASH_* environment variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class DashConfig(BaseSettings):
    """Dashboard client configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export EKAMDASH_PORT=41315
        export EKAMDASH_LOG_LEVEL=DEBUG
        export EKAMDASH_PROJECT_ROOT=$HOME/code/myproject

    Or via .env file::

        EKAMDASH_HOST=buildbox.local
        EKAMDASH_RECONNECT_DELAY_SECONDS=5
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="EKAMDASH_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Build tool endpoint
    host: str = "localhost"
    port: int = 41315

    # Stream reader timing
    reconnect_delay_seconds: float = 10.0
    coalesce_delay_seconds: float = 0.1
    max_record_bytes: int = 16 * 1024 * 1024

    # File resolution
    project_root: Path = Path(".")
    extra_roots: list[Path] = []

    # Observability
    log_level: str = "INFO"

    @property
    def address(self) -> tuple[str, int]:
        """``(host, port)`` of the build tool's dashboard socket."""
        return (self.host, self.port)


# Module-level singleton — import as `from ekamdash.config import config`
config = DashConfig()
