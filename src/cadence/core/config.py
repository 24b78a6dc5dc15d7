"""Cadence configuration — reads from cadence.toml, env vars, and CLI args."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Dict, Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

# Handle tomli import for Python < 3.11 compatibility
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


class DatabaseConfig(BaseModel):
    """Connection pool sizing and timeouts (seconds).

    ``max_connections``, ``create_timeout``, ``wait_timeout`` and
    ``recycle_timeout`` size the pool of a server database (PostgreSQL).
    SQLite uses the driver's default pool and ignores them; there only
    ``lock_timeout`` applies, as the busy timeout for the write lock.
    """

    max_connections: int = 8
    create_timeout: float | None = None
    wait_timeout: float | None = None
    recycle_timeout: float | None = None
    lock_timeout: float | None = None

    @classmethod
    def single_gateway(cls) -> "DatabaseConfig":
        """Pool suitable for a setup with a single gateway."""
        return cls(
            max_connections=64,
            create_timeout=40,
            wait_timeout=40,
            recycle_timeout=8 * 60,
        )

    @classmethod
    def multiple_gateways(cls) -> "DatabaseConfig":
        """Pool suitable for a setup with several gateways sharing one database."""
        return cls(
            max_connections=32,
            create_timeout=40,
            wait_timeout=40,
            recycle_timeout=2 * 60,
        )


POOL_PROFILES = {
    "single_gateway": DatabaseConfig.single_gateway,
    "multiple_gateways": DatabaseConfig.multiple_gateways,
}


class CadenceSettings(BaseSettings):
    """Daemon settings."""

    # Server
    host: str = "0.0.0.0"
    port: int = 8500
    log_level: str = "info"

    # Database (SQLite by default for zero-setup)
    database_url: str = Field(
        default="sqlite+aiosqlite:///cadence.db",
        alias="CADENCE_DATABASE_URL",
    )
    pool_profile: Literal["single_gateway", "multiple_gateways"] = "single_gateway"
    max_connections: int | None = None
    create_timeout: float | None = None
    wait_timeout: float | None = None
    recycle_timeout: float | None = None
    lock_timeout: float | None = 5.0

    # Auth
    api_key: str = Field(default="cadence_dev_key", alias="CADENCE_API_KEY")

    # Poller
    poller_enabled: bool = True
    poll_interval: float = 5.0
    batch_size: int = 10
    skip_locked: bool = True

    model_config = {"env_prefix": "CADENCE_", "env_file": ".env", "populate_by_name": True}

    def pool_config(self) -> DatabaseConfig:
        """Resolve the pool profile with any explicit overrides applied."""
        config = POOL_PROFILES[self.pool_profile]()
        overrides = {
            "max_connections": self.max_connections,
            "create_timeout": self.create_timeout,
            "wait_timeout": self.wait_timeout,
            "recycle_timeout": self.recycle_timeout,
            "lock_timeout": self.lock_timeout,
        }
        return config.model_copy(update={k: v for k, v in overrides.items() if v is not None})


class ClientSettings(BaseSettings):
    """CLI client settings."""

    host: str = Field(default="http://localhost:8500", alias="CADENCE_HOST")
    api_key: str = Field(default="cadence_dev_key", alias="CADENCE_API_KEY")

    model_config = {"env_prefix": "CADENCE_"}


def _load_toml_config() -> Dict[str, Any]:
    """Load configuration from cadence.toml files.

    Searches for cadence.toml in:
    1. CADENCE_HOME (~/.cadence/cadence.toml by default)
    2. Current directory (./cadence.toml)

    The ``[database]`` and ``[poller]`` tables are flattened into settings
    fields; the local file takes precedence.
    """
    config: Dict[str, Any] = {}

    cadence_home = Path(os.environ.get("CADENCE_HOME", "~/.cadence")).expanduser()
    for path in (cadence_home / "cadence.toml", Path("cadence.toml")):
        if not path.exists():
            continue
        with path.open("rb") as f:
            data = tomllib.load(f)
        for key, value in data.items():
            if key in ("database", "poller", "server") and isinstance(value, dict):
                config.update(value)
            else:
                config[key] = value

    return config


def get_settings() -> CadenceSettings:
    toml_config = _load_toml_config()
    settings = CadenceSettings()
    # Env vars win over the toml file; only fill fields left at their default.
    unset = set(CadenceSettings.model_fields) - settings.model_fields_set
    updates = {k: v for k, v in toml_config.items() if k in unset}
    if updates:
        settings = CadenceSettings.model_validate({**settings.model_dump(by_alias=False), **updates})
    return settings


def get_client_settings() -> ClientSettings:
    return ClientSettings()
