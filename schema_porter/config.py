"""Runtime configuration read from environment variables."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import ConfigurationError

DEFAULT_DRIVER = "dm+dmPython"
DEFAULT_BATCH_SIZE = 1000


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")


@dataclass(frozen=True)
class ConnectionSettings:
    """Connection parameters for a DM8 source database."""
    host: str = ""
    port: int = 5236
    username: str = ""
    password: str = ""
    schema: Optional[str] = None
    export_schema: Optional[str] = None

    @classmethod
    def from_env(cls) -> "ConnectionSettings":
        """Build settings from the DATABASE_* environment variables."""
        return cls(
            host=os.getenv("DATABASE_HOST", "localhost"),
            port=_env_int("DATABASE_PORT", 5236),
            username=os.getenv("DATABASE_USERNAME", "SYSDBA"),
            password=os.getenv("DATABASE_PASSWORD", ""),
            schema=os.getenv("DATABASE_SCHEMA") or None,
        )

    @property
    def source_schema(self) -> str:
        """Schema to introspect; defaults to the login user's own schema."""
        return (self.schema or self.username).strip().upper()

    def validate(self) -> None:
        """Raise ConfigurationError when a required field is missing."""
        if not self.host.strip():
            raise ConfigurationError("Database host is required")
        if self.port <= 0:
            raise ConfigurationError(f"Database port must be positive, got {self.port}")
        if not self.username.strip():
            raise ConfigurationError("Database username is required")
        if not self.password:
            raise ConfigurationError("Database password is required")


@dataclass(frozen=True)
class AppSettings:
    """Process-wide settings for the HTTP service."""
    host: str = "127.0.0.1"
    port: int = 8000
    export_dir: Path = Path("exports")
    config_db_path: Path = Path.home() / ".schema_porter" / "config.db"
    driver: str = DEFAULT_DRIVER
    default_batch_size: int = DEFAULT_BATCH_SIZE

    @classmethod
    def from_env(cls) -> "AppSettings":
        config_db = os.getenv("CONFIG_DB_PATH")
        return cls(
            host=os.getenv("HOST", "127.0.0.1"),
            port=_env_int("PORT", 8000),
            export_dir=Path(os.getenv("EXPORT_DIR", "exports")),
            config_db_path=Path(config_db) if config_db else cls.config_db_path,
            driver=os.getenv("DM8_SQLALCHEMY_DRIVER", DEFAULT_DRIVER),
            default_batch_size=_env_int("DEFAULT_BATCH_SIZE", DEFAULT_BATCH_SIZE),
        )
