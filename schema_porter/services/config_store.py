"""Local persistence of the default connection profile."""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from sqlalchemy.orm import Session

from ..config import ConnectionSettings
from ..errors import error_context
from ..models.base import create_store_engine, create_tables, make_session_factory
from ..models.connection import SavedConnection

logger = logging.getLogger(__name__)

DEFAULT_CONNECTION_NAME = "default-dm8"


class ConfigSource(str, Enum):
    """Where the effective connection settings came from."""
    ENV = "env"
    SQLITE = "sqlite"


@dataclass
class StoredConnection:
    settings: ConnectionSettings
    source: ConfigSource
    updated_at: Optional[datetime] = None


class ConfigStore:
    """Reads and writes the saved connection in a SQLite file."""

    def __init__(self, db_path: Union[str, Path]):
        """Open (and create if needed) the settings database at ``db_path``."""
        with error_context(f"Failed to open settings database at {db_path}"):
            self.engine = create_store_engine(db_path)
            create_tables(self.engine)
        self._session_factory = make_session_factory(self.engine)

    def _session(self) -> Session:
        return self._session_factory()

    def get_default(self) -> Optional[StoredConnection]:
        """The saved default connection, or None if nothing was saved yet."""
        with self._session() as db:
            saved = db.query(SavedConnection).filter(
                SavedConnection.name == DEFAULT_CONNECTION_NAME
            ).first()
            if saved is None:
                return None
            return StoredConnection(
                settings=ConnectionSettings(
                    host=saved.host,
                    port=saved.port,
                    username=saved.username,
                    password=saved.password,
                    schema=saved.schema,
                    export_schema=saved.export_schema,
                ),
                source=ConfigSource.SQLITE,
                updated_at=saved.updated_at,
            )

    def load_effective(self) -> StoredConnection:
        """Saved settings if present, otherwise the DATABASE_* environment."""
        stored = self.get_default()
        if stored is not None:
            return stored
        return StoredConnection(settings=ConnectionSettings.from_env(), source=ConfigSource.ENV)

    def upsert_default(self, settings: ConnectionSettings) -> StoredConnection:
        """Validate and save ``settings`` as the default connection."""
        settings.validate()
        with self._session() as db:
            saved = db.query(SavedConnection).filter(
                SavedConnection.name == DEFAULT_CONNECTION_NAME
            ).first()
            if saved is None:
                saved = SavedConnection(name=DEFAULT_CONNECTION_NAME, db_type="dm8")
                db.add(saved)

            saved.host = settings.host
            saved.port = settings.port
            saved.username = settings.username
            saved.password = settings.password
            saved.schema = settings.schema
            saved.export_schema = settings.export_schema
            saved.updated_at = datetime.now()

            db.commit()
            db.refresh(saved)
            logger.info(f"Saved default connection for {settings.username}@{settings.host}")
            return StoredConnection(settings=settings, source=ConfigSource.SQLITE, updated_at=saved.updated_at)
