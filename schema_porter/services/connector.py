"""DM8 connectivity through SQLAlchemy."""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine, URL
from sqlalchemy.exc import SQLAlchemyError

from ..config import DEFAULT_DRIVER, ConnectionSettings
from ..errors import ConnectivityError
from .literals import quote_identifier

logger = logging.getLogger(__name__)


class DM8Connector:
    """Opens connections to one DM8 server."""

    def __init__(self, settings: ConnectionSettings, driver: str = DEFAULT_DRIVER):
        """Initialize with connection settings and the SQLAlchemy driver name."""
        settings.validate()
        self.settings = settings
        self.driver = driver
        self.engine: Optional[Engine] = None

    def build_url(self) -> URL:
        return URL.create(
            drivername=self.driver,
            username=self.settings.username,
            password=self.settings.password,
            host=self.settings.host,
            port=self.settings.port,
        )

    @property
    def display_name(self) -> str:
        return f"{self.settings.username}@{self.settings.host}:{self.settings.port}"

    def connect(self) -> Engine:
        """Create the engine and check that the server answers."""
        if self.engine is not None:
            return self.engine
        try:
            engine = create_engine(self.build_url(), pool_pre_ping=True)
            with engine.connect() as conn:
                conn.execute(text("SELECT 1 FROM DUAL"))
        except SQLAlchemyError as e:
            logger.error(f"Failed to connect to DM8 at {self.display_name}: {e}")
            raise ConnectivityError(f"Failed to connect to DM8 at {self.display_name}") from e
        logger.info(f"Successfully connected to DM8 at {self.display_name}")
        self.engine = engine
        return engine

    @contextmanager
    def session(self) -> Iterator[Connection]:
        """Yield a connection with the source schema set as current schema."""
        engine = self.connect()
        try:
            with engine.connect() as conn:
                try:
                    conn.execute(text(f"SET SCHEMA {quote_identifier(self.settings.source_schema)}"))
                except SQLAlchemyError as e:
                    raise ConnectivityError(
                        f"Failed to switch to schema {self.settings.source_schema}"
                    ) from e
                yield conn
        finally:
            self.dispose()

    def test_connection(self) -> bool:
        """Connect, set the schema and disconnect. Raises on failure."""
        with self.session():
            pass
        return True

    def dispose(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None
