"""SQLAlchemy base and session helpers for the local settings database."""

from pathlib import Path
from typing import Union

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def create_store_engine(db_path: Union[str, Path]) -> Engine:
    """Create an engine for the SQLite settings file, creating its directory."""
    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(f"sqlite:///{path}", connect_args={"check_same_thread": False})


def create_tables(engine: Engine) -> None:
    """Create all tables."""
    Base.metadata.create_all(bind=engine)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
