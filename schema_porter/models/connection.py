"""Saved connection profiles."""

from sqlalchemy import Column as SQLColumn, Integer, String, DateTime
from sqlalchemy.sql import func

from .base import Base


class SavedConnection(Base):
    """A named DM8 connection profile stored locally."""

    __tablename__ = "connections"

    id = SQLColumn(Integer, primary_key=True, index=True)
    name = SQLColumn(String(255), unique=True, index=True, nullable=False)
    db_type = SQLColumn(String(50), nullable=False, default="dm8")
    host = SQLColumn(String(255), nullable=False)
    port = SQLColumn(Integer, nullable=False)
    username = SQLColumn(String(255), nullable=False)
    password = SQLColumn(String(255), nullable=False)
    schema = SQLColumn(String(255))
    export_schema = SQLColumn(String(255))

    created_at = SQLColumn(DateTime(timezone=True), server_default=func.now())
    updated_at = SQLColumn(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
