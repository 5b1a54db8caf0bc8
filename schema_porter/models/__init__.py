"""Data models for Schema Porter."""

from .base import Base
from .connection import SavedConnection
from .metadata import (
    Column,
    Index,
    UniqueConstraint,
    CheckConstraint,
    ForeignKey,
    Sequence,
    TriggerDefinition,
    TableSummary,
    TableDetails,
)

__all__ = [
    "Base",
    "SavedConnection",
    "Column",
    "Index",
    "UniqueConstraint",
    "CheckConstraint",
    "ForeignKey",
    "Sequence",
    "TriggerDefinition",
    "TableSummary",
    "TableDetails",
]
