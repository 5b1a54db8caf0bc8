"""Catalog snapshot types built by the introspector."""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class Column:
    """A table column as described by ALL_TAB_COLUMNS."""
    name: str
    data_type: str
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    char_semantics: Optional[str] = None
    nullable: bool = True
    comment: Optional[str] = None
    default_value: Optional[str] = None
    identity: bool = False
    identity_start: Optional[int] = None
    identity_increment: Optional[int] = None


@dataclass
class Index:
    name: str
    columns: List[str] = field(default_factory=list)
    unique: bool = False


@dataclass
class UniqueConstraint:
    name: str
    columns: List[str] = field(default_factory=list)


@dataclass
class CheckConstraint:
    name: str
    condition: str


@dataclass
class ForeignKey:
    """A referential constraint with its referenced side resolved."""
    name: str
    columns: List[str]
    referenced_owner: str
    referenced_table: str
    referenced_columns: List[str]
    delete_rule: Optional[str] = None
    update_rule: Optional[str] = None


@dataclass
class Sequence:
    name: str
    min_value: Optional[int] = None
    max_value: Optional[int] = None
    increment_by: int = 1
    cache_size: Optional[int] = None
    cycle: bool = False
    order: bool = False
    current_value: Optional[int] = None


@dataclass
class TriggerDefinition:
    """A trigger as read from ALL_TRIGGERS.

    ``body`` is either the PL/SQL block alone (optionally prefixed by a
    ``WHEN (...)`` line) or a complete ``CREATE TRIGGER`` statement, which
    is passed through largely untouched.
    """
    name: str
    table_name: str
    timing: str
    events: List[str]
    each_row: bool
    body: str


@dataclass
class TableSummary:
    name: str
    comment: Optional[str] = None
    row_count: Optional[int] = None


@dataclass
class TableDetails:
    """Everything needed to regenerate one table."""
    name: str
    comment: Optional[str] = None
    columns: List[Column] = field(default_factory=list)
    primary_keys: List[str] = field(default_factory=list)
    indexes: List[Index] = field(default_factory=list)
    unique_constraints: List[UniqueConstraint] = field(default_factory=list)
    check_constraints: List[CheckConstraint] = field(default_factory=list)
    foreign_keys: List[ForeignKey] = field(default_factory=list)
    triggers: List[TriggerDefinition] = field(default_factory=list)

    @property
    def identity_column(self) -> Optional[Column]:
        return next((c for c in self.columns if c.identity), None)
