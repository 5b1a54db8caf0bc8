"""Read-only DM8 catalog introspection."""

import logging
import re
import threading
from collections import OrderedDict
from enum import IntEnum
from typing import Any, Dict, List, Optional, Sequence as Seq

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from ..errors import CatalogError, TableNotFoundError, error_context
from ..models.metadata import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Sequence,
    TableDetails,
    TableSummary,
    TriggerDefinition,
    UniqueConstraint,
)
from .literals import quote_identifier

logger = logging.getLogger(__name__)

MAX_TRIGGER_QUERY_ATTEMPTS = 3

_NOT_NULL_CHECK = re.compile(r'^\s*(?:"([^"]+)"|(\w+))\s+IS\s+NOT\s+NULL\s*$', re.IGNORECASE)
_EVENT_SEPARATOR = re.compile(r"\s+OR\s+|,", re.IGNORECASE)
_INSTEAD_OF = re.compile(r"\bINSTEAD\s+OF\b")
_AFTER = re.compile(r"\bAFTER\b")


class TriggerQueryLevel(IntEnum):
    """How much of ALL_TRIGGERS the trigger query asks for.

    Older DM8 releases lack some ALL_TRIGGERS columns; each level drops the
    columns the previous one needed.
    """
    FULL = 0
    NO_TYPE = 1
    NO_WHEN = 2


TRIGGER_QUERIES = {
    TriggerQueryLevel.FULL: (
        "SELECT TRIGGER_NAME, TRIGGER_TYPE, TRIGGERING_EVENT, WHEN_CLAUSE, TRIGGER_BODY, DESCRIPTION "
        "FROM ALL_TRIGGERS WHERE OWNER = :owner AND TABLE_NAME = :table_name ORDER BY TRIGGER_NAME"
    ),
    TriggerQueryLevel.NO_TYPE: (
        "SELECT TRIGGER_NAME, TRIGGERING_EVENT, WHEN_CLAUSE, TRIGGER_BODY "
        "FROM ALL_TRIGGERS WHERE OWNER = :owner AND TABLE_NAME = :table_name ORDER BY TRIGGER_NAME"
    ),
    TriggerQueryLevel.NO_WHEN: (
        "SELECT TRIGGER_NAME, TRIGGERING_EVENT, TRIGGER_BODY "
        "FROM ALL_TRIGGERS WHERE OWNER = :owner AND TABLE_NAME = :table_name ORDER BY TRIGGER_NAME"
    ),
}


class TriggerQueryLevelCache:
    """Remembers the trigger query level that the server accepts.

    The level only moves forward, so concurrent requests that hit the same
    missing column both end up at the same level.
    """

    def __init__(self, level: TriggerQueryLevel = TriggerQueryLevel.FULL):
        self._level = level
        self._lock = threading.Lock()

    @property
    def current(self) -> TriggerQueryLevel:
        with self._lock:
            return self._level

    def compare_and_set(self, expected: TriggerQueryLevel, new: TriggerQueryLevel) -> bool:
        with self._lock:
            if self._level != expected or new <= expected:
                return False
            self._level = new
            return True


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(str(value).strip()))
        except ValueError:
            return None


def _flag(value: Any, *truthy: str) -> bool:
    return (_text(value) or "").strip().upper() in truthy


def _missing_trigger_column_level(error: DBAPIError, level: TriggerQueryLevel) -> Optional[TriggerQueryLevel]:
    """Level to retry at when ``error`` names a column the current level selects."""
    # orig holds the driver message without the echoed SQL text
    message = str(getattr(error, "orig", None) or error).upper()
    if level < TriggerQueryLevel.NO_WHEN and "WHEN_CLAUSE" in message:
        return TriggerQueryLevel.NO_WHEN
    if level < TriggerQueryLevel.NO_TYPE and ("TRIGGER_TYPE" in message or "DESCRIPTION" in message):
        return TriggerQueryLevel.NO_TYPE
    return None


class CatalogIntrospector:
    """Builds catalog snapshots from the ALL_* views of one schema owner."""

    def __init__(self, connection: Connection, trigger_levels: Optional[TriggerQueryLevelCache] = None):
        """Initialize with a live connection and the shared trigger level cache."""
        self.connection = connection
        self.trigger_levels = trigger_levels or TriggerQueryLevelCache()

    def _rows(self, sql: str, params: Optional[Dict[str, Any]] = None) -> Seq[Any]:
        return self.connection.execute(text(sql), params or {}).fetchall()

    # Tables

    def list_tables(self, schema: str) -> List[TableSummary]:
        """List the tables of ``schema`` with comments and row counts."""
        owner = schema.upper()
        with error_context(f"Failed to query tables of schema {owner}"):
            rows = self._rows(
                "SELECT t.TABLE_NAME, c.COMMENTS, t.NUM_ROWS FROM ALL_TABLES t "
                "LEFT JOIN ALL_TAB_COMMENTS c ON t.OWNER = c.OWNER AND t.TABLE_NAME = c.TABLE_NAME "
                "WHERE t.OWNER = :owner ORDER BY t.TABLE_NAME",
                {"owner": owner},
            )

        tables = [TableSummary(name=_text(r[0]), comment=_text(r[1]), row_count=_int(r[2])) for r in rows]

        # NUM_ROWS is only filled in by statistics gathering
        for table in tables:
            if not table.row_count:
                table.row_count = self.estimate_row_count(owner, table.name)
        return tables

    def fetch_row_count(self, schema: str, table: str) -> int:
        ident = quote_identifier(f"{schema.upper()}.{table.upper()}")
        return _int(self.connection.execute(text(f"SELECT COUNT(*) FROM {ident}")).scalar()) or 0

    def estimate_row_count(self, schema: str, table: str) -> Optional[int]:
        """Like fetch_row_count but returns None instead of raising."""
        try:
            return self.fetch_row_count(schema, table)
        except SQLAlchemyError as e:
            logger.warning(f"Could not get row count for {schema}.{table}: {e}")
            return None

    def fetch_table_comment(self, schema: str, table: str) -> Optional[str]:
        rows = self._rows(
            "SELECT COMMENTS FROM ALL_TAB_COMMENTS WHERE OWNER = :owner AND TABLE_NAME = :table_name",
            {"owner": schema.upper(), "table_name": table.upper()},
        )
        return _text(rows[0][0]) if rows else None

    def get_table_details(self, schema: str, table: str) -> TableDetails:
        """Assemble the full snapshot of one table.

        Raises TableNotFoundError when the table has no columns.
        """
        owner, table_name = schema.upper(), table.upper()
        with error_context(f"Failed to query columns of {owner}.{table_name}"):
            columns = self.fetch_columns(owner, table_name)
        if not columns:
            raise TableNotFoundError(f"Table {owner}.{table_name} not found")

        with error_context(f"Failed to query comment of {owner}.{table_name}"):
            comment = self.fetch_table_comment(owner, table_name)
        with error_context(f"Failed to query primary key of {owner}.{table_name}"):
            primary_keys = self.fetch_primary_keys(owner, table_name)
        with error_context(f"Failed to query indexes of {owner}.{table_name}"):
            indexes = self.fetch_indexes(owner, table_name)
        with error_context(f"Failed to query unique constraints of {owner}.{table_name}"):
            unique_constraints = self.fetch_unique_constraints(owner, table_name)
        with error_context(f"Failed to query check constraints of {owner}.{table_name}"):
            check_constraints = self.fetch_check_constraints(owner, table_name, columns)
        with error_context(f"Failed to query foreign keys of {owner}.{table_name}"):
            foreign_keys = self.fetch_foreign_keys(owner, table_name)
        with error_context(f"Failed to query triggers of {owner}.{table_name}"):
            triggers = self.fetch_triggers(owner, table_name)

        return TableDetails(
            name=table_name,
            comment=comment,
            columns=columns,
            primary_keys=primary_keys,
            indexes=indexes,
            unique_constraints=unique_constraints,
            check_constraints=check_constraints,
            foreign_keys=foreign_keys,
            triggers=triggers,
        )

    # Columns

    def fetch_columns(self, schema: str, table: str) -> List[Column]:
        params = {"owner": schema.upper(), "table_name": table.upper()}
        rows = self._rows(
            "SELECT c.COLUMN_NAME, c.DATA_TYPE, c.DATA_LENGTH, c.CHAR_LENGTH, c.CHAR_USED, "
            "c.DATA_PRECISION, c.DATA_SCALE, c.NULLABLE, c.DATA_DEFAULT, cc.COMMENTS "
            "FROM ALL_TAB_COLUMNS c "
            "LEFT JOIN ALL_COL_COMMENTS cc ON cc.OWNER = c.OWNER AND cc.TABLE_NAME = c.TABLE_NAME "
            "AND cc.COLUMN_NAME = c.COLUMN_NAME "
            "WHERE c.OWNER = :owner AND c.TABLE_NAME = :table_name ORDER BY c.COLUMN_ID",
            params,
        )

        columns = []
        for row in rows:
            name, data_type = _text(row[0]), _text(row[1])
            if not name or not data_type:
                raise CatalogError(f"Column metadata for {schema}.{table} is missing a name or type")
            char_used = (_text(row[4]) or "").strip().upper() or None
            length = _int(row[3]) if char_used == "C" and _int(row[3]) else _int(row[2])
            default = _text(row[8])
            columns.append(Column(
                name=name,
                data_type=data_type,
                length=length,
                precision=_int(row[5]),
                scale=_int(row[6]),
                char_semantics=char_used,
                nullable=_flag(row[7], "Y"),
                comment=_text(row[9]),
                default_value=default.strip() if default and default.strip() else None,
            ))

        if columns:
            self._mark_identity_column(schema.upper(), table.upper(), columns)
        return columns

    def _mark_identity_column(self, schema: str, table: str, columns: List[Column]) -> None:
        rows = self._rows(
            "SELECT col.NAME FROM SYS.SYSCOLUMNS col "
            "JOIN SYS.SYSOBJECTS tab ON col.ID = tab.ID "
            "JOIN SYS.SYSOBJECTS sch ON tab.SCHID = sch.ID "
            "WHERE sch.NAME = :owner AND tab.NAME = :table_name AND tab.SUBTYPE$ = 'UTAB' "
            "AND BITAND(col.INFO2, 1) = 1",
            {"owner": schema, "table_name": table},
        )
        identity_names = {_text(r[0]) for r in rows}
        identity = next((c for c in columns if c.name in identity_names), None)
        if identity is None:
            return
        if len(identity_names) > 1:
            logger.warning(f"{schema}.{table} reports several identity columns; using {identity.name}")

        qualified = f"{schema}.{table}"
        seed_row = self._rows(
            "SELECT IDENT_SEED(:qualified), IDENT_INCR(:qualified) FROM DUAL",
            {"qualified": qualified},
        )
        identity.identity = True
        identity.default_value = None
        if seed_row:
            identity.identity_start = _int(seed_row[0][0])
            identity.identity_increment = _int(seed_row[0][1])

    # Constraints

    def fetch_primary_keys(self, schema: str, table: str) -> List[str]:
        rows = self._rows(
            "SELECT acc.COLUMN_NAME FROM ALL_CONSTRAINTS ac "
            "JOIN ALL_CONS_COLUMNS acc ON ac.OWNER = acc.OWNER AND ac.CONSTRAINT_NAME = acc.CONSTRAINT_NAME "
            "WHERE ac.CONSTRAINT_TYPE = 'P' AND ac.OWNER = :owner AND ac.TABLE_NAME = :table_name "
            "ORDER BY acc.POSITION",
            {"owner": schema.upper(), "table_name": table.upper()},
        )
        return [_text(r[0]) for r in rows]

    def fetch_indexes(self, schema: str, table: str) -> List[Index]:
        params = {"owner": schema.upper(), "table_name": table.upper()}
        indexes: "OrderedDict[str, Index]" = OrderedDict()
        for row in self._rows(
            "SELECT INDEX_NAME, UNIQUENESS FROM ALL_INDEXES "
            "WHERE TABLE_OWNER = :owner AND TABLE_NAME = :table_name ORDER BY INDEX_NAME",
            params,
        ):
            name = _text(row[0])
            indexes[name] = Index(name=name, unique=_flag(row[1], "UNIQUE", "Y"))

        for row in self._rows(
            "SELECT INDEX_NAME, COLUMN_NAME FROM ALL_IND_COLUMNS "
            "WHERE INDEX_OWNER = :owner AND TABLE_NAME = :table_name ORDER BY INDEX_NAME, COLUMN_POSITION",
            params,
        ):
            index = indexes.get(_text(row[0]))
            if index is not None and row[1] is not None:
                index.columns.append(_text(row[1]))

        return [index for index in indexes.values() if index.columns]

    def fetch_unique_constraints(self, schema: str, table: str) -> List[UniqueConstraint]:
        constraints: "OrderedDict[str, UniqueConstraint]" = OrderedDict()
        for row in self._rows(
            "SELECT ac.CONSTRAINT_NAME, acc.COLUMN_NAME FROM ALL_CONSTRAINTS ac "
            "JOIN ALL_CONS_COLUMNS acc ON ac.OWNER = acc.OWNER AND ac.CONSTRAINT_NAME = acc.CONSTRAINT_NAME "
            "WHERE ac.CONSTRAINT_TYPE = 'U' AND ac.OWNER = :owner AND ac.TABLE_NAME = :table_name "
            "ORDER BY ac.CONSTRAINT_NAME, acc.POSITION",
            {"owner": schema.upper(), "table_name": table.upper()},
        ):
            name = _text(row[0])
            constraints.setdefault(name, UniqueConstraint(name=name)).columns.append(_text(row[1]))
        return list(constraints.values())

    def fetch_check_constraints(self, schema: str, table: str,
                                columns: Optional[List[Column]] = None) -> List[CheckConstraint]:
        """Check constraints of ``table``.

        A bare ``<col> IS NOT NULL`` check is dropped only when ``columns``
        already reports that column as NOT NULL, since the column DDL
        carries it. Without ``columns`` every check is kept.
        """
        not_null = {c.name for c in columns or [] if not c.nullable}
        checks = []
        for row in self._rows(
            "SELECT CONSTRAINT_NAME, SEARCH_CONDITION FROM ALL_CONSTRAINTS "
            "WHERE CONSTRAINT_TYPE = 'C' AND OWNER = :owner AND TABLE_NAME = :table_name "
            "ORDER BY CONSTRAINT_NAME",
            {"owner": schema.upper(), "table_name": table.upper()},
        ):
            condition = (_text(row[1]) or "").strip()
            if not condition:
                continue
            match = _NOT_NULL_CHECK.match(condition)
            if match and (match.group(1) or match.group(2).upper()) in not_null:
                continue
            checks.append(CheckConstraint(name=_text(row[0]), condition=condition))
        return checks

    def fetch_foreign_keys(self, schema: str, table: str) -> List[ForeignKey]:
        owner = schema.upper()
        params = {"owner": owner, "table_name": table.upper()}
        try:
            rows = self._rows(
                "SELECT CONSTRAINT_NAME, R_OWNER, R_CONSTRAINT_NAME, DELETE_RULE, UPDATE_RULE "
                "FROM ALL_CONSTRAINTS WHERE CONSTRAINT_TYPE = 'R' AND OWNER = :owner "
                "AND TABLE_NAME = :table_name ORDER BY CONSTRAINT_NAME",
                params,
            )
        except DBAPIError as e:
            if "UPDATE_RULE" not in str(getattr(e, "orig", None) or e).upper():
                raise
            logger.info(f"UPDATE_RULE not available for {owner}.{table}, retrying without it: {e.orig}")
            rows = [
                tuple(r) + (None,)
                for r in self._rows(
                    "SELECT CONSTRAINT_NAME, R_OWNER, R_CONSTRAINT_NAME, DELETE_RULE "
                    "FROM ALL_CONSTRAINTS WHERE CONSTRAINT_TYPE = 'R' AND OWNER = :owner "
                    "AND TABLE_NAME = :table_name ORDER BY CONSTRAINT_NAME",
                    params,
                )
            ]

        foreign_keys = []
        for name, r_owner, r_constraint, delete_rule, update_rule in rows:
            name, r_owner, r_constraint = _text(name), _text(r_owner) or owner, _text(r_constraint)
            referenced = self._rows(
                "SELECT TABLE_NAME FROM ALL_CONSTRAINTS WHERE OWNER = :owner AND CONSTRAINT_NAME = :constraint_name",
                {"owner": r_owner, "constraint_name": r_constraint},
            )
            if not referenced:
                raise CatalogError(
                    f"Foreign key {name} references unknown constraint {r_owner}.{r_constraint}"
                )
            foreign_keys.append(ForeignKey(
                name=name,
                columns=self._constraint_columns(owner, name),
                referenced_owner=r_owner,
                referenced_table=_text(referenced[0][0]),
                referenced_columns=self._constraint_columns(r_owner, r_constraint),
                delete_rule=_text(delete_rule),
                update_rule=_text(update_rule),
            ))
        return foreign_keys

    def _constraint_columns(self, owner: str, constraint: str) -> List[str]:
        rows = self._rows(
            "SELECT COLUMN_NAME FROM ALL_CONS_COLUMNS WHERE OWNER = :owner "
            "AND CONSTRAINT_NAME = :constraint_name ORDER BY POSITION",
            {"owner": owner, "constraint_name": constraint},
        )
        return [_text(r[0]) for r in rows]

    # Sequences

    def fetch_sequences(self, schema: str) -> List[Sequence]:
        """Sequences owned by ``schema``; an empty list if the query fails."""
        owner = schema.upper()
        try:
            rows = self._rows(
                "SELECT SEQUENCE_NAME, MIN_VALUE, MAX_VALUE, INCREMENT_BY, CACHE_SIZE, CYCLE_FLAG, "
                "ORDER_FLAG, LAST_NUMBER FROM ALL_SEQUENCES WHERE SEQUENCE_OWNER = :owner "
                "ORDER BY SEQUENCE_NAME",
                {"owner": owner},
            )
        except SQLAlchemyError as e:
            logger.warning(f"Could not list sequences of {owner}: {e}")
            return []

        return [
            Sequence(
                name=_text(r[0]),
                min_value=_int(r[1]),
                max_value=_int(r[2]),
                increment_by=_int(r[3]) or 1,
                cache_size=_int(r[4]),
                cycle=_flag(r[5], "Y"),
                order=_flag(r[6], "Y"),
                current_value=_int(r[7]),
            )
            for r in rows
        ]

    # Triggers

    def fetch_triggers(self, schema: str, table: str) -> List[TriggerDefinition]:
        """Triggers on ``table``, degrading the query on older catalogs.

        When the server rejects a column of the current query level, the
        shared level cache is advanced and the query retried. Errors that
        name no known trigger column, or any error at the last level, are
        raised as CatalogError.
        """
        params = {"owner": schema.upper(), "table_name": table.upper()}
        for _ in range(MAX_TRIGGER_QUERY_ATTEMPTS):
            level = self.trigger_levels.current
            try:
                rows = self._rows(TRIGGER_QUERIES[level], params)
            except DBAPIError as e:
                next_level = _missing_trigger_column_level(e, level)
                if next_level is None:
                    raise CatalogError(f"Trigger query failed at level {level.name}") from e
                if self.trigger_levels.compare_and_set(level, next_level):
                    logger.warning(f"ALL_TRIGGERS query degraded from {level.name} to {next_level.name}: {e.orig}")
                continue
            return [self._build_trigger(row, level, table.upper()) for row in rows]

        raise CatalogError(f"Trigger query still failing after {MAX_TRIGGER_QUERY_ATTEMPTS} attempts")

    def _build_trigger(self, row: Seq[Any], level: TriggerQueryLevel, table: str) -> TriggerDefinition:
        trigger_type = description = when_clause = None
        if level == TriggerQueryLevel.FULL:
            name, trigger_type, event, when_clause, body, description = row
        elif level == TriggerQueryLevel.NO_TYPE:
            name, event, when_clause, body = row
        else:
            name, event, body = row

        body = (_text(body) or "").strip()
        event = _text(event) or ""
        trigger_type = (_text(trigger_type) or "").upper()
        if level == TriggerQueryLevel.FULL:
            descriptor = f"{trigger_type} {_text(description) or ''}".upper()
        else:
            descriptor = f"{event} {body}".upper()

        # the description repeats the trigger and table names, so timing comes from the type column
        timing_source = trigger_type or descriptor
        if _INSTEAD_OF.search(timing_source):
            timing = "INSTEAD OF"
        elif _AFTER.search(timing_source):
            timing = "AFTER"
        else:
            timing = "BEFORE"

        events = [e.strip().upper() for e in _EVENT_SEPARATOR.split(event) if e.strip()]

        when_clause = (_text(when_clause) or "").strip()
        if when_clause and not body.upper().startswith("CREATE"):
            body = f"WHEN ({when_clause})\n{body}"

        return TriggerDefinition(
            name=_text(name),
            table_name=table,
            timing=timing,
            events=events,
            each_row="EACH ROW" in descriptor,
            body=body,
        )
