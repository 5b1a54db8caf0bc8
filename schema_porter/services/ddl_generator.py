"""DDL generation from catalog snapshots."""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..errors import error_context
from ..models.metadata import Column, Index, Sequence, TableDetails, TriggerDefinition
from .literals import classify_literal, escape_literal, quote_identifier
from .triggers import (
    TriggerTerminator,
    apply_trigger_terminator,
    extract_when_clause,
    normalize_trigger_body,
    normalize_trigger_references,
)

logger = logging.getLogger(__name__)

MAX_INDEX_NAME_LENGTH = 128

_LENGTH_TYPES = {"VARCHAR", "VARCHAR2", "CHAR", "NCHAR", "NVARCHAR", "NVARCHAR2", "RAW", "BINARY", "VARBINARY"}
_DECIMAL_TYPES = {"NUMBER", "DECIMAL", "NUMERIC"}
_FLOAT_TYPES = {"FLOAT", "DOUBLE", "REAL"}

RULE = "-- ============================================"


def _base_name(name: str) -> str:
    return name.rsplit(".", 1)[-1]


def _column_list(columns: List[str]) -> str:
    return ", ".join(quote_identifier(c) for c in columns)


def format_data_type(column: Column) -> str:
    """Render a column type with its length/precision parameters."""
    data_type = column.data_type.strip().upper()
    if "(" in data_type:
        return data_type

    if data_type in _LENGTH_TYPES:
        if column.length and column.length > 0:
            semantics = (column.char_semantics or "").upper()
            if semantics == "C" or "CHAR" in semantics:
                return f"{data_type}({column.length} CHAR)"
            if semantics == "B" or "BYTE" in semantics:
                return f"{data_type}({column.length} BYTE)"
            return f"{data_type}({column.length})"
    elif data_type in _DECIMAL_TYPES:
        # Only precision/scale apply here; DATA_LENGTH is the byte size
        if column.precision and column.precision > 0:
            if column.scale is not None and column.scale > 0:
                return f"{data_type}({column.precision},{column.scale})"
            if column.scale == 0:
                return f"{data_type}({column.precision},0)"
            return f"{data_type}({column.precision})"
    elif data_type in _FLOAT_TYPES:
        if column.precision and column.precision > 0:
            return f"{data_type}({column.precision})"
    elif data_type == "TIMESTAMP":
        # Fractional second precision is reported as scale; 6 is the default
        if column.scale is not None and 0 <= column.scale <= 9 and column.scale != 6:
            return f"TIMESTAMP({column.scale})"
    return data_type


def format_column_definition(column: Column) -> str:
    parts = [quote_identifier(column.name), format_data_type(column)]
    if column.identity:
        if column.identity_start is not None and column.identity_increment is not None:
            parts.append(f"IDENTITY({column.identity_start}, {column.identity_increment})")
        else:
            parts.append("IDENTITY(1, 1)")
    elif column.default_value and column.default_value.strip():
        parts.append(f"DEFAULT {classify_literal(column.data_type, column.default_value)}")
    parts.append("NULL" if column.nullable else "NOT NULL")
    return " ".join(parts)


def generate_create_table(table: TableDetails) -> str:
    """CREATE TABLE plus table and column comments."""
    ident = quote_identifier(table.name)
    column_lines = ",\n".join(f"    {format_column_definition(c)}" for c in table.columns)
    lines = [f"CREATE TABLE {ident} (\n{column_lines}\n);"]

    if table.comment and table.comment.strip():
        lines.append(f"COMMENT ON TABLE {ident} IS '{escape_literal(table.comment.strip())}';")
    for column in table.columns:
        if column.comment and column.comment.strip():
            lines.append(
                f"COMMENT ON COLUMN {ident}.{quote_identifier(column.name)} "
                f"IS '{escape_literal(column.comment.strip())}';"
            )
    return "\n".join(lines).rstrip()


def generate_primary_key(table: TableDetails) -> Optional[str]:
    if not table.primary_keys:
        return None
    constraint = quote_identifier(f"PK_{_base_name(table.name)}")
    return (
        f"ALTER TABLE {quote_identifier(table.name)} ADD CONSTRAINT {constraint} "
        f"PRIMARY KEY ({_column_list(table.primary_keys)});"
    )


def _ordered_key(columns: List[str]) -> str:
    return "|".join(c.upper() for c in columns)


def _sorted_key(columns: List[str]) -> str:
    return "|".join(sorted(c.upper() for c in columns))


def normalize_index_name(table_name: str, index: Index) -> str:
    """Replace system names like ``INDEX33561145`` with ``IDX_<table>_<cols>``."""
    upper = index.name.upper()
    if not (upper.startswith("INDEX") and upper[5:].isdigit()):
        return index.name
    columns = "_".join(c.upper() for c in index.columns)
    name = f"IDX_{_base_name(table_name).upper()}_{columns}"
    return name[:MAX_INDEX_NAME_LENGTH]


def generate_indexes(table: TableDetails) -> List[str]:
    """CREATE INDEX statements, skipping indexes implied by constraints.

    An index whose column set equals the primary key's or a unique
    constraint's is dropped (the constraint creates it), as is any later
    index repeating an ordered column list already emitted.
    """
    reserved = set()
    if table.primary_keys:
        reserved.add(_sorted_key(table.primary_keys))
    for constraint in table.unique_constraints:
        if constraint.columns:
            reserved.add(_sorted_key(constraint.columns))

    seen = set()
    statements = []
    for index in table.indexes:
        if not index.columns:
            continue
        if _sorted_key(index.columns) in reserved:
            continue
        ordered = _ordered_key(index.columns)
        if ordered in seen:
            continue
        seen.add(ordered)

        prefix = "CREATE UNIQUE INDEX" if index.unique else "CREATE INDEX"
        statements.append(
            f"{prefix} {quote_identifier(normalize_index_name(table.name, index))} "
            f"ON {quote_identifier(table.name)} ({_column_list(index.columns)});"
        )
    return statements


def generate_unique_constraints(table: TableDetails) -> List[str]:
    return [
        f"ALTER TABLE {quote_identifier(table.name)} ADD CONSTRAINT {quote_identifier(uc.name)} "
        f"UNIQUE ({_column_list(uc.columns)});"
        for uc in table.unique_constraints
    ]


def generate_check_constraints(table: TableDetails) -> List[str]:
    return [
        f"ALTER TABLE {quote_identifier(table.name)} ADD CONSTRAINT {quote_identifier(ck.name)} "
        f"CHECK ({ck.condition});"
        for ck in table.check_constraints
    ]


def _referential_action(rule: Optional[str]) -> Optional[str]:
    if not rule or not rule.strip() or rule.strip().upper() == "NO ACTION":
        return None
    return rule.strip()


def generate_foreign_keys(table: TableDetails) -> List[str]:
    statements = []
    for fk in table.foreign_keys:
        referenced = quote_identifier(f"{fk.referenced_owner}.{fk.referenced_table}")
        stmt = (
            f"ALTER TABLE {quote_identifier(table.name)} ADD CONSTRAINT {quote_identifier(fk.name)} "
            f"FOREIGN KEY ({_column_list(fk.columns)}) "
            f"REFERENCES {referenced} ({_column_list(fk.referenced_columns)})"
        )
        on_delete = _referential_action(fk.delete_rule)
        if on_delete:
            stmt += f" ON DELETE {on_delete}"
        on_update = _referential_action(fk.update_rule)
        if on_update:
            stmt += f" ON UPDATE {on_update}"
        statements.append(stmt + ";")
    return statements


def generate_sequences(schema: str, sequences: List[Sequence]) -> List[str]:
    # DM8 has no CREATE OR REPLACE SEQUENCE
    statements = []
    for seq in sequences:
        stmt = f"CREATE SEQUENCE {quote_identifier(schema)}.{quote_identifier(seq.name)}"
        if seq.current_value is not None:
            stmt += f" START WITH {seq.current_value}"
        if seq.min_value is not None:
            stmt += f" MINVALUE {seq.min_value}"
        if seq.max_value is not None:
            stmt += f" MAXVALUE {seq.max_value}"
        stmt += f" INCREMENT BY {seq.increment_by}"
        stmt += f" CACHE {seq.cache_size}" if seq.cache_size and seq.cache_size > 0 else " NOCACHE"
        stmt += " CYCLE" if seq.cycle else " NOCYCLE"
        stmt += " ORDER" if seq.order else " NOORDER"
        statements.append(stmt + ";")
    return statements


def generate_trigger(schema: str, trigger: TriggerDefinition, terminator: TriggerTerminator) -> str:
    """Rebuild one CREATE OR REPLACE TRIGGER statement."""
    body = trigger.body.strip()
    if body.upper().startswith(("CREATE TRIGGER", "CREATE OR REPLACE TRIGGER")):
        return apply_trigger_terminator(normalize_trigger_body(body), terminator)

    # WHEN is only valid on row-level triggers
    when_clause, body = extract_when_clause(body) if trigger.each_row else ("", body)

    stmt = (
        f"CREATE OR REPLACE TRIGGER {quote_identifier(schema)}.{quote_identifier(trigger.name)}\n"
        f"{trigger.timing} {' OR '.join(trigger.events)} "
        f"ON {quote_identifier(f'{schema}.{trigger.table_name}')}"
    )
    if trigger.each_row:
        stmt += " REFERENCING OLD AS OLD NEW AS NEW\nFOR EACH ROW"
    when_clause = normalize_trigger_references(when_clause)
    if when_clause:
        stmt += f"\nWHEN ({when_clause})"
    stmt += "\n"

    normalized = normalize_trigger_body(normalize_trigger_references(body))
    if normalized.lstrip().upper().startswith(("BEGIN", "DECLARE")):
        stmt += normalized.strip()
    else:
        stmt += f"BEGIN\n{normalized.strip()}\nEND"
    if not stmt.rstrip().endswith(";"):
        stmt += ";"
    return apply_trigger_terminator(stmt, terminator)


def generate_triggers(schema: str, triggers: List[TriggerDefinition],
                      terminator: TriggerTerminator) -> List[str]:
    return [generate_trigger(schema, trigger, terminator) for trigger in triggers]


def retarget_table(table: TableDetails, source_schema: str, target_schema: str) -> TableDetails:
    """Copy of ``table`` named ``TARGET.TABLE`` with same-schema references remapped."""
    foreign_keys = [
        replace(fk, referenced_owner=target_schema)
        if fk.referenced_owner.upper() == source_schema.upper() else fk
        for fk in table.foreign_keys
    ]
    return replace(table, name=f"{target_schema}.{table.name}", foreign_keys=foreign_keys)


def render_table_block(table: TableDetails, drop_existing: bool) -> str:
    """DROP/CREATE, primary key, unique, check and index statements for one table."""
    ident = quote_identifier(table.name)
    lines = [f"-- Table: {ident}"]
    if drop_existing:
        lines.append(f"DROP TABLE IF EXISTS {ident};")
    lines.append(generate_create_table(table))

    primary_key = generate_primary_key(table)
    if primary_key:
        lines.extend(["", primary_key])
    for group in (
        generate_unique_constraints(table),
        generate_check_constraints(table),
        generate_indexes(table),
    ):
        if group:
            lines.append("")
            lines.extend(group)
    return "\n".join(lines)


@dataclass
class DdlScript:
    """Rendered DDL text; ``triggers`` is set only when triggers go to their own file."""
    main: str
    triggers: Optional[str] = None


def _execution_notes(terminator: TriggerTerminator) -> List[str]:
    if terminator == TriggerTerminator.SEPARATE_SCRIPT:
        return [
            "-- Execution: script mode, triggers in a separate file",
            "-- Note: run the trigger file with DIsql or another DM8 native tool",
        ]
    if terminator == TriggerTerminator.SCRIPT:
        return [
            "-- Execution: script mode (DBeaver/SQLark/DIsql)",
            "-- Note: triggers are terminated by a '/' line",
        ]
    return [
        "-- Execution: statement by statement",
        "-- Note: run each statement individually in your SQL client",
    ]


def render_ddl_script(
    tables: List[TableDetails],
    sequences: List[Sequence],
    source_schema: str,
    target_schema: str,
    drop_existing: bool,
    terminator: TriggerTerminator,
    generated_at: datetime,
    trigger_file_name: Optional[str] = None,
) -> DdlScript:
    """Render the complete DDL script for already-introspected tables.

    Output depends only on the arguments, so rendering an unchanged model
    twice with the same ``generated_at`` gives identical text.
    """
    timestamp = generated_at.strftime("%Y-%m-%d %H:%M:%S")
    rendered = [retarget_table(t, source_schema, target_schema) for t in tables]

    lines = [
        RULE,
        "-- DM8 DDL export",
        RULE,
        f"-- Generated at: {timestamp}",
        f"-- Source schema: {source_schema}",
        f"-- Target schema: {target_schema}",
        f"-- Table count: {len(tables)}",
        f"-- Tables: {', '.join(t.name for t in tables)}",
        "--",
    ]
    lines.extend(_execution_notes(terminator))
    if drop_existing:
        lines.append("-- WARNING: existing tables are dropped before being recreated")
    else:
        lines.append("-- Existing tables are not dropped")
    lines.extend([
        "-- Triggers usually depend on sequences for key generation:",
        "-- run the SEQUENCE statements before the triggers",
        RULE,
        "",
    ])

    for i, table in enumerate(rendered):
        if i > 0:
            lines.append("")
        lines.append(render_table_block(table, drop_existing))

    # Foreign keys go after every table so referenced tables exist
    fk_statements = [stmt for table in rendered for stmt in generate_foreign_keys(table)]
    if fk_statements:
        lines.extend(["", "-- Foreign keys"])
        lines.extend(fk_statements)

    seq_statements = generate_sequences(target_schema, sequences)
    trigger_statements = [
        stmt for table in rendered
        for stmt in generate_triggers(target_schema, table.triggers, terminator)
    ]

    if seq_statements or trigger_statements:
        lines.extend([
            "",
            RULE,
            "-- Sequences and triggers",
            RULE,
            "-- Run the SEQUENCE statements before the triggers",
            RULE,
        ])
    if seq_statements:
        lines.extend(["", "-- Sequences (step 1)"])
        lines.extend(seq_statements)

    trigger_text = None
    if trigger_statements and terminator == TriggerTerminator.SEPARATE_SCRIPT:
        trigger_tables = [t.name for t in tables if t.triggers]
        trigger_lines = [
            RULE,
            "-- DM8 trigger DDL export",
            RULE,
            f"-- Generated at: {timestamp}",
            f"-- Target schema: {target_schema}",
            f"-- Trigger count: {len(trigger_statements)}",
            f"-- Tables: {', '.join(trigger_tables)}",
            "--",
            "-- Execution:",
            "--   1. DIsql: disql USER/PASSWORD@HOST:PORT -f <this file>",
            "--   2. Open and run this file in the DM management tool",
            "--   3. In statement-based clients, run each trigger individually",
            "--",
            "-- Run the SEQUENCE statements of the main DDL file first",
            "-- Each trigger is terminated by a '/' line",
            RULE,
            "",
        ]
        for stmt in trigger_statements:
            trigger_lines.extend([stmt, ""])
        trigger_text = "\n".join(trigger_lines) + "\n"

        lines.extend([
            "",
            "-- Triggers (step 2, after the sequences)",
            f"-- Triggers were written to a separate file: {trigger_file_name or 'triggers.sql'}",
            "-- Run that file with DIsql or another DM8 native tool",
        ])
    elif trigger_statements:
        lines.extend(["", "-- Triggers (step 2, after the sequences)"])
        lines.extend(trigger_statements)

    return DdlScript(main="\n".join(lines) + "\n", triggers=trigger_text)


def trigger_file_path(output_path: Path) -> Path:
    """``x.sql`` -> ``x.triggers.sql``"""
    return output_path.with_suffix(".triggers.sql")


def export_schema_ddl(
    introspector,
    source_schema: str,
    target_schema: str,
    tables: List[str],
    output_path: Path,
    drop_existing: bool = False,
    terminator: TriggerTerminator = TriggerTerminator.SCRIPT,
) -> List[Path]:
    """Introspect ``tables`` and write the DDL script. Returns the files written."""
    source_schema = source_schema.upper()
    target_schema = target_schema.upper()

    details = []
    for table_name in tables:
        with error_context(f"Failed to fetch table metadata for '{table_name}'"):
            details.append(introspector.get_table_details(source_schema, table_name))
        logger.info(f"Loaded metadata for {source_schema}.{table_name}")

    sequences = introspector.fetch_sequences(source_schema)

    output_path = Path(output_path)
    trigger_path = trigger_file_path(output_path)
    script = render_ddl_script(
        details,
        sequences,
        source_schema,
        target_schema,
        drop_existing,
        terminator,
        datetime.now(),
        trigger_file_name=trigger_path.name,
    )

    written = [output_path]
    with error_context(f"Failed to create parent directory for {output_path}"):
        output_path.parent.mkdir(parents=True, exist_ok=True)
    with error_context(f"Failed to write DDL export file at {output_path}"):
        output_path.write_text(script.main, encoding="utf-8")
    if script.triggers is not None:
        with error_context(f"Failed to write trigger export file at {trigger_path}"):
            trigger_path.write_text(script.triggers, encoding="utf-8")
        written.append(trigger_path)

    logger.info(f"Exported DDL for {len(details)} tables to {output_path}")
    return written
