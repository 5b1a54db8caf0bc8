"""Batched INSERT script generation."""

import logging
from datetime import date, datetime, time
from decimal import Decimal
from pathlib import Path
from typing import Any, List, Optional, TextIO

from sqlalchemy import text
from sqlalchemy.engine import Connection

from ..config import DEFAULT_BATCH_SIZE
from ..errors import error_context
from ..models.metadata import Column
from .literals import format_row_value, quote_identifier

logger = logging.getLogger(__name__)


def value_to_text(value: Any) -> Optional[str]:
    """Convert a fetched value to the text form the literal renderer expects."""
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex().upper()
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def _write_batch(writer: TextIO, target: str, column_list: str, batch: List[str]) -> None:
    writer.write(f"INSERT INTO {target} ({column_list}) VALUES\n")
    writer.write(",\n".join(batch))
    writer.write(";\n")


def export_table_data(
    connection: Connection,
    source_schema: str,
    target_schema: str,
    table_name: str,
    columns: List[Column],
    writer: TextIO,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> int:
    """Stream one table's rows into multi-row INSERT statements.

    Rows are read with an explicit column list so that the values always
    line up with the INSERT column list. Returns the number of rows written.
    """
    source = quote_identifier(f"{source_schema.upper()}.{table_name.upper()}")
    target = quote_identifier(f"{target_schema.upper()}.{table_name.upper()}")
    column_list = ", ".join(quote_identifier(c.name) for c in columns)

    query = text(f"SELECT {column_list} FROM {source}").execution_options(stream_results=True)
    result = connection.execute(query)

    row_count = 0
    batch: List[str] = []
    while True:
        rows = result.fetchmany(batch_size)
        if not rows:
            break
        for row in rows:
            values = [
                format_row_value(column.data_type, value_to_text(value))
                for column, value in zip(columns, row)
            ]
            batch.append(f"({', '.join(values)})")
            row_count += 1
            if len(batch) >= batch_size:
                _write_batch(writer, target, column_list, batch)
                batch = []

    if batch:
        _write_batch(writer, target, column_list, batch)

    logger.info(f"Exported {row_count} rows from {source_schema}.{table_name}")
    return row_count


def export_schema_data(
    introspector,
    source_schema: str,
    target_schema: str,
    tables: List[str],
    output_path: Path,
    batch_size: int = DEFAULT_BATCH_SIZE,
    include_row_counts: bool = False,
) -> int:
    """Write a data-load script for ``tables`` and return the total row count."""
    source_schema = source_schema.upper()
    target_schema = target_schema.upper()
    output_path = Path(output_path)

    details = []
    for table_name in tables:
        with error_context(f"Failed to fetch table metadata for '{table_name}'"):
            details.append(introspector.get_table_details(source_schema, table_name))

    sequences = introspector.fetch_sequences(source_schema)

    expected_rows = {}
    if include_row_counts:
        for table in details:
            expected_rows[table.name] = introspector.estimate_row_count(source_schema, table.name)

    with error_context(f"Failed to create parent directory for {output_path}"):
        output_path.parent.mkdir(parents=True, exist_ok=True)

    exported_total = 0
    with error_context(f"Failed to write data export file at {output_path}"):
        with open(output_path, "w", encoding="utf-8") as writer:
            writer.write("-- DM8 Data Export\n")
            writer.write(f"-- Tables: {len(details)}\n")
            if include_row_counts:
                total = sum(count for count in expected_rows.values() if count)
                writer.write(f"-- Rows (estimated): {total}\n")
            else:
                writer.write("-- Rows (estimated): skipped (per request)\n")
            writer.write(f"-- Generated at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
            writer.write("-- Warning: This script truncates tables before inserting data.\n")
            if sequences:
                writer.write("-- Sequences are reset to their captured current values before inserts\n")
            writer.write("\n")

            if sequences:
                writer.write("-- Reset sequences\n")
                for seq in sequences:
                    restart = seq.current_value if seq.current_value is not None else 1
                    ident = quote_identifier(f"{target_schema}.{seq.name}")
                    writer.write(f"ALTER SEQUENCE {ident} RESTART WITH {restart};\n")
                writer.write("\n")

            for i, table in enumerate(details):
                if i > 0:
                    writer.write("\n")
                count = expected_rows.get(table.name)
                suffix = f" ({count} rows)" if count is not None else " (rows unknown)"
                target = quote_identifier(f"{target_schema}.{table.name}")
                writer.write(f"-- Data for table: {target_schema}.{table.name}{suffix}\n")
                writer.write(f"TRUNCATE TABLE {target};\n")

                has_identity = table.identity_column is not None
                if has_identity:
                    writer.write(f"SET IDENTITY_INSERT {target} ON;\n")
                with error_context(f"Failed to export data for table '{table.name}'"):
                    exported_total += export_table_data(
                        introspector.connection,
                        source_schema,
                        target_schema,
                        table.name,
                        table.columns,
                        writer,
                        batch_size,
                    )
                if has_identity:
                    writer.write(f"SET IDENTITY_INSERT {target} OFF;\n")

    logger.info(f"Exported {exported_total} rows from {len(details)} tables to {output_path}")
    return exported_total
