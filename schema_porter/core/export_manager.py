"""Core orchestration of schema and data exports."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from ..config import AppSettings, ConnectionSettings
from ..errors import ConfigurationError, error_context
from ..models.metadata import TableDetails, TableSummary
from ..services.connector import DM8Connector
from ..services.data_exporter import export_schema_data
from ..services.ddl_generator import export_schema_ddl
from ..services.introspector import CatalogIntrospector, TriggerQueryLevelCache
from ..services.triggers import TriggerTerminator

logger = logging.getLogger(__name__)


def resolve_target_schema(source_schema: str, export_schema: Optional[str]) -> str:
    """The override when non-blank, otherwise the source schema."""
    if export_schema and export_schema.strip():
        return export_schema.strip().upper()
    return source_schema.upper()


def build_output_path(export_dir: Path, source_schema: str, target_schema: str,
                      kind: str, now: Optional[datetime] = None) -> Path:
    """``<dir>/<source>_to_<target>_<kind>_<YYYYmmdd_HHMMSS_mmm>.sql``"""
    now = now or datetime.now()
    stamp = now.strftime("%Y%m%d_%H%M%S_") + f"{now.microsecond // 1000:03d}"
    return Path(export_dir) / f"{source_schema}_to_{target_schema}_{kind}_{stamp}.sql"


@dataclass
class ExportOutcome:
    message: str
    file_path: Path
    extra_files: List[Path] = field(default_factory=list)
    row_count: Optional[int] = None


class ExportManager:
    """Runs catalog browsing and export operations against one DM8 source."""

    def __init__(self, app_settings: AppSettings,
                 trigger_levels: Optional[TriggerQueryLevelCache] = None,
                 connector_factory: Callable[..., DM8Connector] = DM8Connector):
        """Initialize with service settings and the shared trigger level cache."""
        self.app_settings = app_settings
        self.trigger_levels = trigger_levels or TriggerQueryLevelCache()
        self.connector_factory = connector_factory

    def _connector(self, settings: ConnectionSettings) -> DM8Connector:
        return self.connector_factory(settings, self.app_settings.driver)

    def _source_schema(self, settings: ConnectionSettings) -> str:
        schema = settings.source_schema
        if not schema:
            raise ConfigurationError("Source schema is required")
        return schema

    def test_connection(self, settings: ConnectionSettings) -> bool:
        return self._connector(settings).test_connection()

    def list_tables(self, settings: ConnectionSettings) -> List[TableSummary]:
        schema = self._source_schema(settings)
        with self._connector(settings).session() as conn:
            return CatalogIntrospector(conn, self.trigger_levels).list_tables(schema)

    def get_table_details(self, settings: ConnectionSettings, table: str) -> TableDetails:
        schema = self._source_schema(settings)
        with self._connector(settings).session() as conn:
            with error_context(f"Failed to fetch table metadata for '{table}'"):
                return CatalogIntrospector(conn, self.trigger_levels).get_table_details(schema, table)

    def export_ddl(self, settings: ConnectionSettings, tables: List[str],
                   export_schema: Optional[str] = None,
                   terminator: TriggerTerminator = TriggerTerminator.SCRIPT,
                   drop_existing: bool = False) -> ExportOutcome:
        """Write the DDL script for ``tables`` into the export directory."""
        if not tables:
            raise ConfigurationError("At least one table must be selected")
        source_schema = self._source_schema(settings)
        target_schema = resolve_target_schema(source_schema, export_schema or settings.export_schema)
        output_path = build_output_path(self.app_settings.export_dir, source_schema, target_schema, "ddl")

        logger.info(f"Exporting DDL for {len(tables)} tables from {source_schema} to {target_schema}")
        with self._connector(settings).session() as conn:
            introspector = CatalogIntrospector(conn, self.trigger_levels)
            written = export_schema_ddl(
                introspector,
                source_schema,
                target_schema,
                tables,
                output_path,
                drop_existing=drop_existing,
                terminator=terminator,
            )

        return ExportOutcome(
            message="DDL exported successfully",
            file_path=written[0],
            extra_files=written[1:],
        )

    def export_data(self, settings: ConnectionSettings, tables: List[str],
                    export_schema: Optional[str] = None,
                    batch_size: Optional[int] = None,
                    include_row_counts: bool = False) -> ExportOutcome:
        """Write the data-load script for ``tables`` into the export directory."""
        if not tables:
            raise ConfigurationError("At least one table must be selected")
        if batch_size is None:
            batch_size = self.app_settings.default_batch_size
        if batch_size <= 0:
            raise ConfigurationError(f"Batch size must be positive, got {batch_size}")
        source_schema = self._source_schema(settings)
        target_schema = resolve_target_schema(source_schema, export_schema or settings.export_schema)
        output_path = build_output_path(self.app_settings.export_dir, source_schema, target_schema, "data")

        logger.info(f"Exporting data for {len(tables)} tables from {source_schema} to {target_schema}")
        with self._connector(settings).session() as conn:
            introspector = CatalogIntrospector(conn, self.trigger_levels)
            row_count = export_schema_data(
                introspector,
                source_schema,
                target_schema,
                tables,
                output_path,
                batch_size=batch_size,
                include_row_counts=include_row_counts,
            )

        return ExportOutcome(
            message="Data exported successfully",
            file_path=output_path,
            row_count=row_count,
        )
