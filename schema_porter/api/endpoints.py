"""API endpoints for connection management, catalog browsing and exports."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import List

from fastapi import APIRouter, Depends, Query
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError

from .. import __version__
from ..config import AppSettings, ConnectionSettings
from ..core import ExportManager
from ..errors import ConfigurationError, ConnectivityError, ExportError, format_error_chain
from ..services.config_store import ConfigStore
from ..services.introspector import TriggerQueryLevelCache
from .schemas import (
    ApiResponse,
    ConnectionConfig,
    ConnectionTestResponse,
    StoredConnectionResponse,
    TableResponse,
    TableDetailResponse,
    ExportRequest,
    ExportResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["DM8 Export"])

# Shared by all requests so a degraded trigger query level sticks
trigger_levels = TriggerQueryLevelCache()

EXPORT_FAILURES = (ExportError, SQLAlchemyError, OSError)


def get_app_settings() -> AppSettings:
    return AppSettings.from_env()


@lru_cache(maxsize=None)
def _open_config_store(db_path: Path) -> ConfigStore:
    return ConfigStore(db_path)


def get_config_store(settings: AppSettings = Depends(get_app_settings)) -> ConfigStore:
    return _open_config_store(settings.config_db_path)


def get_export_manager(settings: AppSettings = Depends(get_app_settings)) -> ExportManager:
    return ExportManager(settings, trigger_levels)


def _failure(action: str, error: BaseException) -> ApiResponse:
    detail = format_error_chain(error)
    if isinstance(error, (ConfigurationError, ConnectivityError)):
        message = f"Failed to create connection: {detail}"
    else:
        message = f"{action}: {detail}"
    logger.error(message)
    return ApiResponse(success=False, error=message)


def _query_settings(host: str, port: int, username: str, password: str, schema: str) -> ConnectionSettings:
    return ConnectionSettings(host=host, port=port, username=username, password=password, schema=schema)


@router.get("/health")
async def health_check():
    """Liveness check."""
    return {"status": "ok", "version": __version__}


@router.post("/connection/test", response_model=ApiResponse[ConnectionTestResponse])
async def test_connection(config: ConnectionConfig, manager: ExportManager = Depends(get_export_manager)):
    """Connect with the given parameters and switch to the schema."""
    try:
        await run_in_threadpool(manager.test_connection, config.to_settings())
    except EXPORT_FAILURES as e:
        return _failure("Connection test failed", e)
    return ApiResponse(success=True, data=ConnectionTestResponse(success=True, message="Connection successful"))


@router.get("/tables", response_model=ApiResponse[List[TableResponse]])
async def list_tables(
    host: str,
    username: str,
    password: str,
    schema: str,
    port: int = Query(5236, gt=0),
    manager: ExportManager = Depends(get_export_manager),
):
    """List the tables of a schema."""
    settings = _query_settings(host, port, username, password, schema)
    try:
        tables = await run_in_threadpool(manager.list_tables, settings)
    except EXPORT_FAILURES as e:
        return _failure("Failed to get tables", e)
    return ApiResponse(success=True, data=[TableResponse.model_validate(t) for t in tables])


@router.get("/tables/{table}/details", response_model=ApiResponse[TableDetailResponse])
async def get_table_details(
    table: str,
    host: str,
    username: str,
    password: str,
    schema: str,
    port: int = Query(5236, gt=0),
    manager: ExportManager = Depends(get_export_manager),
):
    """Columns, constraints, indexes and triggers of one table."""
    settings = _query_settings(host, port, username, password, schema)
    try:
        details = await run_in_threadpool(manager.get_table_details, settings, table)
    except EXPORT_FAILURES as e:
        return _failure("Failed to get table details", e)
    return ApiResponse(success=True, data=TableDetailResponse.model_validate(details))


@router.post("/export/ddl", response_model=ApiResponse[ExportResponse])
async def export_ddl(request: ExportRequest, manager: ExportManager = Depends(get_export_manager)):
    """Write a DDL script for the selected tables."""
    try:
        outcome = await run_in_threadpool(
            manager.export_ddl,
            request.config.to_settings(),
            request.tables,
            request.export_schema,
            request.export_compat,
            request.drop_existing,
        )
    except EXPORT_FAILURES as e:
        return _failure("Failed to export DDL", e)

    return ApiResponse(success=True, data=ExportResponse(
        success=True,
        message=outcome.message,
        file_path=str(outcome.file_path),
        extra_files=[str(p) for p in outcome.extra_files],
    ))


@router.post("/export/data", response_model=ApiResponse[ExportResponse])
async def export_data(request: ExportRequest, manager: ExportManager = Depends(get_export_manager)):
    """Write a batched INSERT script for the selected tables."""
    try:
        outcome = await run_in_threadpool(
            manager.export_data,
            request.config.to_settings(),
            request.tables,
            request.export_schema,
            request.batch_size,
            request.include_row_counts,
        )
    except EXPORT_FAILURES as e:
        return _failure("Failed to export data", e)

    return ApiResponse(success=True, data=ExportResponse(
        success=True,
        message=outcome.message,
        file_path=str(outcome.file_path),
        row_count=outcome.row_count,
    ))


@router.get("/config/connection", response_model=ApiResponse[StoredConnectionResponse])
async def get_connection(store: ConfigStore = Depends(get_config_store)):
    """The saved default connection, or the environment fallback."""
    try:
        stored = await run_in_threadpool(store.load_effective)
    except EXPORT_FAILURES as e:
        return _failure("Failed to read saved config", e)
    return ApiResponse(success=True, data=StoredConnectionResponse(
        config=ConnectionConfig.from_settings(stored.settings),
        source=stored.source,
        updated_at=stored.updated_at,
    ))


@router.post("/config/connection", response_model=ApiResponse[StoredConnectionResponse])
async def save_connection(config: ConnectionConfig, store: ConfigStore = Depends(get_config_store)):
    """Validate and save the default connection."""
    try:
        stored = await run_in_threadpool(store.upsert_default, config.to_settings())
    except ConfigurationError as e:
        return ApiResponse(success=False, error=f"Invalid connection config: {format_error_chain(e)}")
    except EXPORT_FAILURES as e:
        return _failure("Failed to save connection", e)
    return ApiResponse(success=True, data=StoredConnectionResponse(
        config=ConnectionConfig.from_settings(stored.settings),
        source=stored.source,
        updated_at=stored.updated_at,
    ))
