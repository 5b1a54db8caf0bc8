"""Pydantic schemas for API requests and responses."""

from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

from ..config import ConnectionSettings
from ..services.config_store import ConfigSource
from ..services.triggers import TriggerTerminator

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope for every API answer; ``error`` carries the full cause chain."""
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None


# Connection Schemas
class ConnectionConfig(BaseModel):
    """DM8 connection parameters."""
    host: str
    port: int = 5236
    username: str
    password: str
    schema_name: Optional[str] = Field(default=None, alias="schema")
    export_schema: Optional[str] = None

    class Config:
        populate_by_name = True

    def to_settings(self) -> ConnectionSettings:
        return ConnectionSettings(
            host=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            schema=self.schema_name,
            export_schema=self.export_schema,
        )

    @classmethod
    def from_settings(cls, settings: ConnectionSettings) -> "ConnectionConfig":
        return cls(
            host=settings.host,
            port=settings.port,
            username=settings.username,
            password=settings.password,
            schema_name=settings.schema,
            export_schema=settings.export_schema,
        )


class ConnectionTestResponse(BaseModel):
    success: bool
    message: str


class StoredConnectionResponse(BaseModel):
    config: ConnectionConfig
    source: ConfigSource
    updated_at: Optional[datetime] = None


# Catalog Schemas
class TableResponse(BaseModel):
    """Schema for a table in a listing."""
    name: str
    comment: Optional[str] = None
    row_count: Optional[int] = None

    class Config:
        from_attributes = True


class ColumnResponse(BaseModel):
    name: str
    data_type: str
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    char_semantics: Optional[str] = None
    nullable: bool
    comment: Optional[str] = None
    default_value: Optional[str] = None
    identity: bool = False
    identity_start: Optional[int] = None
    identity_increment: Optional[int] = None

    class Config:
        from_attributes = True


class IndexResponse(BaseModel):
    name: str
    columns: List[str]
    unique: bool

    class Config:
        from_attributes = True


class UniqueConstraintResponse(BaseModel):
    name: str
    columns: List[str]

    class Config:
        from_attributes = True


class CheckConstraintResponse(BaseModel):
    name: str
    condition: str

    class Config:
        from_attributes = True


class ForeignKeyResponse(BaseModel):
    name: str
    columns: List[str]
    referenced_owner: str
    referenced_table: str
    referenced_columns: List[str]
    delete_rule: Optional[str] = None
    update_rule: Optional[str] = None

    class Config:
        from_attributes = True


class TriggerResponse(BaseModel):
    name: str
    table_name: str
    timing: str
    events: List[str]
    each_row: bool
    body: str

    class Config:
        from_attributes = True


class TableDetailResponse(BaseModel):
    """Full metadata of one table."""
    name: str
    comment: Optional[str] = None
    columns: List[ColumnResponse] = []
    primary_keys: List[str] = []
    indexes: List[IndexResponse] = []
    unique_constraints: List[UniqueConstraintResponse] = []
    check_constraints: List[CheckConstraintResponse] = []
    foreign_keys: List[ForeignKeyResponse] = []
    triggers: List[TriggerResponse] = []

    class Config:
        from_attributes = True


# Export Schemas
class ExportRequest(BaseModel):
    """Schema for a DDL or data export request."""
    config: ConnectionConfig
    export_schema: Optional[str] = None
    tables: List[str] = Field(..., min_length=1)
    export_compat: TriggerTerminator = TriggerTerminator.SCRIPT
    batch_size: Optional[int] = Field(default=None, gt=0)
    drop_existing: bool = False
    include_row_counts: bool = False


class ExportResponse(BaseModel):
    success: bool
    message: str
    file_path: Optional[str] = None
    extra_files: List[str] = []
    row_count: Optional[int] = None
