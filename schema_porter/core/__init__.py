"""Core export orchestration."""

from .export_manager import ExportManager, ExportOutcome, build_output_path, resolve_target_schema

__all__ = ["ExportManager", "ExportOutcome", "build_output_path", "resolve_target_schema"]
