"""Schema Porter - DM8 schema and data export."""

__version__ = "0.1.0"
