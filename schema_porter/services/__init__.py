"""Services for catalog introspection and script generation."""

from .connector import DM8Connector
from .introspector import CatalogIntrospector, TriggerQueryLevel, TriggerQueryLevelCache
from .triggers import TriggerTerminator

__all__ = [
    "DM8Connector",
    "CatalogIntrospector",
    "TriggerQueryLevel",
    "TriggerQueryLevelCache",
    "TriggerTerminator",
]
