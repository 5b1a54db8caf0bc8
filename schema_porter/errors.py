"""Error types raised by the export pipeline."""

from contextlib import contextmanager
from typing import Iterator, List

from sqlalchemy.exc import SQLAlchemyError


class ExportError(Exception):
    """Base class for every failure the exporter reports to callers."""


class ConfigurationError(ExportError):
    """Connection settings are missing or invalid."""


class ConnectivityError(ExportError):
    """The database could not be reached."""


class TableNotFoundError(ExportError):
    """A requested table has no columns in the catalog."""


class CatalogError(ExportError):
    """A catalog query failed or returned an unexpected shape."""


class ExportIOError(ExportError):
    """The output file could not be created or written."""


@contextmanager
def error_context(message: str) -> Iterator[None]:
    """Re-raise failures inside the block with a contextual message.

    The original exception stays reachable through ``__cause__`` so that
    :func:`format_error_chain` can render the whole chain.
    """
    try:
        yield
    except ExportError as e:
        raise type(e)(message) from e
    except SQLAlchemyError as e:
        raise CatalogError(message) from e
    except OSError as e:
        raise ExportIOError(message) from e


def format_error_chain(error: BaseException) -> str:
    """Render an exception and its causes as ``outer: inner: root``."""
    parts: List[str] = []
    seen = set()
    current = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        text = str(current).strip()
        if isinstance(current, SQLAlchemyError):
            # Drop the "(Background on this error at ...)" trailer
            text = text.split("\n(Background on this error")[0].strip()
        if text and (not parts or parts[-1] != text):
            parts.append(text)
        current = current.__cause__
    return ": ".join(parts) if parts else error.__class__.__name__
