"""Shared fixtures: a fake DM8 connection that answers catalog queries from canned rows."""

from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import pytest

from schema_porter.models.metadata import Column, TableDetails
from schema_porter.services.introspector import TriggerQueryLevelCache

Rows = Union[List[Sequence[Any]], Callable[[Dict[str, Any]], List[Sequence[Any]]]]


class FakeResult:
    def __init__(self, rows: List[Sequence[Any]]):
        self._rows = [tuple(r) for r in rows]
        self._pos = 0

    def fetchall(self):
        rest = self._rows[self._pos:]
        self._pos = len(self._rows)
        return rest

    def fetchmany(self, size):
        chunk = self._rows[self._pos:self._pos + size]
        self._pos += len(chunk)
        return chunk

    def fetchone(self):
        chunk = self.fetchmany(1)
        return chunk[0] if chunk else None

    def scalar(self):
        row = self.fetchone()
        return row[0] if row else None


class FakeConnection:
    """Routes each statement to the first registered SQL fragment it contains."""

    def __init__(self):
        self.routes: List[Tuple[str, Optional[Rows], Optional[Exception]]] = []
        self.executed: List[Tuple[str, Dict[str, Any]]] = []

    def add(self, fragment: str, rows: Optional[Rows] = None, error: Optional[Exception] = None):
        self.routes.append((fragment, rows, error))
        return self

    def execute(self, statement, params=None):
        sql = str(statement)
        params = dict(params or {})
        self.executed.append((sql, params))
        for fragment, rows, error in self.routes:
            if fragment in sql:
                if error is not None:
                    raise error
                if callable(rows):
                    rows = rows(params)
                return FakeResult(rows or [])
        return FakeResult([])

    def statements_containing(self, fragment: str) -> List[str]:
        return [sql for sql, _ in self.executed if fragment in sql]


@pytest.fixture
def fake_connection():
    return FakeConnection()


@pytest.fixture
def trigger_levels():
    return TriggerQueryLevelCache()


@pytest.fixture
def orders_table():
    """An ORDERS table with an identity key, a default and a comment."""
    return TableDetails(
        name="ORDERS",
        comment="Customer orders",
        columns=[
            Column(name="ID", data_type="NUMBER", precision=10, scale=0, nullable=False,
                   identity=True, identity_start=1, identity_increment=1),
            Column(name="CODE", data_type="VARCHAR2", length=32, char_semantics="C",
                   nullable=False, comment="Order code"),
            Column(name="STATUS", data_type="VARCHAR2", length=16, char_semantics="B",
                   default_value="'NEW'"),
            Column(name="CREATED_AT", data_type="TIMESTAMP", scale=6, default_value="SYSTIMESTAMP"),
        ],
        primary_keys=["ID"],
    )


@pytest.fixture
def connector_factory(fake_connection):
    """A connector class whose sessions hand out ``fake_connection``."""

    class FakeConnector:
        opened = []
        error = None

        def __init__(self, settings, driver):
            settings.validate()
            self.settings = settings
            self.driver = driver
            FakeConnector.opened.append(self)

        @contextmanager
        def session(self):
            if FakeConnector.error is not None:
                raise FakeConnector.error
            yield fake_connection

        def test_connection(self):
            with self.session():
                pass
            return True

    return FakeConnector
