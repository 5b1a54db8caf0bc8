"""Tests for the HTTP API with fake database access.

Run with: pytest tests/test_api.py -v
"""

import pytest
from fastapi.testclient import TestClient

from schema_porter import __version__
from schema_porter.api.endpoints import get_config_store, get_export_manager
from schema_porter.api.main import app
from schema_porter.config import AppSettings
from schema_porter.core import ExportManager
from schema_porter.errors import ConnectivityError
from schema_porter.services.config_store import ConfigStore
from schema_porter.services.introspector import TriggerQueryLevelCache

CONFIG = {"host": "db1", "port": 5236, "username": "SYSDBA", "password": "pw", "schema": "SRC"}
QUERY = {"host": "db1", "username": "SYSDBA", "password": "pw", "schema": "SRC"}


@pytest.fixture
def client(tmp_path, fake_connection, connector_factory, monkeypatch):
    for name in ["DATABASE_HOST", "DATABASE_PORT", "DATABASE_USERNAME", "DATABASE_PASSWORD", "DATABASE_SCHEMA"]:
        monkeypatch.delenv(name, raising=False)

    (fake_connection
        .add("FROM ALL_TABLES t", [("ORDERS", "Customer orders", 3)])
        .add("FROM ALL_TAB_COLUMNS c", lambda params: [
            ("ID", "NUMBER", 22, None, None, 10, 0, "N", None, None),
        ] if params["table_name"] == "ORDERS" else [])
        .add("CONSTRAINT_TYPE = 'P'", [("ID",)])
        .add('FROM "SRC"."ORDERS"', [(1,), (2,), (3,)]))

    app_settings = AppSettings(export_dir=tmp_path / "exports")
    manager = ExportManager(app_settings, TriggerQueryLevelCache(), connector_factory=connector_factory)
    store = ConfigStore(tmp_path / "config.db")

    app.dependency_overrides[get_export_manager] = lambda: manager
    app.dependency_overrides[get_config_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "version": __version__}


class TestConnection:

    def test_success(self, client):
        body = client.post("/api/connection/test", json=CONFIG).json()
        assert body["success"] is True
        assert body["data"]["message"] == "Connection successful"

    def test_missing_password_reported_as_connection_failure(self, client):
        body = client.post("/api/connection/test", json={**CONFIG, "password": ""}).json()
        assert body["success"] is False
        assert body["error"] == "Failed to create connection: Database password is required"

    def test_unreachable_server(self, client, connector_factory):
        connector_factory.error = ConnectivityError("Failed to connect to DM8 at SYSDBA@db1:5236")
        body = client.post("/api/connection/test", json=CONFIG).json()
        assert body["success"] is False
        assert body["error"].startswith("Failed to create connection: Failed to connect to DM8")


class TestCatalog:

    def test_list_tables(self, client):
        body = client.get("/api/tables", params=QUERY).json()
        assert body["success"] is True
        assert body["data"] == [{"name": "ORDERS", "comment": "Customer orders", "row_count": 3}]

    def test_table_details(self, client):
        body = client.get("/api/tables/orders/details", params=QUERY).json()
        assert body["success"] is True
        assert body["data"]["name"] == "ORDERS"
        assert body["data"]["primary_keys"] == ["ID"]
        assert body["data"]["columns"][0]["nullable"] is False

    def test_unknown_table_error_keeps_cause_chain(self, client):
        body = client.get("/api/tables/missing/details", params=QUERY).json()
        assert body["success"] is False
        assert body["error"] == (
            "Failed to get table details: Failed to fetch table metadata for 'missing': "
            "Table SRC.MISSING not found"
        )


class TestExport:

    def test_export_ddl(self, client, tmp_path):
        body = client.post("/api/export/ddl", json={
            "config": CONFIG,
            "export_schema": "dst",
            "tables": ["ORDERS"],
            "export_compat": "statement",
        }).json()

        assert body["success"] is True
        assert body["data"]["message"] == "DDL exported successfully"
        assert "SRC_to_DST_ddl_" in body["data"]["file_path"]
        with open(body["data"]["file_path"], encoding="utf-8") as f:
            assert 'CREATE TABLE "DST"."ORDERS"' in f.read()

    def test_export_data(self, client):
        body = client.post("/api/export/data", json={
            "config": CONFIG,
            "tables": ["ORDERS"],
            "batch_size": 2,
        }).json()

        assert body["success"] is True
        assert body["data"]["row_count"] == 3
        assert body["data"]["message"] == "Data exported successfully"

    def test_empty_table_list_rejected(self, client):
        response = client.post("/api/export/ddl", json={"config": CONFIG, "tables": []})
        assert response.status_code == 422

    def test_unknown_terminator_rejected(self, client):
        response = client.post("/api/export/ddl", json={
            "config": CONFIG, "tables": ["ORDERS"], "export_compat": "semicolons",
        })
        assert response.status_code == 422

    def test_unknown_table_fails_whole_export(self, client, tmp_path):
        body = client.post("/api/export/ddl", json={"config": CONFIG, "tables": ["ORDERS", "NOPE"]}).json()
        assert body["success"] is False
        assert body["error"].startswith("Failed to export DDL: Failed to fetch table metadata for 'NOPE'")
        assert not list((tmp_path / "exports").glob("*.sql"))


class TestSavedConnection:

    def test_environment_fallback(self, client, monkeypatch):
        monkeypatch.setenv("DATABASE_HOST", "env-host")
        body = client.get("/api/config/connection").json()
        assert body["data"]["source"] == "env"
        assert body["data"]["config"]["host"] == "env-host"

    def test_save_and_read_back(self, client):
        saved = client.post("/api/config/connection", json={**CONFIG, "export_schema": "DST"}).json()
        assert saved["success"] is True
        assert saved["data"]["source"] == "sqlite"

        body = client.get("/api/config/connection").json()
        assert body["data"]["config"]["schema"] == "SRC"
        assert body["data"]["config"]["export_schema"] == "DST"
        assert body["data"]["updated_at"] is not None

    def test_invalid_config_not_saved(self, client):
        body = client.post("/api/config/connection", json={**CONFIG, "host": ""}).json()
        assert body["success"] is False
        assert body["error"] == "Invalid connection config: Database host is required"
