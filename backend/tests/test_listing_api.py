"""Integration tests for the listing API endpoints."""

from pathlib import Path

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from platformcore.access import Identity
from platformcore.api import NONCE_HEADER, create_listing_router
from platformcore.persistence import Database, DatabaseConfig

from conftest import seed_database

ENTITIES_DIR = Path(__file__).parent.parent.parent / "entities"

IDENTITIES = {
    "admin": Identity("1", {"manage_options", "view_customer_list"}),
    "employee": Identity("200", {"view_customer_list", "view_own_customer"}),
    "nobody": Identity("2"),
}


def _app(dispatcher, token_service) -> FastAPI:
    app = FastAPI()

    @app.middleware("http")
    async def test_identity(request: Request, call_next):
        request.state.identity = IDENTITIES.get(request.headers.get("X-Test-User", ""))
        return await call_next(request)

    app.include_router(
        create_listing_router(
            get_dispatcher=lambda: dispatcher,
            get_token_service=lambda: token_service,
        )
    )
    return app


@pytest.fixture
def client(dispatcher, token_service, customer):
    with TestClient(_app(dispatcher, token_service)) as client:
        yield client


def _nonce(client, user):
    response = client.get("/api/datatable/nonce", headers={"X-Test-User": user})
    assert response.status_code == 200
    return response.json()["nonce"]


# =============================================================================
# Nonce endpoint
# =============================================================================


class TestNonce:
    def test_issues_nonce(self, client):
        response = client.get("/api/datatable/nonce", headers={"X-Test-User": "admin"})

        assert response.status_code == 200
        data = response.json()
        assert len(data["nonce"].split(".")) == 3
        assert data["expiresIn"] == 12 * 60 * 60

    def test_requires_identity(self, client):
        assert client.get("/api/datatable/nonce").status_code == 401


# =============================================================================
# Listing endpoint
# =============================================================================


class TestListing:
    def test_lists_rows(self, client):
        nonce = _nonce(client, "admin")
        response = client.post(
            "/api/datatable/customer",
            json={"nonce": nonce, "draw": 2, "start": 0, "length": 5},
            headers={"X-Test-User": "admin"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["draw"] == 2
        assert data["recordsTotal"] == 12
        assert data["recordsFiltered"] == 10
        assert len(data["data"]) == 5
        assert data["data"][0]["DT_RowId"] == "customer-10"

    def test_nonce_in_header(self, client):
        nonce = _nonce(client, "employee")
        response = client.post(
            "/api/datatable/customer",
            json={"draw": 1},
            headers={"X-Test-User": "employee", NONCE_HEADER: nonce},
        )

        assert response.status_code == 200
        assert response.json()["recordsFiltered"] == 2

    def test_form_style_keys(self, client):
        nonce = _nonce(client, "admin")
        response = client.post(
            "/api/datatable/customer",
            json={"nonce": nonce, "search[value]": "acme", "status_filter": "all"},
            headers={"X-Test-User": "admin"},
        )
        assert response.json()["recordsFiltered"] == 2

    def test_requires_identity(self, client):
        assert client.post("/api/datatable/customer", json={}).status_code == 401


class TestErrors:
    def test_missing_nonce(self, client):
        response = client.post("/api/datatable/customer", json={}, headers={"X-Test-User": "admin"})

        assert response.status_code == 403
        assert response.json() == {
            "error": {"code": "SECURITY_CHECK_FAILED", "message": "Security check failed"}
        }

    @pytest.mark.parametrize("nonce", [12345, "9999999999.abcdef.üü", ["x"]])
    def test_malformed_nonce(self, client, nonce):
        response = client.post(
            "/api/datatable/customer", json={"nonce": nonce}, headers={"X-Test-User": "admin"}
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "SECURITY_CHECK_FAILED"

    def test_nonce_of_other_identity(self, client):
        nonce = _nonce(client, "employee")
        response = client.post(
            "/api/datatable/customer", json={"nonce": nonce}, headers={"X-Test-User": "admin"}
        )
        assert response.status_code == 403

    def test_unknown_entity(self, client):
        nonce = _nonce(client, "admin")
        response = client.post(
            "/api/datatable/nope", json={"nonce": nonce}, headers={"X-Test-User": "admin"}
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "UNKNOWN_ENTITY"

    def test_permission_denied(self, client):
        nonce = _nonce(client, "nobody")
        response = client.post(
            "/api/datatable/customer", json={"nonce": nonce}, headers={"X-Test-User": "nobody"}
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "PERMISSION_DENIED"

    def test_store_failure(self, client, db):
        db.execute("DROP TABLE app_customer_branches")
        nonce = _nonce(client, "admin")
        response = client.post(
            "/api/datatable/customer", json={"nonce": nonce}, headers={"X-Test-User": "admin"}
        )

        assert response.status_code == 503
        assert response.json()["error"] == {
            "code": "DATA_ACCESS_ERROR",
            "message": "An error occurred while loading data",
        }

    def test_invalid_json(self, client):
        response = client.post(
            "/api/datatable/customer",
            content="not json",
            headers={"X-Test-User": "admin", "Content-Type": "application/json"},
        )
        assert response.status_code == 400

    def test_non_object_body(self, client):
        response = client.post("/api/datatable/customer", json=[1, 2], headers={"X-Test-User": "admin"})
        assert response.status_code == 400

    def test_uninitialized_services(self):
        app = FastAPI()
        app.include_router(create_listing_router(lambda: None, lambda: None))
        with TestClient(app) as client:
            assert client.get("/api/datatable/nonce").status_code == 500


# =============================================================================
# Application wiring
# =============================================================================


@pytest.fixture
def app_client(tmp_path, monkeypatch):
    """Client for the real application, configured from the environment."""
    db_file = tmp_path / "app.db"
    database = Database.from_config(DatabaseConfig(url=f"sqlite:///{db_file}"))
    seed_database(database)
    database.dispose()

    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_file}")
    monkeypatch.setenv("PLATFORMCORE_ENTITIES_PATH", str(ENTITIES_DIR))
    monkeypatch.setenv("PLATFORMCORE_TRUST_IDENTITY_HEADERS", "1")
    monkeypatch.setenv("PLATFORMCORE_SECRET_KEY", "app-test-secret")

    from platformcore.api.app import app

    with TestClient(app) as client:
        yield client


ADMIN_HEADERS = {
    "X-Identity-Id": "1",
    "X-Identity-Capabilities": "manage_options, view_customer_list",
}


class TestApplication:
    def test_health(self, app_client):
        assert app_client.get("/api/health").json() == {"status": "ok"}

    def test_lists_registered_entities(self, app_client):
        data = app_client.get("/api/entities").json()["data"]
        names = {entity["name"] for entity in data}
        assert {"customer", "agency"} <= names

    def test_end_to_end_listing(self, app_client):
        nonce = app_client.get("/api/datatable/nonce", headers=ADMIN_HEADERS).json()["nonce"]
        response = app_client.post(
            "/api/datatable/customer",
            json={"nonce": nonce, "draw": 1},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["recordsTotal"] == 12
        assert response.json()["recordsFiltered"] == 10

    def test_identity_headers_roles(self, app_client):
        headers = {
            "X-Identity-Id": "500",
            "X-Identity-Capabilities": "view_customer_list",
            "X-Identity-Roles": "platform_viewer",
        }
        nonce = app_client.get("/api/datatable/nonce", headers=headers).json()["nonce"]
        response = app_client.post(
            "/api/datatable/customer", json={"nonce": nonce}, headers=headers
        )
        assert response.json()["recordsFiltered"] == 10

    def test_without_identity_headers(self, app_client):
        assert app_client.get("/api/datatable/nonce").status_code == 401
