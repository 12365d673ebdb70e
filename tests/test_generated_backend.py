"""
tests/test_generated_backend.py
End-to-end tests of the generated FastAPI backend.

schema_example.yaml is generated into tmp_path, the emitted ``backend``
package is imported from there with an aiosqlite database file, and the
application is driven through FastAPI's TestClient.

Tests cover:
- CRUD with populated references
- Search, equality filters and pagination clamping
- Multipart uploads
- Login and token issuance
- Error bodies (404, 500)
"""

from __future__ import annotations

import importlib
import pathlib
import sys
from types import ModuleType
from typing import Any, Dict, Iterator

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine, text

from sheetforge.exporters import FilesystemArtifactStore
from sheetforge.generator import ScaffoldGenerator
from sheetforge.ingest import load_schema_file

ROOT_DIR: pathlib.Path = pathlib.Path(__file__).resolve().parent.parent
SCHEMA_EXAMPLE_PATH: pathlib.Path = ROOT_DIR / "schema_example.yaml"
JWT_SECRET: str = "generated-backend-secret"


# ===========================================================================
# Helpers
# ===========================================================================


def _forget_backend() -> None:
    for name in [n for n in sys.modules if n == "backend" or n.startswith("backend.")]:
        del sys.modules[name]


@pytest.fixture()
def backend_dir(tmp_path: pathlib.Path) -> pathlib.Path:
    schema, config = load_schema_file(SCHEMA_EXAMPLE_PATH)
    report = ScaffoldGenerator(config, FilesystemArtifactStore(tmp_path)).generate(schema)
    assert report.success, report.summary()
    return tmp_path


@pytest.fixture()
def main_module(backend_dir: pathlib.Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[ModuleType]:
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{(backend_dir / 'admin.db').as_posix()}")
    monkeypatch.setenv("UPLOAD_DIR", str(backend_dir / "uploads"))
    monkeypatch.setenv("JWT_SECRET", JWT_SECRET)
    monkeypatch.syspath_prepend(str(backend_dir))
    _forget_backend()
    import backend.main

    yield backend.main
    _forget_backend()


@pytest.fixture()
def client(main_module: ModuleType) -> Iterator[TestClient]:
    with TestClient(main_module.app) as test_client:
        yield test_client


def _create_product(client: TestClient, **fields: Any) -> Dict[str, Any]:
    payload = {"title": "Lamp", "price": 10}
    payload.update(fields)
    response = client.post("/api/product", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


# ===========================================================================
# CRUD
# ===========================================================================


class TestCrud:
    def test_routers_follow_the_manifest(self, main_module: ModuleType) -> None:
        paths = set(main_module.app.openapi()["paths"])
        assert {"/api/category", "/api/product/{item_id}", "/api/brand", "/api/auth/login"} <= paths
        assert not any(path.startswith("/api/authusers") for path in paths)

    def test_create_get_update_delete(self, client: TestClient) -> None:
        created = _create_product(client, price="12.5", inStock="yes", status="draft", unknown="x")
        assert created["title"] == "Lamp"
        assert created["price"] == 12.5
        assert created["inStock"] is True
        assert created["created_at"] is not None
        assert "unknown" not in created
        item_id = created["id"]

        fetched = client.get(f"/api/product/{item_id}")
        assert fetched.status_code == 200
        assert fetched.json()["status"] == "draft"

        updated = client.put(f"/api/product/{item_id}", json={"price": 15})
        assert updated.status_code == 200
        assert updated.json()["price"] == 15.0
        assert updated.json()["title"] == "Lamp"

        deleted = client.delete(f"/api/product/{item_id}")
        assert deleted.json() == {"message": "Product deleted successfully."}
        missing = client.get(f"/api/product/{item_id}")
        assert missing.status_code == 404
        assert missing.json() == {"message": "Product not found"}

    def test_reference_is_populated(self, client: TestClient) -> None:
        category = client.post("/api/category", json={"name": "Lighting"}).json()
        product = _create_product(client, category=category["id"])
        assert product["category"]["id"] == category["id"]
        assert product["category"]["name"] == "Lighting"
        listed = client.get("/api/product").json()["data"][0]
        assert listed["category"]["name"] == "Lighting"

    def test_unknown_record_on_update_and_delete(self, client: TestClient) -> None:
        assert client.put("/api/brand/99", json={"name": "x"}).status_code == 404
        assert client.delete("/api/brand/99").json() == {"message": "Brand not found"}

    def test_server_error_body_has_no_statement(self, client: TestClient) -> None:
        response = client.post("/api/product", json={"price": 1})
        assert response.status_code == 500
        body = response.json()
        assert body["message"] == "Failed to create Product"
        assert "NOT NULL" in body["error"]
        assert "INSERT" not in body["error"]


# ===========================================================================
# List
# ===========================================================================


class TestList:
    def test_envelope_and_newest_first(self, client: TestClient) -> None:
        for title in ("First", "Second", "Third"):
            _create_product(client, title=title)
        body = client.get("/api/product").json()
        assert (body["total"], body["page"], body["limit"]) == (3, 1, 10)
        assert [r["title"] for r in body["data"]] == ["Third", "Second", "First"]

    def test_pagination_and_clamping(self, client: TestClient) -> None:
        for i in range(5):
            _create_product(client, title=f"P{i}")
        page = client.get("/api/product", params={"page": 2, "limit": 2}).json()
        assert [r["title"] for r in page["data"]] == ["P2", "P1"]
        clamped = client.get("/api/product", params={"page": "abc", "limit": 1000}).json()
        assert (clamped["page"], clamped["limit"]) == (1, 100)
        assert clamped["total"] == 5

    def test_search_is_case_insensitive_and_literal(self, client: TestClient) -> None:
        for title in ("Desk Lamp", "LAMPSHADE", "50% off", "500 units"):
            _create_product(client, title=title)
        lamps = client.get("/api/product", params={"search": "lamp"}).json()
        assert sorted(r["title"] for r in lamps["data"]) == ["Desk Lamp", "LAMPSHADE"]
        percent = client.get("/api/product", params={"search": "50%"}).json()
        assert [r["title"] for r in percent["data"]] == ["50% off"]

    def test_equality_filters_skip_empty_values(self, client: TestClient) -> None:
        _create_product(client, title="A", status="draft")
        _create_product(client, title="B", status="published")
        drafts = client.get("/api/product", params={"status": "draft"}).json()
        assert [r["title"] for r in drafts["data"]] == ["A"]
        unfiltered = client.get("/api/product", params={"status": "", "title": ""}).json()
        assert unfiltered["total"] == 2


# ===========================================================================
# Uploads
# ===========================================================================


class TestUploads:
    def test_multipart_create_stores_file(self, client: TestClient, backend_dir: pathlib.Path) -> None:
        response = client.post(
            "/api/product",
            data={"title": "Poster", "price": "3", "inStock": "false"},
            files={"image": ("poster.png", b"\x89PNG-bytes", "image/png")},
        )
        assert response.status_code == 201, response.text
        body = response.json()
        stored = pathlib.Path(body["image"])
        assert stored.parent == backend_dir / "uploads"
        assert stored.name.startswith("image-")
        assert stored.suffix == ".png"
        assert stored.read_bytes() == b"\x89PNG-bytes"
        assert body["inStock"] is False

    def test_update_without_file_keeps_previous_upload(self, client: TestClient) -> None:
        created = client.post(
            "/api/product",
            data={"title": "Poster", "price": "3"},
            files={"image": ("poster.png", b"one", "image/png")},
        ).json()
        updated = client.put(f"/api/product/{created['id']}", data={"title": "Poster v2"}).json()
        assert updated["title"] == "Poster v2"
        assert updated["image"] == created["image"]


# ===========================================================================
# Login
# ===========================================================================


class TestLogin:
    def _seed_user(self, backend_dir: pathlib.Path) -> int:
        hashed = importlib.import_module("backend.support").hash_password("s3cret")
        engine = create_engine(f"sqlite:///{(backend_dir / 'admin.db').as_posix()}")
        try:
            with engine.begin() as conn:
                conn.execute(
                    text("INSERT INTO auth_users (email, password) VALUES (:email, :password)"),
                    {"email": "admin@x.io", "password": hashed},
                )
                return conn.execute(text("SELECT id FROM auth_users")).scalar_one()
        finally:
            engine.dispose()

    def test_valid_credentials_issue_token(self, client: TestClient, main_module: ModuleType,
                                           backend_dir: pathlib.Path) -> None:
        user_id = self._seed_user(backend_dir)
        response = client.post("/api/auth/login", json={"email": "admin@x.io", "password": "s3cret"})
        assert response.status_code == 200, response.text
        claims = jwt.decode(response.json()["token"], JWT_SECRET, algorithms=["HS256"])
        assert claims["id"] == str(user_id)

    def test_unknown_identity_and_wrong_password_look_alike(
        self, client: TestClient, main_module: ModuleType, backend_dir: pathlib.Path
    ) -> None:
        self._seed_user(backend_dir)
        unknown = client.post("/api/auth/login", json={"email": "nobody@x.io", "password": "s3cret"})
        wrong = client.post("/api/auth/login", json={"email": "admin@x.io", "password": "nope"})
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json() == {"message": "Invalid credentials"}

    def test_missing_credentials(self, client: TestClient) -> None:
        response = client.post("/api/auth/login", json={"email": "admin@x.io"})
        assert response.status_code == 400
        assert response.json() == {"message": "Please provide all required fields."}
