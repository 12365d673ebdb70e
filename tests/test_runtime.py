"""
tests/test_runtime.py
Tests for sheetforge.runtime: CRUD and login semantics executed against
in-memory SQLite.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, NoResultFound

from sheetforge.models import GenerationConfig, SchemaDefinition
from sheetforge.operations import OperationKind
from sheetforge.runtime import (
    AdminRuntime,
    ResultKind,
    coerce_value,
    error_detail,
    like_pattern,
    safe_int,
)
from sheetforge.security import decode_token, verify_password
from sheetforge.variants import StorageKind


@pytest.fixture()
def runtime(shop_schema: SchemaDefinition, sqlite_engine: Engine) -> AdminRuntime:
    return AdminRuntime(shop_schema, sqlite_engine, GenerationConfig(), token_secret="test-secret")


# ===========================================================================
# Value helpers
# ===========================================================================


class TestValueHelpers:
    @pytest.mark.parametrize(
        "value, expected",
        [("3", 3), (None, 1), ("abc", 1), ("0", 1), ("-4", 1), ("500", 100)],
    )
    def test_safe_int(self, value: Any, expected: int) -> None:
        assert safe_int(value, 1, 100) == expected

    def test_like_pattern_escapes_wildcards(self) -> None:
        assert like_pattern("50%_off") == "%50\\%\\_off%"
        assert like_pattern("a\\b") == "%a\\\\b%"

    def test_coerce_value(self) -> None:
        assert coerce_value(StorageKind.NUMERIC, "12.5") == 12.5
        assert coerce_value(StorageKind.BOOLEAN, "yes") is True
        assert coerce_value(StorageKind.REFERENCE, {"id": "7"}) == 7
        assert coerce_value(StorageKind.DATETIME, "2024-05-01") == datetime(2024, 5, 1)
        assert coerce_value(StorageKind.TEXT, 5) == "5"
        assert coerce_value(StorageKind.NUMERIC, "") is None

    def test_error_detail_keeps_driver_message_only(self) -> None:
        exc = IntegrityError(
            "INSERT INTO product (title) VALUES (?)", (None,), Exception("NOT NULL constraint failed")
        )
        assert error_detail(exc) == "NOT NULL constraint failed"
        assert error_detail(NoResultFound("SELECT 1")) == "NoResultFound"
        assert error_detail(ValueError("bad number")) == "bad number"

    def test_coerce_value_rejects_garbage(self) -> None:
        with pytest.raises(ValueError):
            coerce_value(StorageKind.NUMERIC, "twelve")


# ===========================================================================
# CRUD
# ===========================================================================


class TestCrud:
    def test_create_and_get(self, runtime: AdminRuntime) -> None:
        products = runtime.crud("Product")
        created = products.create({"title": "Lamp", "price": "12.5", "unknown": "ignored"})
        assert created.kind is ResultKind.CREATED
        assert created.status_code == 201
        body = created.body
        assert body["title"] == "Lamp"
        assert body["price"] == 12.5
        assert body["created_at"] is not None
        assert "unknown" not in body

        fetched = products.get(body["id"])
        assert fetched.ok
        assert fetched.body["title"] == "Lamp"
        assert products.get(str(body["id"])).ok

    def test_required_field_missing_is_server_error(self, runtime: AdminRuntime) -> None:
        result = runtime.crud("Product").create({"price": 3})
        assert result.kind is ResultKind.SERVER_ERROR
        assert result.status_code == 500
        assert result.body["message"] == "Failed to create Product"
        assert "NOT NULL" in result.body["error"]
        assert "INSERT" not in result.body["error"]

    def test_uncoercible_value_is_server_error(self, runtime: AdminRuntime) -> None:
        result = runtime.crud("Product").create({"title": "Lamp", "price": "cheap"})
        assert result.kind is ResultKind.SERVER_ERROR

    def test_not_found(self, runtime: AdminRuntime) -> None:
        products = runtime.crud("Product")
        for result in (products.get(999), products.update(999, {"title": "x"}), products.delete(999)):
            assert result.kind is ResultKind.NOT_FOUND
            assert result.body == {"message": "Product not found"}
        assert products.get("not-a-number").status_code == 404

    def test_update(self, runtime: AdminRuntime) -> None:
        products = runtime.crud("Product")
        item_id = products.create({"title": "Lamp", "price": 10}).body["id"]
        updated = products.update(item_id, {"price": "15"})
        assert updated.ok
        assert updated.body["price"] == 15.0
        assert updated.body["title"] == "Lamp"

    def test_delete(self, runtime: AdminRuntime) -> None:
        products = runtime.crud("Product")
        item_id = products.create({"title": "Lamp", "price": 10}).body["id"]
        deleted = products.delete(item_id)
        assert deleted.ok
        assert deleted.body == {"message": "Product deleted successfully."}
        assert products.get(item_id).kind is ResultKind.NOT_FOUND

    def test_reference_is_populated(self, runtime: AdminRuntime) -> None:
        category = runtime.crud("Category").create({"name": "Lighting"}).body
        product = runtime.crud("Product").create(
            {"title": "Lamp", "price": 10, "category": str(category["id"])}
        ).body
        assert product["category"]["id"] == category["id"]
        assert product["category"]["name"] == "Lighting"
        listed = runtime.crud("Product").list({}).body["data"][0]
        assert listed["category"]["name"] == "Lighting"

    def test_reference_spelled_differently_is_populated(self, sqlite_engine: Engine) -> None:
        schema = SchemaDefinition.from_mapping(
            {
                "Product Category": [{"fieldName": "name"}],
                "Item": [{"fieldName": "cat", "reference": "product_category"}],
            }
        )
        runtime = AdminRuntime(schema, sqlite_engine)
        category = runtime.crud("Product Category").create({"name": "Lighting"}).body
        item = runtime.crud("Item").create({"cat": category["id"]}).body
        assert item["cat"]["name"] == "Lighting"

    def test_missing_reference_is_none(self, runtime: AdminRuntime) -> None:
        product = runtime.crud("Product").create({"title": "Lamp", "price": 1}).body
        assert product["category"] is None

    def test_execute_dispatch(self, runtime: AdminRuntime) -> None:
        products = runtime.crud("product")
        created = products.execute(OperationKind.CREATE, {"title": "Lamp", "price": 1})
        assert products.execute(OperationKind.GET, created.body["id"]).ok

    def test_unknown_entity(self, runtime: AdminRuntime) -> None:
        with pytest.raises(KeyError):
            runtime.crud("Widget")


# ===========================================================================
# List
# ===========================================================================


def _seed(runtime: AdminRuntime, titles: List[str]) -> List[Dict[str, Any]]:
    products = runtime.crud("Product")
    return [products.create({"title": t, "price": i}).body for i, t in enumerate(titles)]


class TestList:
    def test_envelope_and_order(self, runtime: AdminRuntime) -> None:
        _seed(runtime, ["First", "Second", "Third"])
        result = runtime.crud("Product").list({})
        assert result.ok
        assert result.body["total"] == 3
        assert result.body["page"] == 1
        assert result.body["limit"] == 10
        assert [r["title"] for r in result.body["data"]] == ["Third", "Second", "First"]

    def test_pagination(self, runtime: AdminRuntime) -> None:
        _seed(runtime, [f"P{i}" for i in range(5)])
        page = runtime.crud("Product").list({"page": "2", "limit": "2"}).body
        assert page["total"] == 5
        assert [r["title"] for r in page["data"]] == ["P2", "P1"]
        assert (page["page"], page["limit"]) == (2, 2)

    def test_bad_paging_values_fall_back(self, runtime: AdminRuntime) -> None:
        page = runtime.crud("Product").list({"page": "abc", "limit": "1000"}).body
        assert (page["page"], page["limit"]) == (1, 100)

    def test_search_is_case_insensitive_substring(self, runtime: AdminRuntime) -> None:
        _seed(runtime, ["Desk Lamp", "Chair", "LAMPSHADE"])
        body = runtime.crud("Product").list({"search": "lamp"}).body
        assert body["total"] == 2
        assert sorted(r["title"] for r in body["data"]) == ["Desk Lamp", "LAMPSHADE"]

    def test_search_only_matches_searchable_fields(self, runtime: AdminRuntime) -> None:
        _seed(runtime, ["Lamp"])
        assert runtime.crud("Product").list({"search": "0"}).body["total"] == 0

    def test_search_treats_wildcards_literally(self, runtime: AdminRuntime) -> None:
        _seed(runtime, ["50% off", "500 units"])
        body = runtime.crud("Product").list({"search": "50%"}).body
        assert [r["title"] for r in body["data"]] == ["50% off"]

    def test_search_over_several_fields_is_or_combined(self, sqlite_engine: Engine) -> None:
        schema = SchemaDefinition.from_mapping(
            {"Book": [
                {"fieldName": "title", "searchable": True},
                {"fieldName": "author", "searchable": True},
            ]}
        )
        books = AdminRuntime(schema, sqlite_engine).crud("Book")
        books.create({"title": "Dune", "author": "Herbert"})
        books.create({"title": "Emma", "author": "Austen"})
        assert books.list({"search": "dune"}).body["total"] == 1
        assert books.list({"search": "austen"}).body["total"] == 1
        assert books.list({"search": "e"}).body["total"] == 2

    def test_equality_filters(self, runtime: AdminRuntime) -> None:
        _seed(runtime, ["A", "B"])
        body = runtime.crud("Product").list({"title": "B"}).body
        assert [r["title"] for r in body["data"]] == ["B"]

    def test_empty_filter_values_are_ignored(self, runtime: AdminRuntime) -> None:
        _seed(runtime, ["A", "B"])
        body = runtime.crud("Product").list({"title": "", "price": "", "category": None}).body
        assert body["total"] == 2


# ===========================================================================
# Passwords and login
# ===========================================================================


class TestPasswordHandling:
    def test_password_is_hashed_on_create(self, runtime: AdminRuntime) -> None:
        user = runtime.crud("AuthUsers").create({"email": "a@x.io", "password": "pw1"}).body
        assert user["password"] != "pw1"
        assert verify_password("pw1", user["password"])

    def test_empty_password_keeps_hash(self, runtime: AdminRuntime) -> None:
        users = runtime.crud("AuthUsers")
        user = users.create({"email": "a@x.io", "password": "pw1"}).body
        updated = users.update(user["id"], {"email": "b@x.io", "password": ""}).body
        assert updated["password"] == user["password"]
        assert updated["email"] == "b@x.io"

    def test_new_password_is_rehashed(self, runtime: AdminRuntime) -> None:
        users = runtime.crud("AuthUsers")
        user = users.create({"email": "a@x.io", "password": "pw1"}).body
        updated = users.update(user["id"], {"password": "pw2"}).body
        assert updated["password"] != user["password"]
        assert verify_password("pw2", updated["password"])


class TestLogin:
    def _seed_user(self, runtime: AdminRuntime) -> Dict[str, Any]:
        return runtime.crud("AuthUsers").create({"email": "admin@x.io", "password": "s3cret"}).body

    def test_login_available_for_active_auth_entity(self, runtime: AdminRuntime) -> None:
        assert runtime.login is not None
        assert runtime.login.spec.path == "/api/auth/login"
        assert [e.entity_name for e in runtime.routed_executors()] == ["Category", "Product"]

    def test_missing_credentials(self, runtime: AdminRuntime) -> None:
        result = runtime.login.login({"email": "admin@x.io"})
        assert result.status_code == 400
        assert result.body == {"message": "Please provide all required fields."}

    def test_unknown_identity_and_wrong_password_look_alike(self, runtime: AdminRuntime) -> None:
        self._seed_user(runtime)
        unknown = runtime.login.login({"email": "nobody@x.io", "password": "s3cret"})
        wrong = runtime.login.login({"email": "admin@x.io", "password": "nope"})
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.body == wrong.body == {"message": "Invalid credentials"}

    def test_valid_credentials_issue_token(self, runtime: AdminRuntime) -> None:
        user = self._seed_user(runtime)
        result = runtime.login.login({"email": "admin@x.io", "password": "s3cret"})
        assert result.ok
        claims = decode_token(result.body["token"], "test-secret")
        assert claims["id"] == str(user["id"])

    def test_no_login_without_active_auth_entity(self, sqlite_engine: Engine) -> None:
        schema = SchemaDefinition.from_mapping({"AuthUsers": [{"fieldName": "email"}]})
        assert AdminRuntime(schema, sqlite_engine).login is None

    def test_empty_entities_get_no_table(self, product_rows: List[Dict[str, Any]],
                                         sqlite_engine: Engine) -> None:
        schema = SchemaDefinition.from_mapping({"Notes": [], "Product": product_rows})
        runtime = AdminRuntime(schema, sqlite_engine)
        assert sorted(runtime.metadata.tables) == ["product"]
        with pytest.raises(KeyError):
            runtime.crud("Notes")
