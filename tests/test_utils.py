"""
tests/test_utils.py
Unit tests for sheetforge.utils: naming forms, cell parsing, import blocks,
file I/O and the Timer.
"""

from __future__ import annotations

import pathlib

import pytest

from sheetforge.utils import (
    Timer,
    build_import_block,
    count_lines,
    is_valid_identifier,
    module_name,
    name_key,
    parse_boolean,
    sha256_hex,
    split_options,
    to_json,
    to_slug,
    to_snake_case,
    to_title,
    to_type_name,
    write_file,
)


# ===========================================================================
# Naming forms
# ===========================================================================


class TestTypeName:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("auth users", "AuthUsers"),
            ("AuthUsers", "AuthUsers"),
            ("product", "Product"),
            ("order-items_v2", "OrderItemsV2"),
            ("  Product   Category ", "ProductCategory"),
        ],
    )
    def test_type_name(self, raw: str, expected: str) -> None:
        assert to_type_name(raw) == expected

    @pytest.mark.parametrize(
        "raw", ["auth users", "Product Category", "import-history", "cms_pages", "x"]
    )
    def test_type_name_is_idempotent(self, raw: str) -> None:
        once = to_type_name(raw)
        assert to_type_name(once) == once

    def test_empty_name(self) -> None:
        assert to_type_name("") == ""
        assert to_slug("") == ""
        assert to_title("") == ""


class TestSlugAndTitle:
    def test_slug_lowercases_and_hyphenates(self) -> None:
        assert to_slug("Product Category") == "product-category"
        assert to_slug("AuthUsers") == "authusers"
        assert to_slug("  Orders ") == "orders"

    def test_title_from_separators(self) -> None:
        assert to_title("import-history") == "Import History"
        assert to_title("order_items") == "Order Items"
        assert to_title("price") == "Price"


class TestModuleName:
    def test_snake_case(self) -> None:
        assert to_snake_case("ProductCategory") == "product_category"
        assert to_snake_case("getHTTPResponse") == "get_http_response"
        assert to_snake_case("already_snake") == "already_snake"

    def test_module_name_converges_across_spellings(self) -> None:
        assert module_name("Product Category") == "product_category"
        assert module_name("product-category") == "product_category"
        assert module_name("AuthUsers") == "auth_users"

    def test_name_key_ignores_case_and_separators(self) -> None:
        keys = {name_key(n) for n in ("PRODUCT CATEGORY", "product_category", "product-category", "ProductCategory")}
        assert keys == {"productcategory"}
        assert name_key("--") == ""

    def test_leading_digit_is_prefixed(self) -> None:
        assert module_name("2024 orders") == "_2024_orders"

    def test_identifier_check(self) -> None:
        assert is_valid_identifier("title")
        assert is_valid_identifier("_private2")
        assert not is_valid_identifier("class")
        assert not is_valid_identifier("first name")
        assert not is_valid_identifier("1st")


# ===========================================================================
# Cell parsing
# ===========================================================================


class TestParseBoolean:
    @pytest.mark.parametrize("value", [True, 1, 1.0, "true", "YES", " 1 ", "*"])
    def test_truthy(self, value: object) -> None:
        assert parse_boolean(value) is True

    @pytest.mark.parametrize("value", [False, None, 0, 2, "", "no", "false", "y"])
    def test_falsy(self, value: object) -> None:
        assert parse_boolean(value) is False


class TestSplitOptions:
    def test_comma_separated(self) -> None:
        assert split_options("draft, published ,archived") == ["draft", "published", "archived"]

    def test_list_and_blanks(self) -> None:
        assert split_options(["a", " ", "b "]) == ["a", "b"]
        assert split_options(None) == []
        assert split_options(",,") == []


# ===========================================================================
# Formatting & I/O
# ===========================================================================


class TestFormatting:
    def test_import_block_sorted(self) -> None:
        block = build_import_block({"typing": {"Optional", "List"}, "datetime": {"datetime"}})
        assert block == "from datetime import datetime\nfrom typing import List, Optional"

    def test_import_block_plain_module(self) -> None:
        assert build_import_block({"os": set()}) == "import os"

    def test_to_json_is_deterministic(self) -> None:
        assert to_json({"a": 1}) == '{\n  "a": 1\n}\n'
        assert to_json({"t": "é"}) == '{\n  "t": "é"\n}\n'

    def test_count_lines(self) -> None:
        assert count_lines("") == 0
        assert count_lines("a\nb\n") == 2
        assert count_lines("a\nb") == 2

    def test_sha256(self) -> None:
        assert sha256_hex("x") == sha256_hex("x")
        assert len(sha256_hex("x")) == 64


class TestWriteFile:
    def test_atomic_write_creates_parents(self, tmp_path: pathlib.Path) -> None:
        target = tmp_path / "a" / "b" / "c.txt"
        written = write_file(target, "hello")
        assert written == 5
        assert target.read_text(encoding="utf-8") == "hello"
        assert not any(p.name.endswith(".tmp") for p in target.parent.iterdir())

    def test_plain_write_overwrites(self, tmp_path: pathlib.Path) -> None:
        target = tmp_path / "c.txt"
        write_file(target, "one", atomic=False)
        write_file(target, "two", atomic=False)
        assert target.read_text(encoding="utf-8") == "two"


class TestTimer:
    def test_elapsed_is_recorded(self) -> None:
        with Timer("noop") as timer:
            pass
        assert timer.elapsed >= 0.0
        assert "noop" in repr(timer)
