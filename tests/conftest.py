"""
tests/conftest.py
Shared fixtures for the sheetforge test suite.

No external mocking libraries are used; workbooks are written with openpyxl
into pytest's tmp_path, artifacts go to real temporary directories or to the
in-memory store, and the runtime runs on in-memory SQLite.
"""

from __future__ import annotations

import copy
import pathlib
from typing import Any, Callable, Dict, Iterator, List

import openpyxl
import pytest
import yaml
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from sheetforge.exporters import MemoryArtifactStore
from sheetforge.models import GenerationConfig, SchemaDefinition


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

ROOT_DIR: pathlib.Path = pathlib.Path(__file__).resolve().parent.parent
SCHEMA_EXAMPLE_PATH: pathlib.Path = ROOT_DIR / "schema_example.yaml"

HEADER: List[str] = [
    "label", "fieldName", "type", "required", "options", "reference", "uiType", "searchable",
]


# ---------------------------------------------------------------------------
# Raw schema data fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def raw_example_document() -> Dict[str, Any]:
    """Load the reference schema_example.yaml once per session."""
    assert SCHEMA_EXAMPLE_PATH.exists(), (
        f"Reference schema not found at {SCHEMA_EXAMPLE_PATH}. "
        "Make sure schema_example.yaml is in the project root."
    )
    with open(SCHEMA_EXAMPLE_PATH, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    assert isinstance(data, dict), "Top-level YAML must be a mapping."
    return data


@pytest.fixture()
def example_document(raw_example_document: Dict[str, Any]) -> Dict[str, Any]:
    """Deep copy so each test can mutate freely."""
    return copy.deepcopy(raw_example_document)


@pytest.fixture()
def example_schema(example_document: Dict[str, Any]) -> SchemaDefinition:
    return SchemaDefinition.from_mapping(example_document["entities"])


@pytest.fixture()
def product_rows() -> List[Dict[str, Any]]:
    """The Product entity of the end-to-end scenario."""
    return [
        {"label": "Title", "fieldName": "title", "type": "string", "required": True, "searchable": True},
        {"label": "Price", "fieldName": "price", "type": "number", "required": True},
    ]


@pytest.fixture()
def auth_rows() -> List[Dict[str, Any]]:
    """The AuthUsers entity of the end-to-end scenario."""
    return [
        {"fieldName": "email", "uiType": "login:identity"},
        {"fieldName": "password", "type": "password"},
    ]


@pytest.fixture()
def category_rows() -> List[Dict[str, Any]]:
    return [
        {"label": "Name", "fieldName": "name", "required": "yes", "searchable": "yes"},
    ]


@pytest.fixture()
def product_schema(product_rows: List[Dict[str, Any]]) -> SchemaDefinition:
    return SchemaDefinition.from_mapping({"Product": product_rows})


@pytest.fixture()
def auth_schema(auth_rows: List[Dict[str, Any]]) -> SchemaDefinition:
    return SchemaDefinition.from_mapping({"AuthUsers": auth_rows})


@pytest.fixture()
def shop_schema(
    category_rows: List[Dict[str, Any]],
    product_rows: List[Dict[str, Any]],
    auth_rows: List[Dict[str, Any]],
) -> SchemaDefinition:
    """Category, Product (referencing Category) and AuthUsers."""
    rows = copy.deepcopy(product_rows)
    rows.append({"label": "Category", "fieldName": "category", "reference": "Category"})
    return SchemaDefinition.from_mapping(
        {"Category": category_rows, "Product": rows, "AuthUsers": auth_rows}
    )


# ---------------------------------------------------------------------------
# Configuration & stores
# ---------------------------------------------------------------------------


@pytest.fixture()
def config() -> GenerationConfig:
    return GenerationConfig(project_name="test_admin")


@pytest.fixture()
def memory_store() -> MemoryArtifactStore:
    return MemoryArtifactStore()


@pytest.fixture()
def sqlite_engine() -> Iterator[Engine]:
    """In-memory SQLite shared across threads (TestClient runs sync routes in a pool)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


# ---------------------------------------------------------------------------
# Workbook factory
# ---------------------------------------------------------------------------


def rows_for(fields: List[Dict[str, Any]]) -> List[List[Any]]:
    """Header row plus one row per field dict, in HEADER column order."""
    rows: List[List[Any]] = [list(HEADER)]
    for field in fields:
        rows.append([field.get(column) for column in HEADER])
    return rows


@pytest.fixture()
def make_workbook(tmp_path: pathlib.Path) -> Callable[..., pathlib.Path]:
    """Return a factory writing ``{sheet title: rows}`` to an .xlsx file."""

    def _make(sheets: Dict[str, List[List[Any]]], name: str = "schema.xlsx") -> pathlib.Path:
        workbook = openpyxl.Workbook()
        workbook.remove(workbook.active)
        for title, rows in sheets.items():
            worksheet = workbook.create_sheet(title=title)
            for row in rows:
                worksheet.append(row)
        path = tmp_path / name
        workbook.save(path)
        return path

    return _make


@pytest.fixture()
def to_rows() -> Callable[[List[Dict[str, Any]]], List[List[Any]]]:
    return rows_for
