# File: sheetforge/ingest.py
"""
SheetForge - Schema Ingestion
=============================
Loads a schema description into ``SchemaDefinition`` (+ ``GenerationConfig``):

* ``.xlsx`` / ``.xlsm`` workbooks: one sheet per entity, the first row is the
  header, every following non-blank row is one field.
* ``.yaml`` / ``.yml`` / ``.json`` documents: either
  ``{"config": {...}, "entities": {"Name": [field, ...]}}`` or a bare
  ``{"Name": [field, ...]}`` mapping.

Header cells are matched case-insensitively, ignoring spaces and underscores,
so ``Field Name``, ``field_name`` and ``FIELDNAME`` all mean ``fieldName``.
Unknown columns are ignored.
"""

from __future__ import annotations

import io
import json
import logging
import zipfile
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import openpyxl
import yaml
from openpyxl.utils.exceptions import InvalidFileException
from pydantic import ValidationError

from sheetforge.exceptions import SchemaInputError
from sheetforge.models import GenerationConfig, SchemaDefinition

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("sheetforge.ingest")

WORKBOOK_SUFFIXES: Tuple[str, ...] = (".xlsx", ".xlsm")
YAML_SUFFIXES: Tuple[str, ...] = (".yaml", ".yml")
JSON_SUFFIXES: Tuple[str, ...] = (".json",)

# Normalized header -> descriptor key.
_HEADER_KEYS: Dict[str, str] = {
    "label": "label",
    "fieldname": "fieldName",
    "type": "type",
    "required": "required",
    "options": "options",
    "reference": "reference",
    "uitype": "uiType",
    "searchable": "searchable",
}

SheetRows = List[Dict[str, Any]]


def normalize_header(cell: Any) -> Optional[str]:
    """Descriptor key of a header cell, or None for unknown columns."""
    if cell is None:
        return None
    compact = str(cell).strip().lower().replace(" ", "").replace("_", "")
    return _HEADER_KEYS.get(compact)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def rows_to_fields(rows: Sequence[Sequence[Any]]) -> SheetRows:
    """
    Turn raw sheet rows (header first) into field dicts.

    Fully blank rows are dropped; blank cells are left out so model
    defaults apply.
    """
    if not rows:
        return []
    keys: List[Optional[str]] = [normalize_header(cell) for cell in rows[0]]
    fields: SheetRows = []
    for raw in rows[1:]:
        if all(_is_blank(value) for value in raw):
            continue
        record: Dict[str, Any] = {}
        for key, value in zip(keys, raw):
            if key is None or _is_blank(value):
                continue
            record[key] = value.strip() if isinstance(value, str) else value
        fields.append(record)
    return fields


# ---------------------------------------------------------------------------
# Workbooks
# ---------------------------------------------------------------------------


def read_workbook(source: Union[Path, BinaryIO]) -> List[Tuple[str, SheetRows]]:
    """
    Read every sheet of a workbook as ``(entity name, field rows)`` pairs.

    Sheet names are trimmed; sheets whose trimmed name is empty are ignored.

    Raises:
        SchemaInputError: The source is not a readable workbook.
    """
    try:
        workbook = openpyxl.load_workbook(source, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise SchemaInputError(f"Cannot read workbook: {exc}") from exc

    sheets: List[Tuple[str, SheetRows]] = []
    try:
        for worksheet in workbook.worksheets:
            name: str = (worksheet.title or "").strip()
            if not name:
                logger.info("Ignoring sheet with an empty name")
                continue
            rows = [tuple(row) for row in worksheet.iter_rows(values_only=True)]
            fields = rows_to_fields(rows)
            logger.debug("Sheet '%s': %d field row(s)", name, len(fields))
            sheets.append((name, fields))
    finally:
        workbook.close()
    return sheets


def load_workbook_bytes(
    content: bytes, filename: Optional[str] = None
) -> SchemaDefinition:
    """Schema from an uploaded workbook's raw bytes."""
    sheets = read_workbook(io.BytesIO(content))
    return SchemaDefinition.from_mapping(sheets, source_file=filename)


# ---------------------------------------------------------------------------
# YAML / JSON documents
# ---------------------------------------------------------------------------


def _load_document(path: Path) -> Dict[str, Any]:
    text: str = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() in JSON_SUFFIXES:
            data: Any = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise SchemaInputError(f"Cannot parse {path.name}: {exc}") from exc
    if not isinstance(data, dict):
        raise SchemaInputError(
            f"Expected a mapping at the top of {path.name}, got {type(data).__name__}."
        )
    return data


def parse_schema_document(
    document: Mapping[str, Any], source_file: Optional[str] = None
) -> Tuple[SchemaDefinition, GenerationConfig]:
    """
    Split a parsed YAML/JSON document into schema and configuration.

    Raises:
        SchemaInputError: The document shape or the config is invalid.
    """
    if "entities" in document:
        entities: Any = document.get("entities") or {}
        config_data: Any = document.get("config") or {}
    else:
        entities = document
        config_data = {}

    if not isinstance(entities, Mapping):
        raise SchemaInputError("'entities' must map entity names to field lists.")
    for name, rows in entities.items():
        if not isinstance(rows, list):
            raise SchemaInputError(f"Entity '{name}' must be a list of fields.", entity=str(name))
    if not isinstance(config_data, Mapping):
        raise SchemaInputError("'config' must be a mapping.")

    try:
        config = GenerationConfig.model_validate(dict(config_data))
    except ValidationError as exc:
        raise SchemaInputError(f"Invalid config: {exc.errors()[0]['msg']}") from exc

    schema = SchemaDefinition.from_mapping(entities, source_file=source_file)
    return schema, config


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def load_schema_file(path: Path) -> Tuple[SchemaDefinition, GenerationConfig]:
    """
    Load a workbook or YAML/JSON schema file.

    Workbooks carry no configuration, so defaults are returned with them.

    Raises:
        SchemaInputError: Missing file, unsupported extension, or unreadable
            content.
    """
    path = Path(path)
    if not path.is_file():
        raise SchemaInputError(f"Schema file not found: {path}")

    suffix: str = path.suffix.lower()
    logger.info("Loading schema from %s", path)
    if suffix in WORKBOOK_SUFFIXES:
        schema = SchemaDefinition.from_mapping(read_workbook(path), source_file=str(path))
        return schema, GenerationConfig()
    if suffix in YAML_SUFFIXES or suffix in JSON_SUFFIXES:
        return parse_schema_document(_load_document(path), source_file=str(path))
    raise SchemaInputError(
        f"Unsupported schema file '{path.name}'; expected one of "
        f"{', '.join(WORKBOOK_SUFFIXES + YAML_SUFFIXES + JSON_SUFFIXES)}."
    )
