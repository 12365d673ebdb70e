# File: sheetforge/variants.py
"""
SheetForge - Field Variants
===========================
Every field descriptor is classified exactly once into a ``FieldVariant``: a
tag triple (storage, widget, cell) plus the payload those tags need. Emitters
never re-inspect ``type`` / ``uiType``; they look the tag up in a dispatch
table built with ``dispatch_table``, which refuses to build unless every tag
of the enum has a handler.

Adding a new field kind therefore means one new tag, one branch in
``classify_field``, and one entry in each table that the import-time check
points at.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple, Type, TypeVar

from sheetforge.models import FieldDescriptor, FieldType, UiType
from sheetforge.utils import to_slug, to_type_name

logger: logging.Logger = logging.getLogger("sheetforge.variants")


class StorageKind(str, Enum):
    """Persistence-layer type of a field."""

    NUMERIC = "numeric"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    REFERENCE = "reference"
    TEXT = "text"


class WidgetKind(str, Enum):
    """Form widget of a field."""

    CHECKBOX = "checkbox"
    DATE_PICKER = "date_picker"
    REFERENCE_SELECT = "reference_select"
    SELECT = "select"
    FILE_PICKER = "file_picker"
    RADIO_GROUP = "radio_group"
    TEXTAREA = "textarea"
    TEXT_INPUT = "text_input"


class CellKind(str, Enum):
    """List/table cell rendering of a field."""

    REFERENCE_LABEL = "reference_label"
    YES_NO = "yes_no"
    DATE = "date"
    TRUNCATED_TEXT = "truncated_text"


@dataclass(frozen=True, slots=True)
class FieldVariant:
    """Classification of one field plus the data its renderers need."""

    field_name: str
    storage: StorageKind
    widget: WidgetKind
    cell: CellKind
    input_type: str = "text"
    reference_type: Optional[str] = None
    reference_slug: Optional[str] = None
    options: Tuple[str, ...] = ()


_INPUT_TYPES: Dict[str, str] = {
    FieldType.NUMBER.value: "number",
    FieldType.EMAIL.value: "email",
    FieldType.PASSWORD.value: "password",
}


def _storage_kind(field: FieldDescriptor) -> StorageKind:
    # A reference always wins over the declared type.
    if field.is_reference or field.type == FieldType.OBJECT_ID.value:
        return StorageKind.REFERENCE
    if field.type == FieldType.NUMBER.value:
        return StorageKind.NUMERIC
    if field.type == FieldType.BOOLEAN.value:
        return StorageKind.BOOLEAN
    if field.type == FieldType.DATE.value:
        return StorageKind.DATETIME
    return StorageKind.TEXT


def _widget_kind(field: FieldDescriptor) -> WidgetKind:
    if field.type == FieldType.BOOLEAN.value:
        return WidgetKind.CHECKBOX
    if field.type == FieldType.DATE.value:
        return WidgetKind.DATE_PICKER
    if field.is_reference:
        return WidgetKind.REFERENCE_SELECT
    if field.ui_type == UiType.SELECT.value and field.options:
        return WidgetKind.SELECT
    if field.ui_type == UiType.FILE.value:
        return WidgetKind.FILE_PICKER
    if field.ui_type == UiType.RADIO.value and field.options:
        return WidgetKind.RADIO_GROUP
    if FieldType.TEXTAREA.value in (field.type, field.ui_type):
        return WidgetKind.TEXTAREA
    return WidgetKind.TEXT_INPUT


def _cell_kind(field: FieldDescriptor) -> CellKind:
    if field.is_reference:
        return CellKind.REFERENCE_LABEL
    if field.type == FieldType.BOOLEAN.value:
        return CellKind.YES_NO
    if field.type == FieldType.DATE.value:
        return CellKind.DATE
    return CellKind.TRUNCATED_TEXT


def classify_field(field: FieldDescriptor) -> FieldVariant:
    """Derive the variant of *field*; the only place that inspects raw types."""
    input_type: str = _INPUT_TYPES.get(field.type, "text")
    if field.ui_type == UiType.PASSWORD.value:
        input_type = "password"
    return FieldVariant(
        field_name=field.field_name,
        storage=_storage_kind(field),
        widget=_widget_kind(field),
        cell=_cell_kind(field),
        input_type=input_type,
        reference_type=to_type_name(field.reference) if field.reference else None,
        reference_slug=to_slug(field.reference) if field.reference else None,
        options=tuple(field.options),
    )


E = TypeVar("E", bound=Enum)
V = TypeVar("V")


def dispatch_table(
    kind: Type[E], handlers: Mapping[E, V], name: str
) -> Dict[E, V]:
    """
    Freeze a per-tag handler table, failing at import time on a missing tag.

    Raises:
        RuntimeError: ``handlers`` does not cover every member of ``kind``.
    """
    missing = [member.value for member in kind if member not in handlers]
    if missing:
        raise RuntimeError(f"{name} has no handler for {kind.__name__}: {missing}")
    return dict(handlers)
