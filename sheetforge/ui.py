# File: sheetforge/ui.py
"""
SheetForge - UI Descriptor Emitter
==================================
Derives a form descriptor and a list descriptor from an entity's fields.
Both are plain data (serialized to ``form.json`` / ``list.json``); a
front-end renders them, this module only decides what they describe.

Widget and cell selection go through the variant dispatch tables below, one
builder per ``WidgetKind`` / ``CellKind``.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from sheetforge.models import EntitySchema, FieldDescriptor, GenerationConfig
from sheetforge.variants import (
    CellKind,
    FieldVariant,
    WidgetKind,
    classify_field,
    dispatch_table,
)

logger: logging.Logger = logging.getLogger("sheetforge.ui")

DELETE_CONFIRMATION: str = "Are you sure? This action cannot be undone."
NOT_AVAILABLE: str = "N/A"
TRUNCATE_AT: int = 200
REFERENCE_LABEL_FIELDS: List[str] = ["name", "title"]

_UI_CONFIG: ConfigDict = ConfigDict(use_enum_values=True, frozen=True, extra="forbid")


# ---------------------------------------------------------------------------
# Descriptor models
# ---------------------------------------------------------------------------


class OptionsSource(BaseModel):
    """Where a reference select fetches its options from."""

    model_config = _UI_CONFIG

    entity: str
    endpoint: str
    label_fields: List[str] = Field(default_factory=lambda: list(REFERENCE_LABEL_FIELDS))
    value_field: str = "id"
    allow_none: bool = False


class WidgetDescriptor(BaseModel):
    model_config = _UI_CONFIG

    name: str
    label: str
    widget: WidgetKind
    required: bool = False
    initial_value: Any = ""
    input_type: Optional[str] = None
    options: List[str] = Field(default_factory=list)
    options_source: Optional[OptionsSource] = None
    value_format: Optional[str] = Field(
        default=None, description="'date' reformats the stored value on edit-load."
    )
    multiline: bool = False


class FormAction(BaseModel):
    model_config = _UI_CONFIG

    method: str
    endpoint: str


class FormDescriptor(BaseModel):
    """Create/edit form of one entity."""

    model_config = _UI_CONFIG

    entity: str
    title: str
    component: str
    endpoint: str
    multipart: bool = False
    create: FormAction
    update: FormAction
    load: FormAction
    redirect_to: str
    fields: List[WidgetDescriptor] = Field(default_factory=list)


class ColumnDescriptor(BaseModel):
    model_config = _UI_CONFIG

    name: str
    label: str
    cell: CellKind
    empty_marker: Optional[str] = None
    label_fields: List[str] = Field(default_factory=list)
    true_label: Optional[str] = None
    false_label: Optional[str] = None
    max_length: Optional[int] = None


class RowAction(BaseModel):
    model_config = _UI_CONFIG

    name: str
    label: str
    method: Optional[str] = None
    path: str
    confirm: Optional[str] = None
    destructive: bool = False
    on_success: Optional[str] = None


class Pagination(BaseModel):
    model_config = _UI_CONFIG

    page_size: int
    page_size_options: List[int]


class SearchSpec(BaseModel):
    model_config = _UI_CONFIG

    enabled: bool
    param: str = "search"
    fields: List[str] = Field(default_factory=list)


class ListDescriptor(BaseModel):
    """Table view of one entity."""

    model_config = _UI_CONFIG

    entity: str
    title: str
    component: str
    endpoint: str
    create_path: str
    columns: List[ColumnDescriptor] = Field(default_factory=list)
    row_actions: List[RowAction] = Field(default_factory=list)
    pagination: Pagination
    search: SearchSpec


# ---------------------------------------------------------------------------
# Widget builders, one per WidgetKind
# ---------------------------------------------------------------------------

WidgetBuilder = Callable[[FieldDescriptor, FieldVariant, GenerationConfig], Dict[str, Any]]


def _checkbox(field: FieldDescriptor, variant: FieldVariant, config: GenerationConfig) -> Dict[str, Any]:
    return {"initial_value": False}


def _date_picker(field: FieldDescriptor, variant: FieldVariant, config: GenerationConfig) -> Dict[str, Any]:
    return {"value_format": "date", "input_type": "date"}


def _reference_select(
    field: FieldDescriptor, variant: FieldVariant, config: GenerationConfig
) -> Dict[str, Any]:
    return {
        "options_source": OptionsSource(
            entity=variant.reference_type or "",
            endpoint=config.api_path(variant.reference_slug or ""),
            allow_none=not field.required,
        )
    }


def _select(field: FieldDescriptor, variant: FieldVariant, config: GenerationConfig) -> Dict[str, Any]:
    return {"options": list(variant.options)}


def _file_picker(field: FieldDescriptor, variant: FieldVariant, config: GenerationConfig) -> Dict[str, Any]:
    return {"initial_value": None, "input_type": "file"}


def _radio_group(field: FieldDescriptor, variant: FieldVariant, config: GenerationConfig) -> Dict[str, Any]:
    return {"options": list(variant.options)}


def _textarea(field: FieldDescriptor, variant: FieldVariant, config: GenerationConfig) -> Dict[str, Any]:
    return {"multiline": True}


def _text_input(field: FieldDescriptor, variant: FieldVariant, config: GenerationConfig) -> Dict[str, Any]:
    return {"input_type": variant.input_type}


_WIDGET_BUILDERS: Dict[WidgetKind, WidgetBuilder] = dispatch_table(
    WidgetKind,
    {
        WidgetKind.CHECKBOX: _checkbox,
        WidgetKind.DATE_PICKER: _date_picker,
        WidgetKind.REFERENCE_SELECT: _reference_select,
        WidgetKind.SELECT: _select,
        WidgetKind.FILE_PICKER: _file_picker,
        WidgetKind.RADIO_GROUP: _radio_group,
        WidgetKind.TEXTAREA: _textarea,
        WidgetKind.TEXT_INPUT: _text_input,
    },
    "form widget builders",
)


# ---------------------------------------------------------------------------
# Cell builders, one per CellKind
# ---------------------------------------------------------------------------

CellBuilder = Callable[[FieldVariant], Dict[str, Any]]

_CELL_BUILDERS: Dict[CellKind, CellBuilder] = dispatch_table(
    CellKind,
    {
        CellKind.REFERENCE_LABEL: lambda v: {
            "label_fields": list(REFERENCE_LABEL_FIELDS),
            "empty_marker": NOT_AVAILABLE,
        },
        CellKind.YES_NO: lambda v: {"true_label": "Yes", "false_label": "No"},
        CellKind.DATE: lambda v: {"empty_marker": NOT_AVAILABLE},
        CellKind.TRUNCATED_TEXT: lambda v: {"max_length": TRUNCATE_AT},
    },
    "list cell builders",
)


# ---------------------------------------------------------------------------
# Emitters
# ---------------------------------------------------------------------------


def build_widget(field: FieldDescriptor, config: GenerationConfig) -> WidgetDescriptor:
    variant = classify_field(field)
    attrs: Dict[str, Any] = {
        "name": field.field_name,
        "label": field.label,
        "widget": variant.widget,
        "required": field.required,
    }
    attrs.update(_WIDGET_BUILDERS[variant.widget](field, variant, config))
    return WidgetDescriptor(**attrs)


def build_column(field: FieldDescriptor) -> ColumnDescriptor:
    variant = classify_field(field)
    attrs: Dict[str, Any] = {
        "name": field.field_name,
        "label": field.label,
        "cell": variant.cell,
    }
    attrs.update(_CELL_BUILDERS[variant.cell](variant))
    return ColumnDescriptor(**attrs)


def emit_form_descriptor(entity: EntitySchema, config: GenerationConfig) -> FormDescriptor:
    endpoint = config.api_path(entity.slug)
    return FormDescriptor(
        entity=entity.type_name,
        title=entity.title,
        component=f"{entity.type_name}Form",
        endpoint=endpoint,
        multipart=entity.file_field is not None,
        create=FormAction(method="POST", endpoint=endpoint),
        update=FormAction(method="PUT", endpoint=f"{endpoint}/{{id}}"),
        load=FormAction(method="GET", endpoint=f"{endpoint}/{{id}}"),
        redirect_to=f"/{entity.slug}",
        fields=[build_widget(f, config) for f in entity.fields],
    )


def emit_list_descriptor(entity: EntitySchema, config: GenerationConfig) -> ListDescriptor:
    endpoint = config.api_path(entity.slug)
    searchable = [f.field_name for f in entity.searchable_fields]
    return ListDescriptor(
        entity=entity.type_name,
        title=entity.title,
        component=f"{entity.type_name}List",
        endpoint=endpoint,
        create_path=f"/{entity.slug}/new",
        columns=[build_column(f) for f in entity.fields],
        row_actions=[
            RowAction(name="edit", label="Edit", path=f"/{entity.slug}/{{id}}/edit"),
            RowAction(
                name="delete",
                label="Delete",
                method="DELETE",
                path=f"{endpoint}/{{id}}",
                confirm=DELETE_CONFIRMATION,
                destructive=True,
                on_success="remove_row_and_repage",
            ),
        ],
        pagination=Pagination(
            page_size=config.default_page_size,
            page_size_options=list(config.page_size_options),
        ),
        search=SearchSpec(enabled=bool(searchable), fields=searchable),
    )
