# File: sheetforge/models.py
"""
SheetForge - Core Data Models
=============================
Pydantic V2 models for the normalized field schema and the generation
configuration. These models are the single source of truth for the whole
pipeline: Ingestion → Validation → Emission → Export.

A ``SchemaDefinition`` is an ordered list of ``EntitySchema`` objects, one per
spreadsheet sheet; each ``EntitySchema`` holds the ``FieldDescriptor`` rows of
that sheet.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationError,
    computed_field,
    field_validator,
    model_validator,
)

from sheetforge.exceptions import SchemaInputError
from sheetforge.utils import (
    module_name,
    name_key,
    parse_boolean,
    split_options,
    to_slug,
    to_title,
    to_type_name,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("sheetforge.models")

# ---------------------------------------------------------------------------
# Enums: fixed vocabularies of the spreadsheet columns
# ---------------------------------------------------------------------------


class FieldType(str, Enum):
    """Recognized values of the ``type`` column."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    IMAGE = "image"
    FILE = "file"
    PASSWORD = "password"
    EMAIL = "email"
    TEXTAREA = "textarea"
    OBJECT_ID = "objectid"


class UiType(str, Enum):
    """Recognized values of the ``uiType`` column."""

    INPUT = "input"
    TEXTAREA = "textarea"
    CHECKBOX = "checkbox"
    DATE = "date"
    FILE = "file"
    SELECT = "select"
    RADIO = "radio"
    PASSWORD = "password"
    LOGIN_IDENTITY = "login:identity"


KNOWN_FIELD_TYPES: FrozenSet[str] = frozenset(t.value for t in FieldType)
KNOWN_UI_TYPES: FrozenSet[str] = frozenset(u.value for u in UiType)
FILE_FIELD_TYPES: FrozenSet[str] = frozenset({FieldType.FILE.value, FieldType.IMAGE.value})

# Columns every generated table carries in addition to the declared fields.
AUTO_COLUMNS: FrozenSet[str] = frozenset({"id", "created_at", "updated_at"})


def infer_ui_type(field_type: Optional[str]) -> str:
    """Default presentation hint for a field whose ``uiType`` cell is empty."""
    normalized: str = (field_type or "").strip().lower()
    if normalized == FieldType.TEXTAREA.value:
        return UiType.TEXTAREA.value
    if normalized == FieldType.BOOLEAN.value:
        return UiType.CHECKBOX.value
    if normalized == FieldType.DATE.value:
        return UiType.DATE.value
    if normalized in FILE_FIELD_TYPES:
        return UiType.FILE.value
    return UiType.INPUT.value


# ---------------------------------------------------------------------------
# Mixin: shared model configuration
# ---------------------------------------------------------------------------

_SHARED_CONFIG: ConfigDict = ConfigDict(
    strict=False,
    populate_by_name=True,
    validate_assignment=True,
    use_enum_values=True,
    frozen=False,
    extra="forbid",
)


# ---------------------------------------------------------------------------
# Field schema
# ---------------------------------------------------------------------------


class FieldDescriptor(BaseModel):
    """
    One schema row: a single attribute of an entity.

    Accepts both the spreadsheet column names (``fieldName``, ``uiType``) and
    their snake_case equivalents. Cells are normalized on the way in:
    ``required``/``searchable`` accept ``yes``/``*``/``1``, ``options`` accepts
    a comma-separated string, and an empty ``uiType`` is inferred from
    ``type``.
    """

    model_config = _SHARED_CONFIG

    label: str = Field(default="", description="Display caption.")
    field_name: str = Field(
        default="",
        alias="fieldName",
        description="Identifier, unique within the entity.",
    )
    type: str = Field(default=FieldType.STRING.value, description="Semantic kind.")
    required: bool = Field(default=False, description="Value must be supplied.")
    options: List[str] = Field(
        default_factory=list, description="Choices for select / radio widgets."
    )
    reference: Optional[str] = Field(
        default=None, description="Name of the entity this field points to."
    )
    ui_type: str = Field(
        default=UiType.INPUT.value,
        alias="uiType",
        description="Presentation hint, inferred from type when absent.",
    )
    searchable: bool = Field(
        default=False, description="Included in the list operation's search."
    )

    @model_validator(mode="before")
    @classmethod
    def _fill_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        ui_value = data.pop("uiType", None)
        snake_ui_value = data.pop("ui_type", None)
        if ui_value is None or not str(ui_value).strip():
            ui_value = snake_ui_value
        if ui_value is None or not str(ui_value).strip():
            ui_value = infer_ui_type(data.get("type"))
        data["uiType"] = ui_value

        label = data.get("label")
        if label is None or not str(label).strip():
            raw_name = data.get("fieldName", data.get("field_name")) or ""
            data["label"] = to_title(str(raw_name).strip())
        return data

    @field_validator("label", "field_name", mode="before")
    @classmethod
    def _strip_text(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, v: Any) -> str:
        if v is None or not str(v).strip():
            return FieldType.STRING.value
        return str(v).strip().lower()

    @field_validator("ui_type", mode="before")
    @classmethod
    def _normalize_ui_type(cls, v: Any) -> str:
        return str(v).strip().lower()

    @field_validator("required", "searchable", mode="before")
    @classmethod
    def _parse_flags(cls, v: Any) -> bool:
        return parse_boolean(v)

    @field_validator("options", mode="before")
    @classmethod
    def _parse_options(cls, v: Any) -> List[str]:
        return split_options(v)

    @field_validator("reference", mode="before")
    @classmethod
    def _normalize_reference(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    # -- Derived helpers -----------------------------------------------------

    @property
    def is_reference(self) -> bool:
        return self.reference is not None

    @property
    def is_file(self) -> bool:
        return self.type in FILE_FIELD_TYPES

    @property
    def is_password(self) -> bool:
        return self.type == FieldType.PASSWORD.value

    @property
    def is_identity(self) -> bool:
        return self.ui_type == UiType.LOGIN_IDENTITY.value

    @property
    def is_known_type(self) -> bool:
        return self.type in KNOWN_FIELD_TYPES

    def __repr__(self) -> str:
        return f"<Field {self.field_name}: {self.type}/{self.ui_type}>"


class EntitySchema(BaseModel):
    """A named, ordered collection of field descriptors (one sheet)."""

    model_config = _SHARED_CONFIG

    name: str = Field(..., min_length=1, description="Raw entity (sheet) name.")
    fields: List[FieldDescriptor] = Field(
        default_factory=list, description="Fields in sheet order."
    )

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()

    @computed_field  # type: ignore[misc]
    @property
    def type_name(self) -> str:
        return to_type_name(self.name)

    @computed_field  # type: ignore[misc]
    @property
    def slug(self) -> str:
        return to_slug(self.name)

    @property
    def title(self) -> str:
        return to_title(self.name)

    @property
    def module(self) -> str:
        return module_name(self.name)

    @property
    def field_names(self) -> List[str]:
        return [f.field_name for f in self.fields]

    @property
    def searchable_fields(self) -> List[FieldDescriptor]:
        return [f for f in self.fields if f.searchable]

    @property
    def reference_fields(self) -> List[FieldDescriptor]:
        return [f for f in self.fields if f.is_reference]

    @property
    def file_field(self) -> Optional[FieldDescriptor]:
        """First field of file/image type; it receives the uploaded file path."""
        return next((f for f in self.fields if f.is_file), None)

    @property
    def password_field(self) -> Optional[FieldDescriptor]:
        return next((f for f in self.fields if f.is_password), None)

    def get_field(self, field_name: str) -> Optional[FieldDescriptor]:
        return next((f for f in self.fields if f.field_name == field_name), None)

    def __repr__(self) -> str:
        return f"<Entity {self.name} ({len(self.fields)} fields)>"


class SchemaDefinition(BaseModel):
    """
    The root model: every entity of one generation run, in input order.

    Entity lookup is case-insensitive (by slug form). Duplicates are not
    rejected here; ``validators.validate_entity_names`` reports them so that
    every input problem surfaces in a single report.
    """

    model_config = _SHARED_CONFIG

    entities: List[EntitySchema] = Field(
        default_factory=list, description="All entities, in sheet order."
    )
    source_file: Optional[str] = Field(
        default=None, description="Path of the workbook / schema file."
    )

    _entity_map: Dict[str, EntitySchema] = PrivateAttr(default_factory=dict)
    _key_map: Dict[str, EntitySchema] = PrivateAttr(default_factory=dict)

    @model_validator(mode="after")
    def _build_entity_map(self) -> "SchemaDefinition":
        entity_map: Dict[str, EntitySchema] = {}
        key_map: Dict[str, EntitySchema] = {}
        for entity in self.entities:
            entity_map.setdefault(entity.slug, entity)
            if name_key(entity.name):
                key_map.setdefault(name_key(entity.name), entity)
        self._entity_map = entity_map
        self._key_map = key_map
        self._canonicalize_references()
        return self

    def _canonicalize_references(self) -> None:
        """
        Rewrite every resolvable reference to the exact name of its target.

        Type name, module and slug of a reference are all derived from this
        one name, so every emitter agrees on the target.
        """
        for entity in self.entities:
            for position, fd in enumerate(entity.fields):
                if fd.reference is None:
                    continue
                target = self.resolve_reference(fd.reference)
                if target is not None and target.name != fd.reference:
                    entity.fields[position] = fd.model_copy(update={"reference": target.name})

    @classmethod
    def from_mapping(
        cls,
        mapping: Union[
            Mapping[str, Sequence[Mapping[str, Any]]],
            Iterable[Tuple[str, Sequence[Mapping[str, Any]]]],
        ],
        source_file: Optional[str] = None,
    ) -> "SchemaDefinition":
        """
        Build a schema from ``{entity name: [field dict, ...]}``.

        An iterable of ``(name, rows)`` pairs is accepted as well, so that
        sheets whose names collide after trimming both reach validation.

        Raises:
            SchemaInputError: A field row cannot be coerced into a
                ``FieldDescriptor``; ``entity`` names the offending sheet.
        """
        pairs = mapping.items() if isinstance(mapping, Mapping) else mapping
        entities: List[EntitySchema] = []
        for raw_name, rows in pairs:
            name: str = str(raw_name).strip()
            fields: List[FieldDescriptor] = []
            for position, row in enumerate(rows, start=1):
                if not isinstance(row, Mapping):
                    raise SchemaInputError(
                        f"Field row {position} in '{name}' is not a mapping.",
                        entity=name,
                    )
                try:
                    fields.append(FieldDescriptor.model_validate(dict(row)))
                except ValidationError as exc:
                    raise SchemaInputError(
                        f"Invalid field row {position} in '{name}': "
                        f"{exc.errors()[0]['msg']}",
                        entity=name,
                    ) from exc
            try:
                entities.append(EntitySchema(name=name, fields=fields))
            except ValidationError as exc:
                raise SchemaInputError(
                    f"Invalid entity '{name}': {exc.errors()[0]['msg']}",
                    entity=name,
                ) from exc
        return cls(entities=entities, source_file=source_file)

    def get_entity(self, name: str) -> Optional[EntitySchema]:
        """Case-insensitive lookup by raw name or slug."""
        return self._entity_map.get(to_slug(name))

    def resolve_reference(self, reference: str) -> Optional[EntitySchema]:
        """Target of *reference*, ignoring case, spaces and punctuation."""
        key = name_key(reference)
        return self._key_map.get(key) if key else None

    @property
    def entity_names(self) -> List[str]:
        return [e.name for e in self.entities]

    @property
    def total_fields(self) -> int:
        return sum(len(e.fields) for e in self.entities)

    def __repr__(self) -> str:
        return f"<SchemaDefinition {len(self.entities)} entities>"


# ---------------------------------------------------------------------------
# Code Generation Configuration
# ---------------------------------------------------------------------------


class MenuGroupRule(BaseModel):
    """One keyword-to-group rule of the navigation menu."""

    model_config = _SHARED_CONFIG

    label: str = Field(..., min_length=1, description="Group caption.")
    keywords: List[str] = Field(
        ..., min_length=1, description="Case-insensitive substrings to match."
    )
    icon: str = Field(default="AppWindow", description="Icon identifier.")

    @field_validator("keywords")
    @classmethod
    def _lower_keywords(cls, v: List[str]) -> List[str]:
        return [k.strip().lower() for k in v if k.strip()]


DEFAULT_MENU_GROUPS: List[Dict[str, Any]] = [
    {"label": "User Management", "keywords": ["user", "group", "role"], "icon": "Users"},
    {
        "label": "Catalogue Management",
        "keywords": ["catalogue", "category", "brand", "product"],
        "icon": "ShoppingCart",
    },
    {"label": "Voucher Management", "keywords": ["voucher"], "icon": "Ticket"},
    {"label": "Order Management", "keywords": ["order"], "icon": "ClipboardList"},
    {"label": "Admin User Management", "keywords": ["admin user"], "icon": "Shield"},
    {"label": "Contact Us Management", "keywords": ["contact us"], "icon": "Phone"},
    {"label": "CMS Pages Management", "keywords": ["cms page"], "icon": "FileText"},
    {"label": "Templates", "keywords": ["template"], "icon": "LayoutTemplate"},
    {"label": "Import History", "keywords": ["import history"], "icon": "History"},
]


def _default_menu_groups() -> List[MenuGroupRule]:
    return [MenuGroupRule(**rule) for rule in DEFAULT_MENU_GROUPS]


class GenerationConfig(BaseModel):
    """
    Master configuration for one generation run.

    A single instance of this model (combined with a ``SchemaDefinition``)
    is all the generator needs to produce the full output.
    """

    model_config = _SHARED_CONFIG

    # -- Project metadata ---------------------------------------------------
    project_name: str = Field(
        default="admin_panel",
        min_length=1,
        max_length=128,
        description="Title of the generated admin API.",
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./admin.db",
        description="Default DATABASE_URL baked into the generated backend.",
    )

    # -- Routing ------------------------------------------------------------
    api_prefix: str = Field(default="/api", description="Prefix of every API route.")
    auth_entity_name: str = Field(
        default="authusers",
        min_length=1,
        description="Reserved entity name that triggers login emission.",
    )

    # -- Behaviour of generated operations -----------------------------------
    token_expiry_seconds: int = Field(
        default=86400, ge=60, description="Lifetime of issued login tokens."
    )
    token_storage_key: str = Field(
        default="authToken", description="Client-side storage key of the token."
    )
    default_page_size: int = Field(default=10, ge=1, description="List page size.")
    max_page_size: int = Field(default=100, ge=1, description="Upper bound on limit.")
    page_size_options: List[int] = Field(
        default_factory=lambda: [5, 10, 25],
        description="Page sizes offered by list descriptors.",
    )
    upload_dir: str = Field(default="uploads", description="Where uploads are stored.")

    # -- Output layout -------------------------------------------------------
    backend_package: str = Field(
        default="backend",
        pattern=r"^[A-Za-z_][A-Za-z0-9_]*$",
        description="Python package of the generated backend.",
    )
    frontend_dir: str = Field(default="frontend", description="UI descriptor root.")
    manifest_dir: str = Field(default="manifest", description="Aggregate artifact root.")
    generate_project_files: bool = Field(
        default=True,
        description="Emit database/support/main modules of the backend.",
    )

    # -- Navigation ----------------------------------------------------------
    menu_groups: List[MenuGroupRule] = Field(
        default_factory=_default_menu_groups,
        description="Ordered keyword-to-group rules; first match wins.",
    )

    @field_validator("api_prefix")
    @classmethod
    def _normalize_prefix(cls, v: str) -> str:
        stripped = v.strip().strip("/")
        return f"/{stripped}" if stripped else ""

    @model_validator(mode="after")
    def _validate_page_sizes(self) -> "GenerationConfig":
        if self.default_page_size > self.max_page_size:
            raise ValueError(
                f"default_page_size ({self.default_page_size}) must be "
                f"<= max_page_size ({self.max_page_size})."
            )
        return self

    @property
    def login_path(self) -> str:
        return f"{self.api_prefix}/auth/login"

    def api_path(self, slug: str) -> str:
        return f"{self.api_prefix}/{slug}"
