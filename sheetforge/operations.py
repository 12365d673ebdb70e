# File: sheetforge/operations.py
"""
SheetForge - CRUD Operation Emitter
===================================
Derives the five standard operations of an entity from its field schema and
persistence declaration. Each ``OperationSpec`` is plain data; it is rendered
to source by ``templates.TemplateGenerator.render_operation`` and executed
directly by ``runtime.CrudExecutor``, so both follow the same rules:

* **create / update**: an uploaded file's stored path overwrites the file
  field; a non-empty password is bcrypt-hashed. On update an empty password
  is dropped so the stored hash is kept.
* **list**: page/limit coerced to safe integers, ``search`` OR-combined as a
  case-insensitive substring match over every searchable field, remaining
  declared fields used as equality filters, newest first, references
  populated, ``{data, total, page, limit}`` returned.
* **get / update / delete**: not-found is a distinct result.
* every operation converts persistence failures into a server-error result
  carrying the entity name.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from sheetforge.models import EntitySchema, GenerationConfig
from sheetforge.schema_emitter import PersistenceSchema

logger: logging.Logger = logging.getLogger("sheetforge.operations")


class OperationKind(str, Enum):
    """The five standard CRUD operations."""

    CREATE = "create"
    LIST = "list"
    GET = "get"
    UPDATE = "update"
    DELETE = "delete"


# Function-name templates of the generated operations.
_FUNCTION_NAMES: Dict[OperationKind, str] = {
    OperationKind.CREATE: "create_{module}",
    OperationKind.LIST: "list_{module}",
    OperationKind.GET: "get_{module}",
    OperationKind.UPDATE: "update_{module}",
    OperationKind.DELETE: "delete_{module}",
}

# Module (file) names of the generated operations.
_MODULE_NAMES: Dict[OperationKind, str] = {
    OperationKind.CREATE: "create",
    OperationKind.LIST: "list_all",
    OperationKind.GET: "get_by_id",
    OperationKind.UPDATE: "update",
    OperationKind.DELETE: "delete",
}

_FAILURE_VERBS: Dict[OperationKind, str] = {
    OperationKind.CREATE: "create",
    OperationKind.LIST: "fetch",
    OperationKind.GET: "fetch",
    OperationKind.UPDATE: "update",
    OperationKind.DELETE: "delete",
}

_SPEC_CONFIG: ConfigDict = ConfigDict(use_enum_values=False, frozen=True, extra="forbid")


class OperationSpec(BaseModel):
    """Everything needed to render or execute one CRUD operation."""

    model_config = _SPEC_CONFIG

    kind: OperationKind
    entity_name: str
    type_name: str
    module: str = Field(..., description="Entity module name.")
    function_name: str
    file_field: Optional[str] = Field(
        default=None, description="Field overwritten by the uploaded file path."
    )
    password_field: Optional[str] = Field(
        default=None, description="Field hashed before persistence."
    )
    populate: List[str] = Field(
        default_factory=list, description="Reference fields resolved on read."
    )
    searchable: List[str] = Field(
        default_factory=list, description="Fields matched by the search term."
    )
    default_page: int = 1
    default_limit: int = 10
    max_limit: int = 100

    @property
    def module_file(self) -> str:
        return _MODULE_NAMES[self.kind]

    @property
    def accepts_file(self) -> bool:
        return self.kind in (OperationKind.CREATE, OperationKind.UPDATE) and bool(
            self.file_field
        )

    @property
    def hashes_password(self) -> bool:
        return self.kind in (OperationKind.CREATE, OperationKind.UPDATE) and bool(
            self.password_field
        )

    @property
    def failure_message(self) -> str:
        """Server-error message, e.g. ``Failed to create Product``."""
        return f"Failed to {_FAILURE_VERBS[self.kind]} {self.entity_name}"

    @property
    def not_found_message(self) -> str:
        return f"{self.entity_name} not found"

    @property
    def deleted_message(self) -> str:
        return f"{self.entity_name} deleted successfully."


class OperationSet(BaseModel):
    """The five operations of one entity, in route order."""

    model_config = _SPEC_CONFIG

    entity_name: str
    type_name: str
    module: str
    operations: List[OperationSpec]

    def get(self, kind: OperationKind) -> OperationSpec:
        for spec in self.operations:
            if spec.kind is kind:
                return spec
        raise KeyError(kind)

    @property
    def file_field(self) -> Optional[str]:
        return self.get(OperationKind.CREATE).file_field


def emit_operation_set(
    entity: EntitySchema,
    persistence: PersistenceSchema,
    config: Optional[GenerationConfig] = None,
) -> OperationSet:
    """
    Derive the operation set of *entity*.

    The populate list comes from the persistence declaration's
    cross-references, so only references that resolve to a model type are
    populated.
    """
    config = config or GenerationConfig()
    file_field = entity.file_field
    password_field = entity.password_field
    populate: List[str] = [decl.name for decl in persistence.cross_references]
    searchable: List[str] = [f.field_name for f in entity.searchable_fields]

    specs: List[OperationSpec] = []
    for kind in OperationKind:
        specs.append(
            OperationSpec(
                kind=kind,
                entity_name=entity.name,
                type_name=persistence.type_name,
                module=persistence.table_name,
                function_name=_FUNCTION_NAMES[kind].format(module=persistence.table_name),
                file_field=file_field.field_name if file_field else None,
                password_field=password_field.field_name if password_field else None,
                populate=populate,
                searchable=searchable,
                default_limit=config.default_page_size,
                max_limit=config.max_page_size,
            )
        )

    logger.debug(
        "Operation set for '%s': file=%s password=%s populate=%s searchable=%s",
        entity.name,
        specs[0].file_field,
        specs[0].password_field,
        populate,
        searchable,
    )
    return OperationSet(
        entity_name=entity.name,
        type_name=persistence.type_name,
        module=persistence.table_name,
        operations=specs,
    )
