# File: sheetforge/schema_emitter.py
"""
SheetForge - Model/Schema Emitter
=================================
Maps an ``EntitySchema`` to a ``PersistenceSchema``: one ``FieldDeclaration``
per field, typed by its storage variant, plus automatic creation/update
timestamps. Cross-reference declarations carry the type-name form (and table
name) of the referenced entity so that the rendered model's foreign key lines
up with the referenced model exactly.
"""

from __future__ import annotations

import logging
from typing import Collection, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from sheetforge.models import EntitySchema
from sheetforge.utils import module_name
from sheetforge.variants import StorageKind, classify_field

logger: logging.Logger = logging.getLogger("sheetforge.schema_emitter")

_DECLARATION_CONFIG: ConfigDict = ConfigDict(
    populate_by_name=True,
    use_enum_values=False,
    frozen=True,
    extra="forbid",
)


class FieldDeclaration(BaseModel):
    """Persistence-layer declaration of a single field."""

    model_config = _DECLARATION_CONFIG

    name: str = Field(..., min_length=1, description="Column / attribute name.")
    storage: StorageKind = Field(..., description="Persistence type.")
    required: bool = Field(default=False, description="NOT NULL when True.")
    reference_type: Optional[str] = Field(
        default=None, description="Type-name form of the referenced entity."
    )
    reference_table: Optional[str] = Field(
        default=None, description="Table name of the referenced entity."
    )

    @property
    def is_reference(self) -> bool:
        return self.storage is StorageKind.REFERENCE

    @property
    def relationship_name(self) -> str:
        """Attribute holding the populated referenced record."""
        return f"{self.name}_ref"


class PersistenceSchema(BaseModel):
    """Persistence declaration of one entity."""

    model_config = _DECLARATION_CONFIG

    entity_name: str = Field(..., description="Raw entity name.")
    type_name: str = Field(..., description="Model class name.")
    table_name: str = Field(..., description="Table / module name.")
    fields: List[FieldDeclaration] = Field(default_factory=list)
    timestamps: bool = Field(default=True, description="created_at / updated_at.")

    @computed_field  # type: ignore[misc]
    @property
    def cross_references(self) -> List[FieldDeclaration]:
        """Declarations that point at another entity's model."""
        return [f for f in self.fields if f.is_reference and f.reference_type]

    def get(self, name: str) -> Optional[FieldDeclaration]:
        return next((f for f in self.fields if f.name == name), None)


def emit_persistence_schema(
    entity: EntitySchema, known_types: Optional[Collection[str]] = None
) -> PersistenceSchema:
    """
    Derive the persistence declaration of *entity*.

    When *known_types* is given, a reference whose target model is not in it
    keeps its integer column but gets no foreign key or relationship.
    """
    declarations: List[FieldDeclaration] = []
    for field in entity.fields:
        variant = classify_field(field)
        reference_type = variant.reference_type
        if reference_type and known_types is not None and reference_type not in known_types:
            logger.debug(
                "'%s.%s' references unknown entity '%s'; no foreign key emitted",
                entity.name,
                field.field_name,
                field.reference,
            )
            reference_type = None
        declarations.append(
            FieldDeclaration(
                name=field.field_name,
                storage=variant.storage,
                required=field.required,
                reference_type=reference_type,
                reference_table=module_name(field.reference) if reference_type else None,
            )
        )
    schema = PersistenceSchema(
        entity_name=entity.name,
        type_name=entity.type_name,
        table_name=entity.module,
        fields=declarations,
    )
    logger.debug(
        "Persistence schema for '%s': %d fields, %d cross-references",
        entity.name,
        len(schema.fields),
        len(schema.cross_references),
    )
    return schema
