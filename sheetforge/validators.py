# File: sheetforge/validators.py
"""
SheetForge - Schema & Configuration Validators
==============================================
A **pure-function validation pipeline** over the models defined in
``sheetforge.models``.

Pydantic handles per-cell coercion. This module adds the semantic checks
that need the whole sheet or the whole workbook: field-name rules, entity
name collisions after normalization, reference resolution, auth activation
and configuration sanity.

Errors abort a run before anything is emitted; warnings are carried into
the generation report.

Usage by downstream modules:
    from sheetforge.validators import validate_full
    result = validate_full(schema, config)
    if not result.is_valid:
        ...
"""

from __future__ import annotations

import keyword
import logging
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Set, Tuple

from sheetforge.auth import is_auth_entity, resolve_auth_activation
from sheetforge.models import (
    AUTO_COLUMNS,
    KNOWN_UI_TYPES,
    GenerationConfig,
    SchemaDefinition,
    UiType,
)
from sheetforge.utils import is_valid_identifier, name_key

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("sheetforge.validators")

NO_VALID_SHEETS: str = "No valid sheets found"

# ---------------------------------------------------------------------------
# Validation result container
# ---------------------------------------------------------------------------


class ValidationIssue:
    """One finding of the pipeline (no Pydantic overhead)."""

    __slots__ = ("level", "code", "message", "context")

    def __init__(
        self,
        level: str,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.level: str = level  # "error" | "warning" | "info"
        self.code: str = code
        self.message: str = message
        self.context: Dict[str, Any] = context or {}

    @property
    def is_error(self) -> bool:
        return self.level == "error"

    @property
    def is_warning(self) -> bool:
        return self.level == "warning"

    @property
    def entity(self) -> Optional[str]:
        return self.context.get("entity")

    def __repr__(self) -> str:
        return f"[{self.level.upper()}] {self.code}: {self.message}"

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "code": self.code,
            "message": self.message,
            "context": self.context,
        }


class ValidationResult:
    """Accumulates ``ValidationIssue`` instances in the order they were found."""

    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: List[ValidationIssue] = []

    # -- Mutation -----------------------------------------------------------

    def _add(self, level: str, code: str, message: str, context: Optional[Dict[str, Any]]) -> None:
        self._items.append(ValidationIssue(level, code, message, context))

    def add_error(self, code: str, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self._add("error", code, message, context)

    def add_warning(self, code: str, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self._add("warning", code, message, context)

    def add_info(self, code: str, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self._add("info", code, message, context)

    def merge(self, other: "ValidationResult") -> None:
        self._items.extend(other._items)

    # -- Query --------------------------------------------------------------

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self._items if i.is_error]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self._items if i.is_warning]

    @property
    def all_items(self) -> List[ValidationIssue]:
        return list(self._items)

    @property
    def codes(self) -> List[str]:
        return [i.code for i in self._items]

    @property
    def has_errors(self) -> bool:
        return any(i.is_error for i in self._items)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def first_error(self) -> Optional[ValidationIssue]:
        return next((i for i in self._items if i.is_error), None)

    def summary(self) -> str:
        return f"Validation: {self.error_count} error(s), {self.warning_count} warning(s)."

    def __repr__(self) -> str:
        return f"<ValidationResult {self.summary()}>"

    def __bool__(self) -> bool:
        """Truthy when there are NO errors."""
        return self.is_valid

    def __len__(self) -> int:
        return len(self._items)

    def format_report(self, include_info: bool = False) -> str:
        """Human-readable multi-line report, grouped by level."""
        lines: List[str] = [self.summary()]
        for level, marker in (("error", "✗"), ("warning", "!"), ("info", "i")):
            if level == "info" and not include_info:
                continue
            items = [i for i in self._items if i.level == level]
            if not items:
                continue
            lines.append("")
            lines.append(f"{level.capitalize()}s:")
            for item in items:
                lines.append(f"  {marker} [{item.code}] {item.message}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Name sets
# ---------------------------------------------------------------------------

# Attribute names a SQLAlchemy declarative class reserves for itself.
_DECLARATIVE_RESERVED: FrozenSet[str] = frozenset({"metadata", "registry"})

_RESERVED_FIELD_NAMES: FrozenSet[str] = AUTO_COLUMNS | _DECLARATIVE_RESERVED

_OPTION_UI_TYPES: FrozenSet[str] = frozenset({UiType.SELECT.value, UiType.RADIO.value})

# Entity names become path segments of the output tree.
_PATH_UNSAFE_MARKERS: Tuple[str, ...] = ("/", "\\", "..")

_ASYNC_DRIVER_HINTS: Dict[str, str] = {
    "postgresql": "asyncpg",
    "mysql": "aiomysql",
    "sqlite": "aiosqlite",
}


# ---------------------------------------------------------------------------
# Individual validation functions
# ---------------------------------------------------------------------------


def validate_entity_presence(schema: SchemaDefinition) -> ValidationResult:
    """At least one sheet with rows; sheets without rows are skipped with a warning."""
    result: ValidationResult = ValidationResult()
    if not any(entity.fields for entity in schema.entities):
        result.add_error("NO_ENTITIES", NO_VALID_SHEETS)
        return result
    for entity in schema.entities:
        if not entity.fields:
            result.add_warning(
                "EMPTY_ENTITY",
                f"Entity '{entity.name}' has no fields and will be skipped.",
                {"entity": entity.name},
            )
    return result


def validate_entity_names(schema: SchemaDefinition) -> ValidationResult:
    """
    Entity names must produce a usable type name and must stay unique once
    normalized; two sheets that differ only in case or separators would write
    to the same files.
    """
    result: ValidationResult = ValidationResult()
    seen_slugs: Dict[str, str] = {}
    seen_modules: Dict[str, str] = {}
    seen_keys: Dict[str, str] = {}

    for entity in schema.entities:
        ctx: Dict[str, Any] = {"entity": entity.name}
        if not entity.type_name or not entity.slug:
            result.add_error(
                "INVALID_ENTITY_NAME",
                f"Entity name '{entity.name}' contains no letters or digits.",
                ctx,
            )
            continue
        if any(marker in entity.name for marker in _PATH_UNSAFE_MARKERS):
            result.add_error(
                "INVALID_ENTITY_NAME",
                f"Entity name '{entity.name}' must not contain path separators or '..'.",
                ctx,
            )
            continue

        key: str = name_key(entity.name)
        previous = (
            seen_slugs.get(entity.slug)
            or seen_modules.get(entity.module)
            or seen_keys.get(key)
        )
        if previous is not None:
            result.add_error(
                "DUPLICATE_ENTITY_NAME",
                f"Entity '{entity.name}' collides with '{previous}'.",
                {**ctx, "slug": entity.slug},
            )
            continue
        seen_slugs[entity.slug] = entity.name
        seen_modules[entity.module] = entity.name
        seen_keys[key] = entity.name
    return result


def validate_field_names(schema: SchemaDefinition) -> ValidationResult:
    """
    Field names must be present, unique per entity, valid non-keyword
    identifiers, and must not shadow the automatic columns.
    """
    result: ValidationResult = ValidationResult()

    for entity in schema.entities:
        seen: Set[str] = set()
        for position, fd in enumerate(entity.fields, start=1):
            name: str = fd.field_name
            ctx: Dict[str, Any] = {"entity": entity.name, "row": position}

            if not name:
                result.add_error(
                    "MISSING_FIELD_NAME",
                    f"Row {position} of '{entity.name}' has no fieldName.",
                    ctx,
                )
                continue
            ctx["field"] = name

            if name in seen:
                result.add_error(
                    "DUPLICATE_FIELD_NAME",
                    f"Field '{name}' is defined more than once in '{entity.name}'.",
                    ctx,
                )
            seen.add(name)

            if not is_valid_identifier(name) or keyword.iskeyword(name):
                result.add_error(
                    "INVALID_FIELD_NAME",
                    f"Field name '{name}' in '{entity.name}' is not a valid identifier.",
                    ctx,
                )
                continue

            if name in _RESERVED_FIELD_NAMES:
                result.add_error(
                    "RESERVED_FIELD_NAME",
                    f"Field name '{name}' in '{entity.name}' is reserved "
                    f"({', '.join(sorted(_RESERVED_FIELD_NAMES))}).",
                    ctx,
                )
    return result


def validate_field_types(schema: SchemaDefinition) -> ValidationResult:
    """Unknown types behave as ``string``; option widgets need options."""
    result: ValidationResult = ValidationResult()

    for entity in schema.entities:
        for fd in entity.fields:
            ctx: Dict[str, Any] = {"entity": entity.name, "field": fd.field_name}

            if not fd.is_known_type:
                result.add_warning(
                    "UNKNOWN_FIELD_TYPE",
                    f"Field '{entity.name}.{fd.field_name}' has unknown type "
                    f"'{fd.type}'; treated as string.",
                    {**ctx, "type": fd.type},
                )

            if fd.ui_type not in KNOWN_UI_TYPES:
                result.add_info(
                    "UNKNOWN_UI_TYPE",
                    f"Field '{entity.name}.{fd.field_name}' has unknown uiType "
                    f"'{fd.ui_type}'; rendered as a text input.",
                    {**ctx, "uiType": fd.ui_type},
                )

            if fd.ui_type in _OPTION_UI_TYPES and not fd.options and not fd.is_reference:
                result.add_warning(
                    "MISSING_OPTIONS",
                    f"Field '{entity.name}.{fd.field_name}' uses uiType "
                    f"'{fd.ui_type}' without options; rendered as a text input.",
                    ctx,
                )
    return result


def validate_references(schema: SchemaDefinition) -> ValidationResult:
    """References must name an entity of the same run that has fields."""
    result: ValidationResult = ValidationResult()
    for entity in schema.entities:
        for fd in entity.reference_fields:
            target = schema.resolve_reference(fd.reference)
            if target is None or not target.fields:
                result.add_warning(
                    "UNKNOWN_REFERENCE",
                    f"Field '{entity.name}.{fd.field_name}' references unknown "
                    f"entity '{fd.reference}'; stored as a plain id.",
                    {"entity": entity.name, "field": fd.field_name, "reference": fd.reference},
                )
    return result


def validate_auth_entity(
    schema: SchemaDefinition, config: GenerationConfig
) -> ValidationResult:
    """The auth entity needs one identity field and one password field."""
    result: ValidationResult = ValidationResult()

    for entity in schema.entities:
        if not entity.fields or not is_auth_entity(entity.name, config.auth_entity_name):
            continue
        activation = resolve_auth_activation(entity)
        if not activation.active:
            result.add_warning(
                "AUTH_FIELDS_MISSING",
                f"Login for '{entity.name}' not generated: {activation.problem}.",
                {"entity": entity.name},
            )
    return result


def validate_generation_config(config: GenerationConfig) -> ValidationResult:
    """
    Semantic checks beyond the Pydantic field constraints.

    Complexity: O(1).
    """
    result: ValidationResult = ValidationResult()

    dialect: str = config.database_url.split(":", 1)[0].split("+", 1)[0]
    hint: Optional[str] = _ASYNC_DRIVER_HINTS.get(dialect)
    if hint and hint not in config.database_url:
        result.add_warning(
            "ASYNC_DRIVER_MISSING",
            f"database_url does not contain '{hint}' (async driver for "
            f"{dialect}); the generated backend uses an async engine.",
            {"database_url": config.database_url, "suggested_driver": hint},
        )

    oversized = [size for size in config.page_size_options if size > config.max_page_size]
    if oversized:
        result.add_warning(
            "PAGE_SIZE_OPTION_TOO_LARGE",
            f"Page size options {oversized} exceed max_page_size "
            f"({config.max_page_size}) and will be clamped.",
            {"max_page_size": config.max_page_size},
        )
    return result


# ---------------------------------------------------------------------------
# Aggregate entry points
# ---------------------------------------------------------------------------


def validate_schema(schema: SchemaDefinition) -> ValidationResult:
    """Run all schema-level validators and merge their results."""
    result: ValidationResult = ValidationResult()

    validators: List[Callable[[SchemaDefinition], ValidationResult]] = [
        validate_entity_presence,
        validate_entity_names,
        validate_field_names,
        validate_field_types,
        validate_references,
    ]

    for validator_fn in validators:
        logger.debug("Running validator: %s", validator_fn.__name__)
        result.merge(validator_fn(schema))

    logger.info("Schema validation complete: %s", result.summary())
    return result


def validate_full(
    schema: SchemaDefinition,
    config: GenerationConfig,
) -> ValidationResult:
    """
    **Master validation entry point.**

    Runs the schema validators, the config validators, and the auth checks
    that depend on both. ``generator.py`` and ``cli.py`` call this before
    emitting anything.
    """
    logger.info(
        "Starting full validation: %d entities, %d fields",
        len(schema.entities),
        schema.total_fields,
    )

    result: ValidationResult = ValidationResult()
    result.merge(validate_schema(schema))
    result.merge(validate_generation_config(config))
    result.merge(validate_auth_entity(schema, config))

    if result.has_errors:
        logger.error(
            "Validation FAILED with %d error(s). %s",
            result.error_count,
            result.summary(),
        )
    else:
        logger.info("Validation PASSED. %s", result.summary())

    return result


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__ = [
    "NO_VALID_SHEETS",
    "ValidationIssue",
    "ValidationResult",
    "validate_auth_entity",
    "validate_entity_names",
    "validate_entity_presence",
    "validate_field_names",
    "validate_field_types",
    "validate_full",
    "validate_generation_config",
    "validate_references",
    "validate_schema",
]
