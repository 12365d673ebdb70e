# File: sheetforge/__init__.py
"""
SheetForge - Spreadsheet-Driven Admin Panel Generator
=====================================================

Turns a workbook (one sheet per entity, one row per field) into a complete
CRUD admin panel: an async FastAPI + SQLAlchemy backend, form/list UI
descriptors, an optional login subsystem and a navigation manifest.
Re-running on the same input never touches artifacts that already exist.

Architecture overview::

    ┌──────────────┐     ┌──────────────────┐     ┌──────────────────┐
    │ CLI / Server │────▶│ ScaffoldGenerator│────▶│ TemplateGenerator│
    │(cli, server) │     │  (generator.py)  │     │  (templates.py)  │
    └──────────────┘     └────────┬─────────┘     └──────────────────┘
                                  │
          ┌────────────┬──────────┼───────────┬────────────┐
          ▼            ▼          ▼           ▼            ▼
     ┌────────┐  ┌──────────┐ ┌────────┐ ┌─────────┐ ┌───────────┐
     │ ingest │  │validators│ │ schema │ │ ui/auth │ │ exporters │
     │        │  │          │ │ /ops   │ │ /nav    │ │  (store)  │
     └────────┘  └──────────┘ └────────┘ └─────────┘ └───────────┘

Usage::

    # As a library
    from sheetforge import ScaffoldGenerator, FilesystemArtifactStore
    report = ScaffoldGenerator(store=FilesystemArtifactStore(out)).generate_from_file(path)

    # From the command line
    python -m sheetforge --schema schema.xlsx --output ./admin --verbose

Public API:
    - ScaffoldGenerator   Master orchestrator
    - GenerationConfig    Generation settings model
    - SchemaDefinition    Normalized field schema
    - TemplateGenerator   Backend source renderer
    - AdminRuntime        Executes the CRUD/login operations of a schema
    - validate_full       Schema validation entry point
"""

from __future__ import annotations

__version__: str = "1.0.0"
__license__: str = "MIT"

from sheetforge.exceptions import (
    ArtifactStoreError,
    GenerationError,
    SchemaInputError,
    SheetForgeError,
)
from sheetforge.models import (
    EntitySchema,
    FieldDescriptor,
    GenerationConfig,
    MenuGroupRule,
    SchemaDefinition,
)
from sheetforge.validators import ValidationResult, validate_full
from sheetforge.utils import Timer, to_slug, to_title, to_type_name
from sheetforge.ingest import load_schema_file, load_workbook_bytes
from sheetforge.templates import TemplateGenerator
from sheetforge.exporters import FilesystemArtifactStore, MemoryArtifactStore
from sheetforge.generator import GenerationReport, ScaffoldGenerator
from sheetforge.runtime import AdminRuntime

# ---------------------------------------------------------------------------
# Public API surface
# ---------------------------------------------------------------------------

__all__: list[str] = [
    # Version info
    "__version__",
    "__license__",
    # Core orchestrator
    "ScaffoldGenerator",
    "GenerationReport",
    # Errors
    "SheetForgeError",
    "SchemaInputError",
    "GenerationError",
    "ArtifactStoreError",
    # Models
    "EntitySchema",
    "FieldDescriptor",
    "GenerationConfig",
    "MenuGroupRule",
    "SchemaDefinition",
    # Ingestion
    "load_schema_file",
    "load_workbook_bytes",
    # Validation
    "validate_full",
    "ValidationResult",
    # Emission
    "TemplateGenerator",
    "FilesystemArtifactStore",
    "MemoryArtifactStore",
    # Runtime
    "AdminRuntime",
    # Utilities
    "Timer",
    "to_slug",
    "to_title",
    "to_type_name",
]
