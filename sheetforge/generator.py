# File: sheetforge/generator.py
"""
SheetForge - Master Generation Pipeline (Orchestrator)
======================================================

Connects every phase together:

    Schema Input → Validation → Emission → Artifact Store

Workflow::

    1. Accept a ``SchemaDefinition`` (or load one through ``ingest``).
    2. Run the validation pipeline; any error aborts before emission.
    3. Write the project support modules (idempotent).
    4. For each entity, in input order:
         - persistence model,
         - auth entity:  login operation, auth router, login form, route guard,
         - other entity: five operation modules, router, form/list unit.
    5. Regenerate the navigation menu, the dashboard and the route table manifest.
    6. Return a ``GenerationReport`` with processed / skipped / warnings.

Error handling strategy:
    - Validation problems are collected and surfaced as one report.
    - An existing artifact is a skip, never an error.
    - The first unrecoverable failure aborts the run; the report names the
      entity being processed at the time.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set

from sheetforge.auth import (
    emit_login_form,
    emit_login_spec,
    emit_route_guard,
    is_auth_entity,
    resolve_auth_activation,
)
from sheetforge.exceptions import ArtifactStoreError, GenerationError, SchemaInputError
from sheetforge.exporters import (
    Artifact,
    ArtifactIdentity,
    ArtifactKind,
    ArtifactLayout,
    ArtifactRecord,
    ArtifactStore,
    MemoryArtifactStore,
)
from sheetforge.ingest import load_schema_file, load_workbook_bytes
from sheetforge.models import EntitySchema, GenerationConfig, SchemaDefinition
from sheetforge.navigation import build_dashboard, build_menu, build_route_table
from sheetforge.operations import emit_operation_set
from sheetforge.routes import emit_route_surface
from sheetforge.schema_emitter import emit_persistence_schema
from sheetforge.templates import TemplateGenerator
from sheetforge.ui import emit_form_descriptor, emit_list_descriptor
from sheetforge.utils import Timer, to_json
from sheetforge.validators import NO_VALID_SHEETS, validate_full

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("sheetforge.generator")

SUCCESS_PREFIX: str = "Code generated successfully for: "

# Failure kinds, also used by the CLI to choose an exit code.
FAILURE_INPUT: str = "input"
FAILURE_GENERATION: str = "generation"
FAILURE_EXPORT: str = "export"


# ---------------------------------------------------------------------------
# Generation report
# ---------------------------------------------------------------------------


@dataclass(frozen=False, slots=True)
class GenerationStepMetric:
    """Timing and outcome for a single pipeline step."""

    step_name: str = ""
    success: bool = True
    elapsed_seconds: float = 0.0
    detail: str = ""


@dataclass(frozen=False, slots=True)
class GenerationReport:
    """
    Outcome of ``ScaffoldGenerator.generate()``.

    ``to_response()`` gives the body relayed by the upload endpoint;
    ``summary()`` is the human-readable box printed by the CLI.
    """

    success: bool = False
    message: str = ""
    failure_kind: Optional[str] = None
    failed_entity: Optional[str] = None
    output_directory: str = ""

    processed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    records: List[ArtifactRecord] = field(default_factory=list)
    step_metrics: List[GenerationStepMetric] = field(default_factory=list)
    total_elapsed_seconds: float = 0.0

    @property
    def status_code(self) -> int:
        if self.success:
            return 200
        return 400 if self.failure_kind == FAILURE_INPUT else 500

    @property
    def files_written(self) -> int:
        return sum(len(r.files) for r in self.records if not r.skipped)

    @property
    def artifacts_skipped(self) -> int:
        return sum(1 for r in self.records if r.skipped)

    def to_response(self) -> Dict[str, Any]:
        if self.success:
            return {
                "message": self.message,
                "processed": list(self.processed),
                "skipped": list(self.skipped),
                "warnings": list(self.warnings),
            }
        return {"message": self.message, "entity": self.failed_entity}

    def summary(self) -> str:
        """Return a human-readable summary string."""
        lines: List[str] = []
        status: str = "SUCCESS" if self.success else f"FAILED ({self.failure_kind})"
        lines.append("=" * 60)
        lines.append("  SheetForge Generation Report")
        lines.append("=" * 60)
        lines.append(f"  Status:             {status}")
        lines.append(f"  Output:             {self.output_directory or '<memory>'}")
        lines.append(f"  Entities processed: {len(self.processed)}")
        lines.append(f"  Entities skipped:   {len(self.skipped)}")
        lines.append(f"  Files written:      {self.files_written}")
        lines.append(f"  Artifacts skipped:  {self.artifacts_skipped}")
        lines.append(f"  Total time:         {self.total_elapsed_seconds:.3f}s")

        if self.step_metrics:
            lines.append("─" * 60)
            lines.append("  Pipeline Steps:")
            for step in self.step_metrics:
                icon: str = "✓" if step.success else "✗"
                lines.append(
                    f"    {icon} {step.step_name:<24s} {step.elapsed_seconds:>7.3f}s  {step.detail}"
                )

        sections = (
            ("Processed", self.processed, "+"),
            ("Skipped", self.skipped, "⊘"),
            ("Warnings", self.warnings, "!"),
            ("Errors", self.errors, "✗"),
        )
        for title, items, icon in sections:
            if items:
                lines.append("─" * 60)
                lines.append(f"  {title} ({len(items)}):")
                for item in items:
                    lines.append(f"    {icon} {item}")

        if not self.success:
            lines.append("─" * 60)
            entity = f" [{self.failed_entity}]" if self.failed_entity else ""
            lines.append(f"  {self.message}{entity}")
        lines.append("=" * 60)
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# ScaffoldGenerator: master orchestrator
# ---------------------------------------------------------------------------


class ScaffoldGenerator:
    """
    Pipeline orchestrator.

    Usage::

        store = FilesystemArtifactStore(Path("./admin"))
        generator = ScaffoldGenerator(GenerationConfig(), store)
        report = generator.generate(schema)
        print(report.summary())

    The generator is reusable; idempotency lives in the store, so running it
    twice against the same store skips everything the first run wrote.
    """

    def __init__(
        self,
        config: Optional[GenerationConfig] = None,
        store: Optional[ArtifactStore] = None,
    ) -> None:
        self._config: GenerationConfig = config or GenerationConfig()
        self._store: ArtifactStore = store if store is not None else MemoryArtifactStore()
        self._layout: ArtifactLayout = ArtifactLayout(self._config)
        self._templates: TemplateGenerator = TemplateGenerator(self._config)

    @property
    def config(self) -> GenerationConfig:
        return self._config

    @property
    def store(self) -> ArtifactStore:
        return self._store

    # -----------------------------------------------------------------
    # Entry points
    # -----------------------------------------------------------------

    def generate_from_file(self, path: Path) -> GenerationReport:
        """Load *path* through ``ingest`` and generate; its config section is ignored."""
        try:
            schema, _ = load_schema_file(path)
        except SchemaInputError as exc:
            return self._input_failure(exc)
        return self.generate(schema)

    def generate_from_workbook(self, content: bytes, filename: Optional[str] = None) -> GenerationReport:
        try:
            schema = load_workbook_bytes(content, filename)
        except SchemaInputError as exc:
            return self._input_failure(exc)
        return self.generate(schema)

    def generate_from_mapping(self, mapping: Mapping[str, Sequence[Mapping[str, Any]]]) -> GenerationReport:
        try:
            schema = SchemaDefinition.from_mapping(mapping)
        except SchemaInputError as exc:
            return self._input_failure(exc)
        return self.generate(schema)

    def generate(self, schema: SchemaDefinition) -> GenerationReport:
        """Run the whole pipeline over *schema*."""
        report = GenerationReport(output_directory=self._output_label())
        started = time.perf_counter()
        current: Optional[str] = None

        try:
            with Timer("validation") as timer:
                validation = validate_full(schema, self._config)
            report.warnings = [issue.message for issue in validation.warnings]
            report.step_metrics.append(
                GenerationStepMetric("Validation", validation.is_valid, timer.elapsed, validation.summary())
            )
            if not validation.is_valid:
                first = validation.first_error
                report.failure_kind = FAILURE_INPUT
                report.errors = [issue.message for issue in validation.errors]
                report.message = NO_VALID_SHEETS if first.code == "NO_ENTITIES" else first.message
                report.failed_entity = first.entity
                return report

            if self._config.generate_project_files:
                with Timer("project files") as timer:
                    report.records.extend(self._emit_project_files())
                report.step_metrics.append(GenerationStepMetric("Project files", True, timer.elapsed))

            entities = [e for e in schema.entities if e.fields]
            routed = [e for e in entities if not is_auth_entity(e.name, self._config.auth_entity_name)]
            auth_entities = [e for e in entities if is_auth_entity(e.name, self._config.auth_entity_name)]
            login_entity = next(
                (e for e in auth_entities if resolve_auth_activation(e).active), None
            )
            known_types: Set[str] = {e.type_name for e in routed}
            if login_entity is not None:
                known_types.add(login_entity.type_name)

            with Timer("entities") as timer:
                for entity in schema.entities:
                    current = entity.name
                    if not entity.fields:
                        logger.info("Skipping entity '%s': no fields", entity.name)
                        report.skipped.append(entity.name)
                        continue
                    records = self._emit_entity(entity, known_types)
                    report.records.extend(records)
                    if records and all(r.skipped for r in records):
                        logger.info("Skipping entity '%s': all artifacts exist", entity.name)
                        report.skipped.append(entity.name)
                    else:
                        report.processed.append(entity.name)
                current = None
            report.step_metrics.append(
                GenerationStepMetric("Entities", True, timer.elapsed, f"{len(entities)} entity(ies)")
            )

            with Timer("navigation") as timer:
                report.records.extend(self._emit_navigation(routed, login_entity))
            report.step_metrics.append(GenerationStepMetric("Navigation", True, timer.elapsed))

        except ArtifactStoreError as exc:
            logger.error("Export failed for '%s': %s", current, exc)
            report.failure_kind = FAILURE_EXPORT
            report.message = str(exc)
            report.failed_entity = current
            return report
        except GenerationError as exc:
            logger.error("Generation failed for '%s': %s", exc.entity, exc.message)
            report.failure_kind = FAILURE_GENERATION
            report.message = exc.message
            report.failed_entity = exc.entity
            return report
        finally:
            report.total_elapsed_seconds = time.perf_counter() - started

        report.success = True
        report.message = SUCCESS_PREFIX + ", ".join(report.processed)
        logger.info(
            "Generation finished: %d processed, %d skipped, %d warning(s)",
            len(report.processed),
            len(report.skipped),
            len(report.warnings),
        )
        return report

    # -----------------------------------------------------------------
    # Emission steps
    # -----------------------------------------------------------------

    def _persist(self, slug: str, kind: ArtifactKind, path: str, content: str) -> ArtifactRecord:
        artifact = Artifact.single(ArtifactIdentity(slug, kind), path, content)
        return self._store.persist(artifact, overwrite=kind.is_aggregate)

    def _emit_project_files(self) -> List[ArtifactRecord]:
        layout, tpl = self._layout, self._templates
        package_files = [(path, tpl.render_package_init()) for path in layout.package_inits()]
        package_files.append(("requirements.txt", tpl.render_requirements()))
        records = [
            self._store.persist(
                Artifact(
                    identity=ArtifactIdentity("", ArtifactKind.PROJECT_PACKAGE),
                    anchor=layout.package_inits()[0],
                    files=tuple(package_files),
                )
            ),
            self._persist("", ArtifactKind.PROJECT_DATABASE, layout.project_module("database"), tpl.render_database()),
            self._persist("", ArtifactKind.PROJECT_SUPPORT, layout.project_module("support"), tpl.render_support()),
            self._persist("", ArtifactKind.PROJECT_MAIN, layout.project_module("main"), tpl.render_main()),
        ]
        return records

    def _emit_entity(self, entity: EntitySchema, known_types: Set[str]) -> List[ArtifactRecord]:
        """
        Emit every per-entity artifact of *entity*.

        Raises:
            GenerationError: An emitter rejected the entity.
            ArtifactStoreError: The store could not write.
        """
        config, layout, tpl = self._config, self._layout, self._templates
        slug = entity.slug
        try:
            persistence = emit_persistence_schema(entity, known_types)
            records = [self._persist(slug, ArtifactKind.MODEL, layout.model(entity.module), tpl.render_model(persistence))]

            if is_auth_entity(entity.name, config.auth_entity_name):
                activation = resolve_auth_activation(entity)
                if not activation.active:
                    logger.warning("Login not generated for '%s': %s", entity.name, activation.problem)
                    return records
                login = emit_login_spec(entity, activation, config)
                surface = emit_route_surface(entity, None, config, login=login)
                records.append(self._persist(slug, ArtifactKind.LOGIN_OPERATION, layout.login_operation(), tpl.render_login(login)))
                records.append(self._persist(slug, ArtifactKind.AUTH_ROUTES, layout.auth_routes(), tpl.render_auth_router(surface)))
                login_form = emit_login_form(entity, login, config)
                records.append(
                    self._persist(slug, ArtifactKind.LOGIN_FORM, layout.login_form(), to_json(login_form.model_dump(mode="json")))
                )
                guard = emit_route_guard(config)
                records.append(
                    self._persist(slug, ArtifactKind.ROUTE_GUARD, layout.route_guard(), to_json(guard.model_dump(mode="json")))
                )
                return records

            operations = emit_operation_set(entity, persistence, config)
            for spec in operations.operations:
                records.append(
                    self._persist(
                        slug,
                        ArtifactKind.for_operation(spec.kind.value),
                        layout.operation(entity.module, spec.module_file),
                        tpl.render_operation(spec, persistence),
                    )
                )
            surface = emit_route_surface(entity, operations, config)
            records.append(self._persist(slug, ArtifactKind.ROUTES, layout.routes(entity.module), tpl.render_router(surface, operations)))

            unit = layout.ui_unit(slug)
            form = emit_form_descriptor(entity, config)
            listing = emit_list_descriptor(entity, config)
            records.append(
                self._store.persist(
                    Artifact(
                        identity=ArtifactIdentity(slug, ArtifactKind.UI),
                        anchor=unit,
                        files=(
                            (f"{unit}/form.json", to_json(form.model_dump(mode="json"))),
                            (f"{unit}/list.json", to_json(listing.model_dump(mode="json"))),
                        ),
                    )
                )
            )
            return records
        except ValueError as exc:
            raise GenerationError(str(exc), entity=entity.name) from exc

    def _emit_navigation(
        self, routed: Sequence[EntitySchema], login_entity: Optional[EntitySchema]
    ) -> List[ArtifactRecord]:
        names = [e.name for e in routed]
        menu = build_menu(names, self._config)
        dashboard = build_dashboard(names)
        table = build_route_table(
            names,
            self._config,
            auth_entity=login_entity.name if login_entity is not None else None,
        )
        return [
            self._persist(
                "", ArtifactKind.NAVIGATION_MENU, self._layout.menu(), to_json(menu.model_dump(mode="json"))
            ),
            self._persist(
                "",
                ArtifactKind.DASHBOARD,
                self._layout.dashboard(),
                to_json(dashboard.model_dump(mode="json")),
            ),
            self._persist(
                "", ArtifactKind.ROUTE_TABLE, self._layout.route_table(), to_json(table.model_dump(mode="json"))
            ),
        ]

    # -----------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------

    def _output_label(self) -> str:
        output_dir = getattr(self._store, "output_dir", None)
        return str(output_dir) if output_dir is not None else ""

    def _input_failure(self, exc: SchemaInputError) -> GenerationReport:
        logger.error("Schema input rejected: %s", exc.message)
        return GenerationReport(
            success=False,
            message=exc.message,
            failure_kind=FAILURE_INPUT,
            failed_entity=exc.entity,
            output_directory=self._output_label(),
            errors=[exc.message],
        )
