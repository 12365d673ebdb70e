# File: sheetforge/cli.py
"""
SheetForge - Command-Line Interface
===================================

Built on the standard-library ``argparse`` module.

Usage examples::

    # Generate an admin panel from a workbook
    sheetforge -s schema.xlsx -o ./admin

    # YAML schema with a config section, overriding the API prefix
    sheetforge -s schema.yaml -o ./admin --api-prefix /api/v1 -v

    # Validate only (no file output)
    sheetforge -s schema.xlsx --validate-only

    # Run everything in memory and list what would be written
    sheetforge -s schema.xlsx --dry-run

    # Serve POST /generate, plus a live preview API of schema.xlsx
    sheetforge --serve -o ./admin -s schema.xlsx --port 8000

Exit codes:
    0  success
    1  validation error
    2  generation error
    3  export error
    4  input/argument error
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional, Sequence

from pydantic import ValidationError

from sheetforge.exceptions import SchemaInputError
from sheetforge.models import GenerationConfig, SchemaDefinition

# ---------------------------------------------------------------------------
# Logger (configured in _setup_logging)
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("sheetforge")


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_SUCCESS: int = 0
EXIT_VALIDATION_ERROR: int = 1
EXIT_GENERATION_ERROR: int = 2
EXIT_EXPORT_ERROR: int = 3
EXIT_INPUT_ERROR: int = 4


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    """
    Configure the root sheetforge logger based on verbosity level.

    Args:
        verbosity: -1 = ERROR, 0 = WARNING, 1 = INFO, 2+ = DEBUG.
    """
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    elif verbosity == 0:
        level = logging.WARNING
    else:
        level = logging.ERROR

    handler: logging.StreamHandler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    fmt: str = "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s"
    datefmt: str = "%H:%M:%S"
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root_logger: logging.Logger = logging.getLogger("sheetforge")
    root_logger.setLevel(level)

    # Remove existing handlers to prevent duplication
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.propagate = False


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    from sheetforge import __version__

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="sheetforge",
        description=(
            "SheetForge: spreadsheet-driven CRUD admin panel generator.\n\n"
            "Reads one sheet per entity (one row per field) and emits a "
            "FastAPI + SQLAlchemy backend, form/list UI descriptors, a login "
            "subsystem and a navigation manifest."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  %(prog)s -s schema.xlsx -o ./admin\n"
            "  %(prog)s -s schema.yaml -o ./admin --api-prefix /api/v1\n"
            "  %(prog)s -s schema.xlsx --validate-only\n"
            "  %(prog)s --serve -o ./admin --port 8000\n"
        ),
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"SheetForge v{__version__}",
    )

    # --- Input / output ---
    parser.add_argument(
        "-s", "--schema",
        type=str,
        default=None,
        metavar="PATH",
        help="Workbook (.xlsx/.xlsm) or YAML/JSON schema file.",
    )
    parser.add_argument(
        "-o", "--output",
        type=str,
        default=None,
        metavar="DIR",
        help="Output directory. Required unless --validate-only or --dry-run is set.",
    )

    # --- Modes ---
    mode_group = parser.add_argument_group("operation modes")
    mode_group.add_argument(
        "--validate-only",
        action="store_true",
        default=False,
        help="Only validate the schema without generating code.",
    )
    mode_group.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Run the full pipeline in memory and list the files it would write.",
    )
    mode_group.add_argument(
        "--serve",
        action="store_true",
        default=False,
        help="Start the HTTP upload endpoint (and a preview API when -s is given).",
    )

    # --- Config overrides ---
    config_group = parser.add_argument_group("configuration overrides")
    config_group.add_argument(
        "--project-name",
        type=str,
        default=None,
        metavar="NAME",
        help="Title of the generated admin API.",
    )
    config_group.add_argument(
        "--database-url",
        type=str,
        default=None,
        metavar="URL",
        help="Default DATABASE_URL of the generated backend.",
    )
    config_group.add_argument(
        "--auth-entity",
        type=str,
        default=None,
        metavar="NAME",
        help="Reserved entity name that triggers login emission (default: authusers).",
    )
    config_group.add_argument(
        "--api-prefix",
        type=str,
        default=None,
        metavar="PREFIX",
        help="API URL prefix (default: /api).",
    )
    config_group.add_argument(
        "--page-size",
        type=int,
        default=None,
        metavar="N",
        help="Default page size of list operations.",
    )
    config_group.add_argument(
        "--no-project-files",
        action="store_true",
        default=False,
        help="Skip the database/support/main modules of the generated backend.",
    )

    # --- Server ---
    server_group = parser.add_argument_group("server")
    server_group.add_argument("--host", type=str, default="127.0.0.1", help="Bind address.")
    server_group.add_argument("--port", type=int, default=8000, help="Bind port.")
    server_group.add_argument(
        "--preview-db",
        type=str,
        default="sqlite://",
        metavar="URL",
        help="Database of the preview API (default: in-memory SQLite).",
    )

    # --- Verbosity ---
    verbosity_group = parser.add_argument_group("verbosity")
    verbosity_group.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG).",
    )
    verbosity_group.add_argument(
        "-q", "--quiet",
        action="store_true",
        default=False,
        help="Suppress all output except errors.",
    )

    return parser


# ---------------------------------------------------------------------------
# Config override builder
# ---------------------------------------------------------------------------


def _build_config_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Build a config override dictionary from CLI arguments."""
    overrides: Dict[str, Any] = {}

    if args.project_name is not None:
        overrides["project_name"] = args.project_name
    if args.database_url is not None:
        overrides["database_url"] = args.database_url
    if args.auth_entity is not None:
        overrides["auth_entity_name"] = args.auth_entity
    if args.api_prefix is not None:
        overrides["api_prefix"] = args.api_prefix
    if args.page_size is not None:
        overrides["default_page_size"] = args.page_size
    if args.no_project_files:
        overrides["generate_project_files"] = False

    return overrides


def _apply_overrides(config: GenerationConfig, overrides: Dict[str, Any]) -> GenerationConfig:
    """Re-validate *config* with *overrides* applied; raises pydantic ValidationError."""
    if not overrides:
        return config
    return GenerationConfig.model_validate({**config.model_dump(), **overrides})


# ---------------------------------------------------------------------------
# Modes
# ---------------------------------------------------------------------------


def _run_validate_only(schema: SchemaDefinition, config: GenerationConfig, schema_path: Path) -> int:
    """Validate and print a report; no code generation."""
    from sheetforge.utils import Timer
    from sheetforge.validators import validate_full

    logger.info("Running validation-only mode for: %s", schema_path)
    with Timer("validation") as t:
        result = validate_full(schema, config)

    print(f"\n{'=' * 50}")
    print("  Schema Validation Report")
    print(f"{'=' * 50}")
    print(f"  File:     {schema_path.name}")
    print(f"  Entities: {len(schema.entities)}")
    print(f"  Fields:   {schema.total_fields}")
    print(f"  Time:     {t.elapsed:.3f}s")
    print(f"  Valid:    {'Yes' if result.is_valid else 'No'}")
    if len(result):
        print()
        print(result.format_report())
    print(f"{'=' * 50}\n")

    return EXIT_SUCCESS if result.is_valid else EXIT_VALIDATION_ERROR


def _run_generation(
    schema: SchemaDefinition,
    config: GenerationConfig,
    output_dir: Optional[Path],
    dry_run: bool,
) -> int:
    """Run the full pipeline and map the report to an exit code."""
    from sheetforge.exporters import FilesystemArtifactStore, MemoryArtifactStore
    from sheetforge.generator import FAILURE_EXPORT, FAILURE_INPUT, ScaffoldGenerator

    if dry_run:
        logger.info("Dry-run mode: files will not be written to disk.")
        store = MemoryArtifactStore()
    else:
        store = FilesystemArtifactStore(output_dir)

    report = ScaffoldGenerator(config, store).generate(schema)
    print(report.summary())

    if dry_run and report.success:
        print("\nFiles:")
        for path in store:
            print(f"  {path}")

    if report.success:
        return EXIT_SUCCESS
    if report.failure_kind == FAILURE_INPUT:
        return EXIT_VALIDATION_ERROR
    if report.failure_kind == FAILURE_EXPORT:
        return EXIT_EXPORT_ERROR
    return EXIT_GENERATION_ERROR


def _preview_engine(url: str) -> Any:
    from sqlalchemy import create_engine
    from sqlalchemy.pool import StaticPool

    if url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, usable from the server's worker threads.
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(url)


def _run_server(
    args: argparse.Namespace,
    output_dir: Path,
    config: GenerationConfig,
    schema: Optional[SchemaDefinition],
) -> int:
    import uvicorn

    from sheetforge.runtime import AdminRuntime
    from sheetforge.server import create_app

    runtime: Optional[AdminRuntime] = None
    if schema is not None:
        runtime = AdminRuntime(schema, _preview_engine(args.preview_db), config)
        logger.info("Preview API enabled for %d entities", len(runtime.routed_executors()))

    app = create_app(output_dir, config, runtime)
    logger.info("Serving on http://%s:%d (output: %s)", args.host, args.port, output_dir)
    uvicorn.run(app, host=args.host, port=args.port)
    return EXIT_SUCCESS


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def cli_main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    """
    Main CLI entry point.

    Can be called from ``__main__.py`` or directly for testing.

    Args:
        argv: Optional argument list (defaults to sys.argv[1:]).
    """
    from sheetforge.ingest import load_schema_file

    parser: argparse.ArgumentParser = _build_parser()
    args: argparse.Namespace = parser.parse_args(argv)

    verbosity: int = -1 if args.quiet else args.verbose
    _setup_logging(verbosity)

    # --- Schema + config ---
    schema: Optional[SchemaDefinition] = None
    config = GenerationConfig()
    schema_path: Optional[Path] = Path(args.schema).resolve() if args.schema else None

    if schema_path is None and (args.validate_only or not args.serve):
        logger.error("A schema file is required. Use -s/--schema.")
        parser.print_usage(sys.stderr)
        sys.exit(EXIT_INPUT_ERROR)

    if schema_path is not None:
        try:
            schema, config = load_schema_file(schema_path)
        except SchemaInputError as exc:
            logger.error("Failed to load schema: %s", exc.message)
            sys.exit(EXIT_INPUT_ERROR)

    try:
        config = _apply_overrides(config, _build_config_overrides(args))
    except ValidationError as exc:
        logger.error("Invalid configuration override: %s", exc.errors()[0]["msg"])
        sys.exit(EXIT_INPUT_ERROR)

    # --- Validate-only mode ---
    if args.validate_only:
        sys.exit(_run_validate_only(schema, config, schema_path))

    # --- Output directory ---
    output_dir: Optional[Path] = Path(args.output).resolve() if args.output else None
    if output_dir is None and (args.serve or not args.dry_run):
        logger.error(
            "Output directory is required. Use -o/--output, --dry-run or --validate-only."
        )
        parser.print_usage(sys.stderr)
        sys.exit(EXIT_INPUT_ERROR)

    if args.serve:
        sys.exit(_run_server(args, output_dir, config, schema))

    logger.info("Schema:  %s", schema_path)
    logger.info("Output:  %s", output_dir or "<memory>")

    exit_code = _run_generation(schema, config, output_dir, args.dry_run)
    if exit_code == EXIT_SUCCESS:
        logger.info("Generation completed successfully.")
    else:
        logger.error("Generation failed with exit code %d.", exit_code)
    sys.exit(exit_code)


def main() -> NoReturn:
    """Console-script entry point."""
    cli_main()


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "cli_main",
    "main",
    "EXIT_SUCCESS",
    "EXIT_VALIDATION_ERROR",
    "EXIT_GENERATION_ERROR",
    "EXIT_EXPORT_ERROR",
    "EXIT_INPUT_ERROR",
]
