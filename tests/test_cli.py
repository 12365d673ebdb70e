"""
tests/test_cli.py
Tests for the command-line interface (sheetforge.cli.cli_main).

cli_main always ends with sys.exit, so every call is wrapped in
pytest.raises(SystemExit) and the exit code is checked.
"""

from __future__ import annotations

import json
import logging
import pathlib
from typing import Any, Dict, Iterator, List

import pytest

from sheetforge.cli import (
    EXIT_EXPORT_ERROR,
    EXIT_INPUT_ERROR,
    EXIT_SUCCESS,
    EXIT_VALIDATION_ERROR,
    cli_main,
)

SCHEMA_EXAMPLE_PATH: pathlib.Path = pathlib.Path(__file__).resolve().parent.parent / "schema_example.yaml"


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    """cli_main reconfigures the package logger; undo it after each test."""
    package_logger = logging.getLogger("sheetforge")
    handlers = list(package_logger.handlers)
    level, propagate = package_logger.level, package_logger.propagate
    yield
    package_logger.handlers[:] = handlers
    package_logger.setLevel(level)
    package_logger.propagate = propagate


def _exit_code(argv: List[str]) -> int:
    with pytest.raises(SystemExit) as info:
        cli_main(argv)
    return info.value.code


def _write_json(path: pathlib.Path, data: Dict[str, Any]) -> pathlib.Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestValidateOnly:
    def test_valid_example(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _exit_code(["-s", str(SCHEMA_EXAMPLE_PATH), "--validate-only", "-q"]) == EXIT_SUCCESS
        out = capsys.readouterr().out
        assert "Schema Validation Report" in out
        assert "Valid:    Yes" in out
        assert "Entities: 4" in out

    def test_invalid_schema(self, tmp_path: pathlib.Path, capsys: pytest.CaptureFixture[str]) -> None:
        path = _write_json(tmp_path / "schema.json", {"Product": [{"fieldName": "id"}]})
        assert _exit_code(["-s", str(path), "--validate-only", "-q"]) == EXIT_VALIDATION_ERROR
        assert "RESERVED_FIELD_NAME" in capsys.readouterr().out


class TestInputErrors:
    def test_schema_required(self) -> None:
        assert _exit_code(["-o", "out", "-q"]) == EXIT_INPUT_ERROR

    def test_missing_schema_file(self, tmp_path: pathlib.Path) -> None:
        assert _exit_code(["-s", str(tmp_path / "missing.yaml"), "-o", str(tmp_path), "-q"]) == EXIT_INPUT_ERROR

    def test_output_required(self) -> None:
        assert _exit_code(["-s", str(SCHEMA_EXAMPLE_PATH), "-q"]) == EXIT_INPUT_ERROR

    def test_invalid_override(self, tmp_path: pathlib.Path) -> None:
        argv = ["-s", str(SCHEMA_EXAMPLE_PATH), "-o", str(tmp_path), "--page-size", "500", "-q"]
        assert _exit_code(argv) == EXIT_INPUT_ERROR


class TestGeneration:
    def test_generate_example(self, tmp_path: pathlib.Path, capsys: pytest.CaptureFixture[str]) -> None:
        out_dir = tmp_path / "admin"
        assert _exit_code(["-s", str(SCHEMA_EXAMPLE_PATH), "-o", str(out_dir), "-q"]) == EXIT_SUCCESS
        assert (out_dir / "backend/models/product.py").is_file()
        assert (out_dir / "backend/auth/login.py").is_file()
        database = (out_dir / "backend/database.py").read_text(encoding="utf-8")
        assert "sqlite+aiosqlite:///./shop.db" in database
        assert "SUCCESS" in capsys.readouterr().out

    def test_overrides_applied(self, tmp_path: pathlib.Path) -> None:
        out_dir = tmp_path / "admin"
        argv = [
            "-s", str(SCHEMA_EXAMPLE_PATH), "-o", str(out_dir),
            "--api-prefix", "/v1", "--project-name", "demo", "-q",
        ]
        assert _exit_code(argv) == EXIT_SUCCESS
        table = json.loads((out_dir / "manifest/routes.json").read_text(encoding="utf-8"))
        assert table["api"][0]["prefix"] == "/v1/category"
        assert 'title="demo"' in (out_dir / "backend/main.py").read_text(encoding="utf-8")

    def test_no_project_files(self, tmp_path: pathlib.Path) -> None:
        out_dir = tmp_path / "admin"
        argv = ["-s", str(SCHEMA_EXAMPLE_PATH), "-o", str(out_dir), "--no-project-files", "-q"]
        assert _exit_code(argv) == EXIT_SUCCESS
        assert not (out_dir / "backend/main.py").exists()
        assert (out_dir / "backend/models/product.py").is_file()

    def test_dry_run_writes_nothing(self, tmp_path: pathlib.Path,
                                    capsys: pytest.CaptureFixture[str]) -> None:
        assert _exit_code(["-s", str(SCHEMA_EXAMPLE_PATH), "--dry-run", "-q"]) == EXIT_SUCCESS
        out = capsys.readouterr().out
        assert "backend/models/product.py" in out
        assert "<memory>" in out
        assert list(tmp_path.iterdir()) == []

    def test_validation_failure_exit_code(self, tmp_path: pathlib.Path) -> None:
        path = _write_json(tmp_path / "schema.json", {"Product": [{"fieldName": "class"}]})
        assert _exit_code(["-s", str(path), "-o", str(tmp_path / "out"), "-q"]) == EXIT_VALIDATION_ERROR

    def test_export_failure_exit_code(self, tmp_path: pathlib.Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("x", encoding="utf-8")
        assert _exit_code(["-s", str(SCHEMA_EXAMPLE_PATH), "-o", str(blocker), "-q"]) == EXIT_EXPORT_ERROR


class TestServe:
    def test_serve_builds_app_with_preview(self, tmp_path: pathlib.Path,
                                           monkeypatch: pytest.MonkeyPatch) -> None:
        captured: Dict[str, Any] = {}

        def fake_run(app: Any, host: str, port: int) -> None:
            captured.update(app=app, host=host, port=port)

        monkeypatch.setattr("uvicorn.run", fake_run)
        argv = ["-s", str(SCHEMA_EXAMPLE_PATH), "-o", str(tmp_path), "--serve", "--port", "9001", "-q"]
        assert _exit_code(argv) == EXIT_SUCCESS
        assert (captured["host"], captured["port"]) == ("127.0.0.1", 9001)
        paths = set(captured["app"].openapi()["paths"])
        assert {"/generate", "/health", "/api/product", "/api/auth/login"} <= paths

    def test_serve_without_schema(self, tmp_path: pathlib.Path,
                                  monkeypatch: pytest.MonkeyPatch) -> None:
        captured: Dict[str, Any] = {}
        monkeypatch.setattr("uvicorn.run", lambda app, host, port: captured.update(app=app))
        assert _exit_code(["-o", str(tmp_path), "--serve", "-q"]) == EXIT_SUCCESS
        paths = set(captured["app"].openapi()["paths"])
        assert "/generate" in paths
        assert "/api/product" not in paths

    def test_serve_requires_output(self) -> None:
        assert _exit_code(["--serve", "-q"]) == EXIT_INPUT_ERROR
