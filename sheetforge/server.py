# File: sheetforge/server.py
"""
SheetForge - HTTP Interface
===========================
A small FastAPI application around the generator:

    POST /generate      multipart upload of a workbook (form field ``file``);
                        relays the generation report
    GET  /health        liveness probe

When an ``AdminRuntime`` is supplied, the CRUD and login operations of its
schema are mounted as well (``/api/<slug>``, ``/api/auth/login``), which
gives a JSON-only preview of the generated API without rendering any code.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, FastAPI, File, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from sheetforge import __version__
from sheetforge.exporters import FilesystemArtifactStore
from sheetforge.generator import ScaffoldGenerator
from sheetforge.ingest import WORKBOOK_SUFFIXES
from sheetforge.models import GenerationConfig
from sheetforge.runtime import AdminRuntime, CrudExecutor, LoginExecutor, OperationResult
from sheetforge.utils import to_slug

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("sheetforge.server")

NO_FILE_UPLOADED: str = "No file uploaded"


def _failure(status_code: int, message: str, entity: Optional[str] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message, "entity": entity})


def _relay(result: OperationResult) -> JSONResponse:
    return JSONResponse(status_code=result.status_code, content=jsonable_encoder(result.body))


# ---------------------------------------------------------------------------
# Preview routers
# ---------------------------------------------------------------------------


def _crud_router(executor: CrudExecutor, prefix: str) -> APIRouter:
    router = APIRouter(prefix=prefix, tags=[executor.operations.type_name])

    @router.post("")
    def create_route(payload: Dict[str, Any] = Body(...)) -> JSONResponse:
        return _relay(executor.create(payload))

    @router.get("")
    def list_route(request: Request) -> JSONResponse:
        return _relay(executor.list(dict(request.query_params)))

    @router.get("/{item_id}")
    def get_route(item_id: str) -> JSONResponse:
        return _relay(executor.get(item_id))

    @router.put("/{item_id}")
    def update_route(item_id: str, payload: Dict[str, Any] = Body(...)) -> JSONResponse:
        return _relay(executor.update(item_id, payload))

    @router.delete("/{item_id}")
    def delete_route(item_id: str) -> JSONResponse:
        return _relay(executor.delete(item_id))

    return router


def _login_router(executor: LoginExecutor) -> APIRouter:
    router = APIRouter(prefix=executor.spec.path, tags=["Auth"])

    @router.post("")
    def login_route(payload: Dict[str, Any] = Body(...)) -> JSONResponse:
        return _relay(executor.login(payload))

    return router


def mount_preview(app: FastAPI, runtime: AdminRuntime) -> None:
    """Expose the runtime's operations under the configured API prefix."""
    for executor in runtime.routed_executors():
        prefix = runtime.config.api_path(to_slug(executor.entity_name))
        app.include_router(_crud_router(executor, prefix))
        logger.debug("Preview routes mounted at %s", prefix)
    if runtime.login is not None:
        app.include_router(_login_router(runtime.login))


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(
    output_dir: Path,
    config: Optional[GenerationConfig] = None,
    runtime: Optional[AdminRuntime] = None,
) -> FastAPI:
    """
    Build the application.

    Every ``POST /generate`` writes into *output_dir* through a fresh
    filesystem store, so uploads accumulate idempotently.
    """
    config = config or GenerationConfig()
    app = FastAPI(title="SheetForge", version=__version__)

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok", "version": __version__}

    @app.post("/generate")
    def generate(file: Optional[UploadFile] = File(None)) -> JSONResponse:
        if file is None or not file.filename:
            return _failure(400, NO_FILE_UPLOADED)
        if Path(file.filename).suffix.lower() not in WORKBOOK_SUFFIXES:
            return _failure(400, f"Unsupported file type '{file.filename}'")

        content = file.file.read()
        logger.info("Received %s (%d bytes)", file.filename, len(content))
        generator = ScaffoldGenerator(config, FilesystemArtifactStore(output_dir))
        try:
            report = generator.generate_from_workbook(content, file.filename)
        except Exception as exc:
            logger.exception("Unexpected failure while generating from %s", file.filename)
            return _failure(500, str(exc))
        return JSONResponse(status_code=report.status_code, content=report.to_response())

    if runtime is not None:
        mount_preview(app, runtime)
    return app
