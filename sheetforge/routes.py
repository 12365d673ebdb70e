# File: sheetforge/routes.py
"""
SheetForge - Route Surface Emitter
==================================
Binds an entity's operation set to the conventional URL surface:

    POST   /api/<slug>        create
    GET    /api/<slug>        list
    GET    /api/<slug>/{item_id}   get
    PUT    /api/<slug>/{item_id}   update
    DELETE /api/<slug>/{item_id}   delete

The auth entity never receives this surface; its only binding is the login
route (and nothing at all when auth activation failed).
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from sheetforge.auth import LoginSpec, is_auth_entity
from sheetforge.models import EntitySchema, GenerationConfig
from sheetforge.operations import OperationKind, OperationSet

logger: logging.Logger = logging.getLogger("sheetforge.routes")

LOGIN_OPERATION: str = "login"

# (method, relative path, success status) per operation.
_CONVENTIONAL_ROUTES: Dict[OperationKind, Tuple[str, str, int]] = {
    OperationKind.CREATE: ("POST", "", 201),
    OperationKind.LIST: ("GET", "", 200),
    OperationKind.GET: ("GET", "/{item_id}", 200),
    OperationKind.UPDATE: ("PUT", "/{item_id}", 200),
    OperationKind.DELETE: ("DELETE", "/{item_id}", 200),
}

_ROUTE_CONFIG: ConfigDict = ConfigDict(frozen=True, extra="forbid")


class RouteBinding(BaseModel):
    """One method/path pair bound to an operation."""

    model_config = _ROUTE_CONFIG

    method: str
    path: str = Field(..., description="Path relative to the surface prefix.")
    operation: str = Field(..., description="Operation kind or 'login'.")
    handler: str = Field(..., description="Name of the generated handler.")
    status_code: int = 200
    upload_field: Optional[str] = Field(
        default=None, description="Multipart field bound to the upload handler."
    )


class RouteSurface(BaseModel):
    """The URL surface of one entity."""

    model_config = _ROUTE_CONFIG

    entity_name: str
    slug: str
    prefix: str
    tag: str
    bindings: List[RouteBinding] = Field(default_factory=list)
    is_auth: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.bindings

    def full_paths(self) -> List[Tuple[str, str]]:
        """``(method, absolute path)`` pairs, in binding order."""
        return [(b.method, f"{self.prefix}{b.path}") for b in self.bindings]


def emit_route_surface(
    entity: EntitySchema,
    operations: Optional[OperationSet],
    config: GenerationConfig,
    login: Optional[LoginSpec] = None,
) -> RouteSurface:
    """
    Derive the route surface of *entity*.

    Raises:
        ValueError: A non-auth entity was given no operation set.
    """
    if is_auth_entity(entity.name, config.auth_entity_name):
        bindings: List[RouteBinding] = []
        if login is not None:
            bindings.append(
                RouteBinding(
                    method="POST",
                    path="",
                    operation=LOGIN_OPERATION,
                    handler="login_route",
                )
            )
        logger.debug(
            "Suppressed CRUD routes for auth entity '%s' (login bound: %s)",
            entity.name,
            login is not None,
        )
        return RouteSurface(
            entity_name=entity.name,
            slug=entity.slug,
            prefix=login.path if login else config.login_path,
            tag="Auth",
            bindings=bindings,
            is_auth=True,
        )

    if operations is None:
        raise ValueError(f"Entity '{entity.name}' has no operation set to bind")

    bindings = []
    for spec in operations.operations:
        method, path, status = _CONVENTIONAL_ROUTES[spec.kind]
        bindings.append(
            RouteBinding(
                method=method,
                path=path,
                operation=spec.kind.value,
                handler=f"{spec.kind.value}_route",
                status_code=status,
                upload_field=spec.file_field if spec.accepts_file else None,
            )
        )
    return RouteSurface(
        entity_name=entity.name,
        slug=entity.slug,
        prefix=config.api_path(entity.slug),
        tag=entity.type_name,
        bindings=bindings,
    )
