# File: sheetforge/templates.py
"""
SheetForge - Source Template Engine
===================================
Turns the structured emitter outputs into Python source for the generated
FastAPI + SQLAlchemy 2.0 (async) backend:

    1. SQLAlchemy models          (``PersistenceSchema``)
    2. CRUD operation modules     (``OperationSpec``)
    3. FastAPI routers            (``RouteSurface``)
    4. Login operation and router (``LoginSpec``)
    5. Project modules: database, support helpers, application entry point

All string assembly uses the ``List[str]`` + ``"\\n".join()`` pattern.
Output is deterministic: no timestamps, no random values.
"""

from __future__ import annotations

import json
import logging
from typing import Dict, List, Optional, Set, Tuple

from sheetforge.auth import LoginSpec
from sheetforge.models import GenerationConfig
from sheetforge.operations import OperationKind, OperationSet, OperationSpec
from sheetforge.routes import RouteBinding, RouteSurface
from sheetforge.schema_emitter import FieldDeclaration, PersistenceSchema
from sheetforge.utils import build_import_block
from sheetforge.variants import StorageKind, dispatch_table

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("sheetforge.templates")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_INDENT: str = "    "
_GENERATED_NOTICE: str = "Auto-generated by SheetForge. Do not edit."

# Column type and Mapped[] annotation per storage kind.
_COLUMN_TYPES: Dict[StorageKind, Tuple[str, str]] = dispatch_table(
    StorageKind,
    {
        StorageKind.NUMERIC: ("Float", "float"),
        StorageKind.BOOLEAN: ("Boolean", "bool"),
        StorageKind.DATETIME: ("DateTime(timezone=True)", "datetime"),
        StorageKind.REFERENCE: ("Integer", "int"),
        StorageKind.TEXT: ("Text", "str"),
    },
    "model column types",
)

GENERATED_REQUIREMENTS: Tuple[str, ...] = (
    "fastapi>=0.100.0",
    "uvicorn>=0.20.0",
    "sqlalchemy[asyncio]>=2.0.0",
    "aiosqlite>=0.19.0",
    "python-jose>=3.3.0",
    "python-multipart>=0.0.5",
    "bcrypt>=4.0.0",
)


def _q(text: str) -> str:
    """Double-quoted Python string literal."""
    return json.dumps(text)


def _module_docstring(summary: str, *extra: str) -> List[str]:
    lines = ['"""', summary, _GENERATED_NOTICE]
    if extra:
        lines.append("")
        lines.extend(extra)
    lines.append('"""')
    return lines


class TemplateGenerator:
    """
    Renders source modules of the generated backend.

    Usage::

        gen = TemplateGenerator(config)
        model_src = gen.render_model(persistence)
        router_src = gen.render_router(surface, operations)
    """

    def __init__(self, config: GenerationConfig) -> None:
        self._config: GenerationConfig = config
        self._pkg: str = config.backend_package
        self._indent: str = _INDENT

    # =================================================================
    # Models
    # =================================================================

    def render_model(self, schema: PersistenceSchema) -> str:
        """SQLAlchemy 2.0 declarative model of one entity."""
        imports: Dict[str, Set[str]] = {
            "sqlalchemy": {"Integer"},
            "sqlalchemy.orm": {"Mapped", "mapped_column"},
            f"{self._pkg}.database": {"Base"},
        }
        body: List[str] = [
            f"class {schema.type_name}(Base):",
            f'{self._indent}"""Persistence model of the {_q(schema.entity_name)} entity."""',
            "",
            f"{self._indent}__tablename__ = {_q(schema.table_name)}",
            "",
            f"{self._indent}id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)",
        ]

        for decl in schema.fields:
            body.extend(self._column_lines(schema, decl, imports))

        if schema.timestamps:
            imports.setdefault("datetime", set()).add("datetime")
            imports["sqlalchemy"].update({"DateTime", "func"})
            body.append(
                f"{self._indent}created_at: Mapped[datetime] = mapped_column("
                "DateTime(timezone=True), server_default=func.now())"
            )
            body.append(
                f"{self._indent}updated_at: Mapped[datetime] = mapped_column("
                "DateTime(timezone=True), server_default=func.now(), onupdate=func.now())"
            )

        lines: List[str] = _module_docstring(f"{schema.type_name} model.")
        lines.append("")
        lines.append("from __future__ import annotations")
        lines.append("")
        lines.extend(self._import_sections(imports))
        lines.append("")
        lines.append("")
        lines.extend(body)
        lines.append("")
        return "\n".join(lines)

    def _column_lines(
        self,
        schema: PersistenceSchema,
        decl: FieldDeclaration,
        imports: Dict[str, Set[str]],
    ) -> List[str]:
        column_type, py_type = _COLUMN_TYPES[decl.storage]
        imports["sqlalchemy"].add(column_type.split("(")[0])
        if py_type == "datetime":
            imports.setdefault("datetime", set()).add("datetime")

        annotation = py_type
        if not decl.required:
            imports.setdefault("typing", set()).add("Optional")
            annotation = f"Optional[{py_type}]"

        args: List[str] = [column_type]
        if decl.is_reference and decl.reference_table:
            imports["sqlalchemy"].add("ForeignKey")
            args.append(f"ForeignKey({_q(decl.reference_table + '.id')})")
        args.append(f"nullable={not decl.required}")

        lines = [f"{self._indent}{decl.name}: Mapped[{annotation}] = mapped_column({', '.join(args)})"]

        if decl.is_reference and decl.reference_type:
            imports.setdefault("typing", set()).add("Optional")
            imports["sqlalchemy.orm"].add("relationship")
            rel_args = [
                _q(decl.reference_type),
                f"foreign_keys={_q(f'{schema.type_name}.{decl.name}')}",
            ]
            if decl.reference_type == schema.type_name:
                rel_args.append(f"remote_side={_q(f'{schema.type_name}.id')}")
            rel_args.append('lazy="selectin"')
            lines.append(
                f"{self._indent}{decl.relationship_name}: "
                f"Mapped[Optional[{_q(decl.reference_type)}]] = relationship({', '.join(rel_args)})"
            )
        return lines

    @staticmethod
    def _import_sections(imports: Dict[str, Set[str]]) -> List[str]:
        """Stdlib, third-party and local import groups, each sorted."""
        stdlib = {m: n for m, n in imports.items() if m in ("datetime", "typing")}
        local = {m: n for m, n in imports.items() if m.split(".")[0] not in ("sqlalchemy", "fastapi") and m not in stdlib}
        third = {m: n for m, n in imports.items() if m not in stdlib and m not in local}
        sections: List[str] = []
        for group in (stdlib, third, local):
            if group:
                if sections:
                    sections.append("")
                sections.append(build_import_block(group))
        return sections

    # =================================================================
    # Operations
    # =================================================================

    def render_operation(self, spec: OperationSpec, schema: PersistenceSchema) -> str:
        """One CRUD operation module."""
        renderers = {
            OperationKind.CREATE: self._render_create,
            OperationKind.LIST: self._render_list,
            OperationKind.GET: self._render_get,
            OperationKind.UPDATE: self._render_update,
            OperationKind.DELETE: self._render_delete,
        }
        return renderers[spec.kind](spec, schema)

    def _operation_header(
        self,
        spec: OperationSpec,
        typing_names: Set[str],
        sqlalchemy_names: Set[str],
        support_names: Set[str],
    ) -> List[str]:
        imports: Dict[str, Set[str]] = {
            "typing": set(typing_names),
            "sqlalchemy.exc": {"SQLAlchemyError"},
            "sqlalchemy.ext.asyncio": {"AsyncSession"},
            f"{self._pkg}.models.{spec.module}": {spec.type_name},
            f"{self._pkg}.support": set(support_names),
        }
        if sqlalchemy_names:
            imports["sqlalchemy"] = set(sqlalchemy_names)
        lines = _module_docstring(f"{spec.kind.value.capitalize()} operation of the {_q(spec.entity_name)} entity.")
        lines.append("")
        lines.append("from __future__ import annotations")
        lines.append("")
        lines.extend(self._import_sections(imports))
        lines.append("")
        lines.append(f"POPULATE = {self._tuple_literal(spec.populate)}")
        return lines

    @staticmethod
    def _tuple_literal(items: List[str]) -> str:
        if not items:
            return "()"
        if len(items) == 1:
            return f"({_q(items[0])},)"
        return "(" + ", ".join(_q(i) for i in items) + ")"

    def _payload_rules(self, spec: OperationSpec, on_update: bool) -> List[str]:
        ind2 = self._indent * 2
        ind3 = self._indent * 3
        lines: List[str] = []
        if spec.file_field:
            lines.append(f"{ind2}if upload_path:")
            lines.append(f"{ind3}data[{_q(spec.file_field)}] = upload_path")
        if spec.password_field:
            key = _q(spec.password_field)
            lines.append(f"{ind2}if data.get({key}):")
            lines.append(f"{ind3}data[{key}] = hash_password(str(data[{key}]))")
            if on_update:
                lines.append(f"{ind2}else:")
                lines.append(f"{ind3}data.pop({key}, None)")
        return lines

    def _reload_lines(self, spec: OperationSpec, target: str) -> List[str]:
        ind2 = self._indent * 2
        return [
            f"{ind2}stmt = (",
            f"{ind2}{self._indent}select({spec.type_name})",
            f"{ind2}{self._indent}.where({spec.type_name}.id == {target}.id)",
            f"{ind2}{self._indent}.execution_options(populate_existing=True)",
            f"{ind2})",
            f"{ind2}{target} = (await db.execute(stmt)).scalar_one()",
        ]

    def _render_create(self, spec: OperationSpec, schema: PersistenceSchema) -> str:
        support = {"coerce_payload", "server_error", "to_dict"}
        if spec.password_field:
            support.add("hash_password")
        lines = self._operation_header(spec, {"Any", "Dict", "Optional"}, {"select"}, support)
        ind, ind2 = self._indent, self._indent * 2
        lines.extend([
            "",
            "",
            f"async def {spec.function_name}(",
            f"{ind}db: AsyncSession,",
            f"{ind}payload: Dict[str, Any],",
            f"{ind}upload_path: Optional[str] = None,",
            ") -> Dict[str, Any]:",
            f'{ind}"""Create a {spec.type_name} record and return it with references populated."""',
            f"{ind}try:",
            f"{ind2}data = coerce_payload({spec.type_name}, payload)",
        ])
        lines.extend(self._payload_rules(spec, on_update=False))
        lines.extend([
            f"{ind2}record = {spec.type_name}(**data)",
            f"{ind2}db.add(record)",
            f"{ind2}await db.commit()",
        ])
        lines.extend(self._reload_lines(spec, "record"))
        lines.extend([
            f"{ind}except (SQLAlchemyError, ValueError, TypeError) as exc:",
            f"{ind2}await db.rollback()",
            f"{ind2}raise server_error({_q(spec.failure_message)}, exc) from exc",
            f"{ind}return to_dict(record, POPULATE)",
            "",
        ])
        return "\n".join(lines)

    def _search_expression(self, spec: OperationSpec, schema: PersistenceSchema, name: str) -> str:
        decl = schema.get(name)
        column = f"{spec.type_name}.{name}"
        if decl is not None and decl.storage is not StorageKind.TEXT:
            column = f"cast({column}, String)"
        return f'{column}.ilike(pattern, escape="\\\\")'

    def _render_list(self, spec: OperationSpec, schema: PersistenceSchema) -> str:
        sqlalchemy_names = {"func", "select"}
        support = {"coerce_payload", "safe_int", "server_error", "to_dict"}
        searchable = [name for name in spec.searchable if schema.get(name) is not None]
        if searchable:
            sqlalchemy_names.add("or_")
            support.add("like_pattern")
            if any(schema.get(n).storage is not StorageKind.TEXT for n in searchable):
                sqlalchemy_names.update({"String", "cast"})
        lines = self._operation_header(spec, {"Any", "Dict", "List"}, sqlalchemy_names, support)
        ind, ind2, ind3 = self._indent, self._indent * 2, self._indent * 3
        lines.extend([
            f"DEFAULT_LIMIT = {spec.default_limit}",
            f"MAX_LIMIT = {spec.max_limit}",
            "",
            "",
            f"async def {spec.function_name}(db: AsyncSession, params: Dict[str, Any]) -> Dict[str, Any]:",
            f'{ind}"""Paginated, searchable, newest-first list of {spec.type_name} records."""',
            f"{ind}params = dict(params)",
            f'{ind}page = safe_int(params.pop("page", None), {spec.default_page})',
            f'{ind}limit = safe_int(params.pop("limit", None), DEFAULT_LIMIT, MAX_LIMIT)',
            f'{ind}search = str(params.pop("search", "") or "").strip()',
            f"{ind}try:",
            f"{ind2}filters = coerce_payload({spec.type_name}, params, include_id=True)",
            f"{ind2}conditions: List[Any] = [",
            f"{ind3}getattr({spec.type_name}, key) == value",
            f"{ind3}for key, value in filters.items()",
            f"{ind3}if value is not None",
            f"{ind2}]",
        ])
        if searchable:
            lines.append(f"{ind2}if search:")
            lines.append(f"{ind3}pattern = like_pattern(search)")
            lines.append(f"{ind3}conditions.append(")
            lines.append(f"{ind3}{ind}or_(")
            for name in searchable:
                lines.append(f"{ind3}{ind2}{self._search_expression(spec, schema, name)},")
            lines.append(f"{ind3}{ind})")
            lines.append(f"{ind3})")
        lines.extend([
            f"{ind2}count_stmt = select(func.count()).select_from({spec.type_name})",
            f"{ind2}stmt = select({spec.type_name})",
            f"{ind2}if conditions:",
            f"{ind3}count_stmt = count_stmt.where(*conditions)",
            f"{ind3}stmt = stmt.where(*conditions)",
            f"{ind2}total = (await db.execute(count_stmt)).scalar_one()",
            f"{ind2}stmt = (",
            f"{ind3}stmt.order_by({spec.type_name}.created_at.desc(), {spec.type_name}.id.desc())",
            f"{ind3}.offset((page - 1) * limit)",
            f"{ind3}.limit(limit)",
            f"{ind2})",
            f"{ind2}records = (await db.execute(stmt)).scalars().all()",
            f"{ind}except (SQLAlchemyError, ValueError, TypeError) as exc:",
            f"{ind2}raise server_error({_q(spec.failure_message)}, exc) from exc",
            f"{ind}return {{",
            f'{ind2}"data": [to_dict(record, POPULATE) for record in records],',
            f'{ind2}"total": total,',
            f'{ind2}"page": page,',
            f'{ind2}"limit": limit,',
            f"{ind}}}",
            "",
        ])
        return "\n".join(lines)

    def _lookup_lines(self, spec: OperationSpec) -> List[str]:
        ind, ind2 = self._indent, self._indent * 2
        return [
            f"{ind}try:",
            f"{ind2}record = await db.get({spec.type_name}, item_id)",
            f"{ind}except SQLAlchemyError as exc:",
            f"{ind2}raise server_error({_q(spec.failure_message)}, exc) from exc",
            f"{ind}if record is None:",
            f"{ind2}raise not_found({_q(spec.not_found_message)})",
        ]

    def _render_get(self, spec: OperationSpec, schema: PersistenceSchema) -> str:
        lines = self._operation_header(spec, {"Any", "Dict"}, set(), {"not_found", "server_error", "to_dict"})
        ind = self._indent
        lines.extend([
            "",
            "",
            f"async def {spec.function_name}(db: AsyncSession, item_id: int) -> Dict[str, Any]:",
            f'{ind}"""Fetch one {spec.type_name} record with references populated."""',
        ])
        lines.extend(self._lookup_lines(spec))
        lines.append(f"{ind}return to_dict(record, POPULATE)")
        lines.append("")
        return "\n".join(lines)

    def _render_update(self, spec: OperationSpec, schema: PersistenceSchema) -> str:
        support = {"coerce_payload", "not_found", "server_error", "to_dict"}
        if spec.password_field:
            support.add("hash_password")
        lines = self._operation_header(spec, {"Any", "Dict", "Optional"}, {"select"}, support)
        ind, ind2, ind3 = self._indent, self._indent * 2, self._indent * 3
        lines.extend([
            "",
            "",
            f"async def {spec.function_name}(",
            f"{ind}db: AsyncSession,",
            f"{ind}item_id: int,",
            f"{ind}payload: Dict[str, Any],",
            f"{ind}upload_path: Optional[str] = None,",
            ") -> Dict[str, Any]:",
            f'{ind}"""Update a {spec.type_name} record; an empty password keeps the stored hash."""',
        ])
        lines.extend(self._lookup_lines(spec))
        lines.extend([
            f"{ind}try:",
            f"{ind2}data = coerce_payload({spec.type_name}, payload)",
        ])
        lines.extend(self._payload_rules(spec, on_update=True))
        lines.extend([
            f"{ind2}for key, value in data.items():",
            f"{ind3}setattr(record, key, value)",
            f"{ind2}await db.commit()",
        ])
        lines.extend(self._reload_lines(spec, "record"))
        lines.extend([
            f"{ind}except (SQLAlchemyError, ValueError, TypeError) as exc:",
            f"{ind2}await db.rollback()",
            f"{ind2}raise server_error({_q(spec.failure_message)}, exc) from exc",
            f"{ind}return to_dict(record, POPULATE)",
            "",
        ])
        return "\n".join(lines)

    def _render_delete(self, spec: OperationSpec, schema: PersistenceSchema) -> str:
        lines = self._operation_header(spec, {"Dict"}, set(), {"not_found", "server_error"})
        ind, ind2 = self._indent, self._indent * 2
        lines.extend([
            "",
            "",
            f"async def {spec.function_name}(db: AsyncSession, item_id: int) -> Dict[str, str]:",
            f'{ind}"""Delete a {spec.type_name} record."""',
        ])
        lines.extend(self._lookup_lines(spec))
        lines.extend([
            f"{ind}try:",
            f"{ind2}await db.delete(record)",
            f"{ind2}await db.commit()",
            f"{ind}except SQLAlchemyError as exc:",
            f"{ind2}await db.rollback()",
            f"{ind2}raise server_error({_q(spec.failure_message)}, exc) from exc",
            f'{ind}return {{"message": {_q(spec.deleted_message)}}}',
            "",
        ])
        return "\n".join(lines)

    # =================================================================
    # Routers
    # =================================================================

    def render_router(self, surface: RouteSurface, operations: OperationSet) -> str:
        """FastAPI router binding the five operations of one entity."""
        imports: Dict[str, Set[str]] = {
            "typing": {"Any", "Dict"},
            "fastapi": {"APIRouter", "Depends", "Request"},
            "sqlalchemy.ext.asyncio": {"AsyncSession"},
            f"{self._pkg}.database": {"get_db"},
            f"{self._pkg}.support": {"read_payload"},
        }
        for spec in operations.operations:
            imports[f"{self._pkg}.operations.{spec.module}.{spec.module_file}"] = {spec.function_name}

        lines = _module_docstring(f"HTTP routes of the {_q(surface.entity_name)} entity.")
        lines.append("")
        lines.append("from __future__ import annotations")
        lines.append("")
        lines.extend(self._import_sections(imports))
        lines.append("")
        lines.append(f"router = APIRouter(prefix={_q(surface.prefix)}, tags=[{_q(surface.tag)}])")

        for binding in surface.bindings:
            spec = operations.get(OperationKind(binding.operation))
            lines.append("")
            lines.append("")
            lines.extend(self._route_lines(binding, spec))
        lines.append("")
        return "\n".join(lines)

    def _route_lines(self, binding: RouteBinding, spec: OperationSpec) -> List[str]:
        ind = self._indent
        decorator_args = [_q(binding.path)]
        if binding.status_code != 200:
            decorator_args.append(f"status_code={binding.status_code}")
        lines = [f"@router.{binding.method.lower()}({', '.join(decorator_args)})"]

        params: List[str] = []
        if "{item_id}" in binding.path:
            params.append("item_id: int")
        if spec.kind is not OperationKind.GET and spec.kind is not OperationKind.DELETE:
            params.append("request: Request")
        params.append("db: AsyncSession = Depends(get_db)")
        lines.append(f"async def {binding.handler}({', '.join(params)}) -> Dict[str, Any]:")

        call_args = ["db"]
        if "{item_id}" in binding.path:
            call_args.append("item_id")
        if spec.kind is OperationKind.LIST:
            call_args.append("dict(request.query_params)")
        elif spec.kind in (OperationKind.CREATE, OperationKind.UPDATE):
            if binding.upload_field:
                lines.append(
                    f"{ind}payload, upload_path = await read_payload("
                    f"request, upload_field={_q(binding.upload_field)})"
                )
                call_args.extend(["payload", "upload_path"])
            else:
                lines.append(f"{ind}payload, _ = await read_payload(request)")
                call_args.append("payload")
        lines.append(f"{ind}return await {spec.function_name}({', '.join(call_args)})")
        return lines

    # =================================================================
    # Auth
    # =================================================================

    def render_login(self, login: LoginSpec) -> str:
        """Login operation: lookup, bcrypt comparison, token issuance."""
        imports: Dict[str, Set[str]] = {
            "typing": {"Any", "Dict"},
            "fastapi": {"HTTPException"},
            "sqlalchemy": {"select"},
            "sqlalchemy.exc": {"SQLAlchemyError"},
            "sqlalchemy.ext.asyncio": {"AsyncSession"},
            f"{self._pkg}.models.{login.module}": {login.type_name},
            f"{self._pkg}.support": {"issue_token", "server_error", "verify_password"},
        }
        ind, ind2 = self._indent, self._indent * 2
        model, identity, password = login.type_name, login.identity_field, login.password_field
        lines = _module_docstring(
            f"Login operation of the {_q(login.entity_name)} entity.",
            "Unknown identities and wrong passwords produce the same response.",
        )
        lines.append("")
        lines.append("from __future__ import annotations")
        lines.append("")
        lines.extend(self._import_sections(imports))
        lines.extend([
            "",
            "",
            "async def login(db: AsyncSession, payload: Dict[str, Any]) -> Dict[str, str]:",
            f'{ind}"""Exchange valid credentials for a signed, time-limited token."""',
            f"{ind}identity = payload.get({_q(identity)})",
            f"{ind}password = payload.get({_q(password)})",
            f"{ind}if not identity or not password:",
            f'{ind2}raise HTTPException(status_code=400, detail={{"message": {_q(login.missing_message)}}})',
            f"{ind}try:",
            f"{ind2}stmt = select({model}).where({model}.{identity} == str(identity))",
            f"{ind2}user = (await db.execute(stmt)).scalars().first()",
            f"{ind}except SQLAlchemyError as exc:",
            f"{ind2}raise server_error({_q(login.server_error_message)}, exc) from exc",
            f"{ind}if user is None or not verify_password(str(password), user.{password} or \"\"):",
            f'{ind2}raise HTTPException(status_code=401, detail={{"message": {_q(login.invalid_message)}}})',
            f'{ind}return {{"token": issue_token(user.id)}}',
            "",
        ])
        return "\n".join(lines)

    def render_auth_router(self, surface: RouteSurface) -> str:
        imports: Dict[str, Set[str]] = {
            "typing": {"Dict"},
            "fastapi": {"APIRouter", "Depends", "Request"},
            "sqlalchemy.ext.asyncio": {"AsyncSession"},
            f"{self._pkg}.auth.login": {"login"},
            f"{self._pkg}.database": {"get_db"},
            f"{self._pkg}.support": {"read_payload"},
        }
        ind = self._indent
        lines = _module_docstring("Authentication routes.")
        lines.append("")
        lines.append("from __future__ import annotations")
        lines.append("")
        lines.extend(self._import_sections(imports))
        lines.append("")
        lines.append(f'router = APIRouter(prefix={_q(surface.prefix)}, tags=["Auth"])')
        for binding in surface.bindings:
            lines.extend([
                "",
                "",
                f"@router.{binding.method.lower()}({_q(binding.path)})",
                f"async def {binding.handler}(request: Request, db: AsyncSession = Depends(get_db)) -> Dict[str, str]:",
                f"{ind}payload, _ = await read_payload(request)",
                f"{ind}return await login(db, payload)",
            ])
        lines.append("")
        return "\n".join(lines)

    # =================================================================
    # Project modules
    # =================================================================

    def render_package_init(self) -> str:
        return "\n".join(_module_docstring(f"{self._config.project_name} backend.")) + "\n"

    def render_requirements(self) -> str:
        return "\n".join(GENERATED_REQUIREMENTS) + "\n"

    def render_database(self) -> str:
        ind = self._indent
        lines = _module_docstring("Database engine and session factory.")
        lines.extend([
            "",
            "from __future__ import annotations",
            "",
            "import os",
            "from typing import AsyncGenerator",
            "",
            "from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine",
            "from sqlalchemy.orm import DeclarativeBase",
            "",
            f'DATABASE_URL = os.environ.get("DATABASE_URL", {_q(self._config.database_url)})',
            "",
            "engine = create_async_engine(DATABASE_URL, echo=False)",
            "SessionLocal = async_sessionmaker(engine, expire_on_commit=False)",
            "",
            "",
            "class Base(DeclarativeBase):",
            f'{ind}"""Declarative base of every generated model."""',
            "",
            "",
            "async def get_db() -> AsyncGenerator[AsyncSession, None]:",
            f"{ind}async with SessionLocal() as session:",
            f"{ind * 2}yield session",
            "",
        ])
        return "\n".join(lines)

    def render_support(self) -> str:
        """Helpers shared by every generated operation and router."""
        lines = _module_docstring("Helpers shared by the generated operations and routers.")
        lines.extend(_SUPPORT_BODY_HEAD)
        lines.extend([
            f"TOKEN_EXPIRY_SECONDS = {self._config.token_expiry_seconds}",
            f'UPLOAD_DIR = Path(os.environ.get("UPLOAD_DIR", {_q(self._config.upload_dir)}))',
        ])
        lines.extend(_SUPPORT_BODY)
        return "\n".join(lines)

    def render_main(self) -> str:
        """Application entry point; routers come from the route manifest."""
        ind, ind2 = self._indent, self._indent * 2
        manifest = f"{self._config.manifest_dir}/routes.json"
        lines = _module_docstring(
            f"FastAPI application of {self._config.project_name}.",
            "Routers are included from the route table manifest written at",
            "generation time; nothing is discovered by scanning directories.",
        )
        lines.extend([
            "",
            "from __future__ import annotations",
            "",
            "import importlib",
            "import json",
            "import os",
            "from contextlib import asynccontextmanager",
            "from pathlib import Path",
            "from typing import Any, AsyncGenerator, Dict, List",
            "",
            "from fastapi import FastAPI, Request",
            "from fastapi.middleware.cors import CORSMiddleware",
            "from fastapi.responses import JSONResponse",
            "from fastapi.staticfiles import StaticFiles",
            "from starlette.exceptions import HTTPException as StarletteHTTPException",
            "",
            f"from {self._pkg}.database import Base, engine",
            f"from {self._pkg}.support import UPLOAD_DIR",
            "",
            "ROOT_DIR = Path(__file__).resolve().parent.parent",
            f'MANIFEST_PATH = Path(os.environ.get("ROUTE_MANIFEST", str(ROOT_DIR / {_q(manifest)})))',
            "",
            "",
            "def load_manifest() -> List[Dict[str, Any]]:",
            f'{ind}"""API router entries of the route table manifest."""',
            f'{ind}with MANIFEST_PATH.open(encoding="utf-8") as handle:',
            f'{ind2}return json.load(handle).get("api", [])',
            "",
            "",
            "@asynccontextmanager",
            "async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:",
            f"{ind}async with engine.begin() as conn:",
            f"{ind2}await conn.run_sync(Base.metadata.create_all)",
            f"{ind}yield",
            f"{ind}await engine.dispose()",
            "",
            "",
            "def create_app() -> FastAPI:",
            f"{ind}app = FastAPI(title={_q(self._config.project_name)}, lifespan=lifespan)",
            f"{ind}app.add_middleware(",
            f"{ind2}CORSMiddleware,",
            f'{ind2}allow_origins=["*"],',
            f'{ind2}allow_methods=["*"],',
            f'{ind2}allow_headers=["*"],',
            f"{ind})",
            "",
            f"{ind}@app.exception_handler(StarletteHTTPException)",
            f"{ind}async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:",
            f'{ind2}body = exc.detail if isinstance(exc.detail, dict) else {{"message": exc.detail}}',
            f"{ind2}return JSONResponse(status_code=exc.status_code, content=body)",
            "",
            f"{ind}for entry in load_manifest():",
            f'{ind2}importlib.import_module(entry["model_module"])',
            f'{ind2}module = importlib.import_module(entry["router_module"])',
            f"{ind2}app.include_router(module.router)",
            "",
            f"{ind}UPLOAD_DIR.mkdir(parents=True, exist_ok=True)",
            f'{ind}app.mount("/uploads", StaticFiles(directory=str(UPLOAD_DIR)), name="uploads")',
            f"{ind}return app",
            "",
            "",
            "app = create_app()",
            "",
        ])
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Static parts of the generated support module
# ---------------------------------------------------------------------------

_SUPPORT_BODY_HEAD: List[str] = [
    "",
    "from __future__ import annotations",
    "",
    "import json",
    "import logging",
    "import os",
    "import uuid",
    "from datetime import date, datetime, timedelta, timezone",
    "from pathlib import Path",
    "from typing import Any, Dict, Iterable, Mapping, Optional, Tuple",
    "",
    "import bcrypt",
    "from fastapi import HTTPException, Request",
    "from jose import jwt",
    "from sqlalchemy import Boolean, DateTime, Float, Integer",
    "from sqlalchemy.exc import SQLAlchemyError",
    "from starlette.datastructures import UploadFile",
    "",
    "logger = logging.getLogger(__name__)",
    "",
    "PASSWORD_HASH_ROUNDS = 10",
    'JWT_ALGORITHM = "HS256"',
    'JWT_SECRET = os.environ.get("JWT_SECRET", "change-me")',
]

_SUPPORT_BODY: List[str] = [
    'AUTO_COLUMNS = frozenset({"created_at", "updated_at"})',
    '_TRUTHY = frozenset({"true", "yes", "1", "*"})',
    "",
    "",
    "def hash_password(plain: str) -> str:",
    "    salt = bcrypt.gensalt(rounds=PASSWORD_HASH_ROUNDS)",
    '    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")',
    "",
    "",
    "def verify_password(plain: str, hashed: str) -> bool:",
    "    try:",
    '        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))',
    "    except ValueError:",
    "        return False",
    "",
    "",
    "def issue_token(subject: Any) -> str:",
    "    expires = datetime.now(timezone.utc) + timedelta(seconds=TOKEN_EXPIRY_SECONDS)",
    '    claims = {"id": str(subject), "exp": expires}',
    "    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALGORITHM)",
    "",
    "",
    "def error_detail(exc: Exception) -> str:",
    '    """Client-facing error text; SQL statements and parameters stay in the log."""',
    '    orig = getattr(exc, "orig", None)',
    "    if orig is not None:",
    "        return str(orig)",
    "    if isinstance(exc, SQLAlchemyError):",
    "        return type(exc).__name__",
    "    return str(exc)",
    "",
    "",
    "def server_error(message: str, exc: Exception) -> HTTPException:",
    '    logger.error("%s: %s", message, exc)',
    '    return HTTPException(status_code=500, detail={"message": message, "error": error_detail(exc)})',
    "",
    "",
    "def not_found(message: str) -> HTTPException:",
    '    return HTTPException(status_code=404, detail={"message": message})',
    "",
    "",
    "def safe_int(value: Any, default: int, maximum: Optional[int] = None) -> int:",
    "    try:",
    "        number = int(value)",
    "    except (TypeError, ValueError):",
    "        return default",
    "    if number < 1:",
    "        return default",
    "    if maximum is not None and number > maximum:",
    "        return maximum",
    "    return number",
    "",
    "",
    "def like_pattern(term: str) -> str:",
    '    escaped = term.replace("\\\\", "\\\\\\\\").replace("%", "\\\\%").replace("_", "\\\\_")',
    '    return f"%{escaped}%"',
    "",
    "",
    "def _coerce(column_type: Any, value: Any) -> Any:",
    '    if value is None or value == "":',
    "        return None",
    "    if isinstance(column_type, Boolean):",
    "        return value if isinstance(value, bool) else str(value).strip().lower() in _TRUTHY",
    "    if isinstance(column_type, Float):",
    "        return float(value)",
    "    if isinstance(column_type, Integer):",
    "        return int(value)",
    "    if isinstance(column_type, DateTime):",
    "        if isinstance(value, datetime):",
    "            return value",
    "        if isinstance(value, date):",
    "            return datetime(value.year, value.month, value.day)",
    '        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))',
    "    return value",
    "",
    "",
    "def coerce_payload(",
    "    model: Any, payload: Mapping[str, Any], include_id: bool = False",
    ") -> Dict[str, Any]:",
    '    """Keep declared columns only and convert values to their column types."""',
    "    data: Dict[str, Any] = {}",
    "    for column in model.__table__.columns:",
    "        if column.key in AUTO_COLUMNS:",
    "            continue",
    '        if column.key == "id" and not include_id:',
    "            continue",
    "        if column.key in payload:",
    "            data[column.key] = _coerce(column.type, payload[column.key])",
    "    return data",
    "",
    "",
    "def to_dict(record: Any, populate: Iterable[str] = ()) -> Dict[str, Any]:",
    "    data = {column.key: getattr(record, column.key) for column in record.__table__.columns}",
    "    for name in populate:",
    '        related = getattr(record, f"{name}_ref", None)',
    "        data[name] = to_dict(related) if related is not None else None",
    "    return data",
    "",
    "",
    "async def store_upload(upload: UploadFile, field_name: str) -> str:",
    "    UPLOAD_DIR.mkdir(parents=True, exist_ok=True)",
    '    suffix = Path(upload.filename or "").suffix',
    '    target = UPLOAD_DIR / f"{field_name}-{uuid.uuid4().hex}{suffix}"',
    "    target.write_bytes(await upload.read())",
    "    return target.as_posix()",
    "",
    "",
    "async def read_payload(",
    "    request: Request, upload_field: Optional[str] = None",
    ") -> Tuple[Dict[str, Any], Optional[str]]:",
    '    """JSON or form body; only *upload_field* may carry a file."""',
    '    content_type = request.headers.get("content-type", "")',
    '    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):',
    "        form = await request.form()",
    "        payload: Dict[str, Any] = {}",
    "        upload_path: Optional[str] = None",
    "        for key, value in form.multi_items():",
    "            if isinstance(value, UploadFile):",
    "                if key == upload_field and value.filename:",
    "                    upload_path = await store_upload(value, key)",
    "                continue",
    "            payload[key] = value",
    "        return payload, upload_path",
    "    raw = await request.body()",
    "    if not raw:",
    "        return {}, None",
    "    try:",
    "        body = json.loads(raw)",
    "    except ValueError as exc:",
    '        raise HTTPException(status_code=400, detail={"message": "Malformed JSON body"}) from exc',
    "    if not isinstance(body, dict):",
    '        raise HTTPException(status_code=400, detail={"message": "Request body must be a JSON object"})',
    "    return body, None",
    "",
]
