# File: sheetforge/runtime.py
"""
SheetForge - Operation Runtime
==============================
Executes the derived CRUD and login operation semantics against a
SQLAlchemy engine, without rendering or importing generated code.

The runtime mirrors what the generated backend does, on synchronous
SQLAlchemy Core:

    AdminRuntime(schema, engine)
        ├── one Table per entity (id, declared fields, created_at, updated_at)
        ├── CrudExecutor per entity   → create / list / get / update / delete
        └── LoginExecutor             → only when the auth entity is active

Every call returns an ``OperationResult``; persistence and coercion failures
are folded into ``server_error`` results instead of being raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    cast,
    delete,
    func,
    insert,
    or_,
    select,
    update,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from sheetforge.auth import LoginSpec, emit_login_spec, is_auth_entity, resolve_auth_activation
from sheetforge.models import EntitySchema, GenerationConfig, SchemaDefinition
from sheetforge.operations import OperationKind, OperationSet, OperationSpec, emit_operation_set
from sheetforge.schema_emitter import FieldDeclaration, PersistenceSchema, emit_persistence_schema
from sheetforge.security import hash_password, issue_token, verify_password
from sheetforge.utils import parse_boolean, to_slug
from sheetforge.variants import StorageKind, dispatch_table

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("sheetforge.runtime")

_COLUMN_TYPES = dispatch_table(
    StorageKind,
    {
        StorageKind.NUMERIC: Float,
        StorageKind.BOOLEAN: Boolean,
        StorageKind.DATETIME: lambda: DateTime(timezone=True),
        StorageKind.REFERENCE: Integer,
        StorageKind.TEXT: Text,
    },
    "runtime column types",
)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class ResultKind(str, Enum):
    OK = "ok"
    CREATED = "created"
    NOT_FOUND = "not_found"
    BAD_REQUEST = "bad_request"
    UNAUTHORIZED = "unauthorized"
    SERVER_ERROR = "server_error"


_STATUS_CODES: Dict[ResultKind, int] = dispatch_table(
    ResultKind,
    {
        ResultKind.OK: 200,
        ResultKind.CREATED: 201,
        ResultKind.NOT_FOUND: 404,
        ResultKind.BAD_REQUEST: 400,
        ResultKind.UNAUTHORIZED: 401,
        ResultKind.SERVER_ERROR: 500,
    },
    "result status codes",
)


@dataclass(frozen=True, slots=True)
class OperationResult:
    """Outcome of one operation call: a kind plus the response body."""

    kind: ResultKind
    body: Any = field(default=None)

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self.kind]

    @property
    def ok(self) -> bool:
        return self.kind in (ResultKind.OK, ResultKind.CREATED)


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------


def safe_int(value: Any, default: int, maximum: Optional[int] = None) -> int:
    """Positive integer from a query value; falls back to *default*, clamps to *maximum*."""
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    if number < 1:
        return default
    if maximum is not None and number > maximum:
        return maximum
    return number


def like_pattern(term: str) -> str:
    """Substring LIKE pattern with ``\\``, ``%`` and ``_`` escaped."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))


def _to_reference(value: Any) -> int:
    if isinstance(value, Mapping):
        value = value.get("id")
    return int(value)


_COERCERS = dispatch_table(
    StorageKind,
    {
        StorageKind.NUMERIC: float,
        StorageKind.BOOLEAN: parse_boolean,
        StorageKind.DATETIME: _to_datetime,
        StorageKind.REFERENCE: _to_reference,
        StorageKind.TEXT: str,
    },
    "value coercers",
)


def coerce_value(storage: StorageKind, value: Any) -> Any:
    """
    Convert an incoming value to its storage kind.

    ``None`` and ``""`` become ``None``. Raises ValueError / TypeError on
    values that cannot be converted.
    """
    if value is None or (isinstance(value, str) and value == ""):
        return None
    return _COERCERS[storage](value)


def error_detail(exc: Exception) -> str:
    """
    Client-facing text of a failure. Statements and bound parameters of
    database errors are only logged; the driver message is returned.
    """
    orig = getattr(exc, "orig", None)
    if orig is not None:
        return str(orig)
    if isinstance(exc, SQLAlchemyError):
        return type(exc).__name__
    return str(exc)


def _parse_id(item_id: Any) -> Optional[int]:
    try:
        return int(item_id)
    except (TypeError, ValueError):
        return None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Table construction
# ---------------------------------------------------------------------------


def build_table(schema: PersistenceSchema, metadata: MetaData) -> Table:
    """Core ``Table`` equivalent of the rendered declarative model."""
    columns: List[Column] = [Column("id", Integer, primary_key=True, autoincrement=True)]
    for decl in schema.fields:
        column_args: List[Any] = [_COLUMN_TYPES[decl.storage]()]
        if decl.is_reference and decl.reference_table:
            column_args.append(ForeignKey(f"{decl.reference_table}.id"))
        columns.append(Column(decl.name, *column_args, nullable=not decl.required))
    if schema.timestamps:
        columns.append(Column("created_at", DateTime(timezone=True), default=_utcnow))
        columns.append(
            Column("updated_at", DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
        )
    return Table(schema.table_name, metadata, *columns)


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


class CrudExecutor:
    """
    Runs the five CRUD operations of one entity.

    Usage::

        products = runtime.crud("Product")
        created = products.create({"name": "Lamp", "price": "12.5"})
        page = products.list({"search": "lam", "page": "1"})
    """

    def __init__(
        self,
        operations: OperationSet,
        persistence: PersistenceSchema,
        table: Table,
        engine: Engine,
        registry: Mapping[str, Table],
    ) -> None:
        self._ops = operations
        self._persistence = persistence
        self._table = table
        self._engine = engine
        self._registry = registry

    @property
    def entity_name(self) -> str:
        return self._ops.entity_name

    @property
    def operations(self) -> OperationSet:
        return self._ops

    # -- helpers ------------------------------------------------------------

    def _coerce_payload(self, payload: Mapping[str, Any], include_id: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if include_id and "id" in payload:
            data["id"] = coerce_value(StorageKind.REFERENCE, payload["id"])
        for decl in self._persistence.fields:
            if decl.name in payload:
                data[decl.name] = coerce_value(decl.storage, payload[decl.name])
        return data

    def _apply_upload(self, spec: OperationSpec, data: Dict[str, Any], upload_path: Optional[str]) -> None:
        if spec.file_field and upload_path:
            data[spec.file_field] = upload_path

    def _fetch(self, conn: Connection, item_id: int) -> Optional[Dict[str, Any]]:
        row = conn.execute(select(self._table).where(self._table.c.id == item_id)).mappings().first()
        return dict(row) if row is not None else None

    def _populate(self, conn: Connection, record: Dict[str, Any]) -> Dict[str, Any]:
        for decl in self._persistence.cross_references:
            target = self._registry.get(decl.reference_type)
            value = record.get(decl.name)
            if target is None or value is None:
                record[decl.name] = None
                continue
            related = conn.execute(select(target).where(target.c.id == value)).mappings().first()
            record[decl.name] = dict(related) if related is not None else None
        return record

    def _search_clause(self, term: str) -> Optional[Any]:
        clauses = []
        pattern = like_pattern(term)
        for name in self._ops.get(OperationKind.LIST).searchable:
            decl: Optional[FieldDeclaration] = self._persistence.get(name)
            if decl is None:
                continue
            column = self._table.c[name]
            if decl.storage is not StorageKind.TEXT:
                column = cast(column, String)
            clauses.append(column.ilike(pattern, escape="\\"))
        return or_(*clauses) if clauses else None

    @staticmethod
    def _server_error(spec: OperationSpec, exc: Exception) -> OperationResult:
        logger.error("%s: %s", spec.failure_message, exc)
        return OperationResult(
            ResultKind.SERVER_ERROR, {"message": spec.failure_message, "error": error_detail(exc)}
        )

    @staticmethod
    def _not_found(spec: OperationSpec) -> OperationResult:
        return OperationResult(ResultKind.NOT_FOUND, {"message": spec.not_found_message})

    # -- operations ---------------------------------------------------------

    def create(self, payload: Mapping[str, Any], upload_path: Optional[str] = None) -> OperationResult:
        spec = self._ops.get(OperationKind.CREATE)
        try:
            data = self._coerce_payload(payload)
            self._apply_upload(spec, data, upload_path)
            if spec.password_field and data.get(spec.password_field):
                data[spec.password_field] = hash_password(str(data[spec.password_field]))
            with self._engine.begin() as conn:
                result = conn.execute(insert(self._table).values(**data))
                record = self._fetch(conn, result.inserted_primary_key[0])
                body = self._populate(conn, record)
        except (SQLAlchemyError, ValueError, TypeError) as exc:
            return self._server_error(spec, exc)
        logger.debug("Created %s #%s", spec.entity_name, body["id"])
        return OperationResult(ResultKind.CREATED, body)

    def list(self, params: Mapping[str, Any]) -> OperationResult:
        spec = self._ops.get(OperationKind.LIST)
        params = dict(params)
        page = safe_int(params.pop("page", None), spec.default_page)
        limit = safe_int(params.pop("limit", None), spec.default_limit, spec.max_limit)
        search = str(params.pop("search", "") or "").strip()
        try:
            filters = self._coerce_payload(params, include_id=True)
            conditions = [self._table.c[key] == value for key, value in filters.items() if value is not None]
            if search:
                clause = self._search_clause(search)
                if clause is not None:
                    conditions.append(clause)
            count_stmt = select(func.count()).select_from(self._table)
            stmt = select(self._table)
            if conditions:
                count_stmt = count_stmt.where(*conditions)
                stmt = stmt.where(*conditions)
            stmt = (
                stmt.order_by(self._table.c.created_at.desc(), self._table.c.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            with self._engine.connect() as conn:
                total = conn.execute(count_stmt).scalar_one()
                rows = conn.execute(stmt).mappings().all()
                data = [self._populate(conn, dict(row)) for row in rows]
        except (SQLAlchemyError, ValueError, TypeError) as exc:
            return self._server_error(spec, exc)
        return OperationResult(ResultKind.OK, {"data": data, "total": total, "page": page, "limit": limit})

    def get(self, item_id: Any) -> OperationResult:
        spec = self._ops.get(OperationKind.GET)
        record_id = _parse_id(item_id)
        if record_id is None:
            return self._not_found(spec)
        try:
            with self._engine.connect() as conn:
                record = self._fetch(conn, record_id)
                if record is None:
                    return self._not_found(spec)
                body = self._populate(conn, record)
        except SQLAlchemyError as exc:
            return self._server_error(spec, exc)
        return OperationResult(ResultKind.OK, body)

    def update(
        self, item_id: Any, payload: Mapping[str, Any], upload_path: Optional[str] = None
    ) -> OperationResult:
        spec = self._ops.get(OperationKind.UPDATE)
        record_id = _parse_id(item_id)
        if record_id is None:
            return self._not_found(spec)
        try:
            data = self._coerce_payload(payload)
            self._apply_upload(spec, data, upload_path)
            if spec.password_field:
                if data.get(spec.password_field):
                    data[spec.password_field] = hash_password(str(data[spec.password_field]))
                else:
                    data.pop(spec.password_field, None)
            with self._engine.begin() as conn:
                if self._fetch(conn, record_id) is None:
                    return self._not_found(spec)
                data["updated_at"] = _utcnow()
                conn.execute(update(self._table).where(self._table.c.id == record_id).values(**data))
                body = self._populate(conn, self._fetch(conn, record_id))
        except (SQLAlchemyError, ValueError, TypeError) as exc:
            return self._server_error(spec, exc)
        return OperationResult(ResultKind.OK, body)

    def delete(self, item_id: Any) -> OperationResult:
        spec = self._ops.get(OperationKind.DELETE)
        record_id = _parse_id(item_id)
        if record_id is None:
            return self._not_found(spec)
        try:
            with self._engine.begin() as conn:
                if self._fetch(conn, record_id) is None:
                    return self._not_found(spec)
                conn.execute(delete(self._table).where(self._table.c.id == record_id))
        except SQLAlchemyError as exc:
            return self._server_error(spec, exc)
        return OperationResult(ResultKind.OK, {"message": spec.deleted_message})

    def execute(self, kind: OperationKind, *args: Any, **kwargs: Any) -> OperationResult:
        """Dispatch by operation kind."""
        handlers = {
            OperationKind.CREATE: self.create,
            OperationKind.LIST: self.list,
            OperationKind.GET: self.get,
            OperationKind.UPDATE: self.update,
            OperationKind.DELETE: self.delete,
        }
        return handlers[kind](*args, **kwargs)


class LoginExecutor:
    """Credential check and token issuance for the auth entity."""

    def __init__(self, login: LoginSpec, table: Table, engine: Engine, secret: str) -> None:
        self._login = login
        self._table = table
        self._engine = engine
        self._secret = secret

    @property
    def spec(self) -> LoginSpec:
        return self._login

    def login(self, payload: Mapping[str, Any]) -> OperationResult:
        login = self._login
        identity = payload.get(login.identity_field)
        password = payload.get(login.password_field)
        if not identity or not password:
            return OperationResult(ResultKind.BAD_REQUEST, {"message": login.missing_message})
        try:
            with self._engine.connect() as conn:
                stmt = select(self._table).where(self._table.c[login.identity_field] == str(identity))
                user = conn.execute(stmt).mappings().first()
        except SQLAlchemyError as exc:
            logger.error("%s: %s", login.server_error_message, exc)
            return OperationResult(
                ResultKind.SERVER_ERROR,
                {"message": login.server_error_message, "error": error_detail(exc)},
            )
        if user is None or not verify_password(str(password), user[login.password_field] or ""):
            return OperationResult(ResultKind.UNAUTHORIZED, {"message": login.invalid_message})
        token = issue_token(user["id"], self._secret, login.token_expiry_seconds)
        return OperationResult(ResultKind.OK, {"token": token})


# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------


class AdminRuntime:
    """
    All executors of one schema, sharing one engine and one ``MetaData``.

    Entities without fields get no table. The auth entity gets a table and a
    ``CrudExecutor`` (used to seed accounts) but is exposed over HTTP only
    through its ``LoginExecutor``.
    """

    def __init__(
        self,
        schema: SchemaDefinition,
        engine: Engine,
        config: Optional[GenerationConfig] = None,
        token_secret: str = "change-me",
        create_tables: bool = True,
    ) -> None:
        self._config: GenerationConfig = config or GenerationConfig()
        self._engine: Engine = engine
        self._metadata: MetaData = MetaData()
        self._tables: Dict[str, Table] = {}
        self._executors: Dict[str, CrudExecutor] = {}
        self._login: Optional[LoginExecutor] = None

        entities: List[EntitySchema] = [e for e in schema.entities if e.fields]
        known_types = {e.type_name for e in entities}
        for entity in entities:
            persistence = emit_persistence_schema(entity, known_types)
            table = build_table(persistence, self._metadata)
            self._tables[entity.type_name] = table
            operations = emit_operation_set(entity, persistence, self._config)
            self._executors[entity.slug] = CrudExecutor(
                operations, persistence, table, engine, self._tables
            )
            if is_auth_entity(entity.name, self._config.auth_entity_name):
                activation = resolve_auth_activation(entity)
                if activation.active:
                    login = emit_login_spec(entity, activation, self._config)
                    self._login = LoginExecutor(login, table, engine, token_secret)
                else:
                    logger.warning("Login disabled for '%s': %s", entity.name, activation.problem)

        if create_tables:
            self._metadata.create_all(engine)
        logger.debug("Runtime ready: %d tables, login=%s", len(self._tables), self._login is not None)

    @property
    def config(self) -> GenerationConfig:
        return self._config

    @property
    def metadata(self) -> MetaData:
        return self._metadata

    @property
    def login(self) -> Optional[LoginExecutor]:
        return self._login

    def crud(self, entity_name: str) -> CrudExecutor:
        """
        Executor of *entity_name* (case-insensitive).

        Raises:
            KeyError: No entity with that name has a table.
        """
        try:
            return self._executors[to_slug(entity_name)]
        except KeyError:
            raise KeyError(f"No runtime entity named '{entity_name}'") from None

    def routed_executors(self) -> List[CrudExecutor]:
        """Executors of every non-auth entity, in schema order."""
        return [
            executor
            for executor in self._executors.values()
            if not is_auth_entity(executor.entity_name, self._config.auth_entity_name)
        ]
