# File: sheetforge/exporters.py
"""
SheetForge - Artifact Store
===========================

Responsible for:
    1. Mapping artifact identities (entity slug + artifact kind) to output
       locations.
    2. Enforcing the idempotency policy: a per-entity artifact that already
       exists is skipped, never merged or overwritten.
    3. Overwriting aggregate artifacts (menu, route table) on every run.
    4. Writing files atomically (write-to-temp then rename).

Two backends share the policy in ``ArtifactStore.persist``: the filesystem
store used by the CLI and the upload endpoint, and an in-memory store used
for dry runs and tests.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Tuple

from sheetforge.exceptions import ArtifactStoreError
from sheetforge.models import GenerationConfig
from sheetforge.utils import count_lines, sha256_hex, write_file

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("sheetforge.exporters")


# ---------------------------------------------------------------------------
# Identities & artifacts
# ---------------------------------------------------------------------------


class ArtifactKind(str, Enum):
    """Kinds of generated artifacts."""

    PROJECT_PACKAGE = "project:package"
    PROJECT_DATABASE = "project:database"
    PROJECT_SUPPORT = "project:support"
    PROJECT_MAIN = "project:main"
    MODEL = "model"
    OPERATION_CREATE = "operation:create"
    OPERATION_LIST = "operation:list"
    OPERATION_GET = "operation:get"
    OPERATION_UPDATE = "operation:update"
    OPERATION_DELETE = "operation:delete"
    ROUTES = "routes"
    UI = "ui"
    LOGIN_OPERATION = "auth:login"
    AUTH_ROUTES = "auth:routes"
    LOGIN_FORM = "auth:login_form"
    ROUTE_GUARD = "auth:route_guard"
    NAVIGATION_MENU = "navigation:menu"
    DASHBOARD = "navigation:dashboard"
    ROUTE_TABLE = "navigation:routes"

    @property
    def is_aggregate(self) -> bool:
        """Aggregates are regenerated on every run."""
        return self in (ArtifactKind.NAVIGATION_MENU, ArtifactKind.DASHBOARD, ArtifactKind.ROUTE_TABLE)

    @classmethod
    def for_operation(cls, operation: str) -> "ArtifactKind":
        return cls(f"operation:{operation}")


@dataclass(frozen=True, slots=True)
class ArtifactIdentity:
    """``(entity slug, artifact kind)``; the unit of idempotency."""

    slug: str
    kind: ArtifactKind

    def __str__(self) -> str:
        return f"{self.slug or '<project>'}:{self.kind.value}"


@dataclass(frozen=True, slots=True)
class Artifact:
    """
    One generated artifact.

    ``anchor`` is the location whose presence means the artifact exists: the
    file itself for single-file artifacts, the unit directory for multi-file
    units such as the form/list pair.
    """

    identity: ArtifactIdentity
    anchor: str
    files: Tuple[Tuple[str, str], ...]

    @classmethod
    def single(cls, identity: ArtifactIdentity, path: str, content: str) -> "Artifact":
        return cls(identity=identity, anchor=path, files=((path, content),))

    @property
    def content(self) -> str:
        """Content of the first (usually only) file."""
        return self.files[0][1]


class WriteOutcome(str, Enum):
    WRITTEN = "written"
    SKIPPED = "skipped"
    OVERWRITTEN = "overwritten"


@dataclass(frozen=True, slots=True)
class FileRecord:
    """Immutable record of a single written file."""

    relative_path: str
    size_bytes: int
    line_count: int
    sha256: str


@dataclass(frozen=True, slots=True)
class ArtifactRecord:
    identity: ArtifactIdentity
    outcome: WriteOutcome
    files: Tuple[FileRecord, ...] = ()

    @property
    def skipped(self) -> bool:
        return self.outcome is WriteOutcome.SKIPPED


# ---------------------------------------------------------------------------
# Output layout
# ---------------------------------------------------------------------------


class ArtifactLayout:
    """Relative output locations of every artifact kind."""

    def __init__(self, config: GenerationConfig) -> None:
        self._pkg: str = config.backend_package
        self._frontend: str = config.frontend_dir
        self._manifest: str = config.manifest_dir

    @property
    def package(self) -> str:
        return self._pkg

    def project_module(self, name: str) -> str:
        return f"{self._pkg}/{name}.py"

    def package_inits(self) -> List[str]:
        return [
            f"{self._pkg}/__init__.py",
            f"{self._pkg}/models/__init__.py",
            f"{self._pkg}/routes/__init__.py",
            f"{self._pkg}/operations/__init__.py",
            f"{self._pkg}/auth/__init__.py",
        ]

    def model(self, module: str) -> str:
        return f"{self._pkg}/models/{module}.py"

    def operation(self, module: str, operation_file: str) -> str:
        return f"{self._pkg}/operations/{module}/{operation_file}.py"

    def routes(self, module: str) -> str:
        return f"{self._pkg}/routes/{module}.py"

    def ui_unit(self, slug: str) -> str:
        return f"{self._frontend}/{slug}"

    def login_operation(self) -> str:
        return f"{self._pkg}/auth/login.py"

    def auth_routes(self) -> str:
        return f"{self._pkg}/auth/routes.py"

    def login_form(self) -> str:
        return f"{self._frontend}/_auth/login.json"

    def route_guard(self) -> str:
        return f"{self._frontend}/_auth/route_guard.json"

    def menu(self) -> str:
        return f"{self._manifest}/menu.json"

    def dashboard(self) -> str:
        return f"{self._frontend}/_dashboard/dashboard.json"

    def route_table(self) -> str:
        return f"{self._manifest}/routes.json"


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class ArtifactStore(abc.ABC):
    """
    Idempotent artifact persistence.

    Subclasses implement existence checks and raw writes; the skip /
    overwrite policy lives in ``persist`` so every backend behaves alike.
    """

    def __init__(self) -> None:
        self._records: List[ArtifactRecord] = []

    @abc.abstractmethod
    def exists(self, artifact: Artifact) -> bool:
        """True when *artifact* was already produced."""

    @abc.abstractmethod
    def _write(self, artifact: Artifact) -> Tuple[FileRecord, ...]:
        """Write every file of *artifact*, replacing existing content."""

    @abc.abstractmethod
    def read(self, relative_path: str) -> Optional[str]:
        """Content of a previously written file, or None."""

    def persist(self, artifact: Artifact, *, overwrite: bool = False) -> ArtifactRecord:
        """
        Apply the idempotency policy to *artifact*.

        Existing artifacts are skipped unless *overwrite* is set (aggregates).
        """
        existed = self.exists(artifact)
        if existed and not overwrite:
            logger.info("Skipped %s (already exists at %s)", artifact.identity, artifact.anchor)
            record = ArtifactRecord(identity=artifact.identity, outcome=WriteOutcome.SKIPPED)
        else:
            files = self._write(artifact)
            outcome = WriteOutcome.OVERWRITTEN if existed else WriteOutcome.WRITTEN
            logger.info("%s %s -> %s", outcome.value.capitalize(), artifact.identity, artifact.anchor)
            record = ArtifactRecord(identity=artifact.identity, outcome=outcome, files=files)
        self._records.append(record)
        return record

    @property
    def records(self) -> List[ArtifactRecord]:
        return list(self._records)

    @staticmethod
    def _record(path: str, content: str) -> FileRecord:
        return FileRecord(
            relative_path=path,
            size_bytes=len(content.encode("utf-8")),
            line_count=count_lines(content),
            sha256=sha256_hex(content),
        )


class FilesystemArtifactStore(ArtifactStore):
    """
    Writes artifacts under an output root.

    Usage::

        store = FilesystemArtifactStore(Path("./admin"))
        store.persist(artifact)

    Thread-safety: NOT thread-safe. Use one store per output directory.
    """

    def __init__(self, output_dir: Path, *, atomic_writes: bool = True) -> None:
        super().__init__()
        self._output_dir: Path = Path(output_dir).resolve()
        self._atomic_writes: bool = atomic_writes
        logger.debug(
            "FilesystemArtifactStore initialised: output_dir=%s, atomic=%s.",
            self._output_dir,
            self._atomic_writes,
        )

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    def exists(self, artifact: Artifact) -> bool:
        return (self._output_dir / artifact.anchor).exists()

    def _write(self, artifact: Artifact) -> Tuple[FileRecord, ...]:
        records: List[FileRecord] = []
        for rel_path, content in artifact.files:
            target = self._output_dir / rel_path
            try:
                write_file(target, content, atomic=self._atomic_writes)
            except OSError as exc:
                raise ArtifactStoreError(
                    f"Failed to write {rel_path}: {exc}", location=str(target)
                ) from exc
            records.append(self._record(rel_path, content))
        return tuple(records)

    def read(self, relative_path: str) -> Optional[str]:
        target = self._output_dir / relative_path
        if not target.is_file():
            return None
        return target.read_text(encoding="utf-8")


@dataclass
class _MemoryState:
    identities: Set[ArtifactIdentity] = field(default_factory=set)
    files: Dict[str, str] = field(default_factory=dict)


class MemoryArtifactStore(ArtifactStore):
    """Keeps artifacts in memory; used for dry runs and tests."""

    def __init__(self) -> None:
        super().__init__()
        self._state = _MemoryState()

    def exists(self, artifact: Artifact) -> bool:
        return artifact.identity in self._state.identities

    def _write(self, artifact: Artifact) -> Tuple[FileRecord, ...]:
        self._state.identities.add(artifact.identity)
        for rel_path, content in artifact.files:
            self._state.files[rel_path] = content
        return tuple(self._record(p, c) for p, c in artifact.files)

    def read(self, relative_path: str) -> Optional[str]:
        return self._state.files.get(relative_path)

    @property
    def files(self) -> Dict[str, str]:
        return dict(self._state.files)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._state.files))
