# File: sheetforge/utils.py
"""
SheetForge - Naming Normalizer & Helpers
=========================================
String normalization, file I/O, and code-formatting utilities used throughout
the generation pipeline.

Every entity and reference name flows through the three naming forms defined
here:

    to_type_name("product category")  -> "ProductCategory"
    to_slug("Product Category")       -> "product-category"
    to_title("product_category")      -> "Product Category"

Generated artifacts cross-reference each other by these derived forms, so a
foreign key must always use ``to_type_name`` of the referenced entity and the
same ``module_name`` the referenced model is written under.

All string-conversion functions are ``lru_cache``-decorated; they are called
repeatedly for the same handful of entity names during a run.
"""

from __future__ import annotations

import functools
import hashlib
import json
import keyword
import logging
import os
import re
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("sheetforge.utils")

# ---------------------------------------------------------------------------
# Pre-compiled regex patterns (compiled once at module load)
# ---------------------------------------------------------------------------

_CAMEL_TO_SNAKE_RE1: re.Pattern[str] = re.compile(r"([A-Z]+)([A-Z][a-z])")
_CAMEL_TO_SNAKE_RE2: re.Pattern[str] = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALPHANUM_RE: re.Pattern[str] = re.compile(r"[^a-zA-Z0-9]")
_MULTI_UNDERSCORE_RE: re.Pattern[str] = re.compile(r"_{2,}")
_LEADING_TRAILING_UNDERSCORE_RE: re.Pattern[str] = re.compile(r"^_+|_+$")
_WHITESPACE_RE: re.Pattern[str] = re.compile(r"\s+")
_TITLE_SEPARATOR_RE: re.Pattern[str] = re.compile(r"[-_]")
_WORD_START_RE: re.Pattern[str] = re.compile(r"(^|\s)(\S)")
_IDENTIFIER_RE: re.Pattern[str] = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


# ---------------------------------------------------------------------------
# Naming forms
# ---------------------------------------------------------------------------


@functools.lru_cache(maxsize=None)
def to_type_name(name: str) -> str:
    """
    Type-name form: punctuation stripped, each segment capitalised, joined.

    Only the first letter of each segment is touched, which makes the form
    idempotent:

        >>> to_type_name("auth users")
        'AuthUsers'
        >>> to_type_name("AuthUsers")
        'AuthUsers'
        >>> to_type_name("order-items_v2")
        'OrderItemsV2'
    """
    if not name:
        return ""
    segments: List[str] = _NON_ALPHANUM_RE.sub(" ", name).split()
    return "".join(segment[:1].upper() + segment[1:] for segment in segments)


@functools.lru_cache(maxsize=None)
def to_slug(name: str) -> str:
    """
    Slug form: lowercase, internal whitespace replaced by hyphens.

    Used as the URL path segment and as the artifact identity key.

        >>> to_slug("Product Category")
        'product-category'
    """
    if not name:
        return ""
    return _WHITESPACE_RE.sub("-", name.strip().lower())


@functools.lru_cache(maxsize=None)
def to_title(name: str) -> str:
    """
    Title form for human-facing labels.

        >>> to_title("import-history")
        'Import History'
        >>> to_title("order_items")
        'Order Items'
    """
    if not name:
        return ""
    spaced: str = _TITLE_SEPARATOR_RE.sub(" ", name)
    return _WORD_START_RE.sub(lambda m: m.group(1) + m.group(2).upper(), spaced)


@functools.lru_cache(maxsize=None)
def to_snake_case(name: str) -> str:
    """
    Convert any string to snake_case.

    Examples:
        >>> to_snake_case("ProductCategory")
        'product_category'
        >>> to_snake_case("getHTTPResponse")
        'get_http_response'
        >>> to_snake_case("already_snake")
        'already_snake'
    """
    if not name:
        return ""
    s: str = _CAMEL_TO_SNAKE_RE1.sub(r"\1_\2", name)
    s = _CAMEL_TO_SNAKE_RE2.sub(r"\1_\2", s)
    s = _NON_ALPHANUM_RE.sub("_", s)
    s = _MULTI_UNDERSCORE_RE.sub("_", s)
    s = _LEADING_TRAILING_UNDERSCORE_RE.sub("", s)
    return s.lower()


@functools.lru_cache(maxsize=None)
def module_name(name: str) -> str:
    """
    Python module / table name for an entity.

    Derived from the type-name form so that ``"Product Category"`` and
    ``"product-category"`` land in the same ``product_category`` module.
    A leading digit is prefixed with an underscore.
    """
    result: str = to_snake_case(to_type_name(name))
    if result and result[0].isdigit():
        result = f"_{result}"
    return result


@functools.lru_cache(maxsize=None)
def name_key(name: str) -> str:
    """
    Comparison key for entity names: lowercase letters and digits only.

        >>> name_key("PRODUCT CATEGORY") == name_key("product_category") == name_key("product-category")
        True
    """
    return _NON_ALPHANUM_RE.sub("", name).lower()


def is_valid_identifier(name: str) -> bool:
    """True when *name* can be used as a generated Python attribute."""
    return bool(_IDENTIFIER_RE.match(name)) and not keyword.iskeyword(name)


# ---------------------------------------------------------------------------
# Value parsing
# ---------------------------------------------------------------------------

_TRUTHY_STRINGS = frozenset({"true", "yes", "1", "*"})


def parse_boolean(value: Any) -> bool:
    """
    Interpret a spreadsheet cell as a boolean.

    ``True``, ``1`` and the strings ``true`` / ``yes`` / ``1`` / ``*``
    (case-insensitive) are truthy; everything else is ``False``.
    """
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value == 1
    return str(value).strip().lower() in _TRUTHY_STRINGS


def split_options(value: Any) -> List[str]:
    """Split a comma-separated options cell into a clean list."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items = [str(item) for item in value]
    else:
        items = str(value).split(",")
    return [item.strip() for item in items if item is not None and item.strip()]


# ---------------------------------------------------------------------------
# Code formatting helpers
# ---------------------------------------------------------------------------


def to_json(data: Any) -> str:
    """Deterministic JSON used for every descriptor artifact."""
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def build_import_block(imports: Dict[str, Set[str]]) -> str:
    """
    Build a sorted, de-duplicated import block from a mapping of
    module -> set of names.

    Example:
        >>> build_import_block({"typing": {"List", "Optional"}, "datetime": {"datetime"}})
        'from datetime import datetime\\nfrom typing import List, Optional'
    """
    lines: List[str] = []
    for module in sorted(imports.keys()):
        names: List[str] = sorted(imports[module])
        if names:
            lines.append(f"from {module} import {', '.join(names)}")
        else:
            lines.append(f"import {module}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# File I/O
# ---------------------------------------------------------------------------


def ensure_directory(path: Path) -> None:
    """Create directory (and parents) if it doesn't exist."""
    path.mkdir(parents=True, exist_ok=True)
    logger.debug("Ensured directory exists: %s", path)


def write_file(path: Path, content: str, atomic: bool = True) -> int:
    """
    Write *content* to *path*.

    When *atomic* is True, writes to a temporary file in the same directory
    and renames it into place, so a crash never leaves a half-written file.

    Returns the number of bytes written.
    """
    ensure_directory(path.parent)

    encoded: bytes = content.encode("utf-8")

    if atomic:
        fd, tmp_path = tempfile.mkstemp(
            dir=str(path.parent),
            prefix=f".{path.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(encoded)
            os.replace(tmp_path, str(path))
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
    else:
        path.write_bytes(encoded)

    logger.debug("Wrote %d bytes to %s", len(encoded), path)
    return len(encoded)


def sha256_hex(content: str) -> str:
    """Return SHA-256 hex digest of a string."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def count_lines(content: str) -> int:
    """Count the number of lines in a string."""
    if not content:
        return 0
    return content.count("\n") + (1 if not content.endswith("\n") else 0)


# ---------------------------------------------------------------------------
# Timer context manager
# ---------------------------------------------------------------------------


class Timer:
    """
    Simple context-manager timer for profiling generation steps.

    Usage:
        with Timer("emit entities") as t:
            ...
        print(t.elapsed)
    """

    __slots__ = ("label", "start_time", "end_time", "elapsed")

    def __init__(self, label: str = "operation") -> None:
        self.label: str = label
        self.start_time: float = 0.0
        self.end_time: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[object],
    ) -> None:
        self.end_time = time.perf_counter()
        self.elapsed = self.end_time - self.start_time
        logger.info("Timer [%s]: %.4f seconds", self.label, self.elapsed)

    def __repr__(self) -> str:
        return f"<Timer {self.label}: {self.elapsed:.4f}s>"
