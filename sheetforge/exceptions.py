# File: sheetforge/exceptions.py
"""Custom exceptions for SheetForge."""

from __future__ import annotations

from typing import Optional


class SheetForgeError(Exception):
    """Base exception for all SheetForge errors."""


class SchemaInputError(SheetForgeError):
    """The schema input could not be parsed or failed validation."""

    def __init__(self, message: str, entity: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.entity = entity


class GenerationError(SheetForgeError):
    """An unrecoverable failure while emitting artifacts for an entity."""

    def __init__(self, message: str, entity: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.entity = entity


class ArtifactStoreError(SheetForgeError):
    """The artifact store could not persist an artifact."""

    def __init__(self, message: str, location: Optional[str] = None) -> None:
        super().__init__(message)
        self.location = location
