"""Error taxonomy for package import failures."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(slots=True)
class PackageImportError(Exception):
    """Base domain error for a failed package import."""

    path: Path
    message: str

    def __str__(self) -> str:
        return f"{self.message} (path={self.path})"


class ContainerError(PackageImportError):
    """The container could not be extracted or has no package document."""


class StructuralParseError(PackageImportError):
    """The package document is unreadable or not well-formed XML."""


class FileLoadError(PackageImportError):
    """A single manifest file could not be read or decoded."""
