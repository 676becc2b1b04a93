"""Streaming importer for OEBPS/EPUB package documents."""

from .config import ImportSettings, LoadFailurePolicy, UniqueIdFallback
from .errors import ContainerError, FileLoadError, PackageImportError, StructuralParseError
from .importer import ImportResult, PackageImporter

__all__ = [
    "ContainerError",
    "FileLoadError",
    "ImportResult",
    "ImportSettings",
    "LoadFailurePolicy",
    "PackageImportError",
    "PackageImporter",
    "StructuralParseError",
    "UniqueIdFallback",
]
