"""Loaders that turn a parsed package into book resources and metadata."""

from .files import DiskFileLoader, FileLoader, LoadedFile
from .folder import FolderLoadResult, FolderStructureLoader, LoadJob
from .metadata import BookMetadata, MetadataLoader

__all__ = [
    "BookMetadata",
    "DiskFileLoader",
    "FileLoader",
    "FolderLoadResult",
    "FolderStructureLoader",
    "LoadJob",
    "LoadedFile",
    "MetadataLoader",
]
