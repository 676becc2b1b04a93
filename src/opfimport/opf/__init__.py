"""OPF package document parsing and the structures it fills."""

from .parser import OPFStreamParser
from .reading_order import ReadingOrder
from .registry import ManifestRegistry
from .semantics import SemanticAnnotator

__all__ = ["ManifestRegistry", "OPFStreamParser", "ReadingOrder", "SemanticAnnotator"]
