"""Data structures shared by the OPF parser and the loaders."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping

if TYPE_CHECKING:
    from opfimport.opf.reading_order import ReadingOrder
    from opfimport.opf.registry import ManifestRegistry
    from opfimport.opf.semantics import SemanticAnnotator


class DiagnosticKind(str, Enum):
    ELEMENT_VALIDATION = "element-validation"
    FILE_LOAD = "file-load"
    IDENTITY_RESOLUTION = "identity-resolution"


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """A recoverable problem surfaced next to a successful result."""

    kind: DiagnosticKind
    message: str
    identifier: str | None = None
    path: Path | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "identifier": self.identifier,
            "path": str(self.path) if self.path is not None else None,
        }


@dataclass(frozen=True, slots=True)
class MetaElement:
    """A raw (name, value, attributes) triple captured from the metadata section."""

    name: str
    value: str
    attributes: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MetaElement):
            return NotImplemented
        return (
            self.name == other.name
            and self.value == other.value
            and dict(self.attributes) == dict(other.attributes)
        )

    def __hash__(self) -> int:
        return hash((self.name, self.value, frozenset(self.attributes.items())))

    def to_dict(self) -> dict[str, object]:
        return {"name": self.name, "value": self.value, "attributes": dict(self.attributes)}


@dataclass(frozen=True, slots=True)
class ManifestEntry:
    """One manifest item resolved against the package document's directory."""

    identifier: str
    href: str
    path: Path
    media_type: str
    canonical_id: str

    @property
    def is_alias(self) -> bool:
        return self.identifier != self.canonical_id


@dataclass(frozen=True, slots=True)
class ParsedPackage:
    """Everything a single scan of the package document produces."""

    opf_path: Path
    version: str | None
    unique_identifier_id: str | None
    meta_elements: tuple[MetaElement, ...]
    registry: "ManifestRegistry"
    reading_order: "ReadingOrder"
    semantics: "SemanticAnnotator"
    diagnostics: tuple[Diagnostic, ...] = ()
