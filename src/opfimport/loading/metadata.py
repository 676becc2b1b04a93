"""Group captured meta elements and resolve the book's unique identifier."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Iterable
import uuid

from opfimport.config import UniqueIdFallback
from opfimport.models import Diagnostic, DiagnosticKind, MetaElement

LOGGER = logging.getLogger(__name__)

IDENTIFIER_NAME = "identifier"
SYNTHESIZED_ID = "BookId"


@dataclass(slots=True)
class BookMetadata:
    """Meta elements grouped by name in document order."""

    elements: dict[str, list[MetaElement]] = field(default_factory=dict)
    unique_identifier: MetaElement | None = None
    identifier_source: str | None = None
    diagnostics: list[Diagnostic] = field(default_factory=list)

    def values(self, name: str) -> list[str]:
        return [element.value for element in self.elements.get(name, [])]

    def first(self, name: str) -> str | None:
        for value in self.values(name):
            if value:
                return value
        return None

    def to_dict(self) -> dict[str, object]:
        return {
            "elements": {
                name: [element.to_dict() for element in group] for name, group in self.elements.items()
            },
            "unique_identifier": self.unique_identifier.value if self.unique_identifier else None,
            "identifier_source": self.identifier_source,
        }


class MetadataLoader:
    """Pure transformation from raw meta triples to BookMetadata; never raises."""

    def __init__(self, fallback: UniqueIdFallback = UniqueIdFallback.FIRST_IDENTIFIER) -> None:
        self._fallback = fallback

    def load(self, meta_elements: Iterable[MetaElement], unique_identifier_id: str | None) -> BookMetadata:
        metadata = BookMetadata()
        for element in meta_elements:
            metadata.elements.setdefault(element.name, []).append(element)

        identifiers = metadata.elements.get(IDENTIFIER_NAME, [])
        if unique_identifier_id:
            declared = next(
                (element for element in identifiers if element.attributes.get("id") == unique_identifier_id),
                None,
            )
            if declared is not None:
                metadata.unique_identifier = declared
                metadata.identifier_source = "declared"
                return metadata

            message = f"Unique identifier {unique_identifier_id} matches no identifier element"
            LOGGER.warning("%s; falling back to %s", message, self._fallback.value)
            metadata.diagnostics.append(
                Diagnostic(
                    kind=DiagnosticKind.IDENTITY_RESOLUTION,
                    message=message,
                    identifier=unique_identifier_id,
                )
            )
        else:
            LOGGER.info("Package declares no unique identifier; falling back to %s", self._fallback.value)

        self._apply_fallback(metadata, identifiers, unique_identifier_id)
        return metadata

    def _apply_fallback(
        self,
        metadata: BookMetadata,
        identifiers: list[MetaElement],
        unique_identifier_id: str | None,
    ) -> None:
        if self._fallback is UniqueIdFallback.FIRST_IDENTIFIER:
            if identifiers:
                metadata.unique_identifier = identifiers[0]
                metadata.identifier_source = "first-identifier"
                return
            message = "Package has no identifier element to fall back to"
            LOGGER.warning(message)
            metadata.diagnostics.append(Diagnostic(kind=DiagnosticKind.IDENTITY_RESOLUTION, message=message))
        elif self._fallback is UniqueIdFallback.SYNTHESIZE:
            synthesized = MetaElement(
                name=IDENTIFIER_NAME,
                value=f"urn:uuid:{uuid.uuid4()}",
                attributes={"id": unique_identifier_id or SYNTHESIZED_ID, "opf:scheme": "UUID"},
            )
            metadata.elements.setdefault(IDENTIFIER_NAME, []).append(synthesized)
            metadata.unique_identifier = synthesized
            metadata.identifier_source = "synthesized"
