"""Manifest registry: identifier to file path map plus the path dedup set."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

from opfimport.models import ManifestEntry

LOGGER = logging.getLogger(__name__)


class ManifestRegistry:
    """Identifier-keyed manifest entries where each absolute path is loaded at most once.

    Several identifiers may point at the same file (InDesign does this even
    though the OPF rules forbid it). The first identifier that claims a path
    becomes the canonical entry; later ones are kept as aliases so spine and
    guide lookups still resolve, but only canonical entries are ever loaded.
    """

    def __init__(self) -> None:
        self._entries: dict[str, ManifestEntry] = {}
        self._canonical_by_path: dict[Path, str] = {}

    def register(self, identifier: str, href: str, path: Path, media_type: str) -> bool:
        """Insert ``identifier -> path``; return True when ``path`` is new to the dedup set."""

        if identifier in self._entries:
            raise ValueError(f"Duplicate manifest identifier: {identifier}")

        canonical_id = self._canonical_by_path.get(path)
        inserted = canonical_id is None
        if inserted:
            canonical_id = identifier
            self._canonical_by_path[path] = identifier
        else:
            LOGGER.debug("Manifest item %s aliases %s (%s)", identifier, canonical_id, path)

        self._entries[identifier] = ManifestEntry(
            identifier=identifier,
            href=href,
            path=path,
            media_type=media_type,
            canonical_id=canonical_id,
        )
        return inserted

    def resolve(self, identifier: str) -> ManifestEntry:
        try:
            return self._entries[identifier]
        except KeyError:
            raise KeyError(f"Unknown manifest identifier: {identifier}") from None

    def get(self, identifier: str) -> ManifestEntry | None:
        return self._entries.get(identifier)

    def path_already_loaded(self, path: Path) -> bool:
        return path in self._canonical_by_path

    def find_by_path(self, path: Path, *, case_insensitive: bool = False) -> ManifestEntry | None:
        """Return the canonical entry for ``path``, optionally ignoring case."""

        canonical_id = self._canonical_by_path.get(path)
        if canonical_id is None and case_insensitive:
            folded = str(path).casefold()
            for known_path, known_id in self._canonical_by_path.items():
                if str(known_path).casefold() == folded:
                    canonical_id = known_id
                    break
        if canonical_id is None:
            return None
        return self._entries[canonical_id]

    def canonical_entries(self) -> list[ManifestEntry]:
        """Entries that own their path, in registration order."""

        return [entry for entry in self._entries.values() if not entry.is_alias]

    def aliases_of(self, canonical_id: str) -> list[ManifestEntry]:
        return [
            entry
            for entry in self._entries.values()
            if entry.is_alias and entry.canonical_id == canonical_id
        ]

    @property
    def unique_path_count(self) -> int:
        return len(self._canonical_by_path)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._entries

    def __iter__(self) -> Iterator[ManifestEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ManifestRegistry):
            return NotImplemented
        return list(self._entries.items()) == list(other._entries.items())

    def __repr__(self) -> str:
        return f"ManifestRegistry(entries={len(self._entries)}, unique_paths={self.unique_path_count})"
