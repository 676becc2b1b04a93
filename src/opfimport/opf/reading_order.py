"""Spine reading order accumulated in document order."""

from __future__ import annotations

from typing import Iterator

from opfimport.opf.registry import ManifestRegistry


class ReadingOrder:
    """Ordered spine idrefs; duplicates and unresolved ids are kept as written."""

    def __init__(self, idrefs: list[str] | None = None) -> None:
        self._idrefs: list[str] = list(idrefs or [])

    def append(self, idref: str) -> None:
        self._idrefs.append(idref)

    def unresolved(self, registry: ManifestRegistry) -> list[str]:
        return [idref for idref in self._idrefs if idref not in registry]

    def valid_ids(self, registry: ManifestRegistry) -> list[str]:
        """Idrefs that resolve in ``registry``, one slot per occurrence."""

        return [idref for idref in self._idrefs if idref in registry]

    def first_positions(self, registry: ManifestRegistry) -> dict[str, int]:
        """Map each resolvable idref to its first index in the valid sequence."""

        positions: dict[str, int] = {}
        for index, idref in enumerate(self.valid_ids(registry)):
            positions.setdefault(idref, index)
        return positions

    def __iter__(self) -> Iterator[str]:
        return iter(self._idrefs)

    def __len__(self) -> int:
        return len(self._idrefs)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ReadingOrder):
            return NotImplemented
        return self._idrefs == other._idrefs

    def __repr__(self) -> str:
        return f"ReadingOrder({self._idrefs!r})"
