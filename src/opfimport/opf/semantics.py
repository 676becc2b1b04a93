"""Per-identifier semantic tags collected from guide references."""

from __future__ import annotations


class SemanticAnnotator:
    def __init__(self) -> None:
        self._tags: dict[str, dict[str, str]] = {}

    def tag(self, identifier: str, key: str, value: str) -> None:
        self._tags.setdefault(identifier, {})[key] = value

    def tags_for(self, identifier: str) -> dict[str, str]:
        return dict(self._tags.get(identifier, {}))

    def identifiers(self) -> list[str]:
        return list(self._tags)

    def as_dict(self) -> dict[str, dict[str, str]]:
        return {identifier: dict(tags) for identifier, tags in self._tags.items()}

    def __len__(self) -> int:
        return len(self._tags)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemanticAnnotator):
            return NotImplemented
        return self._tags == other._tags

    def __repr__(self) -> str:
        return f"SemanticAnnotator({self._tags!r})"
