"""File loader collaborator: reads one manifest file from the extracted tree."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from charset_normalizer import from_bytes

from opfimport.errors import FileLoadError

_TEXT_SUFFIXES = frozenset(
    {".html", ".htm", ".xhtml", ".xml", ".css", ".ncx", ".opf", ".svg", ".txt", ".smil"}
)
_TEXT_MEDIA_TYPES = frozenset(
    {
        "application/xhtml+xml",
        "application/xml",
        "application/x-dtbncx+xml",
        "application/oebps-package+xml",
        "application/smil+xml",
        "application/javascript",
        "image/svg+xml",
    }
)


@dataclass(frozen=True, slots=True)
class LoadedFile:
    """Raw bytes of one file plus decoded text for textual content."""

    path: Path
    data: bytes
    text: str | None = None
    encoding: str | None = None


@runtime_checkable
class FileLoader(Protocol):
    """Protocol for anything that can load a single manifest file."""

    def load(self, path: Path, media_type: str | None = None) -> LoadedFile:
        """Read ``path``; raise FileLoadError when it cannot be loaded."""


def is_text_file(path: Path, media_type: str | None = None) -> bool:
    """Decide by declared media type when there is one, otherwise by file suffix."""

    if media_type:
        media_type = media_type.split(";", 1)[0].strip().lower()
        return media_type.startswith("text/") or media_type.endswith("+xml") or media_type in _TEXT_MEDIA_TYPES
    return path.suffix.lower() in _TEXT_SUFFIXES


class DiskFileLoader:
    """Load files from the local filesystem, decoding textual content."""

    def load(self, path: Path, media_type: str | None = None) -> LoadedFile:
        try:
            raw = path.read_bytes()
        except OSError as exc:
            raise FileLoadError(path, f"Failed to read manifest file: {exc}") from exc

        if not is_text_file(path, media_type):
            return LoadedFile(path=path, data=raw)

        encoding = self._detect_encoding(path, raw)
        try:
            text = raw.decode(encoding)
        except (LookupError, UnicodeDecodeError) as exc:
            raise FileLoadError(path, f"Failed to decode text as {encoding}: {exc}") from exc
        if text.startswith("\ufeff"):
            text = text[1:]
        return LoadedFile(path=path, data=raw, text=text, encoding=encoding)

    def _detect_encoding(self, path: Path, raw: bytes) -> str:
        try:
            raw.decode("utf-8")
            return "utf-8"
        except UnicodeDecodeError:
            pass

        best = from_bytes(raw).best()
        if best and best.encoding:
            return best.encoding
        raise FileLoadError(path, "Could not detect text encoding")
