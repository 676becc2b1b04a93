"""In-memory book model that receives loaded resources."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path, PurePosixPath
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from opfimport.loading.files import LoadedFile
    from opfimport.loading.metadata import BookMetadata

LOGGER = logging.getLogger(__name__)

TEXT_FOLDER = "Text"
STYLES_FOLDER = "Styles"
IMAGES_FOLDER = "Images"
FONTS_FOLDER = "Fonts"
AUDIO_FOLDER = "Audio"
VIDEO_FOLDER = "Video"
MISC_FOLDER = "Misc"

_TEXT_MEDIA_TYPES = frozenset({"application/xhtml+xml", "text/html", "application/x-dtbook+xml"})
_FONT_MEDIA_TYPES = frozenset(
    {
        "application/x-font-ttf",
        "application/x-font-opentype",
        "application/vnd.ms-opentype",
        "application/font-woff",
        "application/font-sfnt",
    }
)


def folder_for_media_type(media_type: str) -> str:
    """Pick the content-tree folder a resource of ``media_type`` is stored in."""

    if media_type in _TEXT_MEDIA_TYPES:
        return TEXT_FOLDER
    if media_type == "text/css":
        return STYLES_FOLDER
    if media_type in _FONT_MEDIA_TYPES or media_type.startswith("font/"):
        return FONTS_FOLDER
    major = media_type.split("/", 1)[0]
    if major == "image":
        return IMAGES_FOLDER
    if major == "audio":
        return AUDIO_FOLDER
    if major == "video":
        return VIDEO_FOLDER
    return MISC_FOLDER


@dataclass(slots=True)
class Resource:
    """A loaded file placed in the book's content tree."""

    identifier: str
    source_path: Path
    book_path: str
    media_type: str
    data: bytes
    text: str | None = None
    reading_order: int | None = None
    semantic_info: dict[str, str] = field(default_factory=dict)

    @property
    def filename(self) -> str:
        return PurePosixPath(self.book_path).name

    def to_dict(self) -> dict[str, object]:
        return {
            "identifier": self.identifier,
            "book_path": self.book_path,
            "media_type": self.media_type,
            "size": len(self.data),
            "reading_order": self.reading_order,
            "semantic_info": dict(self.semantic_info),
        }


class Book:
    """Resource container with thread-safe insertion and unique content-tree paths."""

    def __init__(self) -> None:
        self.metadata: BookMetadata | None = None
        self._resources: list[Resource] = []
        self._taken_paths: set[str] = set()
        self._lock = threading.Lock()

    @property
    def resources(self) -> list[Resource]:
        with self._lock:
            return list(self._resources)

    def spine(self) -> list[Resource]:
        """Resources with a reading-order index, sorted by that index."""

        ordered = [resource for resource in self.resources if resource.reading_order is not None]
        return sorted(ordered, key=lambda resource: resource.reading_order)

    def resource_by_path(self, book_path: str) -> Resource | None:
        for resource in self.resources:
            if resource.book_path == book_path:
                return resource
        return None

    def add_resource(
        self,
        loaded: LoadedFile,
        *,
        identifier: str,
        media_type: str,
        reading_order: int | None = None,
        semantic_info: dict[str, str] | None = None,
    ) -> Resource:
        folder = folder_for_media_type(media_type)
        with self._lock:
            book_path = self._claim_path(folder, loaded.path.name)
            resource = Resource(
                identifier=identifier,
                source_path=loaded.path,
                book_path=book_path,
                media_type=media_type,
                data=loaded.data,
                text=loaded.text,
                reading_order=reading_order,
                semantic_info=dict(semantic_info or {}),
            )
            self._resources.append(resource)
        LOGGER.debug("Added %s as %s", loaded.path, book_path)
        return resource

    def write_to(self, output_dir: str | Path) -> list[Path]:
        """Write every resource under ``output_dir`` using its book path."""

        root = Path(output_dir)
        written: list[Path] = []
        for resource in self.resources:
            target = root / resource.book_path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(resource.data)
            written.append(target)
        return written

    def _claim_path(self, folder: str, filename: str) -> str:
        candidate = f"{folder}/{filename}"
        if candidate not in self._taken_paths:
            self._taken_paths.add(candidate)
            return candidate

        stem = PurePosixPath(filename).stem
        suffix = PurePosixPath(filename).suffix
        counter = 1
        while True:
            candidate = f"{folder}/{stem}_{counter:04d}{suffix}"
            if candidate not in self._taken_paths:
                self._taken_paths.add(candidate)
                return candidate
            counter += 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._resources)
