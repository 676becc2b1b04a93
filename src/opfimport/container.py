"""Default collaborators for unpacking a container and finding its package document."""

from __future__ import annotations

from contextlib import contextmanager
import logging
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Iterator
from zipfile import BadZipFile, ZipFile

from lxml import etree

from opfimport.errors import ContainerError

LOGGER = logging.getLogger(__name__)

CONTAINER_XML = Path("META-INF") / "container.xml"
OPF_MEDIA_TYPE = "application/oebps-package+xml"


@contextmanager
def extract_container(container_path: str | Path) -> Iterator[Path]:
    """Unzip an EPUB into a temporary folder that is removed when the block exits."""

    source = Path(container_path)
    with TemporaryDirectory(prefix="opfimport-") as tmp:
        target = Path(tmp)
        try:
            with ZipFile(source, "r") as archive:
                archive.extractall(target)
        except (BadZipFile, OSError) as exc:
            raise ContainerError(source, f"Failed to extract container: {exc}") from exc

        LOGGER.debug("Extracted %s to %s", source, target)
        yield target


def locate_package_document(root: str | Path) -> Path:
    """Return the package document named by ``META-INF/container.xml``.

    Falls back to the first ``*.opf`` file in the tree when the descriptor is
    missing or names nothing usable.
    """

    root_dir = Path(root)
    descriptor = root_dir / CONTAINER_XML
    if descriptor.is_file():
        located = _read_rootfile(root_dir, descriptor)
        if located is not None:
            return located
        LOGGER.warning("container.xml names no usable package document: %s", descriptor)

    candidates = sorted(path for path in root_dir.rglob("*") if path.is_file() and path.suffix.lower() == ".opf")
    if candidates:
        return candidates[0]
    raise ContainerError(root_dir, "No package document found in container")


def _read_rootfile(root_dir: Path, descriptor: Path) -> Path | None:
    parser = etree.XMLParser(resolve_entities=False, no_network=True, load_dtd=False, huge_tree=False)
    try:
        tree = etree.parse(str(descriptor), parser=parser)
    except (etree.XMLSyntaxError, OSError) as exc:
        LOGGER.warning("Unreadable container descriptor %s: %s", descriptor, exc)
        return None

    rootfiles = tree.xpath("//*[local-name()='rootfile']")
    preferred = [node for node in rootfiles if node.get("media-type") == OPF_MEDIA_TYPE]
    for node in preferred or rootfiles:
        full_path = node.get("full-path")
        if not full_path:
            continue
        candidate = root_dir / full_path
        if not candidate.resolve().is_relative_to(root_dir.resolve()):
            LOGGER.warning("container.xml rootfile points outside the container: %s", full_path)
            continue
        if candidate.is_file():
            return candidate
    return None
