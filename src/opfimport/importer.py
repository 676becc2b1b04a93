"""One-shot import session: container -> package document -> book."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path

from opfimport.book import Book
from opfimport.config import ImportSettings
from opfimport.container import extract_container, locate_package_document
from opfimport.errors import ContainerError
from opfimport.loading.files import DiskFileLoader, FileLoader
from opfimport.loading.folder import FolderStructureLoader
from opfimport.loading.metadata import MetadataLoader
from opfimport.models import Diagnostic
from opfimport.opf.parser import OPFStreamParser

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ImportResult:
    """Imported book plus the old-href to new-path map for link rewriting."""

    book: Book
    reference_map: dict[str, str] = field(default_factory=dict)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    opf_version: str | None = None


class PackageImporter:
    """Import exactly one OEBPS package; create a fresh instance per import."""

    def __init__(
        self,
        settings: ImportSettings | None = None,
        *,
        file_loader: FileLoader | None = None,
    ) -> None:
        self._settings = settings or ImportSettings()
        self._file_loader = file_loader or DiskFileLoader()
        self._used = False

    @property
    def settings(self) -> ImportSettings:
        return self._settings

    def import_container(self, container_path: str | Path, opf_path: str | Path | None = None) -> ImportResult:
        """Extract an EPUB file and import it; the extracted tree is removed afterwards.

        ``opf_path`` names the package document relative to the container root
        and skips the container.xml lookup.
        """

        self._claim()
        with extract_container(container_path) as root:
            return self._import(root, self._container_member(container_path, root, opf_path))

    def import_directory(self, root: str | Path, opf_path: str | Path | None = None) -> ImportResult:
        """Import an already-extracted container directory."""

        self._claim()
        return self._import(Path(root), Path(opf_path) if opf_path is not None else None)

    @staticmethod
    def _container_member(container_path: str | Path, root: Path, opf_path: str | Path | None) -> Path | None:
        if opf_path is None:
            return None
        member = (root / opf_path).resolve()
        if not member.is_relative_to(root.resolve()) or not member.is_file():
            raise ContainerError(Path(container_path), f"Package document not found in container: {opf_path}")
        return member

    def _claim(self) -> None:
        if self._used:
            raise RuntimeError("PackageImporter instances serve a single import")
        self._used = True

    def _import(self, root: Path, opf_path: Path | None) -> ImportResult:
        opf = opf_path or locate_package_document(root)
        LOGGER.info("Importing package document %s", opf)

        package = OPFStreamParser().parse(opf)

        book = Book()
        book.metadata = MetadataLoader(self._settings.unique_id_fallback).load(
            package.meta_elements,
            package.unique_identifier_id,
        )

        loader = FolderStructureLoader(
            self._file_loader,
            policy=self._settings.load_failure_policy,
            max_workers=self._settings.max_workers,
        )
        loaded = loader.load(book, package.registry, package.reading_order, package.semantics)

        diagnostics = [*package.diagnostics, *book.metadata.diagnostics, *loaded.diagnostics]
        if diagnostics:
            LOGGER.info("Import of %s finished with %d diagnostics", opf.name, len(diagnostics))
        return ImportResult(
            book=book,
            reference_map=loaded.reference_map,
            diagnostics=diagnostics,
            opf_version=package.version,
        )
