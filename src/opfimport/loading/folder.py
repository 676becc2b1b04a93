"""Load every unique manifest file into the book and build the reference map."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
import logging

from opfimport.book import Book, Resource
from opfimport.config import DEFAULT_MAX_WORKERS, LoadFailurePolicy
from opfimport.errors import FileLoadError
from opfimport.loading.files import FileLoader, LoadedFile
from opfimport.models import Diagnostic, DiagnosticKind, ManifestEntry
from opfimport.opf.reading_order import ReadingOrder
from opfimport.opf.registry import ManifestRegistry
from opfimport.opf.semantics import SemanticAnnotator

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LoadJob:
    """One file to load, fixed before any load is dispatched."""

    entry: ManifestEntry
    aliases: tuple[ManifestEntry, ...]
    reading_order: int | None
    semantic_info: dict[str, str]

    @property
    def hrefs(self) -> list[str]:
        return [self.entry.href, *(alias.href for alias in self.aliases)]


@dataclass(slots=True)
class FolderLoadResult:
    reference_map: dict[str, str] = field(default_factory=dict)
    resources: list[Resource] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)


class FolderStructureLoader:
    """Walk the registry in manifest order and load each unique path exactly once.

    Loads may run on a thread pool; the job list (dedup decisions, reading
    order indices, merged semantic tags) is computed beforehand and results
    are added to the book on the calling thread in manifest order, so the
    outcome does not depend on which load finishes first.
    """

    def __init__(
        self,
        file_loader: FileLoader,
        *,
        policy: LoadFailurePolicy = LoadFailurePolicy.SKIP,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self._file_loader = file_loader
        self._policy = policy
        self._max_workers = max_workers

    def plan(
        self,
        registry: ManifestRegistry,
        reading_order: ReadingOrder,
        semantics: SemanticAnnotator,
    ) -> list[LoadJob]:
        positions = reading_order.first_positions(registry)
        jobs: list[LoadJob] = []
        for entry in registry.canonical_entries():
            aliases = tuple(registry.aliases_of(entry.identifier))
            identifiers = [entry.identifier, *(alias.identifier for alias in aliases)]

            indices = [positions[identifier] for identifier in identifiers if identifier in positions]
            semantic_info: dict[str, str] = {}
            for alias in aliases:
                semantic_info.update(semantics.tags_for(alias.identifier))
            semantic_info.update(semantics.tags_for(entry.identifier))

            jobs.append(
                LoadJob(
                    entry=entry,
                    aliases=aliases,
                    reading_order=min(indices) if indices else None,
                    semantic_info=semantic_info,
                )
            )
        return jobs

    def load(
        self,
        book: Book,
        registry: ManifestRegistry,
        reading_order: ReadingOrder,
        semantics: SemanticAnnotator,
    ) -> FolderLoadResult:
        result = FolderLoadResult()
        for identifier in semantics.identifiers():
            if identifier not in registry:
                message = f"Semantic tags for unknown manifest item {identifier} ignored"
                LOGGER.warning(message)
                result.diagnostics.append(
                    Diagnostic(kind=DiagnosticKind.ELEMENT_VALIDATION, message=message, identifier=identifier)
                )

        jobs = self.plan(registry, reading_order, semantics)
        outcomes = self._load_all(jobs)

        if self._policy is LoadFailurePolicy.ABORT:
            for outcome in outcomes:
                if isinstance(outcome, FileLoadError):
                    raise outcome

        for job, outcome in zip(jobs, outcomes):
            if isinstance(outcome, FileLoadError):
                LOGGER.warning("Skipping manifest item %s: %s", job.entry.identifier, outcome)
                result.diagnostics.append(
                    Diagnostic(
                        kind=DiagnosticKind.FILE_LOAD,
                        message=outcome.message,
                        identifier=job.entry.identifier,
                        path=job.entry.path,
                    )
                )
                continue

            resource = book.add_resource(
                outcome,
                identifier=job.entry.identifier,
                media_type=job.entry.media_type,
                reading_order=job.reading_order,
                semantic_info=job.semantic_info,
            )
            result.resources.append(resource)
            for href in job.hrefs:
                result.reference_map[href] = resource.book_path

        LOGGER.info(
            "Loaded %d of %d unique files (%d manifest items)",
            len(result.resources),
            len(jobs),
            len(registry),
        )
        return result

    def _load_all(self, jobs: list[LoadJob]) -> list[LoadedFile | FileLoadError]:
        if self._max_workers == 1 or len(jobs) <= 1:
            return [self._load_one(job) for job in jobs]
        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="opfimport-load") as executor:
            return list(executor.map(self._load_one, jobs))

    def _load_one(self, job: LoadJob) -> LoadedFile | FileLoadError:
        path = job.entry.path
        try:
            return self._file_loader.load(path, media_type=job.entry.media_type)
        except FileLoadError as exc:
            return exc
        except OSError as exc:
            return FileLoadError(path, f"Failed to read manifest file: {exc}")
