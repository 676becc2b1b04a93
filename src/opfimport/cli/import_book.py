"""CLI command that imports an EPUB container and reports the result as JSON."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from dotenv import load_dotenv

from opfimport.config import ImportSettings, LoadFailurePolicy, UniqueIdFallback
from opfimport.errors import PackageImportError
from opfimport.importer import ImportResult, PackageImporter

LOGGER = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import an OEBPS/EPUB package and emit its manifest as JSON")
    parser.add_argument("--path", required=True, help="EPUB file or already-extracted container directory")
    parser.add_argument("--opf", default=None, help="Package document path, relative to the container root for EPUB files (skips container.xml lookup)")
    parser.add_argument("--output-dir", default=None, help="Write the book content tree to this directory")
    parser.add_argument(
        "--load-failure-policy",
        choices=[policy.value for policy in LoadFailurePolicy],
        default=None,
        help="Skip or abort when a manifest file cannot be loaded",
    )
    parser.add_argument(
        "--unique-id-fallback",
        choices=[fallback.value for fallback in UniqueIdFallback],
        default=None,
        help="Identity choice when the declared unique identifier is unmatched",
    )
    parser.add_argument("--max-workers", type=int, default=None, help="Concurrent file loads")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    return parser.parse_args(argv)


def _build_settings(args: argparse.Namespace) -> ImportSettings:
    settings = ImportSettings.from_env()
    return ImportSettings(
        load_failure_policy=(
            LoadFailurePolicy(args.load_failure_policy)
            if args.load_failure_policy
            else settings.load_failure_policy
        ),
        unique_id_fallback=(
            UniqueIdFallback(args.unique_id_fallback) if args.unique_id_fallback else settings.unique_id_fallback
        ),
        max_workers=args.max_workers if args.max_workers is not None else settings.max_workers,
    )


def _run_import(importer: PackageImporter, source: Path, opf: str | None) -> ImportResult:
    if source.is_dir():
        return importer.import_directory(source, opf)
    return importer.import_container(source, opf)


def _result_payload(source: Path, result: ImportResult) -> dict[str, object]:
    metadata = result.book.metadata
    return {
        "path": str(source),
        "opf_version": result.opf_version,
        "title": metadata.first("title") if metadata else None,
        "unique_identifier": (
            metadata.unique_identifier.value if metadata and metadata.unique_identifier else None
        ),
        "identifier_source": metadata.identifier_source if metadata else None,
        "metadata": metadata.to_dict()["elements"] if metadata else {},
        "resources": [resource.to_dict() for resource in result.book.resources],
        "reading_order": [resource.book_path for resource in result.book.spine()],
        "reference_map": result.reference_map,
        "diagnostics": [diagnostic.to_dict() for diagnostic in result.diagnostics],
        "errors": [],
    }


def _print_errors(source: Path, error_path: Path, message: str) -> None:
    payload = {"path": str(source), "errors": [{"source_path": str(error_path), "error": message}]}
    print(json.dumps(payload, ensure_ascii=True, indent=2))


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    source = Path(args.path)
    try:
        settings = _build_settings(args)
    except ValueError as exc:
        LOGGER.error("Configuration error: %s", exc)
        return 2

    try:
        result = _run_import(PackageImporter(settings), source, args.opf)
    except PackageImportError as exc:
        _print_errors(source, exc.path, str(exc))
        return 1

    if args.output_dir:
        try:
            written = result.book.write_to(args.output_dir)
        except OSError as exc:
            LOGGER.error("Failed to write content tree to %s: %s", args.output_dir, exc)
            _print_errors(source, Path(args.output_dir), f"Failed to write content tree: {exc}")
            return 1
        LOGGER.info("Wrote %d files to %s", len(written), args.output_dir)

    print(json.dumps(_result_payload(source, result), ensure_ascii=True, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
