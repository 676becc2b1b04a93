"""Single-pass streaming parser for OPF package documents.

The scan walks ``lxml.etree.iterparse`` events once, in document order. Each
element that matters is routed through a dispatch table keyed by
``(namespace, local-name)`` to a reader function that turns the element into
one ``ParsedElement`` value; the accumulator then folds that value into the
metadata list, the manifest registry, the reading order or the guide
references. Guide references and spine idrefs are validated against the
complete manifest once the document ends, so section order inside the
package does not matter.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import mimetypes
import os
from pathlib import Path
from typing import Callable
from urllib.parse import unquote, urlsplit

from lxml import etree

from opfimport.errors import StructuralParseError
from opfimport.models import Diagnostic, DiagnosticKind, MetaElement, ParsedPackage
from opfimport.opf.reading_order import ReadingOrder
from opfimport.opf.registry import ManifestRegistry
from opfimport.opf.semantics import SemanticAnnotator

LOGGER = logging.getLogger(__name__)

OPF2_NS = "http://www.idpf.org/2007/opf"
OPF1_NS = "http://openebook.org/namespaces/oeb-package/1.0/"
DC11_NS = "http://purl.org/dc/elements/1.1/"
DC10_NS = "http://purl.org/metadata/dublin_core"
XML_NS = "http://www.w3.org/XML/1998/namespace"

GUIDE_TAG_VALUE = "true"
DEFAULT_MEDIA_TYPE = "application/octet-stream"

_PACKAGE_NAMESPACES = ("", OPF2_NS, OPF1_NS)
_ATTRIBUTE_PREFIXES = {OPF2_NS: "opf", OPF1_NS: "opf", XML_NS: "xml"}
_METADATA_SECTIONS = frozenset({"metadata", "dc-metadata", "x-metadata"})
_ANY_NAME = "*"
# Root, sections and direct section children are cleared once they end.
_CLEAR_DEPTH = 3


@dataclass(frozen=True, slots=True)
class ManifestItem:
    identifier: str
    href: str
    path: Path
    media_type: str


@dataclass(frozen=True, slots=True)
class SpineRef:
    idref: str


@dataclass(frozen=True, slots=True)
class GuideRef:
    type: str
    href: str
    path: Path
    title: str | None = None


@dataclass(frozen=True, slots=True)
class RejectedElement:
    message: str
    identifier: str | None = None


ParsedElement = MetaElement | ManifestItem | SpineRef | GuideRef | RejectedElement


@dataclass(frozen=True, slots=True)
class _Cursor:
    """Read-only view of the element being dispatched."""

    element: etree._Element
    base_dir: Path


Reader = Callable[[_Cursor], ParsedElement]


def _local_name(tag: object) -> tuple[str, str]:
    qname = etree.QName(tag)
    return qname.namespace or "", qname.localname


def _attribute_map(element: etree._Element) -> dict[str, str]:
    prefixes = {uri: prefix for prefix, uri in element.nsmap.items() if prefix}
    attributes: dict[str, str] = {}
    for raw_name, value in element.attrib.items():
        qname = etree.QName(raw_name)
        if qname.namespace is None:
            attributes[qname.localname] = value
            continue
        prefix = _ATTRIBUTE_PREFIXES.get(qname.namespace) or prefixes.get(qname.namespace)
        attributes[f"{prefix}:{qname.localname}" if prefix else qname.localname] = value
    return attributes


def _element_text(element: etree._Element) -> str:
    return "".join(element.itertext()).strip()


def resolve_href(base_dir: Path, href: str) -> Path | None:
    """Resolve a package-relative href to an absolute path; None for remote or empty refs."""

    parts = urlsplit(href)
    if parts.scheme or parts.netloc:
        return None
    decoded = unquote(parts.path)
    if not decoded:
        return None
    return Path(os.path.normpath(base_dir / decoded))


def _guess_media_type(href: str) -> str:
    guessed, _encoding = mimetypes.guess_type(href, strict=False)
    return guessed or DEFAULT_MEDIA_TYPE


def read_dublin_core(cursor: _Cursor) -> ParsedElement:
    _namespace, name = _local_name(cursor.element.tag)
    # OEB 1.x spells Dublin Core names in title case (dc:Title, dc:Identifier).
    return MetaElement(
        name=name.lower(),
        value=_element_text(cursor.element),
        attributes=_attribute_map(cursor.element),
    )


def read_meta(cursor: _Cursor) -> ParsedElement:
    element = cursor.element
    name = element.get("name") or element.get("property") or ""
    if not name:
        LOGGER.warning("meta element has neither a name nor a property attribute; captured unnamed")
    value = element.get("content")
    if value is None:
        value = _element_text(element)
    return MetaElement(name=name, value=value, attributes=_attribute_map(element))


def read_manifest_item(cursor: _Cursor) -> ParsedElement:
    element = cursor.element
    identifier = element.get("id")
    href = element.get("href")
    if not identifier or not href:
        missing = "id" if not identifier else "href"
        return RejectedElement(f"manifest item is missing its {missing} attribute", identifier or None)

    path = resolve_href(cursor.base_dir, href)
    if path is None:
        return RejectedElement(f"manifest item {identifier} has a remote or empty href: {href}", identifier)

    media_type = element.get("media-type") or element.get("mediatype") or _guess_media_type(href)
    return ManifestItem(identifier=identifier, href=href, path=path, media_type=media_type.strip().lower())


def read_spine_itemref(cursor: _Cursor) -> ParsedElement:
    idref = cursor.element.get("idref")
    if not idref:
        return RejectedElement("spine itemref is missing its idref attribute")
    return SpineRef(idref=idref)


def read_guide_reference(cursor: _Cursor) -> ParsedElement:
    element = cursor.element
    ref_type = element.get("type")
    href = element.get("href")
    if not ref_type or not href:
        missing = "type" if not ref_type else "href"
        return RejectedElement(f"guide reference is missing its {missing} attribute")

    path = resolve_href(cursor.base_dir, href)
    if path is None:
        return RejectedElement(f"guide reference {ref_type} has a remote or empty href: {href}")
    return GuideRef(type=ref_type, href=href, path=path, title=element.get("title"))


def _build_dispatch_table() -> dict[tuple[str, str], tuple[frozenset[str], Reader]]:
    table: dict[tuple[str, str], tuple[frozenset[str], Reader]] = {
        (DC11_NS, _ANY_NAME): (_METADATA_SECTIONS, read_dublin_core),
        (DC10_NS, _ANY_NAME): (_METADATA_SECTIONS, read_dublin_core),
    }
    for namespace in _PACKAGE_NAMESPACES:
        table[(namespace, "meta")] = (_METADATA_SECTIONS, read_meta)
        table[(namespace, "item")] = (frozenset({"manifest"}), read_manifest_item)
        table[(namespace, "itemref")] = (frozenset({"spine"}), read_spine_itemref)
        table[(namespace, "reference")] = (frozenset({"guide"}), read_guide_reference)
    return table


DISPATCH_TABLE = _build_dispatch_table()


def _lookup_reader(namespace: str, name: str, ancestors: list[str]) -> Reader | None:
    route = DISPATCH_TABLE.get((namespace, name)) or DISPATCH_TABLE.get((namespace, _ANY_NAME))
    if route is None:
        return None
    sections, reader = route
    if not sections.intersection(ancestors):
        return None
    return reader


@dataclass(slots=True)
class _PackageAccumulator:
    """Mutable state owned by one scan; frozen into a ParsedPackage at the end."""

    opf_path: Path
    version: str | None = None
    unique_identifier_id: str | None = None
    meta_elements: list[MetaElement] = field(default_factory=list)
    registry: ManifestRegistry = field(default_factory=ManifestRegistry)
    reading_order: ReadingOrder = field(default_factory=ReadingOrder)
    semantics: SemanticAnnotator = field(default_factory=SemanticAnnotator)
    guide_refs: list[GuideRef] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)

    def warn(self, message: str, *, identifier: str | None = None, path: Path | None = None) -> None:
        LOGGER.warning("%s (opf=%s)", message, self.opf_path)
        self.diagnostics.append(
            Diagnostic(
                kind=DiagnosticKind.ELEMENT_VALIDATION,
                message=message,
                identifier=identifier,
                path=path,
            )
        )

    def apply(self, parsed: ParsedElement) -> None:
        if isinstance(parsed, MetaElement):
            self.meta_elements.append(parsed)
        elif isinstance(parsed, ManifestItem):
            if parsed.identifier in self.registry:
                self.warn(f"Duplicate manifest identifier {parsed.identifier}", identifier=parsed.identifier)
                return
            self.registry.register(parsed.identifier, parsed.href, parsed.path, parsed.media_type)
        elif isinstance(parsed, SpineRef):
            self.reading_order.append(parsed.idref)
        elif isinstance(parsed, GuideRef):
            self.guide_refs.append(parsed)
        else:
            self.warn(parsed.message, identifier=parsed.identifier)

    def finish(self) -> ParsedPackage:
        for idref in self.reading_order.unresolved(self.registry):
            self.warn(f"Spine item {idref} not found in manifest", identifier=idref)

        for ref in self.guide_refs:
            entry = self.registry.find_by_path(ref.path) or self.registry.find_by_path(
                ref.path, case_insensitive=True
            )
            if entry is None:
                self.warn(f"Guide reference {ref.type} not found in manifest: {ref.href}", path=ref.path)
                continue
            self.semantics.tag(entry.identifier, ref.type, GUIDE_TAG_VALUE)

        return ParsedPackage(
            opf_path=self.opf_path,
            version=self.version,
            unique_identifier_id=self.unique_identifier_id,
            meta_elements=tuple(self.meta_elements),
            registry=self.registry,
            reading_order=self.reading_order,
            semantics=self.semantics,
            diagnostics=tuple(self.diagnostics),
        )


class OPFStreamParser:
    """Parse a package document into metadata, manifest, spine and guide structures."""

    def parse(self, opf_path: str | Path) -> ParsedPackage:
        path = Path(opf_path).resolve()
        accumulator = _PackageAccumulator(opf_path=path)
        try:
            self._scan(path, accumulator)
        except etree.XMLSyntaxError as exc:
            raise StructuralParseError(path, f"Package document is not well-formed: {exc}") from exc
        except OSError as exc:
            raise StructuralParseError(path, f"Failed to read package document: {exc}") from exc

        package = accumulator.finish()
        LOGGER.info(
            "Parsed %s: %d meta elements, %d manifest items (%d unique paths), %d spine refs",
            path.name,
            len(package.meta_elements),
            len(package.registry),
            package.registry.unique_path_count,
            len(package.reading_order),
        )
        return package

    def _scan(self, path: Path, accumulator: _PackageAccumulator) -> None:
        events = etree.iterparse(
            str(path),
            events=("start", "end"),
            resolve_entities=False,
            no_network=True,
            load_dtd=False,
            huge_tree=False,
            remove_comments=True,
            remove_pis=True,
        )
        base_dir = path.parent
        stack: list[str] = []

        for event, element in events:
            namespace, name = _local_name(element.tag)

            if event == "start":
                if not stack:
                    self._read_package_root(path, element, namespace, name, accumulator)
                stack.append(name)
                continue

            reader = _lookup_reader(namespace, name, stack[:-1])
            if reader is not None:
                accumulator.apply(reader(_Cursor(element=element, base_dir=base_dir)))

            if len(stack) <= _CLEAR_DEPTH:
                element.clear()
                parent = element.getparent()
                while parent is not None and element.getprevious() is not None:
                    del parent[0]
            stack.pop()

    def _read_package_root(
        self,
        path: Path,
        element: etree._Element,
        namespace: str,
        name: str,
        accumulator: _PackageAccumulator,
    ) -> None:
        if name != "package" or namespace not in _PACKAGE_NAMESPACES:
            raise StructuralParseError(path, f"Root element is not an OPF package: {element.tag}")
        accumulator.version = element.get("version")
        accumulator.unique_identifier_id = element.get("unique-identifier") or None
