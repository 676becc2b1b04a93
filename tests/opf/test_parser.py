from __future__ import annotations

from pathlib import Path

import pytest

from opfimport.errors import StructuralParseError
from opfimport.models import DiagnosticKind, MetaElement
from opfimport.opf.parser import OPFStreamParser

_OPF_TEMPLATE = """<?xml version="1.0" encoding="utf-8"?>
<package xmlns="http://www.idpf.org/2007/opf" version="2.0" unique-identifier="BookId">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/" xmlns:opf="http://www.idpf.org/2007/opf">
{metadata}
  </metadata>
  <manifest>
{manifest}
  </manifest>
  <spine toc="ncx">
{spine}
  </spine>
  <guide>
{guide}
  </guide>
</package>
"""


def _write_package(
    root: Path,
    *,
    metadata: str = "",
    manifest: str = "",
    spine: str = "",
    guide: str = "",
) -> Path:
    opf_dir = root / "OEBPS"
    opf_dir.mkdir(parents=True, exist_ok=True)
    opf_path = opf_dir / "content.opf"
    opf_path.write_text(
        _OPF_TEMPLATE.format(metadata=metadata, manifest=manifest, spine=spine, guide=guide),
        encoding="utf-8",
    )
    return opf_path


def test_parser_captures_dublin_core_and_meta_elements_in_document_order(tmp_path: Path) -> None:
    opf_path = _write_package(
        tmp_path,
        metadata="""
    <dc:title>Moby Dick</dc:title>
    <dc:creator opf:role="aut" opf:file-as="Melville, Herman">Herman Melville</dc:creator>
    <dc:identifier id="BookId" opf:scheme="ISBN">978-0-000</dc:identifier>
    <meta name="cover" content="cover-img"/>
    <meta property="dcterms:modified">2011-01-01T12:00:00Z</meta>
    <dc:language xml:lang="en">en</dc:language>
""",
    )

    package = OPFStreamParser().parse(opf_path)

    assert [element.name for element in package.meta_elements] == [
        "title",
        "creator",
        "identifier",
        "cover",
        "dcterms:modified",
        "language",
    ]
    title, creator, identifier, cover, modified, language = package.meta_elements
    assert title == MetaElement("title", "Moby Dick", {})
    assert creator.value == "Herman Melville"
    assert dict(creator.attributes) == {"opf:role": "aut", "opf:file-as": "Melville, Herman"}
    assert dict(identifier.attributes) == {"id": "BookId", "opf:scheme": "ISBN"}
    assert cover.value == "cover-img"
    assert modified.value == "2011-01-01T12:00:00Z"
    assert language.attributes["xml:lang"] == "en"
    assert package.unique_identifier_id == "BookId"
    assert package.version == "2.0"
    assert package.diagnostics == ()


def test_parser_keeps_nested_markup_text_of_dublin_core_elements(tmp_path: Path) -> None:
    opf_path = _write_package(tmp_path, metadata="<dc:description>A <b>bold</b> tale</dc:description>")

    package = OPFStreamParser().parse(opf_path)

    assert package.meta_elements[0].value == "A bold tale"


def test_parser_resolves_manifest_hrefs_against_package_directory(tmp_path: Path) -> None:
    opf_path = _write_package(
        tmp_path,
        manifest="""
    <item id="ch1" href="Text/ch%201.xhtml" media-type="application/xhtml+xml"/>
    <item id="css" href="../Styles/main.css"/>
""",
    )

    package = OPFStreamParser().parse(opf_path)
    base_dir = package.opf_path.parent

    chapter = package.registry.resolve("ch1")
    assert chapter.path == base_dir / "Text" / "ch 1.xhtml"
    assert chapter.href == "Text/ch%201.xhtml"
    assert chapter.media_type == "application/xhtml+xml"

    stylesheet = package.registry.resolve("css")
    assert stylesheet.path == base_dir.parent / "Styles" / "main.css"
    assert stylesheet.media_type == "text/css"


def test_parser_registers_duplicate_paths_as_aliases(tmp_path: Path) -> None:
    opf_path = _write_package(
        tmp_path,
        manifest="""
    <item id="x1" href="a.html" media-type="application/xhtml+xml"/>
    <item id="x2" href="./a.html" media-type="application/xhtml+xml"/>
""",
        spine='<itemref idref="x1"/>',
    )

    package = OPFStreamParser().parse(opf_path)

    assert len(package.registry) == 2
    assert package.registry.unique_path_count == 1
    assert package.registry.resolve("x2").canonical_id == "x1"
    assert [entry.identifier for entry in package.registry.canonical_entries()] == ["x1"]
    assert package.registry.path_already_loaded(package.opf_path.parent / "a.html")
    assert package.diagnostics == ()


def test_parser_skips_manifest_items_missing_required_attributes(tmp_path: Path) -> None:
    opf_path = _write_package(
        tmp_path,
        manifest="""
    <item href="orphan.html" media-type="application/xhtml+xml"/>
    <item id="nohref" media-type="application/xhtml+xml"/>
    <item id="remote" href="http://example.com/a.html" media-type="application/xhtml+xml"/>
    <item id="ok" href="ok.html" media-type="application/xhtml+xml"/>
""",
    )

    package = OPFStreamParser().parse(opf_path)

    assert [entry.identifier for entry in package.registry] == ["ok"]
    assert len(package.diagnostics) == 3
    assert all(diagnostic.kind is DiagnosticKind.ELEMENT_VALIDATION for diagnostic in package.diagnostics)
    assert [diagnostic.identifier for diagnostic in package.diagnostics] == [None, "nohref", "remote"]


def test_parser_keeps_first_item_for_duplicate_identifier(tmp_path: Path) -> None:
    opf_path = _write_package(
        tmp_path,
        manifest="""
    <item id="dup" href="first.html" media-type="application/xhtml+xml"/>
    <item id="dup" href="second.html" media-type="application/xhtml+xml"/>
""",
    )

    package = OPFStreamParser().parse(opf_path)

    assert package.registry.resolve("dup").href == "first.html"
    assert len(package.diagnostics) == 1
    assert package.diagnostics[0].identifier == "dup"


def test_parser_reports_unresolved_spine_idref_without_aborting(tmp_path: Path) -> None:
    opf_path = _write_package(
        tmp_path,
        manifest='<item id="ch1" href="ch1.html" media-type="application/xhtml+xml"/>',
        spine='<itemref idref="ch1"/><itemref idref="missing"/><itemref/>',
    )

    package = OPFStreamParser().parse(opf_path)

    assert list(package.reading_order) == ["ch1", "missing"]
    assert package.reading_order.valid_ids(package.registry) == ["ch1"]
    identifiers = [diagnostic.identifier for diagnostic in package.diagnostics]
    assert "missing" in identifiers
    assert len(package.diagnostics) == 2


def test_parser_tags_guide_references_by_path(tmp_path: Path) -> None:
    opf_path = _write_package(
        tmp_path,
        manifest="""
    <item id="cid" href="Text/cover.html" media-type="application/xhtml+xml"/>
    <item id="toc" href="Text/toc.html" media-type="application/xhtml+xml"/>
""",
        guide="""
    <reference type="cover" title="Cover" href="Text/cover.html"/>
    <reference type="toc" href="Text/../Text/toc.html#start"/>
""",
    )

    package = OPFStreamParser().parse(opf_path)

    assert package.semantics.tags_for("cid") == {"cover": "true"}
    assert package.semantics.tags_for("toc") == {"toc": "true"}
    assert package.diagnostics == ()


def test_parser_matches_guide_reference_case_insensitively(tmp_path: Path) -> None:
    opf_path = _write_package(
        tmp_path,
        manifest='<item id="cid" href="Text/Cover.html" media-type="application/xhtml+xml"/>',
        guide='<reference type="cover" href="text/cover.html"/>',
    )

    package = OPFStreamParser().parse(opf_path)

    assert package.semantics.tags_for("cid") == {"cover": "true"}


def test_parser_reports_guide_reference_without_manifest_match(tmp_path: Path) -> None:
    opf_path = _write_package(
        tmp_path,
        manifest='<item id="ch1" href="ch1.html" media-type="application/xhtml+xml"/>',
        guide='<reference type="cover" href="cover.html"/><reference href="ch1.html"/>',
    )

    package = OPFStreamParser().parse(opf_path)

    assert len(package.semantics) == 0
    assert len(package.diagnostics) == 2
    assert all(diagnostic.kind is DiagnosticKind.ELEMENT_VALIDATION for diagnostic in package.diagnostics)


def test_parser_keeps_meta_without_name_or_property(tmp_path: Path) -> None:
    opf_path = _write_package(tmp_path, metadata='<meta content="floating"/><dc:title>T</dc:title>')

    package = OPFStreamParser().parse(opf_path)

    assert [(element.name, element.value) for element in package.meta_elements] == [("", "floating"), ("title", "T")]
    assert package.diagnostics == ()


def test_parser_accepts_package_without_namespace(tmp_path: Path) -> None:
    opf_path = tmp_path / "legacy.opf"
    opf_path.write_text(
        """<?xml version="1.0"?>
<package unique-identifier="uid">
  <metadata>
    <dc-metadata xmlns:dc="http://purl.org/metadata/dublin_core">
      <dc:Title>Legacy</dc:Title>
      <dc:Identifier id="uid">legacy-1</dc:Identifier>
    </dc-metadata>
  </metadata>
  <manifest><item id="a" href="a.html" media-type="text/html"/></manifest>
  <spine><itemref idref="a"/></spine>
</package>
""",
        encoding="utf-8",
    )

    package = OPFStreamParser().parse(opf_path)

    assert [element.name for element in package.meta_elements] == ["title", "identifier"]
    assert list(package.reading_order) == ["a"]
    assert package.unique_identifier_id == "uid"


def test_parser_ignores_package_elements_outside_their_section(tmp_path: Path) -> None:
    opf_path = _write_package(
        tmp_path,
        manifest='<item id="a" href="a.html" media-type="text/html"/>',
        guide='<item id="stray" href="stray.html"/><itemref idref="a"/>',
    )

    package = OPFStreamParser().parse(opf_path)

    assert "stray" not in package.registry
    assert list(package.reading_order) == []


def test_parser_is_idempotent(tmp_path: Path) -> None:
    opf_path = _write_package(
        tmp_path,
        metadata='<dc:title>Same</dc:title><dc:identifier id="BookId">id-1</dc:identifier>',
        manifest="""
    <item id="x1" href="a.html" media-type="application/xhtml+xml"/>
    <item id="x2" href="a.html" media-type="application/xhtml+xml"/>
    <item id="img" href="cover.jpg" media-type="image/jpeg"/>
""",
        spine='<itemref idref="x1"/><itemref idref="x2"/>',
        guide='<reference type="cover" href="cover.jpg"/>',
    )

    first = OPFStreamParser().parse(opf_path)
    second = OPFStreamParser().parse(opf_path)

    assert first.registry == second.registry
    assert first.reading_order == second.reading_order
    assert first.semantics == second.semantics
    assert first.meta_elements == second.meta_elements
    assert first == second


def test_parser_raises_structural_error_for_malformed_document(tmp_path: Path) -> None:
    opf_path = tmp_path / "broken.opf"
    opf_path.write_text(
        '<package xmlns="http://www.idpf.org/2007/opf"><manifest><item id="a" href="a.html">',
        encoding="utf-8",
    )

    with pytest.raises(StructuralParseError, match="not well-formed"):
        OPFStreamParser().parse(opf_path)


def test_parser_raises_structural_error_for_missing_document(tmp_path: Path) -> None:
    with pytest.raises(StructuralParseError):
        OPFStreamParser().parse(tmp_path / "absent.opf")


def test_parser_rejects_non_package_root(tmp_path: Path) -> None:
    opf_path = tmp_path / "not-opf.xml"
    opf_path.write_text("<html><body/></html>", encoding="utf-8")

    with pytest.raises(StructuralParseError, match="not an OPF package"):
        OPFStreamParser().parse(opf_path)
