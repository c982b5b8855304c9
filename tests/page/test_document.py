from __future__ import annotations

from pathlib import Path

from weavenotes.page.document import ENHANCED_ATTR, UNKNOWN_ID, HostPage, discover_regions


PAGE = """<!DOCTYPE html>
<html>
<head>
<title>Weave 222</title>
<link rel="canonical" href="https://www.researchcatalogue.net/view/111/222">
</head>
<body data-research="111" data-weave="222">
<div class="tool-text" data-id="t1" data-tool="text"><div class="html-text-editor-content"><p>First tool</p></div></div>
<div class="tool-simpletext" data-id="t2"><div class="html-text-editor-content">Second tool</div></div>
<div class="tool-text tool-content" data-id="inner"></div>
<div class="tool-image" data-id="t3" data-tool="image"></div>
<div class="tool-text"><p>No subregion and no id</p></div>
</body>
</html>
"""


def test_host_page_reads_ids_from_body_attributes() -> None:
    page = HostPage(PAGE)

    assert page.exposition_id == "111"
    assert page.weave_id == "222"
    assert page.title == "Weave 222"
    assert page.url == "https://www.researchcatalogue.net/view/111/222"


def test_host_page_falls_back_to_url_then_unknown() -> None:
    from_url = HostPage("<html><body><p>x</p></body></html>", url="https://example.org/view/5/6#tool-1")
    bare = HostPage("<html><body><p>x</p></body></html>")

    assert (from_url.exposition_id, from_url.weave_id) == ("5", "6")
    assert (bare.exposition_id, bare.weave_id) == (UNKNOWN_ID, UNKNOWN_ID)
    assert bare.url == ""


def test_discover_regions_in_document_order_skipping_tool_content() -> None:
    regions = discover_regions(HostPage(PAGE))

    assert [region.id for region in regions] == ["t1", "t2", UNKNOWN_ID]
    assert [region.type for region in regions] == ["text", UNKNOWN_ID, UNKNOWN_ID]
    assert regions[0].text_element is not None
    assert regions[0].text_element.get_text() == "First tool"
    assert regions[2].text_element is None
    assert not regions[0].enhanced


def test_region_enhanced_flag_follows_attribute() -> None:
    page = HostPage(PAGE)
    region = discover_regions(page)[0]

    region.element[ENHANCED_ATTR] = "true"

    assert discover_regions(page)[0].enhanced


def test_replace_body_and_reload_markup() -> None:
    page = HostPage(PAGE)
    original = page.serialize()

    placeholder = page.soup.new_tag("div", attrs={"id": "placeholder"})
    page.replace_body_contents(placeholder)

    assert discover_regions(page) == []
    assert page.find_by_id("placeholder") is not None

    page.load_markup(original)

    assert [region.id for region in discover_regions(page)] == ["t1", "t2", UNKNOWN_ID]
    assert page.url == "https://www.researchcatalogue.net/view/111/222"


def test_from_file_detects_utf8_content(tmp_path: Path) -> None:
    path = tmp_path / "page.html"
    body = "Überblick über die Ausstellung, café und Straße. " * 20
    markup = (
        "<html><head><meta charset='utf-8'><title>Ausstellung</title></head>"
        f'<body data-research="7" data-weave="8"><div class="tool-text" data-id="t1">'
        f'<div class="html-text-editor-content"><p>{body}</p></div></div></body></html>'
    )
    path.write_bytes(markup.encode("utf-8"))

    page = HostPage.from_file(path)
    regions = discover_regions(page)

    assert page.exposition_id == "7"
    assert regions[0].text_element is not None
    assert "Straße" in regions[0].text_element.get_text()
