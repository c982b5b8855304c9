from __future__ import annotations

import pytest

from weavenotes.annotations.models import Tool
from weavenotes.page.document import ENHANCED_ATTR, SUGGESTION_COUNT_ATTR, HostPage, discover_regions
from weavenotes.page.extractor import CachedSource, LiveSource, extract_tool, resolve_tool
from weavenotes.page.markup import strip_highlight_markers


PAGE = """<html>
<head><title>Weave</title></head>
<body data-research="111" data-weave="222">
<div class="tool-text weave-item" data-id="t1" data-tool="text" data-title="Intro"
     style="left: 10px; top: 20.5px; width: 300px; height: 40px; position: absolute;">
<div class="html-text-editor-content">
  <p>The <span class="rc-suggestion-highlight" id="rc-suggestion-t1-aaaaaaaaaaaa" data-suggestion="Faster" data-selected-text="quick">quick</span>
  brown   fox.</p>
</div>
</div>
<div class="tool-simpletext" data-id="t2" data-tool="simpletext"><div class="html-text-editor-content">Plain text</div></div>
<div class="tool-text" data-id="t3" data-tool="text"><p>Outside any editor content</p></div>
</body>
</html>
"""


def _fixed_clock() -> str:
    return "2024-05-01T10:00:00.000Z"


def test_extract_tool_captures_markup_and_metadata() -> None:
    page = HostPage(PAGE, url="https://www.researchcatalogue.net/view/111/222")
    region = discover_regions(page)[0]

    tool = extract_tool(region, page, clock=_fixed_clock)

    assert tool.id == "t1"
    assert tool.type == "text"
    assert tool.title == "Intro"
    assert tool.class_name == "tool-text weave-item"
    assert (tool.exposition_id, tool.weave_id) == ("111", "222")
    assert tool.url == "https://www.researchcatalogue.net/view/111/222"
    assert tool.timestamp == "2024-05-01T10:00:00.000Z"
    assert tool.content.plain_text == "The quick brown fox."
    assert "rc-suggestion-t1-aaaaaaaaaaaa" in tool.content.html_span
    assert tool.content.html == strip_highlight_markers(tool.content.html_span)
    assert "rc-suggestion-highlight" not in tool.content.html
    assert tool.suggestions == []


def test_extract_tool_without_markers_keeps_html_equal_to_span() -> None:
    page = HostPage(PAGE)
    region = discover_regions(page)[1]

    tool = extract_tool(region, page)

    assert tool.content.html_span == "Plain text"
    assert tool.content.html == tool.content.html_span
    assert not tool.content.has_stored_spans


def test_extract_tool_without_text_subregion_has_empty_content() -> None:
    page = HostPage(PAGE)
    region = discover_regions(page)[2]

    tool = extract_tool(region, page)

    assert tool.content.plain_text == ""
    assert tool.content.html == ""
    assert tool.content.html_span == ""


def test_extract_tool_parses_position_from_inline_style() -> None:
    page = HostPage(PAGE)
    first, second = discover_regions(page)[:2]

    position = extract_tool(first, page).position
    missing = extract_tool(second, page).position

    assert (position.x, position.y, position.width, position.height) == (10.0, 20.5, 300.0, 40.0)
    assert (missing.x, missing.y, missing.width, missing.height) == (0.0, 0.0, 0.0, 0.0)


def test_extract_tool_skips_bookkeeping_attributes_and_is_read_only() -> None:
    page = HostPage(PAGE)
    region = discover_regions(page)[0]
    region.element[ENHANCED_ATTR] = "true"
    region.element[SUGGESTION_COUNT_ATTR] = "1"
    before = page.serialize()

    tool = extract_tool(region, page)

    assert tool.data_attributes == {"data-id": "t1", "data-tool": "text", "data-title": "Intro"}
    assert page.serialize() == before


def test_resolve_tool_normalises_live_and_cached_sources() -> None:
    page = HostPage(PAGE)
    region = discover_regions(page)[1]
    cached = extract_tool(region, page)

    live_tool = resolve_tool(LiveSource(region), page)

    assert isinstance(live_tool, Tool)
    assert live_tool.id == "t2"
    assert resolve_tool(CachedSource(cached), page) is cached


def test_resolve_tool_rejects_unknown_sources() -> None:
    with pytest.raises(TypeError):
        resolve_tool("t1", HostPage(PAGE))  # type: ignore[arg-type]
