from __future__ import annotations

import asyncio
import copy
import json
from pathlib import Path

import pytest

from weavenotes.annotations.models import Tool, ToolContent
from weavenotes.annotations.repository import AnnotationRepository
from weavenotes.exchange.importer import (
    InvalidFormat,
    SuggestionImporter,
    load_export_document,
    parse_export_document,
)
from weavenotes.storage.store import MemoryJsonStore


def _suggestion(selected: str, text: str, **extra: object) -> dict:
    payload = {
        "id": f"suggestion_{selected}_{text}",
        "toolId": "t1",
        "expositionId": "999",
        "weaveId": "222",
        "spanId": f"rc-suggestion-t1-{selected}",
        "selectedText": selected,
        "suggestionText": text,
        "timestamp": "2024-04-01T08:00:00.000Z",
        "url": "https://www.researchcatalogue.net/view/999/222",
        "toolType": "text",
    }
    payload.update(extra)
    return payload


def _document() -> dict:
    return {
        "exposition": {
            "id": "999",
            "exportTimestamp": "2024-04-02T00:00:00.000Z",
            "totalWeaves": 2,
            "totalTools": 2,
            "totalSuggestions": 3,
        },
        "weaves": {
            "222": {
                "weaveId": "222",
                "url": "https://www.researchcatalogue.net/view/999/222",
                "lastVisited": "2024-04-01T07:00:00.000Z",
                "pageTitle": "Weave 222",
                "tools": [
                    {
                        "id": "t1",
                        "type": "text",
                        "content": {"plainText": "foo", "html": "<p>foo</p>", "htmlSpan": "<p>foo</p>"},
                        "suggestions": [_suggestion("foo", "bar"), _suggestion("foo", "baz", reviewer="kim")],
                    }
                ],
            },
            "333": {
                "url": "https://www.researchcatalogue.net/view/999/333",
                "visitedAt": "2024-04-01T07:30:00.000Z",
                "pageTitle": "Weave 333",
                "tools": [{"toolId": "t9", "type": "simpletext", "suggestions": [_suggestion("x", "y", toolId="t9")]}],
            },
        },
    }


def _local_tool(tool_id: str) -> Tool:
    return Tool(
        id=tool_id,
        type="text",
        title="",
        class_name="tool-text",
        exposition_id="111",
        weave_id="222",
        url="https://www.researchcatalogue.net/view/111/222",
        timestamp="2024-05-01T09:00:00.000Z",
        content=ToolContent(plain_text="foo", html="<p>foo</p>", html_span="<p>foo</p>"),
    )


def _fixed_clock() -> str:
    return "2024-05-01T12:00:00.000Z"


def test_parse_rejects_missing_exposition_id_and_weaves() -> None:
    document = _document()
    del document["exposition"]["id"]
    with pytest.raises(InvalidFormat, match="exposition id"):
        parse_export_document(document)

    document = _document()
    del document["weaves"]
    with pytest.raises(InvalidFormat, match="weaves"):
        parse_export_document(document)

    with pytest.raises(InvalidFormat, match="not an object"):
        parse_export_document(["not", "a", "document"])


def test_parse_rejects_nested_fields_of_the_wrong_shape() -> None:
    for key, value in (("dataAttributes", ["x"]), ("dataAttributes", "x"), ("position", [1, 2]), ("content", 3)):
        document = {"exposition": {"id": "1"}, "weaves": {"2": {"tools": [{"id": "t1", key: value}]}}}
        with pytest.raises(InvalidFormat, match=key):
            parse_export_document(document)


def test_tool_from_dict_ignores_non_object_data_attributes() -> None:
    tool = Tool.from_dict({"id": "t1", "dataAttributes": ["x"], "content": ""})

    assert tool.data_attributes == {}
    assert tool.content == ToolContent()


def test_parse_accepts_top_level_exposition_id() -> None:
    document = _document()
    del document["exposition"]
    document["expositionId"] = "999"

    parsed = parse_export_document(document)

    assert parsed.exposition_id == "999"
    assert sorted(parsed.weaves) == ["222", "333"]
    assert parsed.weaves["333"].tools[0].id == "t9"
    assert parsed.weaves["333"].last_visited == "2024-04-01T07:30:00.000Z"


def test_malformed_suggestion_aborts_before_any_write() -> None:
    async def _scenario() -> None:
        store = MemoryJsonStore()
        document = _document()
        del document["weaves"]["333"]["tools"][0]["suggestions"][0]["selectedText"]

        with pytest.raises(InvalidFormat, match="selectedText"):
            parse_export_document(document)

        assert await store.keys() == []

    asyncio.run(_scenario())


def test_load_export_document_maps_unreadable_json(tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    valid = tmp_path / "valid.json"
    valid.write_text(json.dumps(_document()), encoding="utf-8")

    with pytest.raises(InvalidFormat, match="broken.json"):
        load_export_document(broken)

    assert load_export_document(valid).exposition_id == "999"


def test_merge_skips_duplicate_pairs() -> None:
    async def _scenario() -> None:
        repository = AnnotationRepository(MemoryJsonStore())
        await repository.upsert_weave_tools("111", "222", [_local_tool("t1")])
        await repository.add_suggestion("t1", "111", "222", "foo", "bar")

        report = await SuggestionImporter(repository, clock=_fixed_clock).merge(
            parse_export_document(_document()),
            "111",
        )

        suggestions = await repository.list_suggestions("111", "222", "t1")
        assert [(item.selected_text, item.suggestion_text) for item in suggestions] == [("foo", "bar"), ("foo", "baz")]
        assert report.duplicates_skipped == 1
        assert report.suggestions_added == 2
        assert report.weaves_created == 1
        assert report.tools_created == 1

    asyncio.run(_scenario())


def test_merge_is_idempotent_per_document() -> None:
    async def _scenario() -> None:
        repository = AnnotationRepository(MemoryJsonStore())
        importer = SuggestionImporter(repository)
        document = parse_export_document(_document())

        await importer.merge(document, "111")
        first = await repository.get_exposition("111")
        second_report = await importer.merge(parse_export_document(_document()), "111")
        second = await repository.get_exposition("111")

        assert first is not None and second is not None
        assert second_report.suggestions_added == 0
        assert second_report.duplicates_skipped == 3
        assert second.suggestion_count == first.suggestion_count == 3
        assert second.tool_count == first.tool_count == 2

    asyncio.run(_scenario())


def test_merge_rekeys_and_preserves_imported_fields() -> None:
    async def _scenario() -> None:
        repository = AnnotationRepository(MemoryJsonStore())

        await SuggestionImporter(repository, clock=_fixed_clock).merge(parse_export_document(_document()), "111")

        exposition = await repository.get_exposition("111")
        assert exposition is not None
        weave = exposition.weaves["222"]
        assert weave.page_title == "Weave 222"
        tool = weave.tools[0]
        assert tool.exposition_id == "111"
        baz = tool.suggestions[1]
        assert baz.id.startswith("suggestion_") and baz.id != "suggestion_foo_baz"
        assert baz.exposition_id == "111"
        assert baz.imported_at == "2024-05-01T12:00:00.000Z"
        assert baz.span_id == "rc-suggestion-t1-foo"
        assert baz.timestamp == "2024-04-01T08:00:00.000Z"
        assert baz.extras == {"reviewer": "kim"}

    asyncio.run(_scenario())


def test_merge_rebuilds_suggestion_store_from_tool_lists() -> None:
    async def _scenario() -> None:
        repository = AnnotationRepository(MemoryJsonStore())
        await repository.upsert_weave_tools("111", "222", [_local_tool("t1"), _local_tool("t2")])
        await repository.add_suggestion("t2", "111", "222", "keep", "me")

        await SuggestionImporter(repository).merge(parse_export_document(_document()), "111")

        exposition = await repository.get_exposition("111")
        assert exposition is not None
        for weave_id, weave in exposition.weaves.items():
            stored = await repository.get_suggestion_map("111", weave_id)
            for tool in weave.tools:
                assert [item.id for item in stored.get(tool.id, [])] == [item.id for item in tool.suggestions]
                assert tool.suggestion_count == len(tool.suggestions)
        assert exposition.suggestion_count == 4
        assert len(await repository.list_suggestions("111", "222", "t2")) == 1

    asyncio.run(_scenario())


def test_merge_accepts_legacy_suggestion_text_key() -> None:
    async def _scenario() -> None:
        document = _document()
        legacy = copy.deepcopy(document["weaves"]["222"]["tools"][0]["suggestions"][0])
        legacy["selectedText"] = "legacy"
        legacy["suggestion"] = legacy.pop("suggestionText")
        document["weaves"]["222"]["tools"][0]["suggestions"].append(legacy)
        repository = AnnotationRepository(MemoryJsonStore())

        await SuggestionImporter(repository).merge(parse_export_document(document), "111")

        texts = [item.suggestion_text for item in await repository.list_suggestions("111", "222", "t1")]
        assert texts == ["bar", "baz", "bar"]

    asyncio.run(_scenario())
