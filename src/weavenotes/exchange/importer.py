"""Validate export documents and merge them into the local store."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
import json
import logging
from pathlib import Path
from typing import Any

from weavenotes.annotations.models import (
    Clock,
    Exposition,
    Suggestion,
    Tool,
    Weave,
    new_suggestion_id,
    utc_timestamp,
)
from weavenotes.annotations.repository import AnnotationRepository, SuggestionMap

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class InvalidFormat(Exception):
    """Raised before any write when an export document cannot be merged."""

    reason: str
    source: str | None = None

    def __str__(self) -> str:
        if self.source:
            return f"Invalid export document ({self.reason}) (source={self.source})"
        return f"Invalid export document ({self.reason})"


@dataclass(slots=True)
class ExportDocument:
    exposition_id: str
    weaves: dict[str, Weave]
    export_timestamp: str = ""


@dataclass(slots=True)
class MergeReport:
    target_exposition_id: str
    source_exposition_id: str
    weaves_created: int = 0
    tools_created: int = 0
    suggestions_added: int = 0
    duplicates_skipped: int = 0
    touched_weaves: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _require(condition: bool, reason: str) -> None:
    if not condition:
        raise InvalidFormat(reason=reason)


def _validate_suggestion(raw: Any, where: str) -> None:
    _require(isinstance(raw, dict), f"{where} is not an object")
    _require(isinstance(raw.get("selectedText"), str), f"{where} has no selectedText")
    text = raw.get("suggestionText", raw.get("suggestion"))
    _require(isinstance(text, str), f"{where} has no suggestionText")


def _validate_tool(raw: Any, where: str) -> None:
    _require(isinstance(raw, dict), f"{where} is not an object")
    tool_id = raw.get("id") or raw.get("toolId")
    _require(isinstance(tool_id, (str, int)) and str(tool_id) != "", f"{where} has no id")
    for key in ("dataAttributes", "position"):
        _require(raw.get(key) is None or isinstance(raw[key], dict), f"{where} {key} is not an object")
    # Tools saved before a text subregion was found carry an empty content string.
    content = raw.get("content")
    _require(content is None or isinstance(content, (dict, str)), f"{where} content is not an object")
    suggestions = raw.get("suggestions")
    if suggestions is None:
        return
    _require(isinstance(suggestions, list), f"{where} suggestions is not a list")
    for index, item in enumerate(suggestions):
        _validate_suggestion(item, f"{where} suggestion {index}")


def _validate_weave(raw: Any, where: str) -> None:
    _require(isinstance(raw, dict), f"{where} is not an object")
    tools = raw.get("tools")
    if tools is None:
        return
    _require(isinstance(tools, list), f"{where} tools is not a list")
    for index, item in enumerate(tools):
        _validate_tool(item, f"{where} tool {index}")


def parse_export_document(payload: Any) -> ExportDocument:
    """Validate ``payload`` completely and return the parsed document."""

    _require(isinstance(payload, dict), "document is not an object")
    header = payload.get("exposition")
    exposition_id = header.get("id") if isinstance(header, dict) else None
    if exposition_id in (None, ""):
        exposition_id = payload.get("expositionId")
    _require(exposition_id not in (None, ""), "missing exposition id")

    weaves = payload.get("weaves")
    _require(isinstance(weaves, dict), "missing weaves map")
    for weave_id, weave in weaves.items():
        _validate_weave(weave, f"weave {weave_id}")

    return ExportDocument(
        exposition_id=str(exposition_id),
        weaves={str(weave_id): Weave.from_dict(weave, weave_id=str(weave_id)) for weave_id, weave in weaves.items()},
        export_timestamp=str(header.get("exportTimestamp") or "") if isinstance(header, dict) else "",
    )


def load_export_document(path: str | Path) -> ExportDocument:
    source = Path(path)
    try:
        payload = json.loads(source.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise InvalidFormat(reason=f"unreadable JSON: {exc}", source=str(source)) from exc

    try:
        return parse_export_document(payload)
    except InvalidFormat as exc:
        exc.source = str(source)
        raise


class SuggestionImporter:
    """Merge a foreign export document into the target exposition.

    Weaves and tools missing locally are created from the document. For
    tools present on both sides only suggestions are merged: a suggestion
    whose ``selectedText`` and ``suggestionText`` both match an existing one
    is skipped, every other one is inserted with a fresh id, an
    ``importedAt`` stamp, and the target exposition id. Re-importing the
    same document therefore changes nothing.
    """

    def __init__(self, repository: AnnotationRepository, *, clock: Clock = utc_timestamp) -> None:
        self._repository = repository
        self._clock = clock

    async def merge(self, document: ExportDocument, target_exposition_id: str) -> MergeReport:
        report = MergeReport(
            target_exposition_id=target_exposition_id,
            source_exposition_id=document.exposition_id,
        )
        stored_maps: dict[str, SuggestionMap] = {}
        for weave_id in document.weaves:
            stored_maps[weave_id] = await self._repository.get_suggestion_map(target_exposition_id, weave_id)

        merged: dict[str, SuggestionMap] = {}
        imported_at = self._clock()

        def apply(exposition: Exposition) -> None:
            for weave_id, incoming in document.weaves.items():
                weave = exposition.weaves.get(weave_id)
                if weave is None:
                    weave = Weave(
                        weave_id=weave_id,
                        url=incoming.url,
                        last_visited=incoming.last_visited,
                        page_title=incoming.page_title,
                    )
                    exposition.weaves[weave_id] = weave
                    report.weaves_created += 1

                stored = stored_maps[weave_id]
                for incoming_tool in incoming.tools:
                    tool = weave.find_tool(incoming_tool.id)
                    if tool is None:
                        tool = self._adopt_tool(incoming_tool, target_exposition_id, weave_id)
                        weave.tools.append(tool)
                        report.tools_created += 1
                        current = list(stored.get(tool.id, []))
                    else:
                        current = list(stored[tool.id]) if tool.id in stored else list(tool.suggestions)

                    for suggestion in incoming_tool.suggestions:
                        if any(suggestion.is_duplicate_of(existing) for existing in current):
                            report.duplicates_skipped += 1
                            continue
                        current.append(
                            replace(
                                suggestion,
                                id=new_suggestion_id(),
                                tool_id=tool.id,
                                exposition_id=target_exposition_id,
                                weave_id=weave_id,
                                imported_at=imported_at,
                                extras=dict(suggestion.extras),
                            )
                        )
                        report.suggestions_added += 1

                    tool.set_suggestions(current)
                    merged.setdefault(weave_id, {})[tool.id] = current

        await self._repository.update_exposition(target_exposition_id, apply)

        for weave_id, tool_lists in merged.items():
            await self._repository.update_suggestion_map(
                target_exposition_id,
                weave_id,
                lambda suggestion_map, lists=tool_lists: suggestion_map.update(lists),
            )
        report.touched_weaves = sorted(merged)

        LOGGER.info(
            "Imported %d suggestions into exposition %s (%d duplicates skipped, %d weaves and %d tools created)",
            report.suggestions_added,
            target_exposition_id,
            report.duplicates_skipped,
            report.weaves_created,
            report.tools_created,
        )
        return report

    @staticmethod
    def _adopt_tool(incoming: Tool, exposition_id: str, weave_id: str) -> Tool:
        tool = Tool.from_dict(incoming.to_dict())
        tool.exposition_id = exposition_id
        tool.weave_id = weave_id
        tool.set_suggestions([])
        return tool
