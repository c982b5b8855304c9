"""Exposition, weave, tool, and suggestion records with their JSON shape."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable
import uuid

Clock = Callable[[], str]

UNKNOWN_ID = "unknown"


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""

    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_suggestion_id() -> str:
    return f"suggestion_{uuid.uuid4().hex}"


def new_span_id(tool_id: str) -> str:
    return f"rc-suggestion-{tool_id}-{uuid.uuid4().hex[:12]}"


def _str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def _number(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


@dataclass(slots=True)
class ToolContent:
    plain_text: str = ""
    html: str = ""
    html_span: str = ""

    @property
    def has_stored_spans(self) -> bool:
        return self.html_span != self.html

    def to_dict(self) -> dict[str, str]:
        return {"plainText": self.plain_text, "html": self.html, "htmlSpan": self.html_span}

    @classmethod
    def from_dict(cls, data: Any) -> "ToolContent":
        # Tools stored before a text subregion was found carry an empty string.
        if not isinstance(data, dict):
            return cls()
        html = _str(data.get("html"))
        return cls(
            plain_text=_str(data.get("plainText")),
            html=html,
            html_span=_str(data.get("htmlSpan"), html),
        )


@dataclass(slots=True)
class ToolPosition:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: Any) -> "ToolPosition":
        if not isinstance(data, dict):
            return cls()
        return cls(
            x=_number(data.get("x")),
            y=_number(data.get("y")),
            width=_number(data.get("width")),
            height=_number(data.get("height")),
        )


_SUGGESTION_KEYS = {
    "id",
    "toolId",
    "expositionId",
    "weaveId",
    "spanId",
    "selectedText",
    "suggestionText",
    "suggestion",
    "timestamp",
    "url",
    "toolType",
    "importedAt",
}


@dataclass(slots=True)
class Suggestion:
    """A user-authored note attached to one highlighted passage."""

    id: str
    tool_id: str
    exposition_id: str
    weave_id: str
    span_id: str
    selected_text: str
    suggestion_text: str
    timestamp: str
    url: str = ""
    tool_type: str = ""
    imported_at: str | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    def is_duplicate_of(self, other: "Suggestion") -> bool:
        return self.selected_text == other.selected_text and self.suggestion_text == other.suggestion_text

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.extras)
        payload.update(
            {
                "id": self.id,
                "toolId": self.tool_id,
                "expositionId": self.exposition_id,
                "weaveId": self.weave_id,
                "spanId": self.span_id,
                "selectedText": self.selected_text,
                "suggestionText": self.suggestion_text,
                "timestamp": self.timestamp,
                "url": self.url,
                "toolType": self.tool_type,
            }
        )
        if self.imported_at is not None:
            payload["importedAt"] = self.imported_at
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Suggestion":
        text = data.get("suggestionText")
        if text is None:
            text = data.get("suggestion")
        imported_at = data.get("importedAt")
        return cls(
            id=_str(data.get("id")),
            tool_id=_str(data.get("toolId")),
            exposition_id=_str(data.get("expositionId")),
            weave_id=_str(data.get("weaveId")),
            span_id=_str(data.get("spanId")),
            selected_text=_str(data.get("selectedText")),
            suggestion_text=_str(text),
            timestamp=_str(data.get("timestamp")),
            url=_str(data.get("url")),
            tool_type=_str(data.get("toolType")),
            imported_at=None if imported_at is None else str(imported_at),
            extras={key: value for key, value in data.items() if key not in _SUGGESTION_KEYS},
        )


_TOOL_KEYS = {
    "id",
    "toolId",
    "type",
    "title",
    "className",
    "expositionId",
    "weaveId",
    "url",
    "timestamp",
    "content",
    "position",
    "dataAttributes",
    "suggestions",
    "suggestionCount",
}


@dataclass(slots=True)
class Tool:
    """A discovered content region and the content captured from it."""

    id: str
    type: str
    title: str
    class_name: str
    exposition_id: str
    weave_id: str
    url: str
    timestamp: str
    content: ToolContent = field(default_factory=ToolContent)
    position: ToolPosition = field(default_factory=ToolPosition)
    data_attributes: dict[str, str] = field(default_factory=dict)
    suggestions: list[Suggestion] = field(default_factory=list)
    suggestion_count: int = 0
    extras: dict[str, Any] = field(default_factory=dict)

    def set_suggestions(self, suggestions: list[Suggestion]) -> None:
        self.suggestions = list(suggestions)
        self.suggestion_count = len(self.suggestions)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.extras)
        payload.update(
            {
                "id": self.id,
                "type": self.type,
                "title": self.title,
                "className": self.class_name,
                "expositionId": self.exposition_id,
                "weaveId": self.weave_id,
                "url": self.url,
                "timestamp": self.timestamp,
                "content": self.content.to_dict(),
                "position": self.position.to_dict(),
                "dataAttributes": dict(self.data_attributes),
                "suggestions": [suggestion.to_dict() for suggestion in self.suggestions],
                "suggestionCount": len(self.suggestions),
            }
        )
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Tool":
        suggestions = [Suggestion.from_dict(item) for item in data.get("suggestions") or []]
        attributes = data.get("dataAttributes")
        if not isinstance(attributes, dict):
            attributes = {}
        return cls(
            id=_str(data.get("id") or data.get("toolId")),
            type=_str(data.get("type")),
            title=_str(data.get("title")),
            class_name=_str(data.get("className")),
            exposition_id=_str(data.get("expositionId")),
            weave_id=_str(data.get("weaveId")),
            url=_str(data.get("url")),
            timestamp=_str(data.get("timestamp")),
            content=ToolContent.from_dict(data.get("content")),
            position=ToolPosition.from_dict(data.get("position")),
            data_attributes={str(key): _str(value) for key, value in attributes.items()},
            suggestions=suggestions,
            suggestion_count=len(suggestions),
            extras={key: value for key, value in data.items() if key not in _TOOL_KEYS},
        )


def ambiguous_tool_ids(tools: list[Tool]) -> set[str]:
    """Ids that do not name a single tool: the fallback id and repeated ids."""

    seen: set[str] = set()
    ambiguous = {UNKNOWN_ID}
    for tool in tools:
        if tool.id in seen:
            ambiguous.add(tool.id)
        seen.add(tool.id)
    return ambiguous


@dataclass(slots=True)
class Weave:
    weave_id: str
    url: str = ""
    tools: list[Tool] = field(default_factory=list)
    tool_count: int = 0
    suggestion_count: int = 0
    last_visited: str = ""
    page_title: str = ""

    def find_tool(self, tool_id: str) -> Tool | None:
        for tool in self.tools:
            if tool.id == tool_id:
                return tool
        return None

    def recompute(self) -> None:
        for tool in self.tools:
            tool.suggestion_count = len(tool.suggestions)
        self.tool_count = len(self.tools)
        self.suggestion_count = sum(tool.suggestion_count for tool in self.tools)

    def to_dict(self) -> dict[str, Any]:
        return {
            "weaveId": self.weave_id,
            "url": self.url,
            "tools": [tool.to_dict() for tool in self.tools],
            "toolCount": len(self.tools),
            "suggestionCount": sum(len(tool.suggestions) for tool in self.tools),
            "lastVisited": self.last_visited,
            "pageTitle": self.page_title,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, weave_id: str | None = None) -> "Weave":
        weave = cls(
            weave_id=_str(data.get("weaveId") or weave_id),
            url=_str(data.get("url")),
            tools=[Tool.from_dict(item) for item in data.get("tools") or []],
            # Older exports named the visit timestamp ``visitedAt``.
            last_visited=_str(data.get("lastVisited") or data.get("visitedAt")),
            page_title=_str(data.get("pageTitle")),
        )
        weave.recompute()
        return weave


@dataclass(slots=True)
class Exposition:
    exposition_id: str
    weaves: dict[str, Weave] = field(default_factory=dict)
    last_updated: str = ""
    tool_count: int = 0
    suggestion_count: int = 0

    def recompute(self) -> None:
        for weave in self.weaves.values():
            weave.recompute()
        self.tool_count = sum(weave.tool_count for weave in self.weaves.values())
        self.suggestion_count = sum(weave.suggestion_count for weave in self.weaves.values())

    def to_dict(self) -> dict[str, Any]:
        self.recompute()
        return {
            "expositionId": self.exposition_id,
            "weaves": {weave_id: weave.to_dict() for weave_id, weave in self.weaves.items()},
            "lastUpdated": self.last_updated,
            "toolCount": self.tool_count,
            "suggestionCount": self.suggestion_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Exposition":
        weaves = {
            str(weave_id): Weave.from_dict(weave, weave_id=str(weave_id))
            for weave_id, weave in (data.get("weaves") or {}).items()
        }
        exposition = cls(
            exposition_id=_str(data.get("expositionId")),
            weaves=weaves,
            last_updated=_str(data.get("lastUpdated")),
        )
        exposition.recompute()
        return exposition
