"""Tool extraction from live regions and the live/cached content source union."""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Union

from weavenotes.annotations.models import Clock, Tool, ToolContent, ToolPosition, utc_timestamp
from weavenotes.page.document import HostPage, RegionRef
from weavenotes.page.markup import normalize_whitespace, strip_highlight_markers

BOOKKEEPING_PREFIX = "data-rc-"

_STYLE_PX_RE = re.compile(r"(?<![-\w])(?P<name>left|top|width|height)\s*:\s*(?P<value>-?\d+(?:\.\d+)?)(?:px)?", re.I)
_STYLE_KEYS = {"left": "x", "top": "y", "width": "width", "height": "height"}


@dataclass(frozen=True, slots=True)
class LiveSource:
    region: RegionRef


@dataclass(frozen=True, slots=True)
class CachedSource:
    tool: Tool


ContentSource = Union[LiveSource, CachedSource]


def _position_from_style(style: str) -> ToolPosition:
    values: dict[str, float] = {}
    for match in _STYLE_PX_RE.finditer(style):
        values.setdefault(_STYLE_KEYS[match.group("name").lower()], float(match.group("value")))
    return ToolPosition(**values)


def _data_attributes(region: RegionRef) -> dict[str, str]:
    attributes: dict[str, str] = {}
    for name, value in region.element.attrs.items():
        if not name.startswith("data-") or name.startswith(BOOKKEEPING_PREFIX):
            continue
        attributes[name] = " ".join(value) if isinstance(value, list) else str(value)
    return attributes


def extract_content(region: RegionRef) -> ToolContent:
    if region.text_element is None:
        return ToolContent()
    html_span = region.text_element.decode_contents().strip()
    return ToolContent(
        plain_text=normalize_whitespace(region.text_element.get_text()),
        html=strip_highlight_markers(html_span),
        html_span=html_span,
    )


def extract_tool(region: RegionRef, page: HostPage, *, clock: Clock = utc_timestamp) -> Tool:
    """Capture one region as a Tool record without touching the page."""

    element = region.element
    classes = element.get("class") or []
    return Tool(
        id=region.id,
        type=region.type,
        title=str(element.get("data-title") or ""),
        class_name=" ".join(classes) if isinstance(classes, list) else str(classes),
        exposition_id=page.exposition_id,
        weave_id=page.weave_id,
        url=page.url,
        timestamp=clock(),
        content=extract_content(region),
        position=_position_from_style(str(element.get("style") or "")),
        data_attributes=_data_attributes(region),
    )


def resolve_tool(source: ContentSource, page: HostPage, *, clock: Clock = utc_timestamp) -> Tool:
    if isinstance(source, LiveSource):
        return extract_tool(source.region, page, clock=clock)
    if isinstance(source, CachedSource):
        return source.tool
    raise TypeError(f"Unsupported content source: {type(source).__name__}")
