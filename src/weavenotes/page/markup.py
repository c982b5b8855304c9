"""Highlight marker helpers shared by extraction, reconciliation, and editing."""

from __future__ import annotations

from dataclasses import dataclass
import re

from bs4 import BeautifulSoup, NavigableString, Tag

HIGHLIGHT_CLASS = "rc-suggestion-highlight"
HIGHLIGHT_SELECTOR = f"span.{HIGHLIGHT_CLASS}"
TEXT_CONTENT_SELECTOR = ".html-text-editor-content"

_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True, slots=True)
class TextSelection:
    """A selected passage: the exact text plus which occurrence it is."""

    text: str
    occurrence: int = 0


def normalize_whitespace(text: str) -> str:
    """Collapse repeated whitespace and trim boundaries."""

    return _WHITESPACE_RE.sub(" ", text).strip()


def parse_fragment(markup: str) -> BeautifulSoup:
    return BeautifulSoup(markup, "html.parser")


def is_marker(node: object) -> bool:
    return isinstance(node, Tag) and node.name == "span" and HIGHLIGHT_CLASS in (node.get("class") or [])


def has_highlight_markers(source: str | Tag) -> bool:
    """Return True when markup (or a parsed element) holds any highlight marker."""

    if isinstance(source, str):
        if HIGHLIGHT_CLASS not in source:
            return False
        source = parse_fragment(source)
    return source.select_one(HIGHLIGHT_SELECTOR) is not None


def iter_markers(element: Tag) -> list[Tag]:
    return list(element.select(HIGHLIGHT_SELECTOR))


def _unwrap_first(root: Tag, span_ids: set[str] | None) -> bool:
    for marker in root.select(HIGHLIGHT_SELECTOR):
        if span_ids is not None and marker.get("id") not in span_ids:
            continue
        marker.replace_with(marker.get_text())
        return True
    return False


def strip_highlight_markers(markup: str, span_ids: set[str] | None = None) -> str:
    """Replace highlight markers in ``markup`` with their inner text.

    Markup without markers is returned unchanged, so ``html == htmlSpan``
    holds exactly whenever nothing is highlighted. When ``span_ids`` is
    given only the markers with those ids are removed.
    """

    if not has_highlight_markers(markup):
        return markup

    fragment = parse_fragment(markup)
    changed = False
    # Re-select after each replacement: unwrapping an outer marker detaches nested ones.
    while _unwrap_first(fragment, span_ids):
        changed = True
    if not changed:
        return markup
    return fragment.decode().strip()


def replace_inner_markup(element: Tag, markup: str) -> None:
    """Swap the children of ``element`` for the parsed ``markup``."""

    fragment = parse_fragment(markup)
    element.clear()
    for child in list(fragment.contents):
        element.append(child.extract())


def unwrap_marker(element: Tag, span_id: str) -> bool:
    for marker in element.select(HIGHLIGHT_SELECTOR):
        if marker.get("id") == span_id:
            marker.replace_with(marker.get_text())
            return True
    return False


def _text_nodes(element: Tag) -> list[NavigableString]:
    return [node for node in element.find_all(string=True) if type(node) is NavigableString]


def _inside_marker(node: NavigableString, boundary: Tag) -> bool:
    parent = node.parent
    while parent is not None and parent is not boundary:
        if is_marker(parent):
            return True
        parent = parent.parent
    return False


def _nth_occurrence(haystack: str, needle: str, occurrence: int) -> int:
    index = -1
    for _ in range(occurrence + 1):
        index = haystack.find(needle, index + 1)
        if index < 0:
            return -1
    return index


def wrap_selection(
    element: Tag,
    selection: TextSelection,
    *,
    span_id: str,
    suggestion_text: str,
) -> Tag | None:
    """Wrap the selected passage of ``element`` in a highlight marker.

    Returns the inserted marker, or None when the passage cannot be wrapped
    (not found, crosses element boundaries, or overlaps an existing marker).
    """

    if not selection.text or selection.occurrence < 0:
        return None

    nodes = _text_nodes(element)
    full_text = "".join(str(node) for node in nodes)
    start = _nth_occurrence(full_text, selection.text, selection.occurrence)
    if start < 0:
        return None
    end = start + len(selection.text)

    offset = 0
    for node in nodes:
        node_text = str(node)
        node_start, node_end = offset, offset + len(node_text)
        offset = node_end
        if not (node_start <= start and end <= node_end):
            continue
        if _inside_marker(node, element):
            return None

        local = start - node_start
        before = node_text[:local]
        after = node_text[local + len(selection.text) :]

        marker = parse_fragment("").new_tag(
            "span",
            attrs={
                "id": span_id,
                "class": [HIGHLIGHT_CLASS],
                "data-suggestion": suggestion_text,
                "data-selected-text": selection.text,
            },
        )
        marker.string = selection.text
        node.replace_with(marker)
        if before:
            marker.insert_before(NavigableString(before))
        if after:
            marker.insert_after(NavigableString(after))
        return marker

    return None
