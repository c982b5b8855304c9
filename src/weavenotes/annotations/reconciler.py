"""Re-apply stored highlight markup to freshly rendered regions."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging

from weavenotes.annotations.models import Tool
from weavenotes.annotations.repository import AnnotationRepository
from weavenotes.page.document import RegionRef
from weavenotes.page.markup import has_highlight_markers, iter_markers, replace_inner_markup

LOGGER = logging.getLogger(__name__)

SOURCE_INLINE = "inline"
SOURCE_STORE = "store"
SOURCE_UNRESOLVED = "unresolved"


@dataclass(frozen=True, slots=True)
class MarkerBinding:
    """What clicking a highlight marker shows."""

    span_id: str
    suggestion_text: str
    selected_text: str
    source: str

    @property
    def resolved(self) -> bool:
        return self.source != SOURCE_UNRESOLVED


@dataclass(slots=True)
class ReconcileResult:
    tool_id: str
    restored: bool = False
    bindings: list[MarkerBinding] = field(default_factory=list)


def has_live_spans(region: RegionRef) -> bool:
    return region.text_element is not None and has_highlight_markers(region.text_element)


class SpanReconciler:
    """Decide whether a region needs its stored markup and bind its markers.

    Replacement is all-or-nothing: when the rendered region shows no marker
    but the stored record does, the whole subregion markup is swapped for the
    stored ``htmlSpan``. Regions that already show markers are left alone.
    """

    def __init__(self, repository: AnnotationRepository) -> None:
        self._repository = repository

    async def reconcile(self, region: RegionRef, stored: Tool) -> ReconcileResult:
        result = ReconcileResult(tool_id=stored.id)
        if region.text_element is None:
            return result

        if not has_live_spans(region) and stored.content.has_stored_spans:
            replace_inner_markup(region.text_element, stored.content.html_span)
            result.restored = True
            LOGGER.info("Restored stored highlights for tool %s", stored.id)

        result.bindings = await self.bind_markers(region, stored)
        return result

    async def bind_markers(self, region: RegionRef, stored: Tool) -> list[MarkerBinding]:
        if region.text_element is None:
            return []
        bindings: list[MarkerBinding] = []
        for marker in iter_markers(region.text_element):
            span_id = str(marker.get("id") or "")
            bindings.append(await self._bind(marker, span_id, stored))
        return bindings

    async def _bind(self, marker, span_id: str, stored: Tool) -> MarkerBinding:
        inline_text = marker.get("data-suggestion")
        selected_text = str(marker.get("data-selected-text") or marker.get_text())
        if inline_text:
            return MarkerBinding(span_id, str(inline_text), selected_text, SOURCE_INLINE)

        # Legacy markers carry no text; resolve by span id.
        for suggestion in stored.suggestions:
            if suggestion.span_id == span_id:
                return MarkerBinding(span_id, suggestion.suggestion_text, suggestion.selected_text, SOURCE_STORE)

        suggestion = await self._repository.find_suggestion_by_span(
            stored.exposition_id,
            stored.weave_id,
            stored.id,
            span_id,
        )
        if suggestion is not None:
            return MarkerBinding(span_id, suggestion.suggestion_text, suggestion.selected_text, SOURCE_STORE)

        LOGGER.warning("No suggestion found for marker %s on tool %s", span_id or "<no id>", stored.id)
        return MarkerBinding(span_id, "", selected_text, SOURCE_UNRESOLVED)
