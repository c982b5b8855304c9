"""NORMAL / TEXT_ONLY view state machine over one host page."""

from __future__ import annotations

from dataclasses import dataclass, field
import asyncio
import logging
import time
from typing import Callable

from bs4 import Tag

from weavenotes.annotations.models import Clock, Suggestion, Tool, Weave, ambiguous_tool_ids, utc_timestamp
from weavenotes.annotations.reconciler import SOURCE_INLINE, MarkerBinding, SpanReconciler
from weavenotes.annotations.repository import AnnotationRepository
from weavenotes.page.document import ENHANCED_ATTR, SUGGESTION_COUNT_ATTR, HostPage, RegionRef, discover_regions
from weavenotes.page.extractor import CachedSource, ContentSource, LiveSource, extract_content, extract_tool, resolve_tool
from weavenotes.page.markup import TextSelection, iter_markers, unwrap_marker, wrap_selection
from weavenotes.view.listing import listing_region, show_listing
from weavenotes.view.state import ViewMode, ViewState

LOGGER = logging.getLogger(__name__)

DEFAULT_ENUMERATION_INTERVAL_SECONDS = 1.0

RegionDiscovery = Callable[[HostPage], list[RegionRef]]


@dataclass(slots=True)
class RestoreFailure(Exception):
    """Leaving the text-only view without a cached original structure."""

    reason: str

    def __str__(self) -> str:
        return f"Cannot restore normal view: {self.reason}"


@dataclass(slots=True)
class EnhanceResult:
    skipped: bool = False
    reason: str | None = None
    tool_count: int = 0
    suggestion_count: int = 0
    restored_tools: list[str] = field(default_factory=list)


class ViewController:
    """Owns the page session: enhancement, view switching, and editing.

    All mutable session data is kept in ``self.state``. Enhancement is
    throttled: a full enumeration closer than ``min_interval`` seconds to the
    previous one is skipped unless forced.
    """

    def __init__(
        self,
        page: HostPage,
        repository: AnnotationRepository,
        *,
        discover: RegionDiscovery = discover_regions,
        min_interval: float = DEFAULT_ENUMERATION_INTERVAL_SECONDS,
        clock: Clock = utc_timestamp,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        if min_interval < 0:
            raise ValueError("min_interval cannot be negative")
        self._page = page
        self._repository = repository
        self._reconciler = SpanReconciler(repository)
        self._discover = discover
        self._min_interval = min_interval
        self._clock = clock
        self._monotonic = monotonic
        self.state = ViewState()

    @property
    def page(self) -> HostPage:
        return self._page

    @property
    def mode(self) -> ViewMode:
        return self.state.mode

    @property
    def exposition_id(self) -> str:
        return self._page.exposition_id

    @property
    def weave_id(self) -> str:
        return self._page.weave_id

    async def initialize(self) -> EnhanceResult:
        """Cache the untouched page structure once, then enhance it."""

        if not self.state.initialized:
            self.state.original_markup = self._page.serialize()
            self.state.initialized = True
        return await self.enhance(force=True)

    async def enhance(self, force: bool = False) -> EnhanceResult:
        if self.state.mode is ViewMode.TEXT_ONLY:
            LOGGER.debug("Skipping tool enumeration in text-only view")
            return EnhanceResult(skipped=True, reason="text_only")

        now = self._monotonic()
        last = self.state.last_enumeration
        if not force and last is not None and now - last < self._min_interval:
            LOGGER.debug("Skipping tool enumeration: last run %.3fs ago", now - last)
            return EnhanceResult(skipped=True, reason="throttled")
        self.state.last_enumeration = now

        regions = self._discover(self._page)
        if not regions:
            LOGGER.info("No text tools found on %s", self._page.url or "page")
            return EnhanceResult()

        weave = await self._store_regions(regions)
        stored_by_id = {tool.id: tool for tool in weave.tools}
        ambiguous = ambiguous_tool_ids(weave.tools)
        result = EnhanceResult(tool_count=weave.tool_count, suggestion_count=weave.suggestion_count)

        for region in regions:
            stored = stored_by_id.get(region.id)
            if region.id in ambiguous:
                LOGGER.debug("Not restoring highlights for ambiguous tool id %s", region.id)
            elif stored is not None and stored.suggestions:
                reconciled = await self._reconciler.reconcile(region, stored)
                self.state.register_bindings(reconciled.bindings)
                if reconciled.restored:
                    result.restored_tools.append(region.id)
            region.element[ENHANCED_ATTR] = "true"
            region.element[SUGGESTION_COUNT_ATTR] = str(stored.suggestion_count if stored else 0)

        LOGGER.info(
            "Enhanced %d tools with %d suggestions (%d restored)",
            result.tool_count,
            result.suggestion_count,
            len(result.restored_tools),
        )
        return result

    async def enhance_when_due(self) -> EnhanceResult:
        """Enhance now, or as soon as the throttle window has passed."""

        result = await self.enhance()
        if result.reason == "throttled" and self.state.last_enumeration is not None:
            remaining = self._min_interval - (self._monotonic() - self.state.last_enumeration)
            LOGGER.debug("Deferring tool enumeration by %.3fs", remaining)
            await asyncio.sleep(max(remaining, 0.0))
            result = await self.enhance(force=True)
        return result

    async def enter_text_only(self) -> list[Tool]:
        if self.state.mode is ViewMode.TEXT_ONLY:
            return self.state.cached_tools
        if not self.state.has_original:
            self.state.original_markup = self._page.serialize()

        regions = self._discover(self._page)
        tools = (await self._store_regions(regions)).tools if regions else []
        self.state.cached_tools = tools
        show_listing(self._page, tools)
        self.state.mode = ViewMode.TEXT_ONLY

        self.state.bindings.clear()
        for tool in tools:
            region = listing_region(self._page, tool)
            if region is not None:
                self.state.register_bindings(await self._reconciler.bind_markers(region, tool))

        LOGGER.info("Switched to text-only view with %d tools", len(tools))
        return tools

    async def leave_text_only(self) -> EnhanceResult:
        if self.state.mode is ViewMode.NORMAL:
            return EnhanceResult(skipped=True, reason="normal")
        if self.state.original_markup is None:
            raise RestoreFailure(reason="original page structure was never cached")

        self._page.load_markup(self.state.original_markup)
        self.state.mode = ViewMode.NORMAL
        self.state.cached_tools = []
        self.state.bindings.clear()
        LOGGER.info("Restored original page structure")
        return await self.enhance(force=True)

    async def toggle(self) -> ViewMode:
        if self.state.mode is ViewMode.NORMAL:
            await self.enter_text_only()
        else:
            await self.leave_text_only()
        return self.state.mode

    async def reload(self, markup: str) -> EnhanceResult:
        """Start a fresh session from ``markup``; the recovery path for failed restores."""

        self._page.load_markup(markup)
        self.state = ViewState()
        LOGGER.info("Reloaded page")
        return await self.initialize()

    async def apply_mutation(self, markup: str) -> None:
        """Take a new host rendering of the page."""

        if self.state.mode is ViewMode.TEXT_ONLY:
            LOGGER.info("Ignoring page change while in text-only view")
            return
        self._page.load_markup(markup)
        self.state.original_markup = self._page.serialize()
        self.state.initialized = True
        self.state.bindings.clear()

    def source_for(self, tool_id: str) -> ContentSource:
        if self.state.mode is ViewMode.TEXT_ONLY:
            tool = self.state.cached_tool(tool_id)
            if tool is None:
                raise KeyError(f"Unknown tool id: {tool_id}")
            return CachedSource(tool)

        region = self._find_region(tool_id)
        if region is None:
            raise KeyError(f"Unknown tool id: {tool_id}")
        return LiveSource(region)

    async def create_suggestion(
        self,
        source: ContentSource,
        selection: TextSelection,
        text: str,
    ) -> Suggestion:
        if not selection.text.strip():
            raise ValueError("selection must not be empty")
        if not text.strip():
            raise ValueError("suggestion text must not be empty")

        tool = resolve_tool(source, self._page, clock=self._clock)
        suggestion = await self._repository.add_suggestion(
            tool.id,
            self.exposition_id,
            self.weave_id,
            selection,
            text,
            url=self._page.url,
            tool_type=tool.type,
        )

        if isinstance(source, LiveSource):
            region: RegionRef | None = source.region
        else:
            region = listing_region(self._page, source.tool)
        self._insert_marker(region, selection, suggestion)

        if isinstance(source, CachedSource):
            if region is not None:
                source.tool.content = extract_content(region)
            await self._store_cached_tools()
        else:
            regions = self._discover(self._page)
            weave = await self._store_regions(regions)
            stored = weave.find_tool(tool.id)
            if stored is not None:
                source.region.element[SUGGESTION_COUNT_ATTR] = str(stored.suggestion_count)
        return suggestion

    async def delete_suggestion(self, suggestion_id: str, tool_id: str) -> Suggestion | None:
        removed = await self._repository.delete_suggestion(
            suggestion_id,
            tool_id,
            exposition_id=self.exposition_id,
            weave_id=self.weave_id,
        )
        if removed is None:
            return None

        self.state.bindings.pop(removed.span_id, None)
        count = len(await self._repository.list_suggestions(self.exposition_id, self.weave_id, tool_id))
        if self.state.mode is ViewMode.TEXT_ONLY:
            cached = self.state.cached_tool(tool_id)
            region = listing_region(self._page, cached) if cached is not None else None
            if region is not None and region.text_element is not None:
                unwrap_marker(region.text_element, removed.span_id)
                cached.content = extract_content(region)
            if cached is not None:
                cached.set_suggestions([item for item in cached.suggestions if item.id != removed.id])
        else:
            region = self._find_region(tool_id)
            if region is not None:
                if region.text_element is not None:
                    unwrap_marker(region.text_element, removed.span_id)
                region.element[SUGGESTION_COUNT_ATTR] = str(count)
        return removed

    async def suggestions_for(self, tool_id: str) -> list[Suggestion]:
        suggestions = await self._repository.list_suggestions(self.exposition_id, self.weave_id, tool_id)
        return sorted(suggestions, key=lambda suggestion: suggestion.timestamp, reverse=True)

    def click_marker(self, span_id: str) -> MarkerBinding | None:
        return self.state.bindings.get(span_id)

    async def locate_suggestion(self, suggestion_id: str, tool_id: str) -> Tag | None:
        """The marker showing a stored suggestion in the current view, or None.

        Imported suggestions keep a ``spanId`` that may have no marker on this
        page; they simply cannot be located.
        """

        suggestions = await self._repository.list_suggestions(self.exposition_id, self.weave_id, tool_id)
        suggestion = next((item for item in suggestions if item.id == suggestion_id), None)
        if suggestion is None:
            LOGGER.info("No suggestion %s on tool %s", suggestion_id, tool_id)
            return None

        if self.state.mode is ViewMode.TEXT_ONLY:
            cached = self.state.cached_tool(tool_id)
            region = listing_region(self._page, cached) if cached is not None else None
        else:
            region = self._find_region(tool_id)

        if region is not None and region.text_element is not None:
            for marker in iter_markers(region.text_element):
                if marker.get("id") == suggestion.span_id:
                    return marker
        LOGGER.info("Could not find the suggestion location for %s (span %s)", suggestion.id, suggestion.span_id)
        return None

    def _find_region(self, tool_id: str) -> RegionRef | None:
        for region in self._discover(self._page):
            if region.id == tool_id:
                return region
        return None

    def _insert_marker(self, region: RegionRef | None, selection: TextSelection, suggestion: Suggestion) -> None:
        marker = None
        if region is not None and region.text_element is not None:
            marker = wrap_selection(
                region.text_element,
                selection,
                span_id=suggestion.span_id,
                suggestion_text=suggestion.suggestion_text,
            )
        if marker is None:
            LOGGER.warning(
                "Could not highlight %r in tool %s; suggestion %s saved without a marker",
                selection.text,
                suggestion.tool_id,
                suggestion.id,
            )
            return
        self.state.register_bindings(
            [MarkerBinding(suggestion.span_id, suggestion.suggestion_text, suggestion.selected_text, SOURCE_INLINE)]
        )

    async def _store_regions(self, regions: list[RegionRef]) -> Weave:
        tools = [extract_tool(region, self._page, clock=self._clock) for region in regions]
        return await self._repository.upsert_weave_tools(
            self.exposition_id,
            self.weave_id,
            tools,
            url=self._page.url,
            page_title=self._page.title,
        )

    async def _store_cached_tools(self) -> None:
        weave = await self._repository.upsert_weave_tools(
            self.exposition_id,
            self.weave_id,
            self.state.cached_tools,
            url=self._page.url,
            page_title=self._page.title,
        )
        self.state.cached_tools = weave.tools
        for tool in weave.tools:
            region = listing_region(self._page, tool)
            if region is not None:
                region.element["data-suggestion-count"] = str(tool.suggestion_count)
