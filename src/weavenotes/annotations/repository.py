"""Exposition and suggestion persistence on top of a JSON key/value store."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable

from weavenotes.annotations.models import (
    Clock,
    Exposition,
    Suggestion,
    Tool,
    Weave,
    ambiguous_tool_ids,
    new_span_id,
    new_suggestion_id,
    utc_timestamp,
)
from weavenotes.page.markup import TextSelection, strip_highlight_markers
from weavenotes.storage.store import JsonStore, exposition_key, suggestions_key

LOGGER = logging.getLogger(__name__)

SuggestionMap = dict[str, list[Suggestion]]


def _decode_map(raw: Any) -> SuggestionMap:
    if not isinstance(raw, dict):
        return {}
    return {
        str(tool_id): [Suggestion.from_dict(item) for item in items if isinstance(item, dict)]
        for tool_id, items in raw.items()
        if isinstance(items, list)
    }


def _encode_map(suggestion_map: SuggestionMap) -> dict[str, list[dict[str, Any]]] | None:
    payload = {
        tool_id: [suggestion.to_dict() for suggestion in suggestions]
        for tool_id, suggestions in suggestion_map.items()
        if suggestions
    }
    return payload or None


class AnnotationRepository:
    """Read and write expositions, weaves, and per-weave suggestion lists.

    Expositions live under ``exposition_<id>``; suggestion lists under
    ``suggestions_<expositionId>_<weaveId>`` as a ``toolId -> list`` map.
    Every write goes through ``JsonStore.update`` and recomputes aggregate
    counts before it is stored.
    """

    def __init__(self, store: JsonStore, *, clock: Clock = utc_timestamp) -> None:
        self._store = store
        self._clock = clock

    @property
    def store(self) -> JsonStore:
        return self._store

    async def get_exposition(self, exposition_id: str) -> Exposition | None:
        raw = await self._store.get(exposition_key(exposition_id))
        if not isinstance(raw, dict):
            return None
        exposition = Exposition.from_dict(raw)
        exposition.exposition_id = exposition.exposition_id or exposition_id
        return exposition

    async def get_weave(self, exposition_id: str, weave_id: str) -> Weave | None:
        exposition = await self.get_exposition(exposition_id)
        if exposition is None:
            return None
        return exposition.weaves.get(weave_id)

    async def update_exposition(
        self,
        exposition_id: str,
        fn: Callable[[Exposition], None],
        *,
        create: bool = True,
    ) -> Exposition | None:
        """Apply ``fn`` to the stored exposition.

        A missing exposition is created empty first, or left missing (and
        None returned) when ``create`` is false.
        """

        result: list[Exposition] = []

        def apply(raw: Any) -> dict[str, Any] | None:
            if isinstance(raw, dict):
                exposition = Exposition.from_dict(raw)
            elif create:
                exposition = Exposition(exposition_id=exposition_id)
            else:
                return None
            exposition.exposition_id = exposition.exposition_id or exposition_id
            fn(exposition)
            exposition.last_updated = self._clock()
            exposition.recompute()
            result.append(exposition)
            return exposition.to_dict()

        await self._store.update(exposition_key(exposition_id), apply)
        return result[0] if result else None

    async def get_suggestion_map(self, exposition_id: str, weave_id: str) -> SuggestionMap:
        return _decode_map(await self._store.get(suggestions_key(exposition_id, weave_id)))

    async def update_suggestion_map(
        self,
        exposition_id: str,
        weave_id: str,
        fn: Callable[[SuggestionMap], None],
    ) -> SuggestionMap:
        """Apply ``fn`` to the weave's suggestion map; emptied tool lists are dropped."""

        result: list[SuggestionMap] = []

        def apply(raw: Any) -> dict[str, Any] | None:
            suggestion_map = _decode_map(raw)
            fn(suggestion_map)
            result.append({tool_id: items for tool_id, items in suggestion_map.items() if items})
            return _encode_map(suggestion_map)

        await self._store.update(suggestions_key(exposition_id, weave_id), apply)
        return result[0]

    async def list_suggestions(self, exposition_id: str, weave_id: str, tool_id: str) -> list[Suggestion]:
        suggestion_map = await self.get_suggestion_map(exposition_id, weave_id)
        return list(suggestion_map.get(tool_id, []))

    async def find_suggestion_by_span(
        self,
        exposition_id: str,
        weave_id: str,
        tool_id: str,
        span_id: str,
    ) -> Suggestion | None:
        for suggestion in await self.list_suggestions(exposition_id, weave_id, tool_id):
            if suggestion.span_id == span_id:
                return suggestion
        return None

    async def attach_suggestions(self, tools: Iterable[Tool]) -> list[Tool]:
        """Load each tool's suggestion list from the suggestion store."""

        cache: dict[tuple[str, str], SuggestionMap] = {}
        attached: list[Tool] = []
        for tool in tools:
            scope = (tool.exposition_id, tool.weave_id)
            if scope not in cache:
                cache[scope] = await self.get_suggestion_map(*scope)
            tool.set_suggestions(cache[scope].get(tool.id, []))
            attached.append(tool)
        return attached

    async def upsert_weave_tools(
        self,
        exposition_id: str,
        weave_id: str,
        tools: list[Tool],
        *,
        url: str = "",
        page_title: str = "",
    ) -> Weave:
        """Replace the weave's tool list with a fresh extraction.

        A tool extracted without highlights keeps the previously stored
        ``htmlSpan`` (and the ``html`` derived from it) when the stored record
        still carried highlights. Tools whose id is missing or repeated are
        never matched against stored records.
        """

        suggestion_map = await self.get_suggestion_map(exposition_id, weave_id)
        visited_at = self._clock()
        preserved: list[str] = []

        def apply(exposition: Exposition) -> None:
            previous = exposition.weaves.get(weave_id)
            previous_tools = {tool.id: tool for tool in previous.tools} if previous else {}
            ambiguous = ambiguous_tool_ids(tools) | ambiguous_tool_ids(previous.tools if previous else [])
            for tool in tools:
                prior = None if tool.id in ambiguous else previous_tools.get(tool.id)
                if prior is not None and not tool.content.has_stored_spans and prior.content.has_stored_spans:
                    tool.content.html_span = prior.content.html_span
                    tool.content.html = prior.content.html
                    preserved.append(tool.id)
                tool.set_suggestions(suggestion_map.get(tool.id, []))
            exposition.weaves[weave_id] = Weave(
                weave_id=weave_id,
                url=url,
                tools=list(tools),
                last_visited=visited_at,
                page_title=page_title,
            )

        exposition = await self.update_exposition(exposition_id, apply)
        if preserved:
            LOGGER.info("Preserved stored highlight markup for tools: %s", ", ".join(preserved))
        LOGGER.debug(
            "Stored weave %s/%s with %d tools",
            exposition_id,
            weave_id,
            len(tools),
        )
        return exposition.weaves[weave_id]

    async def add_suggestion(
        self,
        tool_id: str,
        exposition_id: str,
        weave_id: str,
        selection: TextSelection | str,
        text: str,
        *,
        url: str = "",
        tool_type: str = "",
        span_id: str | None = None,
    ) -> Suggestion:
        selected_text = selection.text if isinstance(selection, TextSelection) else selection
        if not selected_text.strip():
            raise ValueError("selected text must not be empty")
        if not text.strip():
            raise ValueError("suggestion text must not be empty")

        suggestion = Suggestion(
            id=new_suggestion_id(),
            tool_id=tool_id,
            exposition_id=exposition_id,
            weave_id=weave_id,
            span_id=span_id or new_span_id(tool_id),
            selected_text=selected_text,
            suggestion_text=text,
            timestamp=self._clock(),
            url=url,
            tool_type=tool_type,
        )

        updated = await self.update_suggestion_map(
            exposition_id,
            weave_id,
            lambda suggestion_map: suggestion_map.setdefault(tool_id, []).append(suggestion),
        )
        await self._sync_tool_suggestions(exposition_id, weave_id, updated)
        LOGGER.info("Added suggestion %s to tool %s", suggestion.id, tool_id)
        return suggestion

    async def delete_suggestion(
        self,
        suggestion_id: str,
        tool_id: str,
        *,
        exposition_id: str,
        weave_id: str,
    ) -> Suggestion | None:
        removed: list[Suggestion] = []

        def remove(suggestion_map: SuggestionMap) -> None:
            remaining: list[Suggestion] = []
            for suggestion in suggestion_map.get(tool_id, []):
                if suggestion.id == suggestion_id and not removed:
                    removed.append(suggestion)
                else:
                    remaining.append(suggestion)
            if remaining:
                suggestion_map[tool_id] = remaining
            else:
                suggestion_map.pop(tool_id, None)

        updated = await self.update_suggestion_map(exposition_id, weave_id, remove)
        if not removed:
            LOGGER.warning("Suggestion %s not found on tool %s", suggestion_id, tool_id)
            return None

        span_id = removed[0].span_id
        await self._sync_tool_suggestions(exposition_id, weave_id, updated, strip_span_id=span_id)
        LOGGER.info("Deleted suggestion %s from tool %s", suggestion_id, tool_id)
        return removed[0]

    async def _sync_tool_suggestions(
        self,
        exposition_id: str,
        weave_id: str,
        suggestion_map: SuggestionMap,
        *,
        strip_span_id: str | None = None,
    ) -> None:
        def apply(exposition: Exposition) -> None:
            weave = exposition.weaves.get(weave_id)
            if weave is None:
                return
            for tool in weave.tools:
                tool.set_suggestions(suggestion_map.get(tool.id, []))
                if strip_span_id and tool.content.has_stored_spans:
                    tool.content.html_span = strip_highlight_markers(tool.content.html_span, {strip_span_id})

        await self.update_exposition(exposition_id, apply, create=False)
