"""Per-session view state for one host page."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from weavenotes.annotations.models import Tool
from weavenotes.annotations.reconciler import MarkerBinding


class ViewMode(str, Enum):
    NORMAL = "normal"
    TEXT_ONLY = "text_only"


@dataclass(slots=True)
class ViewState:
    """Everything one page session remembers between operations."""

    mode: ViewMode = ViewMode.NORMAL
    original_markup: str | None = None
    cached_tools: list[Tool] = field(default_factory=list)
    last_enumeration: float | None = None
    initialized: bool = False
    bindings: dict[str, MarkerBinding] = field(default_factory=dict)

    @property
    def has_original(self) -> bool:
        return self.original_markup is not None

    def cached_tool(self, tool_id: str) -> Tool | None:
        for tool in self.cached_tools:
            if tool.id == tool_id:
                return tool
        return None

    def register_bindings(self, bindings: list[MarkerBinding]) -> None:
        for binding in bindings:
            if binding.span_id:
                self.bindings[binding.span_id] = binding
