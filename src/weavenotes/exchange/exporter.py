"""Build and write exposition export documents."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import json
import logging
from pathlib import Path
from typing import Any

from weavenotes.annotations.models import Clock, Exposition, utc_timestamp
from weavenotes.annotations.repository import AnnotationRepository

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class NoContentFound(Exception):
    exposition_id: str

    def __str__(self) -> str:
        return f"No tools found to save for exposition {self.exposition_id}"


@dataclass(frozen=True, slots=True)
class ExportResult:
    path: Path
    exposition_id: str
    total_weaves: int
    total_tools: int
    total_suggestions: int


def export_filename(exposition_id: str, *, now: datetime | None = None) -> str:
    moment = now or datetime.now(timezone.utc)
    stamp = moment.strftime("%Y-%m-%dT%H-%M-%S")
    return f"rc-exposition-{exposition_id}-tools-{stamp}.json"


def build_export_document(exposition: Exposition, *, clock: Clock = utc_timestamp) -> dict[str, Any]:
    if not exposition.weaves or not any(weave.tools for weave in exposition.weaves.values()):
        raise NoContentFound(exposition_id=exposition.exposition_id)

    exposition.recompute()
    return {
        "exposition": {
            "id": exposition.exposition_id,
            "exportTimestamp": clock(),
            "totalWeaves": len(exposition.weaves),
            "totalTools": exposition.tool_count,
            "totalSuggestions": exposition.suggestion_count,
        },
        "weaves": {weave_id: weave.to_dict() for weave_id, weave in exposition.weaves.items()},
    }


class ExpositionExporter:
    """Serialise every stored weave of one exposition into a JSON file."""

    def __init__(self, repository: AnnotationRepository, *, clock: Clock = utc_timestamp) -> None:
        self._repository = repository
        self._clock = clock

    async def build(self, exposition_id: str) -> dict[str, Any]:
        exposition = await self._repository.get_exposition(exposition_id)
        if exposition is None:
            raise NoContentFound(exposition_id=exposition_id)
        return build_export_document(exposition, clock=self._clock)

    async def export(self, exposition_id: str, output_dir: str | Path) -> ExportResult:
        document = await self.build(exposition_id)
        directory = Path(output_dir)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / export_filename(exposition_id)
        path.write_text(json.dumps(document, ensure_ascii=False, indent=2), encoding="utf-8")

        summary = document["exposition"]
        LOGGER.info(
            "Saved %d tools and %d suggestions from %d weaves to %s",
            summary["totalTools"],
            summary["totalSuggestions"],
            summary["totalWeaves"],
            path,
        )
        return ExportResult(
            path=path,
            exposition_id=exposition_id,
            total_weaves=summary["totalWeaves"],
            total_tools=summary["totalTools"],
            total_suggestions=summary["totalSuggestions"],
        )
