"""CLI entrypoint for saving every stored weave of an exposition as JSON."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from dotenv import load_dotenv

from weavenotes.cli.common import add_db_argument, configure_logging, open_store, print_payload, repository_for
from weavenotes.config import Settings
from weavenotes.exchange.exporter import ExportResult, ExpositionExporter, NoContentFound


load_dotenv()

LOGGER = logging.getLogger(__name__)


async def _export(args: argparse.Namespace, settings: Settings) -> ExportResult:
    output_dir = Path(args.output_dir) if args.output_dir else settings.export_dir
    with open_store(args, settings) as store:
        exporter = ExpositionExporter(repository_for(store))
        return await exporter.export(args.exposition_id, output_dir)


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    parser = argparse.ArgumentParser(description="Export stored tools and suggestions of one exposition")
    parser.add_argument("--exposition-id", required=True, help="Exposition to export")
    parser.add_argument("--output-dir", default=None, help="Directory for the export file")
    add_db_argument(parser)
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    try:
        result = asyncio.run(_export(args, settings))
    except NoContentFound as exc:
        LOGGER.info("%s", exc)
        print_payload({"expositionId": args.exposition_id, "saved": False, "notice": str(exc)})
        return 0

    print_payload(
        {
            "expositionId": result.exposition_id,
            "saved": True,
            "path": str(result.path),
            "totalWeaves": result.total_weaves,
            "totalTools": result.total_tools,
            "totalSuggestions": result.total_suggestions,
        }
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
