"""CLI entrypoint for merging an export document into the local store."""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Callable

from dotenv import load_dotenv

from weavenotes.cli.common import add_db_argument, configure_logging, open_store, print_payload, repository_for
from weavenotes.config import Settings
from weavenotes.exchange.importer import ExportDocument, InvalidFormat, MergeReport, SuggestionImporter, load_export_document


load_dotenv()

LOGGER = logging.getLogger(__name__)


def _confirm_mismatch(document: ExportDocument, target: str, ask: Callable[[str], str]) -> bool:
    answer = ask(
        f"The imported data is for exposition {document.exposition_id}, but the target is exposition {target}. "
        "Merge the suggestions anyway? [y/N] "
    )
    return answer.strip().lower() in {"y", "yes"}


async def _merge(args: argparse.Namespace, settings: Settings, document: ExportDocument, target: str) -> MergeReport:
    with open_store(args, settings) as store:
        importer = SuggestionImporter(repository_for(store))
        return await importer.merge(document, target)


def main(argv: list[str] | None = None, *, ask: Callable[[str], str] = input) -> int:
    configure_logging()
    parser = argparse.ArgumentParser(description="Import suggestions from an exposition export file")
    parser.add_argument("--file", required=True, help="Export document (JSON)")
    parser.add_argument(
        "--exposition-id",
        default=None,
        help="Target exposition (defaults to the exposition named in the file)",
    )
    parser.add_argument("--yes", action="store_true", help="Merge without asking when expositions differ")
    add_db_argument(parser)
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    try:
        document = load_export_document(args.file)
    except InvalidFormat as exc:
        LOGGER.error("%s", exc)
        print_payload({"imported": False, "error": str(exc)})
        return 2

    target = args.exposition_id or document.exposition_id
    if target != document.exposition_id and not args.yes:
        if not _confirm_mismatch(document, target, ask):
            LOGGER.info("Import cancelled")
            print_payload({"imported": False, "cancelled": True})
            return 1

    report = asyncio.run(_merge(args, settings, document, target))
    print_payload({"imported": True, **report.to_dict()})
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
