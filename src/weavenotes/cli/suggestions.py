"""CLI entrypoint for adding, listing, and deleting suggestions."""

from __future__ import annotations

import argparse
import asyncio
import logging

from dotenv import load_dotenv

from weavenotes.cli.common import (
    add_db_argument,
    add_page_arguments,
    configure_logging,
    load_page,
    open_store,
    print_payload,
    repository_for,
    write_page,
)
from weavenotes.config import Settings
from weavenotes.page.markup import TextSelection
from weavenotes.view.controller import ViewController


load_dotenv()

LOGGER = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Manage suggestions attached to exposition tools")
    add_db_argument(parser)
    commands = parser.add_subparsers(dest="command", required=True)

    add = commands.add_parser("add", help="Highlight a passage and attach a suggestion")
    add_page_arguments(add)
    add.add_argument("--tool-id", required=True, help="Tool (data-id) holding the passage")
    add.add_argument("--selection", required=True, help="Exact passage text to highlight")
    add.add_argument("--occurrence", type=int, default=0, help="Which occurrence of the passage (0-based)")
    add.add_argument("--text", required=True, help="Suggestion text")
    add.add_argument("--output", default=None, help="Write the annotated page markup here")

    listing = commands.add_parser("list", help="List stored suggestions, newest first")
    add_page_arguments(listing, required=False)
    listing.add_argument("--exposition-id", default=None, help="Exposition id (taken from --page when omitted)")
    listing.add_argument("--weave-id", default=None, help="Weave id (taken from --page when omitted)")
    listing.add_argument("--tool-id", default=None, help="Only this tool")

    delete = commands.add_parser("delete", help="Delete one suggestion and its highlight")
    add_page_arguments(delete, required=False)
    delete.add_argument("--exposition-id", default=None, help="Exposition id (taken from --page when omitted)")
    delete.add_argument("--weave-id", default=None, help="Weave id (taken from --page when omitted)")
    delete.add_argument("--tool-id", required=True, help="Tool holding the suggestion")
    delete.add_argument("--suggestion-id", required=True, help="Suggestion id to delete")
    delete.add_argument("--output", default=None, help="Write the updated page markup here")

    return parser.parse_args(argv)


def _scope(args: argparse.Namespace) -> tuple[str, str]:
    if args.page:
        page = load_page(args)
        return args.exposition_id or page.exposition_id, args.weave_id or page.weave_id
    if not args.exposition_id or not args.weave_id:
        raise ValueError("--exposition-id and --weave-id are required without --page")
    return args.exposition_id, args.weave_id


async def _add(args: argparse.Namespace, settings: Settings) -> dict:
    page = load_page(args)
    with open_store(args, settings) as store:
        controller = ViewController(
            page,
            repository_for(store),
            min_interval=settings.enumeration_interval_seconds,
        )
        await controller.initialize()
        source = controller.source_for(args.tool_id)
        suggestion = await controller.create_suggestion(
            source,
            TextSelection(args.selection, args.occurrence),
            args.text,
        )
        highlighted = controller.click_marker(suggestion.span_id) is not None

    if args.output:
        write_page(page, args.output)
    return {"suggestion": suggestion.to_dict(), "highlighted": highlighted, "output": args.output}


async def _list(args: argparse.Namespace, settings: Settings) -> dict:
    exposition_id, weave_id = _scope(args)
    with open_store(args, settings) as store:
        repository = repository_for(store)
        suggestion_map = await repository.get_suggestion_map(exposition_id, weave_id)

    tool_ids = [args.tool_id] if args.tool_id else sorted(suggestion_map)
    tools = {}
    for tool_id in tool_ids:
        suggestions = sorted(suggestion_map.get(tool_id, []), key=lambda item: item.timestamp, reverse=True)
        tools[tool_id] = [suggestion.to_dict() for suggestion in suggestions]
    return {
        "expositionId": exposition_id,
        "weaveId": weave_id,
        "suggestionCount": sum(len(items) for items in tools.values()),
        "tools": tools,
    }


async def _delete(args: argparse.Namespace, settings: Settings) -> dict:
    with open_store(args, settings) as store:
        repository = repository_for(store)
        if args.page:
            page = load_page(args)
            controller = ViewController(page, repository, min_interval=settings.enumeration_interval_seconds)
            await controller.initialize()
            removed = await controller.delete_suggestion(args.suggestion_id, args.tool_id)
            if args.output:
                write_page(page, args.output)
        else:
            exposition_id, weave_id = _scope(args)
            removed = await repository.delete_suggestion(
                args.suggestion_id,
                args.tool_id,
                exposition_id=exposition_id,
                weave_id=weave_id,
            )
    return {"deleted": removed is not None, "suggestion": removed.to_dict() if removed else None}


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    args = _parse_args(argv)
    settings = Settings.from_env()

    handlers = {"add": _add, "list": _list, "delete": _delete}
    try:
        payload = asyncio.run(handlers[args.command](args, settings))
    except (KeyError, ValueError) as exc:
        LOGGER.error("%s", exc)
        print_payload({"error": str(exc)})
        return 2

    print_payload(payload)
    if args.command == "delete" and not payload["deleted"]:
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
