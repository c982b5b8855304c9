"""CLI entrypoint for discovering, storing, and restoring tools on a saved page."""

from __future__ import annotations

import argparse
import asyncio

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
from weavenotes.view.controller import ViewController


load_dotenv()


async def _scan(args: argparse.Namespace, settings: Settings) -> dict:
    page = load_page(args)
    with open_store(args, settings) as store:
        repository = repository_for(store)
        controller = ViewController(
            page,
            repository,
            min_interval=settings.enumeration_interval_seconds,
        )
        result = await controller.initialize()
        weave = await repository.get_weave(controller.exposition_id, controller.weave_id)

    if args.output:
        write_page(page, args.output)

    tools = weave.tools if weave is not None else []
    return {
        "expositionId": controller.exposition_id,
        "weaveId": controller.weave_id,
        "toolCount": result.tool_count,
        "suggestionCount": result.suggestion_count,
        "restoredTools": result.restored_tools,
        "tools": [
            {"id": tool.id, "type": tool.type, "title": tool.title, "suggestionCount": tool.suggestion_count}
            for tool in tools
        ],
        "output": args.output,
    }


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    parser = argparse.ArgumentParser(description="Store the text tools of a saved exposition page")
    add_page_arguments(parser)
    add_db_argument(parser)
    parser.add_argument("--output", default=None, help="Write the enhanced page markup here")
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    print_payload(asyncio.run(_scan(args, settings)))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
