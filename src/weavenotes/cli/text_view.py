"""CLI entrypoint for rendering the text-only view of a saved page."""

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


async def _render(args: argparse.Namespace, settings: Settings) -> dict:
    page = load_page(args)
    with open_store(args, settings) as store:
        controller = ViewController(
            page,
            repository_for(store),
            min_interval=settings.enumeration_interval_seconds,
        )
        await controller.initialize()
        tools = await controller.enter_text_only()

    write_page(page, args.output)
    return {
        "expositionId": controller.exposition_id,
        "weaveId": controller.weave_id,
        "mode": controller.mode.value,
        "toolCount": len(tools),
        "suggestionCount": sum(tool.suggestion_count for tool in tools),
        "output": args.output,
    }


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    parser = argparse.ArgumentParser(description="Write a text-only listing of a saved exposition page")
    add_page_arguments(parser)
    parser.add_argument("--output", required=True, help="Where to write the text-only markup")
    add_db_argument(parser)
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    print_payload(asyncio.run(_render(args, settings)))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
