"""CLI entrypoint for re-enhancing a saved page whenever it changes."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from dotenv import load_dotenv

from weavenotes.automation.page_watcher import PageWatcher
from weavenotes.cli.common import (
    add_db_argument,
    add_page_arguments,
    configure_logging,
    load_page,
    open_store,
    repository_for,
    write_page,
)
from weavenotes.config import Settings
from weavenotes.page.document import HostPage
from weavenotes.view.controller import ViewController


load_dotenv()

LOGGER = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Watch a saved exposition page and re-apply stored highlights")
    add_page_arguments(parser)
    add_db_argument(parser)
    parser.add_argument("--output", default=None, help="Write the enhanced page markup here after each change")
    parser.add_argument("--debounce", type=float, default=None, help="Debounce delay in seconds")
    return parser.parse_args(argv)


async def _run_watcher(args: argparse.Namespace, settings: Settings) -> int:
    page_path = Path(args.page)
    if not page_path.is_file():
        LOGGER.error("page must exist and be a file: %s", page_path)
        return 2
    debounce = float(args.debounce) if args.debounce is not None else settings.watch_debounce_seconds
    if debounce <= 0:
        LOGGER.error("debounce must be > 0")
        return 2

    with open_store(args, settings) as store:
        controller = ViewController(
            load_page(args),
            repository_for(store),
            min_interval=settings.enumeration_interval_seconds,
        )
        await controller.initialize()
        if args.output:
            write_page(controller.page, args.output)

        async def _on_change(changed: Path) -> None:
            LOGGER.info("Detected page change: %s", changed)
            reloaded = HostPage.from_file(changed, url=args.url)
            await controller.apply_mutation(reloaded.serialize())
            result = await controller.enhance_when_due()
            if result.skipped:
                LOGGER.info("Enhancement skipped (%s)", result.reason)
                return
            if args.output:
                write_page(controller.page, args.output)

        watcher = PageWatcher(page_path, _on_change, debounce_seconds=debounce)
        await watcher.start()
        LOGGER.info("Watching %s (debounce %.1fs)", page_path, debounce)

        try:
            while True:
                await asyncio.sleep(1.0)
        finally:
            watcher.stop()
            LOGGER.info("Watcher stopped cleanly")


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    args = _parse_args(argv)
    settings = Settings.from_env()
    try:
        return asyncio.run(_run_watcher(args, settings))
    except KeyboardInterrupt:
        LOGGER.info("Shutdown requested")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
