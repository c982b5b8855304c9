"""Shared helpers for weavenotes command line entrypoints."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any

from weavenotes.annotations.repository import AnnotationRepository
from weavenotes.config import Settings
from weavenotes.page.document import HostPage
from weavenotes.storage.store import SqliteJsonStore


def configure_logging() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")


def add_db_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--db-path", default=None, help="SQLite store path (default: WEAVENOTES_DB_PATH)")


def add_page_arguments(parser: argparse.ArgumentParser, *, required: bool = True) -> None:
    parser.add_argument("--page", required=required, help="Saved exposition page (HTML file)")
    parser.add_argument("--url", default=None, help="Page URL when the file has no canonical link")


def resolve_db_path(args: argparse.Namespace, settings: Settings) -> Path:
    return Path(args.db_path) if args.db_path else settings.db_path


def open_store(args: argparse.Namespace, settings: Settings) -> SqliteJsonStore:
    return SqliteJsonStore(resolve_db_path(args, settings))


def load_page(args: argparse.Namespace) -> HostPage:
    return HostPage.from_file(args.page, url=args.url)


def write_page(page: HostPage, path: str | Path) -> Path:
    target = Path(path)
    target.write_text(page.serialize(), encoding="utf-8")
    return target


def repository_for(store: SqliteJsonStore) -> AnnotationRepository:
    return AnnotationRepository(store)


def print_payload(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=True, indent=2))
