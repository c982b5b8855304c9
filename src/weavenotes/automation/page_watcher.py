"""Debounced watcher for a saved host page with asyncio queue bridge."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
import threading
from typing import Awaitable, Callable

from watchdog.events import PatternMatchingEventHandler
from watchdog.observers import Observer


LOGGER = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 1.5


class DebouncedPageHandler(PatternMatchingEventHandler):
    """Queue the page path once the file has been quiet for ``debounce_seconds``.

    Only one page is followed, so a single pending timer is enough: every
    create, modify or rename-onto event restarts it.
    """

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        queue: asyncio.Queue[Path],
        page_name: str,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        super().__init__(
            patterns=[page_name, f"*/{page_name}"],
            ignore_patterns=["*.tmp", "*.part", "*~"],
            ignore_directories=True,
            case_sensitive=True,
        )
        self._loop = loop
        self._queue = queue
        self._debounce_seconds = debounce_seconds
        self._pending: threading.Timer | None = None
        self._lock = threading.Lock()

    def _fire(self, raw_path: str) -> None:
        with self._lock:
            self._pending = None
        self._loop.call_soon_threadsafe(self._queue.put_nowait, Path(raw_path))

    def _restart_timer(self, raw_path: str) -> None:
        timer = threading.Timer(self._debounce_seconds, self._fire, args=(raw_path,))
        timer.daemon = True
        with self._lock:
            if self._pending is not None:
                self._pending.cancel()
            self._pending = timer
        timer.start()

    def on_created(self, event) -> None:  # type: ignore[override]
        self._restart_timer(str(event.src_path))

    def on_modified(self, event) -> None:  # type: ignore[override]
        self._restart_timer(str(event.src_path))

    def on_moved(self, event) -> None:  # type: ignore[override]
        # Editors that save atomically rename a temporary file over the page.
        self._restart_timer(str(event.dest_path))

    def close(self) -> None:
        with self._lock:
            pending, self._pending = self._pending, None
        if pending is not None:
            pending.cancel()


class PageWatcher:
    """Call ``callback`` once per burst of changes to one page file.

    Changes that pile up while the callback is still running are folded into
    a single follow-up call.
    """

    def __init__(
        self,
        page_path: str | Path,
        callback: Callable[[Path], Awaitable[None]],
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        self._page_path = Path(page_path)
        self._callback = callback
        self._debounce_seconds = debounce_seconds
        self._queue: asyncio.Queue[Path] | None = None
        self._handler: DebouncedPageHandler | None = None
        self._observer: Observer | None = None
        self._consumer_task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._observer is not None

    def _latest_change(self, first: Path) -> Path:
        assert self._queue is not None
        latest = first
        while not self._queue.empty():
            latest = self._queue.get_nowait()
            self._queue.task_done()
            LOGGER.debug("Folded queued change into %s", latest)
        return latest

    async def _forward_changes(self) -> None:
        assert self._queue is not None
        while True:
            changed = self._latest_change(await self._queue.get())
            try:
                await self._callback(changed)
            except Exception:  # pragma: no cover
                LOGGER.exception("Page change handling failed for %s", changed)
            finally:
                self._queue.task_done()

    async def start(self) -> None:
        if self.running:
            return
        page_dir = self._page_path.parent
        if not page_dir.is_dir():
            raise ValueError(f"Page directory does not exist or is not a directory: {page_dir}")

        self._queue = asyncio.Queue()
        self._handler = DebouncedPageHandler(
            loop=asyncio.get_running_loop(),
            queue=self._queue,
            page_name=self._page_path.name,
            debounce_seconds=self._debounce_seconds,
        )
        self._observer = Observer()
        self._observer.schedule(self._handler, str(page_dir), recursive=False)
        self._observer.start()
        self._consumer_task = asyncio.create_task(self._forward_changes())
        LOGGER.debug("Following %s", self._page_path)

    def stop(self) -> None:
        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            observer.join(timeout=5.0)

        handler, self._handler = self._handler, None
        if handler is not None:
            handler.close()

        task, self._consumer_task = self._consumer_task, None
        if task is not None:
            task.cancel()
