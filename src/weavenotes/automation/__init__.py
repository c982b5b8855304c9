"""Automation services for re-enhancing saved pages when they change."""

from weavenotes.automation.page_watcher import DebouncedPageHandler, PageWatcher

__all__ = ["DebouncedPageHandler", "PageWatcher"]
