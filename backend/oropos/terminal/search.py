# Debounced product search for the register's search box.

from __future__ import annotations

import logging
import threading

from .errors import TerminalError
from .timers import ThreadScheduler

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2


class ProductSearch:
    """
    Type-ahead search against /api/products/search.

    Each keystroke replaces the pending debounce timer. A generation counter
    is bumped on every new query and on cancel, so responses for superseded
    queries are dropped.
    """

    def __init__(self, client, scheduler=None, debounce: float = 0.15, limit: int = 10, on_select=None):
        self.client = client
        self.scheduler = scheduler or ThreadScheduler()
        self.debounce = debounce
        self.limit = limit
        self.on_select = on_select

        self.query = ""
        self.results: list = []
        self.cursor = 0
        self.error = None
        self._generation = 0
        self._timer = None
        self._lock = threading.Lock()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def set_query(self, text: str) -> None:
        with self._lock:
            self.query = text or ""
            self._generation += 1
            self._cancel_timer()
            self.error = None
            if len(self.query.strip()) < MIN_QUERY_LENGTH:
                self.results = []
                self.cursor = 0
                return
            self._timer = self.scheduler.call_later(
                self.debounce, self._run, self._generation, self.query.strip()
            )

    def _run(self, generation: int, query: str) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
        try:
            results = self.client.search_products(query, self.limit)
            error = None
        except TerminalError as e:
            logger.warning("Product search for %r failed: %s", query, e)
            results, error = [], str(e)

        with self._lock:
            if generation != self._generation:
                logger.debug("Dropping stale search results for %r", query)
                return
            self.results = list(results or [])
            self.cursor = 0
            self.error = error

    def move(self, step: int) -> None:
        with self._lock:
            if not self.results:
                self.cursor = 0
                return
            self.cursor = max(0, min(self.cursor + step, len(self.results) - 1))

    def select(self):
        """Commit the highlighted result and reset the box."""
        with self._lock:
            if not self.results:
                return None
            item = self.results[self.cursor]
        self.cancel()
        if self.on_select is not None:
            self.on_select(item)
        return item

    def cancel(self) -> None:
        with self._lock:
            self._generation += 1
            self._cancel_timer()
            self.query = ""
            self.results = []
            self.cursor = 0
            self.error = None

    def handle_key(self, key: str):
        if key == "ArrowDown":
            self.move(1)
        elif key == "ArrowUp":
            self.move(-1)
        elif key == "Enter":
            return self.select()
        elif key == "Escape":
            self.cancel()
        return None
