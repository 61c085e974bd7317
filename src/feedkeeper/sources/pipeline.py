"""Observation hooks for the item-fetch pipeline."""

from __future__ import annotations

import logging
from typing import Any, Callable, Protocol, Sequence

LOGGER = logging.getLogger(__name__)


class ItemFetchPipeline(Protocol):
    """Receives progress of a batch of sources whose items are being fetched."""

    def request(self, count: int) -> None:
        """``count`` sources are pending."""
        ...

    def intermediate(self) -> None:
        """One pending source settled."""
        ...

    def complete(self, items: Sequence[Any]) -> None:
        """The batch finished; ``items`` are the items fetched by it."""
        ...


class FetchProgress:
    """Counter-based :class:`ItemFetchPipeline` with an optional progress callback."""

    def __init__(self, on_progress: Callable[[int, int], None] | None = None) -> None:
        self.pending = 0
        self.settled = 0
        self.finished = True
        self.items: list[Any] = []
        self._on_progress = on_progress

    def request(self, count: int) -> None:
        self.pending += count
        self.finished = False
        LOGGER.debug("Fetch batch requested: %d pending", self.pending)
        self._notify()

    def intermediate(self) -> None:
        self.settled += 1
        self._notify()

    def complete(self, items: Sequence[Any]) -> None:
        self.items.extend(items)
        self.finished = True
        LOGGER.debug("Fetch batch complete: %d/%d settled", self.settled, self.pending)

    def _notify(self) -> None:
        if self._on_progress is not None:
            self._on_progress(self.settled, self.pending)


__all__ = ["ItemFetchPipeline", "FetchProgress"]
