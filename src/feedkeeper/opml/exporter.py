"""Export the current groups and sources as an outline document."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Mapping

from ..events import EventBus, NoticePosted
from ..groups.models import GroupCollection
from ..sources.models import Source
from ..utils import file_io
from .codec import DEFAULT_EXPORT_TITLE, encode

__all__ = ["ExportOrchestrator"]

LOGGER = logging.getLogger(__name__)


class ExportOrchestrator:
    """Render snapshots of the group collection and source table to OPML.

    Both collaborators are read through callables so each export sees the
    latest snapshot without holding a reference to a mutable container.
    """

    def __init__(
        self,
        groups: Callable[[], GroupCollection],
        sources: Callable[[], Mapping[int, Source]],
        event_bus: EventBus,
        *,
        title: str = DEFAULT_EXPORT_TITLE,
    ) -> None:
        self._groups = groups
        self._sources = sources
        self._bus = event_bus
        self._title = title

    def render(self) -> str:
        return encode(self._groups(), self._sources(), title=self._title)

    def export_file(self, path: Path | str) -> Path | None:
        """Write the document to ``path``.

        A write failure is reported as a :class:`NoticePosted` event and
        ``None`` is returned; nothing in memory changes either way.
        """
        document = self.render()
        try:
            target = file_io.write_text(path, document)
        except OSError as exc:
            LOGGER.warning("Export to %s failed: %s", path, exc)
            self._bus.publish(NoticePosted(title="Could not write the export file", detail=str(exc)))
            return None
        LOGGER.info("Exported %d groups to %s", len(self._groups()), target)
        return target
