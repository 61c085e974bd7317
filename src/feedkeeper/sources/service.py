"""Source creation, update and deletion.

:class:`SourceService` owns the source table and is the only writer of it.
It keeps the group store in step: a created source is announced with
``SourceAdded`` and a deleted one with ``SourceDeleted``, so every sid in the
table always sits in exactly one group.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Iterable, Protocol
from urllib.parse import urlsplit

from ..errors import SourceCreationError
from ..events import (
    EventBus,
    NoticePosted,
    PersistenceFailed,
    SourceCreated,
    SourceRemoved,
    SourceUpdated,
)
from ..groups.store import GroupStore
from .models import Source, SourceTable
from .probe import FeedInfo

LOGGER = logging.getLogger(__name__)
_EDITABLE_FIELDS = frozenset({"name", "icon_url", "open_target", "fetch_frequency"})


class FeedProber(Protocol):
    async def probe(self, url: str) -> FeedInfo:
        ...


class SourceRepository(Protocol):
    def load(self) -> SourceTable:
        ...

    def save(self, sources: Iterable[Source]) -> Any:
        ...


class SourceService:
    """Domain manager for the source table.

    Events Emitted:
        - SourceCreated / SourceUpdated / SourceRemoved
        - NoticePosted: for non-silent creation failures and failed saves
    """

    def __init__(
        self,
        store: GroupStore,
        event_bus: EventBus,
        *,
        probe: FeedProber,
        repository: SourceRepository | None = None,
        sources: SourceTable | None = None,
        default_fetch_frequency: int = 0,
    ) -> None:
        self._store = store
        self._bus = event_bus
        self._probe = probe
        self._repository = repository
        if sources is None:
            sources = repository.load() if repository is not None else SourceTable()
        self._sources = sources
        self._default_fetch_frequency = default_fetch_frequency

    @property
    def sources(self) -> SourceTable:
        """Return the current source table snapshot."""
        return self._sources

    async def create(self, endpoint: str, name: str | None = None, silent: bool = False) -> int:
        """Create a source for ``endpoint`` and return its sid.

        Args:
            endpoint: Feed URL. Surrounding whitespace is ignored.
            name: Display name; defaults to the feed title, then the URL.
            silent: Skip the per-failure user notice (used by batch imports,
                which report failures in aggregate).

        Raises:
            SourceCreationError: If the endpoint is invalid, already
                subscribed, unreachable or not a feed.
        """
        try:
            return await self._create(endpoint, name)
        except SourceCreationError as exc:
            LOGGER.info("Source creation failed for %s: %s", endpoint, exc.cause)
            if not silent:
                self._bus.publish(
                    NoticePosted(title="Could not add source", detail=str(exc))
                )
            raise

    async def _create(self, endpoint: str, name: str | None) -> int:
        url = (endpoint or "").strip()
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise SourceCreationError(endpoint, "not a valid http(s) URL")
        if self._sources.find_by_url(url) is not None:
            raise SourceCreationError(endpoint, "source already exists")

        try:
            info = await self._probe.probe(url)
        except Exception as exc:
            raise SourceCreationError(endpoint, exc) from exc

        # Another creation for the same URL may have settled while we waited.
        if self._sources.find_by_url(url) is not None:
            raise SourceCreationError(endpoint, "source already exists")

        source = Source(
            sid=self._sources.next_sid(),
            url=url,
            name=(name or "").strip() or info.title or url,
            icon_url=info.icon_url,
            fetch_frequency=self._default_fetch_frequency,
        )
        self._sources = self._sources.with_source(source)
        self._persist()
        LOGGER.debug("Created source sid=%d url=%s", source.sid, url)
        self._bus.publish(SourceCreated(sid=source.sid, url=url))
        self._store.source_added(source.sid)
        return source.sid

    def update_source(self, sid: int, **changes: Any) -> Source:
        """Change display or fetch-behavior attributes of a source.

        Raises:
            KeyError: If ``sid`` is unknown.
            ValueError: If a field other than name, icon URL, open target or
                fetch frequency is given, or the frequency is negative.
        """
        current = self._sources[sid]
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"cannot update source fields: {sorted(unknown)}")
        if changes.get("fetch_frequency", 0) < 0:
            raise ValueError("fetch_frequency must not be negative")
        updated = replace(current, **changes)
        if updated == current:
            return current
        self._sources = self._sources.with_source(updated)
        self._persist()
        self._bus.publish(SourceUpdated(sid=sid))
        return updated

    def delete_source(self, sid: int) -> None:
        """Remove ``sid`` from the table and from its group.

        Raises:
            KeyError: If ``sid`` is unknown.
        """
        self.delete_sources((sid,))

    def delete_sources(self, sids: Iterable[int]) -> None:
        targets = list(dict.fromkeys(sids))
        missing = [sid for sid in targets if sid not in self._sources]
        if missing:
            raise KeyError(f"unknown sources: {missing}")
        for sid in targets:
            self._sources = self._sources.without(sid)
            self._store.source_deleted(sid)
            self._bus.publish(SourceRemoved(sid=sid))
        if targets:
            self._persist()

    def _persist(self) -> None:
        if self._repository is None:
            return
        try:
            self._repository.save(self._sources.values())
        except Exception as exc:
            LOGGER.warning("Saving sources failed; in-memory state kept: %s", exc)
            self._bus.publish(PersistenceFailed(target="sources", error=str(exc)))
            self._bus.publish(NoticePosted(title="Could not save sources", detail=str(exc)))


__all__ = ["FeedProber", "SourceRepository", "SourceService"]
