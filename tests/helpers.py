"""Shared test helpers and stub classes.

Import from here instead of duplicating these classes in individual test
files.
"""

from __future__ import annotations

import asyncio
from typing import Iterable, Mapping

from feedkeeper.groups.models import GroupCollection, SourceGroup
from feedkeeper.sources.models import Source, SourceTable
from feedkeeper.sources.probe import FeedInfo, FeedProbeError


class RecordingGateway:
    """In-memory group gateway that records every saved snapshot."""

    def __init__(self, initial: Iterable[SourceGroup] = (), *, fail: bool = False) -> None:
        self.initial: GroupCollection = tuple(initial)
        self.saved: list[GroupCollection] = []
        self.fail = fail

    def load(self) -> GroupCollection:
        return self.initial

    def save(self, groups: GroupCollection) -> None:
        if self.fail:
            raise OSError("disk full")
        self.saved.append(groups)


class AsyncRecordingGateway(RecordingGateway):
    """Gateway whose ``save`` is a coroutine function."""

    async def save(self, groups: GroupCollection) -> None:  # type: ignore[override]
        await asyncio.sleep(0)
        super().save(groups)


class RecordingRepository:
    """In-memory source repository."""

    def __init__(self, sources: Iterable[Source] = (), *, fail: bool = False) -> None:
        self.table = SourceTable.from_sources(sources)
        self.saved: list[list[Source]] = []
        self.fail = fail

    def load(self) -> SourceTable:
        return self.table

    def save(self, sources: Iterable[Source]) -> None:
        if self.fail:
            raise OSError("read-only file system")
        self.saved.append(list(sources))


class StaticProbe:
    """Feed probe stub answering from a table instead of the network.

    ``failures`` maps URLs to the error message raised for them; ``delays``
    maps URLs to seconds slept before answering. Any other URL succeeds with
    a title derived from the URL.
    """

    def __init__(
        self,
        *,
        failures: Mapping[str, str] | None = None,
        delays: Mapping[str, float] | None = None,
        titles: Mapping[str, str] | None = None,
    ) -> None:
        self.failures = dict(failures or {})
        self.delays = dict(delays or {})
        self.titles = dict(titles or {})
        self.calls: list[str] = []

    async def probe(self, url: str) -> FeedInfo:
        self.calls.append(url)
        delay = self.delays.get(url, 0.0)
        await asyncio.sleep(delay)
        if url in self.failures:
            raise FeedProbeError(self.failures[url])
        return FeedInfo(url=url, title=self.titles.get(url, f"Feed at {url}"), entry_count=1)


def source(sid: int, url: str | None = None, name: str | None = None) -> Source:
    url = url or f"https://feeds.example.com/{sid}.xml"
    return Source(sid=sid, url=url, name=name or f"Source {sid}")
