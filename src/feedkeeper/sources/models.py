"""Source data model."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Iterator, Mapping

__all__ = ["SourceOpenTarget", "Source", "SourceTable"]


class SourceOpenTarget(Enum):
    """Where articles of a source are opened."""

    LOCAL = 0
    WEBPAGE = 1
    EXTERNAL = 2
    FULL_CONTENT = 3


@dataclass(frozen=True, slots=True)
class Source:
    """A single feed subscription.

    ``fetch_frequency`` is in minutes; ``0`` follows the global schedule.
    """

    sid: int
    url: str
    name: str
    icon_url: str | None = None
    open_target: SourceOpenTarget = SourceOpenTarget.LOCAL
    fetch_frequency: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "sid": self.sid,
            "url": self.url,
            "name": self.name,
            "iconurl": self.icon_url,
            "openTarget": self.open_target.value,
            "fetchFrequency": self.fetch_frequency,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Source:
        return cls(
            sid=int(payload["sid"]),
            url=str(payload["url"]),
            name=str(payload.get("name") or payload["url"]),
            icon_url=payload.get("iconurl"),
            open_target=SourceOpenTarget(int(payload.get("openTarget", 0))),
            fetch_frequency=int(payload.get("fetchFrequency", 0)),
        )


class SourceTable(Mapping[int, Source]):
    """Read-only ``sid -> Source`` mapping with URL lookup."""

    __slots__ = ("_sources",)

    def __init__(self, sources: Mapping[int, Source] | None = None) -> None:
        self._sources: dict[int, Source] = dict(sources or {})

    @classmethod
    def from_sources(cls, sources: Iterable[Source]) -> SourceTable:
        return cls({source.sid: source for source in sources})

    def __getitem__(self, sid: int) -> Source:
        return self._sources[sid]

    def __iter__(self) -> Iterator[int]:
        return iter(self._sources)

    def __len__(self) -> int:
        return len(self._sources)

    def find_by_url(self, url: str) -> Source | None:
        for source in self._sources.values():
            if source.url == url:
                return source
        return None

    def next_sid(self) -> int:
        return max(self._sources, default=-1) + 1

    def with_source(self, source: Source) -> SourceTable:
        sources = dict(self._sources)
        sources[source.sid] = source
        return SourceTable(sources)

    def without(self, sid: int) -> SourceTable:
        sources = dict(self._sources)
        sources.pop(sid, None)
        return SourceTable(sources)
