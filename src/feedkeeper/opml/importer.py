"""Bulk import of an outline document into the group and source tables.

The orchestrator decodes the document, creates one group per named
container, then launches one independent source-creation call per feed. The
calls run concurrently on the event loop; a :class:`BatchCoordinator`
collects one settlement per call and only completes once all of them have
settled, whatever order they finish in.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Protocol, Sequence

from ..errors import InvariantViolation, OutlineParseError, SourceCreationError
from ..events import (
    EventBus,
    ImportFinished,
    ImportItemSettled,
    ImportStarted,
    NoticePosted,
)
from ..groups.store import GroupStore
from ..sources.pipeline import ItemFetchPipeline
from ..utils import file_io
from .codec import OutlineDescriptor, decode

__all__ = [
    "SourceCreator",
    "Settlement",
    "BatchCoordinator",
    "ImportFailure",
    "ImportReport",
    "ImportOrchestrator",
]

LOGGER = logging.getLogger(__name__)


class SourceCreator(Protocol):
    async def create(self, endpoint: str, name: str | None = None, silent: bool = False) -> int:
        ...


@dataclass(frozen=True, slots=True)
class Settlement:
    """Terminal outcome of one launched call."""

    index: int
    url: str
    sid: int | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BatchCoordinator:
    """Run a fixed number of independent calls and wait for all to settle.

    ``launch`` schedules each call as its own task straight away. Every task
    reports exactly one :class:`Settlement`; :meth:`wait` returns once the
    settlement count reaches ``total``. Exceptions that escape a call are
    recorded as failed settlements so the count still completes, and the
    first of them is re-raised by :meth:`wait`.
    """

    def __init__(
        self,
        total: int,
        *,
        on_settled: Callable[[Settlement, int], None] | None = None,
    ) -> None:
        if total < 0:
            raise ValueError("total must not be negative")
        self._total = total
        self._on_settled = on_settled
        self._settlements: list[Settlement] = []
        self._unexpected: list[BaseException] = []
        self._tasks: set[asyncio.Task[None]] = set()
        self._launched = 0
        self._done = asyncio.Event()
        if total == 0:
            self._done.set()

    @property
    def total(self) -> int:
        return self._total

    @property
    def settled(self) -> int:
        return len(self._settlements)

    def launch(self, index: int, url: str, call: Awaitable[Settlement]) -> None:
        if self._launched >= self._total:
            raise RuntimeError(f"batch of {self._total} calls is already fully launched")
        self._launched += 1
        task = asyncio.get_running_loop().create_task(self._run(index, url, call))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def wait(self) -> list[Settlement]:
        """Wait for every launched call to settle and return the settlements.

        Settlements are returned in the order the calls were launched.
        """
        await self._done.wait()
        if self._unexpected:
            raise self._unexpected[0]
        return sorted(self._settlements, key=lambda settlement: settlement.index)

    async def _run(self, index: int, url: str, call: Awaitable[Settlement]) -> None:
        try:
            settlement = await call
        except Exception as exc:
            self._unexpected.append(exc)
            settlement = Settlement(index=index, url=url, error=exc)
        self._settle(settlement)

    def _settle(self, settlement: Settlement) -> None:
        self._settlements.append(settlement)
        count = len(self._settlements)
        if self._on_settled is not None:
            try:
                self._on_settled(settlement, count)
            except Exception:
                LOGGER.exception("Settlement callback failed for %s", settlement.url)
        if count >= self._total:
            self._done.set()


@dataclass(frozen=True, slots=True)
class ImportFailure:
    url: str
    error: str


@dataclass(slots=True)
class ImportReport:
    """Aggregated outcome of one import batch."""

    total: int = 0
    succeeded: int = 0
    groups_created: int = 0
    sids: list[int] = field(default_factory=list)
    errors: list[ImportFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.errors)

    @property
    def ok(self) -> bool:
        return not self.errors

    def describe_errors(self) -> str:
        return "\n".join(f"{failure.url}\n{failure.error}" for failure in self.errors)


class ImportOrchestrator:
    """Import outline documents through the group store and a source creator.

    Events Emitted:
        - ImportStarted, ImportItemSettled (per item), ImportFinished
        - NoticePosted: once per batch with failures, or for an unparseable
          document
    """

    def __init__(
        self,
        store: GroupStore,
        creator: SourceCreator,
        event_bus: EventBus,
        *,
        pipeline: ItemFetchPipeline | None = None,
    ) -> None:
        self._store = store
        self._creator = creator
        self._bus = event_bus
        self._pipeline = pipeline

    async def import_file(self, path: Path | str) -> ImportReport:
        """Read ``path`` (any BOM/encoding) and import it."""
        return await self.import_text(file_io.read_text(path))

    async def import_text(self, document: str | bytes) -> ImportReport:
        """Import ``document`` and return the aggregated report.

        Raises:
            OutlineParseError: If the document is not well-formed. No group
                is created and no source-creation call is made.
        """
        try:
            decoded = decode(document)
        except OutlineParseError as exc:
            LOGGER.warning("Import aborted: %s", exc)
            self._bus.publish(
                NoticePosted(
                    title="The file could not be parsed",
                    detail="Make sure it is a valid OPML document. " + exc.detail,
                )
            )
            raise

        targets: dict[int, int] = {}
        for name, indices in decoded.groups:
            group_index = self._store.create_group(name)
            for index in indices:
                targets[index] = group_index

        descriptors = decoded.descriptors
        total = len(descriptors)
        LOGGER.info("Importing %d feeds into %d new groups", total, len(decoded.groups))
        if self._pipeline is not None:
            self._pipeline.request(total)
        self._bus.publish(ImportStarted(total=total, groups_created=len(decoded.groups)))

        coordinator = BatchCoordinator(total, on_settled=self._on_settled(total))
        for index, descriptor in enumerate(descriptors):
            coordinator.launch(
                index,
                descriptor.url,
                self._import_one(index, descriptor, targets.get(index)),
            )
        settlements = await coordinator.wait()

        if self._pipeline is not None:
            self._pipeline.complete([])
        report = self._build_report(settlements, groups_created=len(decoded.groups))
        self._bus.publish(ImportFinished(report=report))
        if report.errors:
            LOGGER.warning(
                "Import finished with %d of %d feeds failing", report.failed, report.total
            )
            self._bus.publish(
                NoticePosted(
                    title=f"{report.failed} source(s) could not be imported",
                    detail=report.describe_errors(),
                )
            )
        else:
            LOGGER.info("Import finished: %d feeds added", report.succeeded)
        return report

    async def _import_one(
        self,
        index: int,
        descriptor: OutlineDescriptor,
        target: int | None,
    ) -> Settlement:
        try:
            sid = await self._creator.create(descriptor.url, descriptor.name, silent=True)
        except InvariantViolation:
            raise
        except Exception as exc:
            LOGGER.info("Import of %s failed: %s", descriptor.url, exc)
            return Settlement(index=index, url=descriptor.url, error=exc)
        if target is not None:
            self._store.add_source_to_group(target, sid)
        return Settlement(index=index, url=descriptor.url, sid=sid)

    def _on_settled(self, total: int) -> Callable[[Settlement, int], None]:
        def notify(settlement: Settlement, count: int) -> None:
            if self._pipeline is not None:
                self._pipeline.intermediate()
            self._bus.publish(
                ImportItemSettled(settled=count, total=total, url=settlement.url, ok=settlement.ok)
            )

        return notify

    @staticmethod
    def _build_report(settlements: Sequence[Settlement], *, groups_created: int) -> ImportReport:
        report = ImportReport(total=len(settlements), groups_created=groups_created)
        for settlement in settlements:
            if settlement.ok:
                report.succeeded += 1
                if settlement.sid is not None:
                    report.sids.append(settlement.sid)
                continue
            error = settlement.error
            cause = error.cause if isinstance(error, SourceCreationError) else error
            report.errors.append(ImportFailure(url=settlement.url, error=str(cause)))
        return report
