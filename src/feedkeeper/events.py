"""Event bus infrastructure for observing group, source and import activity.

Stores and orchestrators publish events here instead of calling presentation
code directly, so any front end (CLI, tests, a GUI) can subscribe to the
same stream.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Generic,
    TypeVar,
    TYPE_CHECKING,
)
from weakref import WeakMethod, ref

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from typing import DefaultDict

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all events published on the :class:`EventBus`.

    Subclasses are slotted dataclasses::

        @dataclass(slots=True)
        class SourceCreated(Event):
            sid: int
            url: str
    """

    pass


# Event types published once per settled item; not logged on publish
_QUIET_EVENT_TYPES: set[type] = set()


# =============================================================================
# Group events
# =============================================================================


@dataclass(slots=True)
class GroupsChanged(Event):
    """Emitted after the group store accepted a transition.

    Attributes:
        seq: Position of the transition in the store's transition log.
        transition: The accepted transition record.
        groups: The new, fully materialized group collection.
    """

    seq: int
    transition: Any
    groups: tuple[Any, ...]


@dataclass(slots=True)
class PersistenceFailed(Event):
    """Emitted when a best-effort save did not reach durable storage.

    Attributes:
        target: What was being saved (``"groups"``, ``"sources"``, ...).
        error: Rendered error message.
    """

    target: str
    error: str


# =============================================================================
# Source events
# =============================================================================


@dataclass(slots=True)
class SourceCreated(Event):
    """Emitted when a new source was added to the source table."""

    sid: int
    url: str


@dataclass(slots=True)
class SourceUpdated(Event):
    """Emitted when fetch-behavior attributes of a source changed."""

    sid: int


@dataclass(slots=True)
class SourceRemoved(Event):
    """Emitted when a source was deleted from the source table."""

    sid: int


# =============================================================================
# Import events
# =============================================================================


@dataclass(slots=True)
class ImportStarted(Event):
    """Emitted once the outline was decoded and the fan-out is about to start.

    Attributes:
        total: Number of source-creation calls that will be launched.
        groups_created: Number of groups created for named containers.
    """

    total: int
    groups_created: int = 0


@dataclass(slots=True)
class ImportItemSettled(Event):
    """Emitted each time one source-creation call settles.

    No ordering between items is implied; ``settled`` only counts up.

    Attributes:
        settled: Number of calls settled so far, including this one.
        total: Number of calls launched for the batch.
        url: Endpoint of the settled item.
        ok: Whether the item succeeded.
    """

    settled: int
    total: int
    url: str
    ok: bool


_QUIET_EVENT_TYPES.add(ImportItemSettled)


@dataclass(slots=True)
class ImportFinished(Event):
    """Emitted after every launched call settled.

    Attributes:
        report: The aggregated :class:`~feedkeeper.opml.importer.ImportReport`.
    """

    report: Any


# =============================================================================
# User-facing notices
# =============================================================================


@dataclass(slots=True)
class NoticePosted(Event):
    """A message meant for the user (dialog, status line, stderr).

    Attributes:
        title: Short summary line.
        detail: Longer body, possibly multi-line.
        level: ``"info"``, ``"warning"`` or ``"error"``.
    """

    title: str
    detail: str = ""
    level: str = "error"


class EventBus(Generic[E]):
    """A typed publish-subscribe event bus.

    Handlers subscribe to a concrete event type and are invoked synchronously,
    in subscription order, whenever an event of exactly that type is
    published. Bound methods are held through weak references so subscribers
    are dropped once their owner is garbage collected.

    Example::

        bus = EventBus()

        def on_notice(event: NoticePosted) -> None:
            print(event.title)

        bus.subscribe(NoticePosted, on_notice)
        bus.publish(NoticePosted(title="Import failed"))

    Thread Safety:
        Not thread-safe. Publish from the thread running the event loop.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: DefaultDict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Register ``handler`` for events of ``event_type``.

        Subscribing the same handler twice results in two invocations.
        """
        handler_ref = _HandlerRef.create(handler)
        self._handlers[event_type].append(handler_ref)
        logger.debug(
            "Subscribed handler %s to event type %s",
            _handler_name(handler),
            event_type.__name__,
        )

    def publish(self, event: E) -> None:
        """Deliver ``event`` to every live handler.

        A handler raising an exception is logged and does not prevent the
        remaining handlers from running.
        """
        event_type = type(event)
        handlers = self._handlers.get(event_type)
        is_quiet = event_type in _QUIET_EVENT_TYPES

        if not handlers:
            if not is_quiet:
                logger.debug("No handlers for event type %s", event_type.__name__)
            return

        if not is_quiet:
            logger.debug(
                "Publishing %s to %d handler(s)",
                event_type.__name__,
                len(handlers),
            )

        dead_indices: list[int] = []

        for i, handler_ref in enumerate(handlers):
            handler = handler_ref.resolve()
            if handler is None:
                dead_indices.append(i)
                continue

            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Handler %s raised exception for event %s",
                    _handler_name(handler),
                    event_type.__name__,
                )

        for i in reversed(dead_indices):
            handlers.pop(i)


class _HandlerRef:
    """Weak reference for bound methods, strong reference for everything else."""

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: WeakMethod | ref | Handler, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> _HandlerRef:
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                pass
        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        if not self._is_weak:
            return self._ref  # type: ignore[return-value]
        return self._ref()  # type: ignore[operator]


def _handler_name(handler: Handler) -> str:
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        cls_name = type(handler.__self__).__name__
        return f"{cls_name}.{handler.__func__.__name__}"
    if hasattr(handler, "__name__"):
        return handler.__name__
    return repr(handler)


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "GroupsChanged",
    "PersistenceFailed",
    "SourceCreated",
    "SourceUpdated",
    "SourceRemoved",
    "ImportStarted",
    "ImportItemSettled",
    "ImportFinished",
    "NoticePosted",
]
