"""Error hierarchy shared by the group, source and outline layers."""

from __future__ import annotations

from pathlib import Path
from typing import Any

__all__ = [
    "FeedkeeperError",
    "OutlineParseError",
    "SourceCreationError",
    "PersistenceError",
    "InvariantViolation",
]


class FeedkeeperError(RuntimeError):
    """Base class for all errors raised by feedkeeper."""


class OutlineParseError(FeedkeeperError):
    """Raised when an outline document is not a well-formed tree.

    This failure is terminal for an import: it is raised before any source is
    created or any group transition is dispatched.
    """

    def __init__(self, message: str) -> None:
        super().__init__(f"Outline document could not be parsed: {message}")
        self.detail = message


class SourceCreationError(FeedkeeperError):
    """Raised when a single source could not be created.

    Attributes:
        endpoint: The endpoint exactly as it was requested.
        cause: The underlying error or a human-readable reason.
    """

    def __init__(self, endpoint: str, cause: Any) -> None:
        super().__init__(f"{endpoint}: {cause}")
        self.endpoint = endpoint
        self.cause = cause


class PersistenceError(FeedkeeperError):
    """Raised when persisted state cannot be read or written."""

    def __init__(self, path: Path | str | None, message: str) -> None:
        location = str(path) if path is not None else "<memory>"
        super().__init__(f"{location}: {message}")
        self.path = Path(path) if path is not None else None


class InvariantViolation(FeedkeeperError):
    """Raised when a transition is dispatched without its preconditions.

    This signals a mis-sequenced caller and is never treated as a
    recoverable runtime condition.
    """
