"""Whole-state backup and restore (groups and sources in one JSON file)."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Sequence

from ..errors import InvariantViolation, PersistenceError
from ..groups.models import GroupCollection, SourceGroup, check_invariants
from ..sources.models import Source, SourceTable
from ..utils import file_io
from .persistence import GROUPS_SCHEMA, SOURCES_SCHEMA, validate_payload

__all__ = ["export_state", "import_state"]

LOGGER = logging.getLogger(__name__)
_BACKUP_VERSION = 1
_BACKUP_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["groups", "sources"],
    "properties": {
        "version": {"type": "integer"},
        "groups": GROUPS_SCHEMA["properties"]["groups"],
        "sources": SOURCES_SCHEMA["properties"]["sources"],
    },
}


def export_state(
    path: Path | str,
    groups: Sequence[SourceGroup],
    sources: Mapping[int, Source],
) -> Path:
    """Write ``groups`` and ``sources`` to a single backup file."""

    payload = {
        "version": _BACKUP_VERSION,
        "groups": [group.to_dict() for group in groups],
        "sources": [sources[sid].to_dict() for sid in sorted(sources)],
    }
    try:
        target = file_io.write_json(path, payload)
    except OSError as exc:
        raise PersistenceError(path, f"write failed: {exc}") from exc
    LOGGER.info("Backup written to %s: %d groups, %d sources", target, len(groups), len(sources))
    return target


def import_state(path: Path | str) -> tuple[GroupCollection, SourceTable]:
    """Read a backup file and return the validated groups and sources.

    Raises:
        PersistenceError: If the file is missing, not JSON, does not match
            the backup layout or breaks the grouping invariants.
    """

    target = Path(path)
    try:
        payload = file_io.read_json(target)
    except (OSError, UnicodeDecodeError) as exc:
        raise PersistenceError(target, f"unreadable: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise PersistenceError(target, f"not valid JSON: {exc}") from exc
    validate_payload(payload, _BACKUP_SCHEMA, target)

    groups = tuple(SourceGroup.from_dict(item) for item in payload["groups"])
    sources = SourceTable.from_sources(Source.from_dict(item) for item in payload["sources"])
    try:
        check_invariants(groups, sources.keys())
    except InvariantViolation as exc:
        raise PersistenceError(target, f"inconsistent backup: {exc}") from exc
    LOGGER.info("Backup read from %s: %d groups, %d sources", target, len(groups), len(sources))
    return groups, sources
