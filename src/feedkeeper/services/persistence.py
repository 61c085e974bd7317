"""JSON-file persistence for the group collection and the source table."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

from jsonschema import Draft202012Validator

from ..errors import InvariantViolation, PersistenceError
from ..groups.models import GroupCollection, SourceGroup, check_invariants
from ..sources.models import Source, SourceTable
from ..utils import file_io

__all__ = [
    "GROUPS_SCHEMA",
    "SOURCES_SCHEMA",
    "JsonGroupGateway",
    "JsonSourceRepository",
    "validate_payload",
]

LOGGER = logging.getLogger(__name__)
_PAYLOAD_VERSION = 1
_MAX_REPORTED_ISSUES = 5

_GROUP_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["sids", "isMultiple"],
    "properties": {
        "sids": {"type": "array", "items": {"type": "integer", "minimum": 0}},
        "name": {"type": ["string", "null"]},
        "isMultiple": {"type": "boolean"},
        "expanded": {"type": "boolean"},
    },
}

GROUPS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["groups"],
    "properties": {
        "version": {"type": "integer"},
        "groups": {"type": "array", "items": _GROUP_SCHEMA},
    },
}

SOURCES_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["sources"],
    "properties": {
        "version": {"type": "integer"},
        "sources": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["sid", "url"],
                "properties": {
                    "sid": {"type": "integer", "minimum": 0},
                    "url": {"type": "string", "minLength": 1},
                    "name": {"type": ["string", "null"]},
                    "iconurl": {"type": ["string", "null"]},
                    "openTarget": {"type": "integer", "enum": [0, 1, 2, 3]},
                    "fetchFrequency": {"type": "integer", "minimum": 0},
                },
            },
        },
    },
}


def validate_payload(payload: Any, schema: Mapping[str, Any], path: Path | None) -> None:
    """Raise :class:`PersistenceError` listing the first schema violations."""

    issues: list[str] = []
    for issue in Draft202012Validator(schema).iter_errors(payload):
        location = "/".join(str(part) for part in issue.absolute_path)
        issues.append(f"{location}: {issue.message}" if location else issue.message)
        if len(issues) >= _MAX_REPORTED_ISSUES:
            break
    if issues:
        raise PersistenceError(path, "invalid payload; " + "; ".join(issues))


def _read_payload(path: Path, schema: Mapping[str, Any]) -> dict[str, Any] | None:
    try:
        payload = file_io.read_json(path)
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as exc:
        raise PersistenceError(path, f"unreadable: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise PersistenceError(path, f"not valid JSON: {exc}") from exc
    validate_payload(payload, schema, path)
    return payload


def _write_payload(path: Path, payload: dict[str, Any]) -> Path:
    try:
        return file_io.write_json(path, payload)
    except OSError as exc:
        raise PersistenceError(path, f"write failed: {exc}") from exc


class JsonGroupGateway:
    """Persist the group collection as ``{"version": 1, "groups": [...]}``."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> GroupCollection:
        """Load the collection; a missing file yields an empty collection."""

        payload = _read_payload(self._path, GROUPS_SCHEMA)
        if payload is None:
            LOGGER.debug("No group file at %s; starting empty", self._path)
            return ()
        groups = tuple(SourceGroup.from_dict(item) for item in payload["groups"])
        try:
            check_invariants(groups)
        except InvariantViolation as exc:
            raise PersistenceError(self._path, f"inconsistent groups: {exc}") from exc
        LOGGER.debug("Groups loaded from %s: %d groups", self._path, len(groups))
        return groups

    def save(self, groups: Sequence[SourceGroup]) -> Path:
        payload = {
            "version": _PAYLOAD_VERSION,
            "groups": [group.to_dict() for group in groups],
        }
        path = _write_payload(self._path, payload)
        LOGGER.debug("Groups saved to %s: %d groups", path, len(groups))
        return path


class JsonSourceRepository:
    """Persist the source table as ``{"version": 1, "sources": [...]}``."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> SourceTable:
        payload = _read_payload(self._path, SOURCES_SCHEMA)
        if payload is None:
            return SourceTable()
        try:
            sources = [Source.from_dict(item) for item in payload["sources"]]
        except (KeyError, TypeError, ValueError) as exc:
            raise PersistenceError(self._path, f"invalid source entry: {exc}") from exc
        LOGGER.debug("Sources loaded from %s: %d sources", self._path, len(sources))
        return SourceTable.from_sources(sources)

    def save(self, sources: Iterable[Source]) -> Path:
        ordered = sorted(sources, key=lambda source: source.sid)
        payload = {
            "version": _PAYLOAD_VERSION,
            "sources": [source.to_dict() for source in ordered],
        }
        return _write_payload(self._path, payload)
