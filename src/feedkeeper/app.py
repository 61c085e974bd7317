"""Command-line entry point and runtime wiring for feedkeeper."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from .errors import (
    FeedkeeperError,
    InvariantViolation,
    OutlineParseError,
    PersistenceError,
    SourceCreationError,
)
from .events import EventBus, NoticePosted
from .groups.models import check_invariants
from .groups.store import GroupStore
from .opml.exporter import ExportOrchestrator
from .opml.importer import ImportOrchestrator
from .services import backup
from .services.persistence import JsonGroupGateway, JsonSourceRepository
from .services.settings import Settings, SettingsStore
from .sources.pipeline import FetchProgress
from .sources.probe import HttpFeedProbe
from .sources.service import FeedProber, SourceService
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class Runtime:
    """Everything a command needs, wired against one settings snapshot."""

    settings: Settings
    bus: EventBus
    store: GroupStore
    sources: SourceService
    importer: ImportOrchestrator
    exporter: ExportOrchestrator
    progress: FetchProgress
    probe: Any
    owns_probe: bool = False

    async def aclose(self) -> None:
        await self.store.flush()
        if self.owns_probe:
            await self.probe.aclose()


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    """Configure logging for the process."""

    level = logging.DEBUG if debug else logging.INFO
    logging_utils.setup_logging(level, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        return active_store.load(overrides=overrides)
    except OSError as exc:  # pragma: no cover - depends on filesystem
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        return Settings()


def build_runtime(
    settings: Settings,
    *,
    probe: FeedProber | None = None,
    stream: TextIO | None = None,
) -> Runtime:
    """Load persisted state and wire stores, services and orchestrators.

    Without ``probe`` an :class:`HttpFeedProbe` built from ``settings`` is
    used; :meth:`Runtime.aclose` closes it.
    """

    bus: EventBus = EventBus()
    store = GroupStore(JsonGroupGateway(settings.groups_path), bus)
    active_probe = probe or HttpFeedProbe(
        timeout=settings.request_timeout,
        max_retries=settings.max_retries,
        retry_min_seconds=settings.retry_min_seconds,
        retry_max_seconds=settings.retry_max_seconds,
        user_agent=settings.user_agent,
    )
    sources = SourceService(
        store,
        bus,
        probe=active_probe,
        repository=JsonSourceRepository(settings.sources_path),
        default_fetch_frequency=settings.default_fetch_frequency,
    )
    _reconcile(store, sources)

    output = stream or sys.stderr
    progress = FetchProgress(on_progress=lambda done, total: _print_progress(output, done, total))
    importer = ImportOrchestrator(store, sources, bus, pipeline=progress)
    exporter = ExportOrchestrator(
        lambda: store.groups,
        lambda: sources.sources,
        bus,
        title=settings.export_title,
    )
    return Runtime(
        settings=settings,
        bus=bus,
        store=store,
        sources=sources,
        importer=importer,
        exporter=exporter,
        progress=progress,
        probe=active_probe,
        owns_probe=probe is None,
    )


def _reconcile(store: GroupStore, sources: SourceService) -> None:
    """Repair group/source drift left by an interrupted save."""

    table = sources.sources
    for group in store.groups:
        for sid in group.sids:
            if sid not in table:
                _LOGGER.warning("Dropping unknown source %s from groups", sid)
                store.source_deleted(sid)
    for sid in table:
        if store.locate(sid) is None:
            _LOGGER.warning("Source %s was not grouped; giving it its own group", sid)
            store.source_added(sid)
    check_invariants(store.groups, table.keys())


def main(argv: Sequence[str] | None = None, *, probe: FeedProber | None = None) -> int:
    """Entry point invoked by the ``feedkeeper`` console script."""

    parser = _build_parser()
    args = parser.parse_args(argv)

    debug = args.debug or _env_flag("FEEDKEEPER_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("FEEDKEEPER_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)
    if settings.debug_logging and not debug:
        configure_logging(True, force=True)

    if args.command is None:
        parser.print_help(sys.stderr)
        return 2
    if args.command == "settings":
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return 0
    if args.command == "restore":
        return _restore(settings, Path(args.path))

    try:
        return asyncio.run(_run_command(args, settings, probe))
    except (OutlineParseError, SourceCreationError):
        # Already reported through a NoticePosted event
        return 1
    except InvariantViolation as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except (FeedkeeperError, KeyError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


async def _run_command(
    args: argparse.Namespace,
    settings: Settings,
    probe: FeedProber | None = None,
) -> int:
    runtime = build_runtime(settings, probe=probe)
    runtime.bus.subscribe(NoticePosted, _print_notice)
    try:
        return await _dispatch(args, runtime)
    finally:
        await runtime.aclose()


async def _dispatch(args: argparse.Namespace, runtime: Runtime) -> int:
    store = runtime.store
    command = args.command
    if command == "list":
        _print_groups(runtime, sys.stdout)
    elif command == "add":
        sid = await runtime.sources.create(args.url, args.name)
        if args.group is not None:
            store.add_source_to_group(args.group, sid)
        print(sid)
    elif command == "delete":
        runtime.sources.delete_sources(args.sids)
    elif command == "create-group":
        print(store.create_group(args.name))
    elif command == "rename-group":
        store.rename_group(args.index, args.name)
    elif command == "delete-group":
        store.delete_group(args.index)
    elif command == "move":
        store.add_source_to_group(args.index, args.sid)
    elif command == "ungroup":
        store.remove_sources_from_group(args.index, args.sids)
    elif command == "toggle":
        store.toggle_expansion(args.index)
    elif command == "import-opml":
        report = await runtime.importer.import_file(args.path)
        print(f"imported {report.succeeded} of {report.total} feeds")
        return 0 if report.ok else 1
    elif command == "export-opml":
        return 0 if runtime.exporter.export_file(args.path) is not None else 1
    elif command == "backup":
        backup.export_state(args.path, store.groups, runtime.sources.sources)
    return 0


def _restore(settings: Settings, path: Path) -> int:
    try:
        groups, sources = backup.import_state(path)
        JsonSourceRepository(settings.sources_path).save(sources.values())
        JsonGroupGateway(settings.groups_path).save(groups)
    except PersistenceError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print(f"restored {len(groups)} groups and {len(sources)} sources")
    return 0


def _print_groups(runtime: Runtime, stream: TextIO) -> None:
    table = runtime.sources.sources
    for index, group in enumerate(runtime.store.groups):
        if group.is_multiple:
            marker = "-" if group.expanded else "+"
            stream.write(f"[{index}] {marker} {group.name or ''}\n")
            indent = "      "
        else:
            stream.write(f"[{index}] ")
            indent = ""
        for sid in group.sids:
            source = table.get(sid)
            label = f"{source.name} <{source.url}>" if source else "<missing>"
            stream.write(f"{indent}{sid}: {label}\n")


def _print_notice(event: NoticePosted) -> None:
    print(f"{event.level}: {event.title}", file=sys.stderr)
    if event.detail:
        print(event.detail, file=sys.stderr)


def _print_progress(stream: TextIO, done: int, total: int) -> None:
    if total:
        stream.write(f"\r{done}/{total} feeds settled")
        if done >= total:
            stream.write("\n")
        stream.flush()


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="feedkeeper",
        description="Manage feed subscriptions, their groups and OPML import/export.",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    parser.add_argument(
        "--settings",
        dest="settings_path",
        metavar="PATH",
        help="Override the default ~/.feedkeeper/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this run (repeatable).",
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    commands.add_parser("list", help="Show groups and their sources.")
    commands.add_parser("settings", help="Print the effective settings as JSON.")

    add = commands.add_parser("add", help="Subscribe to a feed URL.")
    add.add_argument("url")
    add.add_argument("--name", default=None, help="Display name (defaults to the feed title).")
    add.add_argument("--group", type=int, default=None, metavar="INDEX", help="Target group index.")

    delete = commands.add_parser("delete", help="Delete sources by sid.")
    delete.add_argument("sids", type=int, nargs="+", metavar="SID")

    create = commands.add_parser("create-group", help="Create an empty named group.")
    create.add_argument("name")

    rename = commands.add_parser("rename-group", help="Rename a group.")
    rename.add_argument("index", type=int)
    rename.add_argument("name")

    delete_group = commands.add_parser("delete-group", help="Dissolve a group into one-source groups.")
    delete_group.add_argument("index", type=int)

    move = commands.add_parser("move", help="Move an ungrouped source into a group.")
    move.add_argument("index", type=int)
    move.add_argument("sid", type=int)

    ungroup = commands.add_parser("ungroup", help="Take sources out of a group.")
    ungroup.add_argument("index", type=int)
    ungroup.add_argument("sids", type=int, nargs="+", metavar="SID")

    toggle = commands.add_parser("toggle", help="Flip a group's expanded flag.")
    toggle.add_argument("index", type=int)

    for name, help_text in (
        ("import-opml", "Import feeds and groups from an OPML file."),
        ("export-opml", "Write feeds and groups to an OPML file."),
        ("backup", "Write groups and sources to a JSON backup."),
        ("restore", "Replace groups and sources with a JSON backup."),
    ):
        command = commands.add_parser(name, help=help_text)
        command.add_argument("path")

    return parser


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(key, fields[key].type)
        overrides[key] = _coerce_value(annotation, raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = _resolve_annotation(annotation)
    normalized = raw_value.strip()

    if normalized.lower() in {"none", "null"} and target is not str:
        return None
    if target is str or target is Any:
        return normalized
    if target is bool:
        return _parse_bool(normalized)
    if target is int:
        return int(normalized, 10)
    if target is float:
        return float(normalized)
    return normalized


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    return args[0]


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    metadata = {
        "path": str(store.path),
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": sorted(
            name for name in os.environ if name.startswith("FEEDKEEPER_")
        ),
    }
    json.dump({"settings": asdict(settings), "meta": metadata}, destination, indent=2)
    destination.write("\n")


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
