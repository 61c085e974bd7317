"""Mapping between OPML outline documents and flat source descriptors.

Only the subset feed readers exchange is understood: feed leaves directly
under ``<body>`` and one level of named containers wrapping feed leaves.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from ..errors import OutlineParseError
from ..groups.models import SourceGroup
from ..sources.models import Source

__all__ = [
    "DEFAULT_EXPORT_TITLE",
    "OutlineDescriptor",
    "DecodedOutline",
    "decode",
    "encode",
]

LOGGER = logging.getLogger(__name__)
DEFAULT_EXPORT_TITLE = "Feedkeeper Export"
_FEED_TYPES = frozenset({"rss", "atom"})


@dataclass(frozen=True, slots=True)
class OutlineDescriptor:
    """One feed found in a document.

    Attributes:
        url: Endpoint exactly as written in ``xmlUrl``.
        name: Display name from ``text`` or ``name``, if present.
        group: Name of the enclosing container, ``None`` for top-level feeds.
    """

    url: str
    name: str | None = None
    group: str | None = None


@dataclass(slots=True)
class DecodedOutline:
    """Result of :func:`decode`.

    ``groups`` lists each container in document order together with the
    indices of its descriptors in ``descriptors``.
    """

    descriptors: list[OutlineDescriptor] = field(default_factory=list)
    groups: list[tuple[str, list[int]]] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.descriptors or self.groups)


def decode(document: str | bytes) -> DecodedOutline:
    """Decode an outline document into descriptors and container names.

    A well-formed document without ``<body>`` or without usable outlines
    decodes to an empty result.

    Raises:
        OutlineParseError: If the document is not well-formed XML.
    """

    try:
        root = ET.fromstring(document)
    except ET.ParseError as exc:
        raise OutlineParseError(str(exc)) from exc

    result = DecodedOutline()
    body = next(root.iter("body"), None)
    if body is None:
        LOGGER.debug("Outline document has no <body>; nothing to import")
        return result

    for element in body:
        if _is_feed_item(element):
            descriptor = _descriptor(element, None)
            if descriptor is not None:
                result.descriptors.append(descriptor)
            continue
        group_name = _attr(element, "text") or _attr(element, "title")
        if group_name is None:
            LOGGER.debug("Skipping outline without feed URL or title: %s", element.attrib)
            continue
        indices: list[int] = []
        for child in element:
            descriptor = _descriptor(child, group_name)
            if descriptor is not None:
                indices.append(len(result.descriptors))
                result.descriptors.append(descriptor)
        result.groups.append((group_name, indices))

    LOGGER.debug(
        "Decoded outline: %d feeds, %d groups",
        len(result.descriptors),
        len(result.groups),
    )
    return result


def encode(
    groups: Sequence[SourceGroup],
    sources: Mapping[int, Source],
    *,
    title: str = DEFAULT_EXPORT_TITLE,
) -> str:
    """Render ``groups`` as an OPML 1.0 document, following collection order."""

    root = ET.Element("opml", {"version": "1.0"})
    head = ET.SubElement(root, "head")
    ET.SubElement(head, "title").text = title
    body = ET.SubElement(root, "body")

    for group in groups:
        if group.is_multiple:
            name = group.name or ""
            container = ET.SubElement(body, "outline", {"text": name, "name": name})
            parent = container
        else:
            parent = body
        for sid in group.sids:
            source = sources.get(sid)
            if source is None:
                LOGGER.warning("Group references unknown source %s; not exported", sid)
                continue
            _append_leaf(parent, source)

    ET.indent(root)
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(root, encoding="unicode")


def _append_leaf(parent: ET.Element, source: Source) -> None:
    ET.SubElement(
        parent,
        "outline",
        {
            "text": source.name,
            "name": source.name,
            "type": "rss",
            "xmlUrl": source.url,
        },
    )


def _is_feed_item(element: ET.Element) -> bool:
    kind = element.get("type")
    if kind is None:
        # Many exporters omit ``type`` on feed leaves
        return _attr(element, "xmlUrl") is not None and len(element) == 0
    return kind.strip().lower() in _FEED_TYPES


def _descriptor(element: ET.Element, group: str | None) -> OutlineDescriptor | None:
    if _attr(element, "xmlUrl") is None:
        return None
    url = element.get("xmlUrl", "")
    name = _attr(element, "text") or _attr(element, "name")
    return OutlineDescriptor(url=url, name=name, group=group)


def _attr(element: ET.Element, key: str) -> str | None:
    value = element.get(key)
    if value is None:
        return None
    value = value.strip()
    return value or None
