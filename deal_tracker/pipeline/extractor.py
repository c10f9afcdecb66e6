"""
Deal Tracker — Streaming Entry Extractor

MTGJSON bulk files are single JSON documents shaped like
``{"meta": {...}, "data": {"<uuid>": {...}, ...}}`` and run to several GB
once decompressed. This module walks the ijson token stream and yields the
``data`` entries one ``(key, value)`` pair at a time, building only the
current value in memory.

The generator owns its file handle: driving it to the end or closing it
early (``gen.close()``, ``break`` out of a for loop) both release the file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Iterator

import ijson
import structlog

from deal_tracker.errors import SnapshotParseError

logger = structlog.get_logger(__name__)

DATA_KEY = "data"

_OPEN_EVENTS = frozenset({"start_map", "start_array"})
_CLOSE_EVENTS = frozenset({"end_map", "end_array"})

# Nesting depth of the "data" object's members: root object = 1, data = 2.
_ENTRY_DEPTH = 2


def stream_data_entries(path: str | Path) -> Iterator[tuple[str, Any]]:
    """
    Lazily yield ``(key, value)`` pairs from the document's ``data`` object.

    Entries come out in document order. Each call opens the file afresh;
    the sequence is single-pass.

    Raises:
        SnapshotParseError: the file is not valid JSON, is truncated, has a
            non-object root, or has no ``data`` object at the top level.
    """
    path = Path(path)
    with path.open("rb") as fh:
        try:
            yield from _iter_entries(ijson.parse(fh), path)
        except (ijson.JSONError, UnicodeDecodeError) as exc:
            logger.error("extractor_parse_failed", path=str(path), error=str(exc))
            raise SnapshotParseError(f"{path}: invalid or truncated JSON ({exc})") from exc


def _iter_entries(
    events: Iterable[tuple[str, str, Any]], path: Path
) -> Iterator[tuple[str, Any]]:
    depth = 0
    in_data = False
    seen_data = False
    key: str | None = None
    builder: ijson.ObjectBuilder | None = None

    for prefix, event, value in events:
        # Inside one entry's value: feed the builder until it closes.
        if builder is not None:
            builder.event(event, value)
            if event in _OPEN_EVENTS:
                depth += 1
            elif event in _CLOSE_EVENTS:
                depth -= 1
                if depth == _ENTRY_DEPTH:
                    yield key, builder.value  # type: ignore[misc]
                    builder = None
            continue

        if in_data:
            if event == "map_key":
                key = value
            elif event in _OPEN_EVENTS:
                builder = ijson.ObjectBuilder()
                builder.event(event, value)
                depth += 1
            elif event == "end_map":
                in_data = False
                depth -= 1
            else:
                yield key, value  # type: ignore[misc]
            continue

        if event in _OPEN_EVENTS:
            depth += 1
            if depth == 1 and event != "start_map":
                raise SnapshotParseError(f"{path}: top-level JSON value is not an object")
            if depth == _ENTRY_DEPTH and prefix == DATA_KEY:
                if event != "start_map":
                    raise SnapshotParseError(f"{path}: '{DATA_KEY}' is not an object")
                in_data = True
                seen_data = True
        elif event in _CLOSE_EVENTS:
            depth -= 1
        elif depth == 0:
            raise SnapshotParseError(f"{path}: top-level JSON value is not an object")
        elif depth == 1 and prefix == DATA_KEY and event != "map_key":
            raise SnapshotParseError(f"{path}: '{DATA_KEY}' is not an object")

    if not seen_data:
        raise SnapshotParseError(f"{path}: missing top-level '{DATA_KEY}' object")
