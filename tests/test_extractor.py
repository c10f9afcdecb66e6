"""
Tests for the streaming entry extractor (deal_tracker/pipeline/extractor.py).

Covers:
- Completeness and document order of (key, value) pairs
- Nested values, scalars and empty data
- Keys outside "data" (meta, trailing keys) are ignored
- Large synthetic input (10^6 entries) streamed without building the document
- Malformed input: missing data, non-object data/root, truncated, invalid JSON
- Abandoning the iterator early closes the file
"""

from __future__ import annotations

import gc
import json
from decimal import Decimal
from pathlib import Path
from typing import Callable
from unittest.mock import patch

import pytest

from deal_tracker.errors import ErrorKind, SnapshotParseError
from deal_tracker.pipeline.extractor import stream_data_entries


class _CountingReader:
    """Binary file wrapper that records how many bytes were read."""

    def __init__(self, fh) -> None:
        self._fh = fh
        self.consumed = 0

    def read(self, size: int = -1) -> bytes:
        chunk = self._fh.read(size)
        self.consumed += len(chunk)
        return chunk

    @property
    def closed(self) -> bool:
        return self._fh.closed

    def __enter__(self) -> _CountingReader:
        return self

    def __exit__(self, *args) -> None:
        self._fh.close()


# ---------------------------------------------------------------------------
# Completeness
# ---------------------------------------------------------------------------


def test_yields_every_entry_in_document_order(write_snapshot: Callable[..., Path]) -> None:
    """N entries in, exactly N unique pairs out, in source order."""
    data = {
        "uuid-c": {"name": "Ragavan", "legalities": {"commander": "Legal"}},
        "uuid-a": {"name": "Sol Ring", "identifiers": {"mcmId": "123"}},
        "uuid-b": {"name": "Rhystic Study", "printings": ["PCY", "CMR"]},
    }
    path = write_snapshot(data)

    pairs = list(stream_data_entries(path))

    assert [key for key, _ in pairs] == ["uuid-c", "uuid-a", "uuid-b"]
    assert dict(pairs) == data


def test_values_match_source_exactly(write_snapshot: Callable[..., Path]) -> None:
    """Deeply nested values are rebuilt intact; reals come back as Decimal."""
    value = {
        "paper": {
            "cardmarket": {
                "retail": {
                    "normal": {"2026-02-22": 50.25, "2026-02-23": 40},
                    "foil": {},
                },
                "currency": "EUR",
            }
        },
        "flags": [True, False, None, [1, [2, {"x": "y"}]]],
    }
    path = write_snapshot({"u1": value})

    ((key, got),) = list(stream_data_entries(path))

    assert key == "u1"
    assert got["paper"]["cardmarket"]["retail"]["normal"]["2026-02-22"] == Decimal("50.25")
    assert got["paper"]["cardmarket"]["retail"]["normal"]["2026-02-23"] == 40
    assert got["paper"]["cardmarket"]["retail"]["foil"] == {}
    assert got["flags"] == [True, False, None, [1, [2, {"x": "y"}]]]


def test_scalar_and_array_values(write_snapshot: Callable[..., Path]) -> None:
    path = write_snapshot({"a": 1, "b": "two", "c": None, "d": [1, 2], "e": {}})

    assert list(stream_data_entries(path)) == [
        ("a", 1),
        ("b", "two"),
        ("c", None),
        ("d", [1, 2]),
        ("e", {}),
    ]


def test_empty_data_object_yields_nothing(write_snapshot: Callable[..., Path]) -> None:
    path = write_snapshot({})

    assert list(stream_data_entries(path)) == []


def test_ignores_keys_outside_data(tmp_path: Path) -> None:
    """Nested 'data' keys inside meta and trailing top-level keys are not entries."""
    path = tmp_path / "doc.json"
    path.write_text(
        json.dumps(
            {
                "meta": {"data": {"not": "an entry"}, "version": "5"},
                "data": {"k1": {"v": 1}},
                "trailer": {"data": {"x": 1}},
            }
        )
    )

    assert list(stream_data_entries(path)) == [("k1", {"v": 1})]


def test_data_before_meta(tmp_path: Path) -> None:
    path = tmp_path / "doc.json"
    path.write_text('{"data": {"k": [1]}, "meta": {"date": "2026-02-23"}}')

    assert list(stream_data_entries(path)) == [("k", [1])]


def test_each_call_reopens_the_file(write_snapshot: Callable[..., Path]) -> None:
    path = write_snapshot({"a": 1, "b": 2})

    first = list(stream_data_entries(path))
    second = list(stream_data_entries(path))

    assert first == second == [("a", 1), ("b", 2)]


# ---------------------------------------------------------------------------
# Large input
# ---------------------------------------------------------------------------


def test_streams_a_million_entries(tmp_path: Path) -> None:
    """10^6 entries stream through one at a time with nothing accumulated."""
    n = 1_000_000
    path = tmp_path / "large.json"
    with path.open("w", encoding="utf-8") as fh:
        fh.write('{"meta": {"version": "5"}, "data": {')
        for i in range(n):
            if i:
                fh.write(",")
            if i % 1000 == 0:
                fh.write(f'"k{i}": {{"name": "card {i}", "p": [{i}]}}')
            else:
                fh.write(f'"k{i}": {i}')
        fh.write("}}")

    count = 0
    last_key = None
    for key, value in stream_data_entries(path):
        if count % 1000 == 0:
            assert value == {"name": f"card {count}", "p": [count]}
        else:
            assert value == count
        last_key = key
        count += 1

    assert count == n
    assert last_key == f"k{n - 1}"


def test_first_entry_arrives_before_file_is_consumed(tmp_path: Path) -> None:
    """The generator yields lazily instead of parsing the whole document first."""
    path = tmp_path / "lazy.json"
    entries = ", ".join(f'"k{i}": {{"v": {i}}}' for i in range(50_000))
    path.write_text('{"data": {' + entries + "}}")

    readers: list[_CountingReader] = []
    real_open = Path.open

    def tracking_open(self: Path, *args, **kwargs):
        reader = _CountingReader(real_open(self, *args, **kwargs))
        readers.append(reader)
        return reader

    with patch.object(Path, "open", tracking_open):
        gen = stream_data_entries(path)
        assert next(gen) == ("k0", {"v": 0})
        gen.close()

    assert readers[0].consumed < path.stat().st_size
    assert readers[0].closed


# ---------------------------------------------------------------------------
# Malformed input
# ---------------------------------------------------------------------------


def test_missing_data_key_raises(tmp_path: Path) -> None:
    path = tmp_path / "nodata.json"
    path.write_text('{"meta": {"version": "5"}, "other": {"k": 1}}')

    with pytest.raises(SnapshotParseError, match="missing top-level 'data'"):
        list(stream_data_entries(path))


def test_data_not_an_object_raises(tmp_path: Path) -> None:
    path = tmp_path / "list.json"
    path.write_text('{"data": [1, 2, 3]}')

    with pytest.raises(SnapshotParseError, match="not an object"):
        list(stream_data_entries(path))


def test_data_scalar_raises(tmp_path: Path) -> None:
    path = tmp_path / "scalar.json"
    path.write_text('{"data": 7}')

    with pytest.raises(SnapshotParseError, match="not an object"):
        list(stream_data_entries(path))


def test_root_not_an_object_raises(tmp_path: Path) -> None:
    path = tmp_path / "array.json"
    path.write_text('[{"data": {}}]')

    with pytest.raises(SnapshotParseError, match="top-level"):
        list(stream_data_entries(path))


def test_truncated_file_raises_after_yielding_complete_entries(tmp_path: Path) -> None:
    """Entries before the cut are delivered, then the sequence fails loudly."""
    path = tmp_path / "truncated.json"
    path.write_text('{"data": {"a": {"v": 1}, "b": {"v": 2}, "c": {"v": ')

    gen = stream_data_entries(path)
    assert next(gen) == ("a", {"v": 1})
    assert next(gen) == ("b", {"v": 2})
    with pytest.raises(SnapshotParseError) as exc_info:
        next(gen)

    assert exc_info.value.kind is ErrorKind.MALFORMED_INPUT


def test_invalid_json_raises(tmp_path: Path) -> None:
    path = tmp_path / "invalid.json"
    path.write_text('{"data": {"a": nope}}')

    with pytest.raises(SnapshotParseError):
        list(stream_data_entries(path))


def test_empty_file_raises(tmp_path: Path) -> None:
    path = tmp_path / "empty.json"
    path.write_bytes(b"")

    with pytest.raises(SnapshotParseError):
        list(stream_data_entries(path))


def test_missing_file_raises_file_not_found(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        list(stream_data_entries(tmp_path / "absent.json"))


# ---------------------------------------------------------------------------
# Resource handling
# ---------------------------------------------------------------------------


def test_closing_early_releases_file_handle(write_snapshot: Callable[..., Path]) -> None:
    path = write_snapshot({f"k{i}": {"v": i} for i in range(100)})
    opened = []
    real_open = Path.open

    def recording_open(self: Path, *args, **kwargs):
        fh = real_open(self, *args, **kwargs)
        opened.append(fh)
        return fh

    with patch.object(Path, "open", recording_open):
        gen = stream_data_entries(path)
        for key, _ in gen:
            if key == "k2":
                break
        gen.close()

    assert len(opened) == 1
    assert opened[0].closed


def test_abandoned_generator_is_finalized(write_snapshot: Callable[..., Path]) -> None:
    path = write_snapshot({"a": 1, "b": 2})
    opened = []
    real_open = Path.open

    def recording_open(self: Path, *args, **kwargs):
        fh = real_open(self, *args, **kwargs)
        opened.append(fh)
        return fh

    with patch.object(Path, "open", recording_open):
        gen = stream_data_entries(path)
        next(gen)
        del gen
        gc.collect()

    assert opened[0].closed
