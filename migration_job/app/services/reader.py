"""Input file parsing.

Both readers validate the header eagerly and then hand back a lazy iterator
of batches, so a malformed file fails before any batch is dispatched while a
large file is never held in memory.
"""
from __future__ import annotations

import csv
import logging
from typing import Dict, Iterable, Iterator, List, Tuple, TypeVar

from migration_job.app.core.errors import EnrichmentParseError, MalformedInputError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RelationRow = Tuple[str, str, str]


def chunked(it: Iterable[T], size: int) -> Iterator[List[T]]:
    buf: List[T] = []
    for item in it:
        buf.append(item)
        if len(buf) >= size:
            yield buf
            buf = []
    if buf:
        yield buf


def _strip_newline(line: str) -> str:
    return line.rstrip("\r\n")


def find_id_column(header_line: str) -> int:
    headers = _strip_newline(header_line).split(",")
    for i, h in enumerate(headers):
        if h.strip().lower() == "id":
            return i
    raise MalformedInputError(f"No 'id' column found in header: {header_line.strip()!r}")


def iter_user_ids(lines: Iterator[str], id_index: int) -> Iterator[str]:
    for line in lines:
        line = _strip_newline(line)
        if not line.strip():
            continue
        values = line.split(",")
        # ragged rows are expected in exports, skip without noise
        if len(values) <= id_index:
            continue
        user_id = values[id_index].strip()
        if user_id:
            yield user_id


def iter_user_id_batches(stream: Iterable[str], batch_size: int) -> Iterator[List[str]]:
    """Read an onboarding file (header with an ``id`` column) into id batches."""
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    lines = iter(stream)
    header = next(lines, None)
    if header is None or not header.strip():
        raise MalformedInputError("CSV file is empty")
    id_index = find_id_column(header)
    logger.debug(f"Located 'id' column at index {id_index}")
    return chunked(iter_user_ids(lines, id_index), batch_size)


def iter_relation_rows(reader: Iterator[List[str]]) -> Iterator[RelationRow]:
    for values in reader:
        if len(values) >= 3:
            yield (values[0].strip(), values[1].strip(), values[2].strip())


def iter_relation_batches(stream: Iterable[str], batch_size: int) -> Iterator[List[RelationRow]]:
    """Read a relations file: header (ignored), then ``source,props,target`` rows."""
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    reader = csv.reader(iter(stream))
    header = next(reader, None)
    if header is None:
        raise MalformedInputError("CSV file is empty")
    return chunked(iter_relation_rows(reader), batch_size)


def parse_relation_properties(blob: str) -> Dict[str, str]:
    """Parse ``{key:value,key2:value2}`` into a dict of strings.

    No quoting or escaping: values must not contain ``,`` or ``:``.
    """
    trimmed = blob.strip()
    if trimmed.startswith("{") and trimmed.endswith("}"):
        trimmed = trimmed[1:-1]
    props: Dict[str, str] = {}
    if not trimmed.strip():
        return props
    for pair in trimmed.split(","):
        key, sep, value = pair.partition(":")
        if not sep or not key.strip():
            raise EnrichmentParseError(f"Invalid relation property pair {pair!r} in {blob!r}")
        props[key.strip()] = value.strip()
    return props
