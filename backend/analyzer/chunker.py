"""Content chunker.

Splits job content into bounded chunks before entity identification:

  - UNSTRUCTURED: overlapping character windows, so entities straddling a
    window boundary still appear whole in at least one chunk.
  - CSV / SPREADSHEET: groups of columns; every chunk repeats its slice of
    the header row so each column keeps its meaning.
  - JSON: recursive descent; small objects stay whole, large ones are split
    per property and every fragment is tagged with its path.

Malformed or too deeply nested JSON, and CSV that cannot be read or has no
usable header, fall back to the unstructured strategy.
"""

from __future__ import annotations

import csv
import io
import json
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable

from analyzer.errors import UnsupportedShapeError
from schemas.entities import Chunk, ContentShape

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChunkingOptions:
    chunk_size: int = 2000
    overlap: int = 200
    column_chunk_size: int = 4


# ---------------------------------------------------------------------------
# CSV helpers
# ---------------------------------------------------------------------------

_CSV_SPECIAL_CHARS = (",", '"', "\r", "\n")


def parse_csv(content: str) -> list[list[str]]:
    """Parse CSV text into rows.

    Quoted fields may contain commas, doubled quotes and line breaks; both
    CRLF and LF row endings are accepted.  A blank line is kept as a row
    holding one empty field, and no field is too large to read.

    Raises ``csv.Error`` for input the reader cannot tokenize.
    """
    if len(content) >= csv.field_size_limit():
        csv.field_size_limit(len(content) + 1)
    reader = csv.reader(io.StringIO(content, newline=""))
    return [row or [""] for row in reader]


def serialize_csv_row(values: list[str]) -> str:
    """Serialize *values* as one CSV line, quoting fields only when needed."""
    fields: list[str] = []
    for value in values:
        escaped = value.replace('"', '""')
        if any(ch in escaped for ch in _CSV_SPECIAL_CHARS):
            escaped = f'"{escaped}"'
        fields.append(escaped)
    return ",".join(fields)


def _to_rectangle(rows: list[list[str]]) -> list[list[str]]:
    width = max(len(row) for row in rows)
    return [row + [""] * (width - len(row)) for row in rows]


# ---------------------------------------------------------------------------
# Chunker
# ---------------------------------------------------------------------------


class Chunker:
    """Produce chunks for a piece of content according to its shape."""

    def __init__(self, options: ChunkingOptions | None = None) -> None:
        self._options = options or ChunkingOptions()
        self._strategies: dict[ContentShape, Callable[[str, ContentShape], list[Chunk]]] = {
            ContentShape.UNSTRUCTURED: self._chunk_unstructured,
            ContentShape.CSV: self._chunk_by_column,
            ContentShape.SPREADSHEET: self._chunk_by_column,
            ContentShape.JSON: self._chunk_json,
        }

    @property
    def options(self) -> ChunkingOptions:
        return self._options

    def with_options(self, **changes: int) -> Chunker:
        """Return a new chunker with *changes* applied to the current options."""
        return Chunker(replace(self._options, **changes))

    def create_chunks(self, shape: ContentShape | str, content: str) -> list[Chunk]:
        """Split *content* into chunks using the strategy for *shape*.

        Raises
        ------
        UnsupportedShapeError
            If *shape* is not one of the known analysis types.
        """
        try:
            shape = ContentShape(shape)
        except ValueError:
            raise UnsupportedShapeError(shape) from None
        return self._strategies[shape](content, shape)

    # -- Unstructured --------------------------------------------------------

    def _chunk_unstructured(self, text: str, shape: ContentShape) -> list[Chunk]:
        size = max(1, int(self._options.chunk_size))
        overlap = max(0, int(self._options.overlap))
        step = max(1, size - overlap)

        if not text:
            return [Chunk(id=_chunk_id(0), text="", offset=0, shape=shape)]

        chunks: list[Chunk] = []
        start = 0
        while start < len(text):
            end = min(len(text), start + size)
            chunks.append(
                Chunk(id=_chunk_id(len(chunks)), text=text[start:end], offset=start, shape=shape)
            )
            if end >= len(text):
                break
            start += step
        return chunks

    # -- CSV / spreadsheet ---------------------------------------------------

    def _chunk_by_column(self, content: str, shape: ContentShape) -> list[Chunk]:
        try:
            rows = parse_csv(content)
        except csv.Error as exc:
            logger.warning("Failed to parse CSV, falling back to unstructured chunking: %s", exc)
            return self._chunk_unstructured(content, shape)

        if not rows or all(not cell.strip() for cell in rows[0]):
            logger.warning("No usable CSV header, falling back to unstructured chunking")
            return self._chunk_unstructured(content, shape)

        header, *data_rows = _to_rectangle(rows)
        group = max(1, int(self._options.column_chunk_size))

        chunks: list[Chunk] = []
        for first_col in range(0, len(header), group):
            columns = slice(first_col, first_col + group)
            lines = [serialize_csv_row(header[columns])]
            lines.extend(serialize_csv_row(row[columns]) for row in data_rows)
            chunks.append(
                Chunk(
                    id=_chunk_id(len(chunks)),
                    text="\n".join(lines),
                    offset=first_col,
                    shape=shape,
                )
            )
        return chunks

    # -- JSON ----------------------------------------------------------------

    def _chunk_json(self, content: str, shape: ContentShape) -> list[Chunk]:
        chunks: list[Chunk] = []
        try:
            self._descend_json(json.loads(content), "", shape, chunks)
        except (ValueError, RecursionError) as exc:
            logger.warning("Failed to parse JSON, falling back to unstructured chunking: %s", exc)
            return self._chunk_unstructured(content, shape)
        return chunks

    def _descend_json(
        self,
        value: Any,
        path: str,
        shape: ContentShape,
        chunks: list[Chunk],
    ) -> None:
        if value is None:
            return

        if isinstance(value, list):
            for index, item in enumerate(value):
                self._descend_json(item, f"{path}[{index}]", shape, chunks)
            return

        if isinstance(value, dict):
            serialized = json.dumps(value, indent=2, ensure_ascii=False)
            if len(serialized) <= self._options.chunk_size:
                self._append_json_chunk(_tag_with_path(path, serialized), shape, chunks)
            else:
                for key, child in value.items():
                    child_path = f"{path}.{key}" if path else key
                    self._descend_json(child, child_path, shape, chunks)
            return

        self._append_json_chunk(
            _tag_with_path(path, json.dumps(value, ensure_ascii=False)), shape, chunks
        )

    def _append_json_chunk(self, text: str, shape: ContentShape, chunks: list[Chunk]) -> None:
        index = len(chunks)
        chunks.append(
            Chunk(
                id=_chunk_id(index),
                text=text,
                offset=index * self._options.chunk_size,
                shape=shape,
            )
        )


def _chunk_id(index: int) -> str:
    return f"chunk_{index}"


def _tag_with_path(path: str, serialized: str) -> str:
    return f'"{path}": {serialized}' if path else serialized


def create_chunks(
    shape: ContentShape | str,
    content: str,
    options: ChunkingOptions | None = None,
) -> list[Chunk]:
    """Convenience wrapper around :meth:`Chunker.create_chunks`."""
    return Chunker(options).create_chunks(shape, content)
