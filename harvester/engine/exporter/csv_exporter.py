"""Buffered delimited-text exporter with lazy header creation."""

from __future__ import annotations

import csv
import io
from pathlib import Path
from typing import Sequence

import structlog

from ...errors import FlushIOError
from ..validator import Record
from .base import BaseExporter


class BufferedCsvExporter(BaseExporter):
    """Accumulate records in memory and append them to a CSV file in batches.

    The buffer never holds more than ``capacity`` records: the add that fills
    it flushes before returning. The header row is written only when the file
    is missing or empty, so appending across runs never duplicates it.
    """

    def __init__(
        self,
        path: Path,
        field_names: Sequence[str],
        capacity: int = 50,
        delimiter: str = ",",
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if not field_names:
            raise ValueError("field_names cannot be empty")
        self.path = Path(path)
        self.field_names = list(field_names)
        self.capacity = capacity
        self.delimiter = delimiter
        self.logger = logger or structlog.get_logger("harvester.exporter")
        self._buffer: list[Record] = []
        self._closed = False
        self.written = 0
        self.lost = 0
        self.flushes = 0

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def add(self, record: Record) -> None:
        if self._closed:
            raise ValueError(f"Exporter for {self.path} is closed")
        self._buffer.append(record)
        if len(self._buffer) >= self.capacity:
            self.flush()

    def flush(self) -> None:
        if not self._buffer:
            return
        batch = self._buffer
        self._buffer = []
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = self._render(batch, include_header=self._needs_header())
            with self.path.open("a", encoding="utf-8", newline="") as stream:
                stream.write(payload)
        except (OSError, UnicodeError) as exc:
            self.lost += len(batch)
            self.logger.error(
                "flush_failed",
                path=str(self.path),
                lost=len(batch),
                error=str(exc),
            )
            raise FlushIOError(self.path, len(batch), str(exc)) from exc
        self.written += len(batch)
        self.flushes += 1
        self.logger.debug("sink_flushed", path=str(self.path), rows=len(batch), total=self.written)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.flush()

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    def _needs_header(self) -> bool:
        return not self.path.exists() or self.path.stat().st_size == 0

    def _render(self, batch: list[Record], include_header: bool) -> str:
        buffer = io.StringIO()
        writer = csv.writer(
            buffer,
            delimiter=self.delimiter,
            quotechar='"',
            quoting=csv.QUOTE_MINIMAL,
            lineterminator="\r\n",
        )
        if include_header:
            writer.writerow(self.field_names)
        for record in batch:
            writer.writerow(record.row(self.field_names))
        return buffer.getvalue()


__all__ = ["BufferedCsvExporter"]
