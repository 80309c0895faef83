"""In-memory identity-key deduplication for one target run."""

from __future__ import annotations

import hashlib
import json
from threading import Lock
from typing import Iterable, Sequence

import structlog

from .validator import Record


def identity_key(record: Record, fields: Iterable[str]) -> str:
    """Build a deterministic key from the named fields.

    Field names are sorted so the key does not depend on configuration order,
    and name/value pairs are JSON encoded so distinct values never collapse
    into the same key.
    """

    names = sorted(set(fields))
    if not names:
        raise ValueError("identity_key requires at least one field")
    payload = json.dumps([[name, record.get(name)] for name in names], ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class DeduplicationIndex:
    """Remember identity keys seen so far; first occurrence wins."""

    def __init__(
        self,
        identity_fields: Sequence[str],
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        if not identity_fields:
            raise ValueError("identity_fields cannot be empty")
        self.identity_fields = tuple(identity_fields)
        self.logger = logger or structlog.get_logger("harvester.dedup")
        self._seen: set[str] = set()
        self._duplicates = 0
        self._lock = Lock()

    def is_duplicate(self, key: str) -> bool:
        """Return True for a known key; otherwise register it and return False."""

        with self._lock:
            if key in self._seen:
                self._duplicates += 1
                duplicate = True
            else:
                self._seen.add(key)
                duplicate = False
        if duplicate:
            self.logger.warning("duplicate_record", key=key)
        return duplicate

    def check_record(self, record: Record) -> bool:
        return self.is_duplicate(identity_key(record, self.identity_fields))

    @property
    def seen(self) -> int:
        return len(self._seen)

    @property
    def duplicates(self) -> int:
        return self._duplicates

    def clear(self) -> None:
        with self._lock:
            self._seen.clear()
            self._duplicates = 0


__all__ = ["DeduplicationIndex", "identity_key"]
