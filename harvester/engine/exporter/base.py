"""Exporter Service Provider Interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..validator import Record


class BaseExporter(ABC):
    """Uniform sink contract: buffer records, flush them durably, close once."""

    @abstractmethod
    def add(self, record: Record) -> None:
        """Accept a single admitted record."""

    @abstractmethod
    def flush(self) -> None:
        """Flush buffered data to destination."""

    @abstractmethod
    def close(self) -> None:
        """Flush what is left and release underlying resources."""


__all__ = ["BaseExporter"]
