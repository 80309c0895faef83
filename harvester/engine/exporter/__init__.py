"""Exporter SPI and implementations."""

from .base import BaseExporter
from .csv_exporter import BufferedCsvExporter

__all__ = ["BaseExporter", "BufferedCsvExporter"]
