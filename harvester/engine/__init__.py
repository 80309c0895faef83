"""Extraction engine: validation, deduplication, rounds, retries and sinks."""

from .dedup import DeduplicationIndex, identity_key
from .exporter import BaseExporter, BufferedCsvExporter
from .loop import LoopOutcome, ScrapeLoop
from .retry import AttemptState, InvalidTransition, RetryPolicy, RetryState
from .rounds import ExtractionRound
from .thread_pool import ThreadPoolManager
from .validator import Record, RecordValidator

__all__ = [
    "AttemptState",
    "BaseExporter",
    "BufferedCsvExporter",
    "DeduplicationIndex",
    "ExtractionRound",
    "InvalidTransition",
    "LoopOutcome",
    "Record",
    "RecordValidator",
    "RetryPolicy",
    "RetryState",
    "ScrapeLoop",
    "ThreadPoolManager",
    "identity_key",
]
