"""Shared fixtures: target builder, temporary config repository and a scripted source."""

from __future__ import annotations

import copy
import csv
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Sequence

import pytest

from harvester.config import ConfigLocator, ConfigRepository, ExtractionConfig, TargetConfig
from harvester.sources.base import SourceCapability


@dataclass
class ScriptedHandle:
    serial: int
    reveals: int = 0
    navigated: bool = False


class ScriptedSource(SourceCapability):
    """In-memory source replaying scripted visible record sets.

    ``batches[i]`` is the full visible set after the (i+1)-th reveal on a
    handle; the last batch repeats once the script runs out. Every handle
    starts from the top again, like a freshly loaded page.

    ``failures`` maps an operation name to a queue of exceptions consumed one
    per call; ``None`` entries let that call through. ``always_fail`` maps an
    operation name to an exception raised on every call.
    """

    def __init__(
        self,
        batches: Sequence[Sequence[dict[str, Any]]] = (),
        failures: dict[str, list[BaseException | None]] | None = None,
        always_fail: dict[str, BaseException] | None = None,
    ) -> None:
        self.batches = [list(batch) for batch in batches]
        self.failures = {key: list(value) for key, value in (failures or {}).items()}
        self.always_fail = dict(always_fail or {})
        self.opened_count = 0
        self.closed_count = 0
        self.calls: list[str] = []

    def _maybe_fail(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.always_fail:
            raise self.always_fail[operation]
        queue = self.failures.get(operation)
        if queue:
            error = queue.pop(0)
            if error is not None:
                raise error

    def open_source(self) -> ScriptedHandle:
        self._maybe_fail("open_source")
        self.opened_count += 1
        return ScriptedHandle(serial=self.opened_count)

    def close_source(self, handle: ScriptedHandle) -> None:
        self.calls.append("close_source")
        self.closed_count += 1

    def navigate(self, handle: ScriptedHandle, target: TargetConfig) -> None:
        self._maybe_fail("navigate")
        handle.navigated = True

    def wait_for_ready(self, handle: ScriptedHandle, selector: str, timeout_ms: int) -> None:
        self._maybe_fail("wait_for_ready")

    def reveal_more(self, handle: ScriptedHandle) -> None:
        self._maybe_fail("reveal_more")
        handle.reveals += 1

    def read_records(
        self, handle: ScriptedHandle, extraction: ExtractionConfig
    ) -> list[dict[str, Any]]:
        self._maybe_fail("read_records")
        if not self.batches or handle.reveals == 0:
            return []
        index = min(handle.reveals, len(self.batches)) - 1
        return [dict(raw) for raw in self.batches[index]]


def raw_answer(index: int) -> dict[str, Any]:
    return {"title": f"Question {index}", "answer": f"Answer {index}"}


def answers(start: int, stop: int) -> list[dict[str, Any]]:
    return [raw_answer(i) for i in range(start, stop)]


BASE_TARGET: dict[str, Any] = {
    "name": "example-answers",
    "url": "https://example.com/answers",
    "record_limit": 5,
    "round_budget": 5,
    "retry_budget": 3,
    "backoff_seconds": 0,
    "identity_fields": ["title", "answer"],
    "extraction": {
        "item_selector": ".answer",
        "fields": [
            {"name": "title", "selectors": [".q-title"], "fallback": "No title"},
            {"name": "answer", "selectors": [".q-text", ".q-box"], "fallback": "No answer"},
        ],
    },
    "reveal": {"settle_ms": [0, 0]},
    "output": {"buffer_capacity": 50},
}


@pytest.fixture
def make_target() -> Callable[..., TargetConfig]:
    def _builder(**overrides: Any) -> TargetConfig:
        base = copy.deepcopy(BASE_TARGET)
        for key, value in overrides.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                base[key].update(value)
            else:
                base[key] = value
        return TargetConfig.model_validate(base)

    return _builder


@pytest.fixture
def scripted_source() -> Callable[..., ScriptedSource]:
    return ScriptedSource


@pytest.fixture
def no_sleep() -> Callable[[float], None]:
    pauses: list[float] = []

    def _sleep(seconds: float) -> None:
        pauses.append(seconds)

    _sleep.pauses = pauses  # type: ignore[attr-defined]
    return _sleep


@pytest.fixture
def temp_config_repository(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterable[ConfigRepository]:
    monkeypatch.setenv("HARVESTER_HOME", str(tmp_path))
    locator = ConfigLocator(project_root=tmp_path)
    repository = ConfigRepository(locator)
    yield repository


def _read_rows(path: Path, delimiter: str = ",") -> list[list[str]]:
    with path.open("r", encoding="utf-8", newline="") as stream:
        return list(csv.reader(stream, delimiter=delimiter))


@pytest.fixture
def read_rows() -> Callable[..., list[list[str]]]:
    return _read_rows


@pytest.fixture
def make_answers() -> Callable[[int, int], list[dict[str, Any]]]:
    return answers
