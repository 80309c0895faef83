from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from harvester.config import ConfigRepository
from harvester.engine import ThreadPoolManager
from harvester.errors import ConfigFileError, FlushIOError, InteractionError
from harvester.logging_conf import tail_log, target_log_path
from harvester.orchestrator import Orchestrator, apply_overrides
from harvester.pipeline import RunStatus


@pytest.fixture
def sources(scripted_source, make_answers):
    """Per-target scripted sources keyed by target name."""

    return {
        "alpha": lambda: scripted_source(batches=[make_answers(0, 3), make_answers(0, 6)]),
        "beta": lambda: scripted_source(batches=[make_answers(10, 14)]),
        "broken": lambda: scripted_source(always_fail={"navigate": InteractionError("offline")}),
    }


@pytest.fixture
def orchestrator(temp_config_repository: ConfigRepository, make_target, sources):
    for name in sources:
        temp_config_repository.save_target(make_target(name=name, record_limit=4))
    built: dict[str, list] = {}

    def factory(target):
        source = sources[target.name]()
        built.setdefault(target.name, []).append(source)
        return source

    orch = Orchestrator(
        temp_config_repository,
        thread_pool=ThreadPoolManager(default_workers=2),
        capability_factory=factory,
    )
    orch.built_sources = built  # type: ignore[attr-defined]
    yield orch
    orch.shutdown()


def test_run_target_writes_into_outputs_dir(orchestrator: Orchestrator, read_rows) -> None:
    summary = orchestrator.run_target("alpha")
    assert summary.ok
    assert summary.admitted == 4
    expected = orchestrator.config_repository.outputs_dir() / "alpha.csv"
    assert summary.output_path == expected
    assert len(read_rows(expected)) == 5


def test_run_target_applies_overrides_and_output_path(
    orchestrator: Orchestrator, tmp_path: Path, read_rows
) -> None:
    destination = tmp_path / "custom" / "alpha.tsv"
    summary = orchestrator.run_target(
        "alpha", {"record_limit": 2, "round_budget": None}, output_path=destination
    )
    assert summary.admitted == 2
    assert summary.output_path == destination.resolve()
    assert len(read_rows(destination)) == 3


def test_run_target_reports_failure_without_raising(orchestrator: Orchestrator) -> None:
    summary = orchestrator.run_target("broken")
    assert summary.status is RunStatus.FAILED
    assert summary.attempts == 3
    assert summary.error == "offline"
    assert len(orchestrator.built_sources["broken"]) == 1
    assert orchestrator.built_sources["broken"][0].opened_count == 3


def test_run_target_missing_config(orchestrator: Orchestrator) -> None:
    with pytest.raises(FileNotFoundError):
        orchestrator.run_target("ghost")


def test_run_target_propagates_flush_errors(orchestrator: Orchestrator, tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("file", encoding="utf-8")
    with pytest.raises(FlushIOError):
        orchestrator.run_target("alpha", output_path=blocker / "alpha.csv")


def test_run_many_isolates_targets_and_keeps_order(orchestrator: Orchestrator) -> None:
    summaries = orchestrator.run_many(["beta", "broken", "alpha", "ghost"])
    assert [s.target for s in summaries] == ["beta", "broken", "alpha", "ghost"]
    assert [s.status for s in summaries] == [
        RunStatus.SUCCEEDED,
        RunStatus.FAILED,
        RunStatus.SUCCEEDED,
        RunStatus.FAILED,
    ]
    assert summaries[0].admitted == 4
    assert summaries[2].admitted == 4
    assert "ghost" in (summaries[3].error or "")
    # Every run got its own source
    assert all(len(built) == 1 for built in orchestrator.built_sources.values())


def test_run_all_uses_configured_targets(orchestrator: Orchestrator) -> None:
    assert sorted(orchestrator.target_names()) == ["alpha", "beta", "broken"]
    summaries = orchestrator.run_all()
    assert {s.target for s in summaries} == {"alpha", "beta", "broken"}
    assert sum(1 for s in summaries if s.ok) == 2


def test_apply_overrides_revalidates(make_target) -> None:
    target = make_target()
    assert apply_overrides(target, None) is target
    assert apply_overrides(target, {"record_limit": None}) is target
    assert apply_overrides(target, {"retry_budget": 5}).retry_budget == 5
    with pytest.raises(ValidationError):
        apply_overrides(target, {"record_limit": 0})


def test_run_many_reports_invalid_config_files(orchestrator: Orchestrator) -> None:
    targets_dir = orchestrator.config_repository.locator.targets_dir
    (targets_dir / "garbled.yaml").write_text("name: garbled\n", encoding="utf-8")
    with pytest.raises(ConfigFileError):
        orchestrator.run_target("garbled")
    beta, garbled = orchestrator.run_many(["beta", "garbled"])
    assert beta.ok
    assert garbled.status is RunStatus.FAILED
    assert "garbled.yaml" in (garbled.error or "")


def test_run_target_logs_into_target_file(orchestrator: Orchestrator) -> None:
    orchestrator.run_target("broken")
    lines = tail_log(target_log_path("broken"))
    failures = [json.loads(line) for line in lines if '"attempt_failed"' in line]
    assert [event["attempt"] for event in failures] == [1, 2, 3]
    assert len({event["run_id"] for event in failures}) == 1
