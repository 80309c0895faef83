from __future__ import annotations

from pathlib import Path

import pytest

from harvester.engine.dedup import identity_key
from harvester.engine.validator import RecordValidator
from harvester.errors import FlushIOError, InteractionError, RetryBudgetExhausted
from harvester.pipeline import HarvestPipeline, RunStatus


def _pipeline(target, source, path: Path, sleep) -> HarvestPipeline:
    return HarvestPipeline(target, source, path, sleep=sleep)


def test_repeated_items_across_rounds_are_written_once(
    tmp_path: Path, make_target, scripted_source, no_sleep, read_rows
) -> None:
    target = make_target(record_limit=5, round_budget=2)
    source = scripted_source(
        batches=[
            [{"title": "A", "answer": "x"}, {"title": "B", "answer": "y"}],
            [{"title": "A", "answer": "x"}, {"title": "C", "answer": "z"}],
        ]
    )
    path = tmp_path / "answers.csv"

    summary = _pipeline(target, source, path, no_sleep).run()

    assert summary.status is RunStatus.SUCCEEDED
    assert summary.admitted == 3
    assert summary.duplicates == 1
    assert read_rows(path) == [["title", "answer"], ["A", "x"], ["B", "y"], ["C", "z"]]


def test_buffer_flushes_at_capacity_and_on_close(
    tmp_path: Path, make_target, scripted_source, make_answers, no_sleep, read_rows
) -> None:
    target = make_target(output={"buffer_capacity": 2})
    source = scripted_source()
    path = tmp_path / "answers.csv"
    pipeline = _pipeline(target, source, path, no_sleep)

    assert pipeline.admit(make_answers(0, 1)[0])
    assert not path.exists()
    assert pipeline.admit(make_answers(1, 2)[0])
    assert len(read_rows(path)) == 3
    assert pipeline.admit(make_answers(2, 3)[0])
    assert pipeline.sink.pending == 1
    assert len(read_rows(path)) == 3

    pipeline.close()
    assert len(read_rows(path)) == 4


def test_always_failing_target_ends_failed_after_budget(
    tmp_path: Path, make_target, scripted_source, make_answers, no_sleep, read_rows
) -> None:
    target = make_target(record_limit=10, retry_budget=3)
    # First attempt yields a partial batch before the pager breaks for good
    source = scripted_source(
        batches=[make_answers(0, 2)],
        failures={"reveal_more": [None] + [InteractionError("no pager")] * 10},
    )
    path = tmp_path / "answers.csv"

    summary = _pipeline(target, source, path, no_sleep).run()

    assert summary.status is RunStatus.FAILED
    assert summary.exit_code == 1
    assert summary.attempts == 3
    assert source.opened_count == 3
    assert source.closed_count == 3
    assert summary.admitted == 2
    # Partial yield survives the failed run
    assert read_rows(path)[1:] == [["Question 0", "Answer 0"], ["Question 1", "Answer 1"]]
    with pytest.raises(RetryBudgetExhausted) as excinfo:
        summary.raise_for_status()
    assert excinfo.value.attempts == 3
    assert excinfo.value.admitted == 2


def test_empty_fields_take_fallbacks_and_are_deduplicated(
    tmp_path: Path, make_target, scripted_source, no_sleep, read_rows
) -> None:
    target = make_target(record_limit=5, round_budget=1)
    source = scripted_source(
        batches=[[{"title": "", "answer": ""}, {"title": "  ", "answer": None}, {}]]
    )
    path = tmp_path / "answers.csv"

    summary = _pipeline(target, source, path, no_sleep).run()

    assert summary.admitted == 1
    assert summary.duplicates == 2
    assert read_rows(path) == [["title", "answer"], ["No title", "No answer"]]


def test_clean_run_writes_every_admitted_record_without_duplicates(
    tmp_path: Path, make_target, scripted_source, make_answers, no_sleep, read_rows
) -> None:
    target = make_target(record_limit=40, round_budget=10, output={"buffer_capacity": 7})
    batches = [make_answers(0, 5 * step) + make_answers(0, 3) for step in range(1, 11)]
    source = scripted_source(batches=batches)
    path = tmp_path / "answers.csv"

    summary = _pipeline(target, source, path, no_sleep).run()

    rows = read_rows(path)[1:]
    assert summary.ok
    assert len(rows) == summary.admitted == summary.written == 40
    keys = {identity_key(_as_record(target, row), target.identity_fields) for row in rows}
    assert len(keys) == len(rows)


def test_rerun_appends_without_second_header(
    tmp_path: Path, make_target, scripted_source, make_answers, no_sleep, read_rows
) -> None:
    path = tmp_path / "answers.csv"
    target = make_target(record_limit=2)
    _pipeline(target, scripted_source(batches=[make_answers(0, 2)]), path, no_sleep).run()
    _pipeline(target, scripted_source(batches=[make_answers(2, 4)]), path, no_sleep).run()
    rows = read_rows(path)
    assert rows.count(["title", "answer"]) == 1
    assert len(rows) == 5


def test_flush_failure_propagates_and_close_is_idempotent(
    tmp_path: Path, make_target, scripted_source, make_answers, no_sleep
) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("file", encoding="utf-8")
    target = make_target(output={"buffer_capacity": 2})
    pipeline = _pipeline(target, scripted_source(batches=[make_answers(0, 5)]), blocker / "a.csv", no_sleep)

    with pytest.raises(FlushIOError):
        pipeline.run()

    assert pipeline.closed
    pipeline.close()
    assert pipeline.sink.lost >= 2


def test_context_manager_flushes_buffer_on_exit(
    tmp_path: Path, make_target, scripted_source, make_answers, no_sleep, read_rows
) -> None:
    path = tmp_path / "answers.csv"
    with _pipeline(make_target(), scripted_source(), path, no_sleep) as pipeline:
        pipeline.admit(make_answers(0, 1)[0])
        assert not path.exists()
    assert pipeline.closed
    assert read_rows(path)[1] == ["Question 0", "Answer 0"]


def _as_record(target, row):
    return RecordValidator(target.extraction.fields).validate(dict(zip(target.field_names, row)))
