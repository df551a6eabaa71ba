import logging
from types import SimpleNamespace

import pytest

from lib.job_report import ItemResult, JobSummary, Outcome
from lib.job_runner import run_job


def _items(*ids):
    return [SimpleNamespace(id=i, title=f"Article {i}") for i in ids]


def test_sleeps_between_items_regardless_of_outcome(no_sleep):
    sleeps, sleep = no_sleep
    outcomes = {
        1: ItemResult.succeeded(),
        2: ItemResult.skipped("NOT_REDIRECTOR"),
        3: ItemResult.failed("update_error"),
    }

    summary = run_job("test", lambda: _items(1, 2, 3), lambda item: outcomes[item.id],
                      delay=0.25, sleep=sleep)

    assert sleeps == [0.25, 0.25]
    assert summary.to_dict() == {"selected": 3, "succeeded": 1, "skipped": 1, "failed": 1}


def test_worker_exception_is_contained(no_sleep, caplog):
    _, sleep = no_sleep
    processed = []

    def worker(item):
        processed.append(item.id)
        if item.id == "b":
            raise ValueError("bad row")
        return ItemResult.succeeded()

    with caplog.at_level(logging.INFO, logger="jobs"):
        summary = run_job("test", lambda: _items("a", "b", "c"), worker, sleep=sleep)

    assert processed == ["a", "b", "c"]
    assert summary.failed == 1
    assert summary.succeeded == 2
    assert summary.reasons["unhandled_error"] == 1
    assert summary.succeeded + summary.skipped + summary.failed == summary.selected
    assert any("b" in r.getMessage() and r.levelno == logging.ERROR for r in caplog.records)


def test_empty_snapshot_does_nothing(no_sleep, caplog):
    sleeps, sleep = no_sleep
    worker_calls = []

    with caplog.at_level(logging.INFO, logger="jobs"):
        summary = run_job("test", list, worker_calls.append, sleep=sleep)

    assert worker_calls == []
    assert sleeps == []
    assert summary.to_dict() == {"selected": 0, "succeeded": 0, "skipped": 0, "failed": 0}
    assert "Nothing to do" in caplog.text


def test_fetch_error_propagates(no_sleep):
    _, sleep = no_sleep

    def fetch():
        raise RuntimeError("store down")

    with pytest.raises(RuntimeError, match="store down"):
        run_job("test", fetch, lambda item: ItemResult.succeeded(), sleep=sleep)


def test_batches_cover_every_item(no_sleep):
    sleeps, sleep = no_sleep
    seen = []

    def worker(item):
        seen.append(item.id)
        return ItemResult.succeeded()

    summary = run_job("test", lambda: _items(1, 2, 3, 4, 5), worker, batch_size=2, sleep=sleep)

    assert seen == [1, 2, 3, 4, 5]
    assert len(sleeps) == 4
    assert summary.succeeded == 5


def test_interrupt_stops_and_reraises(no_sleep):
    _, sleep = no_sleep

    def worker(item):
        if item.id == 2:
            raise KeyboardInterrupt
        return ItemResult.succeeded()

    with pytest.raises(KeyboardInterrupt):
        run_job("test", lambda: _items(1, 2, 3), worker, sleep=sleep)


def test_summary_counts_reasons(caplog):
    summary = JobSummary(job="test", selected=3)
    with caplog.at_level(logging.INFO, logger="jobs"):
        summary.record(10, "First", ItemResult.skipped("UNCHANGED"))
        summary.record(11, "Second", ItemResult.skipped("UNCHANGED"))
        summary.record(12, "Third", ItemResult.failed("parse_error", "no host"))
        summary.log_summary()

    assert summary.skipped == 2
    assert summary.failed == 1
    assert summary.reasons == {"UNCHANGED": 2, "parse_error": 1}
    assert summary.processed == 3
    assert "12 failed (parse_error)" in caplog.text
    assert "Failed:    1" in caplog.text


def test_item_result_constructors():
    assert ItemResult.succeeded("ok").outcome is Outcome.SUCCEEDED
    skipped = ItemResult.skipped("UNCHANGED")
    assert skipped.outcome is Outcome.SKIPPED and skipped.reason == "UNCHANGED"
    failed = ItemResult.failed("update_error", "boom")
    assert failed.outcome is Outcome.FAILED and failed.detail == "boom"
