"""
Single-pass batch runner shared by the latest_news maintenance jobs.

One article at a time: fetch the candidate snapshot, hand each candidate to
the job's worker, record the outcome, sleep between items. Worker errors are
contained per item; only a failure to fetch the snapshot aborts the run.
"""
import logging
import time
from typing import Any, Callable, Sequence

from lib.job_report import ItemResult, JobSummary

log = logging.getLogger("jobs")

DEFAULT_DELAY = 0.1  # seconds between items


def _default_describe(candidate: Any) -> tuple[Any, str | None]:
    return getattr(candidate, "id", None), getattr(candidate, "title", None)


def run_job(
    name: str,
    fetch_candidates: Callable[[], Sequence[Any]],
    process_item: Callable[[Any], ItemResult],
    *,
    delay: float = DEFAULT_DELAY,
    batch_size: int | None = None,
    describe: Callable[[Any], tuple[Any, str | None]] = _default_describe,
    sleep: Callable[[float], None] = time.sleep,
    dry_run: bool = False,
) -> JobSummary:
    """Run one pass of a job over its candidate snapshot.

    Args:
        name: Job name used in log output
        fetch_candidates: Returns the rows needing work; exceptions propagate
        process_item: Worker for one candidate, returns an ItemResult
        delay: Seconds to sleep between consecutive items
        batch_size: Walk the snapshot in slices of this size (progress only)
        describe: Maps a candidate to (id, label) for logging
        sleep: Injected for tests
        dry_run: Marks the summary as a dry run

    Returns:
        JobSummary with selected/succeeded/skipped/failed counts
    """
    summary = JobSummary(job=name, dry_run=dry_run)

    log.info("Fetching candidates for %s...", name)
    candidates = list(fetch_candidates())
    summary.selected = len(candidates)

    if not candidates:
        log.info("Nothing to do: no articles need %s.", name)
        return summary

    log.info("Found %d articles for %s", len(candidates), name)
    if dry_run:
        log.info("[DRY RUN] No changes will be written")

    step = batch_size if batch_size and batch_size > 0 else len(candidates)
    total_batches = (len(candidates) + step - 1) // step

    try:
        for start in range(0, len(candidates), step):
            batch = candidates[start:start + step]
            if total_batches > 1:
                log.info("-" * 60)
                log.info("Batch %d/%d: %d articles", start // step + 1, total_batches, len(batch))

            for offset, candidate in enumerate(batch):
                index = start + offset
                item_id, label = describe(candidate)
                try:
                    result = process_item(candidate)
                except Exception as e:
                    log.exception("Unhandled error processing article %s", item_id)
                    result = ItemResult.failed("unhandled_error", str(e))
                summary.record(item_id, label, result)

                # Rate limit
                if index < len(candidates) - 1:
                    sleep(delay)
    except KeyboardInterrupt:
        summary.interrupted = True
        log.warning("Interrupted after %d/%d articles", summary.processed, summary.selected)
        summary.log_summary()
        raise

    summary.log_summary()
    return summary
