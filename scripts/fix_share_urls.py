#!/usr/bin/env python3
"""
Fix Google Share / redirector URLs in the latest_news table.

Replaces google.com/share, google.com/url and share.google links with the
article's real URL and sets `source` to the real hostname, so the frontend
stops showing "google.com" as the source. No AI processing, no image
generation: only `url` and `source` are written.

Usage:
    python scripts/fix_share_urls.py [batch_size] [--dry-run] [--limit N] [--delay N]

Options:
    batch_size    Articles per progress batch (default: 2)
    --dry-run     Resolve and report, write nothing
    --limit N     Process only N articles (default: all)
    --delay N     Delay between articles in seconds (default: 0.1)

Example:
    python scripts/fix_share_urls.py --dry-run
    python scripts/fix_share_urls.py 10 --limit 50
"""
import argparse
import logging
import sys
from pathlib import Path

import httpx

sys.path.insert(0, str(Path(__file__).parent))
from lib.job_report import ItemResult
from lib.job_runner import DEFAULT_DELAY, run_job
from news_utils import (
    ArticleUpdateError,
    CandidateQueryError,
    RepairCandidate,
    get_redirector_articles,
    require_supabase_client,
    setup_logging,
    update_article,
)
from share_url_resolver import create_http_client, extract_hostname, resolve_share_url

log = logging.getLogger("url_repair")

JOB_NAME = "url-repair"
DEFAULT_BATCH_SIZE = 2


def repair_article(
    supabase,
    http_client: httpx.Client,
    article: RepairCandidate,
    dry_run: bool = False,
) -> ItemResult:
    """
    Resolve one article's redirector URL and write the real url + source.

    Returns:
        succeeded: url/source written (or would be, in dry run)
        skipped: not a redirector, nothing to extract, or redirect failed
        failed: resolved URL has no hostname, or the update failed
    """
    log.debug("Current URL for %s: %s", article.id, article.url)

    resolved = resolve_share_url(article.url, http_client)
    log.debug("Resolve result for %s: %s", article.id, resolved.to_dict())
    if not resolved.success:
        detail = resolved.error_detail or article.url
        return ItemResult.skipped(resolved.reason_code.value, detail)

    real_url = resolved.resolved_url
    try:
        source = extract_hostname(real_url)
    except ValueError as e:
        return ItemResult.failed("parse_error", str(e))

    if dry_run:
        return ItemResult.succeeded(f"would update to {real_url} ({source})", value=real_url)

    try:
        update_article(supabase, article.id, {"url": real_url, "source": source})
    except ArticleUpdateError as e:
        return ItemResult.failed("update_error", str(e))

    return ItemResult.succeeded(f"{real_url} ({source})", value=real_url)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Replace redirector URLs in latest_news with the real article URL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("batch_size", type=int, nargs="?", default=DEFAULT_BATCH_SIZE,
                        help=f"Articles per progress batch (default: {DEFAULT_BATCH_SIZE})")
    parser.add_argument("--dry-run", action="store_true", help="Resolve and report without updating the database")
    parser.add_argument("--limit", type=int, help="Process only N articles")
    parser.add_argument("--delay", type=float, default=DEFAULT_DELAY,
                        help=f"Delay between articles in seconds (default: {DEFAULT_DELAY})")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    return parser.parse_args(argv)


def main(argv=None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    log.info("=" * 60)
    log.info("Redirector URL Fix%s", " [DRY RUN]" if args.dry_run else "")
    log.info("=" * 60)

    supabase = require_supabase_client()

    try:
        with create_http_client() as http_client:
            summary = run_job(
                JOB_NAME,
                lambda: get_redirector_articles(supabase, args.limit),
                lambda article: repair_article(supabase, http_client, article, dry_run=args.dry_run),
                delay=args.delay,
                batch_size=args.batch_size,
                dry_run=args.dry_run,
            )
    except CandidateQueryError as e:
        log.error("Script failed: %s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        log.warning("Stopped by user")
        sys.exit(130)
    except Exception:
        log.exception("Unhandled error")
        sys.exit(1)

    if summary.succeeded and not args.dry_run:
        log.info("Fixed %d redirector URLs", summary.succeeded)
    log.info("Script completed")


if __name__ == "__main__":
    main()
