#!/usr/bin/env python3
"""
Shared Utility · latest_news: Store access and diagnostics for the maintenance jobs.

Used by:
- generate_embeddings.py (embedding backfill)
- fix_share_urls.py (canonical URL repair)

Library exports (imported by other scripts):
- get_supabase_client() / require_supabase_client() -> DB client
- get_articles_missing_embeddings() / get_redirector_articles() -> candidate selectors
- update_article() -> single-row writer
- setup_logging() -> stdout/stderr log handlers

Usage:
    python scripts/news_utils.py --stats
    python scripts/news_utils.py --url-types [--limit N]
    python scripts/news_utils.py --missing-ai [--output DIR]
    python scripts/news_utils.py --duplicates
"""
import argparse
import json
import logging
import os
import sys
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from dotenv import load_dotenv

sys.path.insert(0, str(Path(__file__).parent))
from share_url_resolver import is_redirector_url

ROOT_DIR = Path(__file__).parent.parent
load_dotenv(ROOT_DIR / '.env')
load_dotenv(ROOT_DIR / '.env.local')

log = logging.getLogger("jobs")

NEWS_TABLE = 'latest_news'
PAGE_SIZE = 1000  # PostgREST max rows per request

REDIRECTOR_FILTER = ','.join([
    'url.like.*google.com/share*',
    'url.like.*google.com/url*',
    'url.like.*share.google*',
])


# ============================================================
# Errors
# ============================================================

class CandidateQueryError(RuntimeError):
    """The candidate snapshot could not be fetched."""


class ArticleUpdateError(RuntimeError):
    """A single-row write to latest_news did not go through."""


# ============================================================
# Logging
# ============================================================

class _BelowWarning(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < logging.WARNING


def setup_logging(verbose: bool = False) -> None:
    """Progress lines to stdout, warnings and errors to stderr. Safe to call twice."""
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    if any(getattr(h, '_news_jobs', False) for h in root.handlers):
        return

    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt="%H:%M:%S")

    out = logging.StreamHandler(sys.stdout)
    out.setLevel(logging.DEBUG)
    out.addFilter(_BelowWarning())
    out.setFormatter(fmt)
    out._news_jobs = True

    err = logging.StreamHandler(sys.stderr)
    err.setLevel(logging.WARNING)
    err.setFormatter(fmt)
    err._news_jobs = True

    root.addHandler(out)
    root.addHandler(err)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ============================================================
# Supabase Client
# ============================================================

def get_supabase_client():
    """Get Supabase client if credentials are available. Returns None if missing."""
    supabase_url = os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL")
    supabase_key = os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_SERVICE_ROLE_KEY")

    if not supabase_url or not supabase_key:
        return None

    from supabase import create_client
    return create_client(supabase_url, supabase_key)


def require_supabase_client():
    """Get Supabase client, exit if credentials missing. Use in CLI commands."""
    client = get_supabase_client()
    if not client:
        log.error("Missing Supabase credentials. Set SUPABASE_URL and SUPABASE_SERVICE_KEY.")
        sys.exit(1)
    return client


# ============================================================
# Candidate Records
# ============================================================

@dataclass(frozen=True)
class EmbedCandidate:
    id: Any
    title: str
    ai_summary: str

    @property
    def text(self) -> str:
        """Input text for the embedding model."""
        return f"{self.title}\n\n{self.ai_summary}"

    @classmethod
    def from_row(cls, row: dict) -> "EmbedCandidate":
        return cls(id=row['id'], title=row['title'] or '', ai_summary=row['ai_summary'])


@dataclass(frozen=True)
class RepairCandidate:
    id: Any
    url: str
    title: str

    @classmethod
    def from_row(cls, row: dict) -> "RepairCandidate":
        return cls(id=row['id'], url=row['url'], title=row.get('title') or '')


# ============================================================
# Candidate Queries
# ============================================================

def fetch_all_rows(build_query: Callable[[], Any], page_size: int = PAGE_SIZE,
                   limit: int | None = None) -> list[dict]:
    """Page through a query with .range() until a short page comes back.

    build_query must return a fresh builder each call; postgrest builders
    accumulate params.
    """
    rows: list[dict] = []
    offset = 0
    while True:
        size = page_size if limit is None else min(page_size, limit - len(rows))
        if size <= 0:
            break
        response = build_query().range(offset, offset + size - 1).execute()
        batch = response.data or []
        rows.extend(batch)
        if len(batch) < size:
            break
        offset += size
    return rows


def _decode_rows(rows: list[dict], record_type, keep: Callable[[Any], bool] | None = None) -> list:
    records = []
    for row in rows:
        try:
            record = record_type.from_row(row)
        except (KeyError, TypeError) as e:
            log.warning("Dropping malformed row %s: missing %s", row.get('id'), e)
            continue
        if keep is not None and not keep(record):
            log.debug("Dropping row %s: does not match selector", record.id)
            continue
        records.append(record)
    return records


def get_articles_missing_embeddings(supabase, limit: int | None = None) -> list[EmbedCandidate]:
    """Articles with an AI summary but no embedding yet."""
    def build_query():
        return supabase.table(NEWS_TABLE) \
            .select('id, title, ai_summary') \
            .is_('embedding', 'null') \
            .not_.is_('ai_summary', 'null') \
            .order('id')

    try:
        rows = fetch_all_rows(build_query, limit=limit)
    except Exception as e:
        raise CandidateQueryError(f"Failed to fetch articles without embeddings: {e}") from e

    return _decode_rows(rows, EmbedCandidate, keep=lambda r: r.ai_summary is not None)


def get_redirector_articles(supabase, limit: int | None = None) -> list[RepairCandidate]:
    """Articles whose url is a Google Share / google.com/url / share.google redirector."""
    def build_query():
        return supabase.table(NEWS_TABLE) \
            .select('id, url, title') \
            .or_(REDIRECTOR_FILTER) \
            .order('id')

    try:
        rows = fetch_all_rows(build_query)
    except Exception as e:
        raise CandidateQueryError(f"Failed to fetch articles with redirector URLs: {e}") from e

    # LIKE matches anywhere in the string; keep only real redirector hosts/paths.
    # limit applies after this filter, so it caps candidates rather than rows scanned.
    candidates = _decode_rows(rows, RepairCandidate, keep=lambda r: is_redirector_url(r.url))
    return candidates if limit is None else candidates[:limit]


# ============================================================
# Writers
# ============================================================

def update_article(supabase, article_id: Any, fields: dict) -> None:
    """Update exactly the given fields on one latest_news row.

    Raises:
        ArticleUpdateError: store error, or no row with that id
    """
    try:
        response = supabase.table(NEWS_TABLE) \
            .update(fields) \
            .eq('id', article_id) \
            .execute()
    except Exception as e:
        raise ArticleUpdateError(f"Failed to update article {article_id}: {e}") from e

    if not response.data:
        raise ArticleUpdateError(f"Article {article_id} not found")


# ============================================================
# Diagnostics
# ============================================================

URL_TYPES = ['google.com/share.google', 'google.com/share', 'share.google', 'other']


def classify_url_type(url: str) -> str:
    """Bucket a URL for the --url-types report (substring match, most specific first)."""
    url = url or ''
    if 'google.com/share.google' in url:
        return 'google.com/share.google'
    if 'google.com/share' in url:
        return 'google.com/share'
    if 'share.google' in url:
        return 'share.google'
    return 'other'


def get_url_type_breakdown(supabase, limit: int = 100) -> dict[str, list[dict]]:
    """Group the first `limit` articles by URL type."""
    response = supabase.table(NEWS_TABLE) \
        .select('id, url, title') \
        .limit(limit) \
        .execute()

    breakdown: dict[str, list[dict]] = {t: [] for t in URL_TYPES}
    for article in (response.data or []):
        breakdown[classify_url_type(article.get('url'))].append(article)
    return breakdown


def _has_text(value: str | None) -> bool:
    return bool(value and value.strip())


def get_missing_ai_report(supabase) -> dict:
    """Categorize all articles by presence of AI summary and AI image."""
    def build_query():
        return supabase.table(NEWS_TABLE) \
            .select('id, title, ai_summary, ai_image_url') \
            .order('id')

    articles = fetch_all_rows(build_query)

    groups: dict[str, list[dict]] = {
        'hasBoth': [], 'missingBoth': [], 'missingSummaryOnly': [], 'missingImageOnly': [],
    }
    for article in articles:
        has_summary = _has_text(article.get('ai_summary'))
        has_image = _has_text(article.get('ai_image_url'))
        if not has_summary and not has_image:
            key = 'missingBoth'
        elif not has_summary:
            key = 'missingSummaryOnly'
        elif not has_image:
            key = 'missingImageOnly'
        else:
            key = 'hasBoth'
        groups[key].append({'id': article['id'], 'title': article.get('title')})

    missing_total = len(groups['missingBoth']) + len(groups['missingSummaryOnly']) + len(groups['missingImageOnly'])
    return {
        'summary': {
            'total': len(articles),
            **{key: len(items) for key, items in groups.items()},
            'totalMissing': missing_total,
        },
        'articles': {key: items for key, items in groups.items() if key != 'hasBoth'},
    }


def find_duplicate_urls(supabase) -> dict[str, list[dict]]:
    """Map url -> rows (oldest first) for every url stored more than once."""
    def build_query():
        return supabase.table(NEWS_TABLE) \
            .select('id, url, processed_at, title') \
            .order('processed_at', desc=False)

    by_url: dict[str, list[dict]] = defaultdict(list)
    for row in fetch_all_rows(build_query):
        by_url[row['url']].append(row)
    return {url: rows for url, rows in by_url.items() if len(rows) > 1}


def get_stats(supabase) -> dict:
    """latest_news counts relevant to the maintenance jobs."""
    total = supabase.table(NEWS_TABLE).select('id', count='exact').limit(1).execute().count or 0

    missing_embedding = supabase.table(NEWS_TABLE) \
        .select('id', count='exact') \
        .is_('embedding', 'null') \
        .not_.is_('ai_summary', 'null') \
        .limit(1) \
        .execute().count or 0

    missing_summary = supabase.table(NEWS_TABLE) \
        .select('id', count='exact') \
        .is_('ai_summary', 'null') \
        .limit(1) \
        .execute().count or 0

    redirectors = supabase.table(NEWS_TABLE) \
        .select('id', count='exact') \
        .or_(REDIRECTOR_FILTER) \
        .limit(1) \
        .execute().count or 0

    return {
        'total': total,
        'missing_embedding': missing_embedding,
        'missing_summary': missing_summary,
        'redirector_urls': redirectors,
    }


# ============================================================
# Commands
# ============================================================

def _title(article: dict, width: int = 60) -> str:
    return (article.get('title') or '')[:width]


def cmd_stats(supabase) -> None:
    stats = get_stats(supabase)
    print("=" * 60)
    print("latest_news Statistics")
    print("=" * 60)
    print(f"Total articles:            {stats['total']}")
    print(f"Missing AI summary:        {stats['missing_summary']}")
    print(f"Awaiting embedding:        {stats['missing_embedding']}")
    print(f"Redirector URLs (approx):  {stats['redirector_urls']}")


def cmd_url_types(supabase, limit: int = 100) -> None:
    breakdown = get_url_type_breakdown(supabase, limit)
    checked = sum(len(items) for items in breakdown.values())
    if not checked:
        print("No articles found in database")
        return

    print(f"Checked {checked} articles\n")
    print("URL Type Breakdown:")
    for url_type in URL_TYPES:
        print(f"  {url_type}: {len(breakdown[url_type])} articles")

    for url_type in URL_TYPES:
        examples = breakdown[url_type][:3]
        if examples:
            print(f"\nExamples of {url_type}:")
            for article in examples:
                print(f"  {_title(article)}")
                print(f"  URL: {article['url']}")


def cmd_missing_ai(supabase, output_dir: Path | None = None) -> None:
    report = get_missing_ai_report(supabase)
    summary = report['summary']

    print("=" * 60)
    print("Missing AI Content")
    print("=" * 60)
    print(f"Total articles:               {summary['total']}")
    print(f"With AI summary AND image:    {summary['hasBoth']}")
    print(f"Missing both:                 {summary['missingBoth']}")
    print(f"Missing summary only:         {summary['missingSummaryOnly']}")
    print(f"Missing image only:           {summary['missingImageOnly']}")
    print(f"Missing at least one:         {summary['totalMissing']}")

    for key, label in [('missingBoth', 'MISSING BOTH'),
                       ('missingSummaryOnly', 'MISSING ONLY AI SUMMARY'),
                       ('missingImageOnly', 'MISSING ONLY AI IMAGE')]:
        items = report['articles'][key]
        if items:
            print(f"\n{label}:")
            for i, article in enumerate(items, 1):
                print(f"  {i}. {article['id']}  {_title(article, 80)}")

    if output_dir:
        output_dir.mkdir(parents=True, exist_ok=True)
        report_path = output_dir / 'missing-ai-content-report.json'
        report_path.write_text(json.dumps(report, indent=2, default=str))

        ids = {key: [a['id'] for a in items] for key, items in report['articles'].items()}
        ids['missingSummary'] = ids['missingBoth'] + ids['missingSummaryOnly']
        ids['missingImage'] = ids['missingBoth'] + ids['missingImageOnly']
        ids['missingAny'] = ids['missingBoth'] + ids['missingSummaryOnly'] + ids['missingImageOnly']
        ids_path = output_dir / 'missing-ai-content-uuids.json'
        ids_path.write_text(json.dumps(ids, indent=2, default=str))

        print(f"\nReport saved to: {report_path}")
        print(f"ID lists saved to: {ids_path}")


def cmd_duplicates(supabase) -> None:
    duplicates = find_duplicate_urls(supabase)
    if not duplicates:
        print("No duplicate URLs found.")
        return

    extra_rows = sum(len(rows) - 1 for rows in duplicates.values())
    print("=" * 60)
    print("Duplicate URLs")
    print("=" * 60)
    for url, rows in duplicates.items():
        original, *copies = rows
        print(f"\nURL: {url}")
        print(f"  Original: {original['id']} ({original.get('processed_at')}) {_title(original, 80)}")
        for row in copies:
            print(f"  Duplicate: {row['id']} ({row.get('processed_at')}) {_title(row, 80)}")

    print(f"\nURLs with duplicates: {len(duplicates)}")
    print(f"Duplicate rows (deletable): {extra_rows}")

    print("\nTop duplicated URLs:")
    top = sorted(duplicates.items(), key=lambda kv: len(kv[1]), reverse=True)[:5]
    for url, rows in top:
        print(f"  {len(rows)}x: {url[:80]}")


# ============================================================
# CLI Entry Point
# ============================================================

def main():
    parser = argparse.ArgumentParser(description="latest_news diagnostics (read-only)")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument('--stats', action='store_true', help='Show counts relevant to the maintenance jobs')
    group.add_argument('--url-types', action='store_true', help='Break down article URLs by redirector type')
    group.add_argument('--missing-ai', action='store_true', help='Report articles missing AI summary/image')
    group.add_argument('--duplicates', action='store_true', help='Report urls stored more than once')
    parser.add_argument('--limit', type=int, default=100, help='Rows to inspect for --url-types (default: 100)')
    parser.add_argument('--output', type=Path, help='Directory for --missing-ai JSON reports')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')
    args = parser.parse_args()

    setup_logging(args.verbose)
    supabase = require_supabase_client()

    try:
        if args.stats:
            cmd_stats(supabase)
        elif args.url_types:
            cmd_url_types(supabase, args.limit)
        elif args.missing_ai:
            cmd_missing_ai(supabase, args.output)
        elif args.duplicates:
            cmd_duplicates(supabase)
    except Exception as e:
        log.error("Diagnostics failed: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
