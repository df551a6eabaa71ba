#!/usr/bin/env python3
"""
Generate OpenAI embeddings for latest_news articles that don't have them.

Embeds title + AI summary (text-embedding-3-small) for every article that has
an ai_summary but no embedding, one article at a time, and writes the vector
back to the `embedding` column. Re-running is safe: articles that already
have an embedding are never selected.

Usage:
    python scripts/generate_embeddings.py [--limit N] [--dry-run] [--delay N]

Options:
    --limit N     Process only N articles (default: all)
    --dry-run     List articles and estimated cost, no API calls or writes
    --delay N     Delay between API calls in seconds (default: 0.1)
    --model NAME  Embedding model (default: text-embedding-3-small)

Example:
    python scripts/generate_embeddings.py --limit 10 --dry-run
    python scripts/generate_embeddings.py
"""
import argparse
import logging
import os
import sys
from numbers import Real
from pathlib import Path
from typing import Optional

from openai import OpenAI

sys.path.insert(0, str(Path(__file__).parent))
from lib.cost_utils import CostTracker, estimate_tokens, log_cost_line
from lib.job_report import ItemResult
from lib.job_runner import DEFAULT_DELAY, run_job
from news_utils import (
    ArticleUpdateError,
    CandidateQueryError,
    EmbedCandidate,
    get_articles_missing_embeddings,
    require_supabase_client,
    setup_logging,
    update_article,
)

log = logging.getLogger("embeddings")

JOB_NAME = "embedding-backfill"
EMBEDDING_MODEL = "text-embedding-3-small"

# Known output sizes; other models are accepted at whatever size they return
EMBEDDING_DIMS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class EmbeddingError(RuntimeError):
    """The provider call failed or returned something that isn't one vector."""


def get_openai_client() -> Optional[OpenAI]:
    """Create OpenAI client, or None if OPENAI_API_KEY is not set.

    SDK retries are off: a failed call marks the article failed and the next
    run picks it up again.
    """
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        return None
    return OpenAI(api_key=api_key, max_retries=0)


def require_openai_client() -> OpenAI:
    client = get_openai_client()
    if not client:
        log.error("Missing OPENAI_API_KEY.")
        sys.exit(1)
    return client


def generate_embedding(client: OpenAI, text: str, model: str = EMBEDDING_MODEL,
                       cost: CostTracker | None = None) -> list[float]:
    """
    Embed a single text.

    Args:
        client: OpenAI client
        text: Input text
        model: Embedding model name
        cost: Optional tracker for token usage

    Returns:
        The embedding vector

    Raises:
        EmbeddingError: API error or malformed response
    """
    try:
        response = client.embeddings.create(model=model, input=text)
    except Exception as e:
        raise EmbeddingError(f"{type(e).__name__}: {e}") from e

    if not getattr(response, "data", None):
        raise EmbeddingError("response has no data")

    vector = response.data[0].embedding
    if not vector or not all(isinstance(v, Real) and not isinstance(v, bool) for v in vector):
        raise EmbeddingError("response embedding is empty or not numeric")

    expected = EMBEDDING_DIMS.get(model)
    if expected and len(vector) != expected:
        raise EmbeddingError(f"expected {expected} dimensions, got {len(vector)}")

    if cost is not None:
        usage = getattr(response, "usage", None)
        cost.add(getattr(usage, "prompt_tokens", None) if usage else None)

    return [float(v) for v in vector]


def embed_article(
    supabase,
    openai_client: OpenAI,
    article: EmbedCandidate,
    model: str = EMBEDDING_MODEL,
    cost: CostTracker | None = None,
) -> ItemResult:
    """Embed one article and write only its `embedding` column."""
    try:
        embedding = generate_embedding(openai_client, article.text, model, cost)
    except EmbeddingError as e:
        return ItemResult.failed("embedding_error", str(e))

    try:
        update_article(supabase, article.id, {"embedding": embedding})
    except ArticleUpdateError as e:
        return ItemResult.failed("update_error", str(e))

    return ItemResult.succeeded(f"{len(embedding)} dims")


def preview_article(article: EmbedCandidate, cost: CostTracker) -> ItemResult:
    """Dry-run worker: estimate tokens only."""
    tokens = estimate_tokens(article.text)
    cost.add(tokens)
    return ItemResult.succeeded(f"would embed ~{tokens} tokens")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Backfill embeddings for latest_news articles")
    parser.add_argument("--limit", type=int, help="Process only N articles")
    parser.add_argument("--dry-run", action="store_true", help="List articles and estimated cost without API calls")
    parser.add_argument("--delay", type=float, default=DEFAULT_DELAY,
                        help=f"Delay between API calls in seconds (default: {DEFAULT_DELAY})")
    parser.add_argument("--model", default=EMBEDDING_MODEL, help=f"Embedding model (default: {EMBEDDING_MODEL})")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    return parser.parse_args(argv)


def main(argv=None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    log.info("=" * 60)
    log.info("Embedding Backfill (%s)%s", args.model, " [DRY RUN]" if args.dry_run else "")
    log.info("=" * 60)

    supabase = require_supabase_client()
    cost = CostTracker(model=args.model)

    if args.dry_run:
        process = lambda article: preview_article(article, cost)
        delay = 0.0
    else:
        openai_client = require_openai_client()
        process = lambda article: embed_article(supabase, openai_client, article, args.model, cost)
        delay = args.delay

    try:
        run_job(
            JOB_NAME,
            lambda: get_articles_missing_embeddings(supabase, args.limit),
            process,
            delay=delay,
            dry_run=args.dry_run,
        )
    except CandidateQueryError as e:
        log.error("Fatal error in embedding generation: %s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        log.warning("Stopped by user")
        log_cost_line("Embeddings", cost.tokens, args.model, calls=cost.calls)
        sys.exit(130)
    except Exception:
        log.exception("Unhandled error")
        sys.exit(1)

    if cost.calls:
        label = "Estimated embeddings" if args.dry_run else "Embeddings"
        log_cost_line(label, cost.tokens, args.model, calls=cost.calls)
    log.info("Script completed")


if __name__ == "__main__":
    main()
