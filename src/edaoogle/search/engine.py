"""Query engine over the published index.

Queries are tokenized with the same rules as documents, deduplicated, and
matched exactly against the postings relation. Any document matching at
least one term is a candidate; its score is the sum of the matched terms'
frequencies. Results are ordered by descending score, then ascending url.

The engine only ever reads: it resolves the published segment for each
query, opens a read-only connection for the duration of that query, and
has no path to the build, publish or prune operations of the store.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
import logging
from pathlib import Path
import sqlite3
import time

from edaoogle.domain.search import RankedResult, SearchResponse
from edaoogle.errors import SearchUnavailableError
from edaoogle.observability import SEARCH_LATENCY, SEARCH_REQUESTS, create_span
from edaoogle.search.models import Posting
from edaoogle.search.storage import IndexSegment, IndexStore
from edaoogle.search.tokenizer import tokenize


logger = logging.getLogger(__name__)


def query_terms(raw_query: str) -> list[str]:
    """Distinct normalized terms of ``raw_query`` in first-seen order."""
    return list(dict.fromkeys(tokenize(raw_query)))


def rank_postings(postings: Iterable[Posting]) -> list[RankedResult]:
    """Aggregate postings per url and order them by score, then url."""
    scores: dict[str, int] = defaultdict(int)
    for posting in postings:
        scores[posting.url] += posting.frequency
    ordered = sorted(scores.items(), key=lambda item: (-item[1], item[0]))
    return [RankedResult(url=url, score=score) for url, score in ordered]


class SearchEngine:
    """Answers free-text queries against the segment currently published in ``index_dir``.

    Safe to share between threads: it holds no connection and no mutable state.
    """

    def __init__(self, index_dir: str | Path) -> None:
        self._store = IndexStore(index_dir)

    @property
    def index_dir(self) -> Path:
        return self._store.directory

    def current_segment(self) -> IndexSegment | None:
        """Published segment, or None when no index has been built yet."""
        return self._store.current()

    def search(self, raw_query: str) -> SearchResponse:
        """Rank documents matching any term of ``raw_query``.

        Returns an empty response for queries with no terms, for terms that
        match nothing, and when no index has been published yet.

        Raises:
            SearchUnavailableError: the published index could not be read.
        """
        start = time.perf_counter()
        terms = query_terms(raw_query or "")

        with create_span("search.query", attributes={"search.term_count": len(terms)}) as span:
            segment = self._store.current() if terms else None
            if segment is None:
                results: list[RankedResult] = []
            else:
                span.set_attribute("search.segment_id", segment.segment_id)
                try:
                    segment, postings = self._read_postings(segment, terms)
                except sqlite3.Error as exc:
                    SEARCH_REQUESTS.labels(outcome="error").inc()
                    logger.error("Search failed on segment %s: %s", segment.segment_id, exc, exc_info=True)
                    raise SearchUnavailableError(f"Index segment {segment.segment_id} is unreadable") from exc
                results = rank_postings(postings)
            span.set_attribute("search.result_count", len(results))

        elapsed = time.perf_counter() - start
        SEARCH_LATENCY.labels().observe(elapsed)
        SEARCH_REQUESTS.labels(outcome="hit" if results else "miss").inc()
        logger.debug("Query %r -> %d terms, %d results in %.4fs", raw_query, len(terms), len(results), elapsed)

        return SearchResponse(
            query=raw_query or "",
            terms=terms,
            results=results,
            elapsed_seconds=elapsed,
            segment_id=segment.segment_id if segment else None,
        )

    def _read_postings(self, segment: IndexSegment, terms: list[str]) -> tuple[IndexSegment, list[Posting]]:
        try:
            return segment, segment.postings_for(terms)
        except sqlite3.OperationalError:
            # The resolved segment can be pruned by later publishes before it is opened.
            latest = self._store.current()
            if latest is None or latest.segment_id == segment.segment_id:
                raise
            logger.info("Segment %s was pruned mid-query; retrying on %s", segment.segment_id, latest.segment_id)
            return latest, latest.postings_for(terms)
