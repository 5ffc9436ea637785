"""Corpus indexing for the keyword search engine.

The indexer walks a corpus directory, tokenizes every document and streams
its keyword counts into a private segment. Only a build that reaches the end
of the corpus is published; configuration problems are reported before any
document is read and per-document failures are logged and skipped.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
import logging
from pathlib import Path
import sqlite3
import threading
import time

from edaoogle.errors import BuildCancelledError, CorpusNotFoundError, DocumentLoadError, IndexPublishError
from edaoogle.observability import DOCUMENTS_INDEXED, DOCUMENTS_SKIPPED, INDEX_DOC_COUNT, create_span
from edaoogle.search.storage import IndexSegmentWriter, IndexStore
from edaoogle.search.tokenizer import count_keywords


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexingContext:
    """Immutable description of one index build."""

    corpus_root: Path
    index_dir: Path
    recursive: bool = False
    include_hidden: bool = False


@dataclass(frozen=True)
class IndexBuildResult:
    """Outcome of an indexing run."""

    documents_indexed: int
    documents_skipped: int
    errors: tuple[str, ...]
    segment_id: str | None
    segment_path: Path | None
    posting_count: int
    duration_seconds: float

    @property
    def published(self) -> bool:
        return self.segment_path is not None


class CorpusIndexer:
    """Build and publish a full index segment for one corpus."""

    def __init__(self, context: IndexingContext) -> None:
        self.context = context
        self._store = IndexStore(context.index_dir)

    @property
    def store(self) -> IndexStore:
        return self._store

    def build(
        self,
        *,
        limit: int | None = None,
        persist: bool = True,
        cancel_event: threading.Event | None = None,
    ) -> IndexBuildResult:
        """Index every document under the corpus root and publish the result.

        Args:
            limit: Cap the number of documents indexed (useful for smoke tests).
            persist: When False, compute the segment fingerprint and discard the
                file instead of publishing it.
            cancel_event: Checked between documents; once set the build stops,
                discards its partial segment and raises ``BuildCancelledError``.

        Raises:
            CorpusNotFoundError: the corpus root is missing or not a directory.
            IndexDestinationError: the index directory cannot be written.
            BuildCancelledError: ``cancel_event`` was set mid-build.
            IndexPublishError: the finished segment could not be published.
        """
        corpus_root = self.context.corpus_root
        if not corpus_root.is_dir():
            raise CorpusNotFoundError(corpus_root)
        self._store.ensure_writable()

        start = time.perf_counter()
        documents_indexed = 0
        documents_skipped = 0
        errors: list[str] = []

        with create_span("index.build", attributes={"corpus.root": str(corpus_root)}) as span:
            writer = self._store.create_writer()
            with writer:
                for path in self._discover_documents():
                    if cancel_event is not None and cancel_event.is_set():
                        logger.warning("Index build cancelled after %d documents; nothing published", documents_indexed)
                        raise BuildCancelledError(f"Build cancelled after {documents_indexed} documents")
                    if limit is not None and documents_indexed >= limit:
                        break

                    try:
                        self._index_document(writer, path)
                    except DocumentLoadError as exc:
                        logger.warning("Skipping %s: %s", path, exc)
                        errors.append(str(exc))
                        documents_skipped += 1
                        DOCUMENTS_SKIPPED.labels(reason="unreadable").inc()
                        continue
                    except ValueError as exc:
                        logger.warning("Skipping %s: %s", path, exc)
                        errors.append(f"{path.name}: {exc}")
                        documents_skipped += 1
                        DOCUMENTS_SKIPPED.labels(reason="duplicate").inc()
                        continue

                    documents_indexed += 1
                    DOCUMENTS_INDEXED.labels().inc()

                if persist:
                    segment = self._store.publish(writer)
                    segment_id: str | None = segment.segment_id
                    segment_path: Path | None = segment.db_path
                    INDEX_DOC_COUNT.labels().set(segment.doc_count)
                else:
                    segment_id = writer.fingerprint()
                    segment_path = None
                    writer.abort()
                posting_count = writer.posting_count

            span.set_attribute("index.documents_indexed", documents_indexed)
            span.set_attribute("index.documents_skipped", documents_skipped)
            span.set_attribute("index.posting_count", posting_count)

        duration = time.perf_counter() - start
        logger.info(
            "Indexed %d documents (%d skipped, %d postings) in %.3fs",
            documents_indexed,
            documents_skipped,
            posting_count,
            duration,
        )
        return IndexBuildResult(
            documents_indexed=documents_indexed,
            documents_skipped=documents_skipped,
            errors=tuple(errors),
            segment_id=segment_id,
            segment_path=segment_path,
            posting_count=posting_count,
            duration_seconds=duration,
        )

    def compute_fingerprint(self) -> str | None:
        """Return the segment id a build would publish, without publishing it."""
        return self.build(persist=False).segment_id

    # --- internal helpers -------------------------------------------------

    def _discover_documents(self) -> Iterator[Path]:
        yield from self._walk(self.context.corpus_root)

    def _walk(self, directory: Path) -> Iterator[Path]:
        try:
            entries = sorted(directory.iterdir(), key=lambda entry: entry.name)
        except OSError as exc:
            logger.warning("Cannot list %s: %s", directory, exc)
            return

        for entry in entries:
            if entry.name.startswith(".") and not self.context.include_hidden:
                continue
            if entry.is_dir():
                if self.context.recursive:
                    yield from self._walk(entry)
                continue
            if entry.is_file():
                yield entry

    def _index_document(self, writer: IndexSegmentWriter, path: Path) -> None:
        try:
            content = path.read_bytes()
        except OSError as exc:
            raise DocumentLoadError(f"{path.name}: {exc.strerror or exc}") from exc

        try:
            writer.add_document(path.name, count_keywords(content), byte_size=len(content))
        except sqlite3.Error as exc:
            raise IndexPublishError(f"Failed to write postings for {path.name}: {exc}") from exc


def build_index(
    corpus_root: str | Path,
    index_dir: str | Path,
    *,
    recursive: bool = False,
    cancel_event: threading.Event | None = None,
) -> IndexBuildResult:
    """Build and publish the index for ``corpus_root`` into ``index_dir``."""
    context = IndexingContext(corpus_root=Path(corpus_root), index_dir=Path(index_dir), recursive=recursive)
    return CorpusIndexer(context).build(cancel_event=cancel_event)
