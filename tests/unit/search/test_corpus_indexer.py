"""Unit tests for the corpus indexing pipeline."""

from __future__ import annotations

import os
from pathlib import Path
import threading

import pytest

from edaoogle.errors import BuildCancelledError, CorpusNotFoundError, IndexDestinationError
from edaoogle.search.indexer import CorpusIndexer, IndexBuildResult, IndexingContext, build_index
from edaoogle.search.models import Posting
from edaoogle.search.storage import IndexStore


def _indexer(corpus: Path, index_dir: Path, **kwargs) -> CorpusIndexer:
    return CorpusIndexer(IndexingContext(corpus_root=corpus, index_dir=index_dir, **kwargs))


def test_indexer_builds_postings_per_document(write_corpus, index_dir: Path) -> None:
    corpus = write_corpus({"a.html": "<p>fish fish cat</p>", "b.html": "<p>cat dog</p>"})

    result = _indexer(corpus, index_dir).build()
    assert isinstance(result, IndexBuildResult)
    assert result.documents_indexed == 2
    assert result.documents_skipped == 0
    assert result.posting_count == 4
    assert result.published

    segment = IndexStore(index_dir).current()
    assert segment is not None
    assert segment.all_postings() == [
        Posting(keyword="cat", url="a.html", frequency=1),
        Posting(keyword="cat", url="b.html", frequency=1),
        Posting(keyword="dog", url="b.html", frequency=1),
        Posting(keyword="fish", url="a.html", frequency=2),
    ]


def test_url_is_the_filename_not_the_path(write_corpus, index_dir: Path) -> None:
    corpus = write_corpus({"Deep_Page.html": "Database"})
    _indexer(corpus, index_dir).build()

    segment = IndexStore(index_dir).current()
    assert [p.url for p in segment.get_postings("database")] == ["Deep_Page.html"]


def test_rebuild_is_idempotent(write_corpus, index_dir: Path) -> None:
    corpus = write_corpus({"a.html": "x x x x x", "b.html": "x x y y y y"})
    indexer = _indexer(corpus, index_dir)

    first = indexer.build()
    first_postings = IndexStore(index_dir).current().all_postings()
    first_bytes = first.segment_path.read_bytes()

    second = indexer.build()
    second_postings = IndexStore(index_dir).current().all_postings()

    assert second.segment_id == first.segment_id
    assert second_postings == first_postings
    assert second.segment_path.read_bytes() == first_bytes
    assert Posting(keyword="x", url="a.html", frequency=5) in second_postings


def test_rebuild_replaces_changed_frequencies(write_corpus, index_dir: Path) -> None:
    corpus = write_corpus({"a.html": "cat cat"})
    indexer = _indexer(corpus, index_dir)
    indexer.build()

    (corpus / "a.html").write_text("cat", encoding="utf-8")
    indexer.build()

    segment = IndexStore(index_dir).current()
    assert segment.get_postings("cat") == [Posting(keyword="cat", url="a.html", frequency=1)]


def test_rebuild_drops_removed_documents(write_corpus, index_dir: Path) -> None:
    corpus = write_corpus({"a.html": "cat", "b.html": "cat"})
    indexer = _indexer(corpus, index_dir)
    indexer.build()

    (corpus / "b.html").unlink()
    indexer.build()

    assert [p.url for p in IndexStore(index_dir).current().get_postings("cat")] == ["a.html"]


def test_missing_corpus_root_is_fatal_before_any_work(tmp_path: Path, index_dir: Path) -> None:
    with pytest.raises(CorpusNotFoundError):
        _indexer(tmp_path / "nowhere", index_dir).build()
    assert not index_dir.exists()


def test_corpus_root_that_is_a_file_is_fatal(tmp_path: Path, index_dir: Path) -> None:
    corpus = tmp_path / "corpus.html"
    corpus.write_text("cat", encoding="utf-8")
    with pytest.raises(CorpusNotFoundError):
        _indexer(corpus, index_dir).build()


def test_unwritable_destination_is_fatal(write_corpus, tmp_path: Path) -> None:
    corpus = write_corpus({"a.html": "cat"})
    blocker = tmp_path / "index"
    blocker.write_text("occupied", encoding="utf-8")
    with pytest.raises(IndexDestinationError):
        _indexer(corpus, blocker).build()


@pytest.mark.skipif(hasattr(os, "geteuid") and os.geteuid() == 0, reason="root can read any file")
def test_unreadable_document_is_skipped_with_warning(write_corpus, index_dir: Path, caplog) -> None:
    corpus = write_corpus({"a.html": "cat", "secret.html": "dog"})
    (corpus / "secret.html").chmod(0o000)
    try:
        with caplog.at_level("WARNING", logger="edaoogle.search.indexer"):
            result = _indexer(corpus, index_dir).build()
    finally:
        (corpus / "secret.html").chmod(0o600)

    assert result.documents_indexed == 1
    assert result.documents_skipped == 1
    assert any("secret.html" in error for error in result.errors)
    assert "Skipping" in caplog.text


def test_read_failure_is_skipped(write_corpus, index_dir: Path, monkeypatch) -> None:
    corpus = write_corpus({"a.html": "cat", "broken.html": "dog"})
    original = Path.read_bytes

    def flaky_read_bytes(self: Path) -> bytes:
        if self.name == "broken.html":
            raise PermissionError(13, "Permission denied")
        return original(self)

    monkeypatch.setattr(Path, "read_bytes", flaky_read_bytes)
    result = _indexer(corpus, index_dir).build()

    assert result.documents_indexed == 1
    assert result.documents_skipped == 1
    assert result.errors == ("broken.html: Permission denied",)
    assert IndexStore(index_dir).current().get_postings("dog") == []


def test_subdirectories_are_ignored_unless_recursive(write_corpus, index_dir: Path) -> None:
    corpus = write_corpus({"top.html": "alpha", "nested/inner.html": "beta"})

    flat = _indexer(corpus, index_dir).build()
    assert flat.documents_indexed == 1
    assert IndexStore(index_dir).current().get_postings("beta") == []

    deep = _indexer(corpus, index_dir, recursive=True).build()
    assert deep.documents_indexed == 2
    assert [p.url for p in IndexStore(index_dir).current().get_postings("beta")] == ["inner.html"]


def test_recursive_duplicate_filenames_are_skipped(write_corpus, index_dir: Path) -> None:
    corpus = write_corpus({"a/page.html": "alpha", "b/page.html": "beta"})

    result = _indexer(corpus, index_dir, recursive=True).build()

    assert result.documents_indexed == 1
    assert result.documents_skipped == 1
    segment = IndexStore(index_dir).current()
    assert segment.get_postings("alpha")
    assert segment.get_postings("beta") == []


def test_hidden_files_are_skipped(write_corpus, index_dir: Path) -> None:
    corpus = write_corpus({".DS_Store": "junk", "a.html": "cat"})
    result = _indexer(corpus, index_dir).build()
    assert result.documents_indexed == 1
    assert IndexStore(index_dir).current().get_postings("junk") == []


def test_empty_corpus_publishes_empty_index(write_corpus, index_dir: Path) -> None:
    corpus = write_corpus({})
    result = _indexer(corpus, index_dir).build()

    assert result.documents_indexed == 0
    assert result.published
    segment = IndexStore(index_dir).current()
    assert segment is not None
    assert segment.all_postings() == []


def test_limit_caps_documents(write_corpus, index_dir: Path) -> None:
    corpus = write_corpus({"a.html": "one", "b.html": "two", "c.html": "three"})
    result = _indexer(corpus, index_dir).build(limit=2)
    assert result.documents_indexed == 2
    assert IndexStore(index_dir).current().get_postings("three") == []


def test_dry_run_does_not_publish(write_corpus, index_dir: Path) -> None:
    corpus = write_corpus({"a.html": "cat"})
    indexer = _indexer(corpus, index_dir)

    fingerprint = indexer.compute_fingerprint()
    assert fingerprint
    assert IndexStore(index_dir).current() is None

    published = indexer.build()
    assert published.segment_id == fingerprint


def test_cancelled_build_publishes_nothing(write_corpus, index_dir: Path) -> None:
    corpus = write_corpus({"a.html": "cat", "b.html": "dog"})
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(BuildCancelledError):
        _indexer(corpus, index_dir).build(cancel_event=cancel)

    store = IndexStore(index_dir)
    assert store.current() is None
    assert list(store.segments_dir.iterdir()) == []


def test_cancelled_rebuild_keeps_previous_index(write_corpus, index_dir: Path) -> None:
    corpus = write_corpus({"a.html": "cat"})
    first = _indexer(corpus, index_dir).build()

    (corpus / "b.html").write_text("dog", encoding="utf-8")
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(BuildCancelledError):
        _indexer(corpus, index_dir).build(cancel_event=cancel)

    assert IndexStore(index_dir).current_segment_id() == first.segment_id


def test_build_index_helper(write_corpus, index_dir: Path) -> None:
    corpus = write_corpus({"a.html": "cat"})
    result = build_index(corpus, index_dir)
    assert result.documents_indexed == 1
    assert IndexStore(index_dir).current_segment_id() == result.segment_id
