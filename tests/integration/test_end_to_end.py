"""End-to-end index build and search over a real corpus directory."""

from concurrent.futures import ThreadPoolExecutor
import threading

from starlette.testclient import TestClient

from edaoogle.app import create_app
from edaoogle.config import Settings
from edaoogle.search.engine import SearchEngine
from edaoogle.search.indexer import build_index


def test_build_then_search(write_corpus, index_dir):
    corpus = write_corpus({"a.html": "<p>fish fish</p> cat", "b.html": "<b>cat</b> dog"})

    result = build_index(corpus, index_dir)
    response = SearchEngine(index_dir).search("Fish cat")

    assert result.documents_indexed == 2
    assert [(r.url, r.score) for r in response.results] == [("a.html", 3), ("b.html", 1)]
    assert response.segment_id == result.segment_id


def test_rebuilding_unchanged_corpus_keeps_results_and_segment(write_corpus, index_dir):
    corpus = write_corpus({"a.html": "fish fish cat", "b.html": "cat dog"})
    first = build_index(corpus, index_dir)
    before = SearchEngine(index_dir).search("cat dog fish")

    second = build_index(corpus, index_dir)
    after = SearchEngine(index_dir).search("cat dog fish")

    assert second.segment_id == first.segment_id
    assert after.results == before.results


def test_changed_corpus_replaces_results(write_corpus, index_dir):
    corpus = write_corpus({"a.html": "fish", "b.html": "fish fish"})
    build_index(corpus, index_dir)

    (corpus / "b.html").unlink()
    (corpus / "a.html").write_text("fish fish fish", encoding="utf-8")
    build_index(corpus, index_dir)

    results = SearchEngine(index_dir).search("fish").results
    assert [(r.url, r.score) for r in results] == [("a.html", 3)]


def test_concurrent_searches_during_rebuild(write_corpus, index_dir):
    corpus = write_corpus({f"doc{i:02d}.html": "alpha " * (i + 1) + "beta" for i in range(20)})
    build_index(corpus, index_dir)
    engine = SearchEngine(index_dir)
    expected = [(r.url, r.score) for r in engine.search("alpha beta").results]
    done = threading.Event()

    def rebuild() -> None:
        try:
            for _ in range(3):
                build_index(corpus, index_dir)
        finally:
            done.set()

    def query(_: int) -> list[tuple[str, int]]:
        return [(r.url, r.score) for r in engine.search("alpha beta").results]

    rebuilder = threading.Thread(target=rebuild)
    rebuilder.start()
    with ThreadPoolExecutor(max_workers=8) as pool:
        observed = list(pool.map(query, range(64)))
    rebuilder.join()

    assert done.is_set()
    assert all(rows == expected for rows in observed)
    assert expected[0] == ("doc19.html", 21)


def test_http_flow(write_corpus, index_dir, tmp_path):
    web_root = tmp_path / "www"
    corpus = write_corpus({"a.html": "fish fish cat", "b.html": "cat dog"}, name="www/wiki")
    build_index(corpus, index_dir)
    client = TestClient(create_app(Settings(index_dir=index_dir, web_root=web_root)))

    page = client.get("/search", params={"q": "cat"})
    linked = client.get("/wiki/a.html")

    assert page.status_code == 200
    assert "2 results (" in page.text
    assert linked.text == "fish fish cat"
