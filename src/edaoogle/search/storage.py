"""SQLite-backed storage for published index segments.

A segment is one SQLite file holding the postings relation for a full
corpus snapshot. Segments are built privately by ``IndexSegmentWriter``,
renamed into ``segments/`` once complete, and then published by swapping
``manifest.json``. Published files are never modified, so readers open
them immutable and read-only with no locking between concurrent queries.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager, suppress
from dataclasses import dataclass
from datetime import datetime, timezone
import hashlib
import json
import logging
import os
from pathlib import Path
import sqlite3
from typing import Any
from uuid import uuid4

from edaoogle.errors import IndexDestinationError, IndexPublishError
from edaoogle.search.models import DocumentRecord, Posting
from edaoogle.search.sqlite_pragmas import apply_read_pragmas, apply_write_pragmas


logger = logging.getLogger(__name__)

SEGMENT_FORMAT_VERSION = "v1-keyword-postings"

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS metadata (
        key TEXT PRIMARY KEY,
        value TEXT
    );

    CREATE TABLE IF NOT EXISTS postings (
        keyword TEXT NOT NULL,
        url TEXT NOT NULL,
        frequency INTEGER NOT NULL CHECK (frequency >= 0),
        PRIMARY KEY (keyword, url)
    ) WITHOUT ROWID;

    CREATE INDEX IF NOT EXISTS idx_postings_keyword ON postings(keyword);

    CREATE TABLE IF NOT EXISTS documents (
        url TEXT PRIMARY KEY,
        byte_size INTEGER NOT NULL,
        token_count INTEGER NOT NULL
    ) WITHOUT ROWID;
"""

# Replace, never accumulate: one row per (keyword, url).
_UPSERT_POSTING = (
    "INSERT INTO postings (keyword, url, frequency) VALUES (?, ?, ?) "
    "ON CONFLICT(keyword, url) DO UPDATE SET frequency = excluded.frequency"
)
_UPSERT_DOCUMENT = (
    "INSERT INTO documents (url, byte_size, token_count) VALUES (?, ?, ?) "
    "ON CONFLICT(url) DO UPDATE SET byte_size = excluded.byte_size, token_count = excluded.token_count"
)
# SQLite caps bound parameters per statement; stay well below the lowest default.
_MAX_IN_CLAUSE = 500


class IndexSegmentWriter:
    """Streams postings for one build into a private SQLite file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.created_at = datetime.now(timezone.utc)
        self._urls: set[str] = set()
        self._posting_count = 0
        self._closed = False
        self._conn = sqlite3.connect(path, cached_statements=64)
        try:
            apply_write_pragmas(self._conn)
            self._conn.executescript(_SCHEMA)
        except sqlite3.Error:
            self.abort()
            raise

    @property
    def doc_count(self) -> int:
        return len(self._urls)

    @property
    def posting_count(self) -> int:
        return self._posting_count

    def add_document(self, url: str, keyword_counts: Mapping[str, int], *, byte_size: int) -> DocumentRecord:
        """Merge one document's keyword counts into the segment."""
        if not url:
            raise ValueError("Document url cannot be empty")
        if url in self._urls:
            raise ValueError(f"Duplicate document url: {url}")

        rows = [(keyword, url, int(count)) for keyword, count in sorted(keyword_counts.items()) if count > 0]
        record = DocumentRecord(url=url, byte_size=byte_size, token_count=sum(row[2] for row in rows))
        with self._conn:
            if rows:
                self._conn.executemany(_UPSERT_POSTING, rows)
            self._conn.execute(_UPSERT_DOCUMENT, (record.url, record.byte_size, record.token_count))

        self._urls.add(url)
        self._posting_count += len(rows)
        return record

    def fingerprint(self) -> str:
        """Deterministic digest of the segment contents, used as its id."""
        digest = hashlib.sha256(SEGMENT_FORMAT_VERSION.encode("ascii"))
        for keyword, url, frequency in self._conn.execute(
            "SELECT keyword, url, frequency FROM postings ORDER BY keyword, url"
        ):
            digest.update(f"p\x1f{keyword}\x1f{url}\x1f{frequency}\x1e".encode())
        for url, byte_size, token_count in self._conn.execute(
            "SELECT url, byte_size, token_count FROM documents ORDER BY url"
        ):
            digest.update(f"d\x1f{url}\x1f{byte_size}\x1f{token_count}\x1e".encode())
        return digest.hexdigest()

    def finalize(self, segment_id: str) -> None:
        """Write metadata, flush and close the file. The writer is unusable afterwards."""
        metadata = [
            ("segment_id", segment_id),
            ("format_version", SEGMENT_FORMAT_VERSION),
            ("created_at", self.created_at.isoformat()),
            ("doc_count", str(self.doc_count)),
            ("posting_count", str(self.posting_count)),
        ]
        with self._conn:
            self._conn.executemany("INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)", metadata)
        self._conn.execute("PRAGMA optimize")
        self._conn.close()
        self._closed = True
        _fsync_path(self.path)

    def abort(self) -> None:
        """Discard the partial file."""
        if not self._closed:
            with suppress(sqlite3.Error):
                self._conn.close()
            self._closed = True
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Failed to remove partial segment file %s: %s", self.path, exc)

    def __enter__(self) -> IndexSegmentWriter:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.abort()


@dataclass(frozen=True, slots=True)
class IndexSegment:
    """Read-only handle onto one published segment file.

    The handle holds no connection; each unit of work opens its own through
    ``connect()`` and releases it on every exit path.
    """

    db_path: Path
    segment_id: str
    created_at: datetime
    doc_count: int
    posting_count: int

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        uri = f"{self.db_path.resolve().as_uri()}?mode=ro&immutable=1"
        conn = sqlite3.connect(uri, uri=True)
        try:
            apply_read_pragmas(conn)
            yield conn
        finally:
            conn.close()

    def get_postings(self, keyword: str) -> list[Posting]:
        """Exact-match postings for a single keyword."""
        with self.connect() as conn:
            return _select_postings(conn, (keyword,))

    def postings_for(self, keywords: Iterable[str]) -> list[Posting]:
        """Postings for every keyword in ``keywords`` using one connection."""
        unique = sorted(set(keywords))
        if not unique:
            return []
        with self.connect() as conn:
            return _select_postings(conn, unique)

    def all_postings(self) -> list[Posting]:
        """Every posting ordered by keyword then url."""
        with self.connect() as conn:
            cursor = conn.execute("SELECT keyword, url, frequency FROM postings ORDER BY keyword, url")
            return [Posting(keyword=keyword, url=url, frequency=int(frequency)) for keyword, url, frequency in cursor]

    def keywords(self, prefix: str | None = None) -> list[str]:
        """Distinct keywords, optionally limited to those starting with ``prefix``."""
        with self.connect() as conn:
            if prefix:
                # Range scan so the keyword index is used.
                cursor = conn.execute(
                    "SELECT DISTINCT keyword FROM postings WHERE keyword >= ? AND keyword < ? ORDER BY keyword",
                    (prefix, prefix + "\U0010ffff"),
                )
            else:
                cursor = conn.execute("SELECT DISTINCT keyword FROM postings ORDER BY keyword")
            return [row[0] for row in cursor]

    def documents(self) -> list[DocumentRecord]:
        with self.connect() as conn:
            cursor = conn.execute("SELECT url, byte_size, token_count FROM documents ORDER BY url")
            return [DocumentRecord(url=url, byte_size=int(size), token_count=int(count)) for url, size, count in cursor]

    def stats(self) -> dict[str, Any]:
        with self.connect() as conn:
            keyword_count = conn.execute("SELECT COUNT(DISTINCT keyword) FROM postings").fetchone()[0]
        return {
            "segment_id": self.segment_id,
            "created_at": self.created_at.isoformat(),
            "doc_count": self.doc_count,
            "posting_count": self.posting_count,
            "keyword_count": int(keyword_count or 0),
        }


def _select_postings(conn: sqlite3.Connection, keywords: Iterable[str]) -> list[Posting]:
    keywords = list(keywords)
    postings: list[Posting] = []
    for start in range(0, len(keywords), _MAX_IN_CLAUSE):
        batch = keywords[start : start + _MAX_IN_CLAUSE]
        placeholders = ", ".join("?" for _ in batch)
        cursor = conn.execute(
            f"SELECT keyword, url, frequency FROM postings WHERE keyword IN ({placeholders})",
            batch,
        )
        postings.extend(Posting(keyword=keyword, url=url, frequency=int(frequency)) for keyword, url, frequency in cursor)
    return postings


class IndexStore:
    """Owns the segment directory and the manifest naming the published segment."""

    MANIFEST_FILENAME = "manifest.json"
    SEGMENTS_DIRNAME = "segments"
    DB_SUFFIX = ".db"
    TMP_SUFFIX = ".tmp"
    # Current plus previous: a query that resolved the old manifest survives one publish;
    # across more, SearchEngine re-resolves the manifest once.
    RETAINED_SEGMENTS = 2

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.segments_dir = self.directory / self.SEGMENTS_DIRNAME
        self._manifest_path = self.directory / self.MANIFEST_FILENAME

    # --- build side ---------------------------------------------------------

    def ensure_writable(self) -> None:
        """Create the directory layout and verify files can be written there."""
        try:
            self.segments_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IndexDestinationError(self.directory, str(exc)) from exc

        probe = self.segments_dir / f".probe-{uuid4().hex}{self.TMP_SUFFIX}"
        try:
            probe.write_bytes(b"")
        except OSError as exc:
            raise IndexDestinationError(self.directory, str(exc)) from exc
        finally:
            with suppress(OSError):
                probe.unlink(missing_ok=True)

    def create_writer(self) -> IndexSegmentWriter:
        """Open a writer on a fresh temporary file inside the segments directory."""
        self.ensure_writable()
        path = self.segments_dir / f".build-{uuid4().hex}{self.DB_SUFFIX}{self.TMP_SUFFIX}"
        return IndexSegmentWriter(path)

    def publish(self, writer: IndexSegmentWriter) -> IndexSegment:
        """Finalize ``writer`` and make its segment the one visible to queries."""
        try:
            segment_id = writer.fingerprint()
            writer.finalize(segment_id)
        except sqlite3.Error as exc:
            writer.abort()
            raise IndexPublishError(f"Failed to finalize segment: {exc}") from exc

        target = self._db_path(segment_id)
        previous = self.read_manifest()
        created_at = writer.created_at.isoformat()
        try:
            if target.exists():
                # Same fingerprint means same postings; keep the file readers may already hold.
                writer.path.unlink(missing_ok=True)
                if previous and previous.get("segment_id") == segment_id:
                    created_at = previous.get("created_at", created_at)
                else:
                    created_at = _stored_created_at(target) or created_at
            else:
                os.replace(writer.path, target)
                _fsync_path(self.segments_dir)
        except OSError as exc:
            writer.abort()
            raise IndexPublishError(f"Failed to move segment {segment_id} into place: {exc}") from exc

        previous_id = previous.get("segment_id") if previous else None
        if previous_id == segment_id:
            previous_id = previous.get("previous_segment_id")
        manifest = {
            "segment_id": segment_id,
            "created_at": created_at,
            "doc_count": writer.doc_count,
            "posting_count": writer.posting_count,
            "previous_segment_id": previous_id,
        }
        self._write_manifest(manifest)
        logger.info(
            "Published segment %s (%d documents, %d postings)", segment_id, writer.doc_count, writer.posting_count
        )

        keep = [segment_id]
        if manifest["previous_segment_id"]:
            keep.append(manifest["previous_segment_id"])
        self.prune_to_segment_ids(keep[: self.RETAINED_SEGMENTS])
        return self._segment_from_manifest(manifest)

    def prune_to_segment_ids(self, keep_segment_ids: Iterable[str]) -> None:
        """Remove segment files and stale temporaries not in the keep list."""
        if not self.segments_dir.exists():
            return
        keep_set = set(keep_segment_ids)
        for db_file in self.segments_dir.glob(f"*{self.DB_SUFFIX}"):
            if db_file.stem in keep_set:
                continue
            try:
                db_file.unlink()
            except OSError as exc:
                logger.warning("Failed to prune segment %s: %s", db_file, exc)
        for tmp_file in self.segments_dir.glob(f".build-*{self.TMP_SUFFIX}"):
            with suppress(OSError):
                tmp_file.unlink()

    def _write_manifest(self, manifest: dict[str, Any]) -> None:
        tmp_path = self.directory / f".{self.MANIFEST_FILENAME}.{uuid4().hex}{self.TMP_SUFFIX}"
        try:
            with tmp_path.open("w", encoding="utf-8") as handle:
                json.dump(manifest, handle, sort_keys=True)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self._manifest_path)
        except OSError as exc:
            with suppress(OSError):
                tmp_path.unlink(missing_ok=True)
            raise IndexPublishError(f"Failed to write manifest: {exc}") from exc

    # --- read side ----------------------------------------------------------

    def read_manifest(self) -> dict[str, Any] | None:
        """Return the published manifest, or None when nothing was published yet."""
        try:
            payload = json.loads(self._manifest_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Unreadable manifest %s: %s", self._manifest_path, exc)
            return None
        if not isinstance(payload, dict) or not payload.get("segment_id"):
            return None
        return payload

    def current(self) -> IndexSegment | None:
        """Handle onto the published segment, or None if the index is unbuilt."""
        manifest = self.read_manifest()
        if manifest is None:
            return None
        segment = self._segment_from_manifest(manifest)
        if not segment.db_path.exists():
            logger.warning("Manifest names missing segment file %s", segment.db_path)
            return None
        return segment

    def current_segment_id(self) -> str | None:
        manifest = self.read_manifest()
        return manifest["segment_id"] if manifest else None

    def has_index(self) -> bool:
        return self.current() is not None

    def list_segments(self) -> list[str]:
        if not self.segments_dir.exists():
            return []
        return sorted(path.stem for path in self.segments_dir.glob(f"*{self.DB_SUFFIX}"))

    def _segment_from_manifest(self, manifest: dict[str, Any]) -> IndexSegment:
        segment_id = str(manifest["segment_id"])
        return IndexSegment(
            db_path=self._db_path(segment_id),
            segment_id=segment_id,
            created_at=_parse_timestamp(manifest.get("created_at")),
            doc_count=int(manifest.get("doc_count", 0) or 0),
            posting_count=int(manifest.get("posting_count", 0) or 0),
        )

    def _db_path(self, segment_id: str) -> Path:
        return self.segments_dir / f"{segment_id}{self.DB_SUFFIX}"


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    return datetime.now(timezone.utc)


def _fsync_path(path: Path) -> None:
    """Flush a file or directory entry to disk where the platform allows it."""
    try:
        fd = os.open(path, os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def _stored_created_at(db_path: Path) -> str | None:
    uri = f"{db_path.resolve().as_uri()}?mode=ro&immutable=1"
    try:
        conn = sqlite3.connect(uri, uri=True)
    except sqlite3.Error:
        return None
    try:
        row = conn.execute("SELECT value FROM metadata WHERE key = 'created_at'").fetchone()
    except sqlite3.Error:
        return None
    finally:
        conn.close()
    return row[0] if row else None
