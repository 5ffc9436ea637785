"""Command line entry points.

    edaoogle index CORPUS INDEX_DIR   build and publish the index
    edaoogle search QUERY             print ranked results as JSON lines
    edaoogle serve                    run the HTTP delivery layer

``edaoogle-index CORPUS INDEX_DIR`` is a shortcut for ``edaoogle index``.
Unset arguments fall back to ``EDAOOGLE_*`` settings.
"""

from __future__ import annotations

import argparse
from collections.abc import Sequence
import json
import logging
from pathlib import Path
import signal
import sys
import threading

from pydantic import ValidationError

from edaoogle.config import Settings
from edaoogle.errors import BuildCancelledError, IndexConfigurationError, IndexPublishError, SearchUnavailableError
from edaoogle.observability import configure_logging, init_tracing
from edaoogle.search.engine import SearchEngine
from edaoogle.search.indexer import CorpusIndexer, IndexingContext


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2
EXIT_CANCELLED = 130


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="edaoogle", description="Keyword search engine over a document corpus")
    _add_logging_arguments(parser)
    # Accepted after the subcommand too; SUPPRESS keeps a value given before it.
    common = argparse.ArgumentParser(add_help=False, argument_default=argparse.SUPPRESS)
    _add_logging_arguments(common)
    subparsers = parser.add_subparsers(dest="command", required=True)

    index_parser = subparsers.add_parser("index", parents=[common], help="Build and publish the index")
    _add_index_arguments(index_parser)

    search_parser = subparsers.add_parser("search", parents=[common], help="Query the published index")
    search_parser.add_argument("query", help="Free-text query")
    search_parser.add_argument("--index-dir", type=Path, help="Directory holding published segments")

    serve_parser = subparsers.add_parser("serve", parents=[common], help="Serve the search page over HTTP")
    serve_parser.add_argument("--index-dir", type=Path, help="Directory holding published segments")
    serve_parser.add_argument("--web-root", type=Path, help="Directory of static files")
    serve_parser.add_argument("--host", help="Bind host")
    serve_parser.add_argument("--port", type=int, help="Bind port")
    return parser


def _add_logging_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--log-level", help="Override EDAOOGLE_LOG_LEVEL")
    parser.add_argument("--plain-logs", action="store_true", help="Human-readable logs instead of JSON")


def _add_index_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("corpus", nargs="?", type=Path, help="Corpus directory (defaults to EDAOOGLE_CORPUS_ROOT)")
    parser.add_argument("index_dir", nargs="?", type=Path, help="Index output directory (defaults to EDAOOGLE_INDEX_DIR)")
    parser.add_argument("--recursive", action="store_true", default=None, help="Descend into subdirectories")
    parser.add_argument("--dry-run", action="store_true", help="Compute the segment fingerprint without publishing")


def _load_settings(args: argparse.Namespace) -> Settings:
    overrides = {
        "corpus_root": getattr(args, "corpus", None),
        "index_dir": getattr(args, "index_dir", None),
        "recursive": getattr(args, "recursive", None),
        "web_root": getattr(args, "web_root", None),
        "host": getattr(args, "host", None),
        "port": getattr(args, "port", None),
        "log_level": getattr(args, "log_level", None),
    }
    return Settings(**{key: value for key, value in overrides.items() if value is not None})


def _run_index(settings: Settings, *, dry_run: bool) -> int:
    context = IndexingContext(
        corpus_root=settings.resolved_corpus_root(),
        index_dir=settings.resolved_index_dir(),
        recursive=settings.recursive,
    )
    cancel_event = threading.Event()
    # Signal handlers can only be installed from the main thread.
    previous_handler = None
    if threading.current_thread() is threading.main_thread():
        previous_handler = signal.signal(signal.SIGINT, lambda *_: cancel_event.set())
    try:
        result = CorpusIndexer(context).build(persist=not dry_run, cancel_event=cancel_event)
    except IndexConfigurationError as exc:
        logger.error("%s", exc)
        return EXIT_CONFIG_ERROR
    except BuildCancelledError as exc:
        logger.warning("%s", exc)
        return EXIT_CANCELLED
    except IndexPublishError as exc:
        logger.error("%s", exc)
        return EXIT_FAILURE
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)

    payload = {
        "documents_indexed": result.documents_indexed,
        "documents_skipped": result.documents_skipped,
        "posting_count": result.posting_count,
        "segment_id": result.segment_id,
        "segment_path": str(result.segment_path) if result.segment_path else None,
        "errors": list(result.errors),
        "duration_seconds": round(result.duration_seconds, 6),
    }
    sys.stdout.write(json.dumps(payload, sort_keys=True) + "\n")
    return EXIT_OK


def _run_search(settings: Settings, query: str) -> int:
    engine = SearchEngine(settings.resolved_index_dir())
    try:
        response = engine.search(query)
    except SearchUnavailableError as exc:
        logger.error("%s", exc)
        return EXIT_FAILURE
    for result in response.results:
        sys.stdout.write(json.dumps({"url": result.url, "score": result.score}) + "\n")
    logger.info("%d results (%.6f seconds)", response.total, response.elapsed_seconds)
    return EXIT_OK


def _run_serve(settings: Settings) -> int:
    import uvicorn

    from edaoogle.app import create_app

    app = create_app(settings)
    logger.info("Starting server on %s:%d", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level, log_config=None)
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_argument_parser()
    args = parser.parse_args(argv)

    try:
        settings = _load_settings(args)
    except ValidationError as exc:
        configure_logging("info", json_output=not args.plain_logs, stream=sys.stderr)
        logger.error("Invalid configuration: %s", exc)
        return EXIT_CONFIG_ERROR

    # stdout carries command output; logs go to stderr.
    configure_logging(settings.log_level, json_output=settings.log_json and not args.plain_logs, stream=sys.stderr)
    init_tracing()

    if args.command == "index":
        return _run_index(settings, dry_run=args.dry_run)
    if args.command == "search":
        return _run_search(settings, args.query)
    return _run_serve(settings)


def index_main(argv: Sequence[str] | None = None) -> int:
    """``edaoogle-index CORPUS INDEX_DIR``."""
    arguments = list(sys.argv[1:] if argv is None else argv)
    return main(["index", *arguments])


if __name__ == "__main__":
    sys.exit(main())
