"""Error taxonomy for index builds and searches."""

from __future__ import annotations

from pathlib import Path


class EdaoogleError(Exception):
    """Base class for all edaoogle errors."""


class IndexConfigurationError(EdaoogleError):
    """Fatal operator error detected before any indexing work starts."""


class CorpusNotFoundError(IndexConfigurationError):
    """Corpus root is missing or is not a directory."""

    def __init__(self, corpus_root: Path) -> None:
        super().__init__(f"Corpus root does not exist or is not a directory: {corpus_root}")
        self.corpus_root = corpus_root


class IndexDestinationError(IndexConfigurationError):
    """Index output location cannot be created or written."""

    def __init__(self, index_dir: Path, reason: str) -> None:
        super().__init__(f"Index destination {index_dir} is not writable: {reason}")
        self.index_dir = index_dir


class DocumentLoadError(EdaoogleError):
    """A single corpus document could not be read."""


class BuildCancelledError(EdaoogleError):
    """An index build was interrupted; nothing was published."""


class IndexPublishError(EdaoogleError):
    """Writing or publishing a segment failed."""


class SearchUnavailableError(EdaoogleError):
    """The index could not be read while answering a query."""
