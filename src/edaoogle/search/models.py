"""Index value objects."""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Posting:
    """Links a keyword to one document and its occurrence count."""

    keyword: str
    url: str
    frequency: int = 0

    def __post_init__(self) -> None:
        if self.frequency < 0:
            raise ValueError(f"Posting frequency must be >= 0, got {self.frequency}")


@dataclass(frozen=True, slots=True)
class DocumentRecord:
    """Per-document bookkeeping stored alongside the postings."""

    url: str
    byte_size: int
    token_count: int
