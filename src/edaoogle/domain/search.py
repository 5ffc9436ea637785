"""Search value objects crossing the query engine boundary.

Immutable so a response handed to a renderer cannot drift from what the
engine ranked.
"""

from pydantic import BaseModel, ConfigDict, Field


class RankedResult(BaseModel):
    """One matching document and its aggregate term frequency."""

    model_config = ConfigDict(frozen=True)

    url: str
    score: int = Field(ge=0)


class SearchResponse(BaseModel):
    """Ordered results for one query plus the measured search time."""

    model_config = ConfigDict(frozen=True)

    query: str
    terms: list[str] = Field(default_factory=list)
    results: list[RankedResult] = Field(default_factory=list)
    elapsed_seconds: float = Field(default=0.0, ge=0.0)
    segment_id: str | None = None

    @property
    def total(self) -> int:
        return len(self.results)
