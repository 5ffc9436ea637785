"""Centralized configuration for edaoogle using Pydantic Settings."""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strictly typed configuration loaded from ``EDAOOGLE_*`` environment variables.

    Values are validated once at startup. CLI arguments override them.
    """

    model_config = SettingsConfigDict(
        env_prefix="EDAOOGLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Index locations
    corpus_root: Path = Field(default=Path("www/wiki"), description="Directory of documents to index")
    index_dir: Path = Field(default=Path("search_index"), description="Directory holding published index segments")
    recursive: bool = Field(default=False, description="Descend into corpus subdirectories while indexing")

    # Delivery
    web_root: Path = Field(default=Path("www"), description="Static files served next to the search page")
    wiki_prefix: str = Field(default="/wiki", description="URL prefix under which corpus documents are linked")
    host: str = Field(default="127.0.0.1", description="HTTP bind host")
    port: int = Field(default=8000, ge=1, le=65535, description="HTTP bind port")
    search_results_limit: int | None = Field(
        default=None,
        ge=1,
        description="Cap on results rendered per page; the engine always ranks every match",
    )

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {"debug", "info", "warning", "error", "critical"}:
            raise ValueError(f"Unsupported log level: {value}")
        return normalized

    @field_validator("wiki_prefix")
    @classmethod
    def _check_wiki_prefix(cls, value: str) -> str:
        stripped = "/" + value.strip().strip("/")
        return stripped if stripped != "/" else ""

    def resolved_corpus_root(self) -> Path:
        return self.corpus_root.expanduser().resolve()

    def resolved_index_dir(self) -> Path:
        return self.index_dir.expanduser().resolve()

    def resolved_web_root(self) -> Path:
        return self.web_root.expanduser().resolve()
