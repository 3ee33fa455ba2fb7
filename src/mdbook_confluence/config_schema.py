"""Configuration schema for mdbook-confluence.

Defines Pydantic models for the recognised options.  The same
``ConfluenceOptions`` model validates both sources of options:

- the ``[output.confluence]`` table of ``book.toml`` (delivered by mdbook
  inside the RenderContext JSON), and
- the ``confluence`` section of the optional YAML config file.

Usage:
    from mdbook_confluence.config_schema import build_config, merge_options

    unified = build_config(load_hierarchical_config())
    options = merge_options(unified.confluence, book_section)
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class ConfluenceOptions(BaseModel):
    """Options of the ``[output.confluence]`` table.

    All fields are optional to support zero-config files: env vars and CLI
    args can supply connection settings at runtime.  Unknown keys (mdbook
    adds ``command`` and friends) are ignored.
    """

    enabled: bool = Field(
        default=False, description="Run the Confluence sync at all"
    )
    url: str | None = Field(default=None, description="Confluence base URL")
    username: str | None = Field(
        default=None, description="Confluence username"
    )
    password: str | None = Field(
        default=None,
        description="Confluence password (prefer CONFLUENCE_PASSWORD)",
        repr=False,
    )
    title_prefix: str | None = Field(
        default=None, description="Prepended to every page title"
    )
    root_page: int | str | None = Field(
        default=None, description="Id of the anchor page"
    )
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    max_parallel_requests: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Maximum concurrent requests to Confluence (1-32)",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries for transient failures (0-10)",
    )
    retry_backoff: float = Field(
        default=0.5,
        ge=0,
        le=60,
        description="Base delay in seconds for exponential backoff",
    )
    timeout: float = Field(
        default=60,
        gt=0,
        le=600,
        description="Read timeout per request in seconds",
    )
    page_size: int = Field(
        default=50,
        ge=1,
        le=200,
        description="Children fetched per listing request",
    )
    qualify_titles: bool = Field(
        default=False,
        description="Include ancestor chapter titles in page titles",
    )
    title_separator: str = Field(
        default=" / ",
        description="Joins ancestor titles when qualify_titles is set",
    )

    model_config = {"frozen": True, "extra": "ignore"}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level config file
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level layout of the YAML config file.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.
    """

    confluence: ConfluenceOptions = Field(default_factory=ConfluenceOptions)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully -- anything absent gets defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def merge_options(
    file_options: ConfluenceOptions,
    book_section: dict[str, Any] | None,
) -> ConfluenceOptions:
    """Overlay the ``book.toml`` section on the config-file section.

    Only keys present in *book_section* replace file values; the result is
    validated again as a whole.

    Args:
        file_options: Options from the YAML config file (or defaults).
        book_section: Raw ``output.confluence`` table, may be ``None``.

    Returns:
        Merged, validated ``ConfluenceOptions``.
    """
    merged = file_options.model_dump(exclude_unset=True)
    if book_section:
        merged.update(book_section)
    logger.debug(
        "Confluence options from: %s",
        ", ".join(sorted(k for k in merged if k != "password")) or "defaults",
    )
    return ConfluenceOptions(**merged)
