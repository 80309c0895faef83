"""Pydantic models describing harvest targets and global settings."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Literal
from urllib.parse import quote_plus

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class FieldSpec(BaseModel):
    """One tracked record field: where to read it and what to use when it is missing."""

    model_config = ConfigDict(frozen=True)

    name: str
    # CSS selectors tried in order inside an item; first non-empty match wins
    selectors: tuple[str, ...] = ()
    # Read an attribute instead of the element text (e.g. "datetime", "aria-label")
    attribute: str | None = None
    fallback: str | None = None

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Field name cannot be empty")
        return value


class ExtractionConfig(BaseModel):
    """Describes how the visible record set is read from the page."""

    model_config = ConfigDict(frozen=True)

    item_selector: str
    fields: tuple[FieldSpec, ...]
    # Optional "read more" control clicked inside each item before reading
    expand_selector: str | None = None
    expand_limit: int = 150

    @model_validator(mode="after")
    def _validate_fields(self) -> "ExtractionConfig":
        if not self.item_selector.strip():
            raise ValueError("item_selector cannot be empty")
        if not self.fields:
            raise ValueError("At least one field must be tracked")
        names = [spec.name for spec in self.fields]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate field names: {names}")
        if self.expand_limit < 0:
            raise ValueError("expand_limit must be >= 0")
        return self

    @property
    def field_names(self) -> list[str]:
        return [spec.name for spec in self.fields]


class RevealConfig(BaseModel):
    """How one round reveals more content and how long it lets the page settle."""

    model_config = ConfigDict(frozen=True)

    mode: Literal["scroll", "click"] = "scroll"
    # Scrollable list container; the window is scrolled when unset
    container_selector: str | None = None
    # Pager / "load more" control used in click mode
    click_selector: str | None = None
    settle_ms: tuple[float, float] = (700.0, 1500.0)

    @field_validator("settle_ms", mode="before")
    @classmethod
    def _coerce_settle(cls, value: Any) -> tuple[float, float]:
        if value in (None, ""):
            return (0.0, 0.0)
        if isinstance(value, (list, tuple)) and len(value) == 2:
            low, high = float(value[0]), float(value[1])
            if low < 0 or high < 0:
                raise ValueError("Settle window values must be non-negative")
            if high < low:
                raise ValueError("Settle window upper bound must be >= lower bound")
            return (low, high)
        raise ValueError("Settle window expects a two-item list or tuple")

    @model_validator(mode="after")
    def _validate_mode(self) -> "RevealConfig":
        if self.mode == "click" and not self.click_selector:
            raise ValueError("click mode requires click_selector")
        return self


class OutputConfig(BaseModel):
    """Destination store for one target."""

    model_config = ConfigDict(frozen=True)

    path: Path | None = None
    buffer_capacity: int = 50
    delimiter: str = ","

    @field_validator("path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path | None:
        if value in (None, ""):
            return None
        return Path(value)

    @model_validator(mode="after")
    def _validate_output(self) -> "OutputConfig":
        if self.buffer_capacity < 1:
            raise ValueError("buffer_capacity must be >= 1")
        if len(self.delimiter) != 1 or self.delimiter in {'"', "\n", "\r"}:
            raise ValueError("delimiter must be a single character other than a quote or newline")
        return self


class TargetConfig(BaseModel):
    """One scrape job. Immutable for the duration of a pipeline run."""

    model_config = ConfigDict(frozen=True)

    name: str
    url: str | None = None
    query: str | None = None
    # Used with ``query``; must contain a ``{query}`` placeholder
    search_url_template: str | None = None
    record_limit: int = 50
    round_budget: int = 20
    retry_budget: int = 3
    backoff_seconds: float = 2.0
    # Consecutive rounds without a new record before the attempt ends (0 disables)
    stall_rounds: int = 0
    ready_selector: str | None = None
    ready_timeout_ms: int = 15000
    navigation_timeout_ms: int = 60000
    identity_fields: tuple[str, ...]
    extraction: ExtractionConfig
    reveal: RevealConfig = Field(default_factory=RevealConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    @model_validator(mode="after")
    def _validate_target(self) -> "TargetConfig":
        if not self.name.strip():
            raise ValueError("name cannot be empty")
        if bool(self.url) == bool(self.query):
            raise ValueError("Exactly one of url or query must be set")
        if self.query and (
            not self.search_url_template or "{query}" not in self.search_url_template
        ):
            raise ValueError("query targets require a search_url_template containing {query}")
        for label in ("record_limit", "round_budget", "retry_budget"):
            if getattr(self, label) < 1:
                raise ValueError(f"{label} must be >= 1")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds must be >= 0")
        if self.stall_rounds < 0:
            raise ValueError("stall_rounds must be >= 0")
        if self.ready_timeout_ms <= 0 or self.navigation_timeout_ms <= 0:
            raise ValueError("timeouts must be positive")
        if not self.identity_fields:
            raise ValueError("identity_fields must name at least one field")
        unknown = set(self.identity_fields) - set(self.extraction.field_names)
        if unknown:
            raise ValueError(f"identity_fields reference unknown fields: {sorted(unknown)}")
        return self

    @property
    def location(self) -> str:
        """URL the source should navigate to."""

        if self.url:
            return self.url
        return self.search_url_template.format(query=quote_plus(self.query))  # type: ignore[union-attr]

    @property
    def field_names(self) -> list[str]:
        return self.extraction.field_names

    def resolved_output_path(self, base_dir: Path) -> Path:
        """Return the output file path, relative paths anchored at ``base_dir``."""

        path = self.output.path
        if path is None:
            slug = re.sub(r"[^0-9A-Za-z_-]+", "_", self.name.strip()) or "target"
            path = Path(f"{slug}.csv")
        if not path.is_absolute():
            return (base_dir / path).resolve()
        return path


class BrowserConfig(BaseModel):
    """Settings for the Playwright-backed source."""

    headless: bool = True
    viewport_size: tuple[int, int] = (1366, 900)
    user_agent: str | None = None
    locale: str = "en-US"
    storage_state: Path | None = None


class GlobalConfig(BaseModel):
    """Settings shared by every target."""

    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    thread_pool_workers: int = 4
    outputs_dir: Path = Field(default=Path("data/outputs"))

    @field_validator("outputs_dir", mode="before")
    @classmethod
    def _coerce_dirs(cls, value: Any) -> Path:
        return Path(value)

    @field_validator("thread_pool_workers")
    @classmethod
    def _validate_workers(cls, value: int) -> int:
        if value < 1:
            raise ValueError("thread_pool_workers must be >= 1")
        return value


__all__ = [
    "BrowserConfig",
    "ExtractionConfig",
    "FieldSpec",
    "GlobalConfig",
    "OutputConfig",
    "RevealConfig",
    "TargetConfig",
]
