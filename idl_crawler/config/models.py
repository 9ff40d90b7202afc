"""Pydantic models describing scrape passes, HTTP access and reconciliation."""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_IDL_SELECTORS = [
    "pre.idl",
    "pre.webidl",
    "code.idl",
    "code.idl-code",
    "xmp.idl",
    "spec-idl",
]

DEFAULT_SPEC_URL_PATTERNS = [
    r"^https?://[^/]*\.spec\.whatwg\.org/",
    r"^https?://(www\.)?w3\.org/TR/",
    r"^https?://[^/]*\.github\.io/",
    r"^https?://drafts\.csswg\.org/",
    r"^https?://drafts\.fxtf\.org/",
    r"^https?://drafts\.css-houdini\.org/",
    r"^https?://(www\.)?khronos\.org/registry/",
    r"^https?://wicg\.github\.io/",
]


class PassConfig(BaseModel):
    """Pool sizing and patience for one scrape pass."""

    num_instances: int = 8
    timeout: float = Field(default=80.0, description="Per-request timeout in seconds.")
    page_load_wait: float = Field(
        default=9.0, description="Seconds to let page scripts settle after navigation."
    )

    @model_validator(mode="after")
    def _validate_positive(self) -> "PassConfig":
        if self.num_instances < 1:
            raise ValueError("num_instances must be >= 1")
        if self.timeout <= 0:
            raise ValueError("timeout must be > 0")
        if self.page_load_wait < 0:
            raise ValueError("page_load_wait must be >= 0")
        return self

    @property
    def job_timeout(self) -> float:
        return self.timeout + self.page_load_wait


def _default_retry_pass() -> PassConfig:
    return PassConfig(num_instances=8, timeout=160.0, page_load_wait=29.0)


class BrowserCapabilities(BaseModel):
    """Automation capabilities handed to each browser instance."""

    browser_name: Literal["chromium", "firefox", "webkit"] = "chromium"
    headless: bool = True
    viewport_size: tuple[int, int] = (1280, 800)


class HttpConfig(BaseModel):
    """Plain HTTP access used by raw IDL imports and linked spec fetches."""

    timeout: float = 30.0
    max_connections: int = 16
    user_agent: str | None = None

    @field_validator("max_connections")
    @classmethod
    def _validate_connections(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_connections must be >= 1")
        return value


class ReconcileConfig(BaseModel):
    """Rules applied when second-pass data disagrees with history."""

    accept_confirmed_regressions: bool = False


class GlobalConfig(BaseModel):
    """Global controls shared by every runner."""

    first_pass: PassConfig = Field(default_factory=PassConfig)
    retry_pass: PassConfig = Field(default_factory=_default_retry_pass)
    browser: BrowserCapabilities = Field(default_factory=BrowserCapabilities)
    http: HttpConfig = Field(default_factory=HttpConfig)
    reconcile: ReconcileConfig = Field(default_factory=ReconcileConfig)
    idl_selectors: list[str] = Field(default_factory=lambda: list(DEFAULT_IDL_SELECTORS))
    spec_url_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SPEC_URL_PATTERNS)
    )

    @field_validator("idl_selectors")
    @classmethod
    def _validate_selectors(cls, value: list[str]) -> list[str]:
        cleaned = [selector.strip() for selector in value if selector.strip()]
        if not cleaned:
            raise ValueError("idl_selectors cannot be empty")
        return cleaned

    @field_validator("spec_url_patterns")
    @classmethod
    def _validate_patterns(cls, value: list[str]) -> list[str]:
        for pattern in value:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"Invalid spec URL pattern {pattern!r}: {exc}") from exc
        return value


__all__ = [
    "BrowserCapabilities",
    "DEFAULT_IDL_SELECTORS",
    "DEFAULT_SPEC_URL_PATTERNS",
    "GlobalConfig",
    "HttpConfig",
    "PassConfig",
    "ReconcileConfig",
]
