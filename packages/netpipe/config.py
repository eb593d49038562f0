"""Capture configuration.

``CaptureConfig`` is built once and never mutated. Every component derives
what it needs from it: the sanitizer and the URL filter read the
``SanitizePolicy`` view, the formatter reads the application context.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

UrlPattern = Union[str, re.Pattern]

DEFAULT_SENSITIVE_HEADERS = [
    "authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
    "x-auth-token",
    "x-access-token",
    "bearer",
    "basic",
]

DEFAULT_SENSITIVE_URL_PARAMS = ["token", "key", "password", "secret", "auth"]

# Keeps the relay transport's own traffic and dev-server noise out of the stream.
DEFAULT_EXCLUDE_URLS = [
    re.compile(r"localhost:\d+/api/logs"),
    re.compile(r"127\.0\.0\.1:\d+/api/logs"),
    re.compile(r"webpack-dev-server"),
    re.compile(r"hot-update"),
    re.compile(r"__webpack_hmr"),
    re.compile(r"sockjs-node"),
    re.compile(r"favicon\.ico"),
]

ENV_PREFIX = "NETPIPE_"


@dataclass(frozen=True)
class SanitizePolicy:
    """Read-only view of the settings used for redaction and filtering."""

    sensitive_header_names: frozenset
    sensitive_url_params: tuple
    max_header_value_length: int
    max_body_length: int
    exclude_patterns: tuple = ()
    include_patterns: tuple = ()
    capture_headers: bool = True


def _check_patterns(value: Any) -> List[UrlPattern]:
    if value is None:
        return []
    if isinstance(value, (str, re.Pattern)):
        value = [value]
    patterns = list(value)
    for pattern in patterns:
        if not isinstance(pattern, (str, re.Pattern)):
            raise ValueError(
                f"URL patterns must be strings or compiled regexes, got {type(pattern).__name__}"
            )
    return patterns


class CaptureConfig(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    # Surfaces
    capture_promise_calls: bool = True
    capture_event_calls: bool = True

    # What to record
    capture_headers: bool = True
    capture_request_body: bool = True
    capture_response_body: bool = True
    max_body_size: int = Field(default=50 * 1024, gt=0)
    max_header_size: int = Field(default=10 * 1024, gt=0)

    # Redaction and filtering
    sensitive_headers: List[str] = Field(
        default_factory=lambda: list(DEFAULT_SENSITIVE_HEADERS)
    )
    sensitive_url_params: List[Any] = Field(
        default_factory=lambda: list(DEFAULT_SENSITIVE_URL_PARAMS)
    )
    exclude_urls: List[Any] = Field(default_factory=lambda: list(DEFAULT_EXCLUDE_URLS))
    include_urls: List[Any] = Field(default_factory=list)

    # Enrichment
    enable_network_analysis: bool = True
    enable_performance_tracking: bool = True

    # Queue
    max_queue_size: int = Field(default=1000, gt=0)

    # Application context, copied verbatim into every entry
    application_name: Optional[str] = None
    session_id: Optional[str] = None
    environment: str = "development"
    developer: Optional[str] = None
    branch: Optional[str] = None
    user_agent: Optional[str] = None

    @field_validator("exclude_urls", "include_urls", "sensitive_url_params", mode="before")
    @classmethod
    def _validate_patterns(cls, value):
        return _check_patterns(value)

    @field_validator("sensitive_headers", mode="before")
    @classmethod
    def _lowercase_headers(cls, value):
        if isinstance(value, str):
            value = [value]
        return [str(name).lower() for name in value]

    @property
    def sanitize_policy(self) -> SanitizePolicy:
        return SanitizePolicy(
            sensitive_header_names=frozenset(self.sensitive_headers),
            sensitive_url_params=tuple(self.sensitive_url_params),
            max_header_value_length=self.max_header_size,
            max_body_length=self.max_body_size,
            exclude_patterns=tuple(self.exclude_urls),
            include_patterns=tuple(self.include_urls),
            capture_headers=self.capture_headers,
        )

    @property
    def application(self) -> dict[str, Optional[str]]:
        return {
            "name": self.application_name,
            "sessionId": self.session_id,
            "environment": self.environment,
            "developer": self.developer,
            "branch": self.branch,
        }

    def with_url_filters(
        self,
        *,
        exclude: Optional[List[UrlPattern]] = None,
        include: Optional[List[UrlPattern]] = None,
    ) -> "CaptureConfig":
        """Return a copy whose exclude list is extended and include list replaced."""

        update: dict[str, Any] = {}
        if exclude:
            update["exclude_urls"] = [*self.exclude_urls, *_check_patterns(exclude)]
        if include is not None:
            update["include_urls"] = _check_patterns(include)
        return self.model_copy(update=update)

    @classmethod
    def from_env(
        cls, env_file: Optional[Union[str, Path]] = None, **overrides: Any
    ) -> "CaptureConfig":
        """Build a config from ``NETPIPE_*`` environment variables.

        List settings are comma separated. Explicit keyword overrides win.
        """

        if env_file is not None and Path(env_file).exists():
            load_dotenv(env_file)

        values: dict[str, Any] = {}
        for name in cls.model_fields:
            raw = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None:
                continue
            if name in ("sensitive_headers", "sensitive_url_params", "exclude_urls", "include_urls"):
                values[name] = [item.strip() for item in raw.split(",") if item.strip()]
            else:
                values[name] = raw
        values.update(overrides)
        return cls.model_validate(values)
