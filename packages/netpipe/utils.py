"""Stateless helpers used by the interceptor and formatter."""

from __future__ import annotations

import gc
import os
import random
import string
import threading
import time
from collections.abc import Mapping
from typing import Any, Dict, Optional

from .config import SanitizePolicy

try:  # Not available on Windows
    import resource
except ImportError:  # pragma: no cover
    resource = None  # type: ignore[assignment]

_ID_ALPHABET = string.ascii_lowercase + string.digits
_BINARY_CONTENT_TYPES = ("image/", "video/", "audio/", "application/octet-stream")


def generate_request_id() -> str:
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"req_{int(time.time() * 1000)}_{suffix}"


def now_ms() -> float:
    """Monotonic clock in milliseconds."""

    return time.perf_counter() * 1000


def epoch_ms() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Headers
# ---------------------------------------------------------------------------


def parse_raw_headers(raw: str) -> Dict[str, str]:
    """Parse a ``Name: value`` block separated by CRLF."""

    headers: Dict[str, str] = {}
    for line in raw.splitlines():
        key, sep, value = line.partition(":")
        key = key.strip()
        if not sep or not key:
            continue
        headers[key] = value.strip()
    return headers


def normalize_headers(headers: Any) -> Dict[str, str]:
    """Convert any supported header container into a plain ``dict``."""

    if headers is None:
        return {}
    if isinstance(headers, str):
        return parse_raw_headers(headers)
    if isinstance(headers, Mapping) or hasattr(headers, "items"):
        items = headers.items()
    else:
        items = headers
    return {str(key): str(value) for key, value in items}


def get_header(headers: Any, name: str) -> Optional[str]:
    """Case-insensitive single header lookup."""

    wanted = name.lower()
    for key, value in normalize_headers(headers).items():
        if key.lower() == wanted:
            return value
    return None


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


def _matches(url: str, pattern: Any) -> bool:
    if isinstance(pattern, str):
        return pattern in url
    return pattern.search(url) is not None


def should_capture(url: str, policy: SanitizePolicy) -> bool:
    # Exclusions always win over inclusions.
    for pattern in policy.exclude_patterns:
        if _matches(url, pattern):
            return False

    if policy.include_patterns:
        return any(_matches(url, pattern) for pattern in policy.include_patterns)

    return True


def should_capture_body(content_type: Optional[str]) -> bool:
    content_type = (content_type or "").lower()
    return not any(kind in content_type for kind in _BINARY_CONTENT_TYPES)


def response_level(status: int) -> str:
    if status >= 500:
        return "error"
    if status >= 400:
        return "warn"
    return "info"


# ---------------------------------------------------------------------------
# Performance
# ---------------------------------------------------------------------------


def collect_performance_snapshot() -> Dict[str, Any]:
    snapshot: Dict[str, Any] = {
        "timing": {
            "now": now_ms(),
            "timeOrigin": epoch_ms(),
        },
        "runtime": {
            "pid": os.getpid(),
            "threads": threading.active_count(),
            "gcCounts": list(gc.get_count()),
        },
    }
    if resource is not None:
        usage = resource.getrusage(resource.RUSAGE_SELF)
        snapshot["memory"] = {"maxRss": usage.ru_maxrss}
    return snapshot
