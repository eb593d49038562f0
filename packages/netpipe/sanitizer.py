"""Redaction and truncation applied before captured data leaves the process."""

from __future__ import annotations

import json
import logging
import re
import traceback
from typing import Any, Dict, Optional
from urllib.parse import SplitResult, unquote_plus, urlsplit, urlunsplit

from .config import SanitizePolicy
from .models import FormData
from .utils import normalize_headers

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"
TRUNCATED = "...[TRUNCATED]"
EMPTY_FORM = "[FormData]"
UNSERIALIZABLE = "[Unserializable body]"
MAX_STACK_LINES = 10


def truncate(value: str, limit: int) -> str:
    if len(value) > limit:
        return f"{value[:limit]}{TRUNCATED}"
    return value


class NetworkSanitizer:
    def __init__(self, policy: SanitizePolicy):
        self.policy = policy

    # Headers ---------------------------------------------------------------

    def _is_sensitive_header(self, name: str) -> bool:
        lowered = name.lower()
        return any(sensitive in lowered for sensitive in self.policy.sensitive_header_names)

    def sanitize_headers(self, headers: Any) -> Dict[str, str]:
        if not self.policy.capture_headers:
            return {}

        sanitized: Dict[str, str] = {}
        for key, value in normalize_headers(headers).items():
            if self._is_sensitive_header(key):
                sanitized[key] = REDACTED
            else:
                sanitized[key] = truncate(value, self.policy.max_header_value_length)
        return sanitized

    # Bodies ----------------------------------------------------------------

    def _body_to_string(self, body: Any) -> str:
        if isinstance(body, str):
            return body
        if isinstance(body, FormData):
            pairs = [f"{key}={value}" for key, value in body.items()]
            return f"FormData: {'&'.join(pairs)}" if pairs else EMPTY_FORM
        if isinstance(body, (bytes, bytearray)):
            return f"[{len(body)} bytes]"
        if isinstance(body, memoryview):
            return f"[{body.nbytes} bytes]"
        try:
            return json.dumps(body, separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError, RecursionError) as exc:
            logger.debug(f"Body of type {type(body).__name__} is not serializable: {exc}")
            return UNSERIALIZABLE

    def sanitize_body(self, body: Any) -> Optional[str]:
        if body is None:
            return None
        if isinstance(body, str) and not body:
            return None
        return truncate(self._body_to_string(body), self.policy.max_body_length)

    # URLs ------------------------------------------------------------------

    def _is_sensitive_param(self, name: str) -> bool:
        lowered = name.lower()
        for param in self.policy.sensitive_url_params:
            if isinstance(param, str):
                if lowered == param.lower():
                    return True
            elif param.search(name):
                return True
        return False

    def _redact_query(self, query: str) -> str:
        parts = []
        for part in query.split("&"):
            name = part.partition("=")[0]
            if self._is_sensitive_param(unquote_plus(name)):
                parts.append(f"{name}={REDACTED}")
            else:
                parts.append(part)
        return "&".join(parts)

    def sanitize_url(self, url: str) -> str:
        try:
            parts = urlsplit(url)
        except ValueError:
            return self._redact_malformed_url(url)

        if not parts.query:
            return url
        return urlunsplit(
            SplitResult(
                parts.scheme,
                parts.netloc,
                parts.path,
                self._redact_query(parts.query),
                parts.fragment,
            )
        )

    def _redact_malformed_url(self, url: str) -> str:
        def replace(match: re.Match) -> str:
            if self._is_sensitive_param(unquote_plus(match.group(2))):
                return f"{match.group(1)}{match.group(2)}={REDACTED}"
            return match.group(0)

        return re.sub(r"([?&;])([^=&#;]+)=([^&#;]*)", replace, url)

    # Errors ----------------------------------------------------------------

    def sanitize_error(self, error: Optional[BaseException]) -> Optional[Dict[str, Any]]:
        if error is None:
            return None

        sanitized: Dict[str, Any] = {
            "name": type(error).__name__,
            "message": str(error) or "Unknown error",
            "type": f"{type(error).__module__}.{type(error).__qualname__}",
            "stack": None,
        }
        if error.__traceback__ is not None:
            lines = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            ).splitlines()
            sanitized["stack"] = "\n".join(lines[:MAX_STACK_LINES])
        return sanitized
