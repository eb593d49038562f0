"""Deterministic categorization, tagging and severity scoring.

Every rule here is a plain string/number check so the same call always gets
the same classification. Error classification prefers the exception type
raised by the HTTP client and only falls back to matching on the message
text for errors that carry nothing better.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import parse_qsl, urlsplit

import httpx
import requests

from .errors import RequestAborted
from .models import Severity

SLOW_RESPONSE_MS = 5000
DELAYED_RESPONSE_MS = 2000
FAST_RESPONSE_MS = 100
LARGE_PAYLOAD_BYTES = 1024 * 1024

_API_MARKERS = ("/api/", "/v1/", "/v2/", "api.", ".api.")
_API_TAG_MARKERS = ("/api/", "/v1/", "/v2/", "/graphql")
_AUTH_MARKERS = ("auth", "login", "oauth", "token")
_ASSET_RE = re.compile(r"\.(js|css|png|jpg|jpeg|gif|svg|ico|woff|woff2|ttf)$")
_SCRIPT_STYLE_RE = re.compile(r"\.(js|css)$")
_IMAGE_RE = re.compile(r"\.(png|jpg|jpeg|gif|svg|ico)$")
_FRAMEWORKS = ("react", "vue", "angular")

# Checked in this order; the first vocabulary found in the message wins.
_ERROR_VOCABULARY = (
    ("cors", "CORS Error"),
    ("timeout", "Timeout Error"),
    ("abort", "Request Aborted"),
    ("fetch", "Fetch Error"),
)
_ERROR_TAGS = {"cors": "cors", "timeout": "timeout", "abort": "aborted", "fetch": "fetch-error"}
_SENSITIVE_QUERY_NAMES = ("token", "key", "password", "secret", "auth")


def severity_level(score: int) -> str:
    if score >= 8:
        return "critical"
    if score >= 6:
        return "high"
    if score >= 4:
        return "medium"
    return "low"


def _path(url: str) -> str:
    try:
        return urlsplit(url).path.lower()
    except ValueError:
        return url.lower()


def _looks_like_api(url: str) -> bool:
    url = url.lower()
    return any(marker in url for marker in _API_MARKERS) or "/graphql" in url


def _apply_duration(score: int, factors: List[str], duration: Optional[float]) -> int:
    if duration is None:
        return score
    if duration > SLOW_RESPONSE_MS:
        factors.append("slow-response")
        return max(score, 7)
    if duration > DELAYED_RESPONSE_MS:
        factors.append("moderate-delay")
        return max(score, 5)
    return score


def _dedupe(tags: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(tags))


class NetworkAnalyzer:
    def __init__(self, environment: Optional[str] = "development", branch: Optional[str] = None):
        self.environment = environment
        self.branch = branch

    def _context_tags(self) -> List[str]:
        tags = []
        if self.environment:
            tags.append(f"env-{self.environment}")
        if self.branch:
            tags.append(f"branch-{self.branch}")
        return tags

    # Categories ------------------------------------------------------------

    def categorize_request(self, url: str, method: str) -> str:
        lowered = url.lower()
        method = method.upper()

        if "graphql" in lowered or (method == "POST" and "query" in lowered):
            return "GraphQL Request"
        if any(marker in lowered for marker in _API_MARKERS):
            return "API Request"
        if _ASSET_RE.search(_path(url)):
            return "Static Asset"
        if any(marker in lowered for marker in _AUTH_MARKERS):
            return "Authentication"
        if method == "GET":
            return "Data Fetch"
        if method in ("POST", "PUT", "PATCH"):
            return "Data Mutation"
        if method == "DELETE":
            return "Data Deletion"
        return "HTTP Request"

    def categorize_response(self, status: int, url: str) -> str:
        if status >= 600 or status < 200:
            return "Unknown Response"
        if status >= 500:
            return "Server Error"
        if status >= 400:
            return "Client Error"
        if status >= 300:
            return "Redirect"
        if _looks_like_api(url):
            return "API Success"
        return "Success"

    def categorize_xhr_response(self, status: int, url: str) -> str:
        return self.categorize_response(status, url)

    def error_kind(self, error: BaseException) -> Optional[str]:
        """Return ``cors``, ``timeout``, ``abort``, ``fetch`` or ``None``."""

        if isinstance(error, (httpx.TimeoutException, requests.exceptions.Timeout)):
            return "timeout"
        if isinstance(error, (asyncio.CancelledError, RequestAborted)):
            return "abort"

        # Unstructured errors: match on the message text.
        message = str(error).lower()
        for vocabulary, _ in _ERROR_VOCABULARY:
            if vocabulary in message:
                return vocabulary
        return None

    def categorize_error(self, error: BaseException) -> str:
        kind = self.error_kind(error)
        for vocabulary, category in _ERROR_VOCABULARY:
            if kind == vocabulary:
                return category
        return "Network Error"

    # Severity --------------------------------------------------------------

    def response_severity(self, status: int, duration: Optional[float] = None) -> Severity:
        score = 1
        factors: List[str] = []

        if 500 <= status < 600:
            score = 9
            factors.append("server-error")
        elif 400 <= status < 500:
            score = 4
            factors.append("client-error")
        elif 300 <= status < 400:
            score = 3
            factors.append("redirect")

        score = _apply_duration(score, factors, duration)
        return Severity(score=score, level=severity_level(score), factors=factors)

    def error_severity(self, error: BaseException, duration: Optional[float] = None) -> Severity:
        score = 7
        factors = ["network-failure"]

        kind = self.error_kind(error)
        if kind == "cors":
            score = 6
            factors.append("cors-issue")
        elif kind == "timeout":
            score = 4
            factors.append("timeout")
        elif kind == "abort":
            score = 4
            factors.append("user-cancelled")

        score = _apply_duration(score, factors, duration)
        return Severity(score=score, level=severity_level(score), factors=factors)

    # Tags ------------------------------------------------------------------

    def request_tags(self, url: str, method: str) -> List[str]:
        lowered = url.lower()
        path = _path(url)
        tags = ["network", "request", f"method-{method.lower()}"]

        if any(marker in lowered for marker in _API_TAG_MARKERS):
            tags.append("api")
        if "graphql" in lowered:
            tags.append("graphql")
        if "auth" in lowered:
            tags.append("authentication")
        if _SCRIPT_STYLE_RE.search(path):
            tags.extend(["asset", "script-style"])
        if _IMAGE_RE.search(path):
            tags.extend(["asset", "image"])
        tags.extend(name for name in _FRAMEWORKS if name in lowered)

        tags.extend(self._context_tags())
        return _dedupe(tags)

    def response_tags(
        self,
        status: int,
        duration: float,
        content_type: Optional[str],
        *,
        xhr: bool = False,
    ) -> List[str]:
        tags = ["network", "response"]
        if xhr:
            tags.append("xhr")

        tags.append(f"status-{status // 100}xx")
        if status >= 400:
            tags.append("error")
        if status >= 500:
            tags.append("server-error")
        if 400 <= status < 500:
            tags.append("client-error")

        if duration > SLOW_RESPONSE_MS:
            tags.append("slow")
        if duration > DELAYED_RESPONSE_MS:
            tags.append("delayed")
        if duration < FAST_RESPONSE_MS:
            tags.append("fast")

        content_type = (content_type or "").lower()
        for family in ("json", "html", "xml"):
            if family in content_type:
                tags.append(family)

        tags.extend(self._context_tags())
        return _dedupe(tags)

    def error_tags(self, error: BaseException) -> List[str]:
        tags = ["network", "error"]
        kind = self.error_kind(error)
        if kind is not None:
            tags.append(_ERROR_TAGS[kind])
        # Every vocabulary found in the message adds its tag, not only the first.
        message = str(error).lower()
        tags.extend(
            _ERROR_TAGS[vocabulary]
            for vocabulary, _ in _ERROR_VOCABULARY
            if vocabulary in message
        )
        tags.extend(self._context_tags())
        return _dedupe(tags)

    # Analysis --------------------------------------------------------------

    def analyze_request(self, url: str, method: str, headers: Dict[str, str]) -> Dict[str, Any]:
        patterns = []
        security = []
        optimization = []

        try:
            parts = urlsplit(url)
            query = parse_qsl(parts.query, keep_blank_values=True)
            scheme = parts.scheme.lower()
        except ValueError:
            query, scheme = [], ""

        if "graphql" in url.lower():
            patterns.append("graphql")
        elif _looks_like_api(url):
            patterns.append("rest-api")
        if query:
            patterns.append("query-parameters")

        if scheme == "http":
            security.append("plaintext-http")
        if any(
            marker in name.lower() for name, _ in query for marker in _SENSITIVE_QUERY_NAMES
        ):
            security.append("credentials-in-query")
        if any(name.lower() == "authorization" for name in headers):
            security.append("authorization-header")

        if method.upper() == "GET" and len(query) > 20:
            optimization.append("large-query-string")

        return {"patterns": patterns, "security": security, "optimization": optimization}

    def analyze_response(
        self, status: int, duration: float, body_size: Optional[int] = None
    ) -> Dict[str, Any]:
        if duration > SLOW_RESPONSE_MS:
            bucket = "slow"
        elif duration > DELAYED_RESPONSE_MS:
            bucket = "delayed"
        elif duration < FAST_RESPONSE_MS:
            bucket = "fast"
        else:
            bucket = "normal"

        patterns = []
        optimization = []
        if status == 304:
            patterns.append("cache-revalidated")
        if status == 429:
            patterns.append("rate-limited")
            optimization.append("add-client-backoff")
        if body_size is not None and body_size > LARGE_PAYLOAD_BYTES:
            optimization.append("paginate-or-compress-payload")
        if bucket == "slow":
            optimization.append("investigate-slow-endpoint")

        return {
            "patterns": patterns,
            "optimization": optimization,
            "performance": {"bucket": bucket, "durationMs": round(duration, 2)},
        }

    def analyze_error(self, error: BaseException) -> Dict[str, Any]:
        kind = self.error_kind(error)
        if kind == "timeout":
            return {
                "cause": "The request exceeded its time budget",
                "recovery": ["retry-with-backoff", "raise-timeout"],
                "prevention": ["reduce-payload-size", "check-upstream-latency"],
            }
        if kind == "abort":
            return {
                "cause": "The caller cancelled the request",
                "recovery": [],
                "prevention": ["review-cancellation-logic"],
            }
        if kind == "cors":
            return {
                "cause": "Cross-origin policy rejected the request",
                "recovery": [],
                "prevention": ["configure-cors-headers"],
            }
        if isinstance(error, (httpx.ConnectError, requests.exceptions.ConnectionError)):
            return {
                "cause": "Could not connect to the remote host",
                "recovery": ["retry-with-backoff"],
                "prevention": ["verify-host-and-port", "check-dns"],
            }
        return {"cause": "Unknown", "recovery": [], "prevention": []}
