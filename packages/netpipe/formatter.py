"""Builds the entries handed to listeners.

Each builder sanitizes first, then classifies, then attaches timing. The
optional ``performance`` and ``analysis`` blocks are only present when the
configuration enables them.
"""

from __future__ import annotations

import logging
import platform
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

import httpx
import requests

from ._version import __version__
from .analyzer import NetworkAnalyzer
from .config import CaptureConfig
from .models import (
    EntryMetadata,
    ErrorDetails,
    NetworkEntry,
    RequestDescriptor,
    RequestDetails,
    ResponseDetails,
    Timing,
    TimingInfo,
)
from .sanitizer import NetworkSanitizer
from .utils import (
    collect_performance_snapshot,
    epoch_ms,
    get_header,
    response_level,
    should_capture_body,
)

if TYPE_CHECKING:
    from .clients.event_request import EventRequest

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    f"netpipe/{__version__} "
    f"({platform.python_implementation()} {platform.python_version()}) "
    f"httpx/{httpx.__version__} requests/{requests.__version__}"
)


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def read_body_copy(response: httpx.Response) -> str:
    """Decode the buffered body without touching the caller's response.

    ``Response.content`` is an immutable bytes copy, so decoding it leaves the
    response readable. Raises ``httpx.ResponseNotRead`` for unbuffered streams.
    """

    content = response.content
    return content.decode(response.encoding or "utf-8", errors="replace")


class NetworkFormatter:
    def __init__(
        self,
        config: CaptureConfig,
        sanitizer: Optional[NetworkSanitizer] = None,
        analyzer: Optional[NetworkAnalyzer] = None,
    ):
        self.config = config
        self.sanitizer = sanitizer or NetworkSanitizer(config.sanitize_policy)
        self.analyzer = analyzer or NetworkAnalyzer(config.environment, config.branch)

    # Shared pieces ---------------------------------------------------------

    def _metadata(self) -> EntryMetadata:
        return EntryMetadata(
            user_agent=self.config.user_agent or DEFAULT_USER_AGENT,
            timestamp=epoch_ms(),
        )

    def _performance(self) -> Optional[Dict[str, Any]]:
        if not self.config.enable_performance_tracking:
            return None
        return collect_performance_snapshot()

    @staticmethod
    def _timing(timing: Timing) -> TimingInfo:
        return TimingInfo(
            start=timing.start,
            end=timing.end,
            duration=timing.duration,
            duration_ms=round(timing.duration, 2),
        )

    # Entries ---------------------------------------------------------------

    def create_request_entry(self, descriptor: RequestDescriptor) -> NetworkEntry:
        method = descriptor.method.upper()
        headers = self.sanitizer.sanitize_headers(descriptor.headers)
        body = descriptor.body if self.config.capture_request_body else None

        analysis = None
        if self.config.enable_network_analysis:
            analysis = self.analyzer.analyze_request(descriptor.url, method, headers)

        return NetworkEntry(
            id=descriptor.id,
            timestamp=_iso_now(),
            subtype="request",
            level="info",
            application=self.config.application,
            request=RequestDetails(
                id=descriptor.id,
                url=self.sanitizer.sanitize_url(descriptor.url),
                method=method,
                headers=headers,
                body=self.sanitizer.sanitize_body(body),
                type=descriptor.kind,
                timestamp=descriptor.start_time,
            ),
            category=self.analyzer.categorize_request(descriptor.url, method),
            tags=self.analyzer.request_tags(descriptor.url, method),
            performance=self._performance(),
            analysis=analysis,
            metadata=self._metadata(),
        )

    def _response_body(self, response: httpx.Response, content_type: Optional[str]) -> Optional[str]:
        if not self.config.capture_response_body or not should_capture_body(content_type):
            return None
        try:
            return read_body_copy(response)
        except Exception as exc:
            logger.debug(f"Could not read response body: {exc}")
            return f"[Error reading response body: {exc}]"

    def create_response_entry(
        self, request_id: str, response: httpx.Response, timing: Timing
    ) -> NetworkEntry:
        status = response.status_code
        content_type = response.headers.get("content-type")
        body = self._response_body(response, content_type)

        analysis = None
        if self.config.enable_network_analysis:
            analysis = self.analyzer.analyze_response(
                status, timing.duration, len(body) if body is not None else None
            )

        return NetworkEntry(
            id=f"{request_id}_response",
            timestamp=_iso_now(),
            subtype="response",
            level=response_level(status),
            application=self.config.application,
            response=ResponseDetails(
                request_id=request_id,
                status=status,
                status_text=response.reason_phrase,
                headers=self.sanitizer.sanitize_headers(response.headers),
                body=self.sanitizer.sanitize_body(body),
                url=self.sanitizer.sanitize_url(timing.url),
                method=timing.method,
                timestamp=timing.end,
            ),
            timing=self._timing(timing),
            category=self.analyzer.categorize_response(status, timing.url),
            severity=self.analyzer.response_severity(status, timing.duration),
            tags=self.analyzer.response_tags(status, timing.duration, content_type),
            performance=self._performance(),
            analysis=analysis,
            metadata=self._metadata(),
        )

    def create_xhr_response_entry(
        self, request_id: str, request: "EventRequest", timing: Timing
    ) -> NetworkEntry:
        status = request.status
        headers = request.get_all_response_headers()
        content_type = get_header(headers, "content-type")

        body = None
        if self.config.capture_response_body and should_capture_body(content_type):
            body = request.response_text

        analysis = None
        if self.config.enable_network_analysis:
            analysis = self.analyzer.analyze_response(
                status, timing.duration, len(body) if body is not None else None
            )

        return NetworkEntry(
            id=f"{request_id}_response",
            timestamp=_iso_now(),
            subtype="response",
            level=response_level(status),
            application=self.config.application,
            response=ResponseDetails(
                request_id=request_id,
                status=status,
                status_text=request.status_text,
                response_type=request.response_type,
                headers=self.sanitizer.sanitize_headers(headers),
                body=self.sanitizer.sanitize_body(body),
                url=self.sanitizer.sanitize_url(timing.url),
                method=timing.method,
                timestamp=timing.end,
            ),
            timing=self._timing(timing),
            category=self.analyzer.categorize_xhr_response(status, timing.url),
            severity=self.analyzer.response_severity(status, timing.duration),
            tags=self.analyzer.response_tags(status, timing.duration, content_type, xhr=True),
            performance=self._performance(),
            analysis=analysis,
            metadata=self._metadata(),
        )

    def create_error_entry(
        self, request_id: str, error: BaseException, timing: Timing
    ) -> NetworkEntry:
        details = self.sanitizer.sanitize_error(error)

        analysis = None
        if self.config.enable_network_analysis:
            analysis = self.analyzer.analyze_error(error)

        return NetworkEntry(
            id=f"{request_id}_error",
            timestamp=_iso_now(),
            subtype="error",
            level="error",
            application=self.config.application,
            error=ErrorDetails(
                request_id=request_id,
                url=self.sanitizer.sanitize_url(timing.url),
                method=timing.method,
                timestamp=timing.end,
                **details,
            ),
            timing=self._timing(timing),
            category=self.analyzer.categorize_error(error),
            severity=self.analyzer.error_severity(error, timing.duration),
            tags=self.analyzer.error_tags(error),
            analysis=analysis,
            metadata=self._metadata(),
        )
