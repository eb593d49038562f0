"""Instrumenting adapters for the two network surfaces.

``NetworkInterceptor.install`` swaps the adapters held by a
``NetworkSurfaces`` instance for decorators that report every captured call
to a callback:

* ``InstrumentedClient`` wraps the promise-call client;
* ``InstrumentedEventRequest`` wraps each ``EventRequest`` the factory makes.

Completions may arrive in any order. They are matched back to their request
through the id-keyed ``active_requests`` registry only.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

import httpx

from .clients.base import AsyncNetworkClient
from .clients.event_request import EventRequest
from .config import CaptureConfig
from .errors import InstrumentationError
from .formatter import NetworkFormatter
from .models import (
    EVENT_DRIVEN_CALL,
    PROMISE_CALL,
    ActiveRequest,
    CaptureMetadata,
    NetworkEntry,
    OutboundRequest,
    RequestDescriptor,
    Timing,
)
from .surfaces import EventRequestFactory, NetworkSurfaces
from .utils import generate_request_id, normalize_headers, now_ms, should_capture

logger = logging.getLogger(__name__)

EntryCallback = Callable[[Dict[str, Any]], None]


def _safe_headers(headers: Any) -> Dict[str, str]:
    try:
        return normalize_headers(headers)
    except Exception as exc:
        logger.warning(f"Could not read request headers: {exc}")
        return {}


# ---------------------------------------------------------------------------
# Interceptor
# ---------------------------------------------------------------------------


class NetworkInterceptor:
    def __init__(
        self,
        config: CaptureConfig,
        formatter: NetworkFormatter,
        on_network_data: EntryCallback,
    ):
        self.config = config
        self.policy = config.sanitize_policy
        self.formatter = formatter
        self.on_network_data = on_network_data

        self.active_requests: Dict[str, ActiveRequest] = {}

        self._surfaces: Optional[NetworkSurfaces] = None
        self._original_fetch: Optional[AsyncNetworkClient] = None
        self._original_factory: Optional[EventRequestFactory] = None

    @property
    def installed(self) -> bool:
        return self._surfaces is not None

    def install(self, surfaces: NetworkSurfaces) -> None:
        if self._surfaces is not None:
            return

        self._surfaces = surfaces
        self._original_fetch = surfaces.fetch
        self._original_factory = surfaces.event_request_factory

        if self.config.capture_promise_calls:
            surfaces.fetch = InstrumentedClient(self._original_fetch, self)
        if self.config.capture_event_calls:
            surfaces.event_request_factory = InstrumentedEventRequestFactory(
                self._original_factory, self
            )
        logger.debug("Network interception installed")

    def uninstall(self) -> None:
        surfaces = self._surfaces
        if surfaces is None:
            return

        surfaces.fetch = self._original_fetch
        surfaces.event_request_factory = self._original_factory

        self._surfaces = None
        self._original_fetch = None
        self._original_factory = None
        logger.debug("Network interception removed")

    # Correlation -----------------------------------------------------------

    def should_capture(self, url: str) -> bool:
        return should_capture(url, self.policy)

    def begin(self, descriptor: RequestDescriptor) -> bool:
        """Emit the request entry and register the call.

        Returns ``False`` when the request entry could not be built; the call
        then proceeds untracked.
        """

        try:
            entry = self.formatter.create_request_entry(descriptor)
        except Exception as exc:
            logger.error(f"Failed to build request entry for {descriptor.id}: {exc}")
            timing = self._timing(descriptor)
            self._emit(
                self._safe_error_entry(
                    descriptor.id, InstrumentationError("request", exc), timing
                )
            )
            return False

        self.active_requests[descriptor.id] = ActiveRequest(
            method=descriptor.method,
            url=descriptor.url,
            kind=descriptor.kind,
            start_time=descriptor.start_time,
        )
        self._emit(entry)
        return True

    def resolve(self, descriptor: RequestDescriptor, response: httpx.Response) -> None:
        self._complete(
            descriptor,
            "response",
            lambda timing: self.formatter.create_response_entry(descriptor.id, response, timing),
        )

    def resolve_event(self, descriptor: RequestDescriptor, request: EventRequest) -> None:
        self._complete(
            descriptor,
            "response",
            lambda timing: self.formatter.create_xhr_response_entry(descriptor.id, request, timing),
        )

    def reject(self, descriptor: RequestDescriptor, error: BaseException) -> None:
        self._complete(
            descriptor,
            "error",
            lambda timing: self.formatter.create_error_entry(descriptor.id, error, timing),
        )

    def _complete(
        self,
        descriptor: RequestDescriptor,
        stage: str,
        build: Callable[[Timing], NetworkEntry],
    ) -> None:
        timing = self._timing(descriptor)
        try:
            entry = build(timing)
        except Exception as exc:
            logger.error(f"Failed to build {stage} entry for {descriptor.id}: {exc}")
            entry = self._safe_error_entry(
                descriptor.id, InstrumentationError(stage, exc), timing
            )
        finally:
            self._release(descriptor.id)
        self._emit(entry)

    def _release(self, request_id: str) -> None:
        if self.active_requests.pop(request_id, None) is None:
            logger.warning(f"Request {request_id} was not active when it completed")

    @staticmethod
    def _timing(descriptor: RequestDescriptor) -> Timing:
        return Timing(
            start=descriptor.start_time,
            end=now_ms(),
            url=descriptor.url,
            method=descriptor.method,
        )

    def _safe_error_entry(
        self, request_id: str, error: BaseException, timing: Timing
    ) -> Optional[NetworkEntry]:
        try:
            return self.formatter.create_error_entry(request_id, error, timing)
        except Exception:
            logger.exception(f"Failed to build fallback error entry for {request_id}")
            return None

    def _emit(self, entry: Optional[NetworkEntry]) -> None:
        if entry is None:
            return
        try:
            self.on_network_data(entry.to_event())
        except Exception:
            logger.exception(f"Failed to deliver entry {entry.id}")


# ---------------------------------------------------------------------------
# Promise-call surface
# ---------------------------------------------------------------------------


class InstrumentedClient:
    def __init__(self, inner: AsyncNetworkClient, interceptor: NetworkInterceptor):
        self._inner = inner
        self._interceptor = interceptor

    @property
    def wrapped(self) -> AsyncNetworkClient:
        return self._inner

    async def issue(self, request: OutboundRequest) -> httpx.Response:
        interceptor = self._interceptor
        request_id = generate_request_id()

        if not interceptor.should_capture(request.url):
            return await self._inner.issue(request)

        descriptor = RequestDescriptor(
            id=request_id,
            url=request.url,
            method=(request.method or "GET").upper(),
            headers=_safe_headers(request.headers),
            body=request.body,
            kind=PROMISE_CALL,
            start_time=now_ms(),
        )
        if not interceptor.begin(descriptor):
            return await self._inner.issue(request)

        try:
            response = await self._inner.issue(request)
        except (Exception, asyncio.CancelledError) as exc:
            interceptor.reject(descriptor, exc)
            raise

        interceptor.resolve(descriptor, response)
        return response


# ---------------------------------------------------------------------------
# Event-driven surface
# ---------------------------------------------------------------------------


class InstrumentedEventRequestFactory:
    def __init__(self, inner: EventRequestFactory, interceptor: NetworkInterceptor):
        self._inner = inner
        self._interceptor = interceptor

    @property
    def wrapped(self) -> EventRequestFactory:
        return self._inner

    def __call__(self) -> "InstrumentedEventRequest":
        return InstrumentedEventRequest(self._inner(), self._interceptor)


class InstrumentedEventRequest:
    """Decorates one ``EventRequest``; everything not overridden is delegated."""

    _OWN_ATTRIBUTES = ("_request", "_interceptor", "capture")

    def __init__(self, request: EventRequest, interceptor: NetworkInterceptor):
        self._request = request
        self._interceptor = interceptor
        self.capture: Optional[CaptureMetadata] = None

    def __getattr__(self, name: str) -> Any:
        if name == "_request":
            raise AttributeError(name)
        return getattr(self._request, name)

    def __setattr__(self, name: str, value: Any) -> None:
        if name in self._OWN_ATTRIBUTES:
            object.__setattr__(self, name, value)
        else:
            setattr(self._request, name, value)

    @property
    def wrapped(self) -> EventRequest:
        return self._request

    def open(self, method: str, url: str) -> None:
        self.capture = CaptureMetadata(
            request_id=generate_request_id(),
            method=method.upper(),
            url=url,
        )
        return self._request.open(method, url)

    def send(self, body: Any = None) -> None:
        request = self._request
        interceptor = self._interceptor
        capture, self.capture = self.capture, None

        if capture is None or not interceptor.should_capture(capture.url):
            return request.send(body)

        descriptor = RequestDescriptor(
            id=capture.request_id,
            url=capture.url,
            method=capture.method,
            headers=_safe_headers(request.request_headers),
            body=body,
            kind=EVENT_DRIVEN_CALL,
            start_time=now_ms(),
        )
        if not interceptor.begin(descriptor):
            return request.send(body)

        def observe(target: EventRequest) -> None:
            if target.ready_state != target.DONE:
                return
            target.on_ready_state_change.remove(observe)
            if target.error is not None:
                interceptor.reject(descriptor, target.error)
            else:
                interceptor.resolve_event(descriptor, target)

        request.on_ready_state_change.prepend(observe)
        try:
            return request.send(body)
        except Exception as exc:
            if observe in request.on_ready_state_change:
                request.on_ready_state_change.remove(observe)
                interceptor.reject(descriptor, exc)
            raise
