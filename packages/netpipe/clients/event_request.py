"""Event-driven request surface.

``EventRequest`` follows the XMLHttpRequest lifecycle: ``open()`` then
``send()``, with every ready-state change announced to the observers in
``on_ready_state_change``. Transport failures never raise out of ``send()``;
they leave the request in ``DONE`` with ``status == 0`` and ``error`` set.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterator, List, Optional

import requests

from ..errors import InvalidStateError, RequestAborted
from ..models import OutboundRequest
from .base import SyncNetworkClient, body_kwargs

logger = logging.getLogger(__name__)

Observer = Callable[["EventRequest"], Any]


class ObserverList:
    """Multicast delegate: calling it calls every observer in order."""

    def __init__(self) -> None:
        self._observers: List[Observer] = []

    def add(self, observer: Observer) -> None:
        self._observers.append(observer)

    def prepend(self, observer: Observer) -> None:
        self._observers.insert(0, observer)

    def remove(self, observer: Observer) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def __len__(self) -> int:
        return len(self._observers)

    def __iter__(self) -> Iterator[Observer]:
        return iter(list(self._observers))

    def __contains__(self, observer: object) -> bool:
        return observer in self._observers

    def __call__(self, request: "EventRequest") -> None:
        # Iterate over a snapshot; observers may remove themselves.
        for observer in list(self._observers):
            observer(request)


class RequestsClient:
    """Passthrough transport over ``requests.Session``."""

    def __init__(self, session: Optional[requests.Session] = None):
        self._session = session if session is not None else requests.Session()

    def issue(self, request: OutboundRequest) -> requests.Response:
        kwargs = body_kwargs(request.body)
        if "content" in kwargs:
            kwargs["data"] = kwargs.pop("content")
        return self._session.request(
            request.method.upper(),
            request.url,
            headers=request.headers,
            timeout=request.timeout,
            **kwargs,
        )

    def close(self) -> None:
        self._session.close()


class EventRequest:
    UNSENT = 0
    OPENED = 1
    HEADERS_RECEIVED = 2
    LOADING = 3
    DONE = 4

    def __init__(self, client: SyncNetworkClient, timeout: Optional[float] = None):
        self._client = client
        self.timeout = timeout
        self.on_ready_state_change = ObserverList()
        self._reset()

    def _reset(self) -> None:
        self.ready_state = self.UNSENT
        self.method: Optional[str] = None
        self.url: Optional[str] = None
        self.status = 0
        self.status_text = ""
        self.response_text = ""
        self.response_type = "text"
        self.error: Optional[BaseException] = None
        self._request_headers: Dict[str, str] = {}
        self._response_headers: Dict[str, str] = {}
        self._sent = False
        self._aborted = False

    def _set_state(self, state: int) -> None:
        self.ready_state = state
        for observer in self.on_ready_state_change:
            # An observer that moved the request on (abort) already notified the rest.
            if self.ready_state != state:
                break
            observer(self)

    # Request side ----------------------------------------------------------

    def open(self, method: str, url: str) -> None:
        self._reset()
        self.method = method.upper()
        self.url = url
        self._set_state(self.OPENED)

    def set_request_header(self, name: str, value: str) -> None:
        if self.ready_state != self.OPENED or self._sent:
            raise InvalidStateError("set_request_header() requires an opened, unsent request")
        self._request_headers[name] = value

    @property
    def request_headers(self) -> Dict[str, str]:
        return dict(self._request_headers)

    def send(self, body: Any = None) -> None:
        if self.ready_state != self.OPENED or self._sent:
            raise InvalidStateError("send() requires an opened, unsent request")
        self._sent = True

        try:
            response = self._client.issue(
                OutboundRequest(
                    url=self.url,
                    method=self.method,
                    headers=dict(self._request_headers),
                    body=body,
                    timeout=self.timeout,
                )
            )
        except Exception as exc:
            logger.debug(f"{self.method} {self.url} failed: {exc}")
            self._fail(exc)
            return

        self.status = response.status_code
        self.status_text = response.reason or ""
        self._response_headers = dict(response.headers)
        self._set_state(self.HEADERS_RECEIVED)
        if self._aborted:
            return

        self._set_state(self.LOADING)
        if self._aborted:
            return

        self.response_text = response.text
        self._set_state(self.DONE)

    def abort(self) -> None:
        """Cancel a sent request that has not completed yet."""

        if not self._sent or self.ready_state == self.DONE:
            return
        self._aborted = True
        self._fail(RequestAborted())

    def _fail(self, error: BaseException) -> None:
        self.error = error
        self.status = 0
        self.status_text = ""
        self.response_text = ""
        self._response_headers = {}
        self._set_state(self.DONE)

    # Response side ---------------------------------------------------------

    def get_response_header(self, name: str) -> Optional[str]:
        wanted = name.lower()
        for key, value in self._response_headers.items():
            if key.lower() == wanted:
                return value
        return None

    def get_all_response_headers(self) -> str:
        return "".join(f"{key}: {value}\r\n" for key, value in self._response_headers.items())
