"""Holder for the active network adapters.

Application code reaches the network only through a ``NetworkSurfaces``
instance; installing or removing instrumentation swaps the references held
here and never touches httpx or requests themselves.
"""

from __future__ import annotations

from functools import partial
from typing import Any, Callable, Mapping, Optional

import httpx
import requests

from .clients.base import AsyncNetworkClient
from .clients.event_request import EventRequest, RequestsClient
from .clients.httpx_client import HTTPXClient
from .models import OutboundRequest

EventRequestFactory = Callable[[], EventRequest]


class NetworkSurfaces:
    def __init__(self, fetch: AsyncNetworkClient, event_request_factory: EventRequestFactory):
        self.fetch = fetch
        self.event_request_factory = event_request_factory

    @classmethod
    def default(
        cls,
        *,
        async_client: Optional[httpx.AsyncClient] = None,
        session: Optional[requests.Session] = None,
    ) -> "NetworkSurfaces":
        return cls(
            fetch=HTTPXClient(async_client),
            event_request_factory=partial(EventRequest, RequestsClient(session)),
        )

    async def fetch_url(
        self,
        url: str,
        *,
        method: str = "GET",
        headers: Optional[Mapping[str, str]] = None,
        body: Any = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        request = OutboundRequest(
            url=url,
            method=method,
            headers=dict(headers or {}),
            body=body,
            timeout=timeout,
        )
        return await self.fetch.issue(request)

    def new_request(self) -> EventRequest:
        return self.event_request_factory()
