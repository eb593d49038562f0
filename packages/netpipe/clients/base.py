"""Client interfaces the interceptor decorates."""

from __future__ import annotations

from typing import Any, Dict, List, Protocol, runtime_checkable

import httpx
import requests

from ..models import FormData, OutboundRequest


@runtime_checkable
class AsyncNetworkClient(Protocol):
    """Promise-call surface: one awaitable call per request."""

    async def issue(self, request: OutboundRequest) -> httpx.Response:  # pragma: no cover - interface
        ...


@runtime_checkable
class SyncNetworkClient(Protocol):
    """Transport behind the event-driven surface."""

    def issue(self, request: OutboundRequest) -> requests.Response:  # pragma: no cover - interface
        ...


def body_kwargs(body: Any) -> Dict[str, Any]:
    """Map an ``OutboundRequest.body`` onto client keyword arguments.

    The keywords (``content``/``data``/``json``) are shared by httpx and
    requests apart from ``content``, which callers rename where needed.
    """

    if body is None:
        return {}
    if isinstance(body, (str, bytes, bytearray, memoryview)):
        return {"content": bytes(body) if isinstance(body, (bytearray, memoryview)) else body}
    if isinstance(body, FormData):
        fields: Dict[str, List[str]] = {}
        for key, value in body.items():
            fields.setdefault(key, []).append(str(value))
        return {"data": fields}
    return {"json": body}
