"""Passthrough promise-call client over ``httpx.AsyncClient``."""

from __future__ import annotations

from typing import Any, Optional

import httpx

from ..models import OutboundRequest
from .base import body_kwargs


class HTTPXClient:
    def __init__(self, client: Optional[httpx.AsyncClient] = None, **client_kwargs: Any):
        self._client = client if client is not None else httpx.AsyncClient(**client_kwargs)

    async def issue(self, request: OutboundRequest) -> httpx.Response:
        kwargs = body_kwargs(request.body)
        if request.timeout is not None:
            kwargs["timeout"] = request.timeout
        return await self._client.request(
            request.method.upper(),
            request.url,
            headers=request.headers,
            **kwargs,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
