"""Network surfaces the capture pipeline can instrument."""

from .base import AsyncNetworkClient, SyncNetworkClient
from .event_request import EventRequest, ObserverList, RequestsClient
from .httpx_client import HTTPXClient

__all__ = [
    "AsyncNetworkClient",
    "SyncNetworkClient",
    "EventRequest",
    "ObserverList",
    "RequestsClient",
    "HTTPXClient",
]
