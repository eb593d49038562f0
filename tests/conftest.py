"""
Shared pytest fixtures for all tests.

Provides fake transports for both network surfaces so no test touches the
real network: an ``httpx.MockTransport`` behind the promise-call client and a
stub ``requests`` adapter behind the event-driven surface.
"""

from functools import partial
from http import HTTPStatus

import httpx
import pytest
import requests
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict

from netpipe import CaptureConfig, EventRequest, HTTPXClient, NetworkSurfaces, RequestsClient


def json_handler(request: httpx.Request) -> httpx.Response:
    """Default httpx route table used by most tests."""
    path = request.url.path
    if path == "/users":
        return httpx.Response(
            200, content=b'{"ok":true}', headers={"Content-Type": "application/json"}
        )
    if path == "/boom":
        return httpx.Response(500, text="internal error")
    if path == "/missing":
        return httpx.Response(404, json={"detail": "not found"})
    if path == "/offline":
        raise httpx.ConnectError("Connection refused", request=request)
    if path == "/slowpoke":
        raise httpx.ReadTimeout("Read timed out", request=request)
    return httpx.Response(200, text="hello")


class StubAdapter(BaseAdapter):
    """requests transport adapter answering from a handler function."""

    def __init__(self, handler):
        super().__init__()
        self.handler = handler
        self.sent = []

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        self.sent.append(request)
        status, body, headers = self.handler(request)

        response = requests.Response()
        response.status_code = status
        response.reason = HTTPStatus(status).phrase
        response.headers = CaseInsensitiveDict(headers)
        response._content = body.encode("utf-8") if isinstance(body, str) else body
        response.encoding = "utf-8"
        response.url = request.url
        response.request = request
        return response

    def close(self):
        pass


def stub_handler(request):
    if request.url.endswith("/offline"):
        raise requests.ConnectionError("Connection refused")
    if request.url.endswith("/slowpoke"):
        raise requests.Timeout("Read timed out")
    if request.url.endswith("/boom"):
        return 503, "unavailable", {"Content-Type": "text/plain"}
    return 200, '{"items":[]}', {"Content-Type": "application/json", "Set-Cookie": "sid=abc"}


@pytest.fixture
def config():
    return CaptureConfig(
        application_name="test-app",
        session_id="session-1",
        developer="dev",
        branch="main",
    )


@pytest.fixture
def async_client():
    return httpx.AsyncClient(transport=httpx.MockTransport(json_handler))


@pytest.fixture
def stub_adapter():
    return StubAdapter(stub_handler)


@pytest.fixture
def requests_session(stub_adapter):
    session = requests.Session()
    session.mount("http://", stub_adapter)
    session.mount("https://", stub_adapter)
    yield session
    session.close()


@pytest.fixture
def surfaces(async_client, requests_session):
    return NetworkSurfaces(
        fetch=HTTPXClient(async_client),
        event_request_factory=partial(EventRequest, RequestsClient(requests_session)),
    )


@pytest.fixture
def make_session():
    """Build ``requests`` sessions answering from a handler; yields a factory."""
    sessions = []

    def factory(handler):
        adapter = StubAdapter(handler)
        session = requests.Session()
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        sessions.append(session)
        return session, adapter

    yield factory
    for session in sessions:
        session.close()
