import httpx
import pytest

from netpipe.clients import EventRequest, RequestsClient
from netpipe.config import CaptureConfig
from netpipe.formatter import NetworkFormatter, read_body_copy
from netpipe.models import EVENT_DRIVEN_CALL, PROMISE_CALL, RequestDescriptor, Timing
from netpipe.sanitizer import REDACTED


class UnreadStream(httpx.AsyncByteStream):
    async def __aiter__(self):
        yield b"never read"


def descriptor(url="https://api.example.com/users?token=abc", method="post", body=None):
    return RequestDescriptor(
        id="req_1_abcdefghi",
        url=url,
        method=method,
        headers={"Authorization": "Bearer secret", "Accept": "application/json"},
        body=body,
        kind=PROMISE_CALL,
        start_time=100.0,
    )


def timing(url="https://api.example.com/users", method="GET", duration=250.0):
    return Timing(start=100.0, end=100.0 + duration, url=url, method=method)


@pytest.fixture
def formatter(config):
    return NetworkFormatter(config)


class TestRequestEntry:
    def test_shape(self, formatter):
        event = formatter.create_request_entry(descriptor(body={"name": "ada"})).to_event()

        assert event["id"] == "req_1_abcdefghi"
        assert event["type"] == "network"
        assert event["subtype"] == "request"
        assert event["level"] == "info"
        assert event["category"] == "API Request"
        assert event["application"]["name"] == "test-app"
        assert event["request"] == {
            "id": "req_1_abcdefghi",
            "url": f"https://api.example.com/users?token={REDACTED}",
            "method": "POST",
            "headers": {"Authorization": REDACTED, "Accept": "application/json"},
            "body": '{"name":"ada"}',
            "type": "promise-call",
            "timestamp": 100.0,
        }
        assert "method-post" in event["tags"]
        assert event["metadata"]["userAgent"].startswith("netpipe/")
        assert event["timestamp"].endswith("Z")
        for key in ("response", "error", "timing", "severity"):
            assert key not in event

    def test_request_body_toggle(self, config):
        formatter = NetworkFormatter(config.model_copy(update={"capture_request_body": False}))
        event = formatter.create_request_entry(descriptor(body="payload")).to_event()
        assert event["request"]["body"] is None

    def test_optional_blocks_follow_toggles(self):
        enabled = NetworkFormatter(CaptureConfig()).create_request_entry(descriptor()).to_event()
        assert "performance" in enabled
        assert "credentials-in-query" in enabled["analysis"]["security"]

        disabled = NetworkFormatter(
            CaptureConfig(enable_network_analysis=False, enable_performance_tracking=False)
        ).create_request_entry(descriptor()).to_event()
        assert "performance" not in disabled
        assert "analysis" not in disabled


class TestResponseEntry:
    def test_shape(self, formatter):
        response = httpx.Response(
            200,
            content=b'{"ok":true}',
            headers={"Content-Type": "application/json", "Set-Cookie": "sid=1"},
        )
        event = formatter.create_response_entry("req_1_abcdefghi", response, timing()).to_event()

        assert event["id"] == "req_1_abcdefghi_response"
        assert event["subtype"] == "response"
        assert event["category"] == "API Success"
        assert event["severity"] == {"score": 1, "level": "low", "factors": []}
        assert event["timing"]["duration"] == 250.0
        assert event["timing"]["durationMs"] == 250.0

        details = event["response"]
        assert details["requestId"] == "req_1_abcdefghi"
        assert details["status"] == 200
        assert details["statusText"] == "OK"
        assert details["body"] == '{"ok":true}'
        assert details["headers"]["set-cookie"] == REDACTED
        assert details["timestamp"] == 350.0

    def test_body_stays_readable_for_caller(self, formatter):
        response = httpx.Response(200, text="hello")
        formatter.create_response_entry("req_1", response, timing())
        assert response.text == "hello"
        assert read_body_copy(response) == "hello"

    def test_unread_stream_gets_placeholder(self, formatter):
        response = httpx.Response(200, headers={"Content-Type": "text/plain"}, stream=UnreadStream())
        event = formatter.create_response_entry("req_1", response, timing()).to_event()
        assert event["response"]["body"].startswith("[Error reading response body:")

    def test_binary_body_is_skipped(self, formatter):
        response = httpx.Response(200, content=b"\x89PNG", headers={"Content-Type": "image/png"})
        event = formatter.create_response_entry("req_1", response, timing()).to_event()
        assert event["response"]["body"] is None

    def test_levels_and_slow_severity(self, formatter):
        server = formatter.create_response_entry("r", httpx.Response(503), timing()).to_event()
        assert server["level"] == "error"
        assert server["severity"]["level"] == "critical"

        client = formatter.create_response_entry("r", httpx.Response(404), timing()).to_event()
        assert client["level"] == "warn"

        slow = formatter.create_response_entry(
            "r", httpx.Response(200), timing(duration=6000)
        ).to_event()
        assert slow["severity"]["level"] == "high"
        assert "slow" in slow["tags"]


class TestXhrResponseEntry:
    def test_shape(self, formatter, requests_session):
        request = EventRequest(RequestsClient(requests_session))
        request.open("GET", "https://api.example.com/items")
        request.send()

        event = formatter.create_xhr_response_entry(
            "req_2", request, timing(url="https://api.example.com/items")
        ).to_event()

        assert event["id"] == "req_2_response"
        assert event["category"] == "API Success"
        assert "xhr" in event["tags"]
        assert "json" in event["tags"]
        assert event["response"]["responseType"] == "text"
        assert event["response"]["body"] == '{"items":[]}'
        assert event["response"]["headers"]["Set-Cookie"] == REDACTED


class TestErrorEntry:
    def test_shape(self, formatter):
        error = httpx.ConnectError("Connection refused")
        event = formatter.create_error_entry(
            "req_3", error, timing(url="https://example.com/x?secret=1")
        ).to_event()

        assert event["id"] == "req_3_error"
        assert event["subtype"] == "error"
        assert event["level"] == "error"
        assert event["category"] == "Network Error"
        assert event["severity"]["level"] == "high"
        assert event["error"]["requestId"] == "req_3"
        assert event["error"]["name"] == "ConnectError"
        assert event["error"]["message"] == "Connection refused"
        assert event["error"]["url"] == f"https://example.com/x?secret={REDACTED}"
        assert event["analysis"]["cause"] == "Could not connect to the remote host"
        assert "performance" not in event

    def test_event_driven_descriptor_kind(self, formatter):
        event_descriptor = RequestDescriptor(
            id="req_4",
            url="https://example.com/",
            method="GET",
            headers={},
            body=None,
            kind=EVENT_DRIVEN_CALL,
            start_time=0.0,
        )
        event = formatter.create_request_entry(event_descriptor).to_event()
        assert event["request"]["type"] == "event-driven-call"
