import json

import pytest
import requests

from netpipe.clients import EventRequest, ObserverList, RequestsClient
from netpipe.errors import InvalidStateError, RequestAborted


@pytest.fixture
def make_request(requests_session):
    def factory():
        return EventRequest(RequestsClient(requests_session))

    return factory


def record_states(request):
    states = []
    request.on_ready_state_change.add(lambda target: states.append(target.ready_state))
    return states


class TestObserverList:
    def test_calls_in_order_with_prepend(self):
        calls = []
        observers = ObserverList()
        observers.add(lambda _: calls.append("second"))
        observers.prepend(lambda _: calls.append("first"))

        observers(None)

        assert calls == ["first", "second"]
        assert len(observers) == 2

    def test_observer_can_remove_itself(self):
        calls = []
        observers = ObserverList()

        def once(_):
            calls.append("once")
            observers.remove(once)

        observers.add(once)
        observers.add(lambda _: calls.append("always"))
        observers(None)
        observers(None)

        assert calls == ["once", "always", "always"]
        assert once not in observers


class TestLifecycle:
    def test_successful_request_walks_every_state(self, make_request):
        request = make_request()
        states = record_states(request)

        request.open("get", "https://api.example.com/items")
        request.send()

        assert states == [
            EventRequest.OPENED,
            EventRequest.HEADERS_RECEIVED,
            EventRequest.LOADING,
            EventRequest.DONE,
        ]
        assert request.method == "GET"
        assert request.status == 200
        assert request.status_text == "OK"
        assert request.response_text == '{"items":[]}'
        assert request.error is None

    def test_response_headers(self, make_request):
        request = make_request()
        request.open("GET", "https://api.example.com/items")
        request.send()

        assert request.get_response_header("content-type") == "application/json"
        assert request.get_response_header("x-missing") is None
        assert "Content-Type: application/json\r\n" in request.get_all_response_headers()

    def test_request_headers_and_body_reach_transport(self, make_request, stub_adapter):
        request = make_request()
        request.open("POST", "https://api.example.com/items")
        request.set_request_header("X-Trace", "1")
        request.send({"name": "ada"})

        sent = stub_adapter.sent[0]
        assert sent.method == "POST"
        assert sent.headers["X-Trace"] == "1"
        assert json.loads(sent.body) == {"name": "ada"}

    def test_transport_failure_completes_with_status_zero(self, make_request):
        request = make_request()
        states = record_states(request)

        request.open("GET", "https://api.example.com/offline")
        request.send()

        assert states == [EventRequest.OPENED, EventRequest.DONE]
        assert request.status == 0
        assert isinstance(request.error, requests.ConnectionError)
        assert request.response_text == ""

    def test_http_errors_are_not_transport_failures(self, make_request):
        request = make_request()
        request.open("GET", "https://api.example.com/boom")
        request.send()

        assert request.status == 503
        assert request.error is None


class TestAbort:
    def test_abort_while_receiving(self, make_request):
        request = make_request()
        states = record_states(request)

        def abort_on_headers(target):
            if target.ready_state == EventRequest.HEADERS_RECEIVED:
                target.abort()

        request.on_ready_state_change.add(abort_on_headers)
        request.open("GET", "https://api.example.com/items")
        request.send()

        assert states == [EventRequest.OPENED, EventRequest.HEADERS_RECEIVED, EventRequest.DONE]
        assert isinstance(request.error, RequestAborted)
        assert request.status == 0
        assert request.response_text == ""

    def test_later_observers_see_done_once_after_abort(self, make_request):
        request = make_request()

        def abort_on_headers(target):
            if target.ready_state == EventRequest.HEADERS_RECEIVED:
                target.abort()

        request.on_ready_state_change.add(abort_on_headers)
        states = record_states(request)
        request.open("GET", "https://api.example.com/items")
        request.send()

        assert states == [EventRequest.OPENED, EventRequest.DONE]
        assert isinstance(request.error, RequestAborted)

    def test_abort_before_send_or_after_done_is_noop(self, make_request):
        request = make_request()
        request.open("GET", "https://api.example.com/items")
        request.abort()
        assert request.ready_state == EventRequest.OPENED

        request.send()
        request.abort()
        assert request.status == 200
        assert request.error is None


class TestInvalidState:
    def test_send_requires_open(self, make_request):
        with pytest.raises(InvalidStateError):
            make_request().send()

    def test_headers_require_open(self, make_request):
        with pytest.raises(InvalidStateError):
            make_request().set_request_header("Accept", "*/*")

    def test_send_twice(self, make_request):
        request = make_request()
        request.open("GET", "https://api.example.com/items")
        request.send()
        with pytest.raises(InvalidStateError):
            request.send()

    def test_reopen_resets_state(self, make_request):
        request = make_request()
        request.open("GET", "https://api.example.com/offline")
        request.send()

        request.open("GET", "https://api.example.com/items")
        assert request.error is None
        assert request.status == 0
        request.send()
        assert request.status == 200
