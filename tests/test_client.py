"""Tests for the blocking HTTP client against a real local server."""

import json

import pytest
from multidict import CIMultiDict

from proxytestkit.client import HTTPClient
from proxytestkit.client import Response
from proxytestkit.client import open_client
from proxytestkit.encoding import RequestOptions
from proxytestkit.errors import ServiceConnectionError
from tests.testing.echo_app import free_port


@pytest.fixture
def client(echo_server):
    with open_client(echo_server.host, echo_server.port, timeout_seconds=5) as c:
        yield c


class TestResponseBodyCache:
    def test_read_body_reads_once(self):
        calls = []

        def reader():
            calls.append(1)
            return b"hello"

        res = Response(200, CIMultiDict(), reader)
        assert res.read_body() == ("hello", None)
        assert res.read_body() == ("hello", None)
        assert len(calls) == 1

    def test_read_error_is_cached(self):
        calls = []

        def reader():
            calls.append(1)
            raise ConnectionResetError("reset by peer")

        res = Response(200, CIMultiDict(), reader)
        body, err = res.read_body()
        assert body is None
        assert isinstance(err, ConnectionResetError)
        assert res.read_body() == (None, err)
        assert len(calls) == 1

    def test_charset_is_honoured(self):
        res = Response(200, CIMultiDict(), lambda: "café".encode("latin-1"), charset="latin-1")
        assert res.read_body() == ("café", None)


class TestOpenClient:
    def test_connection_refused_is_raised(self):
        port = free_port()
        with pytest.raises(ServiceConnectionError) as exc_info:
            open_client("127.0.0.1", port, timeout_seconds=1)
        assert exc_info.value.port == port

    def test_close_is_idempotent(self, echo_server):
        c = open_client(echo_server.host, echo_server.port)
        assert not c.closed
        c.close()
        c.close()
        assert c.closed


class TestSend:
    def test_json_body_round_trip(self, client):
        body = {"name": "mockbin", "tags": ["a", "b"]}
        res, err = client.send(
            method="POST",
            path="/echo",
            headers={"Content-Type": "application/json"},
            body=body,
        )
        assert err is None
        assert res.status == 200
        text, read_err = res.read_body()
        assert read_err is None
        echoed = json.loads(text)
        assert echoed["method"] == "POST"
        assert json.loads(echoed["body"]) == body

    def test_body_can_be_read_twice(self, client):
        res, _ = client.send(path="/echo")
        first = res.read_body()
        assert first[0]
        assert res.read_body() == first

    def test_query_is_sent(self, client):
        res, err = client.send(path="/echo", query={"a": "1", "b": "2"})
        assert err is None
        echoed = json.loads(res.read_body()[0])
        assert set(echoed["query_string"].split("&")) == {"a=1", "b=2"}
        assert res.request.path == "/echo?a=1&b=2"
        assert res.request.query is None

    def test_form_body(self, client):
        res, _ = client.send(
            method="POST",
            path="/echo",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            body={"name": "mockbin", "upstream": "http://mockbin.com"},
        )
        echoed = json.loads(res.read_body()[0])
        assert echoed["body"] == "name=mockbin&upstream=http://mockbin.com"

    def test_multipart_body(self, client):
        res, _ = client.send(
            method="POST",
            path="/echo",
            headers={"Content-Type": "multipart/form-data"},
            body={"name": "mockbin"},
        )
        echoed = json.loads(res.read_body()[0])
        assert echoed["headers"]["content-type"].endswith("boundary=8fd84e9444e3946c")
        assert echoed["headers"]["content-length"] == str(len(echoed["body"].encode()))
        assert 'name="name"' in echoed["body"]

    def test_options_object_and_overrides(self, client):
        options = RequestOptions(method="DELETE", path="/status/404")
        res, _ = client.send(options, path="/echo")
        assert res.status == 200
        assert json.loads(res.read_body()[0])["method"] == "DELETE"
        assert options.path == "/status/404"

    def test_response_headers_are_case_insensitive(self, client):
        res, _ = client.send(path="/echo")
        assert res.headers["X-Echo"] == "yes"

    def test_timeout_is_returned_not_raised(self, client):
        res, err = client.send(path="/slow", timeout_seconds=0.2)
        assert res is None
        assert err is not None

    def test_raw_request_skips_encoding(self, client):
        res, _ = client.request(
            RequestOptions(method="POST", path="/echo", body=b"raw bytes")
        )
        assert json.loads(res.read_body()[0])["body"] == "raw bytes"

    def test_raw_request_rejects_structured_body(self, client):
        with pytest.raises(TypeError):
            client.request(RequestOptions(path="/echo", body={"a": 1}))


class FakeRawResponse:
    def __init__(self, number):
        self.number = number
        self.status = 200
        self.headers = {"Content-Type": "text/plain"}
        self.charset = None


class RecordingTransport:
    """Stands in for HTTPTransport, recording requests and body reads."""

    def __init__(self):
        self.requests = []
        self.reads = []

    def request(self, options):
        self.requests.append(options)
        return FakeRawResponse(len(self.requests))

    def read(self, raw):
        self.reads.append(raw.number)
        return f"body {raw.number}".encode()


class TestUnreadBodies:
    def test_previous_body_is_read_before_next_request(self):
        transport = RecordingTransport()
        client = HTTPClient(transport)

        first, _ = client.send(path="/a")
        assert transport.reads == []
        second, _ = client.send(path="/b")

        assert transport.reads == [1]
        assert first.body_read
        assert not second.body_read
        assert first.read_body() == ("body 1", None)
        assert transport.reads == [1]

    def test_already_read_body_is_not_read_again(self):
        transport = RecordingTransport()
        client = HTTPClient(transport)

        first, _ = client.send(path="/a")
        first.read_body()
        client.send(path="/b")
        assert transport.reads == [1]

    def test_many_unread_responses_on_real_server(self, client):
        responses = [client.send(path="/echo", query={"n": str(n)})[0] for n in range(120)]
        assert all(res is not None for res in responses)
        for n, res in enumerate(responses):
            assert json.loads(res.read_body()[0])["query_string"] == f"n={n}"


def test_timeout_alias():
    transport = RecordingTransport()
    client = HTTPClient(transport)
    client.send(path="/x", timeout=0.5)
    client.send(RequestOptions(path="/y"), timeout=2)
    assert [o.timeout_seconds for o in transport.requests] == [0.5, 2]
