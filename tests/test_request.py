import time
import pytest
import requests
import threading
import dataclasses
import http.server
from conftest import FakeResponse
from urllib3.exceptions import ProtocolError, ReadTimeoutError
from request import (BodyParseError, CompletedRequest, NetworkError,
                     NonSuccessStatus, RequestError, RequestMethod,
                     RequestTimeout, UnsupportedMethod, fetch, parse,
                     pretty_print)


@pytest.mark.parametrize("method", list(RequestMethod))
def test_method_round_trips_through_text(method):
    assert str(method) == method.value
    assert str(method).isupper()
    assert RequestMethod.from_text(str(method)) is method


def test_method_from_text_is_case_insensitive():
    assert RequestMethod.from_text(" patch ") is RequestMethod.PATCH


def test_method_from_text_rejects_unknown():
    with pytest.raises(ValueError):
        RequestMethod.from_text("TRACE")


def test_method_next_wraps_around():
    assert RequestMethod.GET.next() is RequestMethod.POST
    assert RequestMethod.PATCH.next() is RequestMethod.GET


def test_completed_request_is_immutable():
    completed = CompletedRequest("https://example.com", RequestMethod.GET, "{}")
    with pytest.raises(dataclasses.FrozenInstanceError):
        completed.url = "https://other.example.com"
    assert completed.label() == "GET | https://example.com"


def test_pretty_print_uses_two_space_indent():
    assert pretty_print(parse(b'{"foo":1}')) == '{\n  "foo": 1\n}'


def test_pretty_print_keeps_key_order_and_unicode():
    text = pretty_print(parse('{"b": "é", "a": [1, 2]}'))
    assert text.index('"b"') < text.index('"a"')
    assert "é" in text


@pytest.mark.parametrize("body", [
    b'{"foo":1}',
    b'[1, {"a": [true, null]}, "x"]',
    b'"scalar"',
    b'42',
    b'{"nested": {"deeper": {"list": []}}, "empty": {}}',
])
def test_pretty_print_is_idempotent(body):
    once = pretty_print(parse(body))
    assert pretty_print(parse(once)) == once


@pytest.mark.parametrize("body", [b"", b"<html></html>", b"{'a': 1}", b"\xff\xfe"])
def test_parse_rejects_invalid_bodies(body):
    with pytest.raises(BodyParseError):
        parse(body)


def test_fetch_returns_pretty_body(fake_get):
    fake_get.response = FakeResponse(200, b'{"foo":1}')

    body = fetch("https://example.com/api", timeout=3)

    assert body == pretty_print({"foo": 1})
    assert fake_get.calls == [
        ("https://example.com/api", {"timeout": 3, "stream": True})]


def test_fetch_accepts_any_2xx(fake_get):
    fake_get.response = FakeResponse(201, b"[]", "Created")
    assert fetch("https://example.com/api") == "[]"


def test_fetch_non_success_status(fake_get):
    fake_get.response = FakeResponse(404, b'{"detail": "missing"}', "Not Found")

    with pytest.raises(NonSuccessStatus) as raised:
        fetch("https://example.com/api")

    assert raised.value.code == 404
    assert "404 Not Found" in str(raised.value)


def test_fetch_network_error(fake_get):
    fake_get.error = requests.ConnectionError("refused")

    with pytest.raises(NetworkError) as raised:
        fetch("https://example.com/api")

    assert "refused" in str(raised.value)
    assert isinstance(raised.value, RequestError)


def test_fetch_invalid_url_is_network_error(fake_get):
    fake_get.error = requests.exceptions.MissingSchema("no scheme")

    with pytest.raises(NetworkError):
        fetch("example.com")


def test_fetch_timeout(fake_get):
    fake_get.error = requests.ConnectTimeout("slow")

    with pytest.raises(RequestTimeout) as raised:
        fetch("https://example.com/api", timeout=0.5)

    assert raised.value.timeout == 0.5


def test_fetch_body_parse_error(fake_get):
    fake_get.response = FakeResponse(200, b"not json")

    with pytest.raises(BodyParseError):
        fetch("https://example.com/api")


def test_fetch_refuses_methods_other_than_get(fake_get):
    with pytest.raises(UnsupportedMethod) as raised:
        fetch("https://example.com/api", RequestMethod.POST)

    assert raised.value.method is RequestMethod.POST
    assert fake_get.calls == []


def test_errors_have_readable_messages():
    assert str(NonSuccessStatus(500)) == "Status code -> 500"


def test_fetch_read_timeout_from_body(fake_get):
    fake_get.response.raw.error = ReadTimeoutError(
        None, "https://example.com/api", "Read timed out.")

    with pytest.raises(RequestTimeout):
        fetch("https://example.com/api", timeout=2)


def test_fetch_wrapped_read_timeout(fake_get):
    fake_get.error = requests.ConnectionError(ReadTimeoutError(
        None, "https://example.com/api", "Read timed out."))

    with pytest.raises(RequestTimeout):
        fetch("https://example.com/api", timeout=2)


def test_fetch_broken_body_is_network_error(fake_get):
    fake_get.response.raw.error = ProtocolError("Connection broken")

    with pytest.raises(NetworkError):
        fetch("https://example.com/api")


def test_fetch_reads_body_in_chunks(fake_get):
    body = b'{"items": [' + b", ".join([b"1"] * 500) + b"]}"
    fake_get.response = FakeResponse(200, body)

    assert fetch("https://example.com/api") == pretty_print({"items": [1] * 500})


class SlowBodyHandler(http.server.BaseHTTPRequestHandler):
    """
    Sends the headers and the first byte of the body,
    then one more byte after every pause.
    """
    pause = 0.1
    repeat = 1

    def do_GET(self):
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", "1000")
        self.end_headers()
        try:
            self.wfile.write(b"[")
            self.wfile.flush()
            for _ in range(self.repeat):
                time.sleep(self.pause)
                self.wfile.write(b" ")
                self.wfile.flush()
        except OSError:
            pass  # Client hung up

    def log_message(self, format, *args):
        pass


class StallingHandler(SlowBodyHandler):
    pause = 3.0


class TricklingHandler(SlowBodyHandler):
    pause = 0.1
    repeat = 60


@pytest.fixture
def local_server(monkeypatch):
    monkeypatch.setenv("no_proxy", "127.0.0.1")
    monkeypatch.setenv("NO_PROXY", "127.0.0.1")
    servers = []

    def serve(handler):
        server = http.server.ThreadingHTTPServer(("127.0.0.1", 0), handler)
        server.block_on_close = False   # Stalled handlers are left behind
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        host, port = server.server_address
        return f"http://{host}:{port}/"

    yield serve
    for server in servers:
        server.shutdown()
        server.server_close()


def test_fetch_server_stalls_mid_body(local_server):
    url = local_server(StallingHandler)

    started = time.monotonic()
    with pytest.raises(RequestTimeout) as raised:
        fetch(url, timeout=0.5)

    assert raised.value.timeout == 0.5
    assert time.monotonic() - started < 2.5


def test_fetch_trickling_server_hits_total_deadline(local_server):
    url = local_server(TricklingHandler)

    started = time.monotonic()
    with pytest.raises(RequestTimeout):
        fetch(url, timeout=1)

    assert time.monotonic() - started < 3


def nested(depth):
    value = []
    for _ in range(depth):
        value = [value]
    return value


def test_parse_rejects_deep_nesting():
    with pytest.raises(BodyParseError) as raised:
        parse(b"[" * 100000 + b"]" * 100000)

    assert "nested too deeply" in str(raised.value)


def test_pretty_print_rejects_deep_nesting():
    with pytest.raises(BodyParseError):
        pretty_print(nested(100000))


def test_fetch_deep_body_is_parse_error(fake_get):
    fake_get.response = FakeResponse(200, b"[" * 100000 + b"]" * 100000)

    with pytest.raises(BodyParseError):
        fetch("https://example.com/api")
