"""HTTP front-end tests — header routing, response mapping, hot-load and shutdown."""

import json
import threading
import time
import urllib.error
import urllib.request

import pytest

from devhost import DevHostClient, DevHostClientError, ServiceError

_opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))


def _post(url, service=None, body=None, raw=None, method="POST"):
    """Send a request and return (status, content_type, body_text)."""
    headers = {}
    if service is not None:
        headers["X-Service"] = service
    if raw is None and body is not None:
        raw = json.dumps(body).encode()
        headers["Content-Type"] = "application/json"
    request = urllib.request.Request(url, data=raw, method=method, headers=headers)
    try:
        with _opener.open(request, timeout=10) as resp:
            return resp.status, resp.headers.get("Content-Type", ""), resp.read().decode()
    except urllib.error.HTTPError as e:
        return e.code, e.headers.get("Content-Type", ""), e.read().decode()


def test_failed_lookup_lists_available_services(listening_host):
    listening_host.add_service("service1", lambda payload, done: None)
    listening_host.add_service("service2", lambda payload, done: None)

    status, _, body = _post(listening_host.get_url())

    assert status == 404
    assert "services available" in body.lower()
    assert "service1" in body
    assert "service2" in body


def test_unknown_service_names_the_request(listening_host):
    status, _, body = _post(listening_host.get_url(), service="missing")
    assert status == 404
    assert "'missing' not found" in body
    assert "__hotload" in body


def test_string_result_is_sent_raw(listening_host):
    listening_host.add_service("echo", lambda payload, done: done(None, payload["echo"]))
    status, content_type, body = _post(listening_host.get_url(), "echo", {"echo": "test1"})
    assert status == 200
    assert content_type.startswith("text/plain")
    assert body == "test1"


def test_structured_result_is_sent_as_json(listening_host):
    listening_host.add_service("wrap", lambda payload, done: done(None, {"got": payload}))
    status, content_type, body = _post(listening_host.get_url(), "wrap", {"a": [1, 2]})
    assert status == 200
    assert content_type == "application/json"
    assert json.loads(body) == {"got": {"a": [1, 2]}}


def test_empty_body_is_an_empty_payload(listening_host):
    seen = []

    def record(payload, done):
        seen.append(payload)
        done(None, "ok")

    listening_host.add_service("record", record)
    status, _, _ = _post(listening_host.get_url(), "record")
    assert status == 200
    assert seen == [{}]


def test_handler_error_defaults_to_500(listening_host):
    listening_host.add_service("fail", lambda payload, done: done(RuntimeError("it broke")))
    status, _, body = _post(listening_host.get_url(), "fail", {})
    assert status == 500
    assert body == "it broke"


def test_handler_error_status_is_propagated(listening_host):
    listening_host.add_service("teapot", lambda payload, done: done(ServiceError("short and stout", status=418)))
    status, _, body = _post(listening_host.get_url(), "teapot", {})
    assert status == 418
    assert body == "short and stout"


def test_raising_handler_still_gets_a_response(listening_host, capsys):
    def raises(payload, done):
        raise KeyError("missing field")

    listening_host.add_service("raises", raises)
    status, _, _ = _post(listening_host.get_url(), "raises", {})
    assert status == 500
    assert "raised instead of completing" in capsys.readouterr().err


def test_invalid_json_is_rejected(listening_host):
    status, _, body = _post(listening_host.get_url(), "__hotload", raw=b"{not json")
    assert status == 400
    assert "Invalid JSON" in body


def test_only_post_is_supported(listening_host):
    status, _, _ = _post(listening_host.get_url(), "__hotload", method="GET")
    assert status == 405


def test_slow_handler_does_not_block_other_requests(listening_host):
    release = threading.Event()

    def slow(payload, done):
        threading.Thread(target=lambda: (release.wait(10), done(None, "slow")), daemon=True).start()

    listening_host.add_service("slow", slow)
    listening_host.add_service("fast", lambda payload, done: done(None, "fast"))
    url = listening_host.get_url()

    results = {}
    worker = threading.Thread(target=lambda: results.setdefault("slow", _post(url, "slow", {})))
    worker.start()
    try:
        assert _post(url, "fast", {})[2] == "fast"
        assert "slow" not in results
    finally:
        release.set()
        worker.join(10)
    assert results["slow"][2] == "slow"


def test_hotload_over_http(listening_host, service_path):
    client = DevHostClient(listening_host.get_url())
    services = [
        {"name": "echo", "file": service_path("echo.py")},
        {"name": "echo-async", "file": service_path("echo_async.py")},
    ]

    assert client.hotload(services) == "Success"
    assert client.call("echo", {"echo": "test1"}) == "test1"
    assert client.call("echo-async", {"echo": "test2"}) == "test2"


def test_hotload_failure_over_http(listening_host, service_path):
    client = DevHostClient(listening_host.get_url())
    with pytest.raises(DevHostClientError) as excinfo:
        client.hotload([{"name": "broken", "file": service_path("broken.py")}])
    assert excinfo.value.status == 500
    assert "broken.py" in excinfo.value.body


def test_shutdown_over_http_refuses_later_connections(listening_host):
    url = listening_host.get_url()

    status, _, body = _post(url, "__shutdown")

    assert status == 200
    assert body == "Shutting down..."
    assert not listening_host.is_listening
    with pytest.raises(OSError):
        _post(url, "__shutdown")


def test_stop_listening_refuses_later_connections(listening_host):
    url = listening_host.get_url()
    listening_host.stop_listening()
    started = time.monotonic()
    with pytest.raises(urllib.error.URLError):
        _post(url, "__hotload", {"services": []})
    assert time.monotonic() - started < 5
