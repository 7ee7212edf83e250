#!/usr/bin/env python3
"""
HTTP front-end for the service host

This module provides:
- ServiceHTTPHandler: routes POST requests to services by the X-Service header
- Listener: a ThreadingHTTPServer running in a daemon thread
- DevHostClient: thin HTTP client matching the front-end's request shape
"""

import functools
import json
import sys
import threading
import traceback
import urllib.error
import urllib.request
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, List, Optional, Tuple

from jinja2 import Environment, PackageLoader

from .errors import DevHostClientError, ServiceNotFoundError, status_for

SERVICE_HEADER = "X-Service"


@functools.lru_cache(maxsize=None)
def _get_template_env() -> Environment:
    return Environment(
        loader=PackageLoader("devhost", "templates"),
        keep_trailing_newline=True,
    )


def render_not_found(error: ServiceNotFoundError) -> str:
    """Render the 404 body listing every registered service."""
    template = _get_template_env().get_template("service_not_found.txt.j2")
    return template.render(name=error.name, available=error.available)


# ---------------------------------------------------------------------------
# HTTP handler (one thread per request)
# ---------------------------------------------------------------------------

class _Responder:
    """Completion callback that writes the HTTP response exactly once.

    It may be called from the request thread or from whatever thread an
    asynchronous handler completes on; the request thread waits on
    ``finished`` before letting the connection close.
    """

    def __init__(self, request_handler: "BaseHTTPRequestHandler"):
        self._handler = request_handler
        self._lock = threading.Lock()
        self.finished = threading.Event()

    def __call__(self, error: Optional[BaseException], result: Any = None) -> None:
        with self._lock:
            if self.finished.is_set():
                return
            try:
                if error is not None:
                    self._send_error(error)
                else:
                    self._send_result(result)
            finally:
                self.finished.set()

    def _send_result(self, result: Any) -> None:
        if isinstance(result, bytes):
            self._handler.send_body(200, result, "application/octet-stream")
        elif isinstance(result, str):
            self._handler.send_body(200, result.encode(), "text/plain; charset=utf-8")
        else:
            try:
                body = json.dumps(result).encode()
            except (TypeError, ValueError) as e:
                self._send_error(e)
                return
            self._handler.send_body(200, body, "application/json")

    def _send_error(self, error: BaseException) -> None:
        if isinstance(error, ServiceNotFoundError):
            message = render_not_found(error)
        else:
            message = str(error) or type(error).__name__
        self._handler.send_body(status_for(error), message.encode(), "text/plain; charset=utf-8")


def _make_handler(host, log_requests: bool = False):
    """Create a handler class bound to the given host instance."""

    class ServiceHTTPHandler(BaseHTTPRequestHandler):

        def log_message(self, format, *args):
            if log_requests:
                print(f"[devhost] {self.address_string()} {format % args}", file=sys.stderr)

        def send_body(self, status: int, body: bytes, content_type: str):
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)
            self.wfile.flush()

        def _read_payload(self) -> Any:
            length = int(self.headers.get("Content-Length") or 0)
            raw = self.rfile.read(length) if length > 0 else b""
            if not raw.strip():
                return {}
            return json.loads(raw)

        def do_POST(self):
            name = self.headers.get(SERVICE_HEADER, "")
            responder = _Responder(self)

            try:
                payload = self._read_payload()
            except ValueError as e:
                self.send_body(400, f"Invalid JSON body: {e}".encode(), "text/plain; charset=utf-8")
                return

            try:
                host.call_service(name, payload, responder)
            except Exception as e:
                print(f"[devhost] service '{name}' raised instead of completing:", file=sys.stderr)
                traceback.print_exc(file=sys.stderr)
                responder(e, None)

            responder.finished.wait()

        def _method_not_allowed(self):
            body = b"Only POST is supported"
            self.send_response(405)
            self.send_header("Allow", "POST")
            self.send_header("Content-Type", "text/plain; charset=utf-8")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        do_GET = do_PUT = do_DELETE = do_PATCH = _method_not_allowed

    return ServiceHTTPHandler


class _ServiceHTTPServer(ThreadingHTTPServer):
    # A second host on the same port must fail to bind
    allow_reuse_port = False


class Listener:
    """A ThreadingHTTPServer serving one host from a daemon thread."""

    def __init__(self, host, bind_host: str, port: int, log_requests: bool = False):
        handler = _make_handler(host, log_requests=log_requests)
        # Raises OSError when the address cannot be bound
        self.server = _ServiceHTTPServer((bind_host, port), handler)
        self._thread = threading.Thread(
            target=self.server.serve_forever, name="devhost-listener", daemon=True,
        )
        self._lock = threading.Lock()
        self._halted = False
        self.closed = threading.Event()

    @property
    def address(self) -> Tuple[str, int]:
        bind_host, port = self.server.server_address[:2]
        return bind_host, port

    def start(self) -> None:
        self._thread.start()

    def halt(self) -> None:
        """Stop the accept loop. The socket stays bound until close()."""
        with self._lock:
            if self._halted:
                return
            self._halted = True
        self.server.shutdown()

    def close(self) -> None:
        """Stop accepting and release the socket; later connects are refused."""
        self.halt()
        self.server.server_close()
        self.closed.set()


# ---------------------------------------------------------------------------
# HTTP client (used by the CLI and by embedding code)
# ---------------------------------------------------------------------------

class DevHostClient:
    """Thin HTTP client that calls services on a running host."""

    def __init__(self, url: str = "http://127.0.0.1:63578/", timeout: float = 30):
        self._url = url
        self._timeout = timeout
        self._opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))

    def call(self, service: str, payload: Any = None) -> Any:
        """POST *payload* to *service*; return the decoded response body.

        Raises DevHostClientError on a non-200 answer and lets
        urllib.error.URLError through when the host cannot be reached.
        """
        data = json.dumps({} if payload is None else payload).encode()
        request = urllib.request.Request(
            self._url,
            data=data,
            method="POST",
            headers={SERVICE_HEADER: service, "Content-Type": "application/json"},
        )
        try:
            with self._opener.open(request, timeout=self._timeout) as resp:
                body = resp.read()
                content_type = resp.headers.get("Content-Type", "")
        except urllib.error.HTTPError as e:
            raise DevHostClientError(e.code, e.read().decode(errors="replace")) from None
        if content_type.startswith("application/json"):
            return json.loads(body)
        if content_type.startswith("text/"):
            return body.decode()
        return body

    def hotload(self, services: List[Dict[str, str]]) -> Any:
        return self.call("__hotload", {"services": services})

    def shutdown(self) -> Any:
        return self.call("__shutdown")
