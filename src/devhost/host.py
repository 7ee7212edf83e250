"""The service host: registry owner, dispatcher and listener lifecycle."""

import copy
import sys
import threading
from typing import Any, Callable, Optional

from .config import DEFAULT_CONFIG, HostConfig
from .errors import (
    ConfigurationError,
    DevHostError,
    HostStateError,
    ModuleResolutionError,
    ServiceNotFoundError,
)
from .loader import DefaultModuleLoader, ModuleLoader
from .registry import Callback, Handler, Service, ServiceRegistry
from .server import Listener

HOTLOAD_SERVICE = "__hotload"
SHUTDOWN_SERVICE = "__shutdown"

HOTLOAD_SUCCESS = "Success"
SHUTDOWN_MESSAGE = "Shutting down..."


class _Once:
    """Deliver only the first completion of a service callback."""

    def __init__(self, name: str, callback: Callback):
        self._name = name
        self._callback = callback
        self._lock = threading.Lock()
        self._called = False

    def __call__(self, error: Optional[BaseException] = None, result: Any = None) -> None:
        with self._lock:
            if self._called:
                print(f"[devhost] service '{self._name}' completed more than once; ignoring", file=sys.stderr)
                return
            self._called = True
        self._callback(error, result)


class DevHost:
    """Multiplexes named services behind a single HTTP endpoint.

    A fresh host has two built-in services: ``__hotload`` registers
    services from module references at runtime and ``__shutdown`` closes
    the listener after answering.
    """

    Service = Service
    default_config = DEFAULT_CONFIG

    def __init__(self, config: Optional[HostConfig] = None, loader: Optional[ModuleLoader] = None):
        # A caller-supplied config is kept by reference; later edits are seen by the host
        self.config = config if config is not None else copy.deepcopy(self.default_config)
        self.loader = loader if loader is not None else DefaultModuleLoader()
        self.services = ServiceRegistry()
        self._listener: Optional[Listener] = None
        self._listener_lock = threading.Lock()

        self.add_service(HOTLOAD_SERVICE, self._hotload)
        self.add_service(SHUTDOWN_SERVICE, self._shutdown)

    # -- registry --------------------------------------------------------

    def add_service(self, name: str, handler: Optional[Handler] = None, file: Optional[str] = None) -> None:
        """Register *handler* (or the handler loaded from *file*) under *name*.

        The keywords mirror a ``{name, handler}`` or ``{name, file}``
        descriptor, so ``add_service(**descriptor)`` works.  An existing
        service with the same name is replaced.  Any loader failure is
        raised as ModuleResolutionError.
        """
        if not isinstance(name, str) or not name:
            raise ConfigurationError("service name must be a non-empty string")
        if (handler is None) == (file is None):
            raise ConfigurationError(f"service '{name}' needs exactly one of handler or file")
        if file is not None:
            if not isinstance(file, str) or not file:
                raise ConfigurationError(f"file for service '{name}' must be a non-empty string")
            try:
                handler = self.loader.resolve(file)
            except ModuleResolutionError:
                raise
            except Exception as e:
                raise ModuleResolutionError(file, f"{type(e).__name__}: {e}") from e
        if not callable(handler):
            raise ConfigurationError(f"handler for service '{name}' is not callable")
        self.services.add(self.Service(name, handler, self))

    def call_service(self, name: str, payload: Any, callback: Callback) -> None:
        """Dispatch *payload* to the service registered as *name*.

        *callback* receives ``(error, result)``.  An unknown name completes
        with a ServiceNotFoundError listing the registered services.
        Exceptions raised synchronously by the handler propagate.
        """
        service = self.services.get(name)
        if service is None:
            callback(ServiceNotFoundError(name, self.services.names()), None)
            return
        service.invoke(payload, _Once(name, callback))

    # -- listener lifecycle ----------------------------------------------

    @property
    def is_listening(self) -> bool:
        return self._listener is not None

    def listen(self, on_ready: Optional[Callable[[], None]] = None) -> None:
        """Bind the HTTP front-end to the configured address and start serving."""
        with self._listener_lock:
            if self._listener is not None:
                raise HostStateError(f"already listening at {self.get_url()}")
            listener = Listener(
                self,
                self.config.host,
                self.config.port,
                log_requests=self.config.log_requests,
            )
            listener.start()
            self._listener = listener

        if self.config.output_on_listen:
            bind_host, port = listener.address
            sys.stdout.write(f"Server listening at {bind_host}:{port}\n")
            sys.stdout.flush()
        if on_ready is not None:
            on_ready()

    def _detach_listener(self) -> Optional[Listener]:
        with self._listener_lock:
            listener, self._listener = self._listener, None
        return listener

    def stop_listening(self, callback: Optional[Callable[[], None]] = None) -> None:
        """Close the listener. A no-op when the host is not listening."""
        listener = self._detach_listener()
        if listener is not None:
            listener.close()
        if callback is not None:
            callback()

    def get_url(self) -> str:
        listener = self._listener
        if listener is None:
            raise HostStateError("host is not listening")
        bind_host, port = listener.address
        return f"http://{bind_host}:{port}/"

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the current listener closes. Returns False on timeout."""
        listener = self._listener
        if listener is None:
            return True
        return listener.closed.wait(timeout)

    # -- built-in services -----------------------------------------------

    def _hotload(self, payload: Any, done: Callback) -> None:
        """Register every ``{name, file}`` entry in ``payload['services']``.

        Entries loaded before a failing one stay registered.
        """
        entries = payload.get("services") if isinstance(payload, dict) else None
        if not isinstance(entries, list):
            done(ConfigurationError("expected {'services': [{'name': ..., 'file': ...}, ...]}"), None)
            return
        for entry in entries:
            if not isinstance(entry, dict):
                done(ConfigurationError(f"invalid hot-load entry {entry!r}"), None)
                return
            try:
                self.add_service(name=entry.get("name"), file=entry.get("file"))
            except DevHostError as e:
                done(e, None)
                return
        done(None, HOTLOAD_SUCCESS)

    def _shutdown(self, payload: Any, done: Callback) -> None:
        listener = self._detach_listener()
        if listener is None:
            done(None, SHUTDOWN_MESSAGE)
            return
        # Stop serving before replying; release the socket only after the reply is flushed
        listener.halt()
        done(None, SHUTDOWN_MESSAGE)
        listener.close()
