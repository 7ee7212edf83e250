"""
In-process Service Registry

This module provides:
- Service: a named handler bound to the host that registered it
- ServiceRegistry: a thread-safe, dict-backed mapping of name -> Service

Handlers have the shape ``handler(payload, callback)`` and complete by
calling ``callback(error, result)`` exactly once, either before returning
or later from another thread.
"""

import threading
import weakref
from collections.abc import Mapping
from typing import Any, Callable, Dict, Iterator, List, Optional

Callback = Callable[[Optional[BaseException], Any], None]
Handler = Callable[[Any, Callback], None]


class Service:
    """A named unit wrapping a handler and a back-reference to its host."""

    __slots__ = ("name", "handler", "_host_ref")

    def __init__(self, name: str, handler: Handler, host: Any):
        self.name = name
        self.handler = handler
        self._host_ref = weakref.ref(host)

    @property
    def host(self):
        """The owning host, or None once it has been garbage collected."""
        return self._host_ref()

    def invoke(self, payload: Any, callback: Callback) -> None:
        # Handler exceptions are not caught here; they reach the caller.
        self.handler(payload, callback)

    def __repr__(self) -> str:
        return f"Service(name={self.name!r}, handler={self.handler!r})"


# ---------------------------------------------------------------------------
# In-memory registry (owned by a single host)
# ---------------------------------------------------------------------------

class ServiceRegistry(Mapping):
    """Thread-safe, dict-backed service registry.

    Re-registering a name replaces the previous Service in one locked
    assignment, so a concurrent lookup sees either the old or the new
    entry, never a partially updated one.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._services: Dict[str, Service] = {}

    def add(self, service: Service) -> None:
        with self._lock:
            self._services[service.name] = service

    def has(self, name: str) -> bool:
        with self._lock:
            return name in self._services

    def get(self, name: str, default: Optional[Service] = None) -> Optional[Service]:
        with self._lock:
            return self._services.get(name, default)

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._services)

    def __getitem__(self, name: str) -> Service:
        with self._lock:
            return self._services[name]

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._services

    def __iter__(self) -> Iterator[str]:
        # Iterate over a snapshot so registrations during iteration are safe
        return iter(self.names())

    def __len__(self) -> int:
        with self._lock:
            return len(self._services)
