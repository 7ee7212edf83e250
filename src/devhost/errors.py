"""Exception types raised by the service host."""

from typing import Iterable, Optional


class DevHostError(Exception):
    """Base exception for all service host errors."""

    status = 500


class ConfigurationError(DevHostError, ValueError):
    """A service descriptor passed to ``add_service`` is invalid."""


class HostStateError(DevHostError):
    """Operation is not valid in the host's current lifecycle state."""


class ServiceNotFoundError(DevHostError):
    """No service is registered under the requested name."""

    status = 404

    def __init__(self, name: Optional[str], available: Iterable[str]):
        self.name = name
        self.available = sorted(available)
        if name:
            message = f"Service '{name}' not found."
        else:
            message = "No service requested (missing X-Service header)."
        super().__init__(f"{message} Services available: {', '.join(self.available)}")


class ModuleResolutionError(DevHostError):
    """A hot-load module reference could not be resolved to a handler."""

    def __init__(self, ref: str, reason: str):
        self.ref = ref
        self.reason = reason
        super().__init__(f"Cannot load service module '{ref}': {reason}")


class ServiceError(DevHostError):
    """Failure reported by a handler, with the HTTP status to answer with."""

    def __init__(self, message: str, status: int = 500):
        super().__init__(message)
        self.status = status


def status_for(error: BaseException) -> int:
    """Map an error passed to a service callback onto an HTTP status code."""
    for attr in ("status", "status_code"):
        status = getattr(error, attr, None)
        if isinstance(status, int) and 400 <= status < 600:
            return status
    return 500


class DevHostClientError(DevHostError):
    """A running host answered a client request with a non-200 status."""

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"HTTP {status}: {body}")
