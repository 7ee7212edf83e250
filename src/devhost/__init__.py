"""
devhost: a local service host

Many named handler functions ("services") share one HTTP port and are
selected per request by the ``X-Service`` header.  New services can be
hot-loaded at runtime and the listener can be shut down remotely.
"""

from .config import HostConfig, ServiceRef, load_config
from .errors import (
    ConfigurationError,
    DevHostClientError,
    DevHostError,
    HostStateError,
    ModuleResolutionError,
    ServiceError,
    ServiceNotFoundError,
)
from .host import DevHost
from .loader import DefaultModuleLoader, ModuleLoader
from .registry import Service, ServiceRegistry
from .server import DevHostClient

__version__ = '0.1.0'
__all__ = [
    'ConfigurationError',
    'DefaultModuleLoader',
    'DevHost',
    'DevHostClient',
    'DevHostClientError',
    'DevHostError',
    'HostConfig',
    'HostStateError',
    'ModuleLoader',
    'ModuleResolutionError',
    'Service',
    'ServiceError',
    'ServiceNotFoundError',
    'ServiceRef',
    'ServiceRegistry',
    'load_config',
]
