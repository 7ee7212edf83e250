"""
In-process Service Registry

This package provides:
1. Service — a named handler bound to its host
2. ServiceRegistry — thread-safe, dict-backed mapping of name to Service
"""

from .service_registry import (
    Callback,
    Handler,
    Service,
    ServiceRegistry,
)

__all__ = [
    'Callback',
    'Handler',
    'Service',
    'ServiceRegistry',
]
