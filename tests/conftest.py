"""Root conftest — shared fixtures for host tests."""

import threading
from pathlib import Path

import pytest

from devhost import DevHost, HostConfig

SERVICES_DIR = Path(__file__).parent / "test_services"


class Completion:
    """Records an (error, result) completion; safe to wait on across threads."""

    def __init__(self):
        self.error = None
        self.result = None
        self.calls = 0
        self._event = threading.Event()

    def __call__(self, error, result=None):
        self.calls += 1
        self.error = error
        self.result = result
        self._event.set()

    def wait(self, timeout: float = 5) -> bool:
        return self._event.wait(timeout)


@pytest.fixture
def make_completion():
    return Completion


@pytest.fixture
def service_path():
    def _path(filename: str) -> str:
        return str(SERVICES_DIR / filename)
    return _path


@pytest.fixture
def host():
    return DevHost(HostConfig(port=0, output_on_listen=False))


@pytest.fixture
def listening_host(host):
    host.listen()
    yield host
    host.stop_listening()
