"""pytest fixtures for tests that exercise a running service."""

from __future__ import annotations

from collections.abc import Callable
from collections.abc import Iterator

import pytest

from .assertions import Expect
from .config import ServiceConfig
from .config import load_config
from .udp import DEFAULT_PORT
from .udp import RECEIVE_TIMEOUT_SECONDS
from .udp import UDPProbe
from .udp import udp_server as start_udp_server


@pytest.fixture
def expect() -> Expect:
    return Expect()


@pytest.fixture
def udp_server() -> Iterator[Callable[..., UDPProbe]]:
    """Factory for one-shot UDP probes; unjoined probes are drained at teardown."""
    probes: list[UDPProbe] = []

    def factory(
        port: int = DEFAULT_PORT, timeout_seconds: float = RECEIVE_TIMEOUT_SECONDS
    ) -> UDPProbe:
        probe = start_udp_server(port, timeout_seconds)
        probes.append(probe)
        return probe

    yield factory
    for probe in probes:
        probe.join()


@pytest.fixture(scope="session")
def service_config() -> ServiceConfig:
    return load_config()
