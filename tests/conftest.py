import pytest

from tests.testing.echo_app import ASGITestServer
from tests.testing.echo_app import echo_app


@pytest.fixture(scope="session")
def echo_server():
    """A real HTTP server on a free local port."""
    server = ASGITestServer(echo_app)
    server.start()
    yield server
    server.stop()
