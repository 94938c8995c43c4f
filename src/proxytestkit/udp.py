"""One-shot UDP listener for asserting that the service emitted a datagram."""

from __future__ import annotations

import logging
import socket
import threading

from .errors import ProbeTimeout

DEFAULT_PORT = 9999
RECEIVE_TIMEOUT_SECONDS = 1.0
SETTLE_SECONDS = 0.1
MAX_DATAGRAM_SIZE = 65535

logger = logging.getLogger("proxytestkit.udp")


class UDPProbe:
    """Receives exactly one datagram on ``127.0.0.1:port`` in a background thread.

    Create a new probe for every datagram a test expects.
    """

    def __init__(self, port: int = DEFAULT_PORT, timeout_seconds: float = RECEIVE_TIMEOUT_SECONDS):
        self.port = port
        self.timeout_seconds = timeout_seconds
        self.error: BaseException | None = None
        self._data: bytes | None = None
        self._bound = threading.Event()
        self._thread = threading.Thread(
            target=self._receive, name=f"udp-probe-{port}", daemon=True
        )

    def _receive(self) -> None:
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
                sock.settimeout(self.timeout_seconds)
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                sock.bind(("127.0.0.1", self.port))
                self._bound.set()
                self._data, _ = sock.recvfrom(MAX_DATAGRAM_SIZE)
        except socket.timeout:
            logger.debug("udp probe on port %d timed out", self.port)
            self.error = ProbeTimeout(self.port, self.timeout_seconds)
        except OSError as e:
            self.error = e
        finally:
            # unblock start() when bind failed
            self._bound.set()

    def start(self, settle_seconds: float = SETTLE_SECONDS) -> UDPProbe:
        """Start listening and wait until the socket is bound.

        Raises the bind error, if any, instead of leaving the caller to
        discover it at ``join`` time.
        """
        self._thread.start()
        if not self._bound.wait(max(settle_seconds, self.timeout_seconds)):
            logger.warning("udp probe on port %d not bound after %ss", self.port, settle_seconds)
        if self.error is not None and not isinstance(self.error, ProbeTimeout):
            raise self.error
        return self

    def join(self, timeout: float | None = None) -> bytes | None:
        """Wait for the receive to finish and return the datagram.

        Returns ``None`` when nothing arrived in time; ``error`` then holds
        a ``ProbeTimeout``.
        """
        self._thread.join(timeout)
        return self._data

    def is_alive(self) -> bool:
        return self._thread.is_alive()


def udp_server(
    port: int = DEFAULT_PORT, timeout_seconds: float = RECEIVE_TIMEOUT_SECONDS
) -> UDPProbe:
    return UDPProbe(port, timeout_seconds).start()
