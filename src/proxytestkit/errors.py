"""Error types raised by proxytestkit.

Only setup failures are raised. Transport and decode failures during a
request are handed back to the caller as values so tests can assert on
them.
"""


class ProxyTestKitError(Exception):
    """Base class for all proxytestkit errors."""


class ServiceConnectionError(ProxyTestKitError, ConnectionError):
    """The service under test could not be reached when opening a client."""

    def __init__(self, host: str, port: int, cause: BaseException | None = None):
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"could not connect to {host}:{port}{detail}")
        self.host = host
        self.port = port
        self.cause = cause


class ProbeTimeout(ProxyTestKitError, TimeoutError):
    def __init__(self, port: int, timeout_seconds: float):
        super().__init__(f"no datagram received on 127.0.0.1:{port} within {timeout_seconds}s")
        self.port = port
        self.timeout_seconds = timeout_seconds


class ConfigError(ProxyTestKitError, ValueError):
    pass


class RegistryFrozenError(ProxyTestKitError, RuntimeError):
    def __init__(self, name: str):
        super().__init__(f"cannot register assertion '{name}': registry is frozen")
        self.name = name


class UnknownAssertion(ProxyTestKitError, AttributeError):
    def __init__(self, name: str):
        super().__init__(f"no assertion registered under '{name}'")
        self.name = name


class ReservedAssertionName(ProxyTestKitError, ValueError):
    def __init__(self, name: str):
        super().__init__(f"cannot register assertion '{name}': name is reserved")
        self.name = name
