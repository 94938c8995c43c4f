"""Service configuration as seen by the tests.

The service reads a flat ``key = value`` file. Tests only need the listen
addresses (to derive ports) and the prefix directory, but every other key is
kept in ``extra``. ``KONG_<KEY>`` environment variables take precedence over
the file, as they do for the service itself.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from dataclasses import field
from dataclasses import fields
from pathlib import Path

from .errors import ConfigError

DEFAULT_TEST_CONF_PATH = "spec/kong_tests.conf"
ENV_PREFIX = "KONG_"

_PORT_RE = re.compile(r":(\d+)$")

logger = logging.getLogger("proxytestkit.config")


@dataclass
class ServiceConfig:
    prefix: str = "/usr/local/kong"
    admin_listen: str = "0.0.0.0:8001"
    proxy_listen: str = "0.0.0.0:8000"
    proxy_listen_ssl: str = "0.0.0.0:8443"
    extra: dict[str, str] = field(default_factory=dict)

    @property
    def admin_port(self) -> int:
        return listen_port(self.admin_listen)

    @property
    def proxy_port(self) -> int:
        return listen_port(self.proxy_listen)

    @property
    def ssl_proxy_port(self) -> int:
        return listen_port(self.proxy_listen_ssl)

    @classmethod
    def from_mapping(cls, values: Mapping[str, str]) -> ServiceConfig:
        known = {f.name for f in fields(cls) if f.name != "extra"}
        kwargs = {k: v for k, v in values.items() if k in known}
        extra = {k: v for k, v in values.items() if k not in known}
        return cls(**kwargs, extra=extra)


def listen_port(listen: str) -> int:
    """Return the port of a ``host:port`` listen address."""
    match = _PORT_RE.search(listen)
    if match is None:
        raise ConfigError(f"listen address '{listen}' does not end with a port")
    return int(match.group(1))


def parse_conf(text: str) -> dict[str, str]:
    values: dict[str, str] = {}
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.split("#", 1)[0].strip()
        if not line:
            continue
        key, sep, value = line.partition("=")
        if not sep:
            raise ConfigError(f"line {lineno}: expected 'key = value', got '{line}'")
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        values[key.strip()] = value
    return values


def env_overrides(env: Mapping[str, str]) -> dict[str, str]:
    return {
        name[len(ENV_PREFIX) :].lower(): value
        for name, value in env.items()
        if name.startswith(ENV_PREFIX)
    }


def default_conf_path() -> Path:
    return Path(os.environ.get("PROXYTESTKIT_CONF", DEFAULT_TEST_CONF_PATH))


def load_config(
    path: str | os.PathLike[str] | None = None, env: Mapping[str, str] | None = None
) -> ServiceConfig:
    """Load the service configuration from ``path`` and the environment."""
    conf_path = Path(path) if path is not None else default_conf_path()
    try:
        text = conf_path.read_text()
    except OSError as e:
        raise ConfigError(f"could not read configuration file {conf_path}: {e}") from e

    values = parse_conf(text)
    values.update(env_overrides(os.environ if env is None else env))
    logger.debug("loaded configuration from %s", conf_path)
    return ServiceConfig.from_mapping(values)
