import pytest

from proxytestkit.config import ServiceConfig
from proxytestkit.config import listen_port
from proxytestkit.config import load_config
from proxytestkit.config import parse_conf
from proxytestkit.errors import ConfigError

TEST_CONF = """
# test configuration
prefix = servroot
admin_listen = 127.0.0.1:9001
proxy_listen = 127.0.0.1:9000   # proxy
proxy_listen_ssl = "127.0.0.1:9443"
database = postgres
"""


@pytest.fixture
def conf_file(tmp_path):
    path = tmp_path / "kong_tests.conf"
    path.write_text(TEST_CONF)
    return path


def test_load_config(conf_file):
    config = load_config(conf_file, env={})
    assert config.prefix == "servroot"
    assert config.admin_port == 9001
    assert config.proxy_port == 9000
    assert config.ssl_proxy_port == 9443
    assert config.extra == {"database": "postgres"}


def test_environment_overrides_file(conf_file):
    config = load_config(conf_file, env={"KONG_ADMIN_LISTEN": "0.0.0.0:7001", "HOME": "/root"})
    assert config.admin_port == 7001
    assert "home" not in config.extra


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.conf", env={})


def test_conf_path_from_environment(conf_file, monkeypatch):
    monkeypatch.setenv("PROXYTESTKIT_CONF", str(conf_file))
    assert load_config(env={}).prefix == "servroot"


def test_malformed_line():
    with pytest.raises(ConfigError, match="line 1"):
        parse_conf("not a pair")


def test_defaults():
    config = ServiceConfig()
    assert (config.admin_port, config.proxy_port, config.ssl_proxy_port) == (8001, 8000, 8443)


@pytest.mark.parametrize(
    "listen,port",
    [("0.0.0.0:8000", 8000), ("[::1]:8443", 8443), ("localhost:1", 1)],
)
def test_listen_port(listen, port):
    assert listen_port(listen) == port


@pytest.mark.parametrize("listen", ["0.0.0.0", "0.0.0.0:", "0.0.0.0:80a"])
def test_listen_port_requires_numeric_suffix(listen):
    with pytest.raises(ConfigError):
        listen_port(listen)
