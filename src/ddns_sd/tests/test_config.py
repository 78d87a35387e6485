"""
Tests for configuration loading
"""
import pytest

from ddns_sd.lib.config import Config, ConfigError, parse_bool, parse_int

BASE_ENV = {
    "DDNSSD_HOSTNAME": "speccy",
    "DDNSSD_BASE_DOMAIN": "example.com",
    "DDNSSD_BACKEND": "log",
}


def load(**overrides):
    env = dict(BASE_ENV)
    env.update(overrides)
    return Config.load(env=env, config_file=None)


@pytest.fixture(autouse=True)
def no_user_config(tmp_path, monkeypatch):
    """Keep a real ~/.config/ddns-sd/config.yaml out of the tests"""
    monkeypatch.setattr("ddns_sd.lib.config.CONFIG_FILE", tmp_path / "missing.yaml")


def test_minimal_environment():
    config = load()
    assert config.hostname == "speccy"
    assert config.base_domain == "example.com"
    assert config.backends == ["log"]
    assert config.record_ttl == 60
    assert config.ipv6_only is False
    assert config.host_ip_address is None
    assert config.docker_host == "unix:///var/run/docker.sock"
    assert config.host_dns_record is None


@pytest.mark.parametrize("missing", ["DDNSSD_HOSTNAME", "DDNSSD_BASE_DOMAIN", "DDNSSD_BACKEND"])
def test_required_settings(missing):
    env = dict(BASE_ENV)
    del env[missing]
    with pytest.raises(ConfigError, match=missing):
        Config.load(env=env)


def test_invalid_hostname():
    with pytest.raises(ConfigError, match="not a valid hostname"):
        load(DDNSSD_HOSTNAME="not.a.label")


def test_base_domain_is_normalised():
    assert load(DDNSSD_BASE_DOMAIN="Example.COM.").base_domain == "example.com"


def test_unknown_backend():
    with pytest.raises(ConfigError, match="Unknown backend"):
        load(DDNSSD_BACKEND="route53")


def test_multiple_backends():
    config = load(DDNSSD_BACKEND="log, pdns_sql")
    assert config.backends == ["log", "pdns_sql"]


@pytest.mark.parametrize("value,expected", [
    ("yes", True), ("Y", True), ("on", True), ("1", True), ("true", True),
    ("no", False), ("n", False), ("OFF", False), ("0", False), ("false", False),
])
def test_parse_bool(value, expected):
    assert parse_bool(value, "X") is expected


def test_parse_bool_rejects_garbage():
    with pytest.raises(ConfigError):
        parse_bool("maybe", "DDNSSD_IPV6_ONLY")


def test_parse_int_range():
    assert parse_int(" 42 ", "X") == 42
    with pytest.raises(ConfigError):
        parse_int("-1", "X")
    with pytest.raises(ConfigError):
        parse_int("sixty", "X")


def test_record_ttl():
    assert load(DDNSSD_RECORD_TTL="300").record_ttl == 300
    with pytest.raises(ConfigError):
        load(DDNSSD_RECORD_TTL=str(2 ** 31))


def test_host_ip_address_v4():
    config = load(DDNSSD_HOST_IP_ADDRESS="192.0.2.42")
    record = config.host_dns_record
    assert record.type == "A"
    assert str(record.name) == "speccy"
    assert str(record.data) == "192.0.2.42"


def test_host_ip_address_must_match_family():
    with pytest.raises(ConfigError, match="IPv4"):
        load(DDNSSD_HOST_IP_ADDRESS="2001:db8::1")
    with pytest.raises(ConfigError, match="IPv6"):
        load(DDNSSD_HOST_IP_ADDRESS="192.0.2.42", DDNSSD_IPV6_ONLY="true")


def test_ipv6_only_host_record():
    config = load(DDNSSD_HOST_IP_ADDRESS="2001:db8::1", DDNSSD_IPV6_ONLY="yes")
    assert config.host_dns_record.type == "AAAA"


def test_invalid_host_ip_address():
    with pytest.raises(ConfigError, match="not an IP address"):
        load(DDNSSD_HOST_IP_ADDRESS="speccy")


def test_backend_settings_from_environment():
    config = load(
        DDNSSD_BACKEND="pdns_sql",
        DDNSSD_PDNS_SQL_DATABASE_URL="postgresql://dns@db/pdns",
        DDNSSD_PDNS_SQL_BASE_DOMAIN="sd.example.com",
    )
    assert config.backend_config("pdns_sql") == {
        "DATABASE_URL": "postgresql://dns@db/pdns",
        "BASE_DOMAIN": "sd.example.com",
    }
    assert config.backend_base_domain("pdns_sql") == "sd.example.com"
    assert config.backend_base_domain("log") == "example.com"


def test_docker_host_from_environment():
    assert load(DOCKER_HOST="tcp://docker:2375").docker_host == "tcp://docker:2375"


def test_yaml_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "hostname: speccy\n"
        "base_domain: example.com\n"
        "record_ttl: 120\n"
        "debug_loggers: [ddns_sd.lib.system]\n"
        "backends:\n"
        "  cloudflare:\n"
        "    api_token: file-token\n"
        "  log: {}\n"
    )

    config = Config.load(env={"DDNSSD_CLOUDFLARE_API_TOKEN": "env-token"}, config_file=path)

    assert config.backends == ["cloudflare", "log"]
    assert config.record_ttl == 120
    assert config.debug_loggers == ["ddns_sd.lib.system"]
    assert config.backend_config("cloudflare") == {"API_TOKEN": "env-token"}


def test_environment_overrides_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("hostname: fromfile\nbase_domain: example.com\nbackends: [log]\n")

    config = Config.load(env={"DDNSSD_HOSTNAME": "fromenv"}, config_file=path)

    assert config.hostname == "fromenv"


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        Config.load(env=BASE_ENV, config_file=tmp_path / "nope.yaml")


def test_invalid_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("hostname: [unclosed\n")
    with pytest.raises(ConfigError, match="not valid YAML"):
        Config.load(env=BASE_ENV, config_file=path)


def test_masked_hides_secrets():
    config = load(DDNSSD_BACKEND="cloudflare", DDNSSD_CLOUDFLARE_API_TOKEN="abcdefghijklmnop")
    masked = config.masked()
    assert masked["backend_configs"]["cloudflare"]["API_TOKEN"] == "abcd...mnop"
    assert masked["hostname"] == "speccy"
