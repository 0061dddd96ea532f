import pytest

from mavsniff.config.loader import ConfigError, SnifferConfig, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("MAVSNIFF_MQTT_HOST", "MAVSNIFF_MQTT_PORT", "MAVSNIFF_TOPIC_PREFIX"):
        monkeypatch.delenv(var, raising=False)


def test_defaults_without_file():
    cfg = load_config()
    assert isinstance(cfg, SnifferConfig)
    assert cfg.listen.port == 14550
    assert (cfg.vehicle.host, cfg.vehicle.port) == ("127.0.0.1", 14540)
    assert cfg.read_timeout == 3.0
    assert cfg.mqtt.enabled is False
    assert cfg.mqtt.topic_prefix == "mavsniff/v1"


def test_load_yaml(tmp_path):
    f = tmp_path / "cfg.yaml"
    f.write_text("listen:\n  port: 15550\nvehicle:\n  host: 10.0.0.2\n  port: 14556\nread_timeout: 1.5\nmqtt:\n  enabled: true\n  host: broker.local\n")
    cfg = load_config(str(f))
    assert cfg.listen.port == 15550
    assert cfg.listen.host == "127.0.0.1"
    assert cfg.vehicle.host == "10.0.0.2"
    assert cfg.vehicle.port == 14556
    assert cfg.read_timeout == 1.5
    assert cfg.mqtt.enabled and cfg.mqtt.host == "broker.local"


def test_example_config_loads():
    from pathlib import Path
    path = Path(__file__).resolve().parent.parent / "config" / "mavsniff.example.yaml"
    cfg = load_config(str(path))
    assert cfg.vehicle.port == 14540


def test_empty_file_gives_defaults(tmp_path):
    f = tmp_path / "empty.yaml"
    f.write_text("")
    assert load_config(str(f)).listen.port == 14550


def test_env_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("MAVSNIFF_MQTT_HOST", "envhost")
    monkeypatch.setenv("MAVSNIFF_MQTT_PORT", "1999")
    monkeypatch.setenv("MAVSNIFF_TOPIC_PREFIX", "lab/v2")
    cfg = load_config()
    assert cfg.mqtt.host == "envhost"
    assert cfg.mqtt.port == 1999
    assert cfg.mqtt.topic_prefix == "lab/v2"


def test_bad_env_port(monkeypatch):
    monkeypatch.setenv("MAVSNIFF_MQTT_PORT", "not-a-port")
    with pytest.raises(ConfigError):
        load_config()


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / "nope.yaml"))


@pytest.mark.parametrize("body", [
    "read_timeout: 0\n",
    "vehicle:\n  port: 70000\n",
    "- just\n- a list\n",
])
def test_invalid_values(tmp_path, body):
    f = tmp_path / "bad.yaml"
    f.write_text(body)
    with pytest.raises(ConfigError):
        load_config(str(f))
