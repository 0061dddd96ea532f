import json
import threading
import time

from mavsniff.cli import main as cli
from mavsniff.config.loader import load_config

from conftest import heartbeat_bytes


def test_missing_config_exit_code(tmp_path, capsys):
    assert cli.main(["--config", str(tmp_path / "missing.yaml")]) == 2
    assert "config error" in capsys.readouterr().err


def test_flags_override_config(tmp_path):
    f = tmp_path / "cfg.yaml"
    f.write_text("listen:\n  port: 15000\nvehicle:\n  port: 15001\n")
    args = cli.build_parser().parse_args([
        "--local", "16000", "--veh-host", "10.1.1.1", "--read-timeout", "0.5", "--mqtt", "--names",
    ])
    cfg = cli.apply_args(load_config(str(f)), args)
    assert cfg.listen.port == 16000
    assert cfg.vehicle.port == 15001
    assert cfg.vehicle.host == "10.1.1.1"
    assert cfg.read_timeout == 0.5
    assert cfg.mqtt.enabled and cfg.enum_names


def test_run_prints_records_and_shuts_down(vehicle, capsys):
    cfg = load_config()
    cfg.listen.port = 0
    cfg.vehicle.port = vehicle.getsockname()[1]
    cfg.read_timeout = 0.2
    stop_event = threading.Event()

    def on_ready(session):
        def drive():
            vehicle.recvfrom(64)  # announce
            vehicle.sendto(heartbeat_bytes(base_mode=0x80, custom_mode=0x01020304), session.local_address)
            deadline = time.monotonic() + 2.0
            while session.records < 1 and time.monotonic() < deadline:
                time.sleep(0.01)
            stop_event.set()
        threading.Thread(target=drive, daemon=True).start()

    assert cli.run(cfg, stop_event, on_ready=on_ready) == 0
    out = capsys.readouterr().out
    assert "listening on 127.0.0.1:" in out
    body = out[out.index("{"):out.rindex("}") + 1]
    record = json.loads(body)
    assert record["msg"] == "HEARTBEAT"
    assert record["armed"] is True
    assert record["custom_mode"] == 0x01020304
    assert out.rstrip().endswith("bye")


def test_run_bind_failure(vehicle):
    cfg = load_config()
    cfg.listen.port = vehicle.getsockname()[1]
    assert cli.run(cfg, threading.Event()) == 1


class DummyMQTTClient:
    def __init__(self, *args, **kwargs):
        self.published = []

    def connect_async(self, host, port, keepalive=60):
        pass

    def loop_start(self):
        pass

    def loop_stop(self):
        pass

    def disconnect(self):
        pass

    def publish(self, topic, payload=None, qos=0, retain=False):
        self.published.append((topic, payload))


def test_run_with_mqtt_upserts_each_record_once(vehicle, monkeypatch):
    import paho.mqtt.client as mqtt_module
    from mavsniff.core.registry import VehicleRegistry

    monkeypatch.setattr(mqtt_module, "Client", DummyMQTTClient)
    upserts = []
    original = VehicleRegistry.upsert

    def counting_upsert(self, record):
        upserts.append(record)
        return original(self, record)

    monkeypatch.setattr(VehicleRegistry, "upsert", counting_upsert)

    cfg = load_config()
    cfg.listen.port = 0
    cfg.vehicle.port = vehicle.getsockname()[1]
    cfg.read_timeout = 0.2
    cfg.mqtt.enabled = True
    stop_event = threading.Event()

    def on_ready(session):
        def drive():
            vehicle.recvfrom(64)
            vehicle.sendto(heartbeat_bytes(sysid=9), session.local_address)
            deadline = time.monotonic() + 2.0
            while session.records < 1 and time.monotonic() < deadline:
                time.sleep(0.01)
            time.sleep(0.1)  # let the sinks finish
            stop_event.set()
        threading.Thread(target=drive, daemon=True).start()

    assert cli.run(cfg, stop_event, sinks=[], on_ready=on_ready) == 0
    assert len(upserts) == 1
    assert upserts[0].system_id == 9
