import json, time, logging
import threading
import paho.mqtt.client as mqtt

from mavsniff.core.constants import TOPIC_VERSION, HEARTBEAT_TOPIC, GLOBAL_POSITION_TOPIC
from mavsniff.core.messages import Heartbeat, GlobalPosition, Record
from mavsniff.core.registry import VehicleRegistry


class MQTTRouter:
    """Publishes decoded records to an MQTT broker.

    Usable directly as a listener sink. Connection is established in the
    background; records arriving before the broker confirms the connection
    are dropped with a warning."""

    def __init__(self, name: str, cfg: dict, registry: VehicleRegistry = None):
        self.name = name
        self.cfg = cfg
        self.root = cfg.get("topic_prefix") or TOPIC_VERSION
        self.qos = int(cfg.get("qos", 0))
        self.registry = registry or VehicleRegistry()
        self._client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=cfg.get("client_id", "mavsniff"))
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_log = self._on_log
        self._lock = threading.Lock()
        self._run = False
        self._connected = False
        self._retry_backoff = 1.0
        self._threads = []

    def start(self):
        self._run = True
        t = threading.Thread(target=self._connect_loop, daemon=False)
        t.start()
        self._threads.append(t)

    def _connect_loop(self):
        host = self.cfg["host"]
        port = int(self.cfg.get("port", 1883))
        while self._run:
            if not self._connected:
                try:
                    logging.info(f"[mqtt:{self.name}] attempting connect_async {host}:{port}")
                    username = self.cfg.get("username")
                    if username:
                        self._client.username_pw_set(username, self.cfg.get("password"))
                    self._client.connect_async(host, port, int(self.cfg.get("keepalive", 60)))
                    self._client.loop_start()
                    # on_connect sets _connected
                    wait_for = 5.0
                    start = time.time()
                    while self._run and not self._connected and (time.time() - start) < wait_for:
                        time.sleep(0.1)
                    if self._connected:
                        self._retry_backoff = 1.0
                        logging.info(f"[mqtt:{self.name}] connected (on_connect confirmed)")
                    elif self._run:
                        logging.warning(f"[mqtt:{self.name}] connect not confirmed within {wait_for}s; will retry in {self._retry_backoff:.1f}s")
                        try:
                            self._client.loop_stop()
                        except Exception:
                            pass
                        time.sleep(self._retry_backoff)
                except Exception as e:
                    logging.warning(f"[mqtt:{self.name}] connect error: {e}; retry in {self._retry_backoff:.1f}s")
                    time.sleep(self._retry_backoff)
            else:
                time.sleep(0.5)

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if not reason_code.is_failure:
            logging.info(f"[mqtt:{self.name}] on_connect rc=0 (success)")
            self._connected = True
        else:
            logging.warning(f"[mqtt:{self.name}] on_connect rc={reason_code}")

    def _on_log(self, client, userdata, level, buf):
        logging.debug(f"[mqtt:{self.name}] paho_log level={level} msg={buf}")

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        if not self._run:
            return
        if reason_code != 0:
            logging.warning(f"[mqtt:{self.name}] unexpected disconnect rc={reason_code}; will retry")
        else:
            logging.info(f"[mqtt:{self.name}] clean disconnect")
        self._connected = False
        try:
            self._client.loop_stop()
        except Exception:
            pass

    def stop(self):
        self._run = False
        try:
            self._client.disconnect()
        except Exception as e:
            logging.debug(f"[mqtt:{self.name}] disconnect error: {e}")
        try:
            self._client.loop_stop()
        except Exception as e:
            logging.debug(f"[mqtt:{self.name}] loop_stop error: {e}")
        self._connected = False
        for thr in self._threads:
            thr.join(timeout=2.0)

    def publish_telem(self, topic: str, payload: dict, retain: bool = False) -> bool:
        if not self._connected:
            # observable drop (not connected)
            logging.warning(f"[mqtt:{self.name}] drop publish (not connected) topic={topic}")
            return False
        data = json.dumps(payload, separators=(",", ":"))
        with self._lock:
            self._client.publish(topic, data, qos=self.qos, retain=retain)
        return True

    def topic_for(self, record: Record, device_id: str) -> str:
        if isinstance(record, Heartbeat):
            return HEARTBEAT_TOPIC.format(root=self.root, device_id=device_id)
        if isinstance(record, GlobalPosition):
            return GLOBAL_POSITION_TOPIC.format(root=self.root, device_id=device_id)
        raise TypeError(f"unsupported record type: {type(record).__name__}")

    def __call__(self, record: Record):
        device_id = self.registry.upsert(record)
        if device_id is None:
            return
        payload = {"msg": record.msg_name, "ts": time.time(), **record.to_dict()}
        self.publish_telem(self.topic_for(record, device_id), payload)
