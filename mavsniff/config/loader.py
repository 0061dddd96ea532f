import os
import yaml
from pathlib import Path
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, ValidationError

from mavsniff.core.constants import (
    DEFAULT_LOCAL_PORT, DEFAULT_VEHICLE_HOST, DEFAULT_VEHICLE_PORT,
    DEFAULT_READ_TIMEOUT, TOPIC_VERSION,
)


class ConfigError(Exception):
    pass


class ListenConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = Field(DEFAULT_LOCAL_PORT, ge=0, le=65535)


class VehicleConfig(BaseModel):
    # where the autopilot's mavlink instance listens (its udp_port)
    host: str = DEFAULT_VEHICLE_HOST
    port: int = Field(DEFAULT_VEHICLE_PORT, ge=1, le=65535)


class MQTTConfig(BaseModel):
    enabled: bool = False
    host: str = "localhost"
    port: int = 1883
    topic_prefix: str = TOPIC_VERSION
    qos: int = Field(0, ge=0, le=2)
    client_id: str = "mavsniff"
    username: Optional[str] = None
    password: Optional[str] = None
    keepalive: int = 60


class SnifferConfig(BaseModel):
    listen: ListenConfig = Field(default_factory=ListenConfig)
    vehicle: VehicleConfig = Field(default_factory=VehicleConfig)
    read_timeout: float = Field(DEFAULT_READ_TIMEOUT, gt=0)
    log_level: str = "INFO"
    enum_names: bool = False
    mqtt: MQTTConfig = Field(default_factory=MQTTConfig)


def apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    mqtt = dict(data.get("mqtt") or {})
    host = os.getenv("MAVSNIFF_MQTT_HOST")
    if host:
        mqtt["host"] = host
    port = os.getenv("MAVSNIFF_MQTT_PORT")
    if port:
        try:
            mqtt["port"] = int(port)
        except ValueError:
            raise ConfigError(f"MAVSNIFF_MQTT_PORT must be an integer, got {port!r}")
    prefix = os.getenv("MAVSNIFF_TOPIC_PREFIX")
    if prefix:
        mqtt["topic_prefix"] = prefix
    data["mqtt"] = mqtt
    return data


def load_config(path: Optional[str] = None) -> SnifferConfig:
    """Load a YAML config file; with no path, defaults plus environment overrides."""
    data: Dict[str, Any] = {}
    if path is not None:
        p = Path(path)
        if not p.exists():
            raise ConfigError(f"Config not found: {p}")
        with open(p, "r") as fh:
            try:
                data = yaml.safe_load(fh) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {p}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config {p} must be a mapping, found {type(data).__name__}")
    data = apply_env_overrides(data)
    try:
        return SnifferConfig(**data)
    except ValidationError as e:
        raise ConfigError(str(e)) from e
