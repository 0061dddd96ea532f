import json
import sys
from typing import TextIO

from mavsniff.core.messages import Heartbeat, GlobalPosition, Record, enum_name


def render(record: Record, names: bool = False) -> dict:
    """Flatten a record into the JSON shape printed on the console.

    With ``names`` the MAVLink enum fields are rendered as their symbolic
    names (MAV_TYPE_QUADROTOR, ...) instead of integers."""
    if isinstance(record, Heartbeat):
        out = {
            "msg": record.msg_name,
            "type": record.vehicle_type,
            "autopilot": record.autopilot_type,
            "base_mode": record.base_mode,
            "armed": record.armed,
            "custom_mode": record.custom_mode,
            "system_status": record.system_status,
        }
        if names:
            out["type"] = enum_name("MAV_TYPE", record.vehicle_type)
            out["autopilot"] = enum_name("MAV_AUTOPILOT", record.autopilot_type)
            out["system_status"] = enum_name("MAV_STATE", record.system_status)
        return out
    if isinstance(record, GlobalPosition):
        return {
            "msg": record.msg_name,
            "lat": record.latitude_deg,
            "lon": record.longitude_deg,
            "alt_m": record.altitude_m,
        }
    raise TypeError(f"unsupported record type: {type(record).__name__}")


class ConsoleSink:
    def __init__(self, stream: TextIO = None, names: bool = False, indent: int = 1):
        self.stream = stream
        self.names = names
        self.indent = indent

    def __call__(self, record: Record):
        stream = self.stream or sys.stdout
        stream.write(json.dumps(render(record, names=self.names), indent=self.indent) + "\n")
        stream.flush()
