"""Typed decoders for the MAVLink messages mavsniff understands.

Only HEARTBEAT and GLOBAL_POSITION_INT are decoded. Everything else, and any
recognized message whose payload is too short, dispatches to ``None``.
"""
import struct
from dataclasses import dataclass, asdict
from typing import Callable, Dict, Optional, Union

from pymavlink.dialects.v20 import common as mavlink2

from mavsniff.core.constants import (
    ARMED_FLAG, MSG_ID_HEARTBEAT, MSG_ID_GLOBAL_POSITION_INT
)
from mavsniff.core.frame import Frame

# custom_mode, type, autopilot, base_mode, system_status (mavlink_version skipped)
_HEARTBEAT = struct.Struct("<IBBBB")
_HEARTBEAT_MIN_LEN = 9
# time_boot_ms (skipped), lat, lon, alt
_GLOBAL_POSITION = struct.Struct("<4xiii")
_GLOBAL_POSITION_MIN_LEN = 28


@dataclass(frozen=True)
class Heartbeat:
    vehicle_type: int
    autopilot_type: int
    base_mode: int
    custom_mode: int
    system_status: int
    system_id: Optional[int] = None
    component_id: Optional[int] = None

    msg_name = "HEARTBEAT"

    @property
    def armed(self) -> bool:
        return (self.base_mode & ARMED_FLAG) != 0

    def to_dict(self) -> dict:
        d = asdict(self)
        d["armed"] = self.armed
        return d


@dataclass(frozen=True)
class GlobalPosition:
    latitude_deg: float
    longitude_deg: float
    altitude_m: float
    system_id: Optional[int] = None
    component_id: Optional[int] = None

    msg_name = "GLOBAL_POSITION_INT"

    def to_dict(self) -> dict:
        return asdict(self)


Record = Union[Heartbeat, GlobalPosition]


def decode_heartbeat(frame: Frame) -> Optional[Heartbeat]:
    if frame.message_id != MSG_ID_HEARTBEAT or len(frame.payload) < _HEARTBEAT_MIN_LEN:
        return None
    custom_mode, vtype, autopilot, base_mode, status = _HEARTBEAT.unpack_from(frame.payload)
    return Heartbeat(
        vehicle_type=vtype,
        autopilot_type=autopilot,
        base_mode=base_mode,
        custom_mode=custom_mode,
        system_status=status,
        system_id=frame.system_id,
        component_id=frame.component_id,
    )


def decode_global_position(frame: Frame) -> Optional[GlobalPosition]:
    if frame.message_id != MSG_ID_GLOBAL_POSITION_INT or len(frame.payload) < _GLOBAL_POSITION_MIN_LEN:
        return None
    lat, lon, alt_mm = _GLOBAL_POSITION.unpack_from(frame.payload)
    return GlobalPosition(
        latitude_deg=lat / 1e7,
        longitude_deg=lon / 1e7,
        altitude_m=alt_mm / 1000.0,
        system_id=frame.system_id,
        component_id=frame.component_id,
    )


DECODERS: Dict[int, Callable[[Frame], Optional[Record]]] = {
    MSG_ID_HEARTBEAT: decode_heartbeat,
    MSG_ID_GLOBAL_POSITION_INT: decode_global_position,
}


def dispatch(frame: Frame) -> Optional[Record]:
    """Return the record encoded by ``frame``, or None if it is not one we decode."""
    decoder = DECODERS.get(frame.message_id)
    if decoder is None:
        return None
    return decoder(frame)


def enum_name(enum: str, value: int) -> str:
    """Look up a MAVLink enum entry name, e.g. ``enum_name("MAV_TYPE", 2)``.

    Unknown values come back as the plain number so callers can always print
    something.
    """
    entry = mavlink2.enums.get(enum, {}).get(value)
    if entry is None:
        return str(value)
    return entry.name
