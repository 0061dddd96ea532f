import io
import socket

import pytest
from pymavlink.dialects.v20 import common as mavlink2


def raw_frame(msgid: int, payload: bytes, sysid: int = 1, compid: int = 1, seq: int = 0, magic: int = 0xFD) -> bytes:
    """Hand-pack a v2 frame with a zero checksum (never verified)."""
    header = bytes([
        magic, len(payload), 0, 0, seq, sysid, compid,
        msgid & 0xFF, (msgid >> 8) & 0xFF, (msgid >> 16) & 0xFF,
    ])
    return header + payload + b"\x00\x00"


def make_mav_writer(sysid: int = 1, compid: int = 1):
    buf = io.BytesIO()
    mav = mavlink2.MAVLink(buf, srcSystem=sysid, srcComponent=compid)
    return mav, buf


def heartbeat_bytes(base_mode=0x80, custom_mode=0x01020304, vtype=2, autopilot=3, status=4, sysid=1, compid=1) -> bytes:
    mav, _ = make_mav_writer(sysid, compid)
    msg = mav.heartbeat_encode(vtype, autopilot, base_mode, custom_mode, status)
    return bytes(msg.pack(mav))


def global_position_bytes(lat, lon, alt_mm, hdg=9000, vel=(10, -10, 5), sysid=1, compid=1) -> bytes:
    mav, _ = make_mav_writer(sysid, compid)
    msg = mav.global_position_int_encode(123456, lat, lon, alt_mm, 1000, vel[0], vel[1], vel[2], hdg)
    return bytes(msg.pack(mav))


@pytest.fixture
def vehicle():
    """A UDP socket standing in for the autopilot's mavlink instance."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.settimeout(2.0)
    yield sock
    sock.close()
