"""MAVLink v2 frame decoding.

Turns one received datagram into a validated :class:`Frame` view, or into a
:class:`FrameRejection` saying why the bytes are not decodable. Rejections are
ordinary return values: a bad datagram must never affect the next one.

Layout of a v2 frame::

    0      magic (0xFD)
    1      payload length
    2..4   incompat flags, compat flags, sequence (unused here)
    5      system id
    6      component id
    7..9   message id, 24-bit little-endian
    10..   payload
    +2     checksum (not verified)
"""
from dataclasses import dataclass
from enum import Enum
from typing import Union

from mavsniff.core.constants import MAGIC_V2, HEADER_LEN, CRC_LEN


class FrameRejection(str, Enum):
    TOO_SHORT = "too_short"
    BAD_MAGIC = "bad_magic"
    INCOMPLETE = "incomplete"


@dataclass(frozen=True, eq=False)
class Frame:
    payload_length: int
    system_id: int
    component_id: int
    message_id: int
    payload: memoryview  # view into the datagram, valid for one loop iteration

    @property
    def total_length(self) -> int:
        return HEADER_LEN + self.payload_length + CRC_LEN


FrameResult = Union[Frame, FrameRejection]


def decode_frame(datagram) -> FrameResult:
    """Validate the header of ``datagram`` and return a Frame over it.

    Accepts bytes, bytearray or memoryview. The payload of the returned frame
    references the caller's buffer; it is not copied.
    """
    view = memoryview(datagram)
    n = len(view)
    if n < HEADER_LEN + CRC_LEN:
        return FrameRejection.TOO_SHORT
    if view[0] != MAGIC_V2:
        return FrameRejection.BAD_MAGIC

    payload_length = view[1]
    if HEADER_LEN + payload_length + CRC_LEN > n:
        # declared payload runs past the end of this datagram
        return FrameRejection.INCOMPLETE

    return Frame(
        payload_length=payload_length,
        system_id=view[5],
        component_id=view[6],
        message_id=view[7] | (view[8] << 8) | (view[9] << 16),
        payload=view[HEADER_LEN:HEADER_LEN + payload_length],
    )


def is_frame(result: FrameResult) -> bool:
    return isinstance(result, Frame)
