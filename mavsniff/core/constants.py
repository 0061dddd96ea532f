
# MAVLink v2 framing
MAGIC_V2 = 0xFD
HEADER_LEN = 10
CRC_LEN = 2
MAX_DATAGRAM = 2048

# message ids
MSG_ID_HEARTBEAT = 0
MSG_ID_GLOBAL_POSITION_INT = 33

ARMED_FLAG = 0x80  # MAV_MODE_FLAG_SAFETY_ARMED

ANNOUNCE_PAYLOAD = b"\x01"
DEFAULT_READ_TIMEOUT = 3.0
DEFAULT_LOCAL_PORT = 14550
DEFAULT_VEHICLE_HOST = "127.0.0.1"
DEFAULT_VEHICLE_PORT = 14540

TOPIC_VERSION = "mavsniff/v1"
HEARTBEAT_TOPIC = "{root}/devices/{device_id}/telem/state/heartbeat"
GLOBAL_POSITION_TOPIC = "{root}/devices/{device_id}/telem/pose/global_position"
