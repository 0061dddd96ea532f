import time
import threading
from typing import Dict, Optional

from mavsniff.core.messages import Heartbeat, GlobalPosition, Record


class VehicleRegistry:
    """Latest known state per MAVLink system id, fed from decoded records."""

    def __init__(self):
        self._store: Dict[str, dict] = {}
        self._lock = threading.Lock()

    def device_id_for_mav(self, sysid: int) -> str:
        return f"mav_sys{sysid}"

    def upsert(self, record: Record) -> Optional[str]:
        """Register or update the vehicle a record came from.

        Returns the canonical device_id (mav_sys<N>), or None when the record
        carries no system id."""
        if record.system_id is None:
            return None
        did = self.device_id_for_mav(record.system_id)
        now = time.time()
        with self._lock:
            dev = self._store.get(did, {
                "sysid": record.system_id,
                "compid": record.component_id,
                "first_seen": now,
                "armed": None,
                "position": None,
            })
            dev["last_seen"] = now
            if record.component_id is not None:
                dev["compid"] = record.component_id
            if isinstance(record, Heartbeat):
                dev["armed"] = record.armed
                dev["vehicle_type"] = record.vehicle_type
            elif isinstance(record, GlobalPosition):
                dev["position"] = (record.latitude_deg, record.longitude_deg, record.altitude_m)
            self._store[did] = dev
        return did

    def __call__(self, record: Record):
        # lets the registry be passed directly as a session sink
        self.upsert(record)

    def snapshot(self) -> Dict[str, dict]:
        with self._lock:
            return {k: dict(v) for k, v in self._store.items()}

    def armed(self, sysid: int) -> Optional[bool]:
        with self._lock:
            dev = self._store.get(self.device_id_for_mav(sysid))
            if not dev:
                return None
            return dev.get("armed")
