"""UDP listener session: bind, announce, receive loop and cooperative shutdown.

One worker thread runs the read loop. The owner stops it by setting the
cancel event and closing the socket; closing is what unblocks a pending
``recvfrom``, so the loop treats the resulting ``OSError`` as a normal exit
path once it sees the cancel flag.
"""
import socket
import threading
import logging
from collections import Counter
from enum import Enum
from typing import Callable, Iterable, Optional, Tuple

from mavsniff.core.constants import ANNOUNCE_PAYLOAD, DEFAULT_READ_TIMEOUT, MAX_DATAGRAM
from mavsniff.core.frame import FrameRejection, decode_frame
from mavsniff.core.messages import Record, dispatch

Address = Tuple[str, int]
RecordSink = Callable[[Record], None]


class SessionState(str, Enum):
    IDLE = "idle"
    BOUND = "bound"
    ANNOUNCED = "announced"
    RECEIVING = "receiving"
    SHUTTING_DOWN = "shutting_down"
    CLOSED = "closed"


class SessionError(Exception):
    """Fatal listener failure; the process cannot continue."""


class BindError(SessionError):
    pass


class AnnounceError(SessionError):
    pass


class SessionStateError(RuntimeError):
    pass


class ListenerSession:
    def __init__(self, listen: Address, announce_to: Address, sinks: Iterable[RecordSink] = (),
                 read_timeout: float = DEFAULT_READ_TIMEOUT, name: str = "udp",
                 recv_buf: int = MAX_DATAGRAM, announce_payload: bytes = ANNOUNCE_PAYLOAD):
        self.name = name
        self.listen = listen
        self.announce_to = announce_to
        self.sinks = list(sinks)
        self.read_timeout = float(read_timeout)
        self.recv_buf = recv_buf
        self.announce_payload = announce_payload
        self.state = SessionState.IDLE
        self._sock: Optional[socket.socket] = None
        self._cancel = threading.Event()
        # set by the read loop on its way out
        self.done = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._state_lock = threading.Lock()
        # Diagnostics
        self.datagrams = 0
        self.records = 0
        self.rejections: Counter = Counter()
        self.ignored = 0

    # ---- lifecycle ----
    def _expect(self, *states: SessionState):
        if self.state not in states:
            raise SessionStateError(
                f"[listener:{self.name}] invalid in state {self.state.value}; expected {[s.value for s in states]}"
            )

    def bind(self):
        self._expect(SessionState.IDLE)
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind(self.listen)
        except OSError as e:
            sock.close()
            raise BindError(f"bind {self.listen[0]}:{self.listen[1]}: {e}") from e
        self._sock = sock
        self.state = SessionState.BOUND
        logging.info(f"[listener:{self.name}] bound {self.local_address[0]}:{self.local_address[1]}")

    def announce(self):
        """Send the one-shot registration datagram to the remote router."""
        self._expect(SessionState.BOUND)
        try:
            self._sock.sendto(self.announce_payload, self.announce_to)
        except OSError as e:
            raise AnnounceError(f"announce to {self.announce_to[0]}:{self.announce_to[1]} failed: {e}") from e
        self.state = SessionState.ANNOUNCED
        logging.info(f"[listener:{self.name}] announced to {self.announce_to[0]}:{self.announce_to[1]}")

    def start(self):
        self._expect(SessionState.ANNOUNCED)
        self.state = SessionState.RECEIVING
        self._thread = threading.Thread(target=self._rx_loop, name=f"listener-{self.name}", daemon=False)
        self._thread.start()

    def open(self):
        """bind + announce + start."""
        self.bind()
        self.announce()
        self.start()

    def cancel(self):
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def close(self):
        """Close the socket; a receive blocked in another thread errors out."""
        with self._state_lock:
            if self.state == SessionState.RECEIVING:
                self.state = SessionState.SHUTTING_DOWN
            elif self.state != SessionState.SHUTTING_DOWN:
                self.state = SessionState.CLOSED
            sock = self._sock
        # state alone is not enough: wait() may have seen the loop exit first
        if sock is not None and sock.fileno() != -1:
            try:
                sock.close()
            except OSError as e:
                logging.warning(f"[listener:{self.name}] close error: {e}")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the read loop has signaled completion, then close."""
        if self._thread is None:
            return True
        if not self.done.wait(timeout):
            return False
        self._thread.join()
        self.close()
        with self._state_lock:
            self.state = SessionState.CLOSED
        return True

    def stop(self, timeout: Optional[float] = None) -> bool:
        self.cancel()
        self.close()
        stopped = self.wait(timeout)
        if stopped:
            logging.info(f"[listener:{self.name}] closed")
        else:
            logging.warning(f"[listener:{self.name}] read loop did not finish within {timeout}s")
        return stopped

    @property
    def local_address(self) -> Optional[Address]:
        if self._sock is None or self._sock.fileno() == -1:
            return None
        return self._sock.getsockname()

    def stats(self) -> dict:
        return {
            "datagrams": self.datagrams,
            "records": self.records,
            "ignored": self.ignored,
            "rejected": {r.value: self.rejections[r] for r in FrameRejection},
        }

    # ---- loop ----
    def _rx_loop(self):
        sock = self._sock
        try:
            while True:
                try:
                    # liveness poll so a cancel is noticed even with no traffic
                    sock.settimeout(self.read_timeout)
                    data, _addr = sock.recvfrom(self.recv_buf)
                except socket.timeout:
                    if self._cancel.is_set():
                        return
                    continue
                except OSError as e:
                    # closed socket lands here too; only the cancel flag tells them apart
                    if self._cancel.is_set():
                        return
                    logging.warning(f"[listener:{self.name}] read: {e}")
                    continue
                self.handle_datagram(data)
        finally:
            logging.debug(f"[listener:{self.name}] read loop exiting")
            self.done.set()

    def handle_datagram(self, data: bytes) -> Optional[Record]:
        """Decode one datagram and hand the record, if any, to the sinks."""
        self.datagrams += 1
        frame = decode_frame(data)
        if isinstance(frame, FrameRejection):
            self.rejections[frame] += 1
            logging.debug(f"[listener:{self.name}] rejected {len(data)}B datagram: {frame.value}")
            return None
        record = dispatch(frame)
        if record is None:
            self.ignored += 1
            return None
        self.records += 1
        for sink in self.sinks:
            try:
                sink(record)
            except Exception as e:
                logging.warning(f"[listener:{self.name}] sink {sink!r} failed on {record.msg_name}: {e}")
        return record
