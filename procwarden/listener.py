"""Event listener processes and capture of events from program output."""

from __future__ import annotations

import codecs
import logging
import threading
from collections import deque
from typing import BinaryIO

from procwarden.events import (
    EVENT_SYS_VERSION,
    PROC_COMMON_BEGIN_STR,
    PROC_COMMON_END_STR,
    Event,
    ProcCommEvent,
    emit_event,
    event_pool_serial,
)

log = logging.getLogger(__name__)

_CHUNK_SIZE = 10240


class _ProtocolError(ValueError):
    """Raised when the listener answers with something unexpected."""


class EventListener:
    """Feeds queued events to an event listener program.

    ``stdin`` is the stream the listener program writes to (its READY and
    RESULT lines); ``stdout`` is the stream the events are written to.
    An event stays queued until the listener acknowledges it with ``OK``.
    """

    def __init__(self, pool: str, server: str, stdin: BinaryIO, stdout: BinaryIO,
                 buffer_size: int) -> None:
        self.pool = pool
        self.server = server
        self.buffer_size = buffer_size
        self._stdin = stdin
        self._stdout = stdout
        self._cond = threading.Condition()
        self._events: deque[bytes] = deque()
        self._thread = threading.Thread(
            target=self._run, name=f"event-listener-{pool}", daemon=True)
        self._thread.start()

    def _first_event(self) -> bytes:
        with self._cond:
            while not self._events:
                self._cond.wait()
            return self._events[0]

    def _remove_first_event(self) -> None:
        with self._cond:
            if self._events:
                self._events.popleft()

    def _run(self) -> None:
        while True:
            try:
                self._wait_for_ready()
            except (OSError, ValueError, EOFError):
                log.warning("fail to read from event listener %s, the event listener may exit",
                            self.pool)
                return
            while True:
                payload = self._first_event()
                try:
                    self._stdout.write(payload)
                    self._stdout.flush()
                except (OSError, ValueError):
                    log.warning("event listener %s: fail to send event", self.pool)
                    break
                try:
                    result = self._read_result()
                except (OSError, ValueError, EOFError):
                    log.warning("event listener %s: fail to read result", self.pool)
                    break
                if result == "OK":
                    log.info("event listener %s: succeed to send the event", self.pool)
                    self._remove_first_event()
                    break
                if result == "FAIL":
                    log.warning("event listener %s: fail to send the event", self.pool)
                    break
                log.warning("event listener %s: unknown result %r", self.pool, result)

    def _wait_for_ready(self) -> None:
        log.debug("start to check if event listener program is ready")
        while True:
            line = self._stdin.readline()
            if not line:
                raise EOFError("event listener closed its output")
            if line == b"READY\n":
                log.debug("the event listener %s is ready", self.pool)
                return

    def _read_exact(self, n: int) -> bytes:
        chunks = []
        remaining = n
        while remaining > 0:
            chunk = self._stdin.read(remaining)
            if not chunk:
                raise EOFError("event listener closed its output")
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)

    def _read_result(self) -> str:
        line = self._stdin.readline()
        if not line.endswith(b"\n"):
            raise EOFError("event listener closed its output")
        fields = line.split()
        if len(fields) != 2 or fields[0] != b"RESULT":
            raise _ProtocolError("Fail to read the result")
        try:
            n = int(fields[1])
        except ValueError as exc:
            raise _ProtocolError(f"bad result length {fields[1]!r}") from exc
        if n < 0:
            raise _ProtocolError(
                "Fail to read the result because the result bytes is less than 0")
        return self._read_exact(n).decode("utf-8", errors="replace")

    def handle_event(self, event: Event) -> None:
        """Queue an event; it is dropped when the buffer is full."""
        encoded = self.encode_event(event)
        with self._cond:
            if len(self._events) <= self.buffer_size:
                self._events.append(encoded)
                self._cond.notify()
            else:
                log.error("event listener %s: events reach the buffer size, discard the event",
                          self.pool)

    def encode_event(self, event: Event) -> bytes:
        """Return the header line followed by the event body."""
        body = event.body().encode("utf-8")
        header = (
            f"ver:{EVENT_SYS_VERSION} server:{self.server} serial:{event.serial} "
            f"pool:{self.pool} poolserial:{event_pool_serial.next_serial(self.pool)} "
            f"eventname:{event.event_type} len:{len(body)}\n"
        )
        return header.encode("utf-8") + body


class ProcCommEventCapture:
    """Watches a program's output for data between the communication markers.

    Each complete block is emitted as a process communication event.
    """

    def __init__(self, reader: BinaryIO, capture_max_bytes: int, std_type: str,
                 proc_name: str, group_name: str) -> None:
        self._reader = reader
        self.capture_max_bytes = capture_max_bytes
        self.std_type = std_type
        self.proc_name = proc_name
        self.group_name = group_name
        self.pid = -1
        self._buffer = ""
        self._begin_pos = -1
        self._thread = threading.Thread(
            target=self._run, name=f"event-capture-{proc_name}", daemon=True)
        self._thread.start()

    def set_pid(self, pid: int) -> None:
        """Set the pid reported in captured events."""
        self.pid = pid

    def _run(self) -> None:
        read = getattr(self._reader, "read1", None) or self._reader.read
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            try:
                chunk = read(_CHUNK_SIZE)
            except (OSError, ValueError):
                return
            if not chunk:
                return
            self._buffer += decoder.decode(chunk)
            while (event := self._capture_event()) is not None:
                emit_event(event)

    def _capture_event(self) -> ProcCommEvent | None:
        self._find_begin()
        end = self._find_end()
        if end == -1:
            return None
        data = self._buffer[self._begin_pos + len(PROC_COMMON_BEGIN_STR):end]
        self._buffer = self._buffer[end + len(PROC_COMMON_END_STR):]
        self._begin_pos = -1
        return ProcCommEvent(self.std_type, self.proc_name, self.group_name, self.pid, data)

    def _find_begin(self) -> None:
        if self._begin_pos != -1:
            return
        self._begin_pos = self._buffer.find(PROC_COMMON_BEGIN_STR)
        if self._begin_pos == -1 and len(self._buffer) > len(PROC_COMMON_BEGIN_STR):
            # keep only what could be the start of a split marker
            self._buffer = self._buffer[-len(PROC_COMMON_BEGIN_STR):]

    def _find_end(self) -> int:
        if self._begin_pos == -1:
            return -1
        end = self._buffer.find(PROC_COMMON_END_STR,
                                self._begin_pos + len(PROC_COMMON_BEGIN_STR))
        if end == -1 and len(self._buffer) > self.capture_max_bytes:
            log.warning("program %s: the capture buffer is overflow, discard the content",
                        self.proc_name)
            self._begin_pos = -1
            self._buffer = ""
        return end