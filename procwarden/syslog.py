"""Writing program output to a local or remote syslog service."""

from __future__ import annotations

import datetime
import logging
import os
import queue
import re
import socket
import threading
from collections.abc import Mapping
from enum import IntEnum
from typing import Any

from procwarden.faults import Fault, FaultCode

log = logging.getLogger(__name__)

_INTEGER = re.compile(r"[+-]?[0-9]+")
_LOCAL_SOCKETS = ("/dev/log", "/var/run/syslog", "/var/run/log")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


class SyslogLevel(IntEnum):
    EMERG = 0
    ALERT = 1
    CRIT = 2
    ERR = 3
    WARNING = 4
    NOTICE = 5
    INFO = 6
    DEBUG = 7


class SyslogFacility(IntEnum):
    KERN = 0 << 3
    USER = 1 << 3
    MAIL = 2 << 3
    DAEMON = 3 << 3
    AUTH = 4 << 3
    SYSLOG = 5 << 3
    LPR = 6 << 3
    NEWS = 7 << 3
    UUCP = 8 << 3
    CRON = 9 << 3
    AUTHPRIV = 10 << 3
    FTP = 11 << 3
    LOCAL0 = 16 << 3
    LOCAL1 = 17 << 3
    LOCAL2 = 18 << 3
    LOCAL3 = 19 << 3
    LOCAL4 = 20 << 3
    LOCAL5 = 21 << 3
    LOCAL6 = 22 << 3
    LOCAL7 = 23 << 3


def _aliases(*names: str) -> list[str]:
    return [alias for name in names for alias in (name, "LOG_" + name)]


_LEVEL_NAMES: dict[str, SyslogLevel] = {}
for _level, _names in (
    (SyslogLevel.EMERG, ("EMERG",)),
    (SyslogLevel.ALERT, ("ALERT",)),
    (SyslogLevel.CRIT, ("CRIT", "CRITICAL")),
    (SyslogLevel.ERR, ("ERR", "ERROR")),
    (SyslogLevel.WARNING, ("WARNING", "WARN")),
    (SyslogLevel.NOTICE, ("NOTICE",)),
    (SyslogLevel.INFO, ("INFO",)),
    (SyslogLevel.DEBUG, ("DEBUG",)),
):
    _LEVEL_NAMES.update(dict.fromkeys(_aliases(*_names), _level))

_FACILITY_NAMES: dict[str, SyslogFacility] = {}
for _facility in SyslogFacility:
    _FACILITY_NAMES.update(dict.fromkeys(_aliases(_facility.name), _facility))
_FACILITY_NAMES.update(dict.fromkeys(_aliases("KERNEL"), SyslogFacility.KERN))


def to_syslog_level(level: str) -> SyslogLevel:
    """Map a level name such as ``err`` or ``LOG_WARNING``; unknown names give INFO."""
    return _LEVEL_NAMES.get(level.upper(), SyslogLevel.INFO)


def to_syslog_facility(facility: str) -> SyslogFacility:
    """Map a facility name such as ``daemon`` or ``LOG_LOCAL3``; unknown names give LOCAL0."""
    return _FACILITY_NAMES.get(facility.upper(), SyslogFacility.LOCAL0)


def get_syslog_priority(props: Mapping[str, str]) -> int:
    """Combine ``syslog_priority`` (default NOTICE) and ``syslog_facility`` (default LOCAL0)."""
    level = SyslogLevel.NOTICE
    if "syslog_priority" in props:
        level = to_syslog_level(props["syslog_priority"])
    facility = SyslogFacility.LOCAL0
    if "syslog_facility" in props:
        facility = to_syslog_facility(props["syslog_facility"])
    return int(level) | int(facility)


def _parse_port(text: str) -> int:
    if not _INTEGER.fullmatch(text):
        raise ValueError(f"invalid port {text!r}")
    return int(text)


def parse_syslog_config(config: str) -> tuple[str, str, int]:
    """Parse ``[protocol:]host[:port]`` into (protocol, host, port).

    The protocol defaults to udp; the port to 514 for udp and 6514 for tcp.
    """
    fields = config.split(":")
    if len(fields) == 1:
        return "udp", fields[0], 514
    if len(fields) == 2:
        first, second = fields
        if first == "tcp":
            return "tcp", second, 6514
        if first == "udp":
            return "udp", second, 514
        return "udp", first, _parse_port(second)
    if len(fields) == 3:
        return fields[0], fields[1], _parse_port(fields[2])
    raise ValueError("invalid format")


def _stamp(now: datetime.datetime) -> str:
    return f"{_MONTHS[now.month - 1]} {now.day:2d} {now:%H:%M:%S}"


def _rfc3339(now: datetime.datetime) -> str:
    text = now.isoformat(timespec="seconds")
    return text[:-6] + "Z" if text.endswith("+00:00") else text


def _dial_local() -> socket.socket:
    family = getattr(socket, "AF_UNIX", None)
    if family is None:
        raise OSError("unix syslog delivery error")
    for path in _LOCAL_SOCKETS:
        for sock_type in (socket.SOCK_DGRAM, socket.SOCK_STREAM):
            sock = socket.socket(family, sock_type)
            try:
                sock.connect(path)
            except OSError:
                sock.close()
                continue
            return sock
    raise OSError("unix syslog delivery error")


def _dial_network(network: str, raddr: str) -> socket.socket:
    if network.startswith("tcp"):
        sock_type = socket.SOCK_STREAM
    elif network.startswith("udp"):
        sock_type = socket.SOCK_DGRAM
    else:
        raise OSError(f"unknown network {network}")
    host, _, port = raddr.rpartition(":")
    host = host.strip("[]")
    last_error: OSError = OSError(f"cannot resolve {raddr}")
    for family, stype, proto, _, address in socket.getaddrinfo(host, int(port), 0, sock_type):
        sock = socket.socket(family, stype, proto)
        try:
            sock.connect(address)
        except OSError as exc:
            sock.close()
            last_error = exc
            continue
        return sock
    raise last_error


class _SyslogWriter:
    """A connection to a syslog service that sends one message per write."""

    def __init__(self, network: str, raddr: str, priority: int, tag: str) -> None:
        self.network = network
        self.raddr = raddr
        self.priority = priority
        self.tag = tag
        self.hostname = socket.gethostname() or "localhost"
        self._lock = threading.Lock()
        self._sock: socket.socket | None = None
        self._connect()

    def _connect(self) -> None:
        if self._sock is not None:
            self._sock.close()
        self._sock = _dial_network(self.network, self.raddr) if self.network else _dial_local()

    def _format(self, msg: str) -> bytes:
        newline = "" if msg.endswith("\n") else "\n"
        now = datetime.datetime.now().astimezone()
        pid = os.getpid()
        if self.network:
            line = (f"<{self.priority}>{_rfc3339(now)} {self.hostname} "
                    f"{self.tag}[{pid}]: {msg}{newline}")
        else:
            line = f"<{self.priority}>{_stamp(now)} {self.tag}[{pid}]: {msg}{newline}"
        return line.encode("utf-8", errors="replace")

    def _send(self, payload: bytes) -> None:
        if self._sock is None:
            self._connect()
        assert self._sock is not None
        self._sock.sendall(payload)

    def write(self, data: bytes) -> int:
        payload = self._format(data.decode("utf-8", errors="replace"))
        with self._lock:
            try:
                self._send(payload)
            except OSError:
                self._connect()
                self._send(payload)
        return len(data)

    def close(self) -> None:
        with self._lock:
            if self._sock is not None:
                self._sock.close()
                self._sock = None


class SysLogger:
    """A program logger that forwards its output to syslog.

    Writing still emits the log event when no syslog connection is present,
    then fails.
    """

    def __init__(self, emitter: Any, writer: Any | None = None) -> None:
        self.emitter = emitter
        self.writer = writer

    def write(self, data: bytes) -> int:
        self.emitter.emit_log_event(data.decode("utf-8", errors="replace"))
        if self.writer is None:
            raise OSError("not connect to syslog server")
        return self.writer.write(data)

    def close(self) -> None:
        if self.writer is None:
            raise OSError("not connect to syslog server")
        self.writer.close()

    def set_pid(self, pid: int) -> None:
        """The pid is not needed by syslog output."""

    def read_log(self, offset: int, length: int) -> str:
        raise Fault(FaultCode.NO_FILE, "NO_FILE")

    def read_tail_log(self, offset: int, length: int) -> tuple[str, int, bool]:
        raise Fault(FaultCode.NO_FILE, "NO_FILE")

    def clear_cur_log_file(self) -> None:
        raise OSError("No log")

    def clear_all_log_file(self) -> None:
        raise Fault(FaultCode.NO_FILE, "NO_FILE")


class BackendSysLogWriter:
    """Sends to a remote syslog from a background thread, connecting lazily."""

    def __init__(self, network: str, raddr: str, priority: int, tag: str) -> None:
        self.network = network
        self.raddr = raddr
        self.priority = priority
        self.tag = tag
        self._queue: queue.Queue[bytes | None] = queue.Queue()
        self._closed = False
        self._thread = threading.Thread(target=self._run, name="syslog-writer", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        writer: _SyslogWriter | None = None
        while True:
            data = self._queue.get()
            if data is None:
                if writer is not None:
                    writer.close()
                return
            if writer is None:
                try:
                    writer = _SyslogWriter(self.network, self.raddr, self.priority, self.tag)
                except OSError as exc:
                    log.debug("cannot connect to syslog %s: %s", self.raddr, exc)
                    continue
            try:
                writer.write(data)
            except OSError as exc:
                log.debug("cannot write to syslog %s: %s", self.raddr, exc)

    def write(self, data: bytes) -> int:
        if self._closed:
            raise ValueError("write to closed syslog writer")
        self._queue.put(bytes(data))
        return len(data)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put(None)


def _tag(name: str, props: Mapping[str, str]) -> str:
    return props.get("syslog_tag", name)


def new_sys_logger(name: str, props: Mapping[str, str], emitter: Any) -> SysLogger:
    """Create a logger writing to the local syslog; without one it has no writer."""
    try:
        writer: _SyslogWriter | None = _SyslogWriter(
            "", "", get_syslog_priority(props), _tag(name, props))
    except OSError as exc:
        log.debug("local syslog not available: %s", exc)
        writer = None
    return SysLogger(emitter, writer)


def new_remote_sys_logger(name: str, config: str, props: Mapping[str, str],
                          emitter: Any) -> SysLogger:
    """Create a logger writing to the syslog described by ``[protocol:]host[:port]``.

    An empty or malformed description falls back to the local syslog; when the
    remote cannot be reached now, messages go through a background writer.
    """
    if not config:
        return new_sys_logger(name, props, emitter)
    try:
        protocol, host, port = parse_syslog_config(config)
    except ValueError:
        return new_sys_logger(name, props, emitter)
    priority = get_syslog_priority(props)
    raddr = f"{host}:{port}"
    try:
        writer: Any = _SyslogWriter(protocol, raddr, priority, _tag(name, props))
    except OSError:
        writer = BackendSysLogWriter(protocol, raddr, priority, name)
    return SysLogger(emitter, writer)