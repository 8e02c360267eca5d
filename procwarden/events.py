"""Supervisor events and the registry that delivers them to event listeners."""

from __future__ import annotations

import itertools
import logging
import threading
import time
from collections.abc import Iterable
from typing import Any

log = logging.getLogger(__name__)

EVENT_SYS_VERSION = "3.0"
PROC_COMMON_BEGIN_STR = "<!--XSUPERVISOR:BEGIN-->"
PROC_COMMON_END_STR = "<!--XSUPERVISOR:END-->"

# Every concrete event type and the abstract types it belongs to.
EVENT_TYPE_DERIVES: dict[str, tuple[str, ...]] = {
    "PROCESS_STATE_STARTING": ("EVENT", "PROCESS_STATE"),
    "PROCESS_STATE_RUNNING": ("EVENT", "PROCESS_STATE"),
    "PROCESS_STATE_BACKOFF": ("EVENT", "PROCESS_STATE"),
    "PROCESS_STATE_STOPPING": ("EVENT", "PROCESS_STATE"),
    "PROCESS_STATE_EXITED": ("EVENT", "PROCESS_STATE"),
    "PROCESS_STATE_STOPPED": ("EVENT", "PROCESS_STATE"),
    "PROCESS_STATE_FATAL": ("EVENT", "PROCESS_STATE"),
    "PROCESS_STATE_UNKNOWN": ("EVENT", "PROCESS_STATE"),
    "REMOTE_COMMUNICATION": ("EVENT",),
    "PROCESS_LOG_STDOUT": ("EVENT", "PROCESS_LOG"),
    "PROCESS_LOG_STDERR": ("EVENT", "PROCESS_LOG"),
    "PROCESS_COMMUNICATION_STDOUT": ("EVENT", "PROCESS_COMMUNICATION"),
    "PROCESS_COMMUNICATION_STDERR": ("EVENT", "PROCESS_COMMUNICATION"),
    "SUPERVISOR_STATE_CHANGE_RUNNING": ("EVENT", "SUPERVISOR_STATE_CHANGE"),
    "SUPERVISOR_STATE_CHANGE_STOPPING": ("EVENT", "SUPERVISOR_STATE_CHANGE"),
    "TICK_5": ("EVENT", "TICK"),
    "TICK_60": ("EVENT", "TICK"),
    "TICK_3600": ("EVENT", "TICK"),
    "PROCESS_GROUP_ADDED": ("EVENT", "PROCESS_GROUP"),
    "PROCESS_GROUP_REMOVED": ("EVENT", "PROCESS_GROUP"),
}

TICK_PERIODS: dict[str, int] = {"TICK_5": 5, "TICK_60": 60, "TICK_3600": 3600}

_serials = itertools.count(1)
_serial_lock = threading.Lock()


def next_event_serial() -> int:
    """Return the next global event serial number, starting at 1."""
    with _serial_lock:
        return next(_serials)


class Event:
    """An event with a type and a serial number; events without payload have an empty body."""

    def __init__(self, event_type: str) -> None:
        self.event_type = event_type
        self.serial = next_event_serial()

    def body(self) -> str:
        return ""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(type={self.event_type!r}, serial={self.serial})"


class RemoteCommunicationEvent(Event):
    def __init__(self, typ: str, data: str) -> None:
        super().__init__("REMOTE_COMMUNICATION")
        self.typ = typ
        self.data = data

    def body(self) -> str:
        return f"type:{self.typ}\n{self.data}"


class ProcCommEvent(Event):
    """Data a process sent between the communication markers on its output."""

    def __init__(self, event_type: str, process_name: str, group_name: str,
                 pid: int, data: str) -> None:
        super().__init__(event_type)
        self.process_name = process_name
        self.group_name = group_name
        self.pid = pid
        self.data = data

    def body(self) -> str:
        return (f"processname:{self.process_name} groupname:{self.group_name} "
                f"pid:{self.pid}\n{self.data}")


class TickEvent(Event):
    def __init__(self, tick_type: str, when: int) -> None:
        super().__init__(tick_type)
        self.when = when

    def body(self) -> str:
        return f"when:{self.when}"


class ProcessStateEvent(Event):
    """A change of a process's state; optional fields are left out when unset."""

    def __init__(self, event_type: str, process_name: str, group_name: str,
                 from_state: str, tries: int = -1, expected: int = -1,
                 pid: int = 0) -> None:
        super().__init__(event_type)
        self.process_name = process_name
        self.group_name = group_name
        self.from_state = from_state
        self.tries = tries
        self.expected = expected
        self.pid = pid

    def body(self) -> str:
        parts = [f"processname:{self.process_name} groupname:{self.group_name} "
                 f"from_state:{self.from_state}"]
        if self.tries >= 0:
            parts.append(f"tries:{self.tries}")
        if self.expected != -1:
            parts.append(f"expected:{self.expected}")
        if self.pid != 0:
            parts.append(f"pid:{self.pid}")
        return " ".join(parts)


class SupervisorStateChangeEvent(Event):
    def body(self) -> str:
        return ""


class ProcessLogEvent(Event):
    def __init__(self, event_type: str, process_name: str, group_name: str,
                 pid: int, data: str) -> None:
        super().__init__(event_type)
        self.process_name = process_name
        self.group_name = group_name
        self.pid = pid
        self.data = data

    def body(self) -> str:
        return (f"processname:{self.process_name} groupname:{self.group_name} "
                f"pid:{self.pid}\n{self.data}")


class ProcessGroupEvent(Event):
    def __init__(self, event_type: str, group_name: str) -> None:
        super().__init__(event_type)
        self.group_name = group_name

    def body(self) -> str:
        return f"groupname:{self.group_name}"


def create_process_starting_event(process: str, group: str, from_state: str,
                                  tries: int) -> ProcessStateEvent:
    return ProcessStateEvent("PROCESS_STATE_STARTING", process, group, from_state, tries=tries)


def create_process_running_event(process: str, group: str, from_state: str,
                                 pid: int) -> ProcessStateEvent:
    return ProcessStateEvent("PROCESS_STATE_RUNNING", process, group, from_state, pid=pid)


def create_process_backoff_event(process: str, group: str, from_state: str,
                                 tries: int) -> ProcessStateEvent:
    return ProcessStateEvent("PROCESS_STATE_BACKOFF", process, group, from_state, tries=tries)


def create_process_stopping_event(process: str, group: str, from_state: str,
                                  pid: int) -> ProcessStateEvent:
    return ProcessStateEvent("PROCESS_STATE_STOPPING", process, group, from_state, pid=pid)


def create_process_exited_event(process: str, group: str, from_state: str,
                                expected: int, pid: int) -> ProcessStateEvent:
    return ProcessStateEvent("PROCESS_STATE_EXITED", process, group, from_state,
                             expected=expected, pid=pid)


def create_process_stopped_event(process: str, group: str, from_state: str,
                                 pid: int) -> ProcessStateEvent:
    return ProcessStateEvent("PROCESS_STATE_STOPPED", process, group, from_state, pid=pid)


def create_process_fatal_event(process: str, group: str, from_state: str) -> ProcessStateEvent:
    return ProcessStateEvent("PROCESS_STATE_FATAL", process, group, from_state)


def create_process_unknown_event(process: str, group: str, from_state: str) -> ProcessStateEvent:
    return ProcessStateEvent("PROCESS_STATE_UNKNOWN", process, group, from_state)


def create_supervisor_state_change_running() -> SupervisorStateChangeEvent:
    return SupervisorStateChangeEvent("SUPERVISOR_STATE_CHANGE_RUNNING")


def create_supervisor_state_change_stopping() -> SupervisorStateChangeEvent:
    return SupervisorStateChangeEvent("SUPERVISOR_STATE_CHANGE_STOPPING")


def create_process_log_stdout_event(process_name: str, group_name: str, pid: int,
                                    data: str) -> ProcessLogEvent:
    return ProcessLogEvent("PROCESS_LOG_STDOUT", process_name, group_name, pid, data)


def create_process_log_stderr_event(process_name: str, group_name: str, pid: int,
                                    data: str) -> ProcessLogEvent:
    return ProcessLogEvent("PROCESS_LOG_STDERR", process_name, group_name, pid, data)


def create_process_group_added_event(group_name: str) -> ProcessGroupEvent:
    return ProcessGroupEvent("PROCESS_GROUP_ADDED", group_name)


def create_process_group_removed_event(group_name: str) -> ProcessGroupEvent:
    return ProcessGroupEvent("PROCESS_GROUP_REMOVED", group_name)


class EventPoolSerial:
    """Per-pool serial numbers, each pool counting from 1."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._serials: dict[str, int] = {}

    def next_serial(self, pool: str) -> int:
        with self._lock:
            serial = self._serials.get(pool, 1)
            self._serials[pool] = serial + 1
            return serial


def _expand_event_types(events: Iterable[str]) -> list[str]:
    wanted = set(events)
    return [
        event_type
        for event_type, parents in EVENT_TYPE_DERIVES.items()
        if event_type in wanted or wanted.intersection(parents)
    ]


class EventListenerManager:
    """Maps event types to the listeners subscribed to them.

    A listener is any object with a ``handle_event(event)`` method.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._named: dict[str, Any] = {}
        self._by_event: dict[str, dict[Any, None]] = {}

    def register(self, name: str, events: Iterable[str], listener: Any) -> None:
        """Subscribe a listener to concrete or abstract event types."""
        with self._lock:
            self._named[name] = listener
            for event_type in _expand_event_types(events):
                log.info("register event listener %s for event %s", name, event_type)
                self._by_event.setdefault(event_type, {})[listener] = None

    def unregister(self, name: str) -> Any | None:
        """Remove a listener by name and return it, or None if unknown."""
        with self._lock:
            listener = self._named.pop(name, None)
            if listener is None:
                return None
            for event_type, listeners in self._by_event.items():
                if listeners.pop(listener, False) is None:
                    log.info("unregister event listener %s for event %s", name, event_type)
            return listener

    def emit(self, event: Event) -> None:
        """Hand the event to every listener subscribed to its type."""
        with self._lock:
            listeners = list(self._by_event.get(event.event_type, ()))
        if not listeners:
            return
        log.info("process event %s", event.event_type)
        for listener in listeners:
            log.info("event listener %s receives event %s",
                     getattr(listener, "pool", "?"), event.event_type)
            listener.handle_event(event)


event_listener_manager = EventListenerManager()
event_pool_serial = EventPoolSerial()


def emit_event(event: Event) -> None:
    """Emit an event through the default manager."""
    event_listener_manager.emit(event)


def register_event_listener(name: str, events: Iterable[str], listener: Any) -> None:
    """Register a listener with the default manager."""
    event_listener_manager.register(name, events, listener)


def unregister_event_listener(name: str) -> Any | None:
    """Unregister a listener from the default manager."""
    return event_listener_manager.unregister(name)


def start_tick_timer() -> threading.Event:
    """Start emitting TICK events in the background; set the returned event to stop."""
    stop = threading.Event()

    def run() -> None:
        last_slice: dict[str, int] = {}
        while not stop.wait(1.0):
            now = int(time.time())
            for tick_type, period in TICK_PERIODS.items():
                current = now // period
                previous = last_slice.get(tick_type)
                last_slice[tick_type] = current
                if previous is not None and previous != current:
                    emit_event(TickEvent(tick_type, now))

    threading.Thread(target=run, name="tick-timer", daemon=True).start()
    return stop