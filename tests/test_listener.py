import io
import os
import queue

import pytest

from procwarden.events import (
    RemoteCommunicationEvent,
    TickEvent,
    emit_event,
    event_listener_manager,
)
from procwarden.listener import EventListener, ProcCommEventCapture


def _read_event(reader):
    header = reader.readline()
    length = int(header.rstrip(b"\n").split(b":")[-1])
    body = reader.read(length)
    return header.decode(), body.decode()


@pytest.fixture
def pipes():
    out_r, out_w = os.pipe()
    in_r, in_w = os.pipe()
    from_listener = open(out_r, "rb")
    listener_stdout = open(out_w, "wb", buffering=0)
    listener_stdin = open(in_r, "rb")
    to_listener = open(in_w, "wb", buffering=0)
    yield from_listener, listener_stdout, listener_stdin, to_listener
    for f in (to_listener, listener_stdin, listener_stdout, from_listener):
        try:
            f.close()
        except OSError:
            pass


class _ChunkReader:
    def __init__(self):
        self._chunks = queue.Queue()

    def feed(self, data):
        self._chunks.put(data)

    def close(self):
        self._chunks.put(b"")

    def read1(self, n):
        return self._chunks.get()


class _CollectingListener:
    pool = "collector"

    def __init__(self):
        self.events = queue.Queue()

    def handle_event(self, event):
        self.events.put(event)


def test_encode_event_header_and_body():
    listener = EventListener("pool-encode", "supervisor", io.BytesIO(b""), io.BytesIO(), 10)
    event = TickEvent("TICK_5", 123)
    encoded = listener.encode_event(event).decode()
    assert encoded == (
        f"ver:3.0 server:supervisor serial:{event.serial} pool:pool-encode "
        f"poolserial:1 eventname:TICK_5 len:8\nwhen:123"
    )
    second = listener.encode_event(event).decode()
    assert "poolserial:2 " in second


def test_event_listener_resends_after_fail(pipes):
    from_listener, listener_stdout, listener_stdin, to_listener = pipes
    listener = EventListener("pool-1", "supervisor", listener_stdin, listener_stdout, 10)
    event_listener_manager.register("pool-1", ["REMOTE_COMMUNICATION"], listener)
    try:
        emit_event(RemoteCommunicationEvent("type-1", "this is a remote communication event test"))
        to_listener.write(b"READY\n")
        header, body = _read_event(from_listener)
        assert body == "type:type-1\nthis is a remote communication event test"
        assert "eventname:REMOTE_COMMUNICATION" in header
        assert "pool:pool-1" in header

        to_listener.write(b"RESULT 4\nFAIL")
        to_listener.write(b"READY\n")
        header2, body = _read_event(from_listener)
        assert body == "type:type-1\nthis is a remote communication event test"
        assert header2 == header

        to_listener.write(b"RESULT 2\nOK")
        emit_event(RemoteCommunicationEvent("type-2", "second"))
        to_listener.write(b"READY\n")
        _, body = _read_event(from_listener)
        assert body == "type:type-2\nsecond"
    finally:
        removed = event_listener_manager.unregister("pool-1")
    assert removed is listener


def test_event_listener_unknown_result_resends_immediately(pipes):
    from_listener, listener_stdout, listener_stdin, to_listener = pipes
    listener = EventListener("pool-unknown", "supervisor", listener_stdin, listener_stdout, 10)
    event_listener_manager.register("pool-unknown", ["TICK_3600"], listener)
    try:
        listener.handle_event(RemoteCommunicationEvent("t", "data"))
        to_listener.write(b"READY\n")
        _, body = _read_event(from_listener)
        assert body == "type:t\ndata"
        to_listener.write(b"RESULT 3\nBAD")
        _, body = _read_event(from_listener)
        assert body == "type:t\ndata"
    finally:
        removed = event_listener_manager.unregister("pool-unknown")
    assert removed is listener


def test_proc_comm_event_capture_with_listener(pipes):
    from_listener, listener_stdout, listener_stdin, to_listener = pipes
    reader = _ChunkReader()
    capture = ProcCommEventCapture(reader, 10240, "PROCESS_COMMUNICATION_STDOUT",
                                   "proc-1", "group-1")
    capture.set_pid(99)
    listener = EventListener("pool-capture", "supervisor", listener_stdin, listener_stdout, 10)
    event_listener_manager.register("pool-capture", ["PROCESS_COMMUNICATION"], listener)
    try:
        to_listener.write(b"READY\n")
        reader.feed(
            b"this is unuseful information, seems it is very \n"
            b"\tlong and not useful, just used for testing purpose.\n"
            b"\tlet's input more unuseful information, ok.....\n"
            b"\thaha...<!--XSUPERVISOR:BEGIN-->this is a proc event test"
            b"<!--XSUPERVISOR:END--> also\n\tadd some other unuseful"
        )
        _, body = _read_event(from_listener)
        assert body == "processname:proc-1 groupname:group-1 pid:99\nthis is a proc event test"
    finally:
        removed = event_listener_manager.unregister("pool-capture")
        reader.close()
    assert removed is listener


@pytest.fixture
def collector():
    listener = _CollectingListener()
    event_listener_manager.register("collector", ["PROCESS_COMMUNICATION"], listener)
    yield listener
    event_listener_manager.unregister("collector")


def test_capture_split_markers(collector):
    reader = _ChunkReader()
    capture = ProcCommEventCapture(reader, 10240, "PROCESS_COMMUNICATION_STDERR",
                                   "proc-2", "group-2")
    capture.set_pid(7)
    for chunk in (b"noise noise noise noise noise <!--XSUPER", b"VISOR:BEGIN-->hel",
                  b"lo<!--XSUPERVISOR:E", b"ND--> tail"):
        reader.feed(chunk)
    event = collector.events.get(timeout=5)
    reader.close()
    assert event.event_type == "PROCESS_COMMUNICATION_STDERR"
    assert event.body() == "processname:proc-2 groupname:group-2 pid:7\nhello"


def test_capture_overflow_discards_content(collector):
    reader = _ChunkReader()
    ProcCommEventCapture(reader, 30, "PROCESS_COMMUNICATION_STDOUT", "proc-3", "group-3")
    reader.feed(b"<!--XSUPERVISOR:BEGIN-->" + b"x" * 100)
    reader.feed(b"<!--XSUPERVISOR:BEGIN-->ok<!--XSUPERVISOR:END-->")
    event = collector.events.get(timeout=5)
    reader.close()
    assert event.data == "ok"
    assert event.pid == -1


def test_capture_multiple_events_in_one_chunk(collector):
    reader = _ChunkReader()
    ProcCommEventCapture(reader, 10240, "PROCESS_COMMUNICATION_STDOUT", "proc-4", "group-4")
    reader.feed(b"<!--XSUPERVISOR:BEGIN-->one<!--XSUPERVISOR:END-->"
                b"between<!--XSUPERVISOR:BEGIN-->two<!--XSUPERVISOR:END-->")
    first = collector.events.get(timeout=5)
    second = collector.events.get(timeout=5)
    reader.close()
    assert [first.data, second.data] == ["one", "two"]