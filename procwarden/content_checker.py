"""Checks that decide whether a started program is ready."""

from __future__ import annotations

import logging
import queue
import socket
import subprocess
import threading
import time
import urllib.error
import urllib.request
from collections.abc import Sequence

log = logging.getLogger(__name__)

_RETRY_DELAY = 0.1


class BaseChecker:
    """Succeeds once all ``includes`` have appeared in the written data.

    The check gives up ``timeout`` seconds after the checker was created.
    """

    def __init__(self, includes: Sequence[str], timeout: float) -> None:
        self.data = ""
        self.includes = list(includes)
        self.deadline = time.monotonic() + timeout
        self._incoming: queue.Queue[str] = queue.Queue()

    def write(self, data: bytes) -> int:
        """Feed data to the checker."""
        self._incoming.put(bytes(data).decode("utf-8", errors="replace"))
        return len(data)

    def _is_ready(self) -> bool:
        return all(include in self.data for include in self.includes)

    def _timed_out(self) -> bool:
        return time.monotonic() > self.deadline

    def check(self) -> bool:
        """Wait for the expected content; False on timeout."""
        while True:
            remaining = self.deadline - time.monotonic()
            if remaining < 0:
                return False
            try:
                chunk = self._incoming.get(timeout=remaining)
            except queue.Empty:
                return False
            self.data += chunk
            if self._is_ready():
                return True


class ScriptChecker:
    """Succeeds when the given command exits with status 0."""

    def __init__(self, args: Sequence[str]) -> None:
        self.args = list(args)

    def check(self) -> bool:
        try:
            return subprocess.run(self.args, check=False).returncode == 0
        except OSError:
            return False


class TCPChecker:
    """Reads from a TCP connection until the expected content arrives."""

    def __init__(self, host: str, port: int, includes: Sequence[str], timeout: float) -> None:
        self.host = host
        self.port = port
        self._base = BaseChecker(includes, timeout)
        self._conn: socket.socket | None = None
        self._lock = threading.Lock()
        threading.Thread(target=self._run, name="tcp-checker", daemon=True).start()

    def _connect(self) -> socket.socket | None:
        while True:
            try:
                return socket.create_connection((self.host, self.port), timeout=1.0)
            except OSError:
                if self._base._timed_out():
                    return None
                time.sleep(_RETRY_DELAY)

    def _run(self) -> None:
        conn = self._connect()
        if conn is None:
            return
        conn.settimeout(None)
        with self._lock:
            self._conn = conn
        while True:
            try:
                data = conn.recv(1024)
            except OSError:
                return
            if not data:
                return
            self._base.write(data)

    def check(self) -> bool:
        result = self._base.check()
        with self._lock:
            conn = self._conn
        if conn is not None:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            conn.close()
        return result


class HTTPChecker:
    """Succeeds when a GET of the URL answers with a 2xx status."""

    def __init__(self, url: str, timeout: float) -> None:
        self.url = url
        self.deadline = time.monotonic() + timeout

    def check(self) -> bool:
        """Retry until the server answers; False on a non-2xx status or timeout."""
        while True:
            remaining = self.deadline - time.monotonic()
            if remaining <= 0:
                return False
            try:
                with urllib.request.urlopen(self.url, timeout=remaining) as resp:
                    return 200 <= resp.status < 300
            except urllib.error.HTTPError as exc:
                return 200 <= exc.code < 300
            except (urllib.error.URLError, OSError) as exc:
                log.debug("http check of %s failed: %s", self.url, exc)
                time.sleep(min(_RETRY_DELAY, max(remaining, 0)))