"""Run a daemonizing command and forward signals to the daemon named in its pid file."""

from __future__ import annotations

import queue
import re
import signal
import subprocess
import sys
import time
from collections.abc import Sequence

_PID = re.compile(r"\s*([+-]?[0-9]+)")
_CHECK_INTERVAL = 5.0
_EXIT_SIGNALS = {
    getattr(signal, name)
    for name in ("SIGTERM", "SIGINT", "SIGQUIT")
    if hasattr(signal, name)
}
_UNIX_SIGNALS = ("SIGTERM", "SIGHUP", "SIGINT", "SIGUSR1", "SIGUSR2", "SIGQUIT", "SIGCHLD")
_WINDOWS_SIGNALS = ("SIGTERM", "SIGHUP", "SIGINT", "SIGQUIT")

USAGE = (
    "Usage: pidproxy [-exit-daemon-stop] <pidfile> <command> [args...]\n"
    "exit-daemon-stop  exit this pidproxy if the started daemon exits"
)


def read_pid(pidfile: str) -> int:
    """Read the pid at the start of a pid file.

    Raises OSError when the file cannot be read and ValueError when it holds no pid.
    """
    with open(pidfile, encoding="utf-8") as f:
        content = f.read()
    match = _PID.match(content)
    if match is None:
        raise ValueError("Fail to get pid from file")
    return int(match.group(1))


def is_process_alive(pid: int) -> bool:
    """Tell whether signal 0 can be delivered to the process."""
    if pid <= 0:
        return False
    try:
        signal_zero = 0
        _kill(pid, signal_zero)
    except (OSError, OverflowError):
        return False
    return True


def _kill(pid: int, sig: int) -> None:
    import os

    os.kill(pid, sig)


def _signal_name(sig: int) -> str:
    try:
        return signal.Signals(sig).name
    except ValueError:
        return str(sig)


def forward_signal(sig: int, pidfile: str) -> bool:
    """Send a signal to the process named in the pid file; True on success."""
    name = _signal_name(sig)
    try:
        pid = read_pid(pidfile)
    except (OSError, ValueError) as exc:
        print(f"Fail to read pid from file {pidfile} with error:{exc}")
        return False
    print(f"Read pid {pid} from file {pidfile}")
    try:
        _kill(pid, sig)
    except (OSError, OverflowError) as exc:
        print(f"Fail to send signal {name} to process {pid} with error:{exc}")
        return False
    print(f"Succeed to send signal {name} to process {pid}")
    return True


def start_application(command: str, args: Sequence[str]) -> None:
    """Run the command and wait for it; exit with status 1 if it fails."""
    try:
        completed = subprocess.run([command, *args], check=False)
    except OSError as exc:
        print(f"Fail to start program with error {exc}")
        raise SystemExit(1) from exc
    if completed.returncode != 0:
        print(f"Fail to start program with error exit status {completed.returncode}")
        raise SystemExit(1)
    print(f"Succeed to start program:{command}")


def _signals_to_watch() -> list[int]:
    names = _WINDOWS_SIGNALS if sys.platform == "win32" else _UNIX_SIGNALS
    return [getattr(signal, name) for name in names if hasattr(signal, name)]


def _allow_forward(sig: int) -> bool:
    sigchld = getattr(signal, "SIGCHLD", None)
    return sigchld is None or sig != sigchld


def _install_signal_and_forward(pidfile: str, exit_if_daemon_stopped: bool) -> int:
    received: queue.SimpleQueue[int] = queue.SimpleQueue()

    def handler(signum: int, frame: object) -> None:
        received.put(signum)

    for sig in _signals_to_watch():
        try:
            signal.signal(sig, handler)
        except (OSError, ValueError):
            pass

    deadline = time.monotonic() + _CHECK_INTERVAL
    while True:
        try:
            sig = received.get(timeout=max(0.0, deadline - time.monotonic()))
        except queue.Empty:
            deadline = time.monotonic() + _CHECK_INTERVAL
            try:
                pid = read_pid(pidfile)
            except (OSError, ValueError):
                continue
            if not is_process_alive(pid):
                print(f"Process {pid} is not alive")
                if exit_if_daemon_stopped:
                    return 1
            continue
        print(f"Get a signal {_signal_name(sig)}")
        if _allow_forward(sig):
            forward_signal(sig, pidfile)
        if sig in _EXIT_SIGNALS:
            return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Start the command, then forward signals until told to stop."""
    args = list(sys.argv[1:] if argv is None else argv)
    exit_if_daemon_stopped = False
    if args and args[0] == "-exit-daemon-stop":
        exit_if_daemon_stopped = True
        args = args[1:]
    if len(args) < 2:
        print(USAGE)
        return 0
    pidfile, command = args[0], args[1]
    start_application(command, args[2:])
    return _install_signal_and_forward(pidfile, exit_if_daemon_stopped)


if __name__ == "__main__":
    sys.exit(main())