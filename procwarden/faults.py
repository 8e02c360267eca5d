"""Fault codes and the exception raised for failed supervisor operations."""

from __future__ import annotations

from enum import IntEnum


class FaultCode(IntEnum):
    """Result codes reported to RPC clients."""

    UNKNOWN_METHOD = 1
    INCORRECT_PARAMETERS = 2
    BAD_ARGUMENTS = 3
    SIGNATURE_UNSUPPORTED = 4
    SHUTDOWN_STATE = 6
    BAD_NAME = 10
    BAD_SIGNAL = 11
    NO_FILE = 20
    NOT_EXECUTABLE = 21
    FAILED = 30
    ABNORMAL_TERMINATION = 40
    SPAWN_ERROR = 50
    ALREADY_STARTED = 60
    NOT_RUNNING = 70
    SUCCESS = 80
    ALREADY_ADDED = 90
    STILL_RUNNING = 91
    CANT_REREAD = 92


class Fault(Exception):
    """An error carrying a fault code and a description."""

    def __init__(self, code: int, string: str) -> None:
        super().__init__(code, string)
        try:
            self.code: int = FaultCode(code)
        except ValueError:
            self.code = code
        self.string = string

    def __str__(self) -> str:
        return f"{int(self.code)}: {self.string}"

    def __repr__(self) -> str:
        return f"Fault(code={int(self.code)}, string={self.string!r})"