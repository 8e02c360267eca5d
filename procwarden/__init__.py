"""Configuration, events, syslog output, readiness checks and a pid proxy for supervising processes."""

__version__ = "0.1.0"

__all__ = [
    "conffile",
    "config",
    "content_checker",
    "events",
    "expression",
    "faults",
    "listener",
    "pidproxy",
    "process_group",
    "process_sort",
    "syslog",
]