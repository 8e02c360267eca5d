"""Evaluation of python-style "%(name)s" expressions used in configuration values."""

from __future__ import annotations

import os
import re
import socket
from collections.abc import Mapping

_TYPE_CHAR = re.compile(r"[A-Za-z]")
_INTEGER = re.compile(r"[+-]?[0-9]+")


class ExpressionError(ValueError):
    """Raised when an expression cannot be evaluated."""


class StringExpression:
    """Substitutes "%(var)s" and "%(var)d" references with known values.

    Every process environment variable is available as ``ENV_<name>``;
    ``host_node_name`` is set to the host name when it can be found.
    """

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self.env: dict[str, str] = {f"ENV_{k}": v for k, v in os.environ.items()}
        if env:
            self.env.update(env)
        try:
            self.env["host_node_name"] = socket.gethostname()
        except OSError:
            pass

    def add(self, key: str, value: str) -> StringExpression:
        """Add or replace a variable; returns self so calls can be chained."""
        self.env[key] = value
        return self

    def eval(self, s: str) -> str:
        """Return ``s`` with every expression replaced by its value."""
        while True:
            start = s.find("%(")
            if start == -1:
                return s
            end = s.find(")", start + 1)
            if end == -1:
                end = len(s)
            match = _TYPE_CHAR.search(s, end + 1)
            if match is None:
                raise ExpressionError("invalid string expression format")
            typ = match.start()
            var_name = s[start + 2:end]
            try:
                value = self.env[var_name]
            except KeyError:
                raise ExpressionError(
                    f"fail to find the environment variable {var_name}"
                ) from None
            kind = s[typ]
            if kind == "d":
                if not _INTEGER.fullmatch(value):
                    raise ExpressionError(f"can't convert {value} to integer")
                try:
                    replacement = ("%" + s[end + 1:typ + 1]) % int(value)
                except (ValueError, TypeError) as exc:
                    raise ExpressionError(str(exc)) from exc
            elif kind == "s":
                replacement = value
            else:
                raise ExpressionError(f"not implement type:{kind}")
            s = s[:start] + replacement + s[typ + 1:]