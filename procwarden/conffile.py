"""Locating the supervisor configuration file and loading environment files."""

from __future__ import annotations

import logging
import os

from procwarden.config import Ini
from procwarden.expression import ExpressionError, StringExpression

log = logging.getLogger(__name__)

# Searched after the explicitly given configuration file, in this order.
_CANDIDATES = (
    "./supervisord.ini",
    "./etc/supervisord.conf",
    "/etc/supervisord.conf",
    "/etc/supervisor/supervisord.conf",
    "../etc/supervisord.conf",
    "../supervisord.conf",
)

_EXPORT = "export"


def load_env_file(path: str | None) -> dict[str, str]:
    """Put the ``KEY=value`` lines of an environment file into ``os.environ``.

    Comment lines starting with ``#`` are skipped, an ``export`` prefix is
    accepted, and pairs with an empty key or value are ignored. Only lines
    ending with a newline are read. Returns the variables that were set.
    """
    if not path:
        return {}
    try:
        f = open(path, encoding="utf-8")
    except OSError:
        log.error("Fail to open environment file %s", path)
        return {}
    loaded: dict[str, str] = {}
    with f:
        for raw in f:
            if not raw.endswith("\n"):
                break
            line = raw.strip()
            if line.startswith("#"):
                continue
            if (line.startswith(_EXPORT) and len(line) > len(_EXPORT)
                    and line[len(_EXPORT)].isspace()):
                line = line[len(_EXPORT):].strip()
            key, sep, value = line.partition("=")
            if not sep:
                continue
            key, value = key.strip(), value.strip()
            if key and value:
                os.environ[key] = value
                loaded[key] = value
    return loaded


def find_supervisord_conf(configuration: str | None = None) -> str:
    """Return the absolute path of the first configuration file that exists.

    The given ``configuration`` is tried first, then the usual locations.
    Raises FileNotFoundError when none exists.
    """
    for candidate in (configuration, *_CANDIDATES):
        if candidate and os.path.exists(candidate):
            return os.path.abspath(candidate)
    raise FileNotFoundError("fail to find supervisord.conf")


def get_supervisord_log_file(config_file: str) -> str:
    """Return the ``logfile`` of the ``[supervisord]`` section.

    ``%(here)s`` expands to the directory of the configuration file. The
    default is ``supervisord.log`` in the current directory.
    """
    env = StringExpression({"here": os.path.dirname(config_file)})
    ini = Ini()
    try:
        ini.load_file(config_file)
    except OSError as exc:
        log.debug("cannot read %s: %s", config_file, exc)
    try:
        cwd = os.getcwd()
    except OSError:
        cwd = "."
    log_file = ini.get_value("supervisord", "logfile", os.path.join(cwd, "supervisord.log"))
    try:
        return env.eval(log_file)
    except ExpressionError:
        return os.path.join(".", "supervisord.log")