"""Reading of the supervisor configuration file into sections and entries."""

from __future__ import annotations

import logging
import os
import re
import socket
from collections.abc import Callable, Iterator
from pathlib import Path

from procwarden.expression import ExpressionError, StringExpression
from procwarden.process_group import ProcessGroup
from procwarden.process_sort import sort_program

log = logging.getLogger(__name__)

_INTEGER = re.compile(r"[+-]?[0-9]+")
_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})
_BYTE_UNITS = {"KB": 1024, "MB": 1024 * 1024, "GB": 1024 * 1024 * 1024}

_PROGRAM = "program:"
_EVENT_LISTENER = "eventlistener:"
_GROUP = "group:"


def _to_int(s: str, factor: int, default: int) -> int:
    if _INTEGER.fullmatch(s):
        return int(s) * factor
    return default


class _Section:
    """One ``[name]`` block of an ini file, keys kept in file order."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.values: dict[str, str] = {}

    def has_key(self, key: str) -> bool:
        return key in self.values

    def add(self, key: str, value: str) -> None:
        self.values[key] = value

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    def get_int(self, key: str) -> int | None:
        value = self.values.get(key)
        if value is None:
            return None
        value = value.strip()
        return int(value) if _INTEGER.fullmatch(value) else None

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(list(self.values.items()))


class Ini:
    """A collection of ini sections; loading more files merges into it."""

    def __init__(self) -> None:
        self.sections: dict[str, _Section] = {}

    def load_file(self, path: str | os.PathLike[str]) -> None:
        """Parse a file and merge its sections; raises OSError if unreadable."""
        self._load_text(Path(path).read_text(encoding="utf-8", errors="replace"))

    def get_value(self, section: str, key: str, default: str | None = None) -> str | None:
        """Return a key's value, or ``default`` when section or key is missing."""
        found = self.sections.get(section)
        if found is None:
            return default
        value = found.get(key)
        return default if value is None else value

    def _load_text(self, text: str) -> None:
        current: _Section | None = None
        last_key: str | None = None
        for raw in text.splitlines():
            stripped = raw.strip()
            if not stripped or stripped[0] in "#;":
                continue
            if raw[0] in " \t" and current is not None and last_key is not None:
                current.values[last_key] += "\n" + stripped
                continue
            if stripped.startswith("[") and "]" in stripped:
                name = stripped[1:stripped.index("]")].strip()
                current = self.sections.setdefault(name, _Section(name))
                last_key = None
                continue
            if current is None:
                log.debug("ignoring line outside of any section: %s", stripped)
                continue
            positions = [p for p in (stripped.find("="), stripped.find(":")) if p != -1]
            if positions:
                pos = min(positions)
                key, value = stripped[:pos].strip(), stripped[pos + 1:].strip()
            else:
                key, value = stripped, ""
            current.add(key, value)
            last_key = key


class Entry:
    """One configuration section together with its key/value pairs."""

    def __init__(self, config_dir: str) -> None:
        self.config_dir = config_dir
        self.group = ""
        self.name = ""
        self.key_values: dict[str, str] = {}

    def _suffix(self, prefix: str) -> str:
        return self.name[len(prefix):] if self.name.startswith(prefix) else ""

    def is_program(self) -> bool:
        return self.name.startswith(_PROGRAM)

    def get_program_name(self) -> str:
        return self._suffix(_PROGRAM)

    def is_event_listener(self) -> bool:
        return self.name.startswith(_EVENT_LISTENER)

    def get_event_listener_name(self) -> str:
        return self._suffix(_EVENT_LISTENER)

    def is_group(self) -> bool:
        return self.name.startswith(_GROUP)

    def get_group_name(self) -> str:
        return self._suffix(_GROUP)

    def get_programs(self) -> list[str]:
        """Return the programs listed by a group section."""
        if not self.is_group():
            return []
        return [p.strip() for p in self.get_string_array("programs", ",")]

    def get_bool(self, key: str, default: bool) -> bool:
        value = self.key_values.get(key)
        if value in _TRUE_WORDS:
            return True
        if value in _FALSE_WORDS:
            return False
        return default

    def has_parameter(self, key: str) -> bool:
        return key in self.key_values

    def get_int(self, key: str, default: int) -> int:
        value = self.key_values.get(key)
        if value is None:
            return default
        return _to_int(value, 1, default)

    def _program_expression(self) -> StringExpression:
        return StringExpression({
            "program_name": self.get_program_name(),
            "process_num": self.get_string("process_num", "0"),
            "group_name": self.get_group_name(),
            "here": self.config_dir,
        })

    def _evaluate_pairs(self, pairs: dict[str, str]) -> list[str]:
        expression = self._program_expression()
        result = []
        for k, v in pairs.items():
            try:
                result.append(expression.eval(f"{k}={v}"))
            except ExpressionError:
                continue
        return result

    def get_env(self, key: str) -> list[str]:
        """Return ``KEY=value`` strings from a value like ``A="x",B=y``."""
        value = self.key_values.get(key)
        if value is None:
            return []
        return self._evaluate_pairs(parse_env(value))

    def get_env_from_files(self, key: str) -> list[str]:
        """Return ``KEY=value`` strings read from a comma separated list of env files."""
        value = self.key_values.get(key)
        if value is None:
            return []
        return self._evaluate_pairs(parse_env_files(value))

    def get_string(self, key: str, default: str) -> str:
        value = self.key_values.get(key)
        if value is None:
            return default
        try:
            return StringExpression({"here": self.config_dir}).eval(value)
        except ExpressionError as exc:
            log.warning(
                "Unable to parse expression: program=%s key=%s error=%s",
                self.get_program_name(), key, exc,
            )
            return default

    def get_string_expression(self, key: str, default: str) -> str:
        """Return the value with program variables substituted.

        A missing or empty value gives an empty string; a value that cannot
        be evaluated is returned unchanged.
        """
        value = self.key_values.get(key)
        if not value:
            return ""
        try:
            host_name = socket.gethostname()
        except OSError:
            host_name = "Unknown"
        expression = self._program_expression().add("host_node_name", host_name)
        try:
            return expression.eval(value)
        except ExpressionError as exc:
            log.warning(
                "unable to parse expression: program=%s key=%s error=%s",
                self.get_program_name(), key, exc,
            )
            return value

    def get_string_array(self, key: str, sep: str) -> list[str]:
        value = self.key_values.get(key)
        if value is None:
            return []
        return value.split(sep)

    def get_bytes(self, key: str, default: int) -> int:
        """Return a size such as ``1024``, ``2KB``, ``3MB`` or ``4GB`` in bytes."""
        value = self.key_values.get(key)
        if value is None:
            return default
        if len(value) > 2 and value[-2:] in _BYTE_UNITS:
            return _to_int(value[:-2], _BYTE_UNITS[value[-2:]], default)
        return _to_int(value, 1, default)

    def _parse(self, section: _Section) -> None:
        self.name = section.name
        for key, value in section:
            self.key_values[key] = value.strip()

    def __str__(self) -> str:
        return "".join(f"{k}={v}\n" for k, v in self.key_values.items())


class Config:
    """The loaded supervisor configuration."""

    def __init__(self, config_file: str) -> None:
        self.config_file = config_file
        self.entries: dict[str, Entry] = {}
        self.program_group = ProcessGroup()

    def _create_entry(self, name: str) -> Entry:
        entry = self.entries.get(name)
        if entry is None:
            entry = Entry(self.get_config_file_dir())
            self.entries[name] = entry
        return entry

    def load(self) -> list[str]:
        """Load the file and its includes; return the names of loaded programs."""
        ini = Ini()
        self.program_group = ProcessGroup()
        log.info("load configuration from file %s", self.config_file)
        self._load_into(ini, self.config_file)
        for path in self._get_include_files(ini):
            log.info("load configuration from file %s", path)
            self._load_into(ini, path)
        return self._parse(ini)

    @staticmethod
    def _load_into(ini: Ini, path: str) -> None:
        try:
            ini.load_file(path)
        except OSError as exc:
            log.warning("fail to read configuration file %s: %s", path, exc)

    def _get_include_files(self, ini: Ini) -> list[str]:
        files = ini.get_value("include", "files")
        if files is None:
            return []
        base_dir = self.get_config_file_dir()
        expression = StringExpression({"here": base_dir})
        result = []
        for raw in files.split():
            try:
                path = expression.eval(raw)
            except ExpressionError:
                continue
            if os.path.isabs(path):
                directory = os.path.dirname(path)
            else:
                directory = os.path.join(base_dir, os.path.dirname(path))
            try:
                names = sorted(os.listdir(directory))
            except OSError:
                continue
            pattern = re.compile(to_regexp(os.path.basename(path)))
            result.extend(
                os.path.join(directory, name) for name in names if pattern.search(name)
            )
        return result

    def _parse(self, ini: Ini) -> list[str]:
        self._set_program_default_params(ini)
        self._parse_group(ini)
        loaded = self._parse_program(ini)
        for section in ini.sections.values():
            if not section.name.startswith((_GROUP, _PROGRAM, _EVENT_LISTENER)):
                self._create_entry(section.name)._parse(section)
        return loaded

    @staticmethod
    def _set_program_default_params(ini: Ini) -> None:
        defaults = ini.sections.get("program-default")
        if defaults is None:
            return
        for section in ini.sections.values():
            if not section.name.startswith(_PROGRAM):
                continue
            for key, value in defaults:
                if not section.has_key(key):
                    section.add(key, value)

    def _parse_group(self, ini: Ini) -> None:
        for section in ini.sections.values():
            if section.name.startswith(_GROUP):
                entry = self._create_entry(section.name)
                entry._parse(section)
                group_name = entry.get_group_name()
                for program in entry.get_programs():
                    self.program_group.add(group_name, program)

    def _parse_program(self, ini: Ini) -> list[str]:
        loaded: list[str] = []
        config_dir = self.get_config_file_dir()
        for section in list(ini.sections.values()):
            if section.name.startswith(_PROGRAM):
                prefix = _PROGRAM
            elif section.name.startswith(_EVENT_LISTENER):
                prefix = _EVENT_LISTENER
            else:
                continue
            program_name = section.name[len(prefix):]
            num_procs = section.get_int("numprocs")
            if num_procs is None:
                num_procs = 1
            proc_name_template = section.get("process_name")
            if num_procs > 1 and (
                proc_name_template is None or "%(process_num)" not in proc_name_template
            ):
                log.error(
                    "no process_num in process name: numprocs=%d process_name=%s",
                    num_procs, proc_name_template,
                )
            original_proc_name = (
                program_name if proc_name_template is None else proc_name_template
            )
            original_cmd = section.get("command") or ""
            for i in range(1, num_procs + 1):
                expression = StringExpression({
                    "program_name": program_name,
                    "process_num": str(i),
                    "group_name": self.program_group.get_group(program_name, program_name),
                    "here": config_dir,
                })
                env_value = section.get("environment")
                if env_value is not None:
                    for k, v in parse_env(env_value).items():
                        expression.add(f"ENV_{k}", v)
                try:
                    cmd = expression.eval(original_cmd)
                    proc_name = expression.eval(original_proc_name)
                except ExpressionError as exc:
                    log.error("get envs failed: program=%s error=%s", program_name, exc)
                    continue
                section.add("command", cmd)
                section.add("process_name", proc_name)
                section.add("numprocs_start", str(i - 1))
                section.add("process_num", str(i))
                entry = self._create_entry(proc_name)
                entry._parse(section)
                entry.name = prefix + proc_name
                entry.group = self.program_group.get_group(program_name, program_name)
                loaded.append(proc_name)
        return loaded

    def get_config_file_dir(self) -> str:
        return os.path.dirname(self.config_file)

    def get_unix_http_server(self) -> Entry | None:
        return self.entries.get("unix_http_server")

    def get_supervisord(self) -> Entry | None:
        return self.entries.get("supervisord")

    def get_inet_http_server(self) -> Entry | None:
        return self.entries.get("inet_http_server")

    def get_supervisorctl(self) -> Entry | None:
        return self.entries.get("supervisorctl")

    def get_entries(self, filter_func: Callable[[Entry], bool]) -> list[Entry]:
        return [entry for entry in self.entries.values() if filter_func(entry)]

    def get_groups(self) -> list[Entry]:
        return self.get_entries(Entry.is_group)

    def get_programs(self) -> list[Entry]:
        """Return program entries in start order."""
        return sort_program(self.get_entries(Entry.is_program))

    def get_event_listeners(self) -> list[Entry]:
        return self.get_entries(Entry.is_event_listener)

    def get_program_names(self) -> list[str]:
        return [entry.get_program_name() for entry in self.get_programs()]

    def get_program(self, name: str) -> Entry | None:
        for entry in self.entries.values():
            if entry.is_program() and entry.get_program_name() == name:
                return entry
        return None

    def remove_program(self, program_name: str) -> None:
        self.entries.pop(program_name, None)
        self.program_group.remove(program_name)

    def __str__(self) -> str:
        return "".join(f"[{entry.name}]\n{entry}\n" for entry in self.entries.values())


def to_regexp(pattern: str) -> str:
    """Convert a file glob with ``*`` and ``?`` into a regular expression."""
    parts = (part.replace("*", ".*").replace("?", ".") for part in pattern.split("."))
    return "\\.".join(parts)


def parse_env(s: str) -> dict[str, str]:
    """Parse ``A="value 1",B=value2`` into a mapping."""
    result: dict[str, str] = {}
    if not s:
        return result
    n = len(s)
    pos = 0
    while True:
        eq = s.find("=", pos)
        if eq == -1:
            eq = n
        key = s[pos:eq].strip()
        start = eq + 1
        if start < n and s[start] == '"':
            close = s.find('"', start + 1)
            if close == -1:
                break
            result[key] = s[start + 1:close].strip()
            if close + 1 < n and s[close + 1] == ",":
                pos = close + 2
            else:
                break
        else:
            comma = s.find(",", start)
            if comma == -1:
                result[key] = s[start:].strip()
                break
            result[key] = s[start:comma].strip()
            pos = comma + 1
    return result


_DOUBLE_QUOTE_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", '"': '"', "\\": "\\", "$": "$"}
_ENV_KEY = re.compile(r"[A-Za-z_][A-Za-z0-9_.]*")


def _parse_double_quoted(text: str, lineno: int) -> tuple[str, str]:
    out = []
    i = 1
    while i < len(text):
        ch = text[i]
        if ch == "\\" and i + 1 < len(text):
            nxt = text[i + 1]
            out.append(_DOUBLE_QUOTE_ESCAPES.get(nxt, "\\" + nxt))
            i += 2
            continue
        if ch == '"':
            return "".join(out), text[i + 1:]
        out.append(ch)
        i += 1
    raise ValueError(f"line {lineno}: unterminated double quote")


def _parse_dotenv(text: str) -> dict[str, str]:
    result: dict[str, str] = {}
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export") and len(line) > 6 and line[6].isspace():
            line = line[6:].strip()
        if "=" not in line:
            raise ValueError(f"line {lineno}: missing '='")
        key, value = line.split("=", 1)
        key = key.strip()
        if not _ENV_KEY.fullmatch(key):
            raise ValueError(f"line {lineno}: invalid key {key!r}")
        value = value.strip()
        if value.startswith('"'):
            value, rest = _parse_double_quoted(value, lineno)
        elif value.startswith("'"):
            close = value.find("'", 1)
            if close == -1:
                raise ValueError(f"line {lineno}: unterminated single quote")
            value, rest = value[1:close], value[close + 1:]
        else:
            comment = value.find(" #")
            if comment != -1:
                value = value[:comment]
            value, rest = value.strip(), ""
        rest = rest.strip()
        if rest and not rest.startswith("#"):
            raise ValueError(f"line {lineno}: unexpected text after value")
        result[key] = value
    return result


def parse_env_files(s: str) -> dict[str, str]:
    """Read variables from a comma separated list of env files.

    Files that cannot be read or parsed are logged and skipped.
    """
    result: dict[str, str] = {}
    for path in (p.strip() for p in s.split(",")):
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            log.error("Read file failed: %s (%s)", path, exc)
            continue
        try:
            result.update(_parse_dotenv(text))
        except ValueError as exc:
            log.error("Parse env file failed: %s (%s)", path, exc)
    return result