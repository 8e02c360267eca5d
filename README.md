# procwarden

The pieces a process supervisor is built from, as a plain Python library
with no third-party dependencies:

- **Configuration** (`procwarden.config`): reads supervisor-style INI files,
  including `[include]` globs, `[program-default]` values, `[group:...]`
  sections and `numprocs` expansion. `Config`, `Entry` and `Ini`.
- **String expressions** (`procwarden.expression`): evaluates
  `%(name)s` and `%(name)02d` placeholders, with `ENV_*` names for the
  environment plus `host_node_name` and any names you add.
- **Groups and ordering** (`procwarden.process_group`,
  `procwarden.process_sort`): maps programs to groups, compares two
  mappings, and orders programs by `depends_on` and then `priority`.
- **Events** (`procwarden.events`, `procwarden.listener`): process state,
  log, group, tick and remote-communication events; the protocol spoken to
  event-listener programs (`READY`, `RESULT n`); and capture of
  `<!--XSUPERVISOR:BEGIN-->...<!--XSUPERVISOR:END-->` blocks in process output.
- **Syslog output** (`procwarden.syslog`): sends a program's output to the
  local syslog or to a remote one over UDP or TCP.
- **Readiness checks** (`procwarden.content_checker`): wait for text on a
  TCP port, a 2xx HTTP response, or a command that exits with status 0.
- **Helpers** (`procwarden.conffile`): locating `supervisord.conf`,
  loading an environment file, finding the supervisord log file.
- **Faults** (`procwarden.faults`): `Fault`, an exception with a
  `FaultCode` such as `NO_FILE` or `BAD_ARGUMENTS`.
- **pid proxy** (`procwarden.pidproxy`): runs a daemonising program and
  forwards signals to the pid written in its pid file.

## Installation

```
pip install procwarden
```

Python 3.10 or later is required.

## Reading a configuration

```python
from procwarden.config import Config

config = Config("/etc/supervisord.conf")
loaded = config.load()          # names of the program processes found

for entry in config.get_programs():   # ordered by depends_on, then priority
    print(entry.get_program_name(), entry.get_string("command", ""))

web = config.get_program("web")
if web is not None:
    max_bytes = web.get_bytes("stdout_logfile_maxbytes", 50 * 1024 * 1024)
    autostart = web.get_bool("autostart", True)
    env = web.get_env("environment")    # ["KEY=value", ...]
```

Sizes accept a plain number or a `KB`, `MB` or `GB` suffix. In string
values, `%(here)s` stands for the directory of the configuration file.

To find the configuration file the usual way:

```python
from procwarden.conffile import find_supervisord_conf, load_env_file

path = find_supervisord_conf(None)   # raises FileNotFoundError if none exists
load_env_file(".env")                # sets os.environ, returns what was set
```

## String expressions

```python
from procwarden.expression import StringExpression

expr = StringExpression({"var1": "ok"}).add("var2", "2")
expr.eval("%(var1)s_test_%(var2)02d")   # "ok_test_02"
```

An unknown name or a malformed expression raises `ExpressionError`.

## Events

```python
from procwarden.events import create_process_exited_event

event = create_process_exited_event("proc-1", "group-1", "RUNNING", 1, 2766)
event.event_type   # "PROCESS_STATE_EXITED"
event.body()       # "processname:proc-1 groupname:group-1 from_state:RUNNING expected:1 pid:2766"
```

`register_event_listener(name, events, listener)` subscribes any object
with a `handle_event(event)` method to concrete types such as
`PROCESS_STATE_RUNNING` or abstract ones such as `PROCESS_STATE`;
`emit_event(event)` delivers to it. `procwarden.listener.EventListener`
is such a listener: it writes each event to a listener program's input and
waits for `READY` and `RESULT` answers on its output, keeping an event
queued until the program answers `OK`.

## Sending output to syslog

```python
from procwarden.syslog import new_remote_sys_logger


class Quiet:
    def emit_log_event(self, data):
        pass


logger = new_remote_sys_logger("web", "tcp:logs.example.com", {"syslog_facility": "daemon"}, Quiet())
logger.write(b"started\n")
```

The address is `[protocol:]host[:port]`; the protocol defaults to UDP, the
port to 514 for UDP and 6514 for TCP. `new_sys_logger` writes to the local
syslog socket. Writing without a syslog connection raises `OSError`.

## Readiness checks

```python
from procwarden.content_checker import HTTPChecker, ScriptChecker, TCPChecker

TCPChecker("127.0.0.1", 8999, ["Hello", "world"], 10).check()
HTTPChecker("http://127.0.0.1:8080/health", 5).check()
ScriptChecker(["/usr/local/bin/ready"]).check()
```

`TCPChecker` and `HTTPChecker` return `True` or `False` within their
timeout in seconds.

## pid proxy

For programs that daemonise themselves and write a pid file:

```
procwarden-pidproxy [-exit-daemon-stop] <pidfile> <command> [args...]
```

The command is run to completion; if it fails the proxy exits with status 1.
Then signals received by the proxy (TERM, HUP, INT, USR1, USR2, QUIT) are
forwarded to the pid read from `<pidfile>`, and TERM, INT or QUIT also end
the proxy. Every five seconds it checks that the process is alive; with
`-exit-daemon-stop` it exits with status 1 once it is not.

## What this package does not do

procwarden provides the parts, not a running supervisor. It does not start,
watch or restart the programs of a configuration, it has no control
interface or command for managing them, and it has no logger that writes a
program's output to rotating files, stdout or stderr; syslog is the only
output target it offers.

## Running the tests

```
pip install procwarden[test]
pytest
```