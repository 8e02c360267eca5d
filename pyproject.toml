[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "procwarden"
version = "0.1.0"
description = "Building blocks for a process supervisor: configuration, events, syslog output, readiness checks and a pid proxy"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "supervisor",
    "process",
    "daemon",
    "process-control",
    "syslog",
    "events",
    "ini",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
procwarden-pidproxy = "procwarden.pidproxy:main"

[tool.hatch.build.targets.wheel]
packages = ["procwarden"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
