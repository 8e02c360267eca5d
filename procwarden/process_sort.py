"""Ordering of programs by their dependencies and priority."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

DEFAULT_PRIORITY = 999


class ProcessSorter:
    """Orders program entries so that dependencies start first.

    Programs taking part in a ``depends_on`` relation come first, in
    dependency order; the remaining programs follow sorted by ``priority``.
    """

    def __init__(self) -> None:
        self._depends_on: dict[str, list[str]] = {}
        self._without_depends: list[Any] = []

    def _init_depends(self, configs: Iterable[Any]) -> None:
        for config in configs:
            if not (config.is_program() and config.has_parameter("depends_on")):
                continue
            name = config.get_program_name()
            for dep in config.get_string("depends_on", "").split(","):
                dep = dep.strip()
                if dep:
                    self._depends_on.setdefault(name, []).append(dep)

    def _involved_programs(self) -> dict[str, None]:
        involved: dict[str, None] = {}
        for name, deps in self._depends_on.items():
            involved[name] = None
            involved.update(dict.fromkeys(deps))
        return involved

    def _init_without_depends(self, configs: Iterable[Any]) -> None:
        involved = self._involved_programs()
        self._without_depends.extend(
            c for c in configs
            if c.is_program() and c.get_program_name() not in involved
        )

    def _sort_depends(self) -> list[str]:
        involved = self._involved_programs()
        order = [name for name in involved if name not in self._depends_on]
        finished = set(order)
        while len(finished) < len(involved):
            progressed = False
            for name, deps in self._depends_on.items():
                if name not in finished and all(d in finished for d in deps):
                    finished.add(name)
                    order.append(name)
                    progressed = True
            if not progressed:
                pending = sorted(n for n in involved if n not in finished)
                raise ValueError(f"circular depends_on among: {', '.join(pending)}")
        return order

    def sort_program(self, program_configs: Sequence[Any]) -> list[Any]:
        """Return the program entries in start order."""
        self._init_depends(program_configs)
        self._init_without_depends(program_configs)
        result = [
            config
            for name in self._sort_depends()
            for config in program_configs
            if config.is_program() and config.get_program_name() == name
        ]
        result.extend(
            sorted(
                self._without_depends,
                key=lambda c: c.get_int("priority", DEFAULT_PRIORITY),
            )
        )
        return result


def sort_program(configs: Sequence[Any]) -> list[Any]:
    """Sort program entries with a fresh ProcessSorter."""
    return ProcessSorter().sort_program(configs)