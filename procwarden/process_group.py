"""Mapping between programs and the groups they belong to."""

from __future__ import annotations

from collections.abc import Iterator


class ProcessGroup:
    """Keeps the group of every program."""

    def __init__(self) -> None:
        self._groups: dict[str, str] = {}

    def clone(self) -> ProcessGroup:
        """Return an independent copy."""
        copy = ProcessGroup()
        copy._groups = dict(self._groups)
        return copy

    def sub(self, other: ProcessGroup) -> tuple[list[str], list[str], list[str]]:
        """Compare with an older mapping.

        Returns the groups added, changed and removed in this mapping
        relative to ``other``.
        """
        this_groups = self.get_all_group()
        other_groups = other.get_all_group()
        added = [g for g in this_groups if g not in other_groups]
        removed = [g for g in other_groups if g not in this_groups]
        changed = []
        for group in this_groups:
            mine = self.get_all_process(group)
            theirs = other.get_all_process(group)
            if theirs and sorted(mine) != sorted(theirs):
                changed.append(group)
        return added, changed, removed

    def add(self, group: str, proc_name: str) -> None:
        """Put a program in a group."""
        self._groups[proc_name] = group

    def remove(self, proc_name: str) -> None:
        """Forget a program; unknown names are ignored."""
        self._groups.pop(proc_name, None)

    def get_all_group(self) -> list[str]:
        """Return every distinct group name."""
        return list(dict.fromkeys(self._groups.values()))

    def get_all_process(self, group: str) -> list[str]:
        """Return the programs in a group."""
        return [proc for proc, g in self._groups.items() if g == group]

    def in_group(self, proc_name: str, group: str) -> bool:
        """Tell whether a program belongs to a group."""
        return self._groups.get(proc_name) == group and proc_name in self._groups

    def __iter__(self) -> Iterator[tuple[str, str]]:
        """Yield (group, program) pairs."""
        for proc, group in list(self._groups.items()):
            yield group, proc

    def get_group(self, proc_name: str, def_group: str) -> str:
        """Return a program's group, assigning ``def_group`` if it has none."""
        return self._groups.setdefault(proc_name, def_group)

    def __str__(self) -> str:
        return "".join(
            f"{group}:{','.join(self.get_all_process(group))};"
            for group in self.get_all_group()
        )