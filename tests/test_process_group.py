import pytest

from procwarden.process_group import ProcessGroup


@pytest.fixture
def group():
    g = ProcessGroup()
    g.add("group1", "proc1_1")
    g.add("group1", "proc1_2")
    g.add("group2", "proc2_1")
    g.add("group2", "proc2_2")
    g.add("group2", "proc2_3")
    return g


def test_get_all_group(group):
    groups = group.get_all_group()
    assert len(groups) == 2
    assert set(groups) == {"group1", "group2"}


def test_get_all_process_in_group(group):
    procs = group.get_all_process("group1")
    assert len(procs) == 2
    assert set(procs) == {"proc1_1", "proc1_2"}
    assert group.get_all_process("group10") == []


def test_in_group(group):
    assert group.in_group("proc2_2", "group2")
    assert not group.in_group("proc1_1", "group2")
    assert not group.in_group("unknown", "group2")


def test_remove_from_group(group):
    group.remove("proc2_1")
    procs = group.get_all_process("group2")
    assert len(procs) == 2
    assert set(procs) == {"proc2_2", "proc2_3"}


def test_group_diff():
    group1 = ProcessGroup()
    group1.add("group-1", "proc-11")
    group1.add("group-1", "proc-12")
    group1.add("group-2", "proc-21")

    group2 = ProcessGroup()
    group2.add("group-1", "proc-11")
    group2.add("group-1", "proc-12")
    group2.add("group-1", "proc-13")
    group2.add("group-3", "proc-31")

    added, changed, removed = group2.sub(group1)
    assert added == ["group-3"]
    assert changed == ["group-1"]
    assert removed == ["group-2"]


def test_sub_of_identical_groups_is_empty(group):
    assert group.sub(group.clone()) == ([], [], [])


def test_clone_is_independent(group):
    copy = group.clone()
    copy.remove("proc1_1")
    assert group.in_group("proc1_1", "group1")
    assert not copy.in_group("proc1_1", "group1")


def test_get_group_assigns_default(group):
    assert group.get_group("proc1_1", "other") == "group1"
    assert group.get_group("newproc", "fallback") == "fallback"
    assert group.in_group("newproc", "fallback")


def test_iteration_yields_group_and_process(group):
    pairs = set(group)
    assert ("group1", "proc1_1") in pairs
    assert ("group2", "proc2_3") in pairs
    assert len(pairs) == 5


def test_str_lists_groups_and_processes():
    g = ProcessGroup()
    g.add("web", "a")
    g.add("web", "b")
    assert str(g) == "web:a,b;"