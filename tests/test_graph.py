from datetime import date

import pytest

from buildsched.errors import InvalidScheduleEdit
from buildsched.graph import (
    DependencyGraph,
    add_dependency,
    critical_path,
    earliest_start,
    project_duration,
    project_span,
    tasks_overlap,
    toggle_dependency,
    would_create_cycle,
)
from buildsched.models import SchedulePhase
from buildsched.utils import format_duration


def test_critical_path_prefers_longer_independent_task(make_task):
    tasks = [
        make_task("A", "2024-01-01", "2024-01-05"),              # 5 days
        make_task("B", "2024-01-06", "2024-01-08", deps=["A"]),  # 3 days
        make_task("C", "2024-01-01", "2024-01-10"),              # 10 days
    ]
    result = critical_path(tasks)
    assert result.task_ids == ["C"]
    assert result.length_days == 10


def test_critical_path_prefers_chain_when_longer(make_task):
    tasks = [
        make_task("A", "2024-01-01", "2024-01-05"),
        make_task("B", "2024-01-06", "2024-01-08", deps=["A"]),
        make_task("C", "2024-01-01", "2024-01-07"),              # 7 days
    ]
    result = critical_path(tasks)
    assert result.task_ids == ["A", "B"]
    assert result.length_days == 8
    assert result.slack_days["C"] == 1


def test_critical_path_keeps_tied_chains(make_task):
    tasks = [make_task("A", "2024-01-01", "2024-01-05"), make_task("B", "2024-01-01", "2024-01-05")]
    assert critical_path(tasks).task_ids == ["A", "B"]


def test_critical_path_of_empty_set():
    result = critical_path([])
    assert result.task_ids == []
    assert result.length_days == 0


def test_cycle_is_reported_and_excluded_without_hanging(make_task):
    tasks = [
        make_task("A", "2024-01-01", "2024-01-05", deps=["B"]),
        make_task("B", "2024-01-06", "2024-01-08", deps=["A"]),
        make_task("C", "2024-01-01", "2024-01-02", deps=["B"]),
    ]
    result = critical_path(tasks)
    assert result.cycles == [["A", "B"]]
    # With the A<->B edges dropped, A alone and B then C both take 5 days.
    assert result.length_days == 5
    assert set(result.task_ids) == {"A", "B", "C"}


def test_unknown_dependency_ids_are_ignored(make_task):
    tasks = [make_task("A", "2024-01-01", "2024-01-05", deps=["ghost"])]
    graph = DependencyGraph(tasks)
    assert list(graph.graph.nodes) == ["A"]
    assert graph.edges() == []
    assert critical_path(tasks).task_ids == ["A"]


def test_long_chain_does_not_hit_recursion_limit(make_task):
    tasks = [make_task("t0", "2024-01-01", "2024-01-01")]
    for i in range(1, 3000):
        tasks.append(make_task(f"t{i}", "2024-01-01", "2024-01-01", deps=[f"t{i - 1}"]))
    graph = DependencyGraph(tasks)
    assert graph.cycles() == []
    assert len(graph.topological_order()) == 3000


def test_project_span_includes_phases(make_task):
    phases = [
        SchedulePhase(phase_number=1, start=date(2024, 1, 3), end=date(2024, 1, 4)),
        SchedulePhase(phase_number=2, start=date(2024, 1, 20), end=date(2024, 1, 22)),
    ]
    tasks = [
        make_task("A", "2024-01-01", "2024-01-05"),
        make_task("P", "2024-01-03", "2024-01-22", phases=phases),
    ]
    assert project_span(tasks) == (date(2024, 1, 1), date(2024, 1, 22))
    assert project_duration(tasks) == 22
    assert project_duration([]) == 0


def test_earliest_start(make_task):
    a = make_task("A", "2024-01-01", "2024-01-05")
    b = make_task("B", "2024-01-03", "2024-01-09", deps=["A"])
    assert earliest_start(b, [a, b]) == date(2024, 1, 6)
    assert earliest_start(a, [a, b]) == date(2024, 1, 1)


def test_dependency_editing(make_task):
    a = make_task("A", "2024-01-01", "2024-01-05", name="Framing")
    b = make_task("B", "2024-01-06", "2024-01-09")
    b = add_dependency(b, a)
    assert b.dependencies[0].task_name == "Framing"
    assert add_dependency(b, a).dependency_ids() == ["A"]
    assert toggle_dependency(b, a).dependencies == []
    with pytest.raises(InvalidScheduleEdit):
        add_dependency(a, a)


def test_would_create_cycle(make_task):
    tasks = [
        make_task("A", "2024-01-01", "2024-01-05"),
        make_task("B", "2024-01-06", "2024-01-09", deps=["A"]),
        make_task("C", "2024-01-10", "2024-01-12", deps=["B"]),
    ]
    assert would_create_cycle("A", "C", tasks)
    assert not would_create_cycle("C", "A", tasks)
    assert not would_create_cycle("A", "ghost", tasks)
    assert would_create_cycle("B", "B", tasks)


def test_tasks_overlap(make_task):
    a = make_task("A", "2024-01-01", "2024-01-05")
    assert tasks_overlap(a, make_task("B", "2024-01-05", "2024-01-06"))
    assert not tasks_overlap(a, make_task("C", "2024-01-06", "2024-01-07"))


def test_format_duration():
    assert format_duration(1) == "1 day"
    assert format_duration(5) == "5 days"
    assert format_duration(7) == "1 week"
    assert format_duration(14) == "2 weeks"
    assert format_duration(10) == "1w 3d"
