# buildsched/graph.py
"""
Finish-to-start dependency graph, project span and critical path.

Dependencies are advisory: nothing here moves a task. Cycles are never
rejected; edges inside a cycle are left out of critical-path weighting and
reported so the warning engine can flag them.
"""
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

import networkx as nx
from pydantic import BaseModel, Field

from buildsched.errors import InvalidScheduleEdit
from buildsched.models import ScheduleTask, TaskDependency


class DependencyGraph:
    """Directed predecessor -> successor graph. Links to unknown ids are ignored."""

    def __init__(self, tasks: Iterable[ScheduleTask]):
        self.tasks: Dict[str, ScheduleTask] = {}
        for task in tasks:
            self.tasks[task.id] = task
        self._order = {task_id: i for i, task_id in enumerate(self.tasks)}

        G = nx.DiGraph()
        for task_id, task in self.tasks.items():
            G.add_node(task_id, task=task)
        for task_id, task in self.tasks.items():
            for dep_id in task.dependency_ids():
                if dep_id in self.tasks and dep_id != task_id:
                    G.add_edge(dep_id, task_id)
        self.graph = G

    def edges(self) -> List[Tuple[str, str]]:
        """(predecessor, successor) pairs."""
        return list(self.graph.edges)

    def cycles(self) -> List[List[str]]:
        """Groups of tasks that depend on each other in a loop, in task order."""
        groups = [
            sorted(component, key=self._order.get)
            for component in nx.strongly_connected_components(self.graph)
            if len(component) > 1
        ]
        return sorted(groups, key=lambda group: self._order[group[0]])

    def acyclic_graph(self) -> nx.DiGraph:
        """Copy of the graph with every edge inside a cycle removed."""
        group_of = {}
        for n, group in enumerate(self.cycles()):
            for task_id in group:
                group_of[task_id] = n
        pruned = self.graph.copy()
        pruned.remove_edges_from([
            (u, v) for u, v in self.graph.edges
            if u in group_of and group_of[u] == group_of.get(v)
        ])
        return pruned

    def topological_order(self, G: Optional[nx.DiGraph] = None) -> List[str]:
        """Topological order that keeps task order where dependencies allow."""
        G = G if G is not None else self.acyclic_graph()
        return list(nx.lexicographical_topological_sort(G, key=self._order.get))


class CriticalPathResult(BaseModel):
    task_ids: List[str] = Field(default_factory=list)
    length_days: int = 0
    cycles: List[List[str]] = Field(default_factory=list)
    slack_days: Dict[str, int] = Field(default_factory=dict)


def critical_path(tasks: Iterable[ScheduleTask]) -> CriticalPathResult:
    """
    Tasks on the longest duration-weighted chain through the dependency graph
    (zero total float in a forward/backward pass). Ties keep every chain.
    """
    graph = DependencyGraph(tasks)
    if not graph.tasks:
        return CriticalPathResult()

    G = graph.acyclic_graph()
    order = graph.topological_order(G)
    duration = {task_id: task.duration_days for task_id, task in graph.tasks.items()}

    earliest_finish: Dict[str, int] = {}
    earliest_start: Dict[str, int] = {}
    for task_id in order:
        start = max((earliest_finish[d] for d in G.predecessors(task_id)), default=0)
        earliest_start[task_id] = start
        earliest_finish[task_id] = start + duration[task_id]
    project_end = max(earliest_finish.values(), default=0)

    latest_start: Dict[str, int] = {}
    for task_id in reversed(order):
        finish = min((latest_start[s] for s in G.successors(task_id)), default=project_end)
        latest_start[task_id] = finish - duration[task_id]

    slack = {task_id: latest_start[task_id] - earliest_start[task_id] for task_id in order}
    return CriticalPathResult(
        task_ids=[task_id for task_id in order if slack[task_id] == 0],
        length_days=project_end,
        cycles=graph.cycles(),
        slack_days=slack,
    )


def project_span(tasks: Iterable[ScheduleTask]) -> Optional[Tuple[date, date]]:
    """Earliest start and latest end over every task and phase."""
    starts = []
    ends = []
    for task in tasks:
        starts.append(task.start)
        ends.append(task.end)
        for phase in task.phases or []:
            starts.append(phase.start)
            ends.append(phase.end)
    if not starts:
        return None
    return min(starts), max(ends)


def project_duration(tasks: Iterable[ScheduleTask]) -> int:
    span = project_span(tasks)
    if span is None:
        return 0
    return (span[1] - span[0]).days + 1


def earliest_start(task: ScheduleTask, tasks: Iterable[ScheduleTask]) -> date:
    """Day after the latest predecessor finishes, or the task's own start without predecessors."""
    by_id = {t.id: t for t in tasks}
    ends = [by_id[d].end for d in task.dependency_ids() if d in by_id and d != task.id]
    if not ends:
        return task.start
    return max(ends) + timedelta(days=1)


def tasks_overlap(first: ScheduleTask, second: ScheduleTask) -> bool:
    return first.start <= second.end and second.start <= first.end


def dependency_on(target: ScheduleTask) -> TaskDependency:
    return TaskDependency(task_id=target.id, task_name=target.name, task_type=target.kind)


def add_dependency(task: ScheduleTask, target: ScheduleTask) -> ScheduleTask:
    if target.id == task.id:
        raise InvalidScheduleEdit(f"Task {task.id} cannot depend on itself")
    if target.id in task.dependency_ids():
        return task
    return task.model_copy(update={"dependencies": task.dependencies + [dependency_on(target)]})


def remove_dependency(task: ScheduleTask, target_id: str) -> ScheduleTask:
    return task.model_copy(update={
        "dependencies": [d for d in task.dependencies if d.task_id != target_id]
    })


def toggle_dependency(task: ScheduleTask, target: ScheduleTask) -> ScheduleTask:
    if target.id in task.dependency_ids():
        return remove_dependency(task, target.id)
    return add_dependency(task, target)


def would_create_cycle(task_id: str, target_id: str, tasks: Iterable[ScheduleTask]) -> bool:
    """True when making task_id depend on target_id closes a loop."""
    if task_id == target_id:
        return True
    G = DependencyGraph(tasks).graph
    if task_id not in G or target_id not in G:
        return False
    # A loop exists if task_id already (transitively) precedes target_id.
    return nx.has_path(G, task_id, target_id)
