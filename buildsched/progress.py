# buildsched/progress.py
"""
Progress and cost correlation.

Progress is chosen by priority:
  1. phases present       -> share of completed phases
  2. manual completed mark -> 100 or 0
  3. otherwise            -> actual cost over estimated cost, capped at 100

Actual cost is always the sum of correlated ledger amounts, whichever rule
picked the percentage.
"""
import math
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from buildsched.graph import project_duration
from buildsched.models import CorrelationEntry, ScheduleTask, TaskProgress
from buildsched.utils import round_currency


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def summarize_correlations(entries: Iterable[CorrelationEntry]) -> Dict[str, float]:
    """Total correlated amount per line item id."""
    totals = defaultdict(float)
    for entry in entries:
        if not entry.line_item_id:
            continue
        totals[entry.line_item_id] += float(entry.amount or 0.0)
    return {item_id: max(0.0, round_currency(total)) for item_id, total in totals.items()}


def progress_from_cost(actual_cost: float, estimated_cost: float) -> int:
    if not estimated_cost or estimated_cost <= 0:
        return 0
    return max(0, min(100, _round_half_up(100.0 * actual_cost / estimated_cost)))


def compute_task_progress(task: ScheduleTask, actual_cost: float = 0.0) -> TaskProgress:
    if task.phases:
        done = sum(1 for p in task.phases if p.completed)
        percent = _round_half_up(100.0 * done / len(task.phases))
        source = "phases"
    elif task.completed is not None:
        percent = 100 if task.completed else 0
        source = "manual"
    else:
        percent = progress_from_cost(actual_cost, task.estimated_cost)
        source = "cost"
    return TaskProgress(task_id=task.id, progress=percent, actual_cost=actual_cost, source=source)


def compute_progress(
    tasks: Iterable[ScheduleTask],
    correlations: Iterable[CorrelationEntry] = (),
) -> Dict[str, TaskProgress]:
    actuals = summarize_correlations(correlations)
    return {
        task.id: compute_task_progress(task, actuals.get(task.id, 0.0))
        for task in tasks
    }


def apply_progress(
    tasks: Iterable[ScheduleTask],
    correlations: Iterable[CorrelationEntry] = (),
) -> List[ScheduleTask]:
    """Copy progress and actual cost onto each task."""
    tasks = list(tasks)
    results = compute_progress(tasks, correlations)
    return [
        task.model_copy(update={
            "progress": results[task.id].progress,
            "actual_cost": results[task.id].actual_cost,
        })
        for task in tasks
    ]


def refresh_task_progress(task: ScheduleTask) -> ScheduleTask:
    """Re-derive progress after a local edit, keeping the known actual cost."""
    result = compute_task_progress(task, task.actual_cost)
    return task.model_copy(update={"progress": result.progress})


def status_label(progress: int) -> str:
    if progress <= 0:
        return "Not Started"
    if progress < 100:
        return "In Progress"
    return "Complete"


def cost_variance(task: ScheduleTask) -> float:
    return round_currency(task.actual_cost - task.estimated_cost)


def is_task_overdue(task: ScheduleTask, today: Optional[date] = None) -> bool:
    today = today or date.today()
    return task.end < today and task.progress < 100


def schedule_variance_days(task: ScheduleTask, today: Optional[date] = None) -> int:
    """Days past the scheduled end; negative means time remains. Complete tasks are 0."""
    if task.progress >= 100:
        return 0
    today = today or date.today()
    return (today - task.end).days


def ready_to_start(tasks: Iterable[ScheduleTask], today: Optional[date] = None) -> List[ScheduleTask]:
    """Tasks not yet started whose start has arrived and whose predecessors are complete."""
    today = today or date.today()
    tasks = list(tasks)
    by_id = {t.id: t for t in tasks}
    ready = []
    for task in tasks:
        if task.progress > 0 or task.start > today:
            continue
        predecessors = [by_id.get(dep_id) for dep_id in task.dependency_ids()]
        if all(p is not None and p.progress >= 100 for p in predecessors):
            ready.append(task)
    return ready


class ScheduleStats(BaseModel):
    total_tasks: int = 0
    completed_tasks: int = 0
    in_progress_tasks: int = 0
    change_order_tasks: int = 0
    estimated_cost: float = 0.0
    actual_cost: float = 0.0
    overall_progress: int = 0
    duration_days: int = 0


def schedule_stats(tasks: Iterable[ScheduleTask]) -> ScheduleStats:
    tasks = list(tasks)
    if not tasks:
        return ScheduleStats()
    estimated = sum(t.estimated_cost for t in tasks)
    if estimated > 0:
        weighted = sum(t.progress * t.estimated_cost for t in tasks) / estimated
    else:
        weighted = sum(t.progress for t in tasks) / len(tasks)
    return ScheduleStats(
        total_tasks=len(tasks),
        completed_tasks=sum(1 for t in tasks if t.progress >= 100),
        in_progress_tasks=sum(1 for t in tasks if 0 < t.progress < 100),
        change_order_tasks=sum(1 for t in tasks if t.is_change_order),
        estimated_cost=round_currency(estimated),
        actual_cost=round_currency(sum(t.actual_cost for t in tasks)),
        overall_progress=_round_half_up(weighted),
        duration_days=project_duration(tasks),
    )
