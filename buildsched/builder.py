# buildsched/builder.py
"""
Task model builder: turns priced line items from the approved estimate and
approved change orders into ScheduleTask entities.
"""
import json
import logging
from datetime import date
from typing import Iterable, List, Optional

from pydantic import ValidationError

from buildsched.config import settings
from buildsched.models import (
    LineItem,
    ProjectInfo,
    ScheduleSnapshot,
    ScheduleTask,
    TaskDependency,
    TaskKind,
    TaskUpdate,
)
from buildsched.schedule_notes import parse_schedule_notes, serialize_task_notes
from buildsched.utils import end_from_duration, round_currency

logger = logging.getLogger(__name__)

UNTITLED_TASK = "Untitled Task"


def task_name_for(description: Optional[str], co_number: Optional[str] = None) -> str:
    base = (description or "").strip() or UNTITLED_TASK
    if co_number is not None:
        return f"CO-{co_number}: {base}"
    return base


def parse_dependencies(raw, owner_id: str) -> List[TaskDependency]:
    """
    Read the dependencies column, which may hold a JSON string or a list.
    Malformed input yields no dependencies; self references are dropped.
    """
    if raw is None or raw == "":
        return []
    parsed = raw
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except (json.JSONDecodeError, ValueError):
            logger.warning("Failed to parse dependencies for %s", owner_id)
            return []
    if not isinstance(parsed, list):
        return []

    dependencies = []
    seen = set()
    for entry in parsed:
        if not isinstance(entry, dict) or not entry.get("task_id"):
            continue
        task_id = str(entry["task_id"])
        if task_id == owner_id or task_id in seen:
            continue
        try:
            dependencies.append(TaskDependency.model_validate({**entry, "task_id": task_id}))
        except (ValidationError, ValueError):
            logger.warning("Skipping malformed dependency %r on %s", entry, owner_id)
            continue
        seen.add(task_id)
    return dependencies


def _placeholder_dates(item: LineItem, project: ProjectInfo, today: date, default_duration: int):
    start = item.scheduled_start_date or project.start_date or today
    end = item.scheduled_end_date
    if end is None:
        end = end_from_duration(start, default_duration)
    elif end < start:
        logger.warning(
            "Line item %s ends (%s) before it starts (%s); using a %s-day placeholder",
            item.id, end, start, default_duration,
        )
        end = end_from_duration(start, default_duration)
    return start, end


def line_item_to_task(
    item: LineItem,
    kind: TaskKind,
    project: ProjectInfo,
    today: date,
    co_number: Optional[str] = None,
    default_duration: Optional[int] = None,
) -> ScheduleTask:
    duration = default_duration or settings.DEFAULT_DURATION_DAYS
    sub_document = parse_schedule_notes(item.schedule_notes, source_id=item.id)
    start, end = _placeholder_dates(item, project, today, duration)

    return ScheduleTask(
        id=item.id,
        name=task_name_for(item.description, co_number if kind is TaskKind.CHANGE_ORDER_LINE else None),
        category=item.category,
        kind=kind,
        change_order_number=co_number if kind is TaskKind.CHANGE_ORDER_LINE else None,
        start=start,
        end=end,
        dependencies=parse_dependencies(item.dependencies, item.id),
        phases=sub_document.phases,
        completed=None if sub_document.phases else sub_document.completed,
        estimated_cost=max(0.0, round_currency(item.total_cost)),
        notes=sub_document.notes,
        is_milestone=item.is_milestone,
    )


def _fill_dependency_names(tasks: List[ScheduleTask]) -> List[ScheduleTask]:
    by_id = {t.id: t for t in tasks}
    filled = []
    for task in tasks:
        if not any(d.task_id in by_id for d in task.dependencies):
            filled.append(task)
            continue
        deps = []
        for dep in task.dependencies:
            target = by_id.get(dep.task_id)
            if target is not None:
                dep = dep.model_copy(update={"task_name": target.name, "task_type": target.kind})
            deps.append(dep)
        filled.append(task.model_copy(update={"dependencies": deps}))
    return filled


def build_tasks(
    snapshot: ScheduleSnapshot,
    today: Optional[date] = None,
    default_duration: Optional[int] = None,
) -> List[ScheduleTask]:
    """
    Map every line item of the snapshot to a task, estimate items first, then
    change orders in the order they were read.
    """
    today = today or date.today()
    sources = [(item, TaskKind.ESTIMATE_LINE, None) for item in snapshot.estimate_items]
    for change_order in snapshot.change_orders:
        sources += [
            (item, TaskKind.CHANGE_ORDER_LINE, change_order.change_order_number)
            for item in change_order.line_items
        ]
    tasks = []
    for item, kind, co_number in sources:
        try:
            task = line_item_to_task(item, kind, snapshot.project, today,
                                     co_number=co_number, default_duration=default_duration)
        except ValidationError as exc:
            # Only the offending row is dropped.
            logger.warning("Skipping line item %s: %s", item.id, exc.errors()[0].get("msg", exc))
            continue
        tasks.append(task)
    logger.debug("Built %s tasks for project %s", len(tasks), snapshot.project.id)
    return _fill_dependency_names(tasks)


def task_to_update(task: ScheduleTask) -> TaskUpdate:
    """Write payload for a task, carrying its routing kind."""
    return TaskUpdate(
        task_id=task.id,
        kind=task.kind,
        scheduled_start_date=task.start,
        scheduled_end_date=task.end,
        duration_days=task.duration_days,
        dependencies=[d.to_record() for d in task.dependencies],
        schedule_notes=serialize_task_notes(task),
    )


def find_task(tasks: Iterable[ScheduleTask], task_id: str) -> Optional[ScheduleTask]:
    for task in tasks:
        if task.id == task_id:
            return task
    return None
