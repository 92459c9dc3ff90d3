# buildsched/export.py
"""
Tabular projections of a task set, built as pandas DataFrames.

Callers pass tasks in the order they want (natural or manual order); only
sort_by in task_table reorders rows.
"""
from datetime import datetime
from typing import Iterable, List, Literal, Optional, Sequence

import pandas as pd

from buildsched.graph import project_span
from buildsched.models import ScheduleTask
from buildsched.progress import cost_variance, status_label
from buildsched.utils import format_date, format_us_date, round_currency

SortKey = Literal["start_date", "category", "name", "none"]


def _sorted_tasks(tasks: List[ScheduleTask], sort_by: SortKey) -> List[ScheduleTask]:
    if sort_by == "start_date":
        return sorted(tasks, key=lambda t: t.start)
    if sort_by == "category":
        return sorted(tasks, key=lambda t: t.category.value)
    if sort_by == "name":
        return sorted(tasks, key=lambda t: t.name.lower())
    return list(tasks)


def _type_label(task: ScheduleTask) -> str:
    return "Change Order" if task.is_change_order else "Original Estimate"


def task_table(
    tasks: Iterable[ScheduleTask],
    include_progress: bool = True,
    include_costs: bool = True,
    include_dependencies: bool = True,
    include_notes: bool = True,
    sort_by: SortKey = "start_date",
    expand_phases: bool = True,
) -> pd.DataFrame:
    """
    One row per task. With expand_phases, tasks with more than one phase get
    one row per phase instead.
    """
    tasks = _sorted_tasks(list(tasks), sort_by)
    names = {t.id: t.name for t in tasks}
    dependents = {t.id: [] for t in tasks}
    for task in tasks:
        for dep_id in task.dependency_ids():
            if dep_id in dependents:
                dependents[dep_id].append(task.name)

    rows = []
    for task in tasks:
        if expand_phases and task.has_multiple_phases:
            spans = [
                (
                    f"{task.name} - Phase {p.phase_number}" + (f": {p.description}" if p.description else ""),
                    p.start, p.end, p.duration_days, p.notes,
                )
                for p in task.phases
            ]
        else:
            spans = [(task.name, task.start, task.end, task.duration_days, task.notes)]

        for name, start, end, duration, notes in spans:
            row = {
                "Task Name": name,
                "Category": task.category.label,
                "Start Date": format_date(start),
                "End Date": format_date(end),
                "Duration (Days)": duration,
                "Type": _type_label(task),
            }
            if include_progress:
                row["Progress (%)"] = task.progress
                row["Status"] = status_label(task.progress)
            if include_costs:
                row["Estimated Cost"] = round_currency(task.estimated_cost)
                row["Actual Cost"] = round_currency(task.actual_cost)
                row["Cost Variance"] = cost_variance(task)
            if include_dependencies:
                deps = [d.task_name or names.get(d.task_id) or d.task_id for d in task.dependencies]
                row["Dependencies"] = "; ".join(deps) or "None"
                row["Dependent Tasks"] = "; ".join(dependents[task.id]) or "None"
            if include_notes:
                row["Notes"] = (notes or "").replace("\n", " ")
            rows.append(row)
    return pd.DataFrame(rows)


DAILY_COLUMNS = ["Date", "Day of Week", "Active Tasks", "Tasks Starting", "Tasks Ending", "Total Active"]


def daily_activity(tasks: Iterable[ScheduleTask]) -> pd.DataFrame:
    """One row per calendar day from the earliest start to the latest end."""
    tasks = list(tasks)
    span = project_span(tasks)
    if span is None:
        return pd.DataFrame(columns=DAILY_COLUMNS)
    rows = []
    for day in pd.date_range(span[0], span[1], freq="D"):
        current = day.date()
        active = [t for t in tasks if t.start <= current <= t.end]
        starting = [t.name for t in tasks if t.start == current]
        ending = [t.name for t in tasks if t.end == current]
        rows.append({
            "Date": format_date(current),
            "Day of Week": current.strftime("%A"),
            "Active Tasks": "; ".join(f"{t.name} ({t.category.label})" for t in active) or "None",
            "Tasks Starting": "; ".join(starting) or "None",
            "Tasks Ending": "; ".join(ending) or "None",
            "Total Active": len(active),
        })
    return pd.DataFrame(rows, columns=DAILY_COLUMNS)


def ms_project_table(tasks: Sequence[ScheduleTask]) -> pd.DataFrame:
    """Simplified layout Microsoft Project can import; predecessors are 1-based row ids."""
    tasks = list(tasks)
    index_of = {t.id: i for i, t in enumerate(tasks, start=1)}
    rows = []
    for i, task in enumerate(tasks, start=1):
        predecessors = [str(index_of[d]) for d in task.dependency_ids() if d in index_of]
        rows.append({
            "ID": i,
            "Name": task.name,
            "Duration": f"{task.duration_days}d",
            "Start": format_us_date(task.start),
            "Finish": format_us_date(task.end),
            "Predecessors": ",".join(predecessors),
            "Resource Names": task.category.label,
        })
    return pd.DataFrame(rows, columns=["ID", "Name", "Duration", "Start", "Finish", "Predecessors", "Resource Names"])


def schedule_header(
    project_name: str,
    tasks: Sequence[ScheduleTask],
    title: Optional[str] = None,
    exported_at: Optional[datetime] = None,
) -> List[str]:
    exported_at = exported_at or datetime.now()
    lines = [f"Project: {project_name}"]
    if title:
        lines.append(title)
    lines.append(f"Exported: {exported_at.strftime('%Y-%m-%d %H:%M')}")
    span = project_span(tasks)
    if title and span is not None:
        lines.append(f"Date Range: {span[0].strftime('%b %d, %Y')} - {span[1].strftime('%b %d, %Y')}")
        lines.append(f"Total Days: {(span[1] - span[0]).days + 1}")
    lines.append(f"Total Tasks: {len(tasks)}")
    return lines


def to_csv(frame: pd.DataFrame, header_lines: Optional[Sequence[str]] = None) -> str:
    """CSV text, optionally preceded by a header block and a blank line."""
    body = frame.to_csv(index=False, lineterminator="\n")
    if not header_lines:
        return body
    return "\n".join(header_lines) + "\n\n" + body


def export_filename(project_name: str, kind: str = "schedule", on: Optional[datetime] = None) -> str:
    on = on or datetime.now()
    safe = "".join(c if c.isalnum() or c in "-_" else "_" for c in project_name)
    while "__" in safe:
        safe = safe.replace("__", "_")
    return f"{safe.lower()}_{kind}_{on.strftime('%Y-%m-%d')}.csv"
