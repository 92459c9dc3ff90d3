# buildsched/phases.py
"""
Edits on task dates, phases and completion marks.

Every function returns a new ScheduleTask; the input is never mutated. When a
task has phases its start/end are re-derived from them after every edit.
"""
from datetime import date, timedelta
from typing import List, Optional

from pydantic import ValidationError

from buildsched.errors import InvalidScheduleEdit
from buildsched.models import SchedulePhase, ScheduleTask
from buildsched.utils import end_from_duration


def _rebuild(task: ScheduleTask, **changes) -> ScheduleTask:
    try:
        return task.evolve(**changes)
    except ValidationError as exc:
        raise InvalidScheduleEdit(exc.errors()[0].get("msg", str(exc))) from exc


def _renumbered(phases: List[SchedulePhase]) -> List[SchedulePhase]:
    ordered = sorted(phases, key=lambda p: p.phase_number)
    return [p.model_copy(update={"phase_number": i}) for i, p in enumerate(ordered, start=1)]


def _get_phase(task: ScheduleTask, phase_number: int) -> SchedulePhase:
    for phase in task.phases or []:
        if phase.phase_number == phase_number:
            return phase
    raise InvalidScheduleEdit(f"Task {task.id} has no phase {phase_number}")


def _make_phase(**fields) -> SchedulePhase:
    try:
        return SchedulePhase(**fields)
    except ValidationError as exc:
        raise InvalidScheduleEdit(exc.errors()[0].get("msg", str(exc))) from exc


def reschedule_task(task: ScheduleTask, start: date, end: date) -> ScheduleTask:
    """
    Move or resize a whole task.
    For phased tasks every phase shifts by the start delta, then the
    latest-ending phase absorbs any change in overall length.
    """
    if start > end:
        raise InvalidScheduleEdit(f"Start {start} is after end {end}")
    if not task.phases:
        return _rebuild(task, start=start, end=end)

    delta = start - task.start
    shifted = [
        p.model_copy(update={"start": p.start + delta, "end": p.end + delta})
        for p in task.phases
    ]
    last = max(shifted, key=lambda p: (p.end, p.phase_number))
    if last.start > end:
        raise InvalidScheduleEdit(
            f"New end {end} falls before phase {last.phase_number} starts ({last.start})"
        )
    for other in shifted:
        if other is not last and other.end > end:
            raise InvalidScheduleEdit(
                f"New end {end} would cut phase {other.phase_number}, which ends {other.end}"
            )
    shifted = [p.model_copy(update={"end": end}) if p is last else p for p in shifted]
    return _rebuild(task, phases=shifted)


def move_task_start(task: ScheduleTask, start: date, duration_days: int) -> ScheduleTask:
    """Form-style edit: new start plus a duration; the end is derived."""
    if duration_days < 1:
        raise InvalidScheduleEdit("Duration must be at least 1 day")
    return reschedule_task(task, start, end_from_duration(start, duration_days))


def reschedule_phase(task: ScheduleTask, phase_number: int, start: date, end: date) -> ScheduleTask:
    _get_phase(task, phase_number)
    phases = [
        _make_phase(**{**p.model_dump(exclude={"duration_days"}), "start": start, "end": end})
        if p.phase_number == phase_number else p
        for p in task.phases
    ]
    return _rebuild(task, phases=phases)


def add_phase(
    task: ScheduleTask,
    start: date,
    end: date,
    description: Optional[str] = None,
    notes: Optional[str] = None,
) -> ScheduleTask:
    """
    Append a phase. A task without phases first turns its current span into
    phase 1 so the existing visit is not lost.
    """
    phases = list(task.phases or [])
    if not phases:
        phases.append(
            _make_phase(phase_number=1, start=task.start, end=task.end,
                        completed=bool(task.completed))
        )
    phases.append(
        _make_phase(phase_number=len(phases) + 1, start=start, end=end,
                    description=description, notes=notes)
    )
    return _rebuild(task, phases=phases, completed=None)


def update_phase(task: ScheduleTask, phase_number: int, **changes) -> ScheduleTask:
    allowed = {"start", "end", "description", "completed", "notes"}
    unknown = set(changes) - allowed
    if unknown:
        raise InvalidScheduleEdit(f"Cannot change phase field(s): {', '.join(sorted(unknown))}")
    _get_phase(task, phase_number)
    phases = [
        _make_phase(**{**p.model_dump(exclude={"duration_days"}), **changes})
        if p.phase_number == phase_number else p
        for p in task.phases
    ]
    return _rebuild(task, phases=phases)


def remove_phase(task: ScheduleTask, phase_number: int) -> ScheduleTask:
    """
    Drop a phase and renumber the rest 1..n. Removing the only phase returns
    the task to single-phase mode over that phase's span.
    """
    removed = _get_phase(task, phase_number)
    remaining = [p for p in task.phases if p.phase_number != phase_number]
    if not remaining:
        return _rebuild(task, phases=None, start=removed.start, end=removed.end,
                        completed=removed.completed)
    return _rebuild(task, phases=_renumbered(remaining))


def clear_phases(task: ScheduleTask) -> ScheduleTask:
    """Collapse a phased task back to a single span."""
    if not task.phases:
        return task
    return _rebuild(task, phases=None, start=task.start, end=task.end,
                    completed=task.is_complete)


def split_into_phases(task: ScheduleTask, count: int, gap_days: int = 0) -> ScheduleTask:
    """
    Break a single-span task into `count` consecutive visits of roughly equal
    length, separated by gap_days.
    """
    if count < 1:
        raise InvalidScheduleEdit("Phase count must be at least 1")
    if task.phases:
        raise InvalidScheduleEdit(f"Task {task.id} already has phases")
    total = task.duration_days
    if count > total:
        raise InvalidScheduleEdit(f"Cannot split a {total}-day task into {count} phases")
    base, extra = divmod(total, count)
    phases = []
    cursor = task.start
    for number in range(1, count + 1):
        length = base + (1 if number <= extra else 0)
        phase_end = end_from_duration(cursor, length)
        phases.append(_make_phase(phase_number=number, start=cursor, end=phase_end))
        cursor = phase_end + timedelta(days=1 + gap_days)
    return _rebuild(task, phases=phases, completed=None)


def toggle_phase_completed(task: ScheduleTask, phase_number: int) -> ScheduleTask:
    phase = _get_phase(task, phase_number)
    return update_phase(task, phase_number, completed=not phase.completed)


def set_task_completed(task: ScheduleTask, completed: bool) -> ScheduleTask:
    """Mark the whole task; phased tasks mark every phase."""
    if task.phases:
        phases = [p.model_copy(update={"completed": completed}) for p in task.phases]
        return _rebuild(task, phases=phases)
    return _rebuild(task, completed=completed)


def toggle_task_completed(task: ScheduleTask) -> ScheduleTask:
    return set_task_completed(task, not task.is_complete)


def update_notes(task: ScheduleTask, notes: Optional[str]) -> ScheduleTask:
    return _rebuild(task, notes=notes or None)
