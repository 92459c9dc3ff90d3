# buildsched/anomalies.py
"""
Schedule warnings.

Each rule is an independent function taking the current task list and
returning ScheduleWarning objects. New heuristics are added by writing another
rule and listing it in build_rules; existing rules never need to change.
Warnings are recomputed from scratch on every task-set change.
"""
import functools
import logging
from datetime import date
from typing import Callable, Iterable, List, Optional, Sequence

from pydantic import BaseModel

from buildsched.config import settings
from buildsched.graph import DependencyGraph, earliest_start
from buildsched.models import ScheduleTask, ScheduleWarning, Severity
from buildsched.progress import is_task_overdue
from buildsched.sequences import CONSTRUCTION_SEQUENCES, identify_trade
from buildsched.utils import format_date

logger = logging.getLogger(__name__)

Rule = Callable[[Sequence[ScheduleTask]], List[ScheduleWarning]]

FINISHING_KEYWORDS = ("paint",)
ROUGH_KEYWORDS = ("drywall",)


def _matches(task: ScheduleTask, keywords: Iterable[str]) -> bool:
    name = task.name.lower()
    return any(keyword in name for keyword in keywords)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def finishing_before_rough(
    tasks: Sequence[ScheduleTask],
    finishing_keywords: Sequence[str] = FINISHING_KEYWORDS,
    rough_keywords: Sequence[str] = ROUGH_KEYWORDS,
) -> List[ScheduleWarning]:
    """
    A finishing-trade task (paint) that starts before the base-scope rough
    trade (drywall) has finished. Compared against the latest-ending rough task.
    """
    warnings = []
    rough_tasks = [t for t in tasks if not t.is_change_order and _matches(t, rough_keywords)]
    for task in tasks:
        if not _matches(task, finishing_keywords):
            continue
        candidates = [t for t in rough_tasks if t.id != task.id]
        if not candidates:
            continue
        rough = max(candidates, key=lambda t: t.end)
        # End dates are inclusive, so starting on the rough task's last day still overlaps.
        if task.start <= rough.end:
            warnings.append(ScheduleWarning(
                id=f"finish-before-rough-{task.id}",
                severity=Severity.WARNING,
                message=f'"{task.name}" starts before "{rough.name}" is complete',
                task_id=task.id,
                task_name=task.name,
                can_dismiss=True,
                suggestion=f'Start after {format_date(rough.end)}, when "{rough.name}" finishes',
                related_task_ids=[rough.id],
            ))
    return warnings


def dependency_cycles(tasks: Sequence[ScheduleTask]) -> List[ScheduleWarning]:
    graph = DependencyGraph(tasks)
    warnings = []
    for group in graph.cycles():
        names = [graph.tasks[task_id].name for task_id in group]
        first = graph.tasks[group[0]]
        warnings.append(ScheduleWarning(
            id="dependency-cycle-" + "-".join(group),
            severity=Severity.ERROR,
            message="Circular dependency between " + ", ".join(f'"{n}"' for n in names),
            task_id=first.id,
            task_name=first.name,
            can_dismiss=False,
            suggestion="Remove one of the dependencies in this loop; it is ignored for the critical path",
            related_task_ids=group[1:],
        ))
    return warnings


def dependency_overlap(tasks: Sequence[ScheduleTask]) -> List[ScheduleWarning]:
    warnings = []
    for task in tasks:
        if not task.dependencies:
            continue
        earliest = earliest_start(task, tasks)
        if task.start < earliest:
            days = (earliest - task.start).days
            warnings.append(ScheduleWarning(
                id=f"dep-overlap-{task.id}",
                severity=Severity.WARNING,
                message=f'"{task.name}" starts before dependencies are complete',
                task_id=task.id,
                task_name=task.name,
                can_dismiss=True,
                suggestion=f"Consider moving start date {days} day(s) later to {format_date(earliest)}",
            ))
    return warnings


def _sequence_violation(first: ScheduleTask, second: ScheduleTask) -> Optional[str]:
    trade_a = identify_trade(first.name)
    trade_b = identify_trade(second.name)
    if not trade_a or not trade_b:
        return None
    config = CONSTRUCTION_SEQUENCES[trade_a]
    if trade_b in config.before and first.start > second.start:
        return f"{trade_a} typically must be completed before {trade_b}"
    if trade_b in config.after and first.start < second.start:
        return f"{trade_a} typically requires {trade_b} to be completed first"
    return None


def construction_sequence(tasks: Sequence[ScheduleTask]) -> List[ScheduleWarning]:
    warnings = []
    for task in tasks:
        if identify_trade(task.name) is None:
            continue
        for other in tasks:
            if other.id == task.id:
                continue
            reason = _sequence_violation(task, other)
            if reason:
                warnings.append(ScheduleWarning(
                    id=f"sequence-{task.id}-{other.id}",
                    severity=Severity.WARNING,
                    message=f'"{task.name}" has unusual sequencing with "{other.name}". {reason}',
                    task_id=task.id,
                    task_name=task.name,
                    can_dismiss=True,
                    suggestion="Review construction sequence or add dependency",
                    related_task_ids=[other.id],
                ))
    return warnings


def suggested_dependencies(task: ScheduleTask, tasks: Sequence[ScheduleTask]) -> List[tuple]:
    """(task_id, reason) pairs for trades that usually precede this task's trade."""
    trade = identify_trade(task.name)
    if trade is None:
        return []
    suggestions = []
    for required in CONSTRUCTION_SEQUENCES[trade].after:
        match = next(
            (t for t in tasks if t.id != task.id and identify_trade(t.name) == required),
            None,
        )
        if match is not None:
            suggestions.append((match.id, f"{trade} typically requires {required} to be completed first"))
    return suggestions


def missing_dependencies(tasks: Sequence[ScheduleTask]) -> List[ScheduleWarning]:
    warnings = []
    for task in tasks:
        existing = set(task.dependency_ids())
        missing = [s for s in suggested_dependencies(task, tasks) if s[0] not in existing]
        if missing:
            warnings.append(ScheduleWarning(
                id=f"missing-deps-{task.id}",
                severity=Severity.INFO,
                message=f'"{task.name}" may need additional dependencies',
                task_id=task.id,
                task_name=task.name,
                can_dismiss=True,
                suggestion=". ".join(reason for _, reason in missing),
                related_task_ids=[task_id for task_id, _ in missing],
            ))
    return warnings


def change_order_timing(tasks: Sequence[ScheduleTask]) -> List[ScheduleWarning]:
    warnings = []
    for task in tasks:
        if not task.is_change_order:
            continue
        base = [t for t in tasks if not t.is_change_order and t.category == task.category]
        if not base:
            continue
        earliest_base = min(base, key=lambda t: t.start)
        if task.start < earliest_base.start:
            days = (earliest_base.start - task.start).days
            warnings.append(ScheduleWarning(
                id=f"co-timing-{task.id}",
                severity=Severity.INFO,
                message=f'Change order "{task.name}" is scheduled {days} day(s) before related base work',
                task_id=task.id,
                task_name=task.name,
                can_dismiss=True,
                suggestion="Verify this timing is intentional",
                related_task_ids=[earliest_base.id],
            ))
    return warnings


def overdue_tasks(tasks: Sequence[ScheduleTask], today: Optional[date] = None) -> List[ScheduleWarning]:
    today = today or date.today()
    return [
        ScheduleWarning(
            id=f"overdue-{task.id}",
            severity=Severity.ERROR,
            message=f'"{task.name}" is overdue. Scheduled completion: {format_date(task.end)}',
            task_id=task.id,
            task_name=task.name,
            can_dismiss=False,
            suggestion="Adjust schedule or update task progress",
        )
        for task in tasks
        if is_task_overdue(task, today)
    ]


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class WarningOptions(BaseModel):
    unusual_sequence: bool = False
    dependency_overlap: bool = True
    change_order_timing: bool = False
    overdue: bool = False
    missing_dependencies: bool = False

    @classmethod
    def from_settings(cls, source=None) -> "WarningOptions":
        source = source or settings
        return cls(
            unusual_sequence=source.WARN_SEQUENCE,
            dependency_overlap=source.WARN_DEPENDENCY_OVERLAP,
            change_order_timing=source.WARN_CHANGE_ORDER_TIMING,
            overdue=source.WARN_OVERDUE,
            missing_dependencies=source.WARN_MISSING_DEPENDENCIES,
        )


def build_rules(options: Optional[WarningOptions] = None, today: Optional[date] = None) -> List[Rule]:
    options = options or WarningOptions()
    rules: List[Rule] = [finishing_before_rough, dependency_cycles]
    if options.dependency_overlap:
        rules.append(dependency_overlap)
    if options.unusual_sequence:
        rules.append(construction_sequence)
    if options.missing_dependencies:
        rules.append(missing_dependencies)
    if options.change_order_timing:
        rules.append(change_order_timing)
    if options.overdue:
        rules.append(functools.partial(overdue_tasks, today=today))
    return rules


def generate_warnings(
    tasks: Sequence[ScheduleTask],
    rules: Optional[Sequence[Rule]] = None,
) -> List[ScheduleWarning]:
    """Run every rule; the first warning with a given id wins."""
    tasks = list(tasks)
    rules = rules if rules is not None else build_rules()
    collected = {}
    for rule in rules:
        for warning in rule(tasks):
            collected.setdefault(warning.id, warning)
    logger.debug("Generated %s schedule warnings for %s tasks", len(collected), len(tasks))
    return list(collected.values())


class WarningDismissals:
    """
    Client-side suppression keyed by warning id. Tasks are never mutated, and
    the set lives only as long as the view that owns it.
    """

    def __init__(self):
        self._dismissed = set()

    def dismiss(self, warning_id: str) -> None:
        self._dismissed.add(warning_id)

    def is_dismissed(self, warning_id: str) -> bool:
        return warning_id in self._dismissed

    def visible(self, warnings: Iterable[ScheduleWarning]) -> List[ScheduleWarning]:
        return [w for w in warnings if not (w.can_dismiss and w.id in self._dismissed)]

    def reset(self) -> None:
        self._dismissed.clear()
