# buildsched/ordering.py
"""
Manual display order for the task list. Only presentation is affected:
dates, dependencies and the critical path never read this order.
"""
from typing import Iterable, List, Optional, Sequence

from buildsched.models import ScheduleTask


class ManualOrder:
    def __init__(self, task_ids: Optional[Sequence[str]] = None):
        self._order: List[str] = list(dict.fromkeys(task_ids or []))

    @classmethod
    def initialize(cls, tasks: Iterable[ScheduleTask]) -> "ManualOrder":
        """Start from the natural task order."""
        return cls([t.id for t in tasks])

    @property
    def task_ids(self) -> List[str]:
        return list(self._order)

    def reconcile(self, tasks: Iterable[ScheduleTask]) -> "ManualOrder":
        """
        Drop ids that no longer exist and append new tasks in their natural
        order. Returns self.
        """
        current = [t.id for t in tasks]
        known = set(current)
        kept = [task_id for task_id in self._order if task_id in known]
        seen = set(kept)
        self._order = kept + [task_id for task_id in current if task_id not in seen]
        return self

    def move_up(self, task_id: str) -> bool:
        index = self._index(task_id)
        if index is None or index == 0:
            return False
        self._order[index - 1], self._order[index] = self._order[index], self._order[index - 1]
        return True

    def move_down(self, task_id: str) -> bool:
        index = self._index(task_id)
        if index is None or index >= len(self._order) - 1:
            return False
        self._order[index + 1], self._order[index] = self._order[index], self._order[index + 1]
        return True

    def apply(self, tasks: Iterable[ScheduleTask]) -> List[ScheduleTask]:
        """Tasks sorted by this order; ids missing from it keep their relative order at the end."""
        tasks = list(tasks)
        position = {task_id: i for i, task_id in enumerate(self._order)}
        fallback = len(position)
        return sorted(tasks, key=lambda t: position.get(t.id, fallback))

    def _index(self, task_id: str) -> Optional[int]:
        try:
            return self._order.index(task_id)
        except ValueError:
            return None

    def __eq__(self, other):
        return isinstance(other, ManualOrder) and other._order == self._order

    def __repr__(self):
        return f"ManualOrder({self._order!r})"
