# buildsched/coordinator.py
"""
Interactive reschedule coordinator.

Every edit is applied to the local task list first and is visible at once.
The write to the store follows: gesture edits (drag/resize) are debounced per
task so a burst collapses into one write carrying the latest dates, explicit
saves are written immediately. A failed write discards local state by
reloading the whole task set from the store (rollback-by-reload) and posts a
failure notice through the event manager.

Per-task life cycle:

    Idle -> Editing -> OptimisticallyApplied -> Persisting -> Confirmed
                                                           -> RolledBack
"""
import logging
import threading
from datetime import date
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from buildsched.builder import build_tasks, find_task, task_to_update
from buildsched.config import settings
from buildsched.errors import (
    InvalidScheduleEdit,
    PersistenceError,
    ScheduleLoadError,
    TaskNotFoundError,
)
from buildsched.eventing import (
    SCHEDULE_LOAD_FAILED,
    TASK_OPTIMISTICALLY_APPLIED,
    TASK_PERSIST_FAILED,
    TASK_PERSISTED,
    TASKS_RELOADED,
    Event,
    EventManager,
)
from buildsched.graph import toggle_dependency
from buildsched.models import ProjectInfo, ScheduleTask
from buildsched.phases import reschedule_phase, reschedule_task, toggle_phase_completed, toggle_task_completed
from buildsched.progress import apply_progress, refresh_task_progress
from buildsched.repository import ScheduleRepository

logger = logging.getLogger(__name__)

PHASE_ID_SEPARATOR = "_phase_"


class EditState(str, Enum):
    IDLE = "idle"
    EDITING = "editing"
    OPTIMISTICALLY_APPLIED = "optimistically_applied"
    PERSISTING = "persisting"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"


class RescheduleCoordinator:
    def __init__(
        self,
        project_id: str,
        repository: ScheduleRepository,
        event_manager: Optional[EventManager] = None,
        debounce_seconds: Optional[float] = None,
        grace_seconds: Optional[float] = None,
        today: Optional[date] = None,
        default_duration: Optional[int] = None,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        self.project_id = project_id
        self.repository = repository
        self.event_manager = event_manager or EventManager()
        self.debounce_seconds = settings.DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        self.grace_seconds = settings.DRAG_GRACE_SECONDS if grace_seconds is None else grace_seconds
        self.today = today
        self.default_duration = default_duration
        self._timer_factory = timer_factory

        self._lock = threading.RLock()
        self.project: Optional[ProjectInfo] = None
        self.load_error: Optional[str] = None
        self._tasks: List[ScheduleTask] = []
        self._confirmed: List[ScheduleTask] = []
        self._states: Dict[str, EditState] = {}
        # Latest local intent per task that has not been handed to the store yet.
        self._pending: Dict[str, ScheduleTask] = {}
        # Edits handed to the store whose write has not returned yet.
        self._in_flight: Dict[str, ScheduleTask] = {}
        self._timers: Dict[str, threading.Timer] = {}
        self._dragging: Optional[str] = None
        self._interaction = False
        self._grace_timer: Optional[threading.Timer] = None

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def tasks(self) -> List[ScheduleTask]:
        with self._lock:
            return list(self._tasks)

    @property
    def confirmed_tasks(self) -> List[ScheduleTask]:
        with self._lock:
            return list(self._confirmed)

    @property
    def has_pending_writes(self) -> bool:
        with self._lock:
            return bool(self._pending)

    def state_of(self, task_id: str) -> EditState:
        with self._lock:
            return self._states.get(task_id, EditState.IDLE)

    def get_task(self, task_id: str) -> ScheduleTask:
        with self._lock:
            task = find_task(self._tasks, task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def _read_store(self) -> List[ScheduleTask]:
        snapshot = self.repository.load_snapshot(self.project_id)
        tasks = build_tasks(snapshot, today=self.today, default_duration=self.default_duration)
        tasks = apply_progress(tasks, snapshot.correlations)
        self.project = snapshot.project
        return tasks

    def load(self) -> List[ScheduleTask]:
        """
        Replace local state with a fresh read, keeping edits whose write is
        pending or in flight. On failure the previous task list is kept and
        ScheduleLoadError propagates for a retry.
        """
        try:
            tasks = self._read_store()
        except ScheduleLoadError as exc:
            self.load_error = str(exc)
            logger.error("Schedule load failed for project %s: %s", self.project_id, exc)
            self._emit(SCHEDULE_LOAD_FAILED, error=str(exc))
            raise
        with self._lock:
            self.load_error = None
            self._confirmed = list(tasks)
            tasks = self._overlay_local_edits(tasks)
            self._tasks = tasks
            self._states = {
                task_id: state for task_id, state in self._states.items()
                if task_id in self._pending or task_id in self._in_flight
            }
        self._emit(TASKS_RELOADED, count=len(tasks))
        return tasks

    # ------------------------------------------------------------------
    # Drag gestures
    # ------------------------------------------------------------------

    def resolve_task_id(self, raw_id: str) -> Tuple[str, Optional[int]]:
        """Map a timeline bar id to (task id, phase number). Phase bars use '<task>_phase_<n>'."""
        with self._lock:
            if find_task(self._tasks, raw_id) is not None:
                return raw_id, None
        base, sep, number = raw_id.rpartition(PHASE_ID_SEPARATOR)
        if sep and number.isdigit():
            return base, int(number)
        return raw_id, None

    def begin_drag(self, raw_id: str) -> None:
        task_id, _ = self.resolve_task_id(raw_id)
        self.get_task(task_id)
        with self._lock:
            self._cancel_grace_timer()
            self._interaction = True
            self._dragging = task_id
            self._states[task_id] = EditState.EDITING

    def cancel_drag(self) -> None:
        """A drag released without a date change."""
        with self._lock:
            if self._dragging and self._states.get(self._dragging) is EditState.EDITING:
                self._states[self._dragging] = EditState.IDLE
            self._dragging = None
            self._start_grace_timer()

    def end_drag(self, raw_id: str, start: date, end: date) -> ScheduleTask:
        """
        Apply the provisional dates locally right away, then schedule a
        debounced write. Dragging a phase bar moves only that phase.
        """
        task_id, phase_number = self.resolve_task_id(raw_id)
        with self._lock:
            self._dragging = None
            self._start_grace_timer()
            task = find_task(self._tasks, task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            try:
                if phase_number is not None:
                    updated = reschedule_phase(task, phase_number, start, end)
                else:
                    updated = reschedule_task(task, start, end)
            except InvalidScheduleEdit:
                if self._states.get(task_id) is EditState.EDITING:
                    self._states[task_id] = EditState.IDLE
                raise
            updated = refresh_task_progress(updated)
            self._replace(updated)
            self._pending[task_id] = updated
            self._states[task_id] = EditState.OPTIMISTICALLY_APPLIED
            self._schedule_persist(task_id)
        self._emit(TASK_OPTIMISTICALLY_APPLIED, task_id=task_id, task_name=updated.name)
        return updated

    def should_open_details(self, raw_id: str) -> bool:
        """False while a drag is running and for a short grace period after it ends."""
        task_id, _ = self.resolve_task_id(raw_id)
        with self._lock:
            if find_task(self._tasks, task_id) is None:
                return False
            return not self._interaction

    @property
    def interaction_in_progress(self) -> bool:
        with self._lock:
            return self._interaction

    def _start_grace_timer(self) -> None:
        self._cancel_grace_timer()
        if self.grace_seconds <= 0:
            self._interaction = False
            return
        timer = self._timer_factory(self.grace_seconds, self._end_interaction)
        timer.daemon = True
        self._grace_timer = timer
        timer.start()

    def _cancel_grace_timer(self) -> None:
        if self._grace_timer is not None:
            self._grace_timer.cancel()
            self._grace_timer = None

    def _end_interaction(self) -> None:
        with self._lock:
            self._grace_timer = None
            if self._dragging is None:
                self._interaction = False

    # ------------------------------------------------------------------
    # Explicit edits
    # ------------------------------------------------------------------

    def save_task(self, task: ScheduleTask) -> ScheduleTask:
        """
        Apply a full task edit locally and write it immediately. Raises
        PersistenceError after rolling back if the store rejects it.
        """
        with self._lock:
            current = find_task(self._tasks, task.id)
            if current is None:
                raise TaskNotFoundError(task.id)
            if task.kind is not current.kind or task.change_order_number != current.change_order_number:
                raise InvalidScheduleEdit(f"Task {task.id} cannot change its source line item")
            updated = refresh_task_progress(task)
            self._replace(updated)
            # An explicit save supersedes any debounced gesture for the same task.
            self._cancel_timer(task.id)
            self._pending.pop(task.id, None)
            self._states[task.id] = EditState.OPTIMISTICALLY_APPLIED
        self._emit(TASK_OPTIMISTICALLY_APPLIED, task_id=task.id, task_name=updated.name)
        error = self._persist(updated)
        if error is not None:
            raise PersistenceError(f"Could not save task {task.id}: {error}") from error
        return updated

    def edit_task(self, task_id: str, edit: Callable[..., ScheduleTask], *args, **kwargs) -> ScheduleTask:
        """Run a pure task edit (see buildsched.phases) against the current task and save it."""
        return self.save_task(edit(self.get_task(task_id), *args, **kwargs))

    def toggle_completion(self, task_id: str, phase_number: Optional[int] = None) -> ScheduleTask:
        if phase_number is not None:
            return self.edit_task(task_id, toggle_phase_completed, phase_number)
        return self.edit_task(task_id, toggle_task_completed)

    def toggle_dependency(self, task_id: str, target_id: str) -> ScheduleTask:
        target = self.get_task(target_id)
        return self.edit_task(task_id, toggle_dependency, target)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _schedule_persist(self, task_id: str) -> None:
        self._cancel_timer(task_id)
        timer = self._timer_factory(self.debounce_seconds, self._fire, args=(task_id,))
        timer.daemon = True
        self._timers[task_id] = timer
        timer.start()

    def _cancel_timer(self, task_id: str) -> None:
        timer = self._timers.pop(task_id, None)
        if timer is not None:
            timer.cancel()

    def _fire(self, task_id: str) -> None:
        with self._lock:
            self._timers.pop(task_id, None)
            task = self._pending.pop(task_id, None)
        if task is not None:
            self._persist(task)

    def _persist(self, task: ScheduleTask) -> Optional[PersistenceError]:
        with self._lock:
            self._states[task.id] = EditState.PERSISTING
            self._in_flight[task.id] = task
        try:
            self.repository.persist_task(task_to_update(task))
        except PersistenceError as exc:
            logger.error("Persisting task %s failed: %s", task.id, exc)
            with self._lock:
                self._finish_write(task)
            self._rollback(task, exc)
            return exc
        with self._lock:
            self._finish_write(task)
            self._confirmed = [task if t.id == task.id else t for t in self._confirmed]
            # A reload during the write may have replaced the local copy.
            if task.id not in self._pending and task.id not in self._in_flight:
                self._replace(task)
                self._states[task.id] = EditState.CONFIRMED
        self._emit(TASK_PERSISTED, task_id=task.id, task_name=task.name)
        return None

    def _rollback(self, failed: ScheduleTask, error: Exception) -> None:
        try:
            fresh = self._read_store()
        except ScheduleLoadError as exc:
            logger.error("Reload after failed write also failed: %s", exc)
            with self._lock:
                self.load_error = str(exc)
                fresh = list(self._confirmed)
        else:
            with self._lock:
                self.load_error = None
                self._confirmed = list(fresh)

        with self._lock:
            tasks = self._overlay_local_edits(fresh)
            self._tasks = tasks
            if failed.id not in self._pending and failed.id not in self._in_flight:
                self._states[failed.id] = EditState.ROLLED_BACK
        self._emit(TASK_PERSIST_FAILED, task_id=failed.id, task_name=failed.name, error=str(error))
        self._emit(TASKS_RELOADED, count=len(tasks))

    def flush(self) -> None:
        """Write every pending debounced edit now."""
        with self._lock:
            task_ids = list(self._timers)
            for task_id in task_ids:
                self._cancel_timer(task_id)
        for task_id in task_ids:
            self._fire(task_id)

    def close(self, flush: bool = True) -> None:
        if flush:
            self.flush()
        with self._lock:
            for task_id in list(self._timers):
                self._cancel_timer(task_id)
            if self._pending:
                logger.warning("Discarding %s unsaved edits", len(self._pending))
            self._pending.clear()
            self._cancel_grace_timer()
            self._interaction = False
            self._dragging = None

    # ------------------------------------------------------------------

    def _finish_write(self, task: ScheduleTask) -> None:
        if self._in_flight.get(task.id) is task:
            del self._in_flight[task.id]

    def _overlay_local_edits(self, fresh: List[ScheduleTask]) -> List[ScheduleTask]:
        """
        Lay edits the store has not confirmed yet over a fresh read, so sibling
        tasks keep their local intent. Pending edits are newer than in-flight ones.
        """
        fresh_ids = {t.id for t in fresh}
        for task_id in list(self._pending):
            if task_id not in fresh_ids:
                self._pending.pop(task_id)
                self._cancel_timer(task_id)
        local = dict(self._in_flight)
        local.update(self._pending)
        return [local.get(t.id, t) for t in fresh]

    def _replace(self, task: ScheduleTask) -> None:
        self._tasks = [task if t.id == task.id else t for t in self._tasks]

    def _emit(self, event_type: str, **payload) -> None:
        payload.setdefault("project_id", self.project_id)
        self.event_manager.emit(Event(event_type, payload))
