# buildsched/service.py
"""
Schedule view assembly and per-project session state shared by the API and
the CLI. The read path runs builder -> progress -> critical path -> warnings;
writes go through one RescheduleCoordinator per project.
"""
import logging
import threading
from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel

from buildsched.anomalies import WarningDismissals, WarningOptions, build_rules, generate_warnings
from buildsched.coordinator import RescheduleCoordinator
from buildsched.event_handlers import register_notice_handlers
from buildsched.eventing import EventManager
from buildsched.graph import CriticalPathResult, critical_path, project_duration
from buildsched.models import ProjectInfo, ScheduleTask, ScheduleWarning
from buildsched.notices import NoticeBoard
from buildsched.ordering import ManualOrder
from buildsched.preferences import (
    SqlPreferenceStore,
    get_display_mode,
    get_task_order,
    set_display_mode,
    set_task_order,
)
from buildsched.progress import ScheduleStats, schedule_stats
from buildsched.repository import SqlScheduleRepository

logger = logging.getLogger(__name__)


class ScheduleView(BaseModel):
    project: ProjectInfo
    tasks: List[ScheduleTask]
    critical_path: CriticalPathResult
    duration_days: int
    warnings: List[ScheduleWarning]
    stats: ScheduleStats
    display_mode: str = "gantt"
    task_order: List[str] = []


class ScheduleService:
    def __init__(
        self,
        engine,
        warning_options: Optional[WarningOptions] = None,
        today: Optional[date] = None,
        debounce_seconds: Optional[float] = None,
        grace_seconds: Optional[float] = None,
        repository=None,
        preferences=None,
    ):
        self.engine = engine
        self.repository = repository or SqlScheduleRepository(engine)
        self.preferences = preferences or SqlPreferenceStore(engine)
        self.warning_options = warning_options or WarningOptions.from_settings()
        self.today = today
        self.debounce_seconds = debounce_seconds
        self.grace_seconds = grace_seconds
        self.event_manager = EventManager()
        self.notices = NoticeBoard()
        register_notice_handlers(self.event_manager, self.notices)
        self._lock = threading.Lock()
        self._coordinators: Dict[str, RescheduleCoordinator] = {}
        self._dismissals: Dict[str, WarningDismissals] = {}

    def coordinator(self, project_id: str) -> RescheduleCoordinator:
        """Session for a project, loaded from the store on first use."""
        with self._lock:
            existing = self._coordinators.get(project_id)
        if existing is not None:
            return existing
        coordinator = RescheduleCoordinator(
            project_id,
            self.repository,
            event_manager=self.event_manager,
            debounce_seconds=self.debounce_seconds,
            grace_seconds=self.grace_seconds,
            today=self.today,
        )
        coordinator.load()
        with self._lock:
            return self._coordinators.setdefault(project_id, coordinator)

    def reload(self, project_id: str) -> List[ScheduleTask]:
        return self.coordinator(project_id).load()

    def dismissals(self, project_id: str) -> WarningDismissals:
        with self._lock:
            return self._dismissals.setdefault(project_id, WarningDismissals())

    # ------------------------------------------------------------------

    def all_warnings(self, project_id: str) -> List[ScheduleWarning]:
        tasks = self.coordinator(project_id).tasks
        return generate_warnings(tasks, build_rules(self.warning_options, today=self.today))

    def warnings(self, project_id: str) -> List[ScheduleWarning]:
        return self.dismissals(project_id).visible(self.all_warnings(project_id))

    def dismiss_warning(self, project_id: str, warning_id: str) -> List[ScheduleWarning]:
        self.dismissals(project_id).dismiss(warning_id)
        return self.warnings(project_id)

    def manual_order(self, project_id: str) -> ManualOrder:
        tasks = self.coordinator(project_id).tasks
        stored = get_task_order(self.preferences, project_id)
        if stored is None:
            return ManualOrder.initialize(tasks)
        return ManualOrder(stored).reconcile(tasks)

    def move_task(self, project_id: str, task_id: str, direction: str) -> ManualOrder:
        self.coordinator(project_id).get_task(task_id)
        order = self.manual_order(project_id)
        if direction == "up":
            moved = order.move_up(task_id)
        elif direction == "down":
            moved = order.move_down(task_id)
        else:
            raise ValueError(f"Unknown direction: {direction!r}")
        if moved:
            set_task_order(self.preferences, project_id, order.task_ids)
        return order

    def display_mode(self, project_id: str) -> str:
        return get_display_mode(self.preferences, project_id)

    def set_display_mode(self, project_id: str, mode: str) -> str:
        set_display_mode(self.preferences, project_id, mode)
        return mode

    def ordered_tasks(self, project_id: str, manual: bool = True) -> List[ScheduleTask]:
        tasks = self.coordinator(project_id).tasks
        if not manual:
            return tasks
        return self.manual_order(project_id).apply(tasks)

    def view(self, project_id: str, manual_order: bool = True) -> ScheduleView:
        coordinator = self.coordinator(project_id)
        tasks = coordinator.tasks
        order = self.manual_order(project_id)
        return ScheduleView(
            project=coordinator.project,
            tasks=order.apply(tasks) if manual_order else tasks,
            critical_path=critical_path(tasks),
            duration_days=project_duration(tasks),
            warnings=self.warnings(project_id),
            stats=schedule_stats(tasks),
            display_mode=self.display_mode(project_id),
            task_order=order.task_ids,
        )

    def flush(self, project_id: Optional[str] = None) -> None:
        with self._lock:
            coordinators = list(self._coordinators.items())
        for key, coordinator in coordinators:
            if project_id is None or key == project_id:
                coordinator.flush()

    def close(self) -> None:
        with self._lock:
            coordinators = list(self._coordinators.values())
            self._coordinators.clear()
        for coordinator in coordinators:
            coordinator.close()
        logger.debug("Closed %s schedule sessions", len(coordinators))
