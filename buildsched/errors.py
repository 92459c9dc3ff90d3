# buildsched/errors.py


class ScheduleError(Exception):
    """Base class for every error raised by the scheduling engine."""


class ScheduleLoadError(ScheduleError):
    """A read from the backing store failed; the schedule is unavailable or stale."""


class PersistenceError(ScheduleError):
    """A task write was rejected or could not reach the backing store."""


class TaskNotFoundError(ScheduleError):
    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class InvalidScheduleEdit(ScheduleError):
    """An edit that would break a task invariant (dates, phases, dependencies)."""


class ProjectNotFoundError(ScheduleLoadError):
    def __init__(self, project_id: str):
        super().__init__(f"Project not found: {project_id}")
        self.project_id = project_id
