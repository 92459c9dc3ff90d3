# buildsched/event_handlers.py
import logging

from buildsched.eventing import (
    SCHEDULE_LOAD_FAILED,
    TASK_OPTIMISTICALLY_APPLIED,
    TASK_PERSIST_FAILED,
    TASK_PERSISTED,
    TASKS_RELOADED,
    Event,
    EventManager,
)
from buildsched.notices import NoticeBoard

logger = logging.getLogger(__name__)


def register_notice_handlers(event_manager: EventManager, board: NoticeBoard) -> None:
    """Turn coordinator events into notices on the given board."""

    def task_persisted_handler(event: Event):
        name = event.payload.get("task_name") or event.payload.get("task_id")
        board.success("Schedule updated", f"{name} saved")
        logger.info("Task %s persisted", event.payload.get("task_id"))

    def task_persist_failed_handler(event: Event):
        name = event.payload.get("task_name") or event.payload.get("task_id")
        board.failure(
            "Failed to update schedule",
            f"Changes to {name} could not be saved and were reverted. {event.payload.get('error', '')}".strip(),
        )

    def schedule_load_failed_handler(event: Event):
        board.failure("Failed to load schedule", event.payload.get("error", ""))

    def tasks_reloaded_handler(event: Event):
        logger.debug("Reloaded %s tasks for project %s",
                     event.payload.get("count"), event.payload.get("project_id"))

    def task_applied_handler(event: Event):
        logger.debug("Applied local edit to task %s", event.payload.get("task_id"))

    event_manager.add_listener(TASK_PERSISTED, task_persisted_handler)
    event_manager.add_listener(TASK_PERSIST_FAILED, task_persist_failed_handler)
    event_manager.add_listener(SCHEDULE_LOAD_FAILED, schedule_load_failed_handler)
    event_manager.add_listener(TASKS_RELOADED, tasks_reloaded_handler)
    event_manager.add_listener(TASK_OPTIMISTICALLY_APPLIED, task_applied_handler)
