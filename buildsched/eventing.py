# buildsched/eventing.py
import logging

logger = logging.getLogger(__name__)

TASK_OPTIMISTICALLY_APPLIED = "task_optimistically_applied"
TASK_PERSISTED = "task_persisted"
TASK_PERSIST_FAILED = "task_persist_failed"
TASKS_RELOADED = "tasks_reloaded"
SCHEDULE_LOAD_FAILED = "schedule_load_failed"


class Event:
    def __init__(self, event_type: str, payload: dict = None):
        self.event_type = event_type
        self.payload = payload or {}

    def __repr__(self):
        return f"Event({self.event_type!r}, {self.payload!r})"


class EventManager:
    """Synchronous listener registry."""

    def __init__(self):
        self.listeners = {}

    def add_listener(self, event_type: str, listener):
        if event_type not in self.listeners:
            self.listeners[event_type] = []
        self.listeners[event_type].append(listener)

    def remove_listener(self, event_type: str, listener):
        if event_type in self.listeners:
            self.listeners[event_type].remove(listener)

    def emit(self, event: Event):
        for listener in list(self.listeners.get(event.event_type, [])):
            try:
                listener(event)
            except Exception:
                # Logged only; the edit that raised the event stands.
                logger.exception("Listener %r failed for %s", listener, event.event_type)
