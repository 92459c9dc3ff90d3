# buildsched/preferences.py
"""
Per-project UI preferences: display mode and manual task order.

Reads happen once when a view opens, writes on every change. A failing store
never blocks the schedule: reads fall back to defaults and writes are logged
and dropped.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional, Protocol

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import SQLAlchemyError

from buildsched.database import ui_preferences_table

logger = logging.getLogger(__name__)

DisplayMode = Literal["gantt", "table"]
DISPLAY_MODES = ("gantt", "table")
DEFAULT_DISPLAY_MODE = "gantt"


def view_mode_key(project_id: str) -> str:
    return f"schedule_view_mode_{project_id}"


def task_order_key(project_id: str) -> str:
    return f"schedule_task_order_{project_id}"


class PreferenceStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryPreferenceStore:
    def __init__(self):
        self.values: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value


class SqlPreferenceStore:
    def __init__(self, engine):
        self.engine = engine

    def get(self, key: str) -> Optional[str]:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(ui_preferences_table.c.value).where(ui_preferences_table.c.key == key)
            ).fetchone()
        return row.value if row is not None else None

    def set(self, key: str, value: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(delete(ui_preferences_table).where(ui_preferences_table.c.key == key))
            conn.execute(
                insert(ui_preferences_table),
                {"key": key, "value": value, "updated_at": datetime.now(timezone.utc).isoformat()},
            )


def _safe_get(store: PreferenceStore, key: str) -> Optional[str]:
    try:
        return store.get(key)
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Could not read preference %s: %s", key, exc)
        return None


def _safe_set(store: PreferenceStore, key: str, value: str) -> bool:
    try:
        store.set(key, value)
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Could not save preference %s: %s", key, exc)
        return False
    return True


def get_display_mode(store: PreferenceStore, project_id: str) -> str:
    value = _safe_get(store, view_mode_key(project_id))
    if value not in DISPLAY_MODES:
        return DEFAULT_DISPLAY_MODE
    return value


def set_display_mode(store: PreferenceStore, project_id: str, mode: str) -> bool:
    if mode not in DISPLAY_MODES:
        raise ValueError(f"Unknown display mode: {mode!r}")
    return _safe_set(store, view_mode_key(project_id), mode)


def get_task_order(store: PreferenceStore, project_id: str) -> Optional[List[str]]:
    """Stored order, or None when absent or unreadable."""
    raw = _safe_get(store, task_order_key(project_id))
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except (json.JSONDecodeError, ValueError):
        logger.warning("Ignoring malformed task order for project %s", project_id)
        return None
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        return None
    return value


def set_task_order(store: PreferenceStore, project_id: str, task_ids: List[str]) -> bool:
    return _safe_set(store, task_order_key(project_id), json.dumps(list(task_ids)))
