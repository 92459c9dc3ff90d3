# buildsched/project_management.py
"""
Helpers for maintaining projects and their approved scope in the store.
Used by the CLI, the API and test fixtures to seed data.
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import insert, update

from buildsched.database import (
    change_order_line_items_table,
    change_orders_table,
    correlations_table,
    estimate_line_items_table,
    estimates_table,
    projects_table,
)
from buildsched.errors import ProjectNotFoundError, ScheduleError
from buildsched.utils import format_date, require_date

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def try_parse_date(date_str) -> str:
    """
    Accept common user-supplied formats ('2024-06-01', '6/1/2024',
    '2024-06-01 08:00:00') and return the 'YYYY-MM-DD' string for storage.
    """
    return format_date(require_date(date_str, "date"))


def _optional_date(value) -> Optional[str]:
    if value is None or value == "":
        return None
    return try_parse_date(value)


def create_project(
    engine,
    project_name: str,
    project_id: Optional[str] = None,
    start_date=None,
    end_date=None,
) -> str:
    project_id = project_id or str(uuid.uuid4())
    with engine.begin() as conn:
        conn.execute(
            insert(projects_table),
            {
                "id": project_id,
                "project_name": project_name,
                "created_at": _now(),
                "start_date": _optional_date(start_date),
                "end_date": _optional_date(end_date),
            },
        )
    logger.info("Created project %s (%s)", project_name, project_id)
    return project_id


def _set_project_field(engine, project_id: str, **values) -> None:
    with engine.begin() as conn:
        result = conn.execute(
            update(projects_table).where(projects_table.c.id == project_id).values(**values)
        )
    if result.rowcount == 0:
        raise ProjectNotFoundError(project_id)


def set_project_start_date(engine, project_id: str, user_date_str: str) -> str:
    iso_date = try_parse_date(user_date_str)
    _set_project_field(engine, project_id, start_date=iso_date)
    logger.info("Project start date for %s set to %s", project_id, iso_date)
    return iso_date


def set_project_end_date(engine, project_id: str, user_date_str: str) -> str:
    iso_date = try_parse_date(user_date_str)
    _set_project_field(engine, project_id, end_date=iso_date)
    logger.info("Project end date for %s set to %s", project_id, iso_date)
    return iso_date


def _line_item_row(item: dict, parent_key: str, parent_id: str, position: int) -> dict:
    quantity = item.get("quantity", 1.0)
    cost_per_unit = item.get("cost_per_unit", 0.0)
    total_cost = item.get("total_cost")
    if total_cost is None:
        total_cost = (quantity or 0.0) * (cost_per_unit or 0.0)
    dependencies = item.get("dependencies")
    if dependencies is not None and not isinstance(dependencies, str):
        dependencies = json.dumps(dependencies)
    schedule_notes = item.get("schedule_notes")
    if isinstance(schedule_notes, dict):
        schedule_notes = json.dumps(schedule_notes)
    return {
        "id": item.get("id") or str(uuid.uuid4()),
        parent_key: parent_id,
        "category": item.get("category", "other"),
        "description": item.get("description"),
        "quantity": quantity,
        "cost_per_unit": cost_per_unit,
        "total_cost": total_cost,
        "sort_order": item.get("sort_order", position),
        "scheduled_start_date": _optional_date(item.get("scheduled_start_date")),
        "scheduled_end_date": _optional_date(item.get("scheduled_end_date")),
        "duration_days": item.get("duration_days"),
        "dependencies": dependencies,
        "is_milestone": bool(item.get("is_milestone", False)),
        "schedule_notes": schedule_notes,
    }


def add_estimate(
    engine,
    project_id: str,
    line_items: Iterable[dict],
    status: str = "approved",
    estimate_number: Optional[str] = None,
    created_at: Optional[str] = None,
    estimate_id: Optional[str] = None,
) -> str:
    estimate_id = estimate_id or str(uuid.uuid4())
    with engine.begin() as conn:
        conn.execute(
            insert(estimates_table),
            {
                "id": estimate_id,
                "project_id": project_id,
                "estimate_number": estimate_number or estimate_id[:8],
                "status": status,
                "created_at": created_at or _now(),
            },
        )
        rows = [
            _line_item_row(item, "estimate_id", estimate_id, position)
            for position, item in enumerate(line_items)
        ]
        if rows:
            conn.execute(insert(estimate_line_items_table), rows)
    logger.info("Added %s estimate %s with %s line items", status, estimate_id, len(rows))
    return estimate_id


def add_change_order(
    engine,
    project_id: str,
    change_order_number: str,
    line_items: Iterable[dict],
    status: str = "approved",
    created_at: Optional[str] = None,
    change_order_id: Optional[str] = None,
) -> str:
    change_order_id = change_order_id or str(uuid.uuid4())
    with engine.begin() as conn:
        conn.execute(
            insert(change_orders_table),
            {
                "id": change_order_id,
                "project_id": project_id,
                "change_order_number": str(change_order_number),
                "status": status,
                "created_at": created_at or _now(),
            },
        )
        rows = [
            _line_item_row(item, "change_order_id", change_order_id, position)
            for position, item in enumerate(line_items)
        ]
        if rows:
            conn.execute(insert(change_order_line_items_table), rows)
    logger.info("Added %s change order %s with %s line items", status, change_order_number, len(rows))
    return change_order_id


def set_estimate_status(engine, estimate_id: str, status: str) -> None:
    with engine.begin() as conn:
        result = conn.execute(
            update(estimates_table).where(estimates_table.c.id == estimate_id).values(status=status)
        )
    if result.rowcount == 0:
        raise ScheduleError(f"Estimate not found: {estimate_id}")


def set_change_order_status(engine, change_order_id: str, status: str) -> None:
    with engine.begin() as conn:
        result = conn.execute(
            update(change_orders_table)
            .where(change_orders_table.c.id == change_order_id)
            .values(status=status)
        )
    if result.rowcount == 0:
        raise ScheduleError(f"Change order not found: {change_order_id}")


def add_correlation(
    engine,
    line_item_id: str,
    amount: float,
    project_id: Optional[str] = None,
    expense_id: Optional[str] = None,
    correlation_type: str = "direct",
) -> str:
    correlation_id = str(uuid.uuid4())
    with engine.begin() as conn:
        conn.execute(
            insert(correlations_table),
            {
                "id": correlation_id,
                "project_id": project_id,
                "line_item_id": line_item_id,
                "expense_id": expense_id,
                "amount": amount,
                "correlation_type": correlation_type,
            },
        )
    return correlation_id
