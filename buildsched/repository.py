# buildsched/repository.py
"""
Read and write access to the line-item store.

The store is the only source of truth: tasks are rebuilt from a snapshot on
every load, and edits are written back to the scheduling columns of the line
item they came from.
"""
import json
import logging
from typing import List, Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from buildsched.database import (
    LINE_ITEM_TABLES,
    change_order_line_items_table,
    change_orders_table,
    correlations_table,
    estimate_line_items_table,
    estimates_table,
    projects_table,
)
from buildsched.errors import PersistenceError, ProjectNotFoundError, ScheduleLoadError
from buildsched.models import (
    ChangeOrder,
    CorrelationEntry,
    LineItem,
    ProjectInfo,
    ScheduleSnapshot,
    TaskUpdate,
)
from buildsched.utils import format_date

logger = logging.getLogger(__name__)

APPROVED = "approved"


class ScheduleRepository(Protocol):
    def load_snapshot(self, project_id: str) -> ScheduleSnapshot:
        ...

    def persist_task(self, task_update: TaskUpdate) -> None:
        ...


def _line_item(row) -> LineItem:
    data = dict(row._mapping)
    return LineItem(
        id=data["id"],
        category=data.get("category"),
        description=data.get("description"),
        quantity=data.get("quantity"),
        cost_per_unit=data.get("cost_per_unit"),
        total_cost=data.get("total_cost"),
        scheduled_start_date=data.get("scheduled_start_date"),
        scheduled_end_date=data.get("scheduled_end_date"),
        duration_days=data.get("duration_days"),
        dependencies=data.get("dependencies"),
        is_milestone=data.get("is_milestone"),
        schedule_notes=data.get("schedule_notes"),
    )


class SqlScheduleRepository:
    def __init__(self, engine):
        self.engine = engine

    def _load_project(self, conn, project_id: str) -> ProjectInfo:
        row = conn.execute(
            select(projects_table).where(projects_table.c.id == project_id)
        ).fetchone()
        if row is None:
            raise ProjectNotFoundError(project_id)
        data = row._mapping
        return ProjectInfo(
            id=data["id"],
            name=data["project_name"] or "Project",
            start_date=data["start_date"],
            end_date=data["end_date"],
        )

    def _load_estimate_items(self, conn, project_id: str) -> List[LineItem]:
        # Only the most recently created approved estimate contributes tasks.
        estimate = conn.execute(
            select(estimates_table.c.id)
            .where(estimates_table.c.project_id == project_id)
            .where(estimates_table.c.status == APPROVED)
            .order_by(estimates_table.c.created_at.desc(), estimates_table.c.id.desc())
            .limit(1)
        ).fetchone()
        if estimate is None:
            return []
        rows = conn.execute(
            select(estimate_line_items_table)
            .where(estimate_line_items_table.c.estimate_id == estimate.id)
            .order_by(estimate_line_items_table.c.sort_order, estimate_line_items_table.c.id)
        ).fetchall()
        return [_line_item(row) for row in rows]

    def _load_change_orders(self, conn, project_id: str) -> List[ChangeOrder]:
        orders = conn.execute(
            select(change_orders_table)
            .where(change_orders_table.c.project_id == project_id)
            .where(change_orders_table.c.status == APPROVED)
            .order_by(change_orders_table.c.created_at, change_orders_table.c.change_order_number)
        ).fetchall()
        change_orders = []
        for order in orders:
            rows = conn.execute(
                select(change_order_line_items_table)
                .where(change_order_line_items_table.c.change_order_id == order.id)
                .order_by(change_order_line_items_table.c.sort_order, change_order_line_items_table.c.id)
            ).fetchall()
            number = order.change_order_number
            if number is None or not str(number).strip():
                logger.warning("Change order %s has no number; labelling it by id", order.id)
                number = order.id
            change_orders.append(ChangeOrder(
                id=order.id,
                change_order_number=number,
                line_items=[_line_item(row) for row in rows],
            ))
        return change_orders

    def _load_correlations(self, conn, line_item_ids: List[str]) -> List[CorrelationEntry]:
        if not line_item_ids:
            return []
        rows = conn.execute(
            select(correlations_table)
            .where(correlations_table.c.line_item_id.in_(line_item_ids))
            .order_by(correlations_table.c.id)
        ).fetchall()
        return [
            CorrelationEntry(
                id=row.id,
                line_item_id=row.line_item_id,
                amount=row.amount or 0.0,
                correlation_type=row.correlation_type,
            )
            for row in rows
        ]

    def load_snapshot(self, project_id: str) -> ScheduleSnapshot:
        try:
            with self.engine.connect() as conn:
                project = self._load_project(conn, project_id)
                estimate_items = self._load_estimate_items(conn, project_id)
                change_orders = self._load_change_orders(conn, project_id)
                ids = [item.id for item in estimate_items]
                ids += [item.id for order in change_orders for item in order.line_items]
                correlations = self._load_correlations(conn, ids)
        except SQLAlchemyError as exc:
            logger.error("Failed to load schedule for project %s: %s", project_id, exc)
            raise ScheduleLoadError(f"Could not load schedule for project {project_id}") from exc
        return ScheduleSnapshot(
            project=project,
            estimate_items=estimate_items,
            change_orders=change_orders,
            correlations=correlations,
        )

    def persist_task(self, task_update: TaskUpdate) -> None:
        table = LINE_ITEM_TABLES[task_update.kind.table_name]
        values = {
            "scheduled_start_date": format_date(task_update.scheduled_start_date),
            "scheduled_end_date": format_date(task_update.scheduled_end_date),
            "duration_days": task_update.duration_days,
            "dependencies": json.dumps(task_update.dependencies),
            "schedule_notes": task_update.schedule_notes,
        }
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    update(table).where(table.c.id == task_update.task_id).values(**values)
                )
        except SQLAlchemyError as exc:
            logger.error("Failed to persist task %s: %s", task_update.task_id, exc)
            raise PersistenceError(f"Could not save task {task_update.task_id}") from exc
        if result.rowcount == 0:
            logger.error("No %s row for task %s", table.name, task_update.task_id)
            raise PersistenceError(f"Line item {task_update.task_id} not found in {table.name}")
        logger.debug("Persisted task %s to %s", task_update.task_id, table.name)
