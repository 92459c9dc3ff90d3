import json
from datetime import date

import pytest
from sqlalchemy import select

from buildsched.builder import build_tasks, task_to_update
from buildsched.coordinator import RescheduleCoordinator
from buildsched.database import change_order_line_items_table, change_orders_table, estimate_line_items_table
from buildsched.errors import PersistenceError, ProjectNotFoundError, ScheduleLoadError
from buildsched.models import TaskKind, TaskUpdate
from buildsched.phases import add_phase, reschedule_task
from buildsched.progress import apply_progress
from buildsched.project_management import (
    add_change_order,
    set_change_order_status,
    set_estimate_status,
    set_project_end_date,
    set_project_start_date,
    try_parse_date,
)
from buildsched.repository import SqlScheduleRepository

PROJECT_ID = "proj-maple"


def _tasks(engine):
    snapshot = SqlScheduleRepository(engine).load_snapshot(PROJECT_ID)
    return apply_progress(build_tasks(snapshot, today=date(2024, 6, 1)), snapshot.correlations)


def _row(engine, table, item_id):
    with engine.connect() as conn:
        return conn.execute(select(table).where(table.c.id == item_id)).fetchone()


def test_snapshot_reads_latest_approved_scope_only(engine, seeded_project):
    snapshot = SqlScheduleRepository(engine).load_snapshot(PROJECT_ID)
    assert snapshot.project.name == "Maple Street Remodel"
    assert snapshot.project.start_date == date(2024, 6, 1)
    assert [i.id for i in snapshot.estimate_items] == ["li-demo", "li-drywall", "li-paint", "li-permit"]
    assert [co.change_order_number for co in snapshot.change_orders] == ["1"]
    assert sorted(c.amount for c in snapshot.correlations) == [1250.0, 2500.0]


def test_tasks_built_from_store(engine, seeded_project):
    tasks = _tasks(engine)
    assert [t.id for t in tasks] == ["li-demo", "li-drywall", "li-paint", "li-permit", "co-fixtures"]

    permit = tasks[3]
    assert (permit.start, permit.end) == (date(2024, 6, 1), date(2024, 6, 7))

    drywall = tasks[1]
    assert drywall.progress == 75
    assert drywall.actual_cost == 3750.0
    assert drywall.dependencies[0].task_name == "Demolition"

    fixtures = tasks[4]
    assert fixtures.kind is TaskKind.CHANGE_ORDER_LINE
    assert fixtures.name == "CO-1: Upgraded fixtures"


@pytest.mark.parametrize("number", [None, ""])
def test_change_order_without_number_is_labelled_by_id(engine, seeded_project, number):
    add_change_order(engine, PROJECT_ID, "tmp", [
        {"id": "co-gutters", "description": "Gutters", "total_cost": 300,
         "scheduled_start_date": "2024-06-20", "scheduled_end_date": "2024-06-21"},
    ], created_at="2024-05-12T00:00:00", change_order_id="co-blank")
    with engine.begin() as conn:
        conn.execute(
            change_orders_table.update()
            .where(change_orders_table.c.id == "co-blank")
            .values(change_order_number=number)
        )

    coordinator = RescheduleCoordinator(PROJECT_ID, SqlScheduleRepository(engine),
                                        debounce_seconds=60, grace_seconds=0, today=date(2024, 6, 1))
    tasks = {t.id: t for t in coordinator.load()}
    assert coordinator.load_error is None
    assert tasks["co-gutters"].name == "CO-co-blank: Gutters"
    assert "co-fixtures" in tasks and "li-demo" in tasks


def test_unknown_project_raises(engine):
    with pytest.raises(ProjectNotFoundError):
        SqlScheduleRepository(engine).load_snapshot("nope")


def test_store_failure_becomes_load_error(engine, seeded_project):
    estimate_line_items_table.drop(engine)
    with pytest.raises(ScheduleLoadError):
        SqlScheduleRepository(engine).load_snapshot(PROJECT_ID)


def test_persist_routes_estimate_tasks(engine, seeded_project):
    paint = _tasks(engine)[2]
    moved = reschedule_task(paint, date(2024, 6, 6), date(2024, 6, 9))
    SqlScheduleRepository(engine).persist_task(task_to_update(moved))

    row = _row(engine, estimate_line_items_table, "li-paint")
    assert (row.scheduled_start_date, row.scheduled_end_date) == ("2024-06-06", "2024-06-09")
    assert row.duration_days == 4
    assert _tasks(engine)[2].start == date(2024, 6, 6)


def test_persist_routes_change_order_tasks(engine, seeded_project):
    fixtures = _tasks(engine)[4]
    moved = reschedule_task(fixtures, date(2024, 6, 11), date(2024, 6, 13))
    SqlScheduleRepository(engine).persist_task(task_to_update(moved))

    row = _row(engine, change_order_line_items_table, "co-fixtures")
    assert row.scheduled_start_date == "2024-06-11"
    assert _row(engine, estimate_line_items_table, "co-fixtures") is None


def test_phases_and_dependencies_survive_a_round_trip(engine, seeded_project):
    drywall = _tasks(engine)[1]
    phased = add_phase(drywall, date(2024, 6, 20), date(2024, 6, 21), description="patch")
    SqlScheduleRepository(engine).persist_task(task_to_update(phased))

    row = _row(engine, estimate_line_items_table, "li-drywall")
    assert json.loads(row.dependencies)[0]["task_id"] == "li-demo"
    reloaded = _tasks(engine)[1]
    assert len(reloaded.phases) == 2
    assert reloaded.phases[1].description == "patch"
    assert reloaded.end == date(2024, 6, 21)


def test_persisting_unknown_line_item_fails(engine, seeded_project):
    update = TaskUpdate(task_id="ghost", kind=TaskKind.ESTIMATE_LINE,
                        scheduled_start_date=date(2024, 1, 1), scheduled_end_date=date(2024, 1, 2),
                        duration_days=2)
    with pytest.raises(PersistenceError):
        SqlScheduleRepository(engine).persist_task(update)


def test_wrong_kind_does_not_touch_the_other_table(engine, seeded_project):
    update = TaskUpdate(task_id="li-paint", kind=TaskKind.CHANGE_ORDER_LINE,
                        scheduled_start_date=date(2024, 1, 1), scheduled_end_date=date(2024, 1, 2),
                        duration_days=2)
    with pytest.raises(PersistenceError):
        SqlScheduleRepository(engine).persist_task(update)
    assert _row(engine, estimate_line_items_table, "li-paint").scheduled_start_date == "2024-06-01"


def test_status_changes_move_scope_in_and_out(engine, seeded_project):
    change_order_id = add_change_order(engine, PROJECT_ID, "3", [
        {"id": "co-deck", "description": "Deck", "quantity": 2, "cost_per_unit": 150},
    ], status="pending", created_at="2024-05-12T00:00:00")
    assert "co-deck" not in [t.id for t in _tasks(engine)]

    set_change_order_status(engine, change_order_id, "approved")
    deck = [t for t in _tasks(engine) if t.id == "co-deck"][0]
    assert deck.estimated_cost == 300.0
    assert deck.name == "CO-3: Deck"


def test_unapproving_the_latest_estimate_falls_back_to_an_older_one(engine, seeded_project):
    with engine.connect() as conn:
        estimate_id = conn.execute(
            select(estimate_line_items_table.c.estimate_id)
            .where(estimate_line_items_table.c.id == "li-demo")
        ).scalar_one()
    set_estimate_status(engine, estimate_id, "draft")
    assert [t.id for t in _tasks(engine)][0] == "old-scope"


def test_project_dates(engine, seeded_project):
    assert set_project_start_date(engine, PROJECT_ID, "7/1/2024") == "2024-07-01"
    assert set_project_end_date(engine, PROJECT_ID, "2024-09-30 17:00:00") == "2024-09-30"
    project = SqlScheduleRepository(engine).load_snapshot(PROJECT_ID).project
    assert (project.start_date, project.end_date) == (date(2024, 7, 1), date(2024, 9, 30))
    with pytest.raises(ProjectNotFoundError):
        set_project_start_date(engine, "nope", "2024-07-01")
    with pytest.raises(ValueError):
        try_parse_date("next tuesday")
