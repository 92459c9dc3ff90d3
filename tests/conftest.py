import logging
from datetime import date

import pytest
from fastapi.testclient import TestClient
from typer.testing import CliRunner

from buildsched.api import app, get_service
from buildsched.database import init_db
from buildsched.models import ScheduleTask, TaskDependency
from buildsched.project_management import (
    add_change_order,
    add_correlation,
    add_estimate,
    create_project,
)
from buildsched.service import ScheduleService

PROJECT_ID = "proj-maple"


@pytest.fixture(autouse=True)
def _restore_package_logger():
    # CLI runs reconfigure the package logger; undo that so later tests see the default.
    logger = logging.getLogger("buildsched")
    level, handlers = logger.level, list(logger.handlers)
    yield
    logger.setLevel(level)
    logger.handlers[:] = handlers


@pytest.fixture
def db_url(tmp_path):
    # A fresh SQLite file per test keeps timer-thread writes isolated.
    return f"sqlite:///{tmp_path / 'test.db'}"


@pytest.fixture
def engine(db_url):
    engine = init_db(db_url)
    yield engine
    engine.dispose()


@pytest.fixture
def seeded_project(engine):
    """
    Maple Street remodel:
      - the newest approved estimate holds demolition, drywall, paint and an
        unscheduled permit line
      - an older approved estimate and a newer draft must both be ignored
      - change order 1 is approved, change order 2 is still pending
      - drywall has two ledger entries correlated to it (3,750 of 5,000)
    """
    project_id = create_project(engine, "Maple Street Remodel", project_id=PROJECT_ID,
                                start_date="2024-06-01")
    add_estimate(engine, project_id, [
        {"id": "li-demo", "category": "labor_internal", "description": "Demolition",
         "total_cost": 2000, "scheduled_start_date": "2024-05-20", "scheduled_end_date": "2024-05-24"},
        {"id": "li-drywall", "category": "subcontractors", "description": "Drywall Install",
         "total_cost": 5000, "scheduled_start_date": "2024-05-27", "scheduled_end_date": "2024-06-05",
         "dependencies": [{"task_id": "li-demo", "task_type": "estimate", "type": "finish-to-start"}]},
        {"id": "li-paint", "category": "subcontractors", "description": "Exterior Paint",
         "total_cost": 3000, "scheduled_start_date": "2024-06-01", "scheduled_end_date": "2024-06-04"},
        {"id": "li-permit", "category": "permits", "description": "Building permit", "total_cost": 0},
    ], created_at="2024-05-01T00:00:00")
    add_estimate(engine, project_id, [
        {"id": "old-scope", "description": "Superseded scope", "total_cost": 100},
    ], created_at="2024-04-01T00:00:00")
    add_estimate(engine, project_id, [
        {"id": "draft-scope", "description": "Draft scope", "total_cost": 100},
    ], status="draft", created_at="2024-05-15T00:00:00")
    add_change_order(engine, project_id, "1", [
        {"id": "co-fixtures", "category": "materials", "description": "Upgraded fixtures",
         "total_cost": 1200, "scheduled_start_date": "2024-06-10", "scheduled_end_date": "2024-06-12"},
    ], created_at="2024-05-10T00:00:00")
    add_change_order(engine, project_id, "2", [
        {"id": "co-pending", "description": "Extra outlets", "total_cost": 400},
    ], status="pending", created_at="2024-05-11T00:00:00")
    add_correlation(engine, "li-drywall", 2500.0, project_id=project_id)
    add_correlation(engine, "li-drywall", 1250.0, project_id=project_id)
    return {"project_id": project_id}


@pytest.fixture
def service(engine, seeded_project):
    service = ScheduleService(engine, today=date(2024, 6, 1), debounce_seconds=60, grace_seconds=0)
    yield service
    service.close()


@pytest.fixture
def client(service):
    app.dependency_overrides[get_service] = lambda: service
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def make_task():
    """Build a ScheduleTask from ISO date strings and a list of dependency ids."""

    def _make(task_id, start, end, name=None, deps=(), **fields):
        return ScheduleTask(
            id=task_id,
            name=name or task_id,
            start=date.fromisoformat(start),
            end=date.fromisoformat(end),
            dependencies=[TaskDependency(task_id=d) for d in deps],
            **fields,
        )

    return _make
