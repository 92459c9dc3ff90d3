import json

from sqlalchemy import select

from buildsched.database import estimate_line_items_table
from buildsched.main import app

PROJECT_ID = "proj-maple"


def _invoke(runner, db_url, *args):
    # Keep INFO logging out of the captured command output.
    return runner.invoke(app, ["--log-level", "ERROR", *args, "--db-url", db_url])


def test_init_db_and_create_project(runner, db_url):
    result = _invoke(runner, db_url, "init-db")
    assert result.exit_code == 0
    assert "DB initialized" in result.output

    result = _invoke(runner, db_url, "create-project", "Oak Avenue", "--project-id", "oak", "--start-date", "7/1/2024")
    assert result.exit_code == 0
    assert "Project created: oak" in result.output

    result = _invoke(runner, db_url, "set-project-dates", "oak", "--end-date", "2024-09-30")
    assert result.exit_code == 0
    assert "End date set to 2024-09-30" in result.output


def test_create_project_with_bad_date_fails(runner, db_url):
    result = _invoke(runner, db_url, "create-project", "Oak Avenue", "--start-date", "someday")
    assert result.exit_code == 1


def test_show_schedule_marks_critical_tasks(runner, db_url, seeded_project):
    result = _invoke(runner, db_url, "show-schedule", PROJECT_ID)
    assert result.exit_code == 0
    lines = result.output.splitlines()
    assert lines[0].startswith("Maple Street Remodel: 5 tasks")
    assert lines[1].startswith("* li-demo  Demolition  2024-05-20 -> 2024-05-24")
    assert lines[3].startswith("  li-paint")
    assert "1 warning(s)" in result.output


def test_show_schedule_json(runner, db_url, seeded_project):
    result = _invoke(runner, db_url, "show-schedule", PROJECT_ID, "--json")
    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["critical_path"]["task_ids"] == ["li-demo", "li-drywall"]


def test_show_schedule_unknown_project(runner, db_url, seeded_project):
    result = _invoke(runner, db_url, "show-schedule", "nope")
    assert result.exit_code == 1


def test_reschedule_persists(runner, db_url, engine, seeded_project):
    result = _invoke(runner, db_url, "reschedule", PROJECT_ID, "li-paint", "2024-06-06", "6/9/2024")
    assert result.exit_code == 0
    assert "Rescheduled Exterior Paint: 2024-06-06 -> 2024-06-09" in result.output
    with engine.connect() as conn:
        stored = conn.execute(
            select(estimate_line_items_table.c.scheduled_end_date)
            .where(estimate_line_items_table.c.id == "li-paint")
        ).scalar_one()
    assert stored == "2024-06-09"

    result = _invoke(runner, db_url, "warnings", PROJECT_ID)
    assert result.output.strip() == "No warnings."


def test_reschedule_rejects_bad_dates(runner, db_url, seeded_project):
    result = _invoke(runner, db_url, "reschedule", PROJECT_ID, "li-paint", "2024-06-09", "2024-06-01")
    assert result.exit_code == 1


def test_critical_path_and_warnings(runner, db_url, seeded_project):
    result = _invoke(runner, db_url, "critical-path", PROJECT_ID)
    assert result.exit_code == 0
    assert result.output.splitlines() == ["Critical path (15 days):", "  Demolition", "  Drywall Install"]

    result = _invoke(runner, db_url, "warnings", PROJECT_ID)
    assert result.output.startswith("[warning] ")
    assert "Exterior Paint" in result.output


def test_move_task_is_remembered(runner, db_url, seeded_project):
    result = _invoke(runner, db_url, "move-task", PROJECT_ID, "li-paint", "up")
    assert result.exit_code == 0
    assert result.output.splitlines()[:3] == ["li-demo", "li-paint", "li-drywall"]

    result = _invoke(runner, db_url, "show-schedule", PROJECT_ID)
    assert result.output.splitlines()[2].startswith("  li-paint")

    assert _invoke(runner, db_url, "move-task", PROJECT_ID, "li-paint", "left").exit_code == 1


def test_export_to_file(runner, db_url, seeded_project, tmp_path):
    target = tmp_path / "schedule.csv"
    result = _invoke(runner, db_url, "export", PROJECT_ID, "--kind", "ms-project", "-o", str(target))
    assert result.exit_code == 0
    lines = target.read_text().splitlines()
    assert lines[0] == "ID,Name,Duration,Start,Finish,Predecessors,Resource Names"
    assert lines[2].startswith("2,Drywall Install,10d,05/27/2024,06/05/2024,1,")

    assert _invoke(runner, db_url, "export", PROJECT_ID, "--kind", "pdf").exit_code == 1
