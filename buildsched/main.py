# buildsched/main.py
import json
from typing import Optional

import typer

from buildsched.config import configure_logging
from buildsched.coordinator import EditState
from buildsched.database import init_db
from buildsched.errors import ScheduleError
from buildsched.export import daily_activity, ms_project_table, schedule_header, task_table, to_csv
from buildsched.progress import status_label
from buildsched.project_management import create_project, set_project_end_date, set_project_start_date
from buildsched.service import ScheduleService
from buildsched.utils import format_date, format_duration, require_date

app = typer.Typer(help="Project schedule and progress engine.")


@app.callback()
def _setup(log_level: str = typer.Option(None, help="Logging level, e.g. DEBUG")):
    configure_logging(log_level)


def _service(db_url: Optional[str]) -> ScheduleService:
    return ScheduleService(init_db(db_url))


def _fail(exc: Exception):
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


@app.command("init-db")
def init_db_cli(db_url: str = typer.Option(None, help="Database URL (defaults to gen/buildsched.db)")):
    engine = init_db(db_url)
    typer.echo(f"DB initialized at: {engine.url}")


@app.command("create-project")
def create_project_cli(
    project_name: str,
    project_id: str = typer.Option(None),
    start_date: str = typer.Option(None, help="Project start, e.g. 2024-06-01 or 6/1/2024"),
    end_date: str = typer.Option(None),
    db_url: str = typer.Option(None),
):
    engine = init_db(db_url)
    try:
        new_id = create_project(engine, project_name, project_id=project_id,
                                start_date=start_date, end_date=end_date)
    except ValueError as exc:
        _fail(exc)
    typer.echo(f"Project created: {new_id}")


@app.command("set-project-dates")
def set_project_dates_cli(
    project_id: str,
    start_date: str = typer.Option(None),
    end_date: str = typer.Option(None),
    db_url: str = typer.Option(None),
):
    engine = init_db(db_url)
    try:
        if start_date:
            typer.echo(f"Start date set to {set_project_start_date(engine, project_id, start_date)}")
        if end_date:
            typer.echo(f"End date set to {set_project_end_date(engine, project_id, end_date)}")
    except (ScheduleError, ValueError) as exc:
        _fail(exc)


@app.command("show-schedule")
def show_schedule_cli(
    project_id: str,
    as_json: bool = typer.Option(False, "--json", help="Print the full schedule view as JSON"),
    db_url: str = typer.Option(None),
):
    service = _service(db_url)
    try:
        view = service.view(project_id)
    except ScheduleError as exc:
        _fail(exc)
    if as_json:
        typer.echo(json.dumps(view.model_dump(mode="json"), indent=2))
        return
    critical = set(view.critical_path.task_ids)
    typer.echo(f"{view.project.name}: {len(view.tasks)} tasks over {format_duration(view.duration_days)}")
    for task in view.tasks:
        marker = "*" if task.id in critical else " "
        typer.echo(
            f"{marker} {task.id}  {task.name}  {format_date(task.start)} -> {format_date(task.end)}"
            f"  ({format_duration(task.duration_days)})  {task.progress}% {status_label(task.progress)}"
        )
    if view.warnings:
        typer.echo(f"{len(view.warnings)} warning(s); run 'warnings {project_id}' for details")


@app.command("reschedule")
def reschedule_cli(
    project_id: str,
    task_id: str,
    start: str,
    end: str,
    db_url: str = typer.Option(None),
):
    service = _service(db_url)
    try:
        coordinator = service.coordinator(project_id)
        task = coordinator.end_drag(task_id, require_date(start, "start"), require_date(end, "end"))
    except (ScheduleError, ValueError) as exc:
        _fail(exc)
    coordinator.close(flush=True)
    if coordinator.state_of(task.id) is not EditState.CONFIRMED:
        _fail(f"Could not save {task.name}; the schedule was reloaded")
    typer.echo(f"Rescheduled {task.name}: {format_date(task.start)} -> {format_date(task.end)}")


@app.command("critical-path")
def critical_path_cli(project_id: str, db_url: str = typer.Option(None)):
    service = _service(db_url)
    try:
        view = service.view(project_id, manual_order=False)
    except ScheduleError as exc:
        _fail(exc)
    names = {t.id: t.name for t in view.tasks}
    typer.echo(f"Critical path ({view.critical_path.length_days} days):")
    for task_id in view.critical_path.task_ids:
        typer.echo(f"  {names[task_id]}")
    for group in view.critical_path.cycles:
        typer.echo("Ignored dependency loop: " + " -> ".join(names[t] for t in group))


@app.command("warnings")
def warnings_cli(project_id: str, db_url: str = typer.Option(None)):
    service = _service(db_url)
    try:
        warnings = service.warnings(project_id)
    except ScheduleError as exc:
        _fail(exc)
    if not warnings:
        typer.echo("No warnings.")
        return
    for warning in warnings:
        typer.echo(f"[{warning.severity.value}] {warning.message}")
        if warning.suggestion:
            typer.echo(f"    {warning.suggestion}")


@app.command("move-task")
def move_task_cli(
    project_id: str,
    task_id: str,
    direction: str = typer.Argument(..., help="'up' or 'down'"),
    db_url: str = typer.Option(None),
):
    service = _service(db_url)
    try:
        order = service.move_task(project_id, task_id, direction)
    except (ScheduleError, ValueError) as exc:
        _fail(exc)
    typer.echo("\n".join(order.task_ids))


@app.command("export")
def export_cli(
    project_id: str,
    kind: str = typer.Option("tasks", help="tasks, daily or ms-project"),
    output: str = typer.Option(None, "--output", "-o", help="File to write; prints to stdout if omitted"),
    sort_by: str = typer.Option("start_date", help="start_date, category, name or none"),
    db_url: str = typer.Option(None),
):
    service = _service(db_url)
    try:
        tasks = service.ordered_tasks(project_id)
        project_name = service.coordinator(project_id).project.name
    except ScheduleError as exc:
        _fail(exc)
    if kind == "tasks":
        body = to_csv(task_table(tasks, sort_by=sort_by), schedule_header(project_name, tasks))
    elif kind == "daily":
        body = to_csv(daily_activity(tasks), schedule_header(project_name, tasks, title="Daily Activity Schedule"))
    elif kind == "ms-project":
        body = to_csv(ms_project_table(tasks))
    else:
        _fail(f"Unknown export kind: {kind}")
    if output:
        with open(output, "w", newline="") as f:
            f.write(body)
        typer.echo(f"Wrote {output}")
    else:
        typer.echo(body)


def main():
    app()


if __name__ == "__main__":
    main()
