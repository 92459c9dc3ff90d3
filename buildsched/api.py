# buildsched/api.py
from contextlib import contextmanager
from datetime import date
from functools import lru_cache
from typing import List, Literal, Optional

from fastapi import Body, Depends, FastAPI, HTTPException
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from buildsched.database import init_db
from buildsched.errors import (
    InvalidScheduleEdit,
    PersistenceError,
    ProjectNotFoundError,
    ScheduleLoadError,
    TaskNotFoundError,
)
from buildsched.export import daily_activity, ms_project_table, schedule_header, task_table, to_csv
from buildsched.phases import (
    add_phase,
    move_task_start,
    remove_phase,
    reschedule_task,
    set_task_completed,
    update_notes,
    update_phase,
)
from buildsched.project_management import create_project
from buildsched.service import ScheduleService

app = FastAPI(title="buildsched")


@lru_cache(maxsize=1)
def get_service() -> ScheduleService:
    return ScheduleService(init_db())


@contextmanager
def schedule_errors():
    try:
        yield
    except (TaskNotFoundError, ProjectNotFoundError) as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except (InvalidScheduleEdit, ValueError) as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except PersistenceError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    except ScheduleLoadError as exc:
        raise HTTPException(status_code=503, detail=str(exc))


class CreateProjectRequest(BaseModel):
    project_name: str
    project_id: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class RescheduleRequest(BaseModel):
    start: date
    end: date


class TaskEditRequest(BaseModel):
    start: Optional[date] = None
    end: Optional[date] = None
    duration_days: Optional[int] = None
    completed: Optional[bool] = None
    notes: Optional[str] = None


class PhaseRequest(BaseModel):
    start: date
    end: date
    description: Optional[str] = None
    notes: Optional[str] = None


class PhaseUpdateRequest(BaseModel):
    start: Optional[date] = None
    end: Optional[date] = None
    description: Optional[str] = None
    completed: Optional[bool] = None
    notes: Optional[str] = None


class DisplayModeRequest(BaseModel):
    mode: Literal["gantt", "table"]


def _task_response(service: ScheduleService, project_id: str, task) -> dict:
    coordinator = service.coordinator(project_id)
    return {"task": task.model_dump(mode="json"), "state": coordinator.state_of(task.id).value}


@app.post("/projects/")
def create_project_endpoint(request: CreateProjectRequest, service: ScheduleService = Depends(get_service)):
    with schedule_errors():
        project_id = create_project(
            service.engine,
            request.project_name,
            project_id=request.project_id,
            start_date=request.start_date,
            end_date=request.end_date,
        )
    return {"message": "Project created successfully", "project_id": project_id}


@app.get("/projects/{project_id}/schedule")
def get_schedule(project_id: str, manual_order: bool = True, service: ScheduleService = Depends(get_service)):
    with schedule_errors():
        return service.view(project_id, manual_order=manual_order).model_dump(mode="json")


@app.post("/projects/{project_id}/reload")
def reload_schedule(project_id: str, service: ScheduleService = Depends(get_service)):
    with schedule_errors():
        tasks = service.reload(project_id)
    return {"status": "success", "task_count": len(tasks)}


@app.get("/projects/{project_id}/critical-path")
def get_critical_path(project_id: str, service: ScheduleService = Depends(get_service)):
    with schedule_errors():
        view = service.view(project_id)
    return {
        "task_ids": view.critical_path.task_ids,
        "length_days": view.critical_path.length_days,
        "cycles": view.critical_path.cycles,
        "duration_days": view.duration_days,
    }


@app.post("/projects/{project_id}/tasks/{task_id}/drag-start")
def drag_start(project_id: str, task_id: str, service: ScheduleService = Depends(get_service)):
    with schedule_errors():
        service.coordinator(project_id).begin_drag(task_id)
    return {"status": "editing", "task_id": task_id}


@app.post("/projects/{project_id}/tasks/{task_id}/reschedule")
def reschedule(project_id: str, task_id: str, request: RescheduleRequest,
               service: ScheduleService = Depends(get_service)):
    """Drag end: applied locally at once, written after the debounce window."""
    with schedule_errors():
        task = service.coordinator(project_id).end_drag(task_id, request.start, request.end)
        return _task_response(service, project_id, task)


@app.get("/projects/{project_id}/tasks/{task_id}/can-open")
def can_open_details(project_id: str, task_id: str, service: ScheduleService = Depends(get_service)):
    with schedule_errors():
        return {"open": service.coordinator(project_id).should_open_details(task_id)}


@app.put("/projects/{project_id}/tasks/{task_id}")
def save_task(project_id: str, task_id: str, request: TaskEditRequest,
              service: ScheduleService = Depends(get_service)):
    with schedule_errors():
        coordinator = service.coordinator(project_id)
        task = coordinator.get_task(task_id)
        if request.duration_days is not None:
            task = move_task_start(task, request.start or task.start, request.duration_days)
        elif request.start is not None or request.end is not None:
            task = reschedule_task(task, request.start or task.start, request.end or task.end)
        if request.completed is not None:
            task = set_task_completed(task, request.completed)
        if "notes" in request.model_fields_set:
            task = update_notes(task, request.notes)
        task = coordinator.save_task(task)
        return _task_response(service, project_id, task)


@app.post("/projects/{project_id}/tasks/{task_id}/phases")
def add_task_phase(project_id: str, task_id: str, request: PhaseRequest,
                   service: ScheduleService = Depends(get_service)):
    with schedule_errors():
        task = service.coordinator(project_id).edit_task(
            task_id, add_phase, request.start, request.end,
            description=request.description, notes=request.notes,
        )
        return _task_response(service, project_id, task)


@app.patch("/projects/{project_id}/tasks/{task_id}/phases/{phase_number}")
def update_task_phase(project_id: str, task_id: str, phase_number: int, request: PhaseUpdateRequest,
                      service: ScheduleService = Depends(get_service)):
    changes = request.model_dump(exclude_unset=True)
    with schedule_errors():
        task = service.coordinator(project_id).edit_task(task_id, update_phase, phase_number, **changes)
        return _task_response(service, project_id, task)


@app.delete("/projects/{project_id}/tasks/{task_id}/phases/{phase_number}")
def delete_task_phase(project_id: str, task_id: str, phase_number: int,
                      service: ScheduleService = Depends(get_service)):
    with schedule_errors():
        task = service.coordinator(project_id).edit_task(task_id, remove_phase, phase_number)
        return _task_response(service, project_id, task)


@app.post("/projects/{project_id}/tasks/{task_id}/toggle-complete")
def toggle_complete(project_id: str, task_id: str, phase_number: Optional[int] = None,
                    service: ScheduleService = Depends(get_service)):
    with schedule_errors():
        task = service.coordinator(project_id).toggle_completion(task_id, phase_number)
        return _task_response(service, project_id, task)


@app.post("/projects/{project_id}/tasks/{task_id}/dependencies/{target_id}/toggle")
def toggle_task_dependency(project_id: str, task_id: str, target_id: str,
                           service: ScheduleService = Depends(get_service)):
    with schedule_errors():
        task = service.coordinator(project_id).toggle_dependency(task_id, target_id)
        return _task_response(service, project_id, task)


@app.post("/projects/{project_id}/flush")
def flush_pending(project_id: str, service: ScheduleService = Depends(get_service)):
    with schedule_errors():
        service.flush(project_id)
    return {"status": "success"}


@app.get("/projects/{project_id}/warnings")
def list_warnings(project_id: str, service: ScheduleService = Depends(get_service)):
    with schedule_errors():
        return [w.model_dump(mode="json") for w in service.warnings(project_id)]


@app.post("/projects/{project_id}/warnings/{warning_id}/dismiss")
def dismiss_warning(project_id: str, warning_id: str, service: ScheduleService = Depends(get_service)):
    with schedule_errors():
        return [w.model_dump(mode="json") for w in service.dismiss_warning(project_id, warning_id)]


@app.get("/projects/{project_id}/order")
def get_order(project_id: str, service: ScheduleService = Depends(get_service)):
    with schedule_errors():
        return {"task_ids": service.manual_order(project_id).task_ids}


@app.post("/projects/{project_id}/order/{task_id}/{direction}")
def move_task(project_id: str, task_id: str, direction: Literal["up", "down"],
              service: ScheduleService = Depends(get_service)):
    with schedule_errors():
        return {"task_ids": service.move_task(project_id, task_id, direction).task_ids}


@app.get("/projects/{project_id}/display-mode")
def get_display_mode(project_id: str, service: ScheduleService = Depends(get_service)):
    return {"mode": service.display_mode(project_id)}


@app.put("/projects/{project_id}/display-mode")
def put_display_mode(project_id: str, request: DisplayModeRequest = Body(...),
                     service: ScheduleService = Depends(get_service)):
    return {"mode": service.set_display_mode(project_id, request.mode)}


@app.get("/projects/{project_id}/export/{kind}", response_class=PlainTextResponse)
def export_schedule(project_id: str, kind: Literal["tasks", "daily", "ms-project"],
                    sort_by: Literal["start_date", "category", "name", "none"] = "start_date",
                    service: ScheduleService = Depends(get_service)):
    with schedule_errors():
        tasks = service.ordered_tasks(project_id)
        project_name = service.coordinator(project_id).project.name
    if kind == "tasks":
        body = to_csv(task_table(tasks, sort_by=sort_by), schedule_header(project_name, tasks))
    elif kind == "daily":
        body = to_csv(daily_activity(tasks),
                      schedule_header(project_name, tasks, title="Daily Activity Schedule"))
    else:
        body = to_csv(ms_project_table(tasks))
    return PlainTextResponse(body, media_type="text/csv")


@app.get("/notices")
def list_notices(service: ScheduleService = Depends(get_service)) -> List[dict]:
    return [n.model_dump(mode="json") for n in service.notices.active()]


@app.delete("/notices/{notice_id}")
def dismiss_notice(notice_id: int, service: ScheduleService = Depends(get_service)):
    if not service.notices.dismiss(notice_id):
        raise HTTPException(status_code=404, detail=f"Notice not found: {notice_id}")
    return {"status": "dismissed"}
