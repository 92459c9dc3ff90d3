# buildsched/schedule_notes.py
"""
Codec for the scheduling sub-document stored on each line item.

The document is JSON kept in the line item's ``schedule_notes`` column:

    {"phases": [{"phase_number": 1, "start_date": "2024-06-01",
                 "end_date": "2024-06-03", "duration_days": 3,
                 "description": "primer coat", "completed": false,
                 "notes": null}],
     "completed": true,
     "notes": "free text"}

A ``phases`` array with at least one entry puts the task in multi-phase mode.
A boolean ``completed`` without phases is an explicit manual completion mark.
Plain text that is not JSON is treated as notes. Anything unreadable falls
back to "no phases, not completed" and is only logged.
"""
import json
import logging
from typing import List, Optional

from pydantic import BaseModel, ValidationError

from buildsched.models import SchedulePhase
from buildsched.utils import format_date, parse_date

logger = logging.getLogger(__name__)


class ScheduleNotes(BaseModel):
    phases: Optional[List[SchedulePhase]] = None
    completed: Optional[bool] = None
    notes: Optional[str] = None


def _parse_phases(raw_phases: list, source_id: str) -> Optional[List[SchedulePhase]]:
    entries = []
    for index, entry in enumerate(raw_phases):
        if not isinstance(entry, dict):
            logger.warning("Ignoring phases for %s: entry %s is not an object", source_id, index)
            return None
        start = parse_date(entry.get("start_date") or entry.get("start"))
        end = parse_date(entry.get("end_date") or entry.get("end"))
        if start is None or end is None:
            logger.warning("Ignoring phases for %s: entry %s has no usable dates", source_id, index)
            return None
        number = entry.get("phase_number")
        if not isinstance(number, int) or isinstance(number, bool):
            number = index + 1
        entries.append((number, start, end, entry))

    # Stored numbering may have gaps; keep the stored order and renumber 1..n.
    entries.sort(key=lambda e: (e[0], e[1]))
    phases = []
    try:
        for ordinal, (_, start, end, entry) in enumerate(entries, start=1):
            description = entry.get("description")
            notes = entry.get("notes")
            phases.append(
                SchedulePhase(
                    phase_number=ordinal,
                    start=start,
                    end=end,
                    description=description if isinstance(description, str) and description else None,
                    completed=entry.get("completed") is True,
                    notes=notes if isinstance(notes, str) and notes else None,
                )
            )
    except ValidationError as exc:
        logger.warning("Ignoring phases for %s: %s", source_id, exc.errors()[0].get("msg"))
        return None
    return phases


def parse_schedule_notes(raw, source_id: str = "?") -> ScheduleNotes:
    """
    Recover phases, manual completion and notes from a stored sub-document.
    Never raises.
    """
    if raw is None:
        return ScheduleNotes()

    if isinstance(raw, dict):
        data = raw
    else:
        text = str(raw)
        stripped = text.strip()
        if not stripped:
            return ScheduleNotes()
        try:
            data = json.loads(stripped)
        except (json.JSONDecodeError, ValueError):
            if stripped.startswith("{") or stripped.startswith("["):
                logger.warning("Malformed schedule document for %s; using defaults", source_id)
                return ScheduleNotes()
            return ScheduleNotes(notes=text)
        if isinstance(data, list):
            logger.warning("Unexpected schedule document shape for %s; using defaults", source_id)
            return ScheduleNotes()
        if not isinstance(data, dict):
            # A bare JSON scalar such as "42" is just note text.
            return ScheduleNotes(notes=text)

    notes = data.get("notes")
    notes = notes if isinstance(notes, str) and notes else None

    raw_phases = data.get("phases")
    if isinstance(raw_phases, list) and raw_phases:
        phases = _parse_phases(raw_phases, source_id)
        if phases is None:
            return ScheduleNotes(notes=notes)
        return ScheduleNotes(phases=phases, notes=notes)

    completed = data.get("completed")
    return ScheduleNotes(
        completed=completed if isinstance(completed, bool) else None,
        notes=notes,
    )


def phase_to_record(phase: SchedulePhase) -> dict:
    return {
        "phase_number": phase.phase_number,
        "start_date": format_date(phase.start),
        "end_date": format_date(phase.end),
        "duration_days": phase.duration_days,
        "description": phase.description,
        "completed": phase.completed,
        "notes": phase.notes,
    }


def serialize_schedule_notes(
    phases: Optional[List[SchedulePhase]] = None,
    completed: Optional[bool] = None,
    notes: Optional[str] = None,
) -> Optional[str]:
    """Inverse of parse_schedule_notes. Returns None when there is nothing to store."""
    document = {}
    if phases:
        document["phases"] = [phase_to_record(p) for p in sorted(phases, key=lambda p: p.phase_number)]
    elif completed is not None:
        document["completed"] = completed
    if notes:
        document["notes"] = notes
    if not document:
        return None
    return json.dumps(document)


def serialize_task_notes(task) -> Optional[str]:
    return serialize_schedule_notes(task.phases, task.completed, task.notes)
