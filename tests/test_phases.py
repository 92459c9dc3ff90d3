from datetime import date

import pytest
from pydantic import ValidationError

from buildsched.errors import InvalidScheduleEdit
from buildsched.models import SchedulePhase, ScheduleTask, TaskDependency, TaskKind
from buildsched.phases import (
    add_phase,
    clear_phases,
    move_task_start,
    remove_phase,
    reschedule_phase,
    reschedule_task,
    set_task_completed,
    split_into_phases,
    toggle_phase_completed,
    toggle_task_completed,
    update_notes,
    update_phase,
)


def _phased(make_task):
    task = make_task("paint", "2024-06-01", "2024-06-03", name="Interior Paint")
    task = add_phase(task, date(2024, 6, 10), date(2024, 6, 12), description="second coat")
    return add_phase(task, date(2024, 6, 20), date(2024, 6, 21), description="touch up")


def _assert_phase_invariants(task):
    assert task.start == min(p.start for p in task.phases)
    assert task.end == max(p.end for p in task.phases)
    assert [p.phase_number for p in task.phases] == list(range(1, len(task.phases) + 1))
    assert task.duration_days == (task.end - task.start).days + 1


# ------------------------------------------------------------------
# Model invariants
# ------------------------------------------------------------------

def test_task_rejects_start_after_end():
    with pytest.raises(ValidationError):
        ScheduleTask(id="a", name="A", start=date(2024, 1, 5), end=date(2024, 1, 1))


def test_task_rejects_self_dependency():
    with pytest.raises(ValidationError):
        ScheduleTask(id="a", name="A", start=date(2024, 1, 1), end=date(2024, 1, 1),
                     dependencies=[TaskDependency(task_id="a")])


def test_change_order_task_requires_number():
    with pytest.raises(ValidationError):
        ScheduleTask(id="a", name="A", start=date(2024, 1, 1), end=date(2024, 1, 1),
                     kind=TaskKind.CHANGE_ORDER_LINE)


def test_single_day_task_has_duration_one(make_task):
    assert make_task("a", "2024-01-01", "2024-01-01").duration_days == 1


def test_phase_numbers_must_be_contiguous():
    with pytest.raises(ValidationError):
        ScheduleTask(id="a", name="A", start=date(2024, 1, 1), end=date(2024, 1, 1), phases=[
            SchedulePhase(phase_number=1, start=date(2024, 1, 1), end=date(2024, 1, 2)),
            SchedulePhase(phase_number=3, start=date(2024, 1, 5), end=date(2024, 1, 6)),
        ])


# ------------------------------------------------------------------
# Whole-task edits
# ------------------------------------------------------------------

def test_reschedule_single_task_recomputes_duration(make_task):
    task = make_task("a", "2024-01-01", "2024-01-07")
    moved = reschedule_task(task, date(2024, 1, 3), date(2024, 1, 10))
    assert (moved.start, moved.end, moved.duration_days) == (date(2024, 1, 3), date(2024, 1, 10), 8)
    assert task.start == date(2024, 1, 1)


def test_reschedule_rejects_inverted_dates(make_task):
    with pytest.raises(InvalidScheduleEdit):
        reschedule_task(make_task("a", "2024-01-01", "2024-01-07"), date(2024, 1, 9), date(2024, 1, 2))


def test_reschedule_phased_task_shifts_every_phase(make_task):
    task = _phased(make_task)
    moved = reschedule_task(task, date(2024, 6, 3), date(2024, 6, 25))
    assert [(p.start, p.end) for p in moved.phases] == [
        (date(2024, 6, 3), date(2024, 6, 5)),
        (date(2024, 6, 12), date(2024, 6, 14)),
        (date(2024, 6, 22), date(2024, 6, 25)),
    ]
    _assert_phase_invariants(moved)


def test_resizing_a_phased_task_only_touches_the_last_phase(make_task):
    task = _phased(make_task)
    shrunk = reschedule_task(task, date(2024, 6, 1), date(2024, 6, 20))
    assert [(p.start, p.end) for p in shrunk.phases][-1] == (date(2024, 6, 20), date(2024, 6, 20))
    assert shrunk.phases[1].end == date(2024, 6, 12)
    with pytest.raises(InvalidScheduleEdit):
        reschedule_task(task, date(2024, 6, 1), date(2024, 6, 11))


def test_move_task_start_derives_end(make_task):
    moved = move_task_start(make_task("a", "2024-01-01", "2024-01-02"), date(2024, 2, 1), 5)
    assert moved.end == date(2024, 2, 5)
    with pytest.raises(InvalidScheduleEdit):
        move_task_start(moved, date(2024, 2, 1), 0)


# ------------------------------------------------------------------
# Phase edits
# ------------------------------------------------------------------

def test_first_add_phase_keeps_existing_span_as_phase_one(make_task):
    task = make_task("a", "2024-06-01", "2024-06-03", completed=True)
    phased = add_phase(task, date(2024, 6, 10), date(2024, 6, 11))
    assert len(phased.phases) == 2
    assert phased.phases[0].start == date(2024, 6, 1)
    assert phased.phases[0].completed is True
    assert phased.completed is None
    assert phased.has_multiple_phases
    _assert_phase_invariants(phased)


def test_phase_edits_rederive_task_span(make_task):
    task = _phased(make_task)
    task = reschedule_phase(task, 3, date(2024, 6, 28), date(2024, 6, 30))
    assert task.end == date(2024, 6, 30)
    task = update_phase(task, 1, start=date(2024, 5, 30))
    assert task.start == date(2024, 5, 30)
    _assert_phase_invariants(task)


def test_update_phase_rejects_unknown_fields_and_phases(make_task):
    task = _phased(make_task)
    with pytest.raises(InvalidScheduleEdit):
        update_phase(task, 1, phase_number=7)
    with pytest.raises(InvalidScheduleEdit):
        update_phase(task, 9, notes="x")
    with pytest.raises(InvalidScheduleEdit):
        update_phase(task, 1, end=date(2024, 5, 1))


def test_remove_phase_renumbers_without_gaps(make_task):
    task = remove_phase(_phased(make_task), 2)
    assert [p.description for p in task.phases] == [None, "touch up"]
    _assert_phase_invariants(task)
    assert task.end == date(2024, 6, 21)


def test_removing_last_phase_returns_to_single_mode(make_task):
    task = _phased(make_task)
    task = remove_phase(remove_phase(task, 3), 2)
    task = toggle_phase_completed(task, 1)
    task = remove_phase(task, 1)
    assert task.phases is None
    assert task.completed is True
    assert (task.start, task.end) == (date(2024, 6, 1), date(2024, 6, 3))


def test_clear_phases_collapses_to_overall_span(make_task):
    task = clear_phases(_phased(make_task))
    assert task.phases is None
    assert (task.start, task.end) == (date(2024, 6, 1), date(2024, 6, 21))
    assert task.completed is False


def test_split_into_phases(make_task):
    task = split_into_phases(make_task("a", "2024-01-01", "2024-01-10"), 3, gap_days=2)
    assert [p.duration_days for p in task.phases] == [4, 3, 3]
    assert task.phases[1].start == date(2024, 1, 7)
    _assert_phase_invariants(task)
    with pytest.raises(InvalidScheduleEdit):
        split_into_phases(make_task("b", "2024-01-01", "2024-01-02"), 3)


# ------------------------------------------------------------------
# Completion and notes
# ------------------------------------------------------------------

def test_toggle_task_completed_marks_all_phases(make_task):
    task = toggle_task_completed(_phased(make_task))
    assert all(p.completed for p in task.phases)
    assert task.is_complete
    task = toggle_task_completed(task)
    assert not any(p.completed for p in task.phases)


def test_set_task_completed_single_phase(make_task):
    task = set_task_completed(make_task("a", "2024-01-01", "2024-01-02"), True)
    assert task.completed is True
    assert task.is_complete


def test_update_notes_blank_clears(make_task):
    task = update_notes(make_task("a", "2024-01-01", "2024-01-02"), "gate code 1234")
    assert task.notes == "gate code 1234"
    assert update_notes(task, "").notes is None
