# buildsched/models.py

from datetime import date
from enum import Enum
from typing import Any, List, Literal, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from buildsched.utils import compute_duration, parse_date


class TaskKind(str, Enum):
    """Which line-item collection a task was derived from (and is written back to)."""

    ESTIMATE_LINE = "estimate_line"
    CHANGE_ORDER_LINE = "change_order_line"

    @property
    def table_name(self) -> str:
        if self is TaskKind.CHANGE_ORDER_LINE:
            return "change_order_line_items"
        return "estimate_line_items"

    @property
    def wire_name(self) -> str:
        return "change_order" if self is TaskKind.CHANGE_ORDER_LINE else "estimate"

    @classmethod
    def _missing_(cls, value):
        if value in ("change_order", "changeOrderLine", "change-order"):
            return cls.CHANGE_ORDER_LINE
        if value in ("estimate", "estimateLine"):
            return cls.ESTIMATE_LINE
        return None


class TaskCategory(str, Enum):
    LABOR_INTERNAL = "labor_internal"
    SUBCONTRACTORS = "subcontractors"
    MATERIALS = "materials"
    EQUIPMENT = "equipment"
    PERMITS = "permits"
    MANAGEMENT = "management"
    OTHER = "other"

    @classmethod
    def _missing_(cls, value):
        return cls.OTHER

    @property
    def label(self) -> str:
        return " ".join(word.capitalize() for word in self.value.split("_"))


CATEGORY_COLORS = {
    TaskCategory.LABOR_INTERNAL: "#3b82f6",
    TaskCategory.SUBCONTRACTORS: "#8b5cf6",
    TaskCategory.MATERIALS: "#10b981",
    TaskCategory.EQUIPMENT: "#f59e0b",
    TaskCategory.PERMITS: "#ef4444",
    TaskCategory.MANAGEMENT: "#6366f1",
}
CHANGE_ORDER_COLOR = "#ec4899"
DEFAULT_COLOR = "#64748b"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Schedule entities
# ---------------------------------------------------------------------------

class TaskDependency(BaseModel):
    """Finish-to-start link: the referenced task should finish before the owner starts."""

    task_id: str
    task_name: Optional[str] = None
    task_type: TaskKind = TaskKind.ESTIMATE_LINE
    relation: Literal["finish-to-start"] = Field(
        default="finish-to-start",
        validation_alias=AliasChoices("relation", "type"),
    )

    @field_validator("task_type", mode="before")
    @classmethod
    def _coerce_kind(cls, value):
        if value is None:
            return TaskKind.ESTIMATE_LINE
        return TaskKind(value)

    def to_record(self) -> dict:
        """Shape stored in the line item's dependencies column."""
        return {
            "task_id": self.task_id,
            "task_name": self.task_name,
            "task_type": self.task_type.wire_name,
            "type": self.relation,
        }


class SchedulePhase(BaseModel):
    phase_number: int = Field(ge=1)
    start: date
    end: date
    description: Optional[str] = None
    completed: bool = False
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _check_dates(self):
        if self.start > self.end:
            raise ValueError(
                f"Phase {self.phase_number} starts after it ends ({self.start} > {self.end})"
            )
        return self

    @computed_field
    @property
    def duration_days(self) -> int:
        return compute_duration(self.start, self.end)


class ScheduleTask(BaseModel):
    """
    One bar on the project timeline, derived from a priced line item.
    The id is the id of the originating line item.
    """

    id: str
    name: str
    category: TaskCategory = TaskCategory.OTHER
    kind: TaskKind = TaskKind.ESTIMATE_LINE
    change_order_number: Optional[str] = None
    start: date
    end: date
    dependencies: List[TaskDependency] = Field(default_factory=list)
    phases: Optional[List[SchedulePhase]] = None
    # None means no explicit completion mark has ever been recorded.
    completed: Optional[bool] = None
    estimated_cost: float = Field(default=0.0, ge=0)
    actual_cost: float = Field(default=0.0, ge=0)
    progress: int = Field(default=0, ge=0, le=100)
    notes: Optional[str] = None
    is_milestone: bool = False

    @field_validator("category", mode="before")
    @classmethod
    def _coerce_category(cls, value):
        return TaskCategory(value) if value else TaskCategory.OTHER

    @model_validator(mode="after")
    def _check_invariants(self):
        if self.kind is TaskKind.CHANGE_ORDER_LINE:
            if not self.change_order_number:
                raise ValueError(f"Change-order task {self.id} has no change order number")
        elif self.change_order_number is not None:
            self.change_order_number = None

        seen = set()
        deps = []
        for dep in self.dependencies:
            if dep.task_id == self.id:
                raise ValueError(f"Task {self.id} cannot depend on itself")
            if dep.task_id in seen:
                continue
            seen.add(dep.task_id)
            deps.append(dep)
        self.dependencies = deps

        if self.phases is not None:
            if not self.phases:
                self.phases = None
            else:
                numbers = sorted(p.phase_number for p in self.phases)
                if numbers != list(range(1, len(self.phases) + 1)):
                    raise ValueError(
                        f"Task {self.id} phase numbers must be 1..{len(self.phases)}, got {numbers}"
                    )
                self.phases = sorted(self.phases, key=lambda p: p.phase_number)
                self.start = min(p.start for p in self.phases)
                self.end = max(p.end for p in self.phases)

        if self.start > self.end:
            raise ValueError(f"Task {self.id} starts after it ends ({self.start} > {self.end})")
        return self

    @computed_field
    @property
    def duration_days(self) -> int:
        return compute_duration(self.start, self.end)

    @computed_field
    @property
    def is_change_order(self) -> bool:
        return self.kind is TaskKind.CHANGE_ORDER_LINE

    @computed_field
    @property
    def has_multiple_phases(self) -> bool:
        return self.phases is not None and len(self.phases) > 1

    @property
    def is_complete(self) -> bool:
        if self.phases:
            return all(p.completed for p in self.phases)
        return bool(self.completed)

    @property
    def color(self) -> str:
        if self.is_change_order:
            return CHANGE_ORDER_COLOR
        return CATEGORY_COLORS.get(self.category, DEFAULT_COLOR)

    def dependency_ids(self) -> List[str]:
        return [d.task_id for d in self.dependencies]

    def evolve(self, **changes) -> "ScheduleTask":
        """Return a re-validated copy with the given fields replaced."""
        data = self.model_dump()
        data.update(changes)
        return ScheduleTask.model_validate(data)


# ---------------------------------------------------------------------------
# Records read from the backing store
# ---------------------------------------------------------------------------

class ProjectInfo(BaseModel):
    id: str
    name: str = "Project"
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _lenient_date(cls, value):
        return parse_date(value)


class LineItem(BaseModel):
    id: str
    category: Optional[str] = None
    description: Optional[str] = None
    quantity: float = 0.0
    cost_per_unit: float = 0.0
    total_cost: float = 0.0
    scheduled_start_date: Optional[date] = None
    scheduled_end_date: Optional[date] = None
    duration_days: Optional[int] = None
    dependencies: Any = None
    is_milestone: bool = False
    schedule_notes: Optional[str] = None

    @field_validator("scheduled_start_date", "scheduled_end_date", mode="before")
    @classmethod
    def _lenient_date(cls, value):
        return parse_date(value)

    @field_validator("quantity", "cost_per_unit", "total_cost", mode="before")
    @classmethod
    def _none_is_zero(cls, value):
        return 0.0 if value is None else value

    @field_validator("is_milestone", mode="before")
    @classmethod
    def _none_is_false(cls, value):
        return bool(value)


class ChangeOrder(BaseModel):
    id: str
    change_order_number: str
    line_items: List[LineItem] = Field(default_factory=list)

    @field_validator("change_order_number", mode="before")
    @classmethod
    def _stringify(cls, value):
        return str(value) if value is not None else value


class CorrelationEntry(BaseModel):
    """A ledger amount attributed to one line item."""

    id: str
    line_item_id: str
    amount: float = 0.0
    correlation_type: Optional[str] = None


class ScheduleSnapshot(BaseModel):
    """Everything the task builder needs, read in one pass."""

    project: ProjectInfo
    estimate_items: List[LineItem] = Field(default_factory=list)
    change_orders: List[ChangeOrder] = Field(default_factory=list)
    correlations: List[CorrelationEntry] = Field(default_factory=list)


class TaskUpdate(BaseModel):
    """Write payload for one task, routed by kind to the right line-item table."""

    task_id: str
    kind: TaskKind
    scheduled_start_date: date
    scheduled_end_date: date
    duration_days: int
    dependencies: List[dict] = Field(default_factory=list)
    schedule_notes: Optional[str] = None


# ---------------------------------------------------------------------------
# Derived outputs
# ---------------------------------------------------------------------------

class TaskProgress(BaseModel):
    task_id: str
    progress: int = Field(ge=0, le=100)
    actual_cost: float = 0.0
    source: Literal["phases", "manual", "cost"] = "cost"


class ScheduleWarning(BaseModel):
    id: str
    severity: Severity
    message: str
    task_id: Optional[str] = None
    task_name: Optional[str] = None
    can_dismiss: bool = True
    suggestion: Optional[str] = None
    related_task_ids: List[str] = Field(default_factory=list)
