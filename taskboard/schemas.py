from __future__ import annotations
from datetime import datetime, timezone
from typing import Annotated, Any, List, Literal, Optional
import uuid

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .config import DEFAULT_CATEGORY_COLOR
from .errors import FieldError, ValidationFailed
from .models import as_utc

HEX_COLOR_PATTERN = r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$"
PRIORITIES = (1, 2, 3, 4)
DEFAULT_PRIORITY = 2
PAST_DUE_DATE_MESSAGE = "Due date cannot be in the past"


def coerce_priority(value: Any) -> Any:
    """Accept 1-4 as int or numeric string ("3" -> 3)."""
    if isinstance(value, bool):
        raise ValueError("Priority must be one of 1, 2, 3, 4")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, int) and value in PRIORITIES:
        return value
    raise ValueError("Priority must be one of 1, 2, 3, 4")


def to_utc(value: datetime) -> datetime:
    return as_utc(value).astimezone(timezone.utc)


Priority = Annotated[int, BeforeValidator(coerce_priority)]
UtcDatetime = Annotated[datetime, AfterValidator(to_utc)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def ensure_due_date_allowed(due_date: Optional[datetime], completed: bool, now: Optional[datetime] = None) -> None:
    """Past due dates are only acceptable on todos that end up completed."""
    if due_date is None or completed:
        return
    now = now or datetime.now(timezone.utc)
    if to_utc(due_date) < now:
        raise ValidationFailed.for_field("dueDate", PAST_DUE_DATE_MESSAGE)


def field_errors(exc: Any) -> List[FieldError]:
    """Flatten pydantic (or FastAPI request) validation errors into field/message pairs."""
    out: List[FieldError] = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        msg = err.get("msg", "Invalid value")
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        out.append({"field": ".".join(loc), "message": msg})
    return out


def validation_failed(exc: ValidationError) -> ValidationFailed:
    return ValidationFailed("Validation failed", field_errors(exc))


# ---------- input ----------

class TodoCreate(CamelModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    priority: Optional[Priority] = DEFAULT_PRIORITY
    due_date: Optional[UtcDatetime] = None
    category_ids: Optional[List[uuid.UUID]] = None

    @field_validator("priority")
    @classmethod
    def _default_priority(cls, v: Optional[int]) -> int:
        return DEFAULT_PRIORITY if v is None else v

    @field_validator("due_date")
    @classmethod
    def _not_in_past(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v < datetime.now(timezone.utc):
            raise ValueError(PAST_DUE_DATE_MESSAGE)
        return v


class TodoUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    priority: Optional[Priority] = None
    due_date: Optional[UtcDatetime] = None
    is_completed: Optional[bool] = None
    category_ids: Optional[List[uuid.UUID]] = None

    @model_validator(mode="after")
    def _check_fields(self) -> "TodoUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        for name in ("title", "priority", "is_completed", "category_ids"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{to_camel(name)} cannot be null")
        return self

    def column_values(self) -> dict:
        """Explicitly-set fields that map onto todo columns (dueDate null clears it)."""
        return {
            name: getattr(self, name)
            for name in ("title", "description", "priority", "due_date", "is_completed")
            if name in self.model_fields_set
        }


class TodoBulkUpdate(CamelModel):
    todo_ids: List[uuid.UUID] = Field(min_length=1)
    is_completed: Optional[bool] = None
    priority: Optional[Priority] = None

    @model_validator(mode="after")
    def _has_change(self) -> "TodoBulkUpdate":
        if not self.column_values():
            raise ValueError("At least one of isCompleted or priority must be provided")
        return self

    def column_values(self) -> dict:
        values = {"is_completed": self.is_completed, "priority": self.priority}
        return {k: v for k, v in values.items() if v is not None}


class CategoryCreate(CamelModel):
    name: str = Field(min_length=1, max_length=50)
    color: str = Field(default=DEFAULT_CATEGORY_COLOR, pattern=HEX_COLOR_PATTERN)


class CategoryUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)

    @model_validator(mode="after")
    def _check_fields(self) -> "CategoryUpdate":
        if not self.column_values():
            raise ValueError("At least one field must be provided for update")
        return self

    def column_values(self) -> dict:
        return {k: v for k, v in (("name", self.name), ("color", self.color)) if v is not None}


SORT_COLUMNS = {
    "dueDate": "due_date",
    "priority": "priority",
    "createdAt": "created_at",
    "title": "title",
}


class TodoQuery(CamelModel):
    status: Literal["completed", "incomplete", "all"] = "all"
    priority: Optional[Priority] = None
    category: Optional[uuid.UUID] = None
    search: Optional[str] = Field(default=None, max_length=200)
    sort_by: Literal["dueDate", "priority", "createdAt", "title"] = "createdAt"
    sort_order: Literal["asc", "desc"] = "desc"

    @model_validator(mode="before")
    @classmethod
    def _drop_blank(cls, data: Any) -> Any:
        # ?status=&sortBy= behave like absent parameters
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None and v != ""}
        return data

    @property
    def is_completed(self) -> Optional[bool]:
        return {"completed": True, "incomplete": False}.get(self.status)

    @property
    def sort_column(self) -> str:
        return SORT_COLUMNS[self.sort_by]


# ---------- output ----------

class CategoryOut(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    name: str
    color: str
    created_at: UtcDatetime


class CategoryWithCountOut(CategoryOut):
    todo_count: int = 0


class TodoOut(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    title: str
    description: Optional[str] = None
    is_completed: bool
    priority: int
    due_date: Optional[UtcDatetime] = None
    created_at: UtcDatetime
    updated_at: UtcDatetime
    categories: List[CategoryOut] = []

    @classmethod
    def build(cls, todo: Any, categories: Optional[List[Any]] = None) -> "TodoOut":
        out = cls.model_validate(todo)
        if categories is not None:
            out.categories = [CategoryOut.model_validate(c) for c in categories]
        return out


class TodoEnvelope(CamelModel):
    todo: TodoOut


class TodoListEnvelope(CamelModel):
    todos: List[TodoOut]
    total_count: int


class CategoryEnvelope(CamelModel):
    category: CategoryOut


class CategoryListEnvelope(CamelModel):
    categories: List[CategoryWithCountOut]
    total_count: int


class TodoStatsOut(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    completed: int
    pending: int
    overdue: int


class BulkUpdateResult(CamelModel):
    updated_count: int


class SuccessResult(BaseModel):
    success: bool = True


class ValidationDetail(BaseModel):
    field: str
    message: str


class ErrorBody(BaseModel):
    error: str
    code: int
    validation: Optional[List[ValidationDetail]] = None
