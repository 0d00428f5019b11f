from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional
import uuid

from fastapi import Body, Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import AUTO_CREATE_TABLES
from .db import get_db, init_db
from .errors import FieldError, NotFound, TaskboardError, ValidationFailed
from .logging_setup import configure_logging
from .schemas import (
    BulkUpdateResult,
    CategoryCreate,
    CategoryEnvelope,
    CategoryListEnvelope,
    CategoryOut,
    CategoryUpdate,
    CategoryWithCountOut,
    ErrorBody,
    SuccessResult,
    TodoBulkUpdate,
    TodoCreate,
    TodoEnvelope,
    TodoListEnvelope,
    TodoOut,
    TodoQuery,
    TodoStatsOut,
    TodoUpdate,
    ensure_due_date_allowed,
    field_errors,
    validation_failed,
)
from .security import get_current_user_id
from .storage import TodoFilters, TodoSort, TodoStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    # Create tables before serving requests unless migrations own the schema
    if AUTO_CREATE_TABLES:
        init_db()
    yield


app = FastAPI(title="Taskboard API", version="0.1.0", lifespan=lifespan)


def get_store(db: Session = Depends(get_db)) -> TodoStore:
    return TodoStore(db)


def _parse_id(raw: str, what: str) -> uuid.UUID:
    # A malformed id cannot name an existing row
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise NotFound(f"{what} not found") from None


def _error(status_code: int, message: str, validation: Optional[List[FieldError]] = None) -> JSONResponse:
    body = ErrorBody(error=message, code=status_code, validation=validation)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


# ---------- error translation ----------

@app.exception_handler(TaskboardError)
async def taskboard_error_handler(request: Request, exc: TaskboardError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    validation = exc.validation if isinstance(exc, ValidationFailed) and exc.validation else None
    return _error(exc.status_code, exc.message, validation)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return _error(status.HTTP_400_BAD_REQUEST, "Validation failed", field_errors(exc))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred")


def _validate(model: type[BaseModel], data: dict):
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise validation_failed(e) from e


# ---------- routes ----------

@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/todos", response_model=TodoListEnvelope)
def list_todos(
    status_: Optional[str] = Query(default=None, alias="status"),
    priority: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    sort_by: Optional[str] = Query(default=None, alias="sortBy"),
    sort_order: Optional[str] = Query(default=None, alias="sortOrder"),
    user_id: uuid.UUID = Depends(get_current_user_id),
    store: TodoStore = Depends(get_store),
):
    params: TodoQuery = _validate(TodoQuery, {
        "status": status_,
        "priority": priority,
        "category": category,
        "search": search,
        "sortBy": sort_by,
        "sortOrder": sort_order,
    })
    filters = TodoFilters(
        is_completed=params.is_completed,
        priority=params.priority,
        category_id=params.category,
        search=params.search,
    )
    sort = TodoSort(field=params.sort_column, direction=params.sort_order)
    rows = store.list_todos_with_categories(user_id, filters, sort)
    todos = [TodoOut.build(r.todo, r.categories) for r in rows]
    return TodoListEnvelope(todos=todos, total_count=len(todos))


@app.post("/todos", response_model=TodoEnvelope, status_code=201)
def create_todo(
    body: TodoCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    store: TodoStore = Depends(get_store),
):
    todo = store.create_todo(
        user_id,
        title=body.title,
        description=body.description,
        priority=body.priority,
        due_date=body.due_date,
        category_ids=body.category_ids,
    )
    full = store.get_todo_with_categories(todo.id, user_id)
    if full is None:
        return TodoEnvelope(todo=TodoOut.build(todo, []))
    return TodoEnvelope(todo=TodoOut.build(full.todo, full.categories))


@app.patch("/todos", response_model=BulkUpdateResult)
def bulk_update_todos(
    body: TodoBulkUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    store: TodoStore = Depends(get_store),
):
    count = store.bulk_update_todos(body.todo_ids, user_id, body.column_values())
    return BulkUpdateResult(updated_count=count)


@app.get("/todos/stats", response_model=TodoStatsOut)
def todo_stats(user_id: uuid.UUID = Depends(get_current_user_id), store: TodoStore = Depends(get_store)):
    return TodoStatsOut.model_validate(store.get_todo_stats(user_id))


@app.get("/todos/{todo_id}", response_model=TodoEnvelope)
def get_todo(
    todo_id: str,
    user_id: uuid.UUID = Depends(get_current_user_id),
    store: TodoStore = Depends(get_store),
):
    full = store.get_todo_with_categories(_parse_id(todo_id, "Todo"), user_id)
    if full is None:
        raise NotFound("Todo not found")
    return TodoEnvelope(todo=TodoOut.build(full.todo, full.categories))


@app.patch("/todos/{todo_id}", response_model=TodoEnvelope)
def patch_todo(
    todo_id: str,
    payload: Optional[Dict[str, Any]] = Body(default=None),
    user_id: uuid.UUID = Depends(get_current_user_id),
    store: TodoStore = Depends(get_store),
):
    tid = _parse_id(todo_id, "Todo")
    existing = store.get_todo(tid, user_id)
    if existing is None:
        raise NotFound("Todo not found")
    # body is validated only once the todo is known to exist for this user
    body: TodoUpdate = _validate(TodoUpdate, payload or {})

    if "due_date" in body.model_fields_set:
        completed = body.is_completed if body.is_completed is not None else existing.is_completed
        ensure_due_date_allowed(body.due_date, completed)

    updated = store.update_todo(tid, user_id, body.column_values(), category_ids=body.category_ids)
    if updated is None:
        raise NotFound("Todo not found")

    full = store.get_todo_with_categories(tid, user_id)
    if full is None:
        raise NotFound("Todo not found")
    return TodoEnvelope(todo=TodoOut.build(full.todo, full.categories))


@app.post("/todos/{todo_id}/toggle", response_model=TodoEnvelope)
def toggle_todo(
    todo_id: str,
    user_id: uuid.UUID = Depends(get_current_user_id),
    store: TodoStore = Depends(get_store),
):
    tid = _parse_id(todo_id, "Todo")
    if store.toggle_todo_completion(tid, user_id) is None:
        raise NotFound("Todo not found")
    full = store.get_todo_with_categories(tid, user_id)
    if full is None:
        raise NotFound("Todo not found")
    return TodoEnvelope(todo=TodoOut.build(full.todo, full.categories))


@app.get("/todos/{todo_id}/categories", response_model=List[CategoryOut])
def get_todo_categories(
    todo_id: str,
    user_id: uuid.UUID = Depends(get_current_user_id),
    store: TodoStore = Depends(get_store),
):
    cats = store.get_todo_categories(_parse_id(todo_id, "Todo"), user_id)
    return [CategoryOut.model_validate(c) for c in cats]


@app.put("/todos/{todo_id}/categories", response_model=List[CategoryOut])
def put_todo_categories(
    todo_id: str,
    category_ids: List[uuid.UUID] = Body(..., embed=True, alias="categoryIds"),
    user_id: uuid.UUID = Depends(get_current_user_id),
    store: TodoStore = Depends(get_store),
):
    tid = _parse_id(todo_id, "Todo")
    store.replace_todo_categories(tid, category_ids, user_id)
    return [CategoryOut.model_validate(c) for c in store.get_todo_categories(tid, user_id)]


@app.delete("/todos/{todo_id}", response_model=SuccessResult)
def delete_todo(
    todo_id: str,
    user_id: uuid.UUID = Depends(get_current_user_id),
    store: TodoStore = Depends(get_store),
):
    if not store.delete_todo(_parse_id(todo_id, "Todo"), user_id):
        raise NotFound("Todo not found")
    return SuccessResult()


@app.get("/categories", response_model=CategoryListEnvelope)
def list_categories(user_id: uuid.UUID = Depends(get_current_user_id), store: TodoStore = Depends(get_store)):
    rows = store.list_categories_with_counts(user_id)
    categories = []
    for category, count in rows:
        out = CategoryWithCountOut.model_validate(category)
        out.todo_count = count
        categories.append(out)
    return CategoryListEnvelope(categories=categories, total_count=len(categories))


@app.post("/categories", response_model=CategoryEnvelope, status_code=201)
def create_category(
    body: CategoryCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    store: TodoStore = Depends(get_store),
):
    category = store.create_category(user_id, body.name, body.color)
    return CategoryEnvelope(category=CategoryOut.model_validate(category))


@app.get("/categories/{category_id}", response_model=CategoryEnvelope)
def get_category(
    category_id: str,
    user_id: uuid.UUID = Depends(get_current_user_id),
    store: TodoStore = Depends(get_store),
):
    category = store.get_category(_parse_id(category_id, "Category"), user_id)
    if category is None:
        raise NotFound("Category not found")
    return CategoryEnvelope(category=CategoryOut.model_validate(category))


@app.patch("/categories/{category_id}", response_model=CategoryEnvelope)
def patch_category(
    category_id: str,
    body: CategoryUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    store: TodoStore = Depends(get_store),
):
    category = store.update_category(_parse_id(category_id, "Category"), user_id, body.column_values())
    if category is None:
        raise NotFound("Category not found")
    return CategoryEnvelope(category=CategoryOut.model_validate(category))


@app.delete("/categories/{category_id}", response_model=SuccessResult)
def delete_category(
    category_id: str,
    user_id: uuid.UUID = Depends(get_current_user_id),
    store: TodoStore = Depends(get_store),
):
    if not store.delete_category(_parse_id(category_id, "Category"), user_id):
        raise NotFound("Category not found")
    return SuccessResult()
