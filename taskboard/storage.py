"""Owner-scoped reads and writes over todos, categories and their links.

Every public method takes the requesting user's id and filters on it; a row
owned by someone else is reported exactly like a row that does not exist.
"""
from __future__ import annotations
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple
import uuid

from sqlalchemy import Select, and_, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import InternalError, NotFound, TaskboardError, Unauthorized, ValidationFailed
from .models import Category, Todo, TodoCategory, User, utcnow

logger = logging.getLogger(__name__)

TODO_UPDATABLE = ("title", "description", "priority", "due_date", "is_completed")
CATEGORY_UPDATABLE = ("name", "color")
SORTABLE = {
    "due_date": Todo.due_date,
    "priority": Todo.priority,
    "created_at": Todo.created_at,
    "title": Todo.title,
}


@dataclass
class TodoFilters:
    is_completed: Optional[bool] = None
    priority: Optional[int] = None
    category_id: Optional[uuid.UUID] = None
    search: Optional[str] = None


@dataclass
class TodoSort:
    field: str = "created_at"
    direction: str = "desc"


@dataclass
class TodoWithCategories:
    todo: Todo
    categories: List[Category] = field(default_factory=list)


@dataclass
class TodoStats:
    total: int
    completed: int
    pending: int
    overdue: int


def _dedupe(ids: Iterable[uuid.UUID]) -> List[uuid.UUID]:
    seen: Dict[uuid.UUID, None] = {}
    for i in ids:
        seen.setdefault(i, None)
    return list(seen)


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class TodoStore:
    """Query layer bound to one SQLAlchemy session (one per request)."""

    def __init__(self, db: Session):
        self.db = db

    # ---------- plumbing ----------

    @contextmanager
    def _tx(self, action: str, conflict: Optional[TaskboardError] = None) -> Iterator[Session]:
        """Run a unit of work and commit it; any failure rolls the whole unit back."""
        try:
            yield self.db
            self.db.commit()
        except TaskboardError:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            if conflict is not None:
                raise conflict from e
            logger.exception("Integrity error while trying to %s", action)
            raise InternalError(f"Failed to {action}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Database error while trying to %s", action)
            raise InternalError(f"Failed to {action}") from e

    @contextmanager
    def _read(self, action: str) -> Iterator[Session]:
        try:
            yield self.db
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Database error while trying to %s", action)
            raise InternalError(f"Failed to {action}") from e

    def _owned_todo(self, todo_id: uuid.UUID, user_id: uuid.UUID) -> Optional[Todo]:
        stmt = select(Todo).where(Todo.id == todo_id, Todo.user_id == user_id).limit(1)
        return self.db.execute(stmt).scalar_one_or_none()

    def _require_todo(self, todo_id: uuid.UUID, user_id: uuid.UUID) -> Todo:
        todo = self._owned_todo(todo_id, user_id)
        if todo is None:
            raise NotFound("Todo not found or access denied")
        return todo

    def _require_categories(self, category_ids: Sequence[uuid.UUID], user_id: uuid.UUID) -> None:
        if not category_ids:
            return
        stmt = select(Category.id).where(Category.user_id == user_id, Category.id.in_(category_ids))
        owned = set(self.db.execute(stmt).scalars())
        missing = [str(c) for c in category_ids if c not in owned]
        if missing:
            raise NotFound("Categories not found or access denied: " + ", ".join(missing))

    def _categories_by_todo(self, todo_ids: Sequence[uuid.UUID]) -> Dict[uuid.UUID, List[Category]]:
        out: Dict[uuid.UUID, List[Category]] = {tid: [] for tid in todo_ids}
        if not todo_ids:
            return out
        stmt = (
            select(TodoCategory.todo_id, Category)
            .join(Category, TodoCategory.category_id == Category.id)
            .where(TodoCategory.todo_id.in_(todo_ids))
            .order_by(Category.name)
        )
        for todo_id, category in self.db.execute(stmt):
            out[todo_id].append(category)
        return out

    def _link(self, todo_id: uuid.UUID, category_ids: Sequence[uuid.UUID]) -> None:
        existing_stmt = select(TodoCategory.category_id).where(TodoCategory.todo_id == todo_id)
        existing = set(self.db.execute(existing_stmt).scalars())
        for cid in _dedupe(category_ids):
            if cid not in existing:
                self.db.add(TodoCategory(todo_id=todo_id, category_id=cid))
        self.db.flush()

    def _relink(self, todo_id: uuid.UUID, category_ids: Sequence[uuid.UUID]) -> None:
        self.db.execute(
            delete(TodoCategory)
            .where(TodoCategory.todo_id == todo_id)
            .execution_options(synchronize_session="fetch")
        )
        self._link(todo_id, category_ids)

    # ---------- users ----------

    def ensure_user(self, user_id: uuid.UUID, email: str, name: Optional[str] = None) -> User:
        """Return the user row, inserting it on first sight of a provider identity."""
        with self._read("load user"):
            user = self.db.get(User, user_id)
        if user is not None:
            return user
        try:
            with self._tx("provision user", conflict=Unauthorized("Unable to provision user")):
                user = User(id=user_id, email=email, name=name)
                self.db.add(user)
            logger.info("Provisioned user %s", user_id)
            return user
        except Unauthorized:
            # A concurrent request may have inserted the same id first
            user = self.db.get(User, user_id)
            if user is None:
                raise
            return user

    # ---------- todos ----------

    def _todo_query(self, user_id: uuid.UUID, filters: TodoFilters, sort: TodoSort) -> Select:
        conditions = [Todo.user_id == user_id]
        if filters.is_completed is not None:
            conditions.append(Todo.is_completed == filters.is_completed)
        if filters.priority is not None:
            conditions.append(Todo.priority == filters.priority)
        if filters.search:
            pattern = _like_pattern(filters.search)
            conditions.append(
                or_(Todo.title.ilike(pattern, escape="\\"), Todo.description.ilike(pattern, escape="\\"))
            )

        stmt = select(Todo)
        if filters.category_id is not None:
            stmt = stmt.join(
                TodoCategory,
                and_(TodoCategory.todo_id == Todo.id, TodoCategory.category_id == filters.category_id),
            )
        stmt = stmt.where(and_(*conditions))

        column = SORTABLE.get(sort.field)
        if column is None:
            raise ValidationFailed.for_field("sortBy", f"Unsupported sort field: {sort.field}")
        ordered = column.asc() if sort.direction == "asc" else column.desc()
        if sort.field == "due_date":
            # todos without a due date go last in either direction
            ordered = ordered.nulls_last()
        order = [ordered]
        if sort.field != "created_at":
            order.append(Todo.created_at.desc())
        order.append(Todo.id)
        return stmt.order_by(*order)

    def list_todos(
        self,
        user_id: uuid.UUID,
        filters: Optional[TodoFilters] = None,
        sort: Optional[TodoSort] = None,
    ) -> List[Todo]:
        stmt = self._todo_query(user_id, filters or TodoFilters(), sort or TodoSort())
        with self._read("fetch todos"):
            return list(self.db.execute(stmt).scalars())

    def list_todos_with_categories(
        self,
        user_id: uuid.UUID,
        filters: Optional[TodoFilters] = None,
        sort: Optional[TodoSort] = None,
    ) -> List[TodoWithCategories]:
        todos = self.list_todos(user_id, filters, sort)
        with self._read("fetch todo categories"):
            by_todo = self._categories_by_todo([t.id for t in todos])
        return [TodoWithCategories(t, by_todo[t.id]) for t in todos]

    def get_todo(self, todo_id: uuid.UUID, user_id: uuid.UUID) -> Optional[Todo]:
        with self._read("fetch todo"):
            return self._owned_todo(todo_id, user_id)

    def get_todo_with_categories(self, todo_id: uuid.UUID, user_id: uuid.UUID) -> Optional[TodoWithCategories]:
        with self._read("fetch todo with categories"):
            todo = self._owned_todo(todo_id, user_id)
            if todo is None:
                return None
            return TodoWithCategories(todo, self._categories_by_todo([todo.id])[todo.id])

    def get_todo_categories(self, todo_id: uuid.UUID, user_id: uuid.UUID) -> List[Category]:
        with self._read("fetch todo categories"):
            todo = self._require_todo(todo_id, user_id)
            return self._categories_by_todo([todo.id])[todo.id]

    def create_todo(
        self,
        user_id: uuid.UUID,
        title: str,
        description: Optional[str] = None,
        priority: int = 2,
        due_date: Optional[datetime] = None,
        is_completed: bool = False,
        category_ids: Optional[Sequence[uuid.UUID]] = None,
    ) -> Todo:
        """Insert a todo (and its category links) in one transaction."""
        with self._tx("create todo"):
            self._require_categories(category_ids or [], user_id)
            now = utcnow()
            todo = Todo(
                user_id=user_id,
                title=title,
                description=description,
                priority=priority,
                due_date=due_date,
                is_completed=is_completed,
                created_at=now,
                updated_at=now,
            )
            self.db.add(todo)
            self.db.flush()
            if category_ids:
                self._link(todo.id, category_ids)
        logger.info("Created todo %s for user %s", todo.id, user_id)
        return todo

    def update_todo(
        self,
        todo_id: uuid.UUID,
        user_id: uuid.UUID,
        fields: Mapping[str, object],
        category_ids: Optional[Sequence[uuid.UUID]] = None,
    ) -> Optional[Todo]:
        """Apply a partial update; ``category_ids`` (if given) replaces the links in the same commit."""
        unknown = set(fields) - set(TODO_UPDATABLE)
        if unknown:
            raise ValidationFailed(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
        with self._tx("update todo"):
            todo = self._owned_todo(todo_id, user_id)
            if todo is None:
                return None
            if category_ids is not None:
                self._require_categories(category_ids, user_id)
                self._relink(todo_id, category_ids)
            for name, value in fields.items():
                setattr(todo, name, value)
            todo.updated_at = utcnow()
        changed = sorted(fields) + (["categories"] if category_ids is not None else [])
        logger.info("Updated todo %s (%s)", todo_id, ", ".join(changed) or "touch")
        return todo

    def toggle_todo_completion(self, todo_id: uuid.UUID, user_id: uuid.UUID) -> Optional[Todo]:
        with self._tx("toggle todo completion"):
            todo = self._owned_todo(todo_id, user_id)
            if todo is None:
                return None
            todo.is_completed = not todo.is_completed
            todo.updated_at = utcnow()
        logger.info("Toggled todo %s (completed=%s)", todo_id, todo.is_completed)
        return todo

    def bulk_update_todos(
        self, todo_ids: Sequence[uuid.UUID], user_id: uuid.UUID, fields: Mapping[str, object]
    ) -> int:
        """Apply the same change to every listed todo the user owns; returns rows touched."""
        unknown = set(fields) - set(TODO_UPDATABLE)
        if unknown:
            raise ValidationFailed(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
        if not todo_ids:
            return 0
        stmt = (
            update(Todo)
            .where(Todo.id.in_(_dedupe(todo_ids)), Todo.user_id == user_id)
            .values(**dict(fields), updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        with self._tx("bulk update todos"):
            count = self.db.execute(stmt).rowcount
        logger.info("Bulk updated %d todos for user %s", count, user_id)
        return count

    def delete_todo(self, todo_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        # todo_categories rows go with it via ON DELETE CASCADE
        stmt = (
            delete(Todo)
            .where(Todo.id == todo_id, Todo.user_id == user_id)
            .execution_options(synchronize_session="fetch")
        )
        with self._tx("delete todo"):
            deleted = self.db.execute(stmt).rowcount > 0
        if deleted:
            logger.info("Deleted todo %s", todo_id)
        return deleted

    def get_todo_stats(self, user_id: uuid.UUID, now: Optional[datetime] = None) -> TodoStats:
        now = now or datetime.now(timezone.utc)
        todos = self.list_todos(user_id)
        total = len(todos)
        completed = sum(1 for t in todos if t.is_completed)
        overdue = sum(1 for t in todos if t.is_overdue(now))
        return TodoStats(total=total, completed=completed, pending=total - completed, overdue=overdue)

    # ---------- todo <-> category links ----------

    def replace_todo_categories(
        self, todo_id: uuid.UUID, category_ids: Sequence[uuid.UUID], user_id: uuid.UUID
    ) -> None:
        """Make ``category_ids`` the todo's exact category set.

        Delete and insert share one transaction, so readers never observe the
        todo with its links half replaced.
        """
        with self._tx("replace todo categories"):
            self._require_todo(todo_id, user_id)
            self._require_categories(category_ids, user_id)
            self._relink(todo_id, category_ids)
        logger.info("Replaced categories of todo %s (%d links)", todo_id, len(set(category_ids)))

    def add_categories_to_todo(
        self, todo_id: uuid.UUID, category_ids: Sequence[uuid.UUID], user_id: uuid.UUID
    ) -> None:
        with self._tx("add categories to todo"):
            self._require_todo(todo_id, user_id)
            self._require_categories(category_ids, user_id)
            self._link(todo_id, category_ids)
        logger.info("Added %d categories to todo %s", len(set(category_ids)), todo_id)

    def remove_categories_from_todo(
        self, todo_id: uuid.UUID, category_ids: Sequence[uuid.UUID], user_id: uuid.UUID
    ) -> None:
        with self._tx("remove categories from todo"):
            self._require_todo(todo_id, user_id)
            if category_ids:
                self.db.execute(
                    delete(TodoCategory).where(
                        TodoCategory.todo_id == todo_id,
                        TodoCategory.category_id.in_(list(category_ids)),
                    )
                    .execution_options(synchronize_session="fetch")
                )
        logger.info("Removed %d categories from todo %s", len(set(category_ids)), todo_id)

    # ---------- categories ----------

    def list_categories(self, user_id: uuid.UUID) -> List[Category]:
        stmt = select(Category).where(Category.user_id == user_id).order_by(Category.name)
        with self._read("fetch categories"):
            return list(self.db.execute(stmt).scalars())

    def list_categories_with_counts(self, user_id: uuid.UUID) -> List[Tuple[Category, int]]:
        """Categories by name with the number of the user's todos carrying each."""
        stmt = (
            select(Category, func.count(Todo.id))
            .outerjoin(TodoCategory, TodoCategory.category_id == Category.id)
            .outerjoin(Todo, and_(Todo.id == TodoCategory.todo_id, Todo.user_id == user_id))
            .where(Category.user_id == user_id)
            .group_by(Category.id)
            .order_by(Category.name)
        )
        with self._read("fetch categories with counts"):
            return [(c, int(n)) for c, n in self.db.execute(stmt)]

    def get_category(self, category_id: uuid.UUID, user_id: uuid.UUID) -> Optional[Category]:
        stmt = select(Category).where(Category.id == category_id, Category.user_id == user_id).limit(1)
        with self._read("fetch category"):
            return self.db.execute(stmt).scalar_one_or_none()

    def create_category(self, user_id: uuid.UUID, name: str, color: str) -> Category:
        duplicate = ValidationFailed.for_field("name", "Category name already exists")
        with self._tx("create category", conflict=duplicate):
            category = Category(user_id=user_id, name=name, color=color)
            self.db.add(category)
            self.db.flush()
        logger.info("Created category %s for user %s", category.id, user_id)
        return category

    def update_category(
        self, category_id: uuid.UUID, user_id: uuid.UUID, fields: Mapping[str, object]
    ) -> Optional[Category]:
        unknown = set(fields) - set(CATEGORY_UPDATABLE)
        if unknown:
            raise ValidationFailed(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
        duplicate = ValidationFailed.for_field("name", "Category name already exists")
        with self._tx("update category", conflict=duplicate):
            stmt = select(Category).where(Category.id == category_id, Category.user_id == user_id)
            category = self.db.execute(stmt).scalar_one_or_none()
            if category is None:
                return None
            for name, value in fields.items():
                setattr(category, name, value)
            self.db.flush()
        logger.info("Updated category %s (%s)", category_id, ", ".join(sorted(fields)))
        return category

    def delete_category(self, category_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        # links are removed by ON DELETE CASCADE; todos are untouched
        stmt = (
            delete(Category)
            .where(Category.id == category_id, Category.user_id == user_id)
            .execution_options(synchronize_session="fetch")
        )
        with self._tx("delete category"):
            deleted = self.db.execute(stmt).rowcount > 0
        if deleted:
            logger.info("Deleted category %s", category_id)
        return deleted
