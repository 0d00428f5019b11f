from __future__ import annotations
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
import uuid

from .db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive timestamps (as read back from SQLite) as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    todos: Mapped[List["Todo"]] = relationship(
        "Todo", back_populates="owner", cascade="all, delete-orphan", passive_deletes=True
    )
    categories: Mapped[List["Category"]] = relationship(
        "Category", back_populates="owner", cascade="all, delete-orphan", passive_deletes=True
    )


class Todo(Base):
    __tablename__ = "todos"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    # 1=Low, 2=Medium, 3=High, 4=Critical
    priority: Mapped[int] = mapped_column(Integer, default=2, nullable=False, index=True)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    owner: Mapped[User] = relationship("User", back_populates="todos")
    links: Mapped[List["TodoCategory"]] = relationship(
        "TodoCategory", back_populates="todo", cascade="all, delete-orphan", passive_deletes=True
    )

    def is_overdue(self, now: datetime) -> bool:
        due = as_utc(self.due_date)
        return not self.is_completed and due is not None and due < now


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    # #RRGGBB or #RGB
    color: Mapped[str] = mapped_column(String(7), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    owner: Mapped[User] = relationship("User", back_populates="categories")
    links: Mapped[List["TodoCategory"]] = relationship(
        "TodoCategory", back_populates="category", cascade="all, delete-orphan", passive_deletes=True
    )


class TodoCategory(Base):
    __tablename__ = "todo_categories"

    todo_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("todos.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    category_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    todo: Mapped[Todo] = relationship("Todo", back_populates="links")
    category: Mapped[Category] = relationship("Category", back_populates="links")


Index("ix_todos_user_id_is_completed", Todo.user_id, Todo.is_completed)
Index("ux_categories_user_id_name", Category.user_id, Category.name, unique=True)
