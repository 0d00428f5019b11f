import uuid
from typing import Iterator

import pytest
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from taskboard.db import Base, make_engine
from taskboard.models import User
from taskboard.storage import TodoStore


@pytest.fixture()
def db() -> Iterator[Session]:
    # One shared in-memory connection per test, foreign keys enforced
    engine = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    session = Session(bind=engine, autoflush=False, expire_on_commit=False)
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def store(db: Session) -> TodoStore:
    return TodoStore(db)


def _make_user(db: Session, email: str) -> uuid.UUID:
    user = User(email=email, name=email.split("@")[0])
    db.add(user)
    db.commit()
    return user.id


@pytest.fixture()
def alice(db: Session) -> uuid.UUID:
    return _make_user(db, "alice@example.com")


@pytest.fixture()
def bob(db: Session) -> uuid.UUID:
    return _make_user(db, "bob@example.com")
