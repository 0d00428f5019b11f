from __future__ import annotations
import os


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv(
    "DATABASE_URL",
    # default for docker-compose postgres service (Psycopg 3)
    "postgresql+psycopg://postgres:postgres@db:5432/taskboard",
)
SQL_ECHO = _flag("SQL_ECHO", "false")
AUTO_CREATE_TABLES = _flag("AUTO_CREATE_TABLES", "true")

SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DEFAULT_CATEGORY_COLOR = os.getenv("DEFAULT_CATEGORY_COLOR", "#3B82F6")
