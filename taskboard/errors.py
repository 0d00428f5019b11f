"""Error types raised by the query layer and translated by the HTTP layer.

Each class carries its HTTP status code, so handlers map errors by type
and never by message text.
"""
from __future__ import annotations
from typing import List, Optional, TypedDict


class FieldError(TypedDict):
    field: str
    message: str


class TaskboardError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(TaskboardError):
    status_code = 400

    def __init__(self, message: str = "Validation failed", validation: Optional[List[FieldError]] = None):
        super().__init__(message)
        self.validation: List[FieldError] = list(validation or [])

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationFailed":
        return cls(message, [{"field": field, "message": message}])


class Unauthorized(TaskboardError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized access"):
        super().__init__(message)


class Forbidden(TaskboardError):
    status_code = 403

    def __init__(self, message: str = "Access forbidden"):
        super().__init__(message)


class NotFound(TaskboardError):
    status_code = 404

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message)


class InternalError(TaskboardError):
    status_code = 500

    def __init__(self, message: str = "An unexpected error occurred"):
        super().__init__(message)
