"""Shared exceptions for service layer operations."""
import json
from typing import Any


class EntityNotFoundError(Exception):
    """Raised when an entity with the requested key does not exist."""

    def __init__(self, entity_name: str, key: tuple[Any, ...]) -> None:
        self.entity_name = entity_name
        self.key = key
        super().__init__(
            f"{entity_name} with key equal to {json.dumps(list(key), default=str)} not found.",
        )


class QueryExpressionError(ValueError):
    """
    Raised when a filter, sort, select, or include expression is invalid.

    Covers both syntax errors (unbalanced parentheses, unexpected tokens) and
    semantic errors (unknown fields, parameter index out of range, literals that
    cannot be converted to the column type).
    """

    def __init__(self, message: str, expression: str | None = None) -> None:
        self.expression = expression
        super().__init__(message)


class ConfigurationError(Exception):
    """Raised when required configuration (e.g., a connection string) is missing."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class PersistenceError(Exception):
    """
    Raised when the database rejects a write.

    Subclasses categorize the failure when the driver reports enough detail;
    otherwise this base class is raised.
    """

    def __init__(self, entity_name: str, message: str) -> None:
        self.entity_name = entity_name
        super().__init__(message)


class UniqueConstraintError(PersistenceError):
    """Raised when a write violates a unique constraint or index."""


class ReferenceConstraintError(PersistenceError):
    """Raised when a write violates a foreign key constraint."""


class CannotInsertNullError(PersistenceError):
    """Raised when a required column is written as NULL."""
