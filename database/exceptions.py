"""Exceptions raised by the persistence layer."""


class DatabaseError(Exception):
    """Base class for storage failures."""
    pass


class DatabaseSchemaError(DatabaseError):
    """Raised when schema files are missing or a migration fails."""
    pass


class DuplicateRecordError(DatabaseError):
    """Raised when an insert or update violates a unique constraint."""

    def __init__(self, constraint: str, message: str = ''):
        self.constraint = constraint
        super().__init__(message or f"Duplicate record violates {constraint}")


class ReferentialViolationError(DatabaseError):
    """Raised when a write references a missing row, or a delete would orphan rows."""

    def __init__(self, constraint: str, message: str = ''):
        self.constraint = constraint
        super().__init__(message or f"Foreign key constraint {constraint} violated")


__all__ = [
    'DatabaseError',
    'DatabaseSchemaError',
    'DuplicateRecordError',
    'ReferentialViolationError'
]
