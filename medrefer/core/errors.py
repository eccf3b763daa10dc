"""
Repository error types

- "Not found" is never an error: lookups return None
- Each failure mode has its own class so callers catch exactly what they handle
- Database failures keep the original sqlite3 exception chained (raise ... from)
"""
from typing import Any, Dict, Optional


class RepositoryError(Exception):
    """
    Base class for every error raised by the persistence layer
    """
    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{key}={value}" for key, value in self.context.items())
        return f"{self.message} ({details})"


class ValidationError(RepositoryError):
    """Caller-supplied entity failed a precondition; never retried"""


class DuplicateKeyError(RepositoryError):
    """A uniqueness precondition (tracking number, MRN) was violated"""


class PersistenceError(RepositoryError):
    """The database rejected or failed an operation"""


class ConstraintError(PersistenceError):
    """The database refused a write because of a table constraint"""


class CodecError(RepositoryError):
    """A row could not be mapped to or from its model"""
