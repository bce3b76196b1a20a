# services/api/core/errors.py
"""
Error taxonomy for the grading core.

Every error carries a machine-readable `kind` (NotFound, InvalidInput,
StateConflict, CascadeInconsistency, DependencyFailure), a concrete `code`
and a human-readable message. The HTTP layer maps `kind` to a status code.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from adapters.base import StorageError


class GradingError(Exception):
    kind = "GradingError"
    code = "GRADING_ERROR"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details: Dict[str, Any] = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "kind": self.kind, "detail": self.message, **self.details}


# ========== Kinds ==========

class NotFound(GradingError):
    kind = "NotFound"
    code = "NOT_FOUND"
    status_code = 404


class InvalidInput(GradingError):
    kind = "InvalidInput"
    code = "INVALID_INPUT"
    status_code = 400


class StateConflict(GradingError):
    kind = "StateConflict"
    code = "STATE_CONFLICT"
    status_code = 409


class CascadeInconsistency(GradingError):
    kind = "CascadeInconsistency"
    code = "CASCADE_INCONSISTENCY"
    status_code = 500


class DependencyFailure(GradingError):
    kind = "DependencyFailure"
    code = "DEPENDENCY_FAILURE"
    status_code = 503

    def __init__(self, message: str, *, step: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details={"step": step, **(details or {})})
        self.step = step


# ========== Concrete errors ==========

class EntityNotFound(NotFound):
    code = "ENTITY_NOT_FOUND"

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} {entity_id} not found", details={"entity": entity, "id": entity_id})


class TestNotFound(NotFound):
    __test__ = False  # not a pytest class
    code = "TEST_NOT_FOUND"

    def __init__(self, test_id: str):
        super().__init__(f"Test {test_id} not found", details={"id": test_id})


class TaskNotFound(NotFound):
    code = "TASK_NOT_FOUND"

    def __init__(self, task_id: str, reason: str = "not found"):
        super().__init__(f"Task {task_id} {reason}", details={"id": task_id})


class ResultNotFound(NotFound):
    code = "RESULT_NOT_FOUND"

    def __init__(self, result_id: str, reason: str = "not found"):
        super().__init__(f"Student test result {result_id} {reason}", details={"id": result_id})


class NoAcademicDirectorAvailable(NotFound):
    code = "NO_ACADEMIC_DIRECTOR_AVAILABLE"

    def __init__(self):
        super().__init__("No active user with role ACADEMIC_DIRECTOR is available")


class InvalidCorrector(NotFound):
    code = "INVALID_CORRECTOR"

    def __init__(self, user_id: str):
        super().__init__(f"User {user_id} is not an active corrector", details={"id": user_id})


class InvalidIdentifier(InvalidInput):
    code = "INVALID_IDENTIFIER"

    def __init__(self, value: Any):
        super().__init__(f"Invalid identifier: {value!r}", details={"value": str(value)})


class InvalidMark(InvalidInput):
    code = "INVALID_MARK"


class TaskAlreadyCompleted(StateConflict):
    code = "TASK_ALREADY_COMPLETED"

    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id} is no longer PENDING", details={"id": task_id})


class ResultAlreadyValidated(StateConflict):
    code = "RESULT_ALREADY_VALIDATED"

    def __init__(self, result_id: str):
        super().__init__(f"Student test result {result_id} is no longer PENDING", details={"id": result_id})


# ========== Helpers ==========

@contextmanager
def storage_step(step: str) -> Iterator[None]:
    """Run one write/read step; a backend failure becomes DependencyFailure naming the step."""
    try:
        yield
    except StorageError as e:
        raise DependencyFailure(f"Storage failure during '{step}': {e.reason}", step=step) from e
