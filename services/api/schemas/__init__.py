"""
Pydantic schemas for API request/response validation.
"""
from pydantic import BaseModel

from .hierarchy import (
    BlockCreate,
    BlockUpdate,
    SubjectCreate,
    SubjectUpdate,
    TaskCreate,
    TestCreate,
    TestUpdate,
)
from .school import SchoolCreate, SchoolUpdate, StudentCreate, StudentUpdate
from .workflow import (
    AssignCorrectorIn,
    EnterMarksIn,
    EvaluateCriteriaIn,
    EvaluateCriteriaOut,
    PublishTestIn,
    ResultMarksUpdate,
    StudentMarksIn,
    ValidateMarksIn,
)


# ============ Health Check ============


class HealthCheck(BaseModel):
    """Health check response."""
    status: str = "healthy"
    backend: str
    version: str


# Re-export all
__all__ = [
    "BlockCreate",
    "BlockUpdate",
    "SubjectCreate",
    "SubjectUpdate",
    "TestCreate",
    "TestUpdate",
    "TaskCreate",
    "SchoolCreate",
    "SchoolUpdate",
    "StudentCreate",
    "StudentUpdate",
    "PublishTestIn",
    "AssignCorrectorIn",
    "StudentMarksIn",
    "EnterMarksIn",
    "ValidateMarksIn",
    "ResultMarksUpdate",
    "EvaluateCriteriaIn",
    "EvaluateCriteriaOut",
    "HealthCheck",
]
