"""
Pydantic schemas for the grading workflow and criteria evaluation.
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from core.criteria import CriteriaScope
from models import MarkEntry
from models.criteria import PassingCriteria


class PublishTestIn(BaseModel):
    """Publish a test and open its ASSIGN_CORRECTOR task."""
    assign_corrector_due_date: Optional[str] = Field(None, description="Due date of the ASSIGN_CORRECTOR task")
    test_due_date: Optional[str] = Field(None, description="Due date of the test itself")


class AssignCorrectorIn(BaseModel):
    corrector_id: str = Field(..., description="User id with role CORRECTOR")
    enter_marks_due_date: Optional[str] = None


class StudentMarksIn(BaseModel):
    """Marks of one student on one test."""
    test: str = Field(..., description="Test id")
    student: str = Field(..., description="Student id")
    marks: List[MarkEntry] = Field(..., min_length=1)


class EnterMarksIn(BaseModel):
    student_test_result: StudentMarksIn
    validate_marks_due_date: Optional[str] = None


class ValidateMarksIn(BaseModel):
    student_test_result_id: str


class ResultMarksUpdate(BaseModel):
    """Correct the marks of a result that is still PENDING."""
    marks: List[MarkEntry] = Field(..., min_length=1)


class EvaluateCriteriaIn(BaseModel):
    """
    Ad-hoc criteria evaluation.

    `marks` is keyed by test id (scope=SUBJECT) or notation_text (scope=TEST).
    """
    criteria: PassingCriteria
    scope: CriteriaScope = CriteriaScope.SUBJECT
    average: Optional[float] = None
    marks: Dict[str, float] = Field(default_factory=dict)


class EvaluateCriteriaOut(BaseModel):
    result: str
