from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, List
from uuid import uuid4

from pydantic import BaseModel, Field

from models.criteria import PassingCriteria
from models.enums import (
    BlockType,
    CorrectionType,
    EntityStatus,
    EvaluationType,
    Outcome,
    ResultStatus,
    ResultVisibility,
    TaskStatus,
    TaskType,
    TestType,
    UserRole,
)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid4())


class Actor(BaseModel):
    """The acting user, passed explicitly to every mutating operation."""
    actor_id: str
    role: Optional[str] = None


class Stored(BaseModel):
    """
    Fields every stored document carries.
    """
    id: str = Field(default_factory=new_id)

    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    deleted_by: Optional[str] = None
    created_at: str = Field(default_factory=now_iso)
    updated_at: str = Field(default_factory=now_iso)
    deleted_at: Optional[str] = None


# ---------- School / Student / User ----------

class School(Stored):
    name: str
    address: Optional[str] = None
    city: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    school_status: EntityStatus = EntityStatus.ACTIVE
    students: List[str] = Field(default_factory=list)


class Student(Stored):
    first_name: str
    last_name: str
    email: str
    date_of_birth: Optional[str] = None
    school: str
    student_status: EntityStatus = EntityStatus.ACTIVE


class User(Stored):
    """
    Domain model for a user row. Owned by the identity service;
    the grading core only reads it.
    """
    first_name: str
    last_name: str
    email: str
    role: UserRole
    user_status: EntityStatus = EntityStatus.ACTIVE


# ---------- Block / Subject / Test ----------

class Block(Stored):
    name: str
    description: str = ""
    evaluation_type: EvaluationType
    block_type: BlockType
    connected_block: Optional[str] = None
    is_counted_in_final_transcript: bool = True
    block_status: EntityStatus = EntityStatus.ACTIVE
    subjects: List[str] = Field(default_factory=list)


class Subject(Stored):
    block: str
    name: str
    description: str = ""
    coefficient: float = Field(..., ge=0)

    # Snapshot of the parent block type at creation; never updated.
    is_transversal: bool = False
    connected_blocks: List[str] = Field(default_factory=list)

    tests: List[str] = Field(default_factory=list)
    subject_status: EntityStatus = EntityStatus.ACTIVE
    subject_passing_criteria: Optional[PassingCriteria] = None


class Notation(BaseModel):
    notation_text: str = Field(..., min_length=1)
    max_points: float = Field(..., ge=0)


class Test(Stored):
    __test__ = False  # not a pytest class

    subject: str
    name: str
    description: str = ""
    test_type: TestType
    result_visibility: ResultVisibility
    weight: float = Field(..., ge=0, le=1)
    correction_type: CorrectionType
    notations: List[Notation] = Field(default_factory=list)

    is_retake: bool = False
    connected_test: Optional[str] = None

    test_status: EntityStatus = EntityStatus.ACTIVE
    test_passing_criteria: Optional[PassingCriteria] = None

    is_published: bool = False
    published_date: Optional[str] = None
    published_by: Optional[str] = None
    test_due_date: Optional[str] = None

    tasks: List[str] = Field(default_factory=list)
    student_test_results: List[str] = Field(default_factory=list)


# ---------- Workflow ----------

class Task(Stored):
    test: str
    user: str
    title: str
    description: str = ""
    task_type: TaskType
    task_status: TaskStatus = TaskStatus.PENDING
    due_date: Optional[str] = None
    completed_by: Optional[str] = None
    completed_at: Optional[str] = None


class MarkEntry(BaseModel):
    notation_text: str = Field(..., min_length=1)
    mark: float


class StudentTestResult(Stored):
    test: str
    student: str
    marks: List[MarkEntry]
    average_mark: float
    mark_entry_date: str = Field(default_factory=now_iso)
    student_test_result_status: ResultStatus = ResultStatus.PENDING
    validated_by: Optional[str] = None
    validated_at: Optional[str] = None


# ---------- Final transcript ----------

class TestResultLine(BaseModel):
    __test__ = False

    test: str
    test_result: Outcome
    test_total_mark: float
    test_weighted_mark: float


class SubjectResultLine(BaseModel):
    subject: str
    subject_result: Outcome
    subject_total_mark: float
    test_results: List[TestResultLine] = Field(default_factory=list)


class BlockResultLine(BaseModel):
    block: str
    block_result: Outcome
    block_total_mark: float
    subject_results: List[SubjectResultLine] = Field(default_factory=list)


class FinalTranscriptResult(Stored):
    student: str
    overall_result: Outcome
    block_results: List[BlockResultLine] = Field(default_factory=list)


__all__ = [
    "now_iso",
    "new_id",
    "Actor",
    "Stored",
    "School",
    "Student",
    "User",
    "Block",
    "Subject",
    "Notation",
    "Test",
    "Task",
    "MarkEntry",
    "StudentTestResult",
    "TestResultLine",
    "SubjectResultLine",
    "BlockResultLine",
    "FinalTranscriptResult",
]
