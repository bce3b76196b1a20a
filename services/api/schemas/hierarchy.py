"""
Pydantic schemas for block / subject / test / task payloads.
"""
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from models import Notation
from models.criteria import PassingCriteria
from models.enums import (
    BlockType,
    CorrectionType,
    EntityStatus,
    EvaluationType,
    ResultVisibility,
    TaskType,
    TestType,
)


# ============ Block ============


class BlockCreate(BaseModel):
    """Request to create a block."""
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=2000)
    evaluation_type: EvaluationType
    block_type: BlockType
    connected_block: Optional[str] = Field(None, description="Block this one retakes (RETAKE only)")
    is_counted_in_final_transcript: bool = True
    block_status: EntityStatus = EntityStatus.ACTIVE

    @model_validator(mode="after")
    def validate_connected_block(self) -> "BlockCreate":
        if self.connected_block and self.block_type != BlockType.RETAKE:
            raise ValueError("connected_block is only allowed for RETAKE blocks")
        if self.block_status == EntityStatus.DELETED:
            raise ValueError("block_status cannot be DELETED on create")
        return self


class BlockUpdate(BaseModel):
    """Partial update for block fields."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    evaluation_type: Optional[EvaluationType] = None
    block_type: Optional[BlockType] = None
    connected_block: Optional[str] = None
    is_counted_in_final_transcript: Optional[bool] = None
    block_status: Optional[EntityStatus] = None

    @model_validator(mode="after")
    def validate_status(self) -> "BlockUpdate":
        if self.block_status == EntityStatus.DELETED:
            raise ValueError("Use the delete operation to delete a block")
        return self


# ============ Subject ============


class SubjectCreate(BaseModel):
    """
    Request to create a subject.

    NOTE:
    - `is_transversal` is not accepted; it is derived from the parent block.
    """
    block: str = Field(..., description="Parent block id")
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=2000)
    coefficient: float = Field(..., ge=0)
    connected_blocks: List[str] = Field(default_factory=list)
    subject_status: EntityStatus = EntityStatus.ACTIVE
    subject_passing_criteria: Optional[PassingCriteria] = None

    @model_validator(mode="after")
    def validate_status(self) -> "SubjectCreate":
        if self.subject_status == EntityStatus.DELETED:
            raise ValueError("subject_status cannot be DELETED on create")
        return self


class SubjectUpdate(BaseModel):
    """Partial update for subject fields. The parent block cannot change."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    coefficient: Optional[float] = Field(None, ge=0)
    connected_blocks: Optional[List[str]] = None
    subject_status: Optional[EntityStatus] = None
    subject_passing_criteria: Optional[PassingCriteria] = None

    @model_validator(mode="after")
    def validate_status(self) -> "SubjectUpdate":
        if self.subject_status == EntityStatus.DELETED:
            raise ValueError("Use the delete operation to delete a subject")
        return self


# ============ Test ============


def _check_notations(notations: Optional[List[Notation]]) -> None:
    if notations is None:
        return
    texts = [n.notation_text for n in notations]
    if len(texts) != len(set(texts)):
        raise ValueError("Duplicate notation_text values")


class TestCreate(BaseModel):
    """Request to create a test."""
    __test__ = False

    subject: str = Field(..., description="Parent subject id")
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=2000)
    test_type: TestType
    result_visibility: ResultVisibility
    weight: float = Field(..., ge=0, le=1)
    correction_type: CorrectionType
    notations: List[Notation] = Field(..., min_length=1)
    is_retake: bool = False
    connected_test: Optional[str] = None
    test_status: EntityStatus = EntityStatus.ACTIVE
    test_passing_criteria: Optional[PassingCriteria] = None

    @model_validator(mode="after")
    def validate_test(self) -> "TestCreate":
        _check_notations(self.notations)
        if self.is_retake and not self.connected_test:
            raise ValueError("connected_test is required when is_retake is true")
        if self.test_status == EntityStatus.DELETED:
            raise ValueError("test_status cannot be DELETED on create")
        return self


class TestUpdate(BaseModel):
    """Partial update for test fields. The parent subject cannot change."""
    __test__ = False

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    test_type: Optional[TestType] = None
    result_visibility: Optional[ResultVisibility] = None
    weight: Optional[float] = Field(None, ge=0, le=1)
    correction_type: Optional[CorrectionType] = None
    notations: Optional[List[Notation]] = Field(None, min_length=1)
    is_retake: Optional[bool] = None
    connected_test: Optional[str] = None
    test_status: Optional[EntityStatus] = None
    test_passing_criteria: Optional[PassingCriteria] = None

    @model_validator(mode="after")
    def validate_test(self) -> "TestUpdate":
        _check_notations(self.notations)
        if self.test_status == EntityStatus.DELETED:
            raise ValueError("Use the delete operation to delete a test")
        return self


# ============ Task ============


class TaskCreate(BaseModel):
    """Request to create a task by hand (outside the publish workflow)."""
    test: str = Field(..., description="Parent test id")
    user: str = Field(..., description="Assignee user id")
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=2000)
    task_type: TaskType
    due_date: Optional[str] = None
