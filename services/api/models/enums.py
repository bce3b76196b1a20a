# services/api/models/enums.py
from __future__ import annotations

from enum import Enum


class EntityStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    DELETED = "DELETED"


class EvaluationType(str, Enum):
    SCORE = "SCORE"
    COMPETENCY = "COMPETENCY"


class BlockType(str, Enum):
    REGULAR = "REGULAR"
    COMPETENCY = "COMPETENCY"
    SOFT_SKILL = "SOFT_SKILL"
    ACADEMIC_RECOMMENDATION = "ACADEMIC_RECOMMENDATION"
    SPECIALIZATION = "SPECIALIZATION"
    TRANSVERSAL = "TRANSVERSAL"
    RETAKE = "RETAKE"


class TestType(str, Enum):
    __test__ = False

    FREE_CONTINUOUS_CONTROL = "FREE_CONTINUOUS_CONTROL"
    MEMMOIRE_ORAL_NON_JURY = "MEMMOIRE_ORAL_NON_JURY"
    MEMOIRE_ORAL = "MEMOIRE_ORAL"
    MEMOIRE_WRITTEN = "MEMOIRE_WRITTEN"
    MENTOR_EVALUATION = "MENTOR_EVALUATION"
    ORAL = "ORAL"
    WRITTEN = "WRITTEN"


class ResultVisibility(str, Enum):
    NEVER = "NEVER"
    AFTER_CORRECTION = "AFTER_CORRECTION"
    AFTER_JURY_DECISION_FOR_FINAL_TRANSCRIPT = "AFTER_JURY_DECISION_FOR_FINAL_TRANSCRIPT"


class CorrectionType(str, Enum):
    ADMTC = "ADMTC"
    CERTIFIER = "CERTIFIER"
    CROSS_CORRECTION = "CROSS_CORRECTION"
    PREPARATION_CENTER = "PREPARATION_CENTER"


class TaskType(str, Enum):
    ASSIGN_CORRECTOR = "ASSIGN_CORRECTOR"
    ENTER_MARKS = "ENTER_MARKS"
    VALIDATE_MARKS = "VALIDATE_MARKS"


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    DELETED = "DELETED"


class ResultStatus(str, Enum):
    PENDING = "PENDING"
    VALIDATED = "VALIDATED"
    DELETED = "DELETED"


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    ACADEMIC_DIRECTOR = "ACADEMIC_DIRECTOR"
    CORRECTOR = "CORRECTOR"
    STUDENT = "STUDENT"


class CriteriaType(str, Enum):
    MARK = "MARK"
    AVERAGE = "AVERAGE"


class ComparisonOperator(str, Enum):
    GTE = "GTE"
    LTE = "LTE"
    GT = "GT"
    LT = "LT"
    E = "E"


class Outcome(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"


# Block types each evaluation type accepts.
BLOCK_TYPES_BY_EVALUATION = {
    EvaluationType.COMPETENCY: {
        BlockType.COMPETENCY,
        BlockType.SOFT_SKILL,
        BlockType.ACADEMIC_RECOMMENDATION,
        BlockType.RETAKE,
    },
    EvaluationType.SCORE: {
        BlockType.REGULAR,
        BlockType.TRANSVERSAL,
        BlockType.SPECIALIZATION,
        BlockType.RETAKE,
    },
}

# Test types a test may use, keyed by its block's evaluation type.
TEST_TYPES_BY_EVALUATION = {
    EvaluationType.COMPETENCY: {
        TestType.ORAL,
        TestType.WRITTEN,
        TestType.MEMOIRE_WRITTEN,
        TestType.FREE_CONTINUOUS_CONTROL,
        TestType.MENTOR_EVALUATION,
    },
    EvaluationType.SCORE: {
        TestType.ORAL,
        TestType.WRITTEN,
        TestType.MEMOIRE_WRITTEN,
        TestType.FREE_CONTINUOUS_CONTROL,
        TestType.MENTOR_EVALUATION,
        TestType.MEMMOIRE_ORAL_NON_JURY,
        TestType.MEMOIRE_ORAL,
    },
}

# Collection name -> field that carries the entity's status.
STATUS_FIELDS = {
    "schools": "school_status",
    "students": "student_status",
    "users": "user_status",
    "blocks": "block_status",
    "subjects": "subject_status",
    "tests": "test_status",
    "tasks": "task_status",
    "student_test_results": "student_test_result_status",
}
