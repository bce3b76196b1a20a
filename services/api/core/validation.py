"""
Validation utilities for the grading core.
Ensures data integrity and provides clear error messages.
"""
import uuid
from typing import Any, Dict, Iterable, List, Optional

from core.errors import InvalidIdentifier, InvalidInput, InvalidMark
from models.criteria import PassingCriteria
from models.enums import (
    BLOCK_TYPES_BY_EVALUATION,
    TEST_TYPES_BY_EVALUATION,
    BlockType,
    CriteriaType,
    EvaluationType,
    TestType,
)


def validate_identifier(value: Any) -> str:
    """
    Validate an opaque entity identifier (UUID string).

    Returns:
        The identifier in canonical string form.

    Raises:
        InvalidIdentifier: if the value is not a UUID
    """
    if isinstance(value, uuid.UUID):
        return str(value)
    if not isinstance(value, str):
        raise InvalidIdentifier(value)
    try:
        return str(uuid.UUID(value))
    except ValueError:
        raise InvalidIdentifier(value) from None


def validate_identifiers(values: Iterable[Any]) -> List[str]:
    """Validate every id of a set, preserving order and dropping duplicates."""
    seen = set()
    ids: List[str] = []
    for value in values:
        canonical = validate_identifier(value)
        if canonical not in seen:
            seen.add(canonical)
            ids.append(canonical)
    return ids


def validate_marks(notations: List[Dict[str, Any]], marks: List[Dict[str, Any]]) -> None:
    """
    Validate submitted marks against a test's notations.

    Rules:
    - at least one mark
    - each notation_text exists on the test and appears once
    - 0 <= mark <= max_points of that notation

    Raises:
        InvalidMark: on the first offending mark
    """
    if not marks:
        raise InvalidMark("At least one mark is required")

    max_points = {n["notation_text"]: float(n["max_points"]) for n in notations}
    seen = set()

    for entry in marks:
        text = entry.get("notation_text")
        value = entry.get("mark")

        if text not in max_points:
            raise InvalidMark(f"Unknown notation '{text}'", details={"notation_text": text})
        if text in seen:
            raise InvalidMark(f"Duplicate mark for notation '{text}'", details={"notation_text": text})
        seen.add(text)

        try:
            value = float(value)
        except (TypeError, ValueError):
            raise InvalidMark(f"Mark for '{text}' must be a number, got {value!r}", details={"notation_text": text}) from None

        if not (0 <= value <= max_points[text]):
            raise InvalidMark(
                f"Mark for '{text}' must be in range [0, {max_points[text]}], got {value}",
                details={"notation_text": text, "mark": value},
            )


def average_mark(marks: List[Dict[str, Any]]) -> float:
    """Arithmetic mean of the submitted mark values."""
    if not marks:
        return 0.0
    return sum(float(m["mark"]) for m in marks) / len(marks)


def validate_block_type(evaluation_type: str, block_type: str) -> None:
    """
    Raises:
        InvalidInput: if the block type is not allowed for the evaluation type
    """
    allowed = BLOCK_TYPES_BY_EVALUATION[EvaluationType(evaluation_type)]
    if BlockType(block_type) not in allowed:
        raise InvalidInput(
            f"block_type {block_type} is not allowed for evaluation_type {evaluation_type}",
            details={"allowed": sorted(t.value for t in allowed)},
        )


def validate_test_type(evaluation_type: str, test_type: str) -> None:
    """
    Raises:
        InvalidInput: if the test type is not allowed for the block's evaluation type
    """
    allowed = TEST_TYPES_BY_EVALUATION[EvaluationType(evaluation_type)]
    if TestType(test_type) not in allowed:
        raise InvalidInput(
            f"test_type {test_type} is not allowed for evaluation_type {evaluation_type}",
            details={"allowed": sorted(t.value for t in allowed)},
        )


def validate_subject_criteria(criteria: Optional[PassingCriteria]) -> None:
    """MARK conditions on subject criteria must reference a test id."""
    if criteria is None:
        return
    for cond in _conditions(criteria):
        if cond.criteria_type == CriteriaType.MARK:
            if not cond.test:
                raise InvalidInput("MARK condition on subject criteria requires a test reference")
            validate_identifier(cond.test)


def validate_test_criteria(criteria: Optional[PassingCriteria], notations: List[Dict[str, Any]]) -> None:
    """MARK conditions on test criteria must reference one of the test's notations."""
    if criteria is None:
        return
    known = {n["notation_text"] for n in notations}
    for cond in _conditions(criteria):
        if cond.criteria_type == CriteriaType.MARK:
            if not cond.notation_text:
                raise InvalidInput("MARK condition on test criteria requires a notation_text reference")
            if cond.notation_text not in known:
                raise InvalidInput(
                    f"Criteria references unknown notation '{cond.notation_text}'",
                    details={"notation_text": cond.notation_text},
                )


def _conditions(criteria: PassingCriteria):
    for groups in (criteria.pass_criteria or [], criteria.fail_criteria or []):
        for group in groups:
            yield from group.conditions
