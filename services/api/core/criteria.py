# services/api/core/criteria.py
"""
Rule evaluator: decides PASS / FAIL for a Subject or Test.

A group holds when all of its conditions hold; a group list holds when any
group holds. PASS only when pass_criteria holds, FAIL otherwise.
"""
from __future__ import annotations

import logging
import operator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from models.criteria import Condition, CriteriaGroup, PassingCriteria
from models.enums import ComparisonOperator, CriteriaType, Outcome

logger = logging.getLogger(__name__)


class CriteriaScope(str, Enum):
    SUBJECT = "SUBJECT"  # MARK conditions reference tests
    TEST = "TEST"        # MARK conditions reference notations


@dataclass
class ObservedValues:
    """
    Values a criteria tree is evaluated against.

    `marks` is keyed by test id (subject scope) or notation_text (test scope).
    """
    average: Optional[float] = None
    marks: Dict[str, float] = field(default_factory=dict)


_COMPARATORS: Dict[ComparisonOperator, Callable[[float, float], bool]] = {
    ComparisonOperator.GTE: operator.ge,
    ComparisonOperator.LTE: operator.le,
    ComparisonOperator.GT: operator.gt,
    ComparisonOperator.LT: operator.lt,
    ComparisonOperator.E: operator.eq,
}


# ---- Resolvers (criteria_type, scope) -> observed value ----

def _resolve_average(cond: Condition, observed: ObservedValues) -> Optional[float]:
    return observed.average


def _resolve_test_mark(cond: Condition, observed: ObservedValues) -> Optional[float]:
    if not cond.test:
        return None
    return observed.marks.get(cond.test)


def _resolve_notation_mark(cond: Condition, observed: ObservedValues) -> Optional[float]:
    if not cond.notation_text:
        return None
    return observed.marks.get(cond.notation_text)


_RESOLVERS = {
    (CriteriaType.AVERAGE, CriteriaScope.SUBJECT): _resolve_average,
    (CriteriaType.AVERAGE, CriteriaScope.TEST): _resolve_average,
    (CriteriaType.MARK, CriteriaScope.SUBJECT): _resolve_test_mark,
    (CriteriaType.MARK, CriteriaScope.TEST): _resolve_notation_mark,
}


# ---- Evaluation ----

def evaluate_condition(cond: Condition, observed: ObservedValues, scope: CriteriaScope) -> bool:
    """An unresolvable reference makes the condition false, never an error."""
    value = _RESOLVERS[(cond.criteria_type, scope)](cond, observed)
    if value is None:
        return False
    return _COMPARATORS[cond.comparison_operator](float(value), float(cond.mark))


def evaluate_groups(groups: Optional[List[CriteriaGroup]], observed: ObservedValues, scope: CriteriaScope) -> bool:
    if not groups:
        return False
    return any(
        all(evaluate_condition(c, observed, scope) for c in group.conditions)
        for group in groups
    )


def evaluate_criteria(
    criteria: Union[PassingCriteria, Mapping[str, Any]],
    observed: ObservedValues,
    scope: CriteriaScope = CriteriaScope.SUBJECT,
) -> Outcome:
    """
    Evaluate a passing-criteria tree.

    Returns:
        Outcome.PASS if pass_criteria is satisfied, Outcome.FAIL otherwise.
    """
    if not isinstance(criteria, PassingCriteria):
        criteria = PassingCriteria.model_validate(criteria)

    if evaluate_groups(criteria.pass_criteria, observed, scope):
        return Outcome.PASS

    if evaluate_groups(criteria.fail_criteria, observed, scope):
        return Outcome.FAIL

    # Neither list resolved affirmatively.
    logger.debug("Criteria inconclusive, defaulting to FAIL")
    return Outcome.FAIL
