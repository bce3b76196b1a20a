# services/api/models/criteria.py
"""
Passing-criteria trees stored on Subjects and Tests.

    PassingCriteria
      pass_criteria: [CriteriaGroup, ...]   # OR between groups
      fail_criteria: [CriteriaGroup, ...]
    CriteriaGroup
      conditions: [Condition, ...]          # AND inside a group
"""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from models.enums import ComparisonOperator, CriteriaType


class Condition(BaseModel):
    criteria_type: CriteriaType
    comparison_operator: ComparisonOperator
    mark: float = Field(..., ge=0, description="Threshold compared against the observed value")

    # MARK conditions reference what they compare:
    # a test id on subject criteria, a notation_text on test criteria.
    test: Optional[str] = None
    notation_text: Optional[str] = None


class CriteriaGroup(BaseModel):
    conditions: List[Condition] = Field(..., min_length=1)


class PassingCriteria(BaseModel):
    pass_criteria: Optional[List[CriteriaGroup]] = None
    fail_criteria: Optional[List[CriteriaGroup]] = None

    @model_validator(mode="after")
    def validate_present(self) -> "PassingCriteria":
        if self.pass_criteria is None and self.fail_criteria is None:
            raise ValueError("At least one of pass_criteria / fail_criteria is required")
        return self
