# services/api/routers/results.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from typing import Any, Dict, List, Optional

from core.criteria import ObservedValues, evaluate_criteria
from models import Actor
from routers.deps import get_actor, get_hierarchy, get_transcripts
from schemas import EvaluateCriteriaIn, EvaluateCriteriaOut, ResultMarksUpdate

router = APIRouter(tags=["results"])


# ---------- Student test results ----------

@router.get("/student-test-results")
def list_results(
    test: Optional[str] = Query(None, description="Filter by test id"),
    student: Optional[str] = Query(None, description="Filter by student id"),
    include_deleted: bool = Query(False),
    svc=Depends(get_hierarchy),
) -> List[Dict[str, Any]]:
    filter: Dict[str, Any] = {}
    if test:
        filter["test"] = test
    if student:
        filter["student"] = student
    return svc.list_all("student_test_results", filter, include_deleted=include_deleted)


@router.get("/student-test-results/{result_id}")
def get_result(result_id: str, svc=Depends(get_hierarchy)) -> Dict[str, Any]:
    return svc.get("student_test_results", result_id)


@router.patch("/student-test-results/{result_id}")
def update_result(
    result_id: str,
    payload: ResultMarksUpdate,
    actor: Actor = Depends(get_actor),
    svc=Depends(get_hierarchy),
) -> Dict[str, Any]:
    marks = [m.model_dump() for m in payload.marks]
    return svc.update_student_test_result(result_id, marks, actor.actor_id)


@router.delete("/student-test-results/{result_id}")
def delete_result(result_id: str, actor: Actor = Depends(get_actor), svc=Depends(get_hierarchy)):
    svc.delete_student_test_result(result_id, actor.actor_id)
    return {"status": "deleted", "id": result_id}


# ---------- Final transcripts ----------

@router.post("/transcripts/{student_id}/calculate")
def calculate_transcript(student_id: str, actor: Actor = Depends(get_actor), svc=Depends(get_transcripts)) -> Dict[str, Any]:
    return svc.calculate_final_transcript(student_id, actor.actor_id)


@router.get("/transcripts/{student_id}")
def get_transcript(student_id: str, svc=Depends(get_transcripts)) -> Dict[str, Any]:
    return svc.get_final_transcript(student_id)


# ---------- Criteria ----------

@router.post("/criteria/evaluate", response_model=EvaluateCriteriaOut)
def evaluate(payload: EvaluateCriteriaIn):
    """Evaluate a criteria tree against caller-supplied values (no storage access)."""
    outcome = evaluate_criteria(
        payload.criteria,
        ObservedValues(average=payload.average, marks=payload.marks),
        payload.scope,
    )
    return EvaluateCriteriaOut(result=outcome.value)
