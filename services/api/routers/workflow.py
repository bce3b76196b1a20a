# services/api/routers/workflow.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from typing import Any, Dict, List, Optional

from models import Actor
from routers.deps import get_actor, get_hierarchy, get_workflow
from schemas import AssignCorrectorIn, EnterMarksIn, PublishTestIn, TaskCreate, ValidateMarksIn

router = APIRouter(tags=["workflow"])


@router.post("/tests/{test_id}/publish")
def publish_test(
    test_id: str,
    payload: PublishTestIn,
    actor: Actor = Depends(get_actor),
    wf=Depends(get_workflow),
) -> Dict[str, Any]:
    return wf.publish_test(
        test_id,
        actor.actor_id,
        assign_corrector_due_date=payload.assign_corrector_due_date,
        test_due_date=payload.test_due_date,
    )


# ---------- Tasks ----------

@router.get("/tasks")
def list_tasks(
    test: Optional[str] = Query(None, description="Filter by test id"),
    user: Optional[str] = Query(None, description="Filter by assignee"),
    task_status: Optional[str] = Query(None),
    include_deleted: bool = Query(False),
    svc=Depends(get_hierarchy),
) -> List[Dict[str, Any]]:
    filter: Dict[str, Any] = {}
    if test:
        filter["test"] = test
    if user:
        filter["user"] = user
    if task_status:
        filter["task_status"] = task_status.upper()
    return svc.list_all("tasks", filter, include_deleted=include_deleted)


@router.post("/tasks", status_code=201)
def create_task(payload: TaskCreate, actor: Actor = Depends(get_actor), svc=Depends(get_hierarchy)) -> Dict[str, Any]:
    return svc.create_task(payload, actor.actor_id)


@router.get("/tasks/{task_id}")
def get_task(task_id: str, svc=Depends(get_hierarchy)) -> Dict[str, Any]:
    return svc.get("tasks", task_id)


@router.delete("/tasks/{task_id}")
def delete_task(task_id: str, actor: Actor = Depends(get_actor), svc=Depends(get_hierarchy)):
    svc.delete_task(task_id, actor.actor_id)
    return {"status": "deleted", "id": task_id}


# ---------- Transitions ----------

@router.post("/tasks/{task_id}/assign-corrector")
async def assign_corrector(
    task_id: str,
    payload: AssignCorrectorIn,
    actor: Actor = Depends(get_actor),
    wf=Depends(get_workflow),
) -> Dict[str, Any]:
    return await wf.assign_corrector(
        task_id,
        payload.corrector_id,
        actor.actor_id,
        enter_marks_due_date=payload.enter_marks_due_date,
    )


@router.post("/tasks/{task_id}/enter-marks")
def enter_marks(
    task_id: str,
    payload: EnterMarksIn,
    actor: Actor = Depends(get_actor),
    wf=Depends(get_workflow),
) -> Dict[str, Any]:
    result = payload.student_test_result
    return wf.enter_marks(
        task_id,
        test_id=result.test,
        student_id=result.student,
        marks=result.marks,
        actor_id=actor.actor_id,
        validate_marks_due_date=payload.validate_marks_due_date,
    )


@router.post("/tasks/{task_id}/validate-marks")
def validate_marks(
    task_id: str,
    payload: ValidateMarksIn,
    actor: Actor = Depends(get_actor),
    wf=Depends(get_workflow),
) -> Dict[str, Any]:
    return wf.validate_marks(task_id, payload.student_test_result_id, actor.actor_id)
