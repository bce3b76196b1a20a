# services/api/routers/schools.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from typing import Any, Dict, List, Optional

from models import Actor
from routers.deps import get_actor, get_hierarchy
from schemas import SchoolCreate, SchoolUpdate, StudentCreate, StudentUpdate

router = APIRouter(tags=["schools"])


# ---------- Schools ----------

@router.post("/schools", status_code=201)
def create_school(payload: SchoolCreate, actor: Actor = Depends(get_actor), svc=Depends(get_hierarchy)) -> Dict[str, Any]:
    return svc.create_school(payload, actor.actor_id)


@router.get("/schools")
def list_schools(include_deleted: bool = Query(False), svc=Depends(get_hierarchy)) -> List[Dict[str, Any]]:
    return svc.list_all("schools", include_deleted=include_deleted)


@router.get("/schools/{school_id}")
def get_school(school_id: str, svc=Depends(get_hierarchy)) -> Dict[str, Any]:
    return svc.get("schools", school_id)


@router.patch("/schools/{school_id}")
def update_school(
    school_id: str,
    payload: SchoolUpdate,
    actor: Actor = Depends(get_actor),
    svc=Depends(get_hierarchy),
) -> Dict[str, Any]:
    return svc.update_school(school_id, payload, actor.actor_id)


@router.delete("/schools/{school_id}")
def delete_school(school_id: str, actor: Actor = Depends(get_actor), svc=Depends(get_hierarchy)):
    svc.delete_school(school_id, actor.actor_id)
    return {"status": "deleted", "id": school_id}


# ---------- Students ----------

@router.post("/students", status_code=201)
def create_student(payload: StudentCreate, actor: Actor = Depends(get_actor), svc=Depends(get_hierarchy)) -> Dict[str, Any]:
    return svc.create_student(payload, actor.actor_id)


@router.get("/students")
def list_students(
    school: Optional[str] = Query(None, description="Filter by school id"),
    include_deleted: bool = Query(False),
    svc=Depends(get_hierarchy),
) -> List[Dict[str, Any]]:
    filter = {"school": school} if school else None
    return svc.list_all("students", filter, include_deleted=include_deleted)


@router.get("/students/{student_id}")
def get_student(student_id: str, svc=Depends(get_hierarchy)) -> Dict[str, Any]:
    return svc.get("students", student_id)


@router.patch("/students/{student_id}")
def update_student(
    student_id: str,
    payload: StudentUpdate,
    actor: Actor = Depends(get_actor),
    svc=Depends(get_hierarchy),
) -> Dict[str, Any]:
    return svc.update_student(student_id, payload, actor.actor_id)


@router.delete("/students/{student_id}")
def delete_student(student_id: str, actor: Actor = Depends(get_actor), svc=Depends(get_hierarchy)):
    svc.delete_student(student_id, actor.actor_id)
    return {"status": "deleted", "id": student_id}
