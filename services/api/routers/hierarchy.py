# services/api/routers/hierarchy.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from typing import Any, Dict, List, Optional

from models import Actor
from routers.deps import get_actor, get_hierarchy
from schemas import BlockCreate, BlockUpdate, SubjectCreate, SubjectUpdate, TestCreate, TestUpdate

router = APIRouter(tags=["hierarchy"])


# ---------- Blocks ----------

@router.post("/blocks", status_code=201)
def create_block(payload: BlockCreate, actor: Actor = Depends(get_actor), svc=Depends(get_hierarchy)) -> Dict[str, Any]:
    return svc.create_block(payload, actor.actor_id)


@router.get("/blocks")
def list_blocks(include_deleted: bool = Query(False), svc=Depends(get_hierarchy)) -> List[Dict[str, Any]]:
    return svc.list_all("blocks", include_deleted=include_deleted)


@router.get("/blocks/{block_id}")
def get_block(block_id: str, svc=Depends(get_hierarchy)) -> Dict[str, Any]:
    return svc.get("blocks", block_id)


@router.patch("/blocks/{block_id}")
def update_block(block_id: str, payload: BlockUpdate, actor: Actor = Depends(get_actor), svc=Depends(get_hierarchy)):
    return svc.update_block(block_id, payload, actor.actor_id)


@router.delete("/blocks/{block_id}")
def delete_block(block_id: str, actor: Actor = Depends(get_actor), svc=Depends(get_hierarchy)):
    svc.delete_block(block_id, actor.actor_id)
    return {"status": "deleted", "id": block_id}


# ---------- Subjects ----------

@router.post("/subjects", status_code=201)
def create_subject(payload: SubjectCreate, actor: Actor = Depends(get_actor), svc=Depends(get_hierarchy)) -> Dict[str, Any]:
    return svc.create_subject(payload, actor.actor_id)


@router.get("/subjects")
def list_subjects(
    block: Optional[str] = Query(None, description="Filter by block id"),
    include_deleted: bool = Query(False),
    svc=Depends(get_hierarchy),
) -> List[Dict[str, Any]]:
    filter = {"block": block} if block else None
    return svc.list_all("subjects", filter, include_deleted=include_deleted)


@router.get("/subjects/{subject_id}")
def get_subject(subject_id: str, svc=Depends(get_hierarchy)) -> Dict[str, Any]:
    return svc.get("subjects", subject_id)


@router.patch("/subjects/{subject_id}")
def update_subject(subject_id: str, payload: SubjectUpdate, actor: Actor = Depends(get_actor), svc=Depends(get_hierarchy)):
    return svc.update_subject(subject_id, payload, actor.actor_id)


@router.delete("/subjects/{subject_id}")
def delete_subject(subject_id: str, actor: Actor = Depends(get_actor), svc=Depends(get_hierarchy)):
    svc.delete_subject(subject_id, actor.actor_id)
    return {"status": "deleted", "id": subject_id}


# ---------- Tests ----------

@router.post("/tests", status_code=201)
def create_test(payload: TestCreate, actor: Actor = Depends(get_actor), svc=Depends(get_hierarchy)) -> Dict[str, Any]:
    return svc.create_test(payload, actor.actor_id)


@router.get("/tests")
def list_tests(
    subject: Optional[str] = Query(None, description="Filter by subject id"),
    include_deleted: bool = Query(False),
    svc=Depends(get_hierarchy),
) -> List[Dict[str, Any]]:
    filter = {"subject": subject} if subject else None
    return svc.list_all("tests", filter, include_deleted=include_deleted)


@router.get("/tests/{test_id}")
def get_test(test_id: str, svc=Depends(get_hierarchy)) -> Dict[str, Any]:
    return svc.get("tests", test_id)


@router.patch("/tests/{test_id}")
def update_test(test_id: str, payload: TestUpdate, actor: Actor = Depends(get_actor), svc=Depends(get_hierarchy)):
    return svc.update_test(test_id, payload, actor.actor_id)


@router.delete("/tests/{test_id}")
def delete_test(test_id: str, actor: Actor = Depends(get_actor), svc=Depends(get_hierarchy)):
    svc.delete_test(test_id, actor.actor_id)
    return {"status": "deleted", "id": test_id}
