# services/api/routers/deps.py
from __future__ import annotations

from typing import Optional

from fastapi import Header

from models import Actor


# ---- DI from main.py ----
def get_hierarchy():
    from main import get_hierarchy_service
    return get_hierarchy_service()


def get_workflow():
    from main import get_workflow_service
    return get_workflow_service()


def get_transcripts():
    from main import get_transcript_service
    return get_transcript_service()


def get_actor(
    x_actor_id: str = Header(..., description="Acting user id"),
    x_actor_role: Optional[str] = Header(None, description="Acting user role"),
) -> Actor:
    """The acting user comes from the session layer in front of this service."""
    return Actor(actor_id=x_actor_id, role=x_actor_role)
