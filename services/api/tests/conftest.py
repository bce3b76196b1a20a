"""
Shared fixtures: every store-backed test runs against both backends.
"""
import sys
import os
from uuid import uuid4

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from adapters.json import JsonStore
from adapters.sqlite import SqliteStore
from core.email_sender import NotificationResult
from core.lifecycle import HierarchyService
from core.workflow import GradingWorkflow
from models import User
from models.enums import EntityStatus, UserRole
from schemas import (
    BlockCreate,
    SchoolCreate,
    StudentCreate,
    SubjectCreate,
    TestCreate,
)


class FakeNotifier:
    """Records every message; can be told to fail or to blow up."""

    def __init__(self):
        self.sent = []
        self.fail = False
        self.explode = False

    async def send(self, recipient, subject, body):
        if self.explode:
            raise ConnectionError("smtp unreachable")
        self.sent.append({"recipient": recipient, "subject": subject, "body": body})
        if self.fail:
            return NotificationResult(success=False, error="mailbox unavailable")
        return NotificationResult(success=True)


@pytest.fixture(params=["json", "sqlite"])
def store(request, tmp_path):
    if request.param == "json":
        yield JsonStore(str(tmp_path / "data"))
    else:
        s = SqliteStore.from_url(f"sqlite:///{tmp_path}/grading.db")
        yield s
        s.engine.dispose()


@pytest.fixture
def actor_id():
    return str(uuid4())


@pytest.fixture
def users(store):
    """One academic director, one active corrector, one inactive corrector."""
    def add(role, status=EntityStatus.ACTIVE, name="User"):
        doc = User(
            first_name=name,
            last_name="Test",
            email=f"{name.lower()}-{uuid4().hex[:6]}@school.test",
            role=role,
            user_status=status,
        ).model_dump(mode="json")
        store.insert_one("users", doc)
        return doc

    return {
        "director": add(UserRole.ACADEMIC_DIRECTOR, name="Director"),
        "corrector": add(UserRole.CORRECTOR, name="Corrector"),
        "inactive_corrector": add(UserRole.CORRECTOR, EntityStatus.INACTIVE, name="Former"),
    }


@pytest.fixture
def hierarchy(store):
    return HierarchyService(store)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def workflow(store, notifier, hierarchy):
    return GradingWorkflow(store, notifier, hierarchy)


class Builder:
    """Small factory for hierarchy fixtures with sensible defaults."""

    def __init__(self, hierarchy, actor_id):
        self.h = hierarchy
        self.actor_id = actor_id

    def school(self, **kw):
        data = {"name": "Lycée Test"}
        data.update(kw)
        return self.h.create_school(SchoolCreate(**data), self.actor_id)

    def student(self, school_id, **kw):
        data = {"first_name": "Ada", "last_name": "Lovelace", "email": f"ada-{uuid4().hex[:6]}@school.test", "school": school_id}
        data.update(kw)
        return self.h.create_student(StudentCreate(**data), self.actor_id)

    def block(self, **kw):
        data = {"name": "Block 1", "evaluation_type": "SCORE", "block_type": "REGULAR"}
        data.update(kw)
        return self.h.create_block(BlockCreate(**data), self.actor_id)

    def subject(self, block_id, **kw):
        data = {"block": block_id, "name": "Maths", "coefficient": 2}
        data.update(kw)
        return self.h.create_subject(SubjectCreate(**data), self.actor_id)

    def test(self, subject_id, **kw):
        data = {
            "subject": subject_id,
            "name": "Written exam",
            "test_type": "WRITTEN",
            "result_visibility": "AFTER_CORRECTION",
            "weight": 1,
            "correction_type": "ADMTC",
            "notations": [
                {"notation_text": "m1", "max_points": 10},
                {"notation_text": "m2", "max_points": 20},
            ],
        }
        data.update(kw)
        return self.h.create_test(TestCreate(**data), self.actor_id)


@pytest.fixture
def build(hierarchy, actor_id):
    return Builder(hierarchy, actor_id)
