"""
Tests for the soft-delete payload builders.
"""
from uuid import uuid4

import pytest

from core.delete_payload import build_delete_payload, build_pull_payload
from core.errors import InvalidIdentifier, InvalidInput


class TestBuildDeletePayload:
    def test_shape(self):
        ids = [str(uuid4()), str(uuid4())]
        payload = build_delete_payload(ids=ids, status_key="test_status", timestamp="2024-01-01T00:00:00+00:00", actor_id="u1")

        assert payload.filter == {"id": {"$in": ids}, "test_status": {"$ne": "DELETED"}}
        assert payload.update == {
            "$set": {
                "test_status": "DELETED",
                "updated_by": "u1",
                "updated_at": "2024-01-01T00:00:00+00:00",
                "deleted_by": "u1",
                "deleted_at": "2024-01-01T00:00:00+00:00",
            }
        }

    def test_duplicate_ids_collapsed(self):
        a = str(uuid4())
        payload = build_delete_payload(ids=[a, a], status_key="task_status", timestamp="t", actor_id="u")
        assert payload.filter["id"]["$in"] == [a]

    def test_ids_are_canonicalized(self):
        a = uuid4()
        payload = build_delete_payload(ids=[str(a).upper()], status_key="task_status", timestamp="t", actor_id="u")
        assert payload.filter["id"]["$in"] == [str(a)]

    @pytest.mark.parametrize("bad", ["not-an-id", "", 42, None])
    def test_invalid_identifier(self, bad):
        with pytest.raises(InvalidIdentifier) as exc:
            build_delete_payload(ids=[str(uuid4()), bad], status_key="test_status", timestamp="t", actor_id="u")
        assert isinstance(exc.value, InvalidInput)
        assert exc.value.status_code == 400


class TestBuildPullPayload:
    def test_single_child(self):
        parent, child = str(uuid4()), str(uuid4())
        payload = build_pull_payload(parent_id=parent, field="tests", child_ids=[child])
        assert payload.filter == {"id": parent}
        assert payload.update == {"$pull": {"tests": child}}

    def test_many_children(self):
        parent = str(uuid4())
        children = [str(uuid4()), str(uuid4())]
        payload = build_pull_payload(parent_id=parent, field="subjects", child_ids=children)
        assert payload.update == {"$pull": {"subjects": {"$in": children}}}

    def test_invalid_parent(self):
        with pytest.raises(InvalidIdentifier):
            build_pull_payload(parent_id="nope", field="tests", child_ids=[str(uuid4())])
