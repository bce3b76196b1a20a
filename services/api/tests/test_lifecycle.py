"""
Tests for the hierarchy lifecycle manager: create/update contracts and
cascading soft-delete, against both store backends.
"""
from uuid import uuid4

import pytest
from pydantic import ValidationError

from core.errors import (
    CascadeInconsistency,
    EntityNotFound,
    InvalidInput,
    NotFound,
    ResultAlreadyValidated,
    TestNotFound,
)
from models import MarkEntry, StudentTestResult
from schemas import BlockUpdate, SubjectUpdate, TaskCreate, TestCreate, TestUpdate

COLLECTIONS = ["schools", "students", "blocks", "subjects", "tests", "tasks", "student_test_results"]


def snapshot(store):
    return {c: store.find(c) for c in COLLECTIONS}


def add_task(hierarchy, test_id, user_id, actor_id, task_type="ASSIGN_CORRECTOR"):
    return hierarchy.create_task(
        TaskCreate(test=test_id, user=user_id, title="Do it", task_type=task_type), actor_id
    )


def add_result(hierarchy, test_id, student_id, mark=5.0):
    return hierarchy.attach_result(
        StudentTestResult(
            test=test_id,
            student=student_id,
            marks=[MarkEntry(notation_text="m1", mark=mark)],
            average_mark=mark,
        )
    )


@pytest.fixture
def tree(build, hierarchy, users, actor_id):
    """school/student + block -> subject -> 2 tests, each with a task and a result."""
    school = build.school()
    student = build.student(school["id"])
    block = build.block()
    subject = build.subject(block["id"])
    tests = [build.test(subject["id"], weight=0.5), build.test(subject["id"], name="Oral", test_type="ORAL", weight=0.5)]
    tasks = [add_task(hierarchy, t["id"], users["director"]["id"], actor_id) for t in tests]
    results = [add_result(hierarchy, t["id"], student["id"]) for t in tests]
    return {
        "school": school,
        "student": student,
        "block": block,
        "subject": subject,
        "tests": tests,
        "tasks": tasks,
        "results": results,
    }


class TestCreateContracts:
    def test_child_linked_into_parent(self, build, hierarchy):
        block = build.block()
        subject = build.subject(block["id"])
        test = build.test(subject["id"])

        assert hierarchy.get("blocks", block["id"])["subjects"] == [subject["id"]]
        assert hierarchy.get("subjects", subject["id"])["tests"] == [test["id"]]
        assert test["subject"] == subject["id"]
        assert test["test_status"] == "ACTIVE"
        assert test["is_published"] is False

    def test_transversal_is_snapshotted(self, build, hierarchy, actor_id):
        block = build.block(block_type="TRANSVERSAL")
        subject = build.subject(block["id"])
        assert subject["is_transversal"] is True

        hierarchy.update_block(block["id"], BlockUpdate(block_type="REGULAR"), actor_id)
        assert hierarchy.get("subjects", subject["id"])["is_transversal"] is True

        later = build.subject(block["id"], name="Physics")
        assert later["is_transversal"] is False

    def test_connected_blocks_only_when_transversal(self, build, hierarchy, actor_id):
        other = build.block(name="Other")
        regular = build.block()
        with pytest.raises(InvalidInput):
            build.subject(regular["id"], connected_blocks=[other["id"]])

        subject = build.subject(regular["id"])
        with pytest.raises(InvalidInput):
            hierarchy.update_subject(subject["id"], SubjectUpdate(connected_blocks=[other["id"]]), actor_id)

        transversal = build.block(block_type="TRANSVERSAL")
        linked = build.subject(transversal["id"], connected_blocks=[other["id"]])
        assert linked["connected_blocks"] == [other["id"]]

    def test_parent_must_be_live(self, build, hierarchy, actor_id):
        block = build.block()
        hierarchy.delete_block(block["id"], actor_id)
        with pytest.raises(NotFound):
            build.subject(block["id"])

        with pytest.raises(EntityNotFound):
            build.subject(str(uuid4()))

    def test_block_type_must_fit_evaluation(self, build):
        with pytest.raises(InvalidInput):
            build.block(evaluation_type="COMPETENCY", block_type="REGULAR")

    def test_test_type_must_fit_block(self, build):
        block = build.block(evaluation_type="COMPETENCY", block_type="SOFT_SKILL")
        subject = build.subject(block["id"])
        with pytest.raises(InvalidInput):
            build.test(subject["id"], test_type="MEMOIRE_ORAL")

    def test_retake_needs_live_connected_test(self, build, hierarchy, actor_id):
        block = build.block()
        subject = build.subject(block["id"])
        original = build.test(subject["id"])

        with pytest.raises(ValidationError):
            TestCreate(
                subject=subject["id"], name="Retake", test_type="WRITTEN", result_visibility="NEVER",
                weight=0, correction_type="ADMTC", notations=[{"notation_text": "m1", "max_points": 10}],
                is_retake=True,
            )

        retake = build.test(subject["id"], name="Retake", is_retake=True, connected_test=original["id"])
        assert retake["connected_test"] == original["id"]

        with pytest.raises(InvalidInput):
            hierarchy.update_test(retake["id"], TestUpdate(connected_test=retake["id"]), actor_id)

        hierarchy.delete_test(original["id"], actor_id)
        with pytest.raises(TestNotFound):
            build.test(subject["id"], name="Retake 2", is_retake=True, connected_test=original["id"])

    def test_duplicate_notations_rejected(self, build):
        block = build.block()
        subject = build.subject(block["id"])
        with pytest.raises(ValidationError):
            build.test(subject["id"], notations=[
                {"notation_text": "m1", "max_points": 10},
                {"notation_text": "m1", "max_points": 5},
            ])

    def test_criteria_must_reference_known_notation(self, build):
        block = build.block()
        subject = build.subject(block["id"])
        criteria = {"pass_criteria": [{"conditions": [
            {"criteria_type": "MARK", "comparison_operator": "GTE", "mark": 5, "notation_text": "oral"}
        ]}]}
        with pytest.raises(InvalidInput):
            build.test(subject["id"], test_passing_criteria=criteria)

    def test_update_stamps_actor(self, build, hierarchy):
        block = build.block()
        other_actor = str(uuid4())
        updated = hierarchy.update_block(block["id"], BlockUpdate(name="Renamed"), other_actor)
        assert updated["name"] == "Renamed"
        assert updated["updated_by"] == other_actor
        assert updated["created_by"] == block["created_by"]


class TestDeleteTest:
    def test_cascade(self, store, hierarchy, tree, actor_id):
        test = tree["tests"][0]
        hierarchy.delete_test(test["id"], actor_id)

        assert hierarchy.get("tests", test["id"], include_deleted=True)["test_status"] == "DELETED"
        assert hierarchy.get("tasks", tree["tasks"][0]["id"], include_deleted=True)["task_status"] == "DELETED"
        result = hierarchy.get("student_test_results", tree["results"][0]["id"], include_deleted=True)
        assert result["student_test_result_status"] == "DELETED"
        assert result["deleted_by"] == actor_id
        assert result["deleted_at"]

        subject = hierarchy.get("subjects", tree["subject"]["id"])
        assert subject["tests"] == [tree["tests"][1]["id"]]

        # Sibling test untouched
        assert hierarchy.get("tasks", tree["tasks"][1]["id"])["task_status"] == "PENDING"

    def test_idempotent(self, store, hierarchy, tree, actor_id):
        hierarchy.delete_test(tree["tests"][0]["id"], actor_id)
        before = snapshot(store)

        hierarchy.delete_test(tree["tests"][0]["id"], str(uuid4()))
        assert snapshot(store) == before

    def test_deleted_entities_hidden(self, hierarchy, tree, actor_id):
        test_id = tree["tests"][0]["id"]
        hierarchy.delete_test(test_id, actor_id)

        with pytest.raises(TestNotFound):
            hierarchy.get("tests", test_id)
        ids = [t["id"] for t in hierarchy.list_all("tests")]
        assert test_id not in ids
        assert test_id in [t["id"] for t in hierarchy.list_all("tests", include_deleted=True)]

    def test_unknown_test(self, hierarchy, actor_id):
        with pytest.raises(TestNotFound):
            hierarchy.delete_test(str(uuid4()), actor_id)

    def test_missing_child_stops_cascade(self, store, hierarchy, tree, actor_id):
        test = tree["tests"][0]
        store.update_one("tests", {"id": test["id"]}, {"$addToSet": {"tasks": str(uuid4())}})

        with pytest.raises(CascadeInconsistency):
            hierarchy.delete_test(test["id"], actor_id)

        # Nothing after the failing step ran
        assert hierarchy.get("tests", test["id"])["test_status"] == "ACTIVE"
        assert test["id"] in hierarchy.get("subjects", tree["subject"]["id"])["tests"]

    def test_missing_parent_fails_pull(self, store, hierarchy, tree, actor_id):
        test = tree["tests"][0]
        store.update_one("tests", {"id": test["id"]}, {"$set": {"subject": str(uuid4())}})

        with pytest.raises(CascadeInconsistency):
            hierarchy.delete_test(test["id"], actor_id)
        # Children and the test itself are already DELETED; only the pull failed
        assert hierarchy.get("tests", test["id"], include_deleted=True)["test_status"] == "DELETED"


class TestDeleteSubject:
    def test_cascade(self, hierarchy, tree, actor_id):
        hierarchy.delete_subject(tree["subject"]["id"], actor_id)

        for t in tree["tests"]:
            assert hierarchy.get("tests", t["id"], include_deleted=True)["test_status"] == "DELETED"
        for task in tree["tasks"]:
            assert hierarchy.get("tasks", task["id"], include_deleted=True)["task_status"] == "DELETED"
        for r in tree["results"]:
            doc = hierarchy.get("student_test_results", r["id"], include_deleted=True)
            assert doc["student_test_result_status"] == "DELETED"

        assert hierarchy.get("subjects", tree["subject"]["id"], include_deleted=True)["subject_status"] == "DELETED"
        assert hierarchy.get("blocks", tree["block"]["id"])["subjects"] == []

    def test_idempotent(self, store, hierarchy, tree, actor_id):
        hierarchy.delete_subject(tree["subject"]["id"], actor_id)
        before = snapshot(store)
        hierarchy.delete_subject(tree["subject"]["id"], actor_id)
        assert snapshot(store) == before

    def test_after_one_test_deleted(self, hierarchy, tree, actor_id):
        hierarchy.delete_test(tree["tests"][0]["id"], actor_id)
        hierarchy.delete_subject(tree["subject"]["id"], actor_id)
        assert hierarchy.get("tests", tree["tests"][1]["id"], include_deleted=True)["test_status"] == "DELETED"


class TestDeleteBlock:
    def test_cascade(self, hierarchy, tree, actor_id):
        hierarchy.delete_block(tree["block"]["id"], actor_id)

        assert hierarchy.get("blocks", tree["block"]["id"], include_deleted=True)["block_status"] == "DELETED"
        assert hierarchy.get("subjects", tree["subject"]["id"], include_deleted=True)["subject_status"] == "DELETED"
        assert all(
            hierarchy.get("tasks", t["id"], include_deleted=True)["task_status"] == "DELETED" for t in tree["tasks"]
        )
        assert hierarchy.list_all("student_test_results") == []

    def test_idempotent(self, store, hierarchy, tree, actor_id):
        hierarchy.delete_block(tree["block"]["id"], actor_id)
        before = snapshot(store)
        hierarchy.delete_block(tree["block"]["id"], actor_id)
        assert snapshot(store) == before


class TestSchoolAndStudents:
    def test_student_linked_to_school(self, build, hierarchy):
        school = build.school()
        student = build.student(school["id"])
        assert hierarchy.get("schools", school["id"])["students"] == [student["id"]]

    def test_delete_school_cascades(self, build, hierarchy, actor_id):
        school = build.school()
        students = [build.student(school["id"]) for _ in range(2)]
        other_school = build.school(name="Other")
        outsider = build.student(other_school["id"])

        hierarchy.delete_school(school["id"], actor_id)

        assert hierarchy.get("schools", school["id"], include_deleted=True)["school_status"] == "DELETED"
        for s in students:
            assert hierarchy.get("students", s["id"], include_deleted=True)["student_status"] == "DELETED"
        assert hierarchy.get("students", outsider["id"])["student_status"] == "ACTIVE"

    def test_delete_student_pulls_reference(self, build, hierarchy, actor_id):
        school = build.school()
        keep = build.student(school["id"])
        gone = build.student(school["id"])

        hierarchy.delete_student(gone["id"], actor_id)
        assert hierarchy.get("schools", school["id"])["students"] == [keep["id"]]

    def test_email_normalized(self, build):
        school = build.school()
        student = build.student(school["id"], email="  Ada@School.TEST ")
        assert student["email"] == "ada@school.test"


class TestTaskAndResultDeletes:
    def test_delete_task(self, hierarchy, tree, actor_id):
        task = tree["tasks"][0]
        hierarchy.delete_task(task["id"], actor_id)
        assert task["id"] not in hierarchy.get("tests", task["test"])["tasks"]
        assert hierarchy.get("tasks", task["id"], include_deleted=True)["task_status"] == "DELETED"

    def test_delete_result(self, hierarchy, tree, actor_id):
        result = tree["results"][0]
        hierarchy.delete_student_test_result(result["id"], actor_id)
        assert hierarchy.get("tests", result["test"])["student_test_results"] == []

    def test_create_task_needs_live_user(self, hierarchy, tree, actor_id):
        with pytest.raises(EntityNotFound):
            add_task(hierarchy, tree["tests"][0]["id"], str(uuid4()), actor_id)


class TestUpdateStudentTestResult:
    def test_recomputes_average(self, hierarchy, tree, actor_id):
        result = tree["results"][0]
        updated = hierarchy.update_student_test_result(
            result["id"],
            [{"notation_text": "m1", "mark": 8}, {"notation_text": "m2", "mark": 14}],
            actor_id,
        )
        assert updated["average_mark"] == 11
        assert updated["student_test_result_status"] == "PENDING"

    def test_validated_result_is_frozen(self, store, hierarchy, tree, actor_id):
        result = tree["results"][0]
        store.update_one(
            "student_test_results", {"id": result["id"]}, {"$set": {"student_test_result_status": "VALIDATED"}}
        )
        with pytest.raises(ResultAlreadyValidated):
            hierarchy.update_student_test_result(result["id"], [{"notation_text": "m1", "mark": 1}], actor_id)
