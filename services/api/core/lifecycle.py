# services/api/core/lifecycle.py
"""
Hierarchy lifecycle manager.

Create / update / cascading soft-delete for
School -> Student and Block -> Subject -> Test -> {Task, StudentTestResult}.

Cascade rules:
- children are soft-deleted before their parent, one batched update per collection
- the parent's reference to the deleted entity is pulled last
- a rerun of the same cascade changes nothing and raises nothing
- there is no rollback; a step that finds fewer documents than the
  hierarchy references raises CascadeInconsistency and stops the cascade
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from adapters.base import DocumentStore
from core.delete_payload import build_delete_payload, build_pull_payload
from core.errors import (
    CascadeInconsistency,
    EntityNotFound,
    InvalidInput,
    ResultAlreadyValidated,
    ResultNotFound,
    TaskNotFound,
    TestNotFound,
    storage_step,
)
from core.validation import (
    average_mark,
    validate_block_type,
    validate_identifier,
    validate_marks,
    validate_subject_criteria,
    validate_test_criteria,
    validate_test_type,
)
from models import (
    Block,
    School,
    Student,
    StudentTestResult,
    Subject,
    Task,
    Test,
    now_iso,
)
from models.criteria import PassingCriteria
from models.enums import STATUS_FIELDS, BlockType, EntityStatus, ResultStatus
from schemas import (
    BlockCreate,
    BlockUpdate,
    SchoolCreate,
    SchoolUpdate,
    StudentCreate,
    StudentUpdate,
    SubjectCreate,
    SubjectUpdate,
    TaskCreate,
    TestCreate,
    TestUpdate,
)

logger = logging.getLogger(__name__)

DELETED = EntityStatus.DELETED.value

# Collection -> human label used in not-found errors.
_LABELS = {
    "schools": "School",
    "students": "Student",
    "users": "User",
    "blocks": "Block",
    "subjects": "Subject",
    "tests": "Test",
    "tasks": "Task",
    "student_test_results": "StudentTestResult",
}


def _not_found(collection: str, entity_id: str):
    if collection == "tests":
        return TestNotFound(entity_id)
    if collection == "tasks":
        return TaskNotFound(entity_id)
    if collection == "student_test_results":
        return ResultNotFound(entity_id)
    return EntityNotFound(_LABELS.get(collection, collection), entity_id)


class HierarchyService:
    """
    Lifecycle operations over the grading hierarchy.

    Every mutating method takes the acting user id explicitly.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    # ========== Reads ==========

    def get(self, collection: str, entity_id: str, *, include_deleted: bool = False) -> Dict[str, Any]:
        """
        Load one document.

        Raises:
            InvalidIdentifier: malformed id
            NotFound: missing, or DELETED unless include_deleted
        """
        eid = validate_identifier(entity_id)
        filter: Dict[str, Any] = {"id": eid}
        if not include_deleted:
            filter[STATUS_FIELDS[collection]] = {"$ne": DELETED}
        with storage_step(f"read {collection}"):
            doc = self.store.find_one(collection, filter)
        if doc is None:
            raise _not_found(collection, eid)
        return doc

    def list_all(
        self,
        collection: str,
        filter: Optional[Dict[str, Any]] = None,
        *,
        include_deleted: bool = False,
    ) -> List[Dict[str, Any]]:
        query = dict(filter or {})
        if not include_deleted and collection in STATUS_FIELDS:
            query.setdefault(STATUS_FIELDS[collection], {"$ne": DELETED})
        with storage_step(f"list {collection}"):
            return self.store.find(collection, query)

    def _require_live(self, collection: str, entity_id: str) -> Dict[str, Any]:
        return self.get(collection, entity_id)

    # ========== Shared write helpers ==========

    def _insert(self, collection: str, doc: Dict[str, Any]) -> str:
        with storage_step(f"insert {collection}"):
            return self.store.insert_one(collection, doc)

    def _add_reference(self, parent_collection: str, parent_id: str, field: str, child_id: str) -> None:
        """Append child_id to the parent's reference list; the parent must still be live."""
        with storage_step(f"link {parent_collection}.{field}"):
            res = self.store.update_one(
                parent_collection,
                {"id": parent_id, STATUS_FIELDS[parent_collection]: {"$ne": DELETED}},
                {"$addToSet": {field: child_id}},
            )
        if res.matched_count == 0:
            logger.error(f"✗ Could not link {child_id} into {parent_collection} {parent_id}.{field}")
            raise CascadeInconsistency(
                f"{_LABELS[parent_collection]} {parent_id} disappeared before {field} could be updated",
                details={"parent": parent_id, "field": field, "child": child_id},
            )

    def _set_fields(self, collection: str, entity_id: str, fields: Dict[str, Any], actor_id: str) -> Dict[str, Any]:
        fields = dict(fields)
        fields["updated_by"] = actor_id
        fields["updated_at"] = now_iso()
        with storage_step(f"update {collection}"):
            res = self.store.update_one(
                collection,
                {"id": entity_id, STATUS_FIELDS[collection]: {"$ne": DELETED}},
                {"$set": fields},
            )
        if res.matched_count == 0:
            raise _not_found(collection, entity_id)
        return self.get(collection, entity_id)

    # ---- Cascade steps ----

    def _soft_delete(self, collection: str, ids: Iterable[str], timestamp: str, actor_id: str) -> int:
        """
        Soft-delete a batch of ids in one update.

        Every id must resolve to a stored document (DELETED or not);
        a missing one means the hierarchy references a document that never
        existed or was physically removed.
        """
        ids = list(dict.fromkeys(ids))
        if not ids:
            return 0

        payload = build_delete_payload(
            ids=ids,
            status_key=STATUS_FIELDS[collection],
            timestamp=timestamp,
            actor_id=actor_id,
        )
        self._load_all(collection, ids)
        with storage_step(f"delete {collection}"):
            res = self.store.update_many(collection, payload.filter, payload.update)

        logger.info(f"Cascade: soft-deleted {res.modified_count}/{len(ids)} {collection}")
        return res.modified_count

    def _pull_reference(self, parent_collection: str, parent_id: str, field: str, child_ids: Iterable[str]) -> None:
        payload = build_pull_payload(parent_id=parent_id, field=field, child_ids=child_ids)
        with storage_step(f"unlink {parent_collection}.{field}"):
            res = self.store.update_one(parent_collection, payload.filter, payload.update)
        if res.matched_count == 0:
            logger.error(f"✗ Cascade: parent {parent_collection} {parent_id} not found for pull")
            raise CascadeInconsistency(
                f"{_LABELS[parent_collection]} {parent_id} not found while removing {field} reference",
                details={"parent": parent_id, "field": field},
            )
        logger.info(f"Cascade: pulled {field} reference from {parent_collection} {parent_id}")

    def _load_all(self, collection: str, ids: Iterable[str]) -> List[Dict[str, Any]]:
        """Load referenced documents (DELETED included); every id must exist."""
        ids = list(dict.fromkeys(ids))
        if not ids:
            return []
        with storage_step(f"read {collection}"):
            docs = self.store.find(collection, {"id": {"$in": ids}})
        missing = set(ids) - {d["id"] for d in docs}
        if missing:
            logger.error(f"✗ Cascade: {len(missing)} referenced {collection} not found")
            raise CascadeInconsistency(
                f"{len(missing)} referenced {collection} not found",
                details={"collection": collection, "missing": sorted(missing)},
            )
        return docs

    def _delete_test_children(self, tests: List[Dict[str, Any]], timestamp: str, actor_id: str) -> None:
        task_ids: List[str] = []
        result_ids: List[str] = []
        for t in tests:
            task_ids.extend(t.get("tasks") or [])
            result_ids.extend(t.get("student_test_results") or [])
        self._soft_delete("tasks", task_ids, timestamp, actor_id)
        self._soft_delete("student_test_results", result_ids, timestamp, actor_id)

    # ========== School / Student ==========

    def create_school(self, payload: SchoolCreate, actor_id: str) -> Dict[str, Any]:
        school = School(**payload.model_dump(), created_by=actor_id, updated_by=actor_id)
        doc = school.model_dump(mode="json")
        self._insert("schools", doc)
        logger.info(f"✓ Created school {doc['id']}")
        return doc

    def update_school(self, school_id: str, payload: SchoolUpdate, actor_id: str) -> Dict[str, Any]:
        school = self._require_live("schools", school_id)
        return self._set_fields("schools", school["id"], payload.model_dump(mode="json", exclude_unset=True), actor_id)

    def delete_school(self, school_id: str, actor_id: str) -> None:
        """Students referencing the school -> the school."""
        school = self.get("schools", school_id, include_deleted=True)
        now = now_iso()

        with storage_step("read students"):
            students = self.store.find("students", {"school": school["id"]})
        student_ids = list(dict.fromkeys([s["id"] for s in students] + (school.get("students") or [])))

        self._soft_delete("students", student_ids, now, actor_id)
        self._soft_delete("schools", [school["id"]], now, actor_id)
        logger.info(f"✓ Deleted school {school['id']} with {len(student_ids)} students")

    def create_student(self, payload: StudentCreate, actor_id: str) -> Dict[str, Any]:
        school = self._require_live("schools", payload.school)
        student = Student(**payload.model_dump(), created_by=actor_id, updated_by=actor_id)
        student.school = school["id"]
        doc = student.model_dump(mode="json")

        self._insert("students", doc)
        self._add_reference("schools", school["id"], "students", doc["id"])
        logger.info(f"✓ Created student {doc['id']} in school {school['id']}")
        return doc

    def update_student(self, student_id: str, payload: StudentUpdate, actor_id: str) -> Dict[str, Any]:
        student = self._require_live("students", student_id)
        return self._set_fields("students", student["id"], payload.model_dump(mode="json", exclude_unset=True), actor_id)

    def delete_student(self, student_id: str, actor_id: str) -> None:
        student = self.get("students", student_id, include_deleted=True)
        now = now_iso()
        self._soft_delete("students", [student["id"]], now, actor_id)
        self._pull_reference("schools", student["school"], "students", [student["id"]])

    # ========== Block ==========

    def _check_connected_block(self, block_id: Optional[str], self_id: Optional[str] = None) -> Optional[str]:
        if not block_id:
            return None
        connected = self._require_live("blocks", block_id)
        if connected["id"] == self_id:
            raise InvalidInput("A block cannot be connected to itself")
        return connected["id"]

    def create_block(self, payload: BlockCreate, actor_id: str) -> Dict[str, Any]:
        validate_block_type(payload.evaluation_type, payload.block_type)
        block = Block(**payload.model_dump(), created_by=actor_id, updated_by=actor_id)
        block.connected_block = self._check_connected_block(payload.connected_block)
        doc = block.model_dump(mode="json")

        self._insert("blocks", doc)
        logger.info(f"✓ Created block {doc['id']} ({doc['block_type']})")
        return doc

    def update_block(self, block_id: str, payload: BlockUpdate, actor_id: str) -> Dict[str, Any]:
        block = self._require_live("blocks", block_id)
        fields = payload.model_dump(mode="json", exclude_unset=True)

        evaluation_type = fields.get("evaluation_type", block["evaluation_type"])
        block_type = fields.get("block_type", block["block_type"])
        validate_block_type(evaluation_type, block_type)

        connected = fields.get("connected_block", block.get("connected_block"))
        if connected and block_type != BlockType.RETAKE.value:
            raise InvalidInput("connected_block is only allowed for RETAKE blocks")
        if "connected_block" in fields:
            fields["connected_block"] = self._check_connected_block(fields["connected_block"], block["id"])

        return self._set_fields("blocks", block["id"], fields, actor_id)

    def delete_block(self, block_id: str, actor_id: str) -> None:
        """Tasks/results of every test -> tests -> subjects -> block."""
        block = self.get("blocks", block_id, include_deleted=True)
        now = now_iso()

        subjects = self._load_all("subjects", block.get("subjects") or [])
        test_ids = [tid for s in subjects for tid in (s.get("tests") or [])]
        tests = self._load_all("tests", test_ids)

        self._delete_test_children(tests, now, actor_id)
        self._soft_delete("tests", test_ids, now, actor_id)
        self._soft_delete("subjects", [s["id"] for s in subjects], now, actor_id)
        self._soft_delete("blocks", [block["id"]], now, actor_id)
        logger.info(f"✓ Deleted block {block['id']} ({len(subjects)} subjects, {len(tests)} tests)")

    # ========== Subject ==========

    def _check_connected_blocks(self, block_ids: List[str], is_transversal: bool) -> List[str]:
        if block_ids and not is_transversal:
            raise InvalidInput("connected_blocks is only allowed on transversal subjects")
        return [self._require_live("blocks", b)["id"] for b in block_ids]

    def create_subject(self, payload: SubjectCreate, actor_id: str) -> Dict[str, Any]:
        block = self._require_live("blocks", payload.block)
        is_transversal = block["block_type"] == BlockType.TRANSVERSAL.value

        connected = self._check_connected_blocks(payload.connected_blocks, is_transversal)
        validate_subject_criteria(payload.subject_passing_criteria)

        subject = Subject(
            **payload.model_dump(exclude={"block", "connected_blocks", "subject_passing_criteria"}),
            block=block["id"],
            is_transversal=is_transversal,
            connected_blocks=connected,
            subject_passing_criteria=payload.subject_passing_criteria,
            created_by=actor_id,
            updated_by=actor_id,
        )
        doc = subject.model_dump(mode="json")

        self._insert("subjects", doc)
        self._add_reference("blocks", block["id"], "subjects", doc["id"])
        logger.info(f"✓ Created subject {doc['id']} in block {block['id']}")
        return doc

    def update_subject(self, subject_id: str, payload: SubjectUpdate, actor_id: str) -> Dict[str, Any]:
        subject = self._require_live("subjects", subject_id)
        self._require_live("blocks", subject["block"])
        fields = payload.model_dump(mode="json", exclude_unset=True)

        if "connected_blocks" in fields:
            fields["connected_blocks"] = self._check_connected_blocks(
                fields["connected_blocks"] or [], subject["is_transversal"]
            )
        if "subject_passing_criteria" in fields:
            validate_subject_criteria(payload.subject_passing_criteria)

        return self._set_fields("subjects", subject["id"], fields, actor_id)

    def delete_subject(self, subject_id: str, actor_id: str) -> None:
        """Tasks/results of its tests -> tests -> subject -> pull from block.subjects."""
        subject = self.get("subjects", subject_id, include_deleted=True)
        now = now_iso()

        tests = self._load_all("tests", subject.get("tests") or [])

        self._delete_test_children(tests, now, actor_id)
        self._soft_delete("tests", [t["id"] for t in tests], now, actor_id)
        self._soft_delete("subjects", [subject["id"]], now, actor_id)
        self._pull_reference("blocks", subject["block"], "subjects", [subject["id"]])
        logger.info(f"✓ Deleted subject {subject['id']} ({len(tests)} tests)")

    # ========== Test ==========

    def _check_connected_test(self, test_id: Optional[str], self_id: Optional[str] = None) -> str:
        if not test_id:
            raise InvalidInput("connected_test is required when is_retake is true")
        connected = self._require_live("tests", test_id)
        if connected["id"] == self_id:
            raise InvalidInput("A retake test cannot be connected to itself")
        return connected["id"]

    def create_test(self, payload: TestCreate, actor_id: str) -> Dict[str, Any]:
        subject = self._require_live("subjects", payload.subject)
        block = self._require_live("blocks", subject["block"])
        validate_test_type(block["evaluation_type"], payload.test_type)

        notations = [n.model_dump() for n in payload.notations]
        validate_test_criteria(payload.test_passing_criteria, notations)

        test = Test(
            **payload.model_dump(exclude={"subject", "notations", "test_passing_criteria"}),
            subject=subject["id"],
            notations=payload.notations,
            test_passing_criteria=payload.test_passing_criteria,
            created_by=actor_id,
            updated_by=actor_id,
        )
        test.connected_test = self._check_connected_test(payload.connected_test) if payload.is_retake else None
        doc = test.model_dump(mode="json")

        self._insert("tests", doc)
        self._add_reference("subjects", subject["id"], "tests", doc["id"])
        logger.info(f"✓ Created test {doc['id']} in subject {subject['id']}")
        return doc

    def update_test(self, test_id: str, payload: TestUpdate, actor_id: str) -> Dict[str, Any]:
        test = self._require_live("tests", test_id)
        subject = self._require_live("subjects", test["subject"])
        fields = payload.model_dump(mode="json", exclude_unset=True)

        if "test_type" in fields:
            block = self._require_live("blocks", subject["block"])
            validate_test_type(block["evaluation_type"], fields["test_type"])

        notations = fields.get("notations", test["notations"])
        if "test_passing_criteria" in fields:
            validate_test_criteria(payload.test_passing_criteria, notations)
        elif "notations" in fields and test.get("test_passing_criteria"):
            validate_test_criteria(PassingCriteria.model_validate(test["test_passing_criteria"]), notations)

        is_retake = fields.get("is_retake", test["is_retake"])
        if is_retake:
            fields["connected_test"] = self._check_connected_test(
                fields.get("connected_test", test.get("connected_test")), test["id"]
            )
        elif fields.get("connected_test"):
            raise InvalidInput("connected_test is only allowed on retake tests")
        elif "is_retake" in fields:
            fields["connected_test"] = None

        return self._set_fields("tests", test["id"], fields, actor_id)

    def delete_test(self, test_id: str, actor_id: str) -> None:
        """Tasks and results -> test -> pull from subject.tests."""
        test = self.get("tests", test_id, include_deleted=True)
        now = now_iso()

        self._delete_test_children([test], now, actor_id)
        self._soft_delete("tests", [test["id"]], now, actor_id)
        self._pull_reference("subjects", test["subject"], "tests", [test["id"]])
        logger.info(f"✓ Deleted test {test['id']}")

    # ========== Task / StudentTestResult ==========

    def attach_task(self, task: Task) -> Dict[str, Any]:
        """Persist a task and append it to its test's `tasks`."""
        doc = task.model_dump(mode="json")
        self._insert("tasks", doc)
        self._add_reference("tests", doc["test"], "tasks", doc["id"])
        logger.info(f"✓ Created {doc['task_type']} task {doc['id']} for user {doc['user']}")
        return doc

    def attach_result(self, result: StudentTestResult) -> Dict[str, Any]:
        """Persist a result and append it to its test's `student_test_results`."""
        doc = result.model_dump(mode="json")
        self._insert("student_test_results", doc)
        self._add_reference("tests", doc["test"], "student_test_results", doc["id"])
        logger.info(f"✓ Created result {doc['id']} for student {doc['student']}")
        return doc

    def create_task(self, payload: TaskCreate, actor_id: str) -> Dict[str, Any]:
        test = self._require_live("tests", payload.test)
        user = self._require_live("users", payload.user)
        task = Task(
            **payload.model_dump(exclude={"test", "user"}),
            test=test["id"],
            user=user["id"],
            created_by=actor_id,
            updated_by=actor_id,
        )
        return self.attach_task(task)

    def delete_task(self, task_id: str, actor_id: str) -> None:
        task = self.get("tasks", task_id, include_deleted=True)
        now = now_iso()
        self._soft_delete("tasks", [task["id"]], now, actor_id)
        self._pull_reference("tests", task["test"], "tasks", [task["id"]])

    def delete_student_test_result(self, result_id: str, actor_id: str) -> None:
        result = self.get("student_test_results", result_id, include_deleted=True)
        now = now_iso()
        self._soft_delete("student_test_results", [result["id"]], now, actor_id)
        self._pull_reference("tests", result["test"], "student_test_results", [result["id"]])

    def update_student_test_result(self, result_id: str, marks: List[Dict[str, Any]], actor_id: str) -> Dict[str, Any]:
        """
        Correct the marks of a PENDING result and recompute its average.

        Raises:
            ResultNotFound: missing or DELETED result
            ResultAlreadyValidated: result is no longer PENDING
            InvalidMark: marks do not fit the test notations
        """
        result = self.get("student_test_results", result_id)
        if result["student_test_result_status"] != ResultStatus.PENDING.value:
            raise ResultAlreadyValidated(result["id"])

        test = self._require_live("tests", result["test"])
        validate_marks(test["notations"], marks)

        now = now_iso()
        with storage_step("update student_test_results"):
            res = self.store.update_one(
                "student_test_results",
                {"id": result["id"], "student_test_result_status": ResultStatus.PENDING.value},
                {
                    "$set": {
                        "marks": [{"notation_text": m["notation_text"], "mark": float(m["mark"])} for m in marks],
                        "average_mark": average_mark(marks),
                        "mark_entry_date": now,
                        "updated_by": actor_id,
                        "updated_at": now,
                    }
                },
            )
        if res.matched_count == 0:
            raise ResultAlreadyValidated(result["id"])
        return self.get("student_test_results", result["id"])
