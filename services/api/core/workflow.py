# services/api/core/workflow.py
"""
Grading workflow engine.

    publish test        -> ASSIGN_CORRECTOR (academic director)
    assign corrector    -> ENTER_MARKS      (corrector)
    enter marks         -> StudentTestResult PENDING + VALIDATE_MARKS (academic director)
    validate marks      -> StudentTestResult VALIDATED

Every operation validates everything before its first write. Tasks are
completed with a conditional "PENDING -> COMPLETED" update so two callers
racing on the same task cannot both win. Later writes are not rolled back
when an earlier one succeeded; a storage failure surfaces as
DependencyFailure naming the step that failed.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from fastapi.concurrency import run_in_threadpool

from adapters.base import DocumentStore
from core.email_sender import Notifier, corrector_assignment_email
from core.errors import (
    InvalidCorrector,
    InvalidInput,
    NoAcademicDirectorAvailable,
    ResultAlreadyValidated,
    ResultNotFound,
    StateConflict,
    TaskAlreadyCompleted,
    TaskNotFound,
    TestNotFound,
    storage_step,
)
from core.lifecycle import HierarchyService
from core.validation import average_mark, validate_identifier, validate_marks
from models import MarkEntry, StudentTestResult, Task, now_iso
from models.enums import EntityStatus, ResultStatus, TaskStatus, TaskType, UserRole

logger = logging.getLogger(__name__)


def _normalize_marks(marks: Iterable[Any]) -> List[Dict[str, Any]]:
    out = []
    for m in marks:
        out.append(m.model_dump() if isinstance(m, MarkEntry) else dict(m))
    return out


class GradingWorkflow:
    """
    Task state machine driving corrector assignment, mark entry and validation.
    """

    def __init__(self, store: DocumentStore, notifier: Notifier, hierarchy: Optional[HierarchyService] = None):
        self.store = store
        self.notifier = notifier
        self.hierarchy = hierarchy or HierarchyService(store)

    # ========== Lookups ==========

    def academic_director(self) -> Dict[str, Any]:
        """
        First ACTIVE academic director (oldest account first).

        Raises:
            NoAcademicDirectorAvailable
        """
        with storage_step("read users"):
            users = self.store.find(
                "users",
                {"role": UserRole.ACADEMIC_DIRECTOR.value, "user_status": EntityStatus.ACTIVE.value},
            )
        if not users:
            raise NoAcademicDirectorAvailable()
        users.sort(key=lambda u: (u.get("created_at") or "", u["id"]))
        return users[0]

    def _corrector(self, corrector_id: str) -> Dict[str, Any]:
        cid = validate_identifier(corrector_id)
        with storage_step("read users"):
            user = self.store.find_one(
                "users",
                {"id": cid, "role": UserRole.CORRECTOR.value, "user_status": EntityStatus.ACTIVE.value},
            )
        if user is None:
            raise InvalidCorrector(cid)
        return user

    def _pending_task(self, task_id: str, task_type: TaskType) -> Dict[str, Any]:
        task = self.hierarchy.get("tasks", task_id)
        if task["task_type"] != task_type.value:
            raise TaskNotFound(task["id"], f"is not a {task_type.value} task")
        if task["task_status"] != TaskStatus.PENDING.value:
            raise TaskAlreadyCompleted(task["id"])
        return task

    # ========== Conditional transitions ==========

    def _complete_task(self, task_id: str, actor_id: str, now: str) -> None:
        with storage_step("complete task"):
            res = self.store.update_one(
                "tasks",
                {"id": task_id, "task_status": TaskStatus.PENDING.value},
                {
                    "$set": {
                        "task_status": TaskStatus.COMPLETED.value,
                        "completed_by": actor_id,
                        "completed_at": now,
                        "updated_by": actor_id,
                        "updated_at": now,
                    }
                },
            )
        if res.matched_count == 0:
            logger.warning(f"Task {task_id} was completed concurrently")
            raise TaskAlreadyCompleted(task_id)

    # ========== Operations ==========

    def publish_test(
        self,
        test_id: str,
        actor_id: str,
        *,
        assign_corrector_due_date: Optional[str] = None,
        test_due_date: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Publish a test and open its ASSIGN_CORRECTOR task.

        Raises:
            TestNotFound, NoAcademicDirectorAvailable,
            StateConflict (already published)
        """
        test = self.hierarchy.get("tests", test_id)
        if test.get("is_published"):
            raise StateConflict(f"Test {test['id']} is already published", code="TEST_ALREADY_PUBLISHED")
        director = self.academic_director()

        now = now_iso()
        with storage_step("publish test"):
            res = self.store.update_one(
                "tests",
                {"id": test["id"], "test_status": {"$ne": EntityStatus.DELETED.value}, "is_published": {"$ne": True}},
                {
                    "$set": {
                        "is_published": True,
                        "published_date": now,
                        "published_by": actor_id,
                        "test_due_date": test_due_date,
                        "updated_by": actor_id,
                        "updated_at": now,
                    }
                },
            )
        if res.matched_count == 0:
            with storage_step("read tests"):
                current = self.store.find_one("tests", {"id": test["id"]})
            if current is None or current.get("test_status") == EntityStatus.DELETED.value:
                raise TestNotFound(test["id"])
            raise StateConflict(f"Test {test['id']} is already published", code="TEST_ALREADY_PUBLISHED")

        task = self.hierarchy.attach_task(
            Task(
                test=test["id"],
                user=director["id"],
                title="Assign corrector",
                description=f"Assign a corrector for test {test.get('name', '')}",
                task_type=TaskType.ASSIGN_CORRECTOR,
                due_date=assign_corrector_due_date,
                created_by=actor_id,
                updated_by=actor_id,
            )
        )
        logger.info(f"✓ Published test {test['id']}, ASSIGN_CORRECTOR task {task['id']}")
        return {"test": self.hierarchy.get("tests", test["id"]), "task": task}

    async def assign_corrector(
        self,
        task_id: str,
        corrector_id: str,
        actor_id: str,
        *,
        enter_marks_due_date: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Complete an ASSIGN_CORRECTOR task and open ENTER_MARKS for the corrector.

        The corrector is notified best-effort; a failed notification is
        logged and never fails the assignment.

        Store reads and writes run in the threadpool; only the notification
        is awaited on the event loop.

        Raises:
            TaskNotFound, TaskAlreadyCompleted, InvalidCorrector, TestNotFound
        """
        corrector, test, subject, completed, enter_task = await run_in_threadpool(
            self._record_assignment, task_id, corrector_id, actor_id, enter_marks_due_date
        )
        notified = await self._notify_corrector(corrector, test, subject, enter_marks_due_date)
        return {
            "completed_task": completed,
            "enter_marks_task": enter_task,
            "notified": notified,
        }

    def _record_assignment(
        self, task_id: str, corrector_id: str, actor_id: str, enter_marks_due_date: Optional[str]
    ):
        task = self._pending_task(task_id, TaskType.ASSIGN_CORRECTOR)
        corrector = self._corrector(corrector_id)
        test = self.hierarchy.get("tests", task["test"])
        with storage_step("read subjects"):
            subject = self.store.find_one("subjects", {"id": test["subject"]})

        now = now_iso()
        self._complete_task(task["id"], actor_id, now)

        enter_task = self.hierarchy.attach_task(
            Task(
                test=test["id"],
                user=corrector["id"],
                title="Enter marks",
                description=f"Enter marks for test {test.get('name', '')}",
                task_type=TaskType.ENTER_MARKS,
                due_date=enter_marks_due_date,
                created_by=actor_id,
                updated_by=actor_id,
            )
        )

        logger.info(f"✓ Corrector {corrector['id']} assigned on test {test['id']}, ENTER_MARKS task {enter_task['id']}")
        return corrector, test, subject, self.hierarchy.get("tasks", task["id"]), enter_task

    async def _notify_corrector(self, corrector, test, subject, due_date) -> bool:
        title, body = corrector_assignment_email(corrector=corrector, test=test, subject=subject, due_date=due_date)
        try:
            result = await self.notifier.send(corrector.get("email", ""), title, body)
        except Exception as e:
            logger.warning(f"⚠️ Notification to corrector {corrector['id']} raised: {e}")
            return False
        if not result.success:
            logger.warning(f"⚠️ Notification to corrector {corrector['id']} failed: {result.error}")
            return False
        return True

    def enter_marks(
        self,
        task_id: str,
        *,
        test_id: str,
        student_id: str,
        marks: Iterable[Any],
        actor_id: str,
        validate_marks_due_date: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Complete an ENTER_MARKS task: store one PENDING result and open
        VALIDATE_MARKS for an academic director.

        Raises:
            TaskNotFound, TaskAlreadyCompleted, TestNotFound, InvalidMark,
            NoAcademicDirectorAvailable
        """
        task = self._pending_task(task_id, TaskType.ENTER_MARKS)
        test = self.hierarchy.get("tests", test_id)
        if task["test"] != test["id"]:
            raise InvalidInput(
                f"Task {task['id']} belongs to test {task['test']}, not {test['id']}",
                details={"task": task["id"], "test": test["id"]},
            )
        student = self.hierarchy.get("students", student_id)

        entries = _normalize_marks(marks)
        validate_marks(test["notations"], entries)
        director = self.academic_director()

        now = now_iso()
        self._complete_task(task["id"], actor_id, now)

        result = self.hierarchy.attach_result(
            StudentTestResult(
                test=test["id"],
                student=student["id"],
                marks=[MarkEntry(**e) for e in entries],
                average_mark=average_mark(entries),
                mark_entry_date=now,
                created_by=actor_id,
                updated_by=actor_id,
            )
        )
        validate_task = self.hierarchy.attach_task(
            Task(
                test=test["id"],
                user=director["id"],
                title="Validate marks",
                description=f"Validate marks of test {test.get('name', '')}",
                task_type=TaskType.VALIDATE_MARKS,
                due_date=validate_marks_due_date,
                created_by=actor_id,
                updated_by=actor_id,
            )
        )
        logger.info(f"✓ Marks entered for student {student['id']} on test {test['id']} (avg {result['average_mark']:.2f})")
        return {
            "completed_task": self.hierarchy.get("tasks", task["id"]),
            "student_test_result": result,
            "validate_marks_task": validate_task,
        }

    def validate_marks(self, task_id: str, student_test_result_id: str, actor_id: str) -> Dict[str, Any]:
        """
        Complete a VALIDATE_MARKS task and move the result to VALIDATED.

        Raises:
            TaskNotFound, TaskAlreadyCompleted, ResultNotFound, ResultAlreadyValidated
        """
        task = self._pending_task(task_id, TaskType.VALIDATE_MARKS)
        result = self.hierarchy.get("student_test_results", student_test_result_id)
        if result["test"] != task["test"]:
            raise ResultNotFound(result["id"], f"does not belong to test {task['test']}")
        if result["student_test_result_status"] != ResultStatus.PENDING.value:
            raise ResultAlreadyValidated(result["id"])

        now = now_iso()
        self._complete_task(task["id"], actor_id, now)

        with storage_step("validate result"):
            res = self.store.update_one(
                "student_test_results",
                {"id": result["id"], "student_test_result_status": ResultStatus.PENDING.value},
                {
                    "$set": {
                        "student_test_result_status": ResultStatus.VALIDATED.value,
                        "validated_by": actor_id,
                        "validated_at": now,
                        "updated_by": actor_id,
                        "updated_at": now,
                    }
                },
            )
        if res.matched_count == 0:
            logger.warning(f"Result {result['id']} changed state concurrently")
            raise ResultAlreadyValidated(result["id"])

        logger.info(f"✓ Validated result {result['id']}")
        return {
            "completed_task": self.hierarchy.get("tasks", task["id"]),
            "student_test_result": self.hierarchy.get("student_test_results", result["id"]),
        }
