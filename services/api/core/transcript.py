# services/api/core/transcript.py
"""
Final transcript calculation for one student.

Walks ACTIVE blocks -> ACTIVE subjects -> ACTIVE tests, reads the student's
VALIDATED results and evaluates each test / subject passing criteria with
the rule evaluator.

Totals:
- test weighted mark  = test average * test weight
- subject total mark  = sum(test weighted marks) * subject coefficient
- block total mark    = sum(subject total marks) / sum(coefficients)
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from adapters.base import DocumentStore
from core.criteria import CriteriaScope, ObservedValues, evaluate_criteria
from core.errors import EntityNotFound, storage_step
from core.lifecycle import HierarchyService
from models import (
    BlockResultLine,
    FinalTranscriptResult,
    SubjectResultLine,
    TestResultLine,
    now_iso,
)
from models.enums import EntityStatus, Outcome, ResultStatus

logger = logging.getLogger(__name__)

ACTIVE = EntityStatus.ACTIVE.value


def _outcome(criteria: Optional[Dict[str, Any]], observed: ObservedValues, scope: CriteriaScope) -> Outcome:
    # No criteria configured: nothing to fail.
    if not criteria:
        return Outcome.PASS
    return evaluate_criteria(criteria, observed, scope)


def _ordered(docs: List[Dict[str, Any]], ids: List[str]) -> List[Dict[str, Any]]:
    """Keep the parent's reference-list order."""
    position = {i: n for n, i in enumerate(ids)}
    return sorted(docs, key=lambda d: position.get(d["id"], len(position)))


class TranscriptService:
    def __init__(self, store: DocumentStore, hierarchy: Optional[HierarchyService] = None):
        self.store = store
        self.hierarchy = hierarchy or HierarchyService(store)

    def _validated_results(self, student_id: str) -> Dict[str, Dict[str, Any]]:
        """test id -> most recent VALIDATED result of the student."""
        with storage_step("read student_test_results"):
            results = self.store.find(
                "student_test_results",
                {"student": student_id, "student_test_result_status": ResultStatus.VALIDATED.value},
            )
        by_test: Dict[str, Dict[str, Any]] = {}
        for r in sorted(results, key=lambda r: r.get("validated_at") or ""):
            by_test[r["test"]] = r
        return by_test

    def _children(self, collection: str, ids: List[str], status_field: str) -> List[Dict[str, Any]]:
        if not ids:
            return []
        with storage_step(f"read {collection}"):
            docs = self.store.find(collection, {"id": {"$in": ids}, status_field: ACTIVE})
        return _ordered(docs, ids)

    def _test_line(self, test: Dict[str, Any], result: Optional[Dict[str, Any]]) -> TestResultLine:
        average = float(result["average_mark"]) if result else 0.0
        notation_marks = {m["notation_text"]: float(m["mark"]) for m in (result or {}).get("marks", [])}

        outcome = _outcome(
            test.get("test_passing_criteria"),
            ObservedValues(average=average, marks=notation_marks),
            CriteriaScope.TEST,
        )
        return TestResultLine(
            test=test["id"],
            test_result=outcome,
            test_total_mark=average,
            test_weighted_mark=average * float(test.get("weight", 0)),
        )

    def _subject_line(self, subject: Dict[str, Any], results: Dict[str, Dict[str, Any]]) -> SubjectResultLine:
        tests = self._children("tests", subject.get("tests") or [], "test_status")
        lines = [self._test_line(t, results.get(t["id"])) for t in tests]

        weight_sum = sum(float(t.get("weight", 0)) for t in tests)
        if tests and abs(weight_sum - 1) > 0.01:
            logger.warning(f"⚠️ Test weights for subject {subject['id']} do not sum to 1 (found {weight_sum:.2f})")

        score = sum(line.test_weighted_mark for line in lines)
        outcome = _outcome(
            subject.get("subject_passing_criteria"),
            ObservedValues(average=score, marks={line.test: line.test_total_mark for line in lines}),
            CriteriaScope.SUBJECT,
        )
        return SubjectResultLine(
            subject=subject["id"],
            subject_result=outcome,
            subject_total_mark=score * float(subject.get("coefficient", 0)),
            test_results=lines,
        )

    def _block_line(self, block: Dict[str, Any], results: Dict[str, Dict[str, Any]]) -> BlockResultLine:
        subjects = self._children("subjects", block.get("subjects") or [], "subject_status")
        lines = [self._subject_line(s, results) for s in subjects]

        coefficient_sum = sum(float(s.get("coefficient", 0)) for s in subjects)
        total = sum(line.subject_total_mark for line in lines)
        passed = all(line.subject_result == Outcome.PASS for line in lines)

        return BlockResultLine(
            block=block["id"],
            block_result=Outcome.PASS if passed else Outcome.FAIL,
            block_total_mark=total / coefficient_sum if coefficient_sum else 0.0,
            subject_results=lines,
        )

    def calculate_final_transcript(self, student_id: str, actor_id: str) -> Dict[str, Any]:
        """
        Compute and upsert the student's final transcript result.

        Raises:
            EntityNotFound: unknown or deleted student
        """
        student = self.hierarchy.get("students", student_id)
        results = self._validated_results(student["id"])

        with storage_step("read blocks"):
            blocks = self.store.find("blocks", {"block_status": ACTIVE})
        blocks.sort(key=lambda b: (b.get("created_at") or "", b["id"]))

        block_lines: List[BlockResultLine] = []
        overall = Outcome.PASS
        for block in blocks:
            line = self._block_line(block, results)
            block_lines.append(line)
            if block.get("is_counted_in_final_transcript", True) and line.block_result != Outcome.PASS:
                overall = Outcome.FAIL

        return self._upsert(student["id"], overall, block_lines, actor_id)

    def _upsert(self, student_id: str, overall: Outcome, block_lines: List[BlockResultLine], actor_id: str) -> Dict[str, Any]:
        with storage_step("read final_transcript_results"):
            existing = self.store.find_one("final_transcript_results", {"student": student_id})

        if existing is None:
            doc = FinalTranscriptResult(
                student=student_id,
                overall_result=overall,
                block_results=block_lines,
                created_by=actor_id,
                updated_by=actor_id,
            ).model_dump(mode="json")
            with storage_step("insert final_transcript_results"):
                self.store.insert_one("final_transcript_results", doc)
            logger.info(f"✓ Final transcript for student {student_id}: {overall.value}")
            return doc

        with storage_step("update final_transcript_results"):
            self.store.update_one(
                "final_transcript_results",
                {"id": existing["id"]},
                {
                    "$set": {
                        "overall_result": overall.value,
                        "block_results": [b.model_dump(mode="json") for b in block_lines],
                        "updated_by": actor_id,
                        "updated_at": now_iso(),
                    }
                },
            )
        logger.info(f"✓ Final transcript for student {student_id} recalculated: {overall.value}")
        return self.get_final_transcript(student_id)

    def get_final_transcript(self, student_id: str) -> Dict[str, Any]:
        sid = self.hierarchy.get("students", student_id, include_deleted=True)["id"]
        with storage_step("read final_transcript_results"):
            doc = self.store.find_one("final_transcript_results", {"student": sid})
        if doc is None:
            raise EntityNotFound("FinalTranscriptResult", sid)
        return doc
