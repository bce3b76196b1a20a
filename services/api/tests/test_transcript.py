"""
Tests for final transcript calculation.
"""
from uuid import uuid4

import pytest

from core.errors import EntityNotFound
from core.transcript import TranscriptService
from models import MarkEntry, StudentTestResult, now_iso
from models.enums import ResultStatus

AVERAGE_AT_LEAST_10 = {"pass_criteria": [{"conditions": [
    {"criteria_type": "AVERAGE", "comparison_operator": "GTE", "mark": 10}
]}]}


@pytest.fixture
def transcripts(store, hierarchy):
    return TranscriptService(store, hierarchy)


def add_result(hierarchy, test_id, student_id, marks, status=ResultStatus.VALIDATED):
    entries = [MarkEntry(notation_text=k, mark=v) for k, v in marks.items()]
    return hierarchy.attach_result(StudentTestResult(
        test=test_id,
        student=student_id,
        marks=entries,
        average_mark=sum(marks.values()) / len(marks),
        student_test_result_status=status,
        validated_at=now_iso() if status == ResultStatus.VALIDATED else None,
    ))


@pytest.fixture
def student(build):
    school = build.school()
    return build.student(school["id"])


@pytest.fixture
def maths(build):
    """Block with one subject (coefficient 2) and two tests of weight 0.5."""
    block = build.block()
    subject = build.subject(block["id"], coefficient=2, subject_passing_criteria=AVERAGE_AT_LEAST_10)
    written = build.test(subject["id"], weight=0.5)
    oral = build.test(subject["id"], name="Oral", test_type="ORAL", weight=0.5)
    return {"block": block, "subject": subject, "written": written, "oral": oral}


def block_line(doc, block_id):
    return next(b for b in doc["block_results"] if b["block"] == block_id)


class TestCalculate:
    def test_totals_and_pass(self, transcripts, hierarchy, student, maths, actor_id):
        add_result(hierarchy, maths["written"]["id"], student["id"], {"m1": 12})
        add_result(hierarchy, maths["oral"]["id"], student["id"], {"m1": 8})

        doc = transcripts.calculate_final_transcript(student["id"], actor_id)

        assert doc["student"] == student["id"]
        assert doc["overall_result"] == "PASS"
        line = block_line(doc, maths["block"]["id"])
        assert line["block_result"] == "PASS"
        assert line["block_total_mark"] == pytest.approx(10)

        subject_line = line["subject_results"][0]
        assert subject_line["subject_total_mark"] == pytest.approx(20)
        assert [t["test_weighted_mark"] for t in subject_line["test_results"]] == pytest.approx([6, 4])
        assert all(t["test_result"] == "PASS" for t in subject_line["test_results"])

    def test_pending_results_ignored(self, transcripts, hierarchy, student, maths, actor_id):
        add_result(hierarchy, maths["written"]["id"], student["id"], {"m1": 12})
        add_result(hierarchy, maths["oral"]["id"], student["id"], {"m1": 10}, status=ResultStatus.PENDING)

        doc = transcripts.calculate_final_transcript(student["id"], actor_id)
        subject_line = block_line(doc, maths["block"]["id"])["subject_results"][0]
        # Oral counts as 0: (12 * 0.5) = 6 < 10
        assert subject_line["subject_result"] == "FAIL"
        assert doc["overall_result"] == "FAIL"

    def test_uncounted_block_does_not_fail_overall(self, build, transcripts, hierarchy, student, maths, actor_id):
        add_result(hierarchy, maths["written"]["id"], student["id"], {"m1": 15})
        add_result(hierarchy, maths["oral"]["id"], student["id"], {"m1": 15})

        extra = build.block(name="Optional", is_counted_in_final_transcript=False)
        build.subject(extra["id"], subject_passing_criteria=AVERAGE_AT_LEAST_10)

        doc = transcripts.calculate_final_transcript(student["id"], actor_id)
        assert block_line(doc, extra["id"])["block_result"] == "FAIL"
        assert doc["overall_result"] == "PASS"

    def test_no_criteria_passes(self, build, transcripts, student, actor_id):
        block = build.block()
        subject = build.subject(block["id"])
        build.test(subject["id"])

        doc = transcripts.calculate_final_transcript(student["id"], actor_id)
        assert doc["overall_result"] == "PASS"

    def test_test_criteria_on_notation(self, build, transcripts, hierarchy, student, actor_id):
        block = build.block()
        subject = build.subject(block["id"])
        test = build.test(subject["id"], test_passing_criteria={"pass_criteria": [{"conditions": [
            {"criteria_type": "MARK", "comparison_operator": "GTE", "mark": 15, "notation_text": "m2"}
        ]}]})
        add_result(hierarchy, test["id"], student["id"], {"m1": 10, "m2": 12})

        doc = transcripts.calculate_final_transcript(student["id"], actor_id)
        test_line = block_line(doc, block["id"])["subject_results"][0]["test_results"][0]
        assert test_line["test_result"] == "FAIL"
        assert test_line["test_total_mark"] == pytest.approx(11)
        # Subject without criteria still passes
        assert doc["overall_result"] == "PASS"

    def test_deleted_entities_skipped(self, transcripts, hierarchy, student, maths, actor_id):
        add_result(hierarchy, maths["written"]["id"], student["id"], {"m1": 20})
        hierarchy.delete_test(maths["oral"]["id"], actor_id)

        doc = transcripts.calculate_final_transcript(student["id"], actor_id)
        subject_line = block_line(doc, maths["block"]["id"])["subject_results"][0]
        assert [t["test"] for t in subject_line["test_results"]] == [maths["written"]["id"]]

        hierarchy.delete_block(maths["block"]["id"], actor_id)
        doc = transcripts.calculate_final_transcript(student["id"], actor_id)
        assert doc["block_results"] == []


class TestUpsert:
    def test_recalculation_updates_same_document(self, store, transcripts, hierarchy, student, maths, actor_id):
        first = transcripts.calculate_final_transcript(student["id"], actor_id)
        assert first["overall_result"] == "FAIL"

        add_result(hierarchy, maths["written"]["id"], student["id"], {"m1": 10})
        add_result(hierarchy, maths["oral"]["id"], student["id"], {"m1": 10})
        second = transcripts.calculate_final_transcript(student["id"], actor_id)

        assert second["id"] == first["id"]
        assert second["overall_result"] == "PASS"
        assert len(store.find("final_transcript_results", {"student": student["id"]})) == 1
        assert transcripts.get_final_transcript(student["id"]) == second

    def test_get_before_calculation(self, transcripts, student):
        with pytest.raises(EntityNotFound):
            transcripts.get_final_transcript(student["id"])

    def test_unknown_student(self, transcripts, actor_id):
        with pytest.raises(EntityNotFound):
            transcripts.calculate_final_transcript(str(uuid4()), actor_id)
