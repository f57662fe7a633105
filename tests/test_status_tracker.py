from datetime import datetime, timedelta

import pytest
from bson import ObjectId

from recruiter_pipeline.errors import InvalidStateError, ValidationError
from recruiter_pipeline.models.pipeline import CandidatePipelineMembership, PipelineEntry
from recruiter_pipeline.models.stages import CandidateStatus, Stage
from recruiter_pipeline.services import stage_machine, status_tracker


T0 = datetime(2024, 1, 10, 12, 0)


def membership_at(stage="Screening"):
    membership = CandidatePipelineMembership(candidate_id=ObjectId())
    stage_machine.move_candidate_to_stage(membership, stage, now=T0)
    return membership


def reject(membership, reason="Skills mismatch", now=T0, **kwargs):
    return status_tracker.update_candidate_status(
        membership,
        "Rejected",
        membership.current_stage,
        disqualification={"reason": reason, "feedback": "Not enough Go experience"},
        now=now,
        **kwargs,
    )


def test_hired_status_requires_hired_stage():
    membership = membership_at("Onboarding")
    with pytest.raises(InvalidStateError):
        status_tracker.update_candidate_status(membership, "Hired", "Onboarding")
    assert membership.status == CandidateStatus.ACTIVE

    stage_machine.move_candidate_to_stage(membership, "Hired")
    assert status_tracker.update_candidate_status(membership, "Hired", "Hired")
    assert membership.status == CandidateStatus.HIRED


def test_rejection_requires_a_reason():
    membership = membership_at()
    with pytest.raises(ValidationError) as exc:
        status_tracker.update_candidate_status(membership, "Rejected", "Screening", disqualification={"reason": "  "})
    assert exc.value.details["fields"][0]["field"] == "disqualificationReason"
    assert membership.rejection_history == []
    assert membership.status == CandidateStatus.ACTIVE


def test_unknown_status_is_a_validation_error():
    membership = membership_at()
    with pytest.raises(ValidationError):
        status_tracker.update_candidate_status(membership, "Ghosted", "Screening")


def test_rejection_records_stage_reason_and_feedback():
    membership = membership_at()
    assert reject(membership) is True

    entry = membership.rejection_history[0]
    assert membership.status == CandidateStatus.REJECTED
    assert membership.current_stage == Stage.SCREENING
    assert entry.stage == Stage.SCREENING
    assert entry.reason == "Skills mismatch"
    assert entry.feedback == "Not enough Go experience"
    assert membership.status_history[-1].status == CandidateStatus.REJECTED


def test_disqualification_stage_can_differ_from_current_stage():
    membership = membership_at("Interview")
    status_tracker.update_candidate_status(
        membership,
        "Rejected",
        "Interview",
        disqualification={"stage": "Client Screening", "reason": "Budget Exceeded"},
    )
    assert membership.rejection_history[0].stage == Stage.CLIENT_SCREENING


def test_reject_reinstate_reject_appends_two_entries():
    membership = membership_at()
    reject(membership, now=T0)
    status_tracker.update_candidate_status(membership, "Active", "Screening", now=T0 + timedelta(seconds=5))
    assert membership.status == CandidateStatus.ACTIVE
    assert len(membership.rejection_history) == 1

    reject(membership, now=T0 + timedelta(seconds=10))

    assert len(membership.rejection_history) == 2
    assert membership.status == CandidateStatus.REJECTED
    assert [c.status for c in membership.status_history] == [
        CandidateStatus.REJECTED,
        CandidateStatus.ACTIVE,
        CandidateStatus.REJECTED,
    ]


def test_repeated_rejection_inside_window_is_a_retry():
    membership = membership_at()
    reject(membership, now=T0)
    version = membership.version

    assert reject(membership, now=T0 + timedelta(seconds=2)) is False
    assert len(membership.rejection_history) == 1
    assert len(membership.status_history) == 1
    assert membership.version == version


def test_repeated_rejection_after_window_is_recorded():
    membership = membership_at()
    reject(membership, now=T0)
    assert reject(membership, now=T0 + timedelta(minutes=10)) is True
    assert len(membership.rejection_history) == 2


def test_rejection_with_different_reason_is_recorded():
    membership = membership_at()
    reject(membership, now=T0)
    assert reject(membership, reason="Budget Exceeded", now=T0 + timedelta(seconds=1)) is True
    assert len(membership.rejection_history) == 2


def test_idempotency_key_deduplicates_across_reinstatement():
    membership = membership_at()
    reject(membership, now=T0, idempotency_key="req-1")
    status_tracker.update_candidate_status(membership, "Active", "Screening")

    assert reject(membership, now=T0 + timedelta(hours=1), idempotency_key="req-1") is False
    assert len(membership.rejection_history) == 1
    assert membership.status == CandidateStatus.ACTIVE


def test_rejection_history_never_shrinks():
    membership = membership_at()
    lengths = []
    for step, status in enumerate(["Rejected", "Active", "On Hold", "Rejected", "Withdrawn", "Active"]):
        now = T0 + timedelta(minutes=step)
        if status == "Rejected":
            reject(membership, now=now)
        else:
            status_tracker.update_candidate_status(membership, status, "Screening", now=now)
        lengths.append(len(membership.rejection_history))
    assert lengths == sorted(lengths)
    assert lengths[-1] == 2


def test_candidate_summary_reports_every_status():
    entry = PipelineEntry(job_id=ObjectId())
    first, second = membership_at(), membership_at()
    reject(second)
    entry.candidates = [first, second]

    summary = status_tracker.candidate_summary(entry)

    assert summary["totalCandidates"] == 2
    assert summary["byStatus"] == {"Active": 1, "Rejected": 1, "Withdrawn": 0, "Hired": 0, "On Hold": 0}


def test_overall_summary_adds_breakdowns():
    summary = status_tracker.overall_candidate_summary([
        {"Active": 2, "Hired": 1},
        None,
        {"Active": 1, "Rejected": 3},
    ])
    assert summary["totalCandidates"] == 7
    assert summary["byStatus"]["Active"] == 3
    assert summary["byStatus"]["On Hold"] == 0
