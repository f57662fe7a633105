"""Candidate status changes, rejections and status summaries."""
from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional

from recruiter_pipeline.config import settings
from recruiter_pipeline.errors import InvalidStateError, ValidationError
from recruiter_pipeline.models.pipeline import (
    CandidatePipelineMembership,
    PipelineEntry,
    RejectionEntry,
    StatusChange,
)
from recruiter_pipeline.models.stages import CandidateStatus, Stage, parse_stage, parse_status


def _is_rejection_retry(
    membership: CandidatePipelineMembership,
    stage: Stage,
    reason: str,
    idempotency_key: Optional[str],
    now: datetime,
    window: timedelta,
) -> bool:
    if idempotency_key and any(e.idempotency_key == idempotency_key for e in membership.rejection_history):
        return True
    latest = membership.latest_rejection
    return (
        membership.status == CandidateStatus.REJECTED
        and latest is not None
        and latest.stage == stage
        and latest.reason == reason
        and now - latest.rejected_at <= window
    )


def update_candidate_status(
    membership: CandidatePipelineMembership,
    status,
    stage,
    notes: Optional[str] = None,
    disqualification: Optional[Dict] = None,
    idempotency_key: Optional[str] = None,
    now: Optional[datetime] = None,
    retry_window: Optional[timedelta] = None,
) -> bool:
    """Apply a status change. Returns False when the call was a retry and changed nothing.

    ``disqualification`` is ``{"stage", "reason", "feedback"}`` and is required
    for ``Rejected``.
    """
    new_status = parse_status(status)
    at_stage = parse_stage(stage)
    now = now or datetime.utcnow()
    if retry_window is None:
        retry_window = timedelta(seconds=settings.rejection_retry_window_seconds)

    if new_status == CandidateStatus.HIRED and membership.current_stage != Stage.HIRED:
        raise InvalidStateError(
            "Move the candidate to the Hired stage before setting the Hired status",
            {"currentStage": membership.current_stage.value},
        )

    rejection = None
    if new_status == CandidateStatus.REJECTED:
        disqualification = disqualification or {}
        reason = (disqualification.get("reason") or "").strip()
        if not reason:
            raise ValidationError(
                "A disqualification reason is required to reject a candidate",
                {"fields": [{"field": "disqualificationReason", "message": "required"}]},
            )
        rejected_stage = parse_stage(disqualification.get("stage") or at_stage)
        if _is_rejection_retry(membership, rejected_stage, reason, idempotency_key, now, retry_window):
            return False
        rejection = RejectionEntry(
            stage=rejected_stage,
            reason=reason,
            feedback=disqualification.get("feedback"),
            rejected_at=now,
            idempotency_key=idempotency_key,
        )

    if rejection is not None:
        membership.rejection_history.append(rejection)
    membership.status_history.append(StatusChange(status=new_status, stage=at_stage, notes=notes, changed_at=now))
    membership.status = new_status
    membership.last_updated = now
    membership.version += 1
    return True


def _summary(breakdowns: Iterable[Dict[str, int]]) -> Dict:
    by_status = {status.value: 0 for status in CandidateStatus}
    for breakdown in breakdowns:
        for status, count in (breakdown or {}).items():
            by_status[status] = by_status.get(status, 0) + count
    return {"totalCandidates": sum(by_status.values()), "byStatus": by_status}


def candidate_summary(entry: PipelineEntry) -> Dict:
    """Counts by status for one pipeline."""
    entry.recompute_counters()
    return _summary([entry.status_breakdown])


def overall_candidate_summary(status_breakdowns: Iterable[Dict[str, int]]) -> Dict:
    """Counts by status across pipelines, from their stored status breakdowns."""
    return _summary(status_breakdowns)
