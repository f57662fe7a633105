"""Stage transitions and stage sub-record bookkeeping for one membership.

These functions work on an already loaded ``CandidatePipelineMembership`` and
validate everything before touching it, so a failed call leaves the
membership exactly as it was. Persisting the result is the caller's job
(see ``PipelineService``).
"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from recruiter_pipeline.errors import (
    InvalidStateError,
    ValidationError,
    validation_error_from_pydantic,
)
from recruiter_pipeline.models.pipeline import CandidatePipelineMembership, StageTransition
from recruiter_pipeline.models.stages import (
    STAGE_ATTRIBUTES,
    STAGE_RECORDS,
    CandidateStatus,
    Stage,
    StageRecord,
    parse_stage,
)

# Managed by this module, callers cannot overwrite them
_PROTECTED_FIELDS = {"enteredAt", "entered_at", "updatedAt", "updated_at"}


def _build_record(
    stage: Stage,
    existing: Optional[StageRecord],
    fields: Dict[str, Any],
    notes: Optional[str],
    now: datetime,
) -> StageRecord:
    record_cls = STAGE_RECORDS[stage]
    data = existing.model_dump(by_alias=True, exclude_none=True) if existing is not None else {}
    for key, value in fields.items():
        if key in _PROTECTED_FIELDS:
            continue
        data[to_camel(key) if "_" in key else key] = value
    if notes is not None:
        data["notes"] = notes
    data["enteredAt"] = existing.entered_at if existing is not None else now
    data["updatedAt"] = now
    try:
        return record_cls.model_validate(data)
    except PydanticValidationError as exc:
        raise validation_error_from_pydantic(exc, f"Invalid fields for stage {stage.value}")


def move_candidate_to_stage(
    membership: CandidatePipelineMembership,
    new_stage,
    stage_data: Optional[Dict[str, Any]] = None,
    notes: Optional[str] = None,
    interview_date=None,
    interview_meeting_link: Optional[str] = None,
    now: Optional[datetime] = None,
) -> CandidatePipelineMembership:
    """Put the candidate on ``new_stage`` and create or merge that stage's record.

    Any stage of the enumeration is a legal target. Stages jumped over are not
    filled in.
    """
    stage = parse_stage(new_stage)
    now = now or datetime.utcnow()

    if membership.status == CandidateStatus.HIRED and stage != Stage.HIRED:
        raise InvalidStateError(
            "A hired candidate cannot leave the Hired stage; change the status first",
            {"currentStage": membership.current_stage.value, "status": membership.status.value},
        )

    fields = dict(stage_data or {})
    if interview_date is not None or interview_meeting_link is not None:
        if stage != Stage.INTERVIEW:
            raise ValidationError(
                "Interview date and meeting link can only be set when moving to Interview",
                {"fields": [{"field": "interviewDate", "message": "only allowed for Interview"}]},
            )
        if interview_date is not None:
            fields["interviewDate"] = interview_date
        if interview_meeting_link is not None:
            fields["interviewMeetingLink"] = interview_meeting_link

    record = _build_record(stage, membership.stage_record(stage), fields, notes, now)

    setattr(membership, STAGE_ATTRIBUTES[stage], record)
    if stage != membership.current_stage:
        membership.stage_history.append(
            StageTransition(from_stage=membership.current_stage, to_stage=stage, notes=notes, moved_at=now)
        )
        membership.current_stage = stage
    membership.last_updated = now
    membership.version += 1
    return membership


def update_stage_fields(
    membership: CandidatePipelineMembership,
    stage_name,
    fields: Dict[str, Any],
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> CandidatePipelineMembership:
    """Partially update the record of a stage the candidate already reached."""
    stage = parse_stage(stage_name)
    existing = membership.stage_record(stage)
    if existing is None:
        raise InvalidStateError(
            f"Candidate has not reached the {stage.value} stage",
            {"stage": stage.value, "visitedStages": [s.value for s in membership.visited_stages()]},
        )
    now = now or datetime.utcnow()
    record = _build_record(stage, existing, fields or {}, notes, now)
    setattr(membership, STAGE_ATTRIBUTES[stage], record)
    membership.last_updated = now
    membership.version += 1
    return membership


def get_stage_fields(membership: CandidatePipelineMembership, stage_name) -> StageRecord:
    """The stage record, or an empty one when the stage was never visited."""
    stage = parse_stage(stage_name)
    record = membership.stage_record(stage)
    if record is None:
        return STAGE_RECORDS[stage]()
    return record
