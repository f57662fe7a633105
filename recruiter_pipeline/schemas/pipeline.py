"""Pipeline schemas."""
from bson import ObjectId
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Optional

from recruiter_pipeline.models.candidate import CandidateModel
from recruiter_pipeline.models.job import JobModel
from recruiter_pipeline.models.pipeline import CandidatePipelineMembership, PipelineEntry
from recruiter_pipeline.models.stages import PipelineStatus, Priority


def to_json(value) -> Any:
    """JSON-ready copy of a dump: ObjectIds as strings, enums as values, datetimes as ISO."""
    return jsonable_encoder(value, custom_encoder={ObjectId: str})


class ApiResponse(BaseModel):
    """Envelope of every response."""
    success: bool = True
    message: Optional[str] = None
    data: Optional[Any] = None


class RequestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class CreatePipelineRequest(RequestModel):
    """Request to create a pipeline."""
    job_id: str
    recruiter_id: Optional[str] = None
    priority: Optional[Priority] = None
    notes: Optional[str] = None


class AddSingleJobRequest(RequestModel):
    job_id: str
    recruiter_id: Optional[str] = None


class AddMultipleJobsRequest(RequestModel):
    job_ids: List[str] = Field(..., min_length=1)
    recruiter_id: Optional[str] = None


class UpdatePipelineRequest(RequestModel):
    """Request to update a pipeline."""
    status: Optional[PipelineStatus] = None
    priority: Optional[Priority] = None
    notes: Optional[str] = None


class TempCandidateRequest(RequestModel):
    name: str = Field(..., min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None
    profile_link: Optional[str] = None


class UpdateTempCandidateRequest(RequestModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None
    profile_link: Optional[str] = None
    expected_version: Optional[int] = None


class AddCandidateRequest(RequestModel):
    """Either an existing candidate id or the data for a placeholder candidate."""
    candidate_id: Optional[str] = None
    temp_candidate: Optional[TempCandidateRequest] = None


class MoveStageRequest(RequestModel):
    new_stage: str
    stage_data: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None
    interview_date: Optional[str] = None
    interview_meeting_link: Optional[str] = None
    expected_version: Optional[int] = None


class UpdateStageFieldsRequest(RequestModel):
    fields: Dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None
    expected_version: Optional[int] = None


class UpdateStatusRequest(RequestModel):
    status: str
    stage: str
    notes: Optional[str] = None
    disqualification_stage: Optional[str] = None
    disqualification_reason: Optional[str] = None
    disqualification_feedback: Optional[str] = None
    idempotency_key: Optional[str] = None
    expected_version: Optional[int] = None

    def disqualification(self) -> Optional[Dict[str, Any]]:
        if not (self.disqualification_reason or self.disqualification_stage or self.disqualification_feedback):
            return None
        return {
            "stage": self.disqualification_stage,
            "reason": self.disqualification_reason,
            "feedback": self.disqualification_feedback,
        }


# ----------------------------------------------------------------------
# Response projections
# ----------------------------------------------------------------------

def pipeline_summary(entry: PipelineEntry, job: Optional[JobModel]) -> Dict[str, Any]:
    """List row: job headline plus counters, no candidate detail."""
    return to_json({
        "_id": entry.id,
        "jobId": entry.job_id,
        "jobTitle": job.job_title if job else None,
        "clientName": job.client_name if job else None,
        "location": job.location if job else None,
        "recruiterId": entry.recruiter_id,
        "status": entry.status,
        "priority": entry.priority,
        "assignedDate": entry.assigned_date,
        "notes": entry.notes,
        "totalCandidates": entry.total_candidates,
        "activeCandidates": entry.active_candidates,
        "completedCandidates": entry.completed_candidates,
        "droppedCandidates": entry.dropped_candidates,
        "stageBreakdown": entry.stage_breakdown,
        "statusBreakdown": entry.status_breakdown,
        "createdAt": entry.created_at,
        "updatedAt": entry.updated_at,
    })


def pipeline_info(entry: PipelineEntry) -> Dict[str, Any]:
    return to_json(entry.model_dump(by_alias=True, exclude={"candidates"}))


def membership_view(
    membership: CandidatePipelineMembership,
    profile: Optional[CandidateModel] = None,
) -> Dict[str, Any]:
    data = membership.model_dump(by_alias=True)
    if profile is not None:
        data["candidate"] = profile.model_dump(by_alias=True)
    elif membership.temp_candidate is not None:
        data["candidate"] = {"_id": membership.candidate_id, "isTempCandidate": True,
                             **membership.temp_candidate.model_dump(by_alias=True)}
    else:
        data["candidate"] = None
    return to_json(data)


def pipeline_entry_detail(
    entry: PipelineEntry,
    job: Optional[JobModel],
    profiles: Dict,
    candidate_summary: Dict[str, Any],
) -> Dict[str, Any]:
    return {
        "pipelineInfo": pipeline_info(entry),
        "jobDetails": to_json(job.model_dump(by_alias=True)) if job else None,
        "clientInfo": to_json(job.client.model_dump(by_alias=True)) if job and job.client else None,
        "candidateSummary": candidate_summary,
        "candidates": [membership_view(m, profiles.get(m.candidate_id)) for m in entry.candidates],
    }


def membership_result(entry: PipelineEntry, membership: CandidatePipelineMembership) -> Dict[str, Any]:
    """Payload of every per-candidate mutation: the membership and the pipeline counters."""
    return {
        "pipeline": pipeline_info(entry),
        "candidate": membership_view(membership),
    }
