"""Pipeline database models."""
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field

from recruiter_pipeline.models.base import MongoModel, PyObjectId
from recruiter_pipeline.models.stages import (
    ACTIVE_STATUSES,
    COMPLETED_STATUSES,
    DROPPED_STATUSES,
    STAGE_ATTRIBUTES,
    CandidateStatus,
    ClientScreeningRecord,
    HiredRecord,
    InterviewRecord,
    OnboardingRecord,
    PipelineStatus,
    Priority,
    ScreeningRecord,
    SourcingRecord,
    Stage,
    StageRecord,
    VerificationRecord,
)


class TempCandidate(MongoModel):
    """Placeholder candidate captured while adding someone to a pipeline."""
    name: str = Field(..., min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None
    profile_link: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class StageTransition(MongoModel):
    from_stage: Optional[Stage] = None
    to_stage: Stage
    notes: Optional[str] = None
    moved_at: datetime = Field(default_factory=datetime.utcnow)


class StatusChange(MongoModel):
    status: CandidateStatus
    stage: Stage
    notes: Optional[str] = None
    changed_at: datetime = Field(default_factory=datetime.utcnow)


class RejectionEntry(MongoModel):
    stage: Stage
    reason: str
    feedback: Optional[str] = None
    rejected_at: datetime = Field(default_factory=datetime.utcnow)
    idempotency_key: Optional[str] = None


class CandidatePipelineMembership(MongoModel):
    """State of one candidate inside one job pipeline."""

    candidate_id: PyObjectId
    is_temp_candidate: bool = False
    temp_candidate: Optional[TempCandidate] = None

    current_stage: Stage = Stage.SOURCING
    status: CandidateStatus = CandidateStatus.ACTIVE

    sourcing: Optional[SourcingRecord] = None
    screening: Optional[ScreeningRecord] = None
    client_screening: Optional[ClientScreeningRecord] = None
    interview: Optional[InterviewRecord] = None
    verification: Optional[VerificationRecord] = None
    onboarding: Optional[OnboardingRecord] = None
    hired: Optional[HiredRecord] = None

    # Append-only logs
    stage_history: List[StageTransition] = Field(default_factory=list)
    status_history: List[StatusChange] = Field(default_factory=list)
    rejection_history: List[RejectionEntry] = Field(default_factory=list)

    added_to_pipeline_date: datetime = Field(default_factory=datetime.utcnow)
    last_updated: datetime = Field(default_factory=datetime.utcnow)
    version: int = 0

    def stage_record(self, stage: Stage) -> Optional[StageRecord]:
        return getattr(self, STAGE_ATTRIBUTES[stage])

    def visited_stages(self) -> List[Stage]:
        return [stage for stage in Stage if self.stage_record(stage) is not None]

    @property
    def latest_rejection(self) -> Optional[RejectionEntry]:
        return self.rejection_history[-1] if self.rejection_history else None


class PipelineEntry(MongoModel):
    """All candidates tracked against one job."""

    id: Optional[PyObjectId] = Field(default=None, alias="_id")
    job_id: PyObjectId
    recruiter_id: Optional[PyObjectId] = None
    status: PipelineStatus = PipelineStatus.OPEN
    priority: Priority = Priority.MEDIUM
    assigned_date: datetime = Field(default_factory=datetime.utcnow)
    notes: Optional[str] = None

    candidates: List[CandidatePipelineMembership] = Field(default_factory=list)

    # Derived from candidates by recompute_counters(), never set directly
    total_candidates: int = 0
    active_candidates: int = 0
    completed_candidates: int = 0
    dropped_candidates: int = 0
    stage_breakdown: Dict[str, int] = Field(default_factory=dict)
    status_breakdown: Dict[str, int] = Field(default_factory=dict)

    version: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def find_membership(self, candidate_id) -> Optional[CandidatePipelineMembership]:
        for membership in self.candidates:
            if membership.candidate_id == candidate_id:
                return membership
        return None

    def recompute_counters(self) -> None:
        statuses = [m.status for m in self.candidates]
        self.total_candidates = len(self.candidates)
        self.active_candidates = sum(1 for s in statuses if s in ACTIVE_STATUSES)
        self.completed_candidates = sum(1 for s in statuses if s in COMPLETED_STATUSES)
        self.dropped_candidates = sum(1 for s in statuses if s in DROPPED_STATUSES)

        stages = Counter(m.current_stage for m in self.candidates)
        by_status = Counter(statuses)
        self.stage_breakdown = {stage.value: stages.get(stage, 0) for stage in Stage}
        self.status_breakdown = {status.value: by_status.get(status, 0) for status in CandidateStatus}
