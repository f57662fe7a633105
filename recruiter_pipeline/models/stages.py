"""Recruitment stages, candidate statuses and the per-stage sub-records."""
import re
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Annotated, Dict, Literal, Optional, Type

from pydantic import BeforeValidator, ConfigDict, Field

from recruiter_pipeline.errors import InvalidTransitionError, ValidationError
from recruiter_pipeline.models.base import MongoModel


class Stage(str, Enum):
    """Hiring funnel stages, in funnel order."""
    SOURCING = "Sourcing"
    SCREENING = "Screening"
    CLIENT_SCREENING = "Client Screening"
    INTERVIEW = "Interview"
    VERIFICATION = "Verification"
    ONBOARDING = "Onboarding"
    HIRED = "Hired"


class CandidateStatus(str, Enum):
    """Disposition of a candidate, independent of the stage."""
    ACTIVE = "Active"
    REJECTED = "Rejected"
    WITHDRAWN = "Withdrawn"
    HIRED = "Hired"
    ON_HOLD = "On Hold"


class PipelineStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    PAUSED = "paused"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"


ACTIVE_STATUSES = frozenset({CandidateStatus.ACTIVE, CandidateStatus.ON_HOLD})
COMPLETED_STATUSES = frozenset({CandidateStatus.HIRED})
DROPPED_STATUSES = frozenset({CandidateStatus.REJECTED, CandidateStatus.WITHDRAWN})

DISQUALIFICATION_REASONS = (
    "Candidate Opted Out",
    "Budget Exceeded",
    "Location Preferences",
    "Other Considerations",
    "Need Female Candidate",
    "Need Male Candidate",
    "Not Matching the Role",
    "Overqualified for Function",
    "Need Arabs Nationals",
    "Need Saudi Nationals",
)


def _to_naive_utc(value):
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            return _to_naive_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
        except ValueError:
            # Let pydantic produce the error message
            return value
    return value


# Dates travel as ISO strings ("2024-01-10" or full datetimes) and are stored
# as naive UTC datetimes, which is what MongoDB hands back.
DateValue = Annotated[Optional[datetime], BeforeValidator(_to_naive_utc)]
Rating = Optional[Annotated[int, Field(ge=1, le=5)]]


class StageRecord(MongoModel):
    """Fields every stage sub-record carries."""

    model_config = ConfigDict(extra="forbid")

    status: Optional[str] = None
    notes: Optional[str] = None
    entered_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SourcingRecord(StageRecord):
    sourcing_date: DateValue = None
    connection: Optional[str] = None  # LinkedIn, Indeed, Referral, Direct, Other
    referred_by: Optional[str] = None
    sourcing_rating: Rating = None
    outreach_channel: Optional[str] = None
    sourcing_due_date: DateValue = None
    follow_up_date_time: DateValue = None


class ScreeningRecord(StageRecord):
    screening_date: DateValue = None
    cv_submission_date: DateValue = None
    aems_interview_date: DateValue = None
    screening_status: Optional[str] = None
    screening_rating: Rating = None
    screening_follow_up_date: DateValue = None
    screening_due_date: DateValue = None
    screening_notes: Optional[str] = None
    technical_assessment: Optional[str] = None
    soft_skills_assessment: Optional[str] = None
    overall_rating: Rating = None
    feedback: Optional[str] = None


class ClientScreeningRecord(StageRecord):
    client_screening_date: DateValue = None
    client_feedback: Optional[str] = None
    client_rating: Rating = None


class InterviewRecord(StageRecord):
    interview_date: DateValue = None
    interview_status: Optional[Literal["Scheduled", "Completed", "Cancelled", "Rescheduled"]] = None
    interview_round_no: Optional[Annotated[int, Field(ge=1)]] = None
    interview_reschedules: Optional[Annotated[int, Field(ge=0)]] = None
    interview_meeting_link: Optional[str] = None


class VerificationRecord(StageRecord):
    documents: Optional[str] = None
    offer_letter: Optional[Literal["Not sent", "Sent", "Accepted", "Rejected"]] = None
    background_check: Optional[str] = None


class OnboardingRecord(StageRecord):
    onboarding_start_date: DateValue = None
    onboarding_status: Optional[str] = None
    training_completed: Optional[str] = None


class HiredRecord(StageRecord):
    hire_date: DateValue = None
    contract_type: Optional[Literal["Full-time", "Part-time", "Contract", "Internship"]] = None
    final_salary: Optional[Annotated[float, Field(ge=0)]] = None


# Membership attribute holding each stage's sub-record
STAGE_ATTRIBUTES: Dict[Stage, str] = {
    Stage.SOURCING: "sourcing",
    Stage.SCREENING: "screening",
    Stage.CLIENT_SCREENING: "client_screening",
    Stage.INTERVIEW: "interview",
    Stage.VERIFICATION: "verification",
    Stage.ONBOARDING: "onboarding",
    Stage.HIRED: "hired",
}

STAGE_RECORDS: Dict[Stage, Type[StageRecord]] = {
    Stage.SOURCING: SourcingRecord,
    Stage.SCREENING: ScreeningRecord,
    Stage.CLIENT_SCREENING: ClientScreeningRecord,
    Stage.INTERVIEW: InterviewRecord,
    Stage.VERIFICATION: VerificationRecord,
    Stage.ONBOARDING: OnboardingRecord,
    Stage.HIRED: HiredRecord,
}


def _normalize(value: str) -> str:
    return re.sub(r"[\s_\-]+", "", value).lower()


_STAGE_LOOKUP: Dict[str, Stage] = {}
for _stage, _attribute in STAGE_ATTRIBUTES.items():
    _STAGE_LOOKUP[_normalize(_stage.value)] = _stage
    _STAGE_LOOKUP[_normalize(_stage.name)] = _stage
    _STAGE_LOOKUP[_normalize(_attribute)] = _stage
# Older screens called the client screening stage "Client Review"
_STAGE_LOOKUP["clientreview"] = Stage.CLIENT_SCREENING

_STATUS_LOOKUP: Dict[str, CandidateStatus] = {}
for _status in CandidateStatus:
    _STATUS_LOOKUP[_normalize(_status.value)] = _status
    _STATUS_LOOKUP[_normalize(_status.name)] = _status


def parse_stage(value) -> Stage:
    """Resolve a stage from its display name, enum name or sub-record key."""
    if isinstance(value, Stage):
        return value
    if isinstance(value, str):
        stage = _STAGE_LOOKUP.get(_normalize(value))
        if stage is not None:
            return stage
    raise InvalidTransitionError(
        f"Unknown stage: {value!r}",
        {"stage": value, "allowedStages": [s.value for s in Stage]},
    )


def parse_status(value) -> CandidateStatus:
    if isinstance(value, CandidateStatus):
        return value
    if isinstance(value, str):
        status = _STATUS_LOOKUP.get(_normalize(value))
        if status is not None:
            return status
    raise ValidationError(
        f"Unknown candidate status: {value!r}",
        {"fields": [{"field": "status", "message": "must be one of "
                     + ", ".join(s.value for s in CandidateStatus)}]},
    )
