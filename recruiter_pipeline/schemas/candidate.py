"""Candidate schemas."""
from pydantic import ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel
from typing import Any, Dict, Optional

from recruiter_pipeline.models.candidate import CandidateModel
from recruiter_pipeline.schemas.pipeline import RequestModel, to_json


class CreateCandidateRequest(RequestModel):
    """Request to create a candidate. Profile fields beyond the identity are passed through."""
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, extra="allow")

    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=3)


class ConvertTempCandidateRequest(RequestModel):
    """Full profile for a placeholder; fields missing here are taken from the placeholder."""
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, extra="allow")

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    link_existing: bool = False

    def candidate_data(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"link_existing"}, exclude_none=True)


def candidate_response(candidate: CandidateModel) -> Dict[str, Any]:
    return to_json(candidate.model_dump(by_alias=True))
