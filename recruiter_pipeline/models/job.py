"""Job records, owned by the jobs module and only read here."""
from pydantic import ConfigDict, Field
from typing import List, Optional, Union
from recruiter_pipeline.models.base import MongoModel, PyObjectId


class JobClient(MongoModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[PyObjectId] = Field(default=None, alias="_id")
    name: Optional[str] = None
    industry: Optional[str] = None
    location: Optional[str] = None


class JobModel(MongoModel):
    """The subset of a job the pipeline needs; anything else passes through."""

    model_config = ConfigDict(extra="allow")

    id: PyObjectId = Field(alias="_id")
    job_title: str = ""
    client: Optional[JobClient] = None
    location: Optional[Union[str, List[str]]] = None
    stage: Optional[str] = None
    job_type: Optional[str] = None
    number_of_positions: Optional[int] = None

    @property
    def client_name(self) -> str:
        return (self.client.name if self.client else None) or ""
