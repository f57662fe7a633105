"""Candidate database models."""
from pydantic import Field, EmailStr
from typing import List, Optional
from datetime import datetime
from recruiter_pipeline.models.base import MongoModel, PyObjectId


class CandidateModel(MongoModel):
    """Full candidate profile."""

    id: Optional[PyObjectId] = Field(default=None, alias="_id")

    # Personal info
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=3)
    other_phone: Optional[str] = None
    gender: Optional[str] = None
    date_of_birth: Optional[str] = None
    nationality: Optional[str] = None
    country: Optional[str] = None
    location: Optional[str] = None
    linkedin: Optional[str] = None
    resume: Optional[str] = None
    referred_by: Optional[str] = None

    # Profile
    experience: Optional[str] = None
    total_relevant_experience: Optional[str] = None
    notice_period: Optional[str] = None
    skills: List[str] = Field(default_factory=list)
    soft_skill: List[str] = Field(default_factory=list)
    technical_skill: List[str] = Field(default_factory=list)
    university_name: Optional[str] = None
    education_degree: Optional[str] = None
    primary_language: Optional[str] = None
    willing_to_relocate: Optional[bool] = None
    description: Optional[str] = None

    # Compensation
    current_salary: Optional[float] = None
    current_salary_currency: Optional[str] = None
    expected_salary: Optional[float] = None
    expected_salary_currency: Optional[str] = None

    # Employment
    current_job_title: Optional[str] = None
    previous_company_name: Optional[str] = None
    reporting_to: Optional[str] = None

    # Set when the profile was promoted from a pipeline placeholder
    converted_from_temp_id: Optional[PyObjectId] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
