"""Pipeline router."""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from recruiter_pipeline.database import get_db
from recruiter_pipeline.models.stages import DISQUALIFICATION_REASONS
from recruiter_pipeline.schemas.candidate import ConvertTempCandidateRequest, candidate_response
from recruiter_pipeline.schemas.pipeline import (
    AddCandidateRequest,
    AddMultipleJobsRequest,
    AddSingleJobRequest,
    ApiResponse,
    CreatePipelineRequest,
    MoveStageRequest,
    UpdatePipelineRequest,
    UpdateStageFieldsRequest,
    UpdateStatusRequest,
    UpdateTempCandidateRequest,
    membership_result,
    pipeline_info,
    to_json,
)
from recruiter_pipeline.services.pipeline_service import PipelineService


router = APIRouter(prefix="/api/v1/pipeline", tags=["Pipeline"])


def get_pipeline_service(db: AsyncIOMotorDatabase = Depends(get_db)) -> PipelineService:
    return PipelineService(db)


@router.post("/", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_pipeline(
    request: CreatePipelineRequest,
    service: PipelineService = Depends(get_pipeline_service)
):
    """Open a pipeline for a job."""
    entry = await service.create_pipeline(
        request.job_id,
        recruiter_id=request.recruiter_id,
        priority=request.priority,
        notes=request.notes,
    )
    return ApiResponse(message="Pipeline created", data=pipeline_info(entry))


@router.post("/add-single", response_model=ApiResponse)
async def add_single_job(
    request: AddSingleJobRequest,
    service: PipelineService = Depends(get_pipeline_service)
):
    """Ensure a job has a pipeline; returns the existing one if it already does."""
    entry, created = await service.add_single_job(request.job_id, request.recruiter_id)
    return ApiResponse(
        message="Job added to pipeline" if created else "Job is already in the pipeline",
        data={"pipeline": pipeline_info(entry), "created": created},
    )


@router.post("/add-multiple", response_model=ApiResponse)
async def add_multiple_jobs(
    request: AddMultipleJobsRequest,
    service: PipelineService = Depends(get_pipeline_service)
):
    result = await service.add_jobs(request.job_ids, request.recruiter_id)
    return ApiResponse(
        message=f"{len(result['created'])} job(s) added to pipeline",
        data={
            "created": [pipeline_info(entry) for entry in result["created"]],
            "skipped": result["skipped"],
            "notFound": result["notFound"],
        },
    )


@router.get("/summary", response_model=ApiResponse)
async def get_overall_summary(
    status_filter: Optional[str] = Query(None, alias="status"),
    priority: Optional[str] = None,
    recruiter_id: Optional[str] = Query(None, alias="recruiterId"),
    service: PipelineService = Depends(get_pipeline_service)
):
    """Candidate counts by status across all matching pipelines."""
    filters = {"status": status_filter, "priority": priority, "recruiter_id": recruiter_id}
    return ApiResponse(data=await service.get_overall_candidate_summary(filters))


@router.get("/disqualification-reasons", response_model=ApiResponse)
async def get_disqualification_reasons():
    return ApiResponse(data=list(DISQUALIFICATION_REASONS))


@router.get("/entry/{pipeline_id}", response_model=ApiResponse)
async def get_pipeline_entry(
    pipeline_id: str,
    service: PipelineService = Depends(get_pipeline_service)
):
    """Pipeline with job details and every candidate joined in."""
    return ApiResponse(data=await service.get_pipeline_detail(pipeline_id))


@router.get("/", response_model=ApiResponse)
async def list_pipeline_entries(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    status_filter: Optional[str] = Query(None, alias="status"),
    priority: Optional[str] = None,
    recruiter_id: Optional[str] = Query(None, alias="recruiterId"),
    job_id: Optional[str] = Query(None, alias="jobId"),
    service: PipelineService = Depends(get_pipeline_service)
):
    """List pipelines, newest first."""
    filters = {
        "status": status_filter,
        "priority": priority,
        "recruiter_id": recruiter_id,
        "job_id": job_id,
    }
    return ApiResponse(data=await service.list_pipeline_entries(filters, page=page, limit=limit))


@router.patch("/{pipeline_id}", response_model=ApiResponse)
async def update_pipeline(
    pipeline_id: str,
    request: UpdatePipelineRequest,
    service: PipelineService = Depends(get_pipeline_service)
):
    """Change status, priority or notes. Closing is how pipelines are retired."""
    entry = await service.update_pipeline(
        pipeline_id,
        status=request.status,
        priority=request.priority,
        notes=request.notes,
    )
    return ApiResponse(message="Pipeline updated", data=pipeline_info(entry))


@router.delete("/{pipeline_id}", response_model=ApiResponse)
async def delete_pipeline(
    pipeline_id: str,
    service: PipelineService = Depends(get_pipeline_service)
):
    await service.delete_pipeline(pipeline_id)
    return ApiResponse(message="Pipeline deleted")


@router.get("/{pipeline_id}/summary", response_model=ApiResponse)
async def get_pipeline_summary(
    pipeline_id: str,
    service: PipelineService = Depends(get_pipeline_service)
):
    return ApiResponse(data=await service.get_candidate_summary(pipeline_id))


@router.post("/{pipeline_id}/add-candidate", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def add_candidate(
    pipeline_id: str,
    request: AddCandidateRequest,
    service: PipelineService = Depends(get_pipeline_service)
):
    """Add an existing candidate or a placeholder to a pipeline."""
    temp = request.temp_candidate.model_dump(by_alias=True) if request.temp_candidate else None
    entry, membership = await service.add_candidate_to_pipeline(
        pipeline_id,
        candidate_id=request.candidate_id,
        temp_candidate=temp,
    )
    return ApiResponse(message="Candidate added to pipeline", data=membership_result(entry, membership))


@router.delete("/{pipeline_id}/candidate/{candidate_id}", response_model=ApiResponse)
async def remove_candidate(
    pipeline_id: str,
    candidate_id: str,
    service: PipelineService = Depends(get_pipeline_service)
):
    entry = await service.remove_candidate_from_pipeline(pipeline_id, candidate_id)
    return ApiResponse(message="Candidate removed from pipeline", data=pipeline_info(entry))


@router.get("/{pipeline_id}/candidates", response_model=ApiResponse)
async def list_pipeline_candidates(
    pipeline_id: str,
    service: PipelineService = Depends(get_pipeline_service)
):
    """Every candidate in the pipeline with profile or placeholder details."""
    return ApiResponse(data=await service.list_pipeline_candidates(pipeline_id))


@router.patch("/{pipeline_id}/temp-candidate/{temp_candidate_id}", response_model=ApiResponse)
async def update_temp_candidate(
    pipeline_id: str,
    temp_candidate_id: str,
    request: UpdateTempCandidateRequest,
    service: PipelineService = Depends(get_pipeline_service)
):
    fields = request.model_dump(by_alias=True, exclude_unset=True, exclude={"expected_version"})
    entry, membership = await service.update_temp_candidate(
        pipeline_id,
        temp_candidate_id,
        fields,
        expected_version=request.expected_version,
    )
    return ApiResponse(message="Temporary candidate updated", data=membership_result(entry, membership))


@router.patch("/{pipeline_id}/candidate/{candidate_id}/stage", response_model=ApiResponse)
async def move_candidate_stage(
    pipeline_id: str,
    candidate_id: str,
    request: MoveStageRequest,
    service: PipelineService = Depends(get_pipeline_service)
):
    entry, membership = await service.move_candidate_to_stage(
        pipeline_id,
        candidate_id,
        request.new_stage,
        stage_data=request.stage_data,
        notes=request.notes,
        interview_date=request.interview_date,
        interview_meeting_link=request.interview_meeting_link,
        expected_version=request.expected_version,
    )
    return ApiResponse(
        message=f"Candidate moved to {membership.current_stage.value}",
        data=membership_result(entry, membership),
    )


@router.get("/{pipeline_id}/candidate/{candidate_id}/stage/{stage_name}/fields", response_model=ApiResponse)
async def get_stage_fields(
    pipeline_id: str,
    candidate_id: str,
    stage_name: str,
    service: PipelineService = Depends(get_pipeline_service)
):
    record = await service.get_stage_fields(pipeline_id, candidate_id, stage_name)
    return ApiResponse(data=to_json(record.model_dump(by_alias=True)))


@router.patch("/{pipeline_id}/candidate/{candidate_id}/stage/{stage_name}/fields", response_model=ApiResponse)
async def update_stage_fields(
    pipeline_id: str,
    candidate_id: str,
    stage_name: str,
    request: UpdateStageFieldsRequest,
    service: PipelineService = Depends(get_pipeline_service)
):
    """Edit the record of a stage the candidate already went through."""
    entry, membership = await service.update_stage_fields(
        pipeline_id,
        candidate_id,
        stage_name,
        request.fields,
        notes=request.notes,
        expected_version=request.expected_version,
    )
    return ApiResponse(message="Stage fields updated", data=membership_result(entry, membership))


@router.patch("/{pipeline_id}/candidate/{candidate_id}/status", response_model=ApiResponse)
async def update_candidate_status(
    pipeline_id: str,
    candidate_id: str,
    request: UpdateStatusRequest,
    service: PipelineService = Depends(get_pipeline_service)
):
    entry, membership = await service.update_candidate_status(
        pipeline_id,
        candidate_id,
        request.status,
        request.stage,
        notes=request.notes,
        disqualification=request.disqualification(),
        idempotency_key=request.idempotency_key,
        expected_version=request.expected_version,
    )
    return ApiResponse(
        message=f"Candidate status is {membership.status.value}",
        data=membership_result(entry, membership),
    )


@router.post("/{pipeline_id}/candidate/{temp_candidate_id}/convert-to-real", response_model=ApiResponse)
async def convert_temp_candidate(
    pipeline_id: str,
    temp_candidate_id: str,
    request: ConvertTempCandidateRequest,
    service: PipelineService = Depends(get_pipeline_service)
):
    """Promote a placeholder to a stored candidate, keeping its pipeline history."""
    entry, membership, candidate = await service.convert_temp_candidate_to_real(
        pipeline_id,
        temp_candidate_id,
        request.candidate_data(),
        link_existing=request.link_existing,
    )
    data = membership_result(entry, membership)
    data["candidateProfile"] = candidate_response(candidate)
    return ApiResponse(message="Temporary candidate converted", data=data)
