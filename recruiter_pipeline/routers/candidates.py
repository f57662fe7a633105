"""Candidate router."""
from fastapi import APIRouter, Depends, Query, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from recruiter_pipeline.database import get_db
from recruiter_pipeline.schemas.candidate import CreateCandidateRequest, candidate_response
from recruiter_pipeline.schemas.pipeline import ApiResponse
from recruiter_pipeline.services.candidate_store import CandidateStore, build_candidate


router = APIRouter(prefix="/api/v1/candidates", tags=["Candidates"])


def get_candidate_store(db: AsyncIOMotorDatabase = Depends(get_db)) -> CandidateStore:
    return CandidateStore(db)


@router.post("/", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_candidate(
    request: CreateCandidateRequest,
    store: CandidateStore = Depends(get_candidate_store)
):
    """Create a candidate. Email and phone must not belong to anyone else."""
    candidate = await store.create_candidate(build_candidate(request.model_dump(by_alias=True)))
    return ApiResponse(message="Candidate created", data=candidate_response(candidate))


@router.get("/", response_model=ApiResponse)
async def list_candidates(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=100),
    store: CandidateStore = Depends(get_candidate_store)
):
    candidates = await store.list_candidates(skip=skip, limit=limit)
    return ApiResponse(data=[candidate_response(c) for c in candidates])


@router.get("/{candidate_id}", response_model=ApiResponse)
async def get_candidate(
    candidate_id: str,
    store: CandidateStore = Depends(get_candidate_store)
):
    return ApiResponse(data=candidate_response(await store.get_candidate_by_id(candidate_id)))
