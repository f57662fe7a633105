"""Full candidate records."""
import logging
from datetime import datetime
from typing import Dict, Iterable, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError as PydanticValidationError

from recruiter_pipeline.errors import ConflictError, NotFoundError, validation_error_from_pydantic
from recruiter_pipeline.models.base import parse_object_id
from recruiter_pipeline.models.candidate import CandidateModel


logger = logging.getLogger(__name__)


def build_candidate(data: Dict) -> CandidateModel:
    """Validate a candidate payload, reporting every missing or invalid field at once."""
    try:
        return CandidateModel.model_validate(data)
    except PydanticValidationError as exc:
        raise validation_error_from_pydantic(exc, "Candidate data is incomplete or invalid")


class CandidateStore:
    """The ``candidates`` collection."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def get_candidate_by_id(self, candidate_id) -> CandidateModel:
        oid = parse_object_id(candidate_id, "Candidate")
        candidate = await self.db.candidates.find_one({"_id": oid})
        if not candidate:
            raise NotFoundError("Candidate not found", {"candidateId": str(oid)})
        return CandidateModel(**candidate)

    async def get_candidates_by_ids(self, candidate_ids: Iterable) -> Dict:
        ids = list(candidate_ids)
        if not ids:
            return {}
        candidates = await self.db.candidates.find({"_id": {"$in": ids}}).to_list(length=len(ids))
        return {c["_id"]: CandidateModel(**c) for c in candidates}

    async def find_by_identity(self, email: Optional[str], phone: Optional[str]) -> Optional[CandidateModel]:
        """Existing candidate sharing the email or phone, if any."""
        clauses = []
        if email:
            clauses.append({"email": email.lower()})
        if phone:
            clauses.append({"phone": phone})
        if not clauses:
            return None
        candidate = await self.db.candidates.find_one({"$or": clauses})
        return CandidateModel(**candidate) if candidate else None

    async def create_candidate(self, candidate: CandidateModel) -> CandidateModel:
        """Insert a candidate; ``Conflict`` if the email or phone is already taken."""
        candidate.email = candidate.email.lower()
        existing = await self.find_by_identity(candidate.email, candidate.phone)
        if existing:
            raise ConflictError(
                "A candidate with the same email or phone already exists",
                {"existingCandidateId": str(existing.id)},
            )
        candidate.created_at = candidate.updated_at = datetime.utcnow()
        result = await self.db.candidates.insert_one(candidate.to_document())
        candidate.id = result.inserted_id
        logger.info("Created candidate %s", candidate.id)
        return candidate

    async def delete_candidate(self, candidate_id: ObjectId) -> None:
        await self.db.candidates.delete_one({"_id": candidate_id})
        logger.info("Deleted candidate %s", candidate_id)

    async def list_candidates(self, skip: int = 0, limit: int = 100):
        cursor = self.db.candidates.find({}).sort("createdAt", -1).skip(skip).limit(limit)
        return [CandidateModel(**c) for c in await cursor.to_list(length=limit)]
