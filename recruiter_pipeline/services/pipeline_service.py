"""Pipeline registry: the single write path for pipeline entries and their memberships."""
import logging
import math
from datetime import datetime
from typing import AsyncIterator, Callable, Dict, Iterable, List, Optional, Tuple

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from pymongo.errors import DuplicateKeyError

from recruiter_pipeline.config import settings
from recruiter_pipeline.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    validation_error_from_pydantic,
)
from recruiter_pipeline.models.base import parse_object_id
from recruiter_pipeline.models.candidate import CandidateModel
from recruiter_pipeline.models.pipeline import (
    CandidatePipelineMembership,
    PipelineEntry,
    TempCandidate,
)
from recruiter_pipeline.models.stages import PipelineStatus, Priority, SourcingRecord, StageRecord
from recruiter_pipeline.schemas.pipeline import membership_view, pipeline_entry_detail, pipeline_summary
from recruiter_pipeline.services import stage_machine, status_tracker
from recruiter_pipeline.services.candidate_store import CandidateStore, build_candidate
from recruiter_pipeline.services.job_directory import JobDirectory


logger = logging.getLogger(__name__)

# Projection used wherever only the summary of an entry is needed
SUMMARY_PROJECTION = {"candidates": 0}


def _coerce_enum(enum_cls, value, field: str):
    if value is None or isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(
            f"Invalid {field}: {value!r}",
            {"fields": [{"field": field, "message": "must be one of " + ", ".join(e.value for e in enum_cls)}]},
        )


class PipelineService:
    """Operations on per-job pipelines.

    Every mutation loads the whole ``PipelineEntry``, changes it in memory,
    recomputes the derived counters and writes it back with a compare on the
    entry ``version``. A concurrent writer that got there first turns the
    second write into a ``ConflictError``.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.jobs = JobDirectory(db)
        self.candidate_store = CandidateStore(db)

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    async def _load(self, pipeline_id) -> PipelineEntry:
        oid = parse_object_id(pipeline_id, "Pipeline")
        doc = await self.db.pipelines.find_one({"_id": oid})
        if not doc:
            raise NotFoundError("Pipeline not found", {"pipelineId": str(oid)})
        return PipelineEntry(**doc)

    async def _save(self, entry: PipelineEntry) -> PipelineEntry:
        expected = entry.version
        entry.recompute_counters()
        entry.version = expected + 1
        entry.updated_at = datetime.utcnow()
        result = await self.db.pipelines.replace_one(
            {"_id": entry.id, "version": expected},
            entry.to_document(),
        )
        if result.matched_count == 0:
            entry.version = expected
            raise ConflictError(
                "Pipeline was modified by another request; reload and retry",
                {"pipelineId": str(entry.id)},
            )
        return entry

    @staticmethod
    def _membership(
        entry: PipelineEntry,
        candidate_id,
        expected_version: Optional[int] = None,
    ) -> CandidatePipelineMembership:
        oid = parse_object_id(candidate_id, "Candidate")
        membership = entry.find_membership(oid)
        if membership is None:
            raise NotFoundError(
                "Candidate is not part of this pipeline",
                {"pipelineId": str(entry.id), "candidateId": str(oid)},
            )
        if expected_version is not None and membership.version != expected_version:
            raise ConflictError(
                "Candidate was modified since it was last read",
                {"expectedVersion": expected_version, "currentVersion": membership.version},
            )
        return membership

    async def _mutate(
        self,
        pipeline_id,
        candidate_id,
        expected_version: Optional[int],
        apply: Callable[[CandidatePipelineMembership], object],
    ) -> Tuple[PipelineEntry, CandidatePipelineMembership]:
        entry = await self._load(pipeline_id)
        membership = self._membership(entry, candidate_id, expected_version)
        if apply(membership) is False:
            return entry, membership
        await self._save(entry)
        return entry, membership

    @staticmethod
    def _filter_query(filters: Optional[Dict]) -> Dict:
        filters = filters or {}
        query = {}
        if filters.get("status"):
            query["status"] = _coerce_enum(PipelineStatus, filters["status"], "status").value
        if filters.get("priority"):
            query["priority"] = _coerce_enum(Priority, filters["priority"], "priority").value
        if filters.get("recruiter_id"):
            query["recruiterId"] = parse_object_id(filters["recruiter_id"], "Recruiter")
        if filters.get("job_id"):
            query["jobId"] = parse_object_id(filters["job_id"], "Job")
        return query

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    async def create_pipeline(
        self,
        job_id,
        recruiter_id=None,
        priority=None,
        notes: Optional[str] = None,
    ) -> PipelineEntry:
        """Open an empty pipeline for a job. One pipeline per job."""
        job = await self.jobs.get_job_by_id(job_id)
        existing = await self.db.pipelines.find_one({"jobId": job.id}, {"_id": 1})
        if existing:
            raise ConflictError(
                "A pipeline already exists for this job",
                {"jobId": str(job.id), "pipelineId": str(existing["_id"])},
            )

        entry = PipelineEntry(
            job_id=job.id,
            recruiter_id=parse_object_id(recruiter_id, "Recruiter") if recruiter_id else None,
            priority=_coerce_enum(Priority, priority, "priority") or Priority.MEDIUM,
            notes=notes,
        )
        entry.recompute_counters()
        try:
            result = await self.db.pipelines.insert_one(entry.to_document())
        except DuplicateKeyError:
            raise ConflictError("A pipeline already exists for this job", {"jobId": str(job.id)})
        entry.id = result.inserted_id
        logger.info("Created pipeline %s for job %s", entry.id, job.id)
        return entry

    async def add_single_job(self, job_id, recruiter_id=None) -> Tuple[PipelineEntry, bool]:
        """Like create_pipeline, but hands back the existing entry instead of failing."""
        try:
            return await self.create_pipeline(job_id, recruiter_id), True
        except ConflictError as exc:
            pipeline_id = (exc.details or {}).get("pipelineId")
            if not pipeline_id:
                raise
            return await self._load(pipeline_id), False

    async def add_jobs(self, job_ids: Iterable, recruiter_id=None) -> Dict:
        created, skipped, not_found = [], [], []
        for job_id in dict.fromkeys(job_ids):
            try:
                created.append(await self.create_pipeline(job_id, recruiter_id))
            except ConflictError as exc:
                skipped.append({"jobId": str(job_id), "pipelineId": (exc.details or {}).get("pipelineId")})
            except NotFoundError:
                not_found.append(str(job_id))
        return {"created": created, "skipped": skipped, "notFound": not_found}

    async def get_pipeline_entry(self, pipeline_id) -> PipelineEntry:
        return await self._load(pipeline_id)

    async def get_pipeline_detail(self, pipeline_id) -> Dict:
        """The entry with its job and every member's candidate profile joined in."""
        entry = await self._load(pipeline_id)
        jobs = await self.jobs.get_jobs_by_ids([entry.job_id])
        profiles = await self.candidate_store.get_candidates_by_ids(
            m.candidate_id for m in entry.candidates if not m.is_temp_candidate
        )
        return pipeline_entry_detail(
            entry,
            jobs.get(entry.job_id),
            profiles,
            status_tracker.candidate_summary(entry),
        )

    async def iter_pipeline_summaries(self, filters: Optional[Dict] = None, batch_size: Optional[int] = None) -> AsyncIterator[Dict]:
        """Yield pipeline summaries page by page, without loading candidate details."""
        query = self._filter_query(filters)
        batch_size = batch_size or settings.default_page_size
        skip = 0
        while True:
            docs = await (
                self.db.pipelines.find(query, SUMMARY_PROJECTION)
                .sort([("createdAt", -1), ("_id", -1)])
                .skip(skip)
                .limit(batch_size)
                .to_list(length=batch_size)
            )
            if not docs:
                return
            jobs = await self.jobs.get_jobs_by_ids({doc["jobId"] for doc in docs})
            for doc in docs:
                yield pipeline_summary(PipelineEntry(**doc), jobs.get(doc["jobId"]))
            if len(docs) < batch_size:
                return
            skip += batch_size

    async def list_pipeline_entries(self, filters: Optional[Dict] = None, page: int = 1, limit: Optional[int] = None) -> Dict:
        query = self._filter_query(filters)
        limit = min(max(limit or settings.default_page_size, 1), settings.max_page_size)
        page = max(page, 1)

        total = await self.db.pipelines.count_documents(query)
        docs = await (
            self.db.pipelines.find(query, SUMMARY_PROJECTION)
            .sort([("createdAt", -1), ("_id", -1)])
            .skip((page - 1) * limit)
            .limit(limit)
            .to_list(length=limit)
        )
        jobs = await self.jobs.get_jobs_by_ids({doc["jobId"] for doc in docs})
        total_pages = math.ceil(total / limit) if total else 0
        overall = await self.get_overall_candidate_summary(filters)
        return {
            "totalPipelines": total,
            "totalCandidates": overall["totalCandidates"],
            "overallCandidateSummary": overall,
            "pipelines": [pipeline_summary(PipelineEntry(**doc), jobs.get(doc["jobId"])) for doc in docs],
            "pagination": {
                "currentPage": page,
                "totalPages": total_pages,
                "totalPipelines": total,
                "hasNextPage": page < total_pages,
                "hasPrevPage": page > 1,
                "limit": limit,
            },
        }

    async def update_pipeline(self, pipeline_id, status=None, priority=None, notes: Optional[str] = None) -> PipelineEntry:
        """Change status (soft close/pause/reopen), priority or notes."""
        entry = await self._load(pipeline_id)
        if status is not None:
            entry.status = _coerce_enum(PipelineStatus, status, "status")
        if priority is not None:
            entry.priority = _coerce_enum(Priority, priority, "priority")
        if notes is not None:
            entry.notes = notes
        await self._save(entry)
        logger.info("Updated pipeline %s (status=%s)", entry.id, entry.status.value)
        return entry

    async def delete_pipeline(self, pipeline_id) -> None:
        """Hard delete, only for pipelines nobody was ever left in."""
        entry = await self._load(pipeline_id)
        if entry.candidates:
            raise ConflictError(
                "Pipeline still has candidates; close it instead of deleting it",
                {"pipelineId": str(entry.id), "totalCandidates": len(entry.candidates)},
            )
        result = await self.db.pipelines.delete_one({"_id": entry.id, "version": entry.version})
        if result.deleted_count == 0:
            raise ConflictError("Pipeline was modified by another request; reload and retry", {"pipelineId": str(entry.id)})
        logger.info("Deleted pipeline %s", entry.id)

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    async def add_candidate_to_pipeline(
        self,
        pipeline_id,
        candidate_id=None,
        temp_candidate: Optional[Dict] = None,
    ) -> Tuple[PipelineEntry, CandidatePipelineMembership]:
        """Add an existing candidate, or a placeholder built from ``temp_candidate``."""
        entry = await self._load(pipeline_id)
        if entry.status == PipelineStatus.CLOSED:
            raise InvalidStateError("Pipeline is closed", {"pipelineId": str(entry.id)})

        if candidate_id is not None:
            candidate = await self.candidate_store.get_candidate_by_id(candidate_id)
            if entry.find_membership(candidate.id) is not None:
                raise ConflictError(
                    "Candidate is already in this pipeline",
                    {"pipelineId": str(entry.id), "candidateId": str(candidate.id)},
                )
            membership = CandidatePipelineMembership(candidate_id=candidate.id)
        elif temp_candidate is not None:
            try:
                temp = TempCandidate.model_validate(temp_candidate)
            except PydanticValidationError as exc:
                raise validation_error_from_pydantic(exc, "Temporary candidate data is invalid")
            membership = CandidatePipelineMembership(
                candidate_id=ObjectId(),
                is_temp_candidate=True,
                temp_candidate=temp,
            )
        else:
            raise ValidationError(
                "Either candidateId or tempCandidate is required",
                {"fields": [{"field": "candidateId", "message": "required"}]},
            )

        now = datetime.utcnow()
        membership.added_to_pipeline_date = membership.last_updated = now
        membership.sourcing = SourcingRecord(entered_at=now, updated_at=now)
        entry.candidates.append(membership)
        await self._save(entry)
        logger.info("Added candidate %s to pipeline %s", membership.candidate_id, entry.id)
        return entry, membership

    async def remove_candidate_from_pipeline(self, pipeline_id, candidate_id) -> PipelineEntry:
        """Drop a membership added by mistake. Not a rejection: nothing is kept."""
        entry = await self._load(pipeline_id)
        membership = self._membership(entry, candidate_id)
        entry.candidates = [m for m in entry.candidates if m.candidate_id != membership.candidate_id]
        await self._save(entry)
        logger.info("Removed candidate %s from pipeline %s", membership.candidate_id, entry.id)
        return entry

    async def list_pipeline_candidates(self, pipeline_id) -> List[Dict]:
        """Every membership of the pipeline with its candidate profile or temp record."""
        entry = await self._load(pipeline_id)
        profiles = await self.candidate_store.get_candidates_by_ids(
            m.candidate_id for m in entry.candidates if not m.is_temp_candidate
        )
        return [membership_view(m, profiles.get(m.candidate_id)) for m in entry.candidates]

    async def update_temp_candidate(
        self,
        pipeline_id,
        temp_candidate_id,
        fields: Dict,
        expected_version: Optional[int] = None,
    ) -> Tuple[PipelineEntry, CandidatePipelineMembership]:
        """Edit a placeholder's name, email, phone or profile link before conversion."""

        def apply(membership: CandidatePipelineMembership):
            if not membership.is_temp_candidate or membership.temp_candidate is None:
                raise InvalidStateError(
                    "Candidate is not a temporary candidate",
                    {"candidateId": str(membership.candidate_id)},
                )
            data = membership.temp_candidate.model_dump(by_alias=True)
            for key, value in (fields or {}).items():
                if key in ("createdAt", "created_at"):
                    continue
                data[to_camel(key) if "_" in key else key] = value
            try:
                membership.temp_candidate = TempCandidate.model_validate(data)
            except PydanticValidationError as exc:
                raise validation_error_from_pydantic(exc, "Temporary candidate data is invalid")
            membership.last_updated = datetime.utcnow()
            membership.version += 1

        return await self._mutate(pipeline_id, temp_candidate_id, expected_version, apply)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def move_candidate_to_stage(
        self,
        pipeline_id,
        candidate_id,
        new_stage,
        stage_data: Optional[Dict] = None,
        notes: Optional[str] = None,
        interview_date=None,
        interview_meeting_link: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Tuple[PipelineEntry, CandidatePipelineMembership]:
        return await self._mutate(
            pipeline_id,
            candidate_id,
            expected_version,
            lambda m: stage_machine.move_candidate_to_stage(
                m,
                new_stage,
                stage_data=stage_data,
                notes=notes,
                interview_date=interview_date,
                interview_meeting_link=interview_meeting_link,
            ),
        )

    async def update_stage_fields(
        self,
        pipeline_id,
        candidate_id,
        stage_name,
        fields: Dict,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Tuple[PipelineEntry, CandidatePipelineMembership]:
        return await self._mutate(
            pipeline_id,
            candidate_id,
            expected_version,
            lambda m: stage_machine.update_stage_fields(m, stage_name, fields, notes=notes),
        )

    async def get_stage_fields(self, pipeline_id, candidate_id, stage_name) -> StageRecord:
        entry = await self._load(pipeline_id)
        return stage_machine.get_stage_fields(self._membership(entry, candidate_id), stage_name)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def update_candidate_status(
        self,
        pipeline_id,
        candidate_id,
        status,
        stage,
        notes: Optional[str] = None,
        disqualification: Optional[Dict] = None,
        idempotency_key: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Tuple[PipelineEntry, CandidatePipelineMembership]:
        return await self._mutate(
            pipeline_id,
            candidate_id,
            expected_version,
            lambda m: status_tracker.update_candidate_status(
                m,
                status,
                stage,
                notes=notes,
                disqualification=disqualification,
                idempotency_key=idempotency_key,
            ),
        )

    async def get_candidate_summary(self, pipeline_id) -> Dict:
        return status_tracker.candidate_summary(await self._load(pipeline_id))

    async def get_overall_candidate_summary(self, filters: Optional[Dict] = None) -> Dict:
        docs = await self.db.pipelines.find(self._filter_query(filters), {"statusBreakdown": 1}).to_list(length=None)
        return status_tracker.overall_candidate_summary(doc.get("statusBreakdown") for doc in docs)

    # ------------------------------------------------------------------
    # Temp candidate conversion
    # ------------------------------------------------------------------

    async def convert_temp_candidate_to_real(
        self,
        pipeline_id,
        temp_candidate_id,
        full_candidate_data: Dict,
        link_existing: bool = False,
    ) -> Tuple[PipelineEntry, CandidatePipelineMembership, CandidateModel]:
        """Promote a placeholder to a stored candidate and repoint the membership.

        Stage, status, stage records and histories are carried over untouched.
        When the email or phone already belongs to a stored candidate the call
        fails with ``Conflict`` unless ``link_existing`` asks to attach the
        membership to that candidate instead.
        """
        entry = await self._load(pipeline_id)
        membership = self._membership(entry, temp_candidate_id)
        if not membership.is_temp_candidate:
            raise InvalidStateError(
                "Candidate is not a temporary candidate",
                {"candidateId": str(membership.candidate_id)},
            )

        temp = membership.temp_candidate
        payload = {}
        if temp is not None:
            payload = {k: v for k, v in {"name": temp.name, "email": temp.email, "phone": temp.phone}.items() if v}
            if temp.profile_link:
                payload["linkedin"] = temp.profile_link
        payload.update(full_candidate_data or {})
        candidate = build_candidate(payload)
        candidate.converted_from_temp_id = membership.candidate_id

        existing = await self.candidate_store.find_by_identity(candidate.email, candidate.phone)
        created = False
        if existing is not None:
            if not link_existing:
                raise ConflictError(
                    "A candidate with the same email or phone already exists",
                    {"existingCandidateId": str(existing.id)},
                )
            target = existing
        else:
            target = await self.candidate_store.create_candidate(candidate)
            created = True

        try:
            if entry.find_membership(target.id) is not None:
                raise ConflictError(
                    "Candidate is already in this pipeline",
                    {"pipelineId": str(entry.id), "candidateId": str(target.id)},
                )
            temp_id = membership.candidate_id
            membership.candidate_id = target.id
            membership.is_temp_candidate = False
            membership.temp_candidate = None
            membership.last_updated = datetime.utcnow()
            membership.version += 1
            await self._save(entry)
        except Exception:
            if created:
                await self.candidate_store.delete_candidate(target.id)
            raise

        logger.info("Converted temp candidate %s to %s in pipeline %s", temp_id, target.id, entry.id)
        return entry, membership, target
