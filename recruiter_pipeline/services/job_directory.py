"""Read access to job records."""
from typing import Dict, Iterable

from motor.motor_asyncio import AsyncIOMotorDatabase

from recruiter_pipeline.errors import NotFoundError
from recruiter_pipeline.models.base import parse_object_id
from recruiter_pipeline.models.job import JobModel


class JobDirectory:
    """Lookups against the ``jobs`` collection."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def get_job_by_id(self, job_id) -> JobModel:
        oid = parse_object_id(job_id, "Job")
        job = await self.db.jobs.find_one({"_id": oid})
        if not job:
            raise NotFoundError("Job not found", {"jobId": str(oid)})
        return JobModel(**job)

    async def get_jobs_by_ids(self, job_ids: Iterable) -> Dict:
        ids = list(job_ids)
        if not ids:
            return {}
        jobs = await self.db.jobs.find({"_id": {"$in": ids}}).to_list(length=len(ids))
        return {job["_id"]: JobModel(**job) for job in jobs}
