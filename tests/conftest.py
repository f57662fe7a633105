import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from recruiter_pipeline.database import get_db
from recruiter_pipeline.main import app
from recruiter_pipeline.services.candidate_store import CandidateStore, build_candidate
from recruiter_pipeline.services.pipeline_service import PipelineService


def make_job(title="Backend Engineer", client_name="Acme Corp"):
    return {
        "_id": ObjectId(),
        "jobTitle": title,
        "client": {"_id": ObjectId(), "name": client_name, "industry": "Software", "location": "Riyadh"},
        "location": "Riyadh",
        "stage": "Open",
        "jobType": "Full-time",
        "numberOfPositions": 2,
    }


@pytest.fixture
def db():
    return AsyncMongoMockClient()["recruiter_pipeline_test"]


@pytest.fixture
def service(db):
    return PipelineService(db)


@pytest.fixture
def candidate_store(db):
    return CandidateStore(db)


@pytest.fixture
async def job(db):
    doc = make_job()
    await db.jobs.insert_one(doc)
    return doc


@pytest.fixture
async def other_jobs(db):
    docs = [make_job("Data Analyst", "Globex"), make_job("QA Lead", "Initech")]
    await db.jobs.insert_many(docs)
    return docs


@pytest.fixture
async def candidate(candidate_store):
    return await candidate_store.create_candidate(build_candidate({
        "name": "Sara Ali",
        "email": "Sara.Ali@example.com",
        "phone": "+966500000001",
        "currentJobTitle": "Software Engineer",
    }))


@pytest.fixture
async def pipeline(service, job):
    return await service.create_pipeline(str(job["_id"]))


@pytest.fixture
async def client(db):
    app.dependency_overrides[get_db] = lambda: db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()
