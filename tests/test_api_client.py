import asyncio
import json

import httpx
import pytest
from httpx import ASGITransport

from recruiter_pipeline.client.api_client import PipelineApiClient
from recruiter_pipeline.client.session import AuthSession
from recruiter_pipeline.database import get_db
from recruiter_pipeline.errors import (
    ConflictError,
    InvalidTransitionError,
    NetworkError,
    NotFoundError,
    PipelineError,
    ServerError,
)
from recruiter_pipeline.main import app


BASE_URL = "http://api.test"


class FakeBackend:
    """Accepts only the current token and hands out a new one on refresh."""

    def __init__(self, token="fresh-token"):
        self.token = token
        self.refresh_calls = 0
        self.seen_tokens = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/v1/auth/refresh":
            self.refresh_calls += 1
            await asyncio.sleep(0.01)
            return httpx.Response(200, json={"success": True, "data": {"accessToken": self.token}})

        auth = request.headers.get("Authorization")
        self.seen_tokens.append(auth)
        if auth != f"Bearer {self.token}":
            return httpx.Response(401, json={"success": False, "message": "Token expired"})
        return httpx.Response(200, json={"success": True, "data": {"path": request.url.path}})


def make_client(handler, token="stale-token"):
    transport = httpx.MockTransport(handler)
    session = AuthSession(access_token=token, base_url=BASE_URL, transport=transport)
    return PipelineApiClient(session, transport=transport)


async def test_bearer_token_is_sent():
    backend = FakeBackend()
    client = make_client(backend, token="fresh-token")

    data = await client.get_pipeline_summary("abc")

    assert data == {"path": "/api/v1/pipeline/abc/summary"}
    assert backend.seen_tokens == ["Bearer fresh-token"]
    assert backend.refresh_calls == 0


async def test_401_refreshes_once_and_retries():
    backend = FakeBackend()
    client = make_client(backend)

    data = await client.get_pipeline_entry("abc")

    assert data == {"path": "/api/v1/pipeline/entry/abc"}
    assert backend.refresh_calls == 1
    assert backend.seen_tokens == ["Bearer stale-token", "Bearer fresh-token"]
    assert client.session.access_token == "fresh-token"


async def test_concurrent_401s_share_one_refresh():
    backend = FakeBackend()
    client = make_client(backend)

    results = await asyncio.gather(*(client.get_pipeline_summary(str(i)) for i in range(5)))

    assert len(results) == 5
    assert backend.refresh_calls == 1


async def test_concurrent_refresh_calls_are_single_flight():
    backend = FakeBackend()
    session = AuthSession(access_token="stale-token", base_url=BASE_URL, transport=httpx.MockTransport(backend))

    tokens = await asyncio.gather(*(session.refresh() for _ in range(4)))

    assert tokens == ["fresh-token"] * 4
    assert backend.refresh_calls == 1


async def test_failed_refresh_clears_token_and_raises():
    def handler(request):
        return httpx.Response(401, json={"success": False, "message": "Refresh token expired"})

    client = make_client(handler)

    with pytest.raises(PipelineError) as exc:
        await client.get_pipeline_entry("abc")

    assert exc.value.message == "Refresh token expired"
    assert client.session.access_token is None


async def test_error_code_maps_to_exception():
    def handler(request):
        return httpx.Response(409, json={
            "success": False,
            "message": "Candidate is already in this pipeline",
            "error": "CONFLICT",
            "details": {"candidateId": "c1"},
        })

    client = make_client(handler)

    with pytest.raises(ConflictError) as exc:
        await client.add_candidate_to_pipeline("p1", candidate_id="c1")
    assert exc.value.details == {"candidateId": "c1"}


async def test_status_code_is_used_without_error_code():
    client = make_client(lambda request: httpx.Response(404, text="not here"))
    with pytest.raises(NotFoundError):
        await client.get_candidate("c1")


async def test_server_failure_is_server_error():
    client = make_client(lambda request: httpx.Response(502, text="Bad gateway"))
    with pytest.raises(ServerError):
        await client.list_pipeline_entries()


async def test_transport_failure_is_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)

    with pytest.raises(NetworkError) as exc:
        await client.get_overall_summary()
    assert "connection refused" in exc.value.details["reason"]


async def test_request_bodies_use_api_field_names():
    captured = {}

    def handler(request):
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "data": None})

    client = make_client(handler)
    await client.update_candidate_status(
        "p1", "c1", "Rejected", "Client Screening",
        disqualification_reason="Budget Exceeded",
        idempotency_key="k1",
    )

    assert captured["path"] == "/api/v1/pipeline/p1/candidate/c1/status"
    assert captured["body"] == {
        "status": "Rejected",
        "stage": "Client Screening",
        "disqualificationReason": "Budget Exceeded",
        "idempotencyKey": "k1",
    }


async def test_client_against_application(db, job, candidate):
    app.dependency_overrides[get_db] = lambda: db
    try:
        transport = ASGITransport(app=app)
        client = PipelineApiClient(AuthSession(access_token="token", base_url=BASE_URL), transport=transport)

        pipeline = await client.create_pipeline(str(job["_id"]))
        await client.add_candidate_to_pipeline(pipeline["_id"], candidate_id=str(candidate.id))
        moved = await client.move_candidate_to_stage(
            pipeline["_id"], str(candidate.id), "Client Screening", stage_data={"clientRating": 4},
        )
        fields = await client.get_stage_fields(pipeline["_id"], str(candidate.id), "Client Screening")

        assert moved["candidate"]["currentStage"] == "Client Screening"
        assert fields["clientRating"] == 4

        with pytest.raises(InvalidTransitionError):
            await client.move_candidate_to_stage(pipeline["_id"], str(candidate.id), "Offer")
        with pytest.raises(ConflictError):
            await client.create_pipeline(str(job["_id"]))
    finally:
        app.dependency_overrides.clear()


async def test_requests_without_token_carry_no_authorization_header():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"success": True, "data": ["Budget Exceeded"]})

    client = make_client(handler, token=None)

    assert await client.get_disqualification_reasons() == ["Budget Exceeded"]
    assert seen["auth"] is None


async def test_temp_candidate_update_body():
    captured = {}

    def handler(request):
        captured["method"] = request.method
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "data": None})

    client = make_client(handler)
    await client.update_temp_candidate("p1", "t1", {"email": "omar@example.com"}, expected_version=2)

    assert captured == {
        "method": "PATCH",
        "path": "/api/v1/pipeline/p1/temp-candidate/t1",
        "body": {"email": "omar@example.com", "expectedVersion": 2},
    }


async def test_pipeline_candidates_through_client(db, job, candidate):
    app.dependency_overrides[get_db] = lambda: db
    try:
        client = PipelineApiClient(AuthSession(access_token="token", base_url=BASE_URL), transport=ASGITransport(app=app))

        pipeline = await client.create_pipeline(str(job["_id"]))
        added = await client.add_candidate_to_pipeline(pipeline["_id"], temp_candidate={"name": "Omar Haddad"})
        temp_id = added["candidate"]["candidateId"]
        await client.update_temp_candidate(pipeline["_id"], temp_id, {"phone": "+966500000009"})

        views = await client.list_pipeline_candidates(pipeline["_id"])
        reasons = await client.get_disqualification_reasons()

        assert views[0]["candidate"]["phone"] == "+966500000009"
        assert "Candidate Opted Out" in reasons
    finally:
        app.dependency_overrides.clear()
