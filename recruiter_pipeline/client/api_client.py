"""HTTP client for the pipeline API."""
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from recruiter_pipeline.client.session import AuthSession
from recruiter_pipeline.errors import NetworkError, error_from_response


logger = logging.getLogger(__name__)

PIPELINE_PREFIX = "/api/v1/pipeline"
CANDIDATES_PREFIX = "/api/v1/candidates"


def _compact(values: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


class PipelineApiClient:
    """Calls the pipeline endpoints with the session's bearer token.

    A 401 triggers one token refresh and one retry. Non-2xx responses are
    raised as the matching ``PipelineError`` subclass; transport failures as
    ``NetworkError``. Successful calls return the ``data`` of the envelope.
    """

    def __init__(
        self,
        session: AuthSession,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session = session
        self.base_url = base_url or session.base_url
        self.timeout = timeout or session.timeout
        self.transport = transport

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = {"Content-Type": "application/json", **self.session.headers}
        async with httpx.AsyncClient(base_url=self.base_url, transport=self.transport, timeout=self.timeout) as client:
            try:
                return await client.request(method, path, headers=headers, **kwargs)
            except httpx.TransportError as exc:
                logger.warning("%s %s failed: %s", method, path, exc)
                raise NetworkError(f"Could not reach {self.base_url}", {"reason": str(exc)})

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        kwargs = {}
        if json is not None:
            kwargs["json"] = json
        if params:
            kwargs["params"] = _compact(params)

        token = self.session.access_token
        response = await self._send(method, path, **kwargs)
        if response.status_code == 401:
            await self.session.refresh(stale_token=token)
            response = await self._send(method, path, **kwargs)
        return self._unwrap(response)

    @staticmethod
    def _unwrap(response: httpx.Response) -> Any:
        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not response.is_success:
            raise error_from_response(response.status_code, payload)
        if isinstance(payload, dict):
            if payload.get("success") is False:
                raise error_from_response(response.status_code, payload)
            return payload.get("data")
        return payload

    # Pipelines

    async def create_pipeline(self, job_id: str, recruiter_id: Optional[str] = None, priority: Optional[str] = None, notes: Optional[str] = None):
        body = _compact({"jobId": job_id, "recruiterId": recruiter_id, "priority": priority, "notes": notes})
        return await self._request("POST", f"{PIPELINE_PREFIX}/", json=body)

    async def add_single_job(self, job_id: str, recruiter_id: Optional[str] = None):
        return await self._request("POST", f"{PIPELINE_PREFIX}/add-single", json=_compact({"jobId": job_id, "recruiterId": recruiter_id}))

    async def add_multiple_jobs(self, job_ids: List[str], recruiter_id: Optional[str] = None):
        return await self._request("POST", f"{PIPELINE_PREFIX}/add-multiple", json=_compact({"jobIds": job_ids, "recruiterId": recruiter_id}))

    async def get_overall_summary(self, **filters):
        return await self._request("GET", f"{PIPELINE_PREFIX}/summary", params=filters)

    async def get_pipeline_entry(self, pipeline_id: str):
        return await self._request("GET", f"{PIPELINE_PREFIX}/entry/{pipeline_id}")

    async def list_pipeline_entries(
        self,
        page: int = 1,
        limit: Optional[int] = None,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        recruiter_id: Optional[str] = None,
    ):
        params = {"page": page, "limit": limit, "status": status, "priority": priority, "recruiterId": recruiter_id}
        return await self._request("GET", f"{PIPELINE_PREFIX}/", params=params)

    async def update_pipeline(self, pipeline_id: str, status: Optional[str] = None, priority: Optional[str] = None, notes: Optional[str] = None):
        body = _compact({"status": status, "priority": priority, "notes": notes})
        return await self._request("PATCH", f"{PIPELINE_PREFIX}/{pipeline_id}", json=body)

    async def delete_pipeline(self, pipeline_id: str):
        return await self._request("DELETE", f"{PIPELINE_PREFIX}/{pipeline_id}")

    async def get_pipeline_summary(self, pipeline_id: str):
        return await self._request("GET", f"{PIPELINE_PREFIX}/{pipeline_id}/summary")

    async def get_disqualification_reasons(self):
        return await self._request("GET", f"{PIPELINE_PREFIX}/disqualification-reasons")

    # Candidates in a pipeline

    async def add_candidate_to_pipeline(
        self,
        pipeline_id: str,
        candidate_id: Optional[str] = None,
        temp_candidate: Optional[Dict[str, Any]] = None,
    ):
        body = _compact({"candidateId": candidate_id, "tempCandidate": temp_candidate})
        return await self._request("POST", f"{PIPELINE_PREFIX}/{pipeline_id}/add-candidate", json=body)

    async def remove_candidate_from_pipeline(self, pipeline_id: str, candidate_id: str):
        return await self._request("DELETE", f"{PIPELINE_PREFIX}/{pipeline_id}/candidate/{candidate_id}")

    async def list_pipeline_candidates(self, pipeline_id: str):
        return await self._request("GET", f"{PIPELINE_PREFIX}/{pipeline_id}/candidates")

    async def update_temp_candidate(
        self,
        pipeline_id: str,
        temp_candidate_id: str,
        fields: Dict[str, Any],
        expected_version: Optional[int] = None,
    ):
        body = dict(fields)
        if expected_version is not None:
            body["expectedVersion"] = expected_version
        return await self._request("PATCH", f"{PIPELINE_PREFIX}/{pipeline_id}/temp-candidate/{temp_candidate_id}", json=body)

    async def move_candidate_to_stage(
        self,
        pipeline_id: str,
        candidate_id: str,
        new_stage: str,
        stage_data: Optional[Dict[str, Any]] = None,
        notes: Optional[str] = None,
        interview_date: Optional[str] = None,
        interview_meeting_link: Optional[str] = None,
        expected_version: Optional[int] = None,
    ):
        body = _compact({
            "newStage": new_stage,
            "stageData": stage_data,
            "notes": notes,
            "interviewDate": interview_date,
            "interviewMeetingLink": interview_meeting_link,
            "expectedVersion": expected_version,
        })
        return await self._request("PATCH", f"{PIPELINE_PREFIX}/{pipeline_id}/candidate/{candidate_id}/stage", json=body)

    async def get_stage_fields(self, pipeline_id: str, candidate_id: str, stage_name: str):
        path = f"{PIPELINE_PREFIX}/{pipeline_id}/candidate/{candidate_id}/stage/{quote(stage_name)}/fields"
        return await self._request("GET", path)

    async def update_stage_fields(
        self,
        pipeline_id: str,
        candidate_id: str,
        stage_name: str,
        fields: Dict[str, Any],
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
    ):
        path = f"{PIPELINE_PREFIX}/{pipeline_id}/candidate/{candidate_id}/stage/{quote(stage_name)}/fields"
        body = _compact({"fields": fields, "notes": notes, "expectedVersion": expected_version})
        return await self._request("PATCH", path, json=body)

    async def update_candidate_status(
        self,
        pipeline_id: str,
        candidate_id: str,
        status: str,
        stage: str,
        notes: Optional[str] = None,
        disqualification_stage: Optional[str] = None,
        disqualification_reason: Optional[str] = None,
        disqualification_feedback: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        expected_version: Optional[int] = None,
    ):
        body = _compact({
            "status": status,
            "stage": stage,
            "notes": notes,
            "disqualificationStage": disqualification_stage,
            "disqualificationReason": disqualification_reason,
            "disqualificationFeedback": disqualification_feedback,
            "idempotencyKey": idempotency_key,
            "expectedVersion": expected_version,
        })
        return await self._request("PATCH", f"{PIPELINE_PREFIX}/{pipeline_id}/candidate/{candidate_id}/status", json=body)

    async def convert_temp_candidate_to_real(
        self,
        pipeline_id: str,
        temp_candidate_id: str,
        candidate_data: Dict[str, Any],
        link_existing: bool = False,
    ):
        body = dict(candidate_data)
        if link_existing:
            body["linkExisting"] = True
        path = f"{PIPELINE_PREFIX}/{pipeline_id}/candidate/{temp_candidate_id}/convert-to-real"
        return await self._request("POST", path, json=body)

    # Candidate store

    async def create_candidate(self, candidate_data: Dict[str, Any]):
        return await self._request("POST", f"{CANDIDATES_PREFIX}/", json=candidate_data)

    async def get_candidate(self, candidate_id: str):
        return await self._request("GET", f"{CANDIDATES_PREFIX}/{candidate_id}")

    async def list_candidates(self, skip: int = 0, limit: int = 100):
        return await self._request("GET", f"{CANDIDATES_PREFIX}/", params={"skip": skip, "limit": limit})
