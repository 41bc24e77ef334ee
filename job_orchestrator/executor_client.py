import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from .errors import ExecutorServiceError
from .metrics import jobs_submitted_total
from .models import JobPlan, JobResults, JobStatusSnapshot

logger = logging.getLogger(__name__)


class ExecutorClient:
    """Protocol adapter for the remote executor service (the harness).

    No interpretation happens here: payloads are decoded into models and
    non-success responses become ExecutorServiceError with the body attached.
    """

    def __init__(self, http: httpx.AsyncClient, base_url: str, timeout: float = 30.0):
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def submit(self, user_id: str, plan: JobPlan) -> str:
        body = {
            "userId": user_id,
            "description": plan.description,
            "plan": [step.model_dump() for step in plan.steps],
        }
        data = await self._request("POST", "/jobs/execute", "create job", json=body)
        job_id = data.get("jobId") if isinstance(data, dict) else None
        if not isinstance(job_id, str) or not job_id:
            raise ExecutorServiceError("No jobId in response", body=str(data))
        jobs_submitted_total.inc()
        logger.info("submitted job %s for user %s (%d steps)", job_id, user_id, len(plan.steps))
        return job_id

    async def status(self, job_id: str) -> JobStatusSnapshot:
        data = await self._request("GET", f"/autonomous-jobs/{job_id}/status", "poll status")
        try:
            return JobStatusSnapshot.model_validate(data if isinstance(data, dict) else {})
        except ValidationError as e:
            raise ExecutorServiceError(f"Invalid status payload: {e}", body=str(data)) from e

    async def results(self, job_id: str) -> JobResults:
        data = await self._request("GET", f"/autonomous-jobs/{job_id}/results", "get results")
        try:
            return JobResults.model_validate(data if isinstance(data, dict) else {})
        except ValidationError as e:
            raise ExecutorServiceError(f"Invalid results payload: {e}", body=str(data)) from e

    async def _request(self, method: str, path: str, what: str, json: Optional[Any] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = await self.http.request(method, url, json=json, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise ExecutorServiceError(f"Failed to {what}: timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise ExecutorServiceError(f"Failed to {what}: {e}") from e
        if not resp.is_success:
            raise ExecutorServiceError(f"Failed to {what}: {resp.text}", status_code=resp.status_code, body=resp.text)
        try:
            return resp.json()
        except ValueError as e:
            raise ExecutorServiceError(f"Failed to {what}: response is not JSON", status_code=resp.status_code, body=resp.text) from e
