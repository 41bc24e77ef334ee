from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import httpx
from fastapi import APIRouter, FastAPI, Header, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import get_settings
from .errors import OrchestrationError
from .logging_setup import logger, setup_logging
from .metrics import start_metrics_server_if_enabled
from .orchestrator import JobOrchestrator

router = APIRouter()

# The orchestrator is created by the application lifespan or passed in by the caller.
_bound_orchestrator: Optional[JobOrchestrator] = None


def bind_orchestrator(o: Optional[JobOrchestrator]) -> None:
    global _bound_orchestrator
    _bound_orchestrator = o


def _orchestrator() -> JobOrchestrator:
    if _bound_orchestrator is None:
        raise HTTPException(status_code=500, detail="orchestrator not bound")
    return _bound_orchestrator


class JobRequest(BaseModel):
    user_id: str
    message: str
    channel_target: str
    tool_results: List[Any] = Field(default_factory=list)


@router.post("/jobs")
async def create_job(req: JobRequest):
    orch = _orchestrator()
    try:
        job_id = await orch.handle_request(req.user_id, req.message, req.channel_target, req.tool_results)
    except OrchestrationError as e:
        logger.error("job request from %s failed: %s", req.user_id, e)
        raise HTTPException(status_code=502, detail=str(e))
    if job_id is None:
        return {"job_id": None, "complex": False}
    return JSONResponse(status_code=202, content={"job_id": job_id, "complex": True})


@router.get("/jobs")
async def list_jobs() -> Dict[str, Any]:
    jobs = _orchestrator().active_jobs()
    return {"count": len(jobs), "jobs": jobs}


@router.delete("/jobs/{job_id}")
async def cancel_job(job_id: str, x_admin_token: str = Header(None, alias="X-Admin-Token")):
    orch = _orchestrator()
    admin_token = get_settings().ADMIN_TOKEN
    if admin_token and x_admin_token != admin_token:
        raise HTTPException(status_code=401, detail="unauthorized")
    if not orch.cancel(job_id):
        raise HTTPException(status_code=404, detail=f"job {job_id} is not being tracked")
    return {"cancelled": True, "job_id": job_id}


def create_app(orchestrator: Optional[JobOrchestrator] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if orchestrator is not None:
            bind_orchestrator(orchestrator)
            yield
            return
        setup_logging()
        start_metrics_server_if_enabled()
        async with httpx.AsyncClient() as http:
            owned = JobOrchestrator.from_settings(http)
            bind_orchestrator(owned)
            try:
                yield
            finally:
                await owned.shutdown()
                bind_orchestrator(None)

    app = FastAPI(title="Autonomous Job Orchestrator", lifespan=lifespan)
    app.include_router(router)
    if orchestrator is not None:
        bind_orchestrator(orchestrator)
    return app


# convenience for running locally
if __name__ == '__main__':
    import uvicorn
    uvicorn.run(create_app(), host='0.0.0.0', port=8001)
