"""
Scheduler admin endpoints: inspect jobs and trigger a run
"""
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.core.dependencies import require_admin_key
from app.core.rate_limit import limiter
from app.services.scheduler_service import scheduler_service

router = APIRouter(prefix="/scheduler", tags=["scheduler"], dependencies=[Depends(require_admin_key)])


@router.get("/jobs")
@limiter.limit("30/minute")
async def list_jobs(request: Request) -> List[Dict[str, Any]]:
    """List registered jobs with their next and last run"""
    return scheduler_service.get_scheduled_jobs()


@router.post("/jobs/{job_id}/run")
@limiter.limit("5/minute")
async def run_job(request: Request, job_id: str) -> Dict[str, Any]:
    """Run one job immediately"""
    try:
        return await scheduler_service.run_job_now(job_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
