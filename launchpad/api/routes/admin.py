import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from launchpad.api.deps import get_launchpad, require_admin
from launchpad.api.responses import envelope, error_envelope
from launchpad.api.schemas import TriggerAutomationRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(require_admin)])

MANUAL_CYCLE_TASK = 'manual-automation-cycle'
MANUAL_GRADUATION_TASK = 'manual-graduation-check'


def _start_background(launchpad, name: str, work, label: str):
    if launchpad.task_manager.is_task_running(name):
        return {"started": False, "message": f"{label} already running"}
    launchpad.task_manager.start_task(name, work)
    return {"started": True, "message": f"{label} started"}


@router.post("/automation/trigger")
async def trigger_automation(body: TriggerAutomationRequest, launchpad=Depends(get_launchpad)):
    job = await launchpad.scheduler.trigger(
        token_id=body.tokenId,
        token_mint=body.tokenMint,
        job_type=body.jobType,
        amount_lamports=body.amountLamports,
    )
    return envelope({"job": job.to_dict(), "message": f"{job.job_type} job {job.id} is {job.status}"})


@router.post("/automation/run-all")
async def run_all_automation(launchpad=Depends(get_launchpad)):
    return envelope(_start_background(
        launchpad, MANUAL_CYCLE_TASK, launchpad.scheduler.run_cycle, "Automation cycle"
    ))


@router.post("/graduations/check")
async def check_graduations(launchpad=Depends(get_launchpad)):
    return envelope(_start_background(
        launchpad, MANUAL_GRADUATION_TASK, launchpad.graduation_monitor.check_all, "Graduation check"
    ))


@router.get("/jobs/pending")
async def pending_jobs(limit: int = Query(50, ge=1, le=200), launchpad=Depends(get_launchpad)):
    jobs = await launchpad.scheduler.list_pending(limit)
    return envelope({"jobs": [job.to_dict() for job in jobs], "count": len(jobs)})


@router.get("/jobs/failed")
async def failed_jobs(limit: int = Query(50, ge=1, le=200), launchpad=Depends(get_launchpad)):
    jobs = await launchpad.scheduler.list_failed(limit)
    return envelope({"jobs": [job.to_dict() for job in jobs], "count": len(jobs)})


@router.post("/jobs/{job_id}/retry")
async def retry_job(job_id: int, launchpad=Depends(get_launchpad)):
    job = await launchpad.scheduler.retry(job_id)
    return envelope({"job": job.to_dict()})


@router.delete("/jobs/{job_id}")
async def cancel_job(job_id: int, launchpad=Depends(get_launchpad)):
    await launchpad.scheduler.cancel(job_id)
    return envelope({"cancelled": True, "jobId": job_id})


@router.get("/health")
async def health(launchpad=Depends(get_launchpad)):
    if not await launchpad.db.ping():
        return JSONResponse(status_code=503, content=error_envelope("Database unavailable"))

    counts = await launchpad.stats.health_counts()
    return envelope({
        "status": "healthy",
        "database": "connected",
        "counts": counts,
        "scheduler": launchpad.runner.status(),
        "lastRuns": {
            name: launchpad.task_manager.last_result(name)
            for name in (MANUAL_CYCLE_TASK, MANUAL_GRADUATION_TASK)
        },
    })
