"""
Poll Router - run a scheduler tick on demand.

- POST /poll?force=true → fetch every provider in use and evaluate all switches
"""

from fastapi import APIRouter, Depends, Query

from calswitch.deps import get_scheduler, require_api_token
from calswitch.schemas.switch import TickOut
from calswitch.services.scheduler import PollScheduler


router = APIRouter(tags=["poll"], dependencies=[Depends(require_api_token)])


@router.post("/poll", response_model=TickOut)
async def poll(
    force: bool = Query(False, description="Ignore the fetch interval"),
    scheduler: PollScheduler = Depends(get_scheduler),
):
    report = await scheduler.tick(force=force)
    return TickOut(
        fetched=report.fetched,
        reused=report.reused,
        provider_errors=report.provider_errors,
        evaluated=report.evaluated,
        failed=report.failed,
    )
