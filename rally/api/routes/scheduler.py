"""Scheduler routes - on-demand trigger for the scheduling poller."""

from fastapi import APIRouter

from rally.api.deps import Poller
from rally.schemas.scheduler import TickFailure, TickResponse

router = APIRouter()


@router.post("/tick", response_model=TickResponse)
async def run_tick(poller: Poller):
    """Run one scheduling pass now."""
    report = await poller.tick()
    return TickResponse(
        ran_at=report.ran_at,
        initiated=report.initiated,
        missed=report.missed,
        failed=[TickFailure(wakeup_call_id=call_id, error=error) for call_id, error in report.failed],
    )
