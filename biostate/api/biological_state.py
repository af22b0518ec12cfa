from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from biostate.api.deps import get_simulator
from biostate.api.schemas import (
    BiologicalStateResponse,
    TimelinePointResponse,
    TimingSafetyResponse,
    biological_state_response,
    timeline_response,
    zone_response,
)
from biostate.engine.biological_state import BiologicalStateSimulator

router = APIRouter()


@router.get("/{user_id}", response_model=BiologicalStateResponse)
async def get_biological_state(
    user_id: str,
    dismissed: Optional[List[str]] = Query(default=None),
    simulator: BiologicalStateSimulator = Depends(get_simulator)
):
    """
    Active compounds, exclusion zones and optimizations for the last 24 hours.

    Pass ?dismissed=<suggestionKey> (repeatable) to hide suggestions the user
    already dismissed.
    """
    state = await simulator.get_biological_state(user_id, dismissed_keys=dismissed)
    return biological_state_response(state)


@router.get("/{user_id}/timeline", response_model=List[TimelinePointResponse])
async def get_timeline(
    user_id: str,
    interval_minutes: int = Query(default=15, ge=1, le=240),
    window_hours: int = Query(default=24, ge=1, le=72),
    simulator: BiologicalStateSimulator = Depends(get_simulator)
):
    points = await simulator.get_timeline(
        user_id,
        interval_minutes=interval_minutes,
        window_hours=window_hours,
    )
    return timeline_response(points)


@router.get("/{user_id}/timing-safety/{supplement_id}", response_model=TimingSafetyResponse)
async def check_timing_safety(
    user_id: str,
    supplement_id: str,
    simulator: BiologicalStateSimulator = Depends(get_simulator)
):
    """Whether the supplement can be taken now, and the zone blocking it if not."""
    zone = await simulator.check_timing_safety(user_id, supplement_id)
    return TimingSafetyResponse(
        supplement_id=supplement_id,
        safe=zone is None,
        blocking_zone=zone_response(zone) if zone else None,
    )
