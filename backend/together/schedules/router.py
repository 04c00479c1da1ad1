"""Schedule router - the caller's daily schedule slots.

Endpoints:
    GET    /schedules[?date=YYYY-MM-DD]  - All slots, or one day's slots
    POST   /schedules                    - Add a slot
    PUT    /schedules/{id}               - Change a slot
    DELETE /schedules/{id}               - Remove a slot
"""
import datetime
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from together.auth.dependencies import get_current_user_id

from .schemas import ScheduleCreate, ScheduleUpdate
from .service import ScheduleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/schedules", tags=["schedules"])


def _service() -> ScheduleService:
    return ScheduleService.get_instance()


@router.get("")
async def list_schedules(
    date: Optional[datetime.date] = None,
    user_id: str = Depends(get_current_user_id),
) -> JSONResponse:
    schedules = _service().list_for_owner(user_id, on_date=date)
    return JSONResponse({"success": True, "count": len(schedules), "data": schedules})


@router.post("", status_code=201)
async def create_schedule(body: ScheduleCreate, user_id: str = Depends(get_current_user_id)) -> JSONResponse:
    schedule = _service().create(
        user_id, body.date, body.startTime, body.endTime, body.category, note=body.note
    )
    return JSONResponse({"success": True, "data": schedule}, status_code=201)


@router.put("/{schedule_id}")
async def update_schedule(
    schedule_id: str, body: ScheduleUpdate, user_id: str = Depends(get_current_user_id)
) -> JSONResponse:
    schedule = _service().update(schedule_id, user_id, body.model_dump(exclude_unset=True))
    return JSONResponse({"success": True, "data": schedule})


@router.delete("/{schedule_id}")
async def delete_schedule(schedule_id: str, user_id: str = Depends(get_current_user_id)) -> JSONResponse:
    _service().delete(schedule_id, user_id)
    return JSONResponse({"success": True, "message": "Schedule deleted successfully"})
