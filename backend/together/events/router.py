"""Event router - CRUD endpoints for the caller's calendar events."""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from together.auth.dependencies import get_current_user_id

from .schemas import EventCreate, EventUpdate
from .service import EventService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


def _service() -> EventService:
    return EventService.get_instance()


@router.get("")
async def list_events(user_id: str = Depends(get_current_user_id)) -> JSONResponse:
    """List the caller's events, earliest start first."""
    events = _service().list_for_owner(user_id)
    return JSONResponse({"success": True, "count": len(events), "data": events})


@router.post("", status_code=201)
async def create_event(body: EventCreate, user_id: str = Depends(get_current_user_id)) -> JSONResponse:
    event = _service().create(
        user_id,
        body.title,
        body.startDate,
        end_date=body.endDate,
        description=body.description,
        location=body.location,
    )
    return JSONResponse({"success": True, "data": event}, status_code=201)


@router.get("/{event_id}")
async def get_event(event_id: str, user_id: str = Depends(get_current_user_id)) -> JSONResponse:
    return JSONResponse({"success": True, "data": _service().get(event_id, user_id)})


@router.put("/{event_id}")
async def update_event(event_id: str, body: EventUpdate, user_id: str = Depends(get_current_user_id)) -> JSONResponse:
    event = _service().update(event_id, user_id, body.model_dump(exclude_unset=True))
    return JSONResponse({"success": True, "data": event})


@router.delete("/{event_id}")
async def delete_event(event_id: str, user_id: str = Depends(get_current_user_id)) -> JSONResponse:
    _service().delete(event_id, user_id)
    return JSONResponse({"success": True, "data": {}})
