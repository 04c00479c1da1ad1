"""Todo router - CRUD endpoints for the caller's todo lists."""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from together.auth.dependencies import get_current_user_id

from .schemas import TodoCreate, TodoItemToggle, TodoUpdate
from .service import TODOService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/todos", tags=["todos"])


def _service() -> TODOService:
    return TODOService.get_instance()


@router.get("")
async def list_todos(user_id: str = Depends(get_current_user_id)) -> JSONResponse:
    """List the caller's todo lists, newest first."""
    todos = _service().list_for_owner(user_id)
    return JSONResponse({"success": True, "count": len(todos), "data": todos})


@router.post("", status_code=201)
async def create_todo(body: TodoCreate, user_id: str = Depends(get_current_user_id)) -> JSONResponse:
    """Create a todo list with its items (201 Created)."""
    todo = _service().create(user_id, body.title, [i.model_dump() for i in body.items])
    logger.info("[todos] Created %s for %s: %s", todo["id"], user_id, todo["title"])
    return JSONResponse({"success": True, "data": todo}, status_code=201)


@router.get("/{todo_id}")
async def get_todo(todo_id: str, user_id: str = Depends(get_current_user_id)) -> JSONResponse:
    return JSONResponse({"success": True, "data": _service().get(todo_id, user_id)})


@router.put("/{todo_id}")
async def update_todo(todo_id: str, body: TodoUpdate, user_id: str = Depends(get_current_user_id)) -> JSONResponse:
    items = [i.model_dump() for i in body.items] if body.items is not None else None
    todo = _service().update(todo_id, user_id, title=body.title, items=items)
    return JSONResponse({"success": True, "data": todo})


@router.put("/{todo_id}/items/{item_id}")
async def update_todo_item(
    todo_id: str,
    item_id: str,
    body: TodoItemToggle,
    user_id: str = Depends(get_current_user_id),
) -> JSONResponse:
    """Mark one item (in)complete and recompute the list's ``completed`` flag."""
    todo = _service().set_item_completed(todo_id, user_id, item_id, body.completed)
    logger.info("[todos] Item %s of %s completed=%s", item_id, todo_id, body.completed)
    return JSONResponse({"success": True, "data": todo})


@router.delete("/{todo_id}")
async def delete_todo(todo_id: str, user_id: str = Depends(get_current_user_id)) -> JSONResponse:
    _service().delete(todo_id, user_id)
    return JSONResponse({"success": True, "data": {}})
