"""Contact discovery and connection requests.

Endpoints:
    GET  /connections/search?query=   - Find users by email substring
    POST /connections/request         - Ask another user to connect
    POST /connections/respond         - Accept or reject a pending request
    GET  /connections/requests        - Pending requests addressed to the caller
    GET  /connections/contacts        - The caller's mutual contacts

The counterpart's live connection is told about each request and answer.
"""
import logging

from fastapi import APIRouter, Depends, Query

from together.auth.dependencies import get_current_user
from together.chat.runtime import get_runtime
from together.config import get_config
from together.errors import BadRequest, NotFound, UserNotFound

from .schemas import ConnectionRequestCreate, ConnectionRequestResponse, User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/connections", tags=["connections"])

CONNECTION_REQUEST = "connectionRequest"
CONNECTION_ACCEPTED = "connectionAccepted"
CONNECTION_REJECTED = "connectionRejected"


@router.get("/search")
async def search_users(query: str = Query(""), user: User = Depends(get_current_user)) -> dict:
    min_length = get_config().chat.search_min_length
    if len(query.strip()) < min_length:
        raise BadRequest(f"Search query must be at least {min_length} characters")
    results = get_runtime().users.search_by_email(query.strip(), exclude_id=user.id)
    return {"success": True, "data": results}


@router.post("/request")
async def send_request(body: ConnectionRequestCreate, user: User = Depends(get_current_user)) -> dict:
    runtime = get_runtime()
    users = runtime.users
    if body.recipientId == user.id:
        raise BadRequest("You cannot connect with yourself")
    if not users.exists(body.recipientId):
        raise UserNotFound()
    if users.has_request(body.recipientId, user.id):
        raise BadRequest("Connection request already sent")
    if users.is_contact(body.recipientId, user.id):
        raise BadRequest("You are already connected with this user")

    users.add_request(body.recipientId, user.id)
    logger.info("CONNECTION_REQUEST from=%s to=%s", user.id, body.recipientId)
    await runtime.directory.broadcast_to_user(
        body.recipientId, CONNECTION_REQUEST, {"from": user.summary().model_dump()}
    )
    return {"success": True, "message": "Connection request sent successfully"}


@router.post("/respond")
async def respond_to_request(
    body: ConnectionRequestResponse, user: User = Depends(get_current_user)
) -> dict:
    runtime = get_runtime()
    users = runtime.users
    if not users.has_request(user.id, body.senderId):
        raise NotFound("Connection request not found")
    sender = users.get_user(body.senderId)
    if sender is None:
        raise NotFound("Sender not found")

    if body.action == "accept":
        users.add_contacts(user.id, sender.id)
        logger.info("CONNECTION_ACCEPTED user=%s sender=%s", user.id, sender.id)
        await runtime.directory.broadcast_to_user(
            sender.id, CONNECTION_ACCEPTED, {"user": user.summary().model_dump()}
        )
        return {
            "success": True,
            "message": "Connection request accepted",
            "contact": sender.summary(),
        }

    users.delete_request(user.id, sender.id)
    logger.info("CONNECTION_REJECTED user=%s sender=%s", user.id, sender.id)
    await runtime.directory.broadcast_to_user(sender.id, CONNECTION_REJECTED, {"userId": user.id})
    return {"success": True, "message": "Connection request rejected"}


@router.get("/requests")
async def list_requests(user: User = Depends(get_current_user)) -> dict:
    return {"success": True, "data": get_runtime().users.list_requests(user.id)}


@router.get("/contacts")
async def list_contacts(user: User = Depends(get_current_user)) -> dict:
    return {"success": True, "data": get_runtime().users.get_contacts(user.id)}
