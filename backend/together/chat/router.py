"""Conversation HTTP endpoints.

Endpoints:
    - GET    /conversations                      - List the caller's conversations
    - GET    /conversations/{id}                 - One populated conversation
    - GET    /conversations/{id}/messages        - Page of messages before a cursor
    - POST   /conversations/group                - Create a group conversation
    - POST   /conversations/add-member           - Admin adds a member
    - POST   /conversations/remove-member        - Admin removes a member
    - POST   /conversations/leave-group          - Non-admin member leaves
    - POST   /conversations/update-group-image   - Admin replaces the group image
    - DELETE /conversations/{id}                 - Admin deletes the group

Every mutation is also pushed to the affected participants' live connections.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from together.auth.dependencies import get_current_user_id
from together.config import get_config
from together.files.router import get_download_url, store_upload

from .runtime import get_runtime
from .schemas import GroupCreate, LeaveGroupRequest, MemberChange

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["conversations"])


@router.get("")
async def list_conversations(user_id: str = Depends(get_current_user_id)) -> list:
    """Conversations sorted by most recent activity."""
    return get_runtime().queries.list_for_user(user_id)


@router.post("/group", status_code=201)
async def create_group(body: GroupCreate, user_id: str = Depends(get_current_user_id)) -> JSONResponse:
    group = await get_runtime().groups.create_group(user_id, body.participantIds, body.groupName)
    return JSONResponse(
        {"success": True, "data": jsonable_encoder(group), "message": "Group created successfully"},
        status_code=201,
    )


@router.post("/add-member")
async def add_member(body: MemberChange, user_id: str = Depends(get_current_user_id)) -> dict:
    conversation = await get_runtime().groups.add_member(user_id, body.conversationId, body.userId)
    return {"success": True, "data": conversation, "message": "Member added to group successfully"}


@router.post("/remove-member")
async def remove_member(body: MemberChange, user_id: str = Depends(get_current_user_id)) -> dict:
    conversation = await get_runtime().groups.remove_member(user_id, body.conversationId, body.userId)
    return {"success": True, "data": conversation, "message": "Member removed from group successfully"}


@router.post("/leave-group")
async def leave_group(body: LeaveGroupRequest, user_id: str = Depends(get_current_user_id)) -> dict:
    await get_runtime().groups.leave_group(user_id, body.conversationId)
    return {"success": True, "message": "You have left the group successfully"}


@router.post("/update-group-image")
async def update_group_image(
    request: Request,
    conversationId: str = Form(...),
    groupImage: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
) -> dict:
    groups = get_runtime().groups
    groups.require_admin(conversationId, user_id, "update group image")

    metadata = await store_upload(conversationId, user_id, groupImage)
    image_url = get_download_url(request, metadata.id)
    conversation = await groups.update_group_image(user_id, conversationId, image_url)
    logger.info("[Groups] Group %s image set to %s", conversationId, metadata.id)
    return {
        "success": True,
        "groupImageUrl": image_url,
        "conversation": conversation,
        "message": "Group image updated successfully",
    }


@router.get("/{conversation_id}")
async def get_conversation(conversation_id: str, user_id: str = Depends(get_current_user_id)) -> dict:
    runtime = get_runtime()
    conversation = runtime.queries.get_for_user(conversation_id, user_id)
    return runtime.queries.populate(conversation)


@router.get("/{conversation_id}/messages")
async def get_conversation_messages(
    conversation_id: str,
    limit: Optional[int] = Query(None, ge=1),
    beforeMessageId: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
) -> dict:
    """Page of messages immediately preceding ``beforeMessageId``, oldest first."""
    chat = get_config().chat
    page_size = min(limit or chat.default_page_size, chat.max_page_size)
    messages = get_runtime().queries.messages_page(conversation_id, user_id, page_size, beforeMessageId)
    return {"success": True, "messages": messages, "conversationId": conversation_id}


@router.delete("/{conversation_id}")
async def delete_group(conversation_id: str, user_id: str = Depends(get_current_user_id)) -> dict:
    await get_runtime().groups.delete_group(user_id, conversation_id)
    return {"success": True, "message": "Group deleted successfully"}
