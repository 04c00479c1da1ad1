"""User profile and presence endpoints.

Endpoints:
    GET  /users/profile               - Caller's profile
    PUT  /users/profile               - Update name, email or password
    POST /users/upload-profile-image  - Replace the profile image (multipart ``profileImage``)
    POST /users/online                - Mark the caller online
    POST /users/offline               - Mark the caller offline
    GET  /users/status/{userId}       - Presence of any user
    GET  /users/contact/{contactId}   - Profile of a mutual contact
"""
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, File, Request, UploadFile

from together.auth.dependencies import get_current_user
from together.auth.service import get_auth_service
from together.auth.validation import email_error, password_error
from together.chat.runtime import get_runtime
from together.errors import BadRequest, Forbidden, NotFound
from together.files.router import get_download_url, store_upload

from .schemas import OnlineRequest, ProfileUpdate, User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


def _profile(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "profileImageUrl": user.profileImageUrl,
        "joinDate": user.createdAt,
    }


@router.get("/profile")
async def get_profile(user: User = Depends(get_current_user)) -> User:
    return user


@router.put("/profile")
async def update_profile(body: ProfileUpdate, user: User = Depends(get_current_user)) -> dict:
    auth = get_auth_service()
    password_hash = None

    if body.email and body.email.lower() != user.email:
        problem = email_error(body.email)
        if problem:
            raise BadRequest(problem)
        if auth.users.get_by_email(body.email):
            raise BadRequest("Email is already in use")
    if body.password:
        problem = password_error(body.password)
        if problem:
            raise BadRequest(problem)
        password_hash = auth.hash_password(body.password)

    updated = auth.users.update_profile(
        user.id, name=body.name, email=body.email, password_hash=password_hash
    )
    logger.info("PROFILE_UPDATE user_id=%s", user.id)
    return _profile(updated)


@router.post("/upload-profile-image")
async def upload_profile_image(
    request: Request,
    profileImage: UploadFile = File(...),
    user: User = Depends(get_current_user),
) -> dict:
    metadata = await store_upload(user.id, user.id, profileImage)
    image_url = get_download_url(request, metadata.id)
    get_auth_service().users.update_profile(user.id, profile_image_url=image_url)
    return {
        "success": True,
        "profileImageUrl": image_url,
        "message": "Profile image uploaded successfully",
    }


@router.post("/online")
async def mark_online(
    body: Optional[OnlineRequest] = Body(default=None),
    user: User = Depends(get_current_user),
) -> dict:
    status = get_runtime().presence.set_explicit_status(
        user.id, True, handle=body.socketId if body else None
    )
    return {
        "success": True,
        "message": "User marked as online",
        "data": {"isOnline": status.isOnline, "lastOnline": status.lastOnline},
    }


@router.post("/offline")
async def mark_offline(user: User = Depends(get_current_user)) -> dict:
    status = get_runtime().presence.set_explicit_status(user.id, False)
    return {
        "success": True,
        "message": "User marked as offline",
        "data": {"isOnline": status.isOnline, "lastOnline": status.lastOnline},
    }


@router.get("/status/{user_id}")
async def get_status(user_id: str, user: User = Depends(get_current_user)) -> dict:
    status = get_runtime().presence.query_status(user_id)
    return {"success": True, "data": status}


@router.get("/contact/{contact_id}")
async def get_contact(contact_id: str, user: User = Depends(get_current_user)) -> dict:
    runtime = get_runtime()
    contact = runtime.users.get_user(contact_id)
    if contact is None:
        raise NotFound("Contact not found")
    if not runtime.users.is_contact(user.id, contact_id):
        raise Forbidden("You don't have permission to view this contact")

    data = {**_profile(contact), "isOnline": False}
    if runtime.directory.is_connected(contact_id):
        data["isOnline"] = True
    elif contact.lastOnline:
        data["lastOnline"] = contact.lastOnline
    return {"success": True, "data": data}
