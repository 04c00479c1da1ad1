"""Pydantic schemas for users, presence and contact management."""
import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


DEFAULT_PROFILE_IMAGE_URL = (
    "https://www.stagemilk.com/wp-content/uploads/2016/12/Monologues-for-men.png"
)

ConnectionAction = Literal["accept", "reject"]
ConnectionStatus = Literal["pending", "accepted", "rejected"]


class UserSummary(BaseModel):
    """Public identity of a user, used wherever a user reference is populated."""
    id: str
    name: str
    email: str
    profileImageUrl: Optional[str] = DEFAULT_PROFILE_IMAGE_URL


class User(UserSummary):
    """Full user record (without credentials).

    ``socketID`` is the user's current live-connection handle. It is only
    ever non-null while ``isOnline`` is true.
    """
    isOnline: bool = False
    lastOnline: Optional[datetime] = None
    socketID: Optional[str] = None
    contacts: List[str] = Field(default_factory=list)
    createdAt: datetime = Field(default_factory=datetime.utcnow)

    def summary(self) -> UserSummary:
        return UserSummary(
            id=self.id,
            name=self.name,
            email=self.email,
            profileImageUrl=self.profileImageUrl,
        )


class PresenceStatus(BaseModel):
    userId: str
    name: str
    isOnline: bool
    lastOnline: Optional[datetime] = None


class ConnectionRequest(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    sender: UserSummary
    status: ConnectionStatus = "pending"
    createdAt: datetime = Field(default_factory=datetime.utcnow)


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[str] = None
    password: Optional[str] = None


class OnlineRequest(BaseModel):
    socketId: Optional[str] = None


class ConnectionRequestCreate(BaseModel):
    recipientId: str = Field(..., min_length=1)


class ConnectionRequestResponse(BaseModel):
    senderId: str = Field(..., min_length=1)
    action: ConnectionAction
