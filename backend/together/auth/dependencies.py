"""FastAPI dependencies resolving the authenticated caller."""
from typing import Optional

from fastapi import Header

from together.users.schemas import User

from .service import extract_token, get_auth_service


def get_current_user(authorization: Optional[str] = Header(default=None)) -> User:
    """FastAPI dependency returning the authenticated user record."""
    return get_auth_service().authenticate(extract_token(authorization))


def get_current_user_id(authorization: Optional[str] = Header(default=None)) -> str:
    """FastAPI dependency returning the authenticated user's id."""
    return get_current_user(authorization).id
