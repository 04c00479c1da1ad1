"""Auth router for email/password registration and login.

Endpoints:
    POST /auth/register - Create an account and return a bearer token
    POST /auth/login    - Exchange credentials for a bearer token
"""
import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .service import get_auth_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


@router.post("/register", status_code=201)
async def register(request: RegisterRequest) -> JSONResponse:
    """Create a user account.

    Returns:
        201 with ``{success, token, user}``; 400 on invalid input or a taken email.
    """
    token, user = get_auth_service().register(request.name, request.email, request.password)
    return JSONResponse(
        {
            "success": True,
            "token": token,
            "user": {"id": user.id, "name": user.name, "email": user.email},
        },
        status_code=201,
    )


@router.post("/login")
async def login(request: LoginRequest) -> dict:
    """Log in with email and password.

    Returns:
        ``{success, token, user}``; 400 "Invalid email or password" otherwise.
    """
    token, user = get_auth_service().login(request.email, request.password)
    return {
        "success": True,
        "token": token,
        "user": {"id": user.id, "name": user.name, "email": user.email},
    }
