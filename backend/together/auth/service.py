"""Credential handling: bcrypt password hashes and opaque bearer tokens.

Tokens are random URL-safe strings held in a process-local store with an
expiry, so they do not survive a restart; clients log in again.
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

import bcrypt

from together.config import get_config
from together.errors import BadRequest, Unauthenticated
from together.users.schemas import User
from together.users.service import UserStore

from .validation import email_error, password_error

logger = logging.getLogger(__name__)


class TokenStore:
    """In-memory token store: token -> (user_id, expires)."""

    _instance: Optional["TokenStore"] = None

    def __init__(self, expire_minutes: Optional[int] = None) -> None:
        self._expire_minutes = expire_minutes or get_config().auth.token_expire_minutes
        self._tokens: Dict[str, Tuple[str, datetime]] = {}

    @classmethod
    def get_instance(cls) -> "TokenStore":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        cls._instance = None

    def issue(self, user_id: str) -> str:
        token = secrets.token_urlsafe(32)
        expires = datetime.utcnow() + timedelta(minutes=self._expire_minutes)
        self._tokens[token] = (user_id, expires)
        return token

    def resolve(self, token: Optional[str]) -> str:
        """Return the user id a token was issued to.

        Raises:
            Unauthenticated: If the token is missing, unknown or expired.
        """
        if not token:
            logger.warning("UNAUTHORIZED_ACCESS reason=missing_token")
            raise Unauthenticated("Missing token")
        entry = self._tokens.get(token)
        if entry is None:
            logger.warning("UNAUTHORIZED_ACCESS reason=unknown_token")
            raise Unauthenticated("Invalid token")
        user_id, expires = entry
        if expires < datetime.utcnow():
            logger.warning("UNAUTHORIZED_ACCESS reason=expired_token user_id=%s", user_id)
            self._tokens.pop(token, None)
            raise Unauthenticated("Token expired")
        return user_id


def extract_token(header: Optional[str]) -> Optional[str]:
    """Accept both ``Bearer <token>`` and a bare token."""
    if not header:
        return None
    header = header.strip()
    if header.lower().startswith("bearer "):
        return header.split(" ", 1)[1].strip() or None
    return header


class AuthService:
    """Registers users and exchanges credentials for bearer tokens."""

    def __init__(self, users: UserStore, tokens: TokenStore, bcrypt_rounds: Optional[int] = None) -> None:
        self.users = users
        self.tokens = tokens
        self._rounds = bcrypt_rounds or get_config().auth.bcrypt_rounds

    def hash_password(self, password: str) -> str:
        return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=self._rounds)).decode()

    @staticmethod
    def check_password(password: str, password_hash: str) -> bool:
        return bcrypt.checkpw(password.encode(), password_hash.encode())

    def register(self, name: str, email: str, password: str) -> Tuple[str, User]:
        if not name or not name.strip():
            raise BadRequest("Name is required")
        problem = email_error(email) or password_error(password)
        if problem:
            raise BadRequest(problem)
        if self.users.get_by_email(email):
            logger.info("REGISTER_FAIL email=%s reason=exists", email)
            raise BadRequest("User already exists")

        user = self.users.create_user(name.strip(), email.strip(), self.hash_password(password))
        logger.info("REGISTER_SUCCESS email=%s user_id=%s", user.email, user.id)
        return self.tokens.issue(user.id), user

    def login(self, email: str, password: str) -> Tuple[str, User]:
        credentials = self.users.get_credentials(email or "")
        if credentials is None:
            logger.info("LOGIN_FAIL email=%s reason=not_found", email)
            raise BadRequest("Invalid email or password")
        user_id, password_hash = credentials
        if not self.check_password(password or "", password_hash):
            logger.info("LOGIN_FAIL email=%s reason=bad_password", email)
            raise BadRequest("Invalid email or password")

        logger.info("LOGIN_SUCCESS email=%s user_id=%s", email, user_id)
        return self.tokens.issue(user_id), self.users.get_user(user_id)

    def authenticate(self, token: Optional[str]) -> User:
        """Resolve a bearer token to an existing user.

        Raises:
            Unauthenticated: Bad token, or the user no longer exists.
        """
        user_id = self.tokens.resolve(token)
        user = self.users.get_user(user_id)
        if user is None:
            logger.warning("UNAUTHORIZED_ACCESS reason=user_not_found user_id=%s", user_id)
            raise Unauthenticated("Unauthorized")
        return user


def get_auth_service() -> AuthService:
    return AuthService(UserStore.get_instance(), TokenStore.get_instance())
