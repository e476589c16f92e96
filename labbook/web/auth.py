"""Session authentication for the LabBook API.

Sessions live in Redis with an in-memory fallback for development. The
session only carries the user id; role and status are re-read from the
database on every request so that suspensions and verifications apply
immediately.
"""

from __future__ import annotations

import json
import secrets
from datetime import datetime, timedelta
from uuid import UUID

import bcrypt
import redis
import structlog
from fastapi import Depends, Request

from labbook.config import get_config
from labbook.core.errors import ForbiddenError, UnauthorizedError
from labbook.db.connection import get_session
from labbook.db.users import UserRepository
from labbook.models import Actor, UserRole, UserStatus
from labbook.utils.clock import utcnow

logger = structlog.get_logger(__name__)

# Statuses allowed to hold a session; pending users may still draft and submit
LOGIN_STATUSES = frozenset({UserStatus.ACTIVE.value, UserStatus.PENDING.value})

# In-memory fallback for development when Redis is missing
_memory_sessions: dict[str, dict] = {}


def get_redis_client() -> redis.Redis:
    """Get Redis client for session storage."""
    return redis.from_url(get_config().redis_url, decode_responses=True)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12)).decode()


def create_session(user_id: UUID, role: str) -> str:
    """Create a session for an authenticated user and return its token."""
    expiry_hours = get_config().auth.session_expiry_hours
    session_token = secrets.token_urlsafe(32)
    now = utcnow()
    session_data = {
        "user_id": str(user_id),
        "role": role,
        "created_at": now.isoformat(),
        "expires_at": (now + timedelta(hours=expiry_hours)).isoformat(),
    }

    try:
        get_redis_client().setex(
            f"session:{session_token}", expiry_hours * 3600, json.dumps(session_data)
        )
    except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError):
        logger.warning("session_store_unavailable", fallback="memory")
        _memory_sessions[session_token] = session_data

    return session_token


def _expired(session_data: dict) -> bool:
    return utcnow() > datetime.fromisoformat(session_data["expires_at"])


def validate_session(session_token: str | None) -> dict | None:
    """Return session data for a live token, or None."""
    if not session_token:
        return None

    try:
        redis_client = get_redis_client()
        session_data_str = redis_client.get(f"session:{session_token}")
    except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError):
        session_data = _memory_sessions.get(session_token)
        if session_data and _expired(session_data):
            del _memory_sessions[session_token]
            return None
        return session_data

    if not session_data_str:
        return None

    try:
        session_data = json.loads(session_data_str)
        if _expired(session_data):
            redis_client.delete(f"session:{session_token}")
            return None
        return session_data
    except (json.JSONDecodeError, KeyError, ValueError):
        redis_client.delete(f"session:{session_token}")
        return None


def logout(session_token: str | None) -> None:
    """Invalidate a session token."""
    if not session_token:
        return
    try:
        get_redis_client().delete(f"session:{session_token}")
    except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError):
        _memory_sessions.pop(session_token, None)


async def verify_credentials_db(email: str, password: str) -> Actor | None:
    """Check an email and password against the users table.

    Returns the actor on success and stamps ``last_login``.
    """
    async with get_session() as session:
        user = await UserRepository(session).get_by_email(email)
        if user is None or not user.password_hash:
            return None
        if user.status not in LOGIN_STATUSES:
            return None
        if not bcrypt.checkpw(password.encode(), user.password_hash.encode()):
            return None

        user.last_login = utcnow()
        return Actor(
            id=user.id,
            role=UserRole(user.role),
            status=UserStatus(user.status),
            user_type=user.user_type,
        )


async def get_current_actor(request: Request) -> Actor:
    """Dependency resolving the session cookie to a fresh :class:`Actor`.

    Raises:
        UnauthorizedError: No session, expired session, or the account can
            no longer log in.
    """
    token = request.cookies.get(get_config().auth.cookie_name)
    session_data = validate_session(token)
    if not session_data:
        raise UnauthorizedError("Authentication required")

    async with get_session() as session:
        user = await UserRepository(session).get(UUID(session_data["user_id"]))

    if user is None or user.status not in LOGIN_STATUSES:
        logout(token)
        raise UnauthorizedError("Authentication required")

    structlog.contextvars.bind_contextvars(user_id=str(user.id))
    return Actor(
        id=user.id,
        role=UserRole(user.role),
        status=UserStatus(user.status),
        user_type=user.user_type,
    )


async def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Dependency to require the admin role."""
    if not actor.is_admin:
        raise ForbiddenError("Admin access required")
    return actor
