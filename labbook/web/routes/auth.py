"""Authentication routes for the LabBook API.

Routes:
- POST /api/auth/login   - Check credentials and set the session cookie
- POST /api/auth/logout  - Invalidate the session
- GET  /api/auth/me      - Current account
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from labbook.config import get_config
from labbook.core.errors import UnauthorizedError
from labbook.core.outbox import Outbox
from labbook.models import Actor
from labbook.web.auth import create_session, get_current_actor, verify_credentials_db
from labbook.web.auth import logout as auth_logout
from labbook.web.dependencies import get_audit_logger
from labbook.web.models import LoginRequest

router = APIRouter(prefix="/api/auth", tags=["authentication"])


@router.post("/login")
async def login(body: LoginRequest, response: Response, audit=Depends(get_audit_logger)):
    """Create a session and set an httponly cookie on success."""
    actor = await verify_credentials_db(body.email, body.password)
    if actor is None:
        outbox = Outbox()
        outbox.add(
            "LOGIN_FAILED",
            audit.log_action,
            "LOGIN_FAILED",
            None,
            "system",
            details={"email": body.email.lower()},
        )
        await outbox.flush()
        raise UnauthorizedError("Invalid email or password")

    auth_config = get_config().auth
    session_token = create_session(actor.id, actor.role.value)
    response.set_cookie(
        key=auth_config.cookie_name,
        value=session_token,
        httponly=True,
        max_age=auth_config.session_expiry_hours * 3600,
        samesite="lax",
    )
    outbox = Outbox()
    outbox.add("LOGIN", audit.log_action, "LOGIN", actor.id, "system")
    await outbox.flush()
    return {"user_id": str(actor.id), "role": actor.role.value, "status": actor.status.value}


@router.post("/logout")
async def logout(request: Request, response: Response):
    cookie_name = get_config().auth.cookie_name
    auth_logout(request.cookies.get(cookie_name))
    response.delete_cookie(cookie_name)
    return {"status": "logged_out"}


@router.get("/me")
async def me(actor: Actor = Depends(get_current_actor)):
    return {
        "user_id": str(actor.id),
        "role": actor.role.value,
        "status": actor.status.value,
        "user_type": actor.user_type,
    }
