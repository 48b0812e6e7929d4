from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sqlmodel import Session

from georeport.db.db import get_session
from georeport.logging_utils import get_logger
from georeport.models.profile import Profile
from georeport.utils.audit_log import log_security_event, log_user_login, log_user_logout
from georeport.utils.auth_helper import get_active_user
from georeport.utils.rate_limit import RateLimiter

logger = get_logger(__name__)

router = APIRouter()

# 5 failed attempts per email every 15 minutes
login_limiter = RateLimiter(max_requests=5, window_seconds=15 * 60)


class FailedLogin(BaseModel):
    email: str = Field(min_length=3, max_length=254)
    reason: str = Field(default="invalid_credentials", max_length=200)


def _client_metadata(request: Request) -> dict:
    return {
        "user_agent": request.headers.get("user-agent"),
        "ip": request.client.host if request.client else None,
    }


@router.post("/login")
async def register_login(
    request: Request,
    session: Session = Depends(get_session),
    user: Profile = Depends(get_active_user),
):
    login_limiter.reset(user.email)
    log_user_login(session, user.id, _client_metadata(request))
    session.commit()

    logger.info("User %s logged in", user.id)
    return {"ok": True}


@router.post("/logout")
async def register_logout(
    request: Request,
    session: Session = Depends(get_session),
    user: Profile = Depends(get_active_user),
):
    log_user_logout(session, user.id, _client_metadata(request))
    session.commit()

    logger.info("User %s logged out", user.id)
    return {"ok": True}


@router.post("/login-failed")
async def register_failed_login(
    payload: FailedLogin,
    request: Request,
    session: Session = Depends(get_session),
):
    email = payload.email.strip().lower()
    metadata = {**_client_metadata(request), "email": email, "reason": payload.reason}

    if not login_limiter.check(email):
        log_security_event(
            session,
            "LOGIN_RATE_LIMIT_EXCEEDED",
            f"Too many failed login attempts for {email}",
            metadata=metadata,
        )
        session.commit()
        raise HTTPException(status_code=429, detail="Too many login attempts, try again later")

    log_security_event(session, "LOGIN_FAILED", f"Failed login attempt for {email}", metadata=metadata)
    session.commit()

    return {"ok": True}
