from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from carepoints.audit import client_ip, log_audit, user_agent
from carepoints.db import get_db
from carepoints.errors import ApiError
from carepoints.models import AuditActorType, User
from carepoints.schemas import LoginRequest, MeResponse, TokenResponse
from carepoints.security import (
    Actor,
    create_access_token,
    ensure_login_attempt_allowed,
    get_current_actor,
    register_login_failure,
    register_login_success,
    verify_password,
)

router = APIRouter(tags=["auth"])


@router.post("/api/auth/login", response_model=TokenResponse)
def login(
    payload: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> TokenResponse:
    username = payload.username.strip()
    ip = client_ip(request)
    agent = user_agent(request)
    request_id = getattr(request.state, "request_id", None)

    if ip:
        try:
            ensure_login_attempt_allowed(ip)
        except ApiError:
            log_audit(
                db,
                actor_type=AuditActorType.SYSTEM,
                actor_id=username,
                action="AUTH_LOGIN",
                success=False,
                ip=ip,
                user_agent=agent,
                details={"reason": "TOO_MANY_ATTEMPTS"},
                request_id=request_id,
            )
            raise

    user = db.scalar(select(User).where(User.username == username))
    if user is None or not user.is_active or not verify_password(payload.password, user.password_hash):
        if ip:
            register_login_failure(ip)
        log_audit(
            db,
            actor_type=AuditActorType.SYSTEM,
            actor_id=username,
            action="AUTH_LOGIN",
            success=False,
            ip=ip,
            user_agent=agent,
            details={"reason": "INVALID_CREDENTIALS"},
            request_id=request_id,
        )
        raise ApiError(status_code=401, code="INVALID_CREDENTIALS", message="Invalid credentials.")

    if ip:
        register_login_success(ip)

    access_token, expires_in = create_access_token(user)
    request.state.actor = user.role.value
    request.state.actor_id = str(user.id)
    log_audit(
        db,
        actor_type=AuditActorType.USER,
        actor_id=str(user.id),
        action="AUTH_LOGIN",
        success=True,
        entity_type="user",
        entity_id=str(user.id),
        ip=ip,
        user_agent=agent,
        request_id=request_id,
    )
    return TokenResponse(access_token=access_token, expires_in=expires_in)


@router.get("/api/auth/me", response_model=MeResponse)
def me(actor: Actor = Depends(get_current_actor)) -> MeResponse:
    return MeResponse(
        user_id=actor.user_id,
        username=actor.username,
        full_name=actor.full_name,
        role=actor.role,
        permissions=sorted(permission.value for permission in actor.permissions),
    )
