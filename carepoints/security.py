from __future__ import annotations

import enum
import threading
from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from uuid import uuid4

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from passlib.exc import UnknownHashError

from carepoints.errors import ApiError, PermissionDeniedError
from carepoints.models import User, UserRole
from carepoints.settings import get_settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)

_LOCK = threading.Lock()
_FAILED_ATTEMPTS: dict[str, deque[datetime]] = defaultdict(deque)
_MAX_ATTEMPTS = 10
_ATTEMPT_WINDOW = timedelta(minutes=10)
MIN_JWT_SECRET_LENGTH = 16


class Permission(str, enum.Enum):
    ISSUE_ACTION = "ISSUE_ACTION"
    VIEW_ALL_ACTIONS = "VIEW_ALL_ACTIONS"
    EDIT_ANY_ACTION = "EDIT_ANY_ACTION"
    VOID_ACTION = "VOID_ACTION"
    EDIT_CATALOG = "EDIT_CATALOG"
    ADJUST_POINTS = "ADJUST_POINTS"
    VIEW_AUDIT = "VIEW_AUDIT"
    MANAGE_EMPLOYEES = "MANAGE_EMPLOYEES"
    MANAGE_USERS = "MANAGE_USERS"


_BASE_PERMISSIONS: frozenset[Permission] = frozenset({Permission.ISSUE_ACTION})

ROLE_PERMISSIONS: dict[UserRole, frozenset[Permission]] = {
    UserRole.ADMIN: frozenset(Permission),
    UserRole.HR: _BASE_PERMISSIONS
    | {
        Permission.VIEW_ALL_ACTIONS,
        Permission.EDIT_ANY_ACTION,
        Permission.VOID_ACTION,
        Permission.ADJUST_POINTS,
        Permission.VIEW_AUDIT,
        Permission.MANAGE_EMPLOYEES,
    },
    UserRole.DESIGNATED_MANAGER: _BASE_PERMISSIONS | {Permission.VIEW_ALL_ACTIONS},
    UserRole.DESIGNATED_COORDINATOR: _BASE_PERMISSIONS,
    UserRole.OPERATIONS: _BASE_PERMISSIONS,
    UserRole.DSP: _BASE_PERMISSIONS,
}


@dataclass(frozen=True)
class Actor:
    user_id: int
    username: str
    role: UserRole
    full_name: str | None = None

    @property
    def permissions(self) -> frozenset[Permission]:
        return ROLE_PERMISSIONS.get(self.role, frozenset())


def has_permission(actor: Actor, permission: Permission) -> bool:
    return permission in actor.permissions


def ensure_permission(actor: Actor, permission: Permission, *, message: str | None = None) -> None:
    if not has_permission(actor, permission):
        raise PermissionDeniedError(message or "Insufficient permissions.")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _cleanup_attempts(ip: str, now: datetime) -> None:
    queue = _FAILED_ATTEMPTS[ip]
    threshold = now - _ATTEMPT_WINDOW
    while queue and queue[0] < threshold:
        queue.popleft()
    if not queue:
        _FAILED_ATTEMPTS.pop(ip, None)


def ensure_login_attempt_allowed(ip: str) -> None:
    now = _utcnow()
    with _LOCK:
        _cleanup_attempts(ip, now)
        queue = _FAILED_ATTEMPTS.get(ip, deque())
        if len(queue) >= _MAX_ATTEMPTS:
            raise ApiError(
                status_code=429,
                code="TOO_MANY_ATTEMPTS",
                message="Too many failed login attempts. Please try again later.",
            )


def register_login_failure(ip: str) -> None:
    now = _utcnow()
    with _LOCK:
        _cleanup_attempts(ip, now)
        _FAILED_ATTEMPTS[ip].append(now)


def register_login_success(ip: str) -> None:
    with _LOCK:
        _FAILED_ATTEMPTS.pop(ip, None)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError, UnknownHashError):
        return False


def signing_secret() -> str:
    secret = get_settings().jwt_secret
    if len(secret.strip()) < MIN_JWT_SECRET_LENGTH:
        raise RuntimeError(f"JWT_SECRET must be set to at least {MIN_JWT_SECRET_LENGTH} characters")
    return secret


def create_access_token(user: User) -> tuple[str, int]:
    settings = get_settings()
    now = _utcnow()
    claims = {
        "sub": str(user.id),
        "username": user.username,
        "full_name": user.full_name,
        "role": user.role.value,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=settings.access_token_minutes)).timestamp()),
        "jti": str(uuid4()),
        "typ": "access",
    }
    token = jwt.encode(claims, signing_secret(), algorithm="HS256")
    return token, settings.access_token_minutes * 60


def decode_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            signing_secret(),
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require_sub": True, "require_iat": True, "require_exp": True},
        )
    except JWTError as exc:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token is invalid.") from exc

    if payload.get("typ") != "access":
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token type is invalid.")
    return payload


def actor_from_claims(claims: dict[str, Any]) -> Actor:
    try:
        user_id = int(claims["sub"])
        role = UserRole(claims.get("role"))
    except (KeyError, TypeError, ValueError) as exc:
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Token subject is invalid.") from exc
    return Actor(
        user_id=user_id,
        username=str(claims.get("username") or user_id),
        role=role,
        full_name=claims.get("full_name"),
    )


def get_current_actor(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Actor:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise ApiError(status_code=401, code="INVALID_TOKEN", message="Missing bearer token.")

    actor = actor_from_claims(decode_token(credentials.credentials))
    request.state.actor = actor.role.value
    request.state.actor_id = str(actor.user_id)
    return actor


def require_permission(permission: Permission) -> Callable[..., Actor]:
    def _dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        ensure_permission(actor, permission)
        return actor

    return _dependency
