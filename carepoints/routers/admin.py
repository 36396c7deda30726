from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from carepoints.audit import log_request_audit
from carepoints.db import get_db
from carepoints.models import AuditLog, Employee, User
from carepoints.schemas import (
    AuditLogRead,
    EmployeeCreate,
    EmployeeRead,
    UserCreate,
    UserRead,
)
from carepoints.security import Actor, Permission, get_current_actor, hash_password, require_permission
from carepoints.services.points import ensure_employee_exists

router = APIRouter(tags=["admin"])


@router.get(
    "/api/users",
    response_model=list[UserRead],
    dependencies=[Depends(require_permission(Permission.MANAGE_USERS))],
)
def list_users(db: Session = Depends(get_db)) -> list[UserRead]:
    return list(db.scalars(select(User).order_by(User.id)).all())


@router.post("/api/users", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    request: Request,
    actor: Actor = Depends(require_permission(Permission.MANAGE_USERS)),
    db: Session = Depends(get_db),
) -> UserRead:
    username = payload.username.strip()
    if not username:
        raise HTTPException(status_code=422, detail="Username cannot be empty")

    existing = db.scalar(select(User).where(User.username == username))
    if existing is not None:
        raise HTTPException(status_code=409, detail="Username already exists")

    user = User(
        username=username,
        password_hash=hash_password(payload.password),
        full_name=payload.full_name.strip() if payload.full_name else None,
        role=payload.role,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    response = UserRead.model_validate(user)

    log_request_audit(
        db,
        request,
        actor_id=actor.user_id,
        action="USER_CREATED",
        entity_type="user",
        entity_id=response.id,
        details={"username": response.username, "role": response.role.value},
    )
    return response


@router.get("/api/employees", response_model=list[EmployeeRead])
def list_employees(
    include_inactive: bool = Query(default=False),
    _actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> list[EmployeeRead]:
    stmt = select(Employee).order_by(Employee.last_name, Employee.first_name, Employee.id)
    if not include_inactive:
        stmt = stmt.where(Employee.is_active.is_(True))
    return list(db.scalars(stmt).all())


@router.post("/api/employees", response_model=EmployeeRead, status_code=status.HTTP_201_CREATED)
def create_employee(
    payload: EmployeeCreate,
    request: Request,
    actor: Actor = Depends(require_permission(Permission.MANAGE_EMPLOYEES)),
    db: Session = Depends(get_db),
) -> EmployeeRead:
    employee = Employee(
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
        position=payload.position or None,
        email=payload.email or None,
        hire_date=payload.hire_date,
        is_active=payload.is_active,
    )
    db.add(employee)
    db.commit()
    db.refresh(employee)
    response = EmployeeRead.model_validate(employee)

    log_request_audit(
        db,
        request,
        actor_id=actor.user_id,
        action="EMPLOYEE_CREATED",
        entity_type="employee",
        entity_id=response.id,
        details={"first_name": response.first_name, "last_name": response.last_name},
    )
    return response


@router.get("/api/employees/{employee_id}", response_model=EmployeeRead)
def get_employee(
    employee_id: int,
    _actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> EmployeeRead:
    return EmployeeRead.model_validate(ensure_employee_exists(db, employee_id))


@router.get(
    "/api/audit-logs",
    response_model=list[AuditLogRead],
    dependencies=[Depends(require_permission(Permission.VIEW_AUDIT))],
)
def list_audit_logs(
    action: str | None = Query(default=None),
    entity_type: str | None = Query(default=None),
    entity_id: str | None = Query(default=None),
    success: bool | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
) -> list[AuditLogRead]:
    stmt = select(AuditLog).order_by(AuditLog.id.desc()).limit(limit)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if entity_type:
        stmt = stmt.where(AuditLog.entity_type == entity_type)
    if entity_id:
        stmt = stmt.where(AuditLog.entity_id == entity_id)
    if success is not None:
        stmt = stmt.where(AuditLog.success.is_(success))
    return list(db.scalars(stmt).all())
