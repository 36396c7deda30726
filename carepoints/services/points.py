from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from carepoints.errors import NotFoundError
from carepoints.models import ActionStatus, CorrectiveAction, Employee, PointAdjustment
from carepoints.security import Actor, Permission, ensure_permission
from carepoints.services.thresholds import ThresholdResolution, resolve_discipline_level
from carepoints.settings import get_settings

POINT_WINDOW_DAYS = 90
EXPIRING_SOON_DAYS = 30
AT_RISK_POINTS = 14


@dataclass(frozen=True)
class ExpiringAction:
    action_id: int
    violation_date: date
    expiration_date: date
    days_until_expiration: int
    points: int
    violation: str | None


@dataclass(frozen=True)
class PointSummary:
    as_of: date
    window_start: date
    current_points: int
    resolution: ThresholdResolution
    contributing_actions: list[CorrectiveAction] = field(default_factory=list)
    expiring: list[ExpiringAction] = field(default_factory=list)
    adjustments: list[PointAdjustment] = field(default_factory=list)
    adjustment_points: int = 0


@lru_cache
def _discipline_timezone() -> ZoneInfo:
    raw_name = (get_settings().discipline_timezone or "").strip() or "America/Chicago"
    try:
        return ZoneInfo(raw_name)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("America/Chicago")


def local_date(as_of: datetime | date | None = None) -> date:
    if as_of is None:
        as_of = datetime.now(timezone.utc)
    if isinstance(as_of, datetime):
        if as_of.tzinfo is None:
            as_of = as_of.replace(tzinfo=timezone.utc)
        return as_of.astimezone(_discipline_timezone()).date()
    return as_of


def window_start_for(as_of: date) -> date:
    return as_of - timedelta(days=POINT_WINDOW_DAYS)


def expiration_date_for(action: CorrectiveAction) -> date:
    return action.violation_date + timedelta(days=POINT_WINDOW_DAYS)


def counts_toward_points(action: CorrectiveAction, *, window_start: date) -> bool:
    return action.status != ActionStatus.VOIDED and action.violation_date >= window_start


def sum_effective_points(actions: list[CorrectiveAction]) -> int:
    return sum(action.effective_points for action in actions)


def summarize_points(
    actions: list[CorrectiveAction],
    adjustments: list[PointAdjustment],
    *,
    as_of: date,
) -> PointSummary:
    window_start = window_start_for(as_of)
    contributing = sorted(
        (action for action in actions if counts_toward_points(action, window_start=window_start)),
        key=lambda item: (item.violation_date, item.id or 0),
    )
    current_points = sum_effective_points(contributing)

    expiring: list[ExpiringAction] = []
    for action in contributing:
        expiration_date = expiration_date_for(action)
        days_until = (expiration_date - as_of).days
        if 0 < days_until <= EXPIRING_SOON_DAYS:
            expiring.append(
                ExpiringAction(
                    action_id=action.id,
                    violation_date=action.violation_date,
                    expiration_date=expiration_date,
                    days_until_expiration=days_until,
                    points=action.effective_points,
                    violation=action.violation_category.category_name if action.violation_category else None,
                )
            )
    expiring.sort(key=lambda item: (item.expiration_date, item.action_id))

    # Adjustments are reported next to the ledger total, never folded into it.
    window_adjustments = sorted(
        (item for item in adjustments if item.effective_date >= window_start),
        key=lambda item: (item.effective_date, item.id or 0),
        reverse=True,
    )

    return PointSummary(
        as_of=as_of,
        window_start=window_start,
        current_points=current_points,
        resolution=resolve_discipline_level(current_points),
        contributing_actions=contributing,
        expiring=expiring,
        adjustments=window_adjustments,
        adjustment_points=sum(item.points for item in window_adjustments),
    )


def ensure_employee_exists(db: Session, employee_id: int) -> Employee:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise NotFoundError("Employee not found")
    return employee


def fetch_window_actions(
    db: Session,
    *,
    employee_id: int,
    window_start: date,
    exclude_action_id: int | None = None,
) -> list[CorrectiveAction]:
    stmt = (
        select(CorrectiveAction)
        .options(selectinload(CorrectiveAction.violation_category))
        .where(
            CorrectiveAction.employee_id == employee_id,
            CorrectiveAction.violation_date >= window_start,
            CorrectiveAction.status != ActionStatus.VOIDED,
        )
        .order_by(CorrectiveAction.violation_date.asc(), CorrectiveAction.id.asc())
    )
    if exclude_action_id is not None:
        stmt = stmt.where(CorrectiveAction.id != exclude_action_id)
    return list(db.scalars(stmt).all())


def calculate_current_points(
    db: Session,
    *,
    employee_id: int,
    as_of: datetime | date | None = None,
    exclude_action_id: int | None = None,
) -> int:
    window_start = window_start_for(local_date(as_of))
    actions = fetch_window_actions(
        db,
        employee_id=employee_id,
        window_start=window_start,
        exclude_action_id=exclude_action_id,
    )
    return sum_effective_points(
        [
            action
            for action in actions
            if counts_toward_points(action, window_start=window_start) and action.id != exclude_action_id
        ]
    )


def get_points_summary(
    db: Session,
    *,
    employee_id: int,
    as_of: datetime | date | None = None,
) -> tuple[Employee, PointSummary]:
    employee = ensure_employee_exists(db, employee_id)
    as_of_date = local_date(as_of)
    window_start = window_start_for(as_of_date)

    actions = fetch_window_actions(db, employee_id=employee_id, window_start=window_start)
    adjustments = list(
        db.scalars(
            select(PointAdjustment)
            .options(selectinload(PointAdjustment.approved_by))
            .where(
                PointAdjustment.employee_id == employee_id,
                PointAdjustment.effective_date >= window_start,
            )
            .order_by(PointAdjustment.effective_date.desc(), PointAdjustment.id.desc())
        ).all()
    )
    return employee, summarize_points(actions, adjustments, as_of=as_of_date)


def count_at_risk_employees(db: Session, *, as_of: datetime | date | None = None) -> int:
    window_start = window_start_for(local_date(as_of))
    effective_points = func.coalesce(CorrectiveAction.points_adjusted, CorrectiveAction.points_assigned)
    stmt = (
        select(CorrectiveAction.employee_id)
        .where(
            CorrectiveAction.violation_date >= window_start,
            CorrectiveAction.status != ActionStatus.VOIDED,
        )
        .group_by(CorrectiveAction.employee_id)
        .having(func.sum(effective_points) >= AT_RISK_POINTS)
    )
    return len(list(db.scalars(stmt).all()))


def create_point_adjustment(
    db: Session,
    *,
    actor: Actor,
    employee_id: int,
    points: int,
    reason: str,
    effective_date: date,
) -> PointAdjustment:
    ensure_permission(actor, Permission.ADJUST_POINTS, message="Only administrators and HR can adjust points")
    ensure_employee_exists(db, employee_id)

    adjustment = PointAdjustment(
        employee_id=employee_id,
        points=points,
        reason=reason.strip(),
        effective_date=effective_date,
        approved_by_id=actor.user_id,
    )
    db.add(adjustment)
    db.commit()
    db.refresh(adjustment)
    return adjustment


def list_point_adjustments(db: Session, *, employee_id: int) -> list[PointAdjustment]:
    ensure_employee_exists(db, employee_id)
    return list(
        db.scalars(
            select(PointAdjustment)
            .where(PointAdjustment.employee_id == employee_id)
            .order_by(PointAdjustment.effective_date.desc(), PointAdjustment.id.desc())
        ).all()
    )
