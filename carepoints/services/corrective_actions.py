from __future__ import annotations

import base64
import binascii
import logging
import re
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from carepoints.errors import (
    DuplicateSignatureError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from carepoints.models import (
    ActionStatus,
    CorrectiveAction,
    CorrectiveActionSignature,
    Employee,
    SeverityLevel,
    SignerRole,
    User,
    ViolationCategory,
)
from carepoints.schemas import CorrectiveActionCreate, CorrectiveActionUpdate, SignRequest
from carepoints.security import Actor, Permission, ensure_permission, has_permission
from carepoints.services.action_state import (
    ActionEvent,
    apply_transition,
    employee_signature_event,
    ensure_accepts_signature,
    ensure_editable,
)
from carepoints.services.points import (
    calculate_current_points,
    count_at_risk_employees,
    ensure_employee_exists,
    fetch_window_actions,
    local_date,
    window_start_for,
)
from carepoints.services.thresholds import resolve_discipline_level, thresholds_crossed

logger = logging.getLogger("carepoints.discipline")

VOID_REASON_MIN_LENGTH = 10
RECENT_HISTORY_LIMIT = 10
SIGNATURE_UNIQUE_CONSTRAINT = "uq_corrective_action_signatures_action_role_signer"
NON_CLEARABLE_FIELDS = ("pip_scheduled", "incident_description", "consequences_text")
DEFAULT_CONSEQUENCES_TEXT = (
    "Further violations may result in additional disciplinary action up to and including "
    "termination of employment."
)
_SIGNATURE_DATA_URL = re.compile(
    r"^data:image/(?:png|jpeg|jpg|gif|webp|svg\+xml);base64,(?P<payload>.+)$",
    re.DOTALL,
)


@dataclass(frozen=True)
class CaptureContext:
    ip_address: str | None = None
    device_info: str | None = None


@dataclass(frozen=True)
class IssueResult:
    action: CorrectiveAction
    points_before: int
    new_points: int
    total_points: int
    thresholds_crossed: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class ActionDetail:
    action: CorrectiveAction
    current_points: int
    points_before: int
    recent_history: list[CorrectiveAction]


@dataclass(frozen=True)
class SignatureStatus:
    status: ActionStatus
    signatures: list[CorrectiveActionSignature]
    by_role: dict[SignerRole, CorrectiveActionSignature | None]


@dataclass(frozen=True)
class DisciplineHistory:
    employee: Employee
    actions: list[CorrectiveAction]
    stats: dict[str, object]
    by_year: dict[int, list[CorrectiveAction]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _violated_constraint(exc: IntegrityError) -> str | None:
    diag = getattr(exc.orig, "diag", None)
    constraint_name = getattr(diag, "constraint_name", None)
    if constraint_name:
        return str(constraint_name)
    if SIGNATURE_UNIQUE_CONSTRAINT in str(exc.orig):
        return SIGNATURE_UNIQUE_CONSTRAINT
    return None


def validate_signature_image(signature_data: str | None) -> str:
    match = _SIGNATURE_DATA_URL.match((signature_data or "").strip())
    if match is None:
        raise ValidationError("Invalid signature format. Expected base64 image data.")
    payload = re.sub(r"\s+", "", match.group("payload"))
    try:
        decoded = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("Invalid signature format. Expected base64 image data.") from exc
    if not decoded:
        raise ValidationError("Signature image is empty.")
    return signature_data.strip()  # type: ignore[union-attr]


def get_action(db: Session, action_id: int, *, for_update: bool = False) -> CorrectiveAction:
    if for_update:
        action = db.get(CorrectiveAction, action_id, with_for_update=True)
    else:
        action = db.get(CorrectiveAction, action_id)
    if action is None:
        raise NotFoundError("Corrective action not found")
    return action


def issue_corrective_action(
    db: Session,
    *,
    actor: Actor,
    payload: CorrectiveActionCreate,
    capture: CaptureContext | None = None,
    as_of: datetime | date | None = None,
) -> IssueResult:
    ensure_permission(actor, Permission.ISSUE_ACTION)
    capture = capture or CaptureContext()

    employee = ensure_employee_exists(db, payload.employee_id)
    category = db.get(ViolationCategory, payload.violation_category_id)
    if category is None:
        raise NotFoundError("Violation category not found")

    supervisor_signature = (
        validate_signature_image(payload.supervisor_signature) if payload.supervisor_signature else None
    )
    witness_signature = None
    if payload.witness_id is not None:
        if db.get(User, payload.witness_id) is None:
            raise NotFoundError("Witness not found")
        witness_signature = validate_signature_image(payload.witness_signature)

    points_assigned = payload.points_assigned if payload.points_assigned is not None else category.default_points
    new_points = payload.points_adjusted if payload.points_adjusted is not None else points_assigned

    as_of_date = local_date(as_of)
    points_before = calculate_current_points(db, employee_id=employee.id, as_of=as_of_date)
    counts_now = payload.violation_date >= window_start_for(as_of_date)
    total_points = points_before + (new_points if counts_now else 0)
    resolution = resolve_discipline_level(total_points)

    action = CorrectiveAction(
        employee_id=employee.id,
        violation_category_id=category.id,
        issued_by_id=actor.user_id,
        violation_date=payload.violation_date,
        violation_time=payload.violation_time,
        incident_description=payload.incident_description,
        mitigating_circumstances=payload.mitigating_circumstances or None,
        points_assigned=points_assigned,
        points_adjusted=payload.points_adjusted,
        adjustment_reason=payload.adjustment_reason or None,
        discipline_level=resolution.level,
        corrective_expectations=list(payload.corrective_expectations),
        consequences_text=payload.consequences_text or DEFAULT_CONSEQUENCES_TEXT,
        pip_scheduled=payload.pip_scheduled,
        pip_date=payload.pip_date,
        status=ActionStatus.PENDING_SIGNATURE,
    )
    db.add(action)
    db.flush()

    signed_at = _utcnow()
    if supervisor_signature is not None:
        db.add(
            CorrectiveActionSignature(
                corrective_action_id=action.id,
                signer_role=SignerRole.SUPERVISOR,
                signer_id=actor.user_id,
                signature_data=supervisor_signature,
                ip_address=capture.ip_address,
                device_info=capture.device_info,
                signed_at=signed_at,
            )
        )
    if witness_signature is not None:
        db.add(
            CorrectiveActionSignature(
                corrective_action_id=action.id,
                signer_role=SignerRole.WITNESS,
                signer_id=payload.witness_id,
                signature_data=witness_signature,
                ip_address=capture.ip_address,
                device_info=capture.device_info,
                signed_at=signed_at,
            )
        )

    db.commit()
    db.refresh(action)

    crossed = thresholds_crossed(points_before, total_points)
    if crossed:
        logger.warning(
            "discipline_threshold_crossed",
            extra={
                "employee_id": employee.id,
                "action_id": action.id,
                "points_before": points_before,
                "total_points": total_points,
                "thresholds": crossed,
                "discipline_level": resolution.level.value,
            },
        )

    return IssueResult(
        action=action,
        points_before=points_before,
        new_points=new_points,
        total_points=total_points,
        thresholds_crossed=crossed,
    )


def sign_corrective_action(
    db: Session,
    *,
    actor: Actor,
    action_id: int,
    payload: SignRequest,
    capture: CaptureContext | None = None,
) -> tuple[CorrectiveActionSignature, CorrectiveAction]:
    capture = capture or CaptureContext()
    action = get_action(db, action_id, for_update=True)
    ensure_accepts_signature(action.status)

    existing_id = db.scalar(
        select(CorrectiveActionSignature.id).where(
            CorrectiveActionSignature.corrective_action_id == action.id,
            CorrectiveActionSignature.signer_role == payload.signer_role,
            CorrectiveActionSignature.signer_id == actor.user_id,
        )
    )
    if existing_id is not None:
        raise DuplicateSignatureError()

    signature_data = validate_signature_image(payload.signature_data)

    signature = CorrectiveActionSignature(
        corrective_action_id=action.id,
        signer_role=payload.signer_role,
        signer_id=actor.user_id,
        signature_data=signature_data,
        ip_address=capture.ip_address,
        device_info=capture.device_info,
        signed_at=_utcnow(),
    )
    db.add(signature)

    # Only the employee's own signature drives the status.
    if payload.signer_role == SignerRole.EMPLOYEE:
        apply_transition(action, employee_signature_event(payload.acknowledged))
        action.employee_comments = payload.employee_comments

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if _violated_constraint(exc) == SIGNATURE_UNIQUE_CONSTRAINT:
            raise DuplicateSignatureError() from exc
        raise

    db.refresh(action)
    db.refresh(signature)
    return signature, action


def void_corrective_action(
    db: Session,
    *,
    actor: Actor,
    action_id: int,
    void_reason: str | None,
    now: datetime | None = None,
) -> tuple[CorrectiveAction, ActionStatus]:
    ensure_permission(actor, Permission.VOID_ACTION, message="Only administrators and HR can void corrective actions")

    reason = (void_reason or "").strip()
    if len(reason) < VOID_REASON_MIN_LENGTH:
        raise ValidationError(f"A void reason of at least {VOID_REASON_MIN_LENGTH} characters is required")

    action = get_action(db, action_id, for_update=True)
    previous_status = apply_transition(action, ActionEvent.VOID)
    action.voided_at = now or _utcnow()
    action.voided_by_id = actor.user_id
    action.void_reason = reason

    db.commit()
    db.refresh(action)
    return action, previous_status


def update_corrective_action(
    db: Session,
    *,
    actor: Actor,
    action_id: int,
    payload: CorrectiveActionUpdate,
) -> tuple[CorrectiveAction, list[str]]:
    action = get_action(db, action_id, for_update=True)

    can_edit = has_permission(actor, Permission.EDIT_ANY_ACTION) or (
        action.issued_by_id == actor.user_id and action.status == ActionStatus.PENDING_SIGNATURE
    )
    if not can_edit:
        raise PermissionDeniedError("You cannot edit this corrective action")
    ensure_editable(action.status)

    changes = payload.model_dump(exclude_unset=True)
    # An explicit null keeps the stored value for these fields.
    for field_name in NON_CLEARABLE_FIELDS:
        if field_name in changes and changes[field_name] is None:
            changes.pop(field_name)
    if "corrective_expectations" in changes:
        changes["corrective_expectations"] = list(changes["corrective_expectations"] or [])

    for field_name, value in changes.items():
        setattr(action, field_name, value)

    db.commit()
    db.refresh(action)
    return action, sorted(changes)


def get_signature_status(db: Session, *, action_id: int) -> SignatureStatus:
    action = get_action(db, action_id)
    signatures = sorted(
        action.signatures,
        key=lambda item: (item.signed_at or datetime.min.replace(tzinfo=timezone.utc), item.id or 0),
    )
    by_role: dict[SignerRole, CorrectiveActionSignature | None] = {role: None for role in SignerRole}
    for signature in signatures:
        if by_role[signature.signer_role] is None:
            by_role[signature.signer_role] = signature
    return SignatureStatus(status=action.status, signatures=signatures, by_role=by_role)


def get_action_detail(
    db: Session,
    *,
    actor: Actor,
    action_id: int,
    as_of: datetime | date | None = None,
) -> ActionDetail:
    action = get_action(db, action_id)
    if not has_permission(actor, Permission.VIEW_ALL_ACTIONS) and action.issued_by_id != actor.user_id:
        raise PermissionDeniedError("You do not have permission to view this corrective action")

    as_of_date = local_date(as_of)
    current_points = calculate_current_points(db, employee_id=action.employee_id, as_of=as_of_date)
    points_before = calculate_current_points(
        db,
        employee_id=action.employee_id,
        as_of=as_of_date,
        exclude_action_id=action.id,
    )
    window_actions = fetch_window_actions(
        db,
        employee_id=action.employee_id,
        window_start=window_start_for(as_of_date),
    )
    recent = sorted(window_actions, key=lambda item: (item.violation_date, item.id or 0), reverse=True)
    return ActionDetail(
        action=action,
        current_points=current_points,
        points_before=points_before,
        recent_history=recent[:RECENT_HISTORY_LIMIT],
    )


def list_corrective_actions(
    db: Session,
    *,
    actor: Actor,
    employee_id: int | None = None,
    status: ActionStatus | None = None,
    severity_level: SeverityLevel | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    limit: int = 50,
    now: datetime | None = None,
) -> tuple[list[CorrectiveAction], dict[str, int]]:
    if start_date is not None and end_date is not None and end_date < start_date:
        raise ValidationError("end_date must be greater than or equal to start_date")

    stmt = (
        select(CorrectiveAction)
        .options(
            selectinload(CorrectiveAction.employee),
            selectinload(CorrectiveAction.violation_category),
            selectinload(CorrectiveAction.issued_by),
            selectinload(CorrectiveAction.signatures),
        )
        .order_by(CorrectiveAction.violation_date.desc(), CorrectiveAction.id.desc())
        .limit(limit)
    )
    if not has_permission(actor, Permission.VIEW_ALL_ACTIONS):
        stmt = stmt.where(CorrectiveAction.issued_by_id == actor.user_id)
    if employee_id is not None:
        stmt = stmt.where(CorrectiveAction.employee_id == employee_id)
    if status is not None:
        stmt = stmt.where(CorrectiveAction.status == status)
    if severity_level is not None:
        stmt = stmt.join(CorrectiveAction.violation_category).where(
            ViolationCategory.severity_level == severity_level
        )
    if start_date is not None:
        stmt = stmt.where(CorrectiveAction.violation_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(CorrectiveAction.violation_date <= end_date)

    actions = list(db.scalars(stmt).all())

    now = now or _utcnow()
    week_ago = now - timedelta(days=7)
    stats = {
        "total": len(actions),
        "pending_signatures": sum(1 for item in actions if item.status == ActionStatus.PENDING_SIGNATURE),
        "this_week": sum(1 for item in actions if item.created_at is not None and item.created_at >= week_ago),
        "at_risk_employees": count_at_risk_employees(db, as_of=now),
    }
    return actions, stats


def get_discipline_history(
    db: Session,
    *,
    employee_id: int,
    include_voided: bool = False,
    limit: int = 100,
) -> DisciplineHistory:
    employee = ensure_employee_exists(db, employee_id)

    stmt = (
        select(CorrectiveAction)
        .options(
            selectinload(CorrectiveAction.violation_category),
            selectinload(CorrectiveAction.issued_by),
            selectinload(CorrectiveAction.voided_by),
            selectinload(CorrectiveAction.signatures),
        )
        .where(CorrectiveAction.employee_id == employee_id)
        .order_by(CorrectiveAction.violation_date.desc(), CorrectiveAction.id.desc())
        .limit(limit)
    )
    if not include_voided:
        stmt = stmt.where(CorrectiveAction.status != ActionStatus.VOIDED)
    actions = list(db.scalars(stmt).all())

    status_counts = Counter(item.status for item in actions)
    severity_counts = Counter(
        item.violation_category.severity_level for item in actions if item.violation_category is not None
    )
    active = [item for item in actions if item.status != ActionStatus.VOIDED]
    stats: dict[str, object] = {
        "total_actions": len(actions),
        "active_actions": len(active),
        "voided_actions": status_counts[ActionStatus.VOIDED],
        "pending_signatures": status_counts[ActionStatus.PENDING_SIGNATURE],
        "acknowledged": status_counts[ActionStatus.ACKNOWLEDGED],
        "disputed": status_counts[ActionStatus.DISPUTED],
        "total_points_ever": sum(item.effective_points for item in active),
        "by_severity": {level.value: severity_counts[level] for level in SeverityLevel},
    }

    by_year: dict[int, list[CorrectiveAction]] = defaultdict(list)
    for item in actions:
        by_year[item.violation_date.year].append(item)

    return DisciplineHistory(employee=employee, actions=actions, stats=stats, by_year=dict(by_year))
