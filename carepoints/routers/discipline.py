from datetime import date

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from carepoints.audit import client_ip, log_request_audit, user_agent
from carepoints.db import get_db
from carepoints.models import ActionStatus, CorrectiveAction, SeverityLevel, SignerRole
from carepoints.routers.catalog import threshold_reads
from carepoints.schemas import (
    CorrectiveActionCreate,
    CorrectiveActionDetailResponse,
    CorrectiveActionListResponse,
    CorrectiveActionListStats,
    CorrectiveActionRead,
    CorrectiveActionUpdate,
    DisciplineHistoryResponse,
    DisciplineHistoryStats,
    EmployeeBrief,
    ExpiringPointsRead,
    IssueActionResponse,
    PointAdjustmentCreate,
    PointAdjustmentRead,
    PointsSummaryResponse,
    SignatureRead,
    SignatureSlot,
    SignatureStatusResponse,
    SignRequest,
    SignResponse,
    VoidRequest,
    VoidResponse,
)
from carepoints.security import Actor, get_current_actor
from carepoints.services.corrective_actions import (
    CaptureContext,
    get_action_detail,
    get_discipline_history,
    get_signature_status,
    issue_corrective_action,
    list_corrective_actions,
    sign_corrective_action,
    update_corrective_action,
    void_corrective_action,
)
from carepoints.services.points import (
    create_point_adjustment,
    get_points_summary,
    list_point_adjustments,
)
from carepoints.services.thresholds import MAX_POINTS

router = APIRouter(tags=["discipline"])


def _capture(request: Request) -> CaptureContext:
    return CaptureContext(ip_address=client_ip(request), device_info=user_agent(request))


def _action_read(action: CorrectiveAction) -> CorrectiveActionRead:
    return CorrectiveActionRead.model_validate(action)


@router.get("/api/corrective-actions", response_model=CorrectiveActionListResponse)
def list_actions(
    employee_id: int | None = Query(default=None, ge=1),
    status: ActionStatus | None = Query(default=None),
    severity_level: SeverityLevel | None = Query(default=None),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> CorrectiveActionListResponse:
    actions, stats = list_corrective_actions(
        db,
        actor=actor,
        employee_id=employee_id,
        status=status,
        severity_level=severity_level,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    )
    return CorrectiveActionListResponse(
        actions=[_action_read(item) for item in actions],
        stats=CorrectiveActionListStats(**stats),
    )


@router.post("/api/corrective-actions", response_model=IssueActionResponse, status_code=201)
def issue_action(
    payload: CorrectiveActionCreate,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> IssueActionResponse:
    result = issue_corrective_action(db, actor=actor, payload=payload, capture=_capture(request))
    response = IssueActionResponse(
        action=_action_read(result.action),
        points_before=result.points_before,
        new_points=result.new_points,
        total_points=result.total_points,
        thresholds_crossed=result.thresholds_crossed,
    )
    request.state.employee_id = response.action.employee_id
    log_request_audit(
        db,
        request,
        actor_id=actor.user_id,
        action="CORRECTIVE_ACTION_ISSUED",
        entity_type="corrective_action",
        entity_id=response.action.id,
        details={
            "employee_id": response.action.employee_id,
            "violation_category_id": response.action.violation_category_id,
            "points": result.new_points,
            "total_points": result.total_points,
            "discipline_level": response.action.discipline_level.value,
            "thresholds_crossed": result.thresholds_crossed,
        },
    )
    return response


@router.get("/api/corrective-actions/{action_id}", response_model=CorrectiveActionDetailResponse)
def get_action(
    action_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> CorrectiveActionDetailResponse:
    detail = get_action_detail(db, actor=actor, action_id=action_id)
    return CorrectiveActionDetailResponse(
        action=_action_read(detail.action),
        current_points=detail.current_points,
        points_before=detail.points_before,
        discipline_history=[_action_read(item) for item in detail.recent_history],
    )


@router.put("/api/corrective-actions/{action_id}", response_model=CorrectiveActionRead)
def update_action(
    action_id: int,
    payload: CorrectiveActionUpdate,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> CorrectiveActionRead:
    action, fields = update_corrective_action(db, actor=actor, action_id=action_id, payload=payload)
    response = _action_read(action)
    log_request_audit(
        db,
        request,
        actor_id=actor.user_id,
        action="CORRECTIVE_ACTION_UPDATED",
        entity_type="corrective_action",
        entity_id=action_id,
        details={"fields": fields},
    )
    return response


@router.get("/api/corrective-actions/{action_id}/sign", response_model=SignatureStatusResponse)
def signature_status(
    action_id: int,
    _actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> SignatureStatusResponse:
    result = get_signature_status(db, action_id=action_id)
    slots: dict[str, SignatureSlot] = {}
    for role, signature in result.by_role.items():
        if signature is None:
            slots[role.value.lower()] = SignatureSlot(signed=False)
            continue
        slots[role.value.lower()] = SignatureSlot(
            signed=True,
            signature_id=signature.id,
            signer_id=signature.signer_id,
            signer_name=signature.signer.full_name if signature.signer is not None else None,
            signed_at=signature.signed_at,
            ip_address=signature.ip_address,
            device_info=signature.device_info,
        )
    return SignatureStatusResponse(
        status=result.status,
        signatures=[SignatureRead.model_validate(item) for item in result.signatures],
        signature_status=slots,
        has_supervisor_signature=result.by_role[SignerRole.SUPERVISOR] is not None,
        has_witness_signature=result.by_role[SignerRole.WITNESS] is not None,
        has_employee_signature=result.by_role[SignerRole.EMPLOYEE] is not None,
        has_hr_signature=result.by_role[SignerRole.HR] is not None,
    )


@router.post("/api/corrective-actions/{action_id}/sign", response_model=SignResponse)
def sign_action(
    action_id: int,
    payload: SignRequest,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> SignResponse:
    signature, action = sign_corrective_action(
        db,
        actor=actor,
        action_id=action_id,
        payload=payload,
        capture=_capture(request),
    )
    response = SignResponse(
        signature=SignatureRead.model_validate(signature),
        action=_action_read(action),
    )
    log_request_audit(
        db,
        request,
        actor_id=actor.user_id,
        action="CORRECTIVE_ACTION_SIGNED",
        entity_type="corrective_action",
        entity_id=action_id,
        details={
            "signer_role": payload.signer_role.value,
            "signature_id": response.signature.id,
            "status": response.action.status.value,
        },
    )
    return response


@router.post("/api/corrective-actions/{action_id}/void", response_model=VoidResponse)
def void_action(
    action_id: int,
    payload: VoidRequest,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> VoidResponse:
    action, previous_status = void_corrective_action(
        db,
        actor=actor,
        action_id=action_id,
        void_reason=payload.void_reason,
    )
    response = VoidResponse(action=_action_read(action))
    log_request_audit(
        db,
        request,
        actor_id=actor.user_id,
        action="CORRECTIVE_ACTION_VOIDED",
        entity_type="corrective_action",
        entity_id=action_id,
        details={
            "void_reason": response.action.void_reason,
            "previous_status": previous_status.value,
        },
    )
    return response


@router.get("/api/employees/{employee_id}/points", response_model=PointsSummaryResponse)
def employee_points(
    employee_id: int,
    as_of: date | None = Query(default=None),
    _actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> PointsSummaryResponse:
    employee, summary = get_points_summary(db, employee_id=employee_id, as_of=as_of)
    return PointsSummaryResponse(
        employee=EmployeeBrief.model_validate(employee),
        as_of=summary.as_of,
        window_start=summary.window_start,
        current_points=summary.current_points,
        max_points=MAX_POINTS,
        discipline_level=summary.resolution.level,
        next_threshold=summary.resolution.next_threshold,
        points_to_next_threshold=summary.resolution.points_to_next_threshold,
        actions_count=len(summary.contributing_actions),
        expiring_points=[
            ExpiringPointsRead(
                action_id=item.action_id,
                violation_date=item.violation_date,
                expiration_date=item.expiration_date,
                days_until_expiration=item.days_until_expiration,
                points=item.points,
                violation=item.violation,
            )
            for item in summary.expiring
        ],
        point_adjustments=[PointAdjustmentRead.model_validate(item) for item in summary.adjustments],
        adjustment_points=summary.adjustment_points,
        thresholds=threshold_reads(),
    )


@router.get("/api/employees/{employee_id}/discipline-history", response_model=DisciplineHistoryResponse)
def employee_discipline_history(
    employee_id: int,
    include_voided: bool = Query(default=False),
    limit: int = Query(default=100, ge=1, le=500),
    _actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> DisciplineHistoryResponse:
    history = get_discipline_history(db, employee_id=employee_id, include_voided=include_voided, limit=limit)
    return DisciplineHistoryResponse(
        employee=EmployeeBrief.model_validate(history.employee),
        actions=[_action_read(item) for item in history.actions],
        stats=DisciplineHistoryStats(**history.stats),
        by_year={year: [_action_read(item) for item in items] for year, items in history.by_year.items()},
    )


@router.get("/api/employees/{employee_id}/point-adjustments", response_model=list[PointAdjustmentRead])
def employee_point_adjustments(
    employee_id: int,
    _actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> list[PointAdjustmentRead]:
    return [PointAdjustmentRead.model_validate(item) for item in list_point_adjustments(db, employee_id=employee_id)]


@router.post(
    "/api/employees/{employee_id}/point-adjustments",
    response_model=PointAdjustmentRead,
    status_code=201,
)
def create_employee_point_adjustment(
    employee_id: int,
    payload: PointAdjustmentCreate,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> PointAdjustmentRead:
    adjustment = create_point_adjustment(
        db,
        actor=actor,
        employee_id=employee_id,
        points=payload.points,
        reason=payload.reason,
        effective_date=payload.effective_date,
    )
    response = PointAdjustmentRead.model_validate(adjustment)
    log_request_audit(
        db,
        request,
        actor_id=actor.user_id,
        action="POINT_ADJUSTMENT_CREATED",
        entity_type="point_adjustment",
        entity_id=response.id,
        details={"employee_id": employee_id, "points": response.points, "reason": response.reason},
    )
    return response
