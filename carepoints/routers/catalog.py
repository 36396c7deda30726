from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from carepoints.audit import log_request_audit
from carepoints.db import get_db
from carepoints.schemas import (
    CategorySeedResponse,
    SoftDeleteResponse,
    ThresholdRead,
    ViolationCategoryCreate,
    ViolationCategoryListResponse,
    ViolationCategoryRead,
    ViolationCategoryUpdate,
)
from carepoints.security import Actor, get_current_actor
from carepoints.services.catalog import (
    create_category,
    delete_category,
    get_category,
    group_by_severity,
    list_active_categories,
    seed_default_categories,
    update_category,
)
from carepoints.services.thresholds import THRESHOLD_TABLE

router = APIRouter(tags=["catalog"])


def _category_read(category) -> ViolationCategoryRead:  # type: ignore[no-untyped-def]
    return ViolationCategoryRead.model_validate(category)


@router.get("/api/violation-categories", response_model=ViolationCategoryListResponse)
def list_violation_categories(
    _actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> ViolationCategoryListResponse:
    categories = list_active_categories(db)
    grouped = group_by_severity(categories)
    return ViolationCategoryListResponse(
        categories=[_category_read(item) for item in categories],
        grouped={level: [_category_read(item) for item in items] for level, items in grouped.items()},
    )


@router.post("/api/violation-categories", response_model=ViolationCategoryRead, status_code=201)
def create_violation_category(
    payload: ViolationCategoryCreate,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> ViolationCategoryRead:
    category = create_category(db, actor=actor, payload=payload)
    response = _category_read(category)
    log_request_audit(
        db,
        request,
        actor_id=actor.user_id,
        action="VIOLATION_CATEGORY_CREATED",
        entity_type="violation_category",
        entity_id=response.id,
        details={
            "category_name": response.category_name,
            "severity_level": response.severity_level.value,
            "default_points": response.default_points,
        },
    )
    return response


@router.post("/api/violation-categories/seed", response_model=CategorySeedResponse)
def seed_violation_categories(
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> CategorySeedResponse:
    created = seed_default_categories(db, actor=actor)
    if created:
        log_request_audit(
            db,
            request,
            actor_id=actor.user_id,
            action="VIOLATION_CATEGORY_SEEDED",
            entity_type="violation_category",
            entity_id="*",
            details={"created": created},
        )
    return CategorySeedResponse(created=created)


@router.get("/api/violation-categories/{category_id}", response_model=ViolationCategoryRead)
def get_violation_category(
    category_id: int,
    _actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> ViolationCategoryRead:
    return _category_read(get_category(db, category_id))


@router.put("/api/violation-categories/{category_id}", response_model=ViolationCategoryRead)
def update_violation_category(
    category_id: int,
    payload: ViolationCategoryUpdate,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> ViolationCategoryRead:
    category = update_category(db, actor=actor, category_id=category_id, payload=payload)
    response = _category_read(category)
    log_request_audit(
        db,
        request,
        actor_id=actor.user_id,
        action="VIOLATION_CATEGORY_UPDATED",
        entity_type="violation_category",
        entity_id=category_id,
        details={"fields": sorted(payload.model_dump(exclude_unset=True))},
    )
    return response


@router.delete("/api/violation-categories/{category_id}", response_model=SoftDeleteResponse)
def delete_violation_category(
    category_id: int,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> SoftDeleteResponse:
    category, soft_delete = delete_category(db, actor=actor, category_id=category_id)
    log_request_audit(
        db,
        request,
        actor_id=actor.user_id,
        action="VIOLATION_CATEGORY_DELETED",
        entity_type="violation_category",
        entity_id=category_id,
        details={"category_name": category.category_name, "soft_delete": soft_delete},
    )
    return SoftDeleteResponse(ok=True, id=category_id)


def threshold_reads() -> list[ThresholdRead]:
    return [
        ThresholdRead(
            level=band.level,
            label=band.label,
            min_points=band.min_points,
            max_points=band.max_points,
            next_threshold=band.next_threshold,
            action_required=band.action_required,
        )
        for band in THRESHOLD_TABLE
    ]


@router.get("/api/discipline-thresholds", response_model=list[ThresholdRead])
def list_discipline_thresholds(_actor: Actor = Depends(get_current_actor)) -> list[ThresholdRead]:
    return threshold_reads()
