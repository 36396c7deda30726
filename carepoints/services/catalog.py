from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from carepoints.errors import NotFoundError
from carepoints.models import CorrectiveAction, SeverityLevel, ViolationCategory
from carepoints.schemas import ViolationCategoryCreate, ViolationCategoryUpdate
from carepoints.security import Actor, Permission, ensure_permission

_NON_NULLABLE_FIELDS = frozenset({"category_name", "severity_level", "default_points", "display_order", "is_active"})

# (name, severity, points, display order, description)
DEFAULT_CATEGORIES: tuple[tuple[str, SeverityLevel, int, int, str | None], ...] = (
    ("Clock-in 1-15 minutes late", SeverityLevel.MINOR, 1, 1, None),
    ("Clock-out late - unapproved OT under 15 min", SeverityLevel.MINOR, 1, 2, None),
    ("Minor dress code/uniform violation", SeverityLevel.MINOR, 1, 3, None),
    ("Late timesheet submission", SeverityLevel.MINOR, 1, 4, None),
    ("Clock-in 16-30 minutes late", SeverityLevel.MINOR, 2, 5, None),
    ("Unapproved overtime 15-30 minutes", SeverityLevel.MINOR, 2, 6, None),
    ("Failure to notify supervisor of absence (but did call)", SeverityLevel.MINOR, 2, 7, None),
    ("Minor cleanliness/housekeeping issue", SeverityLevel.MINOR, 2, 8, None),
    ("Progress notes not completed by end of shift", SeverityLevel.MODERATE, 3, 1, None),
    ("Failure to follow communication protocols", SeverityLevel.MODERATE, 3, 2, None),
    ("Unapproved overtime over 30 minutes", SeverityLevel.MODERATE, 3, 3, None),
    ("Clock-in more than 30 minutes late", SeverityLevel.MODERATE, 3, 4, None),
    ("Missing required training deadline", SeverityLevel.MODERATE, 3, 5, None),
    ("Failure to complete shift checklist", SeverityLevel.MODERATE, 3, 6, None),
    ("Inadequate shift documentation", SeverityLevel.MODERATE, 4, 7, None),
    ("Failure to report maintenance issues", SeverityLevel.MODERATE, 4, 8, None),
    ("Personal cell phone use during prohibited times", SeverityLevel.MODERATE, 4, 9, None),
    ("Failure to attend mandatory meeting (without approval)", SeverityLevel.MODERATE, 4, 10, None),
    ("Late medication administration (per eMAR)", SeverityLevel.SERIOUS, 5, 1, None),
    ("Progress notes missing after 24 hours", SeverityLevel.SERIOUS, 5, 2, None),
    ("Failure to document incident/injury", SeverityLevel.SERIOUS, 5, 3, None),
    ("Leaving shift early without approval", SeverityLevel.SERIOUS, 5, 4, None),
    ("Unauthorized visitors at site", SeverityLevel.SERIOUS, 5, 5, None),
    ("No-call/no-show", SeverityLevel.SERIOUS, 6, 6, None),
    ("Insubordination", SeverityLevel.SERIOUS, 6, 7, None),
    ("Failure to follow Individual Service Plan (ISP)", SeverityLevel.SERIOUS, 6, 8, None),
    ("Failure to maintain required supervision levels", SeverityLevel.SERIOUS, 6, 9, None),
    ("Sleeping during non-overnight awake shift", SeverityLevel.SERIOUS, 6, 10, None),
    ("Sleeping on overnight awake shift", SeverityLevel.CRITICAL, 8, 1, None),
    ("Client funds mishandling (minor)", SeverityLevel.CRITICAL, 8, 2, None),
    ("Unauthorized disclosure of client information", SeverityLevel.CRITICAL, 8, 3, None),
    ("Medication not administered at all", SeverityLevel.CRITICAL, 10, 4, None),
    ("Falsifying documentation", SeverityLevel.CRITICAL, 10, 5, None),
    ("Second no-call/no-show within 90 days", SeverityLevel.CRITICAL, 10, 6, None),
    ("Failure to report suspected abuse/neglect", SeverityLevel.CRITICAL, 10, 7, None),
    ("Working under the influence (unconfirmed)", SeverityLevel.CRITICAL, 10, 8, None),
    ("Leaving clients unsupervised", SeverityLevel.CRITICAL, 10, 9, None),
    (
        "Abuse, neglect, or exploitation of clients",
        SeverityLevel.IMMEDIATE_TERMINATION,
        0,
        1,
        "Immediate suspension pending investigation",
    ),
    ("Confirmed HIPAA violation", SeverityLevel.IMMEDIATE_TERMINATION, 0, 2, "Immediate suspension pending investigation"),
    ("Positive drug/alcohol test", SeverityLevel.IMMEDIATE_TERMINATION, 0, 3, "Immediate termination"),
    ("Theft of company or client property", SeverityLevel.IMMEDIATE_TERMINATION, 0, 4, "Immediate termination"),
    ("Physical altercation with staff or client", SeverityLevel.IMMEDIATE_TERMINATION, 0, 5, "Immediate termination"),
    ("Gross misconduct", SeverityLevel.IMMEDIATE_TERMINATION, 0, 6, "Immediate suspension pending investigation"),
    ("Falsifying employment documents", SeverityLevel.IMMEDIATE_TERMINATION, 0, 7, "Immediate termination"),
    ("Criminal conduct on premises", SeverityLevel.IMMEDIATE_TERMINATION, 0, 8, "Immediate termination"),
)


def list_active_categories(db: Session) -> list[ViolationCategory]:
    return list(
        db.scalars(
            select(ViolationCategory)
            .where(ViolationCategory.is_active.is_(True))
            .order_by(
                ViolationCategory.severity_level.asc(),
                ViolationCategory.display_order.asc(),
                ViolationCategory.category_name.asc(),
            )
        ).all()
    )


def group_by_severity(categories: list[ViolationCategory]) -> dict[str, list[ViolationCategory]]:
    grouped: dict[str, list[ViolationCategory]] = {level.value: [] for level in SeverityLevel}
    for category in sorted(
        categories,
        key=lambda item: (item.severity_level.rank, item.display_order, item.category_name),
    ):
        grouped[category.severity_level.value].append(category)
    return grouped


def get_category(db: Session, category_id: int) -> ViolationCategory:
    category = db.get(ViolationCategory, category_id)
    if category is None:
        raise NotFoundError("Category not found")
    return category


def create_category(db: Session, *, actor: Actor, payload: ViolationCategoryCreate) -> ViolationCategory:
    ensure_permission(actor, Permission.EDIT_CATALOG, message="Only administrators can create violation categories")

    category = ViolationCategory(
        category_name=payload.category_name.strip(),
        severity_level=payload.severity_level,
        default_points=payload.default_points,
        description=payload.description or None,
        display_order=payload.display_order,
        is_active=True,
    )
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def update_category(
    db: Session,
    *,
    actor: Actor,
    category_id: int,
    payload: ViolationCategoryUpdate,
) -> ViolationCategory:
    ensure_permission(actor, Permission.EDIT_CATALOG, message="Only administrators can update violation categories")
    category = get_category(db, category_id)

    for field_name, value in payload.model_dump(exclude_unset=True).items():
        if value is None and field_name in _NON_NULLABLE_FIELDS:
            continue
        if field_name == "category_name":
            value = value.strip()
        setattr(category, field_name, value)

    db.commit()
    db.refresh(category)
    return category


def is_category_referenced(db: Session, category_id: int) -> bool:
    referencing_id = db.scalar(
        select(CorrectiveAction.id).where(CorrectiveAction.violation_category_id == category_id).limit(1)
    )
    return referencing_id is not None


def delete_category(db: Session, *, actor: Actor, category_id: int) -> tuple[ViolationCategory, bool]:
    """Remove a category, or deactivate it when actions still point at it.

    Returns the category and whether the delete was soft.
    """
    ensure_permission(actor, Permission.EDIT_CATALOG, message="Only administrators can delete violation categories")
    category = get_category(db, category_id)

    soft_delete = is_category_referenced(db, category_id)
    if soft_delete:
        category.is_active = False
    else:
        db.delete(category)
    db.commit()
    return category, soft_delete


def seed_default_categories(db: Session, *, actor: Actor) -> int:
    ensure_permission(actor, Permission.EDIT_CATALOG, message="Only administrators can seed violation categories")

    existing = db.scalar(select(func.count()).select_from(ViolationCategory)) or 0
    if existing:
        return 0

    for name, severity, points, display_order, description in DEFAULT_CATEGORIES:
        db.add(
            ViolationCategory(
                category_name=name,
                severity_level=severity,
                default_points=points,
                display_order=display_order,
                description=description,
                is_active=True,
            )
        )
    db.commit()
    return len(DEFAULT_CATEGORIES)
