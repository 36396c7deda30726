from __future__ import annotations

import enum
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from carepoints.db import Base


class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    HR = "HR"
    DESIGNATED_MANAGER = "DESIGNATED_MANAGER"
    DESIGNATED_COORDINATOR = "DESIGNATED_COORDINATOR"
    OPERATIONS = "OPERATIONS"
    DSP = "DSP"


class SeverityLevel(str, enum.Enum):
    # Declaration order is the severity order (postgres enum sort order too).
    MINOR = "MINOR"
    MODERATE = "MODERATE"
    SERIOUS = "SERIOUS"
    CRITICAL = "CRITICAL"
    IMMEDIATE_TERMINATION = "IMMEDIATE_TERMINATION"

    @property
    def rank(self) -> int:
        return list(SeverityLevel).index(self)


class ActionStatus(str, enum.Enum):
    PENDING_SIGNATURE = "PENDING_SIGNATURE"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    DISPUTED = "DISPUTED"
    VOIDED = "VOIDED"


class DisciplineLevel(str, enum.Enum):
    GOOD_STANDING = "GOOD_STANDING"
    COACHING = "COACHING"
    VERBAL_WARNING = "VERBAL_WARNING"
    WRITTEN_WARNING = "WRITTEN_WARNING"
    FINAL_WARNING = "FINAL_WARNING"
    TERMINATION = "TERMINATION"


class SignerRole(str, enum.Enum):
    EMPLOYEE = "EMPLOYEE"
    SUPERVISOR = "SUPERVISOR"
    WITNESS = "WITNESS"
    HR = "HR"


class AuditActorType(str, enum.Enum):
    USER = "USER"
    SYSTEM = "SYSTEM"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[UserRole] = mapped_column(Enum(UserRole, name="user_role"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str] = mapped_column(String(255), nullable=False)
    last_name: Mapped[str] = mapped_column(String(255), nullable=False)
    position: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    hire_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    corrective_actions: Mapped[list[CorrectiveAction]] = relationship(back_populates="employee")
    point_adjustments: Mapped[list[PointAdjustment]] = relationship(back_populates="employee")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class ViolationCategory(Base):
    __tablename__ = "violation_categories"
    __table_args__ = (
        CheckConstraint("default_points >= 0", name="ck_violation_categories_default_points_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    category_name: Mapped[str] = mapped_column(String(255), nullable=False)
    severity_level: Mapped[SeverityLevel] = mapped_column(
        Enum(SeverityLevel, name="severity_level"),
        nullable=False,
        index=True,
    )
    default_points: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    corrective_actions: Mapped[list[CorrectiveAction]] = relationship(back_populates="violation_category")


class CorrectiveAction(Base):
    __tablename__ = "corrective_actions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    violation_category_id: Mapped[int] = mapped_column(
        ForeignKey("violation_categories.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    issued_by_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    violation_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    violation_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    incident_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    mitigating_circumstances: Mapped[str | None] = mapped_column(Text, nullable=True)
    points_assigned: Mapped[int] = mapped_column(Integer, nullable=False)
    points_adjusted: Mapped[int | None] = mapped_column(Integer, nullable=True)
    adjustment_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    discipline_level: Mapped[DisciplineLevel] = mapped_column(
        Enum(DisciplineLevel, name="discipline_level"),
        nullable=False,
    )
    corrective_expectations: Mapped[list[str]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        server_default=text("'[]'::jsonb"),
    )
    consequences_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    pip_scheduled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    pip_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[ActionStatus] = mapped_column(
        Enum(ActionStatus, name="corrective_action_status"),
        nullable=False,
        default=ActionStatus.PENDING_SIGNATURE,
        server_default=text("'PENDING_SIGNATURE'"),
        index=True,
    )
    employee_comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    voided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    voided_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    employee: Mapped[Employee] = relationship(back_populates="corrective_actions")
    violation_category: Mapped[ViolationCategory] = relationship(back_populates="corrective_actions")
    issued_by: Mapped[User] = relationship(foreign_keys=[issued_by_id])
    voided_by: Mapped[User | None] = relationship(foreign_keys=[voided_by_id])
    signatures: Mapped[list[CorrectiveActionSignature]] = relationship(
        back_populates="corrective_action",
        order_by="CorrectiveActionSignature.signed_at",
    )

    @property
    def effective_points(self) -> int:
        if self.points_adjusted is not None:
            return self.points_adjusted
        return self.points_assigned


class CorrectiveActionSignature(Base):
    __tablename__ = "corrective_action_signatures"
    __table_args__ = (
        UniqueConstraint(
            "corrective_action_id",
            "signer_role",
            "signer_id",
            name="uq_corrective_action_signatures_action_role_signer",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    corrective_action_id: Mapped[int] = mapped_column(
        ForeignKey("corrective_actions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    signer_role: Mapped[SignerRole] = mapped_column(Enum(SignerRole, name="signer_role"), nullable=False)
    signer_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    signature_data: Mapped[str] = mapped_column(Text, nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(128), nullable=True)
    device_info: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    signed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    corrective_action: Mapped[CorrectiveAction] = relationship(back_populates="signatures")
    signer: Mapped[User] = relationship()


class PointAdjustment(Base):
    __tablename__ = "point_adjustments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    approved_by_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    employee: Mapped[Employee] = relationship(back_populates="point_adjustments")
    approved_by: Mapped[User] = relationship()


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ts_utc: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        index=True,
    )
    actor_type: Mapped[AuditActorType] = mapped_column(
        Enum(AuditActorType, name="audit_actor_type"),
        nullable=False,
    )
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip: Mapped[str | None] = mapped_column(String(128), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    details: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
    )
