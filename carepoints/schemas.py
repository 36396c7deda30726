from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from carepoints.models import (
    ActionStatus,
    AuditActorType,
    DisciplineLevel,
    SeverityLevel,
    SignerRole,
    UserRole,
)


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1, max_length=256)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class MeResponse(BaseModel):
    user_id: int
    username: str
    full_name: str | None = None
    role: UserRole
    permissions: list[str]


class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=100)
    password: str = Field(min_length=8, max_length=256)
    full_name: str | None = Field(default=None, max_length=255)
    role: UserRole


class UserRead(BaseModel):
    id: int
    username: str
    full_name: str | None = None
    role: UserRole
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class UserBrief(BaseModel):
    id: int
    full_name: str | None = None
    username: str | None = None

    model_config = ConfigDict(from_attributes=True)


class EmployeeCreate(BaseModel):
    first_name: str = Field(min_length=1, max_length=255)
    last_name: str = Field(min_length=1, max_length=255)
    position: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=255)
    hire_date: date | None = None
    is_active: bool = True


class EmployeeRead(BaseModel):
    id: int
    first_name: str
    last_name: str
    position: str | None = None
    email: str | None = None
    hire_date: date | None = None
    is_active: bool = True

    model_config = ConfigDict(from_attributes=True)


class EmployeeBrief(BaseModel):
    id: int
    first_name: str
    last_name: str
    position: str | None = None

    model_config = ConfigDict(from_attributes=True)


class ViolationCategoryCreate(BaseModel):
    category_name: str = Field(min_length=1, max_length=255)
    severity_level: SeverityLevel
    default_points: int = Field(ge=0)
    description: str | None = None
    display_order: int = 0


class ViolationCategoryUpdate(BaseModel):
    category_name: str | None = Field(default=None, min_length=1, max_length=255)
    severity_level: SeverityLevel | None = None
    default_points: int | None = Field(default=None, ge=0)
    description: str | None = None
    display_order: int | None = None
    is_active: bool | None = None


class ViolationCategoryRead(BaseModel):
    id: int
    category_name: str
    severity_level: SeverityLevel
    default_points: int
    description: str | None = None
    display_order: int = 0
    is_active: bool = True

    model_config = ConfigDict(from_attributes=True)


class ViolationCategoryListResponse(BaseModel):
    categories: list[ViolationCategoryRead]
    grouped: dict[str, list[ViolationCategoryRead]]


class CategorySeedResponse(BaseModel):
    created: int


class SoftDeleteResponse(BaseModel):
    ok: bool
    id: int


class SignatureRead(BaseModel):
    id: int
    corrective_action_id: int
    signer_role: SignerRole
    signer_id: int
    signer: UserBrief | None = None
    signature_data: str
    ip_address: str | None = None
    device_info: str | None = None
    signed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class CorrectiveActionCreate(BaseModel):
    employee_id: int = Field(ge=1)
    violation_category_id: int = Field(ge=1)
    violation_date: date
    violation_time: str | None = Field(default=None, pattern=r"^\d{2}:\d{2}$")
    incident_description: str = Field(min_length=1)
    mitigating_circumstances: str | None = None
    points_assigned: int | None = Field(default=None, ge=0)
    points_adjusted: int | None = Field(default=None, ge=0)
    adjustment_reason: str | None = None
    corrective_expectations: list[str] = Field(default_factory=list)
    consequences_text: str | None = None
    pip_scheduled: bool = False
    pip_date: date | None = None
    supervisor_signature: str | None = None
    witness_id: int | None = Field(default=None, ge=1)
    witness_signature: str | None = None

    @model_validator(mode="after")
    def _normalize_description(self) -> "CorrectiveActionCreate":
        self.incident_description = self.incident_description.strip()
        if not self.incident_description:
            raise ValueError("incident_description is required")
        return self

    @model_validator(mode="after")
    def _witness_pair(self) -> "CorrectiveActionCreate":
        if (self.witness_id is None) != (self.witness_signature is None):
            raise ValueError("witness_id and witness_signature must be provided together")
        return self


class CorrectiveActionUpdate(BaseModel):
    incident_description: str | None = None
    mitigating_circumstances: str | None = None
    points_adjusted: int | None = Field(default=None, ge=0)
    adjustment_reason: str | None = None
    corrective_expectations: list[str] | None = None
    consequences_text: str | None = None
    pip_scheduled: bool | None = None
    pip_date: date | None = None


class CorrectiveActionRead(BaseModel):
    id: int
    employee_id: int
    employee: EmployeeBrief | None = None
    violation_category_id: int
    violation_category: ViolationCategoryRead | None = None
    issued_by_id: int
    issued_by: UserBrief | None = None
    violation_date: date
    violation_time: str | None = None
    incident_description: str | None = None
    mitigating_circumstances: str | None = None
    points_assigned: int
    points_adjusted: int | None = None
    effective_points: int
    adjustment_reason: str | None = None
    discipline_level: DisciplineLevel
    corrective_expectations: list[str] = Field(default_factory=list)
    consequences_text: str | None = None
    pip_scheduled: bool = False
    pip_date: date | None = None
    status: ActionStatus
    employee_comments: str | None = None
    voided_at: datetime | None = None
    voided_by_id: int | None = None
    void_reason: str | None = None
    signatures: list[SignatureRead] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class IssueActionResponse(BaseModel):
    action: CorrectiveActionRead
    points_before: int
    new_points: int
    total_points: int
    thresholds_crossed: list[int]


class CorrectiveActionDetailResponse(BaseModel):
    action: CorrectiveActionRead
    current_points: int
    points_before: int
    discipline_history: list[CorrectiveActionRead]


class CorrectiveActionListStats(BaseModel):
    total: int
    pending_signatures: int
    this_week: int
    at_risk_employees: int


class CorrectiveActionListResponse(BaseModel):
    actions: list[CorrectiveActionRead]
    stats: CorrectiveActionListStats


class SignRequest(BaseModel):
    signer_role: SignerRole
    signature_data: str = Field(min_length=1)
    employee_comments: str | None = None
    acknowledged: bool | None = None


class SignResponse(BaseModel):
    success: bool = True
    signature: SignatureRead
    action: CorrectiveActionRead


class VoidRequest(BaseModel):
    void_reason: str = ""


class VoidResponse(BaseModel):
    success: bool = True
    action: CorrectiveActionRead


class SignatureSlot(BaseModel):
    signed: bool
    signature_id: int | None = None
    signer_id: int | None = None
    signer_name: str | None = None
    signed_at: datetime | None = None
    ip_address: str | None = None
    device_info: str | None = None


class SignatureStatusResponse(BaseModel):
    status: ActionStatus
    signatures: list[SignatureRead]
    signature_status: dict[str, SignatureSlot]
    has_supervisor_signature: bool
    has_witness_signature: bool
    has_employee_signature: bool
    has_hr_signature: bool


class ThresholdRead(BaseModel):
    level: DisciplineLevel
    label: str
    min_points: int
    max_points: int | None = None
    next_threshold: int | None = None
    action_required: str


class ExpiringPointsRead(BaseModel):
    action_id: int
    violation_date: date
    expiration_date: date
    days_until_expiration: int
    points: int
    violation: str | None = None


class PointAdjustmentCreate(BaseModel):
    points: int
    reason: str = Field(min_length=1)
    effective_date: date


class PointAdjustmentRead(BaseModel):
    id: int
    employee_id: int
    points: int
    reason: str
    effective_date: date
    approved_by_id: int
    approved_by: UserBrief | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class PointsSummaryResponse(BaseModel):
    employee: EmployeeBrief
    as_of: date
    window_start: date
    current_points: int
    max_points: int
    discipline_level: DisciplineLevel
    next_threshold: int | None = None
    points_to_next_threshold: int
    actions_count: int
    expiring_points: list[ExpiringPointsRead]
    point_adjustments: list[PointAdjustmentRead]
    adjustment_points: int
    thresholds: list[ThresholdRead]


class DisciplineHistoryStats(BaseModel):
    total_actions: int
    active_actions: int
    voided_actions: int
    pending_signatures: int
    acknowledged: int
    disputed: int
    total_points_ever: int
    by_severity: dict[str, int]


class DisciplineHistoryResponse(BaseModel):
    employee: EmployeeBrief
    actions: list[CorrectiveActionRead]
    stats: DisciplineHistoryStats
    by_year: dict[int, list[CorrectiveActionRead]]


class AuditLogRead(BaseModel):
    id: int
    ts_utc: datetime
    actor_type: AuditActorType
    actor_id: str
    action: str
    entity_type: str | None = None
    entity_id: str | None = None
    ip: str | None = None
    user_agent: str | None = None
    success: bool
    details: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(from_attributes=True)
