from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ApplicationStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    IN_REVIEW = "IN_REVIEW"
    DOCS_PENDING = "DOCS_PENDING"
    CORRECTIONS_PENDING = "CORRECTIONS_PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    DISBURSED = "DISBURSED"
    CANCELLED = "CANCELLED"


class ApplicantType(str, Enum):
    INDIVIDUAL = "INDIVIDUAL"
    COMPANY = "COMPANY"


class ApplicationDecision(str, Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class DocumentStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class DocumentOwnerType(str, Enum):
    APPLICATION = "application"
    PERSON = "person"


class ChecklistStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class VerificationAction(str, Enum):
    VERIFY = "verify"
    REJECT = "reject"
    UNVERIFY = "unverify"


class VerificationMethod(str, Enum):
    MANUAL = "MANUAL"
    OTP = "OTP"
    API = "API"
    DOCUMENT = "DOCUMENT"
    BUREAU = "BUREAU"


class ReferenceVerificationResult(str, Enum):
    VERIFIED = "VERIFIED"
    NOT_VERIFIED = "NOT_VERIFIED"
    NO_ANSWER = "NO_ANSWER"


class ReferenceStatus(str, Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"
    UNREACHABLE = "UNREACHABLE"


class SubEntityStatus(str, Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    VERY_HIGH = "VERY_HIGH"


class ChecklistEntry(BaseModel):
    """One verification record inside ``Application.verification_checklist``.

    Entries written by the workflow are built from this model. A missing or
    null status means pending.
    """

    model_config = ConfigDict(use_enum_values=True, extra="allow")

    status: ChecklistStatus = ChecklistStatus.PENDING
    method: str | None = None
    rejection_reason: str | None = None
    notes: str | None = None
    verified_by: str | None = None
    verified_at: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _lowercase_status(cls, value: Any) -> Any:
        if value is None:
            return ChecklistStatus.PENDING
        if isinstance(value, str):
            return value.strip().lower()
        return value


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class ApplicationStatusChangeRequest(BaseModel):
    status: ApplicationStatus
    notes: str | None = Field(default=None, max_length=1000)


class ApplicationApproveRequest(BaseModel):
    amount: Decimal | None = Field(default=None, gt=0)
    term_months: int | None = Field(default=None, ge=1, le=120)
    interest_rate: Decimal | None = Field(default=None, ge=0, le=100)
    notes: str | None = Field(default=None, max_length=1000)


class ApplicationRejectRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)
    notes: str | None = Field(default=None, max_length=1000)


class ApplicationCancelRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class VerifyDataRequest(BaseModel):
    field: str = Field(min_length=1, max_length=100)
    action: VerificationAction
    method: VerificationMethod | None = None
    rejection_reason: str | None = Field(default=None, max_length=500)
    notes: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _require_reason_on_reject(self) -> "VerifyDataRequest":
        if self.action == VerificationAction.REJECT and not self.rejection_reason:
            raise ValueError("rejection_reason is required when action is reject")
        return self


class DocumentRejectRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)
    comment: str | None = Field(default=None, max_length=1000)


class ReferenceVerifyRequest(BaseModel):
    result: ReferenceVerificationResult
    notes: str | None = Field(default=None, max_length=1000)


class ApplicationNoteCreateRequest(BaseModel):
    content: str = Field(min_length=1, max_length=2000)


class ApplicationAssignRequest(BaseModel):
    user_id: UUID


class RiskAssessmentRequest(BaseModel):
    level: RiskLevel
    data: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class ApplicationDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: str
    applicant_type: ApplicantType
    person_id: UUID | None = None
    company_id: UUID | None = None
    status: ApplicationStatus
    requested_amount: Decimal | None = None
    requested_term_months: int | None = None
    interest_rate: Decimal | None = None
    approved_amount: Decimal | None = None
    approved_term_months: int | None = None
    approved_interest_rate: Decimal | None = None
    decision: ApplicationDecision | None = None
    decision_at: datetime | None = None
    decision_by: UUID | None = None
    decision_notes: str | None = None
    rejection_reason: str | None = None
    assigned_to: UUID | None = None
    assigned_at: datetime | None = None
    assigned_by: UUID | None = None
    risk_level: RiskLevel | None = None
    risk_data: dict[str, Any] | None = None
    status_changed_at: datetime | None = None
    disbursed_at: datetime | None = None
    cancelled_at: datetime | None = None
    verification_checklist: dict[str, Any] = Field(default_factory=dict)
    notes: list[dict[str, Any]] = Field(default_factory=list)
    allowed_transitions: list[ApplicationStatus] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("verification_checklist", "notes", mode="before")
    @classmethod
    def _none_as_empty(cls, value, info):
        if value is None:
            return {} if info.field_name == "verification_checklist" else []
        return value


class WorkflowResponse(BaseModel):
    application: ApplicationDTO
    application_status_changed: bool
    new_application_status: ApplicationStatus


class ApplicationListResponse(BaseModel):
    items: list[ApplicationDTO]
    total: int


class DocumentDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    documentable_type: DocumentOwnerType
    documentable_id: UUID
    type: str
    status: DocumentStatus
    file_name: str | None = None
    mime_type: str | None = None
    file_size: int | None = None
    rejection_reason: str | None = None
    rejection_comment: str | None = None
    reviewed_at: datetime | None = None
    reviewed_by: UUID | None = None
    created_at: datetime | None = None


class DocumentListResponse(BaseModel):
    items: list[DocumentDTO]


class DocumentReviewResponse(BaseModel):
    document: DocumentDTO
    application_status_changed: bool
    new_application_status: ApplicationStatus


class ReferenceDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    full_name: str
    phone: str | None = None
    relationship: str | None = None
    status: ReferenceStatus
    verification_notes: str | None = None
    verified_at: datetime | None = None
    verified_by: UUID | None = None


class BankAccountDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    bank_name: str | None = None
    clabe_masked: str
    is_verified: bool
    verified_at: datetime | None = None
    verified_by: UUID | None = None


class ApplicationNoteDTO(BaseModel):
    id: UUID
    content: str
    author: dict[str, Any]
    created_at: datetime
