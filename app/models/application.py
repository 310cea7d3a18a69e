import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID

from app.db.base import Base


APPLICATION_STATUSES = (
    "DRAFT",
    "SUBMITTED",
    "IN_REVIEW",
    "DOCS_PENDING",
    "CORRECTIONS_PENDING",
    "APPROVED",
    "REJECTED",
    "DISBURSED",
    "CANCELLED",
)


class Application(Base):
    __tablename__ = "applications"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT', 'SUBMITTED', 'IN_REVIEW', 'DOCS_PENDING', 'CORRECTIONS_PENDING', "
            "'APPROVED', 'REJECTED', 'DISBURSED', 'CANCELLED')",
            name="ck_application_status",
        ),
        CheckConstraint(
            "applicant_type IN ('INDIVIDUAL', 'COMPANY')",
            name="ck_application_applicant_type",
        ),
        CheckConstraint(
            "(person_id IS NOT NULL AND company_id IS NULL) OR (person_id IS NULL AND company_id IS NOT NULL)",
            name="ck_application_single_applicant",
        ),
        CheckConstraint(
            "decision IS NULL OR decision IN ('APPROVED', 'REJECTED')",
            name="ck_application_decision",
        ),
        CheckConstraint("requested_amount IS NULL OR requested_amount > 0", name="ck_application_requested_positive"),
        CheckConstraint("approved_amount IS NULL OR approved_amount > 0", name="ck_application_approved_positive"),
        CheckConstraint("version >= 1", name="ck_application_version_positive"),
        CheckConstraint(
            "risk_level IS NULL OR risk_level IN ('LOW', 'MEDIUM', 'HIGH', 'VERY_HIGH')",
            name="ck_application_risk_level",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String, nullable=False, index=True)
    applicant_type = Column(String(20), nullable=False, default="INDIVIDUAL")
    person_id = Column(
        UUID(as_uuid=True), ForeignKey("persons.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    company_id = Column(
        UUID(as_uuid=True), ForeignKey("companies.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    status = Column(String(30), nullable=False, default="DRAFT", index=True)
    version = Column(Integer, nullable=False, default=1)

    requested_amount = Column(Numeric(18, 2), nullable=True)
    requested_term_months = Column(Integer, nullable=True)
    interest_rate = Column(Numeric(10, 4), nullable=True)
    approved_amount = Column(Numeric(18, 2), nullable=True)
    approved_term_months = Column(Integer, nullable=True)
    approved_interest_rate = Column(Numeric(10, 4), nullable=True)

    verification_checklist = Column(JSONB, nullable=False, default=dict)
    notes = Column(JSONB, nullable=False, default=list)

    decision = Column(String(20), nullable=True)
    decision_at = Column(DateTime(timezone=True), nullable=True)
    decision_by = Column(UUID(as_uuid=True), nullable=True)
    decision_notes = Column(Text, nullable=True)
    rejection_reason = Column(String(500), nullable=True)

    assigned_to = Column(UUID(as_uuid=True), nullable=True, index=True)
    assigned_at = Column(DateTime(timezone=True), nullable=True)
    assigned_by = Column(UUID(as_uuid=True), nullable=True)
    risk_level = Column(String(20), nullable=True)
    risk_data = Column(JSONB, nullable=True)

    status_changed_at = Column(DateTime(timezone=True), nullable=True)
    status_changed_by = Column(UUID(as_uuid=True), nullable=True)
    status_changed_by_type = Column(String(50), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    disbursed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __mapper_args__ = {"version_id_col": version}
