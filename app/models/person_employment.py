import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class PersonEmployment(Base):
    __tablename__ = "person_employments"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'VERIFIED', 'REJECTED')",
            name="ck_person_employment_status",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    person_id = Column(
        UUID(as_uuid=True), ForeignKey("persons.id", ondelete="CASCADE"), nullable=False, index=True
    )
    employer_name = Column(String(255), nullable=True)
    position = Column(String(100), nullable=True)
    monthly_income = Column(Numeric(18, 2), nullable=True)
    is_current = Column(Boolean, nullable=False, default=True)
    status = Column(String(20), nullable=False, default="PENDING")
    verification_method = Column(String(50), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    verified_by = Column(UUID(as_uuid=True), nullable=True)
    income_verified = Column(Boolean, nullable=False, default=False)
    income_verified_at = Column(DateTime(timezone=True), nullable=True)
    income_verified_by = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
