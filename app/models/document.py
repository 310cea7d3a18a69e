import uuid

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class Document(Base):
    """Uploaded file owned either by an application or by the applicant person."""

    __tablename__ = "documents"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint(
            "documentable_type IN ('application', 'person')",
            name="ck_document_owner_type",
        ),
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED')",
            name="ck_document_status",
        ),
        Index("ix_documents_owner", "documentable_type", "documentable_id"),
        Index("ix_documents_owner_type", "documentable_type", "documentable_id", "type"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String, nullable=False, index=True)
    documentable_type = Column(String(20), nullable=False)
    documentable_id = Column(UUID(as_uuid=True), nullable=False)
    type = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default="PENDING")
    file_name = Column(String(255), nullable=True)
    mime_type = Column(String(100), nullable=True)
    file_size = Column(BigInteger, nullable=True)
    rejection_reason = Column(String(500), nullable=True)
    rejection_comment = Column(String(1000), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by = Column(UUID(as_uuid=True), nullable=True)
    replaced_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    @property
    def is_replaced(self) -> bool:
        return self.replaced_at is not None
