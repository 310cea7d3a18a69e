import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class PersonBankAccount(Base):
    __tablename__ = "person_bank_accounts"
    __allow_unmapped__ = True

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    person_id = Column(
        UUID(as_uuid=True), ForeignKey("persons.id", ondelete="CASCADE"), nullable=False, index=True
    )
    bank_name = Column(String(100), nullable=True)
    clabe = Column(String(18), nullable=False)
    is_primary = Column(Boolean, nullable=False, default=False)
    is_verified = Column(Boolean, nullable=False, default=False)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    verified_by = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    @property
    def clabe_masked(self) -> str:
        clabe = self.clabe or ""
        if len(clabe) <= 4:
            return clabe
        return "*" * (len(clabe) - 4) + clabe[-4:]
