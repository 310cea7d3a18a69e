import uuid

from sqlalchemy import Column, Date, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class Person(Base):
    __tablename__ = "persons"
    __allow_unmapped__ = True

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(String, nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name_1 = Column(String(100), nullable=False)
    last_name_2 = Column(String(100), nullable=True)
    curp = Column(String(18), nullable=True, index=True)
    rfc = Column(String(13), nullable=True)
    ine_clave = Column(String(20), nullable=True)
    birth_date = Column(Date, nullable=True)
    phone = Column(String(20), nullable=True)
    email = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    @property
    def full_name(self) -> str:
        parts = [self.first_name, self.last_name_1, self.last_name_2]
        return " ".join(part for part in parts if part)
