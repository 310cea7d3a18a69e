import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Identity, Index, String, Text, event
from sqlalchemy.dialects.postgresql import JSONB, UUID

from app.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApplicationStatusHistory(Base):
    """Append-only audit trail of an application's lifecycle.

    Lifecycle events that do not move the application (document review, data
    verification, notes) reuse ``from_status``/``to_status`` to carry a marker such
    as ``DOCUMENT_REVIEW``; the typed event lives in ``metadata``.
    """

    __tablename__ = "application_status_history"
    __allow_unmapped__ = True
    __table_args__ = (
        Index("ix_app_status_history_app_seq", "application_id", "seq"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    seq = Column(BigInteger, Identity(always=False), nullable=False, unique=True)
    tenant_id = Column(String, nullable=False, index=True)
    application_id = Column(
        UUID(as_uuid=True),
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False,
    )
    from_status = Column(String(50), nullable=True)
    to_status = Column(String(50), nullable=False)
    changed_by = Column(UUID(as_uuid=True), nullable=True)
    changed_by_type = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    event_metadata = Column("metadata", JSONB, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class ImmutableHistoryError(RuntimeError):
    pass


@event.listens_for(ApplicationStatusHistory, "before_update")
def _refuse_update(mapper, connection, target):
    raise ImmutableHistoryError(f"application_status_history row {target.id} is append-only")


@event.listens_for(ApplicationStatusHistory, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise ImmutableHistoryError(f"application_status_history row {target.id} is append-only")
