from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.logging import get_audit_logger
from app.models.application import Application
from app.models.application_status_history import ApplicationStatusHistory
from app.schemas.history import (
    LIFECYCLE_MARKERS,
    StatusHistoryEntryDTO,
    decode_history_event,
)

audit_logger = get_audit_logger()


def serialize_for_audit(value: Any) -> Any:
    return jsonable_encoder(
        value,
        custom_encoder={
            Decimal: lambda v: str(v),
            datetime: lambda v: v.isoformat(),
            date: lambda v: v.isoformat(),
        },
    )


def record_history(
    db: AsyncSession,
    application: Application,
    actor: deps.Actor,
    event,
) -> ApplicationStatusHistory:
    """Append one history row for ``event`` to the current session.

    The row commits with the caller's transaction; it is also mirrored to the
    audit log stream.
    """
    from_status, to_status = event.row_statuses()
    metadata = serialize_for_audit(event.to_metadata())
    entry = ApplicationStatusHistory(
        tenant_id=application.tenant_id,
        application_id=application.id,
        from_status=from_status,
        to_status=to_status,
        changed_by=actor.id,
        changed_by_type=actor.type,
        notes=event.description,
        event_metadata=metadata,
    )
    db.add(entry)
    audit_logger.info(
        "application history %s",
        metadata.get("action"),
        extra={
            "application_id": str(application.id),
            "event": "application_history",
            "from_status": from_status,
            "to_status": to_status,
            "history_action": metadata.get("action"),
        },
    )
    return entry


def to_entry_dto(entry: ApplicationStatusHistory) -> StatusHistoryEntryDTO:
    event = decode_entry(entry)
    if event is not None:
        is_transition = event.lifecycle_marker is None
    else:
        is_transition = entry.to_status not in LIFECYCLE_MARKERS
    return StatusHistoryEntryDTO(
        id=entry.id,
        seq=entry.seq,
        application_id=entry.application_id,
        from_status=entry.from_status,
        to_status=entry.to_status,
        changed_by=entry.changed_by,
        changed_by_type=entry.changed_by_type,
        notes=entry.notes,
        metadata=entry.event_metadata or {},
        event_action=event.action if event is not None else None,
        is_status_transition=is_transition,
        created_at=entry.created_at,
    )


async def list_history(
    db: AsyncSession,
    ctx: deps.TenantContext,
    application: Application,
) -> list[ApplicationStatusHistory]:
    stmt = (
        select(ApplicationStatusHistory)
        .where(
            ApplicationStatusHistory.tenant_id == ctx.tenant_id,
            ApplicationStatusHistory.application_id == application.id,
        )
        .order_by(ApplicationStatusHistory.seq.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


def decode_entry(entry: ApplicationStatusHistory):
    return decode_history_event(
        entry.event_metadata,
        from_status=entry.from_status,
        to_status=entry.to_status,
        notes=entry.notes,
    )
