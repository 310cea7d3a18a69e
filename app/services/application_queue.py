from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.models.application import Application
from app.schemas.application import ApplicationStatus


UNASSIGNED_QUEUE_STATUSES = {
    ApplicationStatus.SUBMITTED.value,
    ApplicationStatus.IN_REVIEW.value,
}


async def _page(
    db: AsyncSession, conditions: list, order_by, *, limit: int, offset: int
) -> tuple[list[Application], int]:
    count_stmt = select(func.count()).select_from(Application).where(*conditions)
    count_result = await db.execute(count_stmt)
    total = int(count_result.scalar_one() or 0)

    stmt = select(Application).where(*conditions).order_by(order_by).limit(limit).offset(offset)
    result = await db.execute(stmt)
    return list(result.scalars().all()), total


async def list_unassigned(
    db: AsyncSession,
    ctx: deps.TenantContext,
    *,
    status: ApplicationStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Application], int]:
    """Submitted or in-review applications nobody has picked up, oldest first."""
    conditions = [
        Application.tenant_id == ctx.tenant_id,
        Application.assigned_to.is_(None),
        Application.status.in_(UNASSIGNED_QUEUE_STATUSES),
    ]
    if status is not None:
        conditions.append(Application.status == ApplicationStatus(status).value)
    return await _page(db, conditions, Application.submitted_at.asc(), limit=limit, offset=offset)


async def list_assigned_to(
    db: AsyncSession,
    ctx: deps.TenantContext,
    assignee_id: UUID,
    *,
    status: ApplicationStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Application], int]:
    conditions = [
        Application.tenant_id == ctx.tenant_id,
        Application.assigned_to == assignee_id,
    ]
    if status is not None:
        conditions.append(Application.status == ApplicationStatus(status).value)
    return await _page(db, conditions, Application.submitted_at.desc(), limit=limit, offset=offset)
