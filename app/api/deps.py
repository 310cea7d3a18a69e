from dataclasses import dataclass
from uuid import UUID

from fastapi import Header, HTTPException, Request, status

from app.core.context import set_actor_id, set_tenant_id
from app.core.settings import settings


@dataclass(slots=True)
class TenantContext:
    tenant_id: str


@dataclass(frozen=True, slots=True)
class Actor:
    """Already-authenticated staff member performing a workflow operation."""

    id: UUID
    name: str | None = None
    type: str = "staff_account"


def _resolve_subdomain(request: Request) -> str | None:
    host = request.headers.get("host", "").split(":")[0]
    parts = host.split(".")
    if len(parts) > 2:
        return parts[0]
    return None


async def get_tenant_context(
    request: Request,
    tenant_id: str | None = Header(default=None, alias="X-Tenant-ID"),
) -> TenantContext:
    if settings.tenancy_mode == "multi":
        candidate = tenant_id or _resolve_subdomain(request)
        if not candidate:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Tenant resolution failed: provide X-Tenant-ID header or subdomain",
            )
        set_tenant_id(candidate)
        return TenantContext(tenant_id=candidate)

    set_tenant_id(settings.default_tenant_id)
    return TenantContext(tenant_id=settings.default_tenant_id)


async def get_current_actor(
    actor_id: str | None = Header(default=None, alias="X-Actor-ID"),
    actor_name: str | None = Header(default=None, alias="X-Actor-Name"),
    actor_type: str | None = Header(default=None, alias="X-Actor-Type"),
) -> Actor:
    # Authentication happens upstream; the gateway forwards the resolved identity.
    if not actor_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        parsed = UUID(actor_id)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "invalid_actor", "message": "X-Actor-ID must be a UUID", "details": {}},
        ) from exc
    set_actor_id(str(parsed))
    return Actor(id=parsed, name=actor_name, type=actor_type or "staff_account")
