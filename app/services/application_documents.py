from __future__ import annotations

from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.models.application import Application
from app.models.document import Document
from app.schemas.application import DocumentOwnerType
from app.services.workflow_errors import EntityNotFound


async def fetch_scope_documents(
    db: AsyncSession,
    ctx: deps.TenantContext,
    application: Application,
) -> list[Document]:
    """All documents owned by the application or by its applicant person, newest first."""
    owners = [
        and_(
            Document.documentable_type == DocumentOwnerType.APPLICATION.value,
            Document.documentable_id == application.id,
        )
    ]
    if application.person_id is not None:
        owners.append(
            and_(
                Document.documentable_type == DocumentOwnerType.PERSON.value,
                Document.documentable_id == application.person_id,
            )
        )
    stmt = (
        select(Document)
        .where(Document.tenant_id == ctx.tenant_id, or_(*owners))
        .order_by(Document.created_at.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


def _is_direct(document: Document, application: Application) -> bool:
    return (
        document.documentable_type == DocumentOwnerType.APPLICATION.value
        and document.documentable_id == application.id
    )


def _is_person_owned(document: Document, application: Application) -> bool:
    return (
        application.person_id is not None
        and document.documentable_type == DocumentOwnerType.PERSON.value
        and document.documentable_id == application.person_id
    )


def unify_documents(documents: list[Document], application: Application) -> list[Document]:
    """Collapse direct and person documents to one current document per type.

    Replaced versions are skipped and a direct document wins over a person
    document of the same type.
    """
    current = [doc for doc in documents if doc.replaced_at is None]
    unified: list[Document] = []
    seen_types: set[str] = set()
    for owned in (_is_direct, _is_person_owned):
        for doc in current:
            if not owned(doc, application) or doc.type in seen_types:
                continue
            seen_types.add(doc.type)
            unified.append(doc)
    return unified


async def list_application_documents(
    db: AsyncSession,
    ctx: deps.TenantContext,
    application: Application,
) -> list[Document]:
    documents = await fetch_scope_documents(db, ctx, application)
    return unify_documents(documents, application)


async def find_application_document(
    db: AsyncSession,
    ctx: deps.TenantContext,
    application: Application,
    document_id: UUID,
) -> Document:
    documents = await fetch_scope_documents(db, ctx, application)
    for doc in documents:
        if doc.id == document_id and _is_direct(doc, application):
            return doc
    for doc in documents:
        if doc.id == document_id and _is_person_owned(doc, application) and doc.replaced_at is None:
            return doc
    raise EntityNotFound("document", document_id)
