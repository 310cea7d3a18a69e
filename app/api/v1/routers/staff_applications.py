from __future__ import annotations

from contextlib import asynccontextmanager
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.api import deps
from app.db.session import get_db
from app.models.application import Application
from app.schemas.application import (
    ApplicationApproveRequest,
    ApplicationAssignRequest,
    ApplicationCancelRequest,
    ApplicationDTO,
    ApplicationListResponse,
    ApplicationNoteCreateRequest,
    ApplicationNoteDTO,
    ApplicationRejectRequest,
    ApplicationStatus,
    ApplicationStatusChangeRequest,
    BankAccountDTO,
    DocumentDTO,
    DocumentListResponse,
    DocumentRejectRequest,
    DocumentReviewResponse,
    ReferenceDTO,
    ReferenceVerifyRequest,
    RiskAssessmentRequest,
    VerifyDataRequest,
    WorkflowResponse,
)
from app.schemas.history import StatusHistoryListResponse
from app.services import application_documents, application_queue, application_workflow, status_history
from app.services.application_workflow import WorkflowResult
from app.services.notifications import dispatch_notices
from app.services.status_transitions import allowed_transitions
from app.services.workflow_errors import WorkflowError

router = APIRouter(prefix="/staff/applications", tags=["staff-applications"])


@asynccontextmanager
async def _workflow_errors(db: AsyncSession):
    try:
        yield
    except WorkflowError as exc:
        await db.rollback()
        raise HTTPException(
            status_code=exc.status_code,
            detail={"code": exc.code, "message": exc.message, "details": exc.details},
        ) from exc
    except StaleDataError as exc:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": "concurrent_update",
                "message": "The application was updated by another request. Please refresh and retry.",
                "details": {},
            },
        ) from exc


def _application_dto(application: Application) -> ApplicationDTO:
    dto = ApplicationDTO.model_validate(application)
    return dto.model_copy(
        update={"allowed_transitions": sorted(allowed_transitions(application.status), key=lambda s: s.value)}
    )


def _workflow_response(result: WorkflowResult) -> WorkflowResponse:
    dispatch_notices(result.notices)
    return WorkflowResponse(
        application=_application_dto(result.application),
        application_status_changed=result.status_changed,
        new_application_status=result.application.status,
    )


def _document_response(result: WorkflowResult) -> DocumentReviewResponse:
    dispatch_notices(result.notices)
    return DocumentReviewResponse(
        document=DocumentDTO.model_validate(result.entity),
        application_status_changed=result.status_changed,
        new_application_status=result.application.status,
    )


@router.get(
    "/unassigned",
    response_model=ApplicationListResponse,
    summary="List submitted and in-review applications nobody has picked up",
)
async def list_unassigned(
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    actor: deps.Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
    status_filter: ApplicationStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> ApplicationListResponse:
    applications, total = await application_queue.list_unassigned(
        db, ctx, status=status_filter, limit=limit, offset=offset
    )
    return ApplicationListResponse(items=[_application_dto(item) for item in applications], total=total)


@router.get(
    "/my-queue",
    response_model=ApplicationListResponse,
    summary="List applications assigned to the current staff member",
)
async def list_my_queue(
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    actor: deps.Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
    status_filter: ApplicationStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> ApplicationListResponse:
    applications, total = await application_queue.list_assigned_to(
        db, ctx, actor.id, status=status_filter, limit=limit, offset=offset
    )
    return ApplicationListResponse(items=[_application_dto(item) for item in applications], total=total)


@router.get("/{application_id}", response_model=ApplicationDTO, summary="Get application")
async def get_application(
    application_id: UUID,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    actor: deps.Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> ApplicationDTO:
    async with _workflow_errors(db):
        application = await application_workflow.load_application(db, ctx, application_id)
    return _application_dto(application)


@router.get(
    "/{application_id}/history",
    response_model=StatusHistoryListResponse,
    summary="List application status history, newest first",
)
async def list_application_history(
    application_id: UUID,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    actor: deps.Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> StatusHistoryListResponse:
    async with _workflow_errors(db):
        application = await application_workflow.load_application(db, ctx, application_id)
        entries = await status_history.list_history(db, ctx, application)
    return StatusHistoryListResponse(items=[status_history.to_entry_dto(entry) for entry in entries])


@router.get(
    "/{application_id}/documents",
    response_model=DocumentListResponse,
    summary="List current application and applicant documents",
)
async def list_documents(
    application_id: UUID,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    actor: deps.Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> DocumentListResponse:
    async with _workflow_errors(db):
        application = await application_workflow.load_application(db, ctx, application_id)
        documents = await application_documents.list_application_documents(db, ctx, application)
    return DocumentListResponse(items=[DocumentDTO.model_validate(doc) for doc in documents])


@router.post("/{application_id}/status", response_model=WorkflowResponse, summary="Change application status")
async def change_status(
    application_id: UUID,
    payload: ApplicationStatusChangeRequest,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    actor: deps.Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> WorkflowResponse:
    async with _workflow_errors(db):
        application = await application_workflow.load_application(db, ctx, application_id, for_update=True)
        result = await application_workflow.change_status(
            db, ctx, application, payload.status, actor, notes=payload.notes
        )
        await db.commit()
    return _workflow_response(result)


@router.post("/{application_id}/approve", response_model=WorkflowResponse, summary="Approve application")
async def approve_application(
    application_id: UUID,
    payload: ApplicationApproveRequest,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    actor: deps.Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> WorkflowResponse:
    async with _workflow_errors(db):
        application = await application_workflow.load_application(db, ctx, application_id, for_update=True)
        result = await application_workflow.approve(
            db,
            ctx,
            application,
            actor,
            amount=payload.amount,
            term_months=payload.term_months,
            interest_rate=payload.interest_rate,
            notes=payload.notes,
        )
        await db.commit()
    return _workflow_response(result)


@router.post("/{application_id}/reject", response_model=WorkflowResponse, summary="Reject application")
async def reject_application(
    application_id: UUID,
    payload: ApplicationRejectRequest,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    actor: deps.Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> WorkflowResponse:
    async with _workflow_errors(db):
        application = await application_workflow.load_application(db, ctx, application_id, for_update=True)
        result = await application_workflow.reject(
            db, ctx, application, actor, reason=payload.reason, notes=payload.notes
        )
        await db.commit()
    return _workflow_response(result)


@router.post("/{application_id}/cancel", response_model=WorkflowResponse, summary="Cancel application")
async def cancel_application(
    application_id: UUID,
    payload: ApplicationCancelRequest,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    actor: deps.Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> WorkflowResponse:
    async with _workflow_errors(db):
        application = await application_workflow.load_application(db, ctx, application_id, for_update=True)
        result = await application_workflow.cancel(db, ctx, application, actor, reason=payload.reason)
        await db.commit()
    return _workflow_response(result)


@router.post(
    "/{application_id}/assign",
    response_model=ApplicationDTO,
    summary="Assign application to a staff member",
)
async def assign_application(
    application_id: UUID,
    payload: ApplicationAssignRequest,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    actor: deps.Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> ApplicationDTO:
    async with _workflow_errors(db):
        application = await application_workflow.load_application(db, ctx, application_id, for_update=True)
        result = await application_workflow.assign(db, ctx, application, actor, assignee_id=payload.user_id)
        await db.commit()
    return _application_dto(result.application)


@router.post(
    "/{application_id}/risk-assessment",
    response_model=ApplicationDTO,
    summary="Set the application risk level",
)
async def set_risk_assessment(
    application_id: UUID,
    payload: RiskAssessmentRequest,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    actor: deps.Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> ApplicationDTO:
    async with _workflow_errors(db):
        application = await application_workflow.load_application(db, ctx, application_id, for_update=True)
        result = await application_workflow.set_risk_assessment(
            db, ctx, application, actor, level=payload.level, data=payload.data
        )
        await db.commit()
    return _application_dto(result.application)


@router.put("/{application_id}/verify-data", response_model=WorkflowResponse, summary="Verify a checklist field")
async def verify_data(
    application_id: UUID,
    payload: VerifyDataRequest,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    actor: deps.Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> WorkflowResponse:
    async with _workflow_errors(db):
        application = await application_workflow.load_application(db, ctx, application_id, for_update=True)
        result = await application_workflow.verify_data(
            db,
            ctx,
            application,
            actor,
            field=payload.field,
            action=payload.action,
            method=payload.method.value if payload.method else None,
            rejection_reason=payload.rejection_reason,
            notes=payload.notes,
        )
        await db.commit()
    return _workflow_response(result)


@router.put(
    "/{application_id}/documents/{document_id}/approve",
    response_model=DocumentReviewResponse,
    summary="Approve a document",
)
async def approve_document(
    application_id: UUID,
    document_id: UUID,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    actor: deps.Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> DocumentReviewResponse:
    async with _workflow_errors(db):
        application = await application_workflow.load_application(db, ctx, application_id, for_update=True)
        result = await application_workflow.approve_document(db, ctx, application, document_id, actor)
        await db.commit()
    return _document_response(result)


@router.put(
    "/{application_id}/documents/{document_id}/reject",
    response_model=DocumentReviewResponse,
    summary="Reject a document",
)
async def reject_document(
    application_id: UUID,
    document_id: UUID,
    payload: DocumentRejectRequest,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    actor: deps.Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> DocumentReviewResponse:
    async with _workflow_errors(db):
        application = await application_workflow.load_application(db, ctx, application_id, for_update=True)
        result = await application_workflow.reject_document(
            db, ctx, application, document_id, actor, reason=payload.reason, comment=payload.comment
        )
        await db.commit()
    return _document_response(result)


@router.put(
    "/{application_id}/documents/{document_id}/unapprove",
    response_model=DocumentReviewResponse,
    summary="Return a document to pending review",
)
async def unapprove_document(
    application_id: UUID,
    document_id: UUID,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    actor: deps.Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> DocumentReviewResponse:
    async with _workflow_errors(db):
        application = await application_workflow.load_application(db, ctx, application_id, for_update=True)
        result = await application_workflow.unapprove_document(db, ctx, application, document_id, actor)
        await db.commit()
    return _document_response(result)


@router.put(
    "/{application_id}/references/{reference_id}/verify",
    response_model=ReferenceDTO,
    summary="Record a reference call outcome",
)
async def verify_reference(
    application_id: UUID,
    reference_id: UUID,
    payload: ReferenceVerifyRequest,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    actor: deps.Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> ReferenceDTO:
    async with _workflow_errors(db):
        application = await application_workflow.load_application(db, ctx, application_id, for_update=True)
        result = await application_workflow.verify_reference(
            db, ctx, application, reference_id, actor, result=payload.result, notes=payload.notes
        )
        await db.commit()
    return ReferenceDTO.model_validate(result.entity)


@router.put(
    "/{application_id}/bank-accounts/{bank_account_id}/verify",
    response_model=BankAccountDTO,
    summary="Mark a bank account as verified",
)
async def verify_bank_account(
    application_id: UUID,
    bank_account_id: UUID,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    actor: deps.Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> BankAccountDTO:
    async with _workflow_errors(db):
        application = await application_workflow.load_application(db, ctx, application_id, for_update=True)
        result = await application_workflow.verify_bank_account(db, ctx, application, bank_account_id, actor)
        await db.commit()
    return BankAccountDTO.model_validate(result.entity)


@router.put(
    "/{application_id}/bank-accounts/{bank_account_id}/unverify",
    response_model=BankAccountDTO,
    summary="Clear bank account verification",
)
async def unverify_bank_account(
    application_id: UUID,
    bank_account_id: UUID,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    actor: deps.Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> BankAccountDTO:
    async with _workflow_errors(db):
        application = await application_workflow.load_application(db, ctx, application_id, for_update=True)
        result = await application_workflow.unverify_bank_account(db, ctx, application, bank_account_id, actor)
        await db.commit()
    return BankAccountDTO.model_validate(result.entity)


@router.post(
    "/{application_id}/notes",
    response_model=ApplicationNoteDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Add a staff note",
)
async def add_note(
    application_id: UUID,
    payload: ApplicationNoteCreateRequest,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    actor: deps.Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> ApplicationNoteDTO:
    async with _workflow_errors(db):
        application = await application_workflow.load_application(db, ctx, application_id, for_update=True)
        result = await application_workflow.add_note(db, ctx, application, actor, payload.content)
        await db.commit()
    return ApplicationNoteDTO.model_validate(result.entity)
