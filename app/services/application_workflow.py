"""Application lifecycle and verification workflow.

Every operation takes the application loaded by ``load_application`` (row
locked for update), mutates it together with the affected sub-entity, appends
history rows to the same session and returns a ``WorkflowResult``. Callers
commit once and dispatch ``result.notices`` after the commit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.models.application import Application
from app.models.document import Document
from app.models.person_address import PersonAddress
from app.models.person_bank_account import PersonBankAccount
from app.models.person_employment import PersonEmployment
from app.models.person_reference import PersonReference
from app.schemas.application import (
    ApplicationDecision,
    ApplicationStatus,
    DocumentStatus,
    ReferenceStatus,
    ReferenceVerificationResult,
    RiskLevel,
    SubEntityStatus,
    VerificationAction,
)
from app.schemas.history import (
    ApplicationAssigned,
    AutoStatusAdvanced,
    BankAccountVerified,
    DocumentReviewed,
    FieldVerified,
    NoteAdded,
    ReferenceVerified,
    RiskAssessed,
    StatusChanged,
)
from app.services import application_documents
from app.services.notifications import StatusChangeNotice
from app.services.status_history import record_history
from app.services.status_transitions import (
    BLOCKED_STATUSES,
    can_be_approved,
    can_be_cancelled,
    can_be_rejected,
    can_transition,
    coerce_status,
    validate_transition,
)
from app.services.verification_checklist import (
    BankAccountKey,
    ChecklistField,
    ChecklistKey,
    ReferenceKey,
    apply_verification,
    has_rejected_entries,
    load_checklist,
    parse_checklist_key,
    rejected_fields,
)
from app.services.workflow_errors import (
    ApplicationNotFound,
    EntityNotFound,
    NotApprovable,
    NotCancellable,
    NotRejectable,
)

REFERENCE_RESULT_STATUS = {
    ReferenceVerificationResult.VERIFIED: ReferenceStatus.VERIFIED,
    ReferenceVerificationResult.NOT_VERIFIED: ReferenceStatus.REJECTED,
    ReferenceVerificationResult.NO_ANSWER: ReferenceStatus.UNREACHABLE,
}

_ACTION_ENTITY_STATUS = {
    VerificationAction.VERIFY: SubEntityStatus.VERIFIED,
    VerificationAction.REJECT: SubEntityStatus.REJECTED,
    VerificationAction.UNVERIFY: SubEntityStatus.PENDING,
}


@dataclass
class WorkflowResult:
    application: Application
    status_changed: bool = False
    entity: Any = None
    notices: list[StatusChangeNotice] = field(default_factory=list)

    @property
    def new_status(self) -> str:
        return self.application.status


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def load_application(
    db: AsyncSession,
    ctx: deps.TenantContext,
    application_id: UUID,
    *,
    for_update: bool = False,
) -> Application:
    stmt = select(Application).where(
        Application.id == application_id,
        Application.tenant_id == ctx.tenant_id,
    )
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    application = result.scalar_one_or_none()
    if application is None:
        raise ApplicationNotFound(application_id)
    return application


def _apply_transition(
    db: AsyncSession,
    application: Application,
    actor: deps.Actor,
    target: ApplicationStatus,
    *,
    now: datetime,
    trigger: str = "manual",
    notes: str | None = None,
    **context: Any,
) -> StatusChangeNotice:
    from_status = application.status
    to_status = validate_transition(from_status, target).value

    application.status = to_status
    application.status_changed_at = now
    application.status_changed_by = actor.id
    application.status_changed_by_type = actor.type
    if to_status == ApplicationStatus.SUBMITTED.value:
        application.submitted_at = now
    elif to_status == ApplicationStatus.DISBURSED.value:
        application.disbursed_at = now
    elif to_status == ApplicationStatus.CANCELLED.value:
        application.cancelled_at = now
    db.add(application)

    if trigger == "verifications_complete":
        event = AutoStatusAdvanced(from_status=from_status, to_status=to_status, description=notes)
    else:
        event = StatusChanged(
            from_status=from_status,
            to_status=to_status,
            description=notes,
            trigger=trigger,
            **context,
        )
    record_history(db, application, actor, event)
    return StatusChangeNotice(
        tenant_id=application.tenant_id,
        application_id=application.id,
        from_status=from_status,
        to_status=to_status,
        trigger=trigger,
        actor_id=actor.id,
    )


async def change_status(
    db: AsyncSession,
    ctx: deps.TenantContext,
    application: Application,
    target_status: ApplicationStatus | str,
    actor: deps.Actor,
    *,
    notes: str | None = None,
) -> WorkflowResult:
    notice = _apply_transition(db, application, actor, target_status, now=_now(), notes=notes)
    return WorkflowResult(application=application, status_changed=True, notices=[notice])


async def approve(
    db: AsyncSession,
    ctx: deps.TenantContext,
    application: Application,
    actor: deps.Actor,
    *,
    amount: Decimal | None = None,
    term_months: int | None = None,
    interest_rate: Decimal | None = None,
    notes: str | None = None,
) -> WorkflowResult:
    if not can_be_approved(application):
        raise NotApprovable(
            application.status,
            rejected_fields=rejected_fields(load_checklist(application.verification_checklist)),
        )
    now = _now()
    application.approved_amount = amount if amount is not None else application.requested_amount
    application.approved_term_months = (
        term_months if term_months is not None else application.requested_term_months
    )
    application.approved_interest_rate = (
        interest_rate if interest_rate is not None else application.interest_rate
    )
    application.decision = ApplicationDecision.APPROVED.value
    application.decision_at = now
    application.decision_by = actor.id
    application.decision_notes = notes
    notice = _apply_transition(
        db, application, actor, ApplicationStatus.APPROVED, now=now, trigger="approved", notes=notes
    )
    return WorkflowResult(application=application, status_changed=True, notices=[notice])


async def reject(
    db: AsyncSession,
    ctx: deps.TenantContext,
    application: Application,
    actor: deps.Actor,
    *,
    reason: str,
    notes: str | None = None,
) -> WorkflowResult:
    if not can_be_rejected(application):
        raise NotRejectable(application.status)
    now = _now()
    application.rejection_reason = reason
    application.decision = ApplicationDecision.REJECTED.value
    application.decision_at = now
    application.decision_by = actor.id
    application.decision_notes = notes
    notice = _apply_transition(
        db, application, actor, ApplicationStatus.REJECTED, now=now, trigger="rejected", notes=reason
    )
    return WorkflowResult(application=application, status_changed=True, notices=[notice])


async def cancel(
    db: AsyncSession,
    ctx: deps.TenantContext,
    application: Application,
    actor: deps.Actor,
    *,
    reason: str | None = None,
) -> WorkflowResult:
    if not can_be_cancelled(application):
        raise NotCancellable(application.status)
    notice = _apply_transition(
        db, application, actor, ApplicationStatus.CANCELLED, now=_now(), trigger="cancelled", notes=reason
    )
    return WorkflowResult(application=application, status_changed=True, notices=[notice])


async def _advance_if_clear(
    db: AsyncSession,
    ctx: deps.TenantContext,
    application: Application,
    actor: deps.Actor,
    now: datetime,
) -> StatusChangeNotice | None:
    if coerce_status(application.status) not in BLOCKED_STATUSES:
        return None
    if has_rejected_entries(load_checklist(application.verification_checklist)):
        return None
    # Document changes in this unit of work must be visible with autoflush disabled.
    await db.flush()
    documents = await application_documents.list_application_documents(db, ctx, application)
    outstanding = {DocumentStatus.REJECTED.value, DocumentStatus.PENDING.value}
    if any(doc.status in outstanding for doc in documents):
        return None
    if not can_transition(application.status, ApplicationStatus.IN_REVIEW):
        return None
    return _apply_transition(
        db,
        application,
        actor,
        ApplicationStatus.IN_REVIEW,
        now=now,
        trigger="verifications_complete",
    )


async def check_and_advance_status(
    db: AsyncSession,
    ctx: deps.TenantContext,
    application: Application,
    actor: deps.Actor,
) -> bool:
    """Move a blocked application back to ``IN_REVIEW`` once nothing is outstanding."""
    notice = await _advance_if_clear(db, ctx, application, actor, _now())
    return notice is not None


# ---------------------------------------------------------------------------
# Sub-entity lookups
# ---------------------------------------------------------------------------


async def _find_reference(
    db: AsyncSession, application: Application, reference_id: UUID
) -> PersonReference:
    if application.person_id is None:
        raise EntityNotFound("reference", reference_id)
    stmt = select(PersonReference).where(
        PersonReference.id == reference_id,
        PersonReference.person_id == application.person_id,
    )
    result = await db.execute(stmt)
    reference = result.scalar_one_or_none()
    if reference is None:
        raise EntityNotFound("reference", reference_id)
    return reference


async def _find_bank_account(
    db: AsyncSession, application: Application, bank_account_id: UUID
) -> PersonBankAccount:
    if application.person_id is None:
        raise EntityNotFound("bank_account", bank_account_id)
    stmt = select(PersonBankAccount).where(
        PersonBankAccount.id == bank_account_id,
        PersonBankAccount.person_id == application.person_id,
    )
    result = await db.execute(stmt)
    account = result.scalar_one_or_none()
    if account is None:
        raise EntityNotFound("bank_account", bank_account_id)
    return account


async def _find_current(db: AsyncSession, application: Application, model):
    if application.person_id is None:
        return None
    stmt = select(model).where(
        model.person_id == application.person_id,
        model.is_current.is_(True),
    )
    result = await db.execute(stmt)
    return result.scalars().first()


async def _resolve_sync_target(
    db: AsyncSession, application: Application, key: ChecklistKey
) -> tuple[str | None, Any]:
    if isinstance(key, ReferenceKey):
        return "reference", await _find_reference(db, application, key.reference_id)
    if isinstance(key, BankAccountKey):
        return "bank_account", await _find_bank_account(db, application, key.bank_account_id)
    if key in (ChecklistField.EMPLOYMENT, ChecklistField.INCOME):
        return "employment", await _find_current(db, application, PersonEmployment)
    if key == ChecklistField.ADDRESS:
        return "address", await _find_current(db, application, PersonAddress)
    return None, None


def _sync_entity(
    key: ChecklistKey,
    entity: Any,
    action: VerificationAction,
    actor: deps.Actor,
    now: datetime,
    method: str | None,
) -> None:
    verified = action == VerificationAction.VERIFY
    stamped = action != VerificationAction.UNVERIFY
    if isinstance(key, ReferenceKey):
        entity.status = _ACTION_ENTITY_STATUS[action].value
        entity.verified_at = now if stamped else None
        entity.verified_by = actor.id if stamped else None
    elif isinstance(key, BankAccountKey):
        entity.is_verified = verified
        entity.verified_at = now if verified else None
        entity.verified_by = actor.id if verified else None
    elif key == ChecklistField.INCOME:
        entity.income_verified = verified
        entity.income_verified_at = now if verified else None
        entity.income_verified_by = actor.id if verified else None
    else:
        entity.status = _ACTION_ENTITY_STATUS[action].value
        entity.verification_method = method if stamped else None
        entity.verified_at = now if stamped else None
        entity.verified_by = actor.id if stamped else None


# ---------------------------------------------------------------------------
# Field verification
# ---------------------------------------------------------------------------


async def verify_data(
    db: AsyncSession,
    ctx: deps.TenantContext,
    application: Application,
    actor: deps.Actor,
    *,
    field: str,
    action: VerificationAction | str,
    method: str | None = None,
    rejection_reason: str | None = None,
    notes: str | None = None,
) -> WorkflowResult:
    action = VerificationAction(action)
    key = parse_checklist_key(field)
    entity_type, entity = await _resolve_sync_target(db, application, key)

    now = _now()
    checklist, old_status, entry = apply_verification(
        application.verification_checklist,
        key,
        action,
        actor_id=actor.id,
        now=now,
        method=method,
        rejection_reason=rejection_reason,
        notes=notes,
    )
    application.verification_checklist = checklist
    db.add(application)

    if entity is not None:
        _sync_entity(key, entity, action, actor, now, method)
        db.add(entity)

    record_history(
        db,
        application,
        actor,
        FieldVerified(
            field=key.key,
            verification_action=action.value,
            old_status=old_status,
            new_status=entry.status,
            method=method,
            rejection_reason=rejection_reason,
            notes=notes,
            entity_type=entity_type if entity is not None else None,
            entity_id=entity.id if entity is not None else None,
            description=_field_description(key.key, action, rejection_reason),
        ),
    )

    notices: list[StatusChangeNotice] = []
    if action == VerificationAction.REJECT:
        corrections = ApplicationStatus.CORRECTIONS_PENDING
        if application.status != corrections.value and can_transition(application.status, corrections):
            notices.append(
                _apply_transition(
                    db,
                    application,
                    actor,
                    corrections,
                    now=now,
                    trigger="data_rejected",
                    notes=rejection_reason,
                    field=key.key,
                )
            )
    elif action == VerificationAction.VERIFY:
        notice = await _advance_if_clear(db, ctx, application, actor, now)
        if notice is not None:
            notices.append(notice)

    return WorkflowResult(
        application=application,
        status_changed=bool(notices),
        entity=entity,
        notices=notices,
    )


def _field_description(field_key: str, action: VerificationAction, rejection_reason: str | None) -> str:
    if action == VerificationAction.VERIFY:
        return f"Field {field_key} verified"
    if action == VerificationAction.REJECT:
        return f"Field {field_key} rejected: {rejection_reason}"
    return f"Field {field_key} verification reverted"


# ---------------------------------------------------------------------------
# Document review
# ---------------------------------------------------------------------------


def _document_event(document: Document, action: str, old_status: str, **extra) -> DocumentReviewed:
    verb = action.removeprefix("document_")
    return DocumentReviewed(
        action=action,
        document_id=document.id,
        document_type=document.type,
        old_status=old_status,
        new_status=document.status,
        description=f"Document {document.type} {verb}",
        **extra,
    )


async def approve_document(
    db: AsyncSession,
    ctx: deps.TenantContext,
    application: Application,
    document_id: UUID,
    actor: deps.Actor,
) -> WorkflowResult:
    document = await application_documents.find_application_document(db, ctx, application, document_id)
    now = _now()
    old_status = document.status
    document.status = DocumentStatus.APPROVED.value
    document.reviewed_at = now
    document.reviewed_by = actor.id
    db.add(document)
    record_history(db, application, actor, _document_event(document, "document_approved", old_status))

    notice = await _advance_if_clear(db, ctx, application, actor, now)
    notices = [notice] if notice is not None else []
    return WorkflowResult(
        application=application, status_changed=bool(notices), entity=document, notices=notices
    )


async def reject_document(
    db: AsyncSession,
    ctx: deps.TenantContext,
    application: Application,
    document_id: UUID,
    actor: deps.Actor,
    *,
    reason: str,
    comment: str | None = None,
) -> WorkflowResult:
    document = await application_documents.find_application_document(db, ctx, application, document_id)
    now = _now()
    old_status = document.status
    document.status = DocumentStatus.REJECTED.value
    document.rejection_reason = reason
    document.rejection_comment = comment
    document.reviewed_at = now
    document.reviewed_by = actor.id
    db.add(document)
    record_history(
        db,
        application,
        actor,
        _document_event(document, "document_rejected", old_status, reason=reason, comment=comment),
    )

    notices: list[StatusChangeNotice] = []
    docs_pending = ApplicationStatus.DOCS_PENDING
    if application.status != docs_pending.value and can_transition(application.status, docs_pending):
        notices.append(
            _apply_transition(
                db,
                application,
                actor,
                docs_pending,
                now=now,
                trigger="document_rejected",
                notes=reason,
                document_id=document.id,
            )
        )
    return WorkflowResult(
        application=application, status_changed=bool(notices), entity=document, notices=notices
    )


async def unapprove_document(
    db: AsyncSession,
    ctx: deps.TenantContext,
    application: Application,
    document_id: UUID,
    actor: deps.Actor,
) -> WorkflowResult:
    document = await application_documents.find_application_document(db, ctx, application, document_id)
    old_status = document.status
    document.status = DocumentStatus.PENDING.value
    document.rejection_reason = None
    document.rejection_comment = None
    document.reviewed_at = None
    document.reviewed_by = None
    db.add(document)
    record_history(db, application, actor, _document_event(document, "document_unapproved", old_status))
    return WorkflowResult(application=application, entity=document)


# ---------------------------------------------------------------------------
# References and bank accounts
# ---------------------------------------------------------------------------


async def verify_reference(
    db: AsyncSession,
    ctx: deps.TenantContext,
    application: Application,
    reference_id: UUID,
    actor: deps.Actor,
    *,
    result: ReferenceVerificationResult | str,
    notes: str | None = None,
) -> WorkflowResult:
    result = ReferenceVerificationResult(result)
    reference = await _find_reference(db, application, reference_id)
    old_status = reference.status
    reference.status = REFERENCE_RESULT_STATUS[result].value
    reference.verification_notes = notes
    reference.verified_at = _now()
    reference.verified_by = actor.id
    db.add(reference)
    record_history(
        db,
        application,
        actor,
        ReferenceVerified(
            reference_id=reference.id,
            reference_name=reference.full_name,
            result=result.value,
            old_status=old_status,
            new_status=reference.status,
            notes=notes,
            description=f"Reference {reference.full_name} marked {reference.status}",
        ),
    )
    return WorkflowResult(application=application, entity=reference)


async def _set_bank_account_verified(
    db: AsyncSession,
    application: Application,
    bank_account_id: UUID,
    actor: deps.Actor,
    verified: bool,
) -> WorkflowResult:
    account = await _find_bank_account(db, application, bank_account_id)
    was_verified = bool(account.is_verified)
    account.is_verified = verified
    account.verified_at = _now() if verified else None
    account.verified_by = actor.id if verified else None
    db.add(account)
    action = "bank_account_verified" if verified else "bank_account_unverified"
    record_history(
        db,
        application,
        actor,
        BankAccountVerified(
            action=action,
            bank_account_id=account.id,
            bank_name=account.bank_name,
            was_verified=was_verified,
            description=f"Bank account {account.clabe_masked} {'verified' if verified else 'unverified'}",
        ),
    )
    return WorkflowResult(application=application, entity=account)


async def verify_bank_account(
    db: AsyncSession,
    ctx: deps.TenantContext,
    application: Application,
    bank_account_id: UUID,
    actor: deps.Actor,
) -> WorkflowResult:
    return await _set_bank_account_verified(db, application, bank_account_id, actor, True)


async def unverify_bank_account(
    db: AsyncSession,
    ctx: deps.TenantContext,
    application: Application,
    bank_account_id: UUID,
    actor: deps.Actor,
) -> WorkflowResult:
    return await _set_bank_account_verified(db, application, bank_account_id, actor, False)


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------


async def add_note(
    db: AsyncSession,
    ctx: deps.TenantContext,
    application: Application,
    actor: deps.Actor,
    content: str,
) -> WorkflowResult:
    note_id = uuid4()
    note = {
        "id": str(note_id),
        "content": content,
        "author": {"id": str(actor.id), "name": actor.name},
        "created_at": _now().isoformat(),
    }
    application.notes = [*(application.notes or []), note]
    db.add(application)
    record_history(
        db,
        application,
        actor,
        NoteAdded.for_content(note_id, content),
    )
    return WorkflowResult(application=application, entity=note)


# ---------------------------------------------------------------------------
# Assignment and risk assessment
# ---------------------------------------------------------------------------


async def assign(
    db: AsyncSession,
    ctx: deps.TenantContext,
    application: Application,
    actor: deps.Actor,
    *,
    assignee_id: UUID,
) -> WorkflowResult:
    previous = application.assigned_to
    application.assigned_to = assignee_id
    application.assigned_at = _now()
    application.assigned_by = actor.id
    db.add(application)
    record_history(
        db,
        application,
        actor,
        ApplicationAssigned(
            assigned_to=assignee_id,
            previous_assignee=previous,
            description=f"Application assigned to {assignee_id}",
        ),
    )
    return WorkflowResult(application=application)


async def set_risk_assessment(
    db: AsyncSession,
    ctx: deps.TenantContext,
    application: Application,
    actor: deps.Actor,
    *,
    level: RiskLevel | str,
    data: dict[str, Any] | None = None,
) -> WorkflowResult:
    """Record the analyst's risk level; status and checklist are left alone."""
    level = RiskLevel(level)
    previous = application.risk_level
    application.risk_level = level.value
    application.risk_data = data
    db.add(application)
    record_history(
        db,
        application,
        actor,
        RiskAssessed(
            level=level.value,
            previous_level=previous,
            data=data,
            description=f"Risk level set to {level.value}",
        ),
    )
    return WorkflowResult(application=application)
