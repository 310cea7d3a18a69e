from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import (
    FakeResult,
    documents_handler,
    entity_handler,
    make_address,
    make_application,
    make_bank_account,
    make_document,
    make_employment,
    make_reference,
)
from app.models.application import Application
from app.models.person_address import PersonAddress
from app.models.person_bank_account import PersonBankAccount
from app.models.person_employment import PersonEmployment
from app.models.person_reference import PersonReference
from app.services import application_workflow
from app.services.status_transitions import can_transition
from app.services.workflow_errors import (
    ApplicationNotFound,
    EntityNotFound,
    InvalidChecklistKey,
    InvalidTransition,
    NotApprovable,
    NotCancellable,
    NotRejectable,
)


def _actions(fake_db) -> list[str]:
    return [entry.event_metadata["action"] for entry in fake_db.history_entries()]


def _assert_transition_entries_follow_table(fake_db) -> None:
    for entry in fake_db.history_entries():
        if entry.event_metadata["action"] in {"status_change", "auto_status_advance"}:
            assert can_transition(entry.from_status, entry.to_status)


# ---------------------------------------------------------------------------
# load_application
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_load_application_locks_row(fake_db, tenant_ctx) -> None:
    application = make_application()
    fake_db.on_execute(entity_handler(Application, FakeResult(scalar=application)))

    loaded = await application_workflow.load_application(fake_db, tenant_ctx, application.id, for_update=True)

    assert loaded is application
    assert fake_db.executed[0]._for_update_arg is not None


@pytest.mark.asyncio
async def test_load_application_missing(fake_db, tenant_ctx) -> None:
    with pytest.raises(ApplicationNotFound) as excinfo:
        await application_workflow.load_application(fake_db, tenant_ctx, uuid4())
    assert excinfo.value.code == "application_not_found"
    assert excinfo.value.status_code == 404


# ---------------------------------------------------------------------------
# change_status / approve / reject / cancel
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_change_status_refuses_undeclared_edge(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="IN_REVIEW")

    with pytest.raises(InvalidTransition) as excinfo:
        await application_workflow.change_status(fake_db, tenant_ctx, application, "DISBURSED", actor)

    assert excinfo.value.from_status == "IN_REVIEW"
    assert excinfo.value.to_status == "DISBURSED"
    assert application.status == "IN_REVIEW"
    assert fake_db.history_entries() == []


@pytest.mark.asyncio
async def test_change_status_disburses_approved_application(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="APPROVED")

    result = await application_workflow.change_status(
        fake_db, tenant_ctx, application, "DISBURSED", actor, notes="Funds sent"
    )

    assert result.status_changed is True
    assert application.status == "DISBURSED"
    assert application.disbursed_at is not None
    assert application.status_changed_by == actor.id
    [entry] = fake_db.history_entries()
    assert (entry.from_status, entry.to_status) == ("APPROVED", "DISBURSED")
    assert entry.notes == "Funds sent"
    assert entry.changed_by == actor.id
    assert entry.changed_by_type == "staff_account"
    assert entry.event_metadata["action"] == "status_change"
    assert entry.event_metadata["trigger"] == "manual"
    [notice] = result.notices
    assert notice.to_status == "DISBURSED"


@pytest.mark.asyncio
async def test_approve_uses_requested_terms_by_default(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="IN_REVIEW", checklist={"curp": {"status": "verified"}})

    await application_workflow.approve(fake_db, tenant_ctx, application, actor, term_months=18)

    assert application.status == "APPROVED"
    assert application.approved_amount == Decimal("25000.00")
    assert application.approved_term_months == 18
    assert application.approved_interest_rate == Decimal("36.0000")
    assert application.decision == "APPROVED"
    assert application.decision_by == actor.id
    [entry] = fake_db.history_entries()
    assert entry.event_metadata["trigger"] == "approved"


@pytest.mark.asyncio
async def test_approve_blocked_by_rejected_field(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="IN_REVIEW", checklist={"rfc": {"status": "rejected"}})

    with pytest.raises(NotApprovable) as excinfo:
        await application_workflow.approve(fake_db, tenant_ctx, application, actor)

    assert excinfo.value.details["rejected_fields"] == ["rfc"]
    assert application.status == "IN_REVIEW"
    assert application.decision is None


@pytest.mark.asyncio
async def test_approve_outside_review_is_refused(fake_db, tenant_ctx, actor) -> None:
    with pytest.raises(NotApprovable):
        await application_workflow.approve(fake_db, tenant_ctx, make_application(status="SUBMITTED"), actor)


@pytest.mark.asyncio
async def test_reject_records_reason(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="DOCS_PENDING")

    await application_workflow.reject(
        fake_db, tenant_ctx, application, actor, reason="Income not verifiable", notes="Called twice"
    )

    assert application.status == "REJECTED"
    assert application.rejection_reason == "Income not verifiable"
    assert application.decision == "REJECTED"
    assert application.decision_notes == "Called twice"
    [entry] = fake_db.history_entries()
    assert entry.notes == "Income not verifiable"
    assert entry.event_metadata["trigger"] == "rejected"


@pytest.mark.asyncio
async def test_reject_after_approval_is_refused(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="APPROVED")

    with pytest.raises(NotRejectable):
        await application_workflow.reject(fake_db, tenant_ctx, application, actor, reason="late")

    assert application.status == "APPROVED"
    assert application.rejection_reason is None


@pytest.mark.asyncio
async def test_cancel(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="SUBMITTED")

    result = await application_workflow.cancel(fake_db, tenant_ctx, application, actor, reason="Client withdrew")

    assert result.new_status == "CANCELLED"
    assert application.cancelled_at is not None
    assert fake_db.history_entries()[0].event_metadata["trigger"] == "cancelled"


@pytest.mark.asyncio
async def test_cancel_terminal_is_refused(fake_db, tenant_ctx, actor) -> None:
    with pytest.raises(NotCancellable):
        await application_workflow.cancel(fake_db, tenant_ctx, make_application(status="DISBURSED"), actor)


# ---------------------------------------------------------------------------
# verify_data and auto-advance
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_verifying_last_rejected_field_returns_to_review(fake_db, tenant_ctx, actor) -> None:
    application = make_application(
        status="CORRECTIONS_PENDING",
        checklist={"curp": {"status": "rejected", "rejection_reason": "Typo"}},
    )

    result = await application_workflow.verify_data(
        fake_db, tenant_ctx, application, actor, field="curp", action="verify", method="MANUAL"
    )

    assert application.verification_checklist["curp"]["status"] == "verified"
    assert application.status == "IN_REVIEW"
    assert result.status_changed is True
    assert _actions(fake_db) == ["data_verification", "auto_status_advance"]
    advance = fake_db.history_entries()[1]
    assert (advance.from_status, advance.to_status) == ("CORRECTIONS_PENDING", "IN_REVIEW")
    assert advance.event_metadata["trigger"] == "verifications_complete"
    _assert_transition_entries_follow_table(fake_db)


@pytest.mark.asyncio
async def test_rejecting_field_in_review_requests_corrections(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="IN_REVIEW")

    result = await application_workflow.verify_data(
        fake_db,
        tenant_ctx,
        application,
        actor,
        field="rfc",
        action="reject",
        rejection_reason="Does not match SAT",
    )

    assert application.status == "CORRECTIONS_PENDING"
    assert result.status_changed is True
    field_entry, status_entry = fake_db.history_entries()
    assert field_entry.to_status == "DATA_VERIFICATION"
    assert field_entry.event_metadata["field"] == "rfc"
    assert field_entry.event_metadata["new_status"] == "rejected"
    assert (status_entry.from_status, status_entry.to_status) == ("IN_REVIEW", "CORRECTIONS_PENDING")
    assert status_entry.event_metadata["trigger"] == "data_rejected"
    assert status_entry.event_metadata["field"] == "rfc"


@pytest.mark.asyncio
async def test_second_field_rejection_does_not_transition_again(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="CORRECTIONS_PENDING", checklist={"rfc": {"status": "rejected"}})

    result = await application_workflow.verify_data(
        fake_db, tenant_ctx, application, actor, field="curp", action="reject", rejection_reason="Blurry"
    )

    assert result.status_changed is False
    assert application.status == "CORRECTIONS_PENDING"
    assert _actions(fake_db) == ["data_verification"]


@pytest.mark.asyncio
async def test_rejecting_field_without_edge_keeps_status(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="DOCS_PENDING")

    result = await application_workflow.verify_data(
        fake_db, tenant_ctx, application, actor, field="email", action="reject", rejection_reason="Bounced"
    )

    assert result.status_changed is False
    assert application.status == "DOCS_PENDING"


@pytest.mark.asyncio
async def test_malformed_sub_entity_key_is_refused_before_mutation(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="IN_REVIEW")

    with pytest.raises(InvalidChecklistKey):
        await application_workflow.verify_data(
            fake_db, tenant_ctx, application, actor, field="reference_not-a-uuid", action="verify"
        )

    assert application.verification_checklist == {}
    assert fake_db.added == []


@pytest.mark.asyncio
async def test_unverify_never_advances(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="CORRECTIONS_PENDING", checklist={"curp": {"status": "rejected"}})

    result = await application_workflow.verify_data(
        fake_db, tenant_ctx, application, actor, field="curp", action="unverify"
    )

    assert result.status_changed is False
    assert application.status == "CORRECTIONS_PENDING"
    assert application.verification_checklist["curp"]["status"] == "pending"


@pytest.mark.asyncio
async def test_auto_advance_is_idempotent(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="DOCS_PENDING")
    doc = make_document(application, status="APPROVED")
    fake_db.on_execute(documents_handler([doc]))

    first = await application_workflow.check_and_advance_status(fake_db, tenant_ctx, application, actor)
    second = await application_workflow.check_and_advance_status(fake_db, tenant_ctx, application, actor)

    assert first is True
    assert second is False
    assert application.status == "IN_REVIEW"
    assert _actions(fake_db) == ["auto_status_advance"]


@pytest.mark.asyncio
async def test_auto_advance_blocked_by_rejected_field(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="DOCS_PENDING", checklist={"curp": {"status": "rejected"}})

    assert await application_workflow.check_and_advance_status(fake_db, tenant_ctx, application, actor) is False
    assert application.status == "DOCS_PENDING"


@pytest.mark.asyncio
async def test_auto_advance_only_from_blocked_statuses(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="SUBMITTED")

    assert await application_workflow.check_and_advance_status(fake_db, tenant_ctx, application, actor) is False
    assert fake_db.executed == []


@pytest.mark.asyncio
async def test_auto_advance_ignores_replaced_documents(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="DOCS_PENDING")
    old_upload = make_document(
        application,
        status="REJECTED",
        doc_type="PROOF_OF_ADDRESS",
        owner="person",
        replaced_at=datetime(2026, 1, 7, tzinfo=timezone.utc),
    )
    new_upload = make_document(application, status="APPROVED", doc_type="PROOF_OF_ADDRESS", owner="person")
    fake_db.on_execute(documents_handler([new_upload, old_upload]))

    assert await application_workflow.check_and_advance_status(fake_db, tenant_ctx, application, actor) is True


# ---------------------------------------------------------------------------
# Document review
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_document_reject_then_approve_round_trip(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="IN_REVIEW")
    doc = make_document(application, doc_type="PROOF_OF_INCOME")
    fake_db.on_execute(documents_handler([doc]))

    rejected = await application_workflow.reject_document(
        fake_db, tenant_ctx, application, doc.id, actor, reason="Illegible", comment="Upload a scan"
    )

    assert rejected.status_changed is True
    assert application.status == "DOCS_PENDING"
    assert doc.status == "REJECTED"
    assert doc.rejection_comment == "Upload a scan"
    assert _actions(fake_db) == ["document_rejected", "status_change"]
    assert fake_db.history_entries()[1].event_metadata["trigger"] == "document_rejected"

    approved = await application_workflow.approve_document(fake_db, tenant_ctx, application, doc.id, actor)

    assert approved.status_changed is True
    assert approved.entity is doc
    assert doc.status == "APPROVED"
    assert doc.reviewed_by == actor.id
    assert application.status == "IN_REVIEW"
    assert _actions(fake_db)[-2:] == ["document_approved", "auto_status_advance"]
    _assert_transition_entries_follow_table(fake_db)


@pytest.mark.asyncio
async def test_approving_one_of_two_pending_documents_does_not_advance(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="DOCS_PENDING")
    doc_a = make_document(application, doc_type="INE_FRONT")
    doc_b = make_document(application, doc_type="INE_BACK")
    fake_db.on_execute(documents_handler([doc_a, doc_b]))

    result = await application_workflow.approve_document(fake_db, tenant_ctx, application, doc_a.id, actor)

    assert result.status_changed is False
    assert application.status == "DOCS_PENDING"
    assert _actions(fake_db) == ["document_approved"]


@pytest.mark.asyncio
async def test_approving_last_document_advances(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="DOCS_PENDING")
    done = make_document(application, doc_type="INE_FRONT", status="APPROVED")
    last = make_document(application, doc_type="INE_BACK")
    fake_db.on_execute(documents_handler([done, last]))

    result = await application_workflow.approve_document(fake_db, tenant_ctx, application, last.id, actor)

    assert result.status_changed is True
    assert application.status == "IN_REVIEW"


@pytest.mark.asyncio
async def test_unapprove_document_clears_review(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="DOCS_PENDING")
    doc = make_document(
        application,
        status="REJECTED",
        rejection_reason="Expired",
        rejection_comment="Upload current ID",
        reviewed_by=uuid4(),
    )
    fake_db.on_execute(documents_handler([doc]))

    result = await application_workflow.unapprove_document(fake_db, tenant_ctx, application, doc.id, actor)

    assert result.status_changed is False
    assert doc.status == "PENDING"
    assert doc.rejection_reason is None
    assert doc.rejection_comment is None
    assert doc.reviewed_by is None
    [entry] = fake_db.history_entries()
    assert entry.to_status == "DOCUMENT_REVIEW"
    assert entry.event_metadata["old_status"] == "REJECTED"


@pytest.mark.asyncio
async def test_document_outside_scope_is_not_found(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="IN_REVIEW")
    fake_db.on_execute(documents_handler([]))

    with pytest.raises(EntityNotFound) as excinfo:
        await application_workflow.approve_document(fake_db, tenant_ctx, application, uuid4(), actor)
    assert excinfo.value.code == "document_not_found"


# ---------------------------------------------------------------------------
# Sub-entity sync, references, bank accounts
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_verify_data_syncs_reference_status(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="IN_REVIEW")
    reference = make_reference(application)
    fake_db.on_execute(entity_handler(PersonReference, FakeResult(scalar=reference)))

    result = await application_workflow.verify_data(
        fake_db,
        tenant_ctx,
        application,
        actor,
        field=f"reference_{reference.id}",
        action="reject",
        rejection_reason="Does not know applicant",
    )

    assert reference.status == "REJECTED"
    assert reference.verified_by == actor.id
    assert result.entity is reference
    field_entry = fake_db.history_entries()[0]
    assert field_entry.event_metadata["entity_type"] == "reference"
    assert field_entry.event_metadata["entity_id"] == str(reference.id)


@pytest.mark.asyncio
async def test_verify_data_syncs_bank_account(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="IN_REVIEW")
    account = make_bank_account(application)
    fake_db.on_execute(entity_handler(PersonBankAccount, FakeResult(scalar=account)))

    await application_workflow.verify_data(
        fake_db, tenant_ctx, application, actor, field=f"bank_account_{account.id}", action="verify"
    )

    assert account.is_verified is True
    assert account.verified_at is not None


@pytest.mark.asyncio
async def test_verify_data_income_marks_current_employment(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="IN_REVIEW")
    employment = make_employment(application)
    fake_db.on_execute(entity_handler(PersonEmployment, FakeResult(items=[employment])))

    await application_workflow.verify_data(fake_db, tenant_ctx, application, actor, field="income", action="verify")

    assert employment.income_verified is True
    assert employment.income_verified_by == actor.id
    assert employment.status == "PENDING"


@pytest.mark.asyncio
async def test_verify_data_address_records_method(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="IN_REVIEW")
    address = make_address(application)
    fake_db.on_execute(entity_handler(PersonAddress, FakeResult(items=[address])))

    await application_workflow.verify_data(
        fake_db, tenant_ctx, application, actor, field="address", action="verify", method="DOCUMENT"
    )

    assert address.status == "VERIFIED"
    assert address.verification_method == "DOCUMENT"


@pytest.mark.asyncio
async def test_verify_data_without_current_employment_still_records_entry(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="IN_REVIEW")

    result = await application_workflow.verify_data(
        fake_db, tenant_ctx, application, actor, field="employment", action="verify"
    )

    assert result.entity is None
    assert application.verification_checklist["employment"]["status"] == "verified"
    assert fake_db.history_entries()[0].event_metadata["entity_type"] is None


@pytest.mark.asyncio
async def test_verify_reference_maps_call_outcome(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="DOCS_PENDING")
    reference = make_reference(application)
    fake_db.on_execute(entity_handler(PersonReference, FakeResult(scalar=reference)))

    result = await application_workflow.verify_reference(
        fake_db, tenant_ctx, application, reference.id, actor, result="NO_ANSWER", notes="Voicemail"
    )

    assert reference.status == "UNREACHABLE"
    assert reference.verification_notes == "Voicemail"
    assert result.status_changed is False
    assert application.status == "DOCS_PENDING"
    [entry] = fake_db.history_entries()
    assert (entry.from_status, entry.to_status) == ("REFERENCE_VERIFICATION", "REFERENCE_VERIFICATION")
    assert entry.event_metadata["result"] == "NO_ANSWER"
    assert entry.event_metadata["new_status"] == "UNREACHABLE"


@pytest.mark.asyncio
async def test_verify_reference_for_company_applicant_is_not_found(fake_db, tenant_ctx, actor) -> None:
    application = make_application(applicant_type="COMPANY", person_id=None, company_id=uuid4())

    with pytest.raises(EntityNotFound) as excinfo:
        await application_workflow.verify_reference(
            fake_db, tenant_ctx, application, uuid4(), actor, result="VERIFIED"
        )
    assert excinfo.value.code == "reference_not_found"
    assert fake_db.executed == []


@pytest.mark.asyncio
async def test_bank_account_verify_and_unverify(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="IN_REVIEW")
    account = make_bank_account(application)
    fake_db.on_execute(entity_handler(PersonBankAccount, FakeResult(scalar=account)))

    await application_workflow.verify_bank_account(fake_db, tenant_ctx, application, account.id, actor)
    assert account.is_verified is True
    assert account.verified_by == actor.id

    await application_workflow.unverify_bank_account(fake_db, tenant_ctx, application, account.id, actor)
    assert account.is_verified is False
    assert account.verified_at is None
    assert account.verified_by is None

    verified, unverified = fake_db.history_entries()
    assert verified.event_metadata["action"] == "bank_account_verified"
    assert verified.event_metadata["was_verified"] is False
    assert unverified.event_metadata["action"] == "bank_account_unverified"
    assert unverified.event_metadata["was_verified"] is True
    assert application.status == "IN_REVIEW"


@pytest.mark.asyncio
async def test_bank_account_missing(fake_db, tenant_ctx, actor) -> None:
    with pytest.raises(EntityNotFound) as excinfo:
        await application_workflow.verify_bank_account(
            fake_db, tenant_ctx, make_application(), uuid4(), actor
        )
    assert excinfo.value.code == "bank_account_not_found"


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_add_note_appends_and_truncates_preview(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="IN_REVIEW")
    content = "Applicant asked to move the disbursement date to the next pay period."

    result = await application_workflow.add_note(fake_db, tenant_ctx, application, actor, content)

    assert application.notes == [result.entity]
    assert result.entity["author"] == {"id": str(actor.id), "name": actor.name}
    [entry] = fake_db.history_entries()
    assert entry.to_status == "NOTE_ADDED"
    assert entry.notes == content
    assert entry.event_metadata["content_preview"] == content[:50] + "..."
    assert entry.event_metadata["note_id"] == result.entity["id"]


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["nationality", "gender", "ine", "birth_state", "birth_country"])
async def test_rejecting_person_data_field_requests_corrections(fake_db, tenant_ctx, actor, field) -> None:
    application = make_application(status="IN_REVIEW")

    result = await application_workflow.verify_data(
        fake_db, tenant_ctx, application, actor, field=field, action="reject", rejection_reason="Mismatch"
    )

    assert result.status_changed is True
    assert application.status == "CORRECTIONS_PENDING"
    assert application.verification_checklist[field]["status"] == "rejected"
    assert _actions(fake_db) == ["data_verification", "status_change"]


@pytest.mark.asyncio
async def test_unlisted_field_is_recorded_without_sync(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="IN_REVIEW")

    result = await application_workflow.verify_data(
        fake_db, tenant_ctx, application, actor, field="marital_status", action="verify"
    )

    assert result.entity is None
    assert application.verification_checklist["marital_status"]["status"] == "verified"
    metadata = fake_db.history_entries()[0].event_metadata
    assert metadata["field"] == "marital_status"
    assert metadata["entity_type"] is None
    assert fake_db.executed == []


@pytest.mark.asyncio
async def test_null_checklist_status_counts_as_pending(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="CORRECTIONS_PENDING", checklist={"curp": {"status": None}})

    advanced = await application_workflow.check_and_advance_status(fake_db, tenant_ctx, application, actor)

    assert advanced is True
    assert application.status == "IN_REVIEW"
    assert application.verification_checklist == {"curp": {"status": None}}


@pytest.mark.asyncio
async def test_verify_keeps_legacy_entries_as_stored(fake_db, tenant_ctx, actor) -> None:
    stored = {"rfc": "verified", "email": {"status": "VERIFIED"}, "phone": {"status": None}}
    application = make_application(status="IN_REVIEW", checklist=dict(stored))

    await application_workflow.verify_data(fake_db, tenant_ctx, application, actor, field="curp", action="verify")

    checklist = application.verification_checklist
    assert checklist["curp"]["status"] == "verified"
    assert {key: checklist[key] for key in stored} == stored


@pytest.mark.asyncio
async def test_approve_ignores_null_and_unknown_statuses(fake_db, tenant_ctx, actor) -> None:
    application = make_application(
        status="IN_REVIEW", checklist={"curp": {"status": None}, "rfc": {"status": "ON_HOLD"}}
    )

    result = await application_workflow.approve(fake_db, tenant_ctx, application, actor)

    assert result.status_changed is True
    assert application.status == "APPROVED"


@pytest.mark.asyncio
async def test_assign_records_assignee_and_history(fake_db, tenant_ctx, actor) -> None:
    previous = uuid4()
    assignee = uuid4()
    application = make_application(status="SUBMITTED", assigned_to=previous)

    result = await application_workflow.assign(fake_db, tenant_ctx, application, actor, assignee_id=assignee)

    assert result.status_changed is False
    assert application.status == "SUBMITTED"
    assert application.assigned_to == assignee
    assert application.assigned_by == actor.id
    assert application.assigned_at is not None
    (entry,) = fake_db.history_entries()
    assert entry.from_status == entry.to_status == "ASSIGNMENT"
    assert entry.event_metadata["action"] == "application_assigned"
    assert entry.event_metadata["assigned_to"] == str(assignee)
    assert entry.event_metadata["previous_assignee"] == str(previous)


@pytest.mark.asyncio
async def test_risk_assessment_sets_level_and_data(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="IN_REVIEW", risk_level="LOW")

    result = await application_workflow.set_risk_assessment(
        fake_db, tenant_ctx, application, actor, level="HIGH", data={"score": 612, "bureau": "buro"}
    )

    assert result.status_changed is False
    assert application.status == "IN_REVIEW"
    assert application.risk_level == "HIGH"
    assert application.risk_data == {"score": 612, "bureau": "buro"}
    (entry,) = fake_db.history_entries()
    assert entry.to_status == "RISK_ASSESSMENT"
    assert entry.event_metadata["level"] == "HIGH"
    assert entry.event_metadata["previous_level"] == "LOW"


@pytest.mark.asyncio
async def test_risk_assessment_refuses_unknown_level(fake_db, tenant_ctx, actor) -> None:
    application = make_application(status="IN_REVIEW")

    with pytest.raises(ValueError):
        await application_workflow.set_risk_assessment(fake_db, tenant_ctx, application, actor, level="EXTREME")

    assert application.risk_level is None
    assert fake_db.added == []
