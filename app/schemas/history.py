"""Typed audit-trail events for ``application_status_history``.

Each event serializes to the same row shape: ``from_status``, ``to_status``,
``notes`` and a ``metadata`` object discriminated by ``action``. Events that do
not move the application carry a lifecycle marker in both status columns.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, ClassVar, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

DATA_VERIFICATION = "DATA_VERIFICATION"
DOCUMENT_REVIEW = "DOCUMENT_REVIEW"
REFERENCE_VERIFICATION = "REFERENCE_VERIFICATION"
BANK_ACCOUNT_VERIFICATION = "BANK_ACCOUNT_VERIFICATION"
NOTE_ADDED = "NOTE_ADDED"
ASSIGNMENT = "ASSIGNMENT"
RISK_ASSESSMENT = "RISK_ASSESSMENT"

LIFECYCLE_MARKERS = frozenset(
    {
        DATA_VERIFICATION,
        DOCUMENT_REVIEW,
        REFERENCE_VERIFICATION,
        BANK_ACCOUNT_VERIFICATION,
        NOTE_ADDED,
        ASSIGNMENT,
        RISK_ASSESSMENT,
    }
)

NOTE_PREVIEW_LENGTH = 50


class _HistoryEvent(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    # Row columns; kept out of the metadata payload.
    from_status: Optional[str] = Field(default=None, exclude=True)
    to_status: Optional[str] = Field(default=None, exclude=True)
    description: Optional[str] = Field(default=None, exclude=True)

    lifecycle_marker: ClassVar[Optional[str]] = None

    def row_statuses(self) -> tuple[Optional[str], str]:
        if self.lifecycle_marker is not None:
            return self.lifecycle_marker, self.lifecycle_marker
        return self.from_status, self.to_status

    def to_metadata(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class StatusChanged(_HistoryEvent):
    action: Literal["status_change"] = "status_change"
    trigger: Literal[
        "manual", "approved", "rejected", "cancelled", "data_rejected", "document_rejected"
    ] = "manual"
    field: Optional[str] = None
    document_id: Optional[UUID] = None


class AutoStatusAdvanced(_HistoryEvent):
    action: Literal["auto_status_advance"] = "auto_status_advance"
    trigger: Literal["verifications_complete"] = "verifications_complete"


class FieldVerified(_HistoryEvent):
    lifecycle_marker: ClassVar[Optional[str]] = DATA_VERIFICATION

    action: Literal["data_verification"] = "data_verification"
    field: str
    verification_action: Literal["verify", "reject", "unverify"]
    old_status: Optional[str] = None
    new_status: str
    method: Optional[str] = None
    rejection_reason: Optional[str] = None
    notes: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[UUID] = None


class DocumentReviewed(_HistoryEvent):
    lifecycle_marker: ClassVar[Optional[str]] = DOCUMENT_REVIEW

    action: Literal["document_approved", "document_rejected", "document_unapproved"]
    document_id: UUID
    document_type: str
    old_status: Optional[str] = None
    new_status: str
    reason: Optional[str] = None
    comment: Optional[str] = None


class ReferenceVerified(_HistoryEvent):
    lifecycle_marker: ClassVar[Optional[str]] = REFERENCE_VERIFICATION

    action: Literal["reference_verified"] = "reference_verified"
    reference_id: UUID
    reference_name: Optional[str] = None
    result: Literal["VERIFIED", "NOT_VERIFIED", "NO_ANSWER"]
    old_status: Optional[str] = None
    new_status: str
    notes: Optional[str] = None


class BankAccountVerified(_HistoryEvent):
    lifecycle_marker: ClassVar[Optional[str]] = BANK_ACCOUNT_VERIFICATION

    action: Literal["bank_account_verified", "bank_account_unverified"]
    bank_account_id: UUID
    bank_name: Optional[str] = None
    was_verified: bool


class NoteAdded(_HistoryEvent):
    lifecycle_marker: ClassVar[Optional[str]] = NOTE_ADDED

    action: Literal["note_added"] = "note_added"
    note_id: UUID
    content_preview: str

    @classmethod
    def for_content(cls, note_id: UUID, content: str) -> "NoteAdded":
        preview = content
        if len(content) > NOTE_PREVIEW_LENGTH:
            preview = content[:NOTE_PREVIEW_LENGTH] + "..."
        return cls(note_id=note_id, content_preview=preview, description=content)


class ApplicationAssigned(_HistoryEvent):
    lifecycle_marker: ClassVar[Optional[str]] = ASSIGNMENT

    action: Literal["application_assigned"] = "application_assigned"
    assigned_to: UUID
    previous_assignee: Optional[UUID] = None


class RiskAssessed(_HistoryEvent):
    lifecycle_marker: ClassVar[Optional[str]] = RISK_ASSESSMENT

    action: Literal["risk_assessed"] = "risk_assessed"
    level: Literal["LOW", "MEDIUM", "HIGH", "VERY_HIGH"]
    previous_level: Optional[str] = None
    data: Optional[dict[str, Any]] = None


HistoryEvent = Annotated[
    Union[
        StatusChanged,
        AutoStatusAdvanced,
        FieldVerified,
        DocumentReviewed,
        ReferenceVerified,
        BankAccountVerified,
        NoteAdded,
        ApplicationAssigned,
        RiskAssessed,
    ],
    Field(discriminator="action"),
]

history_event_adapter: TypeAdapter[HistoryEvent] = TypeAdapter(HistoryEvent)


def decode_history_event(
    metadata: dict[str, Any] | None,
    *,
    from_status: str | None = None,
    to_status: str | None = None,
    notes: str | None = None,
) -> HistoryEvent | None:
    """Rebuild the typed event for a stored row.

    Returns ``None`` for rows written without a known event, such as legacy
    imports; their raw metadata is still served as is.
    """
    if not metadata or "action" not in metadata:
        return None
    payload = {**metadata, "from_status": from_status, "to_status": to_status, "description": notes}
    try:
        return history_event_adapter.validate_python(payload)
    except ValidationError:
        return None


class StatusHistoryEntryDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    seq: int | None = None
    application_id: UUID
    from_status: Optional[str] = None
    to_status: str
    changed_by: Optional[UUID] = None
    changed_by_type: Optional[str] = None
    notes: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    event_action: Optional[str] = None
    is_status_transition: bool = True
    created_at: datetime


class StatusHistoryListResponse(BaseModel):
    items: list[StatusHistoryEntryDTO]
