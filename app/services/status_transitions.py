"""Declarative status graph for loan applications.

Every operation that moves an application consults ``TRANSITIONS``; nothing
assigns ``Application.status`` without going through ``validate_transition``.
"""

from __future__ import annotations

from app.models.application import Application
from app.schemas.application import ApplicationStatus
from app.services.verification_checklist import has_rejected_entries, load_checklist
from app.services.workflow_errors import InvalidTransition

S = ApplicationStatus

TRANSITIONS: dict[ApplicationStatus, frozenset[ApplicationStatus]] = {
    S.DRAFT: frozenset({S.SUBMITTED, S.CANCELLED, S.REJECTED}),
    S.SUBMITTED: frozenset({S.IN_REVIEW, S.DOCS_PENDING, S.CANCELLED, S.REJECTED}),
    S.IN_REVIEW: frozenset(
        {S.DOCS_PENDING, S.CORRECTIONS_PENDING, S.APPROVED, S.REJECTED, S.CANCELLED}
    ),
    S.DOCS_PENDING: frozenset({S.IN_REVIEW, S.REJECTED, S.CANCELLED}),
    S.CORRECTIONS_PENDING: frozenset({S.IN_REVIEW, S.REJECTED, S.CANCELLED}),
    S.APPROVED: frozenset({S.DISBURSED, S.REJECTED, S.CANCELLED}),
    S.REJECTED: frozenset(),
    S.DISBURSED: frozenset(),
    S.CANCELLED: frozenset(),
}

REJECTABLE_STATUSES = frozenset({S.SUBMITTED, S.IN_REVIEW, S.DOCS_PENDING, S.CORRECTIONS_PENDING})

# Blocked states that auto-advance back to review once nothing is outstanding.
BLOCKED_STATUSES = frozenset({S.CORRECTIONS_PENDING, S.DOCS_PENDING})


def coerce_status(value: ApplicationStatus | str | None) -> ApplicationStatus | None:
    if value is None:
        return None
    if isinstance(value, ApplicationStatus):
        return value
    try:
        return ApplicationStatus(value)
    except ValueError:
        return None


def allowed_transitions(status: ApplicationStatus | str | None) -> frozenset[ApplicationStatus]:
    current = coerce_status(status)
    if current is None:
        return frozenset()
    return TRANSITIONS.get(current, frozenset())


def can_transition(from_status: ApplicationStatus | str | None, to_status: ApplicationStatus | str) -> bool:
    target = coerce_status(to_status)
    if target is None:
        return False
    return target in allowed_transitions(from_status)


def is_terminal(status: ApplicationStatus | str | None) -> bool:
    current = coerce_status(status)
    return current is not None and not TRANSITIONS.get(current)


def validate_transition(
    from_status: ApplicationStatus | str | None, to_status: ApplicationStatus | str
) -> ApplicationStatus:
    if not can_transition(from_status, to_status):
        raise InvalidTransition(_label(from_status), _label(to_status))
    return coerce_status(to_status)


def can_be_approved(application: Application) -> bool:
    if not can_transition(application.status, S.APPROVED):
        return False
    return not has_rejected_entries(load_checklist(application.verification_checklist))


def can_be_rejected(application: Application) -> bool:
    return coerce_status(application.status) in REJECTABLE_STATUSES


def can_be_cancelled(application: Application) -> bool:
    return can_transition(application.status, S.CANCELLED)


def _label(status: ApplicationStatus | str | None) -> str:
    if isinstance(status, ApplicationStatus):
        return status.value
    return str(status)
