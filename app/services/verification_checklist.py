"""Per-field verification ledger stored on ``Application.verification_checklist``.

Keys are one of the known ``ChecklistField`` names, a dynamic key pointing at a
person sub-entity (``reference_<uuid>``, ``bank_account_<uuid>``), or any other
field name, which is recorded without a sync target.

Stored entries are kept exactly as found. Their status is only normalized when
it is read for a decision (``None`` or missing means pending, case is ignored).
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Union
from uuid import UUID

from app.schemas.application import ChecklistEntry, ChecklistStatus, VerificationAction
from app.services.workflow_errors import InvalidChecklistKey

REFERENCE_PREFIX = "reference_"
BANK_ACCOUNT_PREFIX = "bank_account_"


class ChecklistField(str, Enum):
    FIRST_NAME = "first_name"
    LAST_NAME_1 = "last_name_1"
    LAST_NAME_2 = "last_name_2"
    BIRTH_DATE = "birth_date"
    GENDER = "gender"
    NATIONALITY = "nationality"
    BIRTH_STATE = "birth_state"
    BIRTH_COUNTRY = "birth_country"
    CURP = "curp"
    RFC = "rfc"
    INE = "ine"
    INE_CLAVE = "ine_clave"
    PHONE = "phone"
    EMAIL = "email"
    ADDRESS = "address"
    EMPLOYMENT = "employment"
    INCOME = "income"

    @property
    def key(self) -> str:
        return self.value


@dataclass(frozen=True)
class ReferenceKey:
    reference_id: UUID

    @property
    def key(self) -> str:
        return f"{REFERENCE_PREFIX}{self.reference_id}"


@dataclass(frozen=True)
class BankAccountKey:
    bank_account_id: UUID

    @property
    def key(self) -> str:
        return f"{BANK_ACCOUNT_PREFIX}{self.bank_account_id}"


@dataclass(frozen=True)
class OtherField:
    name: str

    @property
    def key(self) -> str:
        return self.name


ChecklistKey = Union[ChecklistField, ReferenceKey, BankAccountKey, OtherField]


def parse_checklist_key(raw: str) -> ChecklistKey:
    value = (raw or "").strip()
    if not value:
        raise InvalidChecklistKey(raw)
    try:
        return ChecklistField(value)
    except ValueError:
        pass
    for prefix, factory in ((BANK_ACCOUNT_PREFIX, BankAccountKey), (REFERENCE_PREFIX, ReferenceKey)):
        if value.startswith(prefix):
            # A sub-entity key must carry the entity id.
            try:
                return factory(UUID(value[len(prefix):]))
            except ValueError as exc:
                raise InvalidChecklistKey(raw) from exc
    return OtherField(value)


def normalize_status(value: Any) -> str:
    """Status of a stored entry as used for decisions.

    Accepts an entry mapping, a bare status string or a ``ChecklistEntry``.
    Unrecognized values come back lower-cased and count as neither rejected
    nor pending.
    """
    if isinstance(value, ChecklistEntry):
        raw = value.status
    elif isinstance(value, Mapping):
        raw = value.get("status")
    else:
        raw = value
    if raw is None:
        return ChecklistStatus.PENDING.value
    if isinstance(raw, ChecklistStatus):
        return raw.value
    normalized = str(raw).strip().lower()
    return normalized or ChecklistStatus.PENDING.value


def load_checklist(raw: Mapping[str, Any] | None) -> dict[str, Any]:
    """Copy a stored checklist without renaming, reshaping or dropping anything."""
    if not raw:
        return {}
    return {key: copy.deepcopy(value) for key, value in raw.items()}


def dump_checklist(entries: Mapping[str, Any]) -> dict[str, Any]:
    dumped: dict[str, Any] = {}
    for key, value in entries.items():
        if isinstance(value, ChecklistEntry):
            dumped[key] = value.model_dump(mode="json", exclude_unset=True)
        else:
            dumped[key] = copy.deepcopy(value)
    return dumped


def has_rejected_entries(entries: Mapping[str, Any]) -> bool:
    return any(normalize_status(value) == ChecklistStatus.REJECTED.value for value in entries.values())


def rejected_fields(entries: Mapping[str, Any]) -> list[str]:
    return [key for key, value in entries.items() if normalize_status(value) == ChecklistStatus.REJECTED.value]


def entry_status(entries: Mapping[str, Any], key: str) -> str | None:
    if key not in entries:
        return None
    return normalize_status(entries[key])


def build_entry(
    action: VerificationAction,
    *,
    actor_id: UUID | str,
    now: datetime,
    method: str | None = None,
    rejection_reason: str | None = None,
    notes: str | None = None,
) -> ChecklistEntry:
    if action == VerificationAction.VERIFY:
        return ChecklistEntry(
            status=ChecklistStatus.VERIFIED,
            method=method,
            rejection_reason=None,
            notes=notes,
            verified_by=str(actor_id),
            verified_at=now.isoformat(),
        )
    if action == VerificationAction.REJECT:
        return ChecklistEntry(
            status=ChecklistStatus.REJECTED,
            method=method,
            rejection_reason=rejection_reason,
            notes=notes,
            verified_by=str(actor_id),
            verified_at=now.isoformat(),
        )
    return ChecklistEntry(
        status=ChecklistStatus.PENDING,
        method=None,
        rejection_reason=None,
        notes=notes,
        verified_by=None,
        verified_at=None,
    )


def apply_verification(
    raw: Mapping[str, Any] | None,
    key: ChecklistKey,
    action: VerificationAction,
    *,
    actor_id: UUID | str,
    now: datetime,
    method: str | None = None,
    rejection_reason: str | None = None,
    notes: str | None = None,
) -> tuple[dict[str, Any], str | None, ChecklistEntry]:
    """Return ``(new_checklist, old_status, new_entry)`` without mutating ``raw``.

    Only ``key`` is rewritten; every other stored entry is carried over as is.
    The caller assigns the returned mapping back onto the application so the
    JSONB column is flagged dirty.
    """
    entries = load_checklist(raw)
    old_status = entry_status(entries, key.key)
    entry = build_entry(
        action,
        actor_id=actor_id,
        now=now,
        method=method,
        rejection_reason=rejection_reason,
        notes=notes,
    )
    entries[key.key] = entry
    return dump_checklist(entries), old_status, entry
