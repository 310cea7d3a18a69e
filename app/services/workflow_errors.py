from __future__ import annotations

from typing import Any


class WorkflowError(ValueError):
    code: str = "workflow_error"
    status_code: int = 400

    def __init__(self, message: str, *, code: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class InvalidTransition(WorkflowError):
    code = "invalid_transition"
    status_code = 409

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Cannot transition from {from_status} to {to_status}",
            details={"from_status": from_status, "to_status": to_status},
        )


class NotApprovable(WorkflowError):
    code = "not_approvable"
    status_code = 409

    def __init__(self, status: str, *, rejected_fields: list[str] | None = None):
        super().__init__(
            "Application cannot be approved in its current state",
            details={"status": status, "rejected_fields": rejected_fields or []},
        )


class NotRejectable(WorkflowError):
    code = "not_rejectable"
    status_code = 409

    def __init__(self, status: str):
        super().__init__(
            "Application cannot be rejected in its current state",
            details={"status": status},
        )


class NotCancellable(WorkflowError):
    code = "not_cancellable"
    status_code = 409

    def __init__(self, status: str):
        super().__init__(
            "Application cannot be cancelled in its current state",
            details={"status": status},
        )


class EntityNotFound(WorkflowError):
    status_code = 404

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"{entity_type.replace('_', ' ').capitalize()} not found",
            code=f"{entity_type}_not_found",
            details={"entity_type": entity_type, "entity_id": str(entity_id)},
        )


class ApplicationNotFound(EntityNotFound):
    def __init__(self, application_id: Any):
        super().__init__("application", application_id)


class InvalidChecklistKey(WorkflowError):
    code = "invalid_checklist_key"
    status_code = 422

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Malformed verification field: {key!r}", details={"field": key})
