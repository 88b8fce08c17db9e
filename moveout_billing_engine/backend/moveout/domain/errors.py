# backend/moveout/domain/errors.py
from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    PRECONDITION = "precondition"
    BACKEND = "backend"


class ErrorKind(str, Enum):
    # validation: blocks the triggering action locally, never sent upstream
    CONDITION_REQUIRED = "ConditionRequired"
    INVALID_CONDITION = "InvalidCondition"
    COST_REQUIRED = "CostRequired"
    COST_INVALID = "CostInvalid"
    METER_READING_INVALID = "MeterReadingInvalid"

    # precondition: blocks a lifecycle transition
    NOT_YET_DUE = "NotYetDue"
    ITEMS_MISSING_STATUS = "ItemsMissingStatus"
    ITEMS_INVALID_COST = "ItemsInvalidCost"
    METERS_MISSING_READING = "MetersMissingReading"
    METERS_INVALID_READING = "MetersInvalidReading"
    INVALID_TRANSITION = "InvalidTransition"
    REASSIGNMENT_NOT_ALLOWED = "InspectorReassignmentNotAllowed"
    ITEM_NOT_FOUND = "ItemNotFound"
    METER_NOT_FOUND = "MeterNotFound"
    INSPECTION_NOT_FOUND = "InspectionNotFound"

    # upstream
    BACKEND_REJECTED = "BackendRejected"


class FieldErrorKind(str, Enum):
    METER_INDEX = "meter_index"
    READING_DATE = "reading_date"
    ASSIGNMENT_SCOPE = "assignment_scope"
    DAMAGE_COST = "damage_cost"
    INVOICE_STATE = "invoice_state"
    INSPECTION_STATE = "inspection_state"
    DUPLICATE = "duplicate"
    NOT_FOUND = "not_found"
    UNKNOWN = "unknown"


# Ordered: the first matching group wins.
_FIELD_KEYWORDS: tuple[tuple[FieldErrorKind, tuple[str, ...]], ...] = (
    (FieldErrorKind.DUPLICATE, ("duplicate", "already exists", "already been", "unique")),
    (FieldErrorKind.NOT_FOUND, ("not found", "does not exist", "no such")),
    (FieldErrorKind.ASSIGNMENT_SCOPE, ("assignment", "scope")),
    (FieldErrorKind.METER_INDEX, ("currindex", "previndex", "curr_index", "prev_index", "index", "meter")),
    (FieldErrorKind.READING_DATE, ("readingdate", "reading_date", "reading date")),
    (FieldErrorKind.DAMAGE_COST, ("damagecost", "damage_cost", "damage cost", "totaldamagecost")),
    (FieldErrorKind.INVOICE_STATE, ("invoice",)),
    (FieldErrorKind.INSPECTION_STATE, ("inspection", "status")),
)


def classify_field_error(text: Optional[str]) -> FieldErrorKind:
    """
    Map a free-text upstream error message to a structured field kind.

    This is the only place that inspects raw backend message text; callers
    branch on the returned enum.
    """
    t = (text or "").strip().lower()
    if not t:
        return FieldErrorKind.UNKNOWN
    for kind, needles in _FIELD_KEYWORDS:
        if any(n in t for n in needles):
            return kind
    return FieldErrorKind.UNKNOWN


class WorkflowError(Exception):
    category: ErrorCategory = ErrorCategory.VALIDATION

    def __init__(self, kind: ErrorKind, message: str, *, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = dict(details or {})

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "kind": self.kind.value,
            "category": self.category.value,
            "message": self.message,
        }
        if self.details:
            out["details"] = self.details
        return out


class ValidationFailed(WorkflowError):
    category = ErrorCategory.VALIDATION


class PreconditionFailed(WorkflowError):
    category = ErrorCategory.PRECONDITION


class BackendRejection(WorkflowError):
    """
    An upstream service answered with a non-success status (or not at all).

    status_code is 0 when the request never produced a response.
    """

    category = ErrorCategory.BACKEND

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 0,
        endpoint: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(ErrorKind.BACKEND_REJECTED, message, details=details)
        self.status_code = int(status_code)
        self.endpoint = endpoint
        self.field = classify_field_error(message)

    @property
    def not_found(self) -> bool:
        return self.status_code == 404

    def as_dict(self) -> dict[str, Any]:
        out = super().as_dict()
        out["status_code"] = self.status_code
        out["field"] = self.field.value
        if self.endpoint:
            out["endpoint"] = self.endpoint
        return out
