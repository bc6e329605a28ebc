"""
Error taxonomy shared by the order, payment, kitchen and table engines.

Services raise the exceptions below; the session boundary (orders.session)
turns them into OperationResult values so expected business conditions
never cross into the UI as exceptions. Every message is written to be shown
to staff as-is.
"""

from dataclasses import dataclass
from typing import Any, Optional

from django.db import models
from django.utils.translation import gettext_lazy as _


class ErrorCode(models.TextChoices):
    VALIDATION = "VALIDATION", _("Validation")
    CONFLICT = "CONFLICT", _("Conflict")
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS", _("Insufficient Funds")
    REFERENCE_REQUIRED = "REFERENCE_REQUIRED", _("Reference Required")
    SPLIT_MISMATCH = "SPLIT_MISMATCH", _("Split Mismatch")
    PERSISTENCE_UNAVAILABLE = "PERSISTENCE_UNAVAILABLE", _("Persistence Unavailable")
    CHARGE_DECLINED = "CHARGE_DECLINED", _("Charge Declined")


class EngineError(Exception):
    """Base exception for order engine errors."""

    code = ErrorCode.VALIDATION

    def __init__(self, message, code=None, details=None):
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}
        super().__init__(message)


class ValidationFailed(EngineError):
    """Raised for bad input (negative quantity, unknown method, bad discount...)."""

    code = ErrorCode.VALIDATION

    def __init__(self, message, field=None, details=None):
        self.field = field
        super().__init__(message, details=details)


class ConflictError(EngineError):
    """Raised when a resource is in a state that forbids the operation."""

    code = ErrorCode.CONFLICT

    def __init__(self, message=None, resource=None, details=None):
        self.resource = resource
        if message is None:
            message = f"{resource} is not available for this operation" if resource else "Conflicting state"
        super().__init__(message, details=details)


class PaymentRejected(EngineError):
    """Raised when tender validation fails (funds, reference, split totals)."""

    def __init__(self, message, code=ErrorCode.INSUFFICIENT_FUNDS, details=None):
        super().__init__(message, code=code, details=details)


class ChargeDeclined(EngineError):
    """Raised when the folio collaborator refuses a room charge."""

    code = ErrorCode.CHARGE_DECLINED

    def __init__(self, folio_id, message=None, details=None):
        self.folio_id = folio_id
        if message is None:
            message = f"Room charge to folio {folio_id} was declined"
        super().__init__(message, details=details)


class PersistenceUnavailable(EngineError):
    """Raised when the database could not complete a write. Safe to retry."""

    code = ErrorCode.PERSISTENCE_UNAVAILABLE

    def __init__(self, message=None, details=None):
        if message is None:
            message = "The order could not be saved right now. Nothing was changed, please try again."
        super().__init__(message, details=details)


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a session operation: a value on success, a code and reason otherwise."""

    ok: bool
    value: Any = None
    code: Optional[str] = None
    message: str = ""
    snapshot: Any = None

    @classmethod
    def success(cls, value=None, snapshot=None, message=""):
        return cls(ok=True, value=value, snapshot=snapshot, message=message)

    @classmethod
    def failure(cls, code, message, snapshot=None):
        return cls(ok=False, code=str(code), message=message, snapshot=snapshot)

    @classmethod
    def from_exception(cls, exc: EngineError, snapshot=None):
        return cls.failure(exc.code, exc.message, snapshot=snapshot)

    def __bool__(self):
        return self.ok
