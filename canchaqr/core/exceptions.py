"""
CanchaQR Exception Hierarchy

Every error carries a code, a message and details so the HTTP layer can
return a uniform envelope and the logs keep enough context for an audit.

Exception Hierarchy:
    CanchaQRError
    ├── ValidationError (400)
    │   ├── SlotValidationError
    │   └── PaymentValidationError
    ├── ReferenceNotFoundError (404)
    ├── PermissionDeniedError (403)
    ├── ConflictError (409)
    │   ├── DuplicateInvitationError
    │   └── ReservationStateError
    └── ResourceExhaustedError (503)
        ├── NoActiveControllerError
        └── UniqueCodeExhaustedError
"""
import logging
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


class CanchaQRError(Exception):
    """
    Base exception for all CanchaQR custom errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging/audit
        severity: P0-P3 severity level
    """

    default_code: str = "CANCHAQR_ERROR"
    default_severity: str = "P2"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[str] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.severity = severity or self.default_severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# VALIDATION ERRORS
# =============================================================================

class ValidationError(CanchaQRError):
    """Input rejected before any mutation."""
    default_code = "VALIDATION_ERROR"
    default_severity = "P3"
    status_code = 400


class SlotValidationError(ValidationError):
    """A requested time slot is malformed, misaligned or overlapping."""
    default_code = "INVALID_SLOT"

    def __init__(
        self,
        message: str,
        index: Optional[int] = None,
        slot: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "index": index,
            "slot": slot,
        })
        super().__init__(message, details=details, **kwargs)


class PaymentValidationError(ValidationError):
    """Payment amount is non-positive or exceeds the outstanding balance."""
    default_code = "INVALID_PAYMENT"

    def __init__(
        self,
        message: str,
        excess: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if excess is not None:
            details["excess"] = excess
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# REFERENCE ERRORS
# =============================================================================

class ReferenceNotFoundError(CanchaQRError):
    """A referenced reservation, court, person or payment does not exist."""
    default_code = "NOT_FOUND"
    default_severity = "P3"
    status_code = 404

    def __init__(
        self,
        message: str,
        entity: Optional[str] = None,
        entity_id: Optional[Any] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "entity": entity,
            "entity_id": entity_id,
        })
        super().__init__(message, details=details, **kwargs)


class PermissionDeniedError(CanchaQRError):
    """Caller is not allowed to act on the resource."""
    default_code = "PERMISSION_DENIED"
    default_severity = "P3"
    status_code = 403


# =============================================================================
# CONFLICT ERRORS
# =============================================================================

class ConflictError(CanchaQRError):
    """Request conflicts with the current state of the resource."""
    default_code = "CONFLICT"
    default_severity = "P3"
    status_code = 409


class DuplicateInvitationError(ConflictError):
    """The person already holds an invitation for this reservation."""
    default_code = "DUPLICATE_INVITATION"

    def __init__(
        self,
        message: str,
        reservation_id: Optional[int] = None,
        person_id: Optional[int] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "reservation_id": reservation_id,
            "person_id": person_id,
        })
        super().__init__(message, details=details, **kwargs)


class ReservationStateError(ConflictError):
    """Operation not allowed in the reservation's current status."""
    default_code = "INVALID_RESERVATION_STATE"

    def __init__(
        self,
        message: str,
        status: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details["status"] = status
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# RESOURCE EXHAUSTION
# =============================================================================

class ResourceExhaustedError(CanchaQRError):
    """An operator has to remediate before the operation can succeed."""
    default_code = "RESOURCE_EXHAUSTED"
    default_severity = "P1"
    status_code = 503


class NoActiveControllerError(ResourceExhaustedError):
    """No active controller is available to review a QR issuance."""
    default_code = "NO_ACTIVE_CONTROLLER"


class UniqueCodeExhaustedError(ResourceExhaustedError):
    """Could not produce an unused invitation code within the retry bound."""
    default_code = "UNIQUE_CODE_EXHAUSTED"

    def __init__(
        self,
        message: str,
        attempts: Optional[int] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details["attempts"] = attempts
        super().__init__(message, details=details, **kwargs)
