"""
Fincalc Exceptions

Error taxonomy shared by the calculation queue and the batch service.
Every exception carries a stable error code and structured details so it can
be logged, persisted with a queued item, or rendered as an API error body.
"""

from typing import Optional, Any, Dict


class FincalcException(Exception):
    """Base exception for all fincalc errors.

    Subclasses decide whether the failure is retryable; callers should never
    inspect message text to make that decision.
    """

    retryable: bool = False
    status_code: int = 500

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code or "FINCALC_ERROR"
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Render exception as an API error body."""
        return {
            "success": False,
            "error": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class ValidationException(FincalcException):
    """Raised when parameters are malformed or missing. Never retried."""

    status_code = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = dict(details or {})
        if field:
            details["field"] = field
        super().__init__(
            message=message, error_code="VALIDATION_ERROR", details=details
        )


class TransientException(FincalcException):
    """Raised for network, timeout or compute-unavailable failures."""

    retryable = True
    status_code = 503

    def __init__(
        self,
        message: str = "Calculation backend temporarily unavailable",
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(
            message=message, error_code="TRANSIENT_ERROR", details=details
        )
        if original_error:
            self.__cause__ = original_error


class UnsupportedOperationException(FincalcException):
    """Raised for unknown calculation types, resource kinds or operation types."""

    status_code = 400

    def __init__(self, message: str, kind: Optional[str] = None):
        details = {"kind": kind} if kind else {}
        super().__init__(
            message=message, error_code="UNSUPPORTED_OPERATION", details=details
        )


class BatchTimeoutException(FincalcException):
    """Raised when a batch does not settle within its aggregate timeout."""

    status_code = 408

    def __init__(self, timeout_ms: int, outstanding: int = 0):
        super().__init__(
            message=f"Batch operation timed out after {timeout_ms}ms",
            error_code="BATCH_TIMEOUT",
            details={"timeout_ms": timeout_ms, "outstanding": outstanding},
        )


class ResourceNotFoundException(FincalcException):
    """Raised when a batch operation references a missing resource."""

    status_code = 404

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            message=f"{resource.capitalize()} not found: {resource_id}",
            error_code="RESOURCE_NOT_FOUND",
            details={"resource": resource, "resource_id": resource_id},
        )


class StorageException(FincalcException):
    """Raised when the durable key-value store cannot be reached."""

    retryable = True
    status_code = 503

    def __init__(
        self,
        message: str = "Key-value store operation failed",
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(message=message, error_code="STORAGE_ERROR", details=details)
        # Preserve exception context for debugging (exception chaining)
        if original_error:
            self.__cause__ = original_error


def is_retryable(error: BaseException) -> bool:
    """
    Classify an arbitrary exception as retryable or terminal.

    Typed fincalc errors answer for themselves. Malformed-parameter errors
    raised by pure calculation functions (TypeError, ValueError, KeyError)
    are terminal; anything else is treated as transient.
    """
    if isinstance(error, FincalcException):
        return error.retryable
    if isinstance(error, (TypeError, ValueError, KeyError)):
        return False
    return True
