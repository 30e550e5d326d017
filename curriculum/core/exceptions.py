"""
Engine-wide exception hierarchy.

Services raise these types; blueprints register one handler per type and get
consistent HTTP status codes everywhere. Bulk operations never let them escape
a batch; they are caught per item and reported through their ``code``.

Usage:
    from curriculum.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="ProgressRecord", resource_id=42)
    raise ValidationError("rejection reason required", details={"reason": "empty"})

Codes (stable strings used in bulk failure reports and API bodies):
    NotFound          referenced progress/course/student does not exist
    ValidationError   bad input or a transition the state machine forbids
    AlreadyTerminal   mutation attempted on a completed record
    StoreError        opaque failure from the persistence layer
"""


class NotFoundError(Exception):
    """Raised when a requested record does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "ProgressRecord", "Course").
        resource_id: The PK that was looked up. Included in logs and messages.
    """

    code = "NotFound"

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Covers empty rejection reasons, out-of-range counters, malformed project
    links and oversized bulk batches. Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    code = "ValidationError"

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class TransitionError(ValidationError):
    """Raised when a progress record is asked to move along an edge the
    status machine does not have (e.g. approving an ``in_progress`` record).
    """

    def __init__(self, progress_id, action: str, current: str, reason: str | None = None) -> None:
        self.progress_id = progress_id
        self.action = action
        self.current_status = current
        msg = f"Cannot '{action}' progress {progress_id} (status={current})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, details={"status": current, "action": action})


class AlreadyTerminalError(Exception):
    """Raised when a completed progress record is targeted by a mutation that
    would leave the terminal state (``reject`` on ``completed``).

    ``approve`` on a completed record is a no-op success and never raises this.
    Maps to HTTP 409.
    """

    code = "AlreadyTerminal"

    def __init__(self, progress_id, action: str) -> None:
        self.progress_id = progress_id
        self.action = action
        super().__init__(f"Progress {progress_id} is already completed; cannot '{action}'")


class StoreError(Exception):
    """Raised when the persistence layer fails.

    The original driver exception is chained (``raise ... from exc``) and kept
    on ``cause``. No retry happens at this layer. Maps to HTTP 503.
    """

    code = "StoreError"

    def __init__(self, operation: str, cause: Exception | None = None) -> None:
        self.operation = operation
        self.cause = cause
        msg = f"Store operation '{operation}' failed"
        if cause is not None:
            msg += f": {cause.__class__.__name__}"
        super().__init__(msg)


# Error types a single-item engine operation can surface. Bulk processing and the
# inline editor catch exactly these and report them instead of propagating.
ENGINE_ERRORS = (NotFoundError, ValidationError, AlreadyTerminalError, StoreError)


def error_code(exc: Exception) -> str:
    """Return the short taxonomy code for *exc* (``"Error"`` for foreign types)."""
    return getattr(exc, "code", "Error")
