"""
Garbage-collector exception hierarchy.

Services raise these; the garbage-collector blueprint registers one handler
per class and renders ``{"error": message, "code": code}`` with the mapped
HTTP status. Every class carries a stable machine-readable ``code`` so
operators and scripts can branch on it without parsing messages.

Usage:
    from marketgc.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Abandoned process", resource_id=42)
    raise ValidationError("Status is required", code="MISSING_STATUS")
"""


class ValidationError(Exception):
    """Raised when input is malformed or out of range.

    Always raised before any state is touched, so it never leaves
    partial writes behind. Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        code: Stable machine code (e.g. ``INVALID_PROCESS_TYPES``).
        details: Optional field-level breakdown for structured responses.
    """

    def __init__(self, message: str, code: str = "VALIDATION_ERROR", details: dict | None = None) -> None:
        self.code = code
        self.details = details or {}
        super().__init__(message)


class NotFoundError(Exception):
    """Raised when an operation references a record id that does not exist.

    Maps to HTTP 404.

    Args:
        resource: Human-readable entity name (e.g. "Abandoned process").
        resource_id: The PK that was looked up.
        code: Stable machine code.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        code: str = "NOT_FOUND",
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.code = code
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class StateConflictError(Exception):
    """Raised when a transition is attempted on a record in a terminal state.

    The record is left untouched. Maps to HTTP 409.
    """

    def __init__(self, message: str, code: str = "INVALID_STATUS_TRANSITION",
                 current_status: str | None = None) -> None:
        self.code = code
        self.current_status = current_status
        super().__init__(message)


class InternalError(Exception):
    """Raised when storage access fails during scan, transition or cleanup.

    The failing unit of work has been rolled back before this is raised.
    Maps to HTTP 500.
    """

    def __init__(self, message: str, code: str = "INTERNAL_ERROR") -> None:
        self.code = code
        super().__init__(message)
