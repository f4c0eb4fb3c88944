"""
Platform-wide exception hierarchy.

Every service in ``plm.services`` raises one of these types; none of them
return error tuples. Blueprints register handlers against these types once
(see ``plm.utils.errors.init_error_handlers``) and get consistent HTTP status
codes everywhere.

Usage:
    from plm.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Part", resource_id=42)
    raise ValidationError("Title is required", details={"title": "..."})
"""


class NotFoundError(Exception):
    """Raised when a referenced entity does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Part", "ChangeOrder").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is malformed or out of range.

    Always recoverable by the caller correcting the input; never retried.
    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
                 Keys are field names; values are error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class DepthExceededError(ValidationError):
    """Raised when a BOM expansion goes past the configured maximum depth."""

    def __init__(self, max_depth: int, part_id: int | str | None = None) -> None:
        self.max_depth = max_depth
        self.part_id = part_id
        msg = f"Maximum BOM depth {max_depth} exceeded"
        if part_id is not None:
            msg += f" at part {part_id}"
        super().__init__(msg, details={"max_depth": max_depth})


class ConflictError(Exception):
    """Raised when a write collides with existing or concurrently written data.

    Covers unique-constraint duplicates and optimistic-lock (stale version)
    failures. Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated, or "version".
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        if field == "version":
            msg = f"{resource} was modified concurrently; reload and retry"
        else:
            msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class AccessError(Exception):
    """Raised when the actor lacks the relationship an operation requires.

    Not the requester, not an approver, not a project member. Maps to HTTP 403.
    """

    def __init__(self, actor_id: int | str | None, reason: str) -> None:
        self.actor_id = actor_id
        self.reason = reason
        super().__init__(f"User {actor_id} is not permitted: {reason}")


class CycleError(Exception):
    """Raised when a BOM mutation would create a cycle, or existing data has one.

    Always rejected, never silently fixed.
    """

    def __init__(self, message: str, part_id: int | str | None = None) -> None:
        self.part_id = part_id
        super().__init__(message)


class StateError(Exception):
    """Raised when an operation is attempted from a status that does not permit it.

    The message always names the current and the attempted status.
    Maps to HTTP 409.
    """

    def __init__(
        self,
        resource: str,
        current_status: str,
        attempted: str,
        reason: str | None = None,
    ) -> None:
        self.resource = resource
        self.current_status = current_status
        self.attempted = attempted
        self.reason = reason
        msg = f"Cannot '{attempted}' {resource} (status={current_status})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
