class DomainError(Exception):
    """Base exception for business rule violations."""

    code = "DOMAIN_ERROR"


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""

    code = "VALIDATION_ERROR"


class AuthorizationError(DomainError):
    """Raised when an actor lacks permission for an action."""

    code = "FORBIDDEN"


class NotFound(DomainError):
    """Raised when a change request is absent or soft-deleted."""

    code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: object = None):
        self.resource = resource
        self.resource_id = resource_id
        msg = resource
        if resource_id is not None:
            msg += f" id={resource_id}"
        super().__init__(f"{msg} not found")


class SubjectNotFound(NotFound):
    """Raised when the snapshot target cannot be resolved."""

    code = "SUBJECT_NOT_FOUND"

    def __init__(self, subject_id: object):
        super().__init__("Subject", subject_id)


class InvalidTransition(DomainError):
    """Raised when a state machine precondition is violated."""

    code = "INVALID_TRANSITION"

    def __init__(self, request_id: object, current: object, target: object):
        self.request_id = request_id
        self.current = current
        self.target = target
        super().__init__(f"Change request {request_id} cannot move from {current} to {target}")


class NotYetEffective(DomainError):
    code = "NOT_YET_EFFECTIVE"

    def __init__(self, request_id: object, effective_date: object):
        self.request_id = request_id
        self.effective_date = effective_date
        super().__init__(f"Change request {request_id} is not effective until {effective_date}")


class AlreadyApplied(DomainError):
    code = "ALREADY_APPLIED"

    def __init__(self, request_id: object):
        self.request_id = request_id
        super().__init__(f"Change request {request_id} has already been applied")


class ConflictingChangeExists(DomainError):
    """Advisory signal: other open requests touch the same subject fields."""

    code = "CONFLICTING_CHANGE"

    def __init__(self, request_id: object, conflicting_ids: list[int]):
        self.request_id = request_id
        self.conflicting_ids = list(conflicting_ids)
        ids = ", ".join(str(i) for i in self.conflicting_ids)
        super().__init__(f"Change request {request_id} overlaps open requests: {ids}")
