"""Domain exceptions raised by services and rendered by the handler in main.py."""


class DomainError(Exception):
    status_code = 400
    code = "ERROR"
    status = "FAILED"

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"status": self.status, "code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationFailed(DomainError):
    status_code = 400
    code = "VALIDATION_FAILED"


class NotFound(DomainError):
    status_code = 404
    code = "NOT_FOUND"


class Conflict(DomainError):
    """Lost a race for the target. The caller must not retry the same target."""

    status_code = 403
    code = "CONFLICT"
    status = "DECLINED"


class BusinessRuleViolation(DomainError):
    status_code = 400
    code = "DENIED"
    status = "DENIED"


class RiderBlocked(DomainError):
    status_code = 403
    code = "RIDER_BLOCKED"
    status = "BLOCKED"

    def __init__(self, message: str = "You are blocked. Settle your collected cash to continue.", **details):
        super().__init__(message, **details)


class OutOfServiceArea(DomainError):
    status_code = 403
    code = "OUT_OF_SERVICE_AREA"


class ExternalDependencyError(DomainError):
    status_code = 502
    code = "UPSTREAM_FAILED"


class Unauthorized(DomainError):
    status_code = 401
    code = "UNAUTHORIZED"
