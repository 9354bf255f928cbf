"""
Error taxonomy shared by every service.

Each error carries a stable ``code`` the caller can branch on and the HTTP
status the API layer answers with.
"""


class DomainError(Exception):
    code = "domain_error"
    status_code = 400

    def to_detail(self) -> dict:
        return {"code": self.code, "message": str(self)}


class ValidationError(DomainError):
    """Malformed input: bad quantity, missing field, unknown enum value."""

    code = "validation_error"
    status_code = 400


class NotFoundError(DomainError):
    """Missing entity, or one that does not belong to the requesting user."""

    code = "not_found"
    status_code = 404


class ConflictError(DomainError):
    """Uniqueness violation: number collision, second live return for an order."""

    code = "conflict"
    status_code = 409


class PreconditionFailedError(DomainError):
    """State-machine violation."""

    code = "precondition_failed"
    status_code = 412


class ExternalServiceError(DomainError):
    """Email transport, renderer or payment gateway failure."""

    code = "external_service_error"
    status_code = 502
