class OrderServiceError(Exception):
    """Base class; carries a machine-readable code and the HTTP status to surface."""
    status_code = 500
    code = "order_service_error"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ValidationError(OrderServiceError):
    status_code = 400
    code = "validation_error"


class StateConflictError(OrderServiceError):
    status_code = 409
    code = "state_conflict"


class NotFoundError(OrderServiceError):
    status_code = 404
    code = "not_found"


class AccessDeniedError(OrderServiceError):
    status_code = 403
    code = "forbidden"


class CollaboratorError(OrderServiceError):
    """A sibling service (product, media) failed or was unreachable."""
    status_code = 502
    code = "collaborator_error"
