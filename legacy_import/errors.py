"""
Domain errors raised by the import services.
The API layer maps each one to an HTTP status.
"""


class LegacyImportError(Exception):
    """Base error for the legacy import engine."""

    status_code = 500

    def __init__(self, message: str, error_code: str = "ERR_INTERNAL"):
        self.message = message
        self.error_code = error_code
        super().__init__(message)


class NotFoundError(LegacyImportError):
    """Session, batch, cluster, category or document does not exist."""

    status_code = 404

    def __init__(self, message: str, error_code: str = "ERR_NOT_FOUND"):
        super().__init__(message, error_code)


class BadRequestError(LegacyImportError):
    """Malformed or inconsistent input."""

    status_code = 400

    def __init__(self, message: str, error_code: str = "ERR_BAD_REQUEST"):
        super().__init__(message, error_code)


class ValidationError(LegacyImportError):
    """Input is well formed but violates a review rule."""

    status_code = 422

    def __init__(self, message: str, error_code: str = "ERR_VALIDATION"):
        super().__init__(message, error_code)


class ForbiddenError(LegacyImportError):
    """Caller lacks the role or ownership the operation needs."""

    status_code = 403

    def __init__(self, message: str, error_code: str = "ERR_FORBIDDEN"):
        super().__init__(message, error_code)


class ConflictError(LegacyImportError):
    """A concurrent write changed the row between read and update."""

    status_code = 409

    def __init__(self, message: str, error_code: str = "ERR_CONFLICT"):
        super().__init__(message, error_code)
