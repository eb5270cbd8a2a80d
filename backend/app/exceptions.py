"""Domain errors raised by the data layer.

Each error carries a human readable ``message`` and a machine readable
``code``.  ``app.main`` maps the classes onto HTTP status codes so route
handlers can let them propagate.
"""


class AppError(Exception):
    """Base application error."""

    status_code = 400

    def __init__(self, message: str, code: str = "error"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(AppError):
    status_code = 404

    def __init__(self, message: str, code: str = "not_found"):
        super().__init__(message, code)


class ValidationError(AppError):
    status_code = 400

    def __init__(self, message: str, code: str = "validation_error"):
        super().__init__(message, code)


class ConflictError(AppError):
    status_code = 409

    def __init__(self, message: str, code: str = "conflict"):
        super().__init__(message, code)


class PermissionDeniedError(AppError):
    status_code = 403

    def __init__(self, message: str, code: str = "forbidden"):
        super().__init__(message, code)
