"""
Exceptions raised by the bracket core and the club store.

Route handlers translate these to JSON error responses; ``status`` is the
HTTP status code used for that translation.
"""


class BracketError(Exception):
    status = 400

    def __init__(self, message, detail=None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(BracketError):
    status = 400


class MissingSidesError(ValidationError):
    """Raised when a result is reported for a match whose sides are not both set."""

    def __init__(self, message='missing sides', detail=None):
        super().__init__(message, detail)


class AuthorizationError(BracketError):
    status = 403

    def __init__(self, message, status=403):
        super().__init__(message)
        self.status = status


class NotFoundError(BracketError):
    status = 404


class ConflictError(BracketError):
    status = 409


class ConfigurationError(BracketError):
    status = 422


class StoreError(BracketError):
    status = 500
