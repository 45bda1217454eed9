"""Custom exceptions for the Onam festival API."""


class OnamError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None, code=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload
        self.code = code

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['success'] = False
        rv['message'] = self.message
        if self.code:
            rv['code'] = self.code
        return rv


class ValidationError(OnamError):
    """Raised for malformed or missing request fields."""
    def __init__(self, message="Validation failed", errors=None, payload=None, code='VALIDATION_ERROR'):
        payload = dict(payload or ())
        if errors:
            payload['errors'] = errors
        super().__init__(message, 400, payload, code)
        self.errors = errors or []


class AuthenticationError(OnamError):
    """Raised when credentials or the bearer token are missing or invalid."""
    def __init__(self, message="Authentication required.", code='AUTH_REQUIRED'):
        super().__init__(message, 401, code=code)


class ForbiddenError(OnamError):
    """Raised when an authenticated caller lacks permission for an action."""
    def __init__(self, message="Insufficient permissions. You do not have access to this resource.",
                 code='INSUFFICIENT_PERMISSIONS'):
        super().__init__(message, 403, code=code)


class NotFoundError(OnamError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", code='NOT_FOUND'):
        super().__init__(message, 404, code=code)


class ConflictError(OnamError):
    """Raised for duplicates; the caller may retry."""
    def __init__(self, message="Duplicate entry. Please try again.", code='CONFLICT'):
        super().__init__(message, 409, code=code)


class RateLimitExceeded(OnamError):
    """Raised when a client exceeds its request quota."""
    def __init__(self, message="Too many requests. Please try again later.", status=None):
        super().__init__(message, 429, code='RATE_LIMITED')
        self.status = status


class StorageUnavailableError(OnamError):
    """Raised when the database cannot be reached."""
    def __init__(self, message="Database is not available. Please try again later."):
        super().__init__(message, 503, code='STORAGE_UNAVAILABLE')
