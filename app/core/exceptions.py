class PolicyAiError(Exception):
    """Base exception for application errors."""
    status_code = 500

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class AuthenticationMissing(PolicyAiError):
    """Raised when there is no authenticated session or no resolved role."""
    status_code = 401


class AuthorizationDenied(PolicyAiError):
    """Raised when the caller's role does not grant access."""
    status_code = 403


class ValidationFailed(PolicyAiError):
    """Raised for bad file types/sizes, empty titles and invalid enums."""
    status_code = 400


class NotFound(PolicyAiError):
    """Raised when a document, source or user does not exist."""
    status_code = 404


class UpstreamFailure(PolicyAiError):
    """Raised when the hosted backend, storage or a webhook call fails."""
    status_code = 500
