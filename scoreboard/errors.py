class DomainError(Exception):
    """Base for errors that map onto an HTTP response."""

    status_code = 400
    error = "bad_request"
    public_message = "The request could not be completed."

    def __init__(self, message=None, payload=None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message
        self.payload = payload


class ValidationError(DomainError):
    status_code = 400
    error = "validation_error"
    public_message = "The request was invalid."


class AuthenticationError(DomainError):
    status_code = 401
    error = "authentication_required"
    public_message = "Authentication required. Please provide a valid token."


class AuthorizationError(DomainError):
    status_code = 403
    error = "forbidden"
    public_message = "You don't have permission to access this resource."


class UpstreamError(DomainError):
    """The billing provider was unreachable or returned an error."""

    status_code = 502
    error = "upstream_error"
    public_message = "Our payment provider is unavailable. Please try again later."


class PersistenceError(DomainError):
    """The data store rejected a write."""

    status_code = 500
    error = "persistence_error"
    public_message = "An internal server error occurred. Please try again later."
