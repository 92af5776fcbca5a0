"""
Custom exceptions for the Cerb client library.
"""


class CerbClientError(Exception):
    """Base exception for Cerb client errors."""
    pass


class ConfigurationError(CerbClientError):
    """Raised when client configuration is invalid."""
    pass


class CredentialsError(CerbClientError):
    """Raised when credentials cannot be loaded."""
    pass


class RequestConstructionError(CerbClientError):
    """Raised when the endpoint or base URL cannot form a valid request."""
    pass


class TransportError(CerbClientError):
    """Raised when the HTTP client fails to execute a request."""

    def __init__(self, message, method=None, endpoint=None):
        super().__init__(message)
        self.method = method
        self.endpoint = endpoint


class UnexpectedStatusError(CerbClientError):
    """Raised when the server answers with an HTTP status other than 200."""

    def __init__(self, status_code, method=None, endpoint=None):
        super().__init__(
            f"Error status code of {status_code} returned when performing "
            f"{method} request on {endpoint}"
        )
        self.status_code = status_code
        self.method = method
        self.endpoint = endpoint


class RemoteError(CerbClientError):
    """
    Raised when a response body carries a non-success status.

    Cerb answers application failures with HTTP 200 and a body such as
    {"__status":"error","message":"Access denied!"}.
    """

    def __init__(self, status, message, method=None, endpoint=None):
        where = f" ({method} {endpoint})" if method and endpoint else ""
        super().__init__(
            f"Response body contained non-success status of {status}: {message}{where}"
        )
        self.status = status
        self.message = message
        self.method = method
        self.endpoint = endpoint


class MalformedResponseError(CerbClientError):
    """Raised when a response body cannot be decoded."""

    def __init__(self, message, body=b"", cause=None, method=None, endpoint=None):
        where = f" ({method} {endpoint})" if method and endpoint else ""
        super().__init__(f"{message}{where}")
        self.body = body
        self.cause = cause
        self.method = method
        self.endpoint = endpoint


class PaginationProtocolError(CerbClientError):
    """Raised when a search total is neither a number nor a numeral string."""

    def __init__(self, total):
        super().__init__(f"Unable to interpret search total {total!r} as an integer")
        self.total = total
