"""Error taxonomy for the finance sync pipeline.

Every error raised by the connectors carries a machine-readable ``code``, the
HTTP-style status the sync entrypoint reports for it, and a user-facing
message. None of these errors are retried internally; retry policy belongs to
the caller.
"""

from typing import ClassVar


class FinloopError(Exception):
    """Base class for all classified sync errors."""

    code: ClassVar[str] = "SYNC_FAILED"
    http_status: ClassVar[int] = 500
    default_message: ClassVar[str] = "Failed to sync with SimpleFIN."

    def __init__(self, message: str | None = None):
        """Initialize the error.

        Args:
            message: User-facing message. Defaults to the class message.
        """
        self.message = message or self.default_message
        super().__init__(self.message)


class CredentialParseError(FinloopError):
    """The access URL is not a well-formed credentialed endpoint."""

    code = "INVALID_ACCESS_URL"
    http_status = 400
    default_message = "The access URL appears to be invalid."


class SetupTokenError(FinloopError):
    """The setup token does not decode to a claim URL."""

    code = "INVALID_SETUP_TOKEN"
    http_status = 400
    default_message = (
        "The setup token appears to be invalid. "
        "Please copy the complete token from SimpleFIN."
    )


class TokenAlreadyClaimedError(FinloopError):
    """The setup token was already exchanged for an access URL."""

    code = "TOKEN_ALREADY_CLAIMED"
    http_status = 400
    default_message = (
        "This setup token has already been used. "
        "Please generate a new token in SimpleFIN."
    )


class AuthExpiredError(FinloopError):
    """Upstream rejected the credentials or the access URL no longer exists."""

    code = "NEEDS_REAUTH"
    http_status = 401
    default_message = "SimpleFIN access has expired. Please reconnect your accounts."


class NetworkTimeoutError(FinloopError):
    """The upstream read did not complete within the wait bound."""

    code = "TIMEOUT"
    http_status = 504
    default_message = "SimpleFIN is taking too long to respond. Please try again."


class NetworkError(FinloopError):
    """The upstream could not be reached."""

    code = "FETCH_FAILED"
    http_status = 500
    default_message = "Failed to connect to SimpleFIN."

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Failed to connect to SimpleFIN: {detail or 'Network error'}")


class ServerError(FinloopError):
    """Upstream answered with a non-success status that is not an auth failure."""

    code = "SYNC_FAILED"
    http_status = 500

    def __init__(self, status: int, body: str = ""):
        self.status = status
        self.body = body
        preview = body[:100] or "Unknown error"
        super().__init__(f"SimpleFIN returned error {status}: {preview}")


class MalformedResponseError(FinloopError):
    """Upstream payload is not JSON or does not have the expected shape."""

    code = "INVALID_DATA"
    http_status = 500
    default_message = "SimpleFIN returned an unexpected data structure."


class UnexpectedFailure(FinloopError):
    """Wraps any unclassified exception raised while syncing."""

    code = "SYNC_FAILED"
    http_status = 500

    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(
            f"Failed to sync with SimpleFIN: {str(cause) or 'Unknown error'}"
        )
