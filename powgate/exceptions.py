"""Exception hierarchy for powgate.

Every error a gate operation can raise derives from :class:`PowGateError` and
carries the short code and HTTP status the transport layer reports. Bodies
never include more than the code, so an attacker learns nothing about which
internal condition tripped.
"""


class PowGateError(Exception):
    """Base exception for all powgate errors."""

    error_code = "internal_error"
    status_code = 500


class RateLimited(PowGateError):
    """Raised when challenge issuance is throttled for a client fingerprint."""

    error_code = "rate_limited"
    status_code = 429


class InvalidNonce(PowGateError):
    """Raised when a solution is wrong or its challenge is unknown or already consumed."""

    error_code = "invalid_nonce"
    status_code = 409


class ExpiredChallenge(PowGateError):
    """Raised when a challenge was found but its expiry has passed."""

    error_code = "expired"
    status_code = 410


class StorageUnavailable(PowGateError):
    """Raised when a backing store cannot be read or written."""

    error_code = "transient_failure"
    status_code = 503


TransientFailure = StorageUnavailable


class MissingClientHeader(PowGateError):
    """Raised when a request lacks the headers used to fingerprint the client."""

    error_code = "missing_header"
    status_code = 400

    def __init__(self, header: str) -> None:
        super().__init__(f"Missing required header: {header}")
        self.header = header


class GateApiError(PowGateError):
    """Raised by the HTTP client when the gate answers with a failure.

    ``code`` is one of ``invalid_nonce``, ``expired``, ``rate_limit`` or
    ``network`` (any other non-success answer).
    """

    def __init__(self, code: str, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.status = status


class SearchAborted(PowGateError):
    """Raised when a client search process dies before reporting a result."""


class ConfigError(PowGateError):
    """Raised when configuration is invalid."""
