# Terminal-side failure taxonomy.


class TerminalError(Exception):
    pass


class TransientNetworkError(TerminalError):
    """
    The server could not be reached or could not answer: connection errors,
    timeouts, 5xx, 408 and 429. Safe to retry because every monetary request
    carries an idempotency key.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PermanentRejection(TerminalError):
    """The server refused the request (4xx). Retrying will not help."""

    def __init__(self, status_code: int, code: str | None, message: str, details: dict | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details or {}


class AuthenticationRequired(TerminalError):
    """
    The server did not accept the bearer token (401). The request was never
    looked at, so queued work stays queued until the register signs in again.
    """

    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class OfflineCardRefused(TerminalError):
    """Card payment attempted offline before the offline terms were accepted."""


class DrainInProgress(TerminalError):
    """Another drain of the offline queue is already running on this device."""
