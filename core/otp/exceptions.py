"""
Error taxonomy for OTP issuance and verification.

Every error here is a per-request rejection; none of them is fatal to the process.
"""


class FailureReason:
    NOT_FOUND_OR_EXPIRED = "not_found_or_expired"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    INVALID_CODE = "invalid_code"
    RATE_LIMITED = "rate_limited"
    DISPATCH_FAILED = "dispatch_failed"


class OTPError(Exception):
    reason = None
    default_message = "OTP error."

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundOrExpired(OTPError):
    """No eligible record exists; the caller must request a new code."""

    reason = FailureReason.NOT_FOUND_OR_EXPIRED
    default_message = "OTP not found or expired"


class TooManyAttempts(OTPError):
    """The attempt cap is exhausted; the caller must request a new code."""

    reason = FailureReason.TOO_MANY_ATTEMPTS
    default_message = "Too many attempts. Please request a new OTP."


class InvalidCode(OTPError):
    """The code does not match; the caller may retry until the attempt cap."""

    reason = FailureReason.INVALID_CODE
    default_message = "Invalid OTP code"

    def __init__(self, message=None, attempts=0):
        self.attempts = attempts
        super().__init__(message)


class RateLimited(OTPError):
    reason = FailureReason.RATE_LIMITED
    default_message = "Please wait before requesting a new OTP."

    def __init__(self, message=None, retry_after=0):
        self.retry_after = retry_after
        super().__init__(message)


class DispatchFailed(OTPError):
    """
    The code could not be delivered.

    The issued record stays valid; `issued` carries the code so the caller can retry
    the send without issuing again.
    """

    reason = FailureReason.DISPATCH_FAILED
    default_message = "Failed to send OTP email"

    def __init__(self, message=None, issued=None):
        self.issued = issued
        super().__init__(message)


FAILURE_EXCEPTIONS = {
    FailureReason.NOT_FOUND_OR_EXPIRED: NotFoundOrExpired,
    FailureReason.TOO_MANY_ATTEMPTS: TooManyAttempts,
    FailureReason.INVALID_CODE: InvalidCode,
}
