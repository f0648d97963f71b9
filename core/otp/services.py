import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from .emails import send_otp_email
from .exceptions import (
    FAILURE_EXCEPTIONS,
    DispatchFailed,
    InvalidCode,
    NotFoundOrExpired,
    RateLimited,
    TooManyAttempts,
)
from .models import OTPRecord, Purpose
from .tasks import send_otp_email_task
from .utils import (
    generate_otp_code,
    hash_otp,
    normalize_address,
    normalize_purpose,
    otp_matches,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedOTP:
    """A freshly issued code. `code` is plaintext and only lives long enough to be sent."""

    address: str
    purpose: str
    code: str = field(repr=False)
    expires_at: datetime


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    reason: str | None = None
    message: str = ""
    attempts: int = 0

    @classmethod
    def failure(cls, error_class, attempts=0):
        return cls(
            valid=False,
            reason=error_class.reason,
            message=error_class.default_message,
            attempts=attempts,
        )

    def raise_for_failure(self):
        """Raise the matching OTPError for a failed verification; no-op when valid."""
        if self.valid:
            return
        error_class = FAILURE_EXCEPTIONS[self.reason]
        if error_class is InvalidCode:
            raise InvalidCode(self.message, attempts=self.attempts)
        raise error_class(self.message)


@dataclass(frozen=True)
class OTPInfo:
    address: str
    purpose: str
    expires_at: datetime
    attempts: int
    created_at: datetime


class OTPService:
    """
    Issues, verifies and expires email one-time passwords.

    Each (address, purpose) pair owns at most one record. Issuing replaces it,
    a successful verification consumes it, and the attempt counter caps guessing.

    Args:
        clock: zero-argument callable returning an aware datetime. Defaults to timezone.now.
        sender: callable (address, code, purpose) -> bool used to deliver codes.
            Defaults to email, sent through Celery when OTP_EMAIL_ASYNC is on.
        code_length, ttl, max_attempts, resend_cooldown: override the OTP_* settings.
    """

    ISSUE_RETRIES = 3

    def __init__(
        self,
        clock=None,
        sender=None,
        code_length=None,
        ttl=None,
        max_attempts=None,
        resend_cooldown=None,
    ):
        self.clock = clock or timezone.now
        self.sender = sender
        self._code_length = code_length
        self._ttl = ttl
        self._max_attempts = max_attempts
        self._resend_cooldown = resend_cooldown

    # Settings are read per call so override_settings and env changes apply.

    @property
    def code_length(self) -> int:
        return self._code_length or settings.OTP_CODE_LENGTH

    @property
    def ttl(self) -> timedelta:
        return self._ttl or timedelta(minutes=settings.OTP_EXPIRE_MINUTES)

    @property
    def max_attempts(self) -> int:
        return self._max_attempts or settings.OTP_MAX_ATTEMPTS

    @property
    def resend_cooldown(self) -> timedelta:
        return self._resend_cooldown or timedelta(
            seconds=settings.OTP_RESEND_COOLDOWN_SECONDS
        )

    @property
    def expires_minutes(self) -> int:
        """Code lifetime in whole minutes, as quoted in the email."""
        return max(1, math.ceil(self.ttl.total_seconds() / 60))

    # --- Issuer ---

    def create_otp(self, address, purpose=Purpose.SIGNUP) -> IssuedOTP:
        """Issue a fresh code for (address, purpose), invalidating any previous one."""
        address = normalize_address(address)
        purpose = normalize_purpose(purpose)
        return self._issue(address, purpose)

    def _issue(self, address, purpose, cooldown=None) -> IssuedOTP:
        code = generate_otp_code(self.code_length)
        code_hash = hash_otp(address, purpose, code)
        now = self.clock()
        expires_at = now + self.ttl

        for attempt in range(1, self.ISSUE_RETRIES + 1):
            try:
                self._replace(address, purpose, code_hash, now, expires_at, cooldown)
                break
            except IntegrityError:
                # A concurrent issuance inserted between our delete and insert.
                if attempt == self.ISSUE_RETRIES:
                    raise
                logger.warning(
                    "Concurrent OTP issuance for %s (%s), retrying", address, purpose
                )

        logger.info(
            "Issued %s OTP for %s (expires %s)", purpose, address, expires_at.isoformat()
        )
        return IssuedOTP(
            address=address, purpose=purpose, code=code, expires_at=expires_at
        )

    def _replace(self, address, purpose, code_hash, now, expires_at, cooldown=None):
        """
        Swap the record for (address, purpose) in one transaction.

        With a cooldown, the existing rows are locked first and a record created
        within it raises RateLimited, so two resends cannot both pass the check.
        """
        with transaction.atomic():
            records = OTPRecord.objects.for_key(address, purpose)
            if cooldown is not None:
                recent = (
                    records.select_for_update()
                    .filter(created_at__gte=now - cooldown)
                    .first()
                )
                if recent is not None:
                    retry_after = max(
                        1, math.ceil((recent.created_at + cooldown - now).total_seconds())
                    )
                    logger.warning(
                        "OTP resend for %s (%s) rejected, retry in %ss",
                        address,
                        purpose,
                        retry_after,
                    )
                    raise RateLimited(
                        f"Please wait {retry_after} seconds before requesting a new OTP.",
                        retry_after=retry_after,
                    )

            records.delete()
            OTPRecord.objects.create(
                address=address,
                purpose=purpose,
                code_hash=code_hash,
                expires_at=expires_at,
                created_at=now,
            )

    # --- Verifier ---

    def verify_otp(self, address, otp, purpose=Purpose.SIGNUP) -> VerificationResult:
        """
        Check a submitted code against the active record for (address, purpose).

        Every check against an eligible record counts as an attempt, whether or not
        the code matches. A match consumes the record.
        """
        address = normalize_address(address)
        purpose = normalize_purpose(purpose)
        otp = str(otp or "").strip()
        now = self.clock()

        logger.info("Verifying %s OTP for %s", purpose, address)

        record = OTPRecord.objects.for_key(address, purpose).active(now).first()
        if record is None:
            logger.warning("OTP not found or expired for %s (%s)", address, purpose)
            return VerificationResult.failure(NotFoundOrExpired)

        if record.attempts >= self.max_attempts:
            logger.warning("OTP attempts exhausted for %s (%s)", address, purpose)
            return VerificationResult.failure(TooManyAttempts, attempts=record.attempts)

        counted = (
            OTPRecord.objects.filter(pk=record.pk, code_hash=record.code_hash)
            .active(now)
            .filter(attempts__lt=self.max_attempts)
            .update(attempts=F("attempts") + 1)
        )
        if not counted:
            return self._recheck(record.pk, now)

        attempts = (
            OTPRecord.objects.filter(pk=record.pk)
            .values_list("attempts", flat=True)
            .first()
        ) or record.attempts + 1

        if not otp_matches(record.code_hash, address, purpose, otp):
            logger.warning(
                "Invalid OTP for %s (%s), attempt %s/%s",
                address,
                purpose,
                attempts,
                self.max_attempts,
            )
            return VerificationResult.failure(InvalidCode, attempts=attempts)

        consumed = OTPRecord.objects.filter(pk=record.pk, used=False).update(used=True)
        if not consumed:
            logger.warning("OTP for %s (%s) was consumed concurrently", address, purpose)
            return VerificationResult.failure(NotFoundOrExpired)

        logger.info("OTP verified for %s (%s)", address, purpose)
        return VerificationResult(
            valid=True, message="OTP verified successfully", attempts=attempts
        )

    def _recheck(self, pk, now) -> VerificationResult:
        """Classify a record that changed between lookup and the counted update."""
        record = OTPRecord.objects.filter(pk=pk).active(now).first()
        if record is not None and record.attempts >= self.max_attempts:
            return VerificationResult.failure(TooManyAttempts, attempts=record.attempts)
        return VerificationResult.failure(NotFoundOrExpired)

    # --- Resend Guard ---

    def resend_otp(self, address, purpose=Purpose.SIGNUP) -> IssuedOTP:
        """Issue again, unless a code for (address, purpose) was issued within the cooldown."""
        address = normalize_address(address)
        purpose = normalize_purpose(purpose)
        return self._issue(address, purpose, cooldown=self.resend_cooldown)

    # --- Dispatch ---

    def request_otp(self, address, purpose=Purpose.SIGNUP) -> IssuedOTP:
        """Issue a code and deliver it. Raises DispatchFailed if delivery fails."""
        issued = self.create_otp(address, purpose)
        self.dispatch(issued)
        return issued

    def request_resend(self, address, purpose=Purpose.SIGNUP) -> IssuedOTP:
        """Resend a code and deliver it. Raises RateLimited or DispatchFailed."""
        issued = self.resend_otp(address, purpose)
        self.dispatch(issued)
        return issued

    def dispatch(self, issued: IssuedOTP):
        if self.sender is not None:
            sent = self.sender(issued.address, issued.code, issued.purpose)
        elif settings.OTP_EMAIL_ASYNC:
            sent = self._enqueue(issued)
        else:
            sent = send_otp_email(
                issued.address, issued.code, issued.purpose, self.expires_minutes
            )

        if not sent:
            logger.error("OTP dispatch failed for %s (%s)", issued.address, issued.purpose)
            raise DispatchFailed(issued=issued)

    def _enqueue(self, issued: IssuedOTP) -> bool:
        try:
            send_otp_email_task.delay(
                issued.address, issued.code, issued.purpose, self.expires_minutes
            )
            return True
        except Exception:
            logger.exception(
                "Failed to enqueue OTP email task. Falling back to sync send for %s",
                issued.address,
            )
            return send_otp_email(
                issued.address, issued.code, issued.purpose, self.expires_minutes
            )

    # --- Housekeeping ---

    def get_otp_info(self, address, purpose=Purpose.SIGNUP) -> OTPInfo | None:
        """Describe the unused record for (address, purpose) without revealing the code."""
        address = normalize_address(address)
        purpose = normalize_purpose(purpose)
        record = OTPRecord.objects.for_key(address, purpose).filter(used=False).first()
        if record is None:
            return None
        return OTPInfo(
            address=record.address,
            purpose=record.purpose,
            expires_at=record.expires_at,
            attempts=record.attempts,
            created_at=record.created_at,
        )

    def purge_expired(self) -> int:
        """Delete records past their expiry. Returns the number removed."""
        deleted, _ = OTPRecord.objects.expired(self.clock()).delete()
        if deleted:
            logger.info("Purged %s expired OTP records", deleted)
        return deleted


otp_service = OTPService()
