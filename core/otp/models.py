from django.db import models
from django.utils import timezone


class Purpose(models.TextChoices):
    SIGNUP = "signup", "Signup"
    LOGIN = "login", "Login"
    PASSWORD_RESET = "password_reset", "Password Reset"
    EMAIL_VERIFICATION = "email_verification", "Email Verification"


class OTPRecordQuerySet(models.QuerySet):
    def for_key(self, address, purpose):
        return self.filter(address=address, purpose=purpose)

    def active(self, now):
        return self.filter(used=False, expires_at__gt=now)

    def expired(self, now):
        return self.filter(expires_at__lt=now)


class OTPRecord(models.Model):
    """
    A hashed one-time code issued to an email address for a single purpose.

    At most one record exists per (address, purpose); issuing a new code replaces it.
    Records are usable until `expires_at`, for a capped number of attempts, and only once.
    """

    address = models.CharField(max_length=254, db_index=True)
    purpose = models.CharField(
        max_length=32, choices=Purpose.choices, default=Purpose.SIGNUP
    )
    code_hash = models.CharField(max_length=128)
    expires_at = models.DateTimeField(db_index=True)
    attempts = models.PositiveSmallIntegerField(default=0)
    used = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=timezone.now)

    objects = OTPRecordQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["address", "purpose"],
                name="otp_one_record_per_address_purpose",
            ),
        ]

    def __str__(self):
        return f"{self.address} - {self.purpose} OTP"
