import hmac
import secrets
import string
from hashlib import sha256

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import validate_email

from .models import Purpose


def generate_otp_code(length=6):
    """Generate a numeric OTP code."""
    return "".join(secrets.choice(string.digits) for _ in range(length))


def hash_otp(address: str, purpose: str, otp: str) -> str:
    normalized = f"{address.lower().strip()}:{purpose}:{otp.strip()}".encode("utf-8")
    return hmac.new(settings.SECRET_KEY.encode("utf-8"), normalized, sha256).hexdigest()


def otp_matches(code_hash: str, address: str, purpose: str, otp: str) -> bool:
    return hmac.compare_digest(code_hash, hash_otp(address, purpose, otp or ""))


def normalize_address(address):
    """
    Lowercase and strip an email address, rejecting anything that is not one.
    """
    if not isinstance(address, str) or not address.strip():
        raise ValidationError("Email is required.")
    address = address.strip().lower()
    validate_email(address)
    return address


def normalize_purpose(purpose):
    if purpose not in Purpose.values:
        raise ValidationError(
            f"Invalid OTP purpose '{purpose}'. Expected one of: {', '.join(Purpose.values)}."
        )
    return Purpose(purpose).value
