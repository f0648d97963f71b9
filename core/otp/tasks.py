from celery import shared_task
from .emails import send_otp_email
import logging

logger = logging.getLogger(__name__)


@shared_task
def send_otp_email_task(email, otp, purpose, expires_minutes=None):
    """
    Async task to send OTP email.
    """
    try:
        if send_otp_email(email, otp, purpose, expires_minutes):
            logger.info(f"OTP email task completed for {email}")
        else:
            logger.warning(f"OTP email task could not deliver to {email}")
    except Exception as e:
        logger.exception(f"OTP email task failed: {str(e)}")


@shared_task
def purge_expired_otps_task():
    """
    Periodic task to delete expired OTP records.
    Expired records are already unusable; this only keeps the table small.
    """
    from .services import otp_service

    try:
        deleted = otp_service.purge_expired()
        logger.info(f"Expired OTP purge removed {deleted} records")
        return deleted
    except Exception as e:
        logger.exception(f"Expired OTP purge failed: {str(e)}")
        return 0
