import logging
from datetime import datetime
from html import escape

from django.conf import settings
from django.core.mail import send_mail

from .models import Purpose

logger = logging.getLogger(__name__)

SUBJECTS = {
    Purpose.SIGNUP.value: "Verify Your Email - R-GRAM",
    Purpose.LOGIN.value: "Login OTP - R-GRAM",
    Purpose.PASSWORD_RESET.value: "Password Reset OTP - R-GRAM",
    Purpose.EMAIL_VERIFICATION.value: "Verify Your Email - R-GRAM",
}


def _purpose_label(purpose):
    return Purpose(purpose).label.lower() if purpose in Purpose.values else "verification"


def _otp_email_html(otp, purpose, expires_minutes):
    safe_otp = escape(str(otp))
    action = escape(_purpose_label(purpose))
    year = datetime.now().year
    return f"""
<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Your Verification Code</title>
</head>
<body style="margin:0;padding:0;background:#f9f9f9;color:#333;font-family:Arial,sans-serif;">
  <table role="presentation" width="100%" cellpadding="0" cellspacing="0" style="padding:24px 12px;">
    <tr>
      <td align="center">
        <table role="presentation" width="100%" cellpadding="0" cellspacing="0" style="max-width:600px;background:#fff;border-radius:10px;">
          <tr>
            <td style="padding:20px;text-align:center;background:#667eea;border-radius:10px 10px 0 0;">
              <div style="font-size:24px;font-weight:800;color:#fff;">R-GRAM</div>
            </td>
          </tr>
          <tr>
            <td style="padding:24px 24px 8px;text-align:center;color:#666;">
              Use this code to complete your {action} on R-GRAM:
            </td>
          </tr>
          <tr>
            <td style="padding:12px 24px;text-align:center;">
              <div style="display:inline-block;font-size:32px;font-weight:800;letter-spacing:5px;padding:16px 22px;color:#667eea;border:2px solid #667eea;border-radius:10px;">
                {safe_otp}
              </div>
            </td>
          </tr>
          <tr>
            <td style="padding:8px 24px 24px;text-align:center;color:#666;font-size:14px;">
              This code expires in {expires_minutes} minutes. If you did not request it, ignore this email.
            </td>
          </tr>
          <tr>
            <td style="padding:14px 24px;background:#333;text-align:center;color:#fff;font-size:12px;border-radius:0 0 10px 10px;">
              &copy; {year} R-GRAM
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>
"""


def send_otp_email(email, otp, purpose=Purpose.SIGNUP.value, expires_minutes=None):
    """
    Send a one-time code by email.

    `expires_minutes` is the lifetime quoted to the recipient; it defaults to
    OTP_EXPIRE_MINUTES. Returns True when the mail backend accepted the
    message, False otherwise.
    """
    subject = SUBJECTS.get(str(purpose), "OTP - R-GRAM")
    if expires_minutes is None:
        expires_minutes = settings.OTP_EXPIRE_MINUTES

    try:
        plain_message = (
            f"Your R-GRAM {_purpose_label(purpose)} code is {otp}.\n\n"
            f"This code expires in {expires_minutes} minutes.\n"
            "If you didn't request this, ignore this email."
        )

        sent = send_mail(
            subject=subject,
            message=plain_message,
            from_email=None,  # Uses DEFAULT_FROM_EMAIL from settings
            recipient_list=[email],
            html_message=_otp_email_html(otp, purpose, expires_minutes),
            fail_silently=False,
        )
    except Exception:
        logger.exception("Failed to send OTP email to %s", email)
        return False

    if not sent:
        logger.warning("Mail backend accepted no OTP email for %s", email)
        return False

    logger.info("OTP email sent to %s (%s)", email, purpose)
    return True
