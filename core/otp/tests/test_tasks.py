from datetime import timedelta
from io import StringIO
from unittest import mock

from django.core import mail
from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone

from otp.models import OTPRecord
from otp.tasks import purge_expired_otps_task, send_otp_email_task


def make_record(address, expires_in, **kwargs):
    now = timezone.now()
    return OTPRecord.objects.create(
        address=address,
        purpose=kwargs.pop("purpose", "signup"),
        code_hash="0" * 64,
        expires_at=now + expires_in,
        created_at=now - timedelta(minutes=10) + expires_in,
        **kwargs,
    )


class PurgeExpiredTaskTests(TestCase):
    def setUp(self):
        make_record("old@x.com", timedelta(minutes=-5))
        make_record("used@x.com", timedelta(seconds=-1), used=True)
        make_record("fresh@x.com", timedelta(minutes=5))

    def test_task_deletes_expired_records(self):
        deleted = purge_expired_otps_task.delay().get()

        self.assertEqual(deleted, 2)
        self.assertEqual(
            list(OTPRecord.objects.values_list("address", flat=True)), ["fresh@x.com"]
        )

    @mock.patch("otp.services.OTPService.purge_expired", side_effect=RuntimeError("db down"))
    def test_task_failure_is_logged_not_raised(self, _purge):
        with self.assertLogs("otp.tasks", level="ERROR"):
            self.assertEqual(purge_expired_otps_task(), 0)

    def test_command_deletes_expired_records(self):
        out = StringIO()
        call_command("purge_expired_otps", stdout=out)

        self.assertIn("Deleted 2 expired OTP records.", out.getvalue())
        self.assertEqual(OTPRecord.objects.count(), 1)

    def test_command_dry_run_keeps_records(self):
        out = StringIO()
        call_command("purge_expired_otps", "--dry-run", stdout=out)

        self.assertIn("2 expired OTP records would be deleted.", out.getvalue())
        self.assertEqual(OTPRecord.objects.count(), 3)


class SendOTPEmailTaskTests(TestCase):
    def test_task_sends_email(self):
        send_otp_email_task.delay("a@x.com", "123456", "signup")

        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].subject, "Verify Your Email - R-GRAM")
        self.assertIn("123456", mail.outbox[0].body)

    @mock.patch("otp.tasks.send_otp_email", return_value=False)
    def test_task_logs_undelivered_email(self, _send):
        with self.assertLogs("otp.tasks", level="WARNING") as logs:
            send_otp_email_task("a@x.com", "123456", "signup")
        self.assertIn("could not deliver", logs.output[0])

    def test_task_quotes_given_lifetime(self):
        send_otp_email_task.delay("a@x.com", "123456", "login", 3)

        self.assertIn("expires in 3 minutes", mail.outbox[0].body)
