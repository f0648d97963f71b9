from django.core.management.base import BaseCommand

from otp.models import OTPRecord
from otp.services import otp_service


class Command(BaseCommand):
    help = "Delete OTP records whose expiry has passed."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Only report how many records would be deleted.",
        )

    def handle(self, *args, **options):
        if options["dry_run"]:
            count = OTPRecord.objects.expired(otp_service.clock()).count()
            self.stdout.write(f"{count} expired OTP records would be deleted.")
            return

        deleted = otp_service.purge_expired()
        self.stdout.write(self.style.SUCCESS(f"Deleted {deleted} expired OTP records."))
