from datetime import timedelta

from django.utils import timezone


class FakeClock:
    """Manually advanced stand-in for timezone.now."""

    def __init__(self, start=None):
        self.now = start or timezone.now()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now
