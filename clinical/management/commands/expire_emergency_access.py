from django.conf import settings
from django.core.management.base import BaseCommand

from clinical.services.emergency import expire_stale_sessions


class Command(BaseCommand):
    help = "Close emergency access sessions left open longer than EMERGENCY_ACCESS_MAX_HOURS."

    def add_arguments(self, parser):
        parser.add_argument(
            "--hours", type=int, default=None,
            help="override EMERGENCY_ACCESS_MAX_HOURS for this run",
        )

    def handle(self, *args, **opts):
        hours = opts["hours"] if opts["hours"] is not None else settings.EMERGENCY_ACCESS_MAX_HOURS
        closed = expire_stale_sessions(hours)
        self.stdout.write(self.style.SUCCESS(f"closed {closed} emergency access session(s) older than {hours}h"))
