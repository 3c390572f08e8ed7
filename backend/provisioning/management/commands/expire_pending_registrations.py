from django.core.management.base import BaseCommand

from ...tools.signup import expire_stale_registrations


class Command(BaseCommand):
    help = "Expire pending registrations whose TTL has lapsed and overwrite their stored credential."

    def handle(self, *args, **options):
        expired = expire_stale_registrations()
        self.stdout.write(self.style.SUCCESS(f"Expired {expired} pending registration(s)."))
