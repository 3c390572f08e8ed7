from django.core.management.base import BaseCommand

from ...tools.signup import expire_lapsed_subscriptions


class Command(BaseCommand):
    help = "Mark active subscriptions whose billing period has ended as expired."

    def handle(self, *args, **options):
        expired = expire_lapsed_subscriptions()
        self.stdout.write(self.style.SUCCESS(f"Expired {expired} subscription(s)."))
