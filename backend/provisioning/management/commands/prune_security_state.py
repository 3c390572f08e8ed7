from django.core.management.base import BaseCommand, CommandError

from ...tools.signup import prune_security_state


class Command(BaseCommand):
    help = "Delete idle rate limit counters and audit entries past the retention period."

    def add_arguments(self, parser):
        parser.add_argument(
            "--retention-days",
            type=int,
            default=None,
            help="Override SECURITY_LOG_RETENTION_DAYS for this run.",
        )

    def handle(self, *args, **options):
        retention_days = options.get("retention_days")
        if retention_days is not None and retention_days < 1:
            raise CommandError("--retention-days must be at least 1.")

        result = prune_security_state(retention_days=retention_days)
        self.stdout.write(
            self.style.SUCCESS(
                f"Deleted {result.counters_deleted} rate limit counter(s) "
                f"and {result.audit_entries_deleted} audit entr(ies)."
            )
        )
