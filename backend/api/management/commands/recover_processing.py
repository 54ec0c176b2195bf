from django.core.management.base import BaseCommand, CommandError

from api.recovery import RecoveryError, recover_stuck_processing_jobs


class Command(BaseCommand):
    help = "Mark workspaces, jobs and videos left in 'processing' as failed. Run once per deployment at startup."

    def handle(self, *args, **options):
        try:
            stats = recover_stuck_processing_jobs()
        except RecoveryError as e:
            raise CommandError(str(e)) from e
        for key, value in stats.as_dict().items():
            self.stdout.write(f"{key}: {value}")
        self.stdout.write(self.style.SUCCESS("Processing recovery completed"))
