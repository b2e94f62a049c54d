# mark_overdue_fees.py
import logging
from datetime import date

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from college_app.models import Fee

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Flag pending fees whose due date has passed as OVERDUE'

    def add_arguments(self, parser):
        parser.add_argument(
            '--date',
            help='Treat this ISO date (YYYY-MM-DD) as today instead of the current date',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Report how many fees would be flagged without changing them',
        )

    def handle(self, *args, **options):
        today = timezone.localdate()
        if options['date']:
            try:
                today = date.fromisoformat(options['date'])
            except ValueError:
                raise CommandError(f"Invalid date: {options['date']}")

        if options['dry_run']:
            count = Fee.objects.filter(status=Fee.PENDING, due_date__lt=today).count()
            self.stdout.write(f'{count} fee(s) would be marked overdue')
            return

        count = Fee.mark_overdue(today)
        logger.info(f"Marked {count} fee(s) overdue as of {today}")
        self.stdout.write(self.style.SUCCESS(f'Marked {count} fee(s) overdue'))
