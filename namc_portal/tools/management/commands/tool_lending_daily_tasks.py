from django.core.management.base import BaseCommand

from tools.services import ToolLendingService


class Command(BaseCommand):
    help = "Charges late fees, schedules automatic maintenance and flags overdue tool reservations. Run once a day."

    def add_arguments(self, parser):
        parser.add_argument('--late-fees-only', action='store_true', help='Only charge late fees on overdue checkouts')

    def handle(self, *args, **options):
        service = ToolLendingService()

        if options['late_fees_only']:
            charged = service.calculate_late_fees()
            for row in charged:
                self.stdout.write(f"Reservation {row['reservation_id']} ({row['member_email']}): ${row['late_fees']} for {row['days_late']} day(s) late")
            self.stdout.write(self.style.SUCCESS(f"Charged late fees on {len(charged)} reservation(s)."))
            return

        result = service.process_daily_tasks()
        self.stdout.write(self.style.SUCCESS(
            f"Late fees: {result['late_fees_calculated']}, "
            f"maintenance scheduled: {result['maintenance_scheduled']}, "
            f"overdue: {result['overdue_reservations']} ({result['overdue_notifications']} notified)."
        ))
