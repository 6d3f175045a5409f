from __future__ import annotations

from datetime import date

from django.core.management.base import BaseCommand, CommandError

from care_core.billing.services import BillingPeriodService


class Command(BaseCommand):
    help = "Flag ACTIVE billing periods past their due date with unpaid balance as OVERDUE."

    def add_arguments(self, parser):
        parser.add_argument("--date", dest="as_of", default=None, help="Run as of YYYY-MM-DD (default: today).")

    def handle(self, *args, **options):
        as_of = None
        if options["as_of"]:
            try:
                as_of = date.fromisoformat(options["as_of"])
            except ValueError:
                raise CommandError("--date must be YYYY-MM-DD")

        count = BillingPeriodService.mark_overdue_periods(today=as_of)
        self.stdout.write(self.style.SUCCESS(f"Marked {count} period(s) overdue."))
