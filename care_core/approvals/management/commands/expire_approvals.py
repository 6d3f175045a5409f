from __future__ import annotations

from django.core.management.base import BaseCommand

from care_core.approvals.services import ApprovalService


class Command(BaseCommand):
    help = "Reject PENDING approvals whose current step has timed out."

    def handle(self, *args, **options):
        expired = ApprovalService.expire_timed_out()
        self.stdout.write(self.style.SUCCESS(f"Expired {len(expired)} approval(s)."))
