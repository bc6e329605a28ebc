from django.core.management.base import BaseCommand
from django.db import transaction

from outlets.managers import organization_context
from outlets.models import Organization, Outlet
from tables.services import TableService


class Command(BaseCommand):
    help = "Assign on-shift servers to unassigned tables (processes all organizations)"

    def add_arguments(self, parser):
        parser.add_argument("--outlet", help="Only this outlet code")
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show the assignment without saving it",
        )

    def handle(self, *args, **options):
        dry_run = options["dry_run"]
        outlet_code = options.get("outlet")

        if dry_run:
            self.stdout.write(self.style.WARNING("DRY RUN MODE - No changes will be made"))

        total_assigned = 0
        for organization in Organization.objects.filter(is_active=True):
            with organization_context(organization):
                outlets = Outlet.objects.filter(is_active=True)
                if outlet_code:
                    outlets = outlets.filter(code=outlet_code)

                for outlet in outlets:
                    with transaction.atomic():
                        plan = TableService.auto_assign_servers(outlet)
                        if dry_run:
                            transaction.set_rollback(True)

                    total_assigned += len(plan.assignments)
                    self.stdout.write(
                        f"{organization.slug}/{outlet.code}: {len(plan.assignments)} tables assigned"
                        + (f", {len(plan.unassigned)} left without a server" if plan.unassigned else "")
                    )

        verb = "Would assign" if dry_run else "Assigned"
        self.stdout.write(self.style.SUCCESS(f"{verb} {total_assigned} tables"))
