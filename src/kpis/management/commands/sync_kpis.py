"""Reconcile metric current values with their monthly rollups."""
from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from kpis.clock import SystemClock
from kpis.exceptions import PersistenceError
from kpis.models import MetricDefinition
from kpis.sync import ReconciliationSync


class Command(BaseCommand):
    help = "Write each owner's monthly rollup totals into current_value (default: current month)."

    def add_arguments(self, parser):
        parser.add_argument("--year", type=int, help="Year to reconcile (default: this year).")
        parser.add_argument("--month", type=int, help="Month to reconcile, 1-12 (default: this month).")
        parser.add_argument(
            "--owner",
            action="append",
            dest="owners",
            help="Owner id to reconcile; repeat for several. Default: every owner with metrics.",
        )
        parser.add_argument(
            "--async",
            action="store_true",
            dest="run_async",
            help="Queue one Celery task per owner instead of running inline.",
        )

    def handle(self, *args, **options):
        today = SystemClock().today()
        year = options["year"] or today.year
        month = options["month"] or today.month
        if not 1 <= month <= 12:
            raise CommandError(f"Mois invalide: {month}.")

        owners = options["owners"] or list(
            MetricDefinition.objects.order_by().values_list("owner_id", flat=True).distinct()
        )

        if options["run_async"]:
            from kpis.tasks import sync_owner_month

            for owner_id in owners:
                sync_owner_month.delay(owner_id=owner_id, year=year, month=month)
            self.stdout.write(self.style.SUCCESS(
                f"Queued {len(owners)} sync task(s) for {year}-{month:02d}"
            ))
            return

        sync = ReconciliationSync()
        failed = 0
        for owner_id in owners:
            try:
                written = sync.sync_rollup_to_definition(owner_id, year, month)
            except PersistenceError as exc:
                failed += 1
                self.stderr.write(f"owner={owner_id}: {exc}")
                continue
            self.stdout.write(f"owner={owner_id}: {len(written)} metric(s) synced")

        if failed:
            raise CommandError(f"{failed} owner(s) could not be synced for {year}-{month:02d}.")
        self.stdout.write(self.style.SUCCESS(
            f"Synced {len(owners)} owner(s) for {year}-{month:02d}"
        ))
