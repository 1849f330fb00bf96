from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError

from apps.core.contributions.models import MonthlyContribution
from apps.core.contributions.services import recalculate_expected_total
from apps.core.utils.errors import NotFoundError
from apps.core.utils.money import format_money


class Command(BaseCommand):
    help = "Re-snapshots total_expected of open periods from the group's current active members."

    def add_arguments(self, parser):
        target = parser.add_mutually_exclusive_group(required=True)
        target.add_argument('--period', type=int, help='Contribution period id.')
        target.add_argument('--all-open', action='store_true', help='Every period that is not finalized.')

    def handle(self, *args, **options):
        if options['all_open']:
            period_ids = list(
                MonthlyContribution.objects.filter(is_finalized=False).values_list('id', flat=True)
            )
        else:
            period_ids = [options['period']]

        changed = 0
        for period_id in period_ids:
            try:
                result = recalculate_expected_total(period_id=period_id)
            except (NotFoundError, ValidationError) as exc:
                raise CommandError(f'Period {period_id}: {exc}')

            period = result['period']
            if period.total_expected != result['previous_total_expected']:
                changed += 1
                self.stdout.write(
                    f"{period}: {format_money(result['previous_total_expected'])} -> "
                    f"{format_money(period.total_expected)}"
                )

        self.stdout.write(self.style.SUCCESS(f'Updated expected totals on {changed} of {len(period_ids)} period(s).'))
